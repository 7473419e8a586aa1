"""
Exception Classes

Error taxonomy shared by the streams, the device manager and the transfer
classes. Every error raised by flipper_cli derives from FlipperError so the
CLI layer can report any failure with a single except clause.
"""

from typing import Optional


class FlipperError(Exception):
    """Base exception for all flipper_cli errors."""

    fmt = "{description}"

    def __init__(self, desc: Optional[str] = None) -> None:
        """
        Args:
            desc: Human readable description of the failure.
        """
        super().__init__(desc)
        self.description = desc

    def __str__(self) -> str:
        return self.fmt.format(description=self.description or "Unknown Error")


class FlipperConnectionError(FlipperError, ConnectionError):
    """No device found, the port could not be opened, or the session is closed."""


class FlipperIOError(FlipperError, IOError):
    """Transport level read/write/drain failure."""

    fmt = "I/O error: {description}"


class FlipperProtocolError(FlipperError):
    """
    Malformed reply, or error text reported in-band by the firmware.

    For in-band errors the description is the device's own message, in its
    original case, so it can be shown to the user unchanged.
    """


class FlipperPathError(FlipperError, ValueError):
    """Device path is missing the /int or /ext storage root prefix."""


class FlipperRangeError(FlipperError, ValueError):
    """Numeric argument out of bounds (LED, backlight)."""


class FlipperFileSystemError(FlipperError, OSError):
    """Local filesystem failure during a transfer."""

    fmt = "Local filesystem error: {description}"


class FlipperTransferError(FlipperError):
    """Received byte count mismatch, or download destination already exists."""
