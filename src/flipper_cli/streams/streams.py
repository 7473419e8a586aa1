"""
Stream Protocol for Communication

Defines the byte-oriented duplex interface the response framer talks to.
USBStream is the real serial implementation, DummyStream the test double.
"""

from typing import Protocol, runtime_checkable

# Bytes requested per poll of the serial port
READ_CHUNK_SIZE = 64

@runtime_checkable
class Stream(Protocol):
    """Protocol defining the interface for communication streams."""

    def close(self) -> bool:
        """Closes the stream connection. Safe to call more than once."""
        ...

    def send(self, data: bytes) -> None:
        """Writes data to the stream. Raises FlipperIOError on failure."""
        ...

    def drain(self) -> None:
        """Blocks until all written bytes are physically transmitted."""
        ...

    def read_available(self, size: int = READ_CHUNK_SIZE) -> bytes:
        """
        Reads up to size bytes, waiting at most one short poll window.
        Returns b'' when nothing arrived within that window.
        """
        ...

    def discard_input(self) -> None:
        """Drops any received bytes that have not been read yet."""
        ...
