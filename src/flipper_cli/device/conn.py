import logging
from typing import Callable, Dict, List, Optional, Tuple

from flipper_cli.exceptions import FlipperConnectionError
from flipper_cli.device.manager import DeviceManager, DEFAULT_CHUNK_SIZE
from flipper_cli.streams.usb import USBStream

# Substring the device uses in its port name / USB serial number
DEVICE_NAME_PATTERN = "flip_"
AUTO = "auto"

ExtraDevicesCallback = Callable[[List[Dict[str, str]]], None]

class Connection:
    """Handles detection of devices and creation of connected DeviceManagers."""

    @staticmethod
    def find_devices() -> List[Dict[str, str]]:
        """
        Returns the serial ports that look like the device, in enumeration order.
        """
        ports = USBStream.list_ports()
        return [p for p in ports
                if DEVICE_NAME_PATTERN in p.get('port', '')
                or DEVICE_NAME_PATTERN in p.get('serial_number', '')]

    @staticmethod
    def warn_extra_devices(others: List[Dict[str, str]]) -> None:
        """Default warning channel: logs the devices that were not selected."""
        log = logging.getLogger("Connection")
        log.warning("More than one device is attached, other devices found:")
        for other in others:
            log.warning(f"  {other['port']} : {other.get('serial_number', '')}")

    @staticmethod
    def resolve_port(selector: Optional[str] = AUTO,
                     on_extra_devices: Optional[ExtraDevicesCallback] = None) -> Tuple[str, List[Dict[str, str]]]:
        """
        Turns a port selector into a port name.

        Args:
            selector: A port name, or "auto" / "" / None for discovery.
            on_extra_devices: Called with the unselected matches when more
                than one device is found. Defaults to a logged warning.

        Returns:
            Tuple of (port name, unselected matches).

        Raises:
            FlipperConnectionError: Discovery found no device.
        """
        log = logging.getLogger("Connection.resolve_port")
        if selector and selector != AUTO:
            return selector, []

        log.info("Scanning for USB devices...")
        devices = Connection.find_devices()
        if not devices:
            raise FlipperConnectionError("no connected flippers found")

        selected, others = devices[0], devices[1:]
        log.info(f"Found USB device: {selected['port']} - {selected.get('description', '')}")
        if others:
            log.debug(f"Connecting to {selected['port']}, {len(others)} other device(s) attached")
            (on_extra_devices or Connection.warn_extra_devices)(others)
        return selected['port'], others

    @staticmethod
    def usb(port: str) -> USBStream:
        """
        Opens a USB serial stream.

        Raises:
            FlipperConnectionError: The port could not be opened.
        """
        log = logging.getLogger("Connection.usb")
        log.info(f"Attempting USB connection to {port}...")
        stream = USBStream(address=port)
        log.info(f"USB connection successful to {port}.")
        return stream

    @staticmethod
    def open(selector: Optional[str] = AUTO,
             on_extra_devices: Optional[ExtraDevicesCallback] = None,
             chunk_size: int = DEFAULT_CHUNK_SIZE,
             verbose: bool = False) -> DeviceManager:
        """
        Resolves the port, opens it and returns a DeviceManager that has
        already captured the device banner.
        """
        port, _ = Connection.resolve_port(selector, on_extra_devices)
        stream = Connection.usb(port)
        try:
            return DeviceManager(stream, address=port, chunk_size=chunk_size, verbose=verbose)
        except Exception:
            stream.close()
            raise
