import logging
import serial
import serial.tools.list_ports
from typing import Optional, List, Dict

from flipper_cli.exceptions import FlipperConnectionError, FlipperIOError
from flipper_cli.streams.streams import Stream, READ_CHUNK_SIZE

# Constants
SERIAL_TIMEOUT = 0.1  # seconds, one poll window of the framer
BAUD_RATE = 115200

class USBStream(Stream):
    """USB serial connection to the device shell, established on initialization."""

    def __init__(self, address: str):
        """
        Initialize and open the serial connection.

        The link parameters are fixed: the firmware shell only frames correctly
        at 115200 baud, 7 data bits, no parity, one stop bit.

        Raises:
            FlipperConnectionError: The port could not be opened.
        """
        self.serial: Optional[serial.Serial] = None
        self.address = address
        self.log = logging.getLogger("USBStream")

        self.log.debug(f"Opening {address} at {BAUD_RATE} baud, 7N1")
        try:
            self.serial = serial.Serial(
                port=address,
                baudrate=BAUD_RATE,
                bytesize=serial.SEVENBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=SERIAL_TIMEOUT
            )
            self.log.info(f"Opened {address}")
        except (serial.SerialException, OSError, ValueError) as e:
            self.log.error(f"Cannot open {address}: {e}")
            self.serial = None
            raise FlipperConnectionError(f"Failed to open USB device {address}: {e}") from e

    def close(self) -> bool:
        """Release the port. Returns False if the driver reported an error."""
        if self.serial is None:
            self.log.debug(f"{self.address} already released")
            return True

        port, self.serial = self.serial, None
        if not port.is_open:
            return True
        try:
            port.close()
        except (serial.SerialException, OSError) as e:
            self.log.error(f"Failed to close {self.address}: {e}")
            return False
        self.log.debug(f"Released {self.address}")
        return True

    def _port(self) -> serial.Serial:
        if self.serial is None:
            raise FlipperIOError(f"serial port {self.address} is closed")
        return self.serial

    def send(self, data: bytes) -> None:
        """Write data to the port"""
        port = self._port()
        try:
            port.write(data)
        except (serial.SerialException, OSError) as e:
            self.log.error(f"Write to {self.address} failed: {e}")
            raise FlipperIOError(str(e)) from e

    def drain(self) -> None:
        """Wait until all data is written"""
        port = self._port()
        try:
            port.flush()
        except (serial.SerialException, OSError) as e:
            self.log.error(f"Flush of {self.address} failed: {e}")
            raise FlipperIOError(str(e)) from e

    def read_available(self, size: int = READ_CHUNK_SIZE) -> bytes:
        """
        Read whatever has arrived, up to size bytes.

        A single blocking read is bounded by SERIAL_TIMEOUT, so an empty
        result means the device stayed silent for one poll window.
        """
        port = self._port()
        try:
            waiting = port.in_waiting
            return port.read(min(max(waiting, 1), size))
        except (serial.SerialException, OSError, TypeError) as e:
            # TypeError surfaces when the port is closed from another thread mid-read
            self.log.debug(f"Error during serial read: {e}")
            raise FlipperIOError(str(e)) from e

    def discard_input(self) -> None:
        """Drop buffered input that was never read"""
        port = self._port()
        try:
            port.reset_input_buffer()
        except (serial.SerialException, OSError) as e:
            raise FlipperIOError(str(e)) from e

    @staticmethod
    def list_ports() -> List[Dict[str, str]]:
        """Enumerate serial ports as plain dicts; empty if enumeration fails."""
        try:
            found = serial.tools.list_ports.comports()
        except (OSError, serial.SerialException) as e:
            logging.getLogger("USBStream").error(f"Port enumeration failed: {e}")
            return []
        return [{
            'port': info.device,
            'description': info.description,
            'hwid': info.hwid,
            'serial_number': info.serial_number or '',
        } for info in found]
