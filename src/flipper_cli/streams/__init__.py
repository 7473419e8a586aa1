from flipper_cli.streams.streams import Stream, READ_CHUNK_SIZE
from flipper_cli.streams.usb import USBStream, SERIAL_TIMEOUT
