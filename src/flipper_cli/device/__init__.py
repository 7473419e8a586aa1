from flipper_cli.device.manager import DeviceManager, DEFAULT_CHUNK_SIZE
from flipper_cli.device.conn import Connection
from flipper_cli.device.responses import FileInfo, FileKind, InfoCategory
