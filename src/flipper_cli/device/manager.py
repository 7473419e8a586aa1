import io
import logging
import posixpath
import typing
from datetime import datetime, timedelta
from typing import Optional, List, Dict, Callable, IO, Union

from flipper_cli.exceptions import (
    FlipperConnectionError,
    FlipperIOError,
    FlipperProtocolError,
    FlipperRangeError,
)
from flipper_cli.device.framer import ResponseFramer, NOT_CONNECTED
from flipper_cli.device.responses import (
    FileInfo,
    InfoCategory,
    STORAGE_ROOTS,
    check_path,
    parse_info,
    parse_list,
    parse_stat,
    parse_timestamp,
    parse_uptime,
)
from flipper_cli.streams.streams import Stream

# Bytes per write_chunk / read_chunks exchange
DEFAULT_CHUNK_SIZE = 8192
# Deepest directory level walk() will descend to
MAX_WALK_DEPTH = 32

if typing.TYPE_CHECKING:
    from ..transport.download import DownloadTransport
    from ..transport.upload import UploadTransport

class DeviceManager:
    """
    Manages communication with a device shell via a provided Stream.

    Each public method formats one command line (or a short fixed sequence),
    issues it through the ResponseFramer and parses the reply into a typed
    result. Failures are raised, never retried: FlipperProtocolError for
    in-band errors and malformed replies, FlipperIOError for the link,
    FlipperPathError / FlipperRangeError for arguments rejected locally.
    """

    def __init__(self, stream: Stream, address: str, chunk_size: int = DEFAULT_CHUNK_SIZE,
                 read_banner: bool = True, verbose: bool = False):
        """
        Initializes the DeviceManager with an active communication stream.

        Args:
            stream: An already opened Stream object.
            address: The port name associated with the stream.
            chunk_size: Bytes per chunk for uploads and downloads.
            read_banner: Capture the greeting banner and clear the input buffer.
            verbose: Log every raw frame at DEBUG level if True.
        """
        self.log = logging.getLogger("DeviceManager")
        if stream is None:
            self.log.error("DeviceManager initialized without a valid stream!")
            raise ValueError("DeviceManager requires a valid Stream object.")

        self.framer = ResponseFramer(stream, verbose=verbose)
        self.address: str = address
        self.chunk_size = chunk_size
        self.banner = ""

        if read_banner:
            self.banner = self.read_banner()

        self.log.debug(f"DeviceManager initialized with stream for address: {self.address}")

    @property
    def stream(self) -> Optional[Stream]:
        return self.framer.stream

    def read_banner(self) -> str:
        """Reads the greeting printed on connect, then drops residual input."""
        raw = self.framer.read_frame()
        banner = self.framer.trim(raw.decode('utf-8', errors='replace'), "")
        self._require_stream().discard_input()
        self.log.debug(f"Banner: {banner!r}")
        return banner

    def close(self) -> None:
        """Closes the connection stream held by the manager. Idempotent."""
        if self.framer.connected:
            if self.framer.close():
                self.log.debug(f"Stream closed for address: {self.address}")
            else:
                self.log.warning(f"Stream for {self.address} did not close cleanly")
        else:
            self.log.debug("Close called but no active stream.")

    def _require_stream(self) -> Stream:
        stream = self.framer.stream
        if stream is None:
            raise FlipperConnectionError(NOT_CONNECTED)
        return stream

    # --- Command Execution ---

    def request(self, command: str) -> str:
        """Sends a raw command line and returns the framed reply text."""
        return self.framer.request(command)

    def info(self, category: Union[InfoCategory, str] = InfoCategory.DEVICE) -> Dict[str, str]:
        """Returns the key/value block for device, power or power_debug."""
        category = InfoCategory(category)
        return parse_info(self.request(f"info {category.value}"))

    def uptime(self) -> timedelta:
        return parse_uptime(self.request("uptime"))

    def backlight(self, intensity: int) -> None:
        """Sets the backlight intensity, 0-255."""
        if not 0 <= intensity <= 255:
            raise FlipperRangeError("intensity value should be between 0-255")
        self.request(f"led bl {intensity}")

    def led(self, r: int, g: int, b: int) -> None:
        """Sets the RGB LED. All three values are checked before anything is sent."""
        if not all(0 <= value <= 255 for value in (r, g, b)):
            raise FlipperRangeError("rgb values should be between 0-255")
        self.request(f"led r {r}")
        self.request(f"led g {g}")
        self.request(f"led b {b}")

    def power_off(self) -> None:
        self.request("power off")

    def reboot(self) -> None:
        self.request("power reboot")

    def reboot_to_bootloader(self) -> None:
        self.request("power reboot2dfu")

    # --- Storage Commands ---

    def mkdir(self, path: str) -> None:
        check_path(path)
        self.request(f"storage mkdir {path}")

    def mkdir_all(self, path: str) -> None:
        """
        Creates path and any missing parents, like os.makedirs(exist_ok=True).

        Components are checked root-to-leaf with stat; existing directories are
        skipped, an existing plain file aborts the walk.
        """
        check_path(path)
        parts = path.rstrip("/").strip("/").split("/")
        # parts[0] is the storage root itself ("int" / "ext"), which always exists
        current = "/" + parts[0]
        for part in parts[1:]:
            if not part:
                continue
            current = f"{current}/{part}"
            try:
                info = self.stat(current)
            except FlipperProtocolError as e:
                self.log.debug(f"{current} not found ({e}), creating")
                self.mkdir(current)
                continue
            if info.is_plain:
                raise FlipperProtocolError(
                    f"{current} is a plain file that already exists and is not a directory")

    def format(self, path: str) -> None:
        """Formats the storage at path. Sends the confirmation the shell asks for."""
        check_path(path)
        self.request(f"storage format {path}")
        self.request("y")

    def rm(self, path: str) -> None:
        check_path(path)
        self.request(f"storage remove {path}")

    def copy(self, src: str, dst: str) -> None:
        check_path(src)
        check_path(dst)
        self.request(f"storage copy {src} {dst}")

    def rename(self, src: str, dst: str) -> None:
        check_path(src)
        check_path(dst)
        self.request(f"storage rename {src} {dst}")

    def md5(self, path: str) -> str:
        check_path(path)
        return self.request(f"storage md5 {path}")

    def store_info(self, path: str) -> str:
        check_path(path)
        return self.request(f"storage info {path}")

    def stat(self, path: str) -> FileInfo:
        """
        Returns the FileInfo for path.

        Raises:
            FlipperProtocolError: The path does not exist, or the reply is
                neither a directory nor a file description.
        """
        check_path(path)
        return parse_stat(path, self.request(f"storage stat {path}"))

    def timestamp(self, path: str) -> datetime:
        check_path(path)
        return parse_timestamp(self.request(f"storage timestamp {path}"))

    # --- Directory Listing ---

    def ls(self, path: str) -> List[FileInfo]:
        """
        Lists a directory. Directories come first, then plain files, each
        group in the order the device listed them.
        """
        check_path(path)
        if path.endswith("/"):
            path = path.rstrip("/")
        return parse_list(path, self.request(f"storage list {path}"))

    def walk(self, path: str, visit: Callable[[FileInfo], None]) -> None:
        """
        Visits every entry below path.

        All entries of a directory are visited before any of its
        subdirectories is listed; subdirectories are then descended in
        listing order. An exception raised by visit aborts the walk.
        """
        # Stack of (directory, depth); pushed reversed so listing order is kept
        pending = [(path, 0)]
        while pending:
            directory, depth = pending.pop()
            if depth > MAX_WALK_DEPTH:
                raise FlipperProtocolError(
                    f"directory tree under {path} is deeper than {MAX_WALK_DEPTH} levels")
            subdirs = []
            for info in self.ls(directory):
                visit(info)
                if info.is_dir:
                    subdirs.append(info.path)
            pending.extend((subdir, depth + 1) for subdir in reversed(subdirs))

    # --- Log Streaming ---

    def log_stream(self, out: IO, level: str = "default") -> None:
        """
        Copies the device log to out until the manager is closed.

        This is the one unbounded operation; it bypasses the framer and
        returns only when close() is called (for instance from a signal
        handler or another thread). Other I/O errors are raised.
        """
        stream = self._require_stream()
        self.log.debug(f"Starting log stream at level {level!r}")
        stream.send(f"log {level}\r".encode('utf-8'))
        stream.drain()
        binary = not isinstance(out, io.TextIOBase)
        while True:
            stream = self.framer.stream
            if stream is None:
                break
            try:
                data = stream.read_available()
            except FlipperIOError:
                if self.framer.stream is None:
                    break
                raise
            if data:
                out.write(data if binary else data.decode('utf-8', errors='replace'))
                out.flush()
        self.log.debug("Log stream ended, connection closed")

    # --- File Transfer ---

    def download(self, remote_path: str, local_dir: str,
                 progress: Optional[Callable[[int, int], None]] = None) -> 'DownloadTransport':
        """
        Factory method to create a DownloadTransport copying remote_path
        (file or directory) into local_dir.
        """
        self._require_stream()
        from ..transport.download import DownloadTransport
        return DownloadTransport(self, remote_path=remote_path, local_dir=local_dir,
                                 progress=progress)

    def upload(self, local_path: str, remote_path: str,
               progress: Optional[Callable[[int, int], None]] = None) -> 'UploadTransport':
        """
        Factory method to create an UploadTransport copying local_path
        (file or directory) to remote_path.
        """
        self._require_stream()
        from ..transport.upload import UploadTransport
        return UploadTransport(self, local_path=local_path, remote_path=remote_path,
                               progress=progress)

    @staticmethod
    def is_storage_root(path: str) -> bool:
        return path.rstrip("/") in STORAGE_ROOTS

    @staticmethod
    def parent(path: str) -> str:
        return posixpath.dirname(path.rstrip("/"))
