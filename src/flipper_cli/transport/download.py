import os
import posixpath
import logging
import typing
from typing import List, Optional

from flipper_cli.exceptions import FlipperFileSystemError, FlipperTransferError
from flipper_cli.device.framer import CLI_EOL, PROMPT_SENTINEL, READY_SENTINEL
from flipper_cli.device.responses import FileInfo, check_path, parse_read_header
from .utils import ProgressCallback, report_progress, transfer_timer

if typing.TYPE_CHECKING:
    from ..device.manager import DeviceManager

# Single confirmation byte; a trailing CR would be taken as the next confirmation
CONFIRM_CHUNK = b"y"
# What follows the final chunk: the command's closing EOL, then the prompt
LAST_CHUNK_TAIL = CLI_EOL.encode('utf-8') + PROMPT_SENTINEL

class DownloadTransport:
    """
    Handles the download of a file or directory tree from the device.

    A file is read with one read_chunks exchange:

        host:   storage read_chunks <path> <chunk size>\\r
        device: Size: <N>\\r\\n\\r\\nReady?\\r\\n
        host:   y
        device: <chunk bytes>\\r\\nReady?\\r\\n     (repeated until N bytes sent)
        device: <last chunk bytes>\\r\\n\\r\\n>:

    The local file is complete only once exactly N bytes have been written.
    """
    def __init__(self, manager: 'DeviceManager', remote_path: str, local_dir: str,
                 progress: Optional[ProgressCallback] = None):
        """
        Initializes the DownloadTransport.

        Args:
            manager: A connected DeviceManager.
            remote_path: File or directory on the device (/int or /ext).
            local_dir: Local directory the file (or the directory's contents) lands in.
            progress: Optional callback receiving (bytes received, total bytes) per file.
        """
        self.log = logging.getLogger("DownloadTransport")
        self.manager = manager
        self.remote_path = remote_path.rstrip("/") or remote_path
        self.local_dir = local_dir
        self.progress = progress
        self.downloaded: List[str] = []

    def execute(self) -> List[str]:
        """
        Executes the download.

        Returns:
            Local paths of the files written.

        Raises:
            FlipperPathError: remote_path lacks a storage root prefix.
            FlipperTransferError: A destination exists, or a file arrived short.
            FlipperFileSystemError: A local directory or file could not be written.
            FlipperProtocolError, FlipperIOError: The device rejected a command
                or the link failed; the download stops at the first failure.
        """
        check_path(self.remote_path)
        info = self.manager.stat(self.remote_path)
        if info.is_dir:
            self._download_tree(info)
        else:
            self.download_file(info, self.local_dir)
        return self.downloaded

    def _download_tree(self, root: FileInfo) -> None:
        """Downloads every plain file below root, keeping relative paths."""
        self.log.info(f"Downloading directory {root.path} to {self.local_dir}")
        files: List[FileInfo] = []
        self.manager.walk(root.path, lambda entry: files.append(entry) if entry.is_plain else None)
        for entry in files:
            rel_dir = posixpath.relpath(posixpath.dirname(entry.path), root.path)
            local_dir = self.local_dir
            if rel_dir != posixpath.curdir:
                local_dir = os.path.join(self.local_dir, *rel_dir.split("/"))
            self.download_file(entry, local_dir)

    def download_file(self, info: FileInfo, local_dir: str) -> str:
        """Downloads one plain file into local_dir, returning the local path."""
        try:
            os.makedirs(local_dir, exist_ok=True)
        except OSError as e:
            raise FlipperFileSystemError(f"Error creating directory {local_dir}: {e}") from e

        local_path = os.path.join(local_dir, info.name)
        try:
            out = open(local_path, 'xb')
        except FileExistsError as e:
            raise FlipperTransferError(f"Local file '{local_path}' already exists.") from e
        except OSError as e:
            raise FlipperFileSystemError(f"Cannot create {local_path}: {e}") from e

        self.log.info(f"Downloading {info.path} ({info.size} bytes) to {local_path}")
        try:
            with out, transfer_timer(self.log, f"Download of {info.path}", info.size):
                self._receive_chunks(info, out)
        except BaseException:
            # Never leave a truncated file behind
            try:
                os.remove(local_path)
            except OSError:
                self.log.warning(f"Could not remove partial download {local_path}")
            raise

        self.downloaded.append(local_path)
        return local_path

    def _receive_chunks(self, info: FileInfo, out: typing.BinaryIO) -> None:
        framer = self.manager.framer
        chunk_size = self.manager.chunk_size
        header = framer.request(f"storage read_chunks {info.path} {chunk_size}",
                                terminators=(READY_SENTINEL, PROMPT_SENTINEL))
        declared = parse_read_header(header)
        if declared != info.size:
            raise FlipperTransferError(
                f"{info.path}: device announced {declared} bytes, stat reported {info.size}")

        received = 0
        report_progress(self.progress, received, info.size)
        while received < info.size:
            expected = min(chunk_size, info.size - received)
            framer.send_raw(CONFIRM_CHUNK)
            raw = framer.read_payload(expected)
            last = received + expected == info.size
            tail = raw[expected:]
            if len(raw) < expected or tail != (LAST_CHUNK_TAIL if last else READY_SENTINEL):
                self.log.debug(f"Bad chunk frame: {len(raw)} bytes, tail {tail!r}")
                raise FlipperTransferError(
                    f"{info.path}: transfer ended after {received + min(len(raw), expected)} "
                    f"of {info.size} bytes")
            try:
                out.write(raw[:expected])
            except OSError as e:
                raise FlipperFileSystemError(f"Error writing local file: {e}") from e
            received += expected
            report_progress(self.progress, received, info.size)
