import os
import posixpath
import logging
import typing
from typing import Optional

from flipper_cli.exceptions import FlipperFileSystemError, FlipperProtocolError
from flipper_cli.device.framer import PROMPT_SENTINEL, WRITE_READY_SENTINEL
from flipper_cli.device.responses import check_path
from .utils import ProgressCallback, report_progress, transfer_timer

if typing.TYPE_CHECKING:
    from ..device.manager import DeviceManager

class UploadTransport:
    """
    Handles the upload of a local file or directory tree to the device.

    Each chunk is one write_chunk exchange:

        host:   storage write_chunk <path> <len>\\r
        device: Ready\\r\\n
        host:   <len raw bytes>
        device: \\r\\n>:                 (or error text, then the prompt)

    The firmware reads exactly <len> bytes before it answers, so an empty,
    error-free reply means all of them were accepted. The firmware opens the
    file in append mode; the destination is removed before the first chunk.
    """
    def __init__(self, manager: 'DeviceManager', local_path: str, remote_path: str,
                 progress: Optional[ProgressCallback] = None):
        """
        Initializes the UploadTransport.

        Args:
            manager: A connected DeviceManager.
            local_path: Local file or directory to upload.
            remote_path: Destination path on the device (/int or /ext).
            progress: Optional callback receiving (bytes sent, total bytes) per file.
        """
        self.log = logging.getLogger("UploadTransport")
        self.manager = manager
        self.local_path = local_path
        self.remote_path = remote_path.rstrip("/")
        self.progress = progress
        self.files_uploaded = 0

    def execute(self) -> int:
        """
        Executes the upload.

        Returns:
            The number of files uploaded.

        Raises:
            FlipperPathError: remote_path lacks a storage root prefix.
            FlipperFileSystemError: The local source could not be read.
            FlipperProtocolError, FlipperIOError: The device rejected a command
                or the link failed; the upload stops at the first failure.
        """
        check_path(self.remote_path)
        if os.path.isdir(self.local_path):
            self._upload_tree()
        elif os.path.isfile(self.local_path):
            self.upload_file(self.local_path, self.remote_path)
        else:
            raise FlipperFileSystemError(f"Local file '{self.local_path}' does not exist.")
        return self.files_uploaded

    def _upload_tree(self) -> None:
        """Uploads every file below local_path, keeping relative paths."""
        self.log.info(f"Uploading directory {self.local_path} to {self.remote_path}")

        def raise_walk_error(error: OSError) -> None:
            raise FlipperFileSystemError(str(error)) from error

        for root, dirs, files in os.walk(self.local_path, onerror=raise_walk_error):
            dirs.sort()
            rel_dir = os.path.relpath(root, self.local_path)
            remote_dir = self.remote_path
            if rel_dir != os.curdir:
                remote_dir = posixpath.join(self.remote_path, *rel_dir.split(os.sep))
            for name in sorted(files):
                self.upload_file(os.path.join(root, name), posixpath.join(remote_dir, name))

    def upload_file(self, local_file: str, remote_file: str) -> None:
        """Replaces remote_file with the contents of local_file."""
        try:
            file_size = os.path.getsize(local_file)
        except OSError as e:
            raise FlipperFileSystemError(f"Cannot read {local_file}: {e}") from e

        self._prepare_destination(remote_file)
        self.log.info(f"Uploading {os.path.basename(local_file)} ({file_size} bytes) to {remote_file}")

        with transfer_timer(self.log, f"Upload of {remote_file}", file_size):
            try:
                source = open(local_file, 'rb')
            except OSError as e:
                raise FlipperFileSystemError(f"Cannot open {local_file}: {e}") from e
            with source:
                self._send_chunks(source, remote_file, file_size)
        self.files_uploaded += 1

    def _prepare_destination(self, remote_file: str) -> None:
        """Removes an existing destination and creates missing parent directories."""
        try:
            self.manager.stat(remote_file)
        except FlipperProtocolError:
            self.log.debug(f"{remote_file} does not exist yet")
        else:
            self.log.info(f"Remote file {remote_file} exists and will be overwritten.")
            self.manager.rm(remote_file)

        parent = self.manager.parent(remote_file)
        if not self.manager.is_storage_root(parent):
            self.manager.mkdir_all(parent)

    def _send_chunks(self, source: typing.BinaryIO, remote_file: str, file_size: int) -> None:
        sent = 0
        report_progress(self.progress, sent, file_size)
        while True:
            try:
                chunk = source.read(self.manager.chunk_size)
            except OSError as e:
                raise FlipperFileSystemError(f"Error reading local file: {e}") from e
            # An empty file still gets one zero-length chunk so it is created
            if not chunk and sent > 0:
                break
            self.write_chunk(remote_file, chunk)
            sent += len(chunk)
            report_progress(self.progress, sent, file_size)
            if not chunk:
                break

    def write_chunk(self, remote_file: str, chunk: bytes) -> None:
        """Runs one write_chunk exchange for chunk."""
        framer = self.manager.framer
        command = f"storage write_chunk {remote_file} {len(chunk)}"
        self.log.debug(f"Sending: {command!r}")
        framer.send_raw((command + "\r").encode('utf-8'))
        raw = framer.read_frame((WRITE_READY_SENTINEL, PROMPT_SENTINEL))
        if not raw.endswith(WRITE_READY_SENTINEL):
            reply = framer.trim(raw.decode('utf-8', errors='replace'), command)
            framer.check_errors(reply)
            raise FlipperProtocolError(f"malformed response to write_chunk: {reply!r}")

        framer.send_raw(chunk)
        raw = framer.read_frame()
        ack = framer.trim(raw.decode('utf-8', errors='replace'), "")
        framer.check_errors(ack)
        if ack:
            raise FlipperProtocolError(f"unexpected write acknowledgement: {ack!r}")
