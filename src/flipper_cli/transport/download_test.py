import os
import shutil
import tempfile
import unittest
import logging

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

from ..exceptions import FlipperPathError, FlipperProtocolError, FlipperTransferError
from ..streams.dummy import DummyStream
from ..device.manager import DeviceManager


def reply(command: str, body: str = "") -> str:
    if body:
        return f"{command}\r\n{body}\r\n\r\n>: "
    return f"{command}\r\n\r\n>: "


def header(remote_file: str, chunk_size: int, size: int) -> str:
    return f"storage read_chunks {remote_file} {chunk_size}\r\nSize: {size}\r\n\r\nReady?\r\n"


class TestDownloadTransport(unittest.TestCase):

    def setUp(self):
        self.tmp_dir = tempfile.mkdtemp()
        self.dummy_stream = DummyStream(address="test_dummy")
        self.dm = DeviceManager(self.dummy_stream, address="test_dummy", read_banner=False)

    def tearDown(self):
        self.dm.close()
        shutil.rmtree(self.tmp_dir)

    def read_local(self, *parts: str) -> bytes:
        with open(os.path.join(self.tmp_dir, *parts), 'rb') as f:
            return f.read()

    def test_file_in_chunks(self):
        self.dm.chunk_size = 4
        self.dummy_stream.program_response(
            reply("storage stat /ext/f.bin", "File, size: 10b"),
            header("/ext/f.bin", 4, 10),
            "0123\r\nReady?\r\n",
            "4567\r\nReady?\r\n",
            "89\r\n\r\n>: ")
        progress = []

        written = self.dm.download("/ext/f.bin", self.tmp_dir,
                                   progress=lambda done, total: progress.append(done)).execute()

        self.assertEqual(written, [os.path.join(self.tmp_dir, "f.bin")])
        self.assertEqual(self.read_local("f.bin"), b"0123456789")
        self.assertEqual(self.dummy_stream.get_sent_data(decode=False), [
            b"storage stat /ext/f.bin\r",
            b"storage read_chunks /ext/f.bin 4\r",
            b"y", b"y", b"y",
        ])
        self.assertEqual(progress, [0, 4, 8, 10])

    def test_payload_that_looks_like_a_prompt(self):
        """Payload bytes are counted, never scanned for the prompt."""
        data = b"\r\n>: \r\nReady?\r\n"
        self.dummy_stream.program_response(
            reply("storage stat /ext/p", f"File, size: {len(data)}b"),
            header("/ext/p", 8192, len(data)),
            data + b"\r\n\r\n>: ")

        self.dm.download("/ext/p", self.tmp_dir).execute()

        self.assertEqual(self.read_local("p"), data)

    def test_prompt_bytes_at_read_boundary(self):
        """A read that ends right after prompt-like file bytes does not cut the file short."""
        self.dummy_stream.program_response(
            reply("storage stat /ext/t.log", "File, size: 12b"),
            header("/ext/t.log", 8192, 12),
            b"log\r\n>: ", b"tail\r\n\r\n>: ")

        self.dm.download("/ext/t.log", self.tmp_dir).execute()

        self.assertEqual(self.read_local("t.log"), b"log\r\n>: tail")

    def test_empty_file(self):
        self.dummy_stream.program_response(
            reply("storage stat /ext/e", "File, size: 0b"),
            reply("storage read_chunks /ext/e 8192", "Size: 0"))

        self.dm.download("/ext/e", self.tmp_dir).execute()

        self.assertEqual(self.read_local("e"), b"")
        self.assertNotIn(b"y", self.dummy_stream.get_sent_data(decode=False))

    def test_directory_tree(self):
        self.dummy_stream.program_response(
            reply("storage stat /ext/d", "Directory"),
            reply("storage list /ext/d", "[D] sub\r\n[F] a.txt 2b"),
            reply("storage list /ext/d/sub", "[F] b.txt 3b"),
            header("/ext/d/a.txt", 8192, 2), "hi\r\n\r\n>: ",
            header("/ext/d/sub/b.txt", 8192, 3), "abc\r\n\r\n>: ")

        written = self.dm.download("/ext/d/", self.tmp_dir).execute()

        self.assertEqual(written, [os.path.join(self.tmp_dir, "a.txt"),
                                   os.path.join(self.tmp_dir, "sub", "b.txt")])
        self.assertEqual(self.read_local("a.txt"), b"hi")
        self.assertEqual(self.read_local("sub", "b.txt"), b"abc")

    def test_existing_local_file(self):
        with open(os.path.join(self.tmp_dir, "f.bin"), 'wb') as f:
            f.write(b"keep me")
        self.dummy_stream.program_response(reply("storage stat /ext/f.bin", "File, size: 3b"))

        with self.assertRaises(FlipperTransferError):
            self.dm.download("/ext/f.bin", self.tmp_dir).execute()

        self.assertEqual(self.read_local("f.bin"), b"keep me")
        self.assertEqual(self.dummy_stream.get_sent_data(), ["storage stat /ext/f.bin\r"])

    def test_size_header_mismatch(self):
        self.dummy_stream.program_response(
            reply("storage stat /ext/f.bin", "File, size: 10b"),
            header("/ext/f.bin", 8192, 12))

        with self.assertRaises(FlipperTransferError):
            self.dm.download("/ext/f.bin", self.tmp_dir).execute()

        self.assertFalse(os.path.exists(os.path.join(self.tmp_dir, "f.bin")),
                         "Partial download should be removed")

    def test_transfer_ends_early(self):
        self.dm.chunk_size = 4
        self.dummy_stream.program_response(
            reply("storage stat /ext/f.bin", "File, size: 10b"),
            header("/ext/f.bin", 4, 10),
            "0123\r\nReady?\r\n",
            "\r\n>: ")

        with self.assertRaises(FlipperTransferError):
            self.dm.download("/ext/f.bin", self.tmp_dir).execute()

        self.assertFalse(os.path.exists(os.path.join(self.tmp_dir, "f.bin")))

    def test_missing_remote_file(self):
        self.dummy_stream.program_response(
            reply("storage stat /ext/none", "Storage error: file/dir not exist"))

        with self.assertRaises(FlipperProtocolError):
            self.dm.download("/ext/none", self.tmp_dir).execute()
        self.assertEqual(os.listdir(self.tmp_dir), [])

    def test_remote_path_needs_storage_root(self):
        with self.assertRaises(FlipperPathError):
            self.dm.download("f.bin", self.tmp_dir).execute()
        self.assertEqual(self.dummy_stream.sent_data, [])

if __name__ == '__main__':
    unittest.main()
