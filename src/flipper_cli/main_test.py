import io
import os
import shutil
import signal
import tempfile
import unittest
import logging
from contextlib import redirect_stdout
from unittest.mock import patch

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

from .exceptions import FlipperConnectionError, FlipperIOError
from .streams.dummy import DummyStream
from .device.manager import DeviceManager
from .main import main


def reply(command: str, body: str = "") -> str:
    if body:
        return f"{command}\r\n{body}\r\n\r\n>: "
    return f"{command}\r\n\r\n>: "


class TestMain(unittest.TestCase):

    def setUp(self):
        self.dummy_stream = DummyStream(address="/dev/ttyACM0")
        self.dm = DeviceManager(self.dummy_stream, address="/dev/ttyACM0", read_banner=False)
        patcher = patch('flipper_cli.main.Connection.open', return_value=self.dm)
        self.mock_open = patcher.start()
        self.addCleanup(patcher.stop)

    def run_main(self, *argv):
        out = io.StringIO()
        with redirect_stdout(out):
            code = main(list(argv))
        return code, out.getvalue()

    def test_status(self):
        self.dummy_stream.program_response(reply(
            "info device",
            "firmware.api.major: 0\r\nfirmware.api.minor: 64\r\nfirmware.version: 0.98.3\r\n"
            "hardware.name: Anen1"))

        code, out = self.run_main("status")

        self.assertEqual(code, 0)
        self.assertIn("API:     0.64", out)
        self.assertIn("Name:    Anen1", out)
        self.mock_open.assert_called_once_with("auto", verbose=False)
        self.assertIsNone(self.dm.stream, "Manager should be closed after the command")

    def test_ls(self):
        self.dummy_stream.program_response(reply("storage list /ext", "[D] apps\r\n[F] a.txt 12b"))

        code, out = self.run_main("-p", "/dev/ttyACM0", "ls", "/ext")

        self.assertEqual(code, 0)
        self.assertEqual(out.splitlines(), ["/ext/apps/", "/ext/a.txt  12b"])
        self.mock_open.assert_called_once_with("/dev/ttyACM0", verbose=False)

    def test_ls_device_error(self):
        self.dummy_stream.program_response(
            reply("storage list /ext/none", "Storage error: file/dir not exist"))

        code, _ = self.run_main("ls", "/ext/none")

        self.assertEqual(code, 1)

    def test_ls_bad_path(self):
        code, _ = self.run_main("ls", "apps")

        self.assertEqual(code, 1)
        self.assertEqual(self.dummy_stream.sent_data, [])

    def test_read(self):
        tmp_dir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, tmp_dir)
        self.dummy_stream.program_response(
            reply("storage stat /ext/a.txt", "File, size: 5b"),
            "storage read_chunks /ext/a.txt 8192\r\nSize: 5\r\n\r\nReady?\r\n",
            "hello\r\n\r\n>: ")

        code, _ = self.run_main("read", "/ext/a.txt", tmp_dir)

        self.assertEqual(code, 0)
        with open(os.path.join(tmp_dir, "a.txt"), 'rb') as f:
            self.assertEqual(f.read(), b"hello")

    def test_read_existing_destination(self):
        tmp_dir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, tmp_dir)
        with open(os.path.join(tmp_dir, "a.txt"), 'wb') as f:
            f.write(b"local")
        self.dummy_stream.program_response(reply("storage stat /ext/a.txt", "File, size: 5b"))

        code, _ = self.run_main("read", "/ext/a.txt", tmp_dir)

        self.assertEqual(code, 1)

    def test_write(self):
        tmp_dir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, tmp_dir)
        local = os.path.join(tmp_dir, "b.txt")
        with open(local, 'wb') as f:
            f.write(b"abc")
        self.dummy_stream.program_response(
            reply("storage stat /ext/b.txt", "Storage error: file/dir not exist"),
            "storage write_chunk /ext/b.txt 3\r\nReady\r\n", "\r\n>: ")

        code, _ = self.run_main("write", local, "/ext/b.txt")

        self.assertEqual(code, 0)
        self.assertIn(b"abc", self.dummy_stream.get_sent_data(decode=False))

    def test_log_interrupt_closes_manager(self):
        """Ctrl+C during log streaming closes the connection and ends the command cleanly."""
        chunks = [b"log trace\r\n", b"[I][Loader] app started\r\n"]
        original_handler = signal.getsignal(signal.SIGINT)

        def read_available(size=64):
            if chunks:
                return chunks.pop(0)
            # Deliver the interrupt through whatever handler the command installed
            signal.getsignal(signal.SIGINT)(signal.SIGINT, None)
            raise FlipperIOError("port closed")

        with patch.object(self.dummy_stream, 'read_available', side_effect=read_available):
            code, out = self.run_main("log", "trace")

        self.assertEqual(code, 0)
        self.assertIn("[I][Loader] app started", out)
        self.assertEqual(self.dummy_stream.sent_data, [b"log trace\r"])
        self.assertIsNone(self.dm.stream)
        self.assertIs(signal.getsignal(signal.SIGINT), original_handler,
                      "Previous SIGINT handler should be restored")

    def test_log_link_failure(self):
        with patch.object(self.dummy_stream, 'read_available', side_effect=FlipperIOError("unplugged")):
            code, _ = self.run_main("log")

        self.assertEqual(code, 1)

    def test_connection_failure(self):
        self.mock_open.side_effect = FlipperConnectionError("no connected flippers found")

        code, _ = self.run_main("status")

        self.assertEqual(code, 1)

    @patch('flipper_cli.main.Connection.find_devices')
    def test_scan(self, mock_find):
        mock_find.return_value = [{'port': '/dev/ttyACM0', 'serial_number': 'flip_Anen1',
                                   'description': 'Flipper Anen1'}]

        code, out = self.run_main("scan")

        self.assertEqual(code, 0)
        self.assertIn("/dev/ttyACM0 : flip_Anen1", out)
        self.mock_open.assert_not_called()

if __name__ == '__main__':
    unittest.main()
