import logging
from typing import List, Union

from flipper_cli.exceptions import FlipperIOError
from flipper_cli.streams.streams import Stream, READ_CHUNK_SIZE

# Consecutive empty polls tolerated before the dummy reports a dead link.
# Keeps a test with a missing scripted reply from spinning forever.
MAX_IDLE_POLLS = 50

class DummyStream(Stream):
    """A scripted dummy stream for testing the framer and DeviceManager."""

    def __init__(self, address: str = "dummy_addr"):
        self.log = logging.getLogger("DummyStream")
        self.address = address
        self.is_open = True
        self.sent_data: List[bytes] = []
        self.responses: List[bytes] = []
        self.idle_polls = 0
        self.discarded = 0
        self.log.debug(f"Initialized DummyStream for {address}")

    # --- Stream Protocol Methods --- #

    def close(self) -> bool:
        """Simulates closing the stream."""
        if not self.is_open:
            return True # Closing an already closed stream is fine
        self.is_open = False
        self.log.debug(f"DummyStream closed for {self.address}")
        return True

    def send(self, data: bytes) -> None:
        """Records sent data."""
        if not self.is_open:
            self.log.error("Send called on closed DummyStream")
            raise FlipperIOError("Stream is closed")
        self.log.debug(f"Send received data: {data!r}")
        self.sent_data.append(data)

    def drain(self) -> None:
        if not self.is_open:
            raise FlipperIOError("Stream is closed")

    def read_available(self, size: int = READ_CHUNK_SIZE) -> bytes:
        """
        Returns the next scripted chunk, split to at most size bytes.
        An empty scripted chunk simulates one silent poll window.
        """
        if not self.is_open:
            self.log.error("read_available called on closed DummyStream")
            raise FlipperIOError("Stream is closed")
        if not self.responses:
            self.idle_polls += 1
            if self.idle_polls > MAX_IDLE_POLLS:
                raise FlipperIOError("DummyStream starved: no scripted response")
            return b''
        self.idle_polls = 0
        chunk = self.responses.pop(0)
        if len(chunk) > size:
            self.responses.insert(0, chunk[size:])
            chunk = chunk[:size]
        return chunk

    def discard_input(self) -> None:
        self.discarded += 1
        self.responses.clear()

    # --- Test Helper Methods --- #

    def program_response(self, *chunks: Union[str, bytes]) -> None:
        """Queues reply chunks; str chunks are UTF-8 encoded."""
        for chunk in chunks:
            self.responses.append(chunk.encode('utf-8') if isinstance(chunk, str) else chunk)

    def get_sent_data(self, decode: bool = True) -> List[Union[str, bytes]]:
        """Returns a list of data chunks sent via send()."""
        if decode:
            return [d.decode('utf-8', errors='ignore') for d in self.sent_data]
        else:
            return self.sent_data

    def clear_sent_data(self):
        """Clears the history of sent data."""
        self.sent_data.clear()
