"""
Response Framer

Turns "send a command line, then keep reading" into one synchronous
request/response exchange over a Stream.

The device shell has no length prefixes. A reply is delimited by the next
prompt the shell prints, so the prompt sequence is the primary frame
boundary. When no terminator shows up, the reply is considered complete once
at least one byte has arrived and a following poll window stays silent.
That fallback is a timing heuristic: a device that pauses longer than one
poll window in the middle of a reply will have the reply cut short.
"""

import logging
from typing import Optional, Sequence

from flipper_cli.exceptions import (
    FlipperConnectionError,
    FlipperIOError,
    FlipperProtocolError,
)
from flipper_cli.streams.streams import Stream

CLI_PROMPT = ">: "
CLI_EOL = "\r\n"
PROMPT_SENTINEL = (CLI_EOL + CLI_PROMPT).encode('utf-8')
# Printed by read_chunks before each chunk, waiting for a confirmation byte
READY_SENTINEL = b"\r\nReady?\r\n"
# Printed by write_chunk once it is ready to receive the payload
WRITE_READY_SENTINEL = b"Ready\r\n"

ERROR_MARKERS = ("storage error:", "usage:")
NOT_CONNECTED = "device no longer connected"


class ResponseFramer:
    """Frames replies from the device shell on top of a Stream."""

    def __init__(self, stream: Stream, verbose: bool = False):
        self.log = logging.getLogger("ResponseFramer")
        self.stream: Optional[Stream] = stream
        self.verbose = verbose

    @property
    def connected(self) -> bool:
        return self.stream is not None

    def _require_stream(self) -> Stream:
        if self.stream is None:
            raise FlipperConnectionError(NOT_CONNECTED)
        return self.stream

    def close(self) -> bool:
        """Closes the underlying stream and detaches from it. Idempotent."""
        if self.stream is None:
            return True
        stream, self.stream = self.stream, None
        return stream.close()

    # --- Exchanges ---

    def request(self, command: str,
                terminators: Sequence[bytes] = (PROMPT_SENTINEL,)) -> str:
        """
        Sends one command line and returns the framed, trimmed reply text.

        Args:
            command: Command line without the trailing carriage return.
            terminators: Byte sequences that end the reply when they appear
                at the end of the received data.

        Returns:
            The reply with echo, prompt and surrounding newlines removed.

        Raises:
            FlipperConnectionError: The framer was closed.
            FlipperIOError: Writing or reading the stream failed.
            FlipperProtocolError: The reply carries an in-band error.
        """
        stream = self._require_stream()
        self.log.debug(f"Sending: {command!r}")
        stream.send((command + "\r").encode('utf-8'))
        stream.drain()
        raw = self.read_frame(terminators)
        text = self.trim(raw.decode('utf-8', errors='replace'), command, terminators)
        self.log.debug(f"Reply to {command!r}: {text!r}")
        self.check_errors(text)
        return text

    def send_raw(self, data: bytes) -> None:
        """Writes bytes as-is (no line ending) and drains."""
        stream = self._require_stream()
        stream.send(data)
        stream.drain()

    def read_frame(self, terminators: Sequence[bytes] = (PROMPT_SENTINEL,)) -> bytes:
        """
        Reads until a terminator ends the buffer, or the line goes idle after
        at least one byte was received.
        """
        stream = self._require_stream()
        buffer = bytearray()
        started = False
        while True:
            try:
                data = stream.read_available()
            except FlipperIOError:
                if not started:
                    raise
                self.log.debug("Read error after reply started, treating as end of frame")
                break
            if data:
                started = True
                buffer += data
                if any(buffer.endswith(t) for t in terminators if t):
                    break
            elif started:
                self.log.debug("No terminator before idle poll, using idle boundary")
                break
        if self.verbose:
            self.log.debug(f"Raw frame: {bytes(buffer)!r}")
        return bytes(buffer)

    def read_payload(self, length: int,
                     terminators: Sequence[bytes] = (READY_SENTINEL, PROMPT_SENTINEL)) -> bytes:
        """
        Reads a binary reply carrying length payload bytes followed by a
        terminator. Terminators are only matched past the payload, so payload
        bytes that happen to look like a prompt do not end the frame early.

        Returns the whole raw buffer. A device that stops mid-payload is
        caught by the idle boundary, leaving the buffer shorter than length.
        """
        stream = self._require_stream()
        buffer = bytearray()
        started = False
        while True:
            try:
                data = stream.read_available()
            except FlipperIOError:
                if not started:
                    raise
                break
            if data:
                started = True
                buffer += data
                tail = buffer[length:]
                if tail and any(tail.endswith(t) for t in terminators):
                    break
            elif started:
                break
        if self.verbose:
            self.log.debug(f"Raw payload frame ({len(buffer)} of {length} bytes): {bytes(buffer)!r}")
        return bytes(buffer)

    # --- Post-processing ---

    @staticmethod
    def trim(output: str, prefix: str, terminators: Sequence[bytes] = (PROMPT_SENTINEL,)) -> str:
        """Removes echo, leading newlines, the trailing terminator and EOL."""
        if prefix and output.startswith(prefix):
            output = output[len(prefix):]
        # Terminator goes before the leading strip: an empty reply is just "\r\n>: "
        for terminator in terminators:
            text = terminator.decode('utf-8')
            if text and output.endswith(text):
                output = output[:-len(text)]
                break
        return output.lstrip("\r\n").rstrip("\r\n")

    @staticmethod
    def check_errors(output: str) -> None:
        """Raises FlipperProtocolError if the reply reports an in-band error."""
        check_str = output.lower()
        if any(marker in check_str for marker in ERROR_MARKERS):
            raise FlipperProtocolError(output)
