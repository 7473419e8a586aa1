"""
Response Shapes

Data model and the closed set of parsers for the text replies of the
device shell. Each parser takes trimmed reply text (see ResponseFramer.trim)
and either returns a typed value or raises FlipperProtocolError.
"""

import posixpath
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, List, Optional

from flipper_cli.exceptions import FlipperPathError, FlipperProtocolError

STORAGE_ROOTS = ("/int", "/ext")

STAT_DIRECTORY = "Directory"
STAT_FILE = "File, size: "
LIST_DIRECTORY = "[D]"
LIST_FILE = "[F]"
READ_HEADER = "Size:"
TIMESTAMP_PREFIX = "Timestamp"
UPTIME_PREFIX = "Uptime:"

_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {
    "h": "hours",
    "m": "minutes",
    "s": "seconds",
    "ms": "milliseconds",
}


class InfoCategory(Enum):
    """Block of key/value pairs returned by the info command."""
    DEVICE = "device"
    POWER = "power"
    POWER_DEBUG = "power_debug"


class FileKind(Enum):
    DIRECTORY = "directory"
    PLAIN = "plain"


@dataclass
class FileInfo:
    """A directory or plain file on device storage."""
    path: str
    kind: FileKind
    size: int = 0

    @property
    def is_dir(self) -> bool:
        return self.kind is FileKind.DIRECTORY

    @property
    def is_plain(self) -> bool:
        return self.kind is FileKind.PLAIN

    @property
    def name(self) -> str:
        return posixpath.basename(self.path)


def check_path(path: str) -> None:
    """Raises FlipperPathError unless path starts with a storage root."""
    if not path.startswith(STORAGE_ROOTS):
        raise FlipperPathError(f"path needs to have the prefix /int or /ext: {path!r}")


def parse_size(token: str) -> int:
    """Parses a size token of the form '<N>b'."""
    token = token.strip()
    if token.endswith("b"):
        token = token[:-1]
    try:
        return int(token)
    except ValueError as e:
        raise FlipperProtocolError(f"malformed size: {token!r}") from e


def parse_info(text: str) -> Dict[str, str]:
    """
    Splits 'key: value' lines on the first colon. Line order is kept;
    lines without a colon are skipped.
    """
    details: Dict[str, str] = {}
    for line in text.splitlines():
        if ":" not in line:
            continue
        key, value = line.split(":", 1)
        details[key.strip()] = value.strip()
    return details


def parse_stat(path: str, text: str) -> FileInfo:
    """
    Classifies a stat reply.

    'Directory' yields a directory, 'File, size: <N>b' a plain file. Any
    other reply is reported as FlipperProtocolError carrying the raw text.
    """
    if text.startswith(STAT_DIRECTORY):
        return FileInfo(path=path, kind=FileKind.DIRECTORY)
    if text.startswith(STAT_FILE):
        return FileInfo(path=path, kind=FileKind.PLAIN, size=parse_size(text[len(STAT_FILE):]))
    raise FlipperProtocolError(f"unknown file info: {text}")


def parse_list_line(directory: str, line: str) -> Optional[FileInfo]:
    """Parses one listing line, None for lines that are not entries."""
    line = line.strip()
    if line.startswith(LIST_DIRECTORY):
        name = line[len(LIST_DIRECTORY):].strip()
        return FileInfo(path=posixpath.join(directory, name), kind=FileKind.DIRECTORY)
    if line.startswith(LIST_FILE):
        parts = line[len(LIST_FILE):].strip().rsplit(" ", 1)
        if len(parts) != 2:
            raise FlipperProtocolError(f"malformed listing entry: {line!r}")
        name, size = parts
        return FileInfo(path=posixpath.join(directory, name.strip()), kind=FileKind.PLAIN,
                        size=parse_size(size))
    return None


def parse_list(directory: str, text: str) -> List[FileInfo]:
    """Parses a listing: all directories first, then all files, each in listing order."""
    dirs: List[FileInfo] = []
    plain: List[FileInfo] = []
    for line in text.splitlines():
        info = parse_list_line(directory, line)
        if info is None:
            continue
        (dirs if info.is_dir else plain).append(info)
    return dirs + plain


def parse_read_header(text: str) -> int:
    """Parses the 'Size: <N>' first line of a read_chunks reply."""
    lines = text.splitlines()
    if not lines or not lines[0].startswith(READ_HEADER):
        raise FlipperProtocolError(f"malformed response: {text!r}")
    try:
        return int(lines[0][len(READ_HEADER):].strip())
    except ValueError as e:
        raise FlipperProtocolError(f"malformed response: {text!r}") from e


def parse_timestamp(text: str) -> datetime:
    """Parses 'Timestamp <epoch>' into a UTC datetime."""
    value = text.strip()
    if value.startswith(TIMESTAMP_PREFIX):
        value = value[len(TIMESTAMP_PREFIX):].strip()
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (ValueError, OverflowError, OSError) as e:
        raise FlipperProtocolError(f"malformed timestamp: {text!r}") from e


def parse_uptime(text: str) -> timedelta:
    """Parses 'Uptime: 1h2m3s' style durations."""
    value = text.strip()
    if value.startswith(UPTIME_PREFIX):
        value = value[len(UPTIME_PREFIX):].strip()
    matches = list(_DURATION_RE.finditer(value))
    if not matches or "".join(m.group(0) for m in matches) != value.replace(" ", ""):
        raise FlipperProtocolError(f"malformed uptime: {text!r}")
    duration = timedelta()
    for match in matches:
        duration += timedelta(**{_DURATION_UNITS[match.group(2)]: float(match.group(1))})
    return duration
