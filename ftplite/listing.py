import datetime
import re
from dataclasses import dataclass
from typing import List, Optional

from .errors import MalformedReply

# drwxr-xr-x  2 owner group  4096 Jan 01 12:00 name
UNIX = re.compile(
    r"^(?P<permissions>[bcdlps-][rwxsStTl-]{9})[+@.]?\s+"
    r"(?P<links>\d+)\s+"
    r"(?P<owner>\S+)\s+"
    r"(?:(?P<group>\S+)\s+)?"
    r"(?P<size>\d+)\s+"
    r"(?P<timestamp>[A-Za-z]{3}\s+\d{1,2}\s+(?:\d{1,2}:\d{2}|\d{4}))\s"
    r"(?P<name>.+)$"
)

# 01-31-24  09:15PM       <DIR>          name
DOS = re.compile(
    r"^(?P<timestamp>\d{2}-\d{2}-\d{2,4}\s+\d{1,2}:\d{2}(?:AM|PM)?)\s+"
    r"(?:(?P<dir><DIR>)|(?P<size>\d+))\s+"
    r"(?P<name>.+)$",
    re.IGNORECASE,
)

# YYYYMMDDhhmmss, optionally followed by .sss
MDTM = re.compile(r"(\d{14})(?:\.\d+)?")

KINDS = {"d": "dir", "l": "link", "-": "file"}


@dataclass(frozen=True)
class Entry:
    """
    One line of a directory listing, parsed as far as the format allows.

    Listings aren't standardized, so everything except ``name`` and
    ``kind`` is optional. Lines we can't parse still produce an entry with
    just a name and kind ``unknown``.
    """

    name: str
    kind: str = "unknown"  # file, dir, link or unknown
    permissions: Optional[str] = None
    links: Optional[int] = None
    owner: Optional[str] = None
    group: Optional[str] = None
    size: Optional[int] = None
    timestamp: Optional[str] = None
    target: Optional[str] = None  # where a symlink points
    raw: str = ""

    @property
    def directory(self) -> bool:
        return self.kind == "dir"

    @property
    def file(self) -> bool:
        return self.kind == "file"


def entry(line: str) -> Optional[Entry]:
    """Parse a single listing line; None for lines that carry no entry."""
    line = line.rstrip("\r\n")
    if not line.strip() or re.match(r"^total\s+\d+", line):
        return None

    match = UNIX.match(line)
    if match:
        permissions = match.group("permissions")
        name = match.group("name")
        kind = KINDS.get(permissions[0], "unknown")
        target = None
        if kind == "link" and " -> " in name:
            name, target = name.split(" -> ", 1)
        return Entry(
            name=name,
            kind=kind,
            permissions=permissions,
            links=int(match.group("links")),
            owner=match.group("owner"),
            group=match.group("group"),
            size=int(match.group("size")),
            timestamp=re.sub(r"\s+", " ", match.group("timestamp")),
            target=target,
            raw=line,
        )

    match = DOS.match(line)
    if match:
        directory = match.group("dir") is not None
        return Entry(
            name=match.group("name"),
            kind="dir" if directory else "file",
            size=None if directory else int(match.group("size")),
            timestamp=re.sub(r"\s+", " ", match.group("timestamp")),
            raw=line,
        )

    # Best effort: the name is usually the last thing on the line
    return Entry(name=line.split()[-1], raw=line)


def parse(text: str) -> List[Entry]:
    """Turn raw LIST output into entries, skipping totals and blank lines."""
    entries = []
    for line in text.splitlines():
        parsed = entry(line)
        if parsed is not None:
            entries.append(parsed)
    return entries


def modified(message: str) -> datetime.datetime:
    """Parse the timestamp out of an MDTM reply message.

    Args:
        message: Reply text such as ``"20240131211500"``

    Returns:
        datetime: Timezone-aware UTC timestamp

    Raises:
        MalformedReply: If the message has no 14-digit timestamp
    """
    match = MDTM.search(message)
    if not match:
        raise MalformedReply(message, "no YYYYMMDDhhmmss timestamp")

    try:
        stamp = datetime.datetime.strptime(match.group(1), "%Y%m%d%H%M%S")
    except ValueError:
        raise MalformedReply(message, "timestamp out of range") from None

    return stamp.replace(tzinfo=datetime.timezone.utc)
