from dataclasses import dataclass, field
from typing import List, NamedTuple, Optional, Tuple, Union

from .errors import MalformedReply

# Protocol line terminator for the control channel
CRLF = "\r\n"
TERMINATOR = CRLF.encode("ascii")

# What a PASS argument is replaced with before anyone gets to see it
MASK = "PASS ********"


def mask(command: str) -> str:
    """Hide the password in a PASS command so it never reaches logs or hooks.

    Args:
        command: Raw command line as it will be written to the socket

    Returns:
        The same command, or ``PASS ********`` for password commands
    """
    return MASK if command[:5].upper() == "PASS " else command


class Framer:
    """
    Turns the raw control-channel byte stream into complete reply lines.

    TCP hands us data in whatever chunk sizes it likes, so a reply line can
    be split anywhere - right between the CR and the LF, or in the middle of
    a multibyte character. The framer keeps raw bytes after the last
    terminator as carry-over and only decodes lines once they're complete.
    """

    def __init__(self, encoding: str = "utf-8", limit: int = 8192) -> None:
        self.encoding = encoding
        self.limit = limit  # bytes per line, terminator excluded
        self.buffer = b""
        self.skipping = False  # dropping the rest of an overlong line

    def feed(self, chunk: Union[bytes, str]) -> List[str]:
        """Add a chunk and get back every line it completed.

        An overlong line is reported on its own: lines completed before it
        are returned first and the next call (``feed(b"")`` will do) raises
        for it. Keep calling ``feed(b"")`` until it returns nothing to get
        everything that is already buffered.

        Args:
            chunk: Bytes straight off the socket (or text to encode)

        Returns:
            Complete lines without their terminator, in arrival order.
            Empty when nothing complete is buffered.

        Raises:
            MalformedReply: If a line is longer than the limit
        """
        if isinstance(chunk, str):
            chunk = chunk.encode(self.encoding)
        self.buffer += chunk

        if self.skipping:
            end = self.buffer.find(TERMINATOR)
            if end < 0:
                self.buffer = self.tail()
                return []
            self.buffer = self.buffer[end + len(TERMINATOR):]
            self.skipping = False

        lines: List[str] = []
        while True:
            end = self.buffer.find(TERMINATOR)
            if end < 0:
                break

            raw = self.buffer[:end]
            if len(raw) > self.limit:
                if lines:
                    break
                self.buffer = self.buffer[end + len(TERMINATOR):]
                raise self.overflow(raw)

            self.buffer = self.buffer[end + len(TERMINATOR):]
            if raw:
                lines.append(raw.decode(self.encoding, errors="replace"))

        if not lines and len(self.buffer) > self.limit:
            overflow = self.buffer
            self.buffer = self.tail()
            self.skipping = True
            raise self.overflow(overflow)

        return lines

    def tail(self) -> bytes:
        # A lone CR may be the first half of the terminator we're looking for
        return b"\r" if self.buffer.endswith(b"\r") else b""

    def overflow(self, raw: bytes) -> MalformedReply:
        text = raw[:80].decode(self.encoding, errors="replace")
        return MalformedReply(text, f"line exceeds {self.limit} bytes")

    def reset(self) -> None:
        """Forget any partial line (used when the connection is torn down)."""
        self.buffer = b""
        self.skipping = False


class Line(NamedTuple):
    """One classified reply line."""

    code: int
    terminal: bool  # space separator: last line of its reply
    message: str
    raw: str


def classify(line: str) -> Line:
    """Split a reply line into code, separator kind and message.

    ``"226 Transfer complete"`` is terminal, ``"211-Features:"`` opens or
    continues a multi-line reply. A bare ``"200"`` is treated as terminal
    with an empty message.

    Raises:
        MalformedReply: If the code isn't three digits or the separator is odd
    """
    head = line[:3]
    if len(head) < 3 or not head.isdigit():
        raise MalformedReply(line, "status code is not numeric")

    if len(line) == 3:
        return Line(int(head), True, "", line)

    separator = line[3]
    if separator not in (" ", "-"):
        raise MalformedReply(line, f"unexpected separator {separator!r}")

    return Line(int(head), separator == " ", line[4:], line)


@dataclass(frozen=True)
class Reply:
    """
    A complete server reply: the terminal line's code and message.

    For multi-line replies ``lines`` keeps every raw line in order, but the
    code and message always come from the terminal line since that's the
    one that carries the authoritative status.
    """

    code: int
    message: str
    lines: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def preliminary(self) -> bool:
        return 100 <= self.code < 200

    @property
    def success(self) -> bool:
        return 200 <= self.code < 300

    @property
    def intermediate(self) -> bool:
        return 300 <= self.code < 400

    @property
    def failure(self) -> bool:
        return self.code >= 400

    @property
    def description(self) -> str:
        """Standard meaning of the code, or an empty string for unusual ones."""
        from . import codes

        return codes.get(self.code, "")

    def __str__(self) -> str:
        return f"{self.code} {self.message}"


class Assembler:
    """
    Collects the lines of a multi-line reply until its terminal line shows up.

    Lines that belong to an open reply are accumulated and otherwise
    ignored. RFC 959 allows the middle lines to be free text that doesn't
    even start with the code, so those are only classified when no reply is
    open.
    """

    def __init__(self) -> None:
        self.code: Optional[int] = None
        self.lines: List[str] = []

    @property
    def open(self) -> bool:
        return self.code is not None

    def push(self, line: str) -> Optional[Reply]:
        """Feed one line; returns the finished Reply or None if more is coming."""
        if self.code is not None:
            self.lines.append(line)
            if line[:4] != f"{self.code} ":
                return None
            reply = Reply(self.code, line[4:], tuple(self.lines))
            self.reset()
            return reply

        parsed = classify(line)
        if parsed.terminal:
            return Reply(parsed.code, parsed.message, (line,))

        self.code = parsed.code
        self.lines = [line]
        return None

    def reset(self) -> None:
        self.code = None
        self.lines = []
