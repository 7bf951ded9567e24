from typing import Optional


class FtpLiteError(Exception):
    """
    Base class for everything the FTP engine raises.

    Catch this if you just want to know that "something FTP-related went
    wrong" without caring whether it was the server, the network, or a
    misbehaving caller.
    """


class MalformedReply(FtpLiteError):
    """The server sent a line we can't make sense of as an FTP reply.

    Only the command that was waiting for the reply fails. The control
    channel itself stays usable for the next command.
    """

    def __init__(self, line: str, reason: str = "not a valid reply line") -> None:
        self.line = line
        super().__init__(f"Malformed reply ({reason}): {line!r}")


class ProtocolViolation(FtpLiteError):
    """Someone tried to pipeline commands on a single control channel.

    FTP replies carry no request identifier, so a second command while one
    is still outstanding would make the replies impossible to match up.
    This is a programming error on the caller's side, not a server problem.
    """


class CommandTimeout(FtpLiteError):
    """No terminal reply arrived before the command's deadline."""

    def __init__(self, command: str, timeout: Optional[float] = None) -> None:
        self.command = command
        self.timeout = timeout
        suffix = f" after {timeout:g}s" if timeout is not None else ""
        super().__init__(f"Command timeout: {command}{suffix}")


class FTPError(FtpLiteError):
    """The server answered with a failure reply (code 400 or above).

    Attributes:
        code: Three digit reply code exactly as the server sent it
        message: Reply text after the code
        path: Remote path the failed operation was about, when known
    """

    def __init__(self, code: int, message: str, path: Optional[str] = None) -> None:
        self.code = code
        self.message = message
        self.path = path
        text = f"FTP Error {code}: {message}"
        if path is not None:
            text += f" (path: {path})"
        super().__init__(text)

    @property
    def transient(self) -> bool:
        """4xx replies mean "try again later", 5xx mean "don't bother"."""
        return 400 <= self.code < 500


class DataChannelError(FtpLiteError):
    """Reading from or writing to the data connection failed."""


class MalformedPassiveReply(FtpLiteError):
    """The PASV reply didn't contain a usable (h1,h2,h3,h4,p1,p2) address."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Failed to parse PASV response: {message!r}")


class ConnectionClosed(FtpLiteError):
    """The control connection went away while we still needed it."""
