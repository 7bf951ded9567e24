import datetime
import io
import logging
import re
import warnings
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Union,
)
from urllib.parse import unquote, urlparse

from . import listing, passive, tree
from .auth import Basic, Guest
from .channel import ControlChannel
from .config import Limits, Timeout
from .errors import (
    ConnectionClosed,
    FtpLiteError,
    FTPError,
    MalformedReply,
    ProtocolViolation,
)
from .listing import Entry
from .reply import Reply
from .settings import Socket
from .transfer import Kind, Source, Transfer

logger = logging.getLogger(__name__)

# Enhanced type definitions for improved type safety and clarity
HookType = Callable[..., Awaitable[Any]]
AuthType = Union[Basic, Guest]
Clock = Callable[[], float]


class FtpClient:
    """
    One FTP session: a control channel plus the transfers that run over it.

    Everything here goes through a single control connection, one command at
    a time, because that's what the protocol allows. Need parallel transfers?
    Open more sessions - ``FtpLite.client()`` hands out as many independent
    ones as you like, all sharing the same configuration.

    The engine-level operations are ``send`` (one command, one reply),
    ``negotiate`` (PASV) and ``transfer`` (a full passive-mode transfer).
    The rest of the methods are thin wrappers over those.
    """

    def __init__(
        self,
        endpoint: str,
        auth: Optional[AuthType] = None,
        timeout: Optional[Timeout] = None,
        limits: Optional[Limits] = None,
        socket: Optional[Socket] = None,
        hooks: Optional[Dict[str, HookType]] = None,
        encoding: str = "utf-8",
        clock: Optional[Clock] = None,
        log: Optional[logging.Logger] = None,
    ) -> None:
        """Set up the session. Nothing touches the network until ``connect``.

        Args:
            endpoint: Server URL like ``"ftp://myserver.com:2121"``. Credentials in
                      the URL are used when ``auth`` isn't given.
            auth: Basic credentials, or Guest (the default) for anonymous login
            timeout: Connect, command, completion and data deadlines
            limits: Data chunk size and reply line limit
            socket: TCP tuning for control and data connections
            hooks: Async callbacks: ``connect``, ``command``, ``reply``,
                   ``upload``, ``download``
            encoding: Text encoding for commands, replies and listings
            clock: Monotonic time source used for every deadline
            log: Logger to use instead of the package loggers
        """
        url = urlparse(endpoint)
        self.endpoint = endpoint
        self.host = url.hostname
        self.port = url.port or 21

        if auth is None and url.username:
            auth = Basic(unquote(url.username), unquote(url.password or ""))

        # Store config for client behavior
        self.auth: AuthType = auth or Guest()
        self.timeout = timeout or Timeout()
        self.limits = limits or Limits()
        self.socket = socket or Socket()
        self.hooks = hooks or {}
        self.encoding = encoding
        self.clock = clock
        self.log = log or logger

        # Connection state management
        self.channel: Optional[ControlChannel] = None
        self.active: Optional[Transfer] = None  # Transfer currently holding the channel

    async def __aenter__(self) -> "FtpClient":
        """Connect and log in when used in an ``async with`` block.

        Returns:
            FtpClient: This same instance, ready to transfer files

        Raises:
            ConnectionError: If we can't reach the server
            FTPError: If the server rejects the login
        """
        await self.connect()
        return self

    async def __aexit__(self, type, value, trace) -> None:
        """Say goodbye to the server and close the connection."""
        await self.close()

    async def connect(self) -> "FtpClient":
        """Open the control channel, read the banner and log in.

        Returns:
            FtpClient: This same instance

        Raises:
            ConnectionError: If the TCP connection fails or times out
            FTPError: If the server refuses us or the credentials
        """
        if self.channel is not None and not self.channel.closed:
            return self

        if not self.host:
            raise ValueError(f"No host in endpoint {self.endpoint!r}")

        self.log.debug("Connecting to %s:%s", self.host, self.port)
        self.channel = await ControlChannel.open(
            self.host,
            self.port,
            timeout=self.timeout,
            limits=self.limits,
            socket=self.socket,
            hooks=self.hooks,
            encoding=self.encoding,
            clock=self.clock,
            log=self.log,
        )

        try:
            await self.login()
        except BaseException:
            await self.channel.close()
            raise

        # Run connect hook for custom initialization
        if "connect" in self.hooks:
            try:
                await self.hooks["connect"](self)
            except Exception as error:
                warnings.warn(f"Connect hook failed: {error}")

        return self

    async def login(self) -> Reply:
        """Authenticate with USER, then PASS if the server asks for it (331).

        Returns:
            Reply: The reply that completed the login (normally 230)
        """
        channel = self.require()
        user, password = self.auth.credentials()

        self.log.debug("Authenticating as %s", user)
        reply = await self.send(f"USER {user}")
        if reply.intermediate:
            reply = await self.send(f"PASS {password}")

        if not reply.success:
            raise FTPError(reply.code, f"Login incomplete: {reply.message}")

        channel.authenticated = True
        self.log.debug("Authentication successful")
        return reply

    def require(self) -> ControlChannel:
        """Return the live control channel or explain why there isn't one."""
        if self.channel is None:
            raise RuntimeError("Client not initialized. Use within 'async with' block.")
        if self.channel.closed:
            raise ConnectionClosed("Not connected to FTP server")
        return self.channel

    async def send(self, command: str, preliminary: bool = False) -> Reply:
        """Send one raw command and wait for the reply that settles it.

        Args:
            command: Command line without terminator, e.g. ``"NOOP"``
            preliminary: Keep waiting past 1xx replies

        Returns:
            Reply: Any reply below 400

        Raises:
            FTPError: Server replied 400 or above
            CommandTimeout: No reply before ``Timeout.command``
            ProtocolViolation: Another command or a transfer is in progress
        """
        channel = self.require()
        if self.active is not None:
            raise ProtocolViolation(
                f"Cannot send commands while a transfer is in progress "
                f"({self.active.state.value})"
            )
        return await channel.send(command, preliminary)

    async def negotiate(self) -> passive.Endpoint:
        """Enter passive mode and return the server's data endpoint."""
        channel = self.require()
        if self.active is not None:
            raise ProtocolViolation("Cannot enter passive mode during a transfer")
        return await passive.negotiate(channel)

    async def transfer(
        self,
        kind: Union[Kind, str],
        argument: str = "",
        stream: Optional[Source] = None,
    ) -> int:
        """Run one passive-mode transfer (``store``, ``retrieve`` or ``list``).

        Args:
            kind: Which transfer to run
            argument: Remote path for the command
            stream: Source for uploads, sink (``write``) for the others

        Returns:
            int: Number of bytes that went over the data channel

        Raises:
            ProtocolViolation: If another transfer or command is in progress
            FTPError, DataChannelError, CommandTimeout: See ``Transfer.run``
        """
        channel = self.require()
        if self.active is not None or channel.pending is not None:
            raise ProtocolViolation("Only one transfer per session at a time")

        self.active = Transfer(channel, self.timeout, self.limits, self.socket)
        try:
            return await self.active.run(kind, argument, stream)
        finally:
            self.active = None

    async def command(self, text: str, path: Optional[str] = None) -> Reply:
        """Like ``send``, but failures mention the remote path they were about."""
        try:
            return await self.send(text)
        except FTPError as error:
            raise FTPError(error.code, error.message, error.path or path) from None

    async def upload(self, data: Source, path: str, dirs: bool = False) -> int:
        """Upload bytes, text or a readable file object to the server.

        Args:
            data: What to upload. Strings are encoded with the session encoding.
            path: Remote file path
            dirs: Create the remote parent directories first

        Returns:
            int: Bytes uploaded
        """
        self.require()
        if dirs:
            await self.ensure(tree.parent(path))

        # Run upload hook
        if "upload" in self.hooks:
            try:
                await self.hooks["upload"](path)
            except Exception as error:
                warnings.warn(f"Upload hook failed: {error}")

        self.log.debug("Uploading to %s", path)
        return await self.transfer(Kind.STORE, path, data)

    async def download(self, path: str) -> bytes:
        """Download a whole file into memory.

        Returns:
            bytes: The file contents
        """
        sink = io.BytesIO()
        await self.stream(path, sink)
        return sink.getvalue()

    async def stream(self, path: str, sink: Any) -> int:
        """Download a file straight into a writable sink as the bytes arrive.

        Better than ``download`` for big files since nothing is buffered
        here. ``sink.write`` may be a plain or a coroutine method.

        Returns:
            int: Bytes received
        """
        self.require()

        # Run download hook
        if "download" in self.hooks:
            try:
                await self.hooks["download"](path)
            except Exception as error:
                warnings.warn(f"Download hook failed: {error}")

        self.log.debug("Downloading %s", path)
        return await self.transfer(Kind.RETRIEVE, path, sink)

    async def list(self, path: str = ".") -> str:
        """Get the raw LIST output for a directory."""
        sink = io.BytesIO()
        await self.transfer(Kind.LIST, path, sink)
        return sink.getvalue().decode(self.encoding, errors="replace")

    async def entries(self, path: str = ".") -> List[Entry]:
        """List a directory and parse each line into an Entry."""
        return listing.parse(await self.list(path))

    async def cd(self, path: str) -> None:
        await self.command(f"CWD {path}", path)

    async def pwd(self) -> str:
        """Current working directory, or ``/`` if the reply can't be parsed."""
        reply = await self.send("PWD")
        match = re.search(r'"(.+)"', reply.message)
        return match.group(1) if match else "/"

    async def mkdir(self, path: str) -> None:
        await self.command(f"MKD {path}", path)

    async def delete(self, path: str) -> None:
        await self.command(f"DELE {path}", path)

    async def rmdir(self, path: str) -> None:
        await self.command(f"RMD {path}", path)

    async def rename(self, old: str, new: str) -> None:
        """Rename or move a remote file (RNFR followed by RNTO)."""
        await self.command(f"RNFR {old}", old)
        await self.command(f"RNTO {new}", new)

    async def chmod(self, path: str, mode: str) -> None:
        """Change permissions with SITE CHMOD (if the server supports it)."""
        await self.command(f"SITE CHMOD {mode} {path}", path)

    async def noop(self) -> Reply:
        return await self.send("NOOP")

    async def size(self, path: str) -> int:
        """Size of a remote file in bytes, using SIZE.

        Raises:
            FTPError: If the file doesn't exist (or is a directory on most servers)
            MalformedReply: If the server's answer isn't a number
        """
        reply = await self.command(f"SIZE {path}", path)
        try:
            return int(reply.message.strip())
        except ValueError:
            raise MalformedReply(str(reply), "SIZE reply is not a number") from None

    async def modified(self, path: str) -> datetime.datetime:
        """Modification time of a remote file (MDTM) as an aware UTC datetime."""
        reply = await self.command(f"MDTM {path}", path)
        return listing.modified(reply.message)

    async def stat(self, path: str) -> Dict[str, Optional[Union[bool, int]]]:
        """Find out whether a path exists and what it is.

        Tries SIZE first (files), then a CWD round trip (directories), and
        finally looks for the name in the parent's listing.

        Returns:
            Dict with ``exists``, ``size``, ``file`` and ``directory``.
            Unknown values are None.
        """
        try:
            size = await self.size(path)
            return {"exists": True, "size": size, "file": True, "directory": False}
        except (FTPError, MalformedReply):
            pass

        try:
            current = await self.pwd()
            await self.cd(path)
            await self.cd(current)
            return {"exists": True, "size": None, "file": False, "directory": True}
        except FTPError:
            pass

        try:
            name = tree.normalize(path).split("/")[-1]
            found = any(item.name == name for item in await self.entries(tree.parent(path)))
        except FTPError:
            found = False

        return {"exists": found, "size": None, "file": None, "directory": None}

    async def exists(self, path: str) -> bool:
        """Check whether a file or directory exists on the server."""
        info = await self.stat(path)
        return bool(info["exists"])

    async def ensure(self, path: str) -> None:
        """Create a remote directory and any missing parents (``mkdir -p``)."""
        await tree.ensure(self, path)

    async def purge(self, path: str) -> None:
        """Remove a remote directory and everything inside it."""
        await tree.purge(self, path)

    async def stats(self) -> Dict[str, Union[str, int, bool, None]]:
        """Connection statistics for monitoring or debugging.

        Returns:
            Dict with connection state, command count and the last (masked) command
        """
        channel = self.channel
        return {
            "connected": channel is not None and not channel.closed,
            "authenticated": bool(channel and channel.authenticated),
            "host": self.host,
            "port": self.port,
            "commands": channel.count if channel else 0,
            "last": channel.last if channel else None,
            "transferring": self.active is not None,
            "encoding": self.encoding,
        }

    async def close(self) -> None:
        """Send QUIT and close the control connection. Safe to call twice."""
        channel = self.channel
        if channel is None:
            return

        if not channel.closed and channel.pending is None:
            self.log.debug("Closing connection...")
            try:
                await channel.send("QUIT", timeout=self.timeout.completion)
            except FtpLiteError as error:
                self.log.debug("Error during QUIT: %s", error)

        await channel.close()
        self.log.debug("Connection closed")
