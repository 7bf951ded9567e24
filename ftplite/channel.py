import asyncio
import logging
import time
import warnings
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .config import Limits, Timeout
from .errors import (
    CommandTimeout,
    ConnectionClosed,
    FtpLiteError,
    FTPError,
    MalformedReply,
    ProtocolViolation,
)
from .reply import CRLF, Assembler, Framer, Reply, mask
from .settings import Socket

logger = logging.getLogger(__name__)

# Enhanced type definitions for improved type safety and clarity
HookType = Callable[..., Awaitable[Any]]
Clock = Callable[[], float]


class Pending:
    """
    The one command on a control channel that is still waiting for its reply.

    ``future`` resolves exactly once with the terminal reply that settles the
    command. ``acknowledged`` is set as soon as the server says anything
    terminal about it, preliminary 1xx replies included, which is what the
    transfer code waits on before it starts caring about the data channel.
    """

    def __init__(
        self,
        command: str,
        preliminary: bool,
        deadline: float,
        timeout: float,
    ) -> None:
        self.command = command  # Already masked, safe to log
        self.preliminary = preliminary
        self.deadline = deadline
        self.timeout = timeout
        self.future: asyncio.Future = asyncio.get_event_loop().create_future()
        self.acknowledged = asyncio.Event()
        self.replies: List[Reply] = []

    @property
    def done(self) -> bool:
        return self.future.done()

    def __repr__(self) -> str:
        state = "done" if self.done else "waiting"
        return f"<Pending {self.command!r} {state}>"


class ControlChannel:
    """
    The long-lived command connection plus the command/reply correlator.

    FTP replies aren't tagged with any request id, so the only way to know
    which command a reply belongs to is order. This class enforces the rule
    that makes order meaningful: one outstanding command at a time. The slot
    for it is ``pending``. A background reader frames incoming bytes into
    lines, assembles multi-line replies and hands every terminal reply to
    whoever occupies the slot. Replies that arrive with an empty slot (for
    example after their command already timed out) are dropped.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        timeout: Optional[Timeout] = None,
        limits: Optional[Limits] = None,
        hooks: Optional[Dict[str, HookType]] = None,
        encoding: str = "utf-8",
        clock: Optional[Clock] = None,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self.reader = reader
        self.writer = writer
        self.timeout = timeout or Timeout()
        self.limits = limits or Limits()
        self.hooks = hooks or {}
        self.encoding = encoding
        self.clock: Clock = clock or time.monotonic
        self.log = log or logger

        self.framer = Framer(encoding, self.limits.line)
        self.assembler = Assembler()
        self.pending: Optional[Pending] = None
        self.task: Optional[asyncio.Task] = None

        self.closed = False
        self.authenticated = False
        self.count = 0  # Commands sent over this channel
        self.last: Optional[str] = None  # Last command, masked
        self.greeting: Optional[Reply] = None

    @classmethod
    async def open(
        cls,
        host: str,
        port: int,
        timeout: Optional[Timeout] = None,
        limits: Optional[Limits] = None,
        socket: Optional[Socket] = None,
        hooks: Optional[Dict[str, HookType]] = None,
        encoding: str = "utf-8",
        clock: Optional[Clock] = None,
        log: Optional[logging.Logger] = None,
    ) -> "ControlChannel":
        """Connect to the server's command port and wait for its welcome banner.

        Args:
            host: Server hostname or address
            port: Command port, usually 21
            timeout: Deadlines for connecting and for the banner
            limits: Reply line buffering limits
            socket: TCP tuning for the connection
            hooks: Observability callbacks (``command``, ``reply``)
            encoding: Text encoding of the control channel
            clock: Monotonic time source used for every deadline
            log: Logger to use instead of the module logger

        Returns:
            ControlChannel: Connected channel whose greeting has been consumed

        Raises:
            ConnectionError: If the TCP connection can't be established
            FTPError: If the server's banner is a refusal (e.g. 421)
            CommandTimeout: If the banner never arrives
        """
        timeout = timeout or Timeout()
        socket = socket or Socket()

        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port), timeout=timeout.connect
            )
        except asyncio.TimeoutError:
            raise ConnectionError(f"Connection to {host}:{port} timed out")
        except OSError as error:
            raise ConnectionError(f"Failed to connect to FTP server: {error}") from error

        socket.apply(writer)

        channel = cls(reader, writer, timeout, limits, hooks, encoding, clock, log)
        # Register before reading so the banner can't arrive to an empty slot
        pending = channel.expect("<greeting>", preliminary=True)
        channel.start()

        try:
            channel.greeting = await channel.wait(pending)
        except BaseException:
            await channel.close()
            raise

        return channel

    def start(self) -> None:
        """Start the background task that reads replies off the socket."""
        if self.task is None:
            self.task = asyncio.ensure_future(self.listen())

    async def listen(self) -> None:
        """Read, frame and dispatch replies until the connection ends."""
        reason: Optional[BaseException] = None

        try:
            while True:
                chunk = await self.reader.read(4096)
                if not chunk:
                    break

                # Keep going until the framer has nothing complete left
                while True:
                    try:
                        lines = self.framer.feed(chunk)
                    except MalformedReply as error:
                        self.fail(error)
                        chunk = b""
                        continue

                    if not lines:
                        break
                    chunk = b""

                    for line in lines:
                        await self.receive(line)

        except (ConnectionError, OSError) as error:
            reason = error
            self.log.debug("Control channel error: %s", error)
        finally:
            self.closed = True
            self.authenticated = False
            self.framer.reset()
            self.assembler.reset()
            detail = f": {reason}" if reason else ""
            self.fail(ConnectionClosed(f"Control connection closed{detail}"))

    async def receive(self, line: str) -> None:
        """Run one framed line through the assembler."""
        self.log.debug("<<< %s", line)
        await self.emit("reply", line)

        try:
            reply = self.assembler.push(line)
        except MalformedReply as error:
            self.fail(error)
            return

        if reply is not None:
            self.dispatch(reply)

    def dispatch(self, reply: Reply) -> None:
        """Hand a complete terminal reply to the pending command, if any."""
        pending = self.pending

        if pending is None or pending.done:
            self.log.warning("Dropping unsolicited reply: %s", reply)
            return

        pending.replies.append(reply)

        if reply.preliminary and pending.preliminary:
            # 1xx: accepted, the real answer comes later
            self.log.debug("Preliminary reply to %s, waiting for completion", pending.command)
            pending.acknowledged.set()
            return

        self.pending = None
        pending.future.set_result(reply)
        pending.acknowledged.set()

    def fail(self, error: FtpLiteError) -> None:
        """Fail the pending command (and only it) with the given error."""
        pending = self.pending
        if pending is None:
            if not isinstance(error, ConnectionClosed):
                self.log.warning("%s", error)
            return

        self.pending = None
        if not pending.done:
            pending.future.set_exception(error)
        pending.acknowledged.set()

    def expect(self, command: str, preliminary: bool = False, timeout: Optional[float] = None) -> Pending:
        """Occupy the slot for a reply without writing anything.

        Used for the unprompted welcome banner, and by ``issue`` after the
        single-flight check.

        Raises:
            ConnectionClosed: If the channel is already closed
            ProtocolViolation: If another command is still awaiting its reply
        """
        if self.closed:
            raise ConnectionClosed("Not connected")

        if self.pending is not None:
            raise ProtocolViolation(
                f"Cannot send {command!r} while {self.pending.command!r} "
                "is still awaiting its reply"
            )

        timeout = self.timeout.command if timeout is None else timeout
        pending = Pending(command, preliminary, self.clock() + timeout, timeout)
        self.pending = pending
        return pending

    async def issue(
        self,
        command: str,
        preliminary: bool = False,
        timeout: Optional[float] = None,
    ) -> Pending:
        """Write a command and register it as the pending command.

        Args:
            command: Command line without terminator, e.g. ``"RETR a.txt"``
            preliminary: Keep waiting past 1xx replies for the final one
            timeout: Primary deadline in seconds (defaults to ``Timeout.command``)

        Returns:
            Pending: Handle to wait on with ``wait``/``acknowledge``/``complete``

        Raises:
            ProtocolViolation: If another command is still outstanding
            ConnectionClosed: If the channel is closed or the write fails
            ValueError: If the command contains a line break
        """
        if "\r" in command or "\n" in command:
            raise ValueError(f"Command cannot contain line breaks: {mask(command)!r}")

        shown = mask(command)
        pending = self.expect(shown, preliminary, timeout)

        self.count += 1
        self.last = shown
        self.log.debug(">>> %s", shown)

        try:
            self.writer.write((command + CRLF).encode(self.encoding))
            await self.writer.drain()
        except (ConnectionError, OSError) as error:
            self.discard(pending)
            raise ConnectionClosed(f"Failed to send {shown}: {error}") from error

        await self.emit("command", shown)
        return pending

    async def send(
        self,
        command: str,
        preliminary: bool = False,
        timeout: Optional[float] = None,
    ) -> Reply:
        """Send a command and wait for the reply that settles it.

        Anything below 400 comes back as a Reply. Anything 400 and up raises.

        Args:
            command: Command line without terminator
            preliminary: Tolerate 1xx replies before the final one
            timeout: Deadline in seconds for the whole exchange

        Returns:
            Reply: The terminal reply

        Raises:
            FTPError: If the server answered 400 or above
            CommandTimeout: If no terminal reply arrived in time
            ProtocolViolation: If another command is still outstanding
        """
        pending = await self.issue(command, preliminary, timeout)
        return await self.wait(pending)

    async def wait(self, pending: Pending) -> Reply:
        """Wait until the pending command's deadline for its terminal reply."""
        if not pending.done:
            remaining = pending.deadline - self.clock()
            try:
                if remaining <= 0:
                    raise asyncio.TimeoutError
                await asyncio.wait_for(asyncio.shield(pending.future), timeout=remaining)
            except asyncio.TimeoutError:
                self.discard(pending)
                raise CommandTimeout(pending.command, pending.timeout) from None

        return self.outcome(pending.future.result())

    async def acknowledge(self, pending: Pending) -> Reply:
        """Wait (primary deadline) for the first terminal reply, 1xx included.

        Returns:
            Reply: The preliminary reply, or the final one if the server
            skipped straight to it

        Raises:
            FTPError: If the first thing the server said was a failure
            CommandTimeout: If the server said nothing before the deadline
        """
        if not pending.acknowledged.is_set():
            remaining = pending.deadline - self.clock()
            try:
                if remaining <= 0:
                    raise asyncio.TimeoutError
                await asyncio.wait_for(pending.acknowledged.wait(), timeout=remaining)
            except asyncio.TimeoutError:
                self.discard(pending)
                raise CommandTimeout(pending.command, pending.timeout) from None

        if pending.done:
            return self.outcome(pending.future.result())
        return pending.replies[-1]

    async def complete(self, pending: Pending, timeout: float, trust: bool = True) -> Optional[Reply]:
        """Wait a bounded time for the final reply of an already acknowledged command.

        This is the second half of the transfer join. If the final reply
        doesn't show up within ``timeout`` the slot is released either way;
        with ``trust`` the caller gets None back instead of an error.

        Raises:
            FTPError: If the final reply is a failure
            CommandTimeout: If the deadline passes and ``trust`` is False
        """
        if not pending.done:
            try:
                await asyncio.wait_for(asyncio.shield(pending.future), timeout=timeout)
            except asyncio.TimeoutError:
                self.discard(pending)
                if not trust:
                    raise CommandTimeout(pending.command, timeout) from None
                return None

        return self.outcome(pending.future.result())

    async def drain(self, pending: Pending, timeout: float) -> None:
        """Swallow the reply of a command whose result nobody cares about anymore.

        Used after a data channel failure: the server will still answer the
        transfer command (usually 426), and that answer must not be mistaken
        for the reply to the next command.
        """
        try:
            reply = await self.complete(pending, timeout)
            self.log.debug("Drained reply to %s: %s", pending.command, reply)
        except FtpLiteError as error:
            self.log.debug("Drained failed reply to %s: %s", pending.command, error)

    def discard(self, pending: Pending) -> None:
        """Release the slot held by ``pending`` so the channel is usable again."""
        if self.pending is pending:
            self.pending = None
        if not pending.done:
            pending.future.cancel()
        pending.acknowledged.set()

    def outcome(self, reply: Reply) -> Reply:
        # A 1xx only gets here when preliminary replies weren't tolerated
        if reply.code < 400:
            return reply
        raise FTPError(reply.code, reply.message)

    async def emit(self, name: str, *args: Any) -> None:
        """Run an observability hook without letting it break the engine."""
        if name in self.hooks:
            try:
                await self.hooks[name](*args)
            except Exception as error:
                warnings.warn(f"{name.capitalize()} hook failed: {error}")

    async def close(self) -> None:
        """Tear down the connection and stop the reader. Safe to call twice."""
        self.closed = True

        if self.task is not None:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass
            self.task = None
        else:
            self.fail(ConnectionClosed("Control connection closed"))

        try:
            self.writer.close()
            await self.writer.wait_closed()
        except (ConnectionError, OSError) as error:
            self.log.debug("Error closing control connection: %s", error)
