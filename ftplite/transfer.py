import asyncio
import enum
import inspect
from typing import Any, AsyncIterator, Optional, Union

from . import passive
from .channel import ControlChannel, Pending
from .config import Limits, Timeout
from .errors import FTPError
from .reply import Reply
from .settings import Socket

# Anything we can upload from: raw bytes, text, or a file-like object
Source = Union[bytes, bytearray, memoryview, str, Any]


class Kind(enum.Enum):
    """The three transfer commands and the verbs that start them."""

    STORE = "store"
    RETRIEVE = "retrieve"
    LIST = "list"

    @property
    def verb(self) -> str:
        return {"store": "STOR", "retrieve": "RETR", "list": "LIST"}[self.value]


class State(enum.Enum):
    """Where a single transfer is in its lifecycle."""

    IDLE = "idle"
    NEGOTIATED = "passive-negotiated"
    OPEN = "data-channel-open"
    ISSUED = "command-issued"
    IN_FLIGHT = "data-in-flight"
    CLOSED = "data-channel-closed"
    REPLIED = "control-reply-received"
    SECONDARY_TIMEOUT = "secondary-timeout"
    RESOLVED = "resolved"
    FAILED = "failed"


class Transfer:
    """
    Drives one passive-mode transfer from PASV to the final reply.

    A transfer involves three things happening more or less at once: the
    data connection carrying bytes, the data connection closing, and the
    control connection reporting the outcome (usually 226). The tricky part
    is joining them without stalling and without lying to the caller.

    The join used here is a bounded strict join:

    1. The server's first reply to the command must arrive within the
       primary deadline (``Timeout.command``). A failure reply at any point
       ends the transfer with FTPError, even if zero bytes moved.
    2. The data channel is pumped until it closes. Every read/write has an
       idle deadline (``Timeout.data``); a stall or socket error ends the
       transfer with DataChannelError right away, and the orphaned control
       reply is drained so the next command gets its own reply.
    3. Once the data channel closed, the final reply gets a short secondary
       deadline (``Timeout.completion``). If it elapses, ``Timeout.trust``
       decides: success (the bytes were all delivered) or CommandTimeout.

    One instance runs one transfer; the DataChannel it opens is never
    shared with anything else.
    """

    def __init__(
        self,
        channel: ControlChannel,
        timeout: Optional[Timeout] = None,
        limits: Optional[Limits] = None,
        socket: Optional[Socket] = None,
    ) -> None:
        self.channel = channel
        self.timeout = timeout or channel.timeout
        self.limits = limits or channel.limits
        self.socket = socket or Socket()
        self.log = channel.log
        self.state = State.IDLE
        self.data: Optional[passive.DataChannel] = None
        self.reply = None

    def moved(self, state: State) -> None:
        self.state = state
        self.log.debug("Transfer %s", state.value)

    async def run(
        self,
        kind: Union[Kind, str],
        argument: str = "",
        stream: Optional[Source] = None,
    ) -> int:
        """Run a complete transfer.

        Args:
            kind: ``store``, ``retrieve`` or ``list``
            argument: Remote path (optional for listings)
            stream: Upload source (bytes, str or object with ``read``) for
                    store, download sink (object with ``write``) otherwise.
                    ``read``/``write`` may be plain or coroutine methods.

        Returns:
            int: Bytes moved over the data channel

        Raises:
            FTPError: If the server rejected or failed the transfer
            DataChannelError: If the data connection broke or stalled
            CommandTimeout: If the server never answered the command
            MalformedPassiveReply: If PASV gave us no usable address
        """
        path = argument or None

        data: Optional[passive.DataChannel] = None
        pending: Optional[Pending] = None
        pump: Optional[asyncio.Future] = None
        ack: Optional[asyncio.Future] = None
        verdict: Optional[asyncio.Future] = None

        self.moved(State.IDLE)
        try:
            kind = Kind(kind)
            if kind is Kind.STORE and stream is None:
                raise ValueError("Uploads need a source to read from")
            if kind is not Kind.STORE and stream is None:
                raise ValueError("Downloads and listings need a sink to write to")

            command = f"{kind.verb} {argument}" if argument else kind.verb

            endpoint = await passive.negotiate(self.channel)
            self.moved(State.NEGOTIATED)

            data = self.data = await passive.open(endpoint, self.timeout, self.limits, self.socket)
            self.moved(State.OPEN)

            pending = await self.channel.issue(command, preliminary=True)
            self.moved(State.ISSUED)

            pump = asyncio.ensure_future(self.pump(kind, data, stream))
            ack = asyncio.ensure_future(self.channel.acknowledge(pending))
            verdict = asyncio.ensure_future(self.verdict(pending))
            self.moved(State.IN_FLIGHT)

            # Stop at the first failure, otherwise once both halves are done
            waiting = {pump, ack, verdict}
            while not (pump.done() and ack.done()):
                done, waiting = await asyncio.wait(waiting, return_when=asyncio.FIRST_COMPLETED)
                if any(self.failure(task) is not None for task in done):
                    break

            # The server's own verdict beats whatever the socket did
            error = (
                self.failure(ack)
                or self.failure(verdict)
                or self.rejected(pending)
                or self.failure(pump)
            )
            if error is not None:
                await self.abandon(pending, pump, ack, verdict)
                raise error

            self.moved(State.CLOSED)
            self.reply = await self.channel.complete(
                pending, self.timeout.completion, self.timeout.trust
            )

        except FTPError as error:
            self.moved(State.FAILED)
            raise FTPError(error.code, error.message, error.path or path) from None
        except Exception:
            self.moved(State.FAILED)
            raise
        finally:
            for task in (pump, ack, verdict):
                if task is not None and not task.done():
                    task.cancel()
            if data is not None:
                data.abort()
            if pending is not None and not pending.done:
                self.channel.discard(pending)

        if self.reply is None:
            self.moved(State.SECONDARY_TIMEOUT)
            self.log.warning(
                "No completion reply to %s within %gs after the data channel "
                "closed; assuming success (%d bytes)",
                pending.command,
                self.timeout.completion,
                data.transferred,
            )
        else:
            self.moved(State.REPLIED)

        self.moved(State.RESOLVED)
        self.log.debug("%s transferred %d bytes", pending.command, data.transferred)
        return data.transferred

    async def abandon(self, pending: Pending, *tasks: asyncio.Future) -> None:
        """Stop every half of a failed transfer and free the control channel."""
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        self.data.abort()
        if not pending.done:
            await self.channel.drain(pending, self.timeout.completion)

    async def verdict(self, pending: Pending) -> Reply:
        """Wait for the final reply while the data channel is still busy.

        Raises:
            FTPError: As soon as the server fails the transfer
        """
        reply = await asyncio.shield(pending.future)
        return self.channel.outcome(reply)

    @staticmethod
    def rejected(pending: Pending) -> Optional[FTPError]:
        """The server's failure reply, if one has already settled ``pending``."""
        future = pending.future
        if not future.done() or future.cancelled() or future.exception() is not None:
            return None
        reply = future.result()
        if reply.code >= 400:
            return FTPError(reply.code, reply.message)
        return None

    @staticmethod
    def failure(task: asyncio.Future) -> Optional[BaseException]:
        if task.done() and not task.cancelled():
            return task.exception()
        return None

    async def pump(self, kind: Kind, data: "passive.DataChannel", stream: Source) -> int:
        """Move bytes over the data channel until it is closed."""
        if kind is Kind.STORE:
            async for chunk in self.chunks(stream):
                await data.write(chunk)
            await data.finish()
            return data.transferred

        while True:
            chunk = await data.read()
            if not chunk:
                break
            result = stream.write(chunk)
            if inspect.isawaitable(result):
                await result

        await data.finish()
        return data.transferred

    async def chunks(self, source: Source) -> AsyncIterator[bytes]:
        """Split an upload source into chunks of at most ``Limits.chunk`` bytes."""
        size = self.limits.chunk

        if isinstance(source, str):
            source = source.encode(self.channel.encoding)

        if isinstance(source, (bytes, bytearray, memoryview)):
            view = memoryview(source)
            for offset in range(0, len(view), size):
                yield bytes(view[offset:offset + size])
            return

        if not hasattr(source, "read"):
            raise TypeError(f"Cannot upload from {type(source).__name__}")

        while True:
            chunk = source.read(size)
            if inspect.isawaitable(chunk):
                chunk = await chunk
            if not chunk:
                break
            if isinstance(chunk, str):
                chunk = chunk.encode(self.channel.encoding)
            yield chunk
