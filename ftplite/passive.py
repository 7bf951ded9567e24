import asyncio
import logging
import re
from typing import NamedTuple, Optional

import aioftp

from .channel import ControlChannel
from .config import Limits, Timeout
from .errors import DataChannelError, MalformedPassiveReply
from .settings import Socket

logger = logging.getLogger(__name__)

# "227 Entering Passive Mode (h1,h2,h3,h4,p1,p2)"
PASV = re.compile(r"\((\d+),(\d+),(\d+),(\d+),(\d+),(\d+)\)", re.ASCII)


class Endpoint(NamedTuple):
    """Where the server is listening for our data connection."""

    host: str
    port: int

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


def decode(message: str) -> Endpoint:
    """Pull the data endpoint out of a PASV reply message.

    Args:
        message: Reply text, e.g. ``"Entering Passive Mode (10,0,0,5,78,23)"``

    Returns:
        Endpoint: ``10.0.0.5:19991`` for the example above

    Raises:
        MalformedPassiveReply: If the six numbers are missing or out of range
    """
    match = PASV.search(message)
    if not match:
        raise MalformedPassiveReply(message)

    numbers = [int(group) for group in match.groups()]
    if any(number > 255 for number in numbers):
        raise MalformedPassiveReply(message)

    host = ".".join(str(number) for number in numbers[:4])
    port = numbers[4] * 256 + numbers[5]
    return Endpoint(host, port)


async def negotiate(channel: ControlChannel) -> Endpoint:
    """Ask the server for a passive data port.

    Raises:
        MalformedPassiveReply: If the reply doesn't contain an address
        FTPError: If the server refuses PASV
    """
    reply = await channel.send("PASV")
    endpoint = decode(reply.message)
    channel.log.debug("Passive endpoint %s", endpoint)
    return endpoint


class DataChannel:
    """
    The short-lived second connection that carries one transfer's bytes.

    There's no framing here at all - it's a raw pipe. The server signals the
    end of a download (or listing) by closing it, and we signal the end of
    an upload the same way. Reads and writes go through aioftp's throttled
    stream, which gives us the idle timeouts and the optional speed limits.
    """

    def __init__(
        self,
        endpoint: Endpoint,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        timeout: Optional[Timeout] = None,
        limits: Optional[Limits] = None,
    ) -> None:
        self.endpoint = endpoint
        self.timeout = timeout or Timeout()
        self.limits = limits or Limits()
        self.stream = aioftp.ThrottleStreamIO(
            reader,
            writer,
            throttles={
                "transfer": aioftp.StreamThrottle.from_limits(
                    self.limits.read, self.limits.write
                )
            },
            read_timeout=self.timeout.data,
            write_timeout=self.timeout.data,
        )
        self.writer = writer
        self.closed = False
        self.transferred = 0

    async def read(self) -> bytes:
        """Read the next chunk; an empty result means the server closed the channel.

        Raises:
            DataChannelError: On a socket error or when nothing arrives in time
        """
        try:
            chunk = await self.stream.read(self.limits.chunk)
        except asyncio.TimeoutError:
            raise DataChannelError(
                f"No data from {self.endpoint} for {self.timeout.data:g}s"
            ) from None
        except (ConnectionError, OSError) as error:
            raise DataChannelError(f"Data connection to {self.endpoint} failed: {error}") from error

        self.transferred += len(chunk)
        return chunk

    async def write(self, data: bytes) -> None:
        """Send a chunk, waiting for the socket buffer to drain.

        Raises:
            DataChannelError: On a socket error or if the peer stops reading
        """
        try:
            await self.stream.write(data)
        except asyncio.TimeoutError:
            raise DataChannelError(
                f"Data connection to {self.endpoint} stalled for {self.timeout.data:g}s"
            ) from None
        except (ConnectionError, OSError) as error:
            raise DataChannelError(f"Data connection to {self.endpoint} failed: {error}") from error

        self.transferred += len(data)

    async def finish(self) -> None:
        """Close our side cleanly so the server sees end-of-data."""
        if self.closed:
            return

        self.closed = True
        try:
            self.writer.close()
            await asyncio.wait_for(self.writer.wait_closed(), timeout=self.timeout.data)
        except asyncio.TimeoutError:
            raise DataChannelError(f"Closing data connection to {self.endpoint} timed out") from None
        except (ConnectionError, OSError) as error:
            raise DataChannelError(f"Data connection to {self.endpoint} failed: {error}") from error

    def abort(self) -> None:
        """Drop the connection right away, without waiting on anything."""
        if self.closed:
            return

        self.closed = True
        self.writer.close()


async def open(
    endpoint: Endpoint,
    timeout: Optional[Timeout] = None,
    limits: Optional[Limits] = None,
    socket: Optional[Socket] = None,
) -> DataChannel:
    """Connect to a passive endpoint.

    Raises:
        DataChannelError: If the connection can't be made in time
    """
    timeout = timeout or Timeout()
    socket = socket or Socket()

    try:
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(endpoint.host, endpoint.port),
            timeout=timeout.connect,
        )
    except asyncio.TimeoutError:
        raise DataChannelError(f"Data connection to {endpoint} timed out") from None
    except OSError as error:
        raise DataChannelError(f"Could not open data connection to {endpoint}: {error}") from error

    socket.apply(writer)
    logger.debug("Data channel open to %s", endpoint)
    return DataChannel(endpoint, reader, writer, timeout, limits)
