import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Union
from urllib.parse import urlparse

from .auth import Basic, Guest
from .config import Limits, Timeout
from .core import FtpClient
from .settings import Socket

# Enhanced type definitions for improved type safety and clarity
HookType = Callable[..., Awaitable[Any]]
AuthType = Union[Basic, Guest]
Clock = Callable[[], float]


class FtpLite:
    """
    Factory for FTP sessions that share one configuration.

    Parses and checks the endpoint once, fills in defaults, and then hands
    out as many independent ``FtpClient`` sessions as you need. Each
    session owns its own control and data connections, so running several
    of them side by side is the way to get concurrent transfers.
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
        """Set up the shared session configuration.

        Args:
            endpoint: FTP URL like ftp://server.com or ftp://server.com:2121
            auth: Username and password, or Guest for anonymous access
            timeout: Deadlines for connecting, commands, completion and data
            limits: Data chunk size and reply line limit
            socket: TCP keep-alive and no-delay settings
            hooks: Custom async callbacks for monitoring and logging
            encoding: Text encoding for FTP protocol messages
            clock: Monotonic time source for deadlines (``time.monotonic``)
            log: Logger sink for every session created here

        Raises:
            TypeError: If endpoint isn't a string
            ValueError: If the scheme isn't ftp:// or the host is missing
        """
        if not isinstance(endpoint, str):
            raise TypeError("Endpoint must be a string.")

        # Only plain ftp:// URLs with a host make sense here
        url = urlparse(endpoint)

        if url.scheme == "ftps":
            raise ValueError("Encrypted FTP (ftps://) is not supported.")
        if url.scheme != "ftp":
            raise ValueError("Endpoint must start with 'ftp://'.")
        if not url.hostname:
            raise ValueError("Endpoint must include a host name.")

        # Kept for display; sessions re-parse the endpoint themselves
        self.endpoint: str = endpoint
        self.host: str = url.hostname
        self.port: int = url.port or 21

        self.timeout: Timeout = timeout or Timeout()
        self.limits: Limits = limits or Limits()
        self.socket: Socket = socket or Socket()

        self.encoding: str = encoding
        self.hooks: Dict[str, HookType] = hooks or {}
        self.auth: Optional[AuthType] = auth
        self.clock: Clock = clock or time.monotonic
        self.log: Optional[logging.Logger] = log

        # FTP only knows USER/PASS logins
        if self.auth is not None and not isinstance(self.auth, (Basic, Guest)):
            raise ValueError("FTP only supports Basic or Guest authentication")

    def client(self) -> FtpClient:
        """Create a new, not yet connected session using this configuration.

        Returns:
            FtpClient: Use it in ``async with`` to connect and log in
        """
        return FtpClient(
            endpoint=self.endpoint,
            auth=self.auth,
            timeout=self.timeout,
            limits=self.limits,
            socket=self.socket,
            hooks=self.hooks,
            encoding=self.encoding,
            clock=self.clock,
            log=self.log,
        )
