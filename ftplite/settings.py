import socket
import warnings
from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class Socket:
    """
    TCP tuning applied to both the control and the data connections.

    FTP control traffic is made of tiny request/reply lines, so Nagle's
    algorithm only adds latency there. Keep-alive packets let us notice a
    control connection that died silently while we were busy streaming a
    long transfer over the data channel.

    Attributes:
        keepalive: Enable SO_KEEPALIVE on every connection we open.
        interval: Seconds of idle time before the first keep-alive packet.
                  Only applied on platforms that expose TCP_KEEPIDLE.
        nodelay: Enable TCP_NODELAY (disable Nagle's algorithm).
    """

    keepalive: bool = True  # Detect dead connections with keep-alive packets
    interval: int = 10  # Idle seconds before the first keep-alive packet
    nodelay: bool = True  # Send small control lines immediately

    def __post_init__(self) -> None:
        """
        Validate socket settings after initialization.

        Returns:
            None

        Raises:
            ValueError: If the keep-alive interval is not positive.
        """
        if self.interval <= 0:
            raise ValueError("Keep-alive interval must be positive")

        if self.keepalive and self.interval > 7200:
            warnings.warn(
                f"Keep-alive interval ({self.interval}s) is longer than most "
                "firewalls keep idle connections open.",
                UserWarning,
                stacklevel=3,
            )

    def apply(self, transport: Any) -> None:
        """Apply the settings to an asyncio transport's underlying socket.

        Transports that don't expose a real socket (test doubles, pipes) are
        left alone.

        Args:
            transport: The transport returned alongside an asyncio stream
        """
        sock: Optional[socket.socket] = transport.get_extra_info("socket")
        if sock is None:
            return

        try:
            if self.nodelay:
                sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

            if self.keepalive:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
                if hasattr(socket, "TCP_KEEPIDLE"):
                    sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, self.interval)
        except OSError as error:
            warnings.warn(f"Could not apply socket settings: {error}")
