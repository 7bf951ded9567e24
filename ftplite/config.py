import warnings
from dataclasses import dataclass
from typing import Optional


@dataclass
class Timeout:
    """
    Timeout configuration for the control and data channels.

    FTP has a few distinct places where a client can end up waiting forever,
    and each one gets its own knob. Keeping them separate matters most for
    transfers: a large upload can legitimately take minutes, but the server's
    first answer to STOR should arrive within seconds.

    The ``completion``/``trust`` pair is the explicit risk parameter of the
    transfer join. Once the data channel has closed we wait ``completion``
    seconds for the server's final reply (usually 226). If it never comes
    and ``trust`` is True, the transfer is reported as successful because the
    byte stream was fully delivered. Set ``trust`` to False if you'd rather
    get a CommandTimeout than assume the server persisted the data.

    Attributes:
        connect: Time to wait for a TCP connection (control or data channel).
        command: Primary deadline for a command's terminal reply.
                 For transfers this covers the first reply to the command.
        completion: Secondary deadline for the final transfer reply once the
                    data channel has closed. Must be shorter than ``command``.
        data: Idle timeout for a single read or write on the data channel.
        trust: Whether an elapsed ``completion`` deadline counts as success.
    """

    connect: float = 10.0  # Time to wait for TCP connection establishment
    command: float = 30.0  # Primary deadline for a terminal reply
    completion: float = 5.0  # Secondary deadline after the data channel closes
    data: float = 30.0  # Idle timeout for data channel reads and writes
    trust: bool = True  # Treat a silent server after data close as success

    def __post_init__(self) -> None:
        """
        Validate timeout configuration after initialization.

        Returns:
            None

        Raises:
            ValueError: If timeout values are invalid or inconsistent.
        """
        if self.connect <= 0:
            raise ValueError("Connect timeout must be positive")
        if self.command <= 0:
            raise ValueError("Command timeout must be positive")
        if self.completion <= 0:
            raise ValueError("Completion timeout must be positive")
        if self.data <= 0:
            raise ValueError("Data timeout must be positive")

        if self.completion >= self.command:
            raise ValueError(
                f"Completion timeout ({self.completion}) must be shorter than "
                f"the command timeout ({self.command})"
            )

        if self.trust and self.completion < 1.0:
            warnings.warn(
                f"Completion timeout ({self.completion}s) is very short while "
                "trust is enabled. Slow servers will have transfers reported "
                "as successful without ever confirming them."
            )


@dataclass
class Limits:
    """
    Buffer limits for the control and data channels.

    Attributes:
        chunk: Bytes read from or written to the data channel in one go.
               Bigger chunks mean fewer syscalls, smaller ones smoother streaming.
        line: Longest reply line in bytes, terminator excluded. Longer lines
              fail the command waiting for them instead of being buffered.
        read: Download speed limit in bytes per second, None for unlimited.
        write: Upload speed limit in bytes per second, None for unlimited.
    """

    chunk: int = 65536  # Data channel read/write size
    line: int = 8192  # Maximum reply line length in bytes
    read: Optional[int] = None  # Download speed limit (bytes/s)
    write: Optional[int] = None  # Upload speed limit (bytes/s)

    def __post_init__(self) -> None:
        if self.chunk <= 0:
            raise ValueError("Chunk size must be positive")

        if self.line < 4:
            raise ValueError("Line limit must leave room for a reply code and separator")

        for limit in (self.read, self.write):
            if limit is not None and limit <= 0:
                raise ValueError("Speed limits must be positive or None")

        if self.chunk > 16 * 1024 * 1024:
            warnings.warn(
                f"Chunk size ({self.chunk}) is unusually large. "
                "Each read may hold that much data in memory."
            )
