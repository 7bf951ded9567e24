__version__ = "1.0.0"
__author__ = "Andrew Hernandez"
__email__ = "andromedeyz@hotmail.com"
__license__ = "MIT"
__description__ = "A lightweight async FTP client with a race-free passive-mode transfer engine."
__url__ = "http://github.com/ApaxPhoenix/FtpLite"

# Make sure you're running a modern Python version
import sys

if sys.version_info < (3, 9):
    raise RuntimeError("FtpLite needs Python 3.9 or newer to work properly")

# Standard reply texts, used by Reply.description. The first digit decides
# how the engine treats a reply; the text is only for humans.
codes = {
    # 1xx preliminary: accepted, the real answer follows
    110: "Restart marker reply",
    120: "Service ready in n minutes",
    125: "Data connection already open; transfer starting",
    150: "File status okay; about to open data connection",
    # 2xx completion
    200: "Command okay",
    202: "Command not implemented, superfluous at this site",
    211: "System status, or system help reply",
    212: "Directory status",
    213: "File status",
    214: "Help message",
    215: "NAME system type",
    220: "Service ready for new user",
    221: "Service closing control connection",
    225: "Data connection open; no transfer in progress",
    226: "Closing data connection",
    227: "Entering Passive Mode",
    230: "User logged in, proceed",
    250: "Requested file action okay, completed",
    257: "PATHNAME created",
    # 3xx intermediate: send the next command of the sequence
    331: "User name okay, need password",
    332: "Need account for login",
    350: "Requested file action pending further information",
    # 4xx transient failure, worth retrying later
    421: "Service not available, closing control connection",
    425: "Can't open data connection",
    426: "Connection closed; transfer aborted",
    450: "Requested file action not taken",
    451: "Requested action aborted: local error in processing",
    452: "Requested action not taken; insufficient storage space",
    # 5xx permanent failure
    500: "Syntax error, command unrecognized",
    501: "Syntax error in parameters or arguments",
    502: "Command not implemented",
    503: "Bad sequence of commands",
    504: "Command not implemented for that parameter",
    530: "Not logged in",
    532: "Need account for storing files",
    550: "Requested action not taken; file unavailable",
    551: "Requested action aborted: page type unknown",
    552: "Requested file action aborted; exceeded storage allocation",
    553: "Requested action not taken; file name not allowed",
}

# The main FtpLite factory - one configuration, as many sessions as you need
from .ftp import FtpLite

# A single session and the engine pieces it is built from
from .core import FtpClient
from .channel import ControlChannel
from .transfer import Kind, State, Transfer
from .passive import Endpoint
from .reply import Framer, Reply, mask
from .listing import Entry

# Fine-tune how your FTP connections behave
from .config import (
    Timeout,  # Connect, command, completion and data deadlines
    Limits,  # Chunk size, reply line limit and speed limits
)

# Login styles
from .auth import (
    Basic,  # Classic username and password login
    Guest,  # Anonymous access for public servers
)

# TCP tuning
from .settings import (
    Socket,  # Keep-alive and no-delay settings
)

# Everything that can go wrong
from .errors import (
    FtpLiteError,
    MalformedReply,
    ProtocolViolation,
    CommandTimeout,
    FTPError,
    DataChannelError,
    MalformedPassiveReply,
    ConnectionClosed,
)

# Everything you can import and use
__all__ = [
    # The main class you'll work with
    "FtpLite",
    # Core functionality
    "FtpClient",
    "ControlChannel",
    "Transfer",
    "Kind",
    "State",
    "Endpoint",
    "Framer",
    "Reply",
    "Entry",
    "mask",
    "codes",
    # Configuration options
    "Timeout",
    "Limits",
    "Socket",
    # Authentication types
    "Basic",
    "Guest",
    # Errors
    "FtpLiteError",
    "MalformedReply",
    "ProtocolViolation",
    "CommandTimeout",
    "FTPError",
    "DataChannelError",
    "MalformedPassiveReply",
    "ConnectionClosed",
    # Package info
    "__version__",
    "__author__",
    "__email__",
    "__license__",
    "__description__",
    "__url__",
]
