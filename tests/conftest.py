"""Shared fixtures: a scripted in-process FTP server and connected sessions."""

import asyncio
import posixpath
from typing import Awaitable, Callable, Dict, List, Optional, Set

import pytest
import pytest_asyncio

from ftplite import Basic, FtpClient, Timeout

Handler = Callable[["Session", str], Awaitable[None]]


class Session:
    """One control connection to the fake server."""

    def __init__(self, server: "FakeServer", reader, writer) -> None:
        self.server = server
        self.reader = reader
        self.writer = writer
        self.cwd = "/"
        self.listener: Optional[asyncio.AbstractServer] = None
        self.data: Optional[asyncio.Future] = None
        self.source: Optional[str] = None

    async def reply(self, *lines: str) -> None:
        for line in lines:
            self.writer.write((line + "\r\n").encode())
        await self.writer.drain()

    def path(self, arg: str) -> str:
        return posixpath.normpath(posixpath.join(self.cwd, arg or "."))

    def children(self, path: str):
        files = sorted(p for p in self.server.files if posixpath.dirname(p) == path)
        dirs = sorted(
            d for d in self.server.dirs if d != "/" and posixpath.dirname(d) == path
        )
        return files, dirs

    async def accept(self):
        return await asyncio.wait_for(self.data, timeout=2)

    async def drop(self) -> None:
        """Close the data connection without sending anything."""
        if self.data is None:
            return
        reader, writer = await self.accept()
        writer.close()

    def close(self) -> None:
        if self.listener is not None:
            self.listener.close()
            self.listener = None
        if self.data is not None and self.data.done() and not self.data.cancelled():
            self.data.result()[1].close()
        self.writer.close()

    async def do_user(self, arg: str) -> None:
        if arg not in self.server.accounts:
            await self.reply("530 Unknown user")
        elif self.server.accounts[arg] is None:
            await self.reply("230 Anonymous access granted")
        else:
            self.user = arg
            await self.reply("331 Password required")

    async def do_pass(self, arg: str) -> None:
        if self.server.accounts.get(getattr(self, "user", None)) == arg:
            await self.reply("230 User logged in")
        else:
            await self.reply("530 Login incorrect")

    async def do_quit(self, arg: str) -> None:
        await self.reply("221 Goodbye")

    async def do_noop(self, arg: str) -> None:
        await self.reply("200 NOOP ok")

    async def do_type(self, arg: str) -> None:
        await self.reply(f"200 Type set to {arg}")

    async def do_site(self, arg: str) -> None:
        await self.reply("200 SITE command successful")

    async def do_pwd(self, arg: str) -> None:
        await self.reply(f'257 "{self.cwd}" is the current directory')

    async def do_cwd(self, arg: str) -> None:
        path = self.path(arg)
        if path in self.server.dirs:
            self.cwd = path
            await self.reply("250 Directory changed")
        else:
            await self.reply("550 No such directory")

    async def do_mkd(self, arg: str) -> None:
        path = self.path(arg)
        if path in self.server.dirs or path in self.server.files:
            await self.reply("550 Directory already exists")
        elif posixpath.dirname(path) not in self.server.dirs:
            await self.reply("550 No such directory")
        else:
            self.server.dirs.add(path)
            await self.reply(f'257 "{path}" created')

    async def do_rmd(self, arg: str) -> None:
        path = self.path(arg)
        if path not in self.server.dirs:
            await self.reply("550 No such directory")
        elif any(self.children(path)):
            await self.reply("550 Directory not empty")
        else:
            self.server.dirs.discard(path)
            await self.reply("250 Directory removed")

    async def do_dele(self, arg: str) -> None:
        path = self.path(arg)
        if path in self.server.files:
            del self.server.files[path]
            await self.reply("250 File deleted")
        else:
            await self.reply("550 No such file")

    async def do_size(self, arg: str) -> None:
        path = self.path(arg)
        if path in self.server.files:
            await self.reply(f"213 {len(self.server.files[path])}")
        else:
            await self.reply("550 No such file")

    async def do_mdtm(self, arg: str) -> None:
        if self.path(arg) in self.server.files:
            await self.reply("213 20240131211500")
        else:
            await self.reply("550 No such file")

    async def do_rnfr(self, arg: str) -> None:
        path = self.path(arg)
        if path in self.server.files:
            self.source = path
            await self.reply("350 Ready for RNTO")
        else:
            await self.reply("550 No such file")

    async def do_rnto(self, arg: str) -> None:
        if self.source is None:
            await self.reply("503 Bad sequence of commands")
            return
        self.server.files[self.path(arg)] = self.server.files.pop(self.source)
        self.source = None
        await self.reply("250 Rename successful")

    async def do_pasv(self, arg: str) -> None:
        if self.listener is not None:
            self.listener.close()

        self.data = asyncio.get_event_loop().create_future()
        future = self.data

        async def connected(reader, writer):
            if future.done():
                writer.close()
            else:
                future.set_result((reader, writer))

        self.listener = await asyncio.start_server(connected, "127.0.0.1", 0)
        port = self.listener.sockets[0].getsockname()[1]
        await self.reply(
            f"227 Entering Passive Mode (127,0,0,1,{port >> 8},{port & 0xFF})"
        )

    async def do_list(self, arg: str) -> None:
        path = self.path(arg)
        if path not in self.server.dirs:
            await self.drop()
            await self.reply("550 No such directory")
            return

        files, dirs = self.children(path)
        lines = ["total 8"]
        for name in files:
            size = len(self.server.files[name])
            lines.append(
                f"-rw-r--r--   1 owner group {size:>8} Jan 31 21:15 {posixpath.basename(name)}"
            )
        for name in dirs:
            lines.append(
                f"drwxr-xr-x   2 owner group     4096 Jan 31 21:15 {posixpath.basename(name)}"
            )

        reader, writer = await self.accept()
        await self.reply("150 Here comes the directory listing")
        writer.write("".join(line + "\r\n" for line in lines).encode())
        await writer.drain()
        writer.close()
        if self.server.final:
            await self.reply("226 Directory send OK")

    async def do_retr(self, arg: str) -> None:
        path = self.path(arg)
        if path not in self.server.files:
            await self.drop()
            await self.reply("550 No such file")
            return

        reader, writer = await self.accept()
        await self.reply("150 Opening BINARY mode data connection")
        writer.write(self.server.files[path])
        await writer.drain()
        writer.close()
        if self.server.final:
            await self.reply("226 Transfer complete")

    async def do_stor(self, arg: str) -> None:
        path = self.path(arg)
        if posixpath.dirname(path) not in self.server.dirs:
            await self.drop()
            await self.reply("553 Could not create file")
            return

        reader, writer = await self.accept()
        await self.reply("150 Ok to send data")
        self.server.files[path] = await reader.read()
        writer.close()
        if self.server.final:
            await self.reply("226 Transfer complete")


class FakeServer:
    """
    A tiny scripted FTP server with an in-memory filesystem.

    Good enough to drive the client over real loopback sockets, with a few
    switches to make it misbehave in the ways the tests need:

    * ``silent``: verbs that never get any reply
    * ``final``: send the 226 after transfers (or not)
    * ``handlers``: per-verb overrides, ``async def handler(session, arg)``
    """

    def __init__(self) -> None:
        self.files: Dict[str, bytes] = {}
        self.dirs: Set[str] = {"/"}
        self.accounts: Dict[str, Optional[str]] = {"user": "secret", "anonymous": None}
        self.commands: List[str] = []
        self.greeting: List[str] = ["220 FakeServer ready"]
        self.silent: Set[str] = set()
        self.final = True
        self.handlers: Dict[str, Handler] = {}
        self.sessions: List[Session] = []
        self.server: Optional[asyncio.AbstractServer] = None
        self.port: Optional[int] = None

    @property
    def url(self) -> str:
        return f"ftp://127.0.0.1:{self.port}"

    async def start(self) -> None:
        self.server = await asyncio.start_server(self.serve, "127.0.0.1", 0)
        self.port = self.server.sockets[0].getsockname()[1]

    async def stop(self) -> None:
        for session in self.sessions:
            session.close()
        self.server.close()

    async def serve(self, reader, writer) -> None:
        session = Session(self, reader, writer)
        self.sessions.append(session)

        try:
            await session.reply(*self.greeting)
            while True:
                line = await reader.readline()
                if not line:
                    break

                text = line.decode().rstrip("\r\n")
                self.commands.append(text)
                verb, _, arg = text.partition(" ")
                verb = verb.upper()

                if verb in self.silent:
                    continue

                if verb in self.handlers:
                    await self.handlers[verb](session, arg)
                elif hasattr(session, f"do_{verb.lower()}"):
                    await getattr(session, f"do_{verb.lower()}")(arg)
                else:
                    await session.reply("502 Command not implemented")

                if verb == "QUIT":
                    break
        except (ConnectionError, asyncio.TimeoutError):
            pass
        finally:
            session.close()

    def sent(self, *verbs: str) -> List[str]:
        """Commands received so far, optionally only those with the given verbs."""
        if not verbs:
            return list(self.commands)
        return [c for c in self.commands if c.split(" ", 1)[0].upper() in verbs]


@pytest_asyncio.fixture
async def server():
    fake = FakeServer()
    await fake.start()
    yield fake
    await fake.stop()


@pytest.fixture
def timeout() -> Timeout:
    return Timeout(connect=2.0, command=3.0, completion=1.0, data=3.0)


@pytest_asyncio.fixture
async def client(server, timeout):
    session = FtpClient(server.url, auth=Basic("user", "secret"), timeout=timeout)
    await session.connect()
    yield session
    await session.close()


@pytest_asyncio.fixture
async def connect(server, timeout):
    """Factory for logged-in sessions with non-default settings."""
    sessions = []

    async def factory(**options):
        options.setdefault("auth", Basic("user", "secret"))
        options.setdefault("timeout", timeout)
        session = FtpClient(server.url, **options)
        await session.connect()
        sessions.append(session)
        return session

    yield factory

    for session in sessions:
        await session.close()
