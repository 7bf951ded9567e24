import posixpath
import re
from typing import TYPE_CHECKING

from .errors import FTPError

if TYPE_CHECKING:
    from .core import FtpClient


def normalize(path: str) -> str:
    """Use forward slashes, collapse repeats and drop any trailing slash."""
    path = re.sub(r"/+", "/", path.replace("\\", "/"))
    if len(path) > 1:
        path = path.rstrip("/")
    return path


def parent(path: str) -> str:
    """Parent directory of a remote path; ``/`` for top-level entries."""
    path = normalize(path)
    slash = path.rfind("/")
    if slash <= 0:
        return "/" if path.startswith("/") else "."
    return path[:slash]


async def ensure(client: "FtpClient", path: str) -> None:
    """Make sure a remote directory exists, creating missing parents first.

    Works like ``mkdir -p``: for ``/a/b/c`` with nothing existing it issues
    MKD for ``/a``, ``/a/b`` and ``/a/b/c`` in that order. Someone else
    creating a directory between our check and our MKD is fine. The working
    directory is restored afterwards.

    Args:
        client: Connected session to run the commands on
        path: Remote directory path, absolute or relative to the working directory

    Raises:
        FTPError: If a directory can't be created and doesn't exist either
    """
    target = normalize(path)
    if target in ("", ".", "/"):
        return

    home = await client.pwd()
    if not target.startswith("/"):
        target = normalize(posixpath.join(home, target))

    try:
        await _ensure(client, target)
    finally:
        await client.cd(home)


async def _ensure(client: "FtpClient", path: str) -> None:
    if path in ("", ".", "/"):
        return

    try:
        await client.cd(path)
        client.log.debug("Directory already exists: %s", path)
        return
    except FTPError:
        client.log.debug("Directory doesn't exist: %s", path)

    await _ensure(client, parent(path))

    try:
        await client.mkdir(path)
        client.log.debug("Created directory: %s", path)
    except FTPError as error:
        # Lost a race with another creator? Then the directory is there now.
        try:
            await client.cd(path)
        except FTPError:
            raise error from None
        client.log.debug("Directory appeared concurrently: %s", path)


async def purge(client: "FtpClient", path: str) -> None:
    """Delete a remote directory and everything below it.

    Entries are handled one at a time in listing order: directories are
    purged recursively, everything else is deleted. A file that refuses to
    be deleted is logged and skipped; the final RMD will then fail and that
    error propagates. Nothing is rolled back if we stop halfway.

    Args:
        client: Connected session to run the commands on
        path: Remote directory to remove

    Raises:
        FTPError: If listing a directory or removing one fails
    """
    path = normalize(path)

    for item in await client.entries(path):
        if item.name in (".", ".."):
            continue

        child = posixpath.join(path, item.name)
        if item.directory:
            await purge(client, child)
            continue

        try:
            await client.delete(child)
        except FTPError as error:
            client.log.warning("Could not delete %s: %s", child, error)

    await client.rmdir(path)
