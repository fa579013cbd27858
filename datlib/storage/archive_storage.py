"""Per-archive storage layout handed to the archive engine.

Each archive lives in its own directory under the archive root, named by
its key:

    <archive_root>/<key>/<file name with "/" replaced by ".">
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path

import aiofiles.os

logger = logging.getLogger(__name__)


class ArchiveStorage:
    """Storage-backend factory for the archive engine.

    The engine asks for file paths by archive key; this class only maps
    names to locations and never reads or writes archive contents itself.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def directory_for(self, key: str) -> Path:
        key = key.strip("/")
        if not key or "/" in key or "\\" in key or key in (".", ".."):
            raise ValueError(f"Invalid archive key: {key!r}")
        return self.root / key

    def path_for(self, key: str, name: str) -> Path:
        """Translate an engine file name into a path inside the key's directory."""
        return self.directory_for(key) / name.lstrip("/").replace("/", ".")

    def record_directory(self, key: str) -> str:
        """Directory string stored in library records (trailing separator kept)."""
        return str(self.directory_for(key)) + "/"

    async def ensure_root(self) -> None:
        await aiofiles.os.makedirs(self.root, exist_ok=True)

    async def candidates(self) -> list[str]:
        """Names of subdirectories under the root, i.e. locally stored archives."""
        if not await aiofiles.os.path.isdir(self.root):
            return []
        names = []
        for name in await aiofiles.os.listdir(self.root):
            if await aiofiles.os.path.isdir(self.root / name):
                names.append(name)
        return sorted(names)

    async def delete(self, key: str) -> None:
        directory = self.directory_for(key)
        logger.debug("Deleting archive storage %s", directory)
        await asyncio.to_thread(shutil.rmtree, directory, ignore_errors=True)
