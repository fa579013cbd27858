"""Persisted library index.

A directory-scoped key-value store mapping archive URL to library record.
Each entry is one JSON file named by the SHA-256 of its key:

    <metadata_root>/<sha256(url)>  ->  {"key": url, "value": {...record...}}
"""

from __future__ import annotations

import hashlib
import json
import logging
import uuid
from pathlib import Path

import aiofiles
import aiofiles.os

from datlib.errors import IndexUnavailableError
from datlib.registry.models import ArchiveRecord

logger = logging.getLogger(__name__)


class LibraryIndex:
    """File-backed, async index of library records."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)
        self._ready = False

    async def init(self) -> None:
        """Create the index directory. Must complete before any other call."""
        try:
            await aiofiles.os.makedirs(self.directory, exist_ok=True)
        except OSError as e:
            raise IndexUnavailableError(f"Cannot open library index at {self.directory}: {e}") from e
        self._ready = True

    @property
    def ready(self) -> bool:
        return self._ready

    async def list(self) -> list[ArchiveRecord]:
        """Return all records."""
        self._check_ready()
        records = []
        for name in await self._entry_names():
            entry = await self._read_entry(self.directory / name)
            if entry is not None:
                records.append(ArchiveRecord.from_dict(entry["value"]))
        return records

    async def get(self, url: str) -> ArchiveRecord | None:
        self._check_ready()
        path = self._path(url)
        if not await aiofiles.os.path.exists(path):
            return None
        entry = await self._read_entry(path)
        if entry is None:
            return None
        return ArchiveRecord.from_dict(entry["value"])

    async def put(self, url: str, record: ArchiveRecord) -> None:
        """Upsert a record. Last writer wins."""
        self._check_ready()
        path = self._path(url)
        tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex[:8]}.tmp")
        data = json.dumps({"key": url, "value": record.to_dict()})
        async with aiofiles.open(tmp_path, "w") as f:
            await f.write(data)
        await aiofiles.os.replace(tmp_path, path)

    async def delete(self, url: str) -> None:
        """Remove a record if present."""
        self._check_ready()
        try:
            await aiofiles.os.remove(self._path(url))
        except FileNotFoundError:
            pass

    # -- helpers -------------------------------------------------------------

    def _check_ready(self) -> None:
        if not self._ready:
            raise IndexUnavailableError("Library index used before init()")

    def _path(self, url: str) -> Path:
        return self.directory / hashlib.sha256(url.encode()).hexdigest()

    async def _entry_names(self) -> list[str]:
        try:
            names = await aiofiles.os.listdir(self.directory)
        except OSError as e:
            raise IndexUnavailableError(f"Cannot read library index at {self.directory}: {e}") from e
        return sorted(n for n in names if not n.startswith("."))

    async def _read_entry(self, path: Path) -> dict | None:
        try:
            async with aiofiles.open(path) as f:
                data = json.loads(await f.read())
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Skipping unreadable index entry %s: %s", path.name, e)
            return None
        if not isinstance(data, dict) or "key" not in data or not isinstance(data.get("value"), dict):
            logger.warning("Skipping malformed index entry %s", path.name)
            return None
        return data
