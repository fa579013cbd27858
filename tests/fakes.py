"""In-memory stand-ins for the archive engine, used across the test suite.

Archives are backed by a ``dat.json`` file in their storage directory so
that a second library started on the same directory finds them again.
"""

from __future__ import annotations

import asyncio
import json
import secrets

from datlib.engine.interfaces import ResolvedName
from datlib.engine.naming import KeyResolver
from datlib.registry.models import ArchiveInfo

MANIFEST_FILE = "dat.json"


class FakeHandle:
    def __init__(self, engine: "FakeEngine", key: str, manifest: dict, writable: bool):
        self.engine = engine
        self.key = key
        self.url = f"dat://{key}"
        self._manifest = dict(manifest)
        self._writable = writable
        self.closed = False

    @property
    def writable(self) -> bool:
        return self._writable

    async def ready(self) -> None:
        if self.key in self.engine.hang:
            await asyncio.Event().wait()
        await asyncio.sleep(0)

    async def info(self) -> ArchiveInfo:
        if self.key in self.engine.fail_info:
            raise OSError("metadata unavailable")
        return ArchiveInfo(
            key=self.key,
            url=self.url,
            title=self._manifest.get("title"),
            description=self._manifest.get("description"),
            is_owner=self._writable,
        )

    async def manifest(self) -> dict:
        return dict(self._manifest)

    async def close(self) -> None:
        self.closed = True
        if self.engine.open_handles.get(self.key) is self:
            del self.engine.open_handles[self.key]


class FakeEngine:
    """Archive engine double that records every call it receives."""

    def __init__(self, storage, options=None):
        self.storage = storage
        self.options = options
        self.open_handles: dict[str, FakeHandle] = {}
        self.open_calls: list[str] = []
        self.fork_manifests: list[dict] = []
        self.failing: set[str] = set()
        self.hang: set[str] = set()
        self.fail_info: set[str] = set()
        self.open_delay = 0.0

    def add_archive(self, key: str, manifest: dict | None = None, owner: bool = False) -> None:
        """Write an archive to local storage as if it had been downloaded or created."""
        directory = self.storage.directory_for(key)
        directory.mkdir(parents=True, exist_ok=True)
        data = {"manifest": manifest or {}, "owner": owner}
        (directory / MANIFEST_FILE).write_text(json.dumps(data))

    async def open(self, address: str, options: dict) -> FakeHandle:
        self.open_calls.append(address)
        await asyncio.sleep(self.open_delay)
        if address in self.failing:
            raise OSError(f"cannot open {address}")
        path = self.storage.directory_for(address) / MANIFEST_FILE
        if path.exists():
            data = json.loads(path.read_text())
        else:
            data = {"manifest": {}, "owner": False}
        handle = FakeHandle(self, address, data["manifest"], data["owner"])
        self.open_handles[address] = handle
        return handle

    async def create(self, options: dict, manifest: dict) -> FakeHandle:
        key = secrets.token_hex(32)
        self.add_archive(key, manifest, owner=True)
        handle = FakeHandle(self, key, manifest, True)
        self.open_handles[key] = handle
        return handle

    async def fork(self, source: FakeHandle, options: dict, manifest: dict) -> FakeHandle:
        self.fork_manifests.append(dict(manifest))
        return await self.create(options, manifest)

    def get_open(self, address: str) -> FakeHandle | None:
        return self.open_handles.get(address)


class MappingResolver:
    """Resolver that maps names through a dictionary before falling back to keys."""

    def __init__(self, names: dict[str, str] | None = None):
        self.names = dict(names or {})
        self._keys = KeyResolver()
        self.calls: list[str] = []

    async def resolve(self, name: str) -> str:
        self.calls.append(name)
        if name in self.names:
            return self.names[name]
        return await self._keys.resolve(name)

    async def resolve_url(self, name: str):
        address = await self.resolve(name)
        return ResolvedName(address=address, url=f"dat://{address}")
