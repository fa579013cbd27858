"""Collaborator interfaces consumed by the library.

The archive engine, name resolver and migration are supplied by the
caller. These protocols describe exactly what the library uses from them.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, Protocol

if TYPE_CHECKING:
    from datlib.config import EngineOptions
    from datlib.registry.models import ArchiveInfo
    from datlib.storage.archive_storage import ArchiveStorage


@dataclass(frozen=True)
class ResolvedName:
    address: str
    url: str


class ArchiveHandle(Protocol):
    """An open session to one archive."""

    url: str

    @property
    def writable(self) -> bool: ...

    async def ready(self) -> None:
        """Resolve once the archive can be read."""

    async def info(self) -> "ArchiveInfo": ...

    async def manifest(self) -> dict[str, Any]:
        """Return the archive's own manifest (title, web_root, links, ...)."""

    async def close(self) -> None: ...


class ArchiveEngine(Protocol):
    """Produces handles to replicated archives."""

    async def open(self, address: str, options: dict[str, Any]) -> ArchiveHandle: ...

    async def create(self, options: dict[str, Any], manifest: dict[str, Any]) -> ArchiveHandle: ...

    async def fork(
        self, source: ArchiveHandle, options: dict[str, Any], manifest: dict[str, Any]
    ) -> ArchiveHandle: ...

    def get_open(self, address: str) -> Optional[ArchiveHandle]:
        """Return the engine's open handle for ``address``, if any."""


class EngineFactory(Protocol):
    def __call__(self, storage: "ArchiveStorage", options: "EngineOptions") -> ArchiveEngine: ...


class NameResolver(Protocol):
    async def resolve(self, name: str) -> str:
        """Return the canonical address for a name or URL."""

    async def resolve_url(self, name: str) -> ResolvedName: ...


class Migration(Protocol):
    async def run(self, root: Path, engine: ArchiveEngine) -> None:
        """Bring ``root`` up to the current layout. Must be idempotent."""
