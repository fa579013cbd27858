"""The archive library: persisted index plus a cache of live archive handles.

A ``Library`` owns its index, handle cache and usage timestamps. It is
started once with ``init()``; API calls made while startup is in progress
wait for it to finish, and calls made before ``init()`` (or after it
failed) raise ``NotInitializedError``.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import aiofiles.os

from datlib.config import LibraryConfig
from datlib.engine.interfaces import ArchiveEngine, ArchiveHandle, EngineFactory, Migration, NameResolver
from datlib.engine.migrate import MigrationRunner
from datlib.engine.naming import KeyResolver
from datlib.errors import (
    ArchiveTimeoutError,
    LibraryError,
    MigrationError,
    NotInitializedError,
    NotInLibraryError,
)
from datlib.registry.cache import HandleCache
from datlib.registry.models import ArchiveRecord, OpenArchive, ReconcileReport
from datlib.registry.reconciler import Reconciler
from datlib.storage.archive_storage import ArchiveStorage
from datlib.storage.index import LibraryIndex

logger = logging.getLogger(__name__)

# Manifest fields a fork inherits from its source. Nothing else carries over.
PRESERVED_FIELDS_ON_FORK = ("web_root", "fallback_page", "links")


class LibraryState(str, Enum):
    UNSTARTED = "unstarted"
    MIGRATING = "migrating"
    LOADING_INDEX = "loading_index"
    SCANNING_OWNED = "scanning_owned"
    RECONCILING = "reconciling"
    READY = "ready"
    FAILED = "failed"


def preserved_fork_manifest(source: dict[str, Any], options: dict[str, Any]) -> dict[str, Any]:
    """Manifest for a fork: allow-listed fields from the source, then ``options``."""
    manifest = {k: source[k] for k in PRESERVED_FIELDS_ON_FORK if source.get(k) is not None}
    manifest.update(options)
    return manifest


class Library:
    """Registry of known archives and their open handles."""

    def __init__(
        self,
        config: LibraryConfig,
        engine_factory: EngineFactory,
        resolver: Optional[NameResolver] = None,
        migration: Optional[Migration] = None,
    ):
        self.config = config
        self.library_dir = Path(config.library_dir)
        self.storage = ArchiveStorage(config.archive_root)
        self.index = LibraryIndex(config.metadata_root)
        self.cache = HandleCache()
        self.resolver: NameResolver = resolver or KeyResolver()
        self.migration: Migration = migration or MigrationRunner()
        self.engine: ArchiveEngine = engine_factory(self.storage, config.engine_options)

        self.state = LibraryState.UNSTARTED
        self.report: Optional[ReconcileReport] = None
        self._ready = asyncio.Event()
        self._init_error: Optional[BaseException] = None
        self._pending_writes: set[asyncio.Task] = set()

    @property
    def engine_options(self) -> dict[str, Any]:
        return self.config.engine_options.as_dict()

    # -- startup -------------------------------------------------------------

    async def init(self) -> ReconcileReport:
        if self.state is not LibraryState.UNSTARTED:
            raise LibraryError(f"Library already initialized (state: {self.state.value})")
        try:
            report = await self._startup()
        except BaseException as e:
            self.state = LibraryState.FAILED
            self._init_error = e
            self._ready.set()
            raise

        self.report = report
        self.state = LibraryState.READY
        self._ready.set()
        if report.ok:
            logger.info("Library ready at %s (%s)", self.library_dir, report.summary())
        else:
            logger.warning("Library ready at %s with failures (%s)", self.library_dir, report.summary())
        return self.report

    async def _startup(self) -> ReconcileReport:
        self.state = LibraryState.MIGRATING
        await aiofiles.os.makedirs(self.library_dir, exist_ok=True)
        try:
            await self.migration.run(self.library_dir, self.engine)
        except MigrationError:
            raise
        except Exception as e:
            raise MigrationError(f"Migration failed: {e}") from e

        self.state = LibraryState.LOADING_INDEX
        await self.index.init()
        records = await self.index.list()

        self.state = LibraryState.RECONCILING if records else LibraryState.SCANNING_OWNED
        return await Reconciler(self).run(records)

    async def _wait_ready(self) -> None:
        if self.state is LibraryState.UNSTARTED:
            raise NotInitializedError("Library.init() has not been called")
        await self._ready.wait()
        if self.state is LibraryState.FAILED:
            raise NotInitializedError(f"Library failed to initialize: {self._init_error}")

    # -- handles -------------------------------------------------------------

    async def open_handle(self, address: str) -> ArchiveHandle:
        """Open ``address`` through the engine and wait (bounded) for readiness."""
        handle = await self.engine.open(address, self.engine_options)
        try:
            await self._await_ready(address, handle)
        except BaseException:
            await _close_quietly(address, handle)
            raise
        return handle

    async def _await_ready(self, address: str, handle: ArchiveHandle) -> None:
        timeout = self.config.ready_timeout
        if timeout is None:
            await handle.ready()
            return
        try:
            await asyncio.wait_for(handle.ready(), timeout)
        except asyncio.TimeoutError as e:
            raise ArchiveTimeoutError(address, timeout) from e

    async def _open_temporary(self, address: str) -> ArchiveHandle:
        await self.storage.ensure_root()
        return await self.open_handle(address)

    # -- API -----------------------------------------------------------------

    async def list_library(self) -> list[ArchiveRecord]:
        await self._wait_ready()
        return await self.index.list()

    async def get_archive(self, url: str) -> ArchiveHandle:
        """Return the live handle for ``url``, opening a temporary one if needed."""
        await self._wait_ready()
        address = await self.resolver.resolve(url)
        return await self.cache.get(address, self._open_temporary)

    async def create_archive(self, **options: Any) -> str:
        await self._wait_ready()
        handle = await self.engine.create(self.engine_options, options)
        resolved = await self.resolver.resolve_url(handle.url)
        self.cache.put(resolved.address, handle)
        self.update_library_entry(handle)
        logger.info("Created archive %s", handle.url)
        return handle.url

    async def fork_archive(self, source_url: str, **options: Any) -> str:
        await self._wait_ready()
        source_address = await self.resolver.resolve(source_url)
        source = await self.cache.get(source_address, self._open_temporary)
        manifest = preserved_fork_manifest(await source.manifest(), options)

        handle = await self.engine.fork(source, self.engine_options, manifest)
        resolved = await self.resolver.resolve_url(handle.url)
        self.cache.put(resolved.address, handle)
        self.update_library_entry(handle)
        logger.info("Forked %s into %s", source_url, handle.url)
        return handle.url

    async def remove(self, url: str) -> ArchiveRecord:
        await self._wait_ready()
        record = await self.index.get(url)
        if record is None:
            raise NotInLibraryError(url)
        await self.close(url)
        await self.index.delete(url)
        logger.info("Removed %s from the library", url)
        return record

    async def close(self, url: str) -> None:
        await self._wait_ready()
        address = await self.resolver.resolve(url)
        # An open still in flight would otherwise land in the cache after eviction
        await self.cache.wait_pending(address)
        handle = self.engine.get_open(address)
        try:
            if handle is not None:
                await handle.close()
        finally:
            self.cache.remove(address)

    def get_open_archives(self) -> list[OpenArchive]:
        return self.cache.enumerate()

    def update_library_entry(self, handle: ArchiveHandle) -> asyncio.Task:
        """Capture the handle's metadata into the index in the background."""
        task = asyncio.ensure_future(self._write_entry(handle))
        self._pending_writes.add(task)
        task.add_done_callback(self._write_done)
        return task

    async def _write_entry(self, handle: ArchiveHandle) -> ArchiveRecord:
        info = await handle.info()
        record = ArchiveRecord(
            url=info.url,
            directory=self.storage.record_directory(info.key),
            owner=info.is_owner,
            title=info.title,
            description=info.description,
        )
        await self.index.put(handle.url, record)
        return record

    def _write_done(self, task: asyncio.Task) -> None:
        self._pending_writes.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning("Failed to update library entry: %s", error)

    async def settled(self) -> None:
        """Wait for every pending library entry write to finish."""
        while self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)

    async def shutdown(self) -> None:
        """Close every cached handle and flush pending writes."""
        await self.settled()
        logger.info("Shutting down library at %s (%d open archives)", self.library_dir, len(self.cache))
        for address in self.cache.addresses():
            handle = self.cache.remove(address)
            if handle is not None:
                await _close_quietly(address, handle)


async def _close_quietly(address: str, handle: ArchiveHandle) -> None:
    try:
        await handle.close()
    except Exception as e:
        logger.warning("Failed to close archive %s: %s", address, e)
