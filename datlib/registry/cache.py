"""In-memory cache of live archive handles, keyed by canonical address."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from datlib.engine.interfaces import ArchiveHandle
from datlib.registry.models import OpenArchive

logger = logging.getLogger(__name__)

Opener = Callable[[str], Awaitable[ArchiveHandle]]


class HandleCache:
    """At most one live handle per canonical address.

    Concurrent first requests for the same address share a single
    in-flight construction. Nothing is evicted automatically; handles
    stay until ``remove()`` is called.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._handles: dict[str, ArchiveHandle] = {}
        self._usage: dict[str, float] = {}
        self._pending: dict[str, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._handles)

    def addresses(self) -> list[str]:
        return list(self._handles)

    def last_used(self, address: str) -> Optional[float]:
        return self._usage.get(address)

    async def get(self, address: str, opener: Opener) -> ArchiveHandle:
        """Return the cached handle for ``address``, constructing it on a miss."""
        handle = self._handles.get(address)
        if handle is None:
            task = self._pending.get(address)
            if task is None:
                task = asyncio.ensure_future(self._construct(address, opener))
                self._pending[address] = task
                task.add_done_callback(lambda _t: self._pending.pop(address, None))
            else:
                logger.debug("Joining in-flight open for %s", address)
            handle = await asyncio.shield(task)
        self.touch(address)
        return handle

    async def _construct(self, address: str, opener: Opener) -> ArchiveHandle:
        handle = await opener(address)
        self._handles[address] = handle
        return handle

    async def wait_pending(self, address: str) -> None:
        """Wait for an in-flight construction of ``address``, if any, to finish.

        The construction's own error, if it fails, is left to its callers.
        """
        task = self._pending.get(address)
        if task is not None:
            await asyncio.wait({task})

    def put(self, address: str, handle: ArchiveHandle) -> None:
        self._handles[address] = handle

    def touch(self, address: str) -> None:
        # Evicted addresses keep no timestamp
        if address in self._handles:
            self._usage[address] = self._clock()

    def remove(self, address: str) -> Optional[ArchiveHandle]:
        """Evict a handle and its usage timestamp. The handle is not closed."""
        self._usage.pop(address, None)
        return self._handles.pop(address, None)

    def enumerate(self) -> list[OpenArchive]:
        return [
            OpenArchive(address=address, url=handle.url, last_used=self._usage.get(address))
            for address, handle in self._handles.items()
        ]
