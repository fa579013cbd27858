"""Startup reconciliation of the library index against local storage.

Two paths, chosen by whether the index holds any records:

- ownership scan (empty index): every directory under the archive root is
  opened; writable archives are registered, the rest are closed again.
- record reconciliation: every indexed URL is resolved and opened; entries
  that fail are pruned from the index.

Items are processed concurrently. A failing item is logged and collected
in the report, and never aborts startup.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from datlib.registry.models import ArchiveRecord, ReconcileFailure, ReconcileReport

if TYPE_CHECKING:
    from datlib.registry.library import Library

logger = logging.getLogger(__name__)


class Reconciler:
    def __init__(self, library: "Library"):
        self.library = library

    async def run(self, records: list[ArchiveRecord]) -> ReconcileReport:
        if not records:
            return await self.scan_owned()
        return await self.reload_records(records)

    # -- ownership scan ------------------------------------------------------

    async def scan_owned(self) -> ReconcileReport:
        report = ReconcileReport(mode="ownership_scan")
        candidates = await self.library.storage.candidates()
        logger.info("Library index empty; scanning %d local archive(s)", len(candidates))

        await asyncio.gather(*(self._check_owned(c, report) for c in candidates))
        # Registered archives should be listed as soon as init() returns
        await self.library.settled()
        return report

    async def _check_owned(self, address: str, report: ReconcileReport) -> None:
        try:
            handle = await self.library.cache.get(address, self.library.open_handle)
        except Exception as e:
            logger.warning("Skipping local archive %s: %s", address, e)
            report.failures.append(ReconcileFailure(item=address, reason=_reason(e)))
            return

        if handle.writable:
            self.library.update_library_entry(handle)
            report.registered.append(address)
            report.loaded.append(address)
            logger.info("Registered owned archive %s", address)
            return

        report.discarded.append(address)
        self.library.cache.remove(address)
        try:
            await handle.close()
        except Exception as e:
            logger.warning("Failed to close non-owned archive %s: %s", address, e)

    # -- record reconciliation -----------------------------------------------

    async def reload_records(self, records: list[ArchiveRecord]) -> ReconcileReport:
        report = ReconcileReport(mode="records")
        logger.info("Loading %d archive(s) from library index", len(records))
        await asyncio.gather(*(self._load_record(r, report) for r in records))
        return report

    async def _load_record(self, record: ArchiveRecord, report: ReconcileReport) -> None:
        try:
            address = await self.library.resolver.resolve(record.url)
            # Aliases of one address share its handle
            await self.library.cache.get(address, self.library.open_handle)
        except Exception as e:
            logger.warning("Failed to load %s, removing it from the library: %s", record.url, e)
            report.failures.append(ReconcileFailure(item=record.url, reason=_reason(e)))
            report.pruned.append(record.url)
            try:
                await self.library.index.delete(record.url)
            except Exception as delete_error:
                logger.error("Failed to prune %s from the index: %s", record.url, delete_error)
            return

        if address not in report.loaded:
            report.loaded.append(address)


def _reason(error: BaseException) -> str:
    return str(error) or type(error).__name__
