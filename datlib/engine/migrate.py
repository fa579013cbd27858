"""On-disk layout migrations.

Steps are registered with an integer version and applied in order. The
highest applied version is written to a marker file in the library root,
so running the migrations again on a migrated root does nothing.

Usage pattern:

    runner = MigrationRunner()
    runner.register(1, "split-metadata", split_metadata)
    await runner.run(library_dir, engine)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable

import aiofiles
import aiofiles.os

from datlib.errors import MigrationError

logger = logging.getLogger(__name__)

VERSION_FILE = ".datlib-version"

StepFn = Callable[[Path, Any], Awaitable[None]]


@dataclass
class MigrationStep:
    version: int
    name: str
    upgrade: StepFn


class MigrationRunner:
    """Versioned migration registry and executor."""

    def __init__(self) -> None:
        self.steps: dict[int, MigrationStep] = {}

    def register(self, version: int, name: str, upgrade: StepFn) -> None:
        if version <= 0:
            raise ValueError("Migration versions start at 1")
        if version in self.steps:
            raise ValueError(f"Migration version {version} already registered")
        self.steps[version] = MigrationStep(version=version, name=name, upgrade=upgrade)

    def get_latest_version(self) -> int:
        """Return the highest registered version, or 0 if none exist."""
        return max(self.steps.keys(), default=0)

    async def current_version(self, root: Path) -> int:
        path = Path(root) / VERSION_FILE
        if not await aiofiles.os.path.exists(path):
            return 0
        try:
            async with aiofiles.open(path) as f:
                return int((await f.read()).strip() or 0)
        except (OSError, ValueError) as e:
            raise MigrationError(f"Unreadable migration marker {path}: {e}") from e

    async def run(self, root: Path, engine: Any) -> None:
        root = Path(root)
        current = await self.current_version(root)
        pending = [self.steps[v] for v in sorted(self.steps) if v > current]
        if not pending:
            logger.debug("Library at %s is up to date (version %d)", root, current)
            return

        logger.info("Migrating %s from version %d to %d", root, current, self.get_latest_version())
        for step in pending:
            logger.info("Applying migration %d (%s) to %s", step.version, step.name, root)
            try:
                await step.upgrade(root, engine)
            except Exception as e:
                raise MigrationError(f"Migration {step.version} ({step.name}) failed: {e}") from e
            await self._write_version(root, step.version)

    async def _write_version(self, root: Path, version: int) -> None:
        async with aiofiles.open(root / VERSION_FILE, "w") as f:
            await f.write(f"{version}\n")
