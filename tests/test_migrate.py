"""Tests for the layout migration runner."""

import asyncio
import tempfile
from pathlib import Path

import pytest

from datlib.engine.migrate import VERSION_FILE, MigrationRunner
from datlib.errors import MigrationError


def test_no_steps_is_a_noop():
    async def scenario(tmpdir):
        runner = MigrationRunner()
        await runner.run(Path(tmpdir), engine=None)
        assert runner.get_latest_version() == 0
        assert not (Path(tmpdir) / VERSION_FILE).exists()

    with tempfile.TemporaryDirectory() as tmpdir:
        asyncio.run(scenario(tmpdir))


def test_steps_apply_in_order_once():
    applied = []

    async def step_one(root, engine):
        applied.append(1)

    async def step_two(root, engine):
        applied.append(2)

    async def scenario(tmpdir):
        runner = MigrationRunner()
        runner.register(2, "second", step_two)
        runner.register(1, "first", step_one)

        await runner.run(Path(tmpdir), engine=None)
        await runner.run(Path(tmpdir), engine=None)

        assert applied == [1, 2]
        assert await runner.current_version(Path(tmpdir)) == 2

    with tempfile.TemporaryDirectory() as tmpdir:
        asyncio.run(scenario(tmpdir))


def test_failed_step_keeps_previous_version():
    async def ok(root, engine):
        pass

    async def broken(root, engine):
        raise OSError("disk full")

    async def scenario(tmpdir):
        runner = MigrationRunner()
        runner.register(1, "ok", ok)
        runner.register(2, "broken", broken)

        with pytest.raises(MigrationError, match="disk full"):
            await runner.run(Path(tmpdir), engine=None)
        assert await runner.current_version(Path(tmpdir)) == 1

    with tempfile.TemporaryDirectory() as tmpdir:
        asyncio.run(scenario(tmpdir))


def test_register_rejects_bad_versions():
    runner = MigrationRunner()
    runner.register(1, "first", None)
    with pytest.raises(ValueError):
        runner.register(1, "again", None)
    with pytest.raises(ValueError):
        runner.register(0, "zero", None)
