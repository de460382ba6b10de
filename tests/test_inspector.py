"""
Tests for SchemaVersionInspector.

Tests cover:
- Missing, empty and non-SQLite files are unreadable
- Current and older stores (with the exact step list)
- Stores newer than the code, or older than any registered step
- Versions committed only to the WAL sidecar
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from audioshelf.core.loading.inspector import InspectStatus, SchemaVersionInspector
from audioshelf.core.store.schema import CURRENT_VERSION, MIGRATION_STEPS


def _set_user_version(path: Path, version: int) -> None:
    conn = sqlite3.connect(str(path))
    try:
        conn.execute(f"PRAGMA user_version = {int(version)};")
        conn.commit()
    finally:
        conn.close()


class TestUnreadable:
    """Locations without a SQLite store."""

    @pytest.fixture
    def inspector(self) -> SchemaVersionInspector:
        return SchemaVersionInspector()

    async def test_missing_file(self, inspector: SchemaVersionInspector, store_path: Path) -> None:
        result = await inspector.inspect(store_path)
        assert result.status == InspectStatus.UNREADABLE
        assert result.version is None
        assert result.reason == "missing"

    async def test_empty_file(self, inspector: SchemaVersionInspector, store_path: Path) -> None:
        store_path.parent.mkdir(parents=True)
        store_path.touch()

        result = await inspector.inspect(store_path)
        assert result.status == InspectStatus.UNREADABLE

    async def test_garbage_file(
        self, inspector: SchemaVersionInspector, garbage_store: Path
    ) -> None:
        """No format marker: unreadable, and the file is left alone."""
        before = garbage_store.read_bytes()

        result = await inspector.inspect(garbage_store)

        assert result.status == InspectStatus.UNREADABLE
        assert result.reason == "no SQLite format marker"
        assert garbage_store.read_bytes() == before


class TestVersions:
    """Stores with a readable header."""

    async def test_current(self, build_store, store_path: Path) -> None:
        await build_store(store_path, CURRENT_VERSION)

        result = await SchemaVersionInspector().inspect(store_path)

        assert result.status == InspectStatus.CURRENT
        assert result.version == CURRENT_VERSION
        assert result.steps == ()

    @pytest.mark.parametrize("version", range(0, CURRENT_VERSION))
    async def test_needs_migration_lists_every_step(
        self, build_store, store_path: Path, version: int
    ) -> None:
        await build_store(store_path, version)

        result = await SchemaVersionInspector().inspect(store_path)

        assert result.status == InspectStatus.NEEDS_MIGRATION
        assert result.version == version
        assert result.steps == tuple((v, v + 1) for v in range(version, CURRENT_VERSION))

    async def test_newer_than_code_is_incompatible(self, build_store, store_path: Path) -> None:
        await build_store(store_path, CURRENT_VERSION)
        _set_user_version(store_path, CURRENT_VERSION + 4)

        result = await SchemaVersionInspector().inspect(store_path)

        assert result.status == InspectStatus.INCOMPATIBLE
        assert result.version == CURRENT_VERSION + 4

    async def test_older_than_oldest_step_is_incompatible(
        self, build_store, store_path: Path
    ) -> None:
        await build_store(store_path, 1)
        steps = {key: func for key, func in MIGRATION_STEPS.items() if key[0] >= 2}

        result = await SchemaVersionInspector(steps=steps).inspect(store_path)

        assert result.status == InspectStatus.INCOMPATIBLE
        assert result.version == 1

    async def test_gap_in_registered_steps_is_incompatible(
        self, build_store, store_path: Path
    ) -> None:
        await build_store(store_path, 2)
        steps = {key: func for key, func in MIGRATION_STEPS.items() if key != (3, 4)}

        result = await SchemaVersionInspector(steps=steps).inspect(store_path)

        assert result.status == InspectStatus.INCOMPATIBLE
        assert result.version == 2
        assert result.steps == ()
        assert "from version 3 to 4" in result.reason

    async def test_reads_version_only(self, build_store, store_path: Path) -> None:
        """Inspection must not modify the store file."""
        await build_store(store_path, 2)
        before = store_path.read_bytes()

        await SchemaVersionInspector().inspect(store_path)

        assert store_path.read_bytes() == before


class TestWriteAheadLog:
    """The header is stale while commits sit in the -wal sidecar."""

    async def test_reads_version_through_sqlite(self, build_store, store_path: Path) -> None:
        await build_store(store_path, 2)

        writer = sqlite3.connect(str(store_path), isolation_level=None)
        try:
            writer.execute("PRAGMA journal_mode = WAL;")
            writer.execute("PRAGMA wal_autocheckpoint = 0;")
            writer.execute("PRAGMA user_version = 3;")

            wal = store_path.with_name(store_path.name + "-wal")
            assert wal.exists() and wal.stat().st_size > 0

            inspector = SchemaVersionInspector()
            assert await inspector.read_version(store_path) == 3
            result = await inspector.inspect(store_path)
            assert result.steps == tuple((v, v + 1) for v in range(3, CURRENT_VERSION))
        finally:
            writer.close()
