"""
Shared fixtures: real SQLite stores at any schema version, media folders and settings.

Stores are built by running the registered migration steps up to the requested
version on a plain connection, then seeding a few rows in that version's shape.
"""

from __future__ import annotations

from pathlib import Path
from typing import Awaitable, Callable

import aiosqlite
import pytest

from audioshelf.core.settings import SettingsStore, open_settings_scopes
from audioshelf.core.store.schema import MIGRATION_STEPS, steps_between, write_user_version

StoreBuilder = Callable[..., Awaitable[Path]]

# Zero bytes never contain an MPEG sync word, so mutagen cannot parse these.
FAKE_AUDIO = b"\x00" * 256

MEDIA_FILES = (
    "Loose.mp3",
    "Series/Book 1.m4b",
    "Series/Book 2.m4b",
    "Series/Extras/Bonus.mp3",
)


async def _seed(conn: aiosqlite.Connection, version: int) -> None:
    if version == 0:
        await conn.execute("CREATE TABLE legacy_marker (id INTEGER PRIMARY KEY);")
        return

    await conn.execute("INSERT INTO library (id) VALUES (1);")

    if version >= 4:
        await conn.execute(
            """
            INSERT INTO items (library_id, kind, title, relative_path, sort_index, added_at)
            VALUES (1, 'book', 'Loose', 'Loose.mp3', 0, 100);
            """
        )
        return

    await conn.execute(
        """
        INSERT INTO books (
            library_id, path, title, author, duration_ms,
            current_time_ms, percent_completed, added_at
        ) VALUES
            (1, 'Loose.mp3', 'Loose', 'Ann Author', 60000, 30000, 50, 100),
            (1, 'Finished.mp3', 'Finished', NULL, 1000, 1000, 100, 200);
        """
    )
    if version >= 2:
        await conn.execute(
            "INSERT INTO folders (id, library_id, title, path, added_at) "
            "VALUES (1, 1, 'Series', 'Series', 150);"
        )
        await conn.execute(
            "INSERT INTO books (library_id, path, title, percent_completed, added_at, folder_id) "
            "VALUES (1, 'Series/Book 1.m4b', 'Book 1', 0, 300, 1);"
        )


async def _build_store(path: Path, version: int, *, seed: bool = True) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    async with aiosqlite.connect(str(path), isolation_level=None) as conn:
        await conn.execute("BEGIN;")
        for key in steps_between(0, version):
            await MIGRATION_STEPS[key](conn)
        if seed:
            await _seed(conn, version)
        await write_user_version(conn, version)
        await conn.execute("COMMIT;")
    return path


@pytest.fixture
def store_path(tmp_path: Path) -> Path:
    return tmp_path / "data" / "library.sqlite"


@pytest.fixture
def build_store() -> StoreBuilder:
    """Async factory: `await build_store(path, version)` writes a seeded store."""
    return _build_store


@pytest.fixture
def garbage_store(store_path: Path) -> Path:
    store_path.parent.mkdir(parents=True, exist_ok=True)
    store_path.write_bytes(b"this is definitely not a database " * 16)
    return store_path


@pytest.fixture
def media_root(tmp_path: Path) -> Path:
    root = tmp_path / "media"
    for rel in MEDIA_FILES:
        target = root / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(FAKE_AUDIO)

    # Never imported: hidden path and a non-audio extension.
    (root / ".partial").mkdir()
    (root / ".partial" / "Downloading.mp3").write_bytes(FAKE_AUDIO)
    (root / "Series" / "notes.txt").write_text("cover art credits", encoding="utf-8")
    return root


@pytest.fixture
def settings_scopes(tmp_path: Path) -> tuple[SettingsStore, SettingsStore]:
    return open_settings_scopes(tmp_path / "settings")
