"""
Database schema + migration steps for the library store.

Design notes:
- We use SQLite `PRAGMA user_version` as the schema version.
- Migrations are forward-only (no downgrade support).
- Every step is a separate coroutine registered under its (from, to) pair, so a
  store can be advanced exactly one version at a time. The migrator is
  responsible for running a step on a temporary copy and swapping it in.
- Steps must not commit; the caller owns the transaction.

Bump `CURRENT_VERSION` when you change the schema, and register the new step in
`MIGRATION_STEPS`.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Final, Mapping

import aiosqlite

CURRENT_VERSION: Final[int] = 5

StepFunc = Callable[[aiosqlite.Connection], Awaitable[None]]
StepKey = tuple[int, int]


async def read_user_version(conn: aiosqlite.Connection) -> int:
    cursor = await conn.execute("PRAGMA user_version;")
    row = await cursor.fetchone()
    return int(row[0]) if row is not None else 0


async def write_user_version(conn: aiosqlite.Connection, version: int) -> None:
    # PRAGMA does not accept bound parameters.
    await conn.execute(f"PRAGMA user_version = {int(version)};")


async def list_tables(conn: aiosqlite.Connection) -> set[str]:
    cursor = await conn.execute(
        "SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%';"
    )
    rows = await cursor.fetchall()
    return {str(r[0]) for r in rows}


# v0 -> v1
async def _v0_to_v1(conn: aiosqlite.Connection) -> None:
    await conn.execute(
        """
        CREATE TABLE IF NOT EXISTS library (
            id INTEGER PRIMARY KEY,
            created_at INTEGER NOT NULL DEFAULT (strftime('%s', 'now'))
        )
        """
    )
    await conn.execute(
        """
        CREATE TABLE IF NOT EXISTS books (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            library_id INTEGER NOT NULL REFERENCES library(id) ON DELETE CASCADE,
            path TEXT NOT NULL UNIQUE,
            title TEXT NOT NULL,
            author TEXT,
            duration_ms INTEGER,
            current_time_ms INTEGER NOT NULL DEFAULT 0,
            percent_completed REAL NOT NULL DEFAULT 0,
            added_at INTEGER NOT NULL DEFAULT (strftime('%s', 'now'))
        )
        """
    )
    await conn.execute("CREATE INDEX IF NOT EXISTS idx_books_library ON books(library_id);")


# v1 -> v2
async def _v1_to_v2(conn: aiosqlite.Connection) -> None:
    # Folders (called playlists by some importers) group books one level deep.
    await conn.execute(
        """
        CREATE TABLE IF NOT EXISTS folders (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            library_id INTEGER NOT NULL REFERENCES library(id) ON DELETE CASCADE,
            title TEXT NOT NULL,
            path TEXT NOT NULL UNIQUE,
            added_at INTEGER NOT NULL DEFAULT (strftime('%s', 'now'))
        )
        """
    )
    await conn.execute(
        "ALTER TABLE books ADD COLUMN folder_id INTEGER REFERENCES folders(id) ON DELETE SET NULL;"
    )
    await conn.execute("CREATE INDEX IF NOT EXISTS idx_books_folder ON books(folder_id);")


# v2 -> v3
async def _v2_to_v3(conn: aiosqlite.Connection) -> None:
    await conn.execute(
        """
        CREATE TABLE IF NOT EXISTS themes (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            title TEXT NOT NULL UNIQUE,
            light_background_hex TEXT NOT NULL,
            light_primary_hex TEXT NOT NULL,
            light_secondary_hex TEXT NOT NULL,
            light_accent_hex TEXT NOT NULL,
            dark_background_hex TEXT NOT NULL,
            dark_primary_hex TEXT NOT NULL,
            dark_secondary_hex TEXT NOT NULL,
            dark_accent_hex TEXT NOT NULL,
            locked INTEGER NOT NULL DEFAULT 0
        )
        """
    )
    await conn.execute(
        "ALTER TABLE library ADD COLUMN current_theme_id INTEGER "
        "REFERENCES themes(id) ON DELETE SET NULL;"
    )


# v3 -> v4
async def _v3_to_v4(conn: aiosqlite.Connection) -> None:
    # Explicit mapping: books and folders become one ordered item hierarchy.
    await conn.execute(
        """
        CREATE TABLE items (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            library_id INTEGER NOT NULL REFERENCES library(id) ON DELETE CASCADE,
            parent_id INTEGER REFERENCES items(id) ON DELETE CASCADE,
            kind TEXT NOT NULL CHECK (kind IN ('book', 'folder')),
            title TEXT NOT NULL,
            relative_path TEXT NOT NULL UNIQUE,
            author TEXT,
            duration_ms INTEGER,
            current_time_ms INTEGER NOT NULL DEFAULT 0,
            percent_completed REAL NOT NULL DEFAULT 0,
            sort_index INTEGER NOT NULL DEFAULT 0,
            added_at INTEGER NOT NULL DEFAULT (strftime('%s', 'now'))
        )
        """
    )

    await conn.execute(
        """
        INSERT INTO items (library_id, parent_id, kind, title, relative_path, added_at)
        SELECT library_id, NULL, 'folder', title, path, added_at
        FROM folders
        """
    )

    # Folder paths are unique, so they identify the new folder item.
    await conn.execute(
        """
        INSERT INTO items (
            library_id, parent_id, kind, title, relative_path,
            author, duration_ms, current_time_ms, percent_completed, added_at
        )
        SELECT
            b.library_id,
            (
                SELECT i.id FROM items i
                JOIN folders f ON f.path = i.relative_path
                WHERE i.kind = 'folder' AND f.id = b.folder_id
            ),
            'book',
            b.title,
            b.path,
            b.author,
            b.duration_ms,
            b.current_time_ms,
            b.percent_completed,
            b.added_at
        FROM books b
        ORDER BY b.added_at, b.id
        """
    )

    # Custom ordering: position among siblings, oldest first.
    await conn.execute(
        """
        UPDATE items
        SET sort_index = (
            SELECT COUNT(*) FROM items AS o
            WHERE o.library_id = items.library_id
              AND o.parent_id IS items.parent_id
              AND (o.added_at < items.added_at OR (o.added_at = items.added_at AND o.id < items.id))
        )
        """
    )

    await conn.execute("DROP TABLE books;")
    await conn.execute("DROP TABLE folders;")

    await conn.execute("CREATE INDEX IF NOT EXISTS idx_items_library ON items(library_id);")
    await conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_items_parent_sort ON items(parent_id, sort_index);"
    )


# v4 -> v5
async def _v4_to_v5(conn: aiosqlite.Connection) -> None:
    # Listing preferences + finished flag
    await conn.execute("ALTER TABLE library ADD COLUMN sort_order TEXT NOT NULL DEFAULT 'custom';")
    await conn.execute("ALTER TABLE library ADD COLUMN show_finished INTEGER NOT NULL DEFAULT 1;")
    await conn.execute("ALTER TABLE items ADD COLUMN is_finished INTEGER NOT NULL DEFAULT 0;")
    await conn.execute(
        "UPDATE items SET is_finished = 1 WHERE kind = 'book' AND percent_completed >= 100;"
    )


MIGRATION_STEPS: Final[Mapping[StepKey, StepFunc]] = {
    (0, 1): _v0_to_v1,
    (1, 2): _v1_to_v2,
    (2, 3): _v2_to_v3,
    (3, 4): _v3_to_v4,
    (4, 5): _v4_to_v5,
}

# Tables every store at a given version must contain.
REQUIRED_TABLES: Final[Mapping[int, frozenset[str]]] = {
    0: frozenset(),
    1: frozenset({"library", "books"}),
    2: frozenset({"library", "books", "folders"}),
    3: frozenset({"library", "books", "folders", "themes"}),
    4: frozenset({"library", "items", "themes"}),
    5: frozenset({"library", "items", "themes"}),
}

OLDEST_VERSION: Final[int] = min(frm for frm, _ in MIGRATION_STEPS)


def steps_between(from_version: int, to_version: int = CURRENT_VERSION) -> list[StepKey]:
    """Every single-version step from `from_version` up to `to_version`, ascending."""
    return [(v, v + 1) for v in range(from_version, to_version)]


async def initialize_schema(
    conn: aiosqlite.Connection,
    *,
    steps: Mapping[StepKey, StepFunc] = MIGRATION_STEPS,
) -> None:
    """
    Create the current schema in an empty database.

    Runs the same steps a migration would, so a fresh store and a migrated store
    are structurally identical. The caller owns the transaction.
    """
    for key in steps_between(0, CURRENT_VERSION):
        await steps[key](conn)
    await write_user_version(conn, CURRENT_VERSION)
