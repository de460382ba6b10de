"""
Library store access layer.

Goals:
- Minimal and testable.
- SQLite + aiosqlite, async/await friendly.
- Schema evolves through `PRAGMA user_version` steps (see `core.store.schema`).

Note:
- Models/DTOs and normalization helpers live in `audioshelf.core.store.models`
- Schema/migration steps live in `audioshelf.core.store.schema`
- Query functions live in `audioshelf.core.store.queries_*` modules
- `LibraryStore` is the public facade (the "store handle") used by the rest of
  the codebase. It does not migrate; `StoreLoader` decides when to open it.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable

import aiosqlite

from audioshelf.core import StoreVersionError
from audioshelf.core.store import queries_library, queries_themes
from audioshelf.core.store.models import (
    ItemKind,
    ItemRow,
    LibraryRow,
    NewItem,
    SortOrder,
    ThemeRow,
)
from audioshelf.core.store.schema import CURRENT_VERSION, initialize_schema, read_user_version


class LibraryStore:
    """
    Async access layer for the audiobook library store.

    Usage:
        store = LibraryStore("library.sqlite")
        await store.open()
        await store.verify_schema()
        ... queries ...
        await store.close()

    Notes:
    - A store handle is exclusively owned; never open the same file twice.
    - Connections are not pooled; we keep a single connection.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)
        self._conn: aiosqlite.Connection | None = None

    @property
    def path(self) -> Path:
        return self._db_path

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def open(self) -> None:
        if self._conn is not None:
            return
        self._conn = await aiosqlite.connect(str(self._db_path))
        self._conn.row_factory = aiosqlite.Row

        try:
            # Pragmas: modern defaults without being clever.
            await self._conn.execute("PRAGMA foreign_keys = ON;")
            await self._conn.execute("PRAGMA journal_mode = WAL;")
            await self._conn.execute("PRAGMA synchronous = NORMAL;")
            await self._conn.execute("PRAGMA temp_store = MEMORY;")
        except BaseException:
            await self.close()
            raise

    async def close(self) -> None:
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        await conn.close()

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("LibraryStore is not open. Call await store.open() first.")
        return self._conn

    async def commit(self) -> None:
        conn = self._require_conn()
        await conn.commit()

    # ===========================================================================
    # Schema
    # ===========================================================================

    async def schema_version(self) -> int:
        return await read_user_version(self._require_conn())

    async def initialize_schema(self) -> None:
        """Create the current schema in a brand-new, empty store."""
        conn = self._require_conn()
        await conn.execute("BEGIN;")
        try:
            await initialize_schema(conn)
            await conn.commit()
        except BaseException:
            await conn.rollback()
            raise

    async def verify_schema(self) -> None:
        """
        Ensure the store is at the running code's schema version.

        Raises:
            StoreVersionError: the store needs migration or is newer than supported.
            sqlite3.DatabaseError: the file is not a readable SQLite database.
        """
        conn = self._require_conn()
        # Touch the schema table so a damaged header surfaces here, not later.
        await conn.execute("SELECT COUNT(*) FROM sqlite_master;")
        version = await read_user_version(conn)
        if version != CURRENT_VERSION:
            raise StoreVersionError(version, CURRENT_VERSION)

    # ===========================================================================
    # Library root
    # ===========================================================================

    async def get_library(self) -> LibraryRow | None:
        return await queries_library.get_library(self._require_conn())

    async def create_library(self) -> LibraryRow:
        return await queries_library.create_library(self._require_conn())

    async def ensure_library(self) -> LibraryRow:
        """Return the singleton library, creating it when absent. Does not commit."""
        library = await self.get_library()
        if library is not None:
            return library
        return await self.create_library()

    async def set_current_theme(self, library_id: int, theme_id: int | None) -> None:
        await queries_library.set_current_theme(self._require_conn(), library_id, theme_id)

    async def set_listing_preferences(
        self, library_id: int, *, sort_order: SortOrder, show_finished: bool
    ) -> None:
        await queries_library.set_listing_preferences(
            self._require_conn(),
            library_id,
            sort_order=sort_order.value,
            show_finished=show_finished,
        )

    # ===========================================================================
    # Items
    # ===========================================================================

    async def insert_item(self, library_id: int, item: NewItem) -> int:
        return await queries_library.insert_item(self._require_conn(), library_id, item)

    async def get_item_by_path(self, relative_path: str) -> ItemRow | None:
        return await queries_library.get_item_by_path(self._require_conn(), relative_path)

    async def list_items(self, library_id: int, *, parent_id: int | None = None) -> list[ItemRow]:
        return await queries_library.list_items(
            self._require_conn(), library_id, parent_id=parent_id
        )

    async def list_all_items(self) -> list[ItemRow]:
        return await queries_library.list_all_items(self._require_conn())

    async def item_paths(self) -> set[str]:
        return await queries_library.list_item_paths(self._require_conn())

    async def count_items(self, *, kind: ItemKind | None = None) -> int:
        return await queries_library.count_items(self._require_conn(), kind=kind)

    # ===========================================================================
    # Themes
    # ===========================================================================

    async def has_themes_loaded(self) -> bool:
        return await queries_themes.count_themes(self._require_conn()) > 0

    async def load_themes(self, themes: Iterable[dict[str, Any]]) -> int:
        """Insert the catalog atomically; a partial catalog is never committed."""
        conn = self._require_conn()
        try:
            inserted = await queries_themes.insert_themes(conn, themes)
        except BaseException:
            await conn.rollback()
            raise
        await conn.commit()
        return inserted

    async def get_theme(self, title: str) -> ThemeRow | None:
        return await queries_themes.get_theme_by_title(self._require_conn(), title)

    async def get_theme_by_id(self, theme_id: int) -> ThemeRow | None:
        return await queries_themes.get_theme_by_id(self._require_conn(), theme_id)

    async def list_themes(self) -> list[ThemeRow]:
        return await queries_themes.list_themes(self._require_conn())

    async def get_current_theme(self) -> ThemeRow | None:
        library = await self.get_library()
        if library is None or library.current_theme_id is None:
            return None
        return await self.get_theme_by_id(library.current_theme_id)
