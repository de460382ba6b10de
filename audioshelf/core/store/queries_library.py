"""
Library- and item-related DB queries used by `LibraryStore`.

Design:
- Functions are *pure DB helpers*: they take an open `aiosqlite.Connection`
  and return rows/materialized dataclasses.
- These functions assume `conn.row_factory = aiosqlite.Row`.
- They never commit; `LibraryStore.commit()` is the caller's decision.

Important:
- Do NOT interpolate user input into SQL.
"""

from __future__ import annotations

from typing import Any

import aiosqlite

from audioshelf.core.store.models import (
    ItemKind,
    ItemRow,
    LibraryRow,
    NewItem,
    normalize_int,
    normalize_text,
)

# ---------------------------------------------------------------------------
# Library (singleton)
# ---------------------------------------------------------------------------


def _library_from_row(row: Any) -> LibraryRow:
    return LibraryRow(
        id=int(row["id"]),
        current_theme_id=int(row["current_theme_id"]) if row["current_theme_id"] is not None else None,
        sort_order=str(row["sort_order"]),
        show_finished=bool(row["show_finished"]),
    )


async def get_library(conn: aiosqlite.Connection) -> LibraryRow | None:
    cursor = await conn.execute(
        """
        SELECT id, current_theme_id, sort_order, show_finished
        FROM library
        ORDER BY id
        LIMIT 1;
        """
    )
    row = await cursor.fetchone()
    return _library_from_row(row) if row is not None else None


async def create_library(conn: aiosqlite.Connection) -> LibraryRow:
    cursor = await conn.execute("INSERT INTO library DEFAULT VALUES;")
    library_id = cursor.lastrowid
    cursor = await conn.execute(
        "SELECT id, current_theme_id, sort_order, show_finished FROM library WHERE id = ?;",
        (library_id,),
    )
    row = await cursor.fetchone()
    if row is None:
        raise RuntimeError("Insert failed: library row not found after insert.")
    return _library_from_row(row)


async def set_current_theme(conn: aiosqlite.Connection, library_id: int, theme_id: int | None) -> None:
    await conn.execute(
        "UPDATE library SET current_theme_id = ? WHERE id = ?;",
        (theme_id, int(library_id)),
    )


async def set_listing_preferences(
    conn: aiosqlite.Connection, library_id: int, *, sort_order: str, show_finished: bool
) -> None:
    await conn.execute(
        "UPDATE library SET sort_order = ?, show_finished = ? WHERE id = ?;",
        (sort_order, 1 if show_finished else 0, int(library_id)),
    )


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------

_ITEM_COLUMNS = """
    id, kind, title, relative_path, parent_id, sort_index,
    author, duration_ms, current_time_ms, percent_completed, is_finished
"""


def _item_from_row(row: Any) -> ItemRow:
    return ItemRow(
        id=int(row["id"]),
        kind=ItemKind(row["kind"]),
        title=str(row["title"]),
        relative_path=str(row["relative_path"]),
        parent_id=int(row["parent_id"]) if row["parent_id"] is not None else None,
        sort_index=int(row["sort_index"]),
        author=row["author"],
        duration_ms=int(row["duration_ms"]) if row["duration_ms"] is not None else None,
        current_time_ms=int(row["current_time_ms"]),
        percent_completed=float(row["percent_completed"]),
        is_finished=bool(row["is_finished"]),
    )


async def next_sort_index(conn: aiosqlite.Connection, library_id: int, parent_id: int | None) -> int:
    cursor = await conn.execute(
        """
        SELECT COALESCE(MAX(sort_index) + 1, 0) AS n
        FROM items
        WHERE library_id = ? AND parent_id IS ?;
        """,
        (int(library_id), parent_id),
    )
    row = await cursor.fetchone()
    return int(row["n"]) if row else 0


async def insert_item(conn: aiosqlite.Connection, library_id: int, item: NewItem) -> int:
    """Append an item after its last sibling. Returns the item id."""
    title = normalize_text(item.title) or item.relative_path
    sort_index = await next_sort_index(conn, library_id, item.parent_id)
    cursor = await conn.execute(
        """
        INSERT INTO items (
            library_id, parent_id, kind, title, relative_path,
            author, duration_ms, sort_index
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?);
        """,
        (
            int(library_id),
            item.parent_id,
            item.kind.value,
            title,
            item.relative_path,
            normalize_text(item.author),
            normalize_int(item.duration_ms),
            sort_index,
        ),
    )
    if cursor.lastrowid is None:
        raise RuntimeError("Insert failed: item row id missing after insert.")
    return int(cursor.lastrowid)


async def get_item_by_path(conn: aiosqlite.Connection, relative_path: str) -> ItemRow | None:
    cursor = await conn.execute(
        f"SELECT {_ITEM_COLUMNS} FROM items WHERE relative_path = ?;",
        (relative_path,),
    )
    row = await cursor.fetchone()
    return _item_from_row(row) if row is not None else None


async def list_items(
    conn: aiosqlite.Connection,
    library_id: int,
    *,
    parent_id: int | None = None,
) -> list[ItemRow]:
    """Children of `parent_id` (top level when None) in custom order."""
    cursor = await conn.execute(
        f"""
        SELECT {_ITEM_COLUMNS}
        FROM items
        WHERE library_id = ? AND parent_id IS ?
        ORDER BY sort_index, id;
        """,
        (int(library_id), parent_id),
    )
    rows = await cursor.fetchall()
    return [_item_from_row(r) for r in rows]


async def list_all_items(conn: aiosqlite.Connection) -> list[ItemRow]:
    cursor = await conn.execute(
        f"SELECT {_ITEM_COLUMNS} FROM items ORDER BY relative_path COLLATE NOCASE;"
    )
    rows = await cursor.fetchall()
    return [_item_from_row(r) for r in rows]


async def list_item_paths(conn: aiosqlite.Connection) -> set[str]:
    cursor = await conn.execute("SELECT relative_path FROM items;")
    rows = await cursor.fetchall()
    return {str(r["relative_path"]) for r in rows}


async def count_items(conn: aiosqlite.Connection, *, kind: ItemKind | None = None) -> int:
    if kind is None:
        cursor = await conn.execute("SELECT COUNT(*) AS c FROM items;")
    else:
        cursor = await conn.execute("SELECT COUNT(*) AS c FROM items WHERE kind = ?;", (kind.value,))
    row = await cursor.fetchone()
    return int(row["c"]) if row else 0
