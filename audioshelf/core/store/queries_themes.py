"""
Theme catalog queries used by `LibraryStore`.

These functions assume `conn.row_factory = aiosqlite.Row` and never commit.
"""

from __future__ import annotations

from typing import Any, Iterable

import aiosqlite

from audioshelf.core.store.models import ThemeRow

_THEME_COLUMNS = """
    id, title,
    light_background_hex, light_primary_hex, light_secondary_hex, light_accent_hex,
    dark_background_hex, dark_primary_hex, dark_secondary_hex, dark_accent_hex,
    locked
"""


def _theme_from_row(row: Any) -> ThemeRow:
    return ThemeRow(
        id=int(row["id"]),
        title=str(row["title"]),
        light_background_hex=row["light_background_hex"],
        light_primary_hex=row["light_primary_hex"],
        light_secondary_hex=row["light_secondary_hex"],
        light_accent_hex=row["light_accent_hex"],
        dark_background_hex=row["dark_background_hex"],
        dark_primary_hex=row["dark_primary_hex"],
        dark_secondary_hex=row["dark_secondary_hex"],
        dark_accent_hex=row["dark_accent_hex"],
        locked=bool(row["locked"]),
    )


async def count_themes(conn: aiosqlite.Connection) -> int:
    cursor = await conn.execute("SELECT COUNT(*) AS c FROM themes;")
    row = await cursor.fetchone()
    return int(row["c"]) if row else 0


async def insert_themes(conn: aiosqlite.Connection, themes: Iterable[dict[str, Any]]) -> int:
    """Insert catalog entries, ignoring titles that already exist. Returns rows inserted."""
    inserted = 0
    for theme in themes:
        cursor = await conn.execute(
            """
            INSERT OR IGNORE INTO themes (
                title,
                light_background_hex, light_primary_hex, light_secondary_hex, light_accent_hex,
                dark_background_hex, dark_primary_hex, dark_secondary_hex, dark_accent_hex,
                locked
            ) VALUES (
                :title,
                :light_background_hex, :light_primary_hex, :light_secondary_hex, :light_accent_hex,
                :dark_background_hex, :dark_primary_hex, :dark_secondary_hex, :dark_accent_hex,
                :locked
            );
            """,
            {
                "title": theme["title"],
                "light_background_hex": theme["light_background_hex"],
                "light_primary_hex": theme["light_primary_hex"],
                "light_secondary_hex": theme["light_secondary_hex"],
                "light_accent_hex": theme["light_accent_hex"],
                "dark_background_hex": theme["dark_background_hex"],
                "dark_primary_hex": theme["dark_primary_hex"],
                "dark_secondary_hex": theme["dark_secondary_hex"],
                "dark_accent_hex": theme["dark_accent_hex"],
                "locked": 1 if theme.get("locked") else 0,
            },
        )
        inserted += max(cursor.rowcount, 0)
    return inserted


async def get_theme_by_title(conn: aiosqlite.Connection, title: str) -> ThemeRow | None:
    cursor = await conn.execute(f"SELECT {_THEME_COLUMNS} FROM themes WHERE title = ?;", (title,))
    row = await cursor.fetchone()
    return _theme_from_row(row) if row is not None else None


async def get_theme_by_id(conn: aiosqlite.Connection, theme_id: int) -> ThemeRow | None:
    cursor = await conn.execute(f"SELECT {_THEME_COLUMNS} FROM themes WHERE id = ?;", (int(theme_id),))
    row = await cursor.fetchone()
    return _theme_from_row(row) if row is not None else None


async def list_themes(conn: aiosqlite.Connection) -> list[ThemeRow]:
    cursor = await conn.execute(f"SELECT {_THEME_COLUMNS} FROM themes ORDER BY id;")
    rows = await cursor.fetchall()
    return [_theme_from_row(r) for r in rows]
