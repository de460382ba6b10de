"""
Store models (DTOs) and small normalization helpers.

This module is intentionally lightweight:
- No DB connection knowledge
- No SQL
- Pure dataclasses + helper functions
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ItemKind(str, Enum):
    BOOK = "book"
    FOLDER = "folder"


class SortOrder(str, Enum):
    """Listing preference stored on the library row (schema v5+)."""

    CUSTOM = "custom"
    TITLE = "title"
    MOST_RECENT = "most_recent"


@dataclass(frozen=True, slots=True)
class LibraryRow:
    """
    The singleton library record.

    Notes:
    - Exactly one row exists in a valid store; it is created lazily.
    - `current_theme_id` is a FK to `themes` (schema v3+).
    """

    id: int
    current_theme_id: int | None
    sort_order: str
    show_finished: bool


@dataclass(frozen=True, slots=True)
class ItemRow:
    """
    A top-level or nested library item as stored in SQLite (schema v4+).

    `relative_path` is relative to the media folder and is the stable identity of
    an item across rebuilds.
    """

    id: int
    kind: ItemKind
    title: str
    relative_path: str
    parent_id: int | None
    sort_index: int
    author: str | None = None
    duration_ms: int | None = None
    current_time_ms: int = 0
    percent_completed: float = 0.0
    is_finished: bool = False


@dataclass(frozen=True, slots=True)
class ThemeRow:
    """A theme from the catalog."""

    id: int
    title: str
    light_background_hex: str
    light_primary_hex: str
    light_secondary_hex: str
    light_accent_hex: str
    dark_background_hex: str
    dark_primary_hex: str
    dark_secondary_hex: str
    dark_accent_hex: str
    locked: bool = False


@dataclass(frozen=True, slots=True)
class NewItem:
    """
    Input record used by importers and the rebuilder.

    `relative_path` is required and must identify the same file (or folder)
    across imports.
    """

    kind: ItemKind
    title: str
    relative_path: str
    parent_id: int | None = None
    author: str | None = None
    duration_ms: int | None = None


def normalize_text(value: str | None) -> str | None:
    """
    Normalize optional text fields:
    - strip whitespace
    - coerce empty strings to None
    """
    if value is None:
        return None
    v = value.strip()
    return v if v else None


def normalize_int(value: int | float | None) -> int | None:
    """Normalize optional integer fields (coerce to int, keep None)."""
    if value is None:
        return None
    return int(value)
