"""
Internal store subpackage for Audioshelf.

This package splits the library store into focused units (models,
schema/migration steps, and query groups) while keeping `LibraryStore` as the
single public interface that the rest of the codebase imports.

Re-exports here are primarily for convenience inside the `core` package.
External code should import `LibraryStore` from `audioshelf.core.library_store`.
"""

from __future__ import annotations

# Models / DTOs
from .models import ItemKind, ItemRow, LibraryRow, NewItem, SortOrder, ThemeRow

# Schema / migration steps
from .schema import CURRENT_VERSION, MIGRATION_STEPS, initialize_schema, steps_between

__all__ = [
    # models
    "ItemKind",
    "ItemRow",
    "LibraryRow",
    "NewItem",
    "SortOrder",
    "ThemeRow",
    # schema
    "CURRENT_VERSION",
    "MIGRATION_STEPS",
    "initialize_schema",
    "steps_between",
]
