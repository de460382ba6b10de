"""
Maps raw storage errors into the three outcomes the loading sequence acts on.

Matching is done on a closed set of conditions (errno values, SQLite result
codes, and our own error types), walking the `__cause__`/`__context__` chain so
that a wrapped `ENOSPC` is still recognized as a full disk.
"""

from __future__ import annotations

import errno
import logging
import sqlite3
from enum import Enum
from typing import Final, Iterator

from audioshelf.core import StoreVersionError
from audioshelf.core.loading.migrator import MigrationError

logger = logging.getLogger(__name__)

# Primary SQLite result codes (extended codes carry these in the low byte).
SQLITE_CORRUPT: Final[int] = 11
SQLITE_FULL: Final[int] = 13
SQLITE_SCHEMA: Final[int] = 17
SQLITE_NOTADB: Final[int] = 26

DISK_FULL_ERRNOS: Final[frozenset[int]] = frozenset(
    {errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC)}
)
CORRUPTION_SQLITE_CODES: Final[frozenset[int]] = frozenset(
    {SQLITE_CORRUPT, SQLITE_NOTADB, SQLITE_SCHEMA}
)

# Fallbacks for SQLite builds that do not expose result codes on exceptions.
_DISK_FULL_MESSAGES: Final[tuple[str, ...]] = ("database or disk is full",)
_CORRUPTION_MESSAGES: Final[tuple[str, ...]] = (
    "database disk image is malformed",
    "file is not a database",
    "file is encrypted or is not a database",
    "database schema has changed",
)

_MAX_CHAIN_DEPTH: Final[int] = 16


class FailureKind(str, Enum):
    DISK_FULL = "disk_full"
    MIGRATION_CORRUPTION = "migration_corruption"
    UNKNOWN_FATAL = "unknown_fatal"


def _chain(error: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = error
    while current is not None and id(current) not in seen and len(seen) < _MAX_CHAIN_DEPTH:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def _sqlite_code(error: sqlite3.Error) -> int | None:
    code = getattr(error, "sqlite_errorcode", None)
    return int(code) & 0xFF if isinstance(code, int) else None


def _message(error: BaseException) -> str:
    return str(error).lower()


def is_disk_full(error: BaseException) -> bool:
    for e in _chain(error):
        if isinstance(e, OSError) and e.errno in DISK_FULL_ERRNOS:
            return True
        if isinstance(e, sqlite3.Error):
            code = _sqlite_code(e)
            if code == SQLITE_FULL:
                return True
            if code is None and any(m in _message(e) for m in _DISK_FULL_MESSAGES):
                return True
    return False


def is_structural_corruption(error: BaseException) -> bool:
    for e in _chain(error):
        if isinstance(e, (MigrationError, StoreVersionError)):
            return True
        if isinstance(e, sqlite3.DatabaseError):
            code = _sqlite_code(e)
            if code in CORRUPTION_SQLITE_CODES:
                return True
            if code is None and any(m in _message(e) for m in _CORRUPTION_MESSAGES):
                return True
    return False


class FailureClassifier:
    """Classifies storage errors; disk exhaustion wins over corruption."""

    def classify(self, error: BaseException) -> FailureKind:
        if is_disk_full(error):
            kind = FailureKind.DISK_FULL
        elif is_structural_corruption(error):
            kind = FailureKind.MIGRATION_CORRUPTION
        else:
            kind = FailureKind.UNKNOWN_FATAL

        logger.debug("Classified %s: %s as %s", type(error).__name__, error, kind.value)
        return kind
