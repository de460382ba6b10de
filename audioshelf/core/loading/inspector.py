"""
Schema version inspection without opening the store for writing.

SQLite keeps `PRAGMA user_version` in the 100-byte database header (big-endian
u32 at offset 60), so the version can be read from the file directly. The one
exception is a store whose last commits still live in its `-wal` sidecar: the
header may be stale, so we ask SQLite through a read-only connection instead.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Final, Mapping

import aiosqlite

from audioshelf.core.store.schema import (
    CURRENT_VERSION,
    MIGRATION_STEPS,
    StepFunc,
    StepKey,
    read_user_version,
    steps_between,
)

logger = logging.getLogger(__name__)

SQLITE_HEADER_MAGIC: Final[bytes] = b"SQLite format 3\x00"
SQLITE_HEADER_SIZE: Final[int] = 100
USER_VERSION_OFFSET: Final[int] = 60


class InspectStatus(str, Enum):
    CURRENT = "current"
    NEEDS_MIGRATION = "needs_migration"
    UNREADABLE = "unreadable"
    INCOMPATIBLE = "incompatible"


@dataclass(frozen=True, slots=True)
class InspectResult:
    """
    Outcome of inspecting a store location.

    - CURRENT: schema matches the running code.
    - NEEDS_MIGRATION: `steps` lists every (from, to) pair, ascending.
    - UNREADABLE: missing file or no SQLite format marker; treat as a fresh store.
    - INCOMPATIBLE: newer than the code, or older than any known step.
    """

    status: InspectStatus
    version: int | None = None
    steps: tuple[StepKey, ...] = field(default_factory=tuple)
    reason: str = ""


def wal_path(location: Path) -> Path:
    return location.with_name(location.name + "-wal")


def _read_header(location: Path) -> bytes | None:
    try:
        with location.open("rb") as f:
            return f.read(SQLITE_HEADER_SIZE)
    except FileNotFoundError:
        return None


async def _read_version_via_sqlite(location: Path) -> int:
    uri = f"{location.resolve().as_uri()}?mode=ro"
    async with aiosqlite.connect(uri, uri=True) as conn:
        return await read_user_version(conn)


class SchemaVersionInspector:
    """
    Decides whether a store is current, needs N migration steps, or is unreadable.

    Reads only store metadata, never content.
    """

    def __init__(
        self,
        *,
        current_version: int = CURRENT_VERSION,
        steps: Mapping[StepKey, StepFunc] = MIGRATION_STEPS,
    ) -> None:
        self._current_version = current_version
        self._steps = steps
        self._oldest_version = min((frm for frm, _ in steps), default=current_version)

    @property
    def current_version(self) -> int:
        return self._current_version

    async def read_version(self, location: Path) -> int | None:
        """Return the on-disk version, or None when the format marker is absent."""
        header = await asyncio.to_thread(_read_header, location)
        if header is None or len(header) < SQLITE_HEADER_SIZE:
            return None
        if not header.startswith(SQLITE_HEADER_MAGIC):
            return None

        wal = wal_path(location)
        if wal.exists() and wal.stat().st_size > 0:
            logger.debug("Store %s has a pending WAL; reading version through SQLite", location)
            try:
                return await _read_version_via_sqlite(location)
            except sqlite3.DatabaseError as e:
                logger.warning("Could not read schema version of %s: %s", location, e)
                return None

        return int.from_bytes(header[USER_VERSION_OFFSET : USER_VERSION_OFFSET + 4], "big")

    async def inspect(self, location: Path) -> InspectResult:
        version = await self.read_version(location)

        if version is None:
            reason = "missing" if not location.exists() else "no SQLite format marker"
            logger.debug("Store %s is unreadable (%s)", location, reason)
            return InspectResult(status=InspectStatus.UNREADABLE, reason=reason)

        if version == self._current_version:
            return InspectResult(status=InspectStatus.CURRENT, version=version)

        if version > self._current_version:
            return InspectResult(
                status=InspectStatus.INCOMPATIBLE,
                version=version,
                reason=f"newer than supported version {self._current_version}",
            )

        if version < self._oldest_version:
            return InspectResult(
                status=InspectStatus.INCOMPATIBLE,
                version=version,
                reason=f"older than oldest migratable version {self._oldest_version}",
            )

        steps = tuple(steps_between(version, self._current_version))
        gaps = [step for step in steps if step not in self._steps]
        if gaps:
            frm, to = gaps[0]
            return InspectResult(
                status=InspectStatus.INCOMPATIBLE,
                version=version,
                reason=f"no migration registered from version {frm} to {to}",
            )

        logger.info(
            "Store %s is at version %d; %d migration step(s) required",
            location,
            version,
            len(steps),
        )
        return InspectResult(status=InspectStatus.NEEDS_MIGRATION, version=version, steps=steps)
