"""
Stepwise, file-atomic schema migration.

Each step advances a store by exactly one version:

1. Copy the store into `<store>.migrating-<to>` with SQLite's online backup
   (this also folds in any committed WAL frames).
2. Run the registered step on the copy inside one transaction and stamp the new
   `user_version`.
3. Validate the copy (integrity, foreign keys, expected tables, version).
4. fsync, drop the original's WAL/SHM sidecars, and `os.replace` the copy over
   the original.

Until step 4 the original file is never written, so a crash or a full disk
leaves the store at the pre-step version and the step can simply be re-run.
"""

from __future__ import annotations

import asyncio
import logging
import os
import sqlite3
from enum import Enum
from pathlib import Path
from typing import Mapping, Sequence

import aiosqlite

from audioshelf.core import CoreError
from audioshelf.core.events import EventBus, MigrationProgressEvent, ProgressCallback, dispatch
from audioshelf.core.result import Err, Ok, Result
from audioshelf.core.store.schema import (
    MIGRATION_STEPS,
    REQUIRED_TABLES,
    StepFunc,
    StepKey,
    list_tables,
    read_user_version,
    write_user_version,
)

logger = logging.getLogger(__name__)

STORE_SIDECAR_SUFFIXES: tuple[str, ...] = ("-wal", "-shm", "-journal")
TEMP_MARKER = ".migrating-"


class MigrationErrorKind(str, Enum):
    STEP_WRITE_FAILED = "step_write_failed"
    MAPPING_MISSING = "mapping_missing"
    VALIDATION_FAILED = "validation_failed"


class MigrationError(CoreError):
    """A single migration step failed; the store is left at `step[0]`."""

    def __init__(self, kind: MigrationErrorKind, step: StepKey, message: str) -> None:
        super().__init__(f"Migration {step[0]} -> {step[1]} failed ({kind.value}): {message}")
        self.kind = kind
        self.step = step


class _StepValidationError(Exception):
    pass


def temp_path(location: Path, to_version: int) -> Path:
    return location.with_name(f"{location.name}{TEMP_MARKER}{to_version}")


def sidecar_paths(location: Path) -> list[Path]:
    return [location.with_name(location.name + suffix) for suffix in STORE_SIDECAR_SUFFIXES]


def _connect_existing(path: Path) -> sqlite3.Connection:
    # mode=rw: never create a store as a side effect of reading it.
    return sqlite3.connect(f"{path.resolve().as_uri()}?mode=rw", uri=True)


def _backup_store(source: Path, target: Path) -> int:
    """Copy `source` into `target`; returns the source's schema version."""
    src = _connect_existing(source)
    try:
        version = int(src.execute("PRAGMA user_version;").fetchone()[0])
        dst = sqlite3.connect(str(target))
        try:
            src.backup(dst)
        finally:
            dst.close()
    finally:
        src.close()
    return version


def _fsync_file(path: Path) -> None:
    with path.open("rb") as f:
        os.fsync(f.fileno())


def _fsync_dir(path: Path) -> None:
    if os.name != "posix":
        return
    fd = os.open(path, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def _swap_into_place(tmp: Path, location: Path) -> None:
    _fsync_file(tmp)
    for sidecar in sidecar_paths(location):
        sidecar.unlink(missing_ok=True)
    os.replace(tmp, location)
    _fsync_dir(location.parent)


class StepwiseMigrator:
    """
    Applies migration steps one version at a time.

    The migrator never re-derives the step list: after a partial failure the
    caller re-inspects the store and passes the remaining steps.
    """

    def __init__(
        self,
        *,
        steps: Mapping[StepKey, StepFunc] = MIGRATION_STEPS,
        required_tables: Mapping[int, frozenset[str]] = REQUIRED_TABLES,
        bus: EventBus | None = None,
    ) -> None:
        self._steps = steps
        self._required_tables = required_tables
        self._bus = bus

    async def migrate(
        self,
        location: Path,
        steps: Sequence[StepKey],
        *,
        on_progress: ProgressCallback | None = None,
    ) -> Result[int | None, MigrationError]:
        """
        Run `steps` in order, stopping at the first failure.

        Returns:
            Ok(version reached; None when `steps` is empty) or
            Err(MigrationError naming the failed step).
        """
        total = len(steps)
        reached: int | None = None

        for index, step in enumerate(steps, start=1):
            result = await self.apply_step(location, step)
            if isinstance(result, Err):
                logger.warning("%s", result.error)
                return result

            reached = result.value
            logger.info("Migrated %s to version %d (%d/%d)", location, reached, index, total)
            await dispatch(
                MigrationProgressEvent(
                    store_path=str(location),
                    from_version=step[0],
                    to_version=step[1],
                    completed=index,
                    total=total,
                ),
                bus=self._bus,
                callback=on_progress,
            )

        return Ok(reached)

    async def apply_step(self, location: Path, step: StepKey) -> Result[int, MigrationError]:
        """Advance the store at `location` by one version. Returns Ok(new version)."""
        from_version, to_version = step

        func = self._steps.get(step)
        if to_version != from_version + 1 or func is None:
            return Err(
                MigrationError(
                    MigrationErrorKind.MAPPING_MISSING, step, "no mapping registered for this step"
                )
            )

        tmp = temp_path(location, to_version)
        # Leftover from an interrupted run; the original is still authoritative.
        tmp.unlink(missing_ok=True)

        try:
            on_disk = await asyncio.to_thread(_backup_store, location, tmp)
        except (OSError, sqlite3.Error) as e:
            tmp.unlink(missing_ok=True)
            error = MigrationError(
                MigrationErrorKind.STEP_WRITE_FAILED, step, f"could not copy store: {e}"
            )
            error.__cause__ = e
            return Err(error)

        if on_disk >= to_version:
            tmp.unlink(missing_ok=True)
            logger.info("Store %s already at version %d; skipping step %s", location, on_disk, step)
            return Ok(on_disk)

        if on_disk != from_version:
            tmp.unlink(missing_ok=True)
            return Err(
                MigrationError(
                    MigrationErrorKind.VALIDATION_FAILED,
                    step,
                    f"store is at version {on_disk}, expected {from_version}",
                )
            )

        try:
            await self._run_step(tmp, step, func)
        except _StepValidationError as e:
            tmp.unlink(missing_ok=True)
            return Err(MigrationError(MigrationErrorKind.VALIDATION_FAILED, step, str(e)))
        except Exception as e:
            tmp.unlink(missing_ok=True)
            error = MigrationError(MigrationErrorKind.STEP_WRITE_FAILED, step, str(e))
            error.__cause__ = e
            return Err(error)

        try:
            await asyncio.to_thread(_swap_into_place, tmp, location)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            error = MigrationError(
                MigrationErrorKind.STEP_WRITE_FAILED, step, f"could not replace store: {e}"
            )
            error.__cause__ = e
            return Err(error)

        return Ok(to_version)

    async def _run_step(self, tmp: Path, step: StepKey, func: StepFunc) -> None:
        from_version, to_version = step

        # isolation_level=None: we issue BEGIN/COMMIT ourselves so DDL is transactional.
        async with aiosqlite.connect(str(tmp), isolation_level=None) as conn:
            await conn.execute("PRAGMA journal_mode = DELETE;")
            # Table rebuilds in mapping steps are checked by foreign_key_check below.
            await conn.execute("PRAGMA foreign_keys = OFF;")

            await conn.execute("BEGIN IMMEDIATE;")
            try:
                await func(conn)
                await write_user_version(conn, to_version)
                await conn.execute("COMMIT;")
            except BaseException:
                if conn.in_transaction:
                    await conn.execute("ROLLBACK;")
                raise

            await self._validate(conn, to_version)

        logger.debug("Step %d -> %d written to %s", from_version, to_version, tmp)

    async def _validate(self, conn: aiosqlite.Connection, version: int) -> None:
        cursor = await conn.execute("PRAGMA integrity_check;")
        rows = await cursor.fetchall()
        problems = [str(r[0]) for r in rows if str(r[0]) != "ok"]
        if problems:
            raise _StepValidationError(f"integrity check failed: {problems[0]}")

        cursor = await conn.execute("PRAGMA foreign_key_check;")
        violations = await cursor.fetchall()
        if violations:
            raise _StepValidationError(f"{len(violations)} foreign key violation(s)")

        missing = self._required_tables.get(version, frozenset()) - await list_tables(conn)
        if missing:
            raise _StepValidationError(f"missing tables: {', '.join(sorted(missing))}")

        actual = await read_user_version(conn)
        if actual != version:
            raise _StepValidationError(f"version stamp is {actual}, expected {version}")
