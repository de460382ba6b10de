"""
Loading sequence for the library store.

State machine:

    START -> INSPECTING -> [MIGRATING] -> OPENING -> BOOTSTRAPPING -> READY
    INSPECTING / MIGRATING / OPENING -> CLASSIFYING
    CLASSIFYING -> RECOVERABLE_ALERT (disk full, or corruption awaiting confirmation)
                -> FATAL (unknown error)
    REBUILDING -> BOOTSTRAPPING (success) | FATAL (failure)

States run strictly in order; nothing reaches bootstrap logic unless the store
was opened at the current schema. Repeat invocations against the same store
location (e.g. a user retry after freeing disk space) are serialized by a
single-flight lock keyed by the resolved store path.

Usage:
    orchestrator = LoadingOrchestrator.from_config(config)
    outcome = await orchestrator.perform_load()
    if isinstance(outcome, RecoverableFailure) and outcome.retry_action:
        if user_confirms():
            outcome = await outcome.retry_action()
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable, Union

from audioshelf.config import AppConfig, load_theme_catalog
from audioshelf.core import StoreVersionError
from audioshelf.core.events import EventBus, LoadStateEvent, ProgressCallback, dispatch, event_bus
from audioshelf.core.library_store import LibraryStore
from audioshelf.core.loading.bootstrap import BootstrapInitializer, BootstrapReport
from audioshelf.core.loading.classifier import FailureClassifier, FailureKind
from audioshelf.core.loading.inspector import InspectStatus, SchemaVersionInspector
from audioshelf.core.loading.loader import StoreLoader
from audioshelf.core.loading.migrator import MigrationError, MigrationErrorKind, StepwiseMigrator
from audioshelf.core.loading.rebuilder import RecoveryRebuilder
from audioshelf.core.media import MediaFileRef, discover_media_files
from audioshelf.core.result import Err
from audioshelf.core.settings import SettingsStore, open_settings_scopes
from audioshelf.core.store.models import LibraryRow

logger = logging.getLogger(__name__)


class LoadState(str, Enum):
    START = "start"
    INSPECTING = "inspecting"
    MIGRATING = "migrating"
    OPENING = "opening"
    CLASSIFYING = "classifying"
    REBUILDING = "rebuilding"
    BOOTSTRAPPING = "bootstrapping"
    READY = "ready"
    RECOVERABLE_ALERT = "recoverable_alert"
    FATAL = "fatal"


@dataclass(frozen=True)
class Ready:
    """The store is open, current and bootstrapped; the caller now owns it."""

    store: LibraryStore
    library: LibraryRow
    bootstrap: BootstrapReport


@dataclass(frozen=True)
class RecoverableFailure:
    """
    A failure the user can act on.

    `retry_action` is None for a full disk (the user must free space and load
    again). For a corrupted store it rebuilds from media and returns a new outcome;
    only call it once the user has confirmed.
    """

    kind: FailureKind
    error: BaseException
    retry_action: Callable[[], Awaitable["LoadOutcome"]] | None = None


@dataclass(frozen=True)
class Fatal:
    """Unrecoverable: the process must stop rather than touch the store again."""

    detail: str
    error: BaseException | None = None


LoadOutcome = Union[Ready, RecoverableFailure, Fatal]
MediaSource = Callable[[], Awaitable[Iterable[MediaFileRef]]]
ConfirmRebuild = Callable[[RecoverableFailure], Awaitable[bool]]


class SingleFlight:
    """One asyncio lock per resolved store location."""

    def __init__(self) -> None:
        self._locks: dict[Path, asyncio.Lock] = {}

    def lock_for(self, location: Path) -> asyncio.Lock:
        key = location.expanduser().resolve()
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock


# Shared by every orchestrator that isn't given its own guard.
default_single_flight = SingleFlight()


class LoadingOrchestrator:
    """
    Top-level sequencer: inspect, migrate, open, classify, rebuild, bootstrap.

    Dependencies are injected so tests can substitute any stage; `from_config`
    wires the production components.
    """

    def __init__(
        self,
        *,
        store_path: Path,
        shared_settings: SettingsStore,
        local_settings: SettingsStore,
        bootstrapper: BootstrapInitializer,
        media_source: MediaSource,
        inspector: SchemaVersionInspector | None = None,
        migrator: StepwiseMigrator | None = None,
        loader: StoreLoader | None = None,
        classifier: FailureClassifier | None = None,
        rebuilder: RecoveryRebuilder | None = None,
        bus: EventBus | None = None,
        single_flight: SingleFlight | None = None,
        confirm_rebuild: ConfirmRebuild | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self._store_path = store_path
        self._shared = shared_settings
        self._local = local_settings
        self._bootstrapper = bootstrapper
        self._media_source = media_source
        self._bus = bus if bus is not None else event_bus
        self._inspector = inspector or SchemaVersionInspector()
        self._migrator = migrator or StepwiseMigrator(bus=self._bus)
        self._loader = loader or StoreLoader()
        self._classifier = classifier or FailureClassifier()
        self._rebuilder = rebuilder or RecoveryRebuilder(loader=self._loader, bus=self._bus)
        self._single_flight = single_flight or default_single_flight
        self._confirm_rebuild = confirm_rebuild
        self._on_progress = on_progress
        self._state = LoadState.START

    @classmethod
    def from_config(cls, config: AppConfig, **kwargs: Any) -> LoadingOrchestrator:
        shared, local = open_settings_scopes(config.storage.settings_dir)
        media_dir = config.media.folder
        extensions = config.media.extensions

        async def _media_source() -> list[MediaFileRef]:
            return await discover_media_files(media_dir, extensions=extensions)

        bootstrapper = BootstrapInitializer(
            media_dir=media_dir,
            theme_catalog=load_theme_catalog(config.themes.catalog),
            default_theme_title=config.themes.default_title,
        )
        return cls(
            store_path=config.storage.store_path,
            shared_settings=shared,
            local_settings=local,
            bootstrapper=bootstrapper,
            media_source=_media_source,
            **kwargs,
        )

    @property
    def state(self) -> LoadState:
        return self._state

    @property
    def store_path(self) -> Path:
        return self._store_path

    async def perform_load(self) -> LoadOutcome:
        """
        Run the loading sequence once.

        If a `confirm_rebuild` callback was given and a corrupted store is
        detected, the callback decides whether the rebuild runs right away.
        """
        async with self._single_flight.lock_for(self._store_path):
            outcome = await self._load()

        if (
            isinstance(outcome, RecoverableFailure)
            and outcome.retry_action is not None
            and self._confirm_rebuild is not None
        ):
            if await self._confirm_rebuild(outcome):
                return await outcome.retry_action()
            logger.info("Rebuild of %s declined", self._store_path)

        return outcome

    async def rebuild(self) -> LoadOutcome:
        """Discard the store and rebuild it from media. Only after user confirmation."""
        async with self._single_flight.lock_for(self._store_path):
            await self._transition(LoadState.REBUILDING)

            try:
                media = list(await self._media_source())
            except Exception as e:
                return await self._fatal(f"Could not list downloaded media: {e}", e)

            result = await self._rebuilder.rebuild(
                self._store_path, media, on_progress=self._on_progress
            )
            if isinstance(result, Err):
                return await self._fatal(str(result.error), result.error)

            return await self._bootstrap(result.value)

    # ---- States ----

    async def _load(self) -> LoadOutcome:
        self._state = LoadState.START
        await self._transition(LoadState.INSPECTING)
        try:
            inspection = await self._inspector.inspect(self._store_path)
        except Exception as e:
            return await self._classify(e)

        if inspection.status == InspectStatus.INCOMPATIBLE:
            return await self._classify(
                StoreVersionError(inspection.version or 0, self._inspector.current_version)
            )

        if inspection.status == InspectStatus.NEEDS_MIGRATION:
            await self._transition(
                LoadState.MIGRATING,
                detail=f"{len(inspection.steps)} step(s) from version {inspection.version}",
            )
            migrated = await self._migrator.migrate(
                self._store_path, inspection.steps, on_progress=self._on_progress
            )
            if isinstance(migrated, Err):
                return await self._classify(migrated.error)

            try:
                recheck = await self._inspector.inspect(self._store_path)
            except Exception as e:
                return await self._classify(e)
            if recheck.status != InspectStatus.CURRENT:
                return await self._classify(
                    MigrationError(
                        MigrationErrorKind.VALIDATION_FAILED,
                        inspection.steps[-1],
                        f"store reports {recheck.status.value} after migration",
                    )
                )

        # UNREADABLE is opened as a brand-new store.
        await self._transition(LoadState.OPENING)
        opened = await self._loader.open(self._store_path)
        if isinstance(opened, Err):
            return await self._classify(opened.error)

        return await self._bootstrap(opened.value)

    async def _classify(self, error: BaseException) -> LoadOutcome:
        await self._transition(LoadState.CLASSIFYING, detail=f"{type(error).__name__}: {error}")
        kind = self._classifier.classify(error)

        if kind == FailureKind.DISK_FULL:
            logger.warning("Cannot load %s: device is out of space", self._store_path)
            await self._transition(LoadState.RECOVERABLE_ALERT, detail=kind.value)
            return RecoverableFailure(kind=kind, error=error, retry_action=None)

        if kind == FailureKind.MIGRATION_CORRUPTION:
            logger.warning("Store %s is corrupted or failed to migrate: %s", self._store_path, error)
            await self._transition(LoadState.RECOVERABLE_ALERT, detail=kind.value)
            return RecoverableFailure(kind=kind, error=error, retry_action=self.rebuild)

        return await self._fatal(f"Unresolved storage error: {type(error).__name__}: {error}", error)

    async def _bootstrap(self, store: LibraryStore) -> LoadOutcome:
        await self._transition(LoadState.BOOTSTRAPPING)
        report = await self._bootstrapper.bootstrap(store, self._shared, self._local)

        try:
            library = await store.ensure_library()
            await store.commit()
        except Exception as e:
            await store.close()
            return await self._classify(e)

        await self._transition(LoadState.READY)
        return Ready(store=store, library=library, bootstrap=report)

    async def _fatal(self, detail: str, error: BaseException | None) -> Fatal:
        await self._transition(LoadState.FATAL, detail=detail)
        logger.critical("Library store %s cannot be loaded: %s", self._store_path, detail)
        return Fatal(detail=detail, error=error)

    async def _transition(self, state: LoadState, *, detail: str = "") -> None:
        previous, self._state = self._state, state
        logger.info("Load %s: %s -> %s", self._store_path.name, previous.value, state.value)
        await dispatch(
            LoadStateEvent(
                store_path=str(self._store_path),
                state=state.value,
                previous=previous.value,
                detail=detail,
            ),
            bus=self._bus,
        )
