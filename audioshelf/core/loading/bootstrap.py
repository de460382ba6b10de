"""
Idempotent setup performed once a store is open and current.

Steps run in a fixed order. Each step is isolated: a failure is logged and
recorded in the report, and the next step still runs. Steps guarded by a
settings flag only set the flag after they succeed, so a failed step is retried
on the next launch.

Flags live in the settings scopes, not in the store, so they survive a rebuild;
library-level defaults (theme catalog, current theme) are checked against the
store itself and are therefore reapplied to a rebuilt store.
"""

from __future__ import annotations

import logging
import os
import stat
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Final, Sequence

from audioshelf.core.library_store import LibraryStore
from audioshelf.core.settings import SettingsKey, SettingsStore

logger = logging.getLogger(__name__)

DEFAULT_THEME_TITLE: Final[str] = "Default / Dark"

# Cache Directory Tagging Standard: https://bford.info/cachedir/
CACHEDIR_TAG_NAME: Final[str] = "CACHEDIR.TAG"
CACHEDIR_TAG_CONTENT: Final[str] = (
    "Signature: 8a477f597d28d172789f06886806bc55\n"
    "# This file marks downloaded audiobooks that can be re-downloaded.\n"
    "# For information about cache directory tags see https://bford.info/cachedir/\n"
)
BACKUP_XATTR_NAME: Final[str] = "user.xdg.robots.backup"


@dataclass
class BootstrapReport:
    """Which steps changed something, which were no-ops, and which failed."""

    applied: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def relax_file_protection(folder: Path) -> int:
    """
    Give the owner read/write access to everything under `folder`.

    Returns the number of entries whose mode changed.
    """
    changed = 0
    entries = [folder, *folder.rglob("*")]
    for entry in entries:
        if entry.is_symlink():
            continue
        mode = entry.stat().st_mode
        wanted = mode | stat.S_IRUSR | stat.S_IWUSR
        if entry.is_dir():
            wanted |= stat.S_IXUSR
        if stat.S_IMODE(wanted) != stat.S_IMODE(mode):
            os.chmod(entry, stat.S_IMODE(wanted))
            changed += 1
    return changed


def exclude_from_backup(folder: Path) -> None:
    """Mark `folder` as re-creatable so backup tools skip it."""
    tag = folder / CACHEDIR_TAG_NAME
    if not tag.exists() or tag.read_text(encoding="utf-8", errors="replace") != CACHEDIR_TAG_CONTENT:
        tag.write_text(CACHEDIR_TAG_CONTENT, encoding="utf-8")

    setxattr = getattr(os, "setxattr", None)
    if setxattr is None:
        return
    try:
        setxattr(folder, BACKUP_XATTR_NAME, b"false")
    except OSError as e:
        # Many filesystems reject user xattrs; the tag file is the primary marker.
        logger.debug("Could not set %s on %s: %s", BACKUP_XATTR_NAME, folder, e)


class BootstrapInitializer:
    """
    Runs the post-open defaults for a library store.

    Usage:
        initializer = BootstrapInitializer(media_dir=media, theme_catalog=themes)
        report = await initializer.bootstrap(store, shared, local)
    """

    def __init__(
        self,
        *,
        media_dir: Path,
        theme_catalog: Sequence[dict[str, Any]],
        default_theme_title: str = DEFAULT_THEME_TITLE,
    ) -> None:
        self._media_dir = media_dir
        self._theme_catalog = list(theme_catalog)
        self._default_theme_title = default_theme_title

    async def bootstrap(
        self,
        store: LibraryStore,
        shared: SettingsStore,
        local: SettingsStore,
    ) -> BootstrapReport:
        report = BootstrapReport()

        steps: list[tuple[str, Callable[[], Awaitable[bool]]]] = [
            ("reconcile_app_icon", lambda: self.reconcile_app_icon(shared, local)),
            ("relax_file_protection", lambda: self.apply_file_protection(shared)),
            ("exclude_media_from_backup", self.exclude_media_from_backup),
            ("default_system_theme", lambda: self.default_system_theme(local)),
            ("load_theme_catalog", lambda: self.load_theme_catalog(store)),
            ("assign_default_theme", lambda: self.assign_default_theme(store)),
        ]

        for name, step in steps:
            try:
                changed = await step()
            except Exception:
                logger.exception("Bootstrap step %s failed", name)
                report.failed.append(name)
                continue
            (report.applied if changed else report.skipped).append(name)

        logger.info(
            "Bootstrap finished: %d applied, %d skipped, %d failed",
            len(report.applied),
            len(report.skipped),
            len(report.failed),
        )
        return report

    # ---- Steps (each returns True when it changed something) ----

    async def reconcile_app_icon(self, shared: SettingsStore, local: SettingsStore) -> bool:
        """
        Keep one app icon value in the shared scope.

        Shared empty: copy the local value. Both set and different: the local
        value wins and the local copy is cleared.
        """
        shared_icon = shared.get_str(SettingsKey.APP_ICON)
        local_icon = local.get_str(SettingsKey.APP_ICON)

        if shared_icon is None:
            if local_icon is None:
                return False
            shared.set(SettingsKey.APP_ICON, local_icon)
            return True

        if local_icon is not None and local_icon != shared_icon:
            shared.set(SettingsKey.APP_ICON, local_icon)
            local.remove(SettingsKey.APP_ICON)
            return True

        return False

    async def apply_file_protection(self, shared: SettingsStore) -> bool:
        if shared.get_bool(SettingsKey.FILE_PROTECTION_MIGRATION):
            return False

        self._media_dir.mkdir(parents=True, exist_ok=True)
        changed = relax_file_protection(self._media_dir)
        logger.debug("Relaxed file protection on %d entries under %s", changed, self._media_dir)
        shared.set(SettingsKey.FILE_PROTECTION_MIGRATION, True)
        return True

    async def exclude_media_from_backup(self) -> bool:
        # Filesystem attribute, not a setting: reapplied on every launch.
        self._media_dir.mkdir(parents=True, exist_ok=True)
        exclude_from_backup(self._media_dir)
        return True

    async def default_system_theme(self, local: SettingsStore) -> bool:
        if local.contains(SettingsKey.SYSTEM_THEME_VARIANT_ENABLED):
            return False
        local.set(SettingsKey.SYSTEM_THEME_VARIANT_ENABLED, True)
        return True

    async def load_theme_catalog(self, store: LibraryStore) -> bool:
        if await store.has_themes_loaded():
            return False
        inserted = await store.load_themes(self._theme_catalog)
        logger.info("Loaded %d built-in theme(s)", inserted)
        return inserted > 0

    async def assign_default_theme(self, store: LibraryStore) -> bool:
        # Depends on the catalog loaded by the previous step.
        library = await store.ensure_library()
        changed = False

        if library.current_theme_id is None:
            theme = await store.get_theme(self._default_theme_title)
            if theme is None:
                logger.warning("Default theme %r is not in the catalog", self._default_theme_title)
            else:
                await store.set_current_theme(library.id, theme.id)
                changed = True

        # Also persists a library row created by ensure_library().
        await store.commit()
        return changed
