"""
Key-value settings scopes persisted as small JSON files.

Settings live outside the library store on purpose: bootstrap flags must survive
deletion and recreation of the store during a rebuild.

Design notes:
- One JSON object per file, one file per scope ("shared" and "local").
- Every write re-reads the file, applies a single key change, and atomically
  replaces the file. Concurrent writers to the same key are last-write-wins.
- A missing or unparsable file reads as empty; we never raise on read.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from enum import Enum
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

SHARED_SCOPE_FILENAME = "shared.json"
LOCAL_SCOPE_FILENAME = "local.json"


class SettingsKey(str, Enum):
    """Settings keys used by the loading core."""

    APP_ICON = "userSettingsAppIcon"
    FILE_PROTECTION_MIGRATION = "userFileProtectionMigration"
    SYSTEM_THEME_VARIANT_ENABLED = "userSettingsSystemThemeVariant"


def _key(key: SettingsKey | str) -> str:
    return key.value if isinstance(key, SettingsKey) else str(key)


class SettingsStore:
    """
    A single settings scope backed by a JSON file.

    Usage:
        shared = SettingsStore(settings_dir / "shared.json")
        if not shared.get_bool(SettingsKey.FILE_PROTECTION_MIGRATION):
            ...
            shared.set(SettingsKey.FILE_PROTECTION_MIGRATION, True)
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, Any]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}

        if not raw.strip():
            return {}

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Ignoring unreadable settings file %s: %s", self._path, e)
            return {}

        if not isinstance(data, dict):
            logger.warning("Ignoring settings file %s: top-level value is not an object", self._path)
            return {}
        return data

    def _write(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def snapshot(self) -> dict[str, Any]:
        """Return a copy of every stored value."""
        return dict(self._read())

    def contains(self, key: SettingsKey | str) -> bool:
        return _key(key) in self._read()

    def get(self, key: SettingsKey | str, default: Any = None) -> Any:
        return self._read().get(_key(key), default)

    def get_str(self, key: SettingsKey | str) -> str | None:
        value = self.get(key)
        return value if isinstance(value, str) else None

    def get_bool(self, key: SettingsKey | str) -> bool:
        """Unset and non-boolean values read as False."""
        return self.get(key) is True

    def set(self, key: SettingsKey | str, value: Any) -> None:
        """Store a JSON-serializable value. `None` removes the key."""
        if value is None:
            self.remove(key)
            return
        with self._lock:
            data = self._read()
            data[_key(key)] = value
            self._write(data)

    def remove(self, key: SettingsKey | str) -> None:
        with self._lock:
            data = self._read()
            if _key(key) not in data:
                return
            del data[_key(key)]
            self._write(data)


def open_settings_scopes(settings_dir: str | Path) -> tuple[SettingsStore, SettingsStore]:
    """Return the (shared, local) settings scopes rooted at `settings_dir`."""
    root = Path(settings_dir)
    return (
        SettingsStore(root / SHARED_SCOPE_FILENAME),
        SettingsStore(root / LOCAL_SCOPE_FILENAME),
    )
