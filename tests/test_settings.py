"""
Tests for the JSON-backed settings scopes.
"""

from __future__ import annotations

import json
from pathlib import Path

from audioshelf.core.settings import (
    LOCAL_SCOPE_FILENAME,
    SHARED_SCOPE_FILENAME,
    SettingsKey,
    SettingsStore,
    open_settings_scopes,
)


class TestSettingsStore:
    """Reads, writes and removal in a single scope."""

    def test_missing_file_reads_empty(self, tmp_path: Path) -> None:
        settings = SettingsStore(tmp_path / "absent.json")

        assert settings.snapshot() == {}
        assert settings.get(SettingsKey.APP_ICON) is None
        assert settings.get(SettingsKey.APP_ICON, "fallback") == "fallback"
        assert not settings.contains(SettingsKey.APP_ICON)

    def test_set_and_get(self, tmp_path: Path) -> None:
        settings = SettingsStore(tmp_path / "nested" / "shared.json")

        settings.set(SettingsKey.APP_ICON, "Neon")
        settings.set(SettingsKey.FILE_PROTECTION_MIGRATION, True)

        assert settings.get_str(SettingsKey.APP_ICON) == "Neon"
        assert settings.get_bool(SettingsKey.FILE_PROTECTION_MIGRATION)
        # Keys are stored under their string values.
        on_disk = json.loads(settings.path.read_text(encoding="utf-8"))
        assert on_disk == {"userSettingsAppIcon": "Neon", "userFileProtectionMigration": True}

    def test_values_persist_across_instances(self, tmp_path: Path) -> None:
        path = tmp_path / "local.json"
        SettingsStore(path).set(SettingsKey.SYSTEM_THEME_VARIANT_ENABLED, False)

        reopened = SettingsStore(path)
        assert reopened.contains(SettingsKey.SYSTEM_THEME_VARIANT_ENABLED)
        assert reopened.get(SettingsKey.SYSTEM_THEME_VARIANT_ENABLED) is False

    def test_none_removes(self, tmp_path: Path) -> None:
        settings = SettingsStore(tmp_path / "shared.json")
        settings.set(SettingsKey.APP_ICON, "Classic")

        settings.set(SettingsKey.APP_ICON, None)

        assert not settings.contains(SettingsKey.APP_ICON)

    def test_remove_missing_key_does_not_write(self, tmp_path: Path) -> None:
        settings = SettingsStore(tmp_path / "shared.json")

        settings.remove(SettingsKey.APP_ICON)

        assert not settings.path.exists()

    def test_typed_getters_ignore_wrong_types(self, tmp_path: Path) -> None:
        settings = SettingsStore(tmp_path / "shared.json")
        settings.set(SettingsKey.APP_ICON, 42)
        settings.set(SettingsKey.FILE_PROTECTION_MIGRATION, "yes")

        assert settings.get_str(SettingsKey.APP_ICON) is None
        assert settings.get_bool(SettingsKey.FILE_PROTECTION_MIGRATION) is False

    def test_plain_string_keys(self, tmp_path: Path) -> None:
        settings = SettingsStore(tmp_path / "shared.json")
        settings.set("customKey", [1, 2])

        assert settings.get("customKey") == [1, 2]

    def test_corrupt_file_reads_empty(self, tmp_path: Path) -> None:
        path = tmp_path / "shared.json"
        path.write_text("{not json", encoding="utf-8")
        settings = SettingsStore(path)

        assert settings.snapshot() == {}

        # The next write replaces the unreadable content.
        settings.set(SettingsKey.APP_ICON, "Paper")
        assert json.loads(path.read_text(encoding="utf-8")) == {"userSettingsAppIcon": "Paper"}

    def test_non_object_file_reads_empty(self, tmp_path: Path) -> None:
        path = tmp_path / "shared.json"
        path.write_text("[1, 2, 3]", encoding="utf-8")

        assert SettingsStore(path).snapshot() == {}

    def test_no_temporary_files_left(self, tmp_path: Path) -> None:
        settings = SettingsStore(tmp_path / "shared.json")
        for icon in ("Classic", "Neon", "Paper"):
            settings.set(SettingsKey.APP_ICON, icon)

        assert [p.name for p in tmp_path.iterdir()] == ["shared.json"]


class TestScopes:
    """The shared and local scopes are independent files."""

    def test_open_settings_scopes(self, tmp_path: Path) -> None:
        shared, local = open_settings_scopes(tmp_path)

        assert shared.path == tmp_path / SHARED_SCOPE_FILENAME
        assert local.path == tmp_path / LOCAL_SCOPE_FILENAME

        shared.set(SettingsKey.APP_ICON, "Neon")
        assert not local.contains(SettingsKey.APP_ICON)
