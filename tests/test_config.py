"""
Tests for configuration loading and the built-in theme catalog.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from audioshelf.config import (
    DEFAULT_THEMES_FILE,
    THEME_COLOR_KEYS,
    ConfigError,
    load_app_config,
    load_theme_catalog,
)
from audioshelf.core.media import DEFAULT_AUDIO_EXTENSIONS


class TestLoadAppConfig:
    """Tests for load_app_config."""

    def test_bundled_defaults(self) -> None:
        config = load_app_config()

        assert config.storage.store_name == "library.sqlite"
        assert config.storage.data_dir.is_absolute()
        assert config.storage.store_path.name == "library.sqlite"
        assert config.themes.default_title == "Default / Dark"
        assert config.themes.catalog == DEFAULT_THEMES_FILE
        assert ".m4b" in config.media.extensions

    def test_overrides_win(self, tmp_path: Path) -> None:
        config = load_app_config(
            data_dir=tmp_path / "data",
            media_dir=tmp_path / "media",
            settings_dir=tmp_path / "settings",
        )

        assert config.storage.store_path == tmp_path / "data" / "library.sqlite"
        assert config.media.folder == tmp_path / "media"
        assert config.storage.settings_dir == tmp_path / "settings"

    def test_relative_paths_resolve_against_file(self, tmp_path: Path) -> None:
        config_file = tmp_path / "conf" / "audioshelf.toml"
        config_file.parent.mkdir()
        config_file.write_text(
            """
[storage]
data_dir = "store"
store_name = "books.sqlite"

[media]
folder = "../downloads"
extensions = ["MP3", ".m4b"]

[themes]
default_title = "Sepia / Coffee"
""",
            encoding="utf-8",
        )

        config = load_app_config(config_file)

        assert config.storage.store_path == (tmp_path / "conf" / "store" / "books.sqlite").resolve()
        assert config.storage.settings_dir == (tmp_path / "conf" / "settings").resolve()
        assert config.media.folder == (tmp_path / "downloads").resolve()
        assert config.media.extensions == frozenset({".mp3", ".m4b"})
        assert config.themes.default_title == "Sepia / Coffee"

    def test_empty_file_uses_defaults(self, tmp_path: Path) -> None:
        config_file = tmp_path / "audioshelf.toml"
        config_file.write_text("", encoding="utf-8")

        config = load_app_config(config_file)

        assert config.media.extensions == DEFAULT_AUDIO_EXTENSIONS
        assert config.media.folder == (tmp_path / "media").resolve()

    def test_invalid_toml(self, tmp_path: Path) -> None:
        config_file = tmp_path / "audioshelf.toml"
        config_file.write_text("[storage\n", encoding="utf-8")

        with pytest.raises(ConfigError):
            load_app_config(config_file)

    def test_invalid_extensions(self, tmp_path: Path) -> None:
        config_file = tmp_path / "audioshelf.toml"
        config_file.write_text('[media]\nextensions = "mp3"\n', encoding="utf-8")

        with pytest.raises(ConfigError):
            load_app_config(config_file)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_app_config(tmp_path / "nope.toml")


class TestThemeCatalog:
    """Tests for load_theme_catalog."""

    def test_builtin_catalog(self) -> None:
        themes = load_theme_catalog()
        titles = [t["title"] for t in themes]

        assert "Default / Dark" in titles
        assert len(titles) == len(set(titles))
        for theme in themes:
            assert all(theme[key].startswith("#") for key in THEME_COLOR_KEYS)
            assert isinstance(theme["locked"], bool)

    def test_missing_color(self, tmp_path: Path) -> None:
        catalog = tmp_path / "themes.toml"
        catalog.write_text('[[themes]]\ntitle = "Broken"\n', encoding="utf-8")

        with pytest.raises(ConfigError, match="Broken"):
            load_theme_catalog(catalog)

    def test_missing_title(self, tmp_path: Path) -> None:
        catalog = tmp_path / "themes.toml"
        colors = "\n".join(f'{key} = "#000000"' for key in THEME_COLOR_KEYS)
        catalog.write_text(f"[[themes]]\n{colors}\n", encoding="utf-8")

        with pytest.raises(ConfigError):
            load_theme_catalog(catalog)

    def test_empty_catalog(self, tmp_path: Path) -> None:
        catalog = tmp_path / "themes.toml"
        catalog.write_text("", encoding="utf-8")

        assert load_theme_catalog(catalog) == []

    def test_invalid_catalog_toml(self, tmp_path: Path) -> None:
        catalog = tmp_path / "themes.toml"
        catalog.write_text("[[themes]\n", encoding="utf-8")

        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_theme_catalog(catalog)
