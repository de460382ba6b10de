"""
Configuration management for Audioshelf.

This module loads the application configuration and the built-in theme catalog
from TOML files. Configuration objects are passed explicitly to the components
that need them; there is no process-wide config instance.
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

from audioshelf.core.media import DEFAULT_AUDIO_EXTENSIONS

logger = logging.getLogger(__name__)

# Path to the config directory
CONFIG_DIR = Path(__file__).parent
DEFAULT_CONFIG_FILE = CONFIG_DIR / "audioshelf.toml"
DEFAULT_THEMES_FILE = CONFIG_DIR / "themes.toml"

THEME_COLOR_KEYS: Final[tuple[str, ...]] = (
    "light_background_hex",
    "light_primary_hex",
    "light_secondary_hex",
    "light_accent_hex",
    "dark_background_hex",
    "dark_primary_hex",
    "dark_secondary_hex",
    "dark_accent_hex",
)


class ConfigError(ValueError):
    """Raised when a configuration file is present but invalid."""


@dataclass
class StorageConfig:
    """Where the library store and the settings scopes live."""

    data_dir: Path
    settings_dir: Path
    store_name: str = "library.sqlite"

    @property
    def store_path(self) -> Path:
        return self.data_dir / self.store_name


@dataclass
class MediaConfig:
    """The folder downloaded audiobooks are imported into."""

    folder: Path
    extensions: frozenset[str] = DEFAULT_AUDIO_EXTENSIONS


@dataclass
class ThemeConfig:
    default_title: str = "Default / Dark"
    catalog: Path = DEFAULT_THEMES_FILE


@dataclass
class AppConfig:
    """Loaded application configuration."""

    storage: StorageConfig
    media: MediaConfig
    themes: ThemeConfig


def _resolve_path(value: object, base: Path) -> Path:
    path = Path(str(value)).expanduser()
    return path if path.is_absolute() else (base / path).resolve()


def _parse_extensions(raw: object) -> frozenset[str]:
    if raw is None:
        return DEFAULT_AUDIO_EXTENSIONS
    if not isinstance(raw, list) or not all(isinstance(e, str) for e in raw):
        raise ConfigError("media.extensions must be a list of strings")
    return frozenset(e.lower() if e.startswith(".") else f".{e.lower()}" for e in raw)


def load_app_config(
    config_path: Path | None = None,
    *,
    data_dir: Path | None = None,
    media_dir: Path | None = None,
    settings_dir: Path | None = None,
) -> AppConfig:
    """
    Load application configuration from a TOML file.

    Args:
        config_path: Path to the config file. If None, uses the default location.
        data_dir: Overrides `storage.data_dir`.
        media_dir: Overrides `media.folder`.
        settings_dir: Overrides `storage.settings_dir`.

    Relative paths in the file resolve against the file's directory.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_FILE

    logger.debug("Loading config from %s", config_path)

    try:
        with config_path.open("rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e

    base = config_path.parent
    storage = data.get("storage", {})
    media = data.get("media", {})
    themes = data.get("themes", {})

    storage_config = StorageConfig(
        data_dir=data_dir or _resolve_path(storage.get("data_dir", "data"), base),
        settings_dir=settings_dir or _resolve_path(storage.get("settings_dir", "settings"), base),
        store_name=str(storage.get("store_name", "library.sqlite")),
    )
    media_config = MediaConfig(
        folder=media_dir or _resolve_path(media.get("folder", "media"), base),
        extensions=_parse_extensions(media.get("extensions")),
    )
    catalog = themes.get("catalog")
    theme_config = ThemeConfig(
        default_title=str(themes.get("default_title", "Default / Dark")),
        catalog=_resolve_path(catalog, base) if catalog else DEFAULT_THEMES_FILE,
    )

    return AppConfig(storage=storage_config, media=media_config, themes=theme_config)


def load_theme_catalog(catalog_path: Path | None = None) -> list[dict[str, Any]]:
    """
    Load the built-in theme catalog.

    Returns:
        One dict per theme with `title`, the eight color keys, and `locked`.
    """
    if catalog_path is None:
        catalog_path = DEFAULT_THEMES_FILE

    try:
        with catalog_path.open("rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {catalog_path}: {e}") from e

    themes: list[dict[str, Any]] = []
    for index, entry in enumerate(data.get("themes", [])):
        title = entry.get("title")
        if not title:
            raise ConfigError(f"Theme #{index} in {catalog_path} has no title")
        missing = [k for k in THEME_COLOR_KEYS if k not in entry]
        if missing:
            raise ConfigError(f"Theme {title!r} in {catalog_path} is missing {', '.join(missing)}")
        theme = {k: str(entry[k]) for k in THEME_COLOR_KEYS}
        theme["title"] = str(title)
        theme["locked"] = bool(entry.get("locked", False))
        themes.append(theme)

    return themes
