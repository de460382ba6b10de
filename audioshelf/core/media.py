"""
Downloaded media discovery.

A `MediaFileRef` is a transient pointer to an audio file that was already
imported into the media folder. Refs are never persisted by the loading core;
they only drive the re-import performed by a rebuild.

Concurrency:
- the directory walk runs in a worker thread (`asyncio.to_thread`)
- tag probing is synchronous and meant to be called through `asyncio.to_thread`
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any, Iterable

from mutagen import File as mutagen_file

logger = logging.getLogger(__name__)


DEFAULT_AUDIO_EXTENSIONS: frozenset[str] = frozenset(
    {
        ".mp3",
        ".m4a",
        ".m4b",
        ".aac",
        ".flac",
        ".ogg",
        ".opus",
        ".wav",
        ".aiff",
        ".aif",
    }
)


@dataclass(frozen=True, slots=True)
class MediaFileRef:
    """
    Location of a previously downloaded audio asset.

    `root` is the media folder the file was imported into; the path relative to
    it carries the folder grouping (e.g. "Series/Book 1.m4b").
    """

    path: Path
    root: Path

    @property
    def relative_path(self) -> str:
        # POSIX separators keep item identity stable across platforms.
        return PurePosixPath(self.path.relative_to(self.root)).as_posix()

    @property
    def folder_parts(self) -> tuple[str, ...]:
        return PurePosixPath(self.relative_path).parts[:-1]


@dataclass(frozen=True, slots=True)
class MediaInfo:
    """Best-effort tag data used to title a re-imported book."""

    title: str
    author: str | None = None
    duration_ms: int | None = None


def _first_text(value: Any) -> str | None:
    """
    Mutagen returns different shapes depending on container/tag type:
    - ID3 frames with `.text`
    - lists of strings
    - plain strings
    We normalize to a single stripped string (first item if multiple).
    """
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        if not value:
            return None
        return _first_text(value[0])
    text = getattr(value, "text", None)
    if text is not None:
        return _first_text(text)
    s = str(value).strip()
    return s if s else None


def _tags_get(tags: Any, keys: Iterable[str]) -> Any:
    if not tags:
        return None
    for k in keys:
        if k in tags:
            return tags[k]
    return None


def probe_media(path: Path) -> MediaInfo:
    """
    Read title/author/duration with mutagen.

    Never raises: unreadable or untagged files fall back to the file stem.
    """
    try:
        audio = mutagen_file(path)
    except Exception as e:  # noqa: BLE001 - a bad tag must not block a rebuild
        logger.debug("Could not probe %s: %s: %s", path, type(e).__name__, e)
        return MediaInfo(title=path.stem)

    if audio is None:
        return MediaInfo(title=path.stem)

    tags = getattr(audio, "tags", None)

    # Keys: ID3=TIT2, Vorbis=title, MP4=©nam
    title = _first_text(_tags_get(tags, ("TIT2", "title", "TITLE", "©nam"))) or path.stem
    # Keys: ID3=TPE1, Vorbis=artist, MP4=©ART
    author = _first_text(_tags_get(tags, ("TPE1", "artist", "ARTIST", "©ART")))

    duration_ms: int | None = None
    length = getattr(getattr(audio, "info", None), "length", None)
    if isinstance(length, (int, float)) and length > 0:
        duration_ms = int(length * 1000)

    return MediaInfo(title=title, author=author, duration_ms=duration_ms)


def _walk(root: Path, extensions: frozenset[str]) -> list[MediaFileRef]:
    refs: list[MediaFileRef] = []
    for p in root.rglob("*"):
        try:
            rel_parts = p.relative_to(root).parts
            if any(part.startswith(".") for part in rel_parts):
                continue
            if p.is_symlink() or not p.is_file():
                continue
            if p.suffix.lower() not in extensions:
                continue
            refs.append(MediaFileRef(path=p, root=root))
        except OSError:
            # Ignore broken permissions/paths during walk.
            continue
    return refs


async def discover_media_files(
    root: Path,
    *,
    extensions: frozenset[str] = DEFAULT_AUDIO_EXTENSIONS,
) -> list[MediaFileRef]:
    """
    List audio files under the media folder, sorted by relative path.

    A missing media folder yields no refs (nothing was ever downloaded).
    """
    if not root.exists():
        logger.info("Media folder %s does not exist; no files to import", root)
        return []
    if not root.is_dir():
        raise NotADirectoryError(root)

    refs = await asyncio.to_thread(_walk, root, extensions)
    # Deterministic ordering keeps rebuilt item order predictable.
    refs.sort(key=lambda r: r.relative_path.lower())
    return refs
