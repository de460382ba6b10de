"""
Recovery by rebuilding the store from downloaded media.

Only ever used after a store was classified as corrupt. The rebuild is lossy for
anything that lived only in the database (playback positions, custom ordering,
theme choice) but lossless for the media files themselves: we delete store
files exclusively and re-import every supplied `MediaFileRef`.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Iterable

from audioshelf.core import RebuildError
from audioshelf.core.events import EventBus, ProgressCallback, RebuildProgressEvent, dispatch
from audioshelf.core.library_store import LibraryStore
from audioshelf.core.loading.loader import StoreLoader
from audioshelf.core.loading.migrator import TEMP_MARKER, sidecar_paths
from audioshelf.core.media import MediaFileRef, MediaInfo, probe_media
from audioshelf.core.result import Err, Ok, Result
from audioshelf.core.store.models import ItemKind, NewItem

logger = logging.getLogger(__name__)


def store_files(location: Path) -> list[Path]:
    """Every file that belongs to the store at `location` and currently exists."""
    candidates = [location, *sidecar_paths(location)]
    if location.parent.is_dir():
        candidates.extend(location.parent.glob(f"{location.name}{TEMP_MARKER}*"))
    return [p for p in candidates if p.exists() or p.is_symlink()]


def _unique_refs(media: Iterable[MediaFileRef]) -> list[MediaFileRef]:
    """One ref per relative path (first wins), ordered case-insensitively by that path."""
    by_path: dict[str, MediaFileRef] = {}
    for ref in media:
        by_path.setdefault(ref.relative_path, ref)
    return [by_path[key] for key in sorted(by_path, key=str.lower)]


def _delete_store_files(location: Path, protected: set[Path]) -> list[Path]:
    removed: list[Path] = []
    for path in store_files(location):
        if path.resolve() in protected:
            raise RebuildError(f"Refusing to delete {path}: it is a media file")
        path.unlink()
        removed.append(path)
    return removed


class RecoveryRebuilder:
    """
    Deletes a corrupted store and repopulates a fresh one from media files.

    Tags are probed with bounded concurrency in worker threads; items are then
    inserted sequentially in relative-path order.
    """

    def __init__(
        self,
        *,
        loader: StoreLoader | None = None,
        bus: EventBus | None = None,
        max_concurrency: int = 8,
    ) -> None:
        self._loader = loader or StoreLoader()
        self._bus = bus
        self._max_concurrency = max(1, max_concurrency)

    async def rebuild(
        self,
        location: Path,
        media: Iterable[MediaFileRef],
        *,
        on_progress: ProgressCallback | None = None,
    ) -> Result[LibraryStore, RebuildError]:
        media = list(media)
        try:
            refs = _unique_refs(media)
        except ValueError as e:
            error = RebuildError(f"Media file outside its media folder: {e}")
            error.__cause__ = e
            return Err(error)
        protected = {ref.path.resolve() for ref in media}

        try:
            removed = await asyncio.to_thread(_delete_store_files, location, protected)
        except RebuildError as e:
            return Err(e)
        except OSError as e:
            error = RebuildError(f"Could not delete corrupted store {location}: {e}")
            error.__cause__ = e
            return Err(error)
        logger.info("Removed %d corrupted store file(s) for %s", len(removed), location)

        opened = await self._loader.open(location)
        if isinstance(opened, Err):
            error = RebuildError(f"Could not create a new store at {location}: {opened.error}")
            error.__cause__ = opened.error
            return Err(error)
        store = opened.value

        try:
            imported = await self._repopulate(store, refs, on_progress=on_progress)
        except Exception as e:
            await store.close()
            error = RebuildError(f"Could not repopulate {location}: {e}")
            error.__cause__ = e
            return Err(error)

        logger.info("Rebuilt %s with %d media file(s)", location, imported)
        return Ok(store)

    async def _repopulate(
        self,
        store: LibraryStore,
        refs: list[MediaFileRef],
        *,
        on_progress: ProgressCallback | None,
    ) -> int:
        library = await store.ensure_library()
        existing = await store.item_paths()
        pending = [ref for ref in refs if ref.relative_path not in existing]

        infos = await self._probe_all(pending)
        folder_ids: dict[str, int] = {}
        total = len(pending)

        for index, (ref, info) in enumerate(zip(pending, infos), start=1):
            parent_id = await self._ensure_folders(store, library.id, ref, folder_ids)
            await store.insert_item(
                library.id,
                NewItem(
                    kind=ItemKind.BOOK,
                    title=info.title,
                    relative_path=ref.relative_path,
                    parent_id=parent_id,
                    author=info.author,
                    duration_ms=info.duration_ms,
                ),
            )
            await dispatch(
                RebuildProgressEvent(
                    store_path=str(store.path),
                    imported=index,
                    total=total,
                    current_path=ref.relative_path,
                ),
                bus=self._bus,
                callback=on_progress,
            )

        await store.commit()
        return total

    async def _probe_all(self, refs: list[MediaFileRef]) -> list[MediaInfo]:
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def _probe(ref: MediaFileRef) -> MediaInfo:
            async with semaphore:
                return await asyncio.to_thread(probe_media, ref.path)

        return list(await asyncio.gather(*(_probe(ref) for ref in refs)))

    @staticmethod
    async def _ensure_folders(
        store: LibraryStore,
        library_id: int,
        ref: MediaFileRef,
        cache: dict[str, int],
    ) -> int | None:
        """Create (once) the folder items implied by the ref's directory; return the deepest."""
        parent_id: int | None = None
        path_parts: list[str] = []
        for part in ref.folder_parts:
            path_parts.append(part)
            folder_path = "/".join(path_parts)

            folder_id = cache.get(folder_path)
            if folder_id is None:
                row = await store.get_item_by_path(folder_path)
                if row is not None:
                    folder_id = row.id
                else:
                    folder_id = await store.insert_item(
                        library_id,
                        NewItem(
                            kind=ItemKind.FOLDER,
                            title=part,
                            relative_path=folder_path,
                            parent_id=parent_id,
                        ),
                    )
                cache[folder_path] = folder_id

            parent_id = folder_id
        return parent_id
