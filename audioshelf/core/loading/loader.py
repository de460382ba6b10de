"""
Thin store opener.

`StoreLoader` assumes the schema has already been migrated. It has no policy of
its own: whatever goes wrong while opening is returned unmodified for
`FailureClassifier` to interpret.
"""

from __future__ import annotations

import logging
from pathlib import Path

from audioshelf.core.library_store import LibraryStore
from audioshelf.core.result import Err, Ok, Result

logger = logging.getLogger(__name__)


class StoreLoader:
    """Opens a `LibraryStore`, creating the current schema for a brand-new file."""

    async def open(self, location: Path) -> Result[LibraryStore, Exception]:
        store = LibraryStore(location)
        try:
            fresh = not location.exists() or location.stat().st_size == 0
            location.parent.mkdir(parents=True, exist_ok=True)

            await store.open()
            if fresh:
                logger.info("Creating new library store at %s", location)
                await store.initialize_schema()
            else:
                await store.verify_schema()
        except Exception as e:
            logger.debug("Opening %s failed: %s: %s", location, type(e).__name__, e)
            await self._close_quietly(store)
            return Err(e)

        logger.debug("Opened library store %s", location)
        return Ok(store)

    @staticmethod
    async def _close_quietly(store: LibraryStore) -> None:
        # The open error is what the caller needs; a second failure is only logged.
        try:
            await store.close()
        except Exception as e:
            logger.debug("Closing %s after a failed open also failed: %s", store.path, e)
