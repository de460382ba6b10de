"""
Event Bus for Audioshelf.

This module provides a simple pub/sub event system for decoupled communication
between the loading core and whatever presents its progress to the user.

Event types:
- load.state: The loading sequence entered a new state
- load.migration.progress: A schema migration step completed
- load.rebuild.progress: A media file was re-imported during a rebuild

Usage:
    from audioshelf.core.events import EventBus, MigrationProgressEvent

    bus = EventBus()

    async def on_progress(event: MigrationProgressEvent) -> None:
        print(f"{event.completed}/{event.total}")

    await bus.subscribe("load.migration.progress", on_progress)
    await bus.subscribe("load.*", on_anything)
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Coroutine

logger = logging.getLogger(__name__)

# Type alias for event handlers
EventHandler = Callable[["Event"], Coroutine[Any, Any, None]]


@dataclass
class Event:
    """Base class for all events."""

    event_type: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert event to dictionary for JSON serialization."""
        return {"type": self.event_type}


@dataclass
class LoadStateEvent(Event):
    """Fired on every transition of the loading state machine."""

    event_type: str = field(default="load.state", init=False)
    store_path: str = ""
    state: str = ""  # see LoadState values
    previous: str = ""
    detail: str = ""

    def to_dict(self) -> dict[str, Any]:
        result = {
            "type": self.event_type,
            "store_path": self.store_path,
            "state": self.state,
            "previous": self.previous,
        }
        if self.detail:
            result["detail"] = self.detail
        return result


@dataclass
class MigrationProgressEvent(Event):
    """Fired after each migration step has been committed to disk."""

    event_type: str = field(default="load.migration.progress", init=False)
    store_path: str = ""
    from_version: int = 0
    to_version: int = 0
    completed: int = 0
    total: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.event_type,
            "store_path": self.store_path,
            "from_version": self.from_version,
            "to_version": self.to_version,
            "completed": self.completed,
            "total": self.total,
        }


@dataclass
class RebuildProgressEvent(Event):
    """Fired during a rebuild for every media file that was re-imported."""

    event_type: str = field(default="load.rebuild.progress", init=False)
    store_path: str = ""
    imported: int = 0
    total: int = 0
    current_path: str = ""

    def to_dict(self) -> dict[str, Any]:
        result = {
            "type": self.event_type,
            "store_path": self.store_path,
            "imported": self.imported,
            "total": self.total,
        }
        if self.current_path:
            result["current_path"] = self.current_path
        return result


def _pattern_matches(pattern: str, event_type: str) -> bool:
    # "*" matches everything; "load.*" matches "load.state" and "load.rebuild.progress"
    if pattern == "*":
        return True
    if pattern.endswith(".*"):
        return event_type.startswith(pattern[:-1])
    return pattern == event_type


class EventBus:
    """
    Async pub/sub for loading events.

    Handlers subscribe to an exact event type, a dotted prefix ending in ".*",
    or "*". A handler that raises is logged and skipped; publishing never fails.
    """

    def __init__(self) -> None:
        self._subscriptions: list[tuple[str, EventHandler]] = []
        self._lock = asyncio.Lock()

    async def subscribe(self, pattern: str, handler: EventHandler) -> None:
        async with self._lock:
            self._subscriptions.append((pattern, handler))
        logger.debug("Handler %s subscribed to %s", handler, pattern)

    async def publish(self, event: Event) -> int:
        """Deliver `event` to every matching handler; return how many succeeded."""
        async with self._lock:
            handlers = [h for p, h in self._subscriptions if _pattern_matches(p, event.event_type)]

        delivered = 0
        for handler in handlers:
            try:
                await handler(event)
            except Exception:
                logger.exception("Event handler %s failed on %s", handler, event.event_type)
            else:
                delivered += 1
        return delivered


# Default bus used when a component is not given one explicitly
event_bus = EventBus()


# Plain callback alternative to subscribing; may be sync or async.
ProgressCallback = Callable[[Event], Any]


async def dispatch(
    event: Event,
    *,
    bus: EventBus | None = None,
    callback: ProgressCallback | None = None,
) -> None:
    """
    Publish `event` on `bus` (if given) and hand it to `callback` (if given).

    Like a bus handler, a failing callback is logged and never propagates.
    """
    if bus is not None:
        await bus.publish(event)
    if callback is None:
        return
    try:
        result = callback(event)
        if inspect.isawaitable(result):
            await result
    except Exception:
        logger.exception("Progress callback %s failed on %s", callback, event.event_type)
