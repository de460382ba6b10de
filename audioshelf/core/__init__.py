"""
Core domain package.

This package contains the storage and loading logic which should be independent
of any UI layer. Presentation code only consumes the outcomes and events it
produces.

We intentionally keep exports minimal; consumers should usually import from the
specific module they need (e.g. `audioshelf.core.loading.orchestrator`).
"""

from __future__ import annotations

__all__: list[str] = [
    "CoreError",
    "StoreVersionError",
    "RebuildError",
]


class CoreError(Exception):
    """Base class for core-layer exceptions."""


class StoreVersionError(CoreError):
    """Raised when a store's schema version is incompatible with the running code."""

    def __init__(self, version: int, supported: int) -> None:
        super().__init__(
            f"Store schema version {version} is not compatible with supported version {supported}."
        )
        self.version = version
        self.supported = supported


class RebuildError(CoreError):
    """Raised when a corrupted store could not be recreated or repopulated."""
