"""
Audioshelf - local storage core for an audiobook library.

Audioshelf opens the versioned library database on launch, migrates it step by
step when the on-disk schema is older than the running code, and recovers from
unreadable stores by rebuilding the library from already-downloaded media.
"""

__version__ = "0.1.0"
__author__ = "Audioshelf Contributors"
__license__ = "GPL-2.0"

from audioshelf.core.loading.orchestrator import LoadingOrchestrator

__all__ = ["LoadingOrchestrator", "__version__"]
