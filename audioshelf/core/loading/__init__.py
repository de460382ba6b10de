"""
Store loading sequence: inspect, migrate, open, classify, rebuild, bootstrap.

Consumers normally only need `LoadingOrchestrator` and the outcome types from
`audioshelf.core.loading.orchestrator`.
"""

from __future__ import annotations
