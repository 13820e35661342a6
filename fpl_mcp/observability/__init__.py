"""Observability for FPL MCP: Prometheus counters."""

from .metrics import (
    CACHE_INVALIDATIONS,
    CACHE_OPERATIONS,
    SCHEDULED_TIMERS,
    SCHEDULER_EVENTS,
    SYNC_RUNS,
    UPSERT_BATCHES,
    start_metrics_server,
)

__all__ = [
    "CACHE_OPERATIONS",
    "CACHE_INVALIDATIONS",
    "SYNC_RUNS",
    "UPSERT_BATCHES",
    "SCHEDULER_EVENTS",
    "SCHEDULED_TIMERS",
    "start_metrics_server",
]
