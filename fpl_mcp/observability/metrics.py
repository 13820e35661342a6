"""
Prometheus metrics for the FPL MCP server.
This module tracks:
- Cache reads and writes by result
- Invalidations by scope
- Sync runs and upsert batches
- Deadline scheduler events
"""

import logging
from typing import Optional

from prometheus_client import Counter, Gauge, start_http_server

logger = logging.getLogger(__name__)

# METRIC DEFINITIONS

CACHE_OPERATIONS = Counter(
    "fpl_mcp_cache_operations_total",
    "Total cache operations",
    ["operation", "result"],  # operation: get, set, delete; result: hit, miss, error, corrupt, ok
)

CACHE_INVALIDATIONS = Counter(
    "fpl_mcp_cache_invalidations_total",
    "Cache invalidations by scope",
    ["scope"],  # scope: all, players, gameweek, live, pattern, prune
)

SYNC_RUNS = Counter(
    "fpl_mcp_sync_runs_total",
    "Synchronization runs by outcome",
    ["status"],  # status: success, failure
)

UPSERT_BATCHES = Counter(
    "fpl_mcp_upsert_batches_total",
    "Relational upsert batches",
    ["table", "status"],
)

SCHEDULER_EVENTS = Counter(
    "fpl_mcp_scheduler_events_total",
    "Deadline scheduler events",
    ["event"],  # event: armed, intermediate, fired, superseded, failed
)

SCHEDULED_TIMERS = Gauge(
    "fpl_mcp_scheduled_timers", "Deadline invalidations currently armed"
)


def start_metrics_server(port: Optional[int]) -> bool:
    """Expose /metrics on the given port; no-op when port is None."""
    if not port:
        return False
    try:
        start_http_server(port)
    except OSError as e:
        logger.warning(f"Metrics server failed to start on port {port}: {e}")
        return False
    logger.info(f"Prometheus metrics available at http://0.0.0.0:{port}/metrics")
    return True
