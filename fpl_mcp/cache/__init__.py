# fpl_mcp/cache/__init__.py
"""
Caching layer for FPL MCP.

Features:
- Redis cache with an in-process LRU tier
- TTL policy by payload category
- Cache-aside loader
- Scoped invalidation and deadline-driven invalidation timers
"""

from .invalidator import CacheInvalidator
from .redis_cache import (
    CacheLookup,
    CacheStatus,
    LRUCache,
    RedisCache,
    fetch_with_cache,
)
from .scheduler import MAX_TIMER_SECONDS, DeadlineScheduler, ScheduledInvalidation, TimerState
from .ttl import CacheCategory, calculate_ttl

__all__ = [
    "RedisCache",
    "LRUCache",
    "CacheLookup",
    "CacheStatus",
    "fetch_with_cache",
    "CacheCategory",
    "calculate_ttl",
    "CacheInvalidator",
    "DeadlineScheduler",
    "ScheduledInvalidation",
    "TimerState",
    "MAX_TIMER_SECONDS",
]
