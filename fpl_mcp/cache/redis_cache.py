# fpl_mcp/cache/redis_cache.py
"""
Redis cache for FPL MCP, with an optional in-process tier in front of it.

Features:
- Async Redis client with a bounded pool, bounded retries and timeouts
- Atomic multi-key refresh (MULTI/EXEC pipeline)
- Short-lived in-process LRU tier, only filled after Redis confirms
- Explicit lookup outcomes (hit / miss / store error / corrupt entry)
- Cache-aside loader used by every read path
- Cache statistics
"""

import fnmatch
import json
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

import redis.asyncio as aioredis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from fpl_mcp.api.errors import CacheError
from fpl_mcp.cache.ttl import CacheCategory, calculate_ttl
from fpl_mcp.observability.metrics import CACHE_OPERATIONS

logger = logging.getLogger(__name__)

_STORE_ERRORS = (RedisError, OSError)


# ============================================================================
# IN-PROCESS CACHE (LRU)
# ============================================================================


class LRUCache:
    """
    In-memory LRU cache with TTL support.

    Sits in front of Redis for hot keys. Entries expire on their own TTL and
    the least recently used entry is evicted once max_size is reached.
    """

    def __init__(self, max_size: int = 256):
        self.cache: OrderedDict = OrderedDict()
        self.max_size = max_size
        self.ttls: Dict[str, float] = {}  # key -> expiration timestamp

    def get(self, key: str) -> Optional[Any]:
        if key not in self.cache:
            return None

        if key in self.ttls and time.monotonic() > self.ttls[key]:
            self.delete(key)
            return None

        self.cache.move_to_end(key)
        return self.cache[key]

    def set(self, key: str, value: Any, ttl: int):
        if key in self.cache:
            self.cache.pop(key)

        self.cache[key] = value
        self.ttls[key] = time.monotonic() + ttl

        if len(self.cache) > self.max_size:
            oldest_key = next(iter(self.cache))
            self.delete(oldest_key)

    def delete(self, key: str):
        self.cache.pop(key, None)
        self.ttls.pop(key, None)

    def delete_matching(self, pattern: str) -> int:
        """Evict every key matching a glob-style pattern."""
        matched = [key for key in self.cache if fnmatch.fnmatchcase(key, pattern)]
        for key in matched:
            self.delete(key)
        return len(matched)

    def clear(self):
        self.cache.clear()
        self.ttls.clear()

    def size(self) -> int:
        return len(self.cache)


# ============================================================================
# LOOKUP OUTCOMES
# ============================================================================


class CacheStatus(str, Enum):
    """Outcome of reading one key."""

    HIT = "hit"
    MISS = "miss"
    STORE_ERROR = "store_error"
    CORRUPT = "corrupt"


@dataclass
class CacheLookup:
    status: CacheStatus
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def hit(self) -> bool:
        return self.status is CacheStatus.HIT


# ============================================================================
# REDIS CACHE CLIENT
# ============================================================================


class RedisCache:
    """
    Async Redis cache client.

    Every store failure surfaces as CacheError; callers decide whether it is
    fatal. Values are JSON text.
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        max_connections: int = 10,
        socket_timeout: float = 5.0,
        retries: int = 3,
        local_ttl: int = 0,
        local_size: int = 256,
        client: Optional[Any] = None,
    ):
        """
        Initialize the Redis cache client.

        Args:
            url: Redis connection URL
            max_connections: Pool size; exceeding it raises instead of queueing
            socket_timeout: Connect and command timeout in seconds
            retries: Bounded retry count for connection/timeout errors
            local_ttl: Lifetime of the in-process tier in seconds (0 disables it)
            local_size: Capacity of the in-process tier
            client: Pre-built async Redis client (used by tests)
        """
        self.url = url
        if client is None:
            client = aioredis.from_url(
                url,
                decode_responses=True,
                max_connections=max_connections,
                socket_timeout=socket_timeout,
                socket_connect_timeout=socket_timeout,
                retry=Retry(ExponentialBackoff(cap=2.0, base=0.1), retries),
                retry_on_error=[RedisConnectionError, RedisTimeoutError],
            )
        self.client = client

        self.local_ttl = local_ttl
        self.local: Optional[LRUCache] = (
            LRUCache(max_size=local_size) if local_ttl > 0 else None
        )

        self.stats = {
            "hits": 0,
            "misses": 0,
            "local_hits": 0,
            "sets": 0,
            "deletes": 0,
            "errors": 0,
            "corrupt": 0,
        }

    def _fail(self, operation: str, key: Optional[str], error: Exception) -> CacheError:
        self.stats["errors"] += 1
        CACHE_OPERATIONS.labels(operation=operation, result="error").inc()
        return CacheError(operation, key, error)

    def _remember(self, key: str, value: str, ttl: int):
        if self.local is not None:
            self.local.set(key, value, min(ttl, self.local_ttl))

    # ------------------------------------------------------------------
    # Raw key-value operations
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Optional[str]:
        """Raw value for key, or None when absent."""
        if self.local is not None:
            value = self.local.get(key)
            if value is not None:
                self.stats["local_hits"] += 1
                return value

        try:
            value = await self.client.get(key)
        except _STORE_ERRORS as e:
            raise self._fail("get", key, e) from e

        if value is not None:
            self._remember(key, value, self.local_ttl)
        return value

    async def set(self, key: str, value: str, ttl: int) -> None:
        try:
            await self.client.set(key, value, ex=ttl)
        except _STORE_ERRORS as e:
            raise self._fail("set", key, e) from e
        self.stats["sets"] += 1
        CACHE_OPERATIONS.labels(operation="set", result="ok").inc()
        self._remember(key, value, ttl)
        logger.debug(f"Cache SET: {key} (TTL={ttl}s)")

    async def set_many(self, items: Dict[str, Tuple[str, int]]) -> None:
        """
        Write several keys in one MULTI/EXEC transaction.

        Args:
            items: Mapping of key -> (value, ttl seconds)

        Readers observe either none or all of the new values.
        """
        if not items:
            return
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                for key, (value, ttl) in items.items():
                    pipe.set(key, value, ex=ttl)
                await pipe.execute()
        except _STORE_ERRORS as e:
            raise self._fail("set_many", None, e) from e

        self.stats["sets"] += len(items)
        CACHE_OPERATIONS.labels(operation="set", result="ok").inc(len(items))
        for key, (value, ttl) in items.items():
            self._remember(key, value, ttl)
        logger.debug(f"Cache SET (transaction): {len(items)} keys")

    async def delete(self, *keys: str) -> int:
        """Delete keys; returns the number Redis actually removed."""
        if not keys:
            return 0
        if self.local is not None:
            for key in keys:
                self.local.delete(key)
        try:
            removed = await self.client.delete(*keys)
        except _STORE_ERRORS as e:
            raise self._fail("delete", ",".join(keys), e) from e
        self.stats["deletes"] += removed
        CACHE_OPERATIONS.labels(operation="delete", result="ok").inc()
        return removed

    async def keys(self, pattern: str) -> List[str]:
        """All keys matching a glob-style pattern (SCAN, never KEYS)."""
        try:
            return [key async for key in self.client.scan_iter(match=pattern, count=500)]
        except _STORE_ERRORS as e:
            raise self._fail("scan", pattern, e) from e

    def evict_local(self, pattern: str):
        """Drop in-process entries matching pattern; Redis is untouched."""
        if self.local is not None:
            self.local.delete_matching(pattern)

    async def delete_pattern(self, pattern: str) -> int:
        """
        Delete every key matching pattern.

        Issues no delete at all when nothing matches.
        """
        self.evict_local(pattern)
        matched = await self.keys(pattern)
        if not matched:
            return 0
        return await self.delete(*matched)

    async def exists(self, key: str) -> bool:
        try:
            return bool(await self.client.exists(key))
        except _STORE_ERRORS as e:
            raise self._fail("exists", key, e) from e

    async def expire(self, key: str, ttl: int) -> bool:
        try:
            return bool(await self.client.expire(key, ttl))
        except _STORE_ERRORS as e:
            raise self._fail("expire", key, e) from e

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except _STORE_ERRORS as e:
            raise self._fail("ping", None, e) from e

    async def close(self) -> None:
        try:
            await self.client.aclose()
        except _STORE_ERRORS as e:
            logger.warning(f"Error closing Redis client: {e}")
        if self.local is not None:
            self.local.clear()

    # ------------------------------------------------------------------
    # JSON layer
    # ------------------------------------------------------------------

    async def lookup(self, key: str) -> CacheLookup:
        """Read and decode one key without raising."""
        try:
            raw = await self.get(key)
        except CacheError as e:
            return CacheLookup(CacheStatus.STORE_ERROR, error=e)

        if raw is None:
            self.stats["misses"] += 1
            CACHE_OPERATIONS.labels(operation="get", result="miss").inc()
            logger.debug(f"Cache MISS: {key}")
            return CacheLookup(CacheStatus.MISS)

        try:
            value = json.loads(raw)
        except (TypeError, ValueError) as e:
            self.stats["corrupt"] += 1
            CACHE_OPERATIONS.labels(operation="get", result="corrupt").inc()
            return CacheLookup(CacheStatus.CORRUPT, error=e)

        self.stats["hits"] += 1
        CACHE_OPERATIONS.labels(operation="get", result="hit").inc()
        logger.debug(f"Cache HIT: {key}")
        return CacheLookup(CacheStatus.HIT, value=value)

    async def set_json(self, key: str, value: Any, ttl: int) -> None:
        await self.set(key, json.dumps(value), ttl)

    def get_stats(self) -> Dict[str, Any]:
        reads = self.stats["hits"] + self.stats["misses"]
        return {
            **self.stats,
            "hit_rate": self.stats["hits"] / reads if reads else 0.0,
            "local_size": self.local.size() if self.local is not None else 0,
            "url": self.url,
        }


# ============================================================================
# CACHE-ASIDE LOADER
# ============================================================================


async def fetch_with_cache(
    cache: RedisCache,
    key: str,
    category: Union[CacheCategory, str],
    fetch_fn: Callable[[], Awaitable[Any]],
    dev_mode: Optional[bool] = None,
) -> Any:
    """
    Return the cached value for key, or fetch, store and return it.

    Store failures never fail the call: a read error is treated as a miss and a
    write error is logged after the fresh value has been obtained. Errors from
    fetch_fn propagate unchanged.

    Args:
        cache: Key-value tier
        key: Cache key
        category: Selects the TTL for a freshly fetched value
        fetch_fn: Zero-argument coroutine function producing JSON-serializable data
        dev_mode: Overrides the process-wide development flag for the TTL

    Returns:
        The cached or freshly fetched value

    Example:
        >>> teams = await fetch_with_cache(cache, TEAMS_KEY, CacheCategory.BOOTSTRAP, load_teams)
    """
    lookup = await cache.lookup(key)
    if lookup.hit:
        return lookup.value

    if lookup.status is CacheStatus.STORE_ERROR:
        logger.warning(f"Cache read failed for {key}, fetching fresh data: {lookup.error}")
    elif lookup.status is CacheStatus.CORRUPT:
        logger.warning(f"Discarding undecodable cache entry {key}: {lookup.error}")
        try:
            await cache.delete(key)
        except CacheError as e:
            logger.warning(f"Could not delete corrupt entry {key}: {e}")

    data = await fetch_fn()

    ttl = calculate_ttl(category, dev_mode)
    try:
        await cache.set_json(key, data, ttl)
    except CacheError as e:
        logger.warning(f"Cache write failed for {key}: {e}")

    return data
