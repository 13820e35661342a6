# fpl_mcp/cache/invalidator.py
"""
Cache invalidation for FPL MCP.

Removes stale entries by scope (everything, player data, one gameweek, live
data) and prunes live-data keys for gameweeks that are already over.
"""

import asyncio
import json
import logging
from typing import Iterable, Optional

from fpl_mcp.api.errors import CacheError
from fpl_mcp.cache import keys
from fpl_mcp.cache.redis_cache import RedisCache
from fpl_mcp.observability.metrics import CACHE_INVALIDATIONS

logger = logging.getLogger(__name__)


class CacheInvalidator:
    """Deletes cache keys by scope. Store errors propagate as CacheError."""

    def __init__(self, cache: RedisCache):
        self.cache = cache

    async def invalidate_key(self, key: str) -> int:
        return await self.invalidate_keys([key])

    async def invalidate_keys(self, cache_keys: Iterable[str]) -> int:
        """Delete exact keys in one call; an empty input never reaches the store."""
        cache_keys = list(cache_keys)
        if not cache_keys:
            return 0
        removed = await self.cache.delete(*cache_keys)
        logger.debug(f"Invalidated {len(cache_keys)} keys ({removed} removed)")
        return removed

    async def invalidate_pattern(self, pattern: str) -> int:
        """Delete every key matching pattern; a no-op when nothing matches."""
        self.cache.evict_local(pattern)
        removed = await self.invalidate_keys(await self.cache.keys(pattern))
        CACHE_INVALIDATIONS.labels(scope="pattern").inc()
        if removed:
            logger.info(f"Invalidated {removed} keys matching {pattern}")
        else:
            logger.debug(f"No keys matching {pattern}")
        return removed

    async def invalidate_all_data(self) -> int:
        removed = await self.invalidate_pattern(keys.ALL_KEYS_PATTERN)
        CACHE_INVALIDATIONS.labels(scope="all").inc()
        return removed

    async def invalidate_player_data(self) -> int:
        """Drop player lists (all filters) and per-player entries."""
        results = await asyncio.gather(
            self.invalidate_pattern(keys.PLAYERS_PATTERN),
            self.invalidate_pattern(keys.PLAYER_PATTERN),
        )
        CACHE_INVALIDATIONS.labels(scope="players").inc()
        return sum(results)

    async def invalidate_gameweek_data(self, gameweek_id: int) -> int:
        """
        Drop one gameweek's live data and fixtures, then the gameweek list.

        The gameweek list goes last so a reader never sees a refreshed list
        while that gameweek's own entries are still stale.
        """
        results = await asyncio.gather(
            self.cache.delete(keys.live_gameweek_key(gameweek_id)),
            self.cache.delete(keys.fixtures_key(gameweek_id)),
        )
        removed = sum(results) + await self.cache.delete(keys.GAMEWEEKS_KEY)
        CACHE_INVALIDATIONS.labels(scope="gameweek").inc()
        logger.info(f"Invalidated gameweek {gameweek_id} data ({removed} keys)")
        return removed

    async def invalidate_live_data(self, gameweek_id: int) -> int:
        removed = await self.cache.delete(keys.live_gameweek_key(gameweek_id))
        CACHE_INVALIDATIONS.labels(scope="live").inc()
        return removed

    async def optimize_live_data_caching(self) -> int:
        """
        Delete live-data keys of gameweeks earlier than the current one.

        Reads the cached gameweek list; does nothing when it is absent or no
        gameweek is flagged current. Errors are logged, never raised.

        Returns:
            Number of keys removed
        """
        try:
            current_id = await self._current_gameweek_id()
            if current_id is None:
                return 0

            stale = []
            for key in await self.cache.keys(keys.LIVE_KEY_PATTERN):
                if "fixture" in key:
                    continue
                gameweek_id = keys.parse_live_key(key)
                if gameweek_id is not None and gameweek_id < current_id:
                    stale.append(key)

            removed = await self.invalidate_keys(stale)
            if not removed:
                return 0
            CACHE_INVALIDATIONS.labels(scope="prune").inc()
            logger.info(
                f"Pruned live data for {removed} past gameweeks (current={current_id})"
            )
            return removed
        except CacheError as e:
            logger.error(f"Error optimizing live data caching: {e}")
            return 0

    async def _current_gameweek_id(self) -> Optional[int]:
        raw = await self.cache.get(keys.GAMEWEEKS_KEY)
        if raw is None:
            return None
        try:
            gameweeks = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning(f"Cached gameweek list is not valid JSON: {e}")
            return None
        for gameweek in gameweeks:
            if gameweek.get("is_current"):
                return int(gameweek["id"])
        return None
