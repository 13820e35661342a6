# fpl_mcp/api/service.py
"""
Cache-backed access to FPL data.

Every read goes through the cache-aside loader, so the upstream API is only
hit on a miss. `update_all_data` refreshes the shared keys in one
transaction and hands the normalized collections to the sync step.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from fpl_mcp.api.client import FPLApiClient
from fpl_mcp.api.errors import CacheError, FPLApiError, PersistenceError
from fpl_mcp.api.models import (
    Fixture,
    Gameweek,
    Player,
    PlayerGameweekStats,
    Team,
    find_live_stats,
    select_current_gameweek,
    select_next_gameweek,
)
from fpl_mcp.cache import keys
from fpl_mcp.cache.redis_cache import CacheStatus, RedisCache, fetch_with_cache
from fpl_mcp.cache.scheduler import DeadlineScheduler
from fpl_mcp.cache.ttl import CacheCategory, calculate_ttl
from fpl_mcp.data.store import FPLDatabase

logger = logging.getLogger(__name__)


@dataclass
class CacheSnapshot:
    """Normalized collections written by one cache refresh."""

    teams: List[Team]
    players: List[Player]
    gameweeks: List[Gameweek]
    fixtures: List[Fixture]
    current_gameweek: Optional[Gameweek] = None
    live: Optional[Dict[str, Any]] = None
    refreshed_keys: List[str] = field(default_factory=list)


def _dump(models: List[Any]) -> List[Dict[str, Any]]:
    return [m.model_dump(mode="json") for m in models]


class FPLService:
    """
    Read accessors and cache refresh for FPL data.

    Args:
        client: Upstream API client
        cache: Key-value tier
        database: Relational tier, consulted by the multi-source stat lookup
        scheduler: Deadline/periodic task registry used by initialize()
        dev_mode: Overrides the process-wide development flag for TTLs
    """

    def __init__(
        self,
        client: FPLApiClient,
        cache: RedisCache,
        database: Optional[FPLDatabase] = None,
        scheduler: Optional[DeadlineScheduler] = None,
        dev_mode: Optional[bool] = None,
    ):
        self.client = client
        self.cache = cache
        self.database = database
        self.scheduler = scheduler
        self.dev_mode = dev_mode

    async def _cached(self, key: str, category: CacheCategory, fetch_fn) -> Any:
        return await fetch_with_cache(self.cache, key, category, fetch_fn, self.dev_mode)

    def _ttl(self, category: CacheCategory) -> int:
        return calculate_ttl(category, self.dev_mode)

    # ========================================================================
    # READ ACCESSORS
    # ========================================================================

    async def get_bootstrap_static(self) -> Dict[str, Any]:
        return await self._cached(
            keys.BOOTSTRAP_KEY, CacheCategory.BOOTSTRAP, self.client.get_bootstrap_static
        )

    async def get_teams(self) -> List[Team]:
        async def load():
            bootstrap = await self.client.get_bootstrap_static()
            return _dump([Team.from_api(t) for t in bootstrap["teams"]])

        data = await self._cached(keys.TEAMS_KEY, CacheCategory.BOOTSTRAP, load)
        return [Team.model_validate(t) for t in data]

    async def get_team(self, team_id: int) -> Optional[Team]:
        return next((t for t in await self.get_teams() if t.id == team_id), None)

    async def get_players(
        self, team_id: Optional[int] = None, position: Optional[str] = None
    ) -> List[Player]:
        """
        Players, optionally filtered by team and/or position label.

        Each filter combination is cached under its own key.
        """

        async def load():
            bootstrap = await self.client.get_bootstrap_static()
            players = [Player.from_api(p) for p in bootstrap["elements"]]
            if team_id is not None:
                players = [p for p in players if p.team_id == team_id]
            if position:
                players = [p for p in players if p.position == position]
            return _dump(players)

        data = await self._cached(
            keys.players_key(team_id, position), CacheCategory.BOOTSTRAP, load
        )
        return [Player.model_validate(p) for p in data]

    async def get_player(self, player_id: int) -> Optional[Player]:
        return next((p for p in await self.get_players() if p.id == player_id), None)

    async def get_gameweeks(self) -> List[Gameweek]:
        async def load():
            bootstrap = await self.client.get_bootstrap_static()
            return _dump([Gameweek.from_api(e) for e in bootstrap["events"]])

        data = await self._cached(keys.GAMEWEEKS_KEY, CacheCategory.BOOTSTRAP, load)
        return [Gameweek.model_validate(g) for g in data]

    async def get_gameweek(self, gameweek_id: int) -> Optional[Gameweek]:
        return next((g for g in await self.get_gameweeks() if g.id == gameweek_id), None)

    async def get_current_gameweek(self) -> Optional[Gameweek]:
        return select_current_gameweek(await self.get_gameweeks())

    async def get_next_gameweek(self) -> Optional[Gameweek]:
        return select_next_gameweek(await self.get_gameweeks())

    async def get_fixtures(self, gameweek_id: Optional[int] = None) -> List[Fixture]:
        async def load():
            raw = await self.client.get_fixtures()
            fixtures = [Fixture.from_api(f) for f in raw]
            if gameweek_id is not None:
                fixtures = [f for f in fixtures if f.gameweek_id == gameweek_id]
            return _dump(fixtures)

        data = await self._cached(keys.fixtures_key(gameweek_id), CacheCategory.FIXTURES, load)
        return [Fixture.model_validate(f) for f in data]

    async def get_player_detail(self, player_id: int) -> Dict[str, Any]:
        return await self._cached(
            keys.player_detail_key(player_id),
            CacheCategory.PLAYER_DETAIL,
            lambda: self.client.get_player_detail(player_id),
        )

    async def get_player_season_stats(
        self, player_id: int, season: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Past-season summaries of a player, optionally for one season ("2023/24")."""
        detail = await self.get_player_detail(player_id)
        history = detail.get("history_past") or []
        if season:
            history = [h for h in history if h.get("season_name") == season]
        return history

    async def get_live_gameweek(self, gameweek_id: int) -> Dict[str, Any]:
        return await self._cached(
            keys.live_gameweek_key(gameweek_id),
            CacheCategory.LIVE,
            lambda: self.client.get_gameweek_live(gameweek_id),
        )

    async def is_gameweek_active(self) -> bool:
        """
        True when the current gameweek has a fixture that kicked off and is
        not finished. Failures are logged and reported as inactive.
        """
        try:
            current = await self.get_current_gameweek()
            if current is None:
                return False
            now = datetime.now(timezone.utc)
            for fixture in await self.get_fixtures(current.id):
                if fixture.kickoff_time is None or fixture.finished:
                    continue
                kickoff = fixture.kickoff_time
                if kickoff.tzinfo is None:
                    kickoff = kickoff.replace(tzinfo=timezone.utc)
                if kickoff <= now:
                    return True
            return False
        except (FPLApiError, CacheError, KeyError, ValueError) as e:
            logger.error(f"Error checking if gameweek is active: {e}")
            return False

    # ========================================================================
    # MULTI-SOURCE STAT LOOKUP
    # ========================================================================

    async def get_player_gameweek_stats(
        self, player_id: int, gameweek_id: int
    ) -> Optional[PlayerGameweekStats]:
        """
        One player's stat line for one gameweek.

        Tries, in order: the cache, the relational store, the live gameweek
        data. A failing source is logged and the next one is tried.

        Returns:
            The stat line, or None when no source has it
        """
        key = keys.player_gameweek_key(player_id, gameweek_id)

        lookup = await self.cache.lookup(key)
        if lookup.hit and lookup.value:
            try:
                return PlayerGameweekStats.model_validate(lookup.value)
            except ValidationError as e:
                logger.warning(f"Discarding invalid cached stat line {key}: {e}")
                await self._discard(key)
        elif lookup.status is CacheStatus.CORRUPT:
            logger.warning(f"Discarding undecodable cache entry {key}: {lookup.error}")
            await self._discard(key)

        if self.database is not None:
            try:
                row = await self.database.get_player_gameweek_stats(player_id, gameweek_id)
            except PersistenceError as e:
                logger.warning(f"Database lookup failed for {key}: {e}")
                row = None
            if row:
                line = PlayerGameweekStats.model_validate(
                    {k: v for k, v in row.items() if v is not None}
                )
                await self._store_quietly(
                    key, line.model_dump(), self._ttl(CacheCategory.DEFAULT)
                )
                return line

        try:
            live = await self.get_live_gameweek(gameweek_id)
        except FPLApiError as e:
            logger.error(f"Live data unavailable for gameweek {gameweek_id}: {e}")
            return None
        stats = find_live_stats(live, player_id)
        if stats is None:
            return None
        line = PlayerGameweekStats.from_live_stats(player_id, gameweek_id, stats)
        await self._store_quietly(key, line.model_dump(), self._ttl(CacheCategory.LIVE))
        return line

    async def _discard(self, key: str):
        try:
            await self.cache.delete(key)
        except CacheError as e:
            logger.warning(f"Could not delete cache entry {key}: {e}")

    async def _store_quietly(self, key: str, value: Any, ttl: int):
        try:
            await self.cache.set_json(key, value, ttl)
        except CacheError as e:
            logger.warning(f"Cache write failed for {key}: {e}")

    # ========================================================================
    # CACHE REFRESH
    # ========================================================================

    async def update_all_data(self) -> CacheSnapshot:
        """
        Refetch bootstrap, fixtures and current live data and rewrite the shared
        keys in a single transaction.

        Raises:
            FPLApiError: An upstream fetch failed (nothing is written)
            CacheError: The transaction failed (nothing is written)
        """
        logger.info("Refreshing FPL cache from upstream")
        bootstrap, raw_fixtures = await asyncio.gather(
            self.client.get_bootstrap_static(), self.client.get_fixtures()
        )

        teams = [Team.from_api(t) for t in bootstrap["teams"]]
        players = [Player.from_api(p) for p in bootstrap["elements"]]
        gameweeks = [Gameweek.from_api(e) for e in bootstrap["events"]]
        fixtures = [Fixture.from_api(f) for f in raw_fixtures]
        current = select_current_gameweek(gameweeks)

        live = None
        if current is not None:
            live = await self.client.get_gameweek_live(current.id)

        bootstrap_ttl = self._ttl(CacheCategory.BOOTSTRAP)
        items = {
            keys.BOOTSTRAP_KEY: (json.dumps(bootstrap), bootstrap_ttl),
            keys.TEAMS_KEY: (json.dumps(_dump(teams)), bootstrap_ttl),
            keys.GAMEWEEKS_KEY: (json.dumps(_dump(gameweeks)), bootstrap_ttl),
            keys.players_key(): (json.dumps(_dump(players)), bootstrap_ttl),
            keys.fixtures_key(): (
                json.dumps(_dump(fixtures)),
                self._ttl(CacheCategory.FIXTURES),
            ),
        }
        if current is not None and live is not None:
            items[keys.live_gameweek_key(current.id)] = (
                json.dumps(live),
                self._ttl(CacheCategory.LIVE),
            )

        await self.cache.set_many(items)
        logger.info(
            f"Cache refreshed: {len(teams)} teams, {len(players)} players, "
            f"{len(gameweeks)} gameweeks, {len(fixtures)} fixtures"
        )
        return CacheSnapshot(
            teams=teams,
            players=players,
            gameweeks=gameweeks,
            fixtures=fixtures,
            current_gameweek=current,
            live=live,
            refreshed_keys=list(items),
        )

    # ========================================================================
    # STARTUP
    # ========================================================================

    async def initialize(self) -> bool:
        """
        Arm deadline invalidation from the cached gameweeks and, while a
        gameweek is in progress, invalidate its live data every 5 minutes.

        Returns:
            False when initialization failed (logged), True otherwise
        """
        if self.scheduler is None:
            return True
        try:
            gameweeks = await self.get_gameweeks()
            await self.scheduler.setup_scheduled_invalidation(gameweeks)

            current = select_current_gameweek(gameweeks)
            if current is not None and await self.is_gameweek_active():
                self.scheduler.start_live_refresh(current.id)
            return True
        except (FPLApiError, CacheError) as e:
            logger.error(f"Failed to initialize FPL service: {e}")
            return False
