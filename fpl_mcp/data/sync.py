# fpl_mcp/data/sync.py
"""
Synchronization of FPL data from the upstream API into the cache and the
relational store.

Flow of `sync_all`:
1. Cache refresh (one transaction); any failure here fails the run
2. Teams, players, gameweeks and fixtures upserted concurrently, each in
   sequential batches
3. Final results of finished fixtures
4. Per-player stat lines for every finished gameweek
5. Deadline timers re-armed for upcoming gameweeks

Failures after step 1 are logged and counted, never raised.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Iterable, List, Sequence

from fpl_mcp.api.errors import CacheError, FPLApiError, PersistenceError
from fpl_mcp.api.models import (
    SyncResult,
    stat_lines_from_live,
    to_fixture_record,
    to_fixture_result_record,
    to_gameweek_record,
    to_player_record,
    to_stat_line_record,
    to_team_record,
    utc_now_iso,
)
from fpl_mcp.api.service import CacheSnapshot, FPLService
from fpl_mcp.cache import keys
from fpl_mcp.cache.scheduler import DeadlineScheduler
from fpl_mcp.data.store import FPLDatabase
from fpl_mcp.observability.metrics import SYNC_RUNS, UPSERT_BATCHES

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50


class FPLDataSync:
    """
    Orchestrates a full refresh of the cache and the relational store.

    Args:
        service: Cache-backed FPL service
        database: Relational store
        scheduler: Deadline timer registry re-armed after each run
        batch_size: Rows per upsert statement batch
    """

    def __init__(
        self,
        service: FPLService,
        database: FPLDatabase,
        scheduler: DeadlineScheduler,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        self.service = service
        self.database = database
        self.scheduler = scheduler
        self.batch_size = max(1, batch_size)
        self.stats = {
            "runs": 0,
            "failed_runs": 0,
            "failed_batches": 0,
            "failed_steps": 0,
            "skipped_records": 0,
            "skipped_gameweeks": 0,
        }

    async def sync_all(self) -> SyncResult:
        """Run one full synchronization. Never raises."""
        self.stats["runs"] += 1
        try:
            snapshot = await self.service.update_all_data()
        except Exception as e:
            self.stats["failed_runs"] += 1
            SYNC_RUNS.labels(status="failure").inc()
            logger.error(f"Data synchronization failed during cache refresh: {e}")
            return SyncResult(
                success=False, message="Data synchronization failed", error=str(e)
            )

        for step in (
            self.update_database_from_cache,
            self.update_fixture_results,
            self.update_player_stats,
        ):
            try:
                await step(snapshot)
            except Exception:
                self.stats["failed_steps"] += 1
                logger.exception(f"Sync step {step.__name__} failed")

        try:
            upcoming = [gw for gw in snapshot.gameweeks if not gw.finished]
            await self.scheduler.setup_scheduled_invalidation(upcoming)
        except Exception:
            logger.exception("Failed to set up scheduled invalidation after sync")

        SYNC_RUNS.labels(status="success").inc()
        logger.info("Data synchronization completed")
        return SyncResult(success=True, message="Data synchronized successfully")

    update_all_data = sync_all

    # ========================================================================
    # PERSISTENCE
    # ========================================================================

    async def _upsert_batches(
        self, table: str, records: List[Dict[str, Any]], conflict_key: Sequence[str]
    ) -> int:
        written = 0
        for start in range(0, len(records), self.batch_size):
            batch = records[start : start + self.batch_size]
            try:
                written += await self.database.upsert(table, batch, conflict_key)
                UPSERT_BATCHES.labels(table=table, status="success").inc()
            except PersistenceError as e:
                self.stats["failed_batches"] += 1
                UPSERT_BATCHES.labels(table=table, status="failure").inc()
                logger.warning(
                    f"Upsert of {table} batch {start // self.batch_size + 1} "
                    f"({len(batch)} rows) failed: {e}"
                )
        logger.debug(f"Upserted {written}/{len(records)} rows into {table}")
        return written

    def _build_records(
        self, table: str, build: Callable[[Any, str], Dict[str, Any]], items: Iterable[Any]
    ) -> List[Dict[str, Any]]:
        """Row dicts for items; an item that cannot be converted is logged and skipped."""
        now = utc_now_iso()
        records = []
        for item in items:
            try:
                records.append(build(item, now))
            except Exception as e:
                self.stats["skipped_records"] += 1
                logger.warning(f"Skipping malformed {table} record: {e}")
        return records

    async def update_database_from_cache(self, snapshot: CacheSnapshot) -> Dict[str, int]:
        """Upsert teams, players, gameweeks and fixtures concurrently."""
        tables = {
            "teams": self._build_records("teams", to_team_record, snapshot.teams),
            "players": self._build_records("players", to_player_record, snapshot.players),
            "gameweeks": self._build_records(
                "gameweeks", to_gameweek_record, snapshot.gameweeks
            ),
            "fixtures": self._build_records("fixtures", to_fixture_record, snapshot.fixtures),
        }
        written = await asyncio.gather(
            *(self._upsert_batches(table, rows, ["id"]) for table, rows in tables.items())
        )
        counts = dict(zip(tables, written))
        logger.info(f"Relational store updated: {counts}")
        return counts

    async def update_fixture_results(self, snapshot: CacheSnapshot) -> int:
        """Write scores of finished fixtures that have both scores."""
        finished = [f for f in snapshot.fixtures if f.has_result]
        results = self._build_records("fixtures", to_fixture_result_record, finished)
        return await self._upsert_batches("fixtures", results, ["id"])

    async def update_player_stats(self, snapshot: CacheSnapshot) -> int:
        """
        Write stat lines (minutes > 0) for every finished gameweek.

        A gameweek whose live data is unavailable or malformed is logged and
        skipped; the remaining gameweeks are still written.
        """
        written = 0
        for gameweek in snapshot.gameweeks:
            if not gameweek.finished:
                continue
            try:
                live = await self.service.get_live_gameweek(gameweek.id)
                lines = stat_lines_from_live(gameweek.id, live)
            except Exception as e:
                self.stats["skipped_gameweeks"] += 1
                logger.warning(f"Skipping stats for gameweek {gameweek.id}: {e}")
                continue
            records = self._build_records(
                "player_gameweek_stats", to_stat_line_record, lines
            )
            written += await self._upsert_batches(
                "player_gameweek_stats", records, ["player_id", "gameweek_id"]
            )
        return written

    # ========================================================================
    # LIVE POLLING
    # ========================================================================

    async def check_for_updates(self) -> Dict[str, Any]:
        """
        Refresh live data and fixtures of the current gameweek while it is being
        played.

        Returns:
            {"success": True, "is_active": bool} or {"success": False, "error": str}
        """
        try:
            is_active = await self.service.is_gameweek_active()
            if is_active:
                current = await self.service.get_current_gameweek()
                if current is not None:
                    await self.service.cache.delete(
                        keys.live_gameweek_key(current.id), keys.fixtures_key(current.id)
                    )
                    await self.service.get_live_gameweek(current.id)
                    await self.service.get_fixtures(current.id)
                    logger.info(f"Refreshed live data for gameweek {current.id}")
            return {"success": True, "is_active": is_active}
        except (FPLApiError, CacheError) as e:
            logger.error(f"Error checking for updates: {e}")
            return {"success": False, "error": str(e)}
