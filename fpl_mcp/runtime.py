# fpl_mcp/runtime.py
"""
Component wiring for one FPL MCP process.

FPLRuntime builds the client, cache, store, invalidator, scheduler, service
and sync orchestrator from Settings, and starts/stops their background work.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fpl_mcp.api.client import FPLApiClient
from fpl_mcp.api.models import SyncResult
from fpl_mcp.api.service import FPLService
from fpl_mcp.cache.invalidator import CacheInvalidator
from fpl_mcp.cache.redis_cache import RedisCache
from fpl_mcp.cache.scheduler import DeadlineScheduler
from fpl_mcp.config import Settings
from fpl_mcp.data.store import FPLDatabase
from fpl_mcp.data.sync import FPLDataSync

logger = logging.getLogger(__name__)


class FPLRuntime:
    """Owns every long-lived component of the server."""

    def __init__(
        self,
        settings: Settings,
        client: Optional[FPLApiClient] = None,
        cache: Optional[RedisCache] = None,
        database: Optional[FPLDatabase] = None,
    ):
        self.settings = settings
        self.client = client or FPLApiClient(settings.api_base_url, settings.http_timeout)
        self.cache = cache or RedisCache(
            url=settings.redis_url,
            max_connections=settings.redis_max_connections,
            socket_timeout=settings.redis_socket_timeout,
            retries=settings.redis_retries,
            local_ttl=settings.local_cache_ttl,
            local_size=settings.local_cache_size,
        )
        self.database = database or FPLDatabase(settings.db_path)
        self.invalidator = CacheInvalidator(self.cache)
        self.scheduler = DeadlineScheduler(self.invalidator)
        self.service = FPLService(
            self.client,
            self.cache,
            database=self.database,
            scheduler=self.scheduler,
            dev_mode=settings.dev_mode,
        )
        self.sync = FPLDataSync(
            self.service,
            self.database,
            self.scheduler,
            batch_size=settings.sync_batch_size,
        )
        self._users = 0
        self._lock = asyncio.Lock()

    async def start(self):
        """Arm timers and start the configured periodic jobs. Idempotent."""
        async with self._lock:
            self._users += 1
            if self._users > 1:
                return
            logger.info(
                f"Starting FPL runtime (env={self.settings.app_env}, "
                f"redis={self.settings.redis_url}, db={self.settings.db_path})"
            )
            await self.service.initialize()
            if self.settings.sync_interval > 0:
                self.scheduler.start_periodic(
                    "sync", self.settings.sync_interval, self.sync.sync_all
                )
            if self.settings.live_poll_interval > 0:
                self.scheduler.start_periodic(
                    "live-poll",
                    self.settings.live_poll_interval,
                    self.sync.check_for_updates,
                )

    async def stop(self):
        """Release resources once the last user has stopped."""
        async with self._lock:
            self._users = max(0, self._users - 1)
            if self._users > 0:
                return
            await self.close()

    async def close(self):
        await self.scheduler.shutdown()
        await self.client.aclose()
        await self.cache.close()
        self.database.close()
        logger.info("FPL runtime stopped")

    @asynccontextmanager
    async def lifespan(self, _server=None) -> AsyncIterator["FPLRuntime"]:
        await self.start()
        try:
            yield self
        finally:
            await self.stop()

    async def sync_once(self) -> SyncResult:
        """One synchronization run followed by shutdown (cron entry point)."""
        try:
            return await self.sync.sync_all()
        finally:
            await self.close()
