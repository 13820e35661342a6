# fpl_mcp/cache/scheduler.py
"""
Deadline-driven cache invalidation.

Owns every background task of the cache layer:
- one timer per gameweek that fires shortly after its transfer deadline and
  drops that gameweek's data and all player data
- named periodic jobs (live-data invalidation, sync and live polling cadences)

A single asyncio sleep is capped at MAX_TIMER_SECONDS (2^31-1 ms, the longest
timer most runtimes accept). Longer waits wake up at the cap, recompute the
remaining time and sleep again.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Dict, Iterable, List, Optional

from fpl_mcp.api.models import Gameweek
from fpl_mcp.cache.invalidator import CacheInvalidator
from fpl_mcp.observability.metrics import SCHEDULED_TIMERS, SCHEDULER_EVENTS

logger = logging.getLogger(__name__)

MAX_TIMER_SECONDS = 2_147_483_647 / 1000
DEFAULT_GRACE_SECONDS = 60
LIVE_REFRESH_INTERVAL = 300


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _aware(moment: datetime) -> datetime:
    return moment if moment.tzinfo else moment.replace(tzinfo=timezone.utc)


class TimerState(str, Enum):
    ARMED = "armed"
    FIRED = "fired"
    SUPERSEDED = "superseded"
    FAILED = "failed"


@dataclass
class ScheduledInvalidation:
    """Registry entry for one gameweek's deadline timer."""

    gameweek_id: int
    deadline: datetime
    state: TimerState = TimerState.ARMED
    wakeups: int = 0
    task: Optional[asyncio.Task] = field(default=None, repr=False)
    error: Optional[str] = None


class DeadlineScheduler:
    """
    Registry of deadline timers and periodic jobs.

    Args:
        invalidator: Performs the invalidation when a timer fires
        grace_seconds: Delay after the deadline before firing
        max_timer_seconds: Longest single sleep
        clock: Returns the current aware datetime
        sleep: Coroutine function used to wait (injectable for tests)
    """

    def __init__(
        self,
        invalidator: CacheInvalidator,
        grace_seconds: float = DEFAULT_GRACE_SECONDS,
        max_timer_seconds: float = MAX_TIMER_SECONDS,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.invalidator = invalidator
        self.grace_seconds = grace_seconds
        self.max_timer_seconds = max_timer_seconds
        self.clock = clock
        self.sleep = sleep
        self.timers: Dict[int, ScheduledInvalidation] = {}
        self.periodic: Dict[str, asyncio.Task] = {}

    # ------------------------------------------------------------------
    # Deadline timers
    # ------------------------------------------------------------------

    def schedule_deadline_invalidation(
        self, deadline: datetime, gameweek_id: int
    ) -> ScheduledInvalidation:
        """
        Arm a timer that fires grace_seconds after deadline.

        Re-arming a gameweek with the deadline it is armed for, or has already
        fired for, returns the existing entry. A different deadline supersedes
        an armed timer.
        """
        deadline = _aware(deadline)
        existing = self.timers.get(gameweek_id)
        if existing is not None:
            if existing.deadline == deadline and existing.state in (
                TimerState.ARMED,
                TimerState.FIRED,
            ):
                return existing
            if existing.state is TimerState.ARMED:
                self._supersede(existing)

        entry = ScheduledInvalidation(gameweek_id=gameweek_id, deadline=deadline)
        entry.task = asyncio.create_task(
            self._run(entry), name=f"fpl-deadline-gw{gameweek_id}"
        )
        self.timers[gameweek_id] = entry
        SCHEDULER_EVENTS.labels(event="armed").inc()
        self._update_gauge()
        logger.info(
            f"Scheduled cache invalidation for gameweek {gameweek_id} "
            f"(deadline {deadline.isoformat()})"
        )
        return entry

    def _supersede(self, entry: ScheduledInvalidation):
        entry.state = TimerState.SUPERSEDED
        if entry.task is not None and not entry.task.done():
            entry.task.cancel()
        SCHEDULER_EVENTS.labels(event="superseded").inc()
        logger.info(
            f"Superseded invalidation timer for gameweek {entry.gameweek_id} "
            f"(old deadline {entry.deadline.isoformat()})"
        )

    def _remaining_wait(self, entry: ScheduledInvalidation) -> float:
        remaining = (entry.deadline - self.clock()).total_seconds()
        return max(0.0, remaining) + self.grace_seconds

    async def _run(self, entry: ScheduledInvalidation):
        try:
            while True:
                wait = self._remaining_wait(entry)
                if wait <= self.max_timer_seconds:
                    await self.sleep(wait)
                    break
                logger.info(
                    f"Gameweek {entry.gameweek_id} deadline is {wait / 86400:.1f} days "
                    f"away; sleeping {self.max_timer_seconds / 86400:.1f} days first"
                )
                SCHEDULER_EVENTS.labels(event="intermediate").inc()
                await self.sleep(self.max_timer_seconds)
                entry.wakeups += 1

            if entry.state is not TimerState.ARMED:
                return
            logger.info(f"Deadline passed for gameweek {entry.gameweek_id}; invalidating")
            await self.invalidator.invalidate_gameweek_data(entry.gameweek_id)
            await self.invalidator.invalidate_player_data()
            entry.state = TimerState.FIRED
            SCHEDULER_EVENTS.labels(event="fired").inc()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            entry.state = TimerState.FAILED
            entry.error = str(e)
            SCHEDULER_EVENTS.labels(event="failed").inc()
            logger.exception(
                f"Scheduled invalidation for gameweek {entry.gameweek_id} failed"
            )
        finally:
            self._update_gauge()

    async def setup_scheduled_invalidation(
        self, gameweeks: Iterable[Gameweek]
    ) -> List[ScheduledInvalidation]:
        """
        Arm a timer for every gameweek whose deadline is still ahead, then prune
        live data of past gameweeks.
        """
        now = self.clock()
        armed = []
        for gameweek in gameweeks:
            if _aware(gameweek.deadline_time) > now:
                armed.append(
                    self.schedule_deadline_invalidation(gameweek.deadline_time, gameweek.id)
                )
        logger.info(f"Armed {len(armed)} deadline invalidation timers")
        await self.invalidator.optimize_live_data_caching()
        return armed

    def pending(self) -> List[ScheduledInvalidation]:
        return [e for e in self.timers.values() if e.state is TimerState.ARMED]

    def _update_gauge(self):
        SCHEDULED_TIMERS.set(len(self.pending()))

    # ------------------------------------------------------------------
    # Periodic jobs
    # ------------------------------------------------------------------

    def start_periodic(
        self, name: str, interval: float, job: Callable[[], Awaitable[object]]
    ) -> asyncio.Task:
        """
        Run job every interval seconds until cancelled.

        Starting a name that is already running replaces the old task. A failing
        run is logged and the loop continues.
        """
        self.stop_periodic(name)

        async def _loop():
            while True:
                await self.sleep(interval)
                try:
                    await job()
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.exception(f"Periodic job {name} failed")

        task = asyncio.create_task(_loop(), name=f"fpl-periodic-{name}")
        self.periodic[name] = task
        logger.info(f"Started periodic job {name} (every {interval}s)")
        return task

    def stop_periodic(self, name: str) -> bool:
        task = self.periodic.pop(name, None)
        if task is None:
            return False
        task.cancel()
        return True

    def start_live_refresh(
        self, gameweek_id: int, interval: float = LIVE_REFRESH_INTERVAL
    ) -> asyncio.Task:
        """Invalidate one gameweek's live data every interval seconds."""
        return self.start_periodic(
            "live-refresh",
            interval,
            lambda: self.invalidator.invalidate_live_data(gameweek_id),
        )

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def shutdown(self):
        """Cancel every timer and periodic job and wait for them to finish."""
        tasks = list(self.periodic.values())
        self.periodic.clear()
        for entry in self.timers.values():
            if entry.task is not None and not entry.task.done():
                tasks.append(entry.task)
        self.timers.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._update_gauge()
        logger.info(f"Scheduler stopped ({len(tasks)} tasks cancelled)")

