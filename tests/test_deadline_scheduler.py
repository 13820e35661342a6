"""
Tests for deadline-driven invalidation timers and periodic jobs.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from fpl_mcp.api.errors import CacheError
from fpl_mcp.api.models import Gameweek
from fpl_mcp.cache.scheduler import MAX_TIMER_SECONDS, DeadlineScheduler, TimerState

START = datetime(2024, 8, 1, 12, 0, tzinfo=timezone.utc)
DAY = 86400


class FakeTime:
    """Clock and sleep that advance instantly."""

    def __init__(self, start=START):
        self.now = start
        self.sleeps = []

    def clock(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def invalidator():
    return AsyncMock()


@pytest.fixture
def fake_time():
    return FakeTime()


@pytest.fixture
def scheduler(invalidator, fake_time):
    return DeadlineScheduler(invalidator, clock=fake_time.clock, sleep=fake_time.sleep)


def make_gameweek(gameweek_id, deadline):
    return Gameweek(id=gameweek_id, name=f"Gameweek {gameweek_id}", deadline_time=deadline)


@pytest.mark.asyncio
async def test_long_wait_is_chained_at_timer_ceiling(scheduler, invalidator, fake_time):
    entry = scheduler.schedule_deadline_invalidation(START + timedelta(days=40), 9)
    await entry.task

    assert fake_time.sleeps[0] == MAX_TIMER_SECONDS
    assert fake_time.sleeps[1] == pytest.approx(40 * DAY - MAX_TIMER_SECONDS + 60)
    assert len(fake_time.sleeps) == 2
    assert entry.wakeups == 1
    assert entry.state is TimerState.FIRED
    invalidator.invalidate_gameweek_data.assert_awaited_once_with(9)
    invalidator.invalidate_player_data.assert_awaited_once()


@pytest.mark.asyncio
async def test_short_wait_fires_after_grace_period(scheduler, fake_time):
    entry = scheduler.schedule_deadline_invalidation(START + timedelta(hours=1), 3)
    await entry.task

    assert fake_time.sleeps == [3600 + 60]
    assert entry.wakeups == 0


@pytest.mark.asyncio
async def test_past_deadline_waits_only_grace(scheduler, fake_time):
    entry = scheduler.schedule_deadline_invalidation(START - timedelta(days=1), 2)
    await entry.task

    assert fake_time.sleeps == [60]
    assert entry.state is TimerState.FIRED


@pytest.mark.asyncio
async def test_rearming_same_deadline_does_not_double_fire(scheduler, invalidator):
    deadline = START + timedelta(days=2)
    first = scheduler.schedule_deadline_invalidation(deadline, 4)
    second = scheduler.schedule_deadline_invalidation(deadline, 4)

    assert first is second
    await first.task
    invalidator.invalidate_gameweek_data.assert_awaited_once_with(4)

    third = scheduler.schedule_deadline_invalidation(deadline, 4)
    await third.task

    assert third is first
    assert third.state is TimerState.FIRED
    invalidator.invalidate_gameweek_data.assert_awaited_once_with(4)


@pytest.mark.asyncio
async def test_failed_timer_can_be_rearmed(scheduler, invalidator):
    invalidator.invalidate_gameweek_data.side_effect = [
        CacheError("delete", "fpl:gameweeks", ConnectionError("down")),
        0,
    ]
    deadline = START + timedelta(hours=1)
    first = scheduler.schedule_deadline_invalidation(deadline, 5)
    await first.task

    retry = scheduler.schedule_deadline_invalidation(deadline, 5)
    await retry.task

    assert first.state is TimerState.FAILED
    assert retry is not first
    assert retry.state is TimerState.FIRED


@pytest.mark.asyncio
async def test_new_deadline_supersedes_old_timer(scheduler, invalidator):
    first = scheduler.schedule_deadline_invalidation(START + timedelta(days=2), 4)
    second = scheduler.schedule_deadline_invalidation(START + timedelta(days=3), 4)

    await second.task
    await asyncio.gather(first.task, return_exceptions=True)

    assert first.state is TimerState.SUPERSEDED
    assert first.task.cancelled()
    assert second.state is TimerState.FIRED
    invalidator.invalidate_gameweek_data.assert_awaited_once_with(4)


@pytest.mark.asyncio
async def test_fire_failure_is_recorded_not_raised(scheduler, invalidator):
    invalidator.invalidate_gameweek_data.side_effect = CacheError(
        "delete", "fpl:gameweeks", ConnectionError("down")
    )
    entry = scheduler.schedule_deadline_invalidation(START + timedelta(hours=1), 8)

    await entry.task

    assert entry.state is TimerState.FAILED
    assert "down" in entry.error


@pytest.mark.asyncio
async def test_setup_arms_only_future_deadlines(scheduler, invalidator):
    gameweeks = [
        make_gameweek(1, START - timedelta(days=7)),
        make_gameweek(2, START + timedelta(days=1)),
        make_gameweek(3, START + timedelta(days=8)),
    ]

    armed = await scheduler.setup_scheduled_invalidation(gameweeks)

    assert sorted(e.gameweek_id for e in armed) == [2, 3]
    invalidator.optimize_live_data_caching.assert_awaited_once()
    await scheduler.shutdown()


@pytest.mark.asyncio
async def test_periodic_job_survives_failures(invalidator):
    sleeps = []
    runs = []

    async def tick(seconds):
        sleeps.append(seconds)
        await asyncio.sleep(0)

    async def job():
        runs.append(len(runs))
        if len(runs) == 1:
            raise RuntimeError("first run fails")

    scheduler = DeadlineScheduler(invalidator, sleep=tick)
    scheduler.start_periodic("poll", 300, job)
    for _ in range(20):
        await asyncio.sleep(0)
    await scheduler.shutdown()

    assert len(runs) >= 2
    assert set(sleeps) == {300}
    assert scheduler.periodic == {}


@pytest.mark.asyncio
async def test_live_refresh_replaces_previous_task(invalidator):
    scheduler = DeadlineScheduler(invalidator)
    first = scheduler.start_live_refresh(6, interval=300)
    second = scheduler.start_live_refresh(7, interval=300)

    await asyncio.gather(first, return_exceptions=True)
    assert first.cancelled()
    assert scheduler.periodic["live-refresh"] is second
    await scheduler.shutdown()
