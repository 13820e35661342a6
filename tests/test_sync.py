"""
End-to-end tests for the sync orchestrator.
"""

import pytest

from fpl_mcp.api.errors import PersistenceError
from fpl_mcp.api.service import FPLService
from fpl_mcp.cache import keys
from fpl_mcp.cache.invalidator import CacheInvalidator
from fpl_mcp.cache.scheduler import DeadlineScheduler
from fpl_mcp.data.sync import FPLDataSync

from conftest import StubFPLClient, make_bootstrap, make_fixtures, make_live


def build_sync(client, cache, database, batch_size=50):
    scheduler = DeadlineScheduler(CacheInvalidator(cache))
    service = FPLService(client, cache, database=database, dev_mode=False)
    return FPLDataSync(service, database, scheduler, batch_size=batch_size)


@pytest.mark.asyncio
async def test_sync_all_end_to_end(stub_client, cache, database, redis_client):
    sync = build_sync(stub_client, cache, database)

    result = await sync.sync_all()

    assert result.success is True
    assert result.message == "Data synchronized successfully"
    assert await database.count("teams") == 2
    assert await database.count("players") == 3
    assert await database.count("gameweeks") == 3
    assert await database.count("fixtures") == 3

    row = await database.get_player_gameweek_stats(10, 5)
    assert (row["minutes"], row["goals_scored"]) == (90, 2)
    assert await database.get_player_gameweek_stats(11, 5) is None
    assert await database.get_player_gameweek_stats(10, 6) is None

    (finished,) = await database.fetch_all("SELECT * FROM fixtures WHERE id = 100")
    (in_play,) = await database.fetch_all("SELECT * FROM fixtures WHERE id = 101")
    assert (finished["team_h_score"], finished["team_a_score"]) == (2, 1)
    assert in_play["team_h_score"] is None

    assert [e.gameweek_id for e in sync.scheduler.pending()] == [7]
    assert keys.live_gameweek_key(5) not in redis_client.data
    assert keys.live_gameweek_key(6) in redis_client.data
    assert redis_client.ttls[keys.TEAMS_KEY] == 14400
    assert redis_client.ttls[keys.players_key()] == 14400
    assert redis_client.ttls[keys.GAMEWEEKS_KEY] == 14400
    assert redis_client.ttls[keys.fixtures_key()] == 86400
    await sync.scheduler.shutdown()


@pytest.mark.asyncio
async def test_replaying_sync_creates_no_duplicates(stub_client, cache, database):
    sync = build_sync(stub_client, cache, database)

    await sync.sync_all()
    await sync.update_all_data()

    assert await database.count("players") == 3
    assert await database.count("player_gameweek_stats") == 2
    assert len(sync.scheduler.pending()) == 1
    await sync.scheduler.shutdown()


@pytest.mark.asyncio
async def test_refresh_failure_fails_the_run(cache, database):
    sync = build_sync(StubFPLClient(fail_on={"bootstrap"}), cache, database)

    result = await sync.sync_all()

    assert result.success is False
    assert result.message == "Data synchronization failed"
    assert "bootstrap unavailable" in result.error
    assert await database.count("teams") == 0


@pytest.mark.asyncio
async def test_batch_failures_are_not_fatal(stub_client, cache, database, monkeypatch):
    sync = build_sync(stub_client, cache, database, batch_size=1)
    original = database.upsert

    async def flaky_upsert(table, records, conflict_key):
        if table == "players":
            raise PersistenceError(table, "disk full")
        return await original(table, records, conflict_key)

    monkeypatch.setattr(database, "upsert", flaky_upsert)

    result = await sync.sync_all()

    assert result.success is True
    assert sync.stats["failed_batches"] == 3
    assert await database.count("teams") == 2
    assert await database.count("players") == 0
    await sync.scheduler.shutdown()


@pytest.mark.asyncio
async def test_check_for_updates_refreshes_live_data(stub_client, cache, database):
    sync = build_sync(stub_client, cache, database)
    await sync.service.get_live_gameweek(6)

    status = await sync.check_for_updates()

    assert status == {"success": True, "is_active": True}
    assert stub_client.count("live:6") == 2


@pytest.mark.asyncio
async def test_check_for_updates_when_idle(cache, database):
    fixtures = [dict(f, finished=True) for f in make_fixtures()]
    client = StubFPLClient(fixtures=fixtures)
    sync = build_sync(client, cache, database)

    assert await sync.check_for_updates() == {"success": True, "is_active": False}
    assert client.count("live:6") == 0


@pytest.mark.asyncio
async def test_malformed_bootstrap_fails_the_run(cache, database):
    client = StubFPLClient(bootstrap=dict(make_bootstrap(), teams=None))
    sync = build_sync(client, cache, database)

    result = await sync.sync_all()

    assert result.success is False
    assert "NoneType" in result.error
    assert sync.stats["failed_runs"] == 1
    assert await database.count("teams") == 0


@pytest.mark.asyncio
async def test_malformed_live_data_skips_only_that_gameweek(cache, database):
    client = StubFPLClient(
        live={
            5: {"elements": [{"stats": {"minutes": 90}}]},
            6: make_live({10: 30}),
        }
    )
    sync = build_sync(client, cache, database)

    result = await sync.sync_all()

    assert result.success is True
    assert sync.stats["skipped_gameweeks"] == 1
    assert await database.count("players") == 3
    assert await database.count("player_gameweek_stats") == 0
    assert [e.gameweek_id for e in sync.scheduler.pending()] == [7]
    await sync.scheduler.shutdown()


@pytest.mark.asyncio
async def test_failing_step_does_not_abort_the_run(
    stub_client, cache, database, monkeypatch
):
    sync = build_sync(stub_client, cache, database)

    async def broken(snapshot):
        raise RuntimeError("unexpected")

    monkeypatch.setattr(sync, "update_fixture_results", broken)

    result = await sync.sync_all()

    assert result.success is True
    assert sync.stats["failed_steps"] == 1
    assert await database.get_player_gameweek_stats(10, 5) is not None
    assert len(sync.scheduler.pending()) == 1
    await sync.scheduler.shutdown()
