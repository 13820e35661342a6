"""
Shared fixtures: in-memory Redis stand-ins, sample FPL payloads and a stub
upstream client.
"""

import fnmatch
from datetime import datetime, timedelta, timezone

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from fpl_mcp.api.errors import FPLApiError
from fpl_mcp.cache.redis_cache import RedisCache
from fpl_mcp.data.store import FPLDatabase


# ============================================================================
# REDIS DOUBLES
# ============================================================================


class InMemoryPipeline:
    def __init__(self, redis: "InMemoryRedis"):
        self.redis = redis
        self.commands = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self.commands = []

    def set(self, key, value, ex=None):
        self.commands.append((key, value, ex))
        return self

    async def execute(self):
        self.redis.calls.append(("exec", len(self.commands)))
        for key, value, ex in self.commands:
            self.redis._store(key, value, ex)
        return [True] * len(self.commands)


class InMemoryRedis:
    """Async subset of the redis client API used by RedisCache."""

    def __init__(self):
        self.data = {}
        self.ttls = {}
        self.calls = []

    def _store(self, key, value, ex):
        self.data[key] = value
        self.ttls[key] = ex

    async def get(self, key):
        self.calls.append(("get", key))
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self.calls.append(("set", key))
        self._store(key, value, ex)
        return True

    async def delete(self, *keys):
        self.calls.append(("delete", keys))
        removed = 0
        for key in keys:
            if key in self.data:
                removed += 1
                self.data.pop(key)
                self.ttls.pop(key, None)
        return removed

    async def scan_iter(self, match="*", count=None):
        self.calls.append(("scan", match))
        for key in list(self.data):
            if fnmatch.fnmatchcase(key, match):
                yield key

    async def exists(self, key):
        return int(key in self.data)

    async def expire(self, key, ttl):
        if key not in self.data:
            return False
        self.ttls[key] = ttl
        return True

    def pipeline(self, transaction=True):
        return InMemoryPipeline(self)

    async def ping(self):
        return True

    async def aclose(self):
        return None

    def mutations(self):
        return [c for c in self.calls if c[0] in ("set", "delete", "exec")]


class FailingRedis(InMemoryRedis):
    """Every command fails as if the server were unreachable."""

    async def get(self, key):
        self.calls.append(("get", key))
        raise RedisConnectionError("connection refused")

    async def set(self, key, value, ex=None):
        self.calls.append(("set", key))
        raise RedisConnectionError("connection refused")

    async def delete(self, *keys):
        raise RedisConnectionError("connection refused")

    async def scan_iter(self, match="*", count=None):
        raise RedisConnectionError("connection refused")
        yield  # pragma: no cover

    def pipeline(self, transaction=True):
        return FailingPipeline(self)


class FailingPipeline(InMemoryPipeline):
    async def execute(self):
        raise RedisConnectionError("connection refused")


@pytest.fixture
def redis_client():
    return InMemoryRedis()


@pytest.fixture
def cache(redis_client):
    return RedisCache(client=redis_client)


@pytest.fixture
def failing_cache():
    return RedisCache(client=FailingRedis())


@pytest.fixture
def database():
    db = FPLDatabase(":memory:")
    yield db
    db.close()


# ============================================================================
# SAMPLE PAYLOADS
# ============================================================================

NOW = datetime.now(timezone.utc)


def iso(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%dT%H:%M:%SZ")


def make_bootstrap():
    return {
        "teams": [
            {"id": 1, "name": "Arsenal", "short_name": "ARS", "strength": 4},
            {"id": 2, "name": "Liverpool", "short_name": "LIV", "strength": 5},
        ],
        "elements": [
            {
                "id": 10,
                "web_name": "Salah",
                "first_name": "Mohamed",
                "second_name": "Salah",
                "team": 2,
                "element_type": 3,
                "form": "8.5",
                "points_per_game": "7.1",
                "total_points": 120,
                "selected_by_percent": "55.2",
            },
            {
                "id": 11,
                "web_name": "Raya",
                "first_name": "David",
                "second_name": "Raya Martin",
                "team": 1,
                "element_type": 1,
            },
            {
                "id": 12,
                "web_name": "Saka",
                "first_name": "Bukayo",
                "second_name": "Saka",
                "team": 1,
                "element_type": 3,
            },
        ],
        "events": [
            {
                "id": 5,
                "name": "Gameweek 5",
                "deadline_time": iso(NOW - timedelta(days=10)),
                "is_current": False,
                "is_next": False,
                "finished": True,
            },
            {
                "id": 6,
                "name": "Gameweek 6",
                "deadline_time": iso(NOW - timedelta(days=2)),
                "is_current": True,
                "is_next": False,
                "finished": False,
            },
            {
                "id": 7,
                "name": "Gameweek 7",
                "deadline_time": iso(NOW + timedelta(days=5)),
                "is_current": False,
                "is_next": True,
                "finished": False,
            },
        ],
    }


def make_fixtures():
    return [
        {
            "id": 100,
            "event": 5,
            "team_h": 1,
            "team_a": 2,
            "kickoff_time": iso(NOW - timedelta(days=9)),
            "started": True,
            "finished": True,
            "team_h_score": 2,
            "team_a_score": 1,
        },
        {
            "id": 101,
            "event": 6,
            "team_h": 2,
            "team_a": 1,
            "kickoff_time": iso(NOW - timedelta(hours=1)),
            "started": True,
            "finished": False,
            "team_h_score": 1,
            "team_a_score": 0,
        },
        {
            "id": 102,
            "event": 7,
            "team_h": 1,
            "team_a": 2,
            "kickoff_time": iso(NOW + timedelta(days=6)),
            "started": False,
            "finished": False,
            "team_h_score": None,
            "team_a_score": None,
        },
    ]


def make_live(minutes_by_player):
    return {
        "elements": [
            {
                "id": player_id,
                "stats": {
                    "minutes": minutes,
                    "goals_scored": 2 if player_id == 10 else 0,
                    "assists": 0,
                    "total_points": 13 if player_id == 10 else 1,
                },
            }
            for player_id, minutes in minutes_by_player.items()
        ]
    }


class StubFPLClient:
    """Stands in for FPLApiClient; counts calls per endpoint."""

    def __init__(self, bootstrap=None, fixtures=None, live=None, fail_on=()):
        self.bootstrap = bootstrap if bootstrap is not None else make_bootstrap()
        self.fixtures = fixtures if fixtures is not None else make_fixtures()
        self.live = live if live is not None else {
            5: make_live({10: 90, 11: 0, 12: 45}),
            6: make_live({10: 30}),
        }
        self.fail_on = set(fail_on)
        self.calls = []

    def _record(self, name):
        self.calls.append(name)
        if name in self.fail_on:
            raise FPLApiError(f"{name} unavailable", status_code=503, endpoint=name)

    async def get_bootstrap_static(self):
        self._record("bootstrap")
        return self.bootstrap

    async def get_fixtures(self):
        self._record("fixtures")
        return self.fixtures

    async def get_player_detail(self, player_id):
        self._record("detail")
        return {
            "history": [],
            "history_past": [
                {"season_name": "2022/23", "total_points": 303},
                {"season_name": "2023/24", "total_points": 211},
            ],
        }

    async def get_gameweek_live(self, gameweek_id):
        self._record(f"live:{gameweek_id}")
        return self.live.get(gameweek_id, {"elements": []})

    async def aclose(self):
        return None

    def count(self, name):
        return self.calls.count(name)


@pytest.fixture
def stub_client():
    return StubFPLClient()
