# fpl_mcp/cache/keys.py
"""Cache key layout. Every key lives under the `fpl:` namespace."""

import re
from typing import Optional

NAMESPACE = "fpl"

BOOTSTRAP_KEY = f"{NAMESPACE}:bootstrap-static"
TEAMS_KEY = f"{NAMESPACE}:teams"
GAMEWEEKS_KEY = f"{NAMESPACE}:gameweeks"
ALL_KEYS_PATTERN = f"{NAMESPACE}:*"

PLAYERS_PATTERN = f"{NAMESPACE}:players*"
PLAYER_PATTERN = f"{NAMESPACE}:player:*"
LIVE_KEY_PATTERN = f"{NAMESPACE}:gameweek:*:live"

_LIVE_KEY_RE = re.compile(rf"^{NAMESPACE}:gameweek:(\d+):live$")


def players_key(team_id: Optional[int] = None, position: Optional[str] = None) -> str:
    """`fpl:players[:team:{id}][:pos:{position}]`"""
    key = f"{NAMESPACE}:players"
    if team_id is not None:
        key += f":team:{team_id}"
    if position:
        key += f":pos:{position}"
    return key


def fixtures_key(gameweek_id: Optional[int] = None) -> str:
    """`fpl:fixtures[:gw:{id}]`"""
    if gameweek_id is None:
        return f"{NAMESPACE}:fixtures"
    return f"{NAMESPACE}:fixtures:gw:{gameweek_id}"


def player_detail_key(player_id: int) -> str:
    return f"{NAMESPACE}:player:{player_id}:detail"


def player_gameweek_key(player_id: int, gameweek_id: int) -> str:
    return f"{NAMESPACE}:player:{player_id}:gameweek:{gameweek_id}"


def live_gameweek_key(gameweek_id: int) -> str:
    return f"{NAMESPACE}:gameweek:{gameweek_id}:live"


def parse_live_key(key: str) -> Optional[int]:
    """Gameweek id of a live-data key, or None for any other key."""
    match = _LIVE_KEY_RE.match(key)
    return int(match.group(1)) if match else None
