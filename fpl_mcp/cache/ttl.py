# fpl_mcp/cache/ttl.py
"""
TTL policy for cached FPL payloads.

Each category of payload has a fixed lifetime; development mode shortens every
lifetime to a fifth so changes surface quickly while iterating.
"""

from enum import Enum
from typing import Optional, Union

from fpl_mcp.config import is_dev_mode


class CacheCategory(str, Enum):
    """Category of a cached payload; selects its TTL."""

    LIVE = "live"
    BOOTSTRAP = "bootstrap-static"
    FIXTURES = "fixtures"
    PLAYER_DETAIL = "player-detail"
    DEFAULT = "default"

    def __str__(self):
        return self.value


LIVE_TTL = 900  # 15 minutes - in-progress gameweek data
BOOTSTRAP_TTL = 14400  # 4 hours - teams, players, gameweeks
FIXTURES_TTL = 86400  # 24 hours - fixture list
DEFAULT_TTL = 43200  # 12 hours - player detail and everything else

DEV_TTL_DIVISOR = 5


def calculate_ttl(
    category: Union[CacheCategory, str], dev_mode: Optional[bool] = None
) -> int:
    """
    Lifetime in seconds for a payload category.

    Args:
        category: A CacheCategory, or a raw category/key string. Any string
            containing "live" is treated as live data; unknown strings fall back
            to the default lifetime.
        dev_mode: Overrides the process-wide development flag when given.

    Returns:
        TTL in seconds (always positive)

    Example:
        >>> calculate_ttl(CacheCategory.LIVE, dev_mode=False)
        900
        >>> calculate_ttl(CacheCategory.LIVE, dev_mode=True)
        180
    """
    name = category.value if isinstance(category, CacheCategory) else str(category)

    if "live" in name:
        ttl = LIVE_TTL
    elif "bootstrap-static" in name:
        ttl = BOOTSTRAP_TTL
    elif "fixtures" in name:
        ttl = FIXTURES_TTL
    else:
        ttl = DEFAULT_TTL

    if dev_mode is None:
        dev_mode = is_dev_mode()
    return ttl // DEV_TTL_DIVISOR if dev_mode else ttl
