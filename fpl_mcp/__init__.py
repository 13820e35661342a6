"""FPL MCP Server Package."""

from fpl_mcp.api.service import FPLService
from fpl_mcp.cache.redis_cache import RedisCache, fetch_with_cache
from fpl_mcp.cache.ttl import CacheCategory, calculate_ttl
from fpl_mcp.data.sync import FPLDataSync

__all__ = [
    "FPLService",
    "FPLDataSync",
    "RedisCache",
    "fetch_with_cache",
    "CacheCategory",
    "calculate_ttl",
]

__version__ = "0.1.0"
