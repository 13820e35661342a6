# fpl_mcp/config.py
"""
Runtime configuration for FPL MCP.

Values come from the process environment, with a `.env` file at the project
root loaded first (existing environment variables win).
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

_project_root = Path(__file__).parent.parent
load_dotenv(dotenv_path=_project_root / ".env")

DEFAULT_API_BASE_URL = "https://fantasy.premierleague.com/api"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw not in (None, "") else default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw not in (None, "") else default


def is_dev_mode() -> bool:
    """Process-wide development flag (APP_ENV, defaults to development)."""
    return os.getenv("APP_ENV", "development").lower() == "development"


@dataclass(frozen=True)
class Settings:
    """Resolved settings for one server or sync process."""

    app_env: str = "development"
    redis_url: str = "redis://localhost:6379/0"
    redis_max_connections: int = 10
    redis_socket_timeout: float = 5.0
    redis_retries: int = 3
    local_cache_ttl: int = 30
    local_cache_size: int = 256
    api_base_url: str = DEFAULT_API_BASE_URL
    http_timeout: float = 20.0
    db_path: str = "fpl_data.duckdb"
    sync_batch_size: int = 50
    sync_interval: int = 0
    live_poll_interval: int = 300
    mcp_host: str = "127.0.0.1"
    mcp_port: int = 8005
    mcp_transport: str = "stdio"
    metrics_port: Optional[int] = None

    @property
    def dev_mode(self) -> bool:
        return self.app_env.lower() == "development"

    @classmethod
    def from_env(cls) -> "Settings":
        metrics_port = os.getenv("METRICS_PORT")
        return cls(
            app_env=os.getenv("APP_ENV", "development"),
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            redis_max_connections=_env_int("REDIS_MAX_CONNECTIONS", 10),
            redis_socket_timeout=_env_float("REDIS_SOCKET_TIMEOUT", 5.0),
            redis_retries=_env_int("REDIS_RETRIES", 3),
            local_cache_ttl=_env_int("LOCAL_CACHE_TTL_SECONDS", 30),
            local_cache_size=_env_int("LOCAL_CACHE_SIZE", 256),
            api_base_url=os.getenv("FPL_API_BASE_URL", DEFAULT_API_BASE_URL),
            http_timeout=_env_float("FPL_HTTP_TIMEOUT", 20.0),
            db_path=os.getenv("FPL_DB_PATH", "fpl_data.duckdb"),
            sync_batch_size=_env_int("SYNC_BATCH_SIZE", 50),
            sync_interval=_env_int("SYNC_INTERVAL_SECONDS", 0),
            live_poll_interval=_env_int("LIVE_POLL_INTERVAL_SECONDS", 300),
            mcp_host=os.getenv("MCP_HOST", "127.0.0.1"),
            mcp_port=_env_int("FPL_MCP_PORT", 8005),
            mcp_transport=os.getenv("MCP_TRANSPORT", "stdio"),
            metrics_port=int(metrics_port) if metrics_port else None,
        )
