# fpl_mcp/api/client.py
"""
HTTP client for the public Fantasy Premier League API.

One request per call: no retries and no caching here. Callers put the
cache-aside loader in front of it.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from fpl_mcp.api.errors import FPLApiError
from fpl_mcp.config import DEFAULT_API_BASE_URL

logger = logging.getLogger(__name__)


class FPLApiClient:
    """
    Thin async wrapper over the FPL endpoints used by the cache layer.

    Args:
        base_url: API root, without trailing slash
        timeout: Per-request timeout in seconds
        http_client: Pre-built httpx.AsyncClient (not closed by aclose)
    """

    def __init__(
        self,
        base_url: str = DEFAULT_API_BASE_URL,
        timeout: float = 20.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self.client = http_client or httpx.AsyncClient(
            timeout=timeout,
            headers={"User-Agent": "fpl-mcp/0.1", "Accept": "application/json"},
        )

    async def _get(self, endpoint: str) -> Any:
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        logger.debug(f"GET {url}")
        try:
            response = await self.client.get(url)
        except httpx.HTTPError as e:
            raise FPLApiError(f"Request to {endpoint} failed: {e}", endpoint=endpoint) from e

        if response.status_code != 200:
            raise FPLApiError(
                f"FPL API returned {response.status_code} for {endpoint}",
                status_code=response.status_code,
                endpoint=endpoint,
            )
        try:
            return response.json()
        except ValueError as e:
            raise FPLApiError(
                f"FPL API returned invalid JSON for {endpoint}",
                status_code=response.status_code,
                endpoint=endpoint,
            ) from e

    async def get_bootstrap_static(self) -> Dict[str, Any]:
        """Teams, players (elements), gameweeks (events) and game settings."""
        return await self._get("bootstrap-static/")

    async def get_fixtures(self) -> List[Dict[str, Any]]:
        return await self._get("fixtures/")

    async def get_player_detail(self, player_id: int) -> Dict[str, Any]:
        """Fixtures, history and past seasons for one player."""
        return await self._get(f"element-summary/{player_id}/")

    async def get_gameweek_live(self, gameweek_id: int) -> Dict[str, Any]:
        """Per-player live stats for one gameweek."""
        return await self._get(f"event/{gameweek_id}/live/")

    async def aclose(self):
        if self._owns_client:
            await self.client.aclose()
