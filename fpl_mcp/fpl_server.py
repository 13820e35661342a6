# fpl_mcp/fpl_server.py
"""
FastMCP server exposing cached FPL data as tools, resources and a prompt.

Handlers are thin: they read through FPLService (cache-aside) and wrap the
result in the standard ResponseEnvelope.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Awaitable, Callable, Optional

from mcp.server.fastmcp import FastMCP

from fpl_mcp.api.entity_extractor import (
    extract_entities,
    find_player_by_name,
    format_entity_context,
)
from fpl_mcp.api.errors import (
    EntityNotFoundError,
    ErrorCode,
    FPLMCPError,
    InvalidParameterError,
)
from fpl_mcp.api.models import error_response, success_response
from fpl_mcp.config import Settings
from fpl_mcp.observability.metrics import start_metrics_server
from fpl_mcp.runtime import FPLRuntime

logger = logging.getLogger(__name__)

ASSISTANT_BRIEF = (
    "You are a Fantasy Premier League assistant. Help users with FPL-related queries. "
    "You have access to gameweek data, team information, player stats, and fixtures."
)
DEFAULT_QUERY = "Tell me about the current gameweek."


async def _envelope(handler: Callable[[], Awaitable[Any]]) -> str:
    """Run a tool body and wrap its result (or error) in a ResponseEnvelope."""
    try:
        return success_response(await handler()).to_json_string()
    except FPLMCPError as e:
        logger.warning(f"Tool error [{e.code}]: {e.message}")
        return error_response(e.code, e.message, e.details).to_json_string()
    except Exception as e:
        logger.exception("Unexpected tool failure")
        return error_response(ErrorCode.INTERNAL_ERROR, str(e)).to_json_string()


def _dump(value: Any) -> Any:
    if isinstance(value, list):
        return [_dump(v) for v in value]
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    return value


def create_server(
    runtime: FPLRuntime, host: str = "127.0.0.1", port: int = 8005
) -> FastMCP:
    """Build a FastMCP server whose handlers close over runtime."""
    server = FastMCP(name="fpl_mcp", host=host, port=port, lifespan=runtime.lifespan)
    service = runtime.service

    # ========================================================================
    # TOOLS
    # ========================================================================

    @server.tool(name="get-current-gameweek")
    async def get_current_gameweek() -> str:
        """Get the current Fantasy Premier League gameweek."""

        async def body():
            current = await service.get_current_gameweek()
            if current is None:
                raise EntityNotFoundError("gameweek", "current")
            return _dump(current)

        return await _envelope(body)

    @server.tool(name="get-gameweek")
    async def get_gameweek(
        gameweek_id: Optional[int] = None,
        get_current: bool = False,
        get_next: bool = False,
        include_fixtures: bool = True,
    ) -> str:
        """
        Get a gameweek by id, or the current/next one, optionally with its fixtures.
        """

        async def body():
            if get_current:
                gameweek = await service.get_current_gameweek()
            elif get_next:
                gameweek = await service.get_next_gameweek()
            elif gameweek_id is not None:
                gameweek = await service.get_gameweek(gameweek_id)
            else:
                raise InvalidParameterError(
                    "gameweek_id", None, "an id, get_current=true or get_next=true"
                )
            if gameweek is None:
                raise EntityNotFoundError("gameweek", gameweek_id or "requested")
            data = {"gameweek": _dump(gameweek)}
            if include_fixtures:
                data["fixtures"] = _dump(await service.get_fixtures(gameweek.id))
            return data

        return await _envelope(body)

    @server.tool(name="get-team")
    async def get_team(team_id: int) -> str:
        """Get a Premier League team and its players."""

        async def body():
            team = await service.get_team(team_id)
            if team is None:
                raise EntityNotFoundError("team", team_id)
            players = await service.get_players(team_id=team_id)
            return {"team": _dump(team), "players": _dump(players)}

        return await _envelope(body)

    @server.tool(name="get-player")
    async def get_player(
        player_id: Optional[int] = None, player_name: Optional[str] = None
    ) -> str:
        """Get a player by id or by (fuzzy) name."""

        async def body():
            if player_id is None and not player_name:
                raise InvalidParameterError(
                    "player_id", None, "player_id or player_name"
                )
            if player_id is not None:
                player = await service.get_player(player_id)
            else:
                player = find_player_by_name(await service.get_players(), player_name)
            if player is None:
                raise EntityNotFoundError("player", player_id or player_name)
            return _dump(player)

        return await _envelope(body)

    @server.tool(name="get-gameweek-fixtures")
    async def get_gameweek_fixtures(gameweek_id: int) -> str:
        """Get all fixtures of one gameweek."""

        async def body():
            return _dump(await service.get_fixtures(gameweek_id))

        return await _envelope(body)

    @server.tool(name="get-player-gameweek-stats")
    async def get_player_gameweek_stats(player_id: int, gameweek_id: int) -> str:
        """Get one player's stat line for one gameweek."""

        async def body():
            line = await service.get_player_gameweek_stats(player_id, gameweek_id)
            if line is None:
                raise EntityNotFoundError(
                    "stat line", f"player {player_id} gameweek {gameweek_id}"
                )
            return _dump(line)

        return await _envelope(body)

    @server.tool(name="check-for-updates")
    async def check_for_updates() -> str:
        """Refresh live data if a gameweek is being played."""

        async def body():
            return await runtime.sync.check_for_updates()

        return await _envelope(body)

    @server.tool(name="sync-data")
    async def sync_data() -> str:
        """Refresh the cache and the database from the FPL API."""

        async def body():
            return _dump(await runtime.sync.sync_all())

        return await _envelope(body)

    # ========================================================================
    # RESOURCES
    # ========================================================================

    @server.resource("fpl://teams")
    async def teams_resource() -> str:
        return json.dumps(_dump(await service.get_teams()))

    @server.resource("fpl://teams/{team_id}")
    async def team_resource(team_id: str) -> str:
        team = await service.get_team(int(team_id))
        if team is None:
            raise EntityNotFoundError("team", team_id)
        return json.dumps(_dump(team))

    @server.resource("fpl://players")
    async def players_resource() -> str:
        return json.dumps(_dump(await service.get_players()))

    @server.resource("fpl://players/{player_id}")
    async def player_resource(player_id: str) -> str:
        player = await service.get_player(int(player_id))
        if player is None:
            raise EntityNotFoundError("player", player_id)
        return json.dumps(_dump(player))

    @server.resource("fpl://gameweeks")
    async def gameweeks_resource() -> str:
        return json.dumps(_dump(await service.get_gameweeks()))

    @server.resource("fpl://gameweeks/{gameweek_id}")
    async def gameweek_resource(gameweek_id: str) -> str:
        gameweek = await service.get_gameweek(int(gameweek_id))
        if gameweek is None:
            raise EntityNotFoundError("gameweek", gameweek_id)
        return json.dumps(_dump(gameweek))

    @server.resource("fpl://fixtures")
    async def fixtures_resource() -> str:
        return json.dumps(_dump(await service.get_fixtures()))

    @server.resource("fpl://fixtures/{gameweek_id}")
    async def gameweek_fixtures_resource(gameweek_id: str) -> str:
        return json.dumps(_dump(await service.get_fixtures(int(gameweek_id))))

    # ========================================================================
    # PROMPTS
    # ========================================================================

    @server.prompt(name="fpl-assistant")
    async def fpl_assistant(query: str = "") -> str:
        """FPL assistant primed with context for the entities the query mentions."""
        question = query or DEFAULT_QUERY
        context = ""
        try:
            players, teams, gameweeks = await asyncio.gather(
                service.get_players(), service.get_teams(), service.get_gameweeks()
            )
            entities = extract_entities(question, players, teams, gameweeks)
            context = format_entity_context(entities)
        except FPLMCPError as e:
            logger.warning(f"Prompt context unavailable: {e}")

        parts = [ASSISTANT_BRIEF]
        if context:
            parts.append("## FPL context\n" + context)
        parts.append(question)
        return "\n\n".join(parts)

    return server


def main():
    """Parse CLI args and start the FastMCP server (or run one sync)."""
    settings = Settings.from_env()
    parser = argparse.ArgumentParser(prog="fpl-mcp")
    parser.add_argument(
        "--transport",
        choices=["stdio", "sse", "streamable-http"],
        default=settings.mcp_transport,
        help="MCP transport to use",
    )
    parser.add_argument("--host", default=settings.mcp_host, help="Host for SSE/HTTP")
    parser.add_argument("--port", type=int, default=settings.mcp_port, help="Port for SSE/HTTP")
    parser.add_argument(
        "--sync-once",
        action="store_true",
        help="Run one full synchronization and exit",
    )
    args = parser.parse_args()

    runtime = FPLRuntime(settings)

    if args.sync_once:
        result = asyncio.run(runtime.sync_once())
        print(result.model_dump_json())
        sys.exit(0 if result.success else 1)

    start_metrics_server(settings.metrics_port)
    server = create_server(runtime, host=args.host, port=args.port)
    logger.info(f"Starting fpl_mcp server ({args.transport} on {args.host}:{args.port})")
    server.run(transport=args.transport)


if __name__ == "__main__":
    main()
