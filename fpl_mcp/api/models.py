# fpl_mcp/api/models.py
"""
Domain models and the standard response envelope for FPL MCP.

The upstream bootstrap/fixtures/live payloads are normalized into these
models before they are cached, persisted or returned to a tool caller:
1. Positions are mapped from element_type codes to labels
2. Fixture scores only exist once a fixture is finished
3. Persistence records carry an ISO-8601 UTC timestamp
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Iterator, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

logger = logging.getLogger(__name__)


# ============================================================================
# POSITIONS
# ============================================================================

POSITION_LABELS: Dict[int, str] = {1: "GKP", 2: "DEF", 3: "MID", 4: "FWD"}
UNKNOWN_POSITION = "Unknown"


def position_label(element_type: Any) -> str:
    """Map an FPL element_type code to its label; never fails."""
    try:
        return POSITION_LABELS.get(int(element_type), UNKNOWN_POSITION)
    except (TypeError, ValueError):
        return UNKNOWN_POSITION


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ============================================================================
# ENTITY MODELS
# ============================================================================


class Team(BaseModel):
    """A Premier League club."""

    id: int
    name: str
    short_name: str
    strength: Optional[int] = None

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "Team":
        return cls(
            id=raw["id"],
            name=raw["name"],
            short_name=raw["short_name"],
            strength=raw.get("strength"),
        )


class Player(BaseModel):
    """An FPL element with its derived full name and position label."""

    id: int
    web_name: str
    first_name: str = ""
    second_name: str = ""
    full_name: str
    team_id: int
    element_type: Optional[int] = None
    position: str = UNKNOWN_POSITION
    form: Optional[str] = None
    points_per_game: Optional[str] = None
    total_points: Optional[int] = None
    selected_by_percent: Optional[str] = None
    now_cost: Optional[int] = None

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "Player":
        first = raw.get("first_name", "")
        second = raw.get("second_name", "")
        return cls(
            id=raw["id"],
            web_name=raw.get("web_name") or second,
            first_name=first,
            second_name=second,
            full_name=f"{first} {second}",
            team_id=raw["team"],
            element_type=raw.get("element_type"),
            position=position_label(raw.get("element_type")),
            form=raw.get("form"),
            points_per_game=raw.get("points_per_game"),
            total_points=raw.get("total_points"),
            selected_by_percent=raw.get("selected_by_percent"),
            now_cost=raw.get("now_cost"),
        )


class Gameweek(BaseModel):
    """A scoring period with its transfer deadline."""

    id: int
    name: str
    deadline_time: datetime
    is_current: bool = False
    is_next: bool = False
    finished: bool = False

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "Gameweek":
        return cls(
            id=raw["id"],
            name=f"Gameweek {raw['id']}",
            deadline_time=raw["deadline_time"],
            is_current=bool(raw.get("is_current")),
            is_next=bool(raw.get("is_next")),
            finished=bool(raw.get("finished")),
        )


class Fixture(BaseModel):
    """A match. Scores are only carried once the fixture is finished."""

    id: int
    gameweek_id: Optional[int] = None
    home_team_id: int
    away_team_id: int
    kickoff_time: Optional[datetime] = None
    started: bool = False
    finished: bool = False
    team_h_score: Optional[int] = None
    team_a_score: Optional[int] = None

    @model_validator(mode="after")
    def _suppress_unfinished_scores(self) -> "Fixture":
        if not self.finished:
            self.team_h_score = None
            self.team_a_score = None
        return self

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "Fixture":
        return cls(
            id=raw["id"],
            gameweek_id=raw.get("event"),
            home_team_id=raw["team_h"],
            away_team_id=raw["team_a"],
            kickoff_time=raw.get("kickoff_time"),
            started=bool(raw.get("started")),
            finished=bool(raw.get("finished")),
            team_h_score=raw.get("team_h_score"),
            team_a_score=raw.get("team_a_score"),
        )

    @property
    def has_result(self) -> bool:
        return (
            self.finished
            and self.team_h_score is not None
            and self.team_a_score is not None
        )


STAT_FIELDS: Tuple[str, ...] = (
    "minutes",
    "goals_scored",
    "assists",
    "clean_sheets",
    "goals_conceded",
    "own_goals",
    "penalties_saved",
    "penalties_missed",
    "yellow_cards",
    "red_cards",
    "saves",
    "bonus",
    "total_points",
)


class PlayerGameweekStats(BaseModel):
    """One player's stat line for one gameweek, keyed by (player_id, gameweek_id)."""

    player_id: int
    gameweek_id: int
    minutes: int = 0
    goals_scored: int = 0
    assists: int = 0
    clean_sheets: int = 0
    goals_conceded: int = 0
    own_goals: int = 0
    penalties_saved: int = 0
    penalties_missed: int = 0
    yellow_cards: int = 0
    red_cards: int = 0
    saves: int = 0
    bonus: int = 0
    total_points: int = 0

    @classmethod
    def from_live_stats(
        cls, player_id: int, gameweek_id: int, stats: Dict[str, Any]
    ) -> "PlayerGameweekStats":
        values = {name: int(stats.get(name) or 0) for name in STAT_FIELDS}
        return cls(player_id=player_id, gameweek_id=gameweek_id, **values)


# ============================================================================
# LIVE DATA HELPERS
# ============================================================================


def iter_live_elements(live: Dict[str, Any]) -> Iterator[Tuple[int, Dict[str, Any]]]:
    """
    Yield (player_id, stats) pairs from a live gameweek payload.

    The FPL API returns `elements` as a list of {"id", "stats"} objects; payloads
    keyed by player id are accepted as well.
    """
    elements = (live or {}).get("elements") or []
    if isinstance(elements, dict):
        for player_id, element in elements.items():
            yield int(player_id), (element or {}).get("stats") or {}
    else:
        for element in elements:
            yield int(element["id"]), element.get("stats") or {}


def find_live_stats(live: Dict[str, Any], player_id: int) -> Optional[Dict[str, Any]]:
    for element_id, stats in iter_live_elements(live):
        if element_id == player_id:
            return stats
    return None


def stat_lines_from_live(
    gameweek_id: int, live: Dict[str, Any]
) -> List[PlayerGameweekStats]:
    """Stat lines for every player who actually played (minutes > 0)."""
    lines = []
    for player_id, stats in iter_live_elements(live):
        if int(stats.get("minutes") or 0) > 0:
            lines.append(
                PlayerGameweekStats.from_live_stats(player_id, gameweek_id, stats)
            )
    return lines


# ============================================================================
# GAMEWEEK SELECTION
# ============================================================================


def _select_flagged(gameweeks: Iterable[Gameweek], flag: str) -> Optional[Gameweek]:
    flagged = [gw for gw in gameweeks if getattr(gw, flag)]
    if len(flagged) > 1:
        logger.warning(
            f"{len(flagged)} gameweeks flagged {flag} "
            f"({[gw.id for gw in flagged]}); using gameweek {flagged[0].id}"
        )
    return flagged[0] if flagged else None


def select_current_gameweek(gameweeks: Iterable[Gameweek]) -> Optional[Gameweek]:
    """First gameweek flagged current, or None."""
    return _select_flagged(gameweeks, "is_current")


def select_next_gameweek(gameweeks: Iterable[Gameweek]) -> Optional[Gameweek]:
    """First gameweek flagged next, or None."""
    return _select_flagged(gameweeks, "is_next")


# ============================================================================
# PERSISTENCE RECORDS
# ============================================================================


def to_team_record(team: Team, now: str) -> Dict[str, Any]:
    return {
        "id": team.id,
        "name": team.name,
        "short_name": team.short_name,
        "last_updated": now,
    }


def to_player_record(player: Player, now: str) -> Dict[str, Any]:
    return {
        "id": player.id,
        "web_name": player.web_name,
        "full_name": player.full_name,
        "team_id": player.team_id,
        "position": player.position,
        "last_updated": now,
    }


def to_gameweek_record(gameweek: Gameweek, now: str) -> Dict[str, Any]:
    return {
        "id": gameweek.id,
        "name": gameweek.name,
        "deadline_time": gameweek.deadline_time.isoformat(),
        "is_current": gameweek.is_current,
        "is_next": gameweek.is_next,
        "finished": gameweek.finished,
        "last_updated": now,
    }


def to_fixture_record(fixture: Fixture, now: str) -> Dict[str, Any]:
    return {
        "id": fixture.id,
        "gameweek_id": fixture.gameweek_id,
        "home_team_id": fixture.home_team_id,
        "away_team_id": fixture.away_team_id,
        "kickoff_time": fixture.kickoff_time.isoformat() if fixture.kickoff_time else None,
        "finished": fixture.finished,
        "team_h_score": fixture.team_h_score,
        "team_a_score": fixture.team_a_score,
        "last_updated": now,
    }


def to_fixture_result_record(fixture: Fixture, now: str) -> Dict[str, Any]:
    return {
        "id": fixture.id,
        "team_h_score": fixture.team_h_score,
        "team_a_score": fixture.team_a_score,
        "finished": fixture.finished,
        "last_updated": now,
    }


def to_stat_line_record(line: PlayerGameweekStats, now: str) -> Dict[str, Any]:
    record = line.model_dump()
    record["created_at"] = now
    return record


# ============================================================================
# SYNC RESULT
# ============================================================================


class SyncResult(BaseModel):
    """Outcome of one synchronization run."""

    success: bool
    message: str
    error: Optional[str] = None


# ============================================================================
# RESPONSE ENVELOPE
# ============================================================================


class ErrorDetail(BaseModel):
    """Structured error information."""

    code: str = Field(..., description="Error code (e.g., 'ENTITY_NOT_FOUND')")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(
        None, description="Additional error context"
    )


class ResponseMetadata(BaseModel):
    """Metadata for every response."""

    version: str = Field(default="v1", description="API version")
    timestamp: str = Field(
        default_factory=utc_now_iso, description="ISO-8601 UTC timestamp"
    )
    source: Literal["cache", "live", "database"] = Field(
        default="cache", description="Where the payload was read from"
    )


class ResponseEnvelope(BaseModel):
    """
    Universal response envelope for all FPL MCP tools.

    Provides consistent structure for success and error responses.
    """

    status: Literal["success", "error"] = Field(...)
    data: Optional[Any] = Field(None, description="Tool-specific payload")
    metadata: ResponseMetadata = Field(default_factory=ResponseMetadata)
    errors: Optional[List[ErrorDetail]] = Field(None)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "success",
                "data": {"id": 5, "name": "Gameweek 5", "is_current": True},
                "metadata": {"version": "v1", "source": "cache"},
                "errors": None,
            }
        }
    )

    def to_json_string(self, **kwargs) -> str:
        """Serialize to JSON with deterministic key ordering."""
        return json.dumps(self.model_dump(mode="json"), sort_keys=True, **kwargs)


def success_response(
    data: Any, source: Literal["cache", "live", "database"] = "cache"
) -> ResponseEnvelope:
    return ResponseEnvelope(
        status="success", data=data, metadata=ResponseMetadata(source=source)
    )


def error_response(
    code: str, message: str, details: Optional[Dict[str, Any]] = None
) -> ResponseEnvelope:
    return ResponseEnvelope(
        status="error",
        errors=[ErrorDetail(code=code, message=message, details=details)],
    )
