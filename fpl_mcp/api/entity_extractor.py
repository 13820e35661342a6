# fpl_mcp/api/entity_extractor.py
"""
Entity extraction for free-text FPL questions.

Finds the players, teams and gameweeks a question mentions, plus topic
keywords, and renders them as a markdown context block for the assistant
prompt. Also holds the player name matching used by the get-player tool.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from fpl_mcp.api.models import (
    Gameweek,
    Player,
    Team,
    select_current_gameweek,
    select_next_gameweek,
)

STAT_KEYWORDS = [
    "points",
    "score",
    "scored",
    "stats",
    "statistics",
    "goals",
    "assists",
    "clean sheets",
    "bonus",
    "bps",
    "price",
    "cost",
    "value",
    "form",
    "injured",
    "injury",
    "captain",
    "vice-captain",
    "bench",
    "transfer",
    "wildcard",
    "free hit",
    "bench boost",
    "triple captain",
    "differential",
    "fixtures",
    "schedule",
    "upcoming",
    "deadline",
    "rank",
    "top scorer",
    "best player",
    "performance",
    "predict",
]

# phrase -> question-type tag
QUESTION_TYPES = [
    ("who should", "recommendation"),
    ("best", "recommendation"),
    ("when is", "timing"),
    ("how many", "quantity"),
    ("compare", "comparison"),
    ("vs", "comparison"),
    (" or ", "comparison"),
]

CURRENT_PHRASES = ("this week", "current gameweek", "this gameweek")
NEXT_PHRASES = ("next week", "next gameweek", "upcoming gameweek")

_GAMEWEEK_RE = re.compile(r"gameweek\s+(\d+)|gw\s?(\d+)|week\s+(\d+)")


@dataclass
class ExtractedEntities:
    players: List[Player] = field(default_factory=list)
    teams: List[Team] = field(default_factory=list)
    gameweeks: List[Gameweek] = field(default_factory=list)
    keywords: List[str] = field(default_factory=list)


def extract_keywords(question: str) -> List[str]:
    """Stat vocabulary and question-type tags found in a lowercased question."""
    keywords = [k for k in STAT_KEYWORDS if k in question]
    for phrase, tag in QUESTION_TYPES:
        if phrase in question and tag not in keywords:
            keywords.append(tag)
    return keywords


def extract_entities(
    question: str,
    players: List[Player],
    teams: List[Team],
    gameweeks: List[Gameweek],
) -> ExtractedEntities:
    """
    Match a question against the known players, teams and gameweeks.

    Explicit gameweek mentions ("gameweek 5", "gw5", "week 5") take priority;
    relative phrases ("this week", "next gameweek") are only used when the
    question names no gameweek number.

    Example:
        >>> entities = extract_entities("Is Salah worth it in gw5?", players, teams, gameweeks)
        >>> [p.web_name for p in entities.players], [g.id for g in entities.gameweeks]
        (['Salah'], [5])
    """
    text = question.lower()
    entities = ExtractedEntities(keywords=extract_keywords(text))

    entities.players = [
        p for p in players if p.web_name.lower() in text or p.full_name.lower() in text
    ]
    entities.teams = [
        t for t in teams if t.name.lower() in text or t.short_name.lower() in text
    ]

    by_id = {gw.id: gw for gw in gameweeks}
    mentioned = [int(next(g for g in m.groups() if g)) for m in _GAMEWEEK_RE.finditer(text)]
    if mentioned:
        for gameweek_id in mentioned:
            gameweek = by_id.get(gameweek_id)
            if gameweek is not None and gameweek not in entities.gameweeks:
                entities.gameweeks.append(gameweek)
    else:
        if any(phrase in text for phrase in CURRENT_PHRASES):
            current = select_current_gameweek(gameweeks)
            if current is not None:
                entities.gameweeks.append(current)
        if any(phrase in text for phrase in NEXT_PHRASES):
            upcoming = select_next_gameweek(gameweeks)
            if upcoming is not None and upcoming not in entities.gameweeks:
                entities.gameweeks.append(upcoming)

    return entities


def format_entity_context(
    entities: ExtractedEntities, additional_data: Optional[Dict[str, Any]] = None
) -> str:
    """Render extracted entities as markdown sections; empty sections are omitted."""
    sections = []

    if entities.players:
        lines = ["### Players"]
        for p in entities.players:
            lines.append(f"- {p.full_name} ({p.web_name}), {p.position}, {p.team_id}")
            if p.form:
                lines.append(f"  - Form: {p.form}")
            if p.points_per_game:
                lines.append(f"  - Points per game: {p.points_per_game}")
            if p.total_points:
                lines.append(f"  - Total points: {p.total_points}")
            if p.selected_by_percent:
                lines.append(f"  - Selected by: {p.selected_by_percent}%")
        sections.append("\n".join(lines))

    if entities.teams:
        lines = ["### Teams"]
        lines += [f"- {t.name} ({t.short_name})" for t in entities.teams]
        sections.append("\n".join(lines))

    if entities.gameweeks:
        lines = ["### Gameweeks"]
        for gw in entities.gameweeks:
            line = f"- {gw.name}: "
            if gw.is_current:
                line += "[CURRENT] "
            if gw.is_next:
                line += "[NEXT] "
            line += f"Deadline: {gw.deadline_time.isoformat()}"
            if gw.finished:
                line += " [FINISHED]"
            lines.append(line)
        sections.append("\n".join(lines))

    if additional_data:
        lines = ["### Additional Data"]
        for key, value in additional_data.items():
            if isinstance(value, (dict, list)):
                value = json.dumps(value)
            lines.append(f"- {key}: {value}")
        sections.append("\n".join(lines))

    if entities.keywords:
        sections.append("### Detected Topics\n- " + ", ".join(entities.keywords))

    return "\n\n".join(sections) + ("\n" if sections else "")


# ============================================================================
# PLAYER NAME MATCHING
# ============================================================================


def _fuzzy_match(name: str, search: str) -> bool:
    name_words = name.lower().split()
    return all(
        any(n in s or s in n for n in name_words) for s in search.lower().split()
    )


def find_player_by_name(players: List[Player], name: str) -> Optional[Player]:
    """
    Resolve a player by name: exact web/full name, then substring of the full
    name, then word-wise fuzzy match.
    """
    needle = name.strip().lower()
    if not needle:
        return None
    for p in players:
        if p.web_name.lower() == needle or p.full_name.lower() == needle:
            return p
    for p in players:
        if needle in p.full_name.lower():
            return p
    for p in players:
        if _fuzzy_match(p.full_name, needle):
            return p
    return None
