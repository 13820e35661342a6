"""
Tests for domain model normalization.
"""

import logging

import pytest

from fpl_mcp.api.models import (
    Fixture,
    Gameweek,
    Player,
    position_label,
    select_current_gameweek,
    stat_lines_from_live,
    to_fixture_record,
)

from conftest import make_bootstrap, make_fixtures


@pytest.mark.parametrize(
    "element_type, label",
    [(1, "GKP"), (2, "DEF"), (3, "MID"), (4, "FWD"), (0, "Unknown"), (5, "Unknown"),
     (None, "Unknown"), ("abc", "Unknown"), ("2", "DEF")],
)
def test_position_mapping_is_total(element_type, label):
    assert position_label(element_type) == label


def test_player_full_name_and_position():
    player = Player.from_api(make_bootstrap()["elements"][0])
    assert player.full_name == "Mohamed Salah"
    assert player.position == "MID"
    assert player.team_id == 2


def test_gameweek_name_derived_from_id():
    raw = dict(make_bootstrap()["events"][0], name="Matchweek Five")
    assert Gameweek.from_api(raw).name == "Gameweek 5"


def test_unfinished_fixture_has_no_scores():
    live_fixture = Fixture.from_api(make_fixtures()[1])
    assert live_fixture.finished is False
    assert live_fixture.team_h_score is None
    assert live_fixture.team_a_score is None
    assert to_fixture_record(live_fixture, "now")["team_h_score"] is None


def test_scores_suppressed_for_cached_payloads_too():
    fixture = Fixture.model_validate(
        {"id": 1, "home_team_id": 1, "away_team_id": 2, "finished": False,
         "team_h_score": 3, "team_a_score": 3}
    )
    assert fixture.team_h_score is None and fixture.team_a_score is None


def test_finished_fixture_keeps_scores():
    fixture = Fixture.from_api(make_fixtures()[0])
    assert (fixture.team_h_score, fixture.team_a_score) == (2, 1)
    assert fixture.has_result


def test_stat_lines_only_for_players_who_played():
    live = {"elements": [
        {"id": 10, "stats": {"minutes": 90, "goals_scored": 2}},
        {"id": 11, "stats": {"minutes": 0}},
    ]}
    lines = stat_lines_from_live(5, live)
    assert [(l.player_id, l.gameweek_id, l.goals_scored) for l in lines] == [(10, 5, 2)]


def test_stat_lines_accept_mapping_payload():
    live = {"elements": {"10": {"stats": {"minutes": 12, "bonus": 1}}}}
    (line,) = stat_lines_from_live(3, live)
    assert line.player_id == 10 and line.bonus == 1 and line.total_points == 0


def test_multiple_current_gameweeks_picks_first_and_warns(caplog):
    gameweeks = [
        Gameweek(id=i, name=f"Gameweek {i}", deadline_time="2024-08-16T17:30:00Z",
                 is_current=True)
        for i in (4, 5)
    ]
    with caplog.at_level(logging.WARNING):
        assert select_current_gameweek(gameweeks).id == 4
    assert "flagged is_current" in caplog.text


def test_no_current_gameweek():
    assert select_current_gameweek([]) is None
