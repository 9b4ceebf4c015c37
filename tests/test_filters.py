"""
Tests for connection parameter parsing, event filtering and SSE framing.
"""

import json

import pytest

from gamebridge.models.events import PRIORITY, new_event, world_tick
from gamebridge.models.types import EventType
from gamebridge.services.dispatcher import (
    MODE_EVENTS,
    TIER_ACCESS,
    filter_event,
    format_sse,
    parse_leagues,
    parse_mode,
    parse_teams,
    parse_tier,
)

ALL_LEAGUES = frozenset({"mlb", "nfl", "ncaaf", "nba", "nhl"})


def _event(event_type, league=None):
    context = None
    if league:
        context = {
            "gameId": "g1",
            "league": league,
            "homeTeam": {"id": "h", "name": "Home", "abbreviation": "HOM", "score": 0},
            "awayTeam": {"id": "a", "name": "Away", "abbreviation": "AWA", "score": 0},
            "status": "live",
        }
    return new_event(event_type, {"type": event_type.value}, "live", context)


class TestParsing:
    def test_mode_defaults_and_unknowns(self):
        assert parse_mode(None) == "spectator"
        assert parse_mode("commander") == "commander"
        assert parse_mode("admin") == "spectator"

    def test_tier_defaults_and_unknowns(self):
        assert parse_tier(None) == "free"
        assert parse_tier("pro") == "pro"
        assert parse_tier("platinum") == "free"

    def test_leagues_default(self):
        assert parse_leagues(None) == frozenset({"mlb", "nfl", "ncaaf"})
        assert parse_leagues("") == frozenset({"mlb", "nfl", "ncaaf"})

    def test_leagues_drop_unknown(self):
        assert parse_leagues("nba, xfl,nhl") == frozenset({"nba", "nhl"})

    def test_teams_are_parsed(self):
        assert parse_teams("tex, hou,,") == ["tex", "hou"]
        assert parse_teams(None) == []


class TestTables:
    def test_modes_are_nested(self):
        assert MODE_EVENTS["spectator"] < MODE_EVENTS["manager"] < MODE_EVENTS["commander"]
        assert MODE_EVENTS["commander"] == frozenset(EventType)

    def test_tiers_are_nested(self):
        assert TIER_ACCESS["free"] < TIER_ACCESS["pro"] < TIER_ACCESS["enterprise"]
        assert EventType.MOMENTUM_SWING not in TIER_ACCESS["pro"]
        assert TIER_ACCESS["enterprise"] == frozenset(EventType)

    def test_priority_table(self):
        assert {t for t, p in PRIORITY.items() if p == 1} == {
            EventType.GAME_FINAL,
            EventType.INJURY_ALERT,
            EventType.OPS_DEGRADED,
        }
        assert {t for t, p in PRIORITY.items() if p == 3} == {
            EventType.WORLD_TICK,
            EventType.OPS_HEARTBEAT,
        }


class TestFilterEvent:
    @pytest.mark.parametrize("mode", ["spectator", "manager", "commander"])
    def test_lineup_rejected_for_free_everywhere(self, mode):
        event = _event(EventType.LINEUP_POSTED, league="mlb")
        assert not filter_event(event, mode, "free", ALL_LEAGUES)

    @pytest.mark.parametrize("tier", ["pro", "enterprise"])
    def test_lineup_accepted_for_paid_commander(self, tier):
        event = _event(EventType.LINEUP_POSTED, league="mlb")
        assert filter_event(event, "commander", tier, ALL_LEAGUES)

    def test_momentum_needs_enterprise(self):
        event = _event(EventType.MOMENTUM_SWING, league="nfl")
        assert not filter_event(event, "commander", "pro", ALL_LEAGUES)
        assert filter_event(event, "commander", "enterprise", ALL_LEAGUES)

    def test_spectator_skips_injuries(self):
        event = _event(EventType.INJURY_ALERT)
        assert not filter_event(event, "spectator", "enterprise", ALL_LEAGUES)
        assert filter_event(event, "manager", "free", ALL_LEAGUES)

    def test_league_filter_uses_game_context(self):
        event = _event(EventType.GAME_UPDATE, league="nba")
        assert not filter_event(event, "spectator", "free", frozenset({"mlb"}))
        assert filter_event(event, "spectator", "free", frozenset({"nba"}))

    def test_events_without_context_pass_league_filter(self):
        tick = world_tick(2, "live")
        assert filter_event(tick, "spectator", "free", frozenset())

    def test_unknown_type_is_dropped(self):
        event = _event(EventType.GAME_START, league="mlb")
        event["type"] = "SOMETHING_ELSE"
        assert not filter_event(event, "commander", "enterprise", ALL_LEAGUES)


class TestFormatSse:
    def test_frame_layout(self):
        event = world_tick(3, "simulated")
        frame = format_sse(event)

        lines = frame.split("\n")
        assert lines[0] == "event: WORLD_TICK"
        assert lines[1].startswith("data: ")
        assert json.loads(lines[1][len("data: "):]) == event
        assert lines[2] == f"id: {event['id']}"
        assert frame.endswith("\n\n")
