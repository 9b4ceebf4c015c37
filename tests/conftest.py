"""Shared builders for game and snapshot fixtures."""

import pytest


def make_team(name, score=0, team_id=None):
    return {
        "id": team_id or name.lower(),
        "name": name,
        "abbreviation": name[:3].upper(),
        "score": score,
    }


def make_game(game_id="g1", status="live", home=("Rangers", 0), away=("Astros", 0), league="mlb"):
    return {
        "gameId": game_id,
        "league": league,
        "homeTeam": make_team(home[0], home[1]),
        "awayTeam": make_team(away[0], away[1]),
        "status": status,
        "startTime": "2025-06-01T19:05:00-05:00",
    }


def make_snapshot(*games, source="live"):
    return {
        "games": list(games),
        "standings": [],
        "lastUpdated": "2025-06-01T19:30:00-05:00",
        "source": source,
    }


class FakeClock:
    """Millisecond clock the test moves by hand."""

    def __init__(self, start=1_700_000_000_000):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()
