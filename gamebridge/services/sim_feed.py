# gamebridge/services/sim_feed.py
"""
Demo-mode event source.

Used in place of the fetch/detect/store pipeline when no provider key is
configured (or the client asks for demo=true). Produces the same event
shapes on a fixed cadence so dispatch filtering behaves identically.
"""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Dict, List, Optional

from gamebridge.models.events import new_event
from gamebridge.models.types import BridgeEvent, EventType, GameContext

logger = logging.getLogger("gamebridge.sim")

UPDATE_EVERY = 3
INJURY_EVERY = 10

DEMO_TEAMS: Dict[str, List[Dict[str, str]]] = {
    "mlb": [
        {"id": "tex", "name": "Rangers", "abbreviation": "TEX"},
        {"id": "hou", "name": "Astros", "abbreviation": "HOU"},
        {"id": "nyy", "name": "Yankees", "abbreviation": "NYY"},
        {"id": "bos", "name": "Red Sox", "abbreviation": "BOS"},
    ],
}

DEMO_PLAYERS = ["Mike Trout", "Aaron Judge", "Corey Seager", "Jose Altuve"]
SEVERITIES = ["minor", "moderate", "severe"]


@dataclass
class SimGame:
    game_id: str
    league: str
    home: Dict[str, str]
    away: Dict[str, str]
    home_score: int
    away_score: int
    status: str = "live"


def _initial_games() -> List[SimGame]:
    mlb = DEMO_TEAMS["mlb"]
    return [
        SimGame("sim-mlb-1", "mlb", mlb[0], mlb[1], home_score=2, away_score=3),
        SimGame("sim-mlb-2", "mlb", mlb[2], mlb[3], home_score=0, away_score=1),
    ]


class SimFeed:
    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()
        self._games = _initial_games()
        self._tick_count = 0

    def live_game_count(self) -> int:
        return sum(1 for g in self._games if g.status == "live")

    def tick(self) -> List[BridgeEvent]:
        self._tick_count += 1
        events: List[BridgeEvent] = []

        if self._tick_count % UPDATE_EVERY == 0:
            update = self._score_update()
            if update:
                events.append(update)

        if self._tick_count % INJURY_EVERY == 0:
            events.append(self._injury_alert())

        return events

    def _score_update(self) -> Optional[BridgeEvent]:
        live = [g for g in self._games if g.status == "live"]
        if not live:
            return None

        game = self._rng.choice(live)
        home_scored = self._rng.random() > 0.5
        if home_scored:
            game.home_score += 1
        else:
            game.away_score += 1
        scorer = game.home if home_scored else game.away

        context: GameContext = {
            "gameId": game.game_id,
            "league": game.league,
            "homeTeam": {**game.home, "score": game.home_score, "record": "50-30"},  # type: ignore[typeddict-item]
            "awayTeam": {**game.away, "score": game.away_score, "record": "48-32"},  # type: ignore[typeddict-item]
            "status": "live",
        }
        return new_event(
            EventType.GAME_UPDATE,
            {
                "type": "GAME_UPDATE",
                "gameId": game.game_id,
                "league": game.league,
                "homeScore": game.home_score,
                "awayScore": game.away_score,
                "scoringPlay": f"{scorer['name']} scored",
            },
            "simulated",
            context,
        )

    def _injury_alert(self) -> BridgeEvent:
        return new_event(
            EventType.INJURY_ALERT,
            {
                "type": "INJURY_ALERT",
                "league": "mlb",
                "playerId": "sim-player-1",
                "playerName": self._rng.choice(DEMO_PLAYERS),
                "team": "TEX",
                "severity": self._rng.choice(SEVERITIES),  # type: ignore[typeddict-item]
                "description": "Removed from game with apparent injury",
            },
            "simulated",
        )
