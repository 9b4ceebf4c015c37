# gamebridge/services/delta_detector.py
"""
Turns two consecutive snapshots into typed game events.

Rules, per game in the current snapshot (keyed by gameId):
  1. no previous snapshot      -> GAME_START for every live game
  2. game new this cycle       -> GAME_START if live, else nothing
  3. status changed            -> scheduled->live: GAME_START
                                  live->final:     GAME_FINAL
                                  anything else:   nothing
  4. still live, score changed -> one GAME_UPDATE
Then every game that was live last cycle and has vanished gets a
synthetic GAME_FINAL carrying its last known score.

The detector never touches storage: callers persist the returned events as
one batch and store the returned snapshot as the next "previous".
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from gamebridge.models.events import game_context_for, new_event
from gamebridge.models.types import (
    BridgeEvent,
    EventSource,
    EventType,
    GameEventPayload,
    LiveGame,
    Snapshot,
)
from gamebridge.services.common import chicago_timestamp

logger = logging.getLogger("gamebridge.detector")


def _game_payload(event_type: EventType, game: LiveGame) -> GameEventPayload:
    return {
        "type": event_type.value,  # type: ignore[typeddict-item]
        "gameId": game["gameId"],
        "league": game["league"],
        "homeScore": game["homeTeam"]["score"],
        "awayScore": game["awayTeam"]["score"],
    }


def scoring_play(game: LiveGame, prev: LiveGame) -> str:
    """
    Name the side that scored. When both sides scored in the same cycle the
    home side is reported and the away increment is not mentioned.
    """
    if game["homeTeam"]["score"] > prev["homeTeam"]["score"]:
        return f"{game['homeTeam']['name']} scored"
    if game["awayTeam"]["score"] > prev["awayTeam"]["score"]:
        return f"{game['awayTeam']['name']} scored"
    return ""


class DeltaDetector:
    def __init__(self, source: EventSource = "live"):
        self.source = source

    # ---------- event builders ----------

    def game_start(self, game: LiveGame, timestamp: str) -> BridgeEvent:
        return new_event(
            EventType.GAME_START,
            _game_payload(EventType.GAME_START, game),
            self.source,
            game_context_for(game, "live"),
            timestamp=timestamp,
        )

    def game_update(self, game: LiveGame, prev: LiveGame, timestamp: str) -> BridgeEvent:
        payload = _game_payload(EventType.GAME_UPDATE, game)
        payload["scoringPlay"] = scoring_play(game, prev)
        return new_event(
            EventType.GAME_UPDATE,
            payload,
            self.source,
            game_context_for(game, "live"),
            timestamp=timestamp,
        )

    def game_final(self, game: LiveGame, timestamp: str) -> BridgeEvent:
        return new_event(
            EventType.GAME_FINAL,
            _game_payload(EventType.GAME_FINAL, game),
            self.source,
            game_context_for(game, "final"),
            timestamp=timestamp,
        )

    # ---------- detection ----------

    def detect(
        self,
        previous: Optional[Snapshot],
        current: Snapshot,
    ) -> Tuple[List[BridgeEvent], Snapshot]:
        events: List[BridgeEvent] = []
        timestamp = chicago_timestamp()

        if not previous:
            for game in current["games"]:
                if game["status"] == "live":
                    events.append(self.game_start(game, timestamp))
            return events, current

        prev_by_id: Dict[str, LiveGame] = {g["gameId"]: g for g in previous["games"]}
        current_ids = set()

        for game in current["games"]:
            current_ids.add(game["gameId"])
            prev = prev_by_id.get(game["gameId"])

            if prev is None:
                if game["status"] == "live":
                    events.append(self.game_start(game, timestamp))
                continue

            if prev["status"] != game["status"]:
                if prev["status"] == "scheduled" and game["status"] == "live":
                    events.append(self.game_start(game, timestamp))
                elif prev["status"] == "live" and game["status"] == "final":
                    events.append(self.game_final(game, timestamp))
                else:
                    logger.debug(
                        "ignoring status change %s -> %s for %s",
                        prev["status"], game["status"], game["gameId"],
                    )
                continue

            if game["status"] == "live" and (
                game["homeTeam"]["score"] != prev["homeTeam"]["score"]
                or game["awayTeam"]["score"] != prev["awayTeam"]["score"]
            ):
                events.append(self.game_update(game, prev, timestamp))

        # Live last cycle, gone now: assume it ended
        for prev in previous["games"]:
            if prev["gameId"] not in current_ids and prev["status"] == "live":
                events.append(self.game_final(prev, timestamp))

        return events, current


delta_detector = DeltaDetector()
