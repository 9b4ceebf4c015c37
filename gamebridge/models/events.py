# gamebridge/models/events.py
from __future__ import annotations

import uuid
from typing import Dict, Optional

from gamebridge.models.types import (
    BridgeEvent,
    EventPayload,
    EventSource,
    EventType,
    GameContext,
    LiveGame,
    TeamInfo,
)
from gamebridge.services.common import chicago_timestamp

# 1 = most urgent
PRIORITY: Dict[EventType, int] = {
    EventType.WORLD_TICK: 3,
    EventType.GAME_START: 2,
    EventType.GAME_UPDATE: 2,
    EventType.GAME_FINAL: 1,
    EventType.STANDINGS_DELTA: 2,
    EventType.LINEUP_POSTED: 2,
    EventType.ODDS_SHIFT: 2,
    EventType.HIGHLIGHT_CLIP: 2,
    EventType.INJURY_ALERT: 1,
    EventType.MOMENTUM_SWING: 2,
    EventType.OPS_HEARTBEAT: 3,
    EventType.OPS_DEGRADED: 1,
    EventType.OPS_RECOVERED: 2,
}


def check_complete(table: Dict[EventType, object], name: str) -> None:
    """Raise at import time if a lookup table is missing an event type."""
    missing = [t.value for t in EventType if t not in table]
    if missing:
        raise RuntimeError(f"{name} is missing event types: {', '.join(missing)}")


check_complete(PRIORITY, "PRIORITY")


def parse_event_type(value: object) -> Optional[EventType]:
    try:
        return EventType(value)
    except ValueError:
        return None


def new_event(
    event_type: EventType,
    payload: EventPayload,
    source: EventSource,
    game_context: Optional[GameContext] = None,
    timestamp: Optional[str] = None,
) -> BridgeEvent:
    """
    Build a fresh event. Id and priority are always assigned here;
    callers never choose them.
    """
    event: BridgeEvent = {
        "id": str(uuid.uuid4()),
        "type": event_type.value,
        "timestamp": timestamp or chicago_timestamp(),
        "source": source,
        "priority": PRIORITY[event_type],
        "payload": payload,
    }
    if game_context is not None:
        event["gameContext"] = game_context
    return event


def _copy_team(team: TeamInfo) -> TeamInfo:
    return dict(team)  # type: ignore[return-value]


def game_context_for(game: LiveGame, status: str) -> GameContext:
    """Denormalized copy of the two teams as they stand right now."""
    return {
        "gameId": game["gameId"],
        "league": game["league"],
        "homeTeam": _copy_team(game["homeTeam"]),
        "awayTeam": _copy_team(game["awayTeam"]),
        "status": status,  # type: ignore[typeddict-item]
    }


def world_tick(live_games: int, source: EventSource) -> BridgeEvent:
    now = chicago_timestamp()
    return new_event(
        EventType.WORLD_TICK,
        {"type": "WORLD_TICK", "liveGames": live_games, "serverTime": now},
        source,
        timestamp=now,
    )
