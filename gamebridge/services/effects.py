# gamebridge/services/effects.py
"""
Maps bridge events onto the game effects consumed by the map/building
simulation: which building reacts, which resources move, how long a
buff/debuff lasts, and the crisis task an injury raises.
"""
from __future__ import annotations

from typing import Dict, Optional

from typing_extensions import TypedDict, assert_never

from gamebridge.models.events import check_complete, parse_event_type
from gamebridge.models.types import BridgeEvent, EventType

E = EventType


class ResourceEffect(TypedDict, total=False):
    gold: int
    intel: int
    influence: int
    morale: int
    workerSlots: int


class GameEffect(TypedDict):
    buildingCategory: str
    resourceEffect: ResourceEffect
    duration: Optional[int]
    crisisTask: Optional[str]


BUILDING: Dict[EventType, str] = {
    E.WORLD_TICK: "townhall",
    E.GAME_START: "townhall",
    E.GAME_UPDATE: "production",
    E.GAME_FINAL: "command",
    E.STANDINGS_DELTA: "defense",
    E.LINEUP_POSTED: "research",
    E.ODDS_SHIFT: "storage",
    E.HIGHLIGHT_CLIP: "production",
    E.INJURY_ALERT: "repairs",
    E.MOMENTUM_SWING: "tower",
    E.OPS_HEARTBEAT: "townhall",
    E.OPS_DEGRADED: "repairs",
    E.OPS_RECOVERED: "repairs",
}

STAT_CATEGORY: Dict[EventType, str] = {
    E.WORLD_TICK: "defense",
    E.GAME_START: "spawns",
    E.GAME_UPDATE: "production",
    E.GAME_FINAL: "commands",
    E.STANDINGS_DELTA: "defense",
    E.LINEUP_POSTED: "research",
    E.ODDS_SHIFT: "storage",
    E.HIGHLIGHT_CLIP: "production",
    E.INJURY_ALERT: "repairs",
    E.MOMENTUM_SWING: "defense",
    E.OPS_HEARTBEAT: "defense",
    E.OPS_DEGRADED: "repairs",
    E.OPS_RECOVERED: "repairs",
}

check_complete(BUILDING, "BUILDING")  # type: ignore[arg-type]
check_complete(STAT_CATEGORY, "STAT_CATEGORY")  # type: ignore[arg-type]

INJURY_MORALE = {"minor": -5, "moderate": -10, "severe": -20, "unknown": -8}
INJURY_DURATION = {"minor": 30, "moderate": 60, "severe": 120, "unknown": 45}
HIGHLIGHT_MORALE = {
    "homerun": 15,
    "touchdown": 20,
    "goal": 12,
    "dunk": 10,
    "strikeout": 8,
    "interception": 18,
    "other": 5,
}


def _num(payload: dict, key: str) -> float:
    try:
        return float(payload.get(key) or 0)
    except (TypeError, ValueError):
        return 0.0


def resource_effect(event_type: EventType, payload: dict) -> ResourceEffect:
    effect: ResourceEffect = {}

    if event_type is E.WORLD_TICK:
        pass
    elif event_type is E.GAME_START:
        # new opportunity
        effect["workerSlots"] = 1
        effect["gold"] = 10
    elif event_type is E.GAME_UPDATE:
        margin = abs(_num(payload, "homeScore") - _num(payload, "awayScore"))
        effect["gold"] = int(5 + margin * 2)
    elif event_type is E.GAME_FINAL:
        effect["intel"] = 15
        effect["gold"] = 25
        if abs(_num(payload, "homeScore") - _num(payload, "awayScore")) <= 3:
            effect["morale"] = 10
    elif event_type is E.STANDINGS_DELTA:
        effect["influence"] = int(_num(payload, "delta") * 5)
    elif event_type is E.LINEUP_POSTED:
        effect["intel"] = 20
    elif event_type is E.ODDS_SHIFT:
        movement = abs(_num(payload, "newLine") - _num(payload, "previousLine"))
        effect["gold"] = int(movement) if payload.get("movement") == "sharp" else int(movement // 2)
    elif event_type is E.HIGHLIGHT_CLIP:
        effect["morale"] = HIGHLIGHT_MORALE.get(str(payload.get("playType")), 5)
    elif event_type is E.INJURY_ALERT:
        effect["morale"] = INJURY_MORALE.get(str(payload.get("severity")), INJURY_MORALE["unknown"])
    elif event_type is E.MOMENTUM_SWING:
        rising = _num(payload, "newWinProb") > _num(payload, "previousWinProb")
        size = 15 if _num(payload, "swingMagnitude") > 20 else 5
        effect["morale"] = size if rising else -size
    elif event_type is E.OPS_HEARTBEAT:
        effect["intel"] = 1
    elif event_type is E.OPS_DEGRADED:
        effect["morale"] = -25 if payload.get("status") == "unhealthy" else -15
    elif event_type is E.OPS_RECOVERED:
        effect["intel"] = 10
        effect["morale"] = 15
    else:
        assert_never(event_type)

    return effect


def duration(event_type: EventType, payload: dict) -> Optional[int]:
    """Buff/debuff length in seconds, or None for instant effects."""
    if event_type is E.LINEUP_POSTED:
        return 60
    elif event_type is E.HIGHLIGHT_CLIP:
        return 30
    elif event_type is E.MOMENTUM_SWING:
        return int(min(120, 30 + _num(payload, "swingMagnitude")))
    elif event_type is E.INJURY_ALERT:
        return INJURY_DURATION.get(str(payload.get("severity")), INJURY_DURATION["unknown"])
    elif event_type is E.OPS_DEGRADED:
        return 120
    elif event_type is E.OPS_RECOVERED:
        return 60
    elif event_type in (
        E.WORLD_TICK,
        E.GAME_START,
        E.GAME_UPDATE,
        E.GAME_FINAL,
        E.STANDINGS_DELTA,
        E.ODDS_SHIFT,
        E.OPS_HEARTBEAT,
    ):
        return None
    else:
        assert_never(event_type)


def crisis_task(event_type: EventType, payload: dict) -> Optional[str]:
    if event_type is not E.INJURY_ALERT:
        return None
    player = payload.get("playerName") or "Player"
    tasks = {
        "minor": f"Monitor {player} status",
        "moderate": f"Evaluate roster options after {player} injury",
        "severe": f"Emergency: {player} out - adjust strategy",
        "unknown": f"Assess {player} situation",
    }
    return tasks.get(str(payload.get("severity")), tasks["unknown"])


def transform(event: BridgeEvent) -> Optional[GameEffect]:
    """Game effect for an event, or None if the type is not a bridge type."""
    event_type = parse_event_type(event.get("type"))
    if event_type is None:
        return None
    payload = event.get("payload") or {}
    return {
        "buildingCategory": BUILDING[event_type],
        "resourceEffect": resource_effect(event_type, payload),  # type: ignore[arg-type]
        "duration": duration(event_type, payload),  # type: ignore[arg-type]
        "crisisTask": crisis_task(event_type, payload),  # type: ignore[arg-type]
    }


def stat_category(event: BridgeEvent) -> str:
    event_type = parse_event_type(event.get("type"))
    return STAT_CATEGORY[event_type] if event_type else "production"
