# gamebridge/models/types.py
from __future__ import annotations

from enum import Enum
from typing import List, Literal, Optional, Union

from typing_extensions import NotRequired, TypedDict


class EventType(str, Enum):
    WORLD_TICK = "WORLD_TICK"
    GAME_START = "GAME_START"
    GAME_UPDATE = "GAME_UPDATE"
    GAME_FINAL = "GAME_FINAL"
    STANDINGS_DELTA = "STANDINGS_DELTA"
    LINEUP_POSTED = "LINEUP_POSTED"
    ODDS_SHIFT = "ODDS_SHIFT"
    HIGHLIGHT_CLIP = "HIGHLIGHT_CLIP"
    INJURY_ALERT = "INJURY_ALERT"
    MOMENTUM_SWING = "MOMENTUM_SWING"
    OPS_HEARTBEAT = "OPS_HEARTBEAT"
    OPS_DEGRADED = "OPS_DEGRADED"
    OPS_RECOVERED = "OPS_RECOVERED"


League = Literal["mlb", "nfl", "ncaaf", "nba", "nhl"]
GameStatus = Literal["scheduled", "live", "final"]
EventSource = Literal["live", "simulated", "ops"]
ClientMode = Literal["spectator", "manager", "commander"]
SubscriptionTier = Literal["free", "pro", "enterprise"]
Severity = Literal["minor", "moderate", "severe", "unknown"]
OpsStatus = Literal["healthy", "degraded", "unhealthy"]

KNOWN_LEAGUES: List[str] = ["mlb", "nfl", "ncaaf", "nba", "nhl"]
DEFAULT_LEAGUES: List[str] = ["mlb", "nfl", "ncaaf"]


class TeamInfo(TypedDict):
    id: str
    name: str
    abbreviation: str
    score: int
    record: NotRequired[Optional[str]]


class LiveGame(TypedDict):
    gameId: str
    league: str
    homeTeam: TeamInfo
    awayTeam: TeamInfo
    status: GameStatus
    startTime: Optional[str]


class StandingEntry(TypedDict):
    teamId: str
    name: str
    rank: int
    wins: int
    losses: int
    winPct: float


class LeagueStandings(TypedDict):
    league: str
    teams: List[StandingEntry]
    lastUpdated: str


class Snapshot(TypedDict):
    games: List[LiveGame]
    standings: List[LeagueStandings]
    lastUpdated: str
    source: EventSource


class GameContext(TypedDict):
    gameId: str
    league: str
    homeTeam: TeamInfo
    awayTeam: TeamInfo
    status: GameStatus


# ---------- Payload variants (tagged by "type") ----------

class WorldTickPayload(TypedDict):
    type: Literal["WORLD_TICK"]
    liveGames: int
    serverTime: str
    nextGameIn: NotRequired[int]


class GameEventPayload(TypedDict):
    type: Literal["GAME_START", "GAME_UPDATE", "GAME_FINAL"]
    gameId: str
    league: str
    homeScore: int
    awayScore: int
    scoringPlay: NotRequired[str]
    winProbability: NotRequired[float]


class StandingsPayload(TypedDict):
    type: Literal["STANDINGS_DELTA"]
    league: str
    teamId: str
    previousRank: int
    newRank: int
    delta: int


class LineupPayload(TypedDict):
    type: Literal["LINEUP_POSTED"]
    gameId: str
    league: str
    team: str
    players: List[str]
    notableChanges: NotRequired[List[str]]


class OddsPayload(TypedDict):
    type: Literal["ODDS_SHIFT"]
    gameId: str
    league: str
    previousLine: float
    newLine: float
    movement: Literal["sharp", "gradual"]
    direction: Literal["home", "away"]


class HighlightPayload(TypedDict):
    type: Literal["HIGHLIGHT_CLIP"]
    gameId: str
    league: str
    description: str
    playType: str
    clipUrl: NotRequired[str]


class InjuryPayload(TypedDict):
    type: Literal["INJURY_ALERT"]
    league: str
    playerId: str
    playerName: str
    team: str
    severity: Severity
    description: NotRequired[str]


class MomentumPayload(TypedDict):
    type: Literal["MOMENTUM_SWING"]
    gameId: str
    league: str
    previousWinProb: float
    newWinProb: float
    swingMagnitude: float
    favoredTeam: Literal["home", "away"]


class OpsHealthPayload(TypedDict):
    type: Literal["OPS_HEARTBEAT", "OPS_DEGRADED", "OPS_RECOVERED"]
    service: str
    status: OpsStatus
    previousStatus: NotRequired[OpsStatus]
    responseTime: NotRequired[int]
    warnings: NotRequired[List[str]]


EventPayload = Union[
    WorldTickPayload,
    GameEventPayload,
    StandingsPayload,
    LineupPayload,
    OddsPayload,
    HighlightPayload,
    InjuryPayload,
    MomentumPayload,
    OpsHealthPayload,
]


class BridgeEvent(TypedDict):
    id: str
    type: str
    timestamp: str
    source: EventSource
    priority: int
    payload: EventPayload
    gameContext: NotRequired[GameContext]
