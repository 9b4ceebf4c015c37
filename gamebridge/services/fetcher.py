# gamebridge/services/fetcher.py
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional

import httpx

from gamebridge.models.types import KNOWN_LEAGUES, GameStatus, LiveGame, Snapshot, TeamInfo
from gamebridge.services.common import HEADERS, _get_json, chicago_timestamp

logger = logging.getLogger("gamebridge.fetcher")

LIVE_STATUSES = {"in_progress", "inprogress", "live", "in", "status_in_progress"}
FINAL_STATUSES = {"final", "post", "completed", "status_final"}


# ---------- Normalization ----------

def normalize_status(raw: Any) -> GameStatus:
    s = str(raw or "").strip().lower()
    if s in LIVE_STATUSES:
        return "live"
    if s in FINAL_STATUSES:
        return "final"
    return "scheduled"


def normalize_league(raw: Any, fallback: str) -> str:
    lower = str(raw or "").strip().lower()
    return lower if lower in KNOWN_LEAGUES else fallback


def _score(value: Any) -> int:
    try:
        n = int(value)
    except (TypeError, ValueError):
        return 0
    return n if n >= 0 else 0


def _extract_team(raw: Any) -> Optional[TeamInfo]:
    if not isinstance(raw, dict):
        return None
    name = raw.get("name") or raw.get("displayName")
    if not name:
        return None
    team: TeamInfo = {
        "id": str(raw.get("id") or name),
        "name": str(name),
        "abbreviation": str(raw.get("abbreviation") or str(name)[:3].upper()),
        "score": _score(raw.get("score")),
    }
    if raw.get("record"):
        team["record"] = str(raw["record"])
    return team


def extract_live_game(raw: Dict[str, Any], league: str) -> Optional[LiveGame]:
    """
    Flatten one provider game into the canonical LiveGame shape.
    Accepts snake_case or camelCase team keys; returns None when the game
    has no id or is missing a side.
    """
    game_id = raw.get("id") or raw.get("gameId")
    if not game_id:
        return None

    home = _extract_team(raw.get("home_team") or raw.get("homeTeam"))
    away = _extract_team(raw.get("away_team") or raw.get("awayTeam"))
    if not home or not away:
        return None

    return {
        "gameId": str(game_id),
        "league": normalize_league(raw.get("league"), league),
        "homeTeam": home,
        "awayTeam": away,
        "status": normalize_status(raw.get("status")),
        "startTime": raw.get("start_time") or raw.get("startTime"),
    }


# ---------- Fetcher ----------

class SnapshotFetcher:
    """
    Pulls live games per league from the upstream provider.

    Every league is fetched concurrently. A league that times out, returns a
    non-2xx status or an unreadable body contributes zero games; the failure
    is logged and never raised.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def _fetch_league(self, client: httpx.AsyncClient, league: str) -> List[LiveGame]:
        url = f"{self.base_url}/sports/{league}/games/live"
        try:
            data = await _get_json(
                client,
                url,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except Exception as e:
            logger.warning("fetch %s failed, contributing no games: %s", league, e)
            return []

        if not isinstance(data, dict) or not isinstance(data.get("games", []), list):
            logger.warning("fetch %s returned malformed body, contributing no games", league)
            return []

        out: List[LiveGame] = []
        for raw in data.get("games") or []:
            if not isinstance(raw, dict):
                continue
            game = extract_live_game(raw, league)
            if game:
                out.append(game)

        logger.info("fetch %s -> %d games", league, len(out))
        return out

    async def fetch(self, leagues: Iterable[str]) -> Snapshot:
        leagues = list(leagues)
        async with httpx.AsyncClient(
            timeout=self.timeout,
            headers=HEADERS,
            transport=self._transport,
        ) as client:
            results = await asyncio.gather(*(self._fetch_league(client, lg) for lg in leagues))

        # games keyed by id; a later league never duplicates an earlier one
        merged: Dict[str, LiveGame] = {}
        for games in results:
            for g in games:
                merged.setdefault(g["gameId"], g)

        return {
            "games": list(merged.values()),
            "standings": [],
            "lastUpdated": chicago_timestamp(),
            "source": "live",
        }
