# gamebridge/routers/gamebridge_routes.py
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Header, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse

from gamebridge.models.events import new_event, parse_event_type
from gamebridge.models.types import EventType, Snapshot
from gamebridge.services.common import chicago_timestamp
from gamebridge.services.delta_store import GAMES_CHANNEL
from gamebridge.services.dispatcher import (
    ConnectionContext,
    ConnectionHandle,
    StreamDispatcher,
    parse_leagues,
    parse_mode,
    parse_teams,
    parse_tier,
)
from gamebridge.services.sim_feed import SimFeed

router = APIRouter(tags=["gamebridge"])
logger = logging.getLogger("gamebridge.routes")

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def client_identity(request: Request) -> str:
    forwarded = request.headers.get("CF-Connecting-IP")
    if forwarded:
        return forwarded.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def empty_snapshot() -> Snapshot:
    return {
        "games": [],
        "standings": [],
        "lastUpdated": chicago_timestamp(),
        "source": "simulated",
    }


# ---------------- Stream ----------------
@router.get("/stream")
async def stream(
    request: Request,
    mode: Optional[str] = Query(None, description="spectator | manager | commander"),
    leagues: Optional[str] = Query(None, description="comma-separated, default mlb,nfl,ncaaf"),
    teams: Optional[str] = Query(None, description="comma-separated; accepted, not used for filtering"),
    demo: Optional[str] = Query(None, description="'true' forces the simulation feed"),
    x_bsi_tier: Optional[str] = Header(None, alias="X-BSI-Tier"),
):
    """
    Long-lived SSE stream of bridge events, filtered by mode, tier and leagues.
    """
    state = request.app.state
    client_id = client_identity(request)
    if not state.rate_limiter.allow(client_id):
        return PlainTextResponse("Rate limit exceeded", status_code=429)

    settings = state.settings
    use_sim = demo == "true" or not settings.has_api_key

    ctx = ConnectionContext(
        mode=parse_mode(mode),
        tier=parse_tier(x_bsi_tier),
        leagues=parse_leagues(leagues),
        teams=parse_teams(teams),
    )
    handle = ConnectionHandle()

    def _acquire() -> None:
        state.active_streams += 1

    def _release() -> None:
        state.active_streams -= 1

    handle.on_open(_acquire)
    handle.on_close(_release)

    dispatcher = StreamDispatcher(
        ctx,
        handle,
        state.store,
        sim=SimFeed() if use_sim else None,
        interval=settings.stream_interval_seconds,
    )
    return StreamingResponse(
        dispatcher.events(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


# ---------------- Snapshot ----------------
@router.get("/snapshot")
async def snapshot(request: Request):
    cached = await request.app.state.store.get_snapshot()
    return cached or empty_snapshot()


# ---------------- Health ----------------
@router.get("/health")
async def health():
    return {"status": "ok", "timestamp": chicago_timestamp(), "version": "1.0.0"}


# ---------------- Dev-only injection ----------------
@router.post("/sim/event")
async def sim_event(request: Request):
    """
    Inject one simulated event into the live delta channel.
    Disabled in production.
    """
    state = request.app.state
    if state.settings.is_production:
        return PlainTextResponse("Not available in production", status_code=403)

    try:
        body = await request.json()
    except ValueError:
        return PlainTextResponse("Invalid JSON", status_code=400)
    if not isinstance(body, dict):
        return PlainTextResponse("Invalid JSON", status_code=400)

    event_type = parse_event_type(body.get("type") or EventType.WORLD_TICK.value)
    if event_type is None:
        return PlainTextResponse("Unknown event type", status_code=400)

    payload = body.get("payload")
    if not isinstance(payload, dict):
        payload = {"type": "WORLD_TICK", "liveGames": 0, "serverTime": chicago_timestamp()}
    context = body.get("gameContext") if isinstance(body.get("gameContext"), dict) else None

    event = new_event(event_type, payload, "simulated", context)  # type: ignore[arg-type]
    await state.store.append([event], GAMES_CHANNEL)
    logger.info("injected %s event id=%s", event["type"], event["id"])
    return JSONResponse({"success": True, "event": event})
