# gamebridge/services/dispatcher.py
"""
Per-connection stream loop.

Every tick the dispatcher pulls new events from one source (delta store in
live mode, the simulation feed in demo mode) plus the ops channel, emits a
heartbeat every HEARTBEAT_EVERY ticks, drops whatever the connection's mode,
tier and leagues don't allow, and yields SSE frames in order.
"""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable, Dict, FrozenSet, List, Optional

from gamebridge.models.events import parse_event_type, world_tick
from gamebridge.models.types import (
    DEFAULT_LEAGUES,
    KNOWN_LEAGUES,
    BridgeEvent,
    ClientMode,
    EventType,
    SubscriptionTier,
)
from gamebridge.services.common import now_ms
from gamebridge.services.delta_store import GAMES_CHANNEL, OPS_CHANNEL, DeltaStore
from gamebridge.services.sim_feed import SimFeed

logger = logging.getLogger("gamebridge.dispatcher")

HEARTBEAT_EVERY = 6
STREAM_INTERVAL_SECONDS = 5.0

E = EventType

_SPECTATOR = frozenset({E.WORLD_TICK, E.GAME_START, E.GAME_UPDATE, E.GAME_FINAL, E.OPS_HEARTBEAT})
_MANAGER = _SPECTATOR | {E.STANDINGS_DELTA, E.INJURY_ALERT, E.OPS_DEGRADED, E.OPS_RECOVERED}
_COMMANDER = frozenset(EventType)

MODE_EVENTS: Dict[str, FrozenSet[EventType]] = {
    "spectator": _SPECTATOR,
    "manager": _MANAGER,
    "commander": _COMMANDER,
}

_PREMIUM = frozenset({E.LINEUP_POSTED, E.ODDS_SHIFT, E.HIGHLIGHT_CLIP})
_FREE = frozenset(EventType) - _PREMIUM - {E.MOMENTUM_SWING}
_PRO = _FREE | _PREMIUM
_ENTERPRISE = frozenset(EventType)

TIER_ACCESS: Dict[str, FrozenSet[EventType]] = {
    "free": _FREE,
    "pro": _PRO,
    "enterprise": _ENTERPRISE,
}


# ---------- Connection parameters ----------

def parse_mode(raw: Optional[str]) -> ClientMode:
    if raw in ("manager", "commander"):
        return raw  # type: ignore[return-value]
    return "spectator"


def parse_tier(raw: Optional[str]) -> SubscriptionTier:
    if raw in ("pro", "enterprise"):
        return raw  # type: ignore[return-value]
    return "free"


def parse_leagues(raw: Optional[str]) -> FrozenSet[str]:
    if not raw:
        return frozenset(DEFAULT_LEAGUES)
    return frozenset(l.strip() for l in raw.split(",") if l.strip() in KNOWN_LEAGUES)


def parse_teams(raw: Optional[str]) -> List[str]:
    # Accepted for forward compatibility; not used for filtering.
    return [t.strip() for t in (raw or "").split(",") if t.strip()]


def filter_event(event: BridgeEvent, mode: str, tier: str, leagues: FrozenSet[str]) -> bool:
    event_type = parse_event_type(event.get("type"))
    if event_type is None:
        return False

    if event_type not in MODE_EVENTS.get(mode, _SPECTATOR):
        return False

    if event_type not in TIER_ACCESS.get(tier, _FREE):
        return False

    context = event.get("gameContext")
    if context and context.get("league") not in leagues:
        return False

    return True


def format_sse(event: BridgeEvent) -> str:
    return f"event: {event['type']}\ndata: {json.dumps(event)}\nid: {event['id']}\n\n"


@dataclass
class ConnectionContext:
    mode: ClientMode = "spectator"
    tier: SubscriptionTier = "free"
    leagues: FrozenSet[str] = field(default_factory=lambda: frozenset(DEFAULT_LEAGUES))
    teams: List[str] = field(default_factory=list)
    last_cursor: int = field(default_factory=now_ms)
    ops_cursor: int = field(default_factory=now_ms)


class ConnectionHandle:
    """
    Control handle for one stream. close() stops the loop at the next await
    point. Open hooks run when the loop starts; close hooks run exactly once
    when a started loop exits. A stream that is never iterated runs neither.
    """

    def __init__(self):
        self._closed = asyncio.Event()
        self._open_hooks: List[Callable[[], None]] = []
        self._hooks: List[Callable[[], None]] = []
        self._hooks_ran = False

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def close(self) -> None:
        self._closed.set()

    def on_open(self, hook: Callable[[], None]) -> None:
        self._open_hooks.append(hook)

    def on_close(self, hook: Callable[[], None]) -> None:
        self._hooks.append(hook)

    def run_open_hooks(self) -> None:
        for hook in self._open_hooks:
            hook()

    async def wait(self, timeout: float) -> bool:
        """Sleep up to timeout; True if the handle was closed meanwhile."""
        try:
            await asyncio.wait_for(self._closed.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    def run_close_hooks(self) -> None:
        if self._hooks_ran:
            return
        self._hooks_ran = True
        for hook in self._hooks:
            try:
                hook()
            except Exception:
                logger.exception("connection close hook failed")


class StreamDispatcher:
    def __init__(
        self,
        ctx: ConnectionContext,
        handle: ConnectionHandle,
        store: DeltaStore,
        sim: Optional[SimFeed] = None,
        interval: float = STREAM_INTERVAL_SECONDS,
        clock: Callable[[], int] = now_ms,
    ):
        self.ctx = ctx
        self.handle = handle
        self.store = store
        self.sim = sim
        self.interval = interval
        self._clock = clock
        self._tick_count = 0

    @property
    def demo(self) -> bool:
        return self.sim is not None

    @property
    def source(self) -> str:
        return "simulated" if self.demo else "live"

    def _accept(self, event: BridgeEvent) -> bool:
        return filter_event(event, self.ctx.mode, self.ctx.tier, self.ctx.leagues)

    async def live_game_count(self) -> int:
        if self.sim is not None:
            return self.sim.live_game_count()
        snapshot = await self.store.get_snapshot()
        if not snapshot:
            return 0
        return sum(1 for g in snapshot.get("games", []) if g.get("status") == "live")

    async def heartbeat(self) -> BridgeEvent:
        return world_tick(await self.live_game_count(), self.source)  # type: ignore[arg-type]

    async def tick(self) -> List[BridgeEvent]:
        """One iteration: heartbeat (every 6th), source events, ops events. Filtered."""
        self._tick_count += 1
        out: List[BridgeEvent] = []

        if self._tick_count % HEARTBEAT_EVERY == 0:
            out.append(await self.heartbeat())

        if self.sim is not None:
            out.extend(self.sim.tick())
        else:
            out.extend(await self.store.read_since(self.ctx.last_cursor, GAMES_CHANNEL))
            self.ctx.last_cursor = self._clock()

        out.extend(await self.store.read_since(self.ctx.ops_cursor, OPS_CHANNEL))
        self.ctx.ops_cursor = self._clock()

        return [e for e in out if self._accept(e)]

    async def events(self) -> AsyncIterator[str]:
        """SSE frames for the life of the connection."""
        logger.info(
            "stream open mode=%s tier=%s leagues=%s demo=%s",
            self.ctx.mode, self.ctx.tier, ",".join(sorted(self.ctx.leagues)), self.demo,
        )
        self.handle.run_open_hooks()
        try:
            try:
                initial = await self.heartbeat()
            except Exception:
                logger.exception("initial heartbeat failed")
            else:
                if self._accept(initial):
                    yield format_sse(initial)

            while not self.handle.closed:
                if await self.handle.wait(self.interval):
                    break
                try:
                    batch = await self.tick()
                except Exception:
                    logger.exception("stream tick %d failed; skipping", self._tick_count)
                    continue
                for event in batch:
                    yield format_sse(event)
        finally:
            self.handle.close()
            self.handle.run_close_hooks()
            logger.info("stream closed after %d ticks", self._tick_count)
