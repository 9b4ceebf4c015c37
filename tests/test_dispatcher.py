"""
Tests for the per-connection stream loop.
"""

import asyncio
import json
import random

import pytest

from conftest import make_game, make_snapshot

from gamebridge.models.events import new_event
from gamebridge.models.types import EventType
from gamebridge.services.dispatcher import (
    HEARTBEAT_EVERY,
    ConnectionContext,
    ConnectionHandle,
    StreamDispatcher,
)
from gamebridge.services.sim_feed import SimFeed


class FakeStore:
    """Hands out each queued batch once, like a cursor read would."""

    def __init__(self, snapshot=None, games=None, ops=None):
        self.snapshot = snapshot
        self.pending = {"gamebridge": list(games or []), "ops": list(ops or [])}
        self.reads = []

    async def get_snapshot(self):
        return self.snapshot

    async def read_since(self, since, channel):
        self.reads.append((channel, since))
        out, self.pending[channel] = self.pending[channel], []
        return out


class FlakyStore(FakeStore):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.failures = 1

    async def read_since(self, since, channel):
        if self.failures:
            self.failures -= 1
            raise RuntimeError("store exploded")
        return await super().read_since(since, channel)


def _update(league="mlb"):
    game = make_game("g1", "live", league=league)
    return new_event(
        EventType.GAME_UPDATE,
        {"type": "GAME_UPDATE", "gameId": "g1", "league": league, "homeScore": 1, "awayScore": 0},
        "live",
        {
            "gameId": "g1",
            "league": league,
            "homeTeam": game["homeTeam"],
            "awayTeam": game["awayTeam"],
            "status": "live",
        },
    )


def _frame_type(frame):
    return frame.split("\n", 1)[0][len("event: "):]


def _frame_event(frame):
    return json.loads(frame.split("\n")[1][len("data: "):])


class TestTick:
    @pytest.mark.asyncio
    async def test_heartbeat_every_sixth_tick(self, clock):
        snap = make_snapshot(make_game("g1", "live"), make_game("g2", "live"), make_game("g3", "final"))
        d = StreamDispatcher(ConnectionContext(), ConnectionHandle(), FakeStore(snapshot=snap), clock=clock)

        batches = [await d.tick() for _ in range(HEARTBEAT_EVERY * 2)]

        for i, batch in enumerate(batches, start=1):
            ticks = [e for e in batch if e["type"] == "WORLD_TICK"]
            assert len(ticks) == (1 if i % HEARTBEAT_EVERY == 0 else 0)
        assert batches[5][0]["payload"]["liveGames"] == 2
        assert batches[5][0]["priority"] == 3

    @pytest.mark.asyncio
    async def test_cursor_advances_even_when_empty(self, clock):
        ctx = ConnectionContext(last_cursor=clock(), ops_cursor=clock())
        store = FakeStore()
        d = StreamDispatcher(ctx, ConnectionHandle(), store, clock=clock)

        start = clock()
        clock.advance(5000)
        assert await d.tick() == []
        assert ctx.last_cursor == start + 5000
        assert ctx.ops_cursor == start + 5000
        assert store.reads == [("gamebridge", start), ("ops", start)]

    @pytest.mark.asyncio
    async def test_live_events_are_filtered(self, clock):
        store = FakeStore(games=[_update("mlb"), _update("nba")])
        ctx = ConnectionContext(leagues=frozenset({"mlb"}))
        d = StreamDispatcher(ctx, ConnectionHandle(), store, clock=clock)

        batch = await d.tick()
        assert [e["gameContext"]["league"] for e in batch] == ["mlb"]

    @pytest.mark.asyncio
    async def test_ops_channel_is_drained(self, clock):
        ops = new_event(
            EventType.OPS_DEGRADED,
            {"type": "OPS_DEGRADED", "service": "api", "status": "degraded"},
            "ops",
        )
        store = FakeStore(ops=[ops])
        manager = StreamDispatcher(ConnectionContext(mode="manager"), ConnectionHandle(), store, clock=clock)
        assert [e["id"] for e in await manager.tick()] == [ops["id"]]

    @pytest.mark.asyncio
    async def test_sim_mode_uses_feed(self, clock):
        store = FakeStore(games=[_update()])
        d = StreamDispatcher(
            ConnectionContext(), ConnectionHandle(), store, sim=SimFeed(random.Random(5)), clock=clock
        )
        assert d.demo
        assert await d.live_game_count() == 2

        batches = [await d.tick() for _ in range(3)]
        assert batches[0] == [] and batches[1] == []
        assert [e["source"] for e in batches[2]] == ["simulated"]
        # live channel is not read in demo mode
        assert all(channel == "ops" for channel, _ in store.reads)


class TestEventLoop:
    @pytest.mark.asyncio
    async def test_initial_heartbeat_then_events(self, clock):
        handle = ConnectionHandle()
        store = FakeStore(snapshot=make_snapshot(make_game("g1", "live")), games=[_update()])
        d = StreamDispatcher(ConnectionContext(), handle, store, interval=0.01, clock=clock)

        frames = []
        async for frame in d.events():
            frames.append(frame)
            if len(frames) == 2:
                handle.close()

        assert [_frame_type(f) for f in frames] == ["WORLD_TICK", "GAME_UPDATE"]
        assert _frame_event(frames[0])["payload"]["liveGames"] == 1

    @pytest.mark.asyncio
    async def test_failing_tick_is_skipped(self, clock):
        handle = ConnectionHandle()
        store = FlakyStore(games=[_update()])
        d = StreamDispatcher(ConnectionContext(), handle, store, interval=0.01, clock=clock)

        frames = []
        async for frame in d.events():
            frames.append(frame)
            if _frame_type(frame) == "GAME_UPDATE":
                handle.close()

        assert [_frame_type(f) for f in frames] == ["WORLD_TICK", "GAME_UPDATE"]
        assert d._tick_count >= 2

    @pytest.mark.asyncio
    async def test_close_stops_loop_and_runs_hooks_once(self, clock):
        handle = ConnectionHandle()
        closed = []
        handle.on_close(lambda: closed.append("x"))
        d = StreamDispatcher(ConnectionContext(), handle, FakeStore(), interval=30, clock=clock)

        frames = []

        async def consume():
            async for frame in d.events():
                frames.append(frame)

        task = asyncio.create_task(consume())
        await asyncio.sleep(0.05)
        handle.close()
        await asyncio.wait_for(task, timeout=1)

        assert len(frames) == 1
        assert closed == ["x"]
        handle.run_close_hooks()
        assert closed == ["x"]

    @pytest.mark.asyncio
    async def test_consumer_going_away_runs_hooks(self, clock):
        handle = ConnectionHandle()
        closed = []
        handle.on_close(lambda: closed.append("x"))
        d = StreamDispatcher(ConnectionContext(), handle, FakeStore(), interval=30, clock=clock)

        gen = d.events()
        await gen.__anext__()
        await gen.aclose()

        assert handle.closed
        assert closed == ["x"]

    @pytest.mark.asyncio
    async def test_open_and_close_hooks_pair_up(self, clock):
        handle = ConnectionHandle()
        active = []
        handle.on_open(lambda: active.append(1))
        handle.on_close(lambda: active.append(-1))
        d = StreamDispatcher(ConnectionContext(), handle, FakeStore(), interval=30, clock=clock)

        gen = d.events()
        await gen.__anext__()
        assert sum(active) == 1
        await gen.aclose()
        assert active == [1, -1]

    @pytest.mark.asyncio
    async def test_stream_never_started_runs_no_hooks(self, clock):
        handle = ConnectionHandle()
        active = []
        handle.on_open(lambda: active.append(1))
        handle.on_close(lambda: active.append(-1))
        d = StreamDispatcher(ConnectionContext(), handle, FakeStore(), interval=30, clock=clock)

        gen = d.events()
        await gen.aclose()

        assert active == []

    @pytest.mark.asyncio
    async def test_failing_hook_does_not_block_others(self):
        handle = ConnectionHandle()
        ran = []

        def bad():
            raise ValueError("nope")

        handle.on_close(bad)
        handle.on_close(lambda: ran.append(True))
        handle.close()
        handle.run_close_hooks()
        assert ran == [True]
