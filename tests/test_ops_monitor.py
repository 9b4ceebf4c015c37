"""
Tests for service health probing and ops transition events.
"""

import httpx
import pytest

from gamebridge.services.delta_store import OPS_CHANNEL
from gamebridge.services.ops_monitor import OpsHealthMonitor, classify


class RecordingStore:
    def __init__(self):
        self.appended = []

    async def append(self, events, channel):
        self.appended.append((channel, list(events)))
        return "key"


class Script:
    """MockTransport handler that replays one status code per cycle."""

    def __init__(self, codes):
        self.codes = list(codes)

    def __call__(self, request):
        code = self.codes.pop(0)
        if code is None:
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(code, json={"ok": code < 300})


def _monitor(codes, store=None, heartbeat_every=10):
    return OpsHealthMonitor(
        {"api": "https://api.test/health"},
        store or RecordingStore(),
        heartbeat_every=heartbeat_every,
        transport=httpx.MockTransport(Script(codes)),
    )


class TestClassify:
    def test_fast_ok_is_healthy(self):
        assert classify(200, 120) == "healthy"

    def test_slow_ok_is_degraded(self):
        assert classify(204, 900) == "degraded"

    def test_server_error_or_no_response_is_unhealthy(self):
        assert classify(503, 10) == "unhealthy"
        assert classify(None, 10) == "unhealthy"

    def test_other_status_is_degraded(self):
        assert classify(404, 10) == "degraded"


class TestOpsHealthMonitor:
    @pytest.mark.asyncio
    async def test_first_observation_is_baseline(self):
        store = RecordingStore()
        monitor = _monitor([200], store)
        assert await monitor.check() == []
        assert store.appended == []

    @pytest.mark.asyncio
    async def test_degrade_then_recover(self):
        store = RecordingStore()
        monitor = _monitor([200, 503, 200], store)

        await monitor.check()
        (degraded,) = await monitor.check()
        (recovered,) = await monitor.check()

        assert degraded["type"] == "OPS_DEGRADED"
        assert degraded["priority"] == 1
        assert degraded["source"] == "ops"
        assert degraded["payload"]["status"] == "unhealthy"
        assert degraded["payload"]["previousStatus"] == "healthy"
        assert degraded["payload"]["warnings"] == ["HTTP 503"]

        assert recovered["type"] == "OPS_RECOVERED"
        assert recovered["payload"]["previousStatus"] == "unhealthy"
        assert [channel for channel, _ in store.appended] == [OPS_CHANNEL, OPS_CHANNEL]

    @pytest.mark.asyncio
    async def test_transport_error_is_unhealthy(self):
        monitor = _monitor([200, None])
        await monitor.check()
        (event,) = await monitor.check()
        assert event["payload"]["status"] == "unhealthy"

    @pytest.mark.asyncio
    async def test_heartbeat_every_nth_healthy_cycle(self):
        monitor = _monitor([200] * 6, heartbeat_every=2)
        results = [await monitor.check() for _ in range(6)]
        assert [[e["type"] for e in r] for r in results] == [
            [], ["OPS_HEARTBEAT"], [], ["OPS_HEARTBEAT"], [], ["OPS_HEARTBEAT"],
        ]

    @pytest.mark.asyncio
    async def test_unchanged_unhealthy_is_quiet(self):
        monitor = _monitor([500, 500, 500], heartbeat_every=1)
        results = [await monitor.check() for _ in range(3)]
        assert results == [[], [], []]

    @pytest.mark.asyncio
    async def test_no_services_no_requests(self):
        monitor = OpsHealthMonitor({}, RecordingStore())
        assert await monitor.check() == []
