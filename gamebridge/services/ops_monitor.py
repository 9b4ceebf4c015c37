# gamebridge/services/ops_monitor.py
from __future__ import annotations

import asyncio
import logging
import time
from typing import Dict, List, Optional, Tuple

import httpx

from gamebridge.models.events import new_event
from gamebridge.models.types import BridgeEvent, EventType, OpsHealthPayload, OpsStatus
from gamebridge.services.common import HEADERS
from gamebridge.services.delta_store import OPS_CHANNEL, DeltaStore

logger = logging.getLogger("gamebridge.ops")

SLOW_MS = 500


def classify(status_code: Optional[int], latency_ms: int) -> OpsStatus:
    """
    2xx fast -> healthy, 2xx slow -> degraded,
    5xx or no response -> unhealthy, anything else -> degraded.
    """
    if status_code is None or status_code >= 500:
        return "unhealthy"
    if 200 <= status_code < 300:
        return "healthy" if latency_ms < SLOW_MS else "degraded"
    return "degraded"


class OpsHealthMonitor:
    """
    Probes service health endpoints and records transitions on the ops
    delta channel. The first observation of a service only sets its
    baseline.
    """

    def __init__(
        self,
        services: Dict[str, str],
        store: DeltaStore,
        timeout: float = 5.0,
        heartbeat_every: int = 10,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.services = dict(services)
        self.store = store
        self.timeout = timeout
        self.heartbeat_every = max(1, heartbeat_every)
        self._transport = transport
        self._last: Dict[str, OpsStatus] = {}
        self._cycles = 0

    async def _probe(self, client: httpx.AsyncClient, name: str, url: str) -> Tuple[str, OpsStatus, int, List[str]]:
        t0 = time.perf_counter()
        try:
            r = await client.get(url)
            latency = int((time.perf_counter() - t0) * 1000)
            status = classify(r.status_code, latency)
            warnings = [] if r.is_success else [f"HTTP {r.status_code}"]
        except httpx.HTTPError as e:
            latency = int((time.perf_counter() - t0) * 1000)
            status = "unhealthy"
            warnings = [str(e) or e.__class__.__name__]
            logger.warning("ops probe %s failed: %s", name, repr(e))
        return name, status, latency, warnings

    def _event_for(
        self,
        name: str,
        status: OpsStatus,
        latency: int,
        warnings: List[str],
        heartbeat_due: bool,
    ) -> Optional[BridgeEvent]:
        previous = self._last.get(name)
        self._last[name] = status
        if previous is None:
            return None

        if status != previous and status != "healthy":
            event_type = EventType.OPS_DEGRADED
        elif status != previous:
            event_type = EventType.OPS_RECOVERED
        elif status == "healthy" and heartbeat_due:
            event_type = EventType.OPS_HEARTBEAT
        else:
            return None

        payload: OpsHealthPayload = {
            "type": event_type.value,  # type: ignore[typeddict-item]
            "service": name,
            "status": status,
            "previousStatus": previous,
            "responseTime": latency,
        }
        if warnings:
            payload["warnings"] = warnings
        return new_event(event_type, payload, "ops")

    async def check(self) -> List[BridgeEvent]:
        """Run one probe cycle, store any resulting events, and return them."""
        if not self.services:
            return []

        self._cycles += 1
        heartbeat_due = self._cycles % self.heartbeat_every == 0

        async with httpx.AsyncClient(
            timeout=self.timeout,
            headers=HEADERS,
            transport=self._transport,
        ) as client:
            results = await asyncio.gather(
                *(self._probe(client, name, url) for name, url in self.services.items())
            )

        events: List[BridgeEvent] = []
        for name, status, latency, warnings in results:
            event = self._event_for(name, status, latency, warnings, heartbeat_due)
            if event:
                events.append(event)

        if events:
            await self.store.append(events, OPS_CHANNEL)
        return events
