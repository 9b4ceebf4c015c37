# gamebridge/client/agent.py
"""
Client side of the stream: keeps one transport open, normalizes what
arrives into a StateSink, and reconnects with capped exponential backoff.

    DISCONNECTED -> CONNECTING -> CONNECTED -> RECONNECTING -> CONNECTING ...

disconnect() returns to DISCONNECTED from anywhere and stays there.
"""
from __future__ import annotations

import asyncio
import json
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, FrozenSet, List, Optional

import httpx

from gamebridge.client.normalize import (
    StateSink,
    apply_stats_payload,
    is_record,
    normalize_game_event,
    normalize_worker_payload,
    parse_timestamp,
    summarize_bridge_event,
    to_string,
)
from gamebridge.client.transports import Transport
from gamebridge.models.events import parse_event_type
from gamebridge.services.common import chicago_timestamp, now_ms

logger = logging.getLogger("gamebridge.client")

BASE_DELAY_SECONDS = 1.0
MAX_DELAY_SECONDS = 20.0


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


S = ConnectionState

TRANSITIONS: Dict[ConnectionState, FrozenSet[ConnectionState]] = {
    S.DISCONNECTED: frozenset({S.CONNECTING}),
    S.CONNECTING: frozenset({S.CONNECTED, S.RECONNECTING, S.DISCONNECTED}),
    S.CONNECTED: frozenset({S.RECONNECTING, S.DISCONNECTED}),
    S.RECONNECTING: frozenset({S.CONNECTING, S.DISCONNECTED}),
}


class InvalidTransition(RuntimeError):
    pass


def backoff_delay(retry: int, base: float = BASE_DELAY_SECONDS, ceiling: float = MAX_DELAY_SECONDS) -> float:
    return min(ceiling, base * 2 ** retry)


class StreamAgent:
    def __init__(
        self,
        sink: StateSink,
        transport_factory: Callable[[], Transport],
        command_url: Optional[str] = None,
        base_delay: float = BASE_DELAY_SECONDS,
        max_delay: float = MAX_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
        command_timeout: float = 10.0,
    ):
        self.sink = sink
        self.transport_factory = transport_factory
        self.command_url = command_url
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._sleep = sleep
        self._http_transport = http_transport
        self.command_timeout = command_timeout

        self.state = S.DISCONNECTED
        self.running = False
        self.retry_count = 0
        self.transport: Optional[Transport] = None
        self._timer: Optional[asyncio.Task] = None

    # ---------- state machine ----------

    def _transition(self, new: ConnectionState) -> None:
        if new not in TRANSITIONS[self.state]:
            raise InvalidTransition(f"{self.state.value} -> {new.value}")
        logger.debug("agent %s -> %s", self.state.value, new.value)
        self.state = new

    def next_delay(self) -> float:
        return backoff_delay(self.retry_count, self.base_delay, self.max_delay)

    # ---------- lifecycle ----------

    async def connect(self) -> None:
        if self.running:
            return
        self.running = True
        self.retry_count = 0
        await self._open()

    async def disconnect(self) -> None:
        if not self.running and self.state is S.DISCONNECTED:
            return
        self.running = False
        self._cancel_timer()
        await self._close_transport()
        self._transition(S.DISCONNECTED)

    def _cancel_timer(self) -> None:
        timer, self._timer = self._timer, None
        if timer is not None and timer is not asyncio.current_task():
            timer.cancel()

    async def _close_transport(self) -> None:
        transport, self.transport = self.transport, None
        if transport is not None:
            await transport.close()

    async def _open(self) -> None:
        if not self.running:
            return
        self._cancel_timer()
        await self._close_transport()
        self._transition(S.CONNECTING)

        transport = self.transport_factory()
        self.transport = transport
        try:
            await transport.open(
                on_open=lambda: self._on_open(transport),
                on_message=self.handle_message,
                on_error=lambda line: self._on_error(transport, line),
            )
        except Exception as e:
            logger.warning("transport open failed: %s", repr(e))
            self._on_error(transport, "Live stream unavailable. Reconnecting...")

    def _on_open(self, transport: Transport) -> None:
        if transport is not self.transport or not self.running:
            return
        self.retry_count = 0
        self._transition(S.CONNECTED)
        self.sink.push_scout_line(transport.connected_line)

    def _on_error(self, transport: Transport, line: str) -> None:
        # stale transports and repeat reports for a failure already being handled
        if transport is not self.transport or not self.running:
            return
        if self.state is S.RECONNECTING:
            return
        self.sink.push_scout_line(line)
        self.schedule_reconnect()

    def schedule_reconnect(self) -> Optional[float]:
        """Arm the single reconnect timer. Returns the delay, or None when stopped."""
        if not self.running:
            return None
        self._cancel_timer()
        delay = self.next_delay()
        self.retry_count += 1
        self._transition(S.RECONNECTING)
        logger.info("reconnecting in %.1fs (attempt %d)", delay, self.retry_count)
        self._timer = asyncio.create_task(self._reconnect_after(delay))
        return delay

    async def _reconnect_after(self, delay: float) -> None:
        await self._close_transport()
        await self._sleep(delay)
        self._timer = None
        await self._open()

    # ---------- inbound ----------

    def handle_message(self, raw: str) -> None:
        """Apply one inbound message. Nothing a message contains may stop the feed."""
        try:
            payload = json.loads(raw)
            if is_record(payload):
                self._dispatch(payload)
        except Exception as e:
            logger.warning("dropping stream message: %s", repr(e))
            self.sink.push_event(
                {"type": "error", "workerId": "stream", "details": "Malformed stream event.", "timestamp": now_ms()}
            )

    def _dispatch(self, payload: Dict[str, Any]) -> None:
        kind = to_string(payload.get("type", payload.get("kind")), "")
        timestamp = parse_timestamp(
            payload.get("timestamp", payload.get("timestampMs", payload.get("time")))
        )
        data = payload.get("data") if is_record(payload.get("data")) else None

        if kind in ("worker.upsert", "worker.snapshot"):
            body = payload.get("worker") or (data or {}).get("worker") or data or payload
            worker = normalize_worker_payload(body, timestamp)
            if worker:
                self.sink.upsert_worker(worker)
        elif kind == "worker.remove":
            d = data or {}
            worker_id = to_string(
                payload.get("workerId") or d.get("workerId") or d.get("id") or payload.get("id"), ""
            )
            if worker_id:
                self.sink.remove_worker(worker_id)
        elif kind == "event":
            body = payload.get("event") or (data or {}).get("event") or data or payload
            event = normalize_game_event(body, timestamp)
            if event:
                self.sink.push_event(event)
        elif kind == "stats":
            apply_stats_payload(self.sink, data if data is not None else payload)
        elif kind == "scout":
            line = to_string((data or {}).get("line") or payload.get("line"), "")
            if line:
                self.sink.push_scout_line(line)
        elif parse_event_type(kind) is not None:
            summary = summarize_bridge_event(payload, timestamp)
            if summary:
                self.sink.push_event(summary)

    # ---------- outbound ----------

    async def manual_assign(self, worker_ids: List[str], region_id: str, region_name: str) -> bool:
        """
        Best-effort command POST. Failures become a local error event;
        nothing is retried. Returns True on a 2xx.
        """
        body = {
            "type": "command.assign",
            "timestamp": chicago_timestamp(),
            "timestampMs": now_ms(),
            "data": {"workerIds": list(worker_ids), "regionId": region_id, "regionName": region_name},
        }
        subject = worker_ids[0] if worker_ids else "unknown"

        if not self.command_url:
            self._command_error(subject, "Command failed (no command endpoint).")
            return False

        try:
            async with httpx.AsyncClient(
                timeout=self.command_timeout, transport=self._http_transport
            ) as client:
                r = await client.post(self.command_url, json=body)
        except httpx.HTTPError as e:
            logger.warning("command.assign failed: %s", repr(e))
            self._command_error(subject, str(e) or "Command failed.")
            return False

        if not r.is_success:
            self._command_error(subject, f"Command failed ({r.status_code}).")
            return False
        return True

    def _command_error(self, worker_id: str, details: str) -> None:
        self.sink.push_event({"type": "error", "workerId": worker_id, "details": details, "timestamp": now_ms()})
