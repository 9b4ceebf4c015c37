# gamebridge/client/normalize.py
"""
Inbound message normalizers for the client agent, plus the StateSink
interface its collaborators implement.

Payloads come from a feed we don't control, so every field is optional and
every reader has a fallback:

- worker: status -> "idle", region -> "ground", tokens/progress -> 0,
  name -> id, timestamps -> now. No id or no finite x/y -> dropped.
- event: needs a known type, a worker id and details, otherwise dropped.
- stats: only finite numeric fields are applied.
"""
from __future__ import annotations

import math
from collections import deque
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional

from typing_extensions import Protocol, TypedDict

from gamebridge.models.events import parse_event_type
from gamebridge.services.common import now_ms

VALID_STATUSES = {"idle", "working", "moving", "blocked", "complete", "terminated", "hold"}
VALID_EVENT_TYPES = {"spawn", "task_start", "task_complete", "error", "terminate", "command", "status"}
STAT_FIELDS = ("completed", "files", "failed", "tokens")


class Position(TypedDict):
    x: float
    y: float


class Worker(TypedDict):
    id: str
    name: str
    status: str
    currentTask: Optional[str]
    targetRegion: str
    position: Position
    spawnedAt: int
    tokensUsed: float
    progress: float
    errorMessage: Optional[str]
    updatedAt: int


class AgentEvent(TypedDict):
    type: str
    workerId: str
    details: str
    timestamp: int


# ---------- coercion helpers ----------

def is_record(value: Any) -> bool:
    return isinstance(value, dict)


def to_number(value: Any, fallback: float) -> float:
    if isinstance(value, bool) or value is None:
        return fallback
    try:
        n = float(value)
    except (TypeError, ValueError, OverflowError):
        return fallback
    return n if math.isfinite(n) else fallback


def to_string(value: Any, fallback: str) -> str:
    return value if isinstance(value, str) and value.strip() else fallback


def parse_timestamp(value: Any) -> int:
    """Epoch milliseconds from a number or an ISO string; now when unusable."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        n = to_number(value, math.nan)
        if math.isfinite(n):
            return int(n)
    if isinstance(value, str) and value:
        try:
            return int(datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp() * 1000)
        except (ValueError, OverflowError):
            pass
    return now_ms()


def _first(*values: Any) -> Any:
    for v in values:
        if v is not None:
            return v
    return None


# ---------- normalizers ----------

def normalize_worker_payload(payload: Any, fallback_timestamp: int) -> Optional[Worker]:
    if not is_record(payload):
        return None
    worker_id = to_string(_first(payload.get("id"), payload.get("workerId")), "")
    if not worker_id:
        return None

    status = to_string(payload.get("status"), "idle")
    if status not in VALID_STATUSES:
        status = "idle"

    pos = payload["position"] if is_record(payload.get("position")) else payload
    x = to_number(pos.get("x"), math.nan)
    y = to_number(pos.get("y"), math.nan)
    if math.isnan(x) or math.isnan(y):
        return None

    task = _first(payload.get("currentTask"), payload.get("task"))
    error = _first(payload.get("errorMessage"), payload.get("error"))

    return {
        "id": worker_id,
        "name": to_string(payload.get("name"), worker_id),
        "status": status,
        "currentTask": task if isinstance(task, str) else None,
        "targetRegion": to_string(_first(payload.get("targetRegion"), payload.get("region")), "ground"),
        "position": {"x": x, "y": y},
        "spawnedAt": parse_timestamp(
            _first(payload.get("spawnedAt"), payload.get("spawned_at"), fallback_timestamp)
        ),
        "tokensUsed": to_number(_first(payload.get("tokensUsed"), payload.get("tokens")), 0),
        "progress": to_number(payload.get("progress"), 0),
        "errorMessage": error if isinstance(error, str) else None,
        "updatedAt": parse_timestamp(
            _first(payload.get("updatedAt"), payload.get("updated_at"), fallback_timestamp)
        ),
    }


def normalize_game_event(payload: Any, timestamp: int) -> Optional[AgentEvent]:
    if not is_record(payload):
        return None
    event_type = to_string(_first(payload.get("eventType"), payload.get("type")), "")
    if event_type not in VALID_EVENT_TYPES:
        return None
    worker_id = to_string(
        _first(payload.get("workerId"), payload.get("agentId"), payload.get("id")), ""
    )
    if not worker_id:
        return None
    details = to_string(_first(payload.get("details"), payload.get("message")), "")
    if not details:
        return None
    return {"type": event_type, "workerId": worker_id, "details": details, "timestamp": timestamp}


def summarize_bridge_event(message: Dict[str, Any], timestamp: int) -> Optional[AgentEvent]:
    """A bridge event off the wire, reduced to a status record."""
    event_type = parse_event_type(message.get("type"))
    if event_type is None:
        return None
    payload = message.get("payload") if is_record(message.get("payload")) else {}
    context = message.get("gameContext") if is_record(message.get("gameContext")) else {}

    subject = to_string(
        _first(payload.get("gameId"), context.get("gameId"), payload.get("service")), "bridge"
    )
    details = to_string(
        _first(payload.get("scoringPlay"), payload.get("description"), payload.get("playerName")),
        event_type.value,
    )
    if details != event_type.value:
        details = f"{event_type.value}: {details}"
    return {"type": "status", "workerId": subject, "details": details, "timestamp": timestamp}


def stats_from_payload(payload: Any) -> Dict[str, float]:
    if not is_record(payload):
        return {}
    out: Dict[str, float] = {}
    for key in STAT_FIELDS:
        value = to_number(payload.get(key), math.nan)
        if not math.isnan(value):
            out[key] = value
    return out


def apply_stats_payload(sink: "StateSink", payload: Any) -> None:
    if not is_record(payload):
        return
    sink.apply_stats(stats_from_payload(payload))


# ---------- collaborator interface ----------

class StateSink(Protocol):
    def upsert_worker(self, worker: Worker) -> None: ...

    def remove_worker(self, worker_id: str) -> None: ...

    def push_event(self, event: AgentEvent) -> None: ...

    def push_scout_line(self, line: str) -> None: ...

    def apply_stats(self, stats: Dict[str, float]) -> None: ...


class AgentState:
    """In-memory StateSink. Keeps the most recent events and status lines."""

    def __init__(self, max_events: int = 200, max_lines: int = 50):
        self.workers: Dict[str, Worker] = {}
        self.events: Deque[AgentEvent] = deque(maxlen=max_events)
        self.scout_lines: Deque[str] = deque(maxlen=max_lines)
        self.stats: Dict[str, float] = {k: 0 for k in STAT_FIELDS}

    def upsert_worker(self, worker: Worker) -> None:
        self.workers[worker["id"]] = worker

    def remove_worker(self, worker_id: str) -> None:
        self.workers.pop(worker_id, None)

    def push_event(self, event: AgentEvent) -> None:
        self.events.append(event)

    def push_scout_line(self, line: str) -> None:
        self.scout_lines.append(line)

    def apply_stats(self, stats: Dict[str, float]) -> None:
        self.stats.update(stats)

    def recent_events(self, n: int = 10) -> List[AgentEvent]:
        return list(self.events)[-n:]
