# gamebridge/services/delta_store.py
"""
Append-only, TTL-bounded storage for delta batches and the current snapshot.

Each batch is one row keyed by its creation time (milliseconds). Rows are
never updated; readers ask for everything newer than a cursor. Expired rows
are ignored on read and purged on append.

With no engine configured every operation is a no-op that returns "no data".
Database failures are logged and degrade the same way.
"""
from __future__ import annotations

import json
import logging
import uuid
from typing import Callable, List, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from gamebridge.models.types import BridgeEvent, Snapshot
from gamebridge.services.common import now_ms

logger = logging.getLogger("gamebridge.store")

GAMES_CHANNEL = "gamebridge"
OPS_CHANNEL = "ops"
SNAPSHOT_KEY = "current"
DELTA_TTL_SECONDS = 300

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS gamebridge_snapshots (
      snapshot_key TEXT PRIMARY KEY,
      body TEXT NOT NULL,
      expires_at_ms BIGINT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS gamebridge_deltas (
      batch_key TEXT PRIMARY KEY,
      channel TEXT NOT NULL,
      created_ms BIGINT NOT NULL,
      body TEXT NOT NULL,
      expires_at_ms BIGINT NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_gamebridge_deltas_channel_created
      ON gamebridge_deltas (channel, created_ms)
    """,
]


class DeltaStore:
    def __init__(
        self,
        engine: Optional[AsyncEngine],
        ttl_seconds: int = DELTA_TTL_SECONDS,
        clock: Callable[[], int] = now_ms,
    ):
        self.engine = engine
        self.ttl_ms = ttl_seconds * 1000
        self._clock = clock

    @property
    def enabled(self) -> bool:
        return self.engine is not None

    async def ensure_schema(self) -> None:
        # run schema once at startup
        if not self.engine:
            return
        async with self.engine.begin() as conn:
            for stmt in SCHEMA:
                await conn.execute(text(stmt))

    # ---------- Delta batches ----------

    async def append(self, events: List[BridgeEvent], channel: str = GAMES_CHANNEL) -> Optional[str]:
        """
        Write one batch under a fresh time-ordered key. Returns the key, or
        None when nothing was written.
        """
        if not self.engine or not events:
            return None

        created = self._clock()
        batch_key = f"delta:{created:013d}:{uuid.uuid4().hex[:8]}"
        try:
            async with self.engine.begin() as conn:
                await conn.execute(
                    text("DELETE FROM gamebridge_deltas WHERE expires_at_ms <= :now"),
                    {"now": created},
                )
                await conn.execute(
                    text(
                        """
                        INSERT INTO gamebridge_deltas (batch_key, channel, created_ms, body, expires_at_ms)
                        VALUES (:batch_key, :channel, :created_ms, :body, :expires_at_ms)
                        """
                    ),
                    {
                        "batch_key": batch_key,
                        "channel": channel,
                        "created_ms": created,
                        "body": json.dumps(events),
                        "expires_at_ms": created + self.ttl_ms,
                    },
                )
        except Exception as e:
            logger.warning("delta append skipped channel=%s events=%d: %s", channel, len(events), e)
            return None

        logger.info("Stored %d events to %s deltas key=%s", len(events), channel, batch_key)
        return batch_key

    async def read_since(self, since_ms: int, channel: str = GAMES_CHANNEL) -> List[BridgeEvent]:
        """All non-expired events in batches created strictly after since_ms, in key order."""
        if not self.engine:
            return []

        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(
                    text(
                        """
                        SELECT body FROM gamebridge_deltas
                        WHERE channel = :channel
                          AND created_ms > :since
                          AND expires_at_ms > :now
                        ORDER BY created_ms ASC, batch_key ASC
                        """
                    ),
                    {"channel": channel, "since": since_ms, "now": self._clock()},
                )
                rows = result.fetchall()
        except Exception as e:
            logger.warning("delta read failed channel=%s since=%s: %s", channel, since_ms, e)
            return []

        events: List[BridgeEvent] = []
        for (body,) in rows:
            try:
                batch = json.loads(body)
            except ValueError:
                logger.error("delta batch body is not JSON; skipping")
                continue
            if isinstance(batch, list):
                events.extend(batch)
        return events

    # ---------- Current snapshot ----------

    async def get_snapshot(self, key: str = SNAPSHOT_KEY) -> Optional[Snapshot]:
        if not self.engine:
            return None

        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(
                    text(
                        "SELECT body FROM gamebridge_snapshots "
                        "WHERE snapshot_key = :key AND expires_at_ms > :now"
                    ),
                    {"key": key, "now": self._clock()},
                )
                row = result.first()
            return json.loads(row[0]) if row else None
        except Exception as e:
            logger.warning("snapshot read failed key=%s: %s", key, e)
            return None

    async def put_snapshot(self, snapshot: Snapshot, key: str = SNAPSHOT_KEY) -> bool:
        if not self.engine:
            return False

        sql = """
        INSERT INTO gamebridge_snapshots (snapshot_key, body, expires_at_ms)
        VALUES (:key, :body, :expires_at_ms)
        ON CONFLICT (snapshot_key) DO UPDATE SET
          body = EXCLUDED.body,
          expires_at_ms = EXCLUDED.expires_at_ms;
        """
        try:
            async with self.engine.begin() as conn:
                await conn.execute(
                    text(sql),
                    {
                        "key": key,
                        "body": json.dumps(snapshot),
                        "expires_at_ms": self._clock() + self.ttl_ms,
                    },
                )
        except Exception as e:
            logger.warning("snapshot write skipped key=%s: %s", key, e)
            return False
        return True
