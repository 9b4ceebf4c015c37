# gamebridge/services/poller.py
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Iterable, List, Optional

from gamebridge.models.types import BridgeEvent
from gamebridge.services.delta_detector import DeltaDetector
from gamebridge.services.delta_store import GAMES_CHANNEL, DeltaStore
from gamebridge.services.fetcher import SnapshotFetcher

logger = logging.getLogger("gamebridge.poller")


async def run_poll_cycle(
    fetcher: Optional[SnapshotFetcher],
    detector: DeltaDetector,
    store: DeltaStore,
    leagues: Iterable[str],
) -> List[BridgeEvent]:
    """
    previous snapshot -> fetch -> detect -> persist snapshot -> append batch.
    Returns the events written this cycle.
    """
    if fetcher is None:
        logger.info("GAMEBRIDGE_API_KEY not configured, skipping scheduled poll")
        return []

    previous = await store.get_snapshot()
    current = await fetcher.fetch(leagues)
    events, to_persist = detector.detect(previous, current)

    await store.put_snapshot(to_persist)
    if events:
        await store.append(events, GAMES_CHANNEL)

    logger.info(
        "poll cycle: %d games, %d events (previous=%s)",
        len(current["games"]), len(events), "yes" if previous else "none",
    )
    return events


async def run_periodic(name: str, interval: float, job: Callable[[], Awaitable[object]]) -> None:
    """
    Run job every interval seconds until cancelled. A failing run is logged
    and the loop carries on.
    """
    logger.info("%s loop started (every %.0fs)", name, interval)
    while True:
        try:
            await job()
        except Exception:
            logger.exception("%s run failed", name)
        await asyncio.sleep(interval)
