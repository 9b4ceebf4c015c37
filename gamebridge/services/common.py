# gamebridge/services/common.py

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger("gamebridge.common")

HEADERS = {"User-Agent": "GameBridge/1.0", "Accept": "application/json"}


# -----------------------------------------------------------
# Shared HTTP helper with retries
# -----------------------------------------------------------
async def _get_json(
    client: httpx.AsyncClient,
    url: str,
    params: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    max_tries: int = 1,
) -> Any:
    """
    Small shared helper for provider JSON fetch with basic retry + logging.

    The client carries the timeout. Raises the last error once every
    attempt has failed; callers decide whether that is fatal.

    Used by:
      - fetcher (per-league live games)
    """
    last: Optional[Exception] = None

    for attempt in range(1, max_tries + 1):
        try:
            r = await client.get(url, params=params, headers=headers)
            r.raise_for_status()
            return r.json()
        except (httpx.HTTPError, ValueError) as e:
            last = e
            logger.warning(
                "_get_json %s attempt %s failed: %s",
                url,
                attempt,
                repr(e),
            )

    raise last or RuntimeError("unknown http error")


# -----------------------------------------------------------
# Time helpers (America/Chicago is the wire convention)
# -----------------------------------------------------------
def chicago_timestamp(when: Optional[datetime] = None) -> str:
    """
    ISO 8601 timestamp with the America/Chicago offset, second precision.

    Accepts:
      - None        -> now
      - aware dt    -> converted
      - naive dt    -> treated as UTC
    """
    if when is None:
        when = datetime.now(timezone.utc)
    elif when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)

    try:
        local = when.astimezone(ZoneInfo("America/Chicago"))
    except ZoneInfoNotFoundError:
        # tzdata missing on the host; UTC is still a valid ISO stamp
        local = when.astimezone(timezone.utc)

    return local.isoformat(timespec="seconds")


def now_ms() -> int:
    return int(time.time() * 1000)
