# gamebridge/services/rate_limiter.py
from __future__ import annotations

import logging
from typing import Optional

from limits import parse, storage, strategies

logger = logging.getLogger("gamebridge.ratelimit")


class RateLimiter:
    """
    Fixed-window request counter keyed by client identity.

    Only consulted when a stream is opened; messages inside an open stream
    are never counted.
    """

    def __init__(self, limit: str = "100/minute", backend: Optional[storage.Storage] = None):
        self.item = parse(limit)
        self._backend = backend or storage.MemoryStorage()
        self._window = strategies.FixedWindowRateLimiter(self._backend)

    def allow(self, client_id: str) -> bool:
        ok = self._window.hit(self.item, "gamebridge", client_id)
        if not ok:
            logger.warning("rate limit exceeded for client=%s (%s)", client_id, self.item)
        return ok

    def remaining(self, client_id: str) -> int:
        return self._window.get_window_stats(self.item, "gamebridge", client_id)[1]

    def clear(self, client_id: str) -> None:
        self._window.clear(self.item, "gamebridge", client_id)
