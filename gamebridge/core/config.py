# gamebridge/core/config.py
from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, List, Optional

from gamebridge.models.types import DEFAULT_LEAGUES, KNOWN_LEAGUES

HIGHLIGHTLY_BASE_URL = "https://api.highlightly.io/v1"


def _csv(raw: Optional[str]) -> List[str]:
    return [p.strip() for p in (raw or "").split(",") if p.strip()]


def _parse_health_urls(raw: Optional[str]) -> Dict[str, str]:
    """
    OPS_HEALTH_URLS="admin=https://a/health,vitals=https://b/health"
    Entries without '=' use the URL itself as the service name.
    """
    out: Dict[str, str] = {}
    for item in _csv(raw):
        name, sep, url = item.partition("=")
        if sep:
            out[name.strip()] = url.strip()
        else:
            out[name] = name
    return out


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment variables."""

    api_key: Optional[str] = None
    provider_url: str = HIGHLIGHTLY_BASE_URL
    leagues: List[str] = field(default_factory=lambda: list(DEFAULT_LEAGUES))
    database_url: Optional[str] = None
    environment: str = "development"

    # Rate limiting (limits notation, e.g. "100/minute")
    rate_limit: str = "100/minute"

    stream_interval_seconds: float = 5.0
    poll_interval_seconds: float = 60.0
    ops_poll_interval_seconds: float = 30.0
    fetch_timeout_seconds: float = 5.0
    delta_ttl_seconds: int = 300

    ops_health_urls: Dict[str, str] = field(default_factory=dict)
    ops_heartbeat_every: int = 10

    log_level: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)

    @classmethod
    def from_env(cls) -> "Settings":
        leagues = [l for l in _csv(os.getenv("GAMEBRIDGE_LEAGUES")) if l in KNOWN_LEAGUES]
        return cls(
            api_key=os.getenv("GAMEBRIDGE_API_KEY") or None,
            provider_url=os.getenv("GAMEBRIDGE_PROVIDER_URL", HIGHLIGHTLY_BASE_URL).rstrip("/"),
            leagues=leagues or list(DEFAULT_LEAGUES),
            database_url=os.getenv("DATABASE_URL") or None,
            environment=os.getenv("ENVIRONMENT", "development"),
            rate_limit=os.getenv("RATE_LIMIT", "100/minute"),
            stream_interval_seconds=float(os.getenv("STREAM_INTERVAL_SECONDS", "5")),
            poll_interval_seconds=float(os.getenv("POLL_INTERVAL_SECONDS", "60")),
            ops_poll_interval_seconds=float(os.getenv("OPS_POLL_INTERVAL_SECONDS", "30")),
            fetch_timeout_seconds=float(os.getenv("FETCH_TIMEOUT_SECONDS", "5")),
            delta_ttl_seconds=int(os.getenv("DELTA_TTL_SECONDS", "300")),
            ops_health_urls=_parse_health_urls(os.getenv("OPS_HEALTH_URLS")),
            ops_heartbeat_every=int(os.getenv("OPS_HEARTBEAT_EVERY", "10")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


@lru_cache()
def get_settings() -> Settings:
    return Settings.from_env()
