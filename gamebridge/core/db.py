# gamebridge/core/db.py
from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

logger = logging.getLogger("gamebridge.db")

_SQLITE = "sqlite://"
_ASYNC_SQLITE = "sqlite+aiosqlite://"
_ASYNCPG = "postgresql+asyncpg://"
_PG_SCHEMES = ("postgresql+asyncpg://", "postgresql+psycopg2://", "postgresql://", "postgres://")


def normalize_database_url(url: str) -> str:
    """
    Point DATABASE_URL at an async driver.

      sqlite:///path.db  -> sqlite+aiosqlite:///path.db
      postgres[ql][+driver]://...  -> postgresql+asyncpg://...?ssl=require

    asyncpg takes `ssl`, not libpq's `sslmode`; an existing sslmode value is
    carried over under the asyncpg name.
    """
    if not url or url.startswith(_ASYNC_SQLITE):
        return url
    if url.startswith(_SQLITE):
        return _ASYNC_SQLITE + url[len(_SQLITE):]

    for scheme in _PG_SCHEMES:
        if url.startswith(scheme):
            url = _ASYNCPG + url[len(scheme):]
            break
    else:
        return url

    parsed = urlparse(url)
    params = dict(parse_qsl(parsed.query))
    sslmode = params.pop("sslmode", None)
    params.setdefault("ssl", sslmode or "require")

    logger.info(
        "[DB] asyncpg host=%s port=%s ssl=%s",
        parsed.hostname or "?",
        parsed.port or "?",
        params["ssl"],
    )
    return urlunparse(parsed._replace(query=urlencode(params)))


def create_engine_from_url(raw: Optional[str]) -> Optional[AsyncEngine]:
    if not raw:
        logger.info("[DB] DATABASE_URL not set; delta store disabled.")
        return None
    return create_async_engine(normalize_database_url(raw), pool_pre_ping=True)


async def close_engine(engine: Optional[AsyncEngine]) -> None:
    if engine is not None:
        await engine.dispose()
