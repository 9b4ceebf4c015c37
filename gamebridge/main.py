# gamebridge/main.py
from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from gamebridge.core.config import Settings, get_settings
from gamebridge.core.db import close_engine, create_engine_from_url
from gamebridge.routers import gamebridge_routes
from gamebridge.services.delta_detector import delta_detector
from gamebridge.services.delta_store import DeltaStore
from gamebridge.services.fetcher import SnapshotFetcher
from gamebridge.services.ops_monitor import OpsHealthMonitor
from gamebridge.services.poller import run_periodic, run_poll_cycle
from gamebridge.services.rate_limiter import RateLimiter

logger = logging.getLogger("gamebridge")


# ------------ Access log middleware ------------
class AccessLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        t0 = time.perf_counter()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
        finally:
            dt = (time.perf_counter() - t0) * 1000
            logger.info(
                "ACCESS %s %s q=%s -> %s in %.1fms",
                request.method,
                request.url.path,
                request.url.query,
                status,
                dt,
            )
        return response


# ------------ Background jobs ------------
def _background_jobs(app: FastAPI) -> List[asyncio.Task]:
    state = app.state
    settings: Settings = state.settings
    tasks: List[asyncio.Task] = []

    if state.fetcher is not None:
        tasks.append(asyncio.create_task(run_periodic(
            "live poller",
            settings.poll_interval_seconds,
            lambda: run_poll_cycle(state.fetcher, delta_detector, state.store, settings.leagues),
        )))
    else:
        logger.info("GAMEBRIDGE_API_KEY not configured; streams use the simulation feed")

    if state.ops_monitor is not None:
        tasks.append(asyncio.create_task(run_periodic(
            "ops monitor",
            settings.ops_poll_interval_seconds,
            state.ops_monitor.check,
        )))
    return tasks


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Schema, background loops, and engine disposal on the way out."""
    state = app.state
    logger.info("Starting GameBridge (env=%s)...", state.settings.environment)
    try:
        await state.store.ensure_schema()
    except Exception:
        logger.exception("delta store schema setup failed; continuing without guarantees")

    tasks = _background_jobs(app)
    try:
        yield
    finally:
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        await close_engine(state.store.engine)
        logger.info("GameBridge stopped")


# ------------ App ------------
def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))

    app = FastAPI(
        title="GameBridge Live Events API",
        version="1.0.0",
        docs_url="/docs",
        redoc_url=None,
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    store = DeltaStore(create_engine_from_url(settings.database_url), ttl_seconds=settings.delta_ttl_seconds)
    app.state.settings = settings
    app.state.store = store
    app.state.rate_limiter = RateLimiter(settings.rate_limit)
    app.state.active_streams = 0
    app.state.fetcher = (
        SnapshotFetcher(settings.api_key, settings.provider_url, timeout=settings.fetch_timeout_seconds)
        if settings.api_key
        else None
    )
    app.state.ops_monitor = (
        OpsHealthMonitor(
            settings.ops_health_urls,
            store,
            timeout=settings.fetch_timeout_seconds,
            heartbeat_every=settings.ops_heartbeat_every,
        )
        if settings.ops_health_urls
        else None
    )

    app.add_middleware(AccessLogMiddleware)

    # ------------ CORS (open) ------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    # ------------ Global error handler ------------
    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        logger.exception("UNHANDLED ERROR: %s %s", request.method, request.url)
        return JSONResponse(status_code=500, content={"error": "internal_error"})

    # ------------ Status ------------
    @app.get("/status")
    async def status():
        return {
            "ok": True,
            "environment": settings.environment,
            "has_api_key": settings.has_api_key,
            "leagues": settings.leagues,
            "delta_store": store.enabled,
            "active_streams": app.state.active_streams,
            "ops_services": sorted(settings.ops_health_urls),
        }

    # ------------ Mount routers ------------
    app.include_router(gamebridge_routes.router)
    app.include_router(gamebridge_routes.router, prefix="/api/gamebridge")

    return app


app = create_app()
