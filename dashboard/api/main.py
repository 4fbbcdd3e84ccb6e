"""
GS Performance Dashboard — API Server
======================================

Serves the sales performance dashboard: triggers the GS Engage sync and
reads aggregated performance back out of Supabase.

Route groups:
  /api/health          - Health check
  /api/sync            - Run the sync (POST persists, GET previews)
  /api/performance/*   - Aggregated view, trend, insights, last sync
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager, suppress
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware

from integrations.growthstation import GrowthstationClient
from scripts.lib.config import Settings
from scripts.lib.performance_views import PerformanceReader
from scripts.lib.reconciler import PerformanceReconciler
from scripts.lib.supabase_client import get_client
from scripts.lib.sync_pipeline import run_sync

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


# ─── Background Sync ──────────────────────────────────────────

async def periodic_sync(app, interval_minutes: int):
    """Run the persisting sync every `interval_minutes` until cancelled."""
    while True:
        await asyncio.sleep(interval_minutes * 60)
        result = await run_in_threadpool(run_sync, app.state.source, app.state.reconciler)
        if result.success:
            logger.info("Scheduled sync: %s (%d records)", result.status, result.records_count)
        else:
            logger.error("Scheduled sync failed (%s): %s", result.status, result.error)


# ─── App Factory ──────────────────────────────────────────────

def create_app(settings: Settings = None, source=None, supabase_client=None) -> FastAPI:
    """
    Build the API app.

    Anything not passed in is resolved from the environment at startup;
    missing required configuration raises ConfigError there.
    """

    @asynccontextmanager
    async def lifespan(app):
        logger.info("Starting GS Performance Dashboard...")
        resolved = settings or Settings.from_env()
        db = supabase_client if supabase_client is not None else get_client(resolved.supabase)

        app.state.settings = resolved
        app.state.source = source or GrowthstationClient(resolved.growthstation)
        app.state.reconciler = PerformanceReconciler(db)
        app.state.reader = PerformanceReader(db, fallback_limit=resolved.read_fallback_limit)

        task = None
        if resolved.sync_interval_minutes > 0:
            logger.info("Scheduled sync every %d minutes", resolved.sync_interval_minutes)
            task = asyncio.create_task(periodic_sync(app, resolved.sync_interval_minutes))

        logger.info("GS Performance Dashboard ready")
        yield

        if task is not None:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        logger.info("Shutting down GS Performance Dashboard...")

    if settings is not None:
        cors_origins = settings.cors_origins
    else:
        cors_origins = os.getenv(
            "CORS_ORIGINS", "http://localhost:3000,http://localhost:8001"
        ).split(",")

    app = FastAPI(
        title="GS Performance Dashboard",
        version=VERSION,
        description="Sales performance metrics synced from GS Engage",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ─── Include Routers ──────────────────────────────────────

    from dashboard.api.routers.performance import router as performance_router
    from dashboard.api.routers.sync import router as sync_router

    app.include_router(sync_router)
    app.include_router(performance_router)

    # ─── Health ───────────────────────────────────────────────

    @app.get("/api/health", tags=["system"])
    async def health():
        """Health check with upstream circuit state."""
        source_status = None
        get_status = getattr(app.state.source, "get_status", None)
        if callable(get_status):
            source_status = get_status()

        return {
            "status": "healthy",
            "service": "GS Performance Dashboard",
            "version": VERSION,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "sync_interval_minutes": app.state.settings.sync_interval_minutes,
            "growthstation": source_status,
        }

    return app


app = create_app()
