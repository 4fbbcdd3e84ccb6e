"""
GS Performance Dashboard — Sync Router
=======================================
Triggers the GS Engage → Supabase sync.

Endpoints:
  POST    /api/sync  - Fetch, aggregate and persist today's performance rows
  GET     /api/sync  - Fetch and aggregate only; returns {"data": rows}
  OPTIONS /api/sync  - CORS preflight no-op
"""
from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from models.performance_models import SyncResult, SyncSuccess
from scripts.lib.logger import setup_logger
from scripts.lib.sync_pipeline import run_sync

logger = setup_logger("sync_router")

router = APIRouter(prefix="/api/sync", tags=["sync"])

FAILURE_STATUS_CODES = {
    "upstream_unavailable": 502,
    "upstream_rejected": 502,
    "persistence_failed": 503,
}


def http_status_for(result: SyncResult) -> int:
    """Transport status for a sync outcome."""
    if isinstance(result, SyncSuccess):
        return 200
    return FAILURE_STATUS_CODES.get(result.status, 500)


@router.post("")
async def sync_now(request: Request):
    """Run the full pipeline and persist the results."""
    state = request.app.state
    result = await run_in_threadpool(run_sync, state.source, state.reconciler)
    content = result.model_dump(exclude={"rows"})
    if not result.success:
        logger.error("Sync failed (%s): %s", result.status, result.error)
    return JSONResponse(status_code=http_status_for(result), content=content)


@router.get("")
async def sync_preview(request: Request):
    """Per-user performance rows straight from GS Engage, nothing written."""
    result = await run_in_threadpool(run_sync, request.app.state.source, None, None, False)
    if not result.success:
        logger.error("Sync preview failed (%s): %s", result.status, result.error)
        raise HTTPException(status_code=http_status_for(result), detail=result.message)
    return {"data": result.rows}


@router.options("")
async def sync_preflight():
    return {}
