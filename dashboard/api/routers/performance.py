"""
GS Performance Dashboard — Performance Router
==============================================
Read-side endpoints over the persisted performance_data table.

Endpoints:
  GET /api/performance            - Totals + per-user breakdown for a date window
  GET /api/performance/trend      - Per-date totals for the trend chart
  GET /api/performance/insights   - Efficiency rates, score and strategic insights
  GET /api/performance/last-sync  - Timestamp of the newest persisted row

A window with no rows falls back to the most recent rows; the response
says so via `used_fallback`.
"""
from __future__ import annotations

from datetime import date, timedelta
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool

from scripts.lib.insights import daily_trend, efficiency_metrics, strategic_insights
from scripts.lib.logger import setup_logger

logger = setup_logger("performance_router")

router = APIRouter(prefix="/api/performance", tags=["performance"])

DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"
DEFAULT_WINDOW_DAYS = 30


def _window(start: Optional[str], end: Optional[str]):
    """Default to the last 30 days ending today."""
    end = end or date.today().isoformat()
    try:
        end_day = date.fromisoformat(end)
        start = start or (end_day - timedelta(days=DEFAULT_WINDOW_DAYS)).isoformat()
        date.fromisoformat(start)
    except ValueError:
        raise HTTPException(status_code=422, detail="start and end must be valid YYYY-MM-DD dates")
    if start > end:
        raise HTTPException(status_code=422, detail="start must not be after end")
    return start, end


@router.get("")
async def performance(
    request: Request,
    start: Optional[str] = Query(None, pattern=DATE_PATTERN),
    end: Optional[str] = Query(None, pattern=DATE_PATTERN),
):
    """Aggregated view plus the underlying records."""
    start, end = _window(start, end)
    try:
        view, rows = await run_in_threadpool(request.app.state.reader.view, start, end)
        return {"view": view.model_dump(), "records": rows}
    except Exception as e:
        logger.error("Performance query failed: %s", e)
        raise HTTPException(status_code=500, detail="Failed to fetch performance data")


@router.get("/trend")
async def trend(
    request: Request,
    start: Optional[str] = Query(None, pattern=DATE_PATTERN),
    end: Optional[str] = Query(None, pattern=DATE_PATTERN),
):
    start, end = _window(start, end)
    try:
        rows, used_fallback = await run_in_threadpool(request.app.state.reader.load, start, end)
        return {"trend": daily_trend(rows), "used_fallback": used_fallback}
    except Exception as e:
        logger.error("Trend query failed: %s", e)
        raise HTTPException(status_code=500, detail="Failed to fetch trend data")


@router.get("/insights")
async def insights(
    request: Request,
    start: Optional[str] = Query(None, pattern=DATE_PATTERN),
    end: Optional[str] = Query(None, pattern=DATE_PATTERN),
):
    """Funnel efficiency and threshold-based findings for the window totals."""
    start, end = _window(start, end)
    try:
        view, _ = await run_in_threadpool(request.app.state.reader.view, start, end)
        return {
            "efficiency": efficiency_metrics(view.totals),
            "insights": strategic_insights(view.totals),
            "used_fallback": view.used_fallback,
        }
    except Exception as e:
        logger.error("Insights query failed: %s", e)
        raise HTTPException(status_code=500, detail="Failed to compute insights")


@router.get("/last-sync")
async def last_sync(request: Request):
    try:
        updated_at = await run_in_threadpool(request.app.state.reader.last_sync_at)
        return {"last_sync": updated_at}
    except Exception as e:
        logger.error("Last-sync query failed: %s", e)
        raise HTTPException(status_code=500, detail="Failed to fetch last sync time")
