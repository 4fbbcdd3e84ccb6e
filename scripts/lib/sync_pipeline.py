"""
Sync Pipeline
=============
One sequential sync run: fetch prospections and leads, aggregate per user,
normalize into performance_data records, reconcile into Supabase.

Both collections are fetched completely before grouping. The upstream gives
no consistency between them, so a lead created after the prospection
snapshot may only be counted on the next run.

run_sync() never raises: every outcome is a SyncSuccess or SyncFailure and
the caller (HTTP route, CLI, background loop) decides how to surface it.
"""
from __future__ import annotations

import time
from typing import Any, Dict, List, Optional, Protocol

from models.performance_models import OverrideMaps, SyncFailure, SyncResult, SyncSuccess
from scripts.lib.errors import (
    APIAuthError,
    APIError,
    APIRateLimitError,
    APITimeoutError,
    APIValidationError,
    CircuitOpenError,
    PipelineError,
)
from scripts.lib.logger import setup_logger
from scripts.lib.metrics import MetricAggregator, to_performance_rows
from scripts.lib.normalizer import normalize_records
from scripts.lib.reconciler import PerformanceReconciler
from scripts.lib.utils import today_str

logger = setup_logger("sync_pipeline")

KEEP_SERVING = "The dashboard keeps serving previously saved data."


class ProspectionSource(Protocol):
    def get_prospections(self) -> List[dict]: ...

    def get_leads(self) -> List[dict]: ...


def _upstream_failure(error: APIError) -> SyncFailure:
    """Map an upstream error onto unavailable vs. rejected."""
    if isinstance(error, (APIAuthError, APIValidationError, APIRateLimitError)):
        if isinstance(error, APIAuthError):
            message = "GS Engage rejected the API key."
        elif isinstance(error, APIRateLimitError):
            message = "GS Engage rate limit exceeded. Try again shortly."
        else:
            message = f"GS Engage rejected the request: {error.message}"
        return SyncFailure(
            status="upstream_rejected",
            message=f"{message} {KEEP_SERVING}",
            error=error.message,
        )

    if isinstance(error, APITimeoutError):
        message = "Timed out fetching data from GS Engage."
    elif isinstance(error, CircuitOpenError):
        message = "GS Engage is failing repeatedly; requests are paused."
    else:
        message = "GS Engage is unavailable."
    return SyncFailure(
        status="upstream_unavailable",
        message=f"{message} {KEEP_SERVING}",
        error=error.message,
    )


def fetch_performance_rows(
    source: ProspectionSource,
    overrides: Optional[OverrideMaps] = None,
) -> Dict[str, Any]:
    """Fetch both collections and aggregate them. Raises APIError on fetch failure."""
    prospections = source.get_prospections()
    leads = source.get_leads()
    logger.info("Found %d prospections and %d leads", len(prospections), len(leads))

    result = MetricAggregator().aggregate(prospections, leads, overrides)
    return {
        "aggregation": result,
        "rows": to_performance_rows(result.users),
    }


def run_sync(
    source: ProspectionSource,
    reconciler: Optional[PerformanceReconciler] = None,
    sync_date: Optional[str] = None,
    persist: bool = True,
    overrides: Optional[OverrideMaps] = None,
) -> SyncResult:
    """
    Run fetch → aggregate → normalize → reconcile once.

    Args:
        source: Upstream client (GrowthstationClient).
        reconciler: Writer for performance_data; required when persist=True.
        sync_date: Date bucket (YYYY-MM-DD); defaults to today's wall-clock date.
        persist: False returns the per-user rows without writing anything.
        overrides: Externally computed per-user values that win over estimates.
    """
    sync_date = sync_date or today_str()
    start = time.time()
    logger.info("Sync started for %s (persist=%s)", sync_date, persist)

    try:
        fetched = fetch_performance_rows(source, overrides)
    except APIError as e:
        logger.error("Upstream fetch failed: %s", e)
        return _upstream_failure(e)
    except Exception as e:
        err = PipelineError("fetch/aggregate", e)
        logger.error("%s", err.message, exc_info=True)
        return SyncFailure(status="error", message=f"Sync failed. {KEEP_SERVING}", error=err.message)

    aggregation = fetched["aggregation"]
    rows = fetched["rows"]

    if not aggregation.users:
        logger.warning("No attributable data returned by GS Engage")
        return SyncSuccess(
            status="no_data",
            message=f"No data returned by GS Engage. {KEEP_SERVING}",
            unattributed=aggregation.unattributed_prospections,
            sync_date=sync_date,
        )

    if not persist:
        return SyncSuccess(
            status="fetched",
            message=f"Fetched performance for {len(rows)} users",
            users=len(rows),
            unattributed=aggregation.unattributed_prospections,
            sync_date=sync_date,
            rows=rows,
        )

    try:
        if reconciler is None:
            raise ValueError("persist=True requires a reconciler")
        records = normalize_records(aggregation.users, sync_date, rows)
        outcome = reconciler.reconcile(records)
    except Exception as e:
        err = PipelineError("normalize/reconcile", e)
        logger.error("%s", err.message, exc_info=True)
        return SyncFailure(status="error", message=f"Sync failed. {KEEP_SERVING}", error=err.message)

    if not outcome.ok:
        if outcome.saved:
            message = f"Some records were saved ({outcome.saved}), but the write failed."
        else:
            message = f"Could not save to Supabase. {KEEP_SERVING}"
        return SyncFailure(
            status="persistence_failed",
            message=message,
            error=outcome.error,
            records_count=outcome.saved,
        )

    logger.info("Sync finished: %d records saved in %.2fs", outcome.saved, time.time() - start)
    return SyncSuccess(
        status="synced",
        message="Data synchronized successfully",
        records_count=outcome.saved,
        users=len(aggregation.users),
        unattributed=aggregation.unattributed_prospections,
        sync_date=sync_date,
    )
