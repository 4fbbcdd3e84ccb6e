"""
Read-side Aggregator
====================
Loads persisted performance_data rows for a date window and re-aggregates
them for display: totals across the window plus a per-user breakdown.

If the window holds no rows, the most recent rows (up to a limit) are used
instead so the dashboard is never empty while any history exists.
"""
from __future__ import annotations

from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Optional, Tuple

from models.performance_models import AggregatedMetrics, AggregatedView, UserBreakdown
from scripts.lib.logger import setup_logger
from scripts.lib.supabase_client import PERFORMANCE_TABLE, QUERY_CHUNK_SIZE, query_all, query_table
from scripts.lib.utils import int_or_zero, numeric_or_zero, safe_div

logger = setup_logger("performance_views")

DEFAULT_FALLBACK_LIMIT = 100

SUM_FIELDS = (
    "daily_activities", "earnings", "calls", "contracts_generated", "noshow", "closing",
)
INT_SUM_FIELDS = (
    "leads_started", "leads_finished", "meetings_scheduled", "meetings_completed",
)
MEAN_FIELDS = ("conversion_rate", "on_time", "lead_time")


def aggregate_metrics(rows: Iterable[Dict[str, Any]]) -> AggregatedMetrics:
    """Sum counts and average rates over rows (0 for an empty set)."""
    rows = list(rows)
    count = len(rows)
    values: Dict[str, Any] = {"record_count": count}
    for field in SUM_FIELDS:
        values[field] = sum(numeric_or_zero(r.get(field)) for r in rows)
    for field in INT_SUM_FIELDS:
        values[field] = sum(int_or_zero(r.get(field)) for r in rows)
    for field in MEAN_FIELDS:
        values[field] = safe_div(sum(numeric_or_zero(r.get(field)) for r in rows), count)
    return AggregatedMetrics(**values)


def aggregate_view(
    rows: Iterable[Dict[str, Any]],
    used_fallback: bool = False,
    start: Optional[str] = None,
    end: Optional[str] = None,
) -> AggregatedView:
    """Build the display view: window totals plus one breakdown per user."""
    rows = list(rows)
    grouped: "OrderedDict[str, List[Dict[str, Any]]]" = OrderedDict()
    names: Dict[str, str] = {}
    for row in rows:
        user_id = row.get("user_id") or "unknown"
        grouped.setdefault(user_id, []).append(row)
        names.setdefault(user_id, row.get("user_name") or "Unknown")

    by_user = {
        user_id: UserBreakdown(
            user_id=user_id,
            user_name=names[user_id],
            metrics=aggregate_metrics(user_rows),
        )
        for user_id, user_rows in grouped.items()
    }
    return AggregatedView(
        start=start,
        end=end,
        used_fallback=used_fallback,
        totals=aggregate_metrics(rows),
        by_user=by_user,
    )


class PerformanceReader:
    """Queries performance_data for the dashboard."""

    def __init__(self, client, fallback_limit: int = DEFAULT_FALLBACK_LIMIT,
                 table: str = PERFORMANCE_TABLE, chunk_size: int = QUERY_CHUNK_SIZE):
        self.client = client
        self.fallback_limit = fallback_limit
        self.table = table
        self.chunk_size = chunk_size

    def load(self, start: str, end: str) -> Tuple[List[Dict[str, Any]], bool]:
        """
        Rows with start <= date <= end, newest first.

        Returns:
            (rows, used_fallback). used_fallback is True when the window was
            empty and the most recent rows were returned instead.
        """
        rows = query_all(
            self.client, self.table,
            gte={"date": start}, lte={"date": end},
            order_by="date", desc=True, then_by="user_id", chunk_size=self.chunk_size,
        )
        if rows:
            logger.info("Loaded %d rows for %s..%s", len(rows), start, end)
            return rows, False

        logger.warning("No rows between %s and %s — using the %d most recent",
                       start, end, self.fallback_limit)
        recent = query_table(
            self.client, self.table,
            order_by="date", desc=True, limit=self.fallback_limit,
        )
        return recent, bool(recent)

    def view(self, start: str, end: str) -> Tuple[AggregatedView, List[Dict[str, Any]]]:
        rows, used_fallback = self.load(start, end)
        return aggregate_view(rows, used_fallback, start, end), rows

    def last_sync_at(self) -> Optional[str]:
        """updated_at of the most recently written row, if any."""
        rows = query_table(
            self.client, self.table, select="updated_at",
            order_by="updated_at", desc=True, limit=1,
        )
        return rows[0].get("updated_at") if rows else None
