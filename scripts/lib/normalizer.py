"""
Record Normalizer
=================
Maps per-user aggregates onto flat performance_data rows keyed by
(user_id, date). The date is the sync run's wall-clock date, not the date
of the underlying data, so every sync on the same day lands on the same row.

leads_started, leads_finished and earnings are taken from the upstream
per-user performance row when one matches (the CRM's own totals win over
recomputed proxies); every numeric field falls back to 0.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from models.performance_models import PerformanceRecord, UserAggregate
from scripts.lib.logger import setup_logger
from scripts.lib.metrics import is_sentinel_name
from scripts.lib.utils import today_str

logger = setup_logger("normalizer")


def _index_rows(rows: Iterable[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """Index upstream rows by userId and by display name."""
    index: Dict[str, Dict[str, Any]] = {}
    for row in rows or []:
        if not isinstance(row, dict) or is_sentinel_name(row.get("nome")):
            continue
        if row.get("userId"):
            index.setdefault(f"id:{row['userId']}", row)
        if row.get("nome"):
            index.setdefault(f"name:{row['nome']}", row)
    return index


def normalize_record(
    user: UserAggregate,
    sync_date: str,
    upstream_row: Optional[Dict[str, Any]] = None,
) -> PerformanceRecord:
    """Build one persistence-ready record. Missing values become 0."""
    upstream_row = upstream_row or {}
    return PerformanceRecord(
        user_id=user.user_id,
        user_name=user.user_name,
        date=sync_date,
        daily_activities=user.daily_activities,
        on_time=user.on_time,
        leads_started=upstream_row.get("leads_iniciados"),
        leads_finished=upstream_row.get("leads_finalizados"),
        conversion_rate=user.conversion_rate,
        earnings=upstream_row.get("ganhos"),
        calls=user.calls,
        meetings_scheduled=user.meetings_scheduled,
        meetings_completed=user.meetings_completed,
        contracts_generated=user.contracts,
        noshow=user.noshow,
        closing=user.closing,
        lead_time=user.lead_time,
    )


def normalize_records(
    users: Iterable[UserAggregate],
    sync_date: Optional[str] = None,
    upstream_rows: Optional[Iterable[Dict[str, Any]]] = None,
) -> List[PerformanceRecord]:
    """
    Normalize a sync run's aggregates into PerformanceRecords.

    Args:
        users: Aggregates from MetricAggregator.
        sync_date: YYYY-MM-DD of the run; defaults to today.
        upstream_rows: Per-user performance rows, matched by userId then name.

    Returns:
        One record per non-sentinel user, all sharing `sync_date`.
    """
    sync_date = sync_date or today_str()
    index = _index_rows(upstream_rows)

    records = []
    for user in users:
        if is_sentinel_name(user.user_name):
            continue
        row = index.get(f"id:{user.user_id}") or index.get(f"name:{user.user_name}")
        records.append(normalize_record(user, sync_date, row))

    logger.info("Normalized %d records for %s", len(records), sync_date)
    return records
