"""
Sync Reconciler
===============
Upserts a run's PerformanceRecords into performance_data on the natural key
(user_id, date). Matching rows are overwritten field by field, new pairs are
inserted; nothing is ever deleted. Re-running the same records is a no-op
apart from updated_at.

A failed write is reported in the result, never raised: the dashboard keeps
serving whatever was persisted before.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional

from models.performance_models import PerformanceRecord
from scripts.lib.errors import PersistenceError
from scripts.lib.logger import setup_logger
from scripts.lib.supabase_client import PERFORMANCE_TABLE, upsert_rows
from scripts.lib.utils import now_iso

logger = setup_logger("reconciler")

CONFLICT_KEY = "user_id,date"

# Batch size for upserts (Supabase recommends ≤1000)
BATCH_SIZE = 500


@dataclass
class ReconcileResult:
    attempted: int
    saved: int
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _batched(items: list, size: int = BATCH_SIZE):
    """Yield successive batches from a list."""
    for i in range(0, len(items), size):
        yield items[i : i + size]


def _dedupe(records: Iterable[PerformanceRecord]) -> List[PerformanceRecord]:
    """Keep the last record per (user_id, date); Postgres rejects an upsert
    that touches the same conflict key twice."""
    latest = {}
    for record in records:
        latest[(record.user_id, record.date)] = record
    return list(latest.values())


class PerformanceReconciler:
    """Writes normalized records to Supabase with last-write-wins semantics."""

    def __init__(self, client, table: str = PERFORMANCE_TABLE, batch_size: int = BATCH_SIZE):
        self.client = client
        self.table = table
        self.batch_size = batch_size

    def reconcile(self, records: Iterable[PerformanceRecord]) -> ReconcileResult:
        records = _dedupe(records)
        if not records:
            return ReconcileResult(attempted=0, saved=0)

        stamp = now_iso()
        rows = [record.model_copy(update={"updated_at": stamp}).to_row() for record in records]

        saved = 0
        for batch in _batched(rows, self.batch_size):
            try:
                saved += upsert_rows(self.client, self.table, batch, on_conflict=CONFLICT_KEY)
            except PersistenceError as e:
                logger.error("Reconciliation stopped after %d/%d rows: %s",
                             saved, len(rows), e.message)
                return ReconcileResult(attempted=len(rows), saved=saved, error=e.message)

        logger.info("Reconciled %d rows into %s", saved, self.table)
        return ReconcileResult(attempted=len(rows), saved=saved)
