"""
GS Performance Dashboard — Pydantic Models
===========================================

Per-user aggregates, persisted performance rows, read-side views and the
typed result of a sync run.
"""
from __future__ import annotations

from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from scripts.lib.utils import int_or_zero, numeric_or_zero

# Placeholder until timestamped activity data is available upstream
ON_TIME_PLACEHOLDER = 95.0


# ─── Aggregation Models ─────────────────────────────────────

class MeetingCounts(BaseModel):
    scheduled: int = 0
    completed: int = 0


class OverrideMaps(BaseModel):
    """Externally computed per-user values that replace derived ones.

    Keys are upstream user ids or fallback name keys.
    """
    calls: Dict[str, float] = Field(default_factory=dict)
    meetings: Dict[str, MeetingCounts] = Field(default_factory=dict)
    contracts: Dict[str, float] = Field(default_factory=dict)
    noshow: Dict[str, float] = Field(default_factory=dict)
    closing: Dict[str, float] = Field(default_factory=dict)
    lead_time: Dict[str, float] = Field(default_factory=dict)


class UserAggregate(BaseModel):
    """Metrics for one responsible user, built fresh on every sync."""
    user_id: str
    user_name: str
    name_key: str
    keyed_by_name: bool = False

    prospections: int = 0
    total_leads: int = 0
    active: int = 0
    finished: int = 0
    won: int = 0
    lost: int = 0

    calls: float = 0
    meetings_scheduled: int = 0
    meetings_completed: int = 0
    contracts: float = 0
    closing: float = 0
    noshow: float = 0
    lead_time: float = 0.0

    conversion_rate: float = 0.0
    daily_activities: int = 0
    on_time: float = ON_TIME_PLACEHOLDER

    @property
    def finished_or_won(self) -> int:
        return self.finished + self.won


class AggregationResult(BaseModel):
    users: List[UserAggregate] = Field(default_factory=list)
    unattributed_prospections: int = 0
    unattributed_leads: int = 0
    dropped_leads: int = 0
    fallback_keys: List[str] = Field(default_factory=list)


# ─── Persisted Row ──────────────────────────────────────────

class PerformanceRecord(BaseModel):
    """One row of performance_data, unique on (user_id, date)."""
    user_id: str
    date: str
    user_name: str = ""
    daily_activities: float = 0
    on_time: float = 0
    leads_started: int = 0
    leads_finished: int = 0
    conversion_rate: float = 0
    earnings: float = 0
    calls: float = 0
    meetings_scheduled: int = 0
    meetings_completed: int = 0
    contracts_generated: float = 0
    noshow: float = 0
    closing: float = 0
    lead_time: float = 0
    updated_at: Optional[str] = None

    @field_validator(
        "daily_activities", "on_time", "conversion_rate", "earnings", "calls",
        "contracts_generated", "noshow", "closing", "lead_time",
        mode="before",
    )
    @classmethod
    def _float_or_zero(cls, v):
        return numeric_or_zero(v)

    @field_validator(
        "leads_started", "leads_finished", "meetings_scheduled", "meetings_completed",
        mode="before",
    )
    @classmethod
    def _int_or_zero(cls, v):
        return int_or_zero(v)

    @field_validator("user_name", mode="before")
    @classmethod
    def _name(cls, v):
        return "" if v is None else str(v)

    def to_row(self) -> dict:
        row = self.model_dump()
        if row["updated_at"] is None:
            row.pop("updated_at")
        return row


# ─── Read-side Views ────────────────────────────────────────

class AggregatedMetrics(BaseModel):
    """Sums for counts, means (divisor = record count) for rates."""
    record_count: int = 0
    daily_activities: float = 0
    leads_started: int = 0
    leads_finished: int = 0
    earnings: float = 0
    calls: float = 0
    meetings_scheduled: int = 0
    meetings_completed: int = 0
    contracts_generated: float = 0
    noshow: float = 0
    closing: float = 0
    conversion_rate: float = 0.0
    on_time: float = 0.0
    lead_time: float = 0.0


class UserBreakdown(BaseModel):
    user_id: str
    user_name: str
    metrics: AggregatedMetrics


class AggregatedView(BaseModel):
    start: Optional[str] = None
    end: Optional[str] = None
    used_fallback: bool = False
    totals: AggregatedMetrics = Field(default_factory=AggregatedMetrics)
    by_user: Dict[str, UserBreakdown] = Field(default_factory=dict)


# ─── Sync Result ────────────────────────────────────────────

class SyncSuccess(BaseModel):
    """Pipeline ran to completion. `no_data` is a success, not an error."""
    success: Literal[True] = True
    status: Literal["synced", "no_data", "fetched"]
    message: str
    records_count: int = 0
    users: int = 0
    unattributed: int = 0
    sync_date: Optional[str] = None
    rows: List[dict] = Field(default_factory=list)


class SyncFailure(BaseModel):
    """Pipeline stopped. records_count is what was saved before stopping."""
    success: Literal[False] = False
    status: Literal["upstream_unavailable", "upstream_rejected",
                    "persistence_failed", "error"]
    message: str
    error: str
    records_count: int = 0


SyncResult = Union[SyncSuccess, SyncFailure]
