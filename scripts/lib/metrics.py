"""
Metric Aggregator
=================
Groups raw GS Engage prospections and leads by responsible user and derives
per-user sales metrics: status counts, meetings, contracts, no-shows,
lead time, conversion rate and daily activities.

Externally supplied override maps (calls, meetings, contracts, noshow,
closing, lead_time) replace the derived value for the same user.

Usage:
    from scripts.lib.metrics import MetricAggregator

    result = MetricAggregator().aggregate(prospections, leads, overrides)
    for user in result.users:
        print(user.user_name, user.conversion_rate)
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Tuple

from models.performance_models import (
    ON_TIME_PLACEHOLDER,
    AggregationResult,
    MeetingCounts,
    OverrideMaps,
    UserAggregate,
)
from scripts.lib.logger import setup_logger
from scripts.lib.utils import (
    hours_between,
    int_or_zero,
    normalize_name_key,
    numeric_or_zero,
    safe_div,
)

logger = setup_logger("metrics")

STATUS_ACTIVE = "ACTIVE"
FINISHED_STATUSES = frozenset({"FINISHED", "CLOSED"})
STATUS_WON = "WON"
STATUS_LOST = "LOST"
TERMINAL_STATUSES = FINISHED_STATUSES | {STATUS_WON}

NOSHOW_PATTERNS = ("no-show", "no show", "ausente")

# Aggregate rows some upstream paths return alongside real users
SENTINEL_NAMES = frozenset({"average", "total", "média por sdr"})

# Lead times outside (0, MAX_LEAD_TIME_HOURS] are discarded, not clamped
MAX_LEAD_TIME_HOURS = 8760.0
CALLS_PER_PROSPECTION = 2


def is_sentinel_name(name: Optional[str]) -> bool:
    return (name or "").strip().lower() in SENTINEL_NAMES


def responsible_name(responsible: Dict[str, Any]) -> str:
    """Display name of a responsible user: 'first last', else email."""
    first = responsible.get("firstName") or ""
    last = responsible.get("lastName") or ""
    return f"{first} {last}".strip() or responsible.get("email") or "Unknown"


def responsible_key(responsible: Any) -> Optional[Tuple[str, str, bool]]:
    """
    Resolve the grouping key of a responsible-user reference.

    Returns (key, display_name, keyed_by_name) or None when the record
    cannot be attributed. The upstream id wins; the normalized name is a
    degraded fallback that can merge distinct users sharing a name.
    """
    if not isinstance(responsible, dict) or not responsible:
        return None
    name = responsible_name(responsible)
    user_id = responsible.get("id")
    if user_id not in (None, ""):
        return str(user_id), name, False
    name_key = normalize_name_key(name)
    if not name_key or name_key == "unknown":
        return None
    return name_key, name, True


def is_noshow(lost_reason: Any) -> bool:
    reason = str(lost_reason or "").lower()
    return any(pattern in reason for pattern in NOSHOW_PATTERNS)


class _UserBucket:
    """Mutable accumulator for one user while walking the raw records."""

    def __init__(self, key: str, name: str, keyed_by_name: bool):
        self.key = key
        self.name = name
        self.keyed_by_name = keyed_by_name
        self.prospections = 0
        self.leads = 0
        self.active = 0
        self.finished = 0
        self.won = 0
        self.lost = 0
        self.noshow = 0
        self.meetings_scheduled = 0
        self.meetings_completed = 0
        self.lead_time_hours: List[float] = []

    def add_prospection(self, prospection: Dict[str, Any]) -> None:
        self.prospections += 1
        status = str(prospection.get("status") or "").strip().upper()

        if status == STATUS_ACTIVE:
            self.active += 1
        elif status in FINISHED_STATUSES:
            self.finished += 1
        elif status == STATUS_WON:
            self.won += 1
        elif status == STATUS_LOST:
            self.lost += 1
            if is_noshow(prospection.get("lostReason")):
                self.noshow += 1

        if prospection.get("meeting"):
            self.meetings_scheduled += 1
            if status in TERMINAL_STATUSES:
                self.meetings_completed += 1

        if status in TERMINAL_STATUSES:
            hours = hours_between(prospection.get("startDate"), prospection.get("endDate"))
            if hours is not None and 0 < hours <= MAX_LEAD_TIME_HOURS:
                self.lead_time_hours.append(hours)

    def build(self) -> UserAggregate:
        estimated_calls = self.prospections * CALLS_PER_PROSPECTION
        return UserAggregate(
            user_id=self.key,
            user_name=self.name,
            name_key=normalize_name_key(self.name),
            keyed_by_name=self.keyed_by_name,
            prospections=self.prospections,
            total_leads=self.leads,
            active=self.active,
            finished=self.finished,
            won=self.won,
            lost=self.lost,
            calls=estimated_calls,
            meetings_scheduled=self.meetings_scheduled,
            meetings_completed=self.meetings_completed,
            contracts=self.won,
            closing=self.won,
            noshow=self.noshow,
            lead_time=safe_div(sum(self.lead_time_hours), len(self.lead_time_hours)),
            conversion_rate=safe_div(self.finished + self.won, self.leads) * 100,
            daily_activities=self.active + estimated_calls + self.meetings_scheduled,
            on_time=ON_TIME_PLACEHOLDER,
        )


def _lookup(mapping: Dict[str, Any], user: UserAggregate) -> Any:
    """Override value for a user: by id first, then by fallback name key."""
    if user.user_id in mapping:
        return mapping[user.user_id]
    if user.name_key in mapping:
        return mapping[user.name_key]
    return None


def apply_overrides(user: UserAggregate, overrides: Optional[OverrideMaps]) -> UserAggregate:
    """Return a copy of `user` with any override values replacing derived ones."""
    if overrides is None:
        return user

    updates: Dict[str, Any] = {}
    for field in ("calls", "contracts", "noshow", "closing", "lead_time"):
        value = _lookup(getattr(overrides, field), user)
        if value is not None:
            updates[field] = numeric_or_zero(value)

    meetings = _lookup(overrides.meetings, user)
    if meetings is not None:
        if isinstance(meetings, dict):
            meetings = MeetingCounts(**meetings)
        updates["meetings_scheduled"] = int_or_zero(meetings.scheduled)
        updates["meetings_completed"] = int_or_zero(meetings.completed)

    if not updates:
        return user
    return user.model_copy(update=updates)


class MetricAggregator:
    """Turn raw prospections and leads into one UserAggregate per user."""

    def aggregate(
        self,
        prospections: Iterable[Dict[str, Any]],
        leads: Iterable[Dict[str, Any]],
        overrides: Optional[OverrideMaps] = None,
    ) -> AggregationResult:
        buckets: Dict[str, _UserBucket] = {}
        unattributed = 0
        fallback_keys: List[str] = []

        # Phase 1: prospections define the user buckets
        for prospection in prospections or []:
            if not isinstance(prospection, dict):
                unattributed += 1
                continue
            resolved = responsible_key(prospection.get("responsible"))
            if resolved is None:
                unattributed += 1
                if unattributed <= 3:
                    logger.warning("Prospection without responsible user: %s (status %s)",
                                   prospection.get("id"), prospection.get("status"))
                continue

            key, name, keyed_by_name = resolved
            if is_sentinel_name(name):
                continue

            bucket = buckets.get(key)
            if bucket is None:
                bucket = buckets[key] = _UserBucket(key, name, keyed_by_name)
                if keyed_by_name:
                    fallback_keys.append(key)
                    logger.warning(
                        "Responsible user '%s' has no upstream id — keyed by name '%s'. "
                        "Distinct users sharing this name will be merged.", name, key,
                    )
            bucket.add_prospection(prospection)

        # Phase 2: leads only count for users that already have a bucket
        unattributed_leads = 0
        dropped_leads = 0
        for lead in leads or []:
            resolved = responsible_key(lead.get("responsible")) if isinstance(lead, dict) else None
            if resolved is None:
                unattributed_leads += 1
                continue
            bucket = buckets.get(resolved[0])
            if bucket is None:
                dropped_leads += 1
                continue
            bucket.leads += 1

        users = [apply_overrides(bucket.build(), overrides) for bucket in buckets.values()]

        if unattributed:
            logger.warning("Prospections without responsible user: %d", unattributed)
        if dropped_leads or unattributed_leads:
            logger.info("Leads not attributed to a prospection user: %d dropped, %d unattributed",
                        dropped_leads, unattributed_leads)
        logger.info("Aggregated metrics for %d users", len(users))

        return AggregationResult(
            users=users,
            unattributed_prospections=unattributed,
            unattributed_leads=unattributed_leads,
            dropped_leads=dropped_leads,
            fallback_keys=fallback_keys,
        )


# ---------------------------------------------------------------------------
# Upstream performance-row shape
# ---------------------------------------------------------------------------

def to_performance_rows(users: Iterable[UserAggregate]) -> List[Dict[str, Any]]:
    """Render aggregates in the GS Engage per-user performance row shape."""
    rows = []
    for user in users:
        rows.append({
            "userId": user.user_id,
            "nome": user.user_name,
            "atividades_diarias": user.daily_activities,
            "on_time": user.on_time,
            "leads_iniciados": user.total_leads,
            "leads_finalizados": user.finished_or_won,
            "taxa_conversao": user.conversion_rate,
            "ganhos": user.contracts,
            "calls": user.calls,
            "meetingsScheduled": user.meetings_scheduled,
            "meetingsCompleted": user.meetings_completed,
            "contracts": user.contracts,
            "noshow": user.noshow,
            "closing": user.closing,
            "leadTime": user.lead_time,
        })
    return rows


def overrides_from_rows(rows: Iterable[Dict[str, Any]]) -> OverrideMaps:
    """
    Build override maps from per-user performance rows.

    Each row is stored under its userId and, when one exists, also under
    the normalized name so either lookup finds it. Sentinel rows are skipped.
    """
    overrides = OverrideMaps()
    for row in rows:
        name = row.get("nome") or ""
        if is_sentinel_name(name):
            continue
        keys = []
        if row.get("userId"):
            keys.append(str(row["userId"]))
        name_key = normalize_name_key(name)
        if name_key and name_key not in keys:
            keys.append(name_key)

        for key in keys:
            overrides.calls[key] = numeric_or_zero(row.get("calls"))
            overrides.meetings[key] = MeetingCounts(
                scheduled=int_or_zero(row.get("meetingsScheduled")),
                completed=int_or_zero(row.get("meetingsCompleted")),
            )
            overrides.contracts[key] = numeric_or_zero(row.get("contracts"))
            overrides.noshow[key] = numeric_or_zero(row.get("noshow"))
            overrides.closing[key] = numeric_or_zero(row.get("closing"))
            overrides.lead_time[key] = numeric_or_zero(row.get("leadTime"))
    return overrides
