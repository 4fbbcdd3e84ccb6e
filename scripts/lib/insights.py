"""
Dashboard insights computed from persisted performance rows.

- efficiency_metrics: funnel step rates and a 0–100 efficiency score
- strategic_insights: threshold-based findings for the executive panel
- daily_trend: per-date totals for the trend chart
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List

from models.performance_models import AggregatedMetrics
from scripts.lib.utils import numeric_or_zero, safe_div

# (rate key, target %). Each rate earns up to 25 points against its target.
EFFICIENCY_TARGETS = (
    ("attendance_rate", 80.0),
    ("meeting_to_contract_rate", 30.0),
    ("contract_to_close_rate", 70.0),
    ("call_to_meeting_rate", 15.0),
)


def efficiency_metrics(totals: AggregatedMetrics) -> Dict[str, float]:
    rates = {
        "attendance_rate": safe_div(totals.meetings_completed, totals.meetings_scheduled) * 100,
        "meeting_to_contract_rate": safe_div(totals.contracts_generated, totals.meetings_completed) * 100,
        "contract_to_close_rate": safe_div(totals.closing, totals.contracts_generated) * 100,
        "call_to_meeting_rate": safe_div(totals.meetings_scheduled, totals.calls) * 100,
    }
    score = sum(
        min(rates[key] / target * 25, 25.0) for key, target in EFFICIENCY_TARGETS
    )
    rates["efficiency_score"] = round(score, 2)
    return rates


def _insight(kind: str, title: str, description: str, impact: str) -> Dict[str, str]:
    return {"type": kind, "title": title, "description": description, "impact": impact}


def strategic_insights(totals: AggregatedMetrics) -> List[Dict[str, str]]:
    """Findings for conversion, attendance, closing, lead time and punctuality."""
    insights = []

    conversion = totals.conversion_rate
    if conversion >= 10:
        insights.append(_insight(
            "success", "Strong conversion rate",
            f"Conversion of {conversion:.2f}% is above the usual 8-10% benchmark", "high",
        ))
    elif conversion < 5:
        insights.append(_insight(
            "warning", "Low conversion rate",
            f"Conversion of {conversion:.2f}% is below target. Review lead qualification.",
            "medium",
        ))

    attendance = safe_div(totals.meetings_completed, totals.meetings_scheduled) * 100
    if attendance < 70:
        insights.append(_insight(
            "warning", "Low meeting attendance",
            f"Only {attendance:.1f}% of scheduled meetings happened. "
            f"No-shows: {totals.noshow:.0f}.",
            "high",
        ))
    elif attendance >= 85:
        insights.append(_insight(
            "success", "High meeting attendance",
            f"{attendance:.1f}% attendance points to well-qualified leads.", "medium",
        ))

    closing_rate = safe_div(totals.closing, totals.contracts_generated) * 100
    if closing_rate >= 80:
        insights.append(_insight(
            "success", "Strong closing rate",
            f"{closing_rate:.1f}% of contracts were closed.", "high",
        ))
    elif closing_rate < 50:
        insights.append(_insight(
            "warning", "Closing needs attention",
            f"Only {closing_rate:.1f}% of contracts were closed. Review negotiation.", "high",
        ))

    lead_time = totals.lead_time
    if lead_time > 48:
        insights.append(_insight(
            "warning", "High lead time",
            f"Average of {lead_time:.1f}h from start to finish may hurt conversion.", "medium",
        ))
    elif lead_time <= 24:
        insights.append(_insight(
            "success", "Fast lead time",
            f"Average of {lead_time:.1f}h shows quick handling of leads.", "medium",
        ))

    if totals.on_time >= 95:
        insights.append(_insight(
            "success", "High punctuality",
            f"{totals.on_time:.1f}% of activities on time.", "medium",
        ))

    return insights


def daily_trend(rows: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Per-date sums (mean for conversion rate), oldest date first."""
    by_date: Dict[str, Dict[str, float]] = {}
    for row in rows:
        day = row.get("date")
        if not day:
            continue
        bucket = by_date.setdefault(day, {
            "calls": 0.0, "meetings": 0.0, "contracts": 0.0, "closing": 0.0,
            "conversion_total": 0.0, "count": 0,
        })
        bucket["calls"] += numeric_or_zero(row.get("calls"))
        bucket["meetings"] += numeric_or_zero(row.get("meetings_completed"))
        bucket["contracts"] += numeric_or_zero(row.get("contracts_generated"))
        bucket["closing"] += numeric_or_zero(row.get("closing"))
        bucket["conversion_total"] += numeric_or_zero(row.get("conversion_rate"))
        bucket["count"] += 1

    trend = []
    for day in sorted(by_date):
        b = by_date[day]
        trend.append({
            "date": day,
            "calls": b["calls"],
            "meetings": b["meetings"],
            "contracts": b["contracts"],
            "closing": b["closing"],
            "avg_conversion_rate": safe_div(b["conversion_total"], b["count"]),
            "records": b["count"],
        })
    return trend
