"""
Utility functions for the GS Performance Dashboard.
Value coercion, timestamp parsing and user-key helpers shared by the
aggregator, normalizer and read-side views.

Usage:
    from scripts.lib.utils import numeric_or_zero, parse_ts, normalize_name_key
"""
import math
import re
from datetime import date, datetime, timezone
from typing import Any, Optional

_WHITESPACE = re.compile(r"\s+")


def numeric_or_zero(val: Any) -> float:
    """
    Coerce a value to a finite float.

    None, empty strings, unparsable text, NaN and infinities all become 0,
    so nothing non-numeric ever reaches a persisted row.
    """
    if val is None or isinstance(val, bool):
        return float(val or 0)
    try:
        num = float(val)
    except (ValueError, TypeError):
        return 0.0
    if math.isnan(num) or math.isinf(num):
        return 0.0
    return num


def int_or_zero(val: Any) -> int:
    """Integer version of numeric_or_zero (truncates toward zero)."""
    return int(numeric_or_zero(val))


def safe_div(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Zero-safe division."""
    if not denominator:
        return default
    return numerator / denominator


def parse_ts(val: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string (or epoch seconds/ms) into an aware datetime."""
    if val is None or val == "":
        return None
    if isinstance(val, datetime):
        return val if val.tzinfo else val.replace(tzinfo=timezone.utc)
    if isinstance(val, (int, float)) and not isinstance(val, bool):
        try:
            ts = val / 1000 if val > 1e12 else val
            return datetime.fromtimestamp(ts, tz=timezone.utc)
        except (ValueError, OverflowError, OSError):
            return None
    if not isinstance(val, str):
        return None
    try:
        parsed = datetime.fromisoformat(val.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def hours_between(start: Any, end: Any) -> Optional[float]:
    """Elapsed hours from start to end, or None if either is unparsable."""
    s, e = parse_ts(start), parse_ts(end)
    if s is None or e is None:
        return None
    return (e - s).total_seconds() / 3600.0


def normalize_name_key(name: Optional[str]) -> str:
    """Fallback user key: lowercase, whitespace runs replaced by underscores."""
    return _WHITESPACE.sub("_", (name or "").strip().lower())


def today_str() -> str:
    """Today's date in the operator's wall-clock, as YYYY-MM-DD."""
    return date.today().isoformat()


def now_iso() -> str:
    """Current UTC time as an ISO string."""
    return datetime.now(timezone.utc).isoformat()
