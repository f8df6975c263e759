# backend/services/time_window.py
"""
Relative (lookback) and absolute (range) time windows in epoch milliseconds.

Lookback: "<int><unit>", e.g. "5d", "2h", "3months". Resolves to an upper bound
only: it selects logs *at or before* now minus the window, which is what purge
uses to delete anything older than the window.

Range: "<start> to <end>", each side "YYYY-MM-DD" or "YYYY-MM-DD-HH:mm:ss" (UTC).
A date-only start is floored to 00:00:00.000 and a date-only end ceiled to
23:59:59.999.
"""
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Tuple

from dateutil.relativedelta import relativedelta

from services.errors import InputError

LOOKBACK_PATTERN = re.compile(r"^(\d+)([a-z]+)$", re.IGNORECASE)
DATE_ONLY_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
DATE_TIME_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}-\d{2}:\d{2}:\d{2}$")

UNIT_ALIASES: Dict[str, str] = {
    "s": "seconds", "sec": "seconds", "second": "seconds", "seconds": "seconds",
    "m": "minutes", "min": "minutes", "minute": "minutes", "minutes": "minutes",
    "h": "hours", "hr": "hours", "hour": "hours", "hours": "hours",
    "d": "days", "day": "days", "days": "days",
    "w": "weeks", "week": "weeks", "weeks": "weeks",
    "month": "months", "months": "months",
    "y": "years", "yr": "years", "year": "years", "years": "years",
}


@dataclass(frozen=True)
class TimeBounds:
    min_timestamp_ms: Optional[int] = None
    max_timestamp_ms: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return self.min_timestamp_ms is None and self.max_timestamp_ms is None


def to_epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def parse_lookback(lookback_time: str, now: Optional[datetime] = None) -> Optional[int]:
    match = LOOKBACK_PATTERN.match(lookback_time.strip())
    if not match:
        return None

    value = int(match.group(1))
    unit = UNIT_ALIASES.get(match.group(2).lower())
    if unit is None:
        return None

    now = now or datetime.now(timezone.utc)
    try:
        # relativedelta clamps month/year arithmetic to the last valid day
        return to_epoch_ms(now - relativedelta(**{unit: value}))
    except (ValueError, OverflowError):
        return None


def _parse_range_side(text: str, is_end: bool) -> Optional[datetime]:
    try:
        if DATE_TIME_PATTERN.match(text):
            return datetime.strptime(text, "%Y-%m-%d-%H:%M:%S").replace(tzinfo=timezone.utc)
        if DATE_ONLY_PATTERN.match(text):
            day = datetime.strptime(text, "%Y-%m-%d").replace(tzinfo=timezone.utc)
            if is_end:
                return day + timedelta(days=1) - timedelta(milliseconds=1)
            return day
    except ValueError:
        return None
    return None


def parse_time_range(time_range: str) -> Optional[Tuple[int, int]]:
    parts = [part.strip() for part in time_range.split(" to ")]
    if len(parts) != 2:
        return None

    start = _parse_range_side(parts[0], is_end=False)
    end = _parse_range_side(parts[1], is_end=True)
    if start is None or end is None or start > end:
        return None

    return to_epoch_ms(start), to_epoch_ms(end)


def parse_time_filters(
    lookback_time: Optional[str] = None,
    time_range: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Optional[TimeBounds]:
    """Returns None on any parse failure, an empty TimeBounds when nothing is given."""
    if lookback_time and time_range:
        return None

    if lookback_time:
        threshold = parse_lookback(lookback_time, now=now)
        if threshold is None:
            return None
        return TimeBounds(max_timestamp_ms=threshold)

    if time_range:
        bounds = parse_time_range(time_range)
        if bounds is None:
            return None
        return TimeBounds(min_timestamp_ms=bounds[0], max_timestamp_ms=bounds[1])

    return TimeBounds()


def require_time_filters(
    lookback_time: Optional[str] = None,
    time_range: Optional[str] = None,
    now: Optional[datetime] = None,
) -> TimeBounds:
    """parse_time_filters for callers that report failures to the client."""
    if lookback_time and time_range:
        raise InputError("lookbackTime and timeRange cannot both be specified")

    bounds = parse_time_filters(lookback_time, time_range, now=now)
    if bounds is None:
        raise InputError(
            "Invalid time filter",
            detail="Use a lookback like '5d' or a range like 'YYYY-MM-DD to YYYY-MM-DD'",
        )
    return bounds
