# fieldsched/domain/dates.py
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo

from ..config import settings

# Accepted string layouts, tried in order after ISO parsing.
_DATE_FORMATS = ("%m/%d/%Y", "%m/%d/%y", "%Y/%m/%d", "%m-%d-%Y", "%b %d, %Y", "%B %d, %Y")

_DAY_NUMBERS = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}

SATURDAY = 5
SUNDAY = 6


def _parse_string(s: str) -> Optional[date]:
    s = s.strip()
    if not s:
        return None
    # ISO date or datetime: the calendar day is the leading YYYY-MM-DD
    if len(s) >= 10 and s[4] == "-" and s[7] == "-":
        try:
            return date.fromisoformat(s[:10])
        except ValueError:
            return None
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    return None


def normalize(value: Any) -> Optional[date]:
    """
    Canonical calendar day for a date-like value, or None.

    Accepts date, datetime (time-of-day dropped), ISO / US-style strings and
    numeric epoch timestamps in milliseconds. normalize(normalize(x)) == normalize(x).
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return _parse_string(value)
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(float(value) / 1000.0, tz=timezone.utc).date()
        except (OverflowError, OSError, ValueError):
            return None
    return None


def today() -> date:
    return datetime.now(ZoneInfo(settings.timezone)).date()


def calculate_quarter(value: Any) -> str:
    """'Q1 2024' style label; '' for unparseable input."""
    d = normalize(value)
    if d is None:
        return ""
    month_index = d.month - 1  # 0-11
    return f"Q{month_index // 3 + 1} {d.year}"


def format_date(value: Any, pattern: str = "%m/%d/%Y") -> str:
    d = normalize(value)
    if d is None:
        return ""
    try:
        return d.strftime(pattern)
    except (ValueError, TypeError):
        return ""


def day_number(day_name: Any) -> Optional[int]:
    """Weekday index (Monday=0) for a day name, None if unknown."""
    if not isinstance(day_name, str):
        return None
    return _DAY_NUMBERS.get(day_name.strip().lower())


def clamp_window_end(requested: Any, *, as_of: Optional[date] = None) -> tuple[date, Optional[str]]:
    """
    Upper bound for a Service Manager view.

    The view always includes every overdue instance, so an end date in the
    past (or an unparseable one) is raised to today with a message.
    """
    t = as_of or today()
    d = normalize(requested)
    if d is None:
        return t, "Invalid date format. Using today's date."
    if d < t:
        return t, (
            f"Date adjusted to today ({format_date(t)}). "
            "The Service Manager always shows ALL overdue services."
        )
    return d, None
