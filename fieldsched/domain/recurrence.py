# fieldsched/domain/recurrence.py
from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Optional

from . import dates
from .errors import ProjectionError

# Canonical labels (as operators see them) -> interval in days.
FREQUENCY_DAYS: dict[str, int] = {
    "weekly": 7,
    "Every 2 weeks": 14,
    "Every 4 weeks": 28,
    "Every 8 weeks": 56,
    "Every 3 months": 90,
    "Every 4 months": 120,
    "Every 6 months": 180,
    "Annually": 365,
}


def _key(s: str) -> str:
    return " ".join(s.replace("-", " ").replace("_", " ").lower().split())


_BY_KEY: dict[str, str] = {_key(label): label for label in FREQUENCY_DAYS}


def frequency_options() -> list[str]:
    return list(FREQUENCY_DAYS)


def canonical_frequency(frequency: Any) -> Optional[str]:
    """Canonical label for 'every-2-weeks', 'EVERY 2 WEEKS', ...; None if unknown."""
    if not isinstance(frequency, str):
        return None
    return _BY_KEY.get(_key(frequency))


def frequency_to_days(frequency: Any) -> Optional[int]:
    label = canonical_frequency(frequency)
    return FREQUENCY_DAYS[label] if label else None


def avoid_weekend(d: date) -> date:
    """Saturday -> Friday, Sunday -> Monday."""
    wd = d.weekday()
    if wd == dates.SATURDAY:
        return d - timedelta(days=1)
    if wd == dates.SUNDAY:
        return d + timedelta(days=1)
    return d


def next_occurrence(last_date: Any, frequency: Any, day_constraint: Optional[str] = None) -> Optional[date]:
    """
    Next due date after last_date.

    1. base + frequency days
    2. day_constraint (weekday name): walk forward until the weekday matches
    3. weekend avoidance, applied unconditionally. A Saturday/Sunday
       constraint is therefore moved off the weekend as well.
    """
    base = dates.normalize(last_date)
    n_days = frequency_to_days(frequency)
    if base is None or n_days is None:
        return None

    nxt = base + timedelta(days=n_days)

    target = dates.day_number(day_constraint) if day_constraint else None
    if target is not None:
        while nxt.weekday() != target:
            nxt += timedelta(days=1)

    return avoid_weekend(nxt)


def project_sequence(
    start_date: Any,
    frequency: Any,
    day_constraint: Optional[str],
    horizon_end: date,
    *,
    service_id: Optional[int] = None,
) -> list[date]:
    """
    Occurrences after start_date up to and including horizon_end, ascending.

    Recomputed on every call. Raises ProjectionError when the frequency is
    unknown, the start is unparseable, or an occurrence fails to advance.
    """
    current = dates.normalize(start_date)
    if current is None:
        raise ProjectionError(service_id, f"unparseable start date {start_date!r}")
    if frequency_to_days(frequency) is None:
        raise ProjectionError(service_id, f"unknown frequency {frequency!r}")

    out: list[date] = []
    while True:
        try:
            nxt = next_occurrence(current, frequency, day_constraint)
        except OverflowError:
            raise ProjectionError(service_id, f"date out of range after {current.isoformat()}") from None
        if nxt is None:
            raise ProjectionError(service_id, "next occurrence could not be computed")
        if nxt <= current:
            raise ProjectionError(service_id, f"projection did not advance past {current.isoformat()}")
        if nxt > horizon_end:
            break
        out.append(nxt)
        current = nxt
    return out
