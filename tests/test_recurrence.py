from __future__ import annotations

from datetime import date, timedelta

import pytest

from fieldsched.domain import recurrence
from fieldsched.domain.errors import ProjectionError
from fieldsched.domain.recurrence import (
    FREQUENCY_DAYS,
    frequency_to_days,
    next_occurrence,
    project_sequence,
)


def test_frequency_table_and_aliases():
    assert frequency_to_days("weekly") == 7
    assert frequency_to_days("every-2-weeks") == 14
    assert frequency_to_days("Every 4 weeks") == 28
    assert frequency_to_days("EVERY 8 WEEKS") == 56
    assert frequency_to_days("every_3_months") == 90
    assert frequency_to_days("Every 4 months") == 120
    assert frequency_to_days("every-6-months") == 180
    assert frequency_to_days("annually") == 365
    assert frequency_to_days("fortnightly") is None
    assert frequency_to_days(None) is None


def test_weekly_examples():
    # Monday + 7 -> Monday
    assert next_occurrence(date(2024, 1, 1), "weekly") == date(2024, 1, 8)
    # Friday + 7 -> Friday
    assert next_occurrence(date(2024, 1, 5), "weekly") == date(2024, 1, 12)
    # Saturday + 7 -> Saturday -> back to Friday
    assert next_occurrence(date(2024, 1, 6), "weekly") == date(2024, 1, 12)
    # Sunday + 7 -> Sunday -> forward to Monday
    assert next_occurrence(date(2024, 1, 7), "weekly") == date(2024, 1, 15)


def test_next_occurrence_accepts_strings_and_rejects_unknowns():
    assert next_occurrence("2024-01-01", "weekly") == date(2024, 1, 8)
    assert next_occurrence("garbage", "weekly") is None
    assert next_occurrence(date(2024, 1, 1), "sometimes") is None


def test_day_constraint_only_moves_later():
    # Monday + 7 = Monday 01-08, walk forward to Wednesday
    assert next_occurrence(date(2024, 1, 1), "weekly", "Wednesday") == date(2024, 1, 10)
    # already on the constrained day
    assert next_occurrence(date(2024, 1, 1), "weekly", "monday") == date(2024, 1, 8)


def test_weekend_day_constraint_is_still_moved_off_the_weekend():
    # Saturday constraint resolves to Sat 01-13, weekend avoidance then yields Friday
    assert next_occurrence(date(2024, 1, 1), "weekly", "Saturday") == date(2024, 1, 12)
    # Sunday constraint -> Monday
    assert next_occurrence(date(2024, 1, 1), "weekly", "Sunday") == date(2024, 1, 15)


def test_avoid_weekend():
    assert recurrence.avoid_weekend(date(2024, 1, 6)) == date(2024, 1, 5)  # Sat -> Fri
    assert recurrence.avoid_weekend(date(2024, 1, 7)) == date(2024, 1, 8)  # Sun -> Mon
    assert recurrence.avoid_weekend(date(2024, 1, 3)) == date(2024, 1, 3)


def test_next_occurrence_never_lands_on_a_weekend():
    start = date(2024, 1, 1)
    for offset in range(0, 120):
        base = start + timedelta(days=offset)
        for freq in FREQUENCY_DAYS:
            d = next_occurrence(base, freq)
            assert d.weekday() < 5, (base, freq, d)


def test_project_sequence_is_strictly_increasing_and_bounded():
    horizon = date(2024, 6, 30)
    for freq in ("weekly", "Every 2 weeks", "Every 4 weeks", "Every 3 months"):
        for start in (date(2024, 1, 5), date(2024, 1, 6), date(2024, 1, 7)):
            seq = project_sequence(start, freq, None, horizon)
            assert seq, (freq, start)
            assert all(a < b for a, b in zip(seq, seq[1:]))
            assert seq[0] > start
            assert seq[-1] <= horizon


def test_project_sequence_includes_horizon_end():
    assert project_sequence(date(2024, 1, 1), "weekly", None, date(2024, 1, 15)) == [
        date(2024, 1, 8),
        date(2024, 1, 15),
    ]
    assert project_sequence(date(2024, 1, 1), "weekly", None, date(2024, 1, 7)) == []


def test_project_sequence_with_day_constraint():
    seq = project_sequence(date(2024, 1, 1), "Every 2 weeks", "Thursday", date(2024, 2, 29))
    assert seq
    assert all(d.weekday() == 3 for d in seq)


def test_project_sequence_errors():
    with pytest.raises(ProjectionError):
        project_sequence(date(2024, 1, 1), "fortnightly", None, date(2024, 3, 1))
    with pytest.raises(ProjectionError):
        project_sequence("not a date", "weekly", None, date(2024, 3, 1))


def test_project_sequence_stops_when_no_progress(monkeypatch):
    monkeypatch.setattr(recurrence, "next_occurrence", lambda *a, **k: date(2024, 1, 1))
    with pytest.raises(ProjectionError) as exc:
        project_sequence(date(2024, 1, 1), "weekly", None, date(2024, 3, 1), service_id=7)
    assert exc.value.service_id == 7
