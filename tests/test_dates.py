from __future__ import annotations

from datetime import date, datetime

from fieldsched.domain import dates


def test_normalize_accepts_common_inputs():
    d = date(2024, 1, 15)
    assert dates.normalize(d) == d
    assert dates.normalize(datetime(2024, 1, 15, 13, 45)) == d
    assert dates.normalize("2024-01-15") == d
    assert dates.normalize("2024-01-15T13:45:00") == d
    assert dates.normalize("01/15/2024") == d
    assert dates.normalize("Jan 15, 2024") == d
    assert dates.normalize(1705276800000) == d  # 2024-01-15T00:00:00Z, in milliseconds
    assert dates.normalize(1704153600000) == date(2024, 1, 2)


def test_normalize_rejects_garbage():
    for bad in (None, "", "   ", "not a date", "2024-13-45", True, object()):
        assert dates.normalize(bad) is None


def test_normalize_is_idempotent():
    samples = [date(2024, 2, 29), datetime(2023, 12, 31, 23, 59), "2024-07-04", "07/04/2024", 1705276800000, "nope", None]
    for x in samples:
        once = dates.normalize(x)
        assert dates.normalize(once) == once


def test_calculate_quarter():
    assert dates.calculate_quarter(date(2024, 2, 10)) == "Q1 2024"
    assert dates.calculate_quarter(date(2024, 3, 31)) == "Q1 2024"
    assert dates.calculate_quarter(date(2024, 4, 1)) == "Q2 2024"
    assert dates.calculate_quarter("2024-09-30") == "Q3 2024"
    assert dates.calculate_quarter(date(2024, 12, 31)) == "Q4 2024"
    assert dates.calculate_quarter("garbage") == ""


def test_format_date_never_raises():
    assert dates.format_date(date(2024, 1, 5)) == "01/05/2024"
    assert dates.format_date("2024-01-05", "%Y-%m-%d") == "2024-01-05"
    assert dates.format_date(None) == ""
    assert dates.format_date("???") == ""


def test_day_number_is_case_insensitive():
    assert dates.day_number("monday") == 0
    assert dates.day_number(" Sunday ") == 6
    assert dates.day_number("funday") is None
    assert dates.day_number(None) is None


def test_clamp_window_end():
    today = date(2024, 3, 1)

    d, msg = dates.clamp_window_end("2024-04-15", as_of=today)
    assert d == date(2024, 4, 15)
    assert msg is None

    d, msg = dates.clamp_window_end("2020-01-01", as_of=today)
    assert d == today
    assert "overdue" in msg.lower()

    d, msg = dates.clamp_window_end("whenever", as_of=today)
    assert d == today
    assert msg
