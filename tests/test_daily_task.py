from __future__ import annotations

from datetime import date

from fieldsched.db import SessionLocal
from fieldsched.workers.schedule_tasks import daily_projection


def test_daily_projection_reports_counts(mk_service):
    db = SessionLocal()
    try:
        mk_service(db, last_service_date=date(2024, 1, 1))
        bad = mk_service(db, frequency="fortnightly", site_name="Broken")
    finally:
        db.close()

    out = daily_projection("2024-01-20")
    assert out["ok"] is True
    assert out["as_of"] == "2024-01-20"
    # weekly from 2024-01-01 through 2024-03-05
    assert out["pending"] == 9
    assert out["overdue"] == 2
    assert out["skipped_services"] == [bad.id]


def test_daily_projection_with_no_services():
    out = daily_projection(as_of="2024-01-20")
    assert (out["pending"], out["overdue"], out["skipped_services"]) == (0, 0, [])
