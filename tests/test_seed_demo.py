from __future__ import annotations

from datetime import date

from fieldsched.cli.seed_demo import DEMO_SERVICES, DEMO_SITES, seed_demo
from fieldsched.db import SessionLocal
from fieldsched.services.schedule_service import project_pending


def test_seed_demo_is_idempotent():
    first = seed_demo(as_of=date(2024, 1, 20))
    again = seed_demo(as_of=date(2024, 1, 20))
    assert first == again
    assert len(first.job_site_ids) == len(DEMO_SITES)
    assert len(first.service_ids) == len(DEMO_SERVICES)


def test_seeded_services_all_project():
    result = seed_demo(as_of=date(2024, 1, 20))
    db = SessionLocal()
    try:
        report = project_pending(db, None, None, as_of=date(2024, 1, 20))
        assert report.skipped_service_ids == []
        projected = {i.service_id for i in report.instances}
        assert projected <= set(result.service_ids)
        assert len(projected) >= 3
    finally:
        db.close()
