# tests/conftest.py
from __future__ import annotations

import os
import tempfile

# must be set before fieldsched.config is imported
_DB_DIR = tempfile.mkdtemp(prefix="fieldsched-tests-")
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(_DB_DIR, "test.db")
os.environ["APP_ENV"] = "local"
os.environ["AUTH_MODE"] = "dev"

from datetime import date

import pytest

from fieldsched.db import Base, engine, init_db
from fieldsched.models import JobSite, RecurringService

init_db()


@pytest.fixture(autouse=True)
def _clean_tables():
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())
    yield


@pytest.fixture
def mk_service():
    """Factory: job site + recurring service, committed."""

    def _mk(
        db,
        *,
        frequency: str = "weekly",
        last_service_date: date | None = date(2024, 1, 1),
        day_constraint: str | None = None,
        priority: int = 0,
        manifest_county: str | None = None,
        site_name: str = "Maple Creek Apartments",
        county: str = "Greene",
        service_type: str = "Septic Pumping",
        is_active: bool = True,
    ) -> RecurringService:
        site = JobSite(name=site_name, street_number="1200", street="Maple Creek Rd", city="Xenia", zip="45385", county=county)
        db.add(site)
        db.commit()
        db.refresh(site)

        svc = RecurringService(
            job_site_id=site.id,
            service_type=service_type,
            frequency=frequency,
            last_service_date=last_service_date,
            day_constraint=day_constraint,
            priority=priority,
            manifest_county=manifest_county,
            is_active=is_active,
        )
        db.add(svc)
        db.commit()
        db.refresh(svc)
        return svc

    return _mk
