# fieldsched/cli/seed_demo.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ..db import SessionLocal
from ..domain import dates
from ..models import JobSite, RecurringService


@dataclass(frozen=True)
class SeedResult:
    job_site_ids: list[int]
    service_ids: list[int]


DEMO_SITES = (
    # name, street_number, street, city, zip, county
    ("Maple Creek Apartments", "1200", "Maple Creek Rd", "Xenia", "45385", "Greene"),
    ("Riverside Diner", "88", "E Main St", "Springfield", "45502", "Clark"),
    ("Hilltop Elementary", "415", "Hilltop Dr", "Beavercreek", "45434", "Greene"),
)

DEMO_SERVICES = (
    # site index, service type, frequency, days since last service, day constraint, priority, manifest county
    (0, "Septic Pumping", "Every 3 months", 80, None, 1, "Greene"),
    (1, "Grease Trap Cleaning", "Every 4 weeks", 40, "Tuesday", 2, None),
    (2, "Lift Station Inspection", "weekly", 9, None, 0, None),
    (2, "Septic Pumping", "Annually", 300, None, 0, "Greene"),
)


def _get_or_create_site(db: Session, row: tuple) -> JobSite:
    name, street_number, street, city, zip_code, county = row
    site = db.query(JobSite).filter(JobSite.name == name).one_or_none()
    if site:
        return site
    site = JobSite(name=name, street_number=street_number, street=street, city=city, zip=zip_code, county=county)
    db.add(site)
    db.commit()
    db.refresh(site)
    return site


def _get_or_create_service(db: Session, site: JobSite, row: tuple, today: date) -> RecurringService:
    _, service_type, frequency, days_ago, day_constraint, priority, manifest_county = row
    svc = (
        db.query(RecurringService)
        .filter(RecurringService.job_site_id == site.id, RecurringService.service_type == service_type)
        .one_or_none()
    )
    if svc:
        return svc
    svc = RecurringService(
        job_site_id=int(site.id),
        service_type=service_type,
        frequency=frequency,
        last_service_date=today - timedelta(days=days_ago),
        day_constraint=day_constraint,
        priority=priority,
        manifest_county=manifest_county,
    )
    db.add(svc)
    db.commit()
    db.refresh(svc)
    return svc


def seed_demo(*, as_of: Optional[date] = None) -> SeedResult:
    """Idempotent: re-running finds the existing rows by name."""
    today = as_of or dates.today()
    db = SessionLocal()
    try:
        sites = [_get_or_create_site(db, row) for row in DEMO_SITES]
        services = [_get_or_create_service(db, sites[row[0]], row, today) for row in DEMO_SERVICES]
        return SeedResult(
            job_site_ids=[int(s.id) for s in sites],
            service_ids=[int(s.id) for s in services],
        )
    finally:
        db.close()
