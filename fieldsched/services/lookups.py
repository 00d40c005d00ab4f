# fieldsched/services/lookups.py
from __future__ import annotations

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from ..models import JobSite, RecurringService, Technician


def must_get_job_site(db: Session, *, job_site_id: int, require_active: bool = False) -> JobSite:
    row = db.get(JobSite, int(job_site_id))
    if row is None:
        raise HTTPException(status_code=404, detail=f"job site {job_site_id} not found")
    if require_active and not row.is_active:
        raise HTTPException(status_code=409, detail=f"job site {job_site_id} is inactive")
    return row


def must_get_technician(db: Session, *, technician_id: int) -> Technician:
    row = db.get(Technician, int(technician_id))
    if row is None:
        raise HTTPException(status_code=404, detail=f"technician {technician_id} not found")
    return row


def must_get_service(db: Session, *, service_id: int) -> RecurringService:
    row = db.scalar(
        select(RecurringService)
        .options(selectinload(RecurringService.job_site))
        .where(RecurringService.id == int(service_id))
    )
    if row is None:
        raise HTTPException(status_code=404, detail=f"service {service_id} not found")
    return row


def active_services_at(db: Session, *, job_site_id: int) -> list[RecurringService]:
    return list(
        db.scalars(
            select(RecurringService)
            .where(RecurringService.job_site_id == int(job_site_id))
            .where(RecurringService.is_active.is_(True))
            .order_by(RecurringService.id.asc())
        ).all()
    )
