# fieldsched/routers/job_sites.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..auth import Operator, get_operator
from ..db import get_db
from ..domain.audit import audit_write, changed_fields, row_snapshot
from ..models import JobSite
from ..schemas import JobSiteCreate, JobSiteOut
from ..services.lookups import active_services_at, must_get_job_site

router = APIRouter(prefix="/job-sites", tags=["job-sites"])

SITE_FIELDS = ("name", "street_number", "street", "city", "zip", "county", "latitude", "longitude", "is_active")


@router.post("", response_model=JobSiteOut)
def create_job_site(payload: JobSiteCreate, db: Session = Depends(get_db), op: Operator = Depends(get_operator)):
    site = JobSite(**payload.model_dump())
    db.add(site)
    db.flush()

    audit_write(
        db,
        actor=op.performed_by,
        action="job_site.create",
        entity_type="JobSite",
        entity_id=site.id,
        after=row_snapshot(site, SITE_FIELDS),
    )
    db.commit()
    db.refresh(site)
    return site


@router.get("", response_model=list[JobSiteOut])
def list_job_sites(
    q: str | None = Query(default=None, description="name contains"),
    county: str | None = Query(default=None),
    include_inactive: bool = Query(default=False),
    limit: int = Query(default=500, ge=1, le=5000),
    db: Session = Depends(get_db),
):
    stmt = select(JobSite).order_by(JobSite.name.asc(), JobSite.id.asc())
    if not include_inactive:
        stmt = stmt.where(JobSite.is_active.is_(True))
    if q:
        stmt = stmt.where(JobSite.name.ilike(f"%{q.strip()}%"))
    if county:
        stmt = stmt.where(JobSite.county == county.strip())
    return list(db.scalars(stmt.limit(limit)).all())


@router.get("/{job_site_id}", response_model=JobSiteOut)
def get_job_site(job_site_id: int, db: Session = Depends(get_db)):
    return must_get_job_site(db, job_site_id=job_site_id)


@router.patch("/{job_site_id}", response_model=JobSiteOut)
def update_job_site(
    job_site_id: int,
    payload: JobSiteCreate,
    db: Session = Depends(get_db),
    op: Operator = Depends(get_operator),
):
    """Full replace of the address fields. The audit row keeps only what changed."""
    site = must_get_job_site(db, job_site_id=job_site_id)
    before = row_snapshot(site, SITE_FIELDS)

    for k, v in payload.model_dump().items():
        setattr(site, k, v)
    db.flush()

    old, new = changed_fields(before, row_snapshot(site, SITE_FIELDS))
    if new:
        audit_write(
            db,
            actor=op.performed_by,
            action="job_site.update",
            entity_type="JobSite",
            entity_id=site.id,
            before=old,
            after=new,
        )
    db.commit()
    db.refresh(site)
    return site


@router.delete("/{job_site_id}")
def deactivate_job_site(job_site_id: int, db: Session = Depends(get_db), op: Operator = Depends(get_operator)):
    """
    Soft delete. The site's active services are deactivated with it so
    nothing keeps projecting onto a closed site; history stays addressable.
    """
    site = must_get_job_site(db, job_site_id=job_site_id)
    services = active_services_at(db, job_site_id=site.id)

    for svc in services:
        svc.is_active = False
        audit_write(
            db,
            actor=op.performed_by,
            action="service.deactivate",
            entity_type="RecurringService",
            entity_id=svc.id,
            before={"is_active": True},
            after={"is_active": False, "via_job_site": site.id},
        )

    was_active = site.is_active
    site.is_active = False
    audit_write(
        db,
        actor=op.performed_by,
        action="job_site.deactivate",
        entity_type="JobSite",
        entity_id=site.id,
        before={"is_active": was_active},
        after={"is_active": False, "services_deactivated": [s.id for s in services]},
    )
    db.commit()
    return {"ok": True, "services_deactivated": [s.id for s in services]}
