# fieldsched/routers/services.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..auth import Operator, get_operator
from ..db import get_db
from ..domain.audit import audit_write, changed_fields, row_snapshot
from ..domain.recurrence import frequency_options
from ..models import RecurringService
from ..schemas import RecurringServiceCreate, RecurringServiceOut
from ..services.action_processor import SERVICE_SNAPSHOT_FIELDS
from ..services.lookups import must_get_job_site, must_get_service

router = APIRouter(prefix="/services", tags=["services"])

SERVICE_FIELDS = SERVICE_SNAPSHOT_FIELDS + (
    "job_site_id",
    "service_type",
    "time_constraint",
    "notes",
    "office_notes",
    "priority",
    "manifest_county",
)


@router.get("/frequencies")
def list_frequencies():
    return {"frequencies": frequency_options()}


@router.post("", response_model=RecurringServiceOut)
def create_service(
    payload: RecurringServiceCreate,
    db: Session = Depends(get_db),
    op: Operator = Depends(get_operator),
):
    must_get_job_site(db, job_site_id=payload.job_site_id, require_active=True)

    svc = RecurringService(**payload.model_dump())
    db.add(svc)
    db.flush()

    audit_write(
        db,
        actor=op.performed_by,
        action="service.create",
        entity_type="RecurringService",
        entity_id=svc.id,
        after=row_snapshot(svc, SERVICE_FIELDS),
    )
    db.commit()
    db.refresh(svc)
    return svc


@router.get("", response_model=list[RecurringServiceOut])
def list_services(
    job_site_id: int | None = Query(default=None),
    frequency: str | None = Query(default=None),
    include_inactive: bool = Query(default=False),
    limit: int = Query(default=500, ge=1, le=5000),
    db: Session = Depends(get_db),
):
    q = select(RecurringService).order_by(RecurringService.id.asc())
    if job_site_id is not None:
        q = q.where(RecurringService.job_site_id == job_site_id)
    if frequency:
        q = q.where(RecurringService.frequency == frequency)
    if not include_inactive:
        q = q.where(RecurringService.is_active.is_(True))
    return list(db.scalars(q.limit(limit)).all())


@router.get("/{service_id}", response_model=RecurringServiceOut)
def get_service(service_id: int, db: Session = Depends(get_db)):
    return must_get_service(db, service_id=service_id)


@router.patch("/{service_id}", response_model=RecurringServiceOut)
def update_service(
    service_id: int,
    payload: RecurringServiceCreate,
    db: Session = Depends(get_db),
    op: Operator = Depends(get_operator),
):
    svc = must_get_service(db, service_id=service_id)
    if payload.job_site_id != svc.job_site_id:
        must_get_job_site(db, job_site_id=payload.job_site_id, require_active=True)
    before = row_snapshot(svc, SERVICE_FIELDS)

    for k, v in payload.model_dump().items():
        setattr(svc, k, v)
    db.flush()

    old, new = changed_fields(before, row_snapshot(svc, SERVICE_FIELDS))
    if new:
        audit_write(
            db,
            actor=op.performed_by,
            action="service.update",
            entity_type="RecurringService",
            entity_id=svc.id,
            before=old,
            after=new,
        )
    db.commit()
    db.refresh(svc)
    return svc


@router.delete("/{service_id}")
def deactivate_service(service_id: int, db: Session = Depends(get_db), op: Operator = Depends(get_operator)):
    # soft delete: the ledger keeps pointing at it
    svc = must_get_service(db, service_id=service_id)
    was_active = svc.is_active
    svc.is_active = False
    audit_write(
        db,
        actor=op.performed_by,
        action="service.deactivate",
        entity_type="RecurringService",
        entity_id=svc.id,
        before={"is_active": was_active},
        after={"is_active": False},
    )
    db.commit()
    return {"ok": True}
