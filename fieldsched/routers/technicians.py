# fieldsched/routers/technicians.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..auth import Operator, get_operator
from ..db import get_db
from ..domain.audit import audit_write, changed_fields, row_snapshot
from ..models import Technician
from ..schemas import TechnicianCreate, TechnicianOut
from ..services.lookups import must_get_technician

router = APIRouter(prefix="/technicians", tags=["technicians"])

TECHNICIAN_FIELDS = ("name", "phone", "email", "is_active")


@router.post("", response_model=TechnicianOut, status_code=201)
def create_technician(payload: TechnicianCreate, db: Session = Depends(get_db), op: Operator = Depends(get_operator)):
    tech = Technician(**payload.model_dump())
    db.add(tech)
    db.flush()

    audit_write(
        db,
        actor=op.performed_by,
        action="technician.create",
        entity_type="Technician",
        entity_id=tech.id,
        after=row_snapshot(tech, TECHNICIAN_FIELDS),
    )
    db.commit()
    db.refresh(tech)
    return tech


@router.get("", response_model=list[TechnicianOut])
def list_technicians(
    include_inactive: bool = Query(default=False),
    db: Session = Depends(get_db),
):
    q = select(Technician).order_by(Technician.name.asc(), Technician.id.asc())
    if not include_inactive:
        q = q.where(Technician.is_active.is_(True))
    return list(db.scalars(q).all())


@router.get("/{technician_id}", response_model=TechnicianOut)
def get_technician(technician_id: int, db: Session = Depends(get_db)):
    return must_get_technician(db, technician_id=technician_id)


@router.patch("/{technician_id}", response_model=TechnicianOut)
def update_technician(
    technician_id: int,
    payload: TechnicianCreate,
    db: Session = Depends(get_db),
    op: Operator = Depends(get_operator),
):
    tech = must_get_technician(db, technician_id=technician_id)
    before = row_snapshot(tech, TECHNICIAN_FIELDS)

    for k, v in payload.model_dump().items():
        setattr(tech, k, v)
    db.flush()

    old, new = changed_fields(before, row_snapshot(tech, TECHNICIAN_FIELDS))
    if new:
        audit_write(
            db,
            actor=op.performed_by,
            action="technician.update",
            entity_type="Technician",
            entity_id=tech.id,
            before=old,
            after=new,
        )
    db.commit()
    db.refresh(tech)
    return tech


@router.delete("/{technician_id}")
def deactivate_technician(technician_id: int, db: Session = Depends(get_db), op: Operator = Depends(get_operator)):
    tech = must_get_technician(db, technician_id=technician_id)
    was_active = tech.is_active
    tech.is_active = False
    audit_write(
        db,
        actor=op.performed_by,
        action="technician.deactivate",
        entity_type="Technician",
        entity_id=tech.id,
        before={"is_active": was_active},
        after={"is_active": False},
    )
    db.commit()
    return {"ok": True}
