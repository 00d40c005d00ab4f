# fieldsched/routers/audit.py
from __future__ import annotations

from datetime import date, datetime, time

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from ..db import get_db
from ..domain.audit import BATCH_ENTITY
from ..models import AuditEvent
from ..schemas import AuditEventOut

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("", response_model=list[AuditEventOut])
def list_audit(
    entity_type: str | None = Query(default=None),
    entity_id: str | None = Query(default=None),
    action: str | None = Query(default=None, description="exact action, or a prefix ending in '.' such as 'service.'"),
    actor: str | None = Query(default=None),
    since: date | None = Query(default=None, description="rows created on or after this day (UTC)"),
    limit: int = Query(default=200, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """Newest first."""
    q = select(AuditEvent).order_by(desc(AuditEvent.id))
    if entity_type:
        q = q.where(AuditEvent.entity_type == entity_type)
    if entity_id:
        q = q.where(AuditEvent.entity_id == entity_id)
    if action:
        q = q.where(AuditEvent.action.startswith(action) if action.endswith(".") else AuditEvent.action == action)
    if actor:
        q = q.where(AuditEvent.actor == actor.strip())
    if since:
        q = q.where(AuditEvent.created_at >= datetime.combine(since, time.min))
    return list(db.scalars(q.limit(limit)).all())


@router.get("/batches/{batch_id}", response_model=AuditEventOut)
def get_batch_audit(batch_id: str, db: Session = Depends(get_db)):
    """The committed or rolled-back row for one action batch."""
    row = db.scalar(
        select(AuditEvent)
        .where(AuditEvent.entity_type == BATCH_ENTITY, AuditEvent.entity_id == batch_id)
        .order_by(desc(AuditEvent.id))
        .limit(1)
    )
    if row is None:
        raise HTTPException(status_code=404, detail=f"no audit row for batch {batch_id}")
    return row
