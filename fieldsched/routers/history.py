# fieldsched/routers/history.py
from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from ..db import get_db
from ..domain.contracts import EVENT_TYPES
from ..models import ServiceEvent
from ..schemas import ServiceEventOut

router = APIRouter(prefix="/history", tags=["history"])


@router.get("", response_model=list[ServiceEventOut])
def list_history(
    start: Optional[date] = Query(default=None, description="recorded on or after"),
    end: Optional[date] = Query(default=None, description="recorded on or before"),
    event_type: Optional[str] = Query(default=None),
    service_id: Optional[int] = Query(default=None),
    limit: int = Query(default=200, ge=1, le=2000),
    db: Session = Depends(get_db),
):
    q = select(ServiceEvent).order_by(desc(ServiceEvent.recorded_at), desc(ServiceEvent.id))
    if start:
        q = q.where(ServiceEvent.recorded_at >= start)
    if end:
        q = q.where(ServiceEvent.recorded_at <= end)
    if event_type:
        if event_type not in EVENT_TYPES:
            raise HTTPException(status_code=400, detail=f"event_type must be one of {', '.join(EVENT_TYPES)}")
        q = q.where(ServiceEvent.event_type == event_type)
    if service_id is not None:
        q = q.where(ServiceEvent.service_id == service_id)
    return list(db.scalars(q.limit(limit)).all())
