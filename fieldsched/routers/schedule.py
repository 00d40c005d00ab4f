# fieldsched/routers/schedule.py
from __future__ import annotations

from dataclasses import asdict
from datetime import date
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..auth import Operator, get_operator
from ..db import get_db
from ..domain import dates
from ..domain.contracts import (
    STATUS_APPLY_FAILED,
    STATUS_BUSY,
    STATUS_COMMITTED,
    STATUS_INPUT_ERROR,
    STATUS_VALIDATION_FAILED,
    BatchResult,
    ServiceInstance,
)
from ..middleware.access_log import BATCH_ID_HEADER
from ..schemas import (
    ActionBatchIn,
    BatchResultOut,
    PrintedIn,
    ServiceInstanceOut,
    ServiceManagerOut,
    SmartRescheduleIn,
)
from ..services.action_processor import process_batch, record_printed
from ..services.schedule_service import default_window_end, days_overdue, project_pending, summarize_pending
from ..services.smart_reschedule import resolve_smart_reschedule

router = APIRouter(prefix="/schedule", tags=["schedule"])

HTTP_STATUS = {
    STATUS_COMMITTED: 200,
    STATUS_INPUT_ERROR: 400,
    STATUS_VALIDATION_FAILED: 422,
    STATUS_BUSY: 409,
    STATUS_APPLY_FAILED: 500,
}


def instance_out(i: ServiceInstance, today: date) -> ServiceInstanceOut:
    return ServiceInstanceOut(**asdict(i), days_overdue=days_overdue(i, today))


def _respond(result: BatchResult) -> JSONResponse:
    return JSONResponse(
        status_code=HTTP_STATUS.get(result.status, 500),
        content=result.to_dict(),
        headers={BATCH_ID_HEADER: result.batch_id},
    )


@router.get("/pending", response_model=list[ServiceInstanceOut])
def list_pending(
    start: Optional[date] = Query(default=None, description="omit for all overdue instances"),
    end: Optional[date] = Query(default=None),
    service_id: Optional[int] = Query(default=None),
    db: Session = Depends(get_db),
):
    t = dates.today()
    if start and end and start > end:
        raise HTTPException(status_code=400, detail="start must be on or before end")
    report = project_pending(db, start, end, service_ids=[service_id] if service_id is not None else None, as_of=t)
    return [instance_out(i, t) for i in report.instances]


@router.get("/service-manager", response_model=ServiceManagerOut)
def service_manager(
    end: Optional[str] = Query(default=None, description="upper bound; lower bound is always the overdue floor"),
    db: Session = Depends(get_db),
):
    t = dates.today()
    message = None
    if end:
        window_end, message = dates.clamp_window_end(end, as_of=t)
        report = project_pending(db, None, window_end, as_of=t)
    else:
        report = project_pending(db, None, None, as_of=t)
        window_end = default_window_end(t)

    return ServiceManagerOut(
        window_end=window_end,
        message=message,
        summary=summarize_pending(report.instances, t),
        skipped_service_ids=report.skipped_service_ids,
        instances=[instance_out(i, t) for i in report.instances],
    )


@router.post("/actions", response_model=BatchResultOut)
def submit_actions(payload: ActionBatchIn, db: Session = Depends(get_db), op: Operator = Depends(get_operator)):
    result = process_batch(db, payload.model_dump(), performed_by=op.performed_by)
    return _respond(result)


@router.post("/smart-reschedule", response_model=BatchResultOut)
def smart_reschedule(payload: SmartRescheduleIn, db: Session = Depends(get_db), op: Operator = Depends(get_operator)):
    result = resolve_smart_reschedule(
        db,
        service_ids=payload.service_ids,
        strategy=payload.strategy,
        new_date=payload.new_date,
        violations=payload.violations,
        performed_by=op.performed_by,
    )
    return _respond(result)


@router.post("/printed")
def mark_printed(payload: PrintedIn, db: Session = Depends(get_db), op: Operator = Depends(get_operator)) -> dict[str, Any]:
    # InputError is rendered as 400 by the app-level handler
    n = record_printed(
        db,
        [(item.service_id, item.scheduled_date) for item in payload.items],
        performed_by=op.performed_by,
    )
    return {"ok": True, "recorded": n}
