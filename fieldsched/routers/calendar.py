# fieldsched/routers/calendar.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Path
from sqlalchemy.orm import Session

from ..db import get_db
from ..domain import dates
from ..schemas import CalendarOut
from ..services.schedule_service import calendar_month
from .schedule import instance_out

router = APIRouter(prefix="/calendar", tags=["calendar"])


@router.get("/{year}/{month}", response_model=CalendarOut)
def get_month(
    year: int = Path(ge=2000, le=2100),
    month: int = Path(ge=1, le=12),
    db: Session = Depends(get_db),
):
    t = dates.today()
    grouped = calendar_month(db, year, month)
    return CalendarOut(
        year=year,
        month=month,
        days={day: [instance_out(i, t) for i in items] for day, items in grouped.items()},
    )
