# fieldsched/workers/schedule_tasks.py
from __future__ import annotations

import logging
from typing import Optional

from ..db import SessionLocal
from ..domain import dates
from ..services.schedule_service import project_pending, summarize_pending
from .celery_app import celery_app

log = logging.getLogger("fieldsched.workers")


@celery_app.task(name="fieldsched.workers.schedule_tasks.daily_projection")
def daily_projection(as_of: Optional[str] = None) -> dict:
    """
    Re-project every active service and report counts.

    Read-only: takes no lock and writes nothing. Services that fail to
    project are listed in skipped_services.
    """
    t = dates.normalize(as_of) or dates.today()
    db = SessionLocal()
    try:
        report = project_pending(db, None, None, as_of=t)
        summary = summarize_pending(report.instances, t)
    finally:
        db.close()

    out = {
        "ok": True,
        "as_of": t.isoformat(),
        "pending": summary["pending"],
        "overdue": summary["overdue"],
        "skipped_services": report.skipped_service_ids,
    }
    log.info(
        "daily projection: %s pending, %s overdue, %s skipped",
        out["pending"],
        out["overdue"],
        len(out["skipped_services"]),
        extra={"event": "daily_projection"},
    )
    return out
