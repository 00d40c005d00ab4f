# fieldsched/services/schedule_service.py
from __future__ import annotations

import calendar
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from ..config import settings
from ..domain import dates
from ..domain.contracts import (
    PRINTED,
    RESCHEDULED,
    RESOLVING_EVENT_TYPES,
    ServiceInstance,
)
from ..domain.errors import ProjectionError
from ..domain.recurrence import canonical_frequency, project_sequence
from ..models import RecurringService, ServiceEvent

log = logging.getLogger("fieldsched.projection")

# -----------------------------------------------------------------------------
# Schedule projection
# -----------------------------------------------------------------------------
# Pending instances are never stored. They are recomputed from
#   last_service_date + frequency (+ day constraint)
# minus the completed/cancelled ledger rows, with outstanding reschedules
# pinned at their rescheduled-to date.
#
# A reschedule shifts last_service_date by the same delta it moves the
# instance, so the generated sequence re-anchors. Each outstanding reschedule
# then stands in for the earliest remaining generated occurrence of that
# service; pinned and generated instances are never double counted.
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class ProjectionReport:
    instances: list[ServiceInstance]
    skipped_service_ids: list[int] = field(default_factory=list)


def _outstanding_reschedules(events: list[Any], resolved: set[date]) -> list[Any]:
    """
    Reschedule rows still in effect: their rescheduled-to date is not
    resolved and no later reschedule moved the instance off that date.
    """
    reschedules = sorted(
        (e for e in events if e.event_type == RESCHEDULED and e.action_date is not None),
        key=lambda e: (e.id or 0),
    )

    by_target: dict[date, Any] = {}
    for idx, r in enumerate(reschedules):
        target = dates.normalize(r.action_date)
        if target in resolved:
            continue
        if any(dates.normalize(later.scheduled_date) == target for later in reschedules[idx + 1 :]):
            continue
        by_target[target] = r  # later row wins for the same target
    return [by_target[d] for d in sorted(by_target)]


def project_service(
    service: Any,
    events: Iterable[Any],
    horizon_end: date,
) -> list[ServiceInstance]:
    """
    All pending instances of one service up to horizon_end, ascending.

    `service` is a RecurringService row (or anything with the same
    attributes); `events` are that service's ledger rows.
    Raises ProjectionError if the recurrence cannot be projected.
    """
    last = dates.normalize(getattr(service, "last_service_date", None))
    if last is None:
        return []

    sid = int(service.id)
    evs = list(events)
    resolved = {dates.normalize(e.scheduled_date) for e in evs if e.event_type in RESOLVING_EVENT_TYPES}
    printed = {dates.normalize(e.scheduled_date) for e in evs if e.event_type == PRINTED}
    outstanding = _outstanding_reschedules(evs, resolved)

    pinned_end = max((dates.normalize(r.action_date) for r in outstanding), default=horizon_end)
    seq = project_sequence(
        last,
        service.frequency,
        getattr(service, "day_constraint", None),
        max(horizon_end, pinned_end),
        service_id=sid,
    )
    generated = [d for d in seq if d not in resolved]
    generated = generated[len(outstanding):]

    site = getattr(service, "job_site", None)
    common = dict(
        service_id=sid,
        priority=int(getattr(service, "priority", 0) or 0),
        job_site_id=getattr(service, "job_site_id", None),
        job_site_name=(getattr(site, "name", "") or "") if site is not None else "",
        address=(getattr(site, "full_address", "") or "") if site is not None else "",
        county=(getattr(site, "county", "") or "") if site is not None else "",
        service_type=getattr(service, "service_type", "") or "",
        frequency=canonical_frequency(service.frequency) or str(service.frequency),
        time_constraint=getattr(service, "time_constraint", None),
        notes=getattr(service, "notes", None),
        manifest_county=getattr(service, "manifest_county", None),
    )

    out: list[ServiceInstance] = []
    for r in outstanding:
        target = dates.normalize(r.action_date)
        if target > horizon_end:
            continue
        out.append(
            ServiceInstance(
                date=target,
                original_date=dates.normalize(r.scheduled_date),
                is_manual=True,
                printed=target in printed,
                **common,
            )
        )
    for d in generated:
        if d > horizon_end:
            break
        out.append(ServiceInstance(date=d, original_date=d, is_manual=False, printed=d in printed, **common))

    out.sort(key=lambda i: i.date)
    return out


def _load_services(db: Session, service_ids: Optional[Iterable[int]]) -> list[RecurringService]:
    q = (
        select(RecurringService)
        .options(selectinload(RecurringService.job_site))
        .where(RecurringService.is_active.is_(True))
        .where(RecurringService.last_service_date.is_not(None))
        .order_by(RecurringService.id.asc())
    )
    if service_ids is not None:
        ids = [int(x) for x in service_ids]
        if not ids:
            return []
        q = q.where(RecurringService.id.in_(ids))
    return list(db.scalars(q).all())


def _load_events(db: Session, service_ids: list[int]) -> dict[int, list[ServiceEvent]]:
    by_service: dict[int, list[ServiceEvent]] = defaultdict(list)
    if not service_ids:
        return by_service
    rows = db.scalars(
        select(ServiceEvent).where(ServiceEvent.service_id.in_(service_ids)).order_by(ServiceEvent.id.asc())
    ).all()
    for e in rows:
        by_service[int(e.service_id)].append(e)
    return by_service


def default_window_end(as_of: Optional[date] = None) -> date:
    return (as_of or dates.today()) + timedelta(days=settings.projection_horizon_days)


def project_pending(
    db: Session,
    window_start: Optional[date] = None,
    window_end: Optional[date] = None,
    *,
    service_ids: Optional[Iterable[int]] = None,
    as_of: Optional[date] = None,
) -> ProjectionReport:
    """
    Pending instances in [window_start, window_end] plus the ids of services
    whose projection failed (logged and skipped).

    With no window_start there is no lower bound, so every overdue instance
    is surfaced however old; window_end defaults to today + projection_horizon_days.
    Read-only: takes no lock and never writes.
    """
    start = dates.normalize(window_start) or date.min
    end = dates.normalize(window_end) or default_window_end(as_of)

    services = _load_services(db, service_ids)
    events = _load_events(db, [int(s.id) for s in services])

    instances: list[ServiceInstance] = []
    skipped: list[int] = []
    for svc in services:
        try:
            projected = project_service(svc, events.get(int(svc.id), []), end)
        except ProjectionError as e:
            skipped.append(int(svc.id))
            log.warning(
                "projection skipped: %s",
                e.reason,
                extra={"service_id": int(svc.id), "event": "projection_error"},
            )
            continue
        instances.extend(i for i in projected if start <= i.date <= end)

    instances.sort(key=lambda i: (i.date, -i.priority, i.service_id))
    return ProjectionReport(instances=instances, skipped_service_ids=skipped)


def get_pending_instances(
    db: Session,
    window_start: Optional[date] = None,
    window_end: Optional[date] = None,
    *,
    service_ids: Optional[Iterable[int]] = None,
    as_of: Optional[date] = None,
) -> list[ServiceInstance]:
    return project_pending(db, window_start, window_end, service_ids=service_ids, as_of=as_of).instances


def days_overdue(instance: Any, as_of: Optional[date] = None) -> int:
    """Whole days past due; 0 for today and future instances."""
    d = dates.normalize(getattr(instance, "date", instance))
    if d is None:
        return 0
    return max(0, ((as_of or dates.today()) - d).days)


def pending_by_service(instances: Iterable[ServiceInstance]) -> dict[int, list[ServiceInstance]]:
    out: dict[int, list[ServiceInstance]] = defaultdict(list)
    for i in instances:
        out[i.service_id].append(i)
    for lst in out.values():
        lst.sort(key=lambda i: i.date)
    return dict(out)


def summarize_pending(instances: list[ServiceInstance], as_of: Optional[date] = None) -> dict[str, int]:
    t = as_of or dates.today()
    return {
        "pending": len(instances),
        "overdue": sum(1 for i in instances if days_overdue(i, t) > 0),
    }


def calendar_month(db: Session, year: int, month: int) -> dict[str, list[ServiceInstance]]:
    """Pending instances for one month keyed by ISO date."""
    last_day = calendar.monthrange(int(year), int(month))[1]
    start = date(int(year), int(month), 1)
    end = date(int(year), int(month), last_day)

    grouped: dict[str, list[ServiceInstance]] = {}
    for inst in get_pending_instances(db, start, end):
        grouped.setdefault(inst.date.isoformat(), []).append(inst)
    return grouped
