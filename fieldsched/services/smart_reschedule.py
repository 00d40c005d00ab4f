# fieldsched/services/smart_reschedule.py
from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any, Iterable, Optional

from sqlalchemy.orm import Session

from ..config import settings
from ..domain import dates
from ..domain.contracts import (
    ISSUE_INPUT,
    STRATEGIES,
    STRATEGY_CASCADE,
    STRATEGY_COMPACT,
    BatchIssue,
    BatchResult,
    CompletionAction,
    RescheduleAction,
    ServiceInstance,
)
from ..domain.errors import ApplyFailure, Busy, InputError, ProjectionError
from ..models import RecurringService
from .action_processor import (
    Counts,
    apply_completion,
    apply_reschedule,
    apply_atomically,
    apply_failed_result,
    busy_result,
    input_error_result,
    new_batch_id,
)
from .locks_service import processing_lock
from .order_validator import load_services
from .schedule_service import default_window_end, get_pending_instances, pending_by_service

log = logging.getLogger("fieldsched.smart_reschedule")

RESET_NOTE = "Auto-completed via reset"

# one annual interval plus day-constraint / weekend shifts
_RESET_LOOKAHEAD = timedelta(days=400)


def _violation_origins(violations: Optional[Iterable[Any]]) -> dict[int, date]:
    """service_id -> from-date of the rejected reschedule (first one wins)."""
    out: dict[int, date] = {}
    for v in violations or []:
        if isinstance(v, BatchIssue):
            sid, d = v.service_id, v.scheduled_date
        elif isinstance(v, dict):
            sid = v.get("service_id", v.get("serviceId"))
            d = dates.normalize(
                v.get("scheduled_date") or v.get("original_date") or v.get("originalDate") or v.get("scheduledDate")
            )
        else:
            continue
        if sid is None or d is None:
            continue
        out.setdefault(int(sid), d)
    return out


def _cascade(
    db: Session,
    services: dict[int, RecurringService],
    pending: dict[int, list[ServiceInstance]],
    origins: dict[int, date],
    target: date,
    *,
    batch_id: str,
    actor: str,
    today: date,
) -> Counts:
    moved = 0
    for sid in sorted(services):
        svc = services[sid]
        insts = pending[sid]
        anchor = origins.get(sid) or insts[0].date
        delta = (target - anchor).days
        if delta == 0:
            continue

        # later dates first when moving forward, so no row's target is an
        # origin written after it
        for inst in sorted(insts, key=lambda i: i.date, reverse=delta > 0):
            new = inst.date + timedelta(days=delta)
            apply_reschedule(
                db,
                svc,
                RescheduleAction(sid, inst.date, new, f"Cascade shift {delta:+d} days"),
                batch_id=batch_id,
                performed_by=actor,
                today=today,
                shift_anchor=False,
            )
            db.flush()
            moved += 1

        svc.last_service_date = svc.last_service_date + timedelta(days=delta)
        db.add(svc)

    db.flush()
    return {"completed": 0, "cancelled": 0, "rescheduled": moved}


def _compact(
    db: Session,
    services: dict[int, RecurringService],
    pending: dict[int, list[ServiceInstance]],
    target: date,
    *,
    batch_id: str,
    actor: str,
    today: date,
) -> Counts:
    moved = 0
    for sid in sorted(services):
        first = pending[sid][0]
        if first.date == target:
            continue
        apply_reschedule(
            db,
            services[sid],
            RescheduleAction(sid, first.date, target, "Compacted to a single instance"),
            batch_id=batch_id,
            performed_by=actor,
            today=today,
        )
        moved += 1
    db.flush()
    return {"completed": 0, "cancelled": 0, "rescheduled": moved}


def _reset(
    db: Session,
    services: dict[int, RecurringService],
    pending: dict[int, list[ServiceInstance]],
    target: date,
    *,
    batch_id: str,
    actor: str,
    today: date,
) -> Counts:
    completed = 0
    for sid in sorted(services):
        for inst in pending[sid]:
            if inst.date >= today:
                continue
            apply_completion(
                db,
                services[sid],
                CompletionAction(sid, inst.date, today, RESET_NOTE),
                batch_id=batch_id,
                performed_by=settings.system_actor,
                today=today,
            )
            completed += 1
    db.flush()

    # re-project inside the same transaction to find what remains
    end = max(target, today) + _RESET_LOOKAHEAD
    remaining = pending_by_service(get_pending_instances(db, None, end, service_ids=list(services), as_of=today))

    moved = 0
    for sid in sorted(services):
        left = remaining.get(sid)
        if not left:
            raise ProjectionError(sid, "no instance remains to reschedule after reset")
        first = left[0]
        if first.date == target:
            continue
        apply_reschedule(
            db,
            services[sid],
            RescheduleAction(sid, first.date, target, "Rescheduled after reset"),
            batch_id=batch_id,
            performed_by=actor,
            today=today,
        )
        moved += 1
    db.flush()
    return {"completed": completed, "cancelled": 0, "rescheduled": moved}


def resolve_smart_reschedule(
    db: Session,
    *,
    service_ids: Iterable[Any],
    strategy: str,
    new_date: Any,
    violations: Optional[Iterable[Any]] = None,
    performed_by: Optional[str] = None,
    as_of: Optional[date] = None,
    wait_seconds: Optional[float] = None,
) -> BatchResult:
    """
    Resolve a reschedule that was rejected for leaving older instances
    pending.

    cascade: shift every pending instance by the requested delta.
    compact: move only the earliest pending instance to new_date.
    reset:   auto-complete everything overdue as of today, then move the
             first remaining instance to new_date. Destructive.

    `violations` is the error list of the rejected batch; its first entry
    per service supplies the from-date that defines the cascade delta.
    Runs under the same lock and unit of work as process_batch.
    """
    batch_id = new_batch_id()
    actor = performed_by or settings.default_performed_by
    t = as_of or dates.today()

    issues: list[BatchIssue] = []
    strat = (strategy or "").strip().lower()
    if strat not in STRATEGIES:
        issues.append(BatchIssue(ISSUE_INPUT, f"unknown strategy {strategy!r}; expected one of {', '.join(STRATEGIES)}"))
    target = dates.normalize(new_date)
    if target is None:
        issues.append(BatchIssue(ISSUE_INPUT, "new_date is required"))
    elif abs((target - t).days) > settings.max_reschedule_days:
        issues.append(BatchIssue(ISSUE_INPUT, f"new_date {target.isoformat()} is more than {settings.max_reschedule_days} days from today"))
    try:
        ids = sorted({int(x) for x in (service_ids or [])})
    except (TypeError, ValueError):
        ids = []
    if not ids:
        issues.append(BatchIssue(ISSUE_INPUT, "service_ids is required"))
    if issues:
        return input_error_result(batch_id, issues)

    try:
        with processing_lock(db.get_bind(), owner=f"smart_{strat}:{batch_id}", wait_seconds=wait_seconds):
            services = load_services(db, ids)
            end = max(default_window_end(t), target)
            pending = pending_by_service(get_pending_instances(db, None, end, service_ids=ids, as_of=t))

            for sid in ids:
                svc = services.get(sid)
                if svc is None or not svc.is_active:
                    issues.append(BatchIssue(ISSUE_INPUT, f"service {sid} does not exist or is inactive", service_id=sid))
                elif svc.last_service_date is None:
                    issues.append(BatchIssue(ISSUE_INPUT, f"service {sid} has never been serviced", service_id=sid))
                elif not pending.get(sid):
                    issues.append(BatchIssue(ISSUE_INPUT, f"service {sid} has no pending instances", service_id=sid))
            if issues:
                raise InputError(issues)

            log.info(
                "smart reschedule for %s service(s) to %s",
                len(ids),
                target.isoformat(),
                extra={"batch_id": batch_id, "strategy": strat, "event": "smart_reschedule"},
            )

            kw = dict(batch_id=batch_id, actor=actor, today=t)
            if strat == STRATEGY_CASCADE:
                origins = _violation_origins(violations)
                apply = lambda: _cascade(db, services, pending, origins, target, **kw)  # noqa: E731
            elif strat == STRATEGY_COMPACT:
                apply = lambda: _compact(db, services, pending, target, **kw)  # noqa: E731
            else:
                apply = lambda: _reset(db, services, pending, target, **kw)  # noqa: E731

            return apply_atomically(
                db,
                batch_id=batch_id,
                batch_type=f"smart_reschedule:{strat}",
                performed_by=actor,
                service_ids=ids,
                apply=apply,
                extra={"strategy": strat, "new_date": target.isoformat()},
            )
    except InputError as e:
        db.rollback()
        return input_error_result(batch_id, e.issues)
    except Busy as e:
        return busy_result(batch_id, e)
    except ApplyFailure as e:
        return apply_failed_result(batch_id, e)
