# fieldsched/services/order_validator.py
from __future__ import annotations

from collections import defaultdict
from datetime import date
from typing import Any, Iterable, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from ..config import settings
from ..domain import dates
from ..domain.contracts import (
    ISSUE_DUPLICATE,
    ISSUE_INPUT,
    ISSUE_LARGE_MOVE,
    ISSUE_ORDER,
    ISSUE_PAST_DATE,
    ISSUE_RESCHEDULE_ORDER,
    RESOLVING_EVENT_TYPES,
    ActionBatch,
    BatchIssue,
    CancellationAction,
    CompletionAction,
    RescheduleAction,
    ServiceInstance,
    ValidationResult,
)
from ..domain.errors import InputError
from ..models import RecurringService, ServiceEvent
from .schedule_service import default_window_end, get_pending_instances, pending_by_service


# -----------------------------------------------------------------------------
# Payload -> ActionBatch
# -----------------------------------------------------------------------------
def _field(item: Mapping[str, Any], *names: str) -> Any:
    for n in names:
        if n in item and item[n] not in (None, ""):
            return item[n]
    return None


def _service_id(item: Mapping[str, Any], where: str, issues: list[BatchIssue]) -> Optional[int]:
    raw = _field(item, "service_id", "serviceId", "recurring_service_id")
    try:
        return int(raw)
    except (TypeError, ValueError):
        issues.append(BatchIssue(ISSUE_INPUT, f"{where}: service_id is required"))
        return None


def _date(item: Mapping[str, Any], where: str, issues: list[BatchIssue], *names: str, required: bool = True) -> Optional[date]:
    raw = _field(item, *names)
    if raw is None:
        if required:
            issues.append(BatchIssue(ISSUE_INPUT, f"{where}: {names[0]} is required"))
        return None
    d = dates.normalize(raw)
    if d is None:
        issues.append(BatchIssue(ISSUE_INPUT, f"{where}: invalid date {raw!r} for {names[0]}"))
    return d


def build_batch(payload: Mapping[str, Any]) -> ActionBatch:
    """
    Parse a {completions, cancellations, reschedules} mapping.
    Raises InputError listing every malformed item.
    """
    issues: list[BatchIssue] = []
    completions: list[CompletionAction] = []
    cancellations: list[CancellationAction] = []
    reschedules: list[RescheduleAction] = []

    for i, item in enumerate(payload.get("completions") or []):
        where = f"completions[{i}]"
        sid = _service_id(item, where, issues)
        sched = _date(item, where, issues, "scheduled_date", "scheduledDate")
        done = _date(item, where, issues, "completion_date", "completionDate", required=False)
        if sid is not None and sched is not None:
            completions.append(CompletionAction(sid, sched, done, item.get("notes")))

    for i, item in enumerate(payload.get("cancellations") or []):
        where = f"cancellations[{i}]"
        sid = _service_id(item, where, issues)
        sched = _date(item, where, issues, "scheduled_date", "scheduledDate")
        if sid is not None and sched is not None:
            cancellations.append(CancellationAction(sid, sched, item.get("notes")))

    for i, item in enumerate(payload.get("reschedules") or []):
        where = f"reschedules[{i}]"
        sid = _service_id(item, where, issues)
        sched = _date(item, where, issues, "scheduled_date", "scheduledDate", "original_date", "originalDate")
        new = _date(item, where, issues, "new_date", "newDate")
        if sched is not None and new is not None and abs((new - sched).days) > settings.max_reschedule_days:
            issues.append(
                BatchIssue(
                    ISSUE_INPUT,
                    f"{where}: new_date {new.isoformat()} is more than {settings.max_reschedule_days} days from {sched.isoformat()}",
                )
            )
        elif sid is not None and sched is not None and new is not None:
            reschedules.append(RescheduleAction(sid, sched, new, item.get("notes")))

    if issues:
        raise InputError(issues)
    return ActionBatch(tuple(completions), tuple(cancellations), tuple(reschedules))


# -----------------------------------------------------------------------------
# Input checks (need the DB, but not the projection)
# -----------------------------------------------------------------------------
def load_services(db: Session, service_ids: Iterable[int]) -> dict[int, RecurringService]:
    ids = sorted({int(x) for x in service_ids})
    if not ids:
        return {}
    rows = db.scalars(
        select(RecurringService).options(selectinload(RecurringService.job_site)).where(RecurringService.id.in_(ids))
    ).all()
    return {int(r.id): r for r in rows}


def _resolved_keys(db: Session, service_ids: Iterable[int]) -> set[tuple[int, date]]:
    ids = list(service_ids)
    if not ids:
        return set()
    rows = db.execute(
        select(ServiceEvent.service_id, ServiceEvent.scheduled_date)
        .where(ServiceEvent.service_id.in_(ids))
        .where(ServiceEvent.event_type.in_(RESOLVING_EVENT_TYPES))
    ).all()
    return {(int(sid), d) for sid, d in rows}


def _site_name(svc: Optional[RecurringService]) -> str:
    site = getattr(svc, "job_site", None)
    return getattr(site, "name", None) or "Unknown site"


def check_input(db: Session, batch: ActionBatch) -> list[BatchIssue]:
    """Structural problems that stop a batch before validation or locking."""
    issues: list[BatchIssue] = []
    if batch.is_empty():
        return [BatchIssue(ISSUE_INPUT, "batch contains no actions")]

    services = load_services(db, batch.service_ids())
    for sid in sorted(batch.service_ids()):
        svc = services.get(sid)
        if svc is None:
            issues.append(BatchIssue(ISSUE_INPUT, f"service {sid} does not exist", service_id=sid))
        elif not svc.is_active:
            issues.append(BatchIssue(ISSUE_INPUT, f"service {sid} is inactive", service_id=sid))

    def dupes(keys: list[tuple[int, date]], label: str) -> None:
        seen: set[tuple[int, date]] = set()
        for k in keys:
            if k in seen:
                issues.append(
                    BatchIssue(ISSUE_INPUT, f"service {k[0]}: {k[1].isoformat()} listed twice in {label}", k[0], k[1])
                )
            seen.add(k)

    comp_keys = [(a.service_id, a.scheduled_date) for a in batch.completions]
    cancel_keys = [(a.service_id, a.scheduled_date) for a in batch.cancellations]
    resch_keys = [(a.service_id, a.scheduled_date) for a in batch.reschedules]
    dupes(comp_keys, "completions")
    dupes(cancel_keys, "cancellations")
    dupes(resch_keys, "reschedules")

    for k in sorted(set(comp_keys) & set(cancel_keys)):
        issues.append(
            BatchIssue(ISSUE_INPUT, f"service {k[0]}: {k[1].isoformat()} marked both complete and cancel", k[0], k[1])
        )
    for k in sorted(set(resch_keys) & (set(comp_keys) | set(cancel_keys))):
        issues.append(
            BatchIssue(ISSUE_INPUT, f"service {k[0]}: {k[1].isoformat()} cannot be rescheduled and resolved together", k[0], k[1])
        )

    for r in batch.reschedules:
        svc = services.get(r.service_id)
        if svc is not None and svc.last_service_date is None:
            issues.append(
                BatchIssue(
                    ISSUE_INPUT,
                    f"service {r.service_id}: cannot reschedule a service that has never been serviced",
                    r.service_id,
                    r.scheduled_date,
                )
            )

    resolved = _resolved_keys(db, services.keys())
    for k in sorted(set(comp_keys) | set(cancel_keys) | set(resch_keys)):
        if k in resolved:
            issues.append(
                BatchIssue(
                    ISSUE_INPUT,
                    f"{_site_name(services.get(k[0]))}: instance {dates.format_date(k[1])} is already completed or cancelled",
                    k[0],
                    k[1],
                )
            )
    return issues


# -----------------------------------------------------------------------------
# Chronological order rules
# -----------------------------------------------------------------------------
def _order_errors(
    batch: ActionBatch,
    pending: dict[int, list[ServiceInstance]],
    names: dict[int, str],
) -> list[BatchIssue]:
    resolved_in_batch: dict[int, set[date]] = defaultdict(set)
    for a in list(batch.completions) + list(batch.cancellations):
        resolved_in_batch[a.service_id].add(a.scheduled_date)

    errors: list[BatchIssue] = []
    for sid in sorted(resolved_in_batch):
        included = resolved_in_batch[sid]
        # every resolved date must have no unhandled pending instance before it
        for action_date in sorted(included):
            older = tuple(
                sorted({i.date for i in pending.get(sid, []) if i.date < action_date and i.date not in included})
            )
            if older:
                errors.append(
                    BatchIssue(
                        ISSUE_ORDER,
                        f"{names.get(sid, 'Unknown site')}: cannot process {dates.format_date(action_date)} "
                        f"while older instances are pending ({', '.join(dates.format_date(d) for d in older)})",
                        service_id=sid,
                        scheduled_date=action_date,
                        dates=older,
                    )
                )
                break
    return errors


def _reschedule_issues(
    batch: ActionBatch,
    pending: dict[int, list[ServiceInstance]],
    names: dict[int, str],
    as_of: date,
) -> tuple[list[BatchIssue], list[BatchIssue]]:
    resolved_in_batch: dict[int, set[date]] = defaultdict(set)
    for a in list(batch.completions) + list(batch.cancellations):
        resolved_in_batch[a.service_id].add(a.scheduled_date)

    errors: list[BatchIssue] = []
    warnings: list[BatchIssue] = []
    for r in batch.reschedules:
        sid = r.service_id
        name = names.get(sid, "Unknown site")
        instances = pending.get(sid, [])

        older = tuple(
            sorted({i.date for i in instances if i.date < r.scheduled_date and i.date not in resolved_in_batch[sid]})
        )
        if older:
            errors.append(
                BatchIssue(
                    ISSUE_RESCHEDULE_ORDER,
                    f"{name}: reschedule from {dates.format_date(r.scheduled_date)} has "
                    f"{len(older)} older pending instance(s)",
                    service_id=sid,
                    scheduled_date=r.scheduled_date,
                    dates=older,
                )
            )

        if any(i.date == r.new_date and i.date != r.scheduled_date for i in instances):
            warnings.append(
                BatchIssue(
                    ISSUE_DUPLICATE,
                    f"{name}: rescheduling to {dates.format_date(r.new_date)} creates a duplicate",
                    service_id=sid,
                    scheduled_date=r.scheduled_date,
                    dates=(r.new_date,),
                )
            )
        if r.new_date < as_of:
            warnings.append(
                BatchIssue(
                    ISSUE_PAST_DATE,
                    f"{name}: rescheduling to a past date ({dates.format_date(r.new_date)})",
                    service_id=sid,
                    scheduled_date=r.scheduled_date,
                    dates=(r.new_date,),
                )
            )
        if abs(r.delta_days) > settings.large_reschedule_days:
            warnings.append(
                BatchIssue(
                    ISSUE_LARGE_MOVE,
                    f"{name}: large reschedule, moving {abs(r.delta_days)} days from the original date",
                    service_id=sid,
                    scheduled_date=r.scheduled_date,
                    dates=(r.new_date,),
                )
            )
    return errors, warnings


def validate_batch(db: Session, batch: ActionBatch, *, as_of: Optional[date] = None) -> ValidationResult:
    """
    Order check for a batch against the current pending instances.

    is_valid=False means nothing in the batch may be applied; warnings
    never block.
    """
    t = as_of or dates.today()
    sids = batch.service_ids()
    end = max(default_window_end(t), batch.latest_date() or t)

    pending = pending_by_service(get_pending_instances(db, None, end, service_ids=sids, as_of=t))
    names = {sid: _site_name(svc) for sid, svc in load_services(db, sids).items()}

    errors = _order_errors(batch, pending, names)
    r_errors, warnings = _reschedule_issues(batch, pending, names, t)
    errors.extend(r_errors)

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)
