# fieldsched/services/action_processor.py
from __future__ import annotations

import logging
import uuid
from datetime import date, timedelta
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from sqlalchemy.orm import Session

from ..config import settings
from ..domain import dates
from ..domain.audit import audit_batch, row_snapshot
from ..domain.contracts import (
    CANCELLED,
    COMPLETED,
    ISSUE_APPLY,
    ISSUE_BUSY,
    ISSUE_INPUT,
    PRINTED,
    RESCHEDULED,
    STATUS_APPLY_FAILED,
    STATUS_BUSY,
    STATUS_COMMITTED,
    STATUS_INPUT_ERROR,
    STATUS_VALIDATION_FAILED,
    ActionBatch,
    BatchIssue,
    BatchResult,
    CancellationAction,
    CompletionAction,
    RescheduleAction,
)
from ..domain.errors import ApplyFailure, Busy, InputError, OrderViolation
from ..models import ManifestEntry, RecurringService, ServiceEvent
from .locks_service import processing_lock
from .order_validator import build_batch, check_input, load_services, validate_batch

log = logging.getLogger("fieldsched.actions")

SERVICE_SNAPSHOT_FIELDS = ("last_service_date", "frequency", "day_constraint", "is_active")

Counts = dict[str, int]


def new_batch_id() -> str:
    return uuid.uuid4().hex


def _snapshot(db: Session, service_ids: Iterable[int]) -> dict[str, Any]:
    return {
        str(sid): row_snapshot(svc, SERVICE_SNAPSHOT_FIELDS)
        for sid, svc in sorted(load_services(db, service_ids).items())
    }


# -----------------------------------------------------------------------------
# Single-action appliers. They only add/flush; the caller owns the transaction.
# -----------------------------------------------------------------------------
def _event(
    svc: RecurringService,
    *,
    batch_id: str,
    event_type: str,
    scheduled_date: date,
    action_date: Optional[date],
    performed_by: str,
    notes: Optional[str],
    recorded_at: date,
) -> ServiceEvent:
    site = svc.job_site
    return ServiceEvent(
        recorded_at=recorded_at,
        batch_id=batch_id,
        service_id=int(svc.id),
        job_site_id=svc.job_site_id,
        job_site_name=getattr(site, "name", None),
        service_type=svc.service_type,
        scheduled_date=scheduled_date,
        event_type=event_type,
        action_date=action_date,
        performed_by=performed_by,
        notes=notes,
    )


def _append_manifest_entry(db: Session, svc: RecurringService, completed_on: date, batch_id: str) -> ManifestEntry:
    site = svc.job_site
    entry = ManifestEntry(
        service_id=int(svc.id),
        batch_id=batch_id,
        job_site_id=svc.job_site_id,
        job_site_name=getattr(site, "name", None),
        address=getattr(site, "full_address", None),
        service_type=svc.service_type,
        county=str(svc.manifest_county),
        date_completed=completed_on,
        quarter=dates.calculate_quarter(completed_on),
    )
    db.add(entry)
    return entry


def apply_completion(
    db: Session, svc: RecurringService, a: CompletionAction, *, batch_id: str, performed_by: str, today: date
) -> None:
    done = a.effective_completion_date
    db.add(
        _event(
            svc,
            batch_id=batch_id,
            event_type=COMPLETED,
            scheduled_date=a.scheduled_date,
            action_date=done,
            performed_by=performed_by,
            notes=a.notes,
            recorded_at=today,
        )
    )
    # never regress: batches may complete an older slot after a newer one
    if svc.last_service_date is None or done > svc.last_service_date:
        svc.last_service_date = done
    db.add(svc)
    db.flush()

    if svc.manifest_county:
        _append_manifest_entry(db, svc, done, batch_id)


def apply_cancellation(
    db: Session, svc: RecurringService, a: CancellationAction, *, batch_id: str, performed_by: str, today: date
) -> None:
    db.add(
        _event(
            svc,
            batch_id=batch_id,
            event_type=CANCELLED,
            scheduled_date=a.scheduled_date,
            action_date=None,
            performed_by=performed_by,
            notes=a.notes,
            recorded_at=today,
        )
    )
    # a cancelled slot is still consumed
    if svc.last_service_date is None or a.scheduled_date > svc.last_service_date:
        svc.last_service_date = a.scheduled_date
    db.add(svc)


def apply_reschedule(
    db: Session,
    svc: RecurringService,
    a: RescheduleAction,
    *,
    batch_id: str,
    performed_by: str,
    today: date,
    shift_anchor: bool = True,
) -> None:
    db.add(
        _event(
            svc,
            batch_id=batch_id,
            event_type=RESCHEDULED,
            scheduled_date=a.scheduled_date,
            action_date=a.new_date,
            performed_by=performed_by,
            notes=a.notes,
            recorded_at=today,
        )
    )
    if shift_anchor and svc.last_service_date is not None:
        svc.last_service_date = svc.last_service_date + timedelta(days=a.delta_days)
        db.add(svc)


def apply_actions(
    db: Session,
    batch: ActionBatch,
    *,
    batch_id: str,
    performed_by: str,
    today: date,
) -> Counts:
    """Cancellations, then completions, then reschedules. Flushes, never commits."""
    services = load_services(db, batch.service_ids())

    for c in batch.cancellations:
        apply_cancellation(db, services[c.service_id], c, batch_id=batch_id, performed_by=performed_by, today=today)
    db.flush()

    for a in batch.completions:
        apply_completion(db, services[a.service_id], a, batch_id=batch_id, performed_by=performed_by, today=today)
    db.flush()

    for r in batch.reschedules:
        apply_reschedule(db, services[r.service_id], r, batch_id=batch_id, performed_by=performed_by, today=today)
    db.flush()

    return {
        "completed": len(batch.completions),
        "cancelled": len(batch.cancellations),
        "rescheduled": len(batch.reschedules),
    }


# -----------------------------------------------------------------------------
# Unit of work
# -----------------------------------------------------------------------------
def apply_atomically(
    db: Session,
    *,
    batch_id: str,
    batch_type: str,
    performed_by: str,
    service_ids: Iterable[int],
    apply: Callable[[], Counts],
    warnings: Optional[list[BatchIssue]] = None,
    extra: Optional[dict[str, Any]] = None,
) -> BatchResult:
    """
    Run `apply` as one transaction: everything commits together with a batch
    audit row, or the session is rolled back and nothing is persisted.

    Raises ApplyFailure after a rollback; the rolled-back audit row is
    already written by then.
    """
    ids = sorted(set(service_ids))
    warnings = list(warnings or [])
    before = _snapshot(db, ids)

    try:
        counts = apply()
        db.flush()
        audit_batch(
            db,
            batch_id=batch_id,
            outcome="committed",
            actor=performed_by,
            before=before,
            after={"services": _snapshot(db, ids), "batch_type": batch_type, "applied": counts, **(extra or {})},
        )
        db.commit()
    except Exception as e:
        db.rollback()
        detail = f"{type(e).__name__}: {e}"
        log.exception("batch apply failed; rolled back", extra={"batch_id": batch_id, "event": "apply_failed"})
        try:
            audit_batch(
                db,
                batch_id=batch_id,
                outcome="rolled_back",
                actor=performed_by,
                before=before,
                after={"batch_type": batch_type, "error": detail, **(extra or {})},
                commit=True,
            )
        except Exception:
            db.rollback()
            log.exception("could not record rollback audit row", extra={"batch_id": batch_id})
        raise ApplyFailure(detail, cause=e) from e

    log.info(
        "batch committed: %s completed, %s cancelled, %s rescheduled",
        counts.get("completed", 0),
        counts.get("cancelled", 0),
        counts.get("rescheduled", 0),
        extra={"batch_id": batch_id, "event": "batch_committed", "status": STATUS_COMMITTED},
    )
    return BatchResult(
        success=True,
        status=STATUS_COMMITTED,
        batch_id=batch_id,
        warnings=warnings,
        completed=int(counts.get("completed", 0)),
        cancelled=int(counts.get("cancelled", 0)),
        rescheduled=int(counts.get("rescheduled", 0)),
    )


def busy_result(batch_id: str, err: Busy) -> BatchResult:
    log.warning("batch rejected: %s", err, extra={"batch_id": batch_id, "event": "busy", "status": STATUS_BUSY})
    return BatchResult(success=False, status=STATUS_BUSY, batch_id=batch_id, errors=[BatchIssue(ISSUE_BUSY, str(err))])


def input_error_result(batch_id: str, issues: list[BatchIssue]) -> BatchResult:
    log.info(
        "batch rejected: %s input error(s)",
        len(issues),
        extra={"batch_id": batch_id, "event": "input_error", "status": STATUS_INPUT_ERROR},
    )
    return BatchResult(success=False, status=STATUS_INPUT_ERROR, batch_id=batch_id, errors=list(issues))


def order_violation_result(batch_id: str, err: OrderViolation) -> BatchResult:
    log.info(
        "batch rejected: %s order violation(s)",
        len(err.issues),
        extra={"batch_id": batch_id, "event": "order_violation", "status": STATUS_VALIDATION_FAILED},
    )
    return BatchResult(
        success=False,
        status=STATUS_VALIDATION_FAILED,
        batch_id=batch_id,
        errors=list(err.issues),
        warnings=list(err.warnings),
    )


def apply_failed_result(batch_id: str, err: ApplyFailure, warnings: Optional[list[BatchIssue]] = None) -> BatchResult:
    return BatchResult(
        success=False,
        status=STATUS_APPLY_FAILED,
        batch_id=batch_id,
        errors=[BatchIssue(ISSUE_APPLY, str(err))],
        warnings=list(warnings or []),
    )


def check_batch(db: Session, batch: ActionBatch, *, as_of: date) -> list[BatchIssue]:
    """
    Input checks, then the order rule. Returns the non-blocking warnings.
    Raises InputError or OrderViolation; nothing has been written either way.
    """
    issues = check_input(db, batch)
    if issues:
        raise InputError(issues)
    validation = validate_batch(db, batch, as_of=as_of)
    if not validation.is_valid:
        raise OrderViolation(validation.errors, warnings=validation.warnings)
    return list(validation.warnings)


def process_batch(
    db: Session,
    batch: Union[ActionBatch, Mapping[str, Any]],
    *,
    performed_by: Optional[str] = None,
    batch_type: str = "service_manager",
    as_of: Optional[date] = None,
    wait_seconds: Optional[float] = None,
) -> BatchResult:
    """
    Validate and apply one action batch.

    Idle -> Validating -> (Rejected | Snapshotting) -> Applying -> (Committed | RolledBack)

    Never raises for expected outcomes; the returned BatchResult carries the
    status (committed, input-error, validation-failed, busy, apply-failed).
    """
    batch_id = new_batch_id()
    actor = performed_by or settings.default_performed_by
    t = as_of or dates.today()

    if not isinstance(batch, ActionBatch):
        try:
            batch = build_batch(batch)
        except InputError as e:
            return input_error_result(batch_id, e.issues)

    warnings: list[BatchIssue] = []
    try:
        with processing_lock(db.get_bind(), owner=f"{batch_type}:{batch_id}", wait_seconds=wait_seconds):
            warnings = check_batch(db, batch, as_of=t)
            return apply_atomically(
                db,
                batch_id=batch_id,
                batch_type=batch_type,
                performed_by=actor,
                service_ids=batch.service_ids(),
                apply=lambda: apply_actions(db, batch, batch_id=batch_id, performed_by=actor, today=t),
                warnings=warnings,
            )
    except InputError as e:
        db.rollback()
        return input_error_result(batch_id, e.issues)
    except OrderViolation as e:
        db.rollback()
        return order_violation_result(batch_id, e)
    except Busy as e:
        return busy_result(batch_id, e)
    except ApplyFailure as e:
        return apply_failed_result(batch_id, e, warnings)


def record_printed(
    db: Session,
    items: Iterable[tuple[int, Any]],
    *,
    performed_by: Optional[str] = None,
    as_of: Optional[date] = None,
) -> int:
    """
    Append `printed` events for (service_id, scheduled_date) pairs.
    Printing never resolves an instance; it only flags it.
    """
    actor = performed_by or settings.default_performed_by
    t = as_of or dates.today()
    pairs: list[tuple[int, date]] = []
    issues: list[BatchIssue] = []
    for sid, raw in items:
        d = dates.normalize(raw)
        if d is None:
            issues.append(BatchIssue(ISSUE_INPUT, f"service {sid}: invalid date {raw!r}", service_id=int(sid)))
        else:
            pairs.append((int(sid), d))

    services = load_services(db, [sid for sid, _ in pairs])
    for sid, _ in pairs:
        if sid not in services:
            issues.append(BatchIssue(ISSUE_INPUT, f"service {sid} does not exist", service_id=sid))
    if issues:
        raise InputError(issues)

    batch_id = new_batch_id()
    for sid, d in pairs:
        db.add(
            _event(
                services[sid],
                batch_id=batch_id,
                event_type=PRINTED,
                scheduled_date=d,
                action_date=t,
                performed_by=actor,
                notes=None,
                recorded_at=t,
            )
        )
    db.commit()
    log.info("recorded %s printed ticket(s)", len(pairs), extra={"batch_id": batch_id, "event": "printed"})
    return len(pairs)
