# fieldsched/domain/contracts.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional

# ServiceEvent.event_type values
COMPLETED = "completed"
CANCELLED = "cancelled"
RESCHEDULED = "rescheduled"
PRINTED = "printed"

RESOLVING_EVENT_TYPES = (COMPLETED, CANCELLED)
EVENT_TYPES = (COMPLETED, CANCELLED, RESCHEDULED, PRINTED)

# BatchResult.status values
STATUS_COMMITTED = "committed"
STATUS_INPUT_ERROR = "input-error"
STATUS_VALIDATION_FAILED = "validation-failed"
STATUS_BUSY = "busy"
STATUS_APPLY_FAILED = "apply-failed"

# BatchIssue.type values
ISSUE_INPUT = "input_error"
ISSUE_ORDER = "order_violation"
ISSUE_RESCHEDULE_ORDER = "reschedule_order_violation"
ISSUE_DUPLICATE = "duplicate_warning"
ISSUE_PAST_DATE = "past_date_warning"
ISSUE_LARGE_MOVE = "large_reschedule_warning"
ISSUE_BUSY = "busy"
ISSUE_APPLY = "apply_failure"

STRATEGY_CASCADE = "cascade"
STRATEGY_COMPACT = "compact"
STRATEGY_RESET = "reset"
STRATEGIES = (STRATEGY_CASCADE, STRATEGY_COMPACT, STRATEGY_RESET)


@dataclass(frozen=True)
class ServiceInstance:
    """One projected (never persisted) occurrence of a recurring service."""

    service_id: int
    date: date
    original_date: date
    is_manual: bool = False
    priority: int = 0
    printed: bool = False

    job_site_id: Optional[int] = None
    job_site_name: str = ""
    address: str = ""
    county: str = ""
    service_type: str = ""
    frequency: str = ""
    time_constraint: Optional[str] = None
    notes: Optional[str] = None
    manifest_county: Optional[str] = None


@dataclass(frozen=True)
class CompletionAction:
    service_id: int
    scheduled_date: date
    completion_date: Optional[date] = None
    notes: Optional[str] = None

    @property
    def effective_completion_date(self) -> date:
        return self.completion_date or self.scheduled_date


@dataclass(frozen=True)
class CancellationAction:
    service_id: int
    scheduled_date: date
    notes: Optional[str] = None


@dataclass(frozen=True)
class RescheduleAction:
    service_id: int
    scheduled_date: date
    new_date: date
    notes: Optional[str] = None

    @property
    def delta_days(self) -> int:
        return (self.new_date - self.scheduled_date).days


@dataclass(frozen=True)
class ActionBatch:
    completions: tuple[CompletionAction, ...] = ()
    cancellations: tuple[CancellationAction, ...] = ()
    reschedules: tuple[RescheduleAction, ...] = ()

    def service_ids(self) -> set[int]:
        ids = {a.service_id for a in self.completions}
        ids |= {a.service_id for a in self.cancellations}
        ids |= {a.service_id for a in self.reschedules}
        return ids

    def latest_date(self) -> Optional[date]:
        ds: list[date] = [a.scheduled_date for a in self.completions]
        ds += [a.scheduled_date for a in self.cancellations]
        for r in self.reschedules:
            ds += [r.scheduled_date, r.new_date]
        return max(ds) if ds else None

    def is_empty(self) -> bool:
        return not (self.completions or self.cancellations or self.reschedules)


@dataclass(frozen=True)
class BatchIssue:
    type: str
    message: str
    service_id: Optional[int] = None
    scheduled_date: Optional[date] = None
    dates: tuple[date, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "message": self.message,
            "service_id": self.service_id,
            "scheduled_date": self.scheduled_date.isoformat() if self.scheduled_date else None,
            "dates": [d.isoformat() for d in self.dates],
        }


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    errors: list[BatchIssue] = field(default_factory=list)
    warnings: list[BatchIssue] = field(default_factory=list)


@dataclass
class BatchResult:
    """
    Per-batch outcome. Built fresh for every call and returned to the
    caller; nothing about a batch is kept in module state.
    """

    success: bool
    status: str
    batch_id: str
    errors: list[BatchIssue] = field(default_factory=list)
    warnings: list[BatchIssue] = field(default_factory=list)
    completed: int = 0
    cancelled: int = 0
    rescheduled: int = 0

    @property
    def retryable(self) -> bool:
        return self.status == STATUS_BUSY

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "status": self.status,
            "batch_id": self.batch_id,
            "retryable": self.retryable,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
            "applied": {
                "completed": self.completed,
                "cancelled": self.cancelled,
                "rescheduled": self.rescheduled,
            },
        }
