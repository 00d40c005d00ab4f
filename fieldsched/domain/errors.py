# fieldsched/domain/errors.py
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .contracts import BatchIssue


class SchedulingError(Exception):
    """Base for every condition the scheduling engine reports."""


class InputError(SchedulingError):
    """Malformed action items; the batch is never attempted."""

    def __init__(self, issues: list["BatchIssue"]):
        self.issues = list(issues)
        super().__init__("; ".join(i.message for i in self.issues) or "invalid input")


class OrderViolation(SchedulingError):
    """Batch would leave an older pending instance unresolved."""

    def __init__(self, issues: list["BatchIssue"], warnings: Optional[list["BatchIssue"]] = None):
        self.issues = list(issues)
        self.warnings = list(warnings or [])
        super().__init__("; ".join(i.message for i in self.issues) or "order violation")


class Busy(SchedulingError):
    """Another batch holds the processing lock. Retryable, nothing changed."""


class ApplyFailure(SchedulingError):
    """Unexpected failure mid-apply. State has been rolled back."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)


class ProjectionError(SchedulingError):
    """One service's recurrence cannot be projected. Isolated per service."""

    def __init__(self, service_id: Optional[int], reason: str):
        self.service_id = service_id
        self.reason = reason
        super().__init__(f"service {service_id}: {reason}")
