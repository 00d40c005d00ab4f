# fieldsched/middleware/error_handler.py
from __future__ import annotations

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from ..domain.errors import ApplyFailure, Busy, InputError, OrderViolation, ProjectionError, SchedulingError
from .request_context import get_request_id

log = logging.getLogger("fieldsched.errors")

_STATUS: tuple[tuple[type[SchedulingError], int], ...] = (
    (InputError, 400),
    (OrderViolation, 422),
    (Busy, 409),
    (ApplyFailure, 500),
    (ProjectionError, 500),
)


def status_for(exc: SchedulingError) -> int:
    for cls, code in _STATUS:
        if isinstance(exc, cls):
            return code
    return 500


async def scheduling_error_handler(request: Request, exc: SchedulingError) -> JSONResponse:
    """Scheduling errors raised out of a route, as {"detail": [...], "request_id": ...}."""
    code = status_for(exc)
    issues = getattr(exc, "issues", None)
    detail = [i.to_dict() for i in issues] if issues else str(exc)
    if code >= 500:
        log.error("%s on %s: %s", type(exc).__name__, request.url.path, exc, extra={"event": "scheduling_error"})
    return JSONResponse(status_code=code, content={"detail": detail, "request_id": get_request_id()})
