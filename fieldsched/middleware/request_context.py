# fieldsched/middleware/request_context.py
from __future__ import annotations

import re
import uuid
from contextvars import ContextVar
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..config import settings

request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
operator_ctx: ContextVar[Optional[str]] = ContextVar("operator", default=None)

REQUEST_ID_HEADER = "X-Request-ID"

# ids echoed into log lines and response headers
_SAFE_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def get_request_id() -> Optional[str]:
    return request_id_ctx.get()


def get_operator() -> Optional[str]:
    return operator_ctx.get()


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Binds request id and operator email to context vars for the life of the
    request, so log lines written deep inside a batch carry both.

    A well-formed incoming X-Request-ID is reused; anything else is replaced
    with a fresh id.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        incoming = request.headers.get(REQUEST_ID_HEADER) or ""
        rid = incoming if _SAFE_ID.match(incoming) else uuid.uuid4().hex
        operator = (request.headers.get(settings.dev_header_user_email) or "").strip().lower() or None

        request.state.request_id = rid
        rid_token = request_id_ctx.set(rid)
        op_token = operator_ctx.set(operator)
        try:
            resp = await call_next(request)
            resp.headers[REQUEST_ID_HEADER] = rid
            return resp
        finally:
            operator_ctx.reset(op_token)
            request_id_ctx.reset(rid_token)
