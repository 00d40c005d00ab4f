# fieldsched/middleware/access_log.py
from __future__ import annotations

import logging
import time
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

log = logging.getLogger("fieldsched.access")

BATCH_ID_HEADER = "X-Batch-ID"

_QUIET_PATHS = ("/api/health",)


class AccessLogMiddleware(BaseHTTPMiddleware):
    """
    One access line per request. Batch endpoints expose X-Batch-ID, which is
    copied onto the line so it joins with the engine's own batch log lines.
    Server errors log at ERROR; rejections (4xx) are ordinary traffic.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        t0 = time.perf_counter()
        status_code = 500
        batch_id = None
        try:
            response = await call_next(request)
            status_code = response.status_code
            batch_id = response.headers.get(BATCH_ID_HEADER)
            return response
        finally:
            if request.url.path not in _QUIET_PATHS or status_code >= 500:
                log.log(
                    logging.ERROR if status_code >= 500 else logging.INFO,
                    "%s %s -> %s",
                    request.method,
                    request.url.path,
                    status_code,
                    extra={
                        "event": "http_request",
                        "status_code": status_code,
                        "latency_ms": round((time.perf_counter() - t0) * 1000, 1),
                        "batch_id": batch_id,
                    },
                )
