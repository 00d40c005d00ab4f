# fieldsched/main.py
from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .config import settings
from .logging_config import configure_logging

from .domain.errors import SchedulingError
from .middleware.access_log import BATCH_ID_HEADER, AccessLogMiddleware
from .middleware.error_handler import scheduling_error_handler
from .middleware.request_context import REQUEST_ID_HEADER, RequestContextMiddleware

from .routers.health import router as health_router
from .routers.job_sites import router as job_sites_router
from .routers.services import router as services_router
from .routers.technicians import router as technicians_router
from .routers.schedule import router as schedule_router
from .routers.calendar import router as calendar_router
from .routers.history import router as history_router
from .routers.manifests import router as manifests_router
from .routers.audit import router as audit_router

API_PREFIX = "/api"


def _cors_origins() -> list[str]:
    val = getattr(settings, "cors_allow_origins", ["*"])
    if isinstance(val, str):
        v = val.strip()
        return ["*"] if v == "*" else [x.strip() for x in v.split(",") if x.strip()]
    if isinstance(val, list) and val:
        return val
    return ["*"]


configure_logging()

app = FastAPI(title="Field Service Scheduler", version=__version__)
app.add_exception_handler(SchedulingError, scheduling_error_handler)

# last added runs first: the request context must wrap the access log
app.add_middleware(AccessLogMiddleware)
app.add_middleware(RequestContextMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[REQUEST_ID_HEADER, BATCH_ID_HEADER],
)

app.include_router(health_router, prefix=API_PREFIX)

# Reference data
app.include_router(job_sites_router, prefix=API_PREFIX)
app.include_router(services_router, prefix=API_PREFIX)
app.include_router(technicians_router, prefix=API_PREFIX)

# Projection + action engine
app.include_router(schedule_router, prefix=API_PREFIX)
app.include_router(calendar_router, prefix=API_PREFIX)

# Ledgers / reports
app.include_router(history_router, prefix=API_PREFIX)
app.include_router(manifests_router, prefix=API_PREFIX)
app.include_router(audit_router, prefix=API_PREFIX)
