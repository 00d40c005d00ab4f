# fieldsched/workers/celery_app.py
from __future__ import annotations

from celery import Celery
from celery.schedules import crontab

from ..config import settings

celery_app = Celery(
    "fieldsched",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["fieldsched.workers.schedule_tasks"],
)

celery_app.conf.update(
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_reject_on_worker_lost=True,
    task_track_started=True,
    timezone=settings.timezone,
)

celery_app.conf.task_routes = {
    "fieldsched.workers.schedule_tasks.*": {"queue": "schedule"},
}

# The engine itself has no scheduler; periodic re-projection is driven from here.
celery_app.conf.beat_schedule = {
    "daily-projection": {
        "task": "fieldsched.workers.schedule_tasks.daily_projection",
        "schedule": crontab(hour=settings.daily_projection_hour, minute=0),
    },
}
