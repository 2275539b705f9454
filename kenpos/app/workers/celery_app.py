"""Celery application instance.

Start the worker::

    celery -A kenpos.app.workers.celery_app worker --loglevel=info
    celery -A kenpos.app.workers.celery_app beat --loglevel=info
"""

from __future__ import annotations

from celery import Celery

from kenpos.app.core.config import settings

celery = Celery(
    "kenpos",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="Africa/Nairobi",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
)

celery.autodiscover_tasks(["kenpos.app.workers.tasks"])

# Periodic retry of anything a connectivity-triggered sweep left behind
celery.conf.beat_schedule = {
    "sync-outbox-every-minute": {
        "task": "kenpos.app.workers.tasks.sync.sync_outbox",
        "schedule": 60.0,
    },
    "cleanup-revoked-tokens-hourly": {
        "task": "kenpos.app.workers.tasks.cleanup.cleanup_revoked_tokens",
        "schedule": 3600.0,
    },
}
