"""
Celery Application Configuration

Configures Celery with Redis broker and result backend.
Defines task queues, routing and the Square polling schedule.
"""

import os
from datetime import timedelta

from celery import Celery
from celery.signals import worker_ready

from backend.config import get_settings

settings = get_settings()

app = Celery(
    "brewops",
    broker=settings.redis_url,
    backend=os.getenv("CELERY_RESULT_BACKEND", settings.redis_url),
    include=["workers.tasks.sync_tasks"],
)

app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # Timezone
    timezone="UTC",
    enable_utc=True,

    # Task behavior
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,

    # Result expiry
    result_expires=86400,  # 24 hours

    # Routing
    task_routes={
        "workers.tasks.sync_tasks.*": {"queue": "sync"},
    },

    # Default queue
    task_default_queue="default",

    # One cycle at a time keeps tenants sequential
    worker_concurrency=1,

    # Rate limits
    task_annotations={
        "workers.tasks.sync_tasks.sync_tenant": {
            "rate_limit": "10/m",
        },
    },
)

# Beat schedule for periodic tasks
app.conf.beat_schedule = {
    "sync-square-timecards": {
        "task": "workers.tasks.sync_tasks.sync_all_square",
        "schedule": timedelta(minutes=settings.square_sync_interval_minutes),
        "options": {"queue": "sync"},
    },
}


@worker_ready.connect
def schedule_startup_sync(sender=None, **kwargs):
    """First cycle shortly after boot instead of waiting a full interval."""
    from workers.tasks.sync_tasks import sync_all_square

    sync_all_square.apply_async(
        countdown=settings.square_sync_initial_delay_seconds,
        queue="sync",
    )


# Initialize Sentry for error monitoring in workers
if settings.sentry_dsn:
    import sentry_sdk
    from sentry_sdk.integrations.celery import CeleryIntegration

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        release=f"brewops-worker@{settings.app_version}",
        traces_sample_rate=0.1,
        integrations=[CeleryIntegration()],
    )
