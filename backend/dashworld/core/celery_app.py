"""Celery application configuration.

Transcoding runs in an external worker fleet; this app is only used to
publish job messages onto the transcode queue.
"""

from celery import Celery

from dashworld.core.config import settings

celery_app = Celery(
    "dashworld",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=3600,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_publish_retry=False,
    task_routes={
        settings.TRANSCODE_TASK_NAME: {"queue": settings.TRANSCODE_QUEUE},
    },
)
