from celery import Celery

from fellowship.core.config import settings

celery_app = Celery(
    "fellowship",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["fellowship.worker.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    result_expires=3600,
    task_always_eager=settings.celery_task_always_eager,
    task_routes={"fellowship.notify": {"queue": "notifications"}},
)
