"""
Celery application for document analysis.

Run a worker for the analysis queue, with beat for housekeeping:

    celery -A contract_assistant.workers.celery_app worker -Q analysis-queue,celery -B
"""
from celery import Celery

from contract_assistant.core.config import settings

celery_app = Celery(
    "contract_assistant",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["contract_assistant.workers.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    # Unacknowledged tasks are redelivered if a worker dies mid-job
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    worker_concurrency=settings.WORKER_CONCURRENCY,
    task_routes={"analyze_document": {"queue": settings.ANALYSIS_QUEUE_NAME}},
    broker_connection_retry_on_startup=True,
    beat_schedule={
        "prune-queue-entries": {
            "task": "prune_queue_entries",
            "schedule": 600.0,
        },
    },
)
