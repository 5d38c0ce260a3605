"""Durable job queue and retry policy, executed by Celery workers."""
from contract_assistant.queue.base import (
    BackoffPolicy,
    JobHandler,
    JobOptions,
    QueueBackend,
    QueuedJob,
    QueueHandle,
    RetryDecision,
)
from contract_assistant.queue.celery_backend import CeleryQueueBackend

__all__ = [
    "BackoffPolicy",
    "CeleryQueueBackend",
    "JobHandler",
    "JobOptions",
    "QueueBackend",
    "QueuedJob",
    "QueueHandle",
    "RetryDecision",
]
