"""
Celery Tasks for Document Analysis

``analyze_document`` runs one queue entry through the analysis pipeline.
Failed attempts are retried by Celery with the exponential backoff stored on
the entry; once attempts are exhausted ``on_failure`` records the final
failure on the tracker and the document.

``prune_queue_entries`` is run periodically by Celery beat.
"""

import logging
from typing import Any, Dict, Optional

from celery import Task

from contract_assistant.core import database
from contract_assistant.core.config import settings
from contract_assistant.queue.base import QueuedJob
from contract_assistant.queue.celery_backend import CeleryQueueBackend
from contract_assistant.queue.payloads import ANALYZE_DOCUMENT
from contract_assistant.services.inference import InferenceClient
from contract_assistant.services.storage import FileStorage, LocalFileStorage
from contract_assistant.workers.analysis_worker import AnalysisJobHandler
from contract_assistant.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


class DatabaseTask(Task):
    """
    Base task that provides a database-backed queue backend.

    Each task gets a fresh backend bound to the application database,
    closed when the task completes (success or failure).
    """

    _queue_backend: Optional[CeleryQueueBackend] = None

    @property
    def queue_backend(self) -> CeleryQueueBackend:
        """Get or create the queue backend for this task."""
        if self._queue_backend is None:
            self._queue_backend = CeleryQueueBackend(database.SessionLocal, settings.ANALYSIS_QUEUE_NAME, self.app)
            self._queue_backend.start()
        return self._queue_backend

    def after_return(
        self, status: str, retval: Any, task_id: str, args: tuple, kwargs: dict, einfo: Any
    ) -> None:
        """Close the queue backend after the task completes."""
        if self._queue_backend is not None:
            self._queue_backend.close()
            self._queue_backend = None


class AnalysisTask(DatabaseTask):
    """Base task for ``analyze_document``; records the final failure."""

    storage: Optional[FileStorage] = None
    inference: Optional[InferenceClient] = None

    @property
    def analysis_handler(self) -> AnalysisJobHandler:
        return AnalysisJobHandler(
            database.SessionLocal,
            self.queue_backend,
            self.storage or LocalFileStorage(settings.STORAGE_ROOT),
            inference=self.inference,
        )

    def on_failure(self, exc: BaseException, task_id: str, args: tuple, kwargs: dict, einfo: Any) -> None:
        entry_id = kwargs.get("entry_id")
        job: Optional[QueuedJob] = self.queue_backend.get(entry_id) if entry_id is not None else None
        if job is None:
            logger.error(f"Task {task_id} failed without a queue entry: {exc}")
            return
        self.analysis_handler.on_failed(job, exc)


@celery_app.task(
    bind=True,
    base=AnalysisTask,
    name=ANALYZE_DOCUMENT,
    acks_late=True,
    max_retries=settings.ANALYSIS_MAX_ATTEMPTS - 1,
)
def analyze_document(self: AnalysisTask, entry_id: int) -> Optional[Dict[str, Any]]:
    """
    Analyze the document referenced by a queue entry.

    Args:
        entry_id: Queue entry id sent by ``CeleryQueueBackend.enqueue``

    Returns:
        Result stored on the entry, or None for a redelivered finished entry
    """
    backend = self.queue_backend
    job = backend.start_attempt(entry_id, self.request.retries + 1)
    if job is None:
        return None

    try:
        result = self.analysis_handler.process(job)
    except Exception as e:
        decision = backend.fail(entry_id, str(e) or type(e).__name__)
        if decision.terminal:
            raise
        raise self.retry(
            exc=e,
            countdown=decision.delay.total_seconds(),
            max_retries=job.max_attempts - 1,
        )

    backend.ack(entry_id, result)
    return result


@celery_app.task(bind=True, base=DatabaseTask, name="prune_queue_entries")
def prune_queue_entries(
    self: DatabaseTask,
    keep_completed: Optional[int] = None,
    keep_failed: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Delete finished queue entries beyond the retention counts.

    Job trackers are untouched, so analysis history survives pruning.
    """
    keep_completed = settings.QUEUE_KEEP_COMPLETED if keep_completed is None else keep_completed
    keep_failed = settings.QUEUE_KEEP_FAILED if keep_failed is None else keep_failed

    removed = self.queue_backend.prune(keep_completed, keep_failed)
    logger.info(f"Queue retention removed {removed} entries (keep {keep_completed}/{keep_failed})")
    return {"removed": removed, "stats": self.queue_backend.stats()}
