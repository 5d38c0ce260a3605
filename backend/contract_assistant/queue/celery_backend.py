"""
Celery-backed Job Queue

Work is delivered by Celery: ``enqueue`` sends the ``analyze_document`` task
to the broker and the worker's ``--concurrency`` bounds how many run at once.
Retries go through ``Task.retry`` with the backoff stored on the entry.

Each send is mirrored by a row in ``queue_entries`` that records the Celery
task id, the attempt count, the last error and the final result, so queue
statistics and retention do not depend on the result backend.

Usage:
    queue = CeleryQueueBackend(SessionLocal, "analysis-queue", celery_app)
    queue.start()
    handle = queue.enqueue(ANALYZE_DOCUMENT, payload, JobOptions(attempts=3))
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from celery import Celery
from pydantic import BaseModel
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from contract_assistant.core.errors import QueueError
from contract_assistant.db.models.queue_entry import ENTRY_STATES, QueueEntry
from contract_assistant.queue.base import (
    BackoffPolicy,
    JobOptions,
    QueueBackend,
    QueuedJob,
    QueueHandle,
    RetryDecision,
)
from contract_assistant.queue.payloads import dump_payload

logger = logging.getLogger(__name__)

FINISHED_STATES = ("completed", "failed")
MAX_ERROR_CHARS = 4000

# Custom Celery state carrying {"progress": n, "entryId": id}
PROGRESS_STATE = "PROGRESS"

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _snapshot(entry: QueueEntry) -> QueuedJob:
    return QueuedJob(
        id=entry.id,
        queue=entry.queue,
        name=entry.name,
        payload=dict(entry.payload or {}),
        state=entry.state,
        attempt=entry.attempt,
        max_attempts=entry.max_attempts,
        backoff_base_ms=entry.backoff_base_ms,
        progress=entry.progress,
        last_error=entry.last_error,
        scheduled_at=entry.scheduled_at,
        result=entry.result,
        task_id=entry.task_id,
    )


class CeleryQueueBackend(QueueBackend):
    """Queue whose entries are executed as Celery tasks on the named queue."""

    def __init__(
        self,
        session_factory: sessionmaker,
        name: str,
        celery_app: Celery,
        clock: Optional[Clock] = None,
    ):
        self._session_factory = session_factory
        self.name = name
        self.celery_app = celery_app
        self._clock = clock or _utcnow
        self._open = False

    # -- lifecycle ---------------------------------------------------------

    def start(self) -> None:
        self._open = True
        logger.info(f"Queue '{self.name}' started")

    def close(self) -> None:
        self._open = False
        logger.info(f"Queue '{self.name}' closed")

    @property
    def is_open(self) -> bool:
        return self._open

    def _ensure_open(self) -> None:
        if not self._open:
            raise QueueError(f"Queue '{self.name}' is not started")

    # -- producer side -----------------------------------------------------

    def enqueue(self, name: str, payload: BaseModel, options: Optional[JobOptions] = None) -> QueueHandle:
        self._ensure_open()
        options = options or JobOptions()
        data = dump_payload(name, payload)
        now = self._clock()
        delay = timedelta(milliseconds=options.delay_ms)
        task_id = str(uuid.uuid4())

        entry = QueueEntry(
            queue=self.name,
            name=name,
            task_id=task_id,
            payload=data,
            state="delayed" if options.delay_ms > 0 else "waiting",
            attempt=0,
            max_attempts=options.attempts,
            backoff_base_ms=options.backoff.base_delay_ms,
            progress=0,
            scheduled_at=now + delay,
            created_at=now,
        )

        try:
            with self._session_factory.begin() as session:
                session.add(entry)
                session.flush()
                entry_id = entry.id
        except SQLAlchemyError as e:
            logger.error(f"Failed to enqueue '{name}' on '{self.name}': {e}")
            raise QueueError(f"Failed to enqueue job: {e}") from e

        # The row is committed before the send so a worker always finds it
        try:
            self.celery_app.send_task(
                name,
                kwargs={"entry_id": entry_id},
                task_id=task_id,
                queue=self.name,
                countdown=delay.total_seconds() or None,
            )
        except Exception as e:
            logger.error(f"Failed to send '{name}' entry {entry_id} to the broker: {e}")
            self._mark_unsent(entry_id, str(e))
            raise QueueError(f"Failed to enqueue job: {e}") from e

        logger.info(f"Enqueued '{name}' entry {entry_id} on '{self.name}' as task {task_id}")
        return QueueHandle(id=entry_id, queue=self.name, name=name, task_id=task_id)

    def _mark_unsent(self, entry_id: int, error: str) -> None:
        try:
            with self._session_factory.begin() as session:
                session.execute(
                    update(QueueEntry)
                    .where(QueueEntry.id == entry_id)
                    .values(
                        state="failed",
                        last_error=f"Broker send failed: {error}"[:MAX_ERROR_CHARS],
                        finished_at=self._clock(),
                    )
                    .execution_options(synchronize_session=False)
                )
        except SQLAlchemyError:
            logger.exception(f"Could not mark unsent entry {entry_id} failed")

    # -- consumer side (called from the Celery task) -----------------------

    def start_attempt(self, entry_id: int, attempt: int) -> Optional[QueuedJob]:
        now = self._clock()
        with self._session_factory.begin() as session:
            entry = session.get(QueueEntry, entry_id, with_for_update=True)
            if entry is None:
                raise QueueError(f"Queue entry not found: {entry_id}")
            if entry.state in FINISHED_STATES:
                logger.warning(f"Entry {entry_id} already {entry.state}, ignoring redelivered task")
                return None

            entry.state = "active"
            entry.attempt = attempt
            entry.started_at = now
            session.flush()
            logger.info(f"Started entry {entry.id} ('{entry.name}') attempt {entry.attempt}/{entry.max_attempts}")
            return _snapshot(entry)

    def ack(self, entry_id: int, result: Optional[Dict[str, Any]] = None) -> bool:
        now = self._clock()
        with self._session_factory.begin() as session:
            updated = session.execute(
                update(QueueEntry)
                .where(QueueEntry.id == entry_id, QueueEntry.state == "active")
                .values(state="completed", progress=100, result=result, finished_at=now)
                .execution_options(synchronize_session=False)
            ).rowcount

        if updated != 1:
            logger.warning(f"Ack ignored for entry {entry_id}: entry is no longer active")
            return False

        logger.info(f"Entry {entry_id} completed")
        return True

    def fail(self, entry_id: int, error: str) -> RetryDecision:
        now = self._clock()
        with self._session_factory.begin() as session:
            entry = session.get(QueueEntry, entry_id, with_for_update=True)
            if entry is None:
                raise QueueError(f"Queue entry not found: {entry_id}")
            if entry.state != "active":
                raise QueueError(f"Queue entry {entry_id} is not active (state={entry.state})")

            entry.last_error = (error or "Unknown error")[:MAX_ERROR_CHARS]

            if entry.attempt < entry.max_attempts:
                delay = BackoffPolicy(entry.backoff_base_ms).delay_for(entry.attempt)
                entry.state = "delayed"
                entry.scheduled_at = now + delay
                decision = RetryDecision(entry_id=entry.id, attempt=entry.attempt, terminal=False, delay=delay)
                logger.warning(
                    f"Entry {entry.id} attempt {entry.attempt}/{entry.max_attempts} failed, "
                    f"retrying in {delay.total_seconds():.1f}s: {entry.last_error}"
                )
            else:
                entry.state = "failed"
                entry.finished_at = now
                decision = RetryDecision(entry_id=entry.id, attempt=entry.attempt, terminal=True)
                logger.error(f"Entry {entry.id} failed after {entry.attempt} attempts: {entry.last_error}")

        return decision

    def report_progress(self, entry_id: int, progress: int) -> None:
        with self._session_factory.begin() as session:
            entry = session.get(QueueEntry, entry_id)
            if entry is None or entry.state != "active":
                return
            entry.progress = progress
            task_id = entry.task_id

        if task_id:
            self.celery_app.backend.store_result(
                task_id, {"progress": progress, "entryId": entry_id}, PROGRESS_STATE
            )

    # -- inspection and housekeeping ---------------------------------------

    def get(self, entry_id: int) -> Optional[QueuedJob]:
        with self._session_factory() as session:
            entry = session.get(QueueEntry, entry_id)
            return _snapshot(entry) if entry is not None else None

    def stats(self) -> Dict[str, Any]:
        with self._session_factory() as session:
            rows = session.execute(
                select(QueueEntry.state, func.count(QueueEntry.id))
                .filter(QueueEntry.queue == self.name)
                .group_by(QueueEntry.state)
            ).all()

        counts = {state: 0 for state in ENTRY_STATES}
        for state, count in rows:
            counts[state] = count

        return {
            "queueName": self.name,
            "waiting": counts["waiting"],
            "active": counts["active"],
            "completed": counts["completed"],
            "failed": counts["failed"],
            "delayed": counts["delayed"],
            "total": sum(counts.values()),
        }

    def prune(self, keep_completed: int, keep_failed: int) -> int:
        removed = 0
        with self._session_factory.begin() as session:
            for state, keep in (("completed", keep_completed), ("failed", keep_failed)):
                stale_ids = session.execute(
                    select(QueueEntry.id)
                    .filter(QueueEntry.queue == self.name, QueueEntry.state == state)
                    .order_by(QueueEntry.finished_at.desc(), QueueEntry.id.desc())
                    .offset(max(keep, 0))
                ).scalars().all()

                if stale_ids:
                    session.execute(
                        delete(QueueEntry)
                        .where(QueueEntry.id.in_(stale_ids))
                        .execution_options(synchronize_session=False)
                    )
                    removed += len(stale_ids)

        if removed:
            logger.info(f"Pruned {removed} finished entries from '{self.name}'")
        return removed
