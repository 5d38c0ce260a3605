"""
Analysis Submission Service

Validates an analysis request, guarantees at most one in-flight analysis per
document, creates the job tracker and enqueues the work.

Usage:
    service = SubmissionService(session, queue)
    receipt = service.submit(document_id, user_id)
"""

import logging
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from contract_assistant.core.config import settings
from contract_assistant.core.errors import (
    ConflictError,
    PersistenceError,
    QueueError,
    SubmissionError,
    ValidationError,
)
from contract_assistant.queue.base import BackoffPolicy, JobOptions, QueueBackend
from contract_assistant.queue.payloads import ANALYZE_DOCUMENT, AnalyzeDocumentPayload
from contract_assistant.repositories.document_repository import DocumentRepository
from contract_assistant.repositories.job_tracker_repository import CONFLICT_MESSAGE, JobTrackerRepository

logger = logging.getLogger(__name__)

SUBMITTED_MESSAGE = "Analysis job submitted. Poll the status endpoint for progress."


@dataclass(frozen=True)
class SubmissionReceipt:
    job_id: str
    tracker_id: str
    status: str
    message: str


class Submitter(Protocol):
    """Anything that can accept an analysis request for a document."""

    def submit(self, document_id: str, user_id: str) -> SubmissionReceipt:
        ...


class SubmissionService:
    """Default Submitter backed by the job tracker and a queue backend."""

    def __init__(
        self,
        session: Session,
        queue: QueueBackend,
        max_attempts: int = settings.ANALYSIS_MAX_ATTEMPTS,
        backoff_base_ms: int = settings.ANALYSIS_BACKOFF_BASE_MS,
    ):
        self.session = session
        self.queue = queue
        self.documents = DocumentRepository(session)
        self.trackers = JobTrackerRepository(session)
        self.options = JobOptions(attempts=max_attempts, backoff=BackoffPolicy(backoff_base_ms))

    def submit(self, document_id: str, user_id: str) -> SubmissionReceipt:
        """
        Submit a document for analysis.

        Args:
            document_id: Document to analyse
            user_id: Authenticated caller

        Returns:
            SubmissionReceipt with the queue entry id and tracker id

        Raises:
            ValidationError: Empty document id
            NotFoundError: Document does not exist
            ForbiddenError: Caller does not own the document
            ConflictError: An analysis is already pending or processing
            SubmissionError: Tracker or queue write failed
        """
        if not document_id or not str(document_id).strip():
            raise ValidationError("documentId is required")

        document = self.documents.get_owned(document_id, user_id)

        if self.trackers.find_in_flight(document.id) is not None:
            logger.info(f"Rejected duplicate analysis request for document {document.id}")
            raise ConflictError(CONFLICT_MESSAGE)

        previous_status = document.status
        try:
            # Tracker and document status commit together, before any worker can see the job
            self.documents.set_status(document.id, "processing", commit=False)
            tracker = self.trackers.create(document.id, user_id)
        except SQLAlchemyError as e:
            self.session.rollback()
            raise SubmissionError(f"Failed to create analysis job: {e}") from e

        payload = AnalyzeDocumentPayload(document_id=document.id, user_id=user_id, tracker_id=tracker.id)
        try:
            handle = self.queue.enqueue(ANALYZE_DOCUMENT, payload, self.options)
        except QueueError as e:
            logger.error(f"Failed to enqueue analysis for document {document.id}: {e}")
            self._abandon(tracker.id, document.id, previous_status, f"Failed to enqueue analysis job: {e}")
            raise SubmissionError(f"Failed to enqueue analysis job: {e}") from e

        logger.info(f"Submitted analysis for document {document.id}: tracker {tracker.id}, entry {handle.id}")
        return SubmissionReceipt(
            job_id=str(handle.id),
            tracker_id=tracker.id,
            status="pending",
            message=SUBMITTED_MESSAGE,
        )

    def _abandon(self, tracker_id: str, document_id: str, previous_status: str, error: str) -> None:
        """Undo a submission whose work never reached the queue.

        The tracker is marked failed; if even that cannot be written it is
        deleted, so no pending tracker is left without queued work.
        """
        try:
            self.documents.set_status(document_id, previous_status, commit=False)
            self.trackers.mark_failed(tracker_id, error)
            return
        except (SQLAlchemyError, PersistenceError) as e:
            self.session.rollback()
            logger.error(f"Could not mark tracker {tracker_id} failed, discarding it: {e}")

        try:
            self.documents.set_status(document_id, previous_status, commit=False)
            self.trackers.discard(tracker_id)
        except (SQLAlchemyError, PersistenceError):
            self.session.rollback()
            logger.exception(f"Could not discard tracker {tracker_id}")
