"""Job tracker repository.

Owns the AnalysisJob lifecycle: created by the submission service, then
moved through processing to a terminal state by the worker that runs it.
"""
import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from contract_assistant.core.errors import ConflictError, NotFoundError
from contract_assistant.db.models.analysis_job import IN_FLIGHT_STATUSES, AnalysisJob
from contract_assistant.repositories.base_repository import BaseRepository

logger = logging.getLogger(__name__)

CONFLICT_MESSAGE = "An analysis is already in progress for this document"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobTrackerRepository(BaseRepository[AnalysisJob]):
    """Repository for AnalysisJob rows."""

    def __init__(self, session: Session):
        super().__init__(AnalysisJob, session)

    def create(self, document_id: str, user_id: str) -> AnalysisJob:
        """Create a pending tracker for a document.

        Args:
            document_id: Document being analysed
            user_id: Owner of the document

        Returns:
            The committed AnalysisJob

        Raises:
            ConflictError: Another in-flight tracker exists for the document
        """
        job = AnalysisJob(
            document_id=document_id,
            user_id=user_id,
            status="pending",
            progress=0,
            started_at=_utcnow(),
        )
        self.session.add(job)
        try:
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            logger.warning(f"Concurrent submission rejected for document {document_id}: {e.orig}")
            raise ConflictError(CONFLICT_MESSAGE) from e

        logger.info(f"Created tracker {job.id} for document {document_id}")
        return job

    def get(self, tracker_id: str) -> AnalysisJob:
        job = self.get_by_id(tracker_id)
        if job is None:
            raise NotFoundError("Analysis job not found")
        return job

    def find_in_flight(self, document_id: str) -> Optional[AnalysisJob]:
        result = self.session.execute(
            select(AnalysisJob)
            .filter(AnalysisJob.document_id == document_id, AnalysisJob.status.in_(IN_FLIGHT_STATUSES))
            .limit(1)
        )
        return result.scalar_one_or_none()

    def mark_processing(self, tracker_id: str, progress: int) -> AnalysisJob:
        """Move a tracker to processing.

        A retry re-enters processing from failed. Completed trackers are final
        and are returned unchanged.

        Raises:
            ConflictError: A newer in-flight tracker exists for the same document
        """
        job = self.get(tracker_id)
        if job.status == "completed":
            return job

        job.status = "processing"
        job.progress = max(job.progress or 0, progress)
        job.error = None
        job.completed_at = None
        try:
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            raise ConflictError(CONFLICT_MESSAGE) from e
        return job

    def update_progress(self, tracker_id: str, progress: int) -> AnalysisJob:
        """Raise tracker progress. Progress never moves backwards."""
        job = self.get(tracker_id)
        job.progress = max(job.progress or 0, min(progress, 100))
        self.commit()
        return job

    def mark_completed(self, tracker_id: str) -> AnalysisJob:
        job = self.get(tracker_id)
        job.status = "completed"
        job.progress = 100
        job.error = None
        job.completed_at = _utcnow()
        self.commit()
        logger.info(f"Tracker {tracker_id} completed")
        return job

    def mark_failed(self, tracker_id: str, error: str) -> AnalysisJob:
        job = self.get(tracker_id)
        if job.status == "completed":
            logger.warning(f"Tracker {tracker_id} already completed, ignoring failure: {error}")
            return job

        job.status = "failed"
        job.error = error
        job.completed_at = _utcnow()
        self.commit()
        logger.info(f"Tracker {tracker_id} failed: {error}")
        return job

    def discard(self, tracker_id: str) -> None:
        """Delete a tracker whose work never reached the queue."""
        job = self.get_by_id(tracker_id)
        if job is not None:
            self.session.delete(job)
        self.commit()
        logger.warning(f"Tracker {tracker_id} discarded")

    def latest_for_document(self, document_id: str) -> Optional[AnalysisJob]:
        result = self.session.execute(
            select(AnalysisJob)
            .filter(AnalysisJob.document_id == document_id)
            .order_by(AnalysisJob.started_at.desc(), AnalysisJob.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    def history(self, document_id: str) -> List[AnalysisJob]:
        """All trackers for a document, newest first."""
        result = self.session.execute(
            select(AnalysisJob)
            .filter(AnalysisJob.document_id == document_id)
            .order_by(AnalysisJob.started_at.desc(), AnalysisJob.id.desc())
        )
        return list(result.scalars().all())
