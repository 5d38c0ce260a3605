"""
Analysis Worker

Drives one ``analyze_document`` queue entry through storage, preprocessing,
inference and persistence, checkpointing progress on the job tracker so a
polling client can follow along.

Errors are recorded on the tracker and the document, then re-raised so the
queue's retry policy decides whether the entry runs again.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from contract_assistant.core.errors import AnalysisError, ConflictError, NotFoundError
from contract_assistant.queue.base import JobHandler, QueueBackend, QueuedJob
from contract_assistant.queue.payloads import ANALYZE_DOCUMENT, AnalyzeDocumentPayload, parse_payload
from contract_assistant.repositories.document_repository import DocumentRepository
from contract_assistant.repositories.job_tracker_repository import JobTrackerRepository
from contract_assistant.repositories.result_store import ResultStore
from contract_assistant.services.inference import InferenceClient
from contract_assistant.services.preprocessor import DocumentPreprocessor
from contract_assistant.services.storage import FileStorage

logger = logging.getLogger(__name__)

# Progress checkpoints
PROGRESS_STARTED = 10
PROGRESS_DOCUMENT_LOADED = 20
PROGRESS_FILE_FETCHED = 30
PROGRESS_PREPROCESSED = 50
PROGRESS_ANALYZED = 80
PROGRESS_DONE = 100


def _error_message(error: BaseException) -> str:
    if isinstance(error, AnalysisError):
        return error.message
    return str(error) or type(error).__name__


class AnalysisJobHandler(JobHandler):
    """Handles ``analyze_document`` entries."""

    name = ANALYZE_DOCUMENT

    def __init__(
        self,
        session_factory: sessionmaker,
        queue: QueueBackend,
        storage: FileStorage,
        preprocessor: Optional[DocumentPreprocessor] = None,
        inference: Optional[InferenceClient] = None,
    ):
        self.session_factory = session_factory
        self.queue = queue
        self.storage = storage
        self.preprocessor = preprocessor or DocumentPreprocessor()
        self.inference = inference or InferenceClient()

    def process(self, job: QueuedJob) -> Optional[Dict[str, Any]]:
        payload: AnalyzeDocumentPayload = parse_payload(job.name, job.payload)
        tracker_id = payload.tracker_id
        document_id = payload.document_id

        logger.info(
            f"Analyzing document {document_id} (tracker {tracker_id}, "
            f"attempt {job.attempt}/{job.max_attempts})"
        )

        with self.session_factory() as session:
            trackers = JobTrackerRepository(session)

            latest = trackers.latest_for_document(document_id)
            if latest is not None and latest.id != tracker_id:
                logger.warning(f"Tracker {tracker_id} superseded by tracker {latest.id} for document {document_id}")
                return {"trackerId": tracker_id, "superseded": True}

            try:
                tracker = trackers.mark_processing(tracker_id, PROGRESS_STARTED)
            except ConflictError:
                logger.warning(f"Tracker {tracker_id} superseded by a newer analysis of document {document_id}")
                return {"trackerId": tracker_id, "superseded": True}

            if tracker.status == "completed":
                logger.info(f"Tracker {tracker_id} already completed, nothing to do")
                return {"trackerId": tracker_id}

            self.queue.report_progress(job.id, PROGRESS_STARTED)

            try:
                DocumentRepository(session).set_status(document_id, "processing")
                return self._run(session, job, payload)
            except Exception as e:
                session.rollback()
                logger.error(f"Analysis of document {document_id} failed: {_error_message(e)}")
                self._record_failure(session, payload, _error_message(e))
                raise

    def _run(self, session: Session, job: QueuedJob, payload: AnalyzeDocumentPayload) -> Dict[str, Any]:
        documents = DocumentRepository(session)
        trackers = JobTrackerRepository(session)
        results = ResultStore(session)

        document = documents.get_by_id(payload.document_id)
        if document is None:
            raise NotFoundError(f"Document not found: {payload.document_id}")
        self._checkpoint(trackers, job, payload, PROGRESS_DOCUMENT_LOADED)

        file_content = self.storage.read(document.file_url)
        self._checkpoint(trackers, job, payload, PROGRESS_FILE_FETCHED)

        processed = self.preprocessor.process(file_content, document.mime_type, document.file_name)
        self._checkpoint(trackers, job, payload, PROGRESS_PREPROCESSED)

        outcome = self.inference.analyze(processed)
        self._checkpoint(trackers, job, payload, PROGRESS_ANALYZED)

        result = results.save(document.id, outcome, commit=False)
        documents.set_status(document.id, "completed", commit=False)
        trackers.mark_completed(payload.tracker_id)
        self.queue.report_progress(job.id, PROGRESS_DONE)

        logger.info(
            f"Document {document.id} analyzed: result {result.id}, "
            f"{len(outcome.risks)} risks{' (fallback)' if outcome.is_fallback else ''}"
        )
        return {
            "trackerId": payload.tracker_id,
            "analysisId": result.id,
            "fallback": outcome.is_fallback,
        }

    def _checkpoint(
        self, trackers: JobTrackerRepository, job: QueuedJob, payload: AnalyzeDocumentPayload, progress: int
    ) -> None:
        trackers.update_progress(payload.tracker_id, progress)
        self.queue.report_progress(job.id, progress)

    def _record_failure(self, session: Session, payload: AnalyzeDocumentPayload, message: str) -> None:
        try:
            DocumentRepository(session).set_status(payload.document_id, "failed", commit=False)
            JobTrackerRepository(session).mark_failed(payload.tracker_id, message)
        except (SQLAlchemyError, AnalysisError):
            session.rollback()
            logger.exception(f"Could not record failure of tracker {payload.tracker_id}")

    def on_failed(self, job: QueuedJob, error: BaseException) -> None:
        """Final attempt failed: re-assert the failed state with the last error."""
        payload: AnalyzeDocumentPayload = parse_payload(job.name, job.payload)
        logger.error(
            f"Analysis of document {payload.document_id} (tracker {payload.tracker_id}) "
            f"failed permanently after {job.attempt} attempts: {_error_message(error)}"
        )
        with self.session_factory() as session:
            tracker = JobTrackerRepository(session).get_by_id(payload.tracker_id)
            if tracker is None or tracker.status == "completed":
                return
            self._record_failure(session, payload, _error_message(error))
