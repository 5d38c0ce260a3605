"""Tests for AnalysisJob, AnalysisResult and QueueEntry models."""
from datetime import datetime, timezone

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from contract_assistant.db.models import AnalysisJob, AnalysisResult, Document, QueueEntry, RiskItem


def _document(db: Session, user_id: str = "user-1") -> Document:
    document = Document(user_id=user_id, file_url="/uploads/a.pdf", file_name="a.pdf", mime_type="application/pdf")
    db.add(document)
    db.commit()
    return document


def test_create_analysis_job(db: Session) -> None:
    """Test creating an analysis job with defaults."""
    document = _document(db)
    job = AnalysisJob(user_id="user-1", document_id=document.id)
    db.add(job)
    db.commit()
    db.refresh(job)

    assert job.id is not None
    assert len(job.id) == 36
    assert job.status == "pending"
    assert job.progress == 0
    assert job.started_at is not None
    assert job.completed_at is None
    assert job.error is None
    assert not job.is_terminal


def test_document_defaults(db: Session) -> None:
    document = _document(db)
    db.refresh(document)

    assert document.status == "pending"
    assert document.created_at is not None


def test_only_one_in_flight_job_per_document(db: Session) -> None:
    """Test the partial unique index on in-flight jobs."""
    document = _document(db)
    db.add(AnalysisJob(user_id="user-1", document_id=document.id, status="processing"))
    db.commit()

    db.add(AnalysisJob(user_id="user-1", document_id=document.id, status="pending"))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_terminal_jobs_do_not_block_new_ones(db: Session) -> None:
    document = _document(db)
    db.add_all(
        [
            AnalysisJob(user_id="user-1", document_id=document.id, status="failed"),
            AnalysisJob(user_id="user-1", document_id=document.id, status="completed"),
            AnalysisJob(user_id="user-1", document_id=document.id, status="pending"),
        ]
    )
    db.commit()

    assert db.query(AnalysisJob).filter(AnalysisJob.document_id == document.id).count() == 3


def test_deleting_document_cascades_to_results_and_risks(db: Session) -> None:
    """Test cascade delete from documents to results and risk items."""
    document = _document(db)
    result = AnalysisResult(
        document_id=document.id,
        overview_data={"summary": "s", "riskLevel": "low", "keyTerms": [], "contractInfo": None},
        suggestions_data={"recommendations": []},
    )
    result.risks = [RiskItem(title="t", description="d", level="low")]
    db.add(result)
    db.add(AnalysisJob(user_id="user-1", document_id=document.id, status="completed"))
    db.commit()

    assert result.type == "full"
    assert result.risks[0].category == "other"

    db.delete(document)
    db.commit()

    assert db.query(AnalysisResult).count() == 0
    assert db.query(RiskItem).count() == 0
    assert db.query(AnalysisJob).count() == 0


def test_queue_entry_defaults(db: Session) -> None:
    entry = QueueEntry(
        queue="analysis-queue",
        name="analyze_document",
        payload={"documentId": "d"},
        scheduled_at=datetime.now(timezone.utc),
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)

    assert entry.id is not None
    assert entry.state == "waiting"
    assert entry.attempt == 0
    assert entry.max_attempts == 3
    assert entry.backoff_base_ms == 2000
