"""
Analysis API Endpoints

Submit a document for analysis, poll the job tracker, and read the latest
result, its risks and the analysis history of a document.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session

from contract_assistant.api.deps import get_session, get_submitter
from contract_assistant.core.auth import get_current_user_id
from contract_assistant.core.errors import ForbiddenError
from contract_assistant.db.models.analysis_job import AnalysisJob
from contract_assistant.db.models.analysis_result import AnalysisResult, RiskItem
from contract_assistant.repositories.document_repository import DocumentRepository
from contract_assistant.repositories.job_tracker_repository import JobTrackerRepository
from contract_assistant.repositories.result_store import ResultStore
from contract_assistant.services.submission import Submitter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analyses", tags=["analyses"])


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SubmitAnalysisRequest(CamelModel):
    """Request to analyse an uploaded document."""

    document_id: str


class SubmitAnalysisResponse(CamelModel):
    """Response when an analysis is queued."""

    job_id: str
    """Queue entry ID"""

    tracker_id: str
    """Job tracker ID to poll"""

    status: str = "pending"
    message: str


class JobStatusResponse(CamelModel):
    """Job tracker state."""

    id: str
    document_id: str
    status: str
    progress: int
    error: Optional[str] = None
    started_at: datetime
    completed_at: Optional[datetime] = None

    @classmethod
    def from_job(cls, job: AnalysisJob) -> "JobStatusResponse":
        return cls(
            id=job.id,
            document_id=job.document_id,
            status=job.status,
            progress=job.progress,
            error=job.error,
            started_at=job.started_at,
            completed_at=job.completed_at,
        )


class RiskResponse(CamelModel):
    id: str
    title: str
    description: str
    level: str
    category: str
    suggestion: Optional[str] = None
    clause_ref: Optional[str] = None

    @classmethod
    def from_risk(cls, risk: RiskItem) -> "RiskResponse":
        return cls(
            id=risk.id,
            title=risk.title,
            description=risk.description,
            level=risk.level,
            category=risk.category or "other",
            suggestion=risk.suggestion,
            clause_ref=risk.clause_ref,
        )


class AnalysisResultResponse(CamelModel):
    """Latest analysis of a document."""

    id: str
    document_id: str
    type: str
    overview: Dict[str, Any]
    """summary, riskLevel, keyTerms, contractInfo, analyzedAt"""

    suggestions: Dict[str, Any]
    """recommendations"""

    risks: List[RiskResponse]
    created_at: datetime

    @classmethod
    def from_result(cls, result: AnalysisResult) -> "AnalysisResultResponse":
        return cls(
            id=result.id,
            document_id=result.document_id,
            type=result.type,
            overview=result.overview_data,
            suggestions=result.suggestions_data,
            risks=[RiskResponse.from_risk(risk) for risk in result.risks],
            created_at=result.created_at,
        )


@router.post("", response_model=SubmitAnalysisResponse, status_code=status.HTTP_201_CREATED)
def submit_analysis(
    request: SubmitAnalysisRequest,
    user_id: str = Depends(get_current_user_id),
    submitter: Submitter = Depends(get_submitter),
) -> SubmitAnalysisResponse:
    """
    Queue an analysis of one of the caller's documents.

    Returns immediately; poll ``/analyses/status/{trackerId}`` for progress.
    """
    receipt = submitter.submit(request.document_id, user_id)
    return SubmitAnalysisResponse(
        job_id=receipt.job_id,
        tracker_id=receipt.tracker_id,
        status=receipt.status,
        message=receipt.message,
    )


@router.get("/status/{tracker_id}", response_model=JobStatusResponse)
def get_job_status(
    tracker_id: str,
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
) -> JobStatusResponse:
    job = JobTrackerRepository(session).get(tracker_id)
    if job.user_id != user_id:
        raise ForbiddenError("You do not have permission to access this analysis job")
    return JobStatusResponse.from_job(job)


@router.get("/document/{document_id}", response_model=Optional[AnalysisResultResponse])
def get_latest_result(
    document_id: str,
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
) -> Optional[AnalysisResultResponse]:
    """Latest analysis result with risks, or null when none exists."""
    DocumentRepository(session).get_owned(document_id, user_id)
    result = ResultStore(session).latest(document_id)
    return AnalysisResultResponse.from_result(result) if result is not None else None


@router.get("/document/{document_id}/risks", response_model=List[RiskResponse])
def get_document_risks(
    document_id: str,
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
) -> List[RiskResponse]:
    DocumentRepository(session).get_owned(document_id, user_id)
    return [RiskResponse.from_risk(risk) for risk in ResultStore(session).risks(document_id)]


@router.get("/document/{document_id}/history", response_model=List[JobStatusResponse])
def get_document_history(
    document_id: str,
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
) -> List[JobStatusResponse]:
    """All analysis jobs of a document, newest first."""
    DocumentRepository(session).get_owned(document_id, user_id)
    return [JobStatusResponse.from_job(job) for job in JobTrackerRepository(session).history(document_id)]
