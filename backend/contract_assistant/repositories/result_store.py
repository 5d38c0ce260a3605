"""Result store for analysis outcomes."""
import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from contract_assistant.core.errors import PersistenceError
from contract_assistant.db.models.analysis_result import AnalysisResult, RiskItem
from contract_assistant.repositories.base_repository import BaseRepository
from contract_assistant.services.outcome import AnalysisOutcome

logger = logging.getLogger(__name__)


class ResultStore(BaseRepository[AnalysisResult]):
    """Persists AnalysisResult rows together with their RiskItems."""

    def __init__(self, session: Session):
        super().__init__(AnalysisResult, session)

    def save(self, document_id: str, outcome: AnalysisOutcome, commit: bool = True) -> AnalysisResult:
        """Write one result and all of its risks in a single transaction.

        Args:
            document_id: Document the analysis belongs to
            outcome: Parsed inference output
            commit: Commit now, or only flush and leave the commit to the caller

        Returns:
            The saved AnalysisResult

        Raises:
            PersistenceError: Nothing was written
        """
        result = AnalysisResult(
            document_id=document_id,
            type="full",
            overview_data=outcome.overview_payload(),
            suggestions_data=outcome.suggestions_payload(),
        )
        result.risks = [
            RiskItem(
                position=position,
                title=risk.title,
                description=risk.description,
                level=risk.level,
                category=risk.category or "other",
                suggestion=risk.suggestion,
                clause_ref=risk.clause_ref,
            )
            for position, risk in enumerate(outcome.risks)
        ]

        try:
            self.session.add(result)
            if commit:
                self.session.commit()
            else:
                self.session.flush()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Failed to save analysis for document {document_id}: {e}")
            raise PersistenceError(f"Failed to save analysis result: {e}") from e

        logger.info(f"Saved analysis {result.id} for document {document_id} with {len(result.risks)} risks")
        return result

    def latest(self, document_id: str) -> Optional[AnalysisResult]:
        """Most recent result for a document, with risks loaded."""
        result = self.session.execute(
            select(AnalysisResult)
            .options(selectinload(AnalysisResult.risks))
            .filter(AnalysisResult.document_id == document_id)
            .order_by(AnalysisResult.created_at.desc(), AnalysisResult.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    def risks(self, document_id: str) -> List[RiskItem]:
        latest = self.latest(document_id)
        return list(latest.risks) if latest is not None else []

    def count_for(self, document_id: str) -> int:
        result = self.session.execute(
            select(AnalysisResult.id).filter(AnalysisResult.document_id == document_id)
        )
        return len(result.scalars().all())
