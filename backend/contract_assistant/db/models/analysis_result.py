"""Analysis result and risk item models."""
import uuid as uuid_pkg
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from contract_assistant.core.database import Base

RISK_LEVELS = ("high", "medium", "low")


class AnalysisResult(Base):
    """Structured output of one successful analysis. Never mutated."""

    __tablename__ = "analysis_results"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid_pkg.uuid4()))
    document_id = Column(String(36), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(20), default="full", nullable=False)

    # {summary, riskLevel, keyTerms, contractInfo, analyzedAt}
    overview_data = Column(JSON, nullable=False)
    # {recommendations}
    suggestions_data = Column(JSON, nullable=False)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    document = relationship("Document", back_populates="analysis_results")
    risks = relationship(
        "RiskItem",
        back_populates="analysis",
        cascade="all, delete-orphan",
        order_by="RiskItem.position",
    )

    __table_args__ = (Index("idx_analysis_results_document_created", "document_id", "created_at"),)


class RiskItem(Base):
    """One risk identified within an analysis result."""

    __tablename__ = "risk_items"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid_pkg.uuid4()))
    analysis_id = Column(String(36), ForeignKey("analysis_results.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, default=0, nullable=False)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=False)
    level = Column(String(10), nullable=False)  # high, medium, low
    category = Column(String(50), default="other")  # legal, financial, operational, compliance, other
    suggestion = Column(Text)
    clause_ref = Column(String(255))

    analysis = relationship("AnalysisResult", back_populates="risks")
