"""Analysis job tracker model."""
import uuid as uuid_pkg
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import relationship

from contract_assistant.core.database import Base

JOB_STATUSES = ("pending", "processing", "completed", "failed")
IN_FLIGHT_STATUSES = ("pending", "processing")
TERMINAL_STATUSES = ("completed", "failed")

_IN_FLIGHT_PREDICATE = text("status IN ('pending', 'processing')")


class AnalysisJob(Base):
    """Lifecycle record of one analysis request.

    Lives independently of the queue entry that drives it, so status can be
    polled after the queue has pruned its own bookkeeping.
    """

    __tablename__ = "analysis_jobs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid_pkg.uuid4()))
    user_id = Column(String(255), nullable=False, index=True)
    document_id = Column(String(36), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    status = Column(String(20), default="pending", nullable=False)  # pending, processing, completed, failed
    progress = Column(Integer, default=0, nullable=False)
    error = Column(Text)
    started_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    completed_at = Column(DateTime(timezone=True))

    document = relationship("Document", back_populates="analysis_jobs")

    __table_args__ = (
        Index("idx_analysis_jobs_document_started", "document_id", "started_at"),
        # At most one in-flight job per document
        Index(
            "uq_analysis_jobs_document_in_flight",
            "document_id",
            unique=True,
            postgresql_where=_IN_FLIGHT_PREDICATE,
            sqlite_where=_IN_FLIGHT_PREDICATE,
        ),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
