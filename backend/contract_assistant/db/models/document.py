"""Uploaded document model."""
import uuid as uuid_pkg
from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, Index, String
from sqlalchemy.orm import relationship

from contract_assistant.core.database import Base

DOCUMENT_STATUSES = ("pending", "processing", "completed", "failed")


class Document(Base):
    """Source file submitted for analysis.

    Rows are created by the upload flow; this service only reads them and
    moves ``status`` through the analysis lifecycle.
    """

    __tablename__ = "documents"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid_pkg.uuid4()))
    user_id = Column(String(255), nullable=False, index=True)

    # Storage locator, e.g. /uploads/contracts/<file>
    file_url = Column(String(1000), nullable=False)
    file_name = Column(String(500), nullable=False)
    mime_type = Column(String(255))
    size_bytes = Column(BigInteger)

    status = Column(String(20), default="pending", nullable=False)  # pending, processing, completed, failed
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships (CASCADE delete removes results and risk items)
    analysis_jobs = relationship("AnalysisJob", back_populates="document", cascade="all, delete-orphan")
    analysis_results = relationship("AnalysisResult", back_populates="document", cascade="all, delete-orphan")

    __table_args__ = (Index("idx_documents_user_status", "user_id", "status"),)
