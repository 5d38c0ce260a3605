"""Queue entry bookkeeping for Celery-run jobs."""
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, Text

from contract_assistant.core.database import Base

# waiting: sent to the broker; active: a worker started an attempt;
# delayed: a retry is scheduled; completed / failed: final
ENTRY_STATES = ("waiting", "delayed", "active", "completed", "failed")


class QueueEntry(Base):
    """One queued job, its Celery task id and its retry history.

    Distinct from the AnalysisJob tracker: entries are pruned by retention,
    trackers are kept for history.
    """

    __tablename__ = "queue_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    queue = Column(String(100), nullable=False)
    name = Column(String(100), nullable=False)  # payload kind tag, also the Celery task name
    task_id = Column(String(155), unique=True)
    payload = Column(JSON, nullable=False)
    state = Column(String(20), default="waiting", nullable=False)

    attempt = Column(Integer, default=0, nullable=False)
    max_attempts = Column(Integer, default=3, nullable=False)
    backoff_base_ms = Column(Integer, default=2000, nullable=False)
    progress = Column(Integer, default=0, nullable=False)
    last_error = Column(Text)
    result = Column(JSON)

    scheduled_at = Column(DateTime(timezone=True), nullable=False)
    started_at = Column(DateTime(timezone=True))
    finished_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    __table_args__ = (
        Index("idx_queue_entries_state", "queue", "state"),
        Index("idx_queue_entries_finished", "queue", "state", "finished_at"),
    )
