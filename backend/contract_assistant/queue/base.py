"""Queue interfaces shared by the submission service, the analysis task and backends."""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from pydantic import BaseModel


@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential backoff: ``base * 2 ** (attempt - 1)``."""

    base_delay_ms: int = 2000

    def delay_for(self, attempt: int) -> timedelta:
        return timedelta(milliseconds=self.base_delay_ms * (2 ** max(attempt - 1, 0)))


@dataclass(frozen=True)
class JobOptions:
    """Per-entry options supplied at enqueue time."""

    attempts: int = 3
    backoff: BackoffPolicy = field(default_factory=BackoffPolicy)
    delay_ms: int = 0


@dataclass(frozen=True)
class QueueHandle:
    """Returned by ``enqueue``."""

    id: int
    queue: str
    name: str
    task_id: Optional[str] = None


@dataclass(frozen=True)
class QueuedJob:
    """Snapshot of a queue entry as seen by a worker or a status reader."""

    id: int
    queue: str
    name: str
    payload: Dict[str, Any]
    state: str
    attempt: int
    max_attempts: int
    backoff_base_ms: int
    progress: int = 0
    last_error: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    result: Optional[Dict[str, Any]] = None
    task_id: Optional[str] = None


@dataclass(frozen=True)
class RetryDecision:
    """Outcome of ``QueueBackend.fail``."""

    entry_id: int
    attempt: int
    terminal: bool
    delay: Optional[timedelta] = None


class QueueBackend(ABC):
    """Durable work queue with delayed retry."""

    name: str

    @abstractmethod
    def start(self) -> None:
        """Open the queue for enqueue."""

    @abstractmethod
    def close(self) -> None:
        """Refuse further operations."""

    @abstractmethod
    def enqueue(self, name: str, payload: BaseModel, options: Optional[JobOptions] = None) -> QueueHandle:
        """Persist a new entry and return its handle."""

    @abstractmethod
    def start_attempt(self, entry_id: int, attempt: int) -> Optional[QueuedJob]:
        """Mark an entry active for its given attempt, or return None if it already finished."""

    @abstractmethod
    def ack(self, entry_id: int, result: Optional[Dict[str, Any]] = None) -> bool:
        """Mark an active entry completed."""

    @abstractmethod
    def fail(self, entry_id: int, error: str) -> RetryDecision:
        """Record a failed attempt and decide whether the entry is retried."""

    @abstractmethod
    def report_progress(self, entry_id: int, progress: int) -> None:
        """Queue-level progress, for observability only."""

    @abstractmethod
    def get(self, entry_id: int) -> Optional[QueuedJob]:
        """Look up an entry by id."""

    @abstractmethod
    def stats(self) -> Dict[str, Any]:
        """Counts per entry state."""

    @abstractmethod
    def prune(self, keep_completed: int, keep_failed: int) -> int:
        """Delete finished entries beyond the retention counts."""


class JobHandler(ABC):
    """Processes entries of one job name."""

    name: str

    @abstractmethod
    def process(self, job: QueuedJob) -> Optional[Dict[str, Any]]:
        """Run one attempt. Raising hands the retry decision to the queue."""

    def on_failed(self, job: QueuedJob, error: BaseException) -> None:
        """Called exactly once after the final attempt has failed."""
