"""Repository layer for data access."""
from contract_assistant.repositories.base_repository import BaseRepository
from contract_assistant.repositories.document_repository import DocumentRepository
from contract_assistant.repositories.job_tracker_repository import JobTrackerRepository
from contract_assistant.repositories.result_store import ResultStore

__all__ = [
    "BaseRepository",
    "DocumentRepository",
    "JobTrackerRepository",
    "ResultStore",
]
