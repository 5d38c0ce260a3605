"""Database models package."""
from contract_assistant.db.models.analysis_job import AnalysisJob
from contract_assistant.db.models.analysis_result import AnalysisResult, RiskItem
from contract_assistant.db.models.document import Document
from contract_assistant.db.models.queue_entry import QueueEntry

__all__ = [
    "Document",
    "AnalysisJob",
    "AnalysisResult",
    "RiskItem",
    "QueueEntry",
]
