"""Services package for business logic and external integrations."""

from contract_assistant.services.inference import InferenceClient
from contract_assistant.services.preprocessor import DocumentPreprocessor, ProcessedDocument
from contract_assistant.services.storage import FileStorage, LocalFileStorage
from contract_assistant.services.submission import SubmissionService, Submitter

__all__ = [
    "DocumentPreprocessor",
    "FileStorage",
    "InferenceClient",
    "LocalFileStorage",
    "ProcessedDocument",
    "SubmissionService",
    "Submitter",
]
