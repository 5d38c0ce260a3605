"""Error taxonomy for the analysis pipeline.

Every error raised by the pipeline derives from ``AnalysisError`` and carries
the HTTP status and error code the API renders for it. Errors raised inside
the worker are recorded on the job tracker and re-raised so the queue's retry
policy decides what happens next.
"""
from typing import Optional


class AnalysisError(Exception):
    """Base class for pipeline errors."""

    status_code = 500
    code = "SRV_9001"

    def __init__(self, message: str, *, detail: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class ValidationError(AnalysisError):
    """Request payload has the wrong shape."""

    status_code = 400
    code = "VAL_2001"


class NotFoundError(AnalysisError):
    """Document, tracker or stored file does not exist."""

    status_code = 404
    code = "RES_3001"


class ForbiddenError(AnalysisError):
    """Caller does not own the requested resource."""

    status_code = 403
    code = "AUTH_1005"


class ConflictError(AnalysisError):
    """An analysis is already pending or processing for the document."""

    # The public API reports duplicate submissions as a bad request.
    status_code = 400
    code = "ANAL_5004"


class UnsupportedMediaError(AnalysisError):
    """Preprocessor could not classify the document type."""

    status_code = 415
    code = "FILE_4002"


class PreprocessingError(AnalysisError):
    """A recognised document could not be read."""

    status_code = 422
    code = "ANAL_5001"


class InferenceError(AnalysisError):
    """External inference call failed."""

    status_code = 502
    code = "ANAL_5002"
    kind = "api"


class InferenceConfigError(InferenceError):
    """API key missing or rejected."""

    kind = "config"


class InferenceQuotaError(InferenceError):
    """Rate limit or quota exhausted."""

    status_code = 429
    kind = "quota"


class InferenceTimeoutError(InferenceError):
    """Inference call exceeded the configured timeout."""

    status_code = 504
    kind = "timeout"


class MalformedResponseError(InferenceError):
    """Inference returned something that is not a usable analysis."""

    kind = "malformed_response"


class PersistenceError(AnalysisError):
    """Store write failed."""

    code = "DB_6001"


class SubmissionError(AnalysisError):
    """Submission could not be completed after validation passed."""

    code = "SRV_9001"


class QueueError(AnalysisError):
    """Queue backend refused or lost an operation."""

    status_code = 503
    code = "SRV_9002"
