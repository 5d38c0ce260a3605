"""Contract analysis via the OpenAI chat completions API."""
import base64
import json
import logging
from typing import Any, Dict, List, Optional

import openai
from openai import OpenAI
from pydantic import ValidationError as PydanticValidationError

from contract_assistant.core.config import settings
from contract_assistant.core.errors import (
    InferenceConfigError,
    InferenceError,
    InferenceQuotaError,
    InferenceTimeoutError,
    MalformedResponseError,
)
from contract_assistant.services.outcome import AnalysisOutcome, fallback_outcome
from contract_assistant.services.preprocessor import ProcessedDocument

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a professional contract analysis assistant. Analyze the contract you are given and provide:

1. **Risk Identification**: potential legal risks and unfavourable terms
2. **Key Terms**: the important rights and obligations clauses
3. **Professional Recommendations**: precautions to take before signing

Return JSON with exactly this structure:
{
  "summary": "Brief overall analysis summary",
  "riskLevel": "high|medium|low",
  "risks": [
    {
      "title": "Risk title",
      "description": "Detailed description",
      "severity": "high|medium|low",
      "category": "legal|financial|operational|compliance|other",
      "suggestion": "Improvement suggestion",
      "clauseRef": "Clause number or heading, if any"
    }
  ],
  "keyTerms": [
    {"title": "Key term title", "content": "Term content", "importance": "critical|important|normal"}
  ],
  "recommendations": ["Recommendation 1", "Recommendation 2"],
  "contractInfo": {
    "type": "Contract type if identifiable",
    "parties": ["Party 1", "Party 2"],
    "effectiveDate": "Date if found",
    "expirationDate": "Date if found",
    "totalValue": "Amount if found"
  }
}

Return ONLY the JSON object."""


class InferenceClient:
    """Sends a preprocessed document to the model and parses the analysis."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        max_text_chars: Optional[int] = None,
        client: Optional[Any] = None,
    ):
        """Initialize the inference client.

        Args:
            api_key: OpenAI API key (defaults to settings.OPENAI_API_KEY)
            model: Chat model name (defaults to settings.OPENAI_MODEL)
            timeout: Request timeout in seconds
            max_text_chars: Text documents are truncated to this length
            client: Pre-built OpenAI-compatible client
        """
        self.api_key = api_key or settings.OPENAI_API_KEY
        self.model = model or settings.OPENAI_MODEL
        self.timeout = timeout or settings.INFERENCE_TIMEOUT_SECONDS
        self.max_text_chars = max_text_chars or settings.INFERENCE_MAX_TEXT_CHARS
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            if not self.api_key:
                raise InferenceConfigError("OpenAI API key is not configured")
            self._client = OpenAI(api_key=self.api_key, timeout=self.timeout, max_retries=0)
        return self._client

    def analyze(self, document: ProcessedDocument) -> AnalysisOutcome:
        """Analyze a document.

        Malformed model output is recovered into the fallback outcome; every
        other failure is raised as a classified InferenceError.
        """
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": self._build_user_content(document)},
        ]

        logger.info(f"Requesting analysis from {self.model} for {document.kind} document ({document.mime_type})")
        raw = self._complete(messages)

        try:
            outcome = parse_analysis(raw)
        except MalformedResponseError as e:
            logger.warning(f"Falling back to degraded analysis: {e}")
            return fallback_outcome()

        logger.info(f"Analysis received: risk level {outcome.risk_level}, {len(outcome.risks)} risks")
        return outcome

    def _complete(self, messages: List[Dict[str, Any]]) -> str:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                response_format={"type": "json_object"},
                temperature=0.2,
            )
        except InferenceError:
            raise
        except openai.APITimeoutError as e:
            raise InferenceTimeoutError(f"Inference timed out after {self.timeout}s") from e
        except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
            raise InferenceConfigError(f"Inference API rejected the configured credentials: {e}") from e
        except openai.RateLimitError as e:
            raise InferenceQuotaError(f"Inference quota or rate limit exceeded: {e}") from e
        except openai.OpenAIError as e:
            raise InferenceError(f"Inference request failed: {e}") from e

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    def _build_user_content(self, document: ProcessedDocument) -> Any:
        if document.is_text:
            text = document.text or ""
            if len(text) > self.max_text_chars:
                logger.warning(f"Truncating document text from {len(text)} to {self.max_text_chars} characters")
                text = text[: self.max_text_chars]
            return f"Analyze this contract.\n\n--- Contract Text ---\n{text}"

        if not document.payload:
            raise InferenceError("Invalid document format: missing binary payload")

        data_url = f"data:{document.mime_type};base64,{base64.b64encode(document.payload).decode('ascii')}"
        if document.mime_type == "application/pdf":
            part = {"type": "file", "file": {"filename": "contract.pdf", "file_data": data_url}}
        else:
            part = {"type": "image_url", "image_url": {"url": data_url}}

        return [{"type": "text", "text": "Analyze this contract."}, part]


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence, if any."""
    cleaned = text.strip()
    if not cleaned.startswith("```"):
        return cleaned

    first_newline = cleaned.find("\n")
    cleaned = cleaned[first_newline + 1:] if first_newline != -1 else cleaned[3:]
    if cleaned.rstrip().endswith("```"):
        cleaned = cleaned.rstrip()[:-3]
    return cleaned.strip()


def parse_analysis(raw: str) -> AnalysisOutcome:
    """Parse model output into an AnalysisOutcome.

    Raises:
        MalformedResponseError: Not JSON, or missing summary / riskLevel / risks
    """
    try:
        parsed = json.loads(strip_code_fences(raw or ""))
    except json.JSONDecodeError as e:
        raise MalformedResponseError(f"Response is not valid JSON: {e}") from e

    if not isinstance(parsed, dict):
        raise MalformedResponseError("Response is not a JSON object")
    if (
        not isinstance(parsed.get("summary"), str)
        or not isinstance(parsed.get("riskLevel"), str)
        or not isinstance(parsed.get("risks"), list)
    ):
        raise MalformedResponseError("Invalid response format from model")

    parsed.pop("analyzedAt", None)
    try:
        return AnalysisOutcome.model_validate(parsed)
    except PydanticValidationError as e:
        raise MalformedResponseError(f"Response failed validation: {e.error_count()} errors") from e
    except Exception as e:
        raise MalformedResponseError(f"Response could not be read: {e}") from e
