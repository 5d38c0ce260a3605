"""Payload schemas for queued job kinds.

The job name stored on each queue entry is the tag; every tag maps to exactly
one schema, so workers never handle untyped dictionaries.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Type

from pydantic import BaseModel, ConfigDict, Field

from contract_assistant.core.errors import QueueError

ANALYZE_DOCUMENT = "analyze_document"


class AnalyzeDocumentPayload(BaseModel):
    """Payload of an ``analyze_document`` entry."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    document_id: str = Field(alias="documentId")
    user_id: str = Field(alias="userId")
    tracker_id: str = Field(alias="trackerId")
    enqueued_at: datetime = Field(alias="enqueuedAt", default_factory=lambda: datetime.now(timezone.utc))


PAYLOAD_SCHEMAS: Dict[str, Type[BaseModel]] = {
    ANALYZE_DOCUMENT: AnalyzeDocumentPayload,
}


def schema_for(name: str) -> Type[BaseModel]:
    try:
        return PAYLOAD_SCHEMAS[name]
    except KeyError:
        raise QueueError(f"Unknown job kind: {name}") from None


def dump_payload(name: str, payload: BaseModel) -> Dict[str, Any]:
    """Validate the payload against its tag and serialise it for storage."""
    schema = schema_for(name)
    if not isinstance(payload, schema):
        raise QueueError(f"Payload for '{name}' must be {schema.__name__}, got {type(payload).__name__}")
    return payload.model_dump(mode="json", by_alias=True)


def parse_payload(name: str, data: Dict[str, Any]) -> BaseModel:
    return schema_for(name).model_validate(data)
