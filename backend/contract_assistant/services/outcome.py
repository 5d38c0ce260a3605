"""Structured analysis returned by the inference client and stored by the result store."""
from datetime import datetime, timezone
from typing import Any, List, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

RiskLevel = str  # high | medium | low

FALLBACK_SUMMARY = "Analysis result could not be parsed, but the document was recognised."
FALLBACK_RISK_TITLE = "Response parsing failed"


def _normalise_choice(value: Any, choices: Tuple[str, ...], default: str) -> str:
    if not isinstance(value, str):
        return default
    value = value.strip().lower()
    return value if value in choices else default


def _normalise_level(value: Any, default: str = "medium") -> str:
    return _normalise_choice(value, ("high", "medium", "low"), default)


class RiskFinding(BaseModel):
    """One risk as reported by the model."""

    model_config = ConfigDict(populate_by_name=True)

    title: str
    description: str = ""
    # The prompt asks for "severity"; stored as the risk level
    level: str = Field(default="medium", validation_alias=AliasChoices("severity", "level"))
    category: str = "other"
    suggestion: Optional[str] = None
    clause_ref: Optional[str] = Field(default=None, validation_alias=AliasChoices("clauseRef", "clause_ref"))

    @field_validator("level", mode="before")
    @classmethod
    def _level(cls, value):
        return _normalise_level(value)

    @field_validator("category", mode="before")
    @classmethod
    def _category(cls, value):
        return value or "other"


class KeyTerm(BaseModel):
    title: str
    content: str = ""
    importance: str = "normal"  # critical, important, normal

    @field_validator("importance", mode="before")
    @classmethod
    def _importance(cls, value):
        return _normalise_choice(value, ("critical", "important", "normal"), "normal")


class ContractInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Optional[str] = None
    parties: List[str] = Field(default_factory=list)
    effective_date: Optional[str] = Field(default=None, alias="effectiveDate")
    expiration_date: Optional[str] = Field(default=None, alias="expirationDate")
    total_value: Optional[str] = Field(default=None, alias="totalValue")


class AnalysisOutcome(BaseModel):
    """Parsed analysis of one document."""

    model_config = ConfigDict(populate_by_name=True)

    summary: str
    risk_level: str = Field(alias="riskLevel")
    risks: List[RiskFinding]
    key_terms: List[KeyTerm] = Field(default_factory=list, alias="keyTerms")
    recommendations: List[str] = Field(default_factory=list)
    contract_info: Optional[ContractInfo] = Field(default=None, alias="contractInfo")
    analyzed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), alias="analyzedAt")
    is_fallback: bool = Field(default=False, exclude=True)

    @field_validator("risk_level", mode="before")
    @classmethod
    def _risk_level(cls, value):
        return _normalise_level(value)

    @field_validator("key_terms", "recommendations", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        return value or []

    def overview_payload(self) -> dict:
        """JSON stored in ``AnalysisResult.overview_data``."""
        return {
            "summary": self.summary,
            "riskLevel": self.risk_level,
            "keyTerms": [term.model_dump() for term in self.key_terms],
            "contractInfo": self.contract_info.model_dump(by_alias=True) if self.contract_info else None,
            "analyzedAt": self.analyzed_at.isoformat(),
        }

    def suggestions_payload(self) -> dict:
        return {"recommendations": list(self.recommendations)}


def fallback_outcome() -> AnalysisOutcome:
    """Degraded result used when the model's response cannot be parsed."""
    return AnalysisOutcome(
        summary=FALLBACK_SUMMARY,
        risk_level="medium",
        risks=[
            RiskFinding(
                title=FALLBACK_RISK_TITLE,
                description="The analysis returned by the model could not be read. Please try again later.",
                level="medium",
            )
        ],
        key_terms=[],
        recommendations=[
            "Re-upload the document and run the analysis again",
            "Make sure the document content is clear and legible",
        ],
        is_fallback=True,
    )
