"""
Ontology Models
Lead Enrichment Engine

Pydantic models for field specs, agent conversations, per-row enrichment
results, lead scores and outreach drafts.

Wire names are camelCase (rowIndex, displayName, sourceContext); Python
attributes are snake_case. Dump with ``model_dump(by_alias=True)``.
"""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    field_validator,
)
from pydantic.alias_generators import to_camel

# =============================================================================
# ENUMERATIONS
# =============================================================================

class FieldType(StrEnum):
    """Output shape of an enrichment field."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"


class Role(StrEnum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class RowStatus(StrEnum):
    """Lifecycle of one row; anything but PENDING is terminal."""

    PENDING = "pending"
    COMPLETED = "completed"
    ERROR = "error"
    SKIPPED = "skipped"


class Priority(StrEnum):
    HOT = "Hot"
    WARM = "Warm"
    COLD = "Cold"


class Tone(StrEnum):
    PROFESSIONAL = "professional"
    CASUAL = "casual"
    EXECUTIVE = "executive"


# =============================================================================
# BASE MODELS
# =============================================================================

class WireModel(BaseModel):
    """Base for models exchanged with callers (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class EnrichmentField(WireModel):
    """A caller-defined extraction target."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    name: str = Field(..., min_length=1)
    display_name: str = ""
    type: FieldType = FieldType.STRING
    description: str = ""
    example_values: tuple[Any, ...] = ()

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("field name must not be blank")
        return v

    @property
    def label(self) -> str:
        return self.display_name or self.name


# =============================================================================
# AGENT CONVERSATION MODELS
# =============================================================================

class Message(BaseModel):
    """One entry of an agent conversation."""

    role: Role
    content: str = ""


class AgentContext(BaseModel):
    """
    Conversation state for a single agent invocation.

    Owned by one row's run. Handoffs build a fresh context from a copy of
    this one; contexts are never shared between rows.
    """

    input: Any = None
    history: list[Message] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    def fork(self, input: Any, extra_history: list[Message] | None = None,
             **metadata) -> "AgentContext":
        """New context carrying copied history plus extra messages."""
        return AgentContext(
            input=input,
            history=[m.model_copy() for m in self.history] + list(extra_history or []),
            metadata={**self.metadata, **metadata},
        )


class SourceContext(WireModel):
    """Where a value was found: page URL plus the supporting snippet."""

    url: str
    snippet: str = ""


class ToolResult(WireModel):
    """Output of one tool invocation, fed back into the conversation."""

    url: str = ""
    extracted_data: dict[str, Any] = Field(default_factory=dict)
    raw_content: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    source_context: dict[str, list[SourceContext]] = Field(default_factory=dict)
    confidence: dict[str, float] = Field(default_factory=dict)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


# =============================================================================
# ENRICHMENT RESULTS
# =============================================================================

class Enrichment(WireModel):
    """One field's value with confidence and provenance."""

    value: Any
    confidence: float = Field(..., ge=0.0, le=1.0)
    source: str | None = None
    source_context: list[SourceContext] | None = None


class FinalizedResultError(RuntimeError):
    """Raised when a finalized RowEnrichmentResult is mutated."""


class RowEnrichmentResult(WireModel):
    """
    Per-row outcome. Created PENDING when processing starts, mutated only
    by that row's orchestrator, immutable once finalized.
    """

    row_index: int = Field(..., ge=0)
    email: str | None = None
    status: RowStatus = RowStatus.PENDING
    enrichments: dict[str, Enrichment] = Field(default_factory=dict)
    error: str | None = None

    _finalized: bool = PrivateAttr(default=False)

    def __setattr__(self, name, value):
        if not name.startswith("_") and getattr(self, "_finalized", False):
            raise FinalizedResultError(
                f"row {self.row_index} is finalized ({self.status}); cannot set {name}"
            )
        super().__setattr__(name, value)

    @property
    def is_final(self) -> bool:
        return self._finalized

    def set_enrichment(self, field_name: str, enrichment: Enrichment):
        if self._finalized:
            raise FinalizedResultError(f"row {self.row_index} is finalized")
        self.enrichments[field_name] = enrichment

    def finalize(self, status: RowStatus, error: str | None = None) -> "RowEnrichmentResult":
        """Move to a terminal status and freeze."""
        if status == RowStatus.PENDING:
            raise ValueError("cannot finalize a row as pending")
        self.status = status
        self.error = error
        self._finalized = True
        return self


# =============================================================================
# LEAD SCORING
# =============================================================================

class FactorScore(WireModel):
    score: int = Field(..., ge=0, le=100)
    reasoning: str
    weight: float = Field(..., gt=0.0, le=1.0)


class LeadFactors(WireModel):
    """The five weighted scoring factors."""

    company_size: FactorScore
    funding_stage: FactorScore
    growth_signals: FactorScore
    contactability: FactorScore
    market_timing: FactorScore

    def all(self) -> list[FactorScore]:
        return [
            self.company_size,
            self.funding_stage,
            self.growth_signals,
            self.contactability,
            self.market_timing,
        ]


class LeadScore(WireModel):
    overall_score: int = Field(..., ge=0, le=100)
    priority: Priority
    factors: LeadFactors
    reasoning: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    last_updated: datetime = Field(default_factory=lambda: datetime.now(UTC))


# =============================================================================
# OUTREACH
# =============================================================================

class Personalizations(WireModel):
    company_mention: str = ""
    executive_mention: str = ""
    industry_relevance: str = ""
    value_proposition: str = ""


class PersonalizedEmail(WireModel):
    subject: str
    body: str
    reasoning: str
    personalizations: Personalizations
    tone: Tone = Tone.PROFESSIONAL
    confidence: float = Field(..., ge=0.0, le=1.0)


# =============================================================================
# REQUESTS
# =============================================================================

class EnrichmentRequest(WireModel):
    """Batch enrichment request."""

    rows: list[dict[str, Any]] = Field(..., min_length=1)
    fields: list[EnrichmentField] = Field(..., min_length=1)
    email_column: str = Field(..., min_length=1)
    max_concurrency: int | None = Field(default=None, ge=1, le=20)

    @field_validator("fields")
    @classmethod
    def unique_field_names(cls, v: list[EnrichmentField]) -> list[EnrichmentField]:
        names = [f.name for f in v]
        if len(names) != len(set(names)):
            raise ValueError("field names must be unique")
        return v


class ScoringRequest(WireModel):
    enriched_data: dict[str, Any]
    email: str = Field(..., min_length=3)
    company_domain: str | None = None


class EmailRequest(WireModel):
    enriched_data: dict[str, Any]
    lead_score: LeadScore
    email: str = Field(..., min_length=3)
    sender_name: str = "Your Name"
    sender_company: str = "Your Company"
    tone: Tone = Tone.PROFESSIONAL


class FieldGenerationRequest(WireModel):
    prompt: str
