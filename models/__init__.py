"""
Models Package
Lead Enrichment Engine

Pydantic models and data structures for enrichment runs.
"""

from models.events import (
    AgentProgressEvent,
    CancelledEvent,
    CompleteEvent,
    ErrorEvent,
    ProcessingEvent,
    ResultEvent,
    SessionEvent,
    StreamEvent,
    format_sse,
)
from models.ontology import (
    AgentContext,
    EmailRequest,
    Enrichment,
    EnrichmentField,
    EnrichmentRequest,
    FactorScore,
    FieldGenerationRequest,
    FieldType,
    LeadFactors,
    LeadScore,
    Message,
    PersonalizedEmail,
    Personalizations,
    Priority,
    Role,
    RowEnrichmentResult,
    RowStatus,
    ScoringRequest,
    SourceContext,
    Tone,
    ToolResult,
)

__all__ = [
    # Enums
    "FieldType",
    "Role",
    "RowStatus",
    "Priority",
    "Tone",

    # Data Models
    "EnrichmentField",
    "Message",
    "AgentContext",
    "SourceContext",
    "ToolResult",
    "Enrichment",
    "RowEnrichmentResult",
    "FactorScore",
    "LeadFactors",
    "LeadScore",
    "Personalizations",
    "PersonalizedEmail",
    "EnrichmentRequest",
    "ScoringRequest",
    "EmailRequest",
    "FieldGenerationRequest",

    # Events
    "StreamEvent",
    "SessionEvent",
    "ProcessingEvent",
    "ResultEvent",
    "AgentProgressEvent",
    "CompleteEvent",
    "CancelledEvent",
    "ErrorEvent",
    "format_sse",
]
