"""
Contracts Module
Lead Enrichment Engine

JSON Schema contracts for agent I/O validation and the client-visible
error taxonomy.
"""

from .errors import (
    AgentTurnLimitExceeded,
    BackendUnavailable,
    EnrichmentError,
    HandoffLimitExceeded,
    MissingCredentials,
    RequestValidationError,
    RunCancelled,
    SchemaMismatch,
)
from .validator import (
    ContractValidator,
    get_validator,
)

__all__ = [
    "ContractValidator",
    "get_validator",
    "EnrichmentError",
    "RequestValidationError",
    "BackendUnavailable",
    "MissingCredentials",
    "SchemaMismatch",
    "HandoffLimitExceeded",
    "AgentTurnLimitExceeded",
    "RunCancelled",
]
