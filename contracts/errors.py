"""
Error Taxonomy
Lead Enrichment Engine

Every error surfaced to callers carries a stable machine-readable code.
"""


class EnrichmentError(Exception):
    """Base class for errors with a client-visible code."""

    code = "ENRICHMENT_ERROR"

    def __init__(self, message: str, details: dict = None):
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": str(self), "code": self.code, "details": self.details}


class RequestValidationError(EnrichmentError):
    """Malformed field spec or missing required request fields."""

    code = "INVALID_REQUEST"


class BackendUnavailable(EnrichmentError):
    """Language-model or retrieval service unreachable or misconfigured."""

    code = "BACKEND_UNAVAILABLE"


class MissingCredentials(BackendUnavailable):
    """Required API keys are not configured. Batch-level, never row-level."""

    code = "MISSING_API_KEYS"

    def __init__(self, missing: list[str]):
        self.missing = list(missing)
        super().__init__(
            "Server configuration error: missing required API keys",
            details={f"missing_{name.lower()}": True for name in self.missing},
        )


class HandoffLimitExceeded(EnrichmentError):
    """An agent chain delegated more times than allowed."""

    code = "HANDOFF_LIMIT"


class AgentTurnLimitExceeded(EnrichmentError):
    """An agent kept calling tools without producing an answer."""

    code = "TURN_LIMIT"


class RunCancelled(Exception):
    """Cooperative cancellation observed at a turn boundary. Not an error."""


class SchemaMismatch(EnrichmentError):
    """Agent output (or tool arguments) failed its declared JSON schema."""

    code = "SCHEMA_MISMATCH"

    def __init__(self, contract: str, errors: list, data=None):
        self.contract = contract
        self.errors = list(errors)
        self.data = data

        summary = "; ".join(str(e) for e in self.errors[:3])
        if len(self.errors) > 3:
            summary += f" ... and {len(self.errors) - 3} more"

        super().__init__(
            f"Schema validation failed [{contract}]: {summary}",
            details={"contract": contract, "errors": self.errors[:10]},
        )
