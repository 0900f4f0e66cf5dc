"""
Pytest Fixtures for Lead Enrichment Engine Tests

Shared fixtures: contract validation, scripted language-model backend,
fake scrape API and sample company pages.
"""

import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# =============================================================================
# PATH FIXTURES
# =============================================================================


@pytest.fixture
def project_root() -> Path:
    """Get project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def contracts_dir(project_root) -> Path:
    """Get contracts/schemas directory."""
    return project_root / "contracts" / "schemas"


# =============================================================================
# VALIDATOR FIXTURES
# =============================================================================


@pytest.fixture
def validator(contracts_dir):
    """Create a ContractValidator instance."""
    from contracts.validator import ContractValidator
    return ContractValidator(contracts_dir)


@pytest.fixture
def global_validator():
    """Get the global validator instance."""
    # Reset global validator for clean tests
    import contracts.validator as validator_module
    from contracts.validator import get_validator
    validator_module._validator = None
    return get_validator()


# =============================================================================
# SINGLETON RESET
# =============================================================================


@pytest.fixture(autouse=True)
def reset_singletons():
    """Fresh session registry and secrets manager for every test."""
    from middleware.secrets import _reset_secrets_manager
    from state.machine import _reset_session_registry

    _reset_session_registry()
    _reset_secrets_manager()
    yield
    _reset_session_registry()
    _reset_secrets_manager()


# =============================================================================
# LANGUAGE-MODEL DOUBLES
# =============================================================================


class ScriptedLLM:
    """
    Backend double that replays canned completions in order.

    Items may be Completion objects or exceptions (raised when reached).
    Every request is recorded in ``calls``.
    """

    def __init__(self, *completions):
        self.completions = list(completions)
        self.calls: list[dict] = []

    async def complete(self, messages, tools=None, response_format=None,
                       temperature=None, model=None):
        self.calls.append({
            "messages": [dict(m) for m in messages],
            "tools": tools,
            "response_format": response_format,
        })
        if not self.completions:
            raise AssertionError("Unexpected completion request")

        item = self.completions.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def scripted_llm():
    """Factory: scripted_llm(completion, ...) -> ScriptedLLM."""
    return ScriptedLLM


@pytest.fixture
def text_reply():
    """Factory for a plain assistant answer (str or JSON-encoded object)."""
    from agents.llm import Completion

    def make(content) -> Completion:
        if not isinstance(content, str):
            content = json.dumps(content)
        return Completion(content=content)

    return make


@pytest.fixture
def tool_reply():
    """Factory for an assistant turn selecting one or more tool calls."""
    from agents.llm import Completion, ToolCall

    def make(*calls, content=None) -> Completion:
        return Completion(
            content=content,
            tool_calls=[
                ToolCall(id=f"call_{i}", name=name, arguments=json.dumps(arguments))
                for i, (name, arguments) in enumerate(calls)
            ],
        )

    return make


# =============================================================================
# SCRAPE API DOUBLES
# =============================================================================


ACMESOFT_MARKDOWN = """# AcmeSoft

AcmeSoft is a SaaS company offering subscription software and a cloud platform for finance teams.

## About Us
AcmeSoft builds workflow automation software for finance teams around the world.

Headquarters: Austin, Texas
"""


@pytest.fixture
def acmesoft_markdown() -> str:
    return ACMESOFT_MARKDOWN


@pytest.fixture
def scrape_response():
    """Factory for a fake Firecrawl HTTP response."""

    def make(markdown: str = ACMESOFT_MARKDOWN, metadata: dict = None,
             status_code: int = 200, success: bool = True):
        response = MagicMock()
        response.status_code = status_code
        response.json = MagicMock(return_value={
            "success": success,
            "data": {
                "markdown": markdown,
                "metadata": metadata if metadata is not None else {
                    "title": "AcmeSoft | Official Site",
                },
            },
        })
        return response

    return make


@pytest.fixture
def fake_http(scrape_response):
    """AsyncHTTPClient stand-in whose post() returns the AcmeSoft page."""
    http = MagicMock()
    http.post = AsyncMock(return_value=scrape_response())
    http.close = AsyncMock()
    return http


# =============================================================================
# REQUEST FIXTURES
# =============================================================================


@pytest.fixture
def industry_field():
    from models.ontology import EnrichmentField
    return EnrichmentField(name="industry", display_name="Industry",
                           description="Primary industry")


@pytest.fixture
def enrichment_fields(industry_field):
    from models.ontology import EnrichmentField, FieldType
    return [
        EnrichmentField(name="companyName", display_name="Company Name"),
        industry_field,
        EnrichmentField(name="employeeCount", display_name="Employee Count",
                        type=FieldType.NUMBER),
    ]
