"""
Agent Orchestrator
Lead Enrichment Engine

Drives one row through the agent graph

    Triage -> Company Research -> Field Synthesis

and turns the terminal output plus every gathered tool result into a
finalized RowEnrichmentResult with per-field confidence and provenance.
"""

import re
from collections.abc import Callable
from typing import Any

from agents.base import AgentOutput, BaseAgent, CancelProbe
from agents.enrichment.company_research import CompanyResearchAgent
from agents.enrichment.field_synthesis import FieldSynthesisAgent
from agents.enrichment.triage import TriageAgent
from agents.extraction.heuristics import canonical_field
from agents.extraction.website_scraper import DEFAULT_BASE_URL, WebsiteScraper
from agents.llm import ChatCompletionBackend
from contracts.errors import EnrichmentError, RunCancelled
from contracts.validator import ContractValidator
from models.ontology import (
    AgentContext,
    Enrichment,
    EnrichmentField,
    FieldType,
    RowEnrichmentResult,
    RowStatus,
    SourceContext,
    ToolResult,
)
from skills.common.SKILL import (
    AsyncHTTPClient,
    StructuredLogger,
    email_domain,
    is_personal_email_domain,
    is_valid_email,
)

ProgressEmitter = Callable[[str, str], None]

CANCELLED_MESSAGE = "cancelled"
INVALID_EMAIL_MESSAGE = "Missing or invalid email address"

SNIPPET_RADIUS = 120


# =============================================================================
# PROVENANCE MERGE
# =============================================================================

def coerce_value(value: Any, field_type: FieldType) -> Any:
    """Best-effort conversion of a raw value to the field's declared shape."""
    if value is None:
        return None

    if field_type == FieldType.NUMBER and isinstance(value, str):
        match = re.search(r"-?\d[\d,]*(?:\.\d+)?", value)
        if match:
            number = float(match.group(0).replace(",", ""))
            return int(number) if number.is_integer() else number
        return value

    if field_type == FieldType.BOOLEAN and isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("yes", "true", "y", "1"):
            return True
        if lowered in ("no", "false", "n", "0"):
            return False
        return value

    if field_type == FieldType.ARRAY and not isinstance(value, list):
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return [value]

    if field_type == FieldType.STRING and isinstance(value, list):
        return ", ".join(str(item) for item in value)

    return value


def _empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def _same(a: Any, b: Any) -> bool:
    return str(a).strip().casefold() == str(b).strip().casefold()


def _lookup(mapping: dict, field: EnrichmentField) -> Any:
    for key in (field.name, field.display_name):
        if key and key in mapping:
            return mapping[key]

    family = canonical_field(field.name) or canonical_field(field.display_name)
    if family:
        for key, value in mapping.items():
            if canonical_field(key) == family:
                return value
    return None


def _tool_candidate(field: EnrichmentField, results: list[ToolResult]) -> Enrichment | None:
    """Highest-confidence heuristic extraction; earlier results win ties."""
    best: Enrichment | None = None

    for result in results:
        if not result.ok:
            continue
        value = _lookup(result.extracted_data, field)
        if _empty(value):
            continue
        confidence = _lookup(result.confidence, field) or 0.6
        if best is not None and confidence <= best.confidence:
            continue
        best = Enrichment(
            value=value,
            confidence=confidence,
            source=result.url or None,
            source_context=_lookup(result.source_context, field)
            or [SourceContext(url=result.url)],
        )

    return best


def _snippet_for(value: Any, raw: str | None) -> str:
    if not raw:
        return ""
    index = raw.casefold().find(str(value).casefold())
    if index < 0:
        return ""
    start = max(0, index - SNIPPET_RADIUS)
    end = min(len(raw), index + len(str(value)) + SNIPPET_RADIUS)
    return " ".join(raw[start:end].split())


def _agent_candidate(
    field: EnrichmentField,
    proposed: dict,
    results: list[ToolResult],
    found: Enrichment | None,
) -> Enrichment | None:
    entry = _lookup(proposed, field)
    if not isinstance(entry, dict) or _empty(entry.get("value")):
        return None

    value = entry["value"]
    try:
        confidence = min(max(float(entry.get("confidence", 0.5)), 0.0), 1.0)
    except (TypeError, ValueError):
        confidence = 0.5
    source = entry.get("source") if isinstance(entry.get("source"), str) else None

    if found is not None and _same(value, found.value):
        return Enrichment(
            value=value,
            confidence=confidence,
            source=source or found.source,
            source_context=found.source_context,
        )

    context = None
    for result in results:
        if result.ok and source and result.url.rstrip("/") == source.rstrip("/"):
            context = [SourceContext(url=result.url, snippet=_snippet_for(value, result.raw_content))]
            break

    return Enrichment(value=value, confidence=confidence, source=source, source_context=context)


def merge_enrichments(fields: list[EnrichmentField], output: AgentOutput) -> dict[str, Enrichment]:
    """
    Combine agent-proposed values with heuristic extractions.

    Per field the higher confidence wins; on a tie the extraction (which
    carries a page snippet) wins. An agent value equal to an extraction
    inherits its source context.
    """
    proposed = {}
    if isinstance(output.content, dict) and isinstance(output.content.get("fields"), dict):
        proposed = output.content["fields"]

    merged: dict[str, Enrichment] = {}
    for field in fields:
        found = _tool_candidate(field, output.tool_results)
        claimed = _agent_candidate(field, proposed, output.tool_results, found)

        if found is not None and (claimed is None or found.confidence >= claimed.confidence):
            best = found
        elif claimed is not None:
            best = claimed
        else:
            continue

        merged[field.name] = best.model_copy(update={"value": coerce_value(best.value, field.type)})

    return merged


# =============================================================================
# ORCHESTRATOR
# =============================================================================

class AgentOrchestrator:
    """
    Per-row driver. Agents and the scraper are built fresh for every row
    so no conversation state crosses rows; the HTTP client is shared.
    """

    def __init__(
        self,
        llm: ChatCompletionBackend,
        firecrawl_api_key: str,
        http: AsyncHTTPClient = None,
        firecrawl_base_url: str = DEFAULT_BASE_URL,
        agent_settings: dict | None = None,
        scraper_settings: dict | None = None,
        validator: ContractValidator | None = None,
    ):
        self.llm = llm
        self.firecrawl_api_key = firecrawl_api_key
        self.http = http or AsyncHTTPClient()
        self.firecrawl_base_url = firecrawl_base_url
        self.agent_settings = agent_settings or {}
        self.scraper_settings = scraper_settings or {}
        self.validator = validator
        self.log = StructuredLogger("orchestrator")

    def build_graph(
        self,
        cancel_probe: CancelProbe | None = None,
        emit: ProgressEmitter | None = None,
    ) -> BaseAgent:
        """Fresh Triage -> Research -> Synthesis graph; returns the entry agent."""
        emit = emit or (lambda message, kind: None)
        common = {
            "cancel_probe": cancel_probe,
            "validator": self.validator,
            **self.agent_settings,
        }

        def announce(source: str):
            def hook(context: AgentContext, target: BaseAgent):
                emit(f"{source} handing off to {target.name}", "agent")
            return hook

        scraper = WebsiteScraper(
            self.firecrawl_api_key,
            base_url=self.firecrawl_base_url,
            http=self.http,
            on_progress=emit,
            **self.scraper_settings,
        )
        synthesis = FieldSynthesisAgent(self.llm, **common)
        research = CompanyResearchAgent(
            self.llm, scraper, synthesis=synthesis,
            on_handoff=announce(CompanyResearchAgent.name), **common,
        )
        return TriageAgent(
            self.llm, research, on_handoff=announce(TriageAgent.name), **common
        )

    async def enrich_row(
        self,
        row_index: int,
        row: dict,
        fields: list[EnrichmentField],
        email_column: str,
        cancel_probe: CancelProbe | None = None,
        emit: ProgressEmitter | None = None,
    ) -> RowEnrichmentResult:
        """
        Enrich one row. Always returns a finalized result; agent failures
        become status=error with the failure message.
        """
        emit = emit or (lambda message, kind: None)
        email = str(row.get(email_column) or "").strip()
        result = RowEnrichmentResult(row_index=row_index, email=email or None)

        if not is_valid_email(email):
            emit(f"Row {row_index}: {INVALID_EMAIL_MESSAGE}", "warning")
            return result.finalize(RowStatus.ERROR, INVALID_EMAIL_MESSAGE)

        domain = email_domain(email)
        if is_personal_email_domain(domain):
            emit(f"Skipping {email}: personal email domain", "info")
            return result.finalize(RowStatus.SKIPPED)

        context = AgentContext(
            input={
                "email": email,
                "domain": domain,
                "url": f"https://{domain}",
                "fields": [f.to_wire() for f in fields],
            },
            metadata={"row_index": row_index},
        )

        emit(f"Researching {domain}", "info")
        entry = self.build_graph(cancel_probe, emit)

        try:
            output = await entry.execute(context)
        except RunCancelled:
            self.log.info("Row cancelled", row_index=row_index)
            return result.finalize(RowStatus.ERROR, CANCELLED_MESSAGE)
        except EnrichmentError as e:
            self.log.warning(
                "Row failed", row_index=row_index, code=e.code, error=str(e)
            )
            emit(f"Enrichment failed for {email}: {e}", "warning")
            return result.finalize(RowStatus.ERROR, str(e))

        for name, enrichment in merge_enrichments(fields, output).items():
            result.set_enrichment(name, enrichment)

        emit(
            f"Enriched {len(result.enrichments)}/{len(fields)} fields for {email}",
            "success",
        )
        self.log.info(
            "Row enriched",
            row_index=row_index,
            fields=len(result.enrichments),
            path="->".join(output.path),
        )
        return result.finalize(RowStatus.COMPLETED)
