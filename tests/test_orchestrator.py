"""
Tests for the per-row AgentOrchestrator and provenance merge.

Includes the end-to-end enrichment of ceo@acmesoft.io: Triage hands off
to Company Research, which scrapes the site and reports the industry.
"""

import pytest

from agents.base import AgentOutput
from agents.orchestrator import AgentOrchestrator, coerce_value, merge_enrichments
from contracts.errors import BackendUnavailable
from models.ontology import EnrichmentField, FieldType, RowStatus, SourceContext, ToolResult


def _scraped(url="https://acmesoft.io", **data) -> ToolResult:
    return ToolResult(
        url=url,
        extracted_data=data,
        confidence={k: 0.6 for k in data},
        source_context={k: [SourceContext(url=url, snippet=f"{v} snippet")] for k, v in data.items()},
        raw_content="AcmeSoft is a SaaS company. Founded in 2015 in Austin.",
    )


def _research_answer(**fields) -> dict:
    return {"fields": {
        name: {"value": value, "confidence": confidence, "source": "https://acmesoft.io"}
        for name, (value, confidence) in fields.items()
    }}


# =============================================================================
# TEST MERGE
# =============================================================================


class TestMergeEnrichments:

    def test_agent_value_inherits_tool_provenance(self, industry_field):
        output = AgentOutput(
            agent="Company Research",
            content=_research_answer(industry=("SaaS", 0.85)),
            tool_results=[_scraped(industry="SaaS")],
        )

        merged = merge_enrichments([industry_field], output)

        assert merged["industry"].value == "SaaS"
        assert merged["industry"].confidence == 0.85
        assert merged["industry"].source_context[0].snippet == "SaaS snippet"

    def test_tool_wins_tie(self, industry_field):
        output = AgentOutput(
            agent="Company Research",
            content=_research_answer(industry=("Fintech", 0.6)),
            tool_results=[_scraped(industry="SaaS")],
        )

        assert merge_enrichments([industry_field], output)["industry"].value == "SaaS"

    def test_higher_confidence_agent_value_wins(self, industry_field):
        output = AgentOutput(
            agent="Company Research",
            content=_research_answer(industry=("Fintech", 0.9)),
            tool_results=[_scraped(industry="SaaS")],
        )

        merged = merge_enrichments([industry_field], output)["industry"]

        assert merged.value == "Fintech"
        assert merged.source == "https://acmesoft.io"

    def test_agent_only_value_gets_page_snippet(self):
        founded = EnrichmentField(name="foundedYear", type=FieldType.NUMBER)
        output = AgentOutput(
            agent="Field Synthesis",
            content=_research_answer(foundedYear=("2015", 0.5)),
            tool_results=[_scraped()],
        )

        merged = merge_enrichments([founded], output)["foundedYear"]

        assert merged.value == 2015
        assert "Founded in 2015" in merged.source_context[0].snippet

    def test_failed_tool_results_ignored(self, industry_field):
        failed = ToolResult(url="https://acmesoft.io", error="boom")
        output = AgentOutput(agent="x", content=None, tool_results=[failed])

        assert merge_enrichments([industry_field], output) == {}

    def test_tool_value_found_by_alias(self):
        """Heuristic keys resolve through canonical field families."""
        field = EnrichmentField(name="Company Name")
        output = AgentOutput(agent="x", content="text", tool_results=[_scraped(companyName="AcmeSoft")])

        assert merge_enrichments([field], output)["Company Name"].value == "AcmeSoft"

    @pytest.mark.parametrize("value,field_type,expected", [
        ("1,200 employees", FieldType.NUMBER, 1200),
        ("3.5", FieldType.NUMBER, 3.5),
        ("unknown", FieldType.NUMBER, "unknown"),
        ("Yes", FieldType.BOOLEAN, True),
        ("no", FieldType.BOOLEAN, False),
        ("React, Python", FieldType.ARRAY, ["React", "Python"]),
        (["a", "b"], FieldType.STRING, "a, b"),
    ])
    def test_coerce_value(self, value, field_type, expected):
        assert coerce_value(value, field_type) == expected


# =============================================================================
# TEST ROW ENRICHMENT
# =============================================================================


class TestEnrichRow:

    @pytest.mark.asyncio
    async def test_end_to_end_acmesoft(self, scripted_llm, text_reply, tool_reply,
                                       fake_http, industry_field):
        """ceo@acmesoft.io resolves industry "SaaS" with the scraped URL as source."""
        llm = scripted_llm(
            tool_reply(("handoff_to_company_research", {"data": {"url": "https://acmesoft.io"}})),
            tool_reply(("scrape_website", {"url": "https://acmesoft.io", "targetFields": ["industry"]})),
            text_reply(_research_answer(industry=("SaaS", 0.7))),
        )
        progress = []
        orchestrator = AgentOrchestrator(llm, "fc-key", http=fake_http)

        result = await orchestrator.enrich_row(
            0, {"email": "ceo@acmesoft.io"}, [industry_field], "email",
            emit=lambda message, kind: progress.append((message, kind)),
        )

        assert result.status == RowStatus.COMPLETED
        assert result.is_final
        assert result.enrichments["industry"].value == "SaaS"
        assert result.enrichments["industry"].source_context[0].url == "https://acmesoft.io"
        assert ("Triage handing off to Company Research", "agent") in progress
        assert fake_http.post.await_count == 1

        wire = result.to_wire()
        assert wire["rowIndex"] == 0
        assert wire["enrichments"]["industry"]["sourceContext"][0]["url"] == "https://acmesoft.io"

    @pytest.mark.asyncio
    async def test_unresolved_fields_reach_synthesis(self, scripted_llm, text_reply, tool_reply,
                                                     fake_http, industry_field):
        founded = EnrichmentField(name="foundedYear", type=FieldType.NUMBER)
        llm = scripted_llm(
            tool_reply(("handoff_to_company_research", {"data": {}})),
            tool_reply(("scrape_website", {"url": "https://acmesoft.io", "targetFields": []})),
            tool_reply(("handoff_to_field_synthesis", {"data": {}})),
            text_reply(_research_answer(foundedYear=(2015, 0.4))),
        )
        orchestrator = AgentOrchestrator(llm, "fc-key", http=fake_http)

        result = await orchestrator.enrich_row(
            0, {"email": "ceo@acmesoft.io"}, [industry_field, founded], "email"
        )

        assert result.status == RowStatus.COMPLETED
        assert result.enrichments["foundedYear"].value == 2015
        assert result.enrichments["industry"].value == "SaaS"
        synthesis_input = llm.calls[3]["messages"][-1]["content"]
        assert '"unresolved": ["foundedYear"]' in synthesis_input

    @pytest.mark.asyncio
    async def test_personal_domain_skipped(self, scripted_llm, fake_http, industry_field):
        llm = scripted_llm()
        orchestrator = AgentOrchestrator(llm, "fc-key", http=fake_http)

        result = await orchestrator.enrich_row(
            3, {"email": "someone@gmail.com"}, [industry_field], "email"
        )

        assert result.status == RowStatus.SKIPPED
        assert llm.calls == []
        fake_http.post.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("row", [{}, {"email": ""}, {"email": "not-an-email"}])
    async def test_invalid_email_is_error(self, scripted_llm, fake_http, industry_field, row):
        orchestrator = AgentOrchestrator(scripted_llm(), "fc-key", http=fake_http)

        result = await orchestrator.enrich_row(1, row, [industry_field], "email")

        assert result.status == RowStatus.ERROR
        assert "email" in result.error

    @pytest.mark.asyncio
    async def test_backend_failure_is_row_error(self, scripted_llm, fake_http, industry_field):
        llm = scripted_llm(BackendUnavailable("Language model unreachable"))
        orchestrator = AgentOrchestrator(llm, "fc-key", http=fake_http)

        result = await orchestrator.enrich_row(
            0, {"email": "ceo@acmesoft.io"}, [industry_field], "email"
        )

        assert result.status == RowStatus.ERROR
        assert result.error == "Language model unreachable"

    @pytest.mark.asyncio
    async def test_cancelled_row(self, scripted_llm, fake_http, industry_field):
        orchestrator = AgentOrchestrator(scripted_llm(), "fc-key", http=fake_http)

        result = await orchestrator.enrich_row(
            0, {"email": "ceo@acmesoft.io"}, [industry_field], "email",
            cancel_probe=lambda: True,
        )

        assert result.status == RowStatus.ERROR
        assert result.error == "cancelled"

    @pytest.mark.asyncio
    async def test_triage_declines_research(self, scripted_llm, text_reply, fake_http, industry_field):
        """A terminal triage answer completes the row with no enrichments."""
        llm = scripted_llm(text_reply("Not a company domain."))
        orchestrator = AgentOrchestrator(llm, "fc-key", http=fake_http)

        result = await orchestrator.enrich_row(
            0, {"email": "info@acmesoft.io"}, [industry_field], "email"
        )

        assert result.status == RowStatus.COMPLETED
        assert result.enrichments == {}

    def test_fresh_graph_per_row(self, scripted_llm, fake_http):
        orchestrator = AgentOrchestrator(scripted_llm(), "fc-key", http=fake_http)

        first, second = orchestrator.build_graph(), orchestrator.build_graph()

        assert first is not second
        assert first.research is not second.research
