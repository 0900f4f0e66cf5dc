"""
Tests for the outreach EmailDrafter.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from agents.outreach.email_drafter import (
    DEFAULT_VALUE_PROPOSITION,
    EmailDrafter,
    extract_personalizations,
)
from contracts.errors import BackendUnavailable, RequestValidationError
from models.ontology import FactorScore, LeadFactors, LeadScore, Priority, Tone

ACMESOFT = {
    "companyName": "AcmeSoft",
    "ceoName": {"value": "Jane Doe", "confidence": 0.8},
    "industry": "SaaS",
    "fundingStage": "Series B",
}


@pytest.fixture
def lead_score():
    factor = FactorScore(score=75, reasoning="x", weight=0.2)
    return LeadScore(
        overall_score=75,
        priority=Priority.WARM,
        factors=LeadFactors(
            company_size=factor,
            funding_stage=factor,
            growth_signals=factor,
            contactability=factor,
            market_timing=factor,
        ),
        reasoning="Growing SaaS company with fresh funding.",
        confidence=0.8,
    )


def _llm(**kwargs):
    llm = MagicMock()
    llm.complete_json = AsyncMock(**kwargs)
    return llm


# =============================================================================
# TEST PERSONALIZATIONS
# =============================================================================


class TestPersonalizations:

    def test_slots_from_enriched_keys(self):
        p = extract_personalizations(ACMESOFT, "ceo@acmesoft.io")

        assert p.company_mention == "AcmeSoft"
        assert p.executive_mention == "Jane Doe"
        assert p.industry_relevance == "SaaS"
        assert p.value_proposition == "accelerate your growth trajectory"

    def test_company_from_email_domain(self):
        p = extract_personalizations({}, "jane@globex.com")

        assert p.company_mention == "Globex"
        assert p.executive_mention == ""
        assert p.value_proposition == DEFAULT_VALUE_PROPOSITION

    @pytest.mark.parametrize("key,proposition", [
        ("techStack", "optimize your technology stack and product development"),
        ("employeeCount", "scale your operations efficiently"),
        ("recentInvestment", "accelerate your growth trajectory"),
    ])
    def test_value_proposition_by_key(self, key, proposition):
        assert extract_personalizations({key: "x"}, "a@b.io").value_proposition == proposition

    def test_list_values_joined(self):
        p = extract_personalizations({"industry": ["SaaS", "Fintech"]}, "a@b.io")
        assert p.industry_relevance == "SaaS, Fintech"


# =============================================================================
# TEST DRAFTING
# =============================================================================


class TestEmailDrafter:

    @pytest.mark.asyncio
    async def test_draft_from_model(self, lead_score):
        llm = _llm(return_value={
            "subject": "AcmeSoft's next stage",
            "body": "Hi Jane,\n\nCongrats on the Series B.",
            "reasoning": "Referenced funding.",
            "confidence": 0.9,
        })

        email = await EmailDrafter(llm).draft({
            "enrichedData": ACMESOFT,
            "leadScore": lead_score,
            "email": "ceo@acmesoft.io",
            "tone": "casual",
        })

        assert email.subject == "AcmeSoft's next stage"
        assert email.confidence == 0.9
        assert email.tone == Tone.CASUAL
        assert email.personalizations.company_mention == "AcmeSoft"

        prompt = llm.complete_json.call_args.args[0][1]["content"]
        assert "LEAD SCORE: 75/100 (Warm)" in prompt
        assert "EMAIL TONE: casual" in prompt
        assert "- Executive: Jane Doe" in prompt

    @pytest.mark.asyncio
    async def test_backend_failure_uses_template(self, lead_score):
        llm = _llm(side_effect=BackendUnavailable("down"))

        email = await EmailDrafter(llm).draft({
            "enrichedData": ACMESOFT,
            "leadScore": lead_score,
            "email": "ceo@acmesoft.io",
            "senderName": "Sam",
            "senderCompany": "Initech",
        })

        assert email.subject == "Quick question about AcmeSoft"
        assert email.confidence == 0.6
        assert "I came across AcmeSoft" in email.body
        assert "your work in SaaS" in email.body
        assert "I noticed Jane Doe is leading the team" in email.body
        assert email.body.endswith("Best regards,\nSam\nInitech")

    @pytest.mark.asyncio
    async def test_partial_model_answer_filled_from_template(self, lead_score):
        llm = _llm(return_value={"body": "Short note."})

        email = await EmailDrafter(llm).draft({
            "enrichedData": {}, "leadScore": lead_score, "email": "jane@globex.com",
        })

        assert email.subject == "Quick question about Globex"
        assert email.body == "Short note."
        assert email.confidence == 0.7

    @pytest.mark.asyncio
    async def test_confidence_clamped(self, lead_score):
        llm = _llm(return_value={"subject": "s", "body": "b", "confidence": 3})

        email = await EmailDrafter(llm).draft({
            "enrichedData": {}, "leadScore": lead_score, "email": "a@b.io",
        })

        assert email.confidence == 1.0

    @pytest.mark.asyncio
    async def test_missing_lead_score_rejected(self):
        with pytest.raises(RequestValidationError):
            await EmailDrafter(_llm()).draft({"enrichedData": {}, "email": "a@b.io"})
