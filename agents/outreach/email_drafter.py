"""
Email Drafter
Lead Enrichment Engine

Drafts a personalized cold-outreach email for one enriched, scored row.
Personalization slots come from enriched data keys; the copy comes from
the language model, with a deterministic template when it is unavailable.
"""

from typing import Any

from pydantic import ValidationError

from agents.llm import ChatCompletionBackend
from contracts.errors import BackendUnavailable, RequestValidationError
from models.ontology import (
    EmailRequest,
    LeadScore,
    PersonalizedEmail,
    Personalizations,
    Tone,
)
from skills.common.SKILL import StructuredLogger, domain_stem, email_domain

FALLBACK_CONFIDENCE = 0.6
DEFAULT_CONFIDENCE = 0.7

SYSTEM_PROMPT = (
    "You are an expert sales copywriter specializing in personalized B2B "
    "cold outreach. You write compelling emails that get responses by "
    "focusing on value, relevance, and authentic personalization."
)

# Checked in order; first keyword group present in any data key wins
VALUE_PROPOSITIONS = [
    (("fund", "investment"), "accelerate your growth trajectory"),
    (("tech", "product"), "optimize your technology stack and product development"),
    (("employee", "size"), "scale your operations efficiently"),
]
DEFAULT_VALUE_PROPOSITION = "drive your business forward"

DRAFT_PROMPT = """Generate a personalized cold outreach email with the following information:

RECIPIENT DETAILS:
- Company: {company}
- Executive: {executive}
- Industry: {industry}

LEAD SCORE: {score}/100 ({priority})
LEAD INSIGHTS: {insights}

SENDER DETAILS:
- Name: {sender_name}
- Company: {sender_company}

EMAIL TONE: {tone}
VALUE PROPOSITION: Help them {value}

REQUIREMENTS:
1. Subject line should be compelling and personalized
2. Email should be 3-4 short paragraphs maximum
3. Include specific mentions of their company/executive when available
4. Reference their industry or business context
5. Clear, specific call-to-action
6. Match the requested tone ({tone})
7. Don't be overly salesy - focus on value and relevance

Based on the lead score ({priority} priority), adjust the approach:
- Hot leads: More direct, executive-level messaging
- Warm leads: Balanced approach with clear value prop
- Cold leads: Softer approach, focus on education/insights

Response format:
{{
  "subject": "Compelling subject line",
  "body": "Email body with proper line breaks",
  "reasoning": "Brief explanation of the personalization strategy used",
  "confidence": 0.85
}}"""


def _value(raw: Any) -> str:
    if isinstance(raw, dict):
        raw = raw.get("value")
    if raw is None:
        return ""
    if isinstance(raw, list):
        return ", ".join(str(item) for item in raw)
    return str(raw).strip()


def _first_value(enriched: dict, *keywords: str, require: tuple[str, ...] = ()) -> str:
    for key, raw in enriched.items():
        name = key.lower()
        if any(k in name for k in keywords) and all(r in name for r in require):
            return _value(raw)
    return ""


def extract_personalizations(enriched_data: dict[str, Any], email: str) -> Personalizations:
    enriched = enriched_data or {}

    company = _first_value(enriched, "company", require=("name",))
    if not company:
        stem = domain_stem(email_domain(email))
        company = stem[:1].upper() + stem[1:] if stem else "your company"

    keys = [key.lower() for key in enriched]
    value_proposition = DEFAULT_VALUE_PROPOSITION
    for keywords, proposition in VALUE_PROPOSITIONS:
        if any(k in key for key in keys for k in keywords):
            value_proposition = proposition
            break

    return Personalizations(
        company_mention=company,
        executive_mention=_first_value(enriched, "ceo", "founder", "executive"),
        industry_relevance=_first_value(enriched, "industry", "sector", "category"),
        value_proposition=value_proposition,
    )


def fallback_body(p: Personalizations, sender_name: str, sender_company: str) -> str:
    admiration = (
        f"your work in {p.industry_relevance}" if p.industry_relevance
        else "what you're building"
    )
    team = (
        f"I noticed {p.executive_mention} is leading the team" if p.executive_mention
        else "Your team seems to be doing great work"
    )
    return (
        f"Hi there,\n\n"
        f"I came across {p.company_mention} and was impressed by {admiration}.\n\n"
        f"{team}, and I thought you might be interested in how we help companies "
        f"like yours {p.value_proposition}.\n\n"
        f"Would you be open to a brief 15-minute conversation this week to explore "
        f"if there's a potential fit?\n\n"
        f"Best regards,\n{sender_name}\n{sender_company}"
    )


class EmailDrafter:
    """draft(request) -> PersonalizedEmail; backend failures use the template."""

    def __init__(self, llm: ChatCompletionBackend, temperature: float = 0.7):
        self.llm = llm
        self.temperature = temperature
        self.log = StructuredLogger("email_drafter")

    async def draft(self, request: EmailRequest | dict) -> PersonalizedEmail:
        if not isinstance(request, EmailRequest):
            try:
                request = EmailRequest.model_validate(request)
            except ValidationError as e:
                raise RequestValidationError(
                    "enrichedData, leadScore, and email are required",
                    details={"errors": e.errors(include_url=False)},
                ) from e

        p = extract_personalizations(request.enriched_data, request.email)
        subject, body, reasoning, confidence = await self._compose(p, request)

        return PersonalizedEmail(
            subject=subject,
            body=body,
            reasoning=reasoning,
            personalizations=p,
            tone=request.tone,
            confidence=confidence,
        )

    async def _compose(
        self,
        p: Personalizations,
        request: EmailRequest,
    ) -> tuple[str, str, str, float]:
        default_subject = f"Quick question about {p.company_mention}"
        template = fallback_body(p, request.sender_name, request.sender_company)

        try:
            draft = await self.llm.complete_json(
                [
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": self._prompt(p, request.lead_score, request)},
                ],
                temperature=self.temperature,
            )
        except BackendUnavailable as e:
            self.log.warning("Email drafting unavailable, using template", error=str(e))
            return (
                default_subject,
                template,
                "Fallback email template used due to AI service unavailability.",
                FALLBACK_CONFIDENCE,
            )

        try:
            confidence = min(max(float(draft.get("confidence") or DEFAULT_CONFIDENCE), 0.0), 1.0)
        except (TypeError, ValueError):
            confidence = DEFAULT_CONFIDENCE

        return (
            _text(draft.get("subject")) or default_subject,
            _text(draft.get("body")) or template,
            _text(draft.get("reasoning"))
            or "Email generated using available company data and lead insights.",
            confidence,
        )

    @staticmethod
    def _prompt(p: Personalizations, score: LeadScore, request: EmailRequest) -> str:
        tone = request.tone.value if isinstance(request.tone, Tone) else str(request.tone)
        return DRAFT_PROMPT.format(
            company=p.company_mention,
            executive=p.executive_mention or "Not available",
            industry=p.industry_relevance or "Not specified",
            score=score.overall_score,
            priority=score.priority.value,
            insights=score.reasoning,
            sender_name=request.sender_name,
            sender_company=request.sender_company,
            tone=tone,
            value=p.value_proposition,
        )


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""
