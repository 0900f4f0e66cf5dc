"""
Lead Scorer
Lead Enrichment Engine

Scores one enriched row: deterministic factors from ScoringModel plus a
language-model narrative. The narrative is optional; backend failures
fall back to a templated reasoning string.
"""

import json

from pydantic import ValidationError

from agents.llm import ChatCompletionBackend
from agents.scoring.model import ScoringModel
from contracts.errors import BackendUnavailable, RequestValidationError
from models.ontology import LeadScore, ScoringRequest
from skills.common.SKILL import StructuredLogger

FALLBACK_REASONING = "Lead scoring completed using available data points."
FALLBACK_CONFIDENCE = 0.6

SYSTEM_PROMPT = (
    "You are an expert sales analyst specializing in B2B lead "
    "qualification and prioritization."
)

ANALYSIS_PROMPT = """Analyze this lead for sales potential and provide reasoning:

Email: {email}
Company Domain: {domain}
Available Data: {data}

Consider:
1. Company growth stage and funding status
2. Market position and competitive landscape
3. Technology adoption and innovation
4. Decision-maker accessibility
5. Timing and market conditions

Provide a brief analysis explaining why this lead should be prioritized (or not) and rate your confidence in the assessment (0-1).

Response format:
{{
  "reasoning": "Brief explanation of lead quality and potential",
  "confidence": 0.85
}}"""


def _clamp(value, default: float = 0.5) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return min(max(number, 0.0), 1.0)


class LeadScorer:
    """score(request) -> LeadScore; never fails because of the backend."""

    def __init__(
        self,
        llm: ChatCompletionBackend,
        model: ScoringModel | None = None,
        temperature: float = 0.3,
    ):
        self.llm = llm
        self.model = model or ScoringModel()
        self.temperature = temperature
        self.log = StructuredLogger("lead_scorer")

    async def score(self, request: ScoringRequest | dict) -> LeadScore:
        if not isinstance(request, ScoringRequest):
            try:
                request = ScoringRequest.model_validate(request)
            except ValidationError as e:
                raise RequestValidationError(
                    "Invalid scoring request", details={"errors": e.errors(include_url=False)}
                ) from e

        points = self.model.extract_data_points(request.enriched_data)
        factors = self.model.factors(points, request.email)
        overall = self.model.weighted_score(factors)

        reasoning, confidence = await self._analysis(points, request)

        self.log.info("Lead scored", email=request.email, score=overall)

        return LeadScore(
            overall_score=overall,
            priority=self.model.priority(overall),
            factors=factors,
            reasoning=reasoning,
            confidence=confidence,
        )

    async def _analysis(self, points: dict, request: ScoringRequest) -> tuple[str, float]:
        prompt = ANALYSIS_PROMPT.format(
            email=request.email,
            domain=request.company_domain or "Unknown",
            data=json.dumps(points, indent=2, default=str),
        )

        try:
            analysis = await self.llm.complete_json(
                [
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.temperature,
            )
        except BackendUnavailable as e:
            self.log.warning("Lead analysis unavailable, using fallback", error=str(e))
            return FALLBACK_REASONING, FALLBACK_CONFIDENCE

        reasoning = analysis.get("reasoning")
        if not isinstance(reasoning, str) or not reasoning.strip():
            reasoning = "AI analysis completed."

        return reasoning, _clamp(analysis.get("confidence"))
