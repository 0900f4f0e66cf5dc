"""
Scoring Model
Lead Enrichment Engine

Pure, deterministic lead scoring: five weighted factors computed from an
enriched row, a weight-normalized overall score and a priority band.
"""

import math
import re
from typing import Any

from models.ontology import FactorScore, LeadFactors, Priority
from skills.common.SKILL import email_domain, is_personal_email_domain


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def parse_employee_count(raw: Any) -> int:
    """
    "100-500 employees" -> 300, "1000+" -> 1000, "about 40" -> 40,
    no digits -> 0. Thousands separators are ignored.
    """
    text = re.sub(r"(?<=\d),(?=\d{3}\b)", "", str(raw).lower())
    numbers = [int(n) for n in re.findall(r"\d+", text)]

    if not numbers:
        return 0
    if len(numbers) == 2:
        return round_half_up((numbers[0] + numbers[1]) / 2)
    return numbers[0]


def _words(key: str) -> set[str]:
    return set(re.split(r"[^a-z0-9]+", key.lower())) - {""}


def _unwrap(value: Any) -> Any:
    """Enrichment dicts carry the payload under "value"."""
    if isinstance(value, dict):
        return value.get("value")
    return value


class ScoringModel:
    """
    Weighted five-factor lead scorer.

    Weights sum to 1.0; overall = round(sum(score * weight) / sum(weight)).
    """

    WEIGHTS = {
        "company_size": 0.25,
        "funding_stage": 0.20,
        "growth_signals": 0.20,
        "contactability": 0.15,
        "market_timing": 0.20,
    }

    # (threshold exclusive, score, reasoning), largest first
    SIZE_BANDS = [
        (1000, 90, "Large enterprise (1000+ employees)"),
        (200, 80, "Mid-market company (200-1000 employees)"),
        (50, 70, "Growing company (50-200 employees)"),
        (10, 60, "Small business (10-50 employees)"),
    ]

    # First matching keyword group wins
    FUNDING_TIERS = [
        (("series c", "series d", "ipo"), 95, "Late-stage funded company with proven model"),
        (("series b",), 85, "Series B company with strong growth"),
        (("series a",), 75, "Series A company with market validation"),
        (("seed",), 65, "Seed-stage company with early traction"),
        (("bootstrap",), 70, "Bootstrapped company with sustainable model"),
    ]

    HIGH_GROWTH_INDUSTRIES = ("saas", "fintech")
    ESSENTIAL_INDUSTRIES = ("healthcare", "cybersecurity")

    NEUTRAL_SCORE = 50
    NEUTRAL_TIMING = 60

    def extract_data_points(self, enriched_data: dict[str, Any]) -> dict[str, Any]:
        """Map enriched field keys onto the scoring inputs by keyword."""
        points: dict[str, Any] = {}

        for key, raw in (enriched_data or {}).items():
            value = _unwrap(raw)
            if value is None or value == "" or value == []:
                continue

            name = key.lower()
            words = _words(key)

            if "employee" in name or "size" in name:
                points["employee_count"] = value
            if "funding" in name or "investment" in name or "raised" in name:
                points["funding"] = value
            if "revenue" in name or "arr" in words or "mrr" in name:
                points["revenue"] = value
            if "industry" in name or "sector" in name or "category" in name:
                points["industry"] = value
            if "stage" in name or "series" in name:
                points["stage"] = value
            if "ceo" in name or "founder" in name or "executive" in name:
                points["leadership"] = value
            if "tech" in name or "stack" in name:
                points["technology"] = value
            if "location" in name or "headquarters" in name or "based" in name:
                points["location"] = value
            if ("company" in name and "name" in name) or name == "name":
                points["company_name"] = value

        return points

    # ------------------------------------------------------------------
    # Factors
    # ------------------------------------------------------------------

    def score_company_size(self, points: dict) -> FactorScore:
        weight = self.WEIGHTS["company_size"]

        if not points.get("employee_count"):
            return FactorScore(score=self.NEUTRAL_SCORE,
                               reasoning="Company size not available", weight=weight)

        employees = parse_employee_count(points["employee_count"])
        for threshold, score, reasoning in self.SIZE_BANDS:
            if employees > threshold:
                return FactorScore(score=score, reasoning=reasoning, weight=weight)

        return FactorScore(score=40, reasoning="Very small team (<10 employees)", weight=weight)

    def score_funding_stage(self, points: dict) -> FactorScore:
        weight = self.WEIGHTS["funding_stage"]
        info = str(points.get("funding") or points.get("stage") or "").lower()

        if info:
            for keywords, score, reasoning in self.FUNDING_TIERS:
                if any(k in info for k in keywords):
                    return FactorScore(score=score, reasoning=reasoning, weight=weight)

        return FactorScore(score=self.NEUTRAL_SCORE,
                           reasoning="Funding information not available", weight=weight)

    def score_growth_signals(self, points: dict) -> FactorScore:
        score = self.NEUTRAL_SCORE
        signals = []

        if points.get("revenue"):
            signals.append("Revenue data available")
            score += 15
        if points.get("technology"):
            signals.append("Modern technology stack")
            score += 10
        if points.get("leadership"):
            signals.append("Executive team identified")
            score += 10

        reasoning = (
            f"Growth signals: {', '.join(signals)}" if signals
            else "Limited growth signals available"
        )
        return FactorScore(score=min(score, 100), reasoning=reasoning,
                           weight=self.WEIGHTS["growth_signals"])

    def score_contactability(self, points: dict, email: str) -> FactorScore:
        domain = email_domain(email)
        company = re.sub(r"\s+", "", str(points.get("company_name") or "")).lower()

        if is_personal_email_domain(domain):
            score, reasoning = 40, "Personal email domain - lower contactability"
        elif company and company in domain:
            score, reasoning = 80, "Corporate email matching company domain"
        else:
            score, reasoning = 70, "Corporate email domain"

        if points.get("leadership"):
            score += 10
            reasoning += " + executive contact identified"

        return FactorScore(score=min(score, 100), reasoning=reasoning,
                           weight=self.WEIGHTS["contactability"])

    def score_market_timing(self, points: dict) -> FactorScore:
        weight = self.WEIGHTS["market_timing"]
        industry = str(points.get("industry") or "").lower()

        if re.search(r"\bai\b", industry) or any(k in industry for k in self.HIGH_GROWTH_INDUSTRIES):
            return FactorScore(score=80, reasoning="High-growth industry with strong market demand",
                               weight=weight)
        if any(k in industry for k in self.ESSENTIAL_INDUSTRIES):
            return FactorScore(score=75, reasoning="Essential industry with consistent demand",
                               weight=weight)

        return FactorScore(score=self.NEUTRAL_TIMING, reasoning="Standard market timing",
                           weight=weight)

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------

    def factors(self, points: dict, email: str) -> LeadFactors:
        return LeadFactors(
            company_size=self.score_company_size(points),
            funding_stage=self.score_funding_stage(points),
            growth_signals=self.score_growth_signals(points),
            contactability=self.score_contactability(points, email),
            market_timing=self.score_market_timing(points),
        )

    @staticmethod
    def weighted_score(factors: LeadFactors) -> int:
        total_weight = sum(f.weight for f in factors.all())
        total = sum(f.score * f.weight for f in factors.all())
        return round_half_up(total / total_weight)

    @staticmethod
    def priority(score: int) -> Priority:
        if score >= 80:
            return Priority.HOT
        if score >= 60:
            return Priority.WARM
        return Priority.COLD
