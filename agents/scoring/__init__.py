"""
Lead Scoring
Lead Enrichment Engine

Weighted five-factor scoring of enriched leads.
"""

from .lead_scorer import LeadScorer
from .model import ScoringModel, parse_employee_count

__all__ = ["LeadScorer", "ScoringModel", "parse_employee_count"]
