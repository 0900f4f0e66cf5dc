"""
Enrichment Agents
Lead Enrichment Engine

The per-row agent graph (Triage -> Company Research -> Field Synthesis)
and the natural-language field generator.
"""

from .field_synthesis import FieldSynthesisAgent
from .company_research import CompanyResearchAgent
from .triage import TriageAgent
from .field_generator import FieldGenerator

__all__ = [
    "TriageAgent",
    "CompanyResearchAgent",
    "FieldSynthesisAgent",
    "FieldGenerator",
]
