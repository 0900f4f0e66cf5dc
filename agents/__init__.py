"""
Lead Enrichment Engine - Agents Package

Agent engine, concrete enrichment agents, the per-row orchestrator and
the batch session coordinator.
"""

from agents.base import AgentOutput, BaseAgent, HandoffEdge
from agents.coordinator import SessionCoordinator
from agents.orchestrator import AgentOrchestrator

# Import agent submodules
from agents import enrichment
from agents import extraction
from agents import outreach
from agents import scoring

__all__ = [
    "BaseAgent",
    "AgentOutput",
    "HandoffEdge",
    "AgentOrchestrator",
    "SessionCoordinator",
    "enrichment",
    "extraction",
    "outreach",
    "scoring",
]
