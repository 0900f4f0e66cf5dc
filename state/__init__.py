"""
State Package
Lead Enrichment Engine

Session state machine and the process-wide session registry.
"""

from state.machine import (
    SESSION_TRANSITIONS,
    SessionPhase,
    SessionRegistry,
    SessionState,
    get_session_registry,
)

__all__ = [
    "SESSION_TRANSITIONS",
    "SessionPhase",
    "SessionState",
    "SessionRegistry",
    "get_session_registry",
]
