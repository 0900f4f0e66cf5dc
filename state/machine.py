"""
Session State Machine
Lead Enrichment Engine

Lifecycle of one batch enrichment run (a session) and the process-wide
registry that maps session ids to their cancel flags.

Phases:
- IDLE: created, nothing dispatched yet
- PROCESSING: rows being dispatched
- COMPLETED: every row produced a result
- CANCELLED: cancellation observed; no further rows dispatched
- FAILED: unrecoverable batch-level error

The registry is the only state shared across rows. Each session's cancel
flag is a threading.Event (atomic set/read); the registry lock guards
only insert and remove.
"""

import logging
import threading
import uuid
from datetime import UTC, datetime, timedelta
from enum import StrEnum

from pydantic import BaseModel, Field, PrivateAttr

logger = logging.getLogger(__name__)

DEFAULT_SESSION_MAX_AGE = timedelta(hours=1)


class SessionPhase(StrEnum):
    """Batch execution phases."""

    IDLE = "IDLE"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


# Phase transitions
SESSION_TRANSITIONS = {
    SessionPhase.IDLE: [SessionPhase.PROCESSING, SessionPhase.CANCELLED, SessionPhase.FAILED],
    SessionPhase.PROCESSING: [SessionPhase.COMPLETED, SessionPhase.CANCELLED, SessionPhase.FAILED],
    SessionPhase.COMPLETED: [],
    SessionPhase.CANCELLED: [],
    SessionPhase.FAILED: [],
}

TERMINAL_PHASES = frozenset(
    phase for phase, targets in SESSION_TRANSITIONS.items() if not targets
)


class SessionState(BaseModel):
    """One batch run: id, phase, cancel flag and dispatch bookkeeping."""

    session_id: str = Field(default_factory=lambda: f"session_{uuid.uuid4().hex}")
    phase: SessionPhase = Field(default=SessionPhase.IDLE)
    total_rows: int = Field(default=0)
    dispatched_rows: list[int] = Field(default_factory=list)
    finished_rows: list[int] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None

    phase_history: list[dict] = Field(default_factory=list)

    _cancel_event: threading.Event = PrivateAttr(default_factory=threading.Event)

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def is_cancelled(self) -> bool:
        """Cancel probe handed to workers and agents."""
        return self._cancel_event.is_set()

    def request_cancel(self):
        self._cancel_event.set()

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    def transition_to(self, new_phase: SessionPhase) -> bool:
        """
        Transition to a new session phase.

        Returns True if transition is valid, False otherwise.
        """
        valid_transitions = SESSION_TRANSITIONS.get(self.phase, [])

        if new_phase not in valid_transitions:
            logger.warning(
                f"Invalid session transition: {self.phase} -> {new_phase}. "
                f"Valid transitions: {valid_transitions}"
            )
            return False

        now = datetime.now(UTC)
        self.phase_history.append({
            "from": self.phase,
            "to": new_phase,
            "at": now.isoformat(),
            "dispatched": len(self.dispatched_rows),
        })

        self.phase = new_phase
        self.updated_at = now

        if new_phase in TERMINAL_PHASES:
            self.completed_at = now

        logger.info(f"Session {self.session_id} transitioned to phase: {new_phase}")
        return True

    def record_dispatch(self, row_index: int):
        self.dispatched_rows.append(row_index)
        self.updated_at = datetime.now(UTC)

    def record_result(self, row_index: int):
        self.finished_rows.append(row_index)
        self.updated_at = datetime.now(UTC)

    @property
    def rows_in_flight(self) -> int:
        return len(self.dispatched_rows) - len(self.finished_rows)

    def undispatched_rows(self) -> list[int]:
        dispatched = set(self.dispatched_rows)
        return [i for i in range(self.total_rows) if i not in dispatched]

    def get_summary(self) -> dict:
        """Get summary of current state."""
        return {
            "session_id": self.session_id,
            "phase": self.phase,
            "cancelled": self.cancelled,
            "total_rows": self.total_rows,
            "dispatched_rows": len(self.dispatched_rows),
            "finished_rows": len(self.finished_rows),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class SessionRegistry:
    """
    Process-scoped sessionId -> SessionState map.

    Sessions are registered when a batch starts and removed when it
    finishes, when cancellation is requested, or when sweep() finds them
    stale.
    """

    def __init__(self):
        self._sessions: dict[str, SessionState] = {}
        self._lock = threading.Lock()

    def create(self, total_rows: int = 0, session_id: str | None = None) -> SessionState:
        state = SessionState(total_rows=total_rows)
        if session_id:
            state.session_id = session_id

        with self._lock:
            if state.session_id in self._sessions:
                raise ValueError(f"Session already registered: {state.session_id}")
            self._sessions[state.session_id] = state

        logger.info(f"Registered session {state.session_id} ({total_rows} rows)")
        return state

    def get(self, session_id: str) -> SessionState | None:
        return self._sessions.get(session_id)

    def cancel(self, session_id: str) -> bool:
        """
        Raise the session's cancel flag and drop it from the registry.

        Returns False for unknown (or already finished) sessions.
        """
        with self._lock:
            state = self._sessions.pop(session_id, None)

        if state is None:
            return False

        state.request_cancel()
        logger.info(f"Cancellation requested for session {session_id}")
        return True

    def remove(self, session_id: str) -> SessionState | None:
        with self._lock:
            return self._sessions.pop(session_id, None)

    def sweep(self, max_age: timedelta = DEFAULT_SESSION_MAX_AGE) -> list[str]:
        """
        Cancel and remove sessions not updated within max_age.

        Sessions with rows still running are kept regardless of age.
        """
        cutoff = datetime.now(UTC) - max_age

        with self._lock:
            stale = [
                sid for sid, s in self._sessions.items()
                if s.updated_at < cutoff and not s.rows_in_flight
            ]
            states = [self._sessions.pop(sid) for sid in stale]

        for state in states:
            state.request_cancel()
            logger.warning(f"Swept stale session {state.session_id}")

        return stale

    def active_ids(self) -> list[str]:
        with self._lock:
            return list(self._sessions)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions


# Module-level singleton
_registry: SessionRegistry | None = None
_registry_lock = threading.Lock()


def get_session_registry() -> SessionRegistry:
    """Return the process-wide registry (double-checked locking)."""
    global _registry

    if _registry is None:
        with _registry_lock:
            if _registry is None:
                _registry = SessionRegistry()

    return _registry


def _reset_session_registry():
    """Reset the singleton (for testing only)."""
    global _registry
    with _registry_lock:
        _registry = None
