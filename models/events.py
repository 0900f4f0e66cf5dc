"""
Stream Events
Lead Enrichment Engine

Typed events emitted by a batch enrichment session, in the order the
coordinator produces them. Each carries the session id and a per-session
sequence number.
"""

import json
from typing import Any, Literal

from pydantic import Field

from models.ontology import RowEnrichmentResult, WireModel

ProgressKind = Literal["info", "success", "warning", "agent"]


class StreamEvent(WireModel):
    type: str
    session_id: str | None = None
    sequence: int = 0


class SessionEvent(StreamEvent):
    type: Literal["session"] = "session"
    total_rows: int = 0


class ProcessingEvent(StreamEvent):
    type: Literal["processing"] = "processing"
    row_index: int
    total_rows: int = 0


class ResultEvent(StreamEvent):
    type: Literal["result"] = "result"
    result: RowEnrichmentResult


class AgentProgressEvent(StreamEvent):
    type: Literal["agent_progress"] = "agent_progress"
    message: str
    message_type: ProgressKind = "info"
    row_index: int | None = None


class CompleteEvent(StreamEvent):
    type: Literal["complete"] = "complete"
    stats: dict[str, int] = Field(default_factory=dict)


class CancelledEvent(StreamEvent):
    type: Literal["cancelled"] = "cancelled"
    dispatched_rows: list[int] = Field(default_factory=list)
    undispatched_rows: list[int] = Field(default_factory=list)


class ErrorEvent(StreamEvent):
    type: Literal["error"] = "error"
    error: str
    code: str
    details: dict[str, Any] = Field(default_factory=dict)


def format_sse(event: StreamEvent) -> str:
    """Render an event as one server-sent-events frame."""
    return f"data: {json.dumps(event.to_wire(), default=str)}\n\n"
