"""
Base Agent Class
Lead Enrichment Engine

All agents inherit from this base class. An agent is instructions plus
a ToolRegistry plus zero or more handoff edges; execute() runs the
tool-calling conversation against the language-model backend until the
agent (or an agent it delegated to) produces a terminal output.
"""

import json
import re
from abc import ABC, abstractmethod
from collections.abc import Callable
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from agents.llm import JSON_OBJECT, ChatCompletionBackend, Completion, ToolCall
from agents.tools import ToolRegistrationError, ToolRegistry, ToolSpec
from contracts.errors import (
    AgentTurnLimitExceeded,
    HandoffLimitExceeded,
    RunCancelled,
)
from contracts.validator import ContractValidator, get_validator
from models.ontology import AgentContext, Message, Role, ToolResult
from skills.common.SKILL import StructuredLogger, truncate

DEFAULT_MAX_TOOL_TURNS = 3
DEFAULT_MAX_HANDOFFS = 5
DEFAULT_MAX_HISTORY_MESSAGES = 12

# Tool output replayed into a delegate's history is clipped to this
HISTORY_TOOL_RESULT_LIMIT = 2000

CancelProbe = Callable[[], bool]
Guard = Callable[[AgentContext], bool]
InputTransform = Callable[[Any, AgentContext], Any]
HandoffHook = Callable[[AgentContext, "BaseAgent"], None]


def agent_slug(agent_name: str) -> str:
    """"Company Research" -> "company_research"."""
    return re.sub(r"\s+", "_", agent_name.strip().lower())


def handoff_tool_name(agent_name: str) -> str:
    return f"handoff_to_{agent_slug(agent_name)}"


class HandoffEdge:
    """
    A guarded transition to another agent.

    Args:
        target: Agent to delegate to
        guard: Predicate over the delegating context; False ignores the call
        input_transform: (payload, context) -> input for the target
        on_handoff: Observability hook run just before delegating
    """

    def __init__(
        self,
        target: "BaseAgent",
        guard: Guard | None = None,
        input_transform: InputTransform | None = None,
        on_handoff: HandoffHook | None = None,
    ):
        self.target = target
        self.guard = guard
        self.input_transform = input_transform
        self.on_handoff = on_handoff

    @property
    def tool_name(self) -> str:
        return handoff_tool_name(self.target.name)

    def allows(self, context: AgentContext) -> bool:
        return self.guard is None or bool(self.guard(context))

    def to_wire(self) -> dict:
        return {
            "type": "function",
            "function": {
                "name": self.tool_name,
                "description": f"Hand off to {self.target.name}: {self.target.description}",
                "parameters": {
                    "type": "object",
                    "properties": {
                        "data": {
                            "type": "object",
                            "description": "Data to pass to the next agent",
                        },
                    },
                    "required": ["data"],
                },
            },
        }


class DispatchKind(StrEnum):
    TOOL = "tool"
    HANDOFF = "handoff"


class Dispatch:
    """Tagged entry of an agent's dispatch table."""

    def __init__(self, kind: DispatchKind, tool: ToolSpec = None, edge: HandoffEdge = None):
        self.kind = kind
        self.tool = tool
        self.edge = edge


class AgentOutput(BaseModel):
    """Terminal result of an agent run, including everything delegates did."""

    agent: str
    content: Any = None
    path: list[str] = Field(default_factory=list)
    tool_results: list[ToolResult] = Field(default_factory=list)
    history: list[Message] = Field(default_factory=list)


def cap_history(history: list[Message], limit: int) -> list[Message]:
    """
    Bound history to `limit` messages. Older messages collapse into one
    system message that records how many were dropped.
    """
    if limit < 2 or len(history) <= limit:
        return list(history)

    keep = history[-(limit - 1):]
    dropped = history[:len(history) - len(keep)]
    roles = ", ".join(
        f"{sum(1 for m in dropped if m.role == role)} {role}"
        for role in Role
        if any(m.role == role for m in dropped)
    )
    summary = Message(
        role=Role.SYSTEM,
        content=f"[{len(dropped)} earlier messages omitted ({roles})]",
    )
    return [summary, *keep]


class BaseAgent(ABC):
    """
    Abstract base class for all enrichment agents.

    Subclasses set ``name``/``description``, implement instructions(),
    and optionally override handoffs() and ``output_schema``.
    """

    name: str = "Agent"
    description: str = ""
    output_schema: str | dict | None = None

    def __init__(
        self,
        llm: ChatCompletionBackend,
        tools: ToolRegistry | None = None,
        cancel_probe: CancelProbe | None = None,
        validator: ContractValidator | None = None,
        max_tool_turns: int = DEFAULT_MAX_TOOL_TURNS,
        max_handoffs: int = DEFAULT_MAX_HANDOFFS,
        max_history_messages: int = DEFAULT_MAX_HISTORY_MESSAGES,
        temperature: float | None = None,
    ):
        self.llm = llm
        self.validator = validator or get_validator()
        self.tools = tools if tools is not None else ToolRegistry(validator=self.validator)
        self.cancel_probe = cancel_probe
        self.max_tool_turns = max(1, max_tool_turns)
        self.max_handoffs = max_handoffs
        self.max_history_messages = max_history_messages
        self.temperature = temperature
        self.log = StructuredLogger(f"agent.{agent_slug(self.name)}")

    @abstractmethod
    def instructions(self, context: AgentContext) -> str:
        """System prompt for this agent, given the current context."""

    def handoffs(self) -> list[HandoffEdge]:
        return []

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _check_cancelled(self):
        if self.cancel_probe is not None and self.cancel_probe():
            raise RunCancelled(f"{self.name} cancelled before next turn")

    def _dispatch_table(self, edges: list[HandoffEdge]) -> dict[str, Dispatch]:
        table = {
            name: Dispatch(DispatchKind.TOOL, tool=self.tools.get(name))
            for name in self.tools.names()
        }
        for edge in edges:
            if edge.tool_name in table:
                raise ToolRegistrationError(
                    f"{self.name}: handoff {edge.tool_name} collides with another tool"
                )
            table[edge.tool_name] = Dispatch(DispatchKind.HANDOFF, edge=edge)
        return table

    def _initial_messages(self, context: AgentContext) -> list[dict]:
        payload = context.input
        if not isinstance(payload, str):
            payload = json.dumps(payload, default=str)

        return [
            {"role": Role.SYSTEM.value, "content": self.instructions(context)},
            *({"role": m.role.value, "content": m.content} for m in context.history),
            {"role": Role.USER.value, "content": payload},
        ]

    async def execute(self, context: AgentContext) -> AgentOutput:
        """
        Run this agent to a terminal output.

        Raises:
            RunCancelled: the cancel probe fired before a turn
            HandoffLimitExceeded: delegation chain deeper than max_handoffs
            AgentTurnLimitExceeded: tool calls kept coming after max_tool_turns
            SchemaMismatch: output failed output_schema
            BackendUnavailable: the language model could not be reached
        """
        edges = self.handoffs()
        table = self._dispatch_table(edges)
        wire_tools = self.tools.schemas() + [edge.to_wire() for edge in edges]

        messages = self._initial_messages(context)
        tool_results: list[ToolResult] = []
        follow_ups = 0

        self.log.debug(
            "Agent starting",
            depth=context.metadata.get("handoff_depth", 0),
            previous_agent=context.metadata.get("previous_agent"),
        )

        while True:
            self._check_cancelled()

            completion = await self.llm.complete(
                messages,
                tools=wire_tools or None,
                response_format=JSON_OBJECT if self.output_schema else None,
                temperature=self.temperature,
            )

            selected, tool_calls = self._route(completion, table, context)

            if selected is not None:
                edge, call = selected
                return await self._handoff(edge, call, completion, context, tool_results)

            if not tool_calls:
                return AgentOutput(
                    agent=self.name,
                    content=self._parse_output(completion.content),
                    path=[self.name],
                    tool_results=tool_results,
                    history=list(context.history),
                )

            if follow_ups >= self.max_tool_turns:
                raise AgentTurnLimitExceeded(
                    f"{self.name} still calling tools after {follow_ups} follow-up turns",
                    details={"agent": self.name, "max_tool_turns": self.max_tool_turns},
                )
            follow_ups += 1

            messages.append(completion.assistant_message())
            for call in completion.tool_calls:
                messages.append(await self._answer_call(call, table, tool_results))

    def _route(
        self,
        completion: Completion,
        table: dict[str, Dispatch],
        context: AgentContext,
    ) -> tuple[tuple[HandoffEdge, ToolCall] | None, list[ToolCall]]:
        """First allowed handoff wins; otherwise the calls needing an answer."""
        needs_answer, refused = [], []
        for call in completion.tool_calls:
            entry = table.get(call.name)
            if entry is not None and entry.kind == DispatchKind.HANDOFF:
                if entry.edge.allows(context):
                    return (entry.edge, call), []
                self.log.info("Handoff guard rejected", target=entry.edge.target.name)
                refused.append(call)
                continue
            needs_answer.append(call)

        # A refused handoff with no text gets a follow-up turn to answer
        if refused and not needs_answer and not (completion.content or "").strip():
            return None, refused
        return None, needs_answer

    async def _answer_call(
        self,
        call: ToolCall,
        table: dict[str, Dispatch],
        tool_results: list[ToolResult],
    ) -> dict:
        entry = table.get(call.name)

        if entry is None:
            content = {"error": f"Unknown tool: {call.name}", "extractedData": {}}
        elif entry.kind == DispatchKind.HANDOFF:
            content = {"error": "Handoff not available", "extractedData": {}}
        else:
            result = await self.tools.invoke(call.name, call.parsed_arguments())
            tool_results.append(result)
            content = result.to_wire()

        return {
            "role": "tool",
            "tool_call_id": call.id,
            "content": json.dumps(content, default=str),
        }

    async def _handoff(
        self,
        edge: HandoffEdge,
        call: ToolCall,
        completion: Completion,
        context: AgentContext,
        tool_results: list[ToolResult],
    ) -> AgentOutput:
        depth = context.metadata.get("handoff_depth", 0) + 1
        if depth > self.max_handoffs:
            raise HandoffLimitExceeded(
                f"Handoff chain exceeded {self.max_handoffs} at {self.name} -> {edge.target.name}",
                details={"from": self.name, "to": edge.target.name, "depth": depth},
            )

        if edge.on_handoff:
            edge.on_handoff(context, edge.target)

        payload = call.parsed_arguments().get("data", {})
        if edge.input_transform:
            payload = edge.input_transform(payload, context)

        carried = [
            Message(
                role=Role.SYSTEM,
                content=truncate(
                    f"Tool result from {result.url or 'tool'}: "
                    + json.dumps(result.to_wire(), default=str),
                    HISTORY_TOOL_RESULT_LIMIT,
                ),
            )
            for result in tool_results
        ]
        carried.append(Message(
            role=Role.ASSISTANT,
            content=completion.content or f"Handing off to {edge.target.name}",
        ))

        handoff_context = context.fork(
            payload,
            extra_history=carried,
            previous_agent=self.name,
            handoff_depth=depth,
        )
        handoff_context.history = cap_history(
            handoff_context.history, self.max_history_messages
        )

        self.log.info("Handing off", target=edge.target.name, depth=depth)

        output = await edge.target.execute(handoff_context)
        return output.model_copy(update={
            "path": [self.name, *output.path],
            "tool_results": [*tool_results, *output.tool_results],
        })

    def _parse_output(self, content: str | None) -> Any:
        if self.output_schema is None:
            return content
        return self.validator.parse_json(content, self.output_schema)
