"""
Tool Registry
Lead Enrichment Engine

Callable capabilities exposed to agents. Each tool is registered with a
JSON-schema parameter declaration that is checked at registration time;
arguments are validated against it on every call. Failures never escape
the registry: they come back as ToolResult(error=..., extracted_data={}).
"""

import re
from collections.abc import Awaitable, Callable

from jsonschema.exceptions import SchemaError

from contracts.errors import SchemaMismatch
from contracts.validator import ContractValidator, get_validator
from models.ontology import ToolResult
from skills.common.SKILL import TOOL_INVOCATIONS_TOTAL, StructuredLogger

ToolHandler = Callable[[dict], Awaitable[ToolResult]]

TOOL_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,64}$")


class ToolRegistrationError(ValueError):
    """Tool name or parameter schema rejected at registration."""


class ToolSpec:
    """A named tool: description, parameter schema and async handler."""

    def __init__(
        self,
        name: str,
        description: str,
        parameters: dict,
        handler: ToolHandler,
    ):
        self.name = name
        self.description = description
        self.parameters = parameters
        self.handler = handler

    def to_wire(self) -> dict:
        """OpenAI function-tool declaration."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    def __repr__(self) -> str:
        return f"ToolSpec({self.name!r})"


class ToolRegistry:
    """Name -> ToolSpec table owned by one agent."""

    def __init__(
        self,
        tools: list[ToolSpec] | None = None,
        validator: ContractValidator = None,
    ):
        self.validator = validator or get_validator()
        self.log = StructuredLogger("tools")
        self._tools: dict[str, ToolSpec] = {}
        for spec in tools or []:
            self.register(spec)

    def register(self, spec: ToolSpec) -> ToolSpec:
        if not TOOL_NAME_PATTERN.match(spec.name or ""):
            raise ToolRegistrationError(f"Invalid tool name: {spec.name!r}")
        if spec.name in self._tools:
            raise ToolRegistrationError(f"Tool already registered: {spec.name}")
        if not isinstance(spec.parameters, dict) or spec.parameters.get("type") != "object":
            raise ToolRegistrationError(
                f"Tool {spec.name} parameters must be an object schema"
            )
        try:
            self.validator.check_schema(spec.parameters)
        except SchemaError as e:
            raise ToolRegistrationError(
                f"Tool {spec.name} has an invalid parameter schema: {e.message}"
            ) from e

        self._tools[spec.name] = spec
        return spec

    def get(self, name: str) -> ToolSpec | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def schemas(self) -> list[dict]:
        return [spec.to_wire() for spec in self._tools.values()]

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    async def invoke(self, name: str, arguments: dict) -> ToolResult:
        spec = self._tools.get(name)
        if spec is None:
            TOOL_INVOCATIONS_TOTAL.labels(tool=name, outcome="unknown").inc()
            return ToolResult(error=f"Unknown tool: {name}")

        try:
            self.validator.validate(spec.parameters, arguments)
        except SchemaMismatch as e:
            TOOL_INVOCATIONS_TOTAL.labels(tool=name, outcome="invalid_arguments").inc()
            self.log.warning("Tool arguments rejected", tool=name, error=str(e))
            return ToolResult(error=str(e))

        try:
            result = await spec.handler(arguments)
        except Exception as e:
            TOOL_INVOCATIONS_TOTAL.labels(tool=name, outcome="error").inc()
            self.log.warning(
                "Tool failed", tool=name, error=str(e), error_type=type(e).__name__
            )
            return ToolResult(url=arguments.get("url", ""), error=str(e) or type(e).__name__)

        TOOL_INVOCATIONS_TOTAL.labels(
            tool=name, outcome="ok" if result.ok else "error"
        ).inc()
        if not result.ok:
            result.extracted_data = {}
        return result
