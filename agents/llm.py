"""
Language-Model Backend
Lead Enrichment Engine

Client for an OpenAI-compatible chat completions endpoint. A completion
is either free text (optionally JSON) or a selection of tool calls.
"""

import json
from typing import Any

import httpx
from pydantic import BaseModel, Field

from contracts.errors import BackendUnavailable
from skills.common.SKILL import (
    LLM_COMPLETIONS_TOTAL,
    AsyncHTTPClient,
    CircuitOpenError,
    StructuredLogger,
)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o"

JSON_OBJECT = {"type": "json_object"}


class ToolCall(BaseModel):
    """A function call selected by the model."""

    id: str = ""
    name: str
    arguments: str = "{}"

    def parsed_arguments(self) -> dict:
        """Decoded arguments; malformed or non-object JSON yields {}."""
        try:
            value = json.loads(self.arguments or "{}")
        except json.JSONDecodeError:
            return {}
        return value if isinstance(value, dict) else {}

    def to_wire(self) -> dict:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


class Completion(BaseModel):
    """One assistant turn."""

    content: str | None = None
    tool_calls: list[ToolCall] = Field(default_factory=list)
    model: str = ""

    def assistant_message(self) -> dict:
        message: dict[str, Any] = {"role": "assistant", "content": self.content or ""}
        if self.tool_calls:
            message["tool_calls"] = [call.to_wire() for call in self.tool_calls]
        return message


class ChatCompletionBackend:
    """
    POSTs message lists to {base_url}/chat/completions.

    Transport failures, open circuits, non-2xx answers and malformed
    bodies all surface as BackendUnavailable.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        model: str = DEFAULT_MODEL,
        http: AsyncHTTPClient = None,
        timeout: int = 60,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.http = http or AsyncHTTPClient()
        self.timeout = timeout
        self.log = StructuredLogger("llm")

    async def complete(
        self,
        messages: list[dict],
        tools: list[dict] | None = None,
        response_format: dict | None = None,
        temperature: float | None = None,
        model: str | None = None,
    ) -> Completion:
        model = model or self.model
        payload: dict[str, Any] = {"model": model, "messages": messages}
        if tools:
            payload["tools"] = tools
        if response_format:
            payload["response_format"] = response_format
        if temperature is not None:
            payload["temperature"] = temperature

        try:
            response = await self.http.post(
                f"{self.base_url}/chat/completions",
                json=payload,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
            )
        except (httpx.HTTPError, CircuitOpenError) as e:
            LLM_COMPLETIONS_TOTAL.labels(model=model, outcome="transport_error").inc()
            self.log.warning("Completion request failed", model=model, error=str(e))
            raise BackendUnavailable(
                f"Language model unreachable: {e}", details={"model": model}
            ) from e

        if response.status_code >= 400:
            LLM_COMPLETIONS_TOTAL.labels(model=model, outcome=f"http_{response.status_code}").inc()
            message = _error_message(response)
            self.log.warning(
                "Completion rejected", model=model,
                status=response.status_code, error=message,
            )
            raise BackendUnavailable(
                message, details={"model": model, "status": response.status_code}
            )

        try:
            body = response.json()
            choice = body["choices"][0]["message"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            LLM_COMPLETIONS_TOTAL.labels(model=model, outcome="malformed").inc()
            raise BackendUnavailable(
                "Malformed completion response", details={"model": model}
            ) from e

        calls = [
            ToolCall(
                id=call.get("id", ""),
                name=call["function"]["name"],
                arguments=call["function"].get("arguments") or "{}",
            )
            for call in choice.get("tool_calls") or []
            if call.get("function", {}).get("name")
        ]

        LLM_COMPLETIONS_TOTAL.labels(
            model=model, outcome="tool_calls" if calls else "content"
        ).inc()

        return Completion(content=choice.get("content"), tool_calls=calls, model=model)

    async def complete_json(
        self,
        messages: list[dict],
        response_format: dict = JSON_OBJECT,
        temperature: float | None = None,
    ) -> dict:
        """Completion constrained to a JSON object, decoded."""
        completion = await self.complete(
            messages, response_format=response_format, temperature=temperature
        )
        try:
            data = json.loads(completion.content or "")
        except json.JSONDecodeError as e:
            raise BackendUnavailable(
                "Language model returned invalid JSON", details={"model": completion.model}
            ) from e
        if not isinstance(data, dict):
            raise BackendUnavailable(
                "Language model returned a non-object JSON value",
                details={"model": completion.model},
            )
        return data

    async def close(self):
        await self.http.close()


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return error["message"]
    if isinstance(error, str) and error:
        return error
    return f"Language model API error (HTTP {response.status_code})"
