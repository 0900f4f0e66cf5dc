"""
Field Generator
Lead Enrichment Engine

Turns a natural-language data request ("I want their size, funding and
who runs the company") into EnrichmentField definitions.
"""

import re

from agents.llm import ChatCompletionBackend
from contracts.errors import RequestValidationError
from contracts.validator import ContractValidator, get_validator
from models.ontology import EnrichmentField, FieldGenerationRequest, FieldType
from skills.common.SKILL import StructuredLogger

OUTPUT_CONTRACT = "agents/field_generation_output"

SYSTEM_PROMPT = """You are an expert at understanding data enrichment needs and converting natural language requests into structured field definitions.

When the user describes what data they want to collect about companies, extract each distinct piece of information as a separate field.

Guidelines:
- Use clear, professional field names (e.g., "Company Size" not "size")
- Provide helpful descriptions that explain what data should be found
- Choose appropriate data types:
  - string: for text, URLs, descriptions
  - number: for counts, amounts, years
  - boolean: for yes/no questions
  - array: for lists of items
- Include example values when helpful
- Common fields include: Company Name, Description, Industry, Employee Count, Founded Year, Headquarters Location, Website, Funding Amount, etc."""


def field_key(display_name: str) -> str:
    """"Employee Count" -> "employeeCount"."""
    words = re.findall(r"[A-Za-z0-9]+", display_name)
    if not words:
        return ""
    first, rest = words[0], words[1:]
    return first[:1].lower() + first[1:] + "".join(w[:1].upper() + w[1:] for w in rest)


class FieldGenerator:
    """generate(prompt) -> list[EnrichmentField]. No fallback on failure."""

    def __init__(self, llm: ChatCompletionBackend, validator: ContractValidator = None):
        self.llm = llm
        self.validator = validator or get_validator()
        self.log = StructuredLogger("field_generator")

    def _response_format(self) -> dict:
        schema = {
            k: v for k, v in self.validator.load_schema(OUTPUT_CONTRACT).items()
            if not k.startswith("$") and k != "title"
        }
        return {
            "type": "json_schema",
            "json_schema": {"name": "field_generation", "strict": True, "schema": schema},
        }

    async def generate(self, prompt: str | FieldGenerationRequest) -> list[EnrichmentField]:
        """
        Raises:
            RequestValidationError: prompt missing or blank
            BackendUnavailable: the language model failed
            SchemaMismatch: the model answered outside the contract
        """
        if isinstance(prompt, FieldGenerationRequest):
            prompt = prompt.prompt
        if not isinstance(prompt, str) or not prompt.strip():
            raise RequestValidationError("Prompt is required")

        completion = await self.llm.complete(
            [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt.strip()},
            ],
            response_format=self._response_format(),
        )
        data = self.validator.parse_json(completion.content, OUTPUT_CONTRACT)

        fields: list[EnrichmentField] = []
        seen: set[str] = set()
        for item in data["fields"]:
            name = field_key(item["displayName"])
            if not name or name in seen:
                continue
            seen.add(name)
            fields.append(EnrichmentField(
                name=name,
                display_name=item["displayName"].strip(),
                type=FieldType(item["type"]),
                description=item["description"],
                example_values=tuple(item.get("examples") or ()),
            ))

        self.log.info("Fields generated", count=len(fields))
        return fields
