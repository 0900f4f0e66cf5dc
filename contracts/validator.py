"""
Contract Validator
Lead Enrichment Engine

JSON Schema (Draft 2020-12) validation for agent outputs and tool
arguments. Schemas are either inline dicts or files under
contracts/schemas/ referenced by path (e.g. "agents/company_research_output").
"""

import json
import logging
from pathlib import Path
from typing import Any

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError
from pydantic import BaseModel
from referencing import Registry
from referencing.jsonschema import DRAFT202012

from contracts.errors import SchemaMismatch

logger = logging.getLogger(__name__)

CONTRACTS_DIR = Path(__file__).parent / "schemas"

SchemaRef = str | dict


class ContractValidator:
    """
    Validates data against JSON Schema contracts.

    Supports:
    - File-backed schemas with $ref resolution between files
    - Inline schemas declared by agents and tools
    - Caching of compiled validators
    """

    def __init__(self, contracts_dir: Path = None):
        self.contracts_dir = Path(contracts_dir or CONTRACTS_DIR)
        self._schema_cache: dict[str, dict] = {}
        self._validator_cache: dict[str, Draft202012Validator] = {}
        self._registry: Registry | None = None

    def load_schema(self, schema_path: str) -> dict:
        """Load a schema file relative to the contracts directory."""
        if not schema_path.endswith(".json"):
            schema_path = f"{schema_path}.json"

        if schema_path in self._schema_cache:
            return self._schema_cache[schema_path]

        full_path = self.contracts_dir / schema_path
        if not full_path.exists():
            raise FileNotFoundError(f"Contract schema not found: {full_path}")

        with open(full_path, encoding="utf-8") as f:
            schema = json.load(f)

        self._schema_cache[schema_path] = schema
        return schema

    def _build_registry(self) -> Registry:
        """Map every schema's $id (and file URI) to a resource for $ref lookups."""
        if self._registry is not None:
            return self._registry

        resources = []
        for schema_file in self.contracts_dir.rglob("*.json"):
            try:
                with open(schema_file, encoding="utf-8") as f:
                    schema = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Skipping unreadable schema {schema_file}: {e}")
                continue

            resource = DRAFT202012.create_resource(schema)
            if "$id" in schema:
                resources.append((schema["$id"], resource))
            resources.append((f"file://{schema_file.as_posix()}", resource))

        self._registry = Registry().with_resources(resources)
        return self._registry

    def check_schema(self, schema: dict) -> None:
        """Raise SchemaError if schema itself is not a valid Draft 2020-12 schema."""
        Draft202012Validator.check_schema(schema)

    def _get_validator(self, schema: SchemaRef) -> tuple[str, Draft202012Validator]:
        if isinstance(schema, dict):
            return schema.get("title", "inline"), Draft202012Validator(
                schema, registry=self._build_registry()
            )

        if schema in self._validator_cache:
            return schema, self._validator_cache[schema]

        validator = Draft202012Validator(
            self.load_schema(schema), registry=self._build_registry()
        )
        self._validator_cache[schema] = validator
        return schema, validator

    def validate(
        self,
        schema: SchemaRef,
        data: Any,
        raise_on_error: bool = True,
    ) -> tuple[bool, list[str]]:
        """
        Validate data against a schema.

        Args:
            schema: Contract path under contracts/schemas/ or an inline schema
            data: Data to validate (pydantic models are dumped first)
            raise_on_error: Raise SchemaMismatch instead of returning errors

        Returns:
            Tuple of (is_valid, list of error messages)
        """
        name, validator = self._get_validator(schema)

        if isinstance(data, BaseModel):
            data = data.model_dump(mode="json", by_alias=True)

        errors = [
            f"{'/'.join(str(p) for p in e.absolute_path) or '<root>'}: {e.message}"
            for e in validator.iter_errors(data)
        ]

        if errors and raise_on_error:
            raise SchemaMismatch(contract=name, errors=errors, data=data)

        return not errors, errors

    def parse_json(self, content: str | None, schema: SchemaRef) -> Any:
        """Parse model output as JSON and validate it; any failure is SchemaMismatch."""
        name = schema.get("title", "inline") if isinstance(schema, dict) else schema

        if not content:
            raise SchemaMismatch(contract=name, errors=["empty output"])

        try:
            data = json.loads(_strip_code_fence(content))
        except json.JSONDecodeError as e:
            raise SchemaMismatch(contract=name, errors=[f"invalid JSON: {e.msg}"]) from e

        self.validate(schema, data)
        return data


def _strip_code_fence(content: str) -> str:
    text = content.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        text = text.rsplit("```", 1)[0]
    return text.strip()


# Global validator instance
_validator: ContractValidator | None = None


def get_validator() -> ContractValidator:
    """Get the global validator instance."""
    global _validator
    if _validator is None:
        _validator = ContractValidator()
    return _validator


__all__ = [
    "ContractValidator",
    "SchemaError",
    "SchemaMismatch",
    "get_validator",
]
