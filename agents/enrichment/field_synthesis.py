"""
Field Synthesis Agent
Lead Enrichment Engine

Terminal agent: fills requested fields that scraping left unresolved,
reasoning only over what earlier agents already gathered.
"""

from agents.base import BaseAgent
from models.ontology import AgentContext

RESEARCH_CONTRACT = "agents/company_research_output"


def field_lines(fields: list[dict]) -> str:
    """Bullet list of requested fields for prompts."""
    lines = []
    for field in fields or []:
        label = field.get("displayName") or field.get("name")
        line = f"- {field.get('name')} ({field.get('type', 'string')}): {label}"
        if field.get("description"):
            line += f" - {field['description']}"
        lines.append(line)
    return "\n".join(lines) or "- (none)"


class FieldSynthesisAgent(BaseAgent):
    name = "Field Synthesis"
    description = "Infers fields the website did not state explicitly from the research so far"
    output_schema = RESEARCH_CONTRACT

    def instructions(self, context: AgentContext) -> str:
        data = context.input if isinstance(context.input, dict) else {}
        unresolved = data.get("unresolved") or [f.get("name") for f in data.get("fields", [])]

        return f"""You complete company enrichment records.

Earlier agents scraped the company website for the contact {data.get("email", "unknown")} (domain {data.get("domain", "unknown")}). Their tool results are in the conversation.

Fields still missing: {", ".join(str(n) for n in unresolved)}

All requested fields:
{field_lines(data.get("fields", []))}

Rules:
- Only use evidence present in the conversation. Never invent facts.
- Lower confidence (0.3-0.6) for inferred values; omit a field entirely if there is no evidence.
- Use the page URL as "source" when a value came from a scraped page.

Respond with a JSON object:
{{"fields": {{"<field name>": {{"value": ..., "confidence": 0.0-1.0, "source": "<url or null>"}}}}}}"""
