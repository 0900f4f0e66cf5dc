"""
Company Research Agent
Lead Enrichment Engine

Owns the scrape_website tool. Scrapes the contact's company site,
reports field values with confidence and source, and delegates to
FieldSynthesisAgent while requested fields remain unresolved.
"""

from agents.base import BaseAgent, HandoffEdge, HandoffHook
from agents.enrichment.field_synthesis import (
    RESEARCH_CONTRACT,
    FieldSynthesisAgent,
    field_lines,
)
from agents.extraction.website_scraper import WebsiteScraper
from agents.tools import ToolRegistry, ToolSpec
from models.ontology import AgentContext, ToolResult


class CompanyResearchAgent(BaseAgent):
    name = "Company Research"
    description = "Scrapes the company website and extracts the requested fields"
    output_schema = RESEARCH_CONTRACT

    def __init__(
        self,
        llm,
        scraper: WebsiteScraper,
        synthesis: FieldSynthesisAgent | None = None,
        on_handoff: HandoffHook | None = None,
        **kwargs,
    ):
        base = scraper.spec()
        kwargs.setdefault("tools", ToolRegistry([
            ToolSpec(base.name, base.description, base.parameters, self._scrape),
        ], validator=kwargs.get("validator")))
        super().__init__(llm, **kwargs)

        self.scraper = scraper
        self.synthesis = synthesis
        self.on_handoff = on_handoff

        self._requested: list[str] = []
        self._found: set[str] = set()

    async def execute(self, context: AgentContext):
        data = context.input if isinstance(context.input, dict) else {}
        self._requested = [f.get("name") for f in data.get("fields", []) if f.get("name")]
        self._found = set()
        return await super().execute(context)

    async def _scrape(self, arguments: dict) -> ToolResult:
        # Always look for every requested field, whatever the model asked for
        targets = list(dict.fromkeys([*arguments.get("targetFields", []), *self._requested]))
        result = await self.scraper.run({**arguments, "targetFields": targets})
        self._found.update(result.extracted_data)
        return result

    def unresolved(self) -> list[str]:
        return [name for name in self._requested if name not in self._found]

    def handoffs(self) -> list[HandoffEdge]:
        if self.synthesis is None:
            return []
        return [
            HandoffEdge(
                self.synthesis,
                guard=lambda context: bool(self.unresolved()),
                input_transform=self._synthesis_input,
                on_handoff=self.on_handoff,
            )
        ]

    def _synthesis_input(self, payload, context: AgentContext) -> dict:
        data = context.input if isinstance(context.input, dict) else {}
        extra = payload if isinstance(payload, dict) else {}
        return {
            **extra,
            "email": data.get("email"),
            "domain": data.get("domain"),
            "fields": data.get("fields", []),
            "unresolved": self.unresolved(),
        }

    def instructions(self, context: AgentContext) -> str:
        data = context.input if isinstance(context.input, dict) else {}
        url = data.get("url") or f"https://{data.get('domain', '')}"

        return f"""You research companies to enrich sales leads.

Contact email: {data.get("email", "unknown")}
Company website: {url}

Requested fields:
{field_lines(data.get("fields", []))}

Steps:
1. Call scrape_website with the company website URL and the requested field names as targetFields. You may scrape one more page (for example /about) if the first is thin.
2. Use the tool results: extractedData holds values found by pattern matching; rawContent holds the page text.
3. If some requested fields cannot be found on the site, hand off to Field Synthesis instead of guessing.

When done, respond with a JSON object:
{{"fields": {{"<field name>": {{"value": ..., "confidence": 0.0-1.0, "source": "<page url>"}}}}}}
Omit fields you could not find."""
