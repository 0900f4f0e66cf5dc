"""
Triage Agent
Lead Enrichment Engine

Entry point of the per-row agent graph. Looks at the contact and hands
off to CompanyResearchAgent when there is a corporate domain to research.
"""

from agents.base import BaseAgent, HandoffEdge, HandoffHook
from agents.enrichment.company_research import CompanyResearchAgent
from agents.enrichment.field_synthesis import field_lines
from models.ontology import AgentContext
from skills.common.SKILL import is_personal_email_domain


def researchable(context: AgentContext) -> bool:
    """A corporate domain is present."""
    data = context.input if isinstance(context.input, dict) else {}
    domain = data.get("domain") or ""
    return bool(domain) and not is_personal_email_domain(domain)


class TriageAgent(BaseAgent):
    name = "Triage"
    description = "Decides how a contact's company should be researched"

    def __init__(
        self,
        llm,
        research: CompanyResearchAgent,
        on_handoff: HandoffHook | None = None,
        **kwargs,
    ):
        super().__init__(llm, **kwargs)
        self.research = research
        self.on_handoff = on_handoff

    def handoffs(self) -> list[HandoffEdge]:
        return [
            HandoffEdge(
                self.research,
                guard=researchable,
                input_transform=self._research_input,
                on_handoff=self.on_handoff,
            )
        ]

    @staticmethod
    def _research_input(payload, context: AgentContext) -> dict:
        data = dict(context.input) if isinstance(context.input, dict) else {}
        extra = payload if isinstance(payload, dict) else {}
        url = extra.get("url")
        if isinstance(url, str) and url.strip():
            data["url"] = url.strip()
        if extra.get("notes"):
            data["notes"] = extra["notes"]
        return data

    def instructions(self, context: AgentContext) -> str:
        data = context.input if isinstance(context.input, dict) else {}

        return f"""You triage sales contacts for enrichment.

Contact email: {data.get("email", "unknown")}
Email domain: {data.get("domain", "unknown")}

Requested fields:
{field_lines(data.get("fields", []))}

If the domain belongs to a company, hand off to Company Research with data {{"url": "<company website>", "notes": "<anything useful>"}}.
If the domain is a personal email provider or clearly not a company, reply with a one-sentence explanation and do not hand off."""
