"""
Extraction Heuristics
Lead Enrichment Engine

Pattern-based field derivation from scraped page content. Every field
family is an ordered chain of PatternRule records evaluated by one
generic matcher: the first rule whose match survives its validator wins.

Confidence reflects how the value was found:
    heuristic phrase match  0.6
    page metadata           0.8
    explicit field label    0.9

Extraction is pure: it never raises and identical input always yields
identical output. Fields nothing matched are simply absent.
"""

import re
from collections.abc import Callable

from pydantic import BaseModel, ConfigDict

# =============================================================================
# CONFIDENCE TIERS
# =============================================================================

HEURISTIC = 0.6
METADATA = 0.8
LABEL = 0.9

SNIPPET_LIMIT = 240


class ExtractedValue(BaseModel):
    """One extracted field value with its confidence and supporting text."""

    model_config = ConfigDict(frozen=True)

    value: str
    confidence: float
    snippet: str = ""


class PatternRule:
    """
    One step of a pattern chain.

    Attributes:
        pattern: Compiled regex searched in the named source
        tier: Confidence assigned when this rule wins
        source: "markdown", "title" or "description"
        group: Capture group holding the value
        clean: Normalizes the raw capture before validation
        validator: Accepts or rejects the cleaned value
    """

    def __init__(
        self,
        pattern: str,
        tier: float,
        flags: int = 0,
        source: str = "markdown",
        group: int = 1,
        clean: Callable[[str], str] | None = None,
        validator: Callable[[str], bool] | None = None,
    ):
        self.pattern = re.compile(pattern, flags)
        self.tier = tier
        self.source = source
        self.group = group
        self.clean = clean or str.strip
        self.validator = validator or bool

    def apply(self, sources: dict[str, str]) -> ExtractedValue | None:
        text = sources.get(self.source) or ""
        if not text:
            return None

        match = self.pattern.search(text)
        if not match or not match.group(self.group):
            return None

        value = self.clean(match.group(self.group))
        if not value or not self.validator(value):
            return None

        return ExtractedValue(
            value=value,
            confidence=self.tier,
            snippet=_snippet(match.group(0)),
        )

    def __repr__(self) -> str:
        return f"PatternRule({self.pattern.pattern!r}, tier={self.tier})"


def match_rules(rules: list[PatternRule], sources: dict[str, str]) -> ExtractedValue | None:
    """First rule (in declared order) producing a validated value."""
    for rule in rules:
        found = rule.apply(sources)
        if found is not None:
            return found
    return None


# =============================================================================
# CLEANERS AND VALIDATORS
# =============================================================================

def _collapse(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def _snippet(text: str) -> str:
    return _collapse(text)[:SNIPPET_LIMIT]


def _clean_title(title: str) -> str:
    title = re.sub(r"\s*[|\-]\s*Official\s*(?:Website|Site)?\s*$", "", title, flags=re.I)
    title = re.sub(r"\s*[|\-]\s*Home\s*$", "", title, flags=re.I)
    title = re.sub(r"\s*[|\-]\s*About\s*.*$", "", title, flags=re.I)
    return title.strip()


def _name_ok(value: str) -> bool:
    return 3 <= len(value) <= 100


def _clean_description(text: str) -> str:
    text = _collapse(text)
    text = re.sub(r"^[-•]\s*", "", text)
    return re.sub(r"^[A-Z][a-z]+\s+is\s+", "", text)


BOILERPLATE_PHRASES = ("lorem ipsum", "placeholder", "coming soon")


def _description_ok(value: str) -> bool:
    lowered = value.lower()
    return (
        30 <= len(value) <= 500
        and len(value.split(" ")) >= 5
        and not any(phrase in lowered for phrase in BOILERPLATE_PHRASES)
    )


def _metadata_description_ok(value: str) -> bool:
    return 30 <= len(value) <= 500


def _location_ok(value: str) -> bool:
    return 3 <= len(value) <= 100 and re.search(r"[A-Za-z]", value) is not None


# =============================================================================
# PATTERN CHAINS
# =============================================================================

NAME_RULES = [
    PatternRule(r"^(.+)$", METADATA, source="title", flags=re.S,
                clean=_clean_title, validator=_name_ok),
    PatternRule(r"^#\s+([^#\n]+)", HEURISTIC, flags=re.M, validator=_name_ok),
    PatternRule(r"About\s+([A-Z][A-Za-z0-9\s&.-]+?)(?:\s*[\n|,.])", HEURISTIC,
                validator=_name_ok),
]

DESCRIPTION_RULES = [
    PatternRule(r"^(.+)$", METADATA, source="description", flags=re.S,
                validator=_metadata_description_ok),

    # Labelled sections
    PatternRule(r"(?:About\s+(?:Us|Our\s+Company|[A-Z][a-z]+))[\s:]+([^\n]+(?:\n[^\n]+){0,3})",
                LABEL, flags=re.I, clean=_clean_description, validator=_description_ok),
    PatternRule(r"(?:Our\s+)?(?:Mission|Vision|Purpose|Story)[\s:]+([^\n]+(?:\n[^\n]+){0,2})",
                LABEL, flags=re.I, clean=_clean_description, validator=_description_ok),
    PatternRule(r"What\s+We\s+Do[\s:]+([^\n]+(?:\n[^\n]+){0,2})",
                LABEL, flags=re.I, clean=_clean_description, validator=_description_ok),
    PatternRule(r"Who\s+We\s+Are[\s:]+([^\n]+(?:\n[^\n]+){0,2})",
                LABEL, flags=re.I, clean=_clean_description, validator=_description_ok),

    # Company action phrases
    PatternRule(r"We\s+(?:are|help|provide|build|create|enable|empower|offer|deliver|specialize|focus)\s+([^\n.!?]+[.!?])",
                HEURISTIC, flags=re.I, clean=_clean_description, validator=_description_ok),
    PatternRule(r"(?:^|\n)([A-Z][^.!?]*(?:helps?|provides?|builds?|creates?|enables?|empowers?|offers?|delivers?|specializes?)[^.!?]*[.!?])",
                HEURISTIC, flags=re.M, clean=_clean_description, validator=_description_ok),
    PatternRule(r"(?:^|\n)([A-Z][^.!?]*(?:platform|solution|service|software|technology|tool|system)[^.!?]*[.!?])",
                HEURISTIC, flags=re.M, clean=_clean_description, validator=_description_ok),
    PatternRule(r"(?:^|\n)([A-Z][^.!?]*(?:leading|premier|top|innovative|cutting-edge)[^.!?]*(?:company|provider|solution|platform)[^.!?]*[.!?])",
                HEURISTIC, flags=re.M, clean=_clean_description, validator=_description_ok),
    PatternRule(r"(?:^|\n)([A-Z][a-zA-Z\s&.]+\s+(?:is|was)\s+[^.!?]+[.!?])",
                HEURISTIC, flags=re.M, clean=_clean_description, validator=_description_ok),
    PatternRule(r"(?:^|\n)([A-Z][^.!?]*(?:SaaS|AI|machine learning|fintech|healthcare|e-commerce|marketplace)[^.!?]*[.!?])",
                HEURISTIC, flags=re.M, clean=_clean_description, validator=_description_ok),
]

LOCATION_RULES = [
    PatternRule(r"(?:Headquarters|HQ|Based\s+in|Located\s+in)[\s:]+([A-Za-z\s,]+?)(?:\n|$)",
                LABEL, flags=re.I, validator=_location_ok),
    PatternRule(r"(?:Address|Office)[\s:]+([A-Za-z0-9\s,.-]+?)(?:\n|$)",
                LABEL, flags=re.I, validator=_location_ok),
    PatternRule(r"([A-Z][a-z]+(?:,\s*[A-Z]{2})?)\s*(?:USA|United\s+States|U\.S\.|US)",
                HEURISTIC, validator=_location_ok),
    PatternRule(r"([A-Z][a-z]+,\s*[A-Z][a-z]+)", HEURISTIC, validator=_location_ok),
]

INDUSTRY_LABEL_RULES = [
    PatternRule(r"(?:Industry|Sector)[\s:]+([A-Za-z\s&-]+?)(?:\n|,|\.|$)",
                LABEL, flags=re.I),
]

# Declaration order breaks ties between equally matched industries
INDUSTRY_TAXONOMY: dict[str, tuple[str, ...]] = {
    "SaaS": ("saas", "software as a service", "cloud platform", "subscription software"),
    "Fintech": ("fintech", "financial technology", "payments", "banking technology"),
    "Healthcare": ("healthcare", "medical", "healthtech", "digital health"),
    "E-commerce": ("ecommerce", "e-commerce", "online retail", "marketplace"),
    "EdTech": ("edtech", "education technology", "learning platform", "online education"),
    "AI/ML": ("artificial intelligence", "machine learning", "ai platform", "ml platform"),
    "Cybersecurity": ("cybersecurity", "security platform", "data protection", "infosec"),
    "MarTech": ("martech", "marketing technology", "marketing platform", "advertising tech"),
    "InsurTech": ("insurtech", "insurance technology", "digital insurance"),
    "Real Estate": ("proptech", "real estate", "property technology"),
}

LEGAL_BOILERPLATE = (
    "cookie", "privacy", "terms of service", "copyright",
    "all rights reserved", "navigation", "menu",
)


# =============================================================================
# FIELD FAMILIES
# =============================================================================

def _first_paragraph(markdown: str) -> ExtractedValue | None:
    """First substantive paragraph: not boilerplate, at most four sentences."""
    for paragraph in re.split(r"\n\s*\n", markdown):
        text = paragraph.strip()
        lowered = text.lower()
        if (
            50 < len(text) < 500
            and not any(phrase in lowered for phrase in LEGAL_BOILERPLATE)
            and len(text.split(" ")) > 8
            and len(text.split(".")) <= 4
        ):
            value = _collapse(text)[:400]
            return ExtractedValue(value=value, confidence=HEURISTIC, snippet=_snippet(text))
    return None


def _keyword_industry(markdown: str) -> ExtractedValue | None:
    content = markdown.lower()
    best_name, best_count, best_keyword = None, 0, ""

    for name, keywords in INDUSTRY_TAXONOMY.items():
        hits = [keyword for keyword in keywords if keyword in content]
        if len(hits) > best_count:
            best_name, best_count, best_keyword = name, len(hits), hits[0]

    if best_name is None:
        return None

    return ExtractedValue(
        value=best_name,
        confidence=HEURISTIC,
        snippet=_sentence_around(markdown, best_keyword),
    )


def _sentence_around(text: str, keyword: str) -> str:
    index = text.lower().find(keyword)
    if index < 0:
        return ""
    start = max(text.rfind(".", 0, index), text.rfind("\n", 0, index)) + 1
    ends = [pos for pos in (text.find(".", index), text.find("\n", index)) if pos >= 0]
    end = min(ends) + 1 if ends else len(text)
    return _snippet(text[start:end])


def extract_company_name(sources: dict[str, str]) -> ExtractedValue | None:
    return match_rules(NAME_RULES, sources)


def extract_description(sources: dict[str, str]) -> ExtractedValue | None:
    return match_rules(DESCRIPTION_RULES, sources) or _first_paragraph(
        sources.get("markdown") or ""
    )


def extract_location(sources: dict[str, str]) -> ExtractedValue | None:
    return match_rules(LOCATION_RULES, sources)


def extract_industry(sources: dict[str, str]) -> ExtractedValue | None:
    return _keyword_industry(sources.get("markdown") or "") or match_rules(
        INDUSTRY_LABEL_RULES, sources
    )


EXTRACTORS: dict[str, Callable[[dict[str, str]], ExtractedValue | None]] = {
    "company_name": extract_company_name,
    "description": extract_description,
    "location": extract_location,
    "industry": extract_industry,
}

# Normalized field name -> extractor family
FIELD_ALIASES = {
    "company_name": "company_name",
    "companyname": "company_name",
    "name": "company_name",
    "description": "description",
    "company_description": "description",
    "location": "location",
    "headquarters": "location",
    "industry": "industry",
}


def canonical_field(name: str) -> str | None:
    """companyName / "Company Name" / company_name -> "company_name"."""
    if not name:
        return None
    key = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "_", name.strip())
    key = re.sub(r"[\s\-]+", "_", key).lower()
    return FIELD_ALIASES.get(key)


def extract_fields(
    markdown: str | None,
    metadata: dict | None,
    field_names: list[str],
) -> dict[str, ExtractedValue]:
    """
    Extract the requested fields from one scraped page.

    Args:
        markdown: Page content
        metadata: Page metadata; "title" and "description" are used
        field_names: Caller field names; unknown names are ignored

    Returns:
        {requested field name: ExtractedValue} for fields that matched
    """
    metadata = metadata or {}
    sources = {
        "markdown": markdown or "",
        "title": metadata.get("title") if isinstance(metadata.get("title"), str) else "",
        "description": (
            metadata.get("description")
            if isinstance(metadata.get("description"), str) else ""
        ),
    }

    found: dict[str, ExtractedValue | None] = {}
    results: dict[str, ExtractedValue] = {}

    for field_name in field_names:
        family = canonical_field(field_name)
        if family is None:
            continue
        if family not in found:
            found[family] = EXTRACTORS[family](sources)
        if found[family] is not None:
            results[field_name] = found[family]

    return results
