"""
Website Scraper Tool
Lead Enrichment Engine

The scrape_website tool: fetches one page through a Firecrawl-compatible
scrape API, runs the extraction heuristics over its markdown and reports
the values found together with per-field source snippets.
"""

from collections.abc import Callable

import httpx

from agents.extraction.heuristics import extract_fields
from agents.tools import ToolSpec
from contracts.errors import BackendUnavailable
from contracts.validator import get_validator
from models.ontology import SourceContext, ToolResult
from skills.common.SKILL import (
    AsyncHTTPClient,
    CircuitOpenError,
    StructuredLogger,
    truncate,
)

DEFAULT_BASE_URL = "https://api.firecrawl.dev"

TOOL_NAME = "scrape_website"
RAW_CONTENT_LIMIT = 5000

# Cached pages younger than this are acceptable
DEFAULT_MAX_AGE_MS = 3_600_000
DEFAULT_WAIT_FOR_MS = 2000

ProgressCallback = Callable[[str, str], None]


def _normalize_url(url: str) -> str:
    url = url.strip()
    if not url.startswith(("http://", "https://")):
        url = f"https://{url}"
    return url


class WebsiteScraper:
    """
    Firecrawl client plus the scrape_website tool handler.

    One instance per row: on_progress narrates into that row's stream.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        http: AsyncHTTPClient = None,
        max_age_ms: int = DEFAULT_MAX_AGE_MS,
        wait_for_ms: int = DEFAULT_WAIT_FOR_MS,
        on_progress: ProgressCallback | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.http = http or AsyncHTTPClient()
        self.max_age_ms = max_age_ms
        self.wait_for_ms = wait_for_ms
        self.on_progress = on_progress
        self.log = StructuredLogger("scraper")

    def _progress(self, message: str, kind: str = "info"):
        if self.on_progress:
            self.on_progress(message, kind)

    def spec(self) -> ToolSpec:
        return ToolSpec(
            name=TOOL_NAME,
            description="Scrape a specific webpage for information",
            parameters=get_validator().load_schema("tools/scrape_website_input"),
            handler=self.run,
        )

    async def scrape(self, url: str) -> dict:
        """
        Fetch one page.

        Returns:
            {"markdown": str, "metadata": dict}

        Raises:
            BackendUnavailable: transport failure, non-2xx or success=false
        """
        try:
            response = await self.http.post(
                f"{self.base_url}/v1/scrape",
                json={
                    "url": url,
                    "formats": ["markdown"],
                    "onlyMainContent": True,
                    "waitFor": self.wait_for_ms,
                    "maxAge": self.max_age_ms,
                },
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except (httpx.HTTPError, CircuitOpenError) as e:
            raise BackendUnavailable(f"Failed to scrape {url}: {e}") from e

        if response.status_code >= 400:
            raise BackendUnavailable(
                f"Failed to scrape {url}: HTTP {response.status_code}",
                details={"status": response.status_code},
            )

        try:
            body = response.json()
        except ValueError as e:
            raise BackendUnavailable(f"Failed to scrape {url}: invalid response") from e

        if not body.get("success"):
            raise BackendUnavailable(f"Failed to scrape {url}: {body.get('error', 'unsuccessful')}")

        data = body.get("data") or {}
        return {
            "markdown": data.get("markdown") or "",
            "metadata": data.get("metadata") or {},
        }

    async def run(self, arguments: dict) -> ToolResult:
        """Tool handler: scrape, extract targetFields, report provenance."""
        url = _normalize_url(arguments["url"])
        target_fields = arguments.get("targetFields") or []

        self._progress(f"Starting to scrape {url}", "info")

        try:
            page = await self.scrape(url)
        except BackendUnavailable as e:
            self.log.warning("Scrape failed", url=url, error=str(e))
            self._progress(f"Failed to scrape {url}: {e}", "warning")
            return ToolResult(url=url, error=str(e))

        markdown = page["markdown"]
        self._progress(f"Successfully scraped {url} ({len(markdown)} chars)", "success")

        if target_fields:
            self._progress(
                f"Extracting {len(target_fields)} fields from scraped content...", "info"
            )

        extracted = extract_fields(markdown, page["metadata"], target_fields)

        if extracted:
            self._progress(f"Extracted {len(extracted)} fields from website", "success")

        self.log.info("Page scraped", url=url, chars=len(markdown), fields=len(extracted))

        return ToolResult(
            url=url,
            extracted_data={name: found.value for name, found in extracted.items()},
            confidence={name: found.confidence for name, found in extracted.items()},
            source_context={
                name: [SourceContext(url=url, snippet=found.snippet)]
                for name, found in extracted.items()
            },
            raw_content=truncate(markdown, RAW_CONTENT_LIMIT),
            metadata=page["metadata"],
        )
