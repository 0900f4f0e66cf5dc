"""
Extraction
Lead Enrichment Engine

Website retrieval tool and the pattern-based field extractors it runs
over scraped pages.
"""

from .heuristics import ExtractedValue, canonical_field, extract_fields
from .website_scraper import WebsiteScraper

__all__ = [
    "WebsiteScraper",
    "ExtractedValue",
    "extract_fields",
    "canonical_field",
]
