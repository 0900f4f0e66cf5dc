"""
Skills Package
Lead Enrichment Engine

Shared utilities and skill implementations.
"""

from skills.common import (
    AsyncHTTPClient,
    Config,
    RateLimiter,
    StructuredLogger,
    email_domain,
    extract_domain,
    is_personal_email_domain,
)

__all__ = [
    "AsyncHTTPClient",
    "RateLimiter",
    "StructuredLogger",
    "Config",
    "extract_domain",
    "email_domain",
    "is_personal_email_domain",
]
