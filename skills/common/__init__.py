"""
Common Utilities Module
Lead Enrichment Engine

Shared utilities used across all agents and services.
"""

from .SKILL import (
    PERSONAL_EMAIL_DOMAINS,
    AsyncHTTPClient,
    CircuitBreaker,
    CircuitOpenError,
    Config,
    RateLimiter,
    StructuredLogger,
    domain_stem,
    email_domain,
    extract_domain,
    is_personal_email_domain,
    is_valid_email,
    set_log_level,
    truncate,
)

__all__ = [
    "AsyncHTTPClient",
    "CircuitBreaker",
    "CircuitOpenError",
    "RateLimiter",
    "StructuredLogger",
    "Config",
    "set_log_level",
    "extract_domain",
    "email_domain",
    "domain_stem",
    "is_personal_email_domain",
    "is_valid_email",
    "truncate",
    "PERSONAL_EMAIL_DOMAINS",
]
