"""
Common Utilities - Python Implementation
Lead Enrichment Engine

Shared plumbing used by every agent, tool and service: rate-limited HTTP
client with circuit breaking, Prometheus metrics, structured logging,
YAML configuration and email/domain helpers.
"""

import asyncio
import json
import logging
import logging.handlers
import os
import random
import re
import time
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from enum import Enum
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import httpx
import yaml
from prometheus_client import Counter, Histogram

# ============================================================================
# EMAIL / DOMAIN CONSTANTS
# ============================================================================

# Free webmail providers. Rows sent from these are never enriched.
PERSONAL_EMAIL_DOMAINS = {
    "gmail.com", "googlemail.com", "yahoo.com", "yahoo.co.uk", "ymail.com",
    "hotmail.com", "hotmail.co.uk", "outlook.com", "live.com", "msn.com",
    "aol.com", "icloud.com", "me.com", "mac.com", "protonmail.com",
    "proton.me", "gmx.com", "gmx.de", "mail.com", "yandex.com", "zoho.com",
}

# Provider stems catch regional variants such as yahoo.fr or hotmail.de
PERSONAL_EMAIL_STEMS = {"gmail", "yahoo", "hotmail", "outlook", "aol", "icloud"}


# ============================================================================
# RATE LIMITER
# ============================================================================

class RateLimiter:
    """Per-host pacing: at most N requests per second to any one host."""

    RATE_LIMITS = {
        "default": 5.0,
        "api.openai.com": 8.0,
        "api.x.ai": 5.0,
        "api.firecrawl.dev": 2.0,
    }

    def __init__(self, overrides: dict[str, float] | None = None):
        self.rates = {**self.RATE_LIMITS, **(overrides or {})}
        self.last_request: dict[str, float] = {}
        self._lock = asyncio.Lock()

    def get_rate(self, host: str) -> float:
        """Requests-per-second budget for a host (subdomains inherit)."""
        if host in self.rates:
            return self.rates[host]

        for key, rate in self.rates.items():
            if host.endswith(f".{key}"):
                return rate

        return self.rates["default"]

    async def acquire(self, host: str):
        """Sleep until the host's minimum interval has elapsed."""
        async with self._lock:
            min_interval = 1.0 / self.get_rate(host)
            elapsed = time.monotonic() - self.last_request.get(host, 0.0)

            if elapsed < min_interval:
                await asyncio.sleep(min_interval - elapsed)

            self.last_request[host] = time.monotonic()


# ============================================================================
# CIRCUIT BREAKER
# ============================================================================

class CircuitState(Enum):
    """States for the circuit breaker."""
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitOpenError(Exception):
    """Raised when a host's circuit is open and calls are refused."""

    def __init__(self, host: str, reset_in: float):
        self.host = host
        self.reset_in = reset_in
        super().__init__(f"Circuit open for {host}, retry in {reset_in:.1f}s")


class CircuitBreaker:
    """Stops calling a backend host after repeated failures."""

    def __init__(
        self,
        failure_threshold: int = 5,
        reset_timeout: float = 30.0,
        half_open_max_calls: int = 1,
    ):
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.half_open_max_calls = half_open_max_calls

        self._states: dict[str, CircuitState] = {}
        self._failures: dict[str, int] = {}
        self._opened_at: dict[str, float] = {}
        self._trial_calls: dict[str, int] = {}

    def _remaining(self, host: str) -> float:
        elapsed = time.monotonic() - self._opened_at.get(host, 0.0)
        return max(0.0, self.reset_timeout - elapsed)

    def get_state(self, host: str) -> CircuitState:
        """Current state; an OPEN circuit past its timeout becomes HALF_OPEN."""
        state = self._states.get(host, CircuitState.CLOSED)

        if state == CircuitState.OPEN and self._remaining(host) == 0.0:
            self._states[host] = CircuitState.HALF_OPEN
            self._trial_calls[host] = 0
            return CircuitState.HALF_OPEN

        return state

    def check(self, host: str) -> None:
        """Raise CircuitOpenError if a call to host is not allowed."""
        state = self.get_state(host)

        if state == CircuitState.OPEN:
            raise CircuitOpenError(host, self._remaining(host))

        if state == CircuitState.HALF_OPEN:
            if self._trial_calls.get(host, 0) >= self.half_open_max_calls:
                raise CircuitOpenError(host, self._remaining(host))
            self._trial_calls[host] = self._trial_calls.get(host, 0) + 1

    def record_success(self, host: str) -> None:
        self._states[host] = CircuitState.CLOSED
        self._failures[host] = 0

    def record_failure(self, host: str) -> None:
        state = self._states.get(host, CircuitState.CLOSED)
        self._failures[host] = self._failures.get(host, 0) + 1

        if state == CircuitState.HALF_OPEN or self._failures[host] >= self.failure_threshold:
            self._states[host] = CircuitState.OPEN
            self._opened_at[host] = time.monotonic()

    def reset(self, host: str | None = None) -> None:
        """Forget state for one host, or for all hosts when host is None."""
        tables = (self._states, self._failures, self._opened_at, self._trial_calls)
        for table in tables:
            if host is None:
                table.clear()
            else:
                table.pop(host, None)


# ============================================================================
# PROMETHEUS METRICS
# ============================================================================

HTTP_REQUESTS_TOTAL = Counter(
    "lead_enrich_http_requests_total",
    "Outbound HTTP requests by host, method and status",
    ["host", "method", "status"],
)

HTTP_REQUEST_DURATION = Histogram(
    "lead_enrich_http_request_duration_seconds",
    "Outbound HTTP request latency",
    ["host", "method"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
)

HTTP_ERRORS_TOTAL = Counter(
    "lead_enrich_http_errors_total",
    "Outbound HTTP failures by host and error type",
    ["host", "method", "error_type"],
)

LLM_COMPLETIONS_TOTAL = Counter(
    "lead_enrich_llm_completions_total",
    "Language-model completions by model and outcome",
    ["model", "outcome"],
)

TOOL_INVOCATIONS_TOTAL = Counter(
    "lead_enrich_tool_invocations_total",
    "Agent tool invocations by tool and outcome",
    ["tool", "outcome"],
)

ROWS_PROCESSED_TOTAL = Counter(
    "lead_enrich_rows_processed_total",
    "Rows finished by terminal status",
    ["status"],
)


def get_metrics_text() -> str:
    """Export all Prometheus metrics as text."""
    from prometheus_client import REGISTRY, generate_latest
    return generate_latest(REGISTRY).decode("utf-8")


# ============================================================================
# ASYNC HTTP CLIENT
# ============================================================================

class AsyncHTTPClient:
    """httpx wrapper with pacing, circuit breaking and retry on transient errors."""

    DEFAULT_TIMEOUT = 60
    DEFAULT_RETRIES = 2
    DEFAULT_BACKOFF = 2.0
    MAX_BACKOFF = 60
    DEFAULT_RETRY_AFTER = 5
    MAX_RETRY_AFTER = 30
    RETRYABLE_STATUS_CODES = {500, 502, 503, 504}

    USER_AGENT = "LeadEnrich/1.0 (+https://github.com/lead-enrich)"

    def __init__(
        self,
        rate_limiter: RateLimiter = None,
        circuit_breaker: CircuitBreaker = None,
    ):
        self.rate_limiter = rate_limiter or RateLimiter()
        self.circuit_breaker = circuit_breaker or CircuitBreaker()
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.DEFAULT_TIMEOUT),
                headers={"User-Agent": self.USER_AGENT},
                follow_redirects=True,
            )
        return self._client

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def get(self, url: str, params: dict = None, headers: dict = None,
                  timeout: int = None, retries: int = None) -> httpx.Response:
        return await self._request("GET", url, params=params, headers=headers,
                                   timeout=timeout, retries=retries)

    async def post(self, url: str, json: dict = None, headers: dict = None,
                   timeout: int = None, retries: int = None) -> httpx.Response:
        return await self._request("POST", url, json=json, headers=headers,
                                   timeout=timeout, retries=retries)

    def _backoff(self, attempt: int) -> float:
        return min(self.DEFAULT_BACKOFF ** attempt + random.uniform(0, 1), self.MAX_BACKOFF)

    def _retry_after(self, response: httpx.Response) -> float:
        """Seconds to wait from Retry-After, given as delta-seconds or an HTTP-date."""
        value = response.headers.get("Retry-After")
        if not value:
            return self.DEFAULT_RETRY_AFTER
        try:
            return max(float(value), 0.0)
        except ValueError:
            pass
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return self.DEFAULT_RETRY_AFTER
        if when.tzinfo is None:
            when = when.replace(tzinfo=UTC)
        return max((when - datetime.now(UTC)).total_seconds(), 0.0)

    async def _request(
        self,
        method: str,
        url: str,
        params: dict = None,
        json: dict = None,
        headers: dict = None,
        timeout: int = None,
        retries: int = None,
    ) -> httpx.Response:
        """Send a request; 5xx and connection errors are retried, 429 honours Retry-After."""
        client = await self._get_client()
        host = urlparse(url).netloc

        retries = self.DEFAULT_RETRIES if retries is None else retries
        timeout = self.DEFAULT_TIMEOUT if timeout is None else timeout

        self.circuit_breaker.check(host)

        last_error: Exception | None = None

        for attempt in range(retries + 1):
            await self.rate_limiter.acquire(host)
            started = time.monotonic()

            try:
                response = await client.request(
                    method, url, params=params, json=json,
                    headers=headers, timeout=timeout,
                )
            except (httpx.TimeoutException, httpx.ConnectError) as e:
                HTTP_REQUEST_DURATION.labels(host=host, method=method).observe(
                    time.monotonic() - started
                )
                HTTP_ERRORS_TOTAL.labels(
                    host=host, method=method, error_type=type(e).__name__
                ).inc()
                self.circuit_breaker.record_failure(host)
                last_error = e
                if attempt < retries:
                    await asyncio.sleep(self._backoff(attempt))
                continue

            HTTP_REQUEST_DURATION.labels(host=host, method=method).observe(
                time.monotonic() - started
            )
            HTTP_REQUESTS_TOTAL.labels(
                host=host, method=method, status=str(response.status_code)
            ).inc()

            if response.status_code == 429 and attempt < retries:
                retry_after = self._retry_after(response)
                await asyncio.sleep(min(retry_after, self.MAX_RETRY_AFTER))
                continue

            if response.status_code in self.RETRYABLE_STATUS_CODES:
                HTTP_ERRORS_TOTAL.labels(
                    host=host, method=method,
                    error_type=f"http_{response.status_code}",
                ).inc()
                self.circuit_breaker.record_failure(host)
                if attempt < retries:
                    await asyncio.sleep(self._backoff(attempt))
                    continue
                return response

            self.circuit_breaker.record_success(host)
            return response

        raise last_error or httpx.TransportError(f"{method} {url} failed after {retries} retries")


# ============================================================================
# STRUCTURED LOGGER
# ============================================================================

class JsonFormatter(logging.Formatter):
    """Formats log records as single-line JSON for file output."""

    def format(self, record):
        log_entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "message": record.getMessage(),
        }
        if hasattr(record, "extra_fields"):
            log_entry.update(record.extra_fields)
        return json.dumps(log_entry, default=str)


# Applied to every lead_enrich logger, including ones created later
_log_level = logging.INFO


def set_log_level(level: str | int):
    """Set the level of all lead_enrich.* loggers."""
    global _log_level
    _log_level = logging.getLevelName(level.upper()) if isinstance(level, str) else level

    for name, existing in logging.Logger.manager.loggerDict.items():
        if name.startswith("lead_enrich") and isinstance(existing, logging.Logger):
            existing.setLevel(_log_level)


class StructuredLogger:
    """key=value structured logging scoped to a component and session."""

    def __init__(self, component: str, session_id: str = None):
        self.component = component
        self.session_id = session_id
        self._json_file_handler = None

        self.logger = logging.getLogger(f"lead_enrich.{component}")

        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            ))
            self.logger.addHandler(handler)
            self.logger.setLevel(_log_level)

    def bind(self, session_id: str) -> "StructuredLogger":
        """Logger for the same component scoped to another session."""
        return StructuredLogger(self.component, session_id)

    def setup_file_logging(
        self,
        log_dir: str = "data/logs",
        max_bytes: int = 10_485_760,
        backup_count: int = 5,
    ):
        """Add a rotating JSON file handler alongside stderr."""
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_path / f"{self.component}.log",
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        file_handler.setFormatter(JsonFormatter())
        self.logger.addHandler(file_handler)
        self._json_file_handler = file_handler

    def _context(self, **kwargs) -> dict:
        return {
            "component": self.component,
            "session_id": self.session_id,
            **{k: v for k, v in kwargs.items() if v is not None},
        }

    def _log(self, level: int, message: str, **kwargs):
        if not self.logger.isEnabledFor(level):
            return
        context = self._context(**kwargs)
        context_str = " ".join(f"{k}={v}" for k, v in context.items() if v is not None)
        record = self.logger.makeRecord(
            self.logger.name, level, "(unknown)", 0,
            f"{message} [{context_str}]", (), None,
        )
        record.extra_fields = context
        self.logger.handle(record)

    def debug(self, message: str, **kwargs):
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs):
        self._log(logging.ERROR, message, **kwargs)


# ============================================================================
# CONFIG LOADER
# ============================================================================

class Config:
    """YAML configuration loader with ${VAR:default} substitution."""

    def __init__(self, config_path: str = "config"):
        self.config_path = Path(config_path)
        self._cache: dict[str, dict] = {}

    def load(self, name: str) -> dict:
        """Load config/<name>.yaml (or .yml); missing files yield {}."""
        if name in self._cache:
            return self._cache[name]

        path = self.config_path / f"{name}.yaml"
        if not path.exists():
            path = self.config_path / f"{name}.yml"

        if not path.exists():
            return {}

        with open(path, encoding="utf-8") as f:
            content = self._substitute_env(f.read())

        config = yaml.safe_load(content) or {}
        self._cache[name] = config
        return config

    def _substitute_env(self, content: str) -> str:
        def replacer(match):
            var_name, _, default = match.group(1).partition(":")
            return os.getenv(var_name, default)

        return re.sub(r"\$\{([^}]+)\}", replacer, content)

    def get(self, key: str, default: Any = None) -> Any:
        """Dot-notation lookup, e.g. get("agents.orchestrator.max_concurrency")."""
        parts = key.split(".")
        config: Any = self.load(parts[0])

        for part in parts[1:]:
            if not isinstance(config, dict):
                return default
            config = config.get(part)

        return default if config is None else config


# ============================================================================
# NORMALIZATION UTILITIES
# ============================================================================

def extract_domain(url: str) -> str:
    """Bare lowercase host of a URL, without www."""
    if not url:
        return ""

    if not url.startswith(("http://", "https://")):
        url = f"https://{url}"

    domain = urlparse(url).netloc.lower()
    return domain[4:] if domain.startswith("www.") else domain


def email_domain(email: str) -> str:
    """Domain part of an email address ("" when malformed)."""
    if not email or "@" not in email:
        return ""
    return email.rsplit("@", 1)[1].strip().lower()


def is_personal_email_domain(domain: str) -> bool:
    """True for free webmail providers."""
    domain = (domain or "").lower()
    if domain in PERSONAL_EMAIL_DOMAINS:
        return True
    return domain.split(".", 1)[0] in PERSONAL_EMAIL_STEMS


def domain_stem(domain: str) -> str:
    """acmesoft.io -> acmesoft"""
    domain = extract_domain(domain)
    return domain.split(".", 1)[0] if domain else ""


def truncate(text: str, limit: int) -> str:
    if text is None:
        return ""
    return text if len(text) <= limit else text[:limit]


EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[A-Za-z]{2,}$")


def is_valid_email(email: str) -> bool:
    return bool(email) and EMAIL_PATTERN.match(email.strip()) is not None
