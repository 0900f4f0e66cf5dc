"""
Secrets Manager
Lead Enrichment Engine

Centralizes backend credential access behind a provider chain:
os.environ first, then .env.local / .env files.
"""

import logging
import os
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path

from dotenv import dotenv_values

from contracts.errors import MissingCredentials

logger = logging.getLogger(__name__)

# Credentials every enrichment run needs
OPENAI_API_KEY = "OPENAI_API_KEY"
FIRECRAWL_API_KEY = "FIRECRAWL_API_KEY"
REQUIRED_KEYS = (OPENAI_API_KEY, FIRECRAWL_API_KEY)

DEFAULT_DOTENV_FILES = (".env.local", ".env")

# Module-level singleton
_secrets_manager: "SecretsManager | None" = None
_singleton_lock = threading.Lock()


class SecretsProvider(ABC):
    """Abstract base class for secret providers."""

    @abstractmethod
    def get_secret(self, key: str) -> str | None:
        """Retrieve a secret by key. Returns None if not found."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this provider is available and configured."""


class EnvSecretsProvider(SecretsProvider):
    """Reads secrets from os.environ (always available)."""

    def get_secret(self, key: str) -> str | None:
        return os.environ.get(key) or None

    def is_available(self) -> bool:
        return True


class DotEnvSecretsProvider(SecretsProvider):
    """Reads secrets from a dotenv file without touching os.environ.

    The file is parsed once; call clear_cache() to pick up edits.
    """

    def __init__(self, path: str | Path):
        self._path = Path(path)
        self._values: dict[str, str | None] | None = None

    def _load(self) -> dict[str, str | None]:
        if self._values is None:
            self._values = dotenv_values(self._path) if self._path.exists() else {}
        return self._values

    def get_secret(self, key: str) -> str | None:
        return self._load().get(key) or None

    def is_available(self) -> bool:
        return self._path.exists()

    def clear_cache(self):
        self._values = None


class SecretsManager:
    """Manages a chain of secret providers with a TTL cache.

    Provider chain: Env (always) -> dotenv files that exist.
    First non-empty result wins.
    """

    def __init__(
        self,
        providers: list[SecretsProvider] | None = None,
        cache_ttl: int = 300,
    ):
        if providers is not None:
            self._providers = providers
        else:
            self._providers = self._auto_detect_providers()

        self._cache_ttl = cache_ttl
        self._cache: dict[str, tuple[str | None, float]] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _auto_detect_providers() -> list[SecretsProvider]:
        """Build provider chain based on the working directory."""
        providers: list[SecretsProvider] = [EnvSecretsProvider()]

        for name in DEFAULT_DOTENV_FILES:
            provider = DotEnvSecretsProvider(name)
            if provider.is_available():
                providers.append(provider)
                logger.info(f"dotenv secrets provider enabled: {name}")

        return providers

    def get_secret(self, key: str) -> str | None:
        """Get a secret, checking cache first then providers."""
        with self._lock:
            if key in self._cache:
                value, cached_at = self._cache[key]
                if time.monotonic() - cached_at < self._cache_ttl:
                    return value
                del self._cache[key]

        value = None
        for provider in self._providers:
            try:
                result = provider.get_secret(key)
            except OSError as e:
                logger.warning(
                    f"Provider {type(provider).__name__} failed for '{key}': {e}"
                )
                continue
            if result is not None:
                value = result
                break

        # Misses are cached too
        with self._lock:
            self._cache[key] = (value, time.monotonic())

        return value

    def missing(self, keys: tuple[str, ...] | list[str] = REQUIRED_KEYS) -> list[str]:
        """Names from keys that resolve to nothing."""
        return [key for key in keys if not self.get_secret(key)]

    def require(self, keys: tuple[str, ...] | list[str] = REQUIRED_KEYS) -> dict[str, str]:
        """Resolve every key or raise MissingCredentials naming the absent ones.

        MissingCredentials details use the short service name, e.g.
        OPENAI_API_KEY -> {"missing_openai": True}.
        """
        absent = self.missing(keys)
        if absent:
            raise MissingCredentials([_service_name(key) for key in absent])
        return {key: self.get_secret(key) for key in keys}

    def report(self, keys: tuple[str, ...] | list[str] = REQUIRED_KEYS) -> dict[str, dict]:
        """Which credentials are configured, with masked prefixes."""
        report = {}
        for key in keys:
            value = self.get_secret(key)
            report[key] = {
                "configured": bool(value),
                "prefix": mask_secret(value),
            }
        return report

    def invalidate(self, key: str | None = None):
        """Invalidate cached secrets.

        Args:
            key: Specific key to invalidate. If None, clears entire cache.
        """
        with self._lock:
            if key is None:
                self._cache.clear()
            else:
                self._cache.pop(key, None)

        for provider in self._providers:
            if isinstance(provider, DotEnvSecretsProvider):
                provider.clear_cache()


def _service_name(key: str) -> str:
    return key.removesuffix("_API_KEY")


def mask_secret(value: str | None, visible: int = 7) -> str | None:
    """sk-proj-abc123 -> sk-proj..."""
    if not value:
        return None
    return f"{value[:visible]}..."


def get_secrets_manager() -> SecretsManager:
    """Return the module-level SecretsManager singleton.

    Thread-safe via double-checked locking.
    """
    global _secrets_manager

    if _secrets_manager is None:
        with _singleton_lock:
            if _secrets_manager is None:
                _secrets_manager = SecretsManager()

    return _secrets_manager


def _reset_secrets_manager():
    """Reset the singleton (for testing only)."""
    global _secrets_manager
    with _singleton_lock:
        _secrets_manager = None
