"""
Tests for middleware/secrets.py - SecretsManager

Tests the provider chain (Env -> dotenv files), TTL cache, invalidation,
credential requirements and masked reporting.
"""

import threading
import time
from unittest.mock import MagicMock

import pytest

from contracts.errors import MissingCredentials
from middleware.secrets import (
    DotEnvSecretsProvider,
    EnvSecretsProvider,
    SecretsManager,
    _reset_secrets_manager,
    get_secrets_manager,
    mask_secret,
)

# =============================================================================
# TEST ENV SECRETS PROVIDER
# =============================================================================


class TestEnvSecretsProvider:
    """Tests for EnvSecretsProvider."""

    def test_returns_env_var(self, monkeypatch):
        """Returns value from os.environ."""
        monkeypatch.setenv("MY_SECRET", "hunter2")
        provider = EnvSecretsProvider()
        assert provider.get_secret("MY_SECRET") == "hunter2"

    def test_returns_none_for_missing(self, monkeypatch):
        """Returns None for missing env var."""
        monkeypatch.delenv("NONEXISTENT_KEY", raising=False)
        assert EnvSecretsProvider().get_secret("NONEXISTENT_KEY") is None

    def test_empty_value_is_none(self, monkeypatch):
        monkeypatch.setenv("MY_SECRET", "")
        assert EnvSecretsProvider().get_secret("MY_SECRET") is None

    def test_is_available_always_true(self):
        """is_available() always returns True."""
        assert EnvSecretsProvider().is_available() is True


# =============================================================================
# TEST DOTENV SECRETS PROVIDER
# =============================================================================


class TestDotEnvSecretsProvider:
    """Tests for DotEnvSecretsProvider."""

    def test_reads_dotenv_file(self, tmp_path):
        env_file = tmp_path / ".env.local"
        env_file.write_text("OPENAI_API_KEY=sk-test-123\nFIRECRAWL_API_KEY=\n")

        provider = DotEnvSecretsProvider(env_file)

        assert provider.is_available()
        assert provider.get_secret("OPENAI_API_KEY") == "sk-test-123"
        assert provider.get_secret("FIRECRAWL_API_KEY") is None

    def test_missing_file(self, tmp_path):
        provider = DotEnvSecretsProvider(tmp_path / ".env")

        assert not provider.is_available()
        assert provider.get_secret("OPENAI_API_KEY") is None

    def test_clear_cache_rereads(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("KEY=old\n")
        provider = DotEnvSecretsProvider(env_file)
        assert provider.get_secret("KEY") == "old"

        env_file.write_text("KEY=new\n")
        assert provider.get_secret("KEY") == "old"

        provider.clear_cache()
        assert provider.get_secret("KEY") == "new"


# =============================================================================
# TEST SECRETS MANAGER
# =============================================================================


class TestSecretsManager:
    """Tests for SecretsManager."""

    def test_env_takes_priority_over_dotenv(self, monkeypatch, tmp_path):
        monkeypatch.setenv("MY_KEY", "env-value")
        env_file = tmp_path / ".env"
        env_file.write_text("MY_KEY=file-value\n")

        manager = SecretsManager(
            providers=[EnvSecretsProvider(), DotEnvSecretsProvider(env_file)], cache_ttl=0
        )

        assert manager.get_secret("MY_KEY") == "env-value"

    def test_fallback_to_dotenv(self, monkeypatch, tmp_path):
        monkeypatch.delenv("MY_KEY", raising=False)
        env_file = tmp_path / ".env"
        env_file.write_text("MY_KEY=file-value\n")

        manager = SecretsManager(
            providers=[EnvSecretsProvider(), DotEnvSecretsProvider(env_file)], cache_ttl=0
        )

        assert manager.get_secret("MY_KEY") == "file-value"

    def test_cache_hit_within_ttl(self, monkeypatch):
        """Cache hit avoids querying providers again."""
        monkeypatch.setenv("MY_KEY", "cached-value")
        manager = SecretsManager(providers=[EnvSecretsProvider()], cache_ttl=300)

        assert manager.get_secret("MY_KEY") == "cached-value"

        # Remove the env var; cache should still return the value
        monkeypatch.delenv("MY_KEY")
        assert manager.get_secret("MY_KEY") == "cached-value"

    def test_cache_expiry_after_ttl(self, monkeypatch):
        """Cache expires after TTL and re-queries providers."""
        monkeypatch.setenv("MY_KEY", "original")
        manager = SecretsManager(providers=[EnvSecretsProvider()], cache_ttl=0)

        assert manager.get_secret("MY_KEY") == "original"

        monkeypatch.setenv("MY_KEY", "updated")
        time.sleep(0.001)
        assert manager.get_secret("MY_KEY") == "updated"

    def test_invalidate_single_key(self, monkeypatch):
        """invalidate(key) clears one cache entry."""
        monkeypatch.setenv("KEY_A", "a")
        monkeypatch.setenv("KEY_B", "b")
        manager = SecretsManager(providers=[EnvSecretsProvider()], cache_ttl=300)

        manager.get_secret("KEY_A")
        manager.get_secret("KEY_B")

        manager.invalidate("KEY_A")
        assert "KEY_A" not in manager._cache
        assert "KEY_B" in manager._cache

    def test_invalidate_all(self, monkeypatch):
        """invalidate() with no key clears entire cache."""
        monkeypatch.setenv("KEY_A", "a")
        manager = SecretsManager(providers=[EnvSecretsProvider()], cache_ttl=300)
        manager.get_secret("KEY_A")

        manager.invalidate()
        assert len(manager._cache) == 0

    def test_auto_detect_picks_up_dotenv(self, monkeypatch, tmp_path):
        """Dotenv files in the working directory join the chain after Env."""
        monkeypatch.chdir(tmp_path)
        (tmp_path / ".env").write_text("X=1\n")

        manager = SecretsManager()

        assert len(manager._providers) == 2
        assert isinstance(manager._providers[0], EnvSecretsProvider)
        assert isinstance(manager._providers[1], DotEnvSecretsProvider)

    def test_auto_detect_env_only(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)

        manager = SecretsManager()

        assert len(manager._providers) == 1

    def test_thread_safe_concurrent_access(self, monkeypatch):
        """Multiple threads can safely access get_secret concurrently."""
        monkeypatch.setenv("THREAD_KEY", "thread-value")
        manager = SecretsManager(providers=[EnvSecretsProvider()], cache_ttl=300)

        results = []
        errors = []

        def read_secret():
            try:
                for _ in range(50):
                    results.append(manager.get_secret("THREAD_KEY"))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=read_secret) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(results) == 500
        assert all(v == "thread-value" for v in results)

    def test_provider_error_falls_through(self, monkeypatch):
        """OSError in one provider falls through to the next."""
        monkeypatch.setenv("MY_KEY", "fallback-value")
        broken = MagicMock(spec=DotEnvSecretsProvider)
        broken.get_secret.side_effect = OSError("permission denied")

        manager = SecretsManager(providers=[broken, EnvSecretsProvider()], cache_ttl=0)

        assert manager.get_secret("MY_KEY") == "fallback-value"


# =============================================================================
# TEST CREDENTIAL REQUIREMENTS
# =============================================================================


class TestRequire:

    def test_require_returns_values(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-proj-abc123")
        monkeypatch.setenv("FIRECRAWL_API_KEY", "fc-xyz")
        manager = SecretsManager(providers=[EnvSecretsProvider()])

        assert manager.require() == {
            "OPENAI_API_KEY": "sk-proj-abc123",
            "FIRECRAWL_API_KEY": "fc-xyz",
        }

    def test_require_names_missing_services(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        monkeypatch.setenv("FIRECRAWL_API_KEY", "fc-xyz")
        manager = SecretsManager(providers=[EnvSecretsProvider()])

        with pytest.raises(MissingCredentials) as exc_info:
            manager.require()

        assert exc_info.value.missing == ["OPENAI"]
        assert exc_info.value.details == {"missing_openai": True}

    def test_require_subset(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-1")
        monkeypatch.delenv("FIRECRAWL_API_KEY", raising=False)
        manager = SecretsManager(providers=[EnvSecretsProvider()])

        assert manager.require(("OPENAI_API_KEY",)) == {"OPENAI_API_KEY": "sk-1"}
        assert manager.missing() == ["FIRECRAWL_API_KEY"]

    def test_report_masks_values(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-proj-abc123")
        monkeypatch.delenv("FIRECRAWL_API_KEY", raising=False)
        manager = SecretsManager(providers=[EnvSecretsProvider()])

        report = manager.report()

        assert report["OPENAI_API_KEY"] == {"configured": True, "prefix": "sk-proj..."}
        assert report["FIRECRAWL_API_KEY"] == {"configured": False, "prefix": None}

    @pytest.mark.parametrize("value,masked", [
        ("sk-proj-abc123", "sk-proj..."),
        ("short", "short..."),
        ("", None),
        (None, None),
    ])
    def test_mask_secret(self, value, masked):
        assert mask_secret(value) == masked


# =============================================================================
# TEST SINGLETON
# =============================================================================


class TestGetSecretsManager:
    """Tests for get_secrets_manager singleton factory."""

    def test_returns_same_instance(self):
        assert get_secrets_manager() is get_secrets_manager()

    def test_reset_clears_singleton(self):
        """_reset_secrets_manager() clears the singleton."""
        first = get_secrets_manager()
        _reset_secrets_manager()
        assert get_secrets_manager() is not first
