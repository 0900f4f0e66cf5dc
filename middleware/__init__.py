"""
Middleware Package
Lead Enrichment Engine

Credential resolution and other cross-cutting concerns.
"""

from middleware.secrets import (
    REQUIRED_KEYS,
    DotEnvSecretsProvider,
    EnvSecretsProvider,
    SecretsManager,
    SecretsProvider,
    get_secrets_manager,
    mask_secret,
)

__all__ = [
    "REQUIRED_KEYS",
    "SecretsProvider",
    "EnvSecretsProvider",
    "DotEnvSecretsProvider",
    "SecretsManager",
    "get_secrets_manager",
    "mask_secret",
]
