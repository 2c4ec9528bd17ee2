"""
Configuration module for Skald.

Uses pydantic-settings for environment variable loading.
"""

from skald.config.settings import Settings, configure_logging
from skald.config.types import (
    AuthConfig,
    CatalogProviderConfig,
    ConfigBase,
    GitHubProviderConfig,
    LocalProviderConfig,
    ProviderConfig,
    ProvidersConfig,
    RateLimitConfig,
)

__all__ = [
    "Settings",
    "configure_logging",
    "ConfigBase",
    "RateLimitConfig",
    "AuthConfig",
    "ProviderConfig",
    "LocalProviderConfig",
    "CatalogProviderConfig",
    "GitHubProviderConfig",
    "ProvidersConfig",
]
