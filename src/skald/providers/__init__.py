"""
Resource providers and the provider registry.

Providers:
- local: markdown documents on disk (priority 0, no rate limit)
- catalog: curated template catalog (components.json)
- github: GitHub repositories (trees API + raw content)
"""

from skald.providers.base import ResourceProvider
from skald.providers.catalog import CatalogProvider
from skald.providers.factory import PROVIDER_TYPES, create_provider, create_registry
from skald.providers.github import GitHubProvider
from skald.providers.local import LocalProvider
from skald.providers.rate_limit import RateLimiter, TokenBucket
from skald.providers.registry import ProviderRegistry
from skald.providers.remote import RemoteProvider
from skald.providers.types import (
    AggregateStats,
    HealthStatus,
    ProviderHealth,
    ProviderStats,
    StatsTracker,
)

__all__ = [
    # Abstraction
    "ResourceProvider",
    "RemoteProvider",
    # Implementations
    "LocalProvider",
    "CatalogProvider",
    "GitHubProvider",
    # Registry and factory
    "ProviderRegistry",
    "PROVIDER_TYPES",
    "create_provider",
    "create_registry",
    # Records
    "HealthStatus",
    "ProviderHealth",
    "ProviderStats",
    "AggregateStats",
    "StatsTracker",
    # Rate limiting
    "RateLimiter",
    "TokenBucket",
]
