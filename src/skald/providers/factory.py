"""
Provider factory for creating resource providers from configuration.

Provider Type Dispatch:
    Providers are created based on the `type` field of their config.
    A section with `type: github` uses GitHubProvider, and so on.
"""

from __future__ import annotations

import logging as _logging
import typing as _typing

import skald.cache as cache_module
import skald.config.settings as settings_module
import skald.config.types as config_types
import skald.constants as _constants
import skald.events as events
import skald.providers.base as base
import skald.providers.catalog as catalog
import skald.providers.github as github
import skald.providers.local as local
import skald.providers.registry as registry_module

_logger = _logging.getLogger(__name__)

# Mapping of provider types to their implementations
PROVIDER_TYPES: dict[str, type[base.ResourceProvider]] = {
    "local": local.LocalProvider,
    "catalog": catalog.CatalogProvider,
    "github": github.GitHubProvider,
}


def create_provider(
    config: config_types.ProviderConfig,
    *,
    scheme: str = _constants.DEFAULT_URI_SCHEME,
    clock: cache_module.Clock | None = None,
    **kwargs: _typing.Any,
) -> base.ResourceProvider:
    """
    Create a provider for a config section.

    Args:
        config: Provider configuration (its `type` selects the class).
        scheme: URI scheme for fragment URIs.
        clock: Millisecond clock shared with caches and rate limiters.
        **kwargs: Extra constructor arguments (e.g. an httpx client).

    Returns:
        The provider instance.

    Raises:
        ValueError: If the provider type is unknown.
    """
    provider_class = PROVIDER_TYPES.get(config.type)
    if provider_class is None:
        available = ", ".join(sorted(PROVIDER_TYPES))
        raise ValueError(f"Unknown provider type: {config.type!r}. Available: {available}")

    _logger.debug("Creating %s provider %s", config.type, config.provider_name)
    return provider_class(config, scheme=scheme, clock=clock, **kwargs)  # type: ignore[call-arg]


def create_registry(
    settings: settings_module.Settings,
    *,
    clock: cache_module.Clock | None = None,
    event_bus: events.EventBus | None = None,
) -> registry_module.ProviderRegistry:
    """
    Build a registry holding every configured provider.

    Disabled providers are registered too, so they can be enabled later
    without rebuilding.
    """
    registry = registry_module.ProviderRegistry(
        settings.health_check_interval_ms,
        clock=clock,
        event_bus=event_bus,
    )
    for config in settings.providers.all():
        registry.register(create_provider(config, scheme=settings.scheme, clock=clock))
    return registry
