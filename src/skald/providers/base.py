"""
Abstract base class for resource providers.

All providers (local filesystem, template catalog, GitHub) implement this
interface. The registry depends only on it.
"""

from __future__ import annotations

import abc as _abc
import logging as _logging
import time as _time
import typing as _typing

import skald.config.types as config_types
import skald.fragments.index as index_module
import skald.providers.types as types

_logger = _logging.getLogger(__name__)


class ResourceProvider(_abc.ABC):
    """
    Abstract base for resource providers.

    Implementations handle the specifics of each source while presenting
    a unified interface: list the index, fetch one document's content,
    check health and report usage statistics.
    """

    def __init__(self, config: config_types.ProviderConfig) -> None:
        self._config = config
        self._tracker = types.StatsTracker(config.provider_name)

    @property
    def name(self) -> str:
        """Provider name (e.g., 'local', 'github')."""
        return self._config.provider_name

    @property
    def config(self) -> config_types.ProviderConfig:
        """Current configuration."""
        return self._config

    @property
    def priority(self) -> int:
        """Lower values are consulted first and win ranking ties."""
        return self._config.priority

    @property
    def timeout_ms(self) -> int:
        return self._config.timeout_ms

    @property
    def tracker(self) -> types.StatsTracker:
        """Mutable stats accumulator (the registry records isolated failures here)."""
        return self._tracker

    def apply_config(self, config: config_types.ProviderConfig) -> None:
        """
        Replace the configuration.

        Takes effect on the next call. The provider name is fixed at
        construction and cannot change.
        """
        if config.provider_name != self.name:
            raise ValueError(
                f"Cannot rename provider {self.name!r} to {config.provider_name!r}"
            )
        self._config = config
        _logger.info("Provider %s config updated", self.name)

    @_abc.abstractmethod
    async def list_index(self) -> index_module.ResourceIndex:
        """
        Return this provider's resource index.

        Raises:
            ProviderError: If the index cannot be produced.
        """
        ...

    @_abc.abstractmethod
    async def fetch_content(self, uri: str) -> str:
        """
        Return the full content of one resource.

        Raises:
            NotFoundError: If the provider has no such resource.
            ProviderError: For other failures.
        """
        ...

    async def health_check(self) -> types.ProviderHealth:
        """
        Check the provider.

        The default implementation times a list_index() call. Remote
        providers override this with a cheap endpoint.
        """
        started = _time.monotonic()
        try:
            await self.list_index()
        except Exception as e:
            return types.ProviderHealth(
                provider=self.name,
                status=types.HealthStatus.UNAVAILABLE,
                last_checked_at=_time.time(),
                response_time_ms=(_time.monotonic() - started) * 1000,
                error=str(e),
            )
        return types.ProviderHealth(
            provider=self.name,
            status=types.HealthStatus.HEALTHY,
            last_checked_at=_time.time(),
            response_time_ms=(_time.monotonic() - started) * 1000,
        )

    def stats(self) -> types.ProviderStats:
        """Snapshot of accumulated usage statistics."""
        return self._tracker.snapshot()

    def reset_stats(self) -> None:
        self._tracker.reset()

    async def aclose(self) -> None:
        """Release resources (HTTP clients). Default: nothing to release."""
        return None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, priority={self.priority})"

    def to_dict(self) -> dict[str, _typing.Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "type": self._config.type,
            "priority": self.priority,
            "enabled": self._config.enabled,
        }
