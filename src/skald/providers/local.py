"""
Local filesystem provider.

Serves documents from a resource root through the IndexBuilder. Always
consulted first (priority 0), never rate limited, and healthy unless the
root cannot be read.
"""

from __future__ import annotations

import asyncio as _asyncio
import logging as _logging
import pathlib as _pathlib
import time as _time

import skald.cache as cache_module
import skald.config.types as config_types
import skald.errors as errors
import skald.fragments.index as index_module
import skald.providers.base as base
import skald.providers.types as types
import skald.uri as uri_module

_logger = _logging.getLogger(__name__)

ANONYMOUS_PREFIX = "_anon/"


class LocalProvider(base.ResourceProvider):
    """Provider backed by a directory tree of markdown documents."""

    def __init__(
        self,
        config: config_types.LocalProviderConfig,
        *,
        scheme: str | None = None,
        clock: cache_module.Clock | None = None,
    ) -> None:
        """
        Initialize the provider.

        Args:
            config: Local provider configuration.
            scheme: URI scheme for fragment URIs (default: skald).
            clock: Millisecond clock for the content cache.
        """
        super().__init__(config)
        kwargs = {"scheme": scheme} if scheme else {}
        self._builder = index_module.IndexBuilder(
            _pathlib.Path(config.resources_path).expanduser(),
            provider=self.name,
            **kwargs,
        )
        self._content = cache_module.ContentCache(config.cache_ttl_ms, clock=clock)

    @property
    def root(self) -> _pathlib.Path:
        return self._builder.root

    @property
    def builder(self) -> index_module.IndexBuilder:
        return self._builder

    def apply_config(self, config: config_types.ProviderConfig) -> None:
        super().apply_config(config)
        self._content.default_ttl_ms = config.cache_ttl_ms

    async def list_index(self) -> index_module.ResourceIndex:
        if self._builder.is_loaded:
            index = await self._builder.load()
            self._tracker.record_cache_hit()
            return index

        started = _time.monotonic()
        try:
            index = await self._builder.load()
        except errors.ProviderError:
            self._tracker.record_failure((_time.monotonic() - started) * 1000, cache_miss=True)
            raise
        self._tracker.record_success(
            (_time.monotonic() - started) * 1000,
            cache_miss=True,
            resources=len(index),
        )
        return index

    async def fetch_content(self, uri: str) -> str:
        canonical = self._canonical(uri)

        cached = self._content.get(canonical)
        if cached is not None:
            self._tracker.record_cache_hit(resources=1)
            return cached

        index = await self._builder.load()
        fragment = index.by_uri(canonical)
        if fragment is None:
            raise errors.NotFoundError(self.name, uri)

        self._content.set(canonical, fragment.body)
        self._tracker.record_success(
            cache_miss=True,
            resources=1,
            tokens=fragment.token_cost,
        )
        return fragment.body

    def _canonical(self, uri: str) -> str:
        parsed = uri_module.parse_uri(uri, self._builder.scheme)
        if not isinstance(parsed, uri_module.StaticURI):
            raise errors.InvalidURIError(uri, "expected a static resource URI")
        if parsed.identifier.startswith(ANONYMOUS_PREFIX):
            raise errors.NotFoundError(self.name, uri)
        return parsed.canonical

    async def health_check(self) -> types.ProviderHealth:
        started = _time.monotonic()
        readable = await _asyncio.to_thread(self._builder.root.is_dir)
        elapsed = (_time.monotonic() - started) * 1000
        if not readable:
            return types.ProviderHealth(
                provider=self.name,
                status=types.HealthStatus.UNAVAILABLE,
                last_checked_at=_time.time(),
                response_time_ms=elapsed,
                error=f"resource root {self._builder.root} is not a readable directory",
            )
        return types.ProviderHealth(
            provider=self.name,
            status=types.HealthStatus.HEALTHY,
            last_checked_at=_time.time(),
            response_time_ms=elapsed,
        )

    def invalidate(self) -> None:
        """Drop the memoized index and cached content."""
        self._builder.invalidate()
        self._content.clear()
        _logger.info("Invalidated local index for %s", self.name)
