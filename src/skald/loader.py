"""
ResourceLoader: the facade embedding applications talk to.

Resolves static URIs to content (first provider that has the resource),
dynamic URIs to a token-budgeted summary of a federated search, and
exposes provider health, statistics and runtime controls. Every load
publishes a resource_loaded event for external token accounting.
"""

from __future__ import annotations

import asyncio as _asyncio
import dataclasses as _dataclasses
import logging as _logging
import typing as _typing

import skald.cache as cache_module
import skald.config.settings as settings_module
import skald.constants as _constants
import skald.errors as errors
import skald.events as events
import skald.fragments.fragment as fragment_module
import skald.fragments.index as index_module
import skald.matching.formatter as formatter
import skald.matching.matcher as matcher
import skald.providers.factory as factory
import skald.providers.local as local
import skald.providers.registry as registry_module
import skald.providers.types as provider_types
import skald.uri as uri_module

_logger = _logging.getLogger(__name__)


class ResourceLoader:
    """
    Facade over the provider registry, URI parser, matcher and cache.
    """

    def __init__(
        self,
        registry: registry_module.ProviderRegistry,
        *,
        scheme: str = _constants.DEFAULT_URI_SCHEME,
        cache: cache_module.ContentCache | None = None,
        event_bus: events.EventBus | None = None,
    ) -> None:
        """
        Initialize the loader.

        Args:
            registry: Registry holding the providers.
            scheme: URI scheme accepted by load_resource_content().
            cache: Cache for resolved URI content.
            event_bus: Bus for loader events (defaults to the registry's).
        """
        self.registry = registry
        self.scheme = scheme
        # An empty cache is falsy (it has a length)
        self.cache = cache if cache is not None else cache_module.ContentCache()
        self.events = event_bus if event_bus is not None else registry.events

    @classmethod
    def from_settings(
        cls,
        settings: settings_module.Settings | None = None,
        *,
        clock: cache_module.Clock | None = None,
        event_bus: events.EventBus | None = None,
    ) -> ResourceLoader:
        """Build a loader and its providers from settings."""
        settings = settings or settings_module.Settings()
        bus = event_bus or events.EventBus()
        registry = factory.create_registry(settings, clock=clock, event_bus=bus)
        cache = cache_module.ContentCache(
            settings.content_cache_ttl_ms,
            max_entries=settings.content_cache_max_entries,
            clock=clock,
        )
        return cls(registry, scheme=settings.scheme, cache=cache, event_bus=bus)

    # Loading

    async def load_resource_content(self, uri: str) -> str:
        """
        Resolve a static or dynamic URI to content.

        Results are cached per URI. A search that some enabled provider
        did not answer (error, timeout, unavailable) is not cached, so the
        provider's results show up as soon as it recovers.

        Raises:
            InvalidURIError: If the URI is malformed.
            NotFoundError: If no provider has a static resource.
            ProviderError: If every provider failed for a static resource.
        """
        cached = self.cache.get(uri)
        if cached is not None:
            _logger.debug("Loaded %s from cache", uri)
            self._emit_loaded(uri, cached, cached=True)
            return cached

        parsed = uri_module.parse_uri(uri, self.scheme)
        complete = True
        if isinstance(parsed, uri_module.StaticURI):
            content, provider = await self.registry.fetch_content(parsed.canonical)
            _logger.info("Loaded %s from %s", uri, provider)
        else:
            content, complete = await self._assemble(parsed)
            _logger.info("Assembled %s", uri)

        if complete:
            self.cache.set(uri, content)
        else:
            _logger.debug("Not caching %s: search was missing providers", uri)
        self._emit_loaded(uri, content, cached=False)
        return content

    async def _assemble(self, parsed: uri_module.DynamicURI) -> tuple[str, bool]:
        """Render a match URI; also report whether every provider answered."""
        response = await self.registry.search(parsed.query, parsed.to_search_options())
        results = list(response.results)
        if parsed.mode == "full":
            selected, _ = formatter.select_within_budget(results, parsed.max_tokens, "full")
            results = await self._with_bodies(selected)
        content = formatter.format_compact(
            results,
            parsed.max_tokens,
            parsed.mode,
            query=parsed.query,
            total=response.total_matches,
        )
        return content, response.complete

    async def _with_bodies(
        self,
        results: list[matcher.SearchResult],
    ) -> list[matcher.SearchResult]:
        """Fill in bodies of metadata-only fragments (remote indexes)."""

        async def fill(result: matcher.SearchResult) -> matcher.SearchResult:
            if result.fragment.body:
                return result
            try:
                body, _ = await self.registry.fetch_content(
                    result.fragment.uri, provider=result.provider_name
                )
            except errors.SkaldError as e:
                _logger.warning("Could not fetch body of %s: %s", result.fragment.uri, e)
                return result
            return _dataclasses.replace(
                result, fragment=_dataclasses.replace(result.fragment, body=body)
            )

        return list(await _asyncio.gather(*(fill(r) for r in results)))

    def _emit_loaded(self, uri: str, content: str, *, cached: bool) -> None:
        self.events.emit(
            events.EventType.RESOURCE_LOADED,
            "loader",
            uri=uri,
            tokens=fragment_module.estimate_tokens(content),
            cached=cached,
        )

    def get_cached_resource(self, uri: str) -> str | None:
        """Cached content for a URI, without loading."""
        return self.cache.get(uri)

    async def load_resource_index(self) -> index_module.ResourceIndex:
        """
        The local provider's index.

        Concurrent callers share one in-flight build.

        Raises:
            ProviderUnavailableError: If no local provider is registered or
                its root cannot be read.
        """
        for provider in self.registry.list_providers():
            if isinstance(provider, local.LocalProvider):
                return await provider.list_index()
        raise errors.ProviderUnavailableError("local", "no local provider registered")

    # Search

    async def search_resources(
        self,
        query: str,
        options: matcher.SearchOptions | None = None,
    ) -> matcher.SearchResponse:
        """Federated search with match totals, facets and failed providers."""
        return await self.registry.search(query, options)

    async def search_all_providers(
        self,
        query: str,
        options: matcher.SearchOptions | None = None,
    ) -> list[matcher.SearchResult]:
        return await self.registry.search_all(query, options)

    async def search_provider(
        self,
        name: str,
        query: str,
        options: matcher.SearchOptions | None = None,
    ) -> list[matcher.SearchResult]:
        return await self.registry.search_one(name, query, options)

    async def get_resources_by_category(
        self,
        category: fragment_module.Category | str,
    ) -> list[fragment_module.ResourceFragment]:
        """
        Every indexed resource of one category across available providers.

        Ordered by provider priority, then index order.

        Raises:
            ValueError: If the category is unknown.
        """
        if isinstance(category, str):
            mapped = fragment_module.map_category(category, None)
            if mapped is None:
                raise ValueError(f"Unknown category: {category}")
            category = mapped
        indexes = await self.registry.fetch_all_indexes()
        fragments: list[fragment_module.ResourceFragment] = []
        for provider in self.registry.list_providers():
            index = indexes.get(provider.name)
            if index is not None:
                fragments.extend(index.by_category(category))
        return fragments

    # Providers

    async def get_providers_health(self) -> dict[str, provider_types.ProviderHealth]:
        return await self.registry.get_health()

    def get_providers_stats(self) -> dict[str, provider_types.ProviderStats]:
        return self.registry.get_stats()

    def get_aggregate_stats(self) -> provider_types.AggregateStats:
        return self.registry.aggregate_stats()

    def get_provider_names(self) -> list[str]:
        return self.registry.names()

    def enable_provider(self, name: str) -> None:
        """Enable a provider. Cached results are dropped since they may change."""
        self.registry.enable(name)
        self.cache.clear()

    def disable_provider(self, name: str) -> None:
        """Disable a provider. Cached results are dropped since they may change."""
        self.registry.disable(name)
        self.cache.clear()

    def update_cache_ttl(self, name: str, cache_ttl_ms: int) -> None:
        self.registry.update_cache_ttl(name, cache_ttl_ms)

    def update_rate_limits(self, name: str, per_minute: int, per_hour: int) -> None:
        self.registry.update_rate_limits(name, per_minute, per_hour)

    def update_timeout(self, name: str, timeout_ms: int) -> None:
        self.registry.update_timeout(name, timeout_ms)

    async def aclose(self) -> None:
        """Close every provider's resources."""
        await self.registry.aclose()

    async def __aenter__(self) -> ResourceLoader:
        return self

    async def __aexit__(self, *exc_info: _typing.Any) -> None:
        await self.aclose()
