"""
Provider registry: fan-out search, health tracking and runtime control.

Each registered provider carries a health record driven by outcomes:
a failure (error, timeout, or a check reporting 'unavailable') moves it
one step worse (healthy -> degraded -> unavailable) and increments
consecutive_failures; a success resets it to healthy. Providers that are
disabled or unavailable are left out of fan-out. An unavailable provider
is re-checked once its health interval has elapsed and rejoins on success.
"""

from __future__ import annotations

import asyncio as _asyncio
import dataclasses as _dataclasses
import logging as _logging
import sys as _sys
import time as _time
import typing as _typing

import skald.cache as cache_module
import skald.config.types as config_types
import skald.constants as _constants
import skald.errors as errors
import skald.events as events
import skald.fragments.index as index_module
import skald.matching.matcher as matcher
import skald.providers.base as base
import skald.providers.types as types

_logger = _logging.getLogger(__name__)

T = _typing.TypeVar("T")


@_dataclasses.dataclass
class ProviderEntry:
    """Registry bookkeeping for one provider."""

    provider: base.ResourceProvider
    health: types.ProviderHealth
    last_health_check: float | None = None
    """Clock time (ms) of the last health check, or None."""

    @property
    def name(self) -> str:
        return self.provider.name

    @property
    def enabled(self) -> bool:
        return self.provider.config.enabled


class ProviderRegistry:
    """
    Registry of resource providers.

    Handles:
    - Registration and enable/disable (configuration is kept while disabled)
    - Concurrent fan-out search with per-provider deadlines
    - Lazy, interval-cached health checks
    - Per-provider and aggregate statistics
    """

    def __init__(
        self,
        health_check_interval_ms: int = _constants.DEFAULT_HEALTH_CHECK_INTERVAL_MS,
        *,
        clock: cache_module.Clock | None = None,
        event_bus: events.EventBus | None = None,
    ) -> None:
        """
        Initialize the registry.

        Args:
            health_check_interval_ms: Minimum interval between two health
                checks of the same provider.
            clock: Millisecond clock, injectable for tests.
            event_bus: Bus receiving registry events (a private one if None).
        """
        self.health_check_interval_ms = health_check_interval_ms
        self._clock = clock or cache_module.monotonic_ms
        self.events = event_bus or events.EventBus()
        self._entries: dict[str, ProviderEntry] = {}

    # Registration

    def register(self, provider: base.ResourceProvider) -> None:
        """
        Add a provider.

        Raises:
            ValueError: If a provider with the same name is registered.
        """
        if provider.name in self._entries:
            raise ValueError(f"Provider already registered: {provider.name}")
        self._entries[provider.name] = ProviderEntry(
            provider=provider,
            health=types.ProviderHealth(provider=provider.name),
        )
        _logger.info(
            "Registered provider %s (priority %d, %s)",
            provider.name,
            provider.priority,
            "enabled" if provider.config.enabled else "disabled",
        )
        self.events.emit(
            events.EventType.PROVIDER_REGISTERED, provider.name, priority=provider.priority
        )

    def unregister(self, name: str) -> base.ResourceProvider | None:
        """Remove a provider. Returns it, or None if it was not registered."""
        entry = self._entries.pop(name, None)
        if entry is None:
            return None
        _logger.info("Unregistered provider %s", name)
        self.events.emit(events.EventType.PROVIDER_UNREGISTERED, name)
        return entry.provider

    def get_provider(self, name: str) -> base.ResourceProvider | None:
        entry = self._entries.get(name)
        return entry.provider if entry is not None else None

    def list_providers(self, enabled_only: bool = False) -> list[base.ResourceProvider]:
        """Providers sorted by priority, then name."""
        entries = sorted(self._entries.values(), key=lambda e: (e.provider.priority, e.name))
        return [e.provider for e in entries if e.enabled or not enabled_only]

    def names(self) -> list[str]:
        return [p.name for p in self.list_providers()]

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def _entry(self, name: str) -> ProviderEntry:
        entry = self._entries.get(name)
        if entry is None:
            raise errors.ProviderUnavailableError(name, "not registered")
        return entry

    # Enable / disable and runtime configuration

    def is_enabled(self, name: str) -> bool:
        entry = self._entries.get(name)
        return entry is not None and entry.enabled

    def enable(self, name: str) -> None:
        """Re-enable a provider with its existing configuration."""
        entry = self._entry(name)
        if entry.enabled:
            return
        self._replace_config(name, enabled=True)
        _logger.info("Enabled provider %s", name)
        self.events.emit(events.EventType.PROVIDER_ENABLED, name)

    def disable(self, name: str) -> None:
        """Exclude a provider from fan-out and aggregates; it stays registered."""
        entry = self._entry(name)
        if not entry.enabled:
            return
        self._replace_config(name, enabled=False)
        _logger.info("Disabled provider %s", name)
        self.events.emit(events.EventType.PROVIDER_DISABLED, name)

    def _replace_config(self, name: str, **changes: _typing.Any) -> config_types.ProviderConfig:
        provider = self._entry(name).provider
        current = provider.config
        data = current.model_dump()
        data.update(changes)
        updated = type(current).model_validate(data)
        provider.apply_config(updated)
        return updated

    def update_cache_ttl(self, name: str, cache_ttl_ms: int) -> None:
        self._replace_config(name, cache_ttl_ms=cache_ttl_ms)

    def update_rate_limits(self, name: str, per_minute: int, per_hour: int) -> None:
        self._replace_config(name, rate_limit={"per_minute": per_minute, "per_hour": per_hour})

    def update_timeout(self, name: str, timeout_ms: int) -> None:
        self._replace_config(name, timeout_ms=timeout_ms)

    # Health

    def _set_health(self, entry: ProviderEntry, health: types.ProviderHealth) -> None:
        previous = entry.health.status
        entry.health = health
        if health.status is not previous:
            _logger.info(
                "Provider %s health %s -> %s",
                entry.name,
                previous.value,
                health.status.value,
            )
            self.events.emit(
                events.EventType.HEALTH_CHANGED,
                entry.name,
                previous=previous.value,
                status=health.status.value,
                consecutive_failures=health.consecutive_failures,
            )

    def _record_failure(
        self,
        entry: ProviderEntry,
        error: str,
        response_time_ms: float | None = None,
    ) -> None:
        current = entry.health
        self._set_health(
            entry,
            types.ProviderHealth(
                provider=entry.name,
                status=current.status.worse(),
                last_checked_at=_time.time(),
                response_time_ms=response_time_ms,
                consecutive_failures=current.consecutive_failures + 1,
                error=error,
            ),
        )

    def _record_success(self, entry: ProviderEntry, response_time_ms: float | None = None) -> None:
        self._set_health(
            entry,
            types.ProviderHealth(
                provider=entry.name,
                status=types.HealthStatus.HEALTHY,
                last_checked_at=_time.time(),
                response_time_ms=response_time_ms,
                consecutive_failures=0,
            ),
        )

    def _apply_check(self, entry: ProviderEntry, result: types.ProviderHealth) -> None:
        if result.status is types.HealthStatus.HEALTHY:
            self._record_success(entry, result.response_time_ms)
        elif result.status is types.HealthStatus.DEGRADED:
            # Reported degradation is not a failure
            self._set_health(
                entry,
                _dataclasses.replace(
                    result,
                    provider=entry.name,
                    consecutive_failures=entry.health.consecutive_failures,
                ),
            )
        else:
            self._record_failure(
                entry, result.error or "reported unavailable", result.response_time_ms
            )

    def _check_due(self, entry: ProviderEntry) -> bool:
        if entry.last_health_check is None:
            return True
        return self._clock() - entry.last_health_check >= self.health_check_interval_ms

    async def check_health(self, name: str, force: bool = False) -> types.ProviderHealth:
        """
        Health of one provider, re-checked at most once per interval.

        Args:
            name: Provider name.
            force: Check even if the interval has not elapsed.
        """
        entry = self._entry(name)
        if not force and not self._check_due(entry):
            return entry.health

        entry.last_health_check = self._clock()
        provider = entry.provider
        started = _time.monotonic()
        try:
            result = await _asyncio.wait_for(
                provider.health_check(), timeout=provider.timeout_ms / 1000
            )
        except _asyncio.TimeoutError:
            self._record_failure(
                entry,
                str(errors.ProviderTimeoutError(name, provider.timeout_ms)),
                (_time.monotonic() - started) * 1000,
            )
        except Exception as e:
            _logger.warning("Health check for %s failed: %s", name, e)
            self._record_failure(entry, str(e), (_time.monotonic() - started) * 1000)
        else:
            self._apply_check(entry, result)
        return entry.health

    async def get_health(self) -> dict[str, types.ProviderHealth]:
        """Health of every registered provider (lazy checks, interval-cached)."""
        names = self.names()
        results = await _asyncio.gather(*(self.check_health(n) for n in names))
        return dict(zip(names, results))

    def health_snapshot(self) -> dict[str, types.ProviderHealth]:
        """Current health records without triggering checks."""
        return {p.name: self._entries[p.name].health for p in self.list_providers()}

    async def _eligible(self) -> list[ProviderEntry]:
        """Enabled providers that are not unavailable, re-checking stale ones."""
        entries = [self._entries[p.name] for p in self.list_providers(enabled_only=True)]
        stale = [
            e
            for e in entries
            if e.health.status is types.HealthStatus.UNAVAILABLE and self._check_due(e)
        ]
        if stale:
            await _asyncio.gather(*(self.check_health(e.name) for e in stale))
        return [e for e in entries if e.health.is_available]

    # Isolated calls

    async def _call(
        self,
        entry: ProviderEntry,
        operation: _typing.Callable[[], _typing.Awaitable[T]],
    ) -> T:
        """
        Run one provider operation under its deadline, recording the outcome.

        Raises:
            ProviderTimeoutError: If the deadline passes.
            Exception: Whatever the operation raised.
        """
        provider = entry.provider
        started = _time.monotonic()
        try:
            result = await _asyncio.wait_for(operation(), timeout=provider.timeout_ms / 1000)
        except _asyncio.TimeoutError:
            elapsed = (_time.monotonic() - started) * 1000
            # The cancelled call never reached the provider's own bookkeeping
            provider.tracker.record_failure(elapsed)
            error = errors.ProviderTimeoutError(provider.name, provider.timeout_ms)
            self._record_failure(entry, str(error), elapsed)
            raise error from None
        except (errors.NotFoundError, errors.InvalidURIError):
            raise
        except Exception as e:
            elapsed = (_time.monotonic() - started) * 1000
            if not isinstance(e, errors.ProviderError):
                provider.tracker.record_failure(elapsed)
            self._record_failure(entry, str(e), elapsed)
            raise
        self._record_success(entry, (_time.monotonic() - started) * 1000)
        return result

    async def _search_entry(
        self,
        entry: ProviderEntry,
        query: str,
        options: matcher.SearchOptions,
    ) -> list[matcher.SearchResult]:
        async def search() -> list[matcher.SearchResult]:
            index = await entry.provider.list_index()
            return matcher.rank(index, query, options, provider_name=entry.name)

        return await self._call(entry, search)

    def _report_isolated_failure(self, name: str, operation: str, error: BaseException) -> None:
        _logger.warning("Provider %s failed during %s: %s", name, operation, error)
        self.events.emit(
            events.EventType.PROVIDER_ERROR,
            name,
            operation=operation,
            error=str(error),
            error_type=type(error).__name__,
        )

    def priorities(self) -> dict[str, int]:
        return {name: entry.provider.priority for name, entry in self._entries.items()}

    # Search

    async def search(
        self,
        query: str,
        options: matcher.SearchOptions | None = None,
    ) -> matcher.SearchResponse:
        """
        Search every enabled, available provider concurrently.

        Provider failures and timeouts are logged and recorded in health
        and stats; they never fail the call and are listed on the response
        instead. Results are merged and ordered with the global ranking
        policy, using provider priority as a tie-breaker. Facets and the
        match total are computed before the max_results cut.
        """
        options = options or matcher.SearchOptions()
        # Providers rank every match; the max_results cut happens after the merge
        uncapped = options.model_copy(update={"max_results": _sys.maxsize})
        started = _time.monotonic()
        enabled = [p.name for p in self.list_providers(enabled_only=True)]
        entries = await self._eligible()
        eligible = {e.name for e in entries}
        outcomes = await _asyncio.gather(
            *(self._search_entry(e, query, uncapped) for e in entries),
            return_exceptions=True,
        )

        merged: list[matcher.SearchResult] = []
        failed: list[str] = []
        for entry, outcome in zip(entries, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                self._report_isolated_failure(entry.name, "search", outcome)
                failed.append(entry.name)
                continue
            merged.extend(outcome)

        results = matcher.apply_policy(merged, options, self.priorities())
        _logger.debug(
            "search %r: %d providers, %d of %d results",
            query,
            len(entries),
            len(results),
            len(merged),
        )
        return matcher.SearchResponse(
            query=query,
            results=tuple(results),
            total_matches=len(merged),
            search_time_ms=(_time.monotonic() - started) * 1000,
            facets=matcher.SearchFacets.from_results(merged),
            failed_providers=tuple(failed),
            skipped_providers=tuple(n for n in enabled if n not in eligible),
        )

    async def search_all(
        self,
        query: str,
        options: matcher.SearchOptions | None = None,
    ) -> list[matcher.SearchResult]:
        """Ranked results of search(), without the response metadata."""
        response = await self.search(query, options)
        return list(response.results)

    async def search_one(
        self,
        name: str,
        query: str,
        options: matcher.SearchOptions | None = None,
    ) -> list[matcher.SearchResult]:
        """
        Search one provider; its failure propagates.

        Raises:
            ProviderUnavailableError: If the provider is unknown or disabled.
            ProviderError: Whatever the provider raised.
        """
        entry = self._entry(name)
        if not entry.enabled:
            raise errors.ProviderUnavailableError(name, "disabled")
        return await self._search_entry(entry, query, options or matcher.SearchOptions())

    async def fetch_all_indexes(self) -> dict[str, index_module.ResourceIndex]:
        """Indexes of every enabled, available provider; failures are isolated."""
        entries = await self._eligible()
        outcomes = await _asyncio.gather(
            *(self._call(e, e.provider.list_index) for e in entries),
            return_exceptions=True,
        )
        indexes: dict[str, index_module.ResourceIndex] = {}
        for entry, outcome in zip(entries, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                self._report_isolated_failure(entry.name, "list_index", outcome)
                continue
            indexes[entry.name] = outcome
        return indexes

    async def fetch_content(self, uri: str, provider: str | None = None) -> tuple[str, str]:
        """
        Fetch a resource's content.

        With a provider name, only that provider is asked and its error
        propagates. Otherwise enabled providers are tried in priority order
        until one has the resource.

        Returns:
            Tuple of (content, provider name).

        Raises:
            NotFoundError: If no provider has the resource.
            ProviderError: The first non-not-found failure, if every
                provider failed.
        """
        if provider is not None:
            entry = self._entry(provider)
            if not entry.enabled:
                raise errors.ProviderUnavailableError(provider, "disabled")
            content = await self._call(entry, lambda: entry.provider.fetch_content(uri))
            return content, provider

        first_error: Exception | None = None
        for entry in await self._eligible():
            try:
                content = await self._call(
                    entry, lambda e=entry: e.provider.fetch_content(uri)
                )
            except errors.NotFoundError:
                continue
            except errors.InvalidURIError:
                raise
            except Exception as e:
                self._report_isolated_failure(entry.name, "fetch_content", e)
                if first_error is None:
                    first_error = e
                continue
            return content, entry.name

        if first_error is not None:
            raise first_error
        raise errors.NotFoundError("registry", uri)

    # Statistics

    def get_stats(self) -> dict[str, types.ProviderStats]:
        """Per-provider statistics snapshots (all registered providers)."""
        return {p.name: p.stats() for p in self.list_providers()}

    def aggregate_stats(self) -> types.AggregateStats:
        """Totals across enabled providers only."""
        enabled = [self._entries[p.name] for p in self.list_providers(enabled_only=True)]
        snapshots = [e.provider.stats() for e in enabled]

        timed = [s for s in snapshots if s.total_requests > s.cache_hits]
        weight = sum(s.total_requests - s.cache_hits for s in timed)
        avg = (
            sum(s.avg_response_time_ms * (s.total_requests - s.cache_hits) for s in timed) / weight
            if weight
            else 0.0
        )
        return types.AggregateStats(
            total_providers=len(self._entries),
            enabled_providers=len(enabled),
            healthy_providers=sum(
                1 for e in enabled if e.health.status is types.HealthStatus.HEALTHY
            ),
            total_requests=sum(s.total_requests for s in snapshots),
            successful_requests=sum(s.successful_requests for s in snapshots),
            failed_requests=sum(s.failed_requests for s in snapshots),
            cache_hits=sum(s.cache_hits for s in snapshots),
            cache_misses=sum(s.cache_misses for s in snapshots),
            avg_response_time_ms=avg,
        )

    def reset_stats(self, name: str | None = None) -> None:
        """Reset one provider's statistics, or every provider's."""
        targets = [self._entry(name).provider] if name else self.list_providers()
        for provider in targets:
            provider.reset_stats()

    async def aclose(self) -> None:
        """Close every provider."""
        for provider in self.list_providers():
            try:
                await provider.aclose()
            except Exception:
                _logger.warning("Failed to close provider %s", provider.name, exc_info=True)
