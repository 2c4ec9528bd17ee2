"""
Provider record types: health, statistics and their accumulators.
"""

from __future__ import annotations

import dataclasses as _dataclasses
import enum as _enum
import time as _time
import typing as _typing


class HealthStatus(_enum.Enum):
    """Provider availability, ordered from best to worst."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNAVAILABLE = "unavailable"

    def worse(self) -> HealthStatus:
        """One step worse (unavailable stays unavailable)."""
        if self is HealthStatus.HEALTHY:
            return HealthStatus.DEGRADED
        return HealthStatus.UNAVAILABLE


@_dataclasses.dataclass(frozen=True)
class ProviderHealth:
    """Point-in-time health of one provider."""

    provider: str
    status: HealthStatus = HealthStatus.HEALTHY

    last_checked_at: float | None = None
    """Epoch seconds of the last check, or None if never checked."""

    response_time_ms: float | None = None
    consecutive_failures: int = 0
    error: str | None = None

    @property
    def is_available(self) -> bool:
        return self.status is not HealthStatus.UNAVAILABLE

    def to_dict(self) -> dict[str, _typing.Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "provider": self.provider,
            "status": self.status.value,
            "last_checked_at": self.last_checked_at,
            "response_time_ms": self.response_time_ms,
            "consecutive_failures": self.consecutive_failures,
            "error": self.error,
        }


@_dataclasses.dataclass(frozen=True)
class ProviderStats:
    """Snapshot of one provider's accumulated usage counters."""

    provider: str
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    avg_response_time_ms: float = 0.0
    """Rolling average over requests that reached the backend."""

    resources_fetched: int = 0
    tokens_fetched: int = 0

    rate_limit_remaining: int | None = None
    """Requests left in the tightest window (server value preferred)."""

    rate_limit_reset_at: float | None = None
    """Epoch seconds when the limit resets, when known."""

    stats_reset_at: float = 0.0

    @property
    def cache_hit_rate(self) -> float:
        lookups = self.cache_hits + self.cache_misses
        return self.cache_hits / lookups if lookups else 0.0

    def to_dict(self) -> dict[str, _typing.Any]:
        """Convert to dictionary for JSON serialization."""
        data = _dataclasses.asdict(self)
        data["cache_hit_rate"] = self.cache_hit_rate
        return data


@_dataclasses.dataclass(frozen=True)
class AggregateStats:
    """Totals across enabled providers."""

    total_providers: int = 0
    enabled_providers: int = 0
    healthy_providers: int = 0
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    avg_response_time_ms: float = 0.0
    """Request-weighted average of the providers' averages."""

    @property
    def cache_hit_rate(self) -> float:
        lookups = self.cache_hits + self.cache_misses
        return self.cache_hits / lookups if lookups else 0.0

    def to_dict(self) -> dict[str, _typing.Any]:
        """Convert to dictionary for JSON serialization."""
        data = _dataclasses.asdict(self)
        data["cache_hit_rate"] = self.cache_hit_rate
        return data


class StatsTracker:
    """
    Mutable accumulator behind ProviderStats.

    Every call into a provider counts as one request. A request served from
    cache counts as a successful cache hit; a request that consulted the
    cache and went to the backend counts as a miss. This keeps
    total_requests >= cache_hits + cache_misses.
    """

    def __init__(self, provider: str) -> None:
        self.provider = provider
        self.reset()

    def reset(self) -> None:
        """Zero every counter and stamp the reset time."""
        self.total_requests = 0
        self.successful_requests = 0
        self.failed_requests = 0
        self.cache_hits = 0
        self.cache_misses = 0
        self.resources_fetched = 0
        self.tokens_fetched = 0
        self._timed_requests = 0
        self._avg_response_time_ms = 0.0
        self.rate_limit_remaining: int | None = None
        self.rate_limit_reset_at: float | None = None
        self.stats_reset_at = _time.time()

    def _time_sample(self, response_time_ms: float | None) -> None:
        if response_time_ms is None:
            return
        self._timed_requests += 1
        self._avg_response_time_ms += (
            response_time_ms - self._avg_response_time_ms
        ) / self._timed_requests

    def record_cache_hit(self, resources: int = 0, tokens: int = 0) -> None:
        self.total_requests += 1
        self.successful_requests += 1
        self.cache_hits += 1
        self.resources_fetched += resources
        self.tokens_fetched += tokens

    def record_success(
        self,
        response_time_ms: float | None = None,
        *,
        cache_miss: bool = False,
        resources: int = 0,
        tokens: int = 0,
    ) -> None:
        self.total_requests += 1
        self.successful_requests += 1
        if cache_miss:
            self.cache_misses += 1
        self.resources_fetched += resources
        self.tokens_fetched += tokens
        self._time_sample(response_time_ms)

    def record_failure(
        self,
        response_time_ms: float | None = None,
        *,
        cache_miss: bool = False,
    ) -> None:
        self.total_requests += 1
        self.failed_requests += 1
        if cache_miss:
            self.cache_misses += 1
        self._time_sample(response_time_ms)

    def record_rate_limit(self, remaining: int | None, reset_at: float | None = None) -> None:
        """Record the provider's remaining request budget."""
        self.rate_limit_remaining = remaining
        if reset_at is not None:
            self.rate_limit_reset_at = reset_at

    def snapshot(self) -> ProviderStats:
        return ProviderStats(
            provider=self.provider,
            total_requests=self.total_requests,
            successful_requests=self.successful_requests,
            failed_requests=self.failed_requests,
            cache_hits=self.cache_hits,
            cache_misses=self.cache_misses,
            avg_response_time_ms=self._avg_response_time_ms,
            resources_fetched=self.resources_fetched,
            tokens_fetched=self.tokens_fetched,
            rate_limit_remaining=self.rate_limit_remaining,
            rate_limit_reset_at=self.rate_limit_reset_at,
            stats_reset_at=self.stats_reset_at,
        )
