"""
Shared HTTP discipline for remote providers.

RemoteProvider wraps an httpx AsyncClient and adds:
- client-side rate limiting (RateLimiter) before every request
- retries with exponential backoff and jitter for transport errors and 5xx
- HTTP status mapping onto the skald error taxonomy
- caching of the index and of fetched content for cache_ttl_ms
- rate limit bookkeeping, preferring x-ratelimit-* response headers

Subclasses implement _fetch_index(), _fetch_content() and health_url.
"""

from __future__ import annotations

import abc as _abc
import asyncio as _asyncio
import logging as _logging
import random as _random
import time as _time
import typing as _typing

import httpx as _httpx

import skald.cache as cache_module
import skald.config.types as config_types
import skald.constants as _constants
import skald.errors as errors
import skald.fragments.index as index_module
import skald.providers.base as base
import skald.providers.rate_limit as rate_limit
import skald.providers.types as types

_logger = _logging.getLogger(__name__)

Sleep = _typing.Callable[[float], _typing.Awaitable[None]]


def backoff_ms(attempt: int, base_ms: int, jitter: float | None = None) -> float:
    """
    Exponential backoff delay for a retry attempt (0-indexed).

    Adds 0-30% jitter and caps the result at MAX_RETRY_BACKOFF_MS.
    """
    exponential = base_ms * (2**attempt)
    if jitter is None:
        jitter = _random.random()
    return min(exponential * (1 + 0.3 * jitter), _constants.MAX_RETRY_BACKOFF_MS)


def _parse_retry_after(value: str | None) -> int | None:
    """Retry-After in seconds -> milliseconds (HTTP-date form is ignored)."""
    if not value:
        return None
    try:
        return max(0, int(float(value) * 1000))
    except ValueError:
        return None


def _header_int(headers: _httpx.Headers, name: str) -> int | None:
    value = headers.get(name)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


class RemoteProvider(base.ResourceProvider):
    """
    Base class for providers that fetch over HTTP.

    The client is created from the provider config unless one is injected
    (tests pass a client built on httpx.MockTransport).
    """

    def __init__(
        self,
        config: config_types.ProviderConfig,
        *,
        client: _httpx.AsyncClient | None = None,
        clock: cache_module.Clock | None = None,
        sleep: Sleep | None = None,
    ) -> None:
        """
        Initialize the provider.

        Args:
            config: Provider configuration.
            client: Optional pre-built HTTP client (not closed by aclose()).
            clock: Millisecond clock for caches and the rate limiter.
            sleep: Coroutine used to wait between retries.
        """
        super().__init__(config)
        self._clock = clock or cache_module.monotonic_ms
        self._sleep = sleep or _asyncio.sleep
        self._owns_client = client is None
        self._client = client or _httpx.AsyncClient(
            headers=self._build_headers(),
            timeout=config.timeout_ms / 1000,
            follow_redirects=True,
        )
        self._limiter = (
            rate_limit.RateLimiter(self.name, config.rate_limit, clock=self._clock)
            if config.rate_limit is not None
            else None
        )
        self._index: index_module.ResourceIndex | None = None
        self._index_fetched_at = 0.0
        self._content = cache_module.ContentCache(config.cache_ttl_ms, clock=self._clock)
        self._server_remaining: int | None = None

    def _build_headers(self) -> dict[str, str]:
        headers = {"User-Agent": _constants.USER_AGENT}
        if self._config.auth is not None:
            headers["Authorization"] = f"Bearer {self._config.auth.token}"
        return headers

    @property
    @_abc.abstractmethod
    def health_url(self) -> str:
        """URL requested by health_check()."""
        ...

    @_abc.abstractmethod
    async def _fetch_index(self) -> index_module.ResourceIndex:
        """Fetch and build the index from the backend."""
        ...

    @_abc.abstractmethod
    async def _fetch_content(self, uri: str) -> str:
        """Fetch one resource's content from the backend."""
        ...

    # Configuration

    def apply_config(self, config: config_types.ProviderConfig) -> None:
        previous = self._config
        super().apply_config(config)
        if config.rate_limit != previous.rate_limit:
            if config.rate_limit is None:
                self._limiter = None
            elif self._limiter is None:
                self._limiter = rate_limit.RateLimiter(
                    self.name, config.rate_limit, clock=self._clock
                )
            else:
                self._limiter.configure(config.rate_limit)
        if config.timeout_ms != previous.timeout_ms:
            self._client.timeout = _httpx.Timeout(config.timeout_ms / 1000)
        if config.cache_ttl_ms != previous.cache_ttl_ms:
            self._content.default_ttl_ms = config.cache_ttl_ms
        if config.auth != previous.auth and self._owns_client:
            self._client.headers.update(self._build_headers())

    # HTTP

    async def _request(
        self,
        method: str,
        url: str,
        *,
        retries: int | None = None,
        **kwargs: _typing.Any,
    ) -> _httpx.Response:
        """
        Issue a request with rate limiting, retries and error mapping.

        Raises:
            NotFoundError: On 404.
            RateLimitExceededError: On 429 or an exhausted client budget.
            ProviderTimeoutError: If the final attempt timed out.
            ProviderUnavailableError: For other failures.
        """
        attempts = (self._config.retry_attempts if retries is None else retries) + 1
        last_error: errors.ProviderError | None = None

        for attempt in range(attempts):
            if self._limiter is not None:
                self._limiter.acquire()

            try:
                response = await self._client.request(method, url, **kwargs)
            except _httpx.TimeoutException as e:
                _logger.debug("%s %s timed out", method, url)
                last_error = errors.ProviderTimeoutError(self.name, self._config.timeout_ms)
                last_error.__cause__ = e
            except _httpx.TransportError as e:
                _logger.debug("%s %s failed: %s", method, url, e)
                last_error = errors.ProviderUnavailableError(self.name, str(e))
                last_error.__cause__ = e
            else:
                self._record_rate_limit_headers(response)
                status = response.status_code
                if status == 404:
                    raise errors.NotFoundError(self.name, url)
                if status == 429:
                    raise errors.RateLimitExceededError(
                        self.name,
                        retry_after_ms=_parse_retry_after(response.headers.get("Retry-After")),
                    )
                if status >= 500:
                    last_error = errors.ProviderUnavailableError(
                        self.name, f"HTTP {status} from {url}"
                    )
                elif status >= 400:
                    raise errors.ProviderUnavailableError(self.name, f"HTTP {status} from {url}")
                else:
                    _logger.debug("%s %s -> %d", method, url, status)
                    return response

            if attempt < attempts - 1:
                delay = backoff_ms(attempt, self._config.retry_backoff_ms)
                _logger.warning(
                    "Request to %s failed (%s), retrying in %.0fms (%d/%d)",
                    url,
                    last_error,
                    delay,
                    attempt + 1,
                    attempts - 1,
                )
                await self._sleep(delay / 1000)

        if last_error is None:
            raise errors.ProviderUnavailableError(self.name, f"no attempt made for {url}")
        raise last_error

    def _record_rate_limit_headers(self, response: _httpx.Response) -> None:
        remaining = _header_int(response.headers, "x-ratelimit-remaining")
        reset = _header_int(response.headers, "x-ratelimit-reset")
        if remaining is not None:
            self._server_remaining = remaining
            self._tracker.record_rate_limit(remaining, float(reset) if reset else None)

    def _refresh_rate_limit_stat(self) -> None:
        # Server-reported values are authoritative when present
        if self._server_remaining is None and self._limiter is not None:
            self._tracker.record_rate_limit(self._limiter.remaining)

    # Provider interface

    def _index_is_fresh(self) -> bool:
        if self._index is None:
            return False
        return self._clock() - self._index_fetched_at < self._config.cache_ttl_ms

    def reset_stats(self) -> None:
        """Zero the counters; the remaining budget falls back to the client bucket."""
        super().reset_stats()
        self._server_remaining = None
        self._refresh_rate_limit_stat()

    async def list_index(self) -> index_module.ResourceIndex:
        cached_index = self._index
        if cached_index is not None and self._index_is_fresh():
            _logger.debug("Index cache hit for %s", self.name)
            self._tracker.record_cache_hit()
            return cached_index

        started = _time.monotonic()
        try:
            index = await self._fetch_index()
        except errors.ProviderError:
            self._tracker.record_failure((_time.monotonic() - started) * 1000, cache_miss=True)
            self._refresh_rate_limit_stat()
            raise

        self._tracker.record_success(
            (_time.monotonic() - started) * 1000,
            cache_miss=True,
            resources=len(index),
        )
        self._refresh_rate_limit_stat()
        self._index = index
        self._index_fetched_at = self._clock()
        _logger.info("Fetched index for %s: %d resources", self.name, len(index))
        return index

    async def fetch_content(self, uri: str) -> str:
        cached = self._content.get(uri)
        if cached is not None:
            _logger.debug("Content cache hit for %s", uri)
            self._tracker.record_cache_hit(resources=1)
            return cached

        started = _time.monotonic()
        try:
            content = await self._fetch_content(uri)
        except errors.NotFoundError:
            # The provider answered; it just has no such resource
            self._tracker.record_success((_time.monotonic() - started) * 1000, cache_miss=True)
            raise
        except errors.ProviderError:
            self._tracker.record_failure((_time.monotonic() - started) * 1000, cache_miss=True)
            self._refresh_rate_limit_stat()
            raise

        self._tracker.record_success(
            (_time.monotonic() - started) * 1000,
            cache_miss=True,
            resources=1,
            tokens=len(content) // _constants.CHARS_PER_TOKEN,
        )
        self._refresh_rate_limit_stat()
        self._content.set(uri, content, self._config.cache_ttl_ms)
        return content

    async def health_check(self) -> types.ProviderHealth:
        """Single-attempt GET against health_url."""
        started = _time.monotonic()
        status = types.HealthStatus.HEALTHY
        error: str | None = None
        try:
            await self._request("GET", self.health_url, retries=0)
        except errors.RateLimitExceededError as e:
            status = types.HealthStatus.DEGRADED
            error = str(e)
        except errors.ProviderError as e:
            status = types.HealthStatus.UNAVAILABLE
            error = str(e)
        return types.ProviderHealth(
            provider=self.name,
            status=status,
            last_checked_at=_time.time(),
            response_time_ms=(_time.monotonic() - started) * 1000,
            error=error,
        )

    def invalidate(self) -> None:
        """Drop cached index and content."""
        self._index = None
        self._content.clear()

    async def aclose(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._owns_client:
            await self._client.aclose()
