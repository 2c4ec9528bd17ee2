"""
Client-side rate limiting with token buckets.

Each remote provider owns one RateLimiter holding a per-minute and a
per-hour bucket. A request consumes one token from both; when either is
empty the request is refused with the time until a token is available.
"""

from __future__ import annotations

import dataclasses as _dataclasses
import math as _math
import threading as _threading

import skald.cache as cache_module
import skald.config.types as config_types
import skald.errors as errors

_MINUTE_MS = 60_000
_HOUR_MS = 3_600_000


@_dataclasses.dataclass
class TokenBucket:
    """A bucket that refills continuously up to its capacity."""

    capacity: float
    refill_per_ms: float
    tokens: float
    last_refill: float

    @classmethod
    def create(cls, capacity: int, window_ms: int, now: float) -> TokenBucket:
        return cls(
            capacity=float(capacity),
            refill_per_ms=capacity / window_ms,
            tokens=float(capacity),
            last_refill=now,
        )

    def refill(self, now: float) -> None:
        elapsed = max(0.0, now - self.last_refill)
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_per_ms)
        self.last_refill = now

    def wait_ms(self) -> int:
        """Milliseconds until one token is available (0 if one is)."""
        if self.tokens >= 1:
            return 0
        return _math.ceil((1 - self.tokens) / self.refill_per_ms)


class RateLimiter:
    """
    Per-minute and per-hour request budget.

    Bucket updates are serialized with a lock so the limiter can be shared
    between threads as well as tasks.
    """

    def __init__(
        self,
        provider: str,
        config: config_types.RateLimitConfig,
        clock: cache_module.Clock | None = None,
    ) -> None:
        self.provider = provider
        self._clock = clock or cache_module.monotonic_ms
        self._lock = _threading.Lock()
        self.configure(config)

    def configure(self, config: config_types.RateLimitConfig) -> None:
        """Replace the limits; buckets restart full."""
        now = self._clock()
        with self._lock:
            self.config = config
            self._minute = TokenBucket.create(config.per_minute, _MINUTE_MS, now)
            self._hour = TokenBucket.create(config.per_hour, _HOUR_MS, now)

    def try_acquire(self) -> int:
        """
        Consume one token from each bucket if both have one.

        Returns:
            0 on success, otherwise the milliseconds to wait.
        """
        now = self._clock()
        with self._lock:
            self._minute.refill(now)
            self._hour.refill(now)
            wait = max(self._minute.wait_ms(), self._hour.wait_ms())
            if wait:
                return wait
            self._minute.tokens -= 1
            self._hour.tokens -= 1
            return 0

    def acquire(self) -> None:
        """
        Consume one token or refuse the request.

        Raises:
            RateLimitExceededError: If either bucket is empty.
        """
        wait = self.try_acquire()
        if wait:
            raise errors.RateLimitExceededError(self.provider, retry_after_ms=wait)

    @property
    def remaining(self) -> int:
        """Whole requests left in the tighter of the two buckets."""
        now = self._clock()
        with self._lock:
            self._minute.refill(now)
            self._hour.refill(now)
            return int(min(self._minute.tokens, self._hour.tokens))
