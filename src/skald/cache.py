"""
URI-keyed content cache with per-entry TTL.

Expired entries are evicted lazily when they are looked up. An optional
size bound evicts the oldest entry on insert. Writes for the same URI
resolve last-write-wins.
"""

from __future__ import annotations

import collections as _collections
import dataclasses as _dataclasses
import logging as _logging
import time as _time
import typing as _typing

import skald.constants as _constants

_logger = _logging.getLogger(__name__)

Clock = _typing.Callable[[], float]
"""Returns the current time in milliseconds."""


def monotonic_ms() -> float:
    """Default clock: monotonic time in milliseconds."""
    return _time.monotonic() * 1000


@_dataclasses.dataclass(frozen=True)
class CacheEntry:
    """A cached piece of content."""

    uri: str
    content: str
    fetched_at: float
    """Clock time (ms) when the entry was stored."""

    ttl_ms: int

    def is_expired(self, now: float) -> bool:
        return now - self.fetched_at >= self.ttl_ms

    def expires_in_ms(self, now: float) -> float:
        return max(0.0, self.fetched_at + self.ttl_ms - now)


class ContentCache:
    """In-memory TTL cache keyed by resource URI."""

    def __init__(
        self,
        default_ttl_ms: int = _constants.DEFAULT_CONTENT_CACHE_TTL_MS,
        max_entries: int | None = None,
        clock: Clock | None = None,
    ) -> None:
        """
        Initialize the cache.

        Args:
            default_ttl_ms: TTL applied when set() is called without one.
            max_entries: Optional size bound (oldest entry evicted first).
            clock: Millisecond clock, injectable for tests.
        """
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.default_ttl_ms = default_ttl_ms
        self.max_entries = max_entries
        self._clock = clock or monotonic_ms
        self._entries: _collections.OrderedDict[str, CacheEntry] = _collections.OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, uri: object) -> bool:
        return isinstance(uri, str) and self.entry(uri) is not None

    def entry(self, uri: str) -> CacheEntry | None:
        """Return the live entry for a URI, evicting it if expired."""
        entry = self._entries.get(uri)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            _logger.debug("Cache entry expired: %s", uri)
            del self._entries[uri]
            return None
        return entry

    def get(self, uri: str) -> str | None:
        """Return cached content, or None on a miss or after expiry."""
        entry = self.entry(uri)
        return entry.content if entry is not None else None

    def set(self, uri: str, content: str, ttl_ms: int | None = None) -> CacheEntry:
        """Store content for a URI, replacing any previous entry."""
        entry = CacheEntry(
            uri=uri,
            content=content,
            fetched_at=self._clock(),
            ttl_ms=self.default_ttl_ms if ttl_ms is None else ttl_ms,
        )
        self._entries.pop(uri, None)
        self._entries[uri] = entry
        if self.max_entries is not None:
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                _logger.debug("Cache full, evicted %s", evicted)
        return entry

    def invalidate(self, uri: str) -> bool:
        """Remove one entry. Returns True if it was present."""
        return self._entries.pop(uri, None) is not None

    def clear(self) -> None:
        self._entries.clear()
