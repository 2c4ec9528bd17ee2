"""Tests for the URI-keyed content cache."""

import pytest as _pytest

import skald.cache as cache


class TestContentCache:
    """Tests for ContentCache TTL and eviction."""

    def test_hit_within_ttl(self, clock) -> None:
        """Content is served until the TTL elapses."""
        c = cache.ContentCache(default_ttl_ms=1000, clock=clock)
        c.set("skald://skills/a", "A")

        clock.advance(999)

        assert c.get("skald://skills/a") == "A"
        assert "skald://skills/a" in c

    def test_miss_after_expiry(self, clock) -> None:
        """Expired entries are evicted on lookup."""
        c = cache.ContentCache(default_ttl_ms=1000, clock=clock)
        c.set("skald://skills/a", "A")

        clock.advance(1000)

        assert c.get("skald://skills/a") is None
        assert len(c) == 0

    def test_per_entry_ttl(self, clock) -> None:
        """An explicit TTL overrides the default."""
        c = cache.ContentCache(default_ttl_ms=1000, clock=clock)
        entry = c.set("u", "x", ttl_ms=10)

        assert entry.expires_in_ms(clock()) == 10
        clock.advance(10)
        assert c.get("u") is None

    def test_last_write_wins(self, clock) -> None:
        """A second write replaces content and restarts the TTL."""
        c = cache.ContentCache(default_ttl_ms=100, clock=clock)
        c.set("u", "old")
        clock.advance(90)
        c.set("u", "new")
        clock.advance(50)

        assert c.get("u") == "new"

    def test_size_bound_evicts_oldest(self, clock) -> None:
        """Inserting past max_entries drops the oldest entry."""
        c = cache.ContentCache(default_ttl_ms=1000, max_entries=2, clock=clock)
        c.set("a", "1")
        c.set("b", "2")
        c.set("c", "3")

        assert c.get("a") is None
        assert c.get("b") == "2"
        assert c.get("c") == "3"

    def test_invalidate_and_clear(self, clock) -> None:
        """Entries can be removed individually or all at once."""
        c = cache.ContentCache(clock=clock)
        c.set("a", "1")
        c.set("b", "2")

        assert c.invalidate("a") is True
        assert c.invalidate("a") is False
        c.clear()
        assert len(c) == 0

    def test_rejects_non_positive_bound(self) -> None:
        """max_entries must be at least one."""
        with _pytest.raises(ValueError):
            cache.ContentCache(max_entries=0)
