"""Tests for LocalProvider."""

import asyncio as _asyncio
import pathlib as _pathlib

import pytest as _pytest

import skald.config.types as config_types
import skald.errors as errors
import skald.providers.local as local
import skald.providers.types as provider_types


def _provider(root: _pathlib.Path, **kwargs) -> local.LocalProvider:
    return local.LocalProvider(config_types.LocalProviderConfig(resources_path=root), **kwargs)


class TestLocalIndex:
    """Tests for list_index."""

    @_pytest.mark.asyncio
    async def test_lists_resources(self, resource_tree: _pathlib.Path) -> None:
        """The index covers the resource tree."""
        provider = _provider(resource_tree)

        idx = await provider.list_index()

        assert len(idx) == 5
        assert provider.name == "local"
        assert provider.priority == 0

    @_pytest.mark.asyncio
    async def test_concurrent_callers_share_build(self, resource_tree: _pathlib.Path) -> None:
        """Concurrent list_index() calls build once."""
        provider = _provider(resource_tree)

        results = await _asyncio.gather(*(provider.list_index() for _ in range(5)))

        assert provider.builder.build_count == 1
        assert all(r is results[0] for r in results)

    @_pytest.mark.asyncio
    async def test_stats_hits_and_misses(self, resource_tree: _pathlib.Path) -> None:
        """The first load is a miss; later loads are hits."""
        provider = _provider(resource_tree)

        await provider.list_index()
        await provider.list_index()

        stats = provider.stats()
        assert stats.cache_misses == 1
        assert stats.cache_hits == 1
        assert stats.resources_fetched == 5

    @_pytest.mark.asyncio
    async def test_missing_root(self, tmp_path: _pathlib.Path) -> None:
        """A missing root makes the provider unavailable."""
        provider = _provider(tmp_path / "nope")

        with _pytest.raises(errors.ProviderUnavailableError):
            await provider.list_index()

        assert provider.stats().failed_requests == 1

    @_pytest.mark.asyncio
    async def test_invalidate_rebuilds(self, resource_tree: _pathlib.Path, write_doc) -> None:
        """invalidate() picks up new documents."""
        provider = _provider(resource_tree)
        await provider.list_index()
        write_doc(resource_tree, "agents/reviewer.md", "Reviews code.")

        provider.invalidate()
        idx = await provider.list_index()

        assert idx.by_uri("skald://agents/reviewer") is not None


class TestLocalContent:
    """Tests for fetch_content."""

    @_pytest.mark.asyncio
    async def test_returns_body(self, resource_tree: _pathlib.Path) -> None:
        """Content is the document body without frontmatter."""
        provider = _provider(resource_tree)

        content = await provider.fetch_content("skald://agents/typescript-developer")

        assert content.startswith("# TypeScript Developer")
        assert "estimatedTokens" not in content

    @_pytest.mark.asyncio
    async def test_singular_category_accepted(self, resource_tree: _pathlib.Path) -> None:
        """Singular and plural category forms address the same resource."""
        provider = _provider(resource_tree)

        plural = await provider.fetch_content("skald://skills/api/rest-design")
        singular = await provider.fetch_content("skald://skill/api/rest-design")

        assert plural == singular
        assert provider.stats().cache_hits == 1

    @_pytest.mark.asyncio
    async def test_not_found(self, resource_tree: _pathlib.Path) -> None:
        """Unknown resources raise NotFoundError."""
        provider = _provider(resource_tree)

        with _pytest.raises(errors.NotFoundError):
            await provider.fetch_content("skald://skills/missing")

    @_pytest.mark.asyncio
    async def test_anonymous_not_addressable(self, resource_tree: _pathlib.Path) -> None:
        """Content-hash URIs of anonymous documents cannot be fetched."""
        provider = _provider(resource_tree)

        with _pytest.raises(errors.NotFoundError):
            await provider.fetch_content("skald://skills/_anon/0123456789ab")

    @_pytest.mark.asyncio
    async def test_dynamic_uri_rejected(self, resource_tree: _pathlib.Path) -> None:
        """Match URIs are not content."""
        provider = _provider(resource_tree)

        with _pytest.raises(errors.InvalidURIError):
            await provider.fetch_content("skald://match?query=api")

    @_pytest.mark.asyncio
    async def test_custom_scheme(self, resource_tree: _pathlib.Path) -> None:
        """A custom scheme is used for parsing and for fragment URIs."""
        provider = _provider(resource_tree, scheme="o8")

        idx = await provider.list_index()
        content = await provider.fetch_content("o8://workflows/release")

        assert idx.by_uri("o8://workflows/release") is not None
        assert content == "Cut a release."


class TestLocalHealth:
    """Tests for health_check."""

    @_pytest.mark.asyncio
    async def test_healthy(self, resource_tree: _pathlib.Path) -> None:
        """A readable root is healthy."""
        health = await _provider(resource_tree).health_check()
        assert health.status is provider_types.HealthStatus.HEALTHY

    @_pytest.mark.asyncio
    async def test_unavailable(self, tmp_path: _pathlib.Path) -> None:
        """A missing root is unavailable."""
        health = await _provider(tmp_path / "nope").health_check()

        assert health.status is provider_types.HealthStatus.UNAVAILABLE
        assert health.error is not None
