"""Tests for GitHubProvider (trees API listing, raw content, rate limit health)."""

import json as _json
import logging as _logging
import typing as _typing

import httpx as _httpx
import pytest as _pytest

import skald.config.types as config_types
import skald.errors as errors
import skald.fragments.fragment as fragment
import skald.providers.github as github
import skald.providers.types as provider_types

STRUCTURED_TREE = {
    "sha": "abc",
    "truncated": False,
    "tree": [
        {"path": "agents", "type": "tree"},
        {"path": "agents/backend/api-architect.md", "type": "blob", "size": 400},
        {"path": "skills/testing/tdd.md", "type": "blob", "size": 90},
        {"path": "skills/notes.txt", "type": "blob", "size": 10},
        {"path": "commands/release.md", "type": "blob"},
        {"path": "docs/guide.md", "type": "blob", "size": 50},
        {"path": "README.md", "type": "blob", "size": 50},
        {"path": ".github/template.md", "type": "blob", "size": 50},
    ],
}

FLAT_TREE = {
    "tree": [
        {"path": "intro.md", "type": "blob", "size": 40},
        {"path": "tips/deploy.md", "type": "blob", "size": 80},
    ]
}


class _GitHubStub:
    """Routes trees, raw and rate_limit requests."""

    def __init__(self) -> None:
        self.trees: dict[str, _typing.Any] = {"acme/resources": STRUCTURED_TREE}
        self.raw: dict[str, str] = {}
        self.rate: dict[str, int] = {"remaining": 4999, "reset": 1700000000}
        self.requests: list[_httpx.Request] = []

    def __call__(self, request: _httpx.Request) -> _httpx.Response:
        self.requests.append(request)
        url = request.url
        if url.host == "raw.test":
            text = self.raw.get(url.path)
            return _httpx.Response(200, text=text) if text is not None else _httpx.Response(404)
        if url.path == "/rate_limit":
            return _httpx.Response(200, content=_json.dumps({"rate": self.rate}))
        for full_name, tree in self.trees.items():
            if url.path == f"/repos/{full_name}/git/trees/main":
                assert url.params["recursive"] == "1"
                if isinstance(tree, int):
                    return _httpx.Response(tree)
                return _httpx.Response(200, content=_json.dumps(tree))
        return _httpx.Response(404)


@_pytest.fixture
def stub() -> _GitHubStub:
    return _GitHubStub()


@_pytest.fixture
def make_github(stub, clock):
    """Factory: make_github(**config_overrides)."""

    async def no_sleep(seconds: float) -> None:
        return None

    def factory(**overrides) -> github.GitHubProvider:
        values = {
            "enabled": True,
            "repos": ["acme/resources"],
            "api_url": "https://gh.test",
            "raw_url": "https://raw.test",
            "retry_attempts": 1,
            "retry_backoff_ms": 10,
            **overrides,
        }
        config = config_types.GitHubProviderConfig(**values)
        client = _httpx.AsyncClient(transport=_httpx.MockTransport(stub))
        return github.GitHubProvider(config, client=client, clock=clock, sleep=no_sleep)

    return factory


class TestFragmentsFromTree:
    """Tests for building fragments from a tree listing."""

    def test_structured_repository(self, make_github) -> None:
        """Only markdown under recognised directories is kept."""
        provider = make_github()
        pairs = provider.fragments_from_tree("acme", "resources", STRUCTURED_TREE["tree"])

        uris = [f.uri for f, _ in pairs]
        assert uris == [
            "skald://agents/acme/resources/backend/api-architect",
            "skald://skills/acme/resources/testing/tdd",
            "skald://workflows/acme/resources/release",
        ]

    def test_metadata_from_path(self, make_github) -> None:
        """Tags come from subdirectories and size gives the token estimate."""
        provider = make_github()
        pairs = provider.fragments_from_tree("acme", "resources", STRUCTURED_TREE["tree"])
        architect, location = pairs[0]

        assert architect.category is fragment.Category.AGENT
        assert architect.id == "acme/resources/backend/api-architect"
        assert architect.tags == frozenset({"backend"})
        assert architect.estimated_tokens == 100
        assert architect.title == "Api Architect"
        assert architect.body == ""
        assert location == github.BlobLocation(
            "acme", "resources", "main", "agents/backend/api-architect.md"
        )
        assert pairs[2][0].estimated_tokens is None

    def test_flat_repository(self, make_github) -> None:
        """Repositories without category directories keep every document as a skill."""
        provider = make_github()
        pairs = provider.fragments_from_tree("acme", "tips", FLAT_TREE["tree"])

        assert [f.uri for f, _ in pairs] == [
            "skald://skills/acme/tips/intro",
            "skald://skills/acme/tips/tips/deploy",
        ]
        assert pairs[1][0].tags == frozenset({"tips"})


class TestGitHubIndex:
    """Tests for list_index over several repositories."""

    @_pytest.mark.asyncio
    async def test_lists_all_repositories(self, make_github, stub) -> None:
        """Every configured repository contributes to one index."""
        stub.trees["acme/flat"] = FLAT_TREE
        provider = make_github(repos="acme/resources, acme/flat")

        idx = await provider.list_index()

        assert len(idx) == 5
        assert idx.provider == "github"

    @_pytest.mark.asyncio
    async def test_missing_repository_is_unavailable(self, make_github) -> None:
        """A 404 on the tree means the configuration is wrong."""
        provider = make_github(repos=["acme/missing"])

        with _pytest.raises(errors.ProviderUnavailableError):
            await provider.list_index()

    @_pytest.mark.asyncio
    async def test_missing_repository_is_skipped(self, make_github, stub, caplog) -> None:
        """One missing repository does not hide the others."""
        stub.raw["/acme/resources/main/skills/testing/tdd.md"] = "# TDD"
        provider = make_github(repos=["acme/resources", "acme/gone"])

        with caplog.at_level(_logging.WARNING, logger="skald.providers.github"):
            idx = await provider.list_index()

        assert idx.by_uri("skald://skills/acme/resources/testing/tdd") is not None
        assert len(idx) == 3
        assert len(idx.diagnostics) == 1
        assert isinstance(idx.diagnostics[0], errors.ProviderUnavailableError)
        assert "acme/gone" in str(idx.diagnostics[0])
        assert "acme/gone" in caplog.text
        assert await provider.fetch_content("skald://skills/acme/resources/testing/tdd") == "# TDD"

    @_pytest.mark.asyncio
    async def test_server_error_in_one_repository_is_skipped(self, make_github, stub) -> None:
        """A repository that keeps failing with 5xx is skipped like a missing one."""
        stub.trees["acme/broken"] = 502
        provider = make_github(repos=["acme/broken", "acme/resources"])

        idx = await provider.list_index()

        assert len(idx) == 3
        assert len(idx.diagnostics) == 1

    @_pytest.mark.asyncio
    async def test_rate_limit_fails_listing(self, make_github, stub) -> None:
        """An exhausted server budget fails the whole listing."""
        stub.trees["acme/limited"] = 429
        provider = make_github(repos=["acme/resources", "acme/limited"])

        with _pytest.raises(errors.RateLimitExceededError):
            await provider.list_index()

    @_pytest.mark.asyncio
    async def test_same_path_in_two_repositories(self, make_github, stub) -> None:
        """Identifiers include owner/repo, so equal paths stay distinct."""
        stub.trees["acme/mirror"] = STRUCTURED_TREE
        stub.raw["/acme/mirror/main/skills/testing/tdd.md"] = "# Mirror TDD"
        provider = make_github(repos=["acme/resources", "acme/mirror"])

        idx = await provider.list_index()

        assert len(idx) == 6
        assert idx.diagnostics == ()
        content = await provider.fetch_content("skald://skills/acme/mirror/testing/tdd")
        assert content == "# Mirror TDD"

    @_pytest.mark.asyncio
    async def test_truncated_tree_warns(self, make_github, stub, caplog) -> None:
        """A truncated listing is logged."""
        stub.trees["acme/resources"] = {**STRUCTURED_TREE, "truncated": True}
        provider = make_github()

        with caplog.at_level(_logging.WARNING, logger="skald.providers.github"):
            await provider.list_index()

        assert "truncated" in caplog.text


class TestGitHubContent:
    """Tests for fetching raw content."""

    @_pytest.mark.asyncio
    async def test_fetches_raw_file(self, make_github, stub) -> None:
        """Content comes from the raw host at the blob's path."""
        stub.raw["/acme/resources/main/skills/testing/tdd.md"] = "# TDD\n\nRed, green."
        provider = make_github()

        content = await provider.fetch_content("skald://skills/acme/resources/testing/tdd")

        assert content == "# TDD\n\nRed, green."
        assert str(stub.requests[-1].url) == (
            "https://raw.test/acme/resources/main/skills/testing/tdd.md"
        )

    @_pytest.mark.asyncio
    async def test_unknown_uri(self, make_github) -> None:
        """URIs missing from the tree are not found."""
        provider = make_github()

        with _pytest.raises(errors.NotFoundError):
            await provider.fetch_content("skald://skills/missing")

    @_pytest.mark.asyncio
    async def test_dynamic_uri_rejected(self, make_github) -> None:
        """Only static URIs can be fetched."""
        provider = make_github()

        with _pytest.raises(errors.InvalidURIError):
            await provider.fetch_content("skald://match?query=x")


class TestGitHubHealth:
    """Tests for the /rate_limit health check."""

    @_pytest.mark.asyncio
    async def test_healthy_records_budget(self, make_github) -> None:
        """The check records the server's remaining budget."""
        provider = make_github()

        health = await provider.health_check()

        assert health.status is provider_types.HealthStatus.HEALTHY
        assert provider.stats().rate_limit_remaining == 4999
        assert provider.stats().rate_limit_reset_at == 1700000000.0

    @_pytest.mark.asyncio
    async def test_exhausted_budget_degraded(self, make_github, stub) -> None:
        """A zero remaining budget is degraded, not unavailable."""
        stub.rate = {"remaining": 0, "reset": 1700000000}
        provider = make_github()

        health = await provider.health_check()

        assert health.status is provider_types.HealthStatus.DEGRADED
        assert health.is_available


class TestGitHubHeaders:
    """Tests for request headers."""

    def test_accept_and_auth(self) -> None:
        """GitHub requests use the v3 media type and bearer auth."""
        provider = github.GitHubProvider(
            config_types.GitHubProviderConfig(auth=config_types.AuthConfig(token="ghp_x"))
        )

        headers = provider._build_headers()

        assert headers["Accept"] == github.GITHUB_ACCEPT
        assert headers["Authorization"] == "Bearer ghp_x"
        assert "ghp_x" not in repr(provider.config)
