"""
Shared pytest fixtures for Skald tests.

This file is automatically loaded by pytest. Fixtures defined here are
available to all test files without explicit imports.
"""

import asyncio as _asyncio
import os as _os
import pathlib as _pathlib
import textwrap as _textwrap
import time as _time
import typing as _typing
import unittest.mock as _mock

import pytest as _pytest

import skald.config as config
import skald.errors as errors
import skald.fragments.fragment as fragment_module
import skald.fragments.index as index_module
import skald.providers.base as providers_base
import skald.providers.types as provider_types


@_pytest.fixture
def clean_env() -> dict[str, str]:
    """
    Return environment dict with SKALD_ keys removed.

    Use with mock.patch.dict to isolate tests from the actual environment.
    """
    return {k: v for k, v in _os.environ.items() if not k.startswith("SKALD_")}


@_pytest.fixture
def isolated_env(clean_env: dict[str, str]):
    """
    Context manager that isolates tests from environment variables.

    Usage:
        def test_something(isolated_env):
            with isolated_env:
                settings = config.Settings.construct_without_dotenv()
    """
    return _mock.patch.dict(_os.environ, clean_env, clear=True)


@_pytest.fixture
def clean_settings(isolated_env) -> config.Settings:
    """Settings instance isolated from environment and .env file."""
    with isolated_env:
        return config.Settings.construct_without_dotenv()


# =============================================================================
# Document trees
# =============================================================================


def write_document(root: _pathlib.Path, relative: str, content: str) -> _pathlib.Path:
    """Write a document (dedented) under root, creating parent directories."""
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(_textwrap.dedent(content).lstrip(), encoding="utf-8")
    return path


@_pytest.fixture
def write_doc() -> _typing.Callable[[_pathlib.Path, str, str], _pathlib.Path]:
    """Fixture form of write_document."""
    return write_document


@_pytest.fixture
def resource_tree(tmp_path: _pathlib.Path) -> _pathlib.Path:
    """
    A small resource root:

        agents/typescript-developer.md
        skills/api/rest-design.md
        skills/diagrams.md
        workflows/release.md
        examples/express-server.md
    """
    root = tmp_path / "resources"
    write_document(
        root,
        "agents/typescript-developer.md",
        """
        ---
        id: typescript-developer
        title: TypeScript Developer
        description: Expert TypeScript engineer
        tags: [typescript, api]
        useWhen:
          - Building TypeScript REST APIs
        capabilities:
          - Type-safe API design
        estimatedTokens: 800
        ---
        # TypeScript Developer

        Writes strict TypeScript.
        """,
    )
    write_document(
        root,
        "skills/api/rest-design.md",
        """
        ---
        title: REST Design
        tags: rest, api, http
        ---
        # REST Design

        Resource naming and status codes.
        """,
    )
    write_document(
        root,
        "skills/diagrams.md",
        """
        # Diagrams

        ## Tags
        - diagrams
        - mermaid

        ## When to Use
        - Build diagrams for architecture docs

        ## Capabilities
        - Sequence diagrams
        """,
    )
    write_document(
        root,
        "workflows/release.md",
        """
        ---
        id: release
        tags: [release, git]
        ---
        Cut a release.
        """,
    )
    write_document(
        root,
        "examples/express-server.md",
        """
        ---
        id: express-server
        tags: [javascript, express]
        ---
        const app = express();
        """,
    )
    return root


# =============================================================================
# Clock
# =============================================================================


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@_pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# =============================================================================
# Fake provider
# =============================================================================


def make_fragment(
    identifier: str,
    *,
    category: fragment_module.Category = fragment_module.Category.SKILL,
    tags: _typing.Iterable[str] = (),
    use_when: _typing.Iterable[str] = (),
    body: str = "",
    estimated_tokens: int | None = 100,
    title: str | None = None,
) -> fragment_module.ResourceFragment:
    """Build a fragment with a canonical skald:// URI."""
    return fragment_module.ResourceFragment(
        uri=fragment_module.build_uri("skald", category, identifier),
        id=identifier,
        category=category,
        body=body,
        tags=frozenset(tags),
        use_when=tuple(use_when),
        estimated_tokens=estimated_tokens,
        title=title,
    )


class FakeProvider(providers_base.ResourceProvider):
    """
    In-memory provider for registry and loader tests.

    Attributes:
        delay: Seconds each list_index() call sleeps before answering.
        error: Exception raised by list_index() / fetch_content() when set.
        health: Health result returned by health_check() when set.
    """

    def __init__(
        self,
        name: str,
        fragments: _typing.Sequence[fragment_module.ResourceFragment] = (),
        *,
        priority: int = 10,
        timeout_ms: int = 1000,
        enabled: bool = True,
        delay: float = 0.0,
        contents: dict[str, str] | None = None,
    ) -> None:
        super().__init__(
            config.ProviderConfig(
                type="fake",
                name=name,
                priority=priority,
                timeout_ms=timeout_ms,
                enabled=enabled,
            )
        )
        self.fragments = list(fragments)
        self.delay = delay
        self.error: Exception | None = None
        self.health: provider_types.ProviderHealth | None = None
        self.contents = contents if contents is not None else {}
        self.list_calls = 0
        self.fetch_calls = 0
        self.health_calls = 0
        self.closed = False

    async def list_index(self) -> index_module.ResourceIndex:
        self.list_calls += 1
        if self.delay:
            await _asyncio.sleep(self.delay)
        if self.error is not None:
            self.tracker.record_failure(cache_miss=True)
            raise self.error
        self.tracker.record_success(1.0, cache_miss=True, resources=len(self.fragments))
        return index_module.make_index(self.name, self.fragments)

    async def fetch_content(self, uri: str) -> str:
        self.fetch_calls += 1
        if self.error is not None:
            raise self.error
        if uri not in self.contents:
            raise errors.NotFoundError(self.name, uri)
        self.tracker.record_success(1.0, cache_miss=True, resources=1)
        return self.contents[uri]

    async def health_check(self) -> provider_types.ProviderHealth:
        self.health_calls += 1
        if self.health is not None:
            return self.health
        return provider_types.ProviderHealth(
            provider=self.name,
            status=provider_types.HealthStatus.HEALTHY,
            last_checked_at=_time.time(),
        )

    async def aclose(self) -> None:
        self.closed = True


@_pytest.fixture
def fake_provider_factory() -> _typing.Callable[..., FakeProvider]:
    """Factory fixture: fake_provider_factory("remote", [fragment], delay=1.0)."""
    return FakeProvider


@_pytest.fixture
def fragment_factory() -> _typing.Callable[..., fragment_module.ResourceFragment]:
    """Factory fixture for fragments (see make_fragment)."""
    return make_fragment
