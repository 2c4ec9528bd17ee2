"""
GitHub repository provider.

Lists each configured repository's tree with one call:

    GET {api_url}/repos/{owner}/{repo}/git/trees/{branch}?recursive=1

and keeps markdown blobs under recognised category directories (agents/,
skills/, commands/, patterns/, ...). Repositories without any recognised
directory are treated as flat: every markdown file is a resource.

Identifiers are namespaced by repository, so agents/backend/api.md in
acme/resources becomes skald://agents/acme/resources/backend/api. Index
entries are metadata-only (built from the path and blob size); bodies are
fetched on demand from the raw content host.
"""

from __future__ import annotations

import asyncio as _asyncio
import dataclasses as _dataclasses
import logging as _logging
import math as _math
import pathlib as _pathlib
import time as _time
import typing as _typing

import httpx as _httpx

import skald.cache as cache_module
import skald.config.types as config_types
import skald.constants as _constants
import skald.errors as errors
import skald.fragments.fragment as fragment_module
import skald.fragments.index as index_module
import skald.providers.remote as remote
import skald.providers.types as types
import skald.uri as uri_module

_logger = _logging.getLogger(__name__)

GITHUB_ACCEPT = "application/vnd.github.v3+json"
LOW_RATE_LIMIT_WARNING = 10


@_dataclasses.dataclass(frozen=True)
class BlobLocation:
    """Where a resource lives in a repository."""

    owner: str
    repo: str
    branch: str
    path: str


def category_for_directory(name: str) -> fragment_module.Category | None:
    """Category of a top-level repository directory, or None if unrecognised."""
    return fragment_module.map_category(name, None)


class GitHubProvider(remote.RemoteProvider):
    """Remote provider backed by GitHub repositories."""

    def __init__(
        self,
        config: config_types.GitHubProviderConfig,
        *,
        scheme: str = _constants.DEFAULT_URI_SCHEME,
        client: _httpx.AsyncClient | None = None,
        clock: cache_module.Clock | None = None,
        sleep: remote.Sleep | None = None,
    ) -> None:
        super().__init__(config, client=client, clock=clock, sleep=sleep)
        self.scheme = scheme
        self._locations: dict[str, BlobLocation] = {}

    @property
    def github_config(self) -> config_types.GitHubProviderConfig:
        return _typing.cast(config_types.GitHubProviderConfig, self._config)

    @property
    def api_url(self) -> str:
        return (self._config.api_url or "https://api.github.com").rstrip("/")

    @property
    def health_url(self) -> str:
        return f"{self.api_url}/rate_limit"

    def _build_headers(self) -> dict[str, str]:
        headers = super()._build_headers()
        headers["Accept"] = GITHUB_ACCEPT
        return headers

    def tree_url(self, owner: str, repo: str) -> str:
        branch = self.github_config.branch
        return f"{self.api_url}/repos/{owner}/{repo}/git/trees/{branch}?recursive=1"

    def raw_url(self, location: BlobLocation) -> str:
        base_url = self.github_config.raw_url.rstrip("/")
        return f"{base_url}/{location.owner}/{location.repo}/{location.branch}/{location.path}"

    def fragments_from_tree(
        self,
        owner: str,
        repo: str,
        entries: _typing.Sequence[dict[str, _typing.Any]],
    ) -> list[tuple[fragment_module.ResourceFragment, BlobLocation]]:
        """
        Build metadata-only fragments from a repository tree listing.

        Args:
            owner: Repository owner.
            repo: Repository name.
            entries: The "tree" array of the trees API response.

        Returns:
            (fragment, location) pairs in tree order.
        """
        branch = self.github_config.branch
        blobs = [
            e
            for e in entries
            if e.get("type") == "blob"
            and str(e.get("path", "")).endswith(".md")
            and not any(part.startswith(".") for part in str(e["path"]).split("/"))
        ]
        top_dirs = {str(e["path"]).split("/")[0] for e in blobs if "/" in str(e["path"])}
        structured = any(category_for_directory(d) is not None for d in top_dirs)

        results = []
        for entry in blobs:
            path = str(entry["path"])
            parts = _pathlib.PurePosixPath(path).with_suffix("").parts
            category: fragment_module.Category | None = None
            if len(parts) > 1:
                category = category_for_directory(parts[0])
            if structured and category is None:
                continue

            id_parts = parts[1:] if category is not None else parts
            identifier = "/".join((owner, repo, *id_parts))
            category = category or fragment_module.DEFAULT_CATEGORY
            size = entry.get("size")

            fragment = fragment_module.ResourceFragment(
                uri=fragment_module.build_uri(self.scheme, category, identifier),
                id=identifier,
                category=category,
                tags=frozenset(p.lower() for p in id_parts[:-1]),
                estimated_tokens=(
                    _math.ceil(size / _constants.CHARS_PER_TOKEN)
                    if isinstance(size, int)
                    else None
                ),
                title=id_parts[-1].replace("-", " ").replace("_", " ").title(),
                description=f"{owner}/{repo}: {path}",
                source_path=f"{owner}/{repo}/{path}",
            )
            results.append((fragment, BlobLocation(owner, repo, branch, path)))
        return results

    async def _scan_repository(
        self,
        full_name: str,
    ) -> list[tuple[fragment_module.ResourceFragment, BlobLocation]]:
        owner, _, repo = full_name.partition("/")
        try:
            response = await self._request("GET", self.tree_url(owner, repo))
        except errors.NotFoundError as e:
            raise errors.ProviderUnavailableError(
                self.name, f"repository or branch not found: {full_name}"
            ) from e
        try:
            data = response.json()
        except ValueError as e:
            raise errors.ProviderUnavailableError(
                self.name, f"invalid tree listing for {full_name}"
            ) from e
        if data.get("truncated"):
            _logger.warning("Tree listing for %s is truncated", full_name)
        return self.fragments_from_tree(owner, repo, data.get("tree", []))

    async def _fetch_index(self) -> index_module.ResourceIndex:
        """
        Scan every repository concurrently.

        A repository that fails is skipped with a diagnostic; the provider
        fails only when every repository does. An exhausted rate limit
        fails the whole listing.
        """
        repos = list(self.github_config.repos)
        outcomes = await _asyncio.gather(
            *(self._scan_repository(r) for r in repos),
            return_exceptions=True,
        )

        pairs: list[tuple[fragment_module.ResourceFragment, BlobLocation]] = []
        failures: list[errors.ProviderError] = []
        for full_name, outcome in zip(repos, outcomes):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, errors.RateLimitExceededError) or not isinstance(
                    outcome, errors.ProviderError
                ):
                    raise outcome
                _logger.warning("Skipping repository %s in %s: %s", full_name, self.name, outcome)
                failures.append(outcome)
                continue
            pairs.extend(outcome)
        if repos and len(failures) == len(repos):
            raise failures[0]

        index = index_module.make_index(self.name, (f for f, _ in pairs), diagnostics=failures)
        for problem in index.diagnostics[len(failures):]:
            _logger.warning("Degraded resource in %s: %s", self.name, problem)

        locations: dict[str, BlobLocation] = {}
        for fragment, location in pairs:
            locations.setdefault(fragment.uri, location)
        self._locations = locations
        self._warn_if_low()
        return index

    async def _fetch_content(self, uri: str) -> str:
        parsed = uri_module.parse_uri(uri, self.scheme)
        if not isinstance(parsed, uri_module.StaticURI):
            raise errors.InvalidURIError(uri, "expected a static resource URI")
        if not self._index_is_fresh():
            await self.list_index()
        location = self._locations.get(parsed.canonical)
        if location is None:
            raise errors.NotFoundError(self.name, uri)
        response = await self._request("GET", self.raw_url(location))
        return response.text

    async def health_check(self) -> types.ProviderHealth:
        """Query /rate_limit, which also records the authoritative budget."""
        started = _time.monotonic()
        try:
            response = await self._request("GET", self.health_url, retries=0)
        except errors.RateLimitExceededError as e:
            return self._health(types.HealthStatus.DEGRADED, started, str(e))
        except errors.ProviderError as e:
            return self._health(types.HealthStatus.UNAVAILABLE, started, str(e))

        try:
            rate = response.json().get("rate", {})
        except ValueError:
            rate = {}
        remaining = rate.get("remaining")
        if isinstance(remaining, int):
            self._server_remaining = remaining
            reset = rate.get("reset")
            self._tracker.record_rate_limit(
                remaining, float(reset) if isinstance(reset, int) else None
            )
            if remaining == 0:
                return self._health(
                    types.HealthStatus.DEGRADED, started, "GitHub rate limit exhausted"
                )
        return self._health(types.HealthStatus.HEALTHY, started)

    def _health(
        self,
        status: types.HealthStatus,
        started: float,
        error: str | None = None,
    ) -> types.ProviderHealth:
        return types.ProviderHealth(
            provider=self.name,
            status=status,
            last_checked_at=_time.time(),
            response_time_ms=(_time.monotonic() - started) * 1000,
            error=error,
        )

    def _warn_if_low(self) -> None:
        if self._server_remaining is not None and self._server_remaining < LOW_RATE_LIMIT_WARNING:
            _logger.warning(
                "GitHub rate limit low for %s: %d requests remaining",
                self.name,
                self._server_remaining,
            )
