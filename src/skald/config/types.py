"""Configuration type definitions for Skald providers.

These are config section types nested within the main Settings class:
- RateLimitConfig: per_minute, per_hour
- AuthConfig: token, type
- ProviderConfig: shared provider fields (priority, timeout, cache TTL, ...)
- LocalProviderConfig / CatalogProviderConfig / GitHubProviderConfig
- ProvidersConfig: the three provider sections

Design decision: All types use `extra="allow"` to preserve unknown fields.
Use `get_extra_fields()` / `collect_all_extra_fields()` to audit for typos.
"""

import pathlib as _pathlib
import typing as _typing

import pydantic as _pydantic

import skald.constants as _constants

# =============================================================================
# Base class with introspection
# =============================================================================


class ConfigBase(_pydantic.BaseModel):
    """
    Base class for all config types.

    All config types use `extra="allow"` so unknown fields are preserved
    rather than silently dropped. This enables auditing for typos.
    """

    model_config = _pydantic.ConfigDict(extra="allow")

    def get_extra_fields(self) -> dict[str, _typing.Any]:
        """
        Return fields that were provided but not in the schema.

        Returns:
            Dict of field_name → value for all unrecognized fields.
        """
        return dict(self.model_extra) if self.model_extra else {}

    def has_extra_fields(self) -> bool:
        """Check if this config has any unrecognized fields."""
        return bool(self.model_extra)

    def collect_all_extra_fields(
        self,
        prefix: str = "",
    ) -> dict[str, _typing.Any]:
        """
        Recursively collect extra fields from this config and nested configs.

        Returns a flat dict with dotted paths as keys, e.g.:
            {"github.enbaled": True, "local.rate_limit.per_minit": 5}

        Args:
            prefix: Dotted path prefix (used in recursion).

        Returns:
            Flat dict of path → value for all unrecognized fields.
        """
        result: dict[str, _typing.Any] = {}

        for key, value in self.get_extra_fields().items():
            path = f"{prefix}.{key}" if prefix else key
            result[path] = value

        for field_name in self.__class__.model_fields:
            value = getattr(self, field_name, None)
            child_prefix = f"{prefix}.{field_name}" if prefix else field_name
            if isinstance(value, ConfigBase):
                result.update(value.collect_all_extra_fields(child_prefix))

        return result


# =============================================================================
# Shared provider sections
# =============================================================================


class RateLimitConfig(ConfigBase):
    """
    Client-side request budget.

    YAML section: providers.<name>.rate_limit.*
    """

    per_minute: int = _pydantic.Field(default=_constants.DEFAULT_RATE_LIMIT_PER_MINUTE, ge=1)
    """Maximum requests in any one-minute window."""

    per_hour: int = _pydantic.Field(default=_constants.DEFAULT_RATE_LIMIT_PER_HOUR, ge=1)
    """Maximum requests in any one-hour window."""


class AuthConfig(ConfigBase):
    """
    Credentials for a remote provider.

    YAML section: providers.<name>.auth.*
    """

    token: str = _pydantic.Field(min_length=1, repr=False)
    """Bearer token (never logged)."""

    type: _typing.Literal["personal", "oauth"] = "personal"


class ProviderConfig(ConfigBase):
    """
    Configuration shared by every provider.

    Keys:
        name: Registry name (defaults to the provider type)
        enabled: Whether the provider takes part in fan-out
        priority: Lower is consulted first and wins ties
        cache_ttl_ms: TTL for cached indexes and content
        timeout_ms: Deadline for a single provider call
        rate_limit: Client-side request budget (None = unlimited)
        retry_attempts / retry_backoff_ms: Remote retry policy
    """

    type: str
    """Provider implementation: local, catalog, github."""

    name: str | None = None
    """Registry name. Defaults to `type`."""

    enabled: bool = True
    priority: int = _pydantic.Field(default=_constants.DEFAULT_REMOTE_PRIORITY, ge=0)

    cache_ttl_ms: int = _pydantic.Field(default=_constants.DEFAULT_CACHE_TTL_MS, ge=0)
    """TTL for cached indexes and content, in milliseconds."""

    timeout_ms: int = _pydantic.Field(default=_constants.DEFAULT_TIMEOUT_MS, ge=1)
    """Per-call deadline, in milliseconds."""

    rate_limit: RateLimitConfig | None = _pydantic.Field(default_factory=RateLimitConfig)
    """Client-side rate limit. None disables rate limiting."""

    api_url: str | None = None
    """Base URL for remote providers."""

    auth: AuthConfig | None = None

    retry_attempts: int = _pydantic.Field(default=_constants.DEFAULT_RETRY_ATTEMPTS, ge=0)
    """Retries after the first attempt for transport errors and 5xx responses."""

    retry_backoff_ms: int = _pydantic.Field(default=_constants.DEFAULT_RETRY_BACKOFF_MS, ge=0)
    """Base delay for exponential backoff between retries."""

    @property
    def provider_name(self) -> str:
        """Effective registry name."""
        return self.name or self.type


class LocalProviderConfig(ProviderConfig):
    """
    Local filesystem provider.

    YAML section: providers.local.*
    """

    type: _typing.Literal["local"] = "local"
    priority: int = _pydantic.Field(default=_constants.LOCAL_PROVIDER_PRIORITY, ge=0)
    rate_limit: RateLimitConfig | None = None

    resources_path: _pathlib.Path = _pathlib.Path("resources")
    """Root directory holding agents/, skills/, workflows/, examples/."""


class CatalogProviderConfig(ProviderConfig):
    """
    Curated template catalog (components.json style).

    YAML section: providers.catalog.*
    """

    type: _typing.Literal["catalog"] = "catalog"
    api_url: str | None = (
        "https://raw.githubusercontent.com/davila7/claude-code-templates/main/docs"
    )
    catalog_path: str = "components.json"
    """Path of the catalog document relative to api_url."""


class GitHubProviderConfig(ProviderConfig):
    """
    GitHub-hosted resource repositories.

    YAML section: providers.github.*
    """

    type: _typing.Literal["github"] = "github"
    enabled: bool = False
    priority: int = _pydantic.Field(default=_constants.DEFAULT_REMOTE_PRIORITY + 5, ge=0)
    api_url: str | None = "https://api.github.com"
    raw_url: str = "https://raw.githubusercontent.com"

    repos: list[str] = _pydantic.Field(default_factory=list)
    """Repositories as 'owner/repo'."""

    branch: str = "main"

    @_pydantic.field_validator("repos", mode="before")
    @classmethod
    def _split_repos(cls, value: _typing.Any) -> _typing.Any:
        if isinstance(value, str):
            return [r.strip() for r in value.split(",") if r.strip()]
        return value

    @_pydantic.field_validator("repos")
    @classmethod
    def _check_repos(cls, value: list[str]) -> list[str]:
        for repo in value:
            owner, _, name = repo.partition("/")
            if not owner or not name or "/" in name:
                raise ValueError(f"Repository must be 'owner/repo', got {repo!r}")
        return value


class ProvidersConfig(ConfigBase):
    """
    Provider-related configuration.

    YAML section: providers.*

    YAML shape:
        providers:
          local:
            resources_path: ./resources
          catalog:
            enabled: false
          github:
            enabled: true
            repos: [acme/agent-resources]
    """

    local: LocalProviderConfig = _pydantic.Field(default_factory=LocalProviderConfig)
    catalog: CatalogProviderConfig = _pydantic.Field(default_factory=CatalogProviderConfig)
    github: GitHubProviderConfig = _pydantic.Field(default_factory=GitHubProviderConfig)

    def all(self) -> list[ProviderConfig]:
        """Every provider section, enabled or not."""
        return [self.local, self.catalog, self.github]
