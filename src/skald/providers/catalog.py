"""
Curated template catalog provider.

The catalog is a single JSON document (components.json) listing
components, each with its full markdown content:

    {"agents": [{"name": "api-designer", "type": "agent",
                 "category": "development", "path": "...",
                 "content": "---\\n...", "description": "..."}], ...}

Accepted shapes: a bare list of components, an object with a
"components" list, or an object whose values are component lists.
"""

from __future__ import annotations

import dataclasses as _dataclasses
import logging as _logging
import typing as _typing

import httpx as _httpx
import pydantic as _pydantic

import skald.cache as cache_module
import skald.config.types as config_types
import skald.constants as _constants
import skald.errors as errors
import skald.fragments.fragment as fragment_module
import skald.fragments.index as index_module
import skald.providers.remote as remote
import skald.uri as uri_module

_logger = _logging.getLogger(__name__)


class CatalogComponent(_pydantic.BaseModel):
    """One component entry of the catalog."""

    model_config = _pydantic.ConfigDict(extra="ignore")

    name: str = _pydantic.Field(min_length=1)
    type: str = "skill"
    category: str | None = None
    """Catalog grouping (e.g. 'development'), used as a fallback tag."""

    path: str | None = None
    content: str = ""
    description: str | None = None
    downloads: int = 0


def extract_components(data: _typing.Any) -> list[dict[str, _typing.Any]]:
    """
    Pull the raw component list out of a catalog document.

    Raises:
        ValueError: If no component list can be found.
    """
    if isinstance(data, list):
        return [c for c in data if isinstance(c, dict)]
    if isinstance(data, dict):
        if isinstance(data.get("components"), list):
            return [c for c in data["components"] if isinstance(c, dict)]
        components: list[dict[str, _typing.Any]] = []
        for value in data.values():
            if isinstance(value, list):
                components.extend(c for c in value if isinstance(c, dict))
        if components:
            return components
    raise ValueError("catalog contains no component list")


class CatalogProvider(remote.RemoteProvider):
    """Remote provider backed by a components.json catalog."""

    def __init__(
        self,
        config: config_types.CatalogProviderConfig,
        *,
        scheme: str = _constants.DEFAULT_URI_SCHEME,
        client: _httpx.AsyncClient | None = None,
        clock: cache_module.Clock | None = None,
        sleep: remote.Sleep | None = None,
    ) -> None:
        super().__init__(config, client=client, clock=clock, sleep=sleep)
        self.scheme = scheme
        self._documents: dict[str, str] = {}

    @property
    def catalog_url(self) -> str:
        config = _typing.cast(config_types.CatalogProviderConfig, self._config)
        base_url = (config.api_url or "").rstrip("/")
        return f"{base_url}/{config.catalog_path.lstrip('/')}"

    @property
    def health_url(self) -> str:
        return self.catalog_url

    def component_to_fragment(
        self,
        component: CatalogComponent,
    ) -> tuple[fragment_module.ResourceFragment, errors.ParseError | None]:
        """Convert one catalog component into a fragment."""
        category = (
            fragment_module.map_category(component.type) or fragment_module.DEFAULT_CATEGORY
        )
        parsed = fragment_module.parse_document(
            component.content,
            default_id=component.name,
            default_category=category,
            scheme=self.scheme,
            source_path=component.path or component.name,
        )
        frag = parsed.fragment

        # Catalog identity and type are authoritative over frontmatter
        tags = frag.tags or frozenset(
            t.lower() for t in (component.category, component.type) if t
        )
        frag = _dataclasses.replace(
            frag,
            id=component.name,
            category=category,
            uri=fragment_module.build_uri(self.scheme, category, component.name),
            tags=tags,
            title=frag.title or component.name,
            description=frag.description or component.description,
        )
        return frag, parsed.diagnostic

    async def _fetch_index(self) -> index_module.ResourceIndex:
        response = await self._request("GET", self.catalog_url)
        try:
            raw = extract_components(response.json())
        except ValueError as e:
            raise errors.ProviderUnavailableError(self.name, f"invalid catalog: {e}") from e

        fragments: list[fragment_module.ResourceFragment] = []
        diagnostics: list[errors.SkaldError] = []
        documents: dict[str, str] = {}

        for item in raw:
            try:
                component = CatalogComponent.model_validate(item)
            except _pydantic.ValidationError as e:
                diagnostics.append(
                    errors.ParseError(f"invalid catalog component: {e}", source=self.name)
                )
                continue
            frag, diagnostic = self.component_to_fragment(component)
            fragments.append(frag)
            documents.setdefault(frag.uri, component.content)
            if diagnostic is not None:
                diagnostics.append(diagnostic)

        index = index_module.make_index(self.name, fragments, diagnostics)
        for problem in index.diagnostics:
            _logger.warning("Degraded catalog entry in %s: %s", self.name, problem)
        self._documents = documents
        return index

    async def _fetch_content(self, uri: str) -> str:
        parsed = uri_module.parse_uri(uri, self.scheme)
        if not isinstance(parsed, uri_module.StaticURI):
            raise errors.InvalidURIError(uri, "expected a static resource URI")
        if not self._index_is_fresh():
            await self.list_index()
        content = self._documents.get(parsed.canonical)
        if content is None:
            raise errors.NotFoundError(self.name, uri)
        return content
