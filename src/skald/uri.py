"""
Resource URI parsing.

Static URIs address one resource:

    skald://skills/testing/tdd
    skald://agent/backend-architect

Dynamic URIs run a search:

    skald://skills/match?query=typescript+api&maxTokens=2000&minScore=20
    skald://match?query=build+diagrams&categories=agents,skills&mode=full

Category segments accept singular or plural forms. Optional dynamic
parameters: maxTokens, maxResults, minScore, tags, categories, mode
(catalog, full or minimal).
"""

from __future__ import annotations

import dataclasses as _dataclasses
import urllib.parse as _urlparse

import skald.constants as _constants
import skald.errors as errors
import skald.fragments.fragment as fragment_module
import skald.matching.formatter as formatter
import skald.matching.matcher as matcher

MATCH_SEGMENT = "match"


@_dataclasses.dataclass(frozen=True)
class StaticURI:
    """URI addressing a single resource."""

    uri: str
    scheme: str
    category: fragment_module.Category
    identifier: str

    @property
    def canonical(self) -> str:
        """URI with the category in plural form (the index form)."""
        return fragment_module.build_uri(self.scheme, self.category, self.identifier)


@_dataclasses.dataclass(frozen=True)
class DynamicURI:
    """URI describing a search."""

    uri: str
    scheme: str
    query: str
    categories: frozenset[fragment_module.Category] | None = None
    """None searches every category."""

    tags: frozenset[str] | None = None
    max_tokens: int = _constants.DEFAULT_MATCH_MAX_TOKENS
    max_results: int = _constants.DEFAULT_MATCH_MAX_RESULTS
    min_score: int = _constants.DEFAULT_MATCH_MIN_SCORE
    mode: formatter.FormatMode = "catalog"

    def to_search_options(self) -> matcher.SearchOptions:
        """Search options equivalent to this URI's filters and limits."""
        return matcher.SearchOptions(
            categories=self.categories,
            tags=self.tags,
            max_results=self.max_results,
            min_score=self.min_score,
        )


ResourceURI = StaticURI | DynamicURI


def _category(uri: str, value: str) -> fragment_module.Category:
    key = value.strip().lower()
    for category in fragment_module.Category:
        if key in (category.value, category.plural):
            return category
    raise errors.InvalidURIError(uri, f"unknown category {value!r}")


def _int_param(
    uri: str,
    params: dict[str, list[str]],
    name: str,
    default: int,
    minimum: int,
    maximum: int | None = None,
) -> int:
    values = params.get(name)
    if not values:
        return default
    raw = values[-1].strip()
    try:
        value = int(raw)
    except ValueError:
        raise errors.InvalidURIError(uri, f"{name} must be an integer, got {raw!r}") from None
    if value < minimum or (maximum is not None and value > maximum):
        bounds = f">= {minimum}" if maximum is None else f"between {minimum} and {maximum}"
        raise errors.InvalidURIError(uri, f"{name} must be {bounds}, got {value}")
    return value


def _list_param(params: dict[str, list[str]], name: str) -> list[str]:
    items: list[str] = []
    for value in params.get(name, []):
        items.extend(part.strip() for part in value.split(",") if part.strip())
    return items


def parse_uri(uri: str, scheme: str = _constants.DEFAULT_URI_SCHEME) -> ResourceURI:
    """
    Parse a resource URI.

    Args:
        uri: URI to parse.
        scheme: Expected URI scheme.

    Returns:
        StaticURI or DynamicURI.

    Raises:
        InvalidURIError: If the URI is malformed.
    """
    prefix = f"{scheme}://"
    if not uri.startswith(prefix):
        raise errors.InvalidURIError(uri, f"expected scheme {scheme}://")

    rest = uri[len(prefix):]
    path, _, query_string = rest.partition("?")
    segments = [s for s in path.split("/") if s]
    if not segments:
        raise errors.InvalidURIError(uri, "missing category")

    if segments == [MATCH_SEGMENT]:
        return _parse_dynamic(uri, scheme, None, query_string)

    category = _category(uri, segments[0])
    if segments[1:] == [MATCH_SEGMENT]:
        return _parse_dynamic(uri, scheme, category, query_string)

    if query_string:
        raise errors.InvalidURIError(uri, "query parameters are only allowed on match URIs")
    identifier = "/".join(segments[1:])
    if not identifier:
        raise errors.InvalidURIError(uri, "missing resource identifier")
    return StaticURI(uri=uri, scheme=scheme, category=category, identifier=identifier)


def _parse_dynamic(
    uri: str,
    scheme: str,
    category: fragment_module.Category | None,
    query_string: str,
) -> DynamicURI:
    params = _urlparse.parse_qs(query_string, keep_blank_values=True)

    query = " ".join(params.get("query", [])).strip()
    if not query:
        raise errors.InvalidURIError(uri, "missing or empty query parameter")

    categories: set[fragment_module.Category] = set()
    if category is not None:
        categories.add(category)
    for value in _list_param(params, "categories"):
        categories.add(_category(uri, value))

    tags = frozenset(t.lower() for t in _list_param(params, "tags")) or None

    mode = (params.get("mode") or ["catalog"])[-1].strip().lower()
    if mode not in formatter.FORMAT_MODES:
        raise errors.InvalidURIError(uri, f"unknown mode {mode!r}")

    return DynamicURI(
        uri=uri,
        scheme=scheme,
        query=query,
        categories=frozenset(categories) or None,
        tags=tags,
        max_tokens=_int_param(
            uri, params, "maxTokens", _constants.DEFAULT_MATCH_MAX_TOKENS, minimum=1
        ),
        max_results=_int_param(
            uri, params, "maxResults", _constants.DEFAULT_MATCH_MAX_RESULTS, minimum=1
        ),
        min_score=_int_param(
            uri,
            params,
            "minScore",
            _constants.DEFAULT_MATCH_MIN_SCORE,
            minimum=0,
            maximum=_constants.MAX_SCORE,
        ),
        mode=mode,  # type: ignore[arg-type]
    )


def is_dynamic(uri: str) -> bool:
    """Whether a URI is a search (match) URI, without full validation."""
    path = uri.partition("://")[2].partition("?")[0]
    segments = [s for s in path.split("/") if s]
    return bool(segments) and segments[-1] == MATCH_SEGMENT and len(segments) <= 2
