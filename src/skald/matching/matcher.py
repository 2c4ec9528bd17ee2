"""
Lexical relevance matching for resource fragments.

Scoring is a fixed-weight sum over query keywords:

    exact tag match          20
    use-when substring       15
    capability substring     10
    id / title substring     10
    body substring            2  (body total capped at 6)

The sum is clamped to [0, 100]. Weights are constants, not learned.
"""

from __future__ import annotations

import dataclasses as _dataclasses
import re as _re
import typing as _typing

import pydantic as _pydantic

import skald.constants as _constants
import skald.fragments.fragment as fragment_module

TAG_WEIGHT = 20
USE_WHEN_WEIGHT = 15
CAPABILITY_WEIGHT = 10
NAME_WEIGHT = 10
BODY_WEIGHT = 2
BODY_CAP = 6

_TOKEN_RE = _re.compile(r"[\w-]+")

STOP_WORDS = frozenset(
    {
        "a", "an", "and", "any", "are", "as", "at", "be", "but", "by", "can",
        "do", "does", "for", "from", "get", "help", "how", "i", "if", "in",
        "into", "is", "it", "its", "me", "my", "need", "of", "on", "or",
        "our", "please", "should", "so", "some", "that", "the", "their",
        "then", "there", "these", "this", "to", "use", "using", "want",
        "was", "we", "what", "when", "where", "which", "who", "why", "will",
        "with", "would", "you", "your",
    }
)


class SearchOptions(_pydantic.BaseModel):
    """Filters and limits applied to a search."""

    model_config = _pydantic.ConfigDict(frozen=True)

    categories: frozenset[fragment_module.Category] | None = None
    """Only return fragments of these categories (None = all)."""

    tags: frozenset[str] | None = None
    """Fragments must carry every one of these tags."""

    max_results: int = _pydantic.Field(default=_constants.DEFAULT_MAX_RESULTS, ge=1)
    min_score: int = _pydantic.Field(
        default=_constants.DEFAULT_MIN_SCORE,
        ge=0,
        le=_constants.MAX_SCORE,
    )

    @_pydantic.field_validator("categories", mode="before")
    @classmethod
    def _categories(cls, value: _typing.Any) -> _typing.Any:
        if value is None:
            return None
        if isinstance(value, (str, fragment_module.Category)):
            value = [value]
        mapped = set()
        for item in value:
            if isinstance(item, fragment_module.Category):
                mapped.add(item)
                continue
            category = fragment_module.map_category(str(item), None)
            if category is None:
                raise ValueError(f"Unknown category: {item}")
            mapped.add(category)
        return frozenset(mapped)

    @_pydantic.field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, value: _typing.Any) -> _typing.Any:
        if value is None:
            return None
        if isinstance(value, str):
            value = value.split(",")
        tags = frozenset(str(t).strip().lower() for t in value if str(t).strip())
        return tags or None


@_dataclasses.dataclass(frozen=True)
class SearchResult:
    """A scored fragment from one provider."""

    provider_name: str
    fragment: fragment_module.ResourceFragment
    score: int
    """Relevance in [0, 100]."""

    matched_on: tuple[str, ...] = ()
    """Which fields matched, as 'field:keyword' labels."""

    @property
    def uri(self) -> str:
        return self.fragment.uri

    def to_dict(self) -> dict[str, _typing.Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "provider": self.provider_name,
            "score": self.score,
            "matched_on": list(self.matched_on),
            **self.fragment.to_dict(),
        }


@_dataclasses.dataclass(frozen=True)
class SearchFacets:
    """Category and tag counts over a set of search results."""

    categories: _typing.Mapping[str, int] = _dataclasses.field(default_factory=dict)
    tags: _typing.Mapping[str, int] = _dataclasses.field(default_factory=dict)

    @classmethod
    def from_results(cls, results: _typing.Iterable[SearchResult]) -> SearchFacets:
        categories: dict[str, int] = {}
        tags: dict[str, int] = {}
        for result in results:
            category = result.fragment.category.value
            categories[category] = categories.get(category, 0) + 1
            for tag in result.fragment.tags:
                tags[tag] = tags.get(tag, 0) + 1
        return cls(
            categories=dict(sorted(categories.items())),
            tags=dict(sorted(tags.items())),
        )

    def top_tags(self, n: int = 10) -> list[tuple[str, int]]:
        """Most frequent tags, ties broken alphabetically."""
        return sorted(self.tags.items(), key=lambda item: (-item[1], item[0]))[:n]

    def to_dict(self) -> dict[str, _typing.Any]:
        return {"categories": dict(self.categories), "tags": dict(self.tags)}


@_dataclasses.dataclass(frozen=True)
class SearchResponse:
    """
    Outcome of a federated search.

    total_matches and facets cover every merged match, before the
    max_results cut. A response is complete when every enabled provider
    answered.
    """

    query: str
    results: tuple[SearchResult, ...]
    total_matches: int
    search_time_ms: float
    facets: SearchFacets

    failed_providers: tuple[str, ...] = ()
    """Providers that errored or timed out during this search."""

    skipped_providers: tuple[str, ...] = ()
    """Enabled providers left out because they are unavailable."""

    @property
    def complete(self) -> bool:
        return not self.failed_providers and not self.skipped_providers

    def to_dict(self) -> dict[str, _typing.Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "query": self.query,
            "results": [r.to_dict() for r in self.results],
            "total_matches": self.total_matches,
            "search_time_ms": round(self.search_time_ms, 2),
            "facets": self.facets.to_dict(),
            "failed_providers": list(self.failed_providers),
            "skipped_providers": list(self.skipped_providers),
        }


def extract_keywords(query: str) -> list[str]:
    """
    Split a query into search keywords.

    Lower-cases, splits on non-word characters (hyphens kept), drops stop
    words and single characters, and removes duplicates preserving order.
    """
    keywords: list[str] = []
    for token in _TOKEN_RE.findall(query.lower()):
        token = token.strip("-_")
        if len(token) < 2 or token in STOP_WORDS:
            continue
        if token not in keywords:
            keywords.append(token)
    return keywords


def score(
    fragment: fragment_module.ResourceFragment,
    query: str | _typing.Sequence[str],
) -> tuple[int, tuple[str, ...]]:
    """
    Score a fragment against a query.

    Args:
        fragment: Fragment to score.
        query: Raw query text, or pre-extracted keywords.

    Returns:
        Tuple of (score in [0, 100], matched field labels).
    """
    keywords = extract_keywords(query) if isinstance(query, str) else list(query)
    if not keywords:
        return 0, ()

    tags = {t.lower() for t in fragment.tags}
    use_when = [s.lower() for s in fragment.use_when]
    capabilities = [c.lower() for c in fragment.capabilities]
    names = [n.lower() for n in (fragment.id, fragment.title) if n]
    body = fragment.body.lower()

    total = 0
    body_total = 0
    matched: list[str] = []

    for keyword in keywords:
        if keyword in tags:
            total += TAG_WEIGHT
            matched.append(f"tag:{keyword}")
        if any(keyword in s for s in use_when):
            total += USE_WHEN_WEIGHT
            matched.append(f"use_when:{keyword}")
        if any(keyword in c for c in capabilities):
            total += CAPABILITY_WEIGHT
            matched.append(f"capability:{keyword}")
        if any(keyword in n for n in names):
            total += NAME_WEIGHT
            matched.append(f"name:{keyword}")
        if body_total < BODY_CAP and keyword in body:
            body_total = min(BODY_CAP, body_total + BODY_WEIGHT)
            matched.append(f"body:{keyword}")

    total += body_total
    return max(0, min(_constants.MAX_SCORE, total)), tuple(matched)


def _passes_filters(
    fragment: fragment_module.ResourceFragment,
    options: SearchOptions,
) -> bool:
    if options.categories is not None and fragment.category not in options.categories:
        return False
    if options.tags and not options.tags.issubset({t.lower() for t in fragment.tags}):
        return False
    return True


def sort_key(
    result: SearchResult,
    priorities: _typing.Mapping[str, int] | None = None,
) -> tuple[_typing.Any, ...]:
    """
    Global ordering key for search results.

    Score descending, then smaller estimated_tokens first (unknown last),
    then provider priority (when known), then URI, then provider name.
    """
    tokens = result.fragment.estimated_tokens
    priority = 0
    if priorities is not None:
        priority = priorities.get(result.provider_name, _constants.DEFAULT_REMOTE_PRIORITY)
    return (
        -result.score,
        tokens is None,
        tokens if tokens is not None else 0,
        priority,
        result.fragment.uri,
        result.provider_name,
    )


def sort_results(
    results: _typing.Iterable[SearchResult],
    priorities: _typing.Mapping[str, int] | None = None,
) -> list[SearchResult]:
    """Sort results with the global ranking policy."""
    return sorted(results, key=lambda r: sort_key(r, priorities))


def apply_policy(
    results: _typing.Iterable[SearchResult],
    options: SearchOptions,
    priorities: _typing.Mapping[str, int] | None = None,
) -> list[SearchResult]:
    """
    Apply the global min-score / sort / limit policy to a result set.

    Used both for a single provider and for a merged multi-provider set.
    """
    kept = [r for r in results if r.score > 0 and r.score >= options.min_score]
    return sort_results(kept, priorities)[: options.max_results]


def rank(
    fragments: _typing.Iterable[fragment_module.ResourceFragment],
    query: str,
    options: SearchOptions | None = None,
    provider_name: str = "local",
) -> list[SearchResult]:
    """
    Score, filter and order fragments for a query.

    Args:
        fragments: Candidate fragments (typically one provider's index).
        query: Natural-language query.
        options: Filters and limits (defaults apply when None).
        provider_name: Name recorded on each result.

    Returns:
        Results with non-increasing scores, at most max_results long.
    """
    options = options or SearchOptions()
    keywords = extract_keywords(query)

    results = []
    for fragment in fragments:
        if not _passes_filters(fragment, options):
            continue
        value, matched = score(fragment, keywords)
        results.append(
            SearchResult(
                provider_name=provider_name,
                fragment=fragment,
                score=value,
                matched_on=matched,
            )
        )
    return apply_policy(results, options)
