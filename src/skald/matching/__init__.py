"""
Relevance matching and compact formatting of search results.
"""

from skald.matching.formatter import (
    NO_RESULTS_MESSAGE,
    format_compact,
    select_within_budget,
)
from skald.matching.matcher import (
    SearchFacets,
    SearchOptions,
    SearchResponse,
    SearchResult,
    apply_policy,
    extract_keywords,
    rank,
    score,
    sort_results,
)

__all__ = [
    "SearchOptions",
    "SearchResult",
    "SearchFacets",
    "SearchResponse",
    "extract_keywords",
    "score",
    "rank",
    "sort_results",
    "apply_policy",
    "format_compact",
    "select_within_budget",
    "NO_RESULTS_MESSAGE",
]
