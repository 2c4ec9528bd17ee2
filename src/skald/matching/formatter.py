"""
Token-budgeted rendering of search results.

Three modes:
- catalog: one compact line per result (URI, score, cost, description).
  Each line is charged with its own size.
- full: each result's body under a heading. Each entry is charged with
  its heading's size plus the fragment's token cost.
- minimal: compact JSON with URIs, scores, token costs and top tags.
  Each item is charged with its serialized size.

The header (or JSON envelope) is charged against the same budget before
any entry, so with estimated costs the rendered text never exceeds
max_tokens. Declared estimatedTokens values are taken at face value.

Selection is greedy in rank order and stops at the first result that
would exceed the budget, so the same inputs always render the same text.
"""

from __future__ import annotations

import json as _json
import typing as _typing

import skald.constants as _constants
import skald.fragments.fragment as fragment_module
import skald.matching.matcher as matcher

FormatMode = _typing.Literal["catalog", "full", "minimal"]
FORMAT_MODES: tuple[str, ...] = ("catalog", "full", "minimal")

NO_RESULTS_MESSAGE = "No matching resources found."
MINIMAL_TAG_LIMIT = 3

_SEPARATORS = {"catalog": "\n", "full": "\n\n---\n\n", "minimal": ","}


def _full_heading(result: matcher.SearchResult) -> str:
    frag = result.fragment
    return (
        f"## {frag.display_name}\n"
        f"<!-- {frag.uri} | score {result.score} | {result.provider_name} -->\n\n"
    )


def _minimal_item(result: matcher.SearchResult) -> dict[str, _typing.Any]:
    frag = result.fragment
    return {
        "uri": frag.uri,
        "score": result.score,
        "tokens": frag.token_cost,
        "tags": sorted(frag.tags)[:MINIMAL_TAG_LIMIT],
    }


def _dumps(value: _typing.Any) -> str:
    return _json.dumps(value, separators=(",", ":"))


def render_entry(result: matcher.SearchResult, mode: FormatMode = "catalog") -> str:
    """Render one result in the given mode."""
    frag = result.fragment
    if mode == "full":
        return _full_heading(result) + frag.body
    if mode == "minimal":
        return _dumps(_minimal_item(result))

    line = (
        f"- **{frag.display_name}** `{frag.uri}` "
        f"(score {result.score}, ~{frag.token_cost} tokens, {result.provider_name})"
    )
    if frag.description:
        line += f": {frag.description}"
    if frag.use_when:
        line += f" Use when: {frag.use_when[0]}"
    return line


def entry_cost(result: matcher.SearchResult, mode: FormatMode = "catalog") -> int:
    """Tokens charged against the budget for one result, separator included."""
    separator = _SEPARATORS[mode]
    if mode == "full":
        heading = fragment_module.estimate_tokens(separator + _full_heading(result))
        return heading + result.fragment.token_cost
    return fragment_module.estimate_tokens(separator + render_entry(result, mode))


def select_within_budget(
    results: _typing.Sequence[matcher.SearchResult],
    max_tokens: int,
    mode: FormatMode = "catalog",
) -> tuple[list[matcher.SearchResult], int]:
    """
    Greedily pick results in order while the running total fits.

    Stops at the first result that would overflow the budget. The budget
    here covers entries only; format_compact() reserves the header first.

    Returns:
        Tuple of (selected results, tokens used).
    """
    selected: list[matcher.SearchResult] = []
    used = 0
    for result in results:
        cost = entry_cost(result, mode)
        if used + cost > max_tokens:
            break
        selected.append(result)
        used += cost
    return selected, used


def _markdown_header(query: str | None, shown: int, total: int, tokens: int) -> str:
    header = "# Matching resources"
    if query:
        header += f": {query}"
    return f"{header}\n\n_{shown} of {total} results, ~{tokens} tokens_\n\n"


def _minimal_envelope(
    query: str | None,
    shown: int,
    total: int,
    tokens: int,
    items: list[dict[str, _typing.Any]],
) -> str:
    return _dumps(
        {"query": query, "total": total, "shown": shown, "tokens": tokens, "results": items}
    )


def header_cost(
    total: int,
    max_tokens: int,
    mode: FormatMode = "catalog",
    query: str | None = None,
) -> int:
    """
    Tokens reserved for the header or JSON envelope.

    Computed with the largest counts the header can show, so the reserve
    is an upper bound on the rendered header.
    """
    if mode == "minimal":
        return fragment_module.estimate_tokens(
            _minimal_envelope(query, total, total, max_tokens, [])
        )
    return fragment_module.estimate_tokens(_markdown_header(query, total, total, max_tokens))


def format_compact(
    results: _typing.Sequence[matcher.SearchResult],
    max_tokens: int = _constants.DEFAULT_MATCH_MAX_TOKENS,
    mode: FormatMode = "catalog",
    query: str | None = None,
    total: int | None = None,
) -> str:
    """
    Render results into a summary within a token budget.

    Args:
        results: Ranked results (highest first).
        max_tokens: Budget for the whole rendered text, header included.
        mode: 'catalog', 'full' or 'minimal'.
        query: Optional query echoed in the header.
        total: Number of matches before any result limit (defaults to
            len(results)).

    Returns:
        Markdown (or JSON in minimal mode); an explicit message when
        nothing fits.
    """
    if mode not in FORMAT_MODES:
        raise ValueError(f"Unknown format mode: {mode}")

    total = len(results) if total is None else max(total, len(results))
    reserved = header_cost(total, max_tokens, mode, query)
    selected, used = select_within_budget(results, max_tokens - reserved, mode)
    if not selected:
        return NO_RESULTS_MESSAGE if query is None else f"{NO_RESULTS_MESSAGE} Query: {query}"

    tokens = reserved + used
    if mode == "minimal":
        items = [_minimal_item(r) for r in selected]
        return _minimal_envelope(query, len(selected), total, tokens, items)

    body = _SEPARATORS[mode].join(render_entry(r, mode) for r in selected)
    return _markdown_header(query, len(selected), total, tokens) + body
