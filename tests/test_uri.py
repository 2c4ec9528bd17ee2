"""
Tests for resource URI parsing.

Tests verify that:
- Static URIs accept singular and plural categories and nested ids
- Dynamic URIs carry query, filters, limits and mode
- Malformed URIs raise InvalidURIError with the offending URI
"""

import pytest as _pytest

import skald.errors as errors
import skald.fragments.fragment as fragment
import skald.uri as uri


class TestStaticURI:
    """Tests for static URI parsing."""

    def test_plural_category(self) -> None:
        """Plural category segments parse."""
        parsed = uri.parse_uri("skald://skills/testing/tdd")

        assert isinstance(parsed, uri.StaticURI)
        assert parsed.category is fragment.Category.SKILL
        assert parsed.identifier == "testing/tdd"
        assert parsed.canonical == "skald://skills/testing/tdd"

    def test_singular_category_canonicalised(self) -> None:
        """Singular categories canonicalise to the plural index form."""
        parsed = uri.parse_uri("skald://agent/backend-architect")

        assert isinstance(parsed, uri.StaticURI)
        assert parsed.canonical == "skald://agents/backend-architect"

    def test_custom_scheme(self) -> None:
        """The expected scheme is configurable."""
        parsed = uri.parse_uri("o8://workflows/release", scheme="o8")
        assert isinstance(parsed, uri.StaticURI)
        assert parsed.scheme == "o8"

    @_pytest.mark.parametrize(
        "bad",
        [
            "http://skills/x",
            "skald://",
            "skald://skills",
            "skald://widgets/x",
            "skald://skills/x?query=a",
        ],
    )
    def test_invalid(self, bad: str) -> None:
        """Malformed static URIs are rejected."""
        with _pytest.raises(errors.InvalidURIError) as exc_info:
            uri.parse_uri(bad)
        assert exc_info.value.uri == bad


class TestDynamicURI:
    """Tests for match URI parsing."""

    def test_defaults(self) -> None:
        """Unspecified parameters take the match defaults."""
        parsed = uri.parse_uri("skald://match?query=build+diagrams")

        assert isinstance(parsed, uri.DynamicURI)
        assert parsed.query == "build diagrams"
        assert parsed.categories is None
        assert parsed.max_tokens == 3000
        assert parsed.max_results == 15
        assert parsed.min_score == 10
        assert parsed.mode == "catalog"

    def test_category_scoped(self) -> None:
        """A category segment scopes the search."""
        parsed = uri.parse_uri(
            "skald://skills/match?query=typescript%20api&maxTokens=2000&minScore=20"
        )

        assert isinstance(parsed, uri.DynamicURI)
        assert parsed.categories == frozenset({fragment.Category.SKILL})
        assert parsed.max_tokens == 2000
        assert parsed.min_score == 20

    def test_categories_param_unioned(self) -> None:
        """The categories parameter adds to a path category."""
        parsed = uri.parse_uri("skald://agents/match?query=x&categories=skills,workflow")

        assert isinstance(parsed, uri.DynamicURI)
        assert parsed.categories == frozenset(
            {fragment.Category.AGENT, fragment.Category.SKILL, fragment.Category.WORKFLOW}
        )

    def test_tags_and_mode(self) -> None:
        """Tags are lower-cased and mode is read."""
        parsed = uri.parse_uri("skald://match?query=x&tags=API,Rest&mode=full&maxResults=3")

        assert isinstance(parsed, uri.DynamicURI)
        assert parsed.tags == frozenset({"api", "rest"})
        assert parsed.mode == "full"
        assert parsed.max_results == 3

    def test_minimal_mode(self) -> None:
        """The compact JSON mode is accepted, case-insensitively."""
        parsed = uri.parse_uri("skald://agents/match?query=x&mode=Minimal")

        assert isinstance(parsed, uri.DynamicURI)
        assert parsed.mode == "minimal"

    def test_to_search_options(self) -> None:
        """Filters and limits carry into SearchOptions."""
        parsed = uri.parse_uri("skald://skills/match?query=x&maxResults=4&minScore=30&tags=a")
        assert isinstance(parsed, uri.DynamicURI)

        options = parsed.to_search_options()

        assert options.categories == frozenset({fragment.Category.SKILL})
        assert options.tags == frozenset({"a"})
        assert options.max_results == 4
        assert options.min_score == 30

    @_pytest.mark.parametrize(
        "bad",
        [
            "skald://match",
            "skald://match?query=",
            "skald://match?query=x&maxTokens=0",
            "skald://match?query=x&maxTokens=lots",
            "skald://match?query=x&maxResults=0",
            "skald://match?query=x&minScore=101",
            "skald://match?query=x&mode=verbose",
            "skald://match?query=x&categories=widgets",
        ],
    )
    def test_invalid(self, bad: str) -> None:
        """Malformed match URIs are rejected."""
        with _pytest.raises(errors.InvalidURIError):
            uri.parse_uri(bad)


class TestIsDynamic:
    """Tests for is_dynamic."""

    @_pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("skald://match?query=x", True),
            ("skald://skills/match?query=x", True),
            ("skald://skills/testing/match", False),
            ("skald://skills/tdd", False),
        ],
    )
    def test_is_dynamic(self, value: str, expected: bool) -> None:
        """Only top-level or category-level match segments are dynamic."""
        assert uri.is_dynamic(value) is expected
