"""
Tests for keyword extraction, scoring and ranking.

Tests verify that:
- Stop words and duplicates are removed from queries
- Each field contributes its fixed weight
- Scores stay in [0, 100] and results come back in non-increasing order
- Filters and limits are applied before results are returned
"""

import pytest as _pytest

import skald.fragments.fragment as fragment
import skald.matching.matcher as matcher


class TestExtractKeywords:
    """Tests for extract_keywords."""

    def test_drops_stop_words_and_duplicates(self) -> None:
        """Stop words, single characters and repeats are removed."""
        assert matcher.extract_keywords("How do I build a REST API for the REST app?") == [
            "build",
            "rest",
            "api",
            "app",
        ]

    def test_keeps_hyphenated_words(self) -> None:
        """Hyphenated terms are kept intact."""
        assert matcher.extract_keywords("best-practice type-safe") == ["best-practice", "type-safe"]

    def test_empty_query(self) -> None:
        """A query of stop words has no keywords."""
        assert matcher.extract_keywords("how do I use it") == []


class TestScore:
    """Tests for score()."""

    def test_tag_weight(self, fragment_factory) -> None:
        """An exact tag match scores the tag weight."""
        frag = fragment_factory("x", tags=["docker"])
        value, matched = matcher.score(frag, "docker")
        assert value == matcher.TAG_WEIGHT
        assert matched == ("tag:docker",)

    def test_field_weights_add_up(self, fragment_factory) -> None:
        """Matches in several fields are summed."""
        frag = fragment_factory(
            "docker-compose",
            tags=["docker"],
            use_when=["Running docker locally"],
            body="docker docker",
        )
        value, matched = matcher.score(frag, ["docker"])
        expected = (
            matcher.TAG_WEIGHT
            + matcher.USE_WHEN_WEIGHT
            + matcher.NAME_WEIGHT
            + matcher.BODY_WEIGHT
        )
        assert value == expected
        assert "use_when:docker" in matched
        assert "name:docker" in matched

    def test_body_contribution_capped(self, fragment_factory) -> None:
        """Body matches never add more than the cap."""
        frag = fragment_factory("x", body="alpha beta gamma delta epsilon")
        value, _ = matcher.score(frag, "alpha beta gamma delta epsilon")
        assert value == matcher.BODY_CAP

    def test_clamped_to_max(self, fragment_factory) -> None:
        """Scores never exceed 100."""
        words = ["one", "two", "three", "four", "five", "six"]
        frag = fragment_factory("x", tags=words, use_when=[" ".join(words)])
        value, _ = matcher.score(frag, " ".join(words))
        assert value == 100

    def test_no_keywords_scores_zero(self, fragment_factory) -> None:
        """An empty keyword list scores zero."""
        assert matcher.score(fragment_factory("x", tags=["a"]), "the") == (0, ())


class TestSearchOptions:
    """Tests for SearchOptions validation."""

    def test_defaults(self) -> None:
        """Defaults allow everything."""
        options = matcher.SearchOptions()
        assert options.categories is None
        assert options.tags is None
        assert options.max_results == 20
        assert options.min_score == 0

    def test_category_coercion(self) -> None:
        """Category strings and aliases are mapped onto the enum."""
        options = matcher.SearchOptions(categories=["agents", "command"])
        assert options.categories == frozenset(
            {fragment.Category.AGENT, fragment.Category.WORKFLOW}
        )

    def test_unknown_category_rejected(self) -> None:
        """Unknown category strings fail validation."""
        with _pytest.raises(ValueError):
            matcher.SearchOptions(categories=["widgets"])

    def test_tags_lowercased(self) -> None:
        """Tag filters are normalised."""
        assert matcher.SearchOptions(tags="API, Rest").tags == frozenset({"api", "rest"})

    @_pytest.mark.parametrize("kwargs", [{"max_results": 0}, {"min_score": 101}, {"min_score": -1}])
    def test_out_of_range_rejected(self, kwargs) -> None:
        """Limits are range-checked."""
        with _pytest.raises(ValueError):
            matcher.SearchOptions(**kwargs)


class TestRank:
    """Tests for rank()."""

    def test_typescript_api_query(self, fragment_factory) -> None:
        """The fragment tagged with both keywords ranks first."""
        developer = fragment_factory(
            "typescript-developer",
            category=fragment.Category.AGENT,
            tags=["typescript", "api"],
            use_when=["Building TypeScript REST APIs"],
        )
        rest = fragment_factory("rest-design", tags=["rest", "api"])
        unrelated = fragment_factory("release", tags=["git"])

        results = matcher.rank([unrelated, rest, developer], "typescript api")

        assert [r.fragment for r in results] == [developer, rest]
        assert "tag:typescript" in results[0].matched_on
        assert results[0].provider_name == "local"

    def test_scores_non_increasing_and_bounded(self, fragment_factory) -> None:
        """Returned scores are ordered and inside the score range."""
        fragments = [
            fragment_factory(f"doc-{i}", tags=["api"] if i % 2 else ["web"], body="api web " * i)
            for i in range(12)
        ]
        results = matcher.rank(fragments, "api web")

        scores = [r.score for r in results]
        assert scores == sorted(scores, reverse=True)
        assert all(0 < s <= 100 for s in scores)

    def test_max_results(self, fragment_factory) -> None:
        """At most max_results results are returned."""
        fragments = [fragment_factory(f"doc-{i}", tags=["api"]) for i in range(10)]
        results = matcher.rank(fragments, "api", matcher.SearchOptions(max_results=3))
        assert len(results) == 3

    def test_min_score(self, fragment_factory) -> None:
        """Results below min_score are dropped."""
        tagged = fragment_factory("a", tags=["api"])
        body_only = fragment_factory("b", body="api")
        results = matcher.rank([tagged, body_only], "api", matcher.SearchOptions(min_score=10))
        assert [r.fragment for r in results] == [tagged]

    def test_category_and_tag_filters(self, fragment_factory) -> None:
        """Category and tag filters exclude non-matching fragments."""
        agent = fragment_factory("a", category=fragment.Category.AGENT, tags=["api", "rest"])
        skill = fragment_factory("b", tags=["api", "rest"])
        partial = fragment_factory("c", category=fragment.Category.AGENT, tags=["api"])

        by_category = matcher.rank(
            [agent, skill], "api", matcher.SearchOptions(categories=fragment.Category.AGENT)
        )
        by_tags = matcher.rank(
            [agent, partial], "api", matcher.SearchOptions(tags=["api", "rest"])
        )

        assert [r.fragment for r in by_category] == [agent]
        assert [r.fragment for r in by_tags] == [agent]

    def test_ties_prefer_cheaper_then_uri(self, fragment_factory) -> None:
        """Equal scores order by token cost, unknown cost last, then URI."""
        big = fragment_factory("a-big", tags=["api"], estimated_tokens=900)
        small = fragment_factory("z-small", tags=["api"], estimated_tokens=100)
        unknown = fragment_factory("b-unknown", tags=["api"], estimated_tokens=None)
        twin = fragment_factory("c-small", tags=["api"], estimated_tokens=100)

        results = matcher.rank([big, unknown, small, twin], "api")

        assert [r.fragment.id for r in results] == ["c-small", "z-small", "a-big", "b-unknown"]

    def test_priority_breaks_remaining_ties(self, fragment_factory) -> None:
        """Provider priority orders otherwise equal results."""
        frag = fragment_factory("same", tags=["api"])
        results = [
            matcher.SearchResult("remote", frag, 20),
            matcher.SearchResult("local", frag, 20),
        ]
        ordered = matcher.sort_results(results, {"local": 0, "remote": 10})
        assert [r.provider_name for r in ordered] == ["local", "remote"]

    def test_to_dict(self, fragment_factory) -> None:
        """Results serialize with provider and score."""
        result = matcher.rank([fragment_factory("a", tags=["api"])], "api")[0]
        data = result.to_dict()
        assert data["provider"] == "local"
        assert data["score"] == 20
        assert data["uri"] == "skald://skills/a"
