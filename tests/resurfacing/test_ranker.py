"""Tests for suggestion ranking."""

import pytest

from domains.resurfacing import config
from domains.resurfacing.ranker import (
    FilterCriteria,
    RankingFeedback,
    SuggestionRanker,
    categorize_content_length,
    default_weights,
    engagement_score,
)
from domains.resurfacing.types import (
    ContentLength,
    LearningMetrics,
    RankingFactors,
    SuggestionContext,
    UserActivity,
    UserPreferences,
)


@pytest.fixture
def ranker():
    return SuggestionRanker()


@pytest.fixture
def context():
    return SuggestionContext(
        current_url="https://example.com/current",
        current_category="video",
        time_of_day=10,
        user_activity=UserActivity.BROWSING,
        session_duration=5,
    )


def _factors(**overrides):
    values = dict(
        relevance=0.5, recency=0.5, popularity=0.5, diversity=0.5,
        user_preference=0.5, contextual_fit=0.5, final_score=0.5,
    )
    values.update(overrides)
    return RankingFactors(**values)


class TestRankSuggestions:
    """Test the full ranking pass."""

    def test_diversity_caps_each_category(self, ranker, context, make_item, make_suggestion, now):
        """Six articles and one video: at most two of any category survive."""
        suggestions = [
            make_suggestion(make_item(f"art{i}", category="article"), relevance=0.9 - i * 0.05)
            for i in range(6)
        ]
        suggestions.append(make_suggestion(make_item("vid", category="video"), relevance=0.4))

        result = ranker.rank_suggestions(
            suggestions, context, UserPreferences(), LearningMetrics(), now=now
        )

        categories = [s.content.category for s in result.ranked_suggestions]
        assert categories.count("article") == 2
        assert categories.count("video") == 1
        assert [s.content_id for s in result.ranked_suggestions[:2]] == ["art0", "art1"]

    def test_uncategorized_share_one_bucket(self, ranker, context, make_item, make_suggestion, now):
        suggestions = [make_suggestion(make_item(f"n{i}")) for i in range(4)]

        result = ranker.rank_suggestions(
            suggestions, context, UserPreferences(), LearningMetrics(), now=now
        )

        assert len(result.ranked_suggestions) == 2

    def test_diversity_can_be_disabled(self, ranker, context, make_item, make_suggestion, now):
        suggestions = [make_suggestion(make_item(f"n{i}", category="article")) for i in range(4)]

        result = ranker.rank_suggestions(
            suggestions, context, UserPreferences(), LearningMetrics(), now=now,
            filter_criteria=FilterCriteria(enable_category_diversity=False),
        )

        assert len(result.ranked_suggestions) == 4

    def test_sorted_by_final_score(self, ranker, context, make_item, make_suggestion, now):
        suggestions = [
            make_suggestion(make_item("low", category="a"), relevance=0.35),
            make_suggestion(make_item("high", category="b"), relevance=0.95),
            make_suggestion(make_item("mid", category="c"), relevance=0.6),
        ]

        result = ranker.rank_suggestions(
            suggestions, context, UserPreferences(), LearningMetrics(), now=now
        )

        assert [s.content_id for s in result.ranked_suggestions] == ["high", "mid", "low"]
        scores = [result.ranking_factors[s.content_id].final_score for s in result.ranked_suggestions]
        assert scores == sorted(scores, reverse=True)

    def test_every_factor_bounded(self, ranker, context, make_item, make_suggestion, now):
        item = make_item(
            "x", category="article", times_accessed=50, user_rating=5,
            user_notes="a long and thoughtful note", importance=10,
        )

        result = ranker.rank_suggestions(
            [make_suggestion(item, relevance=1.0)], context, UserPreferences(), LearningMetrics(), now=now
        )

        factors = result.ranking_factors["x"]
        for name in ("relevance", "recency", "popularity", "diversity", "user_preference", "contextual_fit"):
            assert 0.0 <= getattr(factors, name) <= 1.0

    def test_empty_input(self, ranker, context, now):
        result = ranker.rank_suggestions([], context, UserPreferences(), LearningMetrics(), now=now)

        assert result.ranked_suggestions == []
        assert result.filtering_stats.total_candidates == 0

    def test_inputs_not_mutated(self, ranker, context, make_item, make_suggestion, now):
        preferences = UserPreferences(preferred_categories={"article": 0.9})
        ranker.rank_suggestions(
            [make_suggestion(make_item("x", category="article"))],
            context, preferences, LearningMetrics(), now=now,
        )
        assert preferences.preferred_categories == {"article": 0.9}


class TestFilters:
    """Test candidate filtering."""

    def test_filter_reasons_counted(self, ranker, context, make_item, make_suggestion, now):
        suggestions = [
            make_suggestion(make_item("keep")),
            make_suggestion(make_item("weak"), relevance=0.1),
            make_suggestion(make_item("old", captured_days_ago=120)),
            make_suggestion(make_item("fresh", accessed_days_ago=0.5)),
        ]

        result = ranker.rank_suggestions(
            suggestions, context, UserPreferences(), LearningMetrics(), now=now
        )

        stats = result.filtering_stats
        assert [s.content_id for s in result.ranked_suggestions] == ["keep"]
        assert stats.total_candidates == 4
        assert stats.filtered_out == 3
        assert stats.final_count == 1
        assert stats.filter_reasons == {"low_relevance": 1, "too_old": 1, "recently_viewed": 1}

    def test_recently_viewed_can_be_included(self, ranker, context, make_item, make_suggestion, now):
        suggestions = [make_suggestion(make_item("fresh", accessed_days_ago=0.1))]

        result = ranker.rank_suggestions(
            suggestions, context, UserPreferences(), LearningMetrics(), now=now,
            filter_criteria=FilterCriteria(exclude_recently_viewed=False),
        )

        assert len(result.ranked_suggestions) == 1

    def test_minimum_engagement(self, ranker, context, make_item, make_suggestion, now):
        suggestions = [
            make_suggestion(make_item("ignored")),
            make_suggestion(make_item("loved", times_accessed=10, user_rating=5)),
        ]

        result = ranker.rank_suggestions(
            suggestions, context, UserPreferences(), LearningMetrics(), now=now,
            filter_criteria=FilterCriteria(require_minimum_engagement=True),
        )

        assert [s.content_id for s in result.ranked_suggestions] == ["loved"]
        assert result.filtering_stats.filter_reasons == {"low_engagement": 1}


class TestFactors:
    """Test individual scoring factors."""

    def test_recency_blends_capture_and_access(self, make_item, now):
        item = make_item("x", captured_days_ago=15, accessed_days_ago=3.5)
        assert SuggestionRanker.recency_score(item, now) == pytest.approx(0.5)

    def test_recency_floor(self, make_item, now):
        item = make_item("x", captured_days_ago=60, accessed_days_ago=30)
        assert SuggestionRanker.recency_score(item, now) == 0.0

    def test_popularity(self, make_item):
        assert SuggestionRanker.popularity_score(make_item("x", times_accessed=10)) == pytest.approx(0.5)
        assert SuggestionRanker.popularity_score(make_item("x", times_accessed=10, user_rating=1)) == pytest.approx(0.2)
        assert SuggestionRanker.popularity_score(make_item("x", user_rating=1)) == 0.0

    def test_diversity(self, make_item, context):
        assert SuggestionRanker.diversity_score(make_item("x", category="article"), context) == 0.8
        assert SuggestionRanker.diversity_score(
            make_item("x", category="video", url="https://other.org/page"), context
        ) == 0.6
        assert SuggestionRanker.diversity_score(make_item("x", category="video"), context) == 0.3

    def test_user_preference(self, make_item):
        preferences = UserPreferences(
            preferred_categories={"article": 1.0},
            preferred_domains={"example.com": 0.0},
            preferred_content_length=ContentLength.MEDIUM,
        )
        item = make_item("x", category="article", word_count=500)

        # 0.5 + 0.5*0.4 - 0.5*0.3 + 0.1
        assert SuggestionRanker.user_preference_score(item, preferences) == pytest.approx(0.65)

    def test_contextual_fit(self, ranker, make_item):
        item = make_item("x", reading_time=4)
        context = SuggestionContext(time_of_day=9, user_activity=UserActivity.BROWSING, session_duration=1)

        # 0.5 + 0.2 (preferred hour) + 0.1 (short read while browsing) - 0.1 (long for a short session)
        assert ranker.contextual_fit_score(item, context, UserPreferences()) == pytest.approx(0.7)

    def test_activity_bonus(self, make_item):
        docs = make_item("x", category="documentation", reading_time=10)
        assert SuggestionRanker.activity_bonus(docs, UserActivity.READING) == 0.15
        assert SuggestionRanker.activity_bonus(docs, UserActivity.RESEARCHING) == 0.2
        assert SuggestionRanker.activity_bonus(docs, UserActivity.WORKING) == 0.15
        assert SuggestionRanker.activity_bonus(docs, UserActivity.BROWSING) == -0.05

    def test_content_length(self):
        assert categorize_content_length(100) == ContentLength.SHORT
        assert categorize_content_length(500) == ContentLength.MEDIUM
        assert categorize_content_length(5000) == ContentLength.LONG

    def test_engagement_score(self, make_item):
        assert engagement_score(make_item("x")) == 0.0
        assert engagement_score(make_item("x", times_accessed=10, user_rating=5)) == pytest.approx(0.7)


class TestWeightAdaptation:
    """Test online weight updates."""

    def test_needs_both_outcomes(self, ranker):
        feedback = [RankingFeedback("a", "engaged", _factors(relevance=0.9))]
        assert ranker.update_weights(feedback) == {}
        assert ranker.weights == default_weights()

    def test_raises_factor_higher_on_engaged(self, ranker):
        feedback = [
            RankingFeedback("a", "engaged", _factors(relevance=0.9)),
            RankingFeedback("b", "dismissed", _factors(relevance=0.2)),
        ]

        changed = ranker.update_weights(feedback)

        assert set(changed) == {"relevance"}
        assert ranker.weights["relevance"] == pytest.approx(config.WEIGHT_RELEVANCE + 0.1)
        assert ranker.weights["recency"] == config.WEIGHT_RECENCY

    def test_capped(self, ranker):
        feedback = [
            RankingFeedback("a", "engaged", _factors(relevance=0.9)),
            RankingFeedback("b", "dismissed", _factors(relevance=0.2)),
        ]
        for _ in range(5):
            ranker.update_weights(feedback)

        assert ranker.weights["relevance"] == config.WEIGHT_CAPS["relevance"]
        assert ranker.update_weights(feedback) == {}

    def test_reset(self, ranker):
        ranker.weights["relevance"] = 0.5
        ranker.reset_weights()
        assert ranker.weights == default_weights()
