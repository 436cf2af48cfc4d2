"""Suggestion ranking and filtering.

Pipeline:
1. Filter: relevance floor, max age, recently viewed, optional engagement floor
2. Score: six factors in [0, 1], weighted sum
3. Diversify: best first, at most N per category
"""

import copy
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from logger import logger
from . import config
from .decay import days_between, linear_recency
from .types import (
    ContentItem,
    ContentLength,
    ContextualSuggestion,
    FilteringStats,
    LearningMetrics,
    RankingFactors,
    RankingResult,
    SuggestionContext,
    UserActivity,
    UserPreferences,
    url_domain,
)

FACTORS = ("relevance", "recency", "popularity", "diversity", "user_preference", "contextual_fit")


def default_weights() -> dict[str, float]:
    return {
        "relevance": config.WEIGHT_RELEVANCE,
        "recency": config.WEIGHT_RECENCY,
        "popularity": config.WEIGHT_POPULARITY,
        "diversity": config.WEIGHT_DIVERSITY,
        "user_preference": config.WEIGHT_USER_PREFERENCE,
        "contextual_fit": config.WEIGHT_CONTEXTUAL_FIT,
    }


@dataclass
class FilterCriteria:
    min_relevance_score: float = config.MIN_RELEVANCE_SCORE
    max_age_days: float = config.MAX_CONTENT_AGE_DAYS
    exclude_recently_viewed: bool = True
    recently_viewed_hours: float = config.RECENTLY_VIEWED_HOURS
    require_minimum_engagement: bool = False
    min_engagement_score: float = config.MIN_ENGAGEMENT_SCORE
    enable_category_diversity: bool = True
    max_suggestions_per_category: int = config.MAX_SUGGESTIONS_PER_CATEGORY


@dataclass
class RankingFeedback:
    """Outcome of a ranked suggestion, used to adapt weights."""
    content_id: str
    user_action: str  # "engaged" or "dismissed"
    factors: RankingFactors


def categorize_content_length(word_count: int) -> ContentLength:
    if word_count < config.SHORT_CONTENT_WORDS:
        return ContentLength.SHORT
    if word_count < config.MEDIUM_CONTENT_WORDS:
        return ContentLength.MEDIUM
    return ContentLength.LONG


def engagement_score(content: ContentItem) -> float:
    """Historic engagement: accesses, rating, notes, importance."""
    score = min(content.times_accessed / 10, 1) * 0.4

    if content.user_rating:
        score += (content.user_rating - 1) / 4 * 0.3
    if content.user_notes:
        score += min(len(content.user_notes) / 100, 1) * 0.2
    if content.importance:
        score += (content.importance - 1) / 9 * 0.1

    return max(0.0, min(1.0, score))


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


class SuggestionRanker:
    """Filters, scores and diversifies upstream suggestions."""

    def __init__(self, weights: Optional[dict[str, float]] = None):
        self.weights = weights or default_weights()

    def rank_suggestions(
        self,
        suggestions: list[ContextualSuggestion],
        context: SuggestionContext,
        preferences: UserPreferences,
        metrics: LearningMetrics,
        ranking_weights: Optional[dict[str, float]] = None,
        filter_criteria: Optional[FilterCriteria] = None,
        now: Optional[datetime] = None,
    ) -> RankingResult:
        """Rank candidate suggestions for the current context.

        Preferences and metrics are copied up front so concurrent learning
        never tears a ranking pass.
        """
        now = now or datetime.now(timezone.utc)
        preferences = copy.deepcopy(preferences)
        metrics = copy.deepcopy(metrics)
        weights = {**self.weights, **(ranking_weights or {})}
        criteria = filter_criteria or FilterCriteria()

        kept, stats = self.apply_filters(suggestions or [], criteria, now)

        factors = {
            s.content_id: self.score(s, context, preferences, weights, now)
            for s in kept
        }
        ordered = sorted(kept, key=lambda s: (-factors[s.content_id].final_score, s.content_id))

        if criteria.enable_category_diversity:
            ranked = self.apply_diversity(ordered, criteria.max_suggestions_per_category)
        else:
            ranked = ordered

        logger.debug(
            f"Ranked {len(ranked)}/{stats.total_candidates} suggestions "
            f"(filtered {stats.filtered_out})"
        )
        return RankingResult(
            ranked_suggestions=ranked,
            filtering_stats=stats,
            ranking_factors=factors,
        )

    def apply_filters(
        self,
        suggestions: list[ContextualSuggestion],
        criteria: FilterCriteria,
        now: datetime,
    ) -> tuple[list[ContextualSuggestion], FilteringStats]:
        stats = FilteringStats(total_candidates=len(suggestions))

        def reject(reason: str) -> None:
            stats.filter_reasons[reason] = stats.filter_reasons.get(reason, 0) + 1
            stats.filtered_out += 1

        kept = []
        for suggestion in suggestions:
            content = suggestion.content
            if suggestion.relevance_score < criteria.min_relevance_score:
                reject("low_relevance")
                continue
            if days_between(content.timestamp, now) > criteria.max_age_days:
                reject("too_old")
                continue
            if criteria.exclude_recently_viewed:
                hours_since_access = days_between(content.last_accessed, now) * 24
                if hours_since_access < criteria.recently_viewed_hours:
                    reject("recently_viewed")
                    continue
            if criteria.require_minimum_engagement:
                if engagement_score(content) < criteria.min_engagement_score:
                    reject("low_engagement")
                    continue
            kept.append(suggestion)

        stats.final_count = len(kept)
        return kept, stats

    def score(
        self,
        suggestion: ContextualSuggestion,
        context: SuggestionContext,
        preferences: UserPreferences,
        weights: dict[str, float],
        now: datetime,
    ) -> RankingFactors:
        values = {
            "relevance": _clamp(suggestion.relevance_score),
            "recency": self.recency_score(suggestion.content, now),
            "popularity": self.popularity_score(suggestion.content),
            "diversity": self.diversity_score(suggestion.content, context),
            "user_preference": self.user_preference_score(suggestion.content, preferences),
            "contextual_fit": self.contextual_fit_score(suggestion.content, context, preferences),
        }
        final = sum(values[name] * weights.get(name, 0.0) for name in FACTORS)
        return RankingFactors(**values, final_score=final)

    # -- factors -----------------------------------------------------------

    @staticmethod
    def recency_score(content: ContentItem, now: datetime) -> float:
        capture = linear_recency(days_between(content.timestamp, now), config.CAPTURE_RECENCY_WINDOW_DAYS)
        access = linear_recency(days_between(content.last_accessed, now), config.ACCESS_RECENCY_WINDOW_DAYS)
        return _clamp(capture * 0.3 + access * 0.7)

    @staticmethod
    def popularity_score(content: ContentItem) -> float:
        normalized_access = min(content.times_accessed / config.POPULARITY_ACCESS_CAP, 1)

        rating_bonus = 0.0
        if content.user_rating:
            rating_bonus = (content.user_rating - 3) / 2  # 1-5 -> -1..1

        notes_bonus = 0.2 if content.user_notes and len(content.user_notes) > 10 else 0.0

        return _clamp(normalized_access + rating_bonus * 0.3 + notes_bonus)

    @staticmethod
    def diversity_score(content: ContentItem, context: SuggestionContext) -> float:
        if content.category and content.category != context.current_category:
            return 0.8

        suggestion_domain = content.domain
        current_domain = url_domain(context.current_url)
        if suggestion_domain and current_domain and suggestion_domain != current_domain:
            return 0.6

        return 0.3

    @staticmethod
    def user_preference_score(content: ContentItem, preferences: UserPreferences) -> float:
        score = 0.5

        if content.category and content.category in preferences.preferred_categories:
            score += (preferences.preferred_categories[content.category] - 0.5) * 0.4

        domain = content.domain
        if domain and domain in preferences.preferred_domains:
            score += (preferences.preferred_domains[domain] - 0.5) * 0.3

        author = content.metadata.author
        if author and author in preferences.preferred_authors:
            score += (preferences.preferred_authors[author] - 0.5) * 0.2

        length = categorize_content_length(content.metadata.word_count)
        if preferences.preferred_content_length != ContentLength.ANY and length == preferences.preferred_content_length:
            score += 0.1

        return _clamp(score)

    def contextual_fit_score(
        self,
        content: ContentItem,
        context: SuggestionContext,
        preferences: UserPreferences,
    ) -> float:
        score = 0.5

        if context.time_of_day in preferences.preferred_hours:
            score += 0.2

        score += self.activity_bonus(content, context.user_activity)

        if context.session_duration > 10:
            score += 0.1  # engaged session
        elif context.session_duration < 2:
            score += 0.15 if content.metadata.reading_time <= 3 else -0.1

        return _clamp(score)

    @staticmethod
    def activity_bonus(content: ContentItem, activity: UserActivity) -> float:
        reading_time = content.metadata.reading_time
        category = content.category

        if activity == UserActivity.BROWSING:
            return 0.1 if reading_time <= 5 else -0.05
        if activity == UserActivity.READING:
            return 0.15 if reading_time > 5 else 0.05
        if activity == UserActivity.RESEARCHING:
            return 0.2 if category in config.DOCUMENTATION_CATEGORIES else 0.0
        if activity == UserActivity.WORKING:
            return 0.15 if category == "documentation" else 0.05
        return 0.0

    # -- diversity & adaptation -------------------------------------------

    @staticmethod
    def apply_diversity(
        ordered: list[ContextualSuggestion],
        max_per_category: int,
    ) -> list[ContextualSuggestion]:
        """Greedily admit best-first, capping admissions per category."""
        counts: dict[str, int] = {}
        admitted = []
        for suggestion in ordered:
            category = suggestion.content.category or "other"
            if counts.get(category, 0) < max_per_category:
                admitted.append(suggestion)
                counts[category] = counts.get(category, 0) + 1
        return admitted

    def update_weights(self, feedback: list[RankingFeedback]) -> dict[str, float]:
        """Raise the weight of every factor that is higher on engaged suggestions.

        Needs both engaged and dismissed feedback. Weights only move up, each
        bounded by its cap, and are not renormalised.

        Returns:
            The weights that changed, with their new values
        """
        engaged = [f.factors for f in feedback if f.user_action == "engaged"]
        dismissed = [f.factors for f in feedback if f.user_action == "dismissed"]
        if not engaged or not dismissed:
            return {}

        adjustments = {}
        for name in FACTORS:
            engaged_mean = sum(getattr(f, name) for f in engaged) / len(engaged)
            dismissed_mean = sum(getattr(f, name) for f in dismissed) / len(dismissed)
            if engaged_mean <= dismissed_mean:
                continue

            current = self.weights[name]
            cap = config.WEIGHT_CAPS[name]
            if current >= cap:
                continue
            updated = min(cap, current + config.WEIGHT_LEARNING_RATE)
            self.weights[name] = updated
            adjustments[name] = updated

        if adjustments:
            logger.info(f"Ranking weights adapted: {adjustments}")
        return adjustments

    def reset_weights(self) -> None:
        self.weights = default_weights()
