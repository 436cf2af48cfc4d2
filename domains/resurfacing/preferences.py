"""Online preference learning from suggestion outcomes.

Every recorded interaction:
- moves the item's category and domain preference toward 1 (positive) or 0 (negative)
- adds the hour to the preferred set on positive engagement, and drops it only
  after more than 3 bad-timing dismissals at that hour
- tightens the relevance threshold on near-threshold "not relevant" dismissals
- widens the minimum gap on "too frequent" dismissals
- decays all learned scores a small step toward neutral 0.5
"""

import copy
from dataclasses import fields, replace
from datetime import datetime, timedelta, tzinfo
from typing import Callable, Optional

from logger import logger
from . import config
from .ranker import categorize_content_length
from .types import (
    ContentItem,
    ContentLength,
    ContextualSuggestion,
    DismissalReason,
    InteractionAction,
    InteractionEvent,
    LearningMetrics,
    PerformanceCounter,
    Trend,
    UserPreferences,
    url_domain,
)

ContentLookup = Callable[[str], Optional[ContentItem]]


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


class PreferenceLearner:
    """Owns UserPreferences, LearningMetrics and the interaction history."""

    def __init__(
        self,
        content_lookup: Optional[ContentLookup] = None,
        tz: Optional[tzinfo] = None,
        max_history: int = config.MAX_HISTORY_SIZE,
    ):
        self.content_lookup = content_lookup
        self.tz = tz
        self.max_history = max_history
        self._preferences = UserPreferences()
        self._metrics = LearningMetrics()
        self._history: list[InteractionEvent] = []

    def _hour(self, when: datetime) -> int:
        if self.tz is not None and when.tzinfo is not None:
            when = when.astimezone(self.tz)
        return when.hour

    def _resolve(self, event: InteractionEvent, content: Optional[ContentItem]) -> Optional[ContentItem]:
        if content is not None:
            return content
        if self.content_lookup is None:
            return None
        try:
            return self.content_lookup(event.content_id)
        except Exception as e:
            logger.warning(f"Content lookup failed for {event.content_id}: {e}")
            return None

    # -- recording ---------------------------------------------------------

    def record_interaction(self, event: InteractionEvent, content: Optional[ContentItem] = None) -> None:
        """Append an interaction and learn from it."""
        event = event.normalized()
        self._history.append(event)
        if len(self._history) > self.max_history:
            self._history = self._history[-self.max_history:]

        content = self._resolve(event, content)
        self._update_metrics(event, content)
        self._update_preferences(event, content)

    def _update_preferences(self, event: InteractionEvent, content: Optional[ContentItem]) -> None:
        prefs = self._preferences
        positive = event.action.is_positive
        negative = event.action.is_negative

        if positive:
            duration = event.engagement_duration
            factor = min(duration / 60, 1) if duration is not None else 0.5
            adjustment = prefs.learning_rate * factor
        elif negative:
            adjustment = -prefs.learning_rate * config.NEGATIVE_ADJUSTMENT_FACTOR
        else:
            adjustment = 0.0

        if content is not None and content.category:
            current = prefs.preferred_categories.get(content.category, config.NEUTRAL_PREFERENCE)
            prefs.preferred_categories[content.category] = _clamp(current + adjustment)

        domain = content.domain if content is not None else None
        if domain:
            current = prefs.preferred_domains.get(domain, config.NEUTRAL_PREFERENCE)
            prefs.preferred_domains[domain] = _clamp(current + adjustment)

        hour = self._hour(event.timestamp)
        if positive and hour not in prefs.preferred_hours:
            prefs.preferred_hours.append(hour)
            prefs.preferred_hours.sort()
            logger.debug(f"Learned preferred hour {hour}:00")
        elif negative and event.dismissal_reason == DismissalReason.BAD_TIMING:
            dismissals = sum(
                1 for e in self._history
                if e.action == InteractionAction.DISMISSED
                and e.dismissal_reason == DismissalReason.BAD_TIMING
                and self._hour(e.timestamp) == hour
            )
            if dismissals > config.BAD_TIMING_DISMISSALS_TO_DROP_HOUR and hour in prefs.preferred_hours:
                prefs.preferred_hours.remove(hour)
                logger.info(f"Dropped preferred hour {hour}:00 after {dismissals} bad-timing dismissals")

        if negative and event.dismissal_reason == DismissalReason.NOT_RELEVANT:
            if event.context.relevance_score < prefs.min_relevance_threshold + 0.1:
                prefs.min_relevance_threshold = min(
                    config.RELEVANCE_THRESHOLD_CAP,
                    prefs.min_relevance_threshold + config.RELEVANCE_THRESHOLD_STEP,
                )

        if event.dismissal_reason == DismissalReason.TOO_FREQUENT:
            prefs.min_time_between_suggestions = min(
                config.SUGGESTION_GAP_CAP_MINUTES,
                prefs.min_time_between_suggestions + config.SUGGESTION_GAP_STEP_MINUTES,
            )

        self._apply_decay()

    def _apply_decay(self) -> None:
        """Pull every learned score a step toward neutral."""
        rate = self._preferences.decay_rate
        for scores in (
            self._preferences.preferred_categories,
            self._preferences.preferred_domains,
            self._preferences.preferred_authors,
        ):
            for key, value in scores.items():
                scores[key] = value * (1 - rate) + config.NEUTRAL_PREFERENCE * rate

    def _update_metrics(self, event: InteractionEvent, content: Optional[ContentItem]) -> None:
        metrics = self._metrics
        engaged = event.action.is_positive

        metrics.total_suggestions += 1
        if engaged:
            metrics.total_engagements += 1
            if event.engagement_duration is not None:
                n = metrics.total_engagements
                metrics.average_engagement_duration = (
                    metrics.average_engagement_duration * (n - 1) + event.engagement_duration
                ) / n

        if event.action == InteractionAction.DISMISSED:
            metrics.total_dismissals += 1

        metrics.engagement_rate = metrics.total_engagements / metrics.total_suggestions
        metrics.dismissal_rate = metrics.total_dismissals / metrics.total_suggestions

        if content is not None and content.category:
            counter = metrics.category_performance.setdefault(content.category, PerformanceCounter())
            counter.suggestions += 1
            counter.engagements += int(engaged)

        timing = metrics.timing_performance.setdefault(event.context.suggested_timing, PerformanceCounter())
        timing.suggestions += 1
        timing.engagements += int(engaged)

        self._update_trend(event.timestamp)

    def _update_trend(self, reference: datetime) -> None:
        window_start = reference - timedelta(days=config.TREND_WINDOW_DAYS)
        recent = [e for e in self._history if e.timestamp >= window_start]
        if not recent:
            return

        metrics = self._metrics
        weekly = sum(1 for e in recent if e.action.is_positive) / len(recent)
        metrics.weekly_engagement_rate = weekly

        if weekly > metrics.engagement_rate + config.TREND_BAND:
            metrics.improvement_trend = Trend.IMPROVING
        elif weekly < metrics.engagement_rate - config.TREND_BAND:
            metrics.improvement_trend = Trend.DECLINING
        else:
            metrics.improvement_trend = Trend.STABLE

    # -- quality adjustment ------------------------------------------------

    def adjust_suggestion_quality(self, candidates: list[ContextualSuggestion]) -> list[ContextualSuggestion]:
        """Re-score candidates with learned preferences, drop weak ones, cap to the daily limit."""
        prefs = self._preferences
        adjusted = [self._adjust(candidate) for candidate in candidates]
        kept = [c for c in adjusted if c.relevance_score >= prefs.min_relevance_threshold]
        kept.sort(key=lambda c: (-c.relevance_score, c.content_id))
        return kept[:prefs.max_suggestions_per_day]

    def _adjust(self, candidate: ContextualSuggestion) -> ContextualSuggestion:
        prefs = self._preferences
        content = candidate.content
        score = candidate.relevance_score
        reasons = list(candidate.match_reasons)

        if content.category and content.category in prefs.preferred_categories:
            delta = (prefs.preferred_categories[content.category] - 0.5) * 0.2
            score += delta
            if delta > 0.05:
                reasons.append("preferred category")
            elif delta < -0.05:
                reasons.append("less preferred category")

        domain = url_domain(content.url)
        if domain and domain in prefs.preferred_domains:
            delta = (prefs.preferred_domains[domain] - 0.5) * 0.15
            score += delta
            if delta > 0.03:
                reasons.append("preferred domain")
            elif delta < -0.03:
                reasons.append("less preferred domain")

        author = content.metadata.author
        if author and author in prefs.preferred_authors:
            delta = (prefs.preferred_authors[author] - 0.5) * 0.1
            score += delta
            if delta > 0.02:
                reasons.append("preferred author")

        length = categorize_content_length(content.metadata.word_count)
        if prefs.preferred_content_length != ContentLength.ANY and length == prefs.preferred_content_length:
            score += 0.05
            reasons.append("preferred content length")

        return replace(candidate, relevance_score=_clamp(score), match_reasons=reasons)

    # -- accessors ---------------------------------------------------------

    def get_preferences(self) -> UserPreferences:
        return copy.deepcopy(self._preferences)

    def get_learning_metrics(self) -> LearningMetrics:
        return copy.deepcopy(self._metrics)

    def update_preferences(self, **updates) -> None:
        known = {f.name for f in fields(UserPreferences)}
        unknown = set(updates) - known
        if unknown:
            raise ValueError(f"Unknown preference fields: {sorted(unknown)}")
        for key, value in updates.items():
            setattr(self._preferences, key, copy.deepcopy(value))

    def get_interaction_history(self, limit: Optional[int] = None) -> list[InteractionEvent]:
        if limit:
            return self._history[-limit:]
        return list(self._history)

    # -- backup ------------------------------------------------------------

    def export_data(self) -> dict:
        return {
            "preferences": self._preferences.to_dict(),
            "metrics": self._metrics.to_dict(),
            "history": [e.to_dict() for e in self._history],
        }

    def import_data(self, data: dict) -> list[str]:
        """Restore from a backup. Malformed sections fall back to defaults.

        Returns:
            Names of the sections that were rejected
        """
        rejected = []

        if data.get("preferences") is not None:
            try:
                self._preferences = UserPreferences.from_dict(data["preferences"])
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Corrupt preferences in import, using defaults: {e}")
                self._preferences = UserPreferences()
                rejected.append("preferences")

        if data.get("metrics") is not None:
            try:
                self._metrics = LearningMetrics.from_dict(data["metrics"])
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Corrupt metrics in import, using defaults: {e}")
                self._metrics = LearningMetrics()
                rejected.append("metrics")

        if data.get("history") is not None:
            try:
                history = [InteractionEvent.from_dict(row) for row in data["history"]]
                self._history = history[-self.max_history:]
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Corrupt history in import, starting empty: {e}")
                self._history = []
                rejected.append("history")

        return rejected

    def reset_learning(self) -> None:
        self._preferences = UserPreferences()
        self._metrics = LearningMetrics()
        self._history = []
        logger.info("Preference learning reset")
