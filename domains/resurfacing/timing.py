"""Timing algorithms for resurfacing content.

Delay model:
    base delay from the urgency hint (immediate 2m, delayed 15m, background 2h, default 1h)
    x (1 - 0.5 * (1 - retention))            forgetting curve, floor 1m
    x relevance / engagement / frequency      contextual discounts, floor 1m

Constraint pipeline, in order:
    1. push out of quiet hours (overnight windows wrap)
    2. hourly rate limit and minimum gap over a sliding window
    3. snap forward to the next preferred hour
"""

import copy
from dataclasses import dataclass, fields
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional

from logger import logger
from . import config
from .decay import access_frequency, days_between, forgetting_curve
from .types import (
    ContentItem,
    ContextualSuggestion,
    ResurfacingTiming,
    SuggestedTiming,
    TimingFactors,
    Urgency,
    UserBehaviorPattern,
)


@dataclass
class TimingOptions:
    respect_quiet_hours: bool = True
    quiet_hours_start: int = config.QUIET_HOURS_START
    quiet_hours_end: int = config.QUIET_HOURS_END
    max_suggestions_per_hour: int = config.MAX_SUGGESTIONS_PER_HOUR
    min_time_between_suggestions: int = config.MIN_MINUTES_BETWEEN_SUGGESTIONS  # minutes
    enable_forgetting_curve: bool = True
    enable_contextual_timing: bool = True


def in_quiet_hours(hour: int, start: int, end: int) -> bool:
    if start == end:
        return False
    if start > end:  # overnight window
        return hour >= start or hour < end
    return start <= hour < end


def user_engagement(content: ContentItem) -> float:
    """Heuristic engagement from access count, rating, notes and importance."""
    engagement = 0.5

    if content.times_accessed > 5:
        engagement += 0.2
    elif content.times_accessed > 2:
        engagement += 0.1

    if content.user_rating:
        engagement += (content.user_rating - 3) * 0.1
    if content.user_notes and len(content.user_notes) > 10:
        engagement += 0.15
    if content.importance:
        engagement += (content.importance - 5) * 0.05

    return max(0.0, min(1.0, engagement))


class ResurfacingScheduler:
    """Computes when a suggestion should surface and tracks per-hour engagement."""

    def __init__(self, tz: Optional[tzinfo] = None):
        """Initialize scheduler.

        Args:
            tz: Timezone for quiet and preferred hours (default: the tz of `now`)
        """
        self.tz = tz
        self._behavior = UserBehaviorPattern()
        self._recent: list[tuple[datetime, str]] = []

    def _local(self, when: datetime) -> datetime:
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        return when.astimezone(self.tz) if self.tz is not None else when

    # -- main entry --------------------------------------------------------

    def calculate_optimal_timing(
        self,
        content: ContentItem,
        suggestion: ContextualSuggestion,
        options: Optional[TimingOptions] = None,
        now: Optional[datetime] = None,
    ) -> ResurfacingTiming:
        options = options or TimingOptions()
        now = self._local(now or datetime.now(timezone.utc))

        factors = self.calculate_timing_factors(content, suggestion.relevance_score, now)

        delay = self.base_delay(suggestion.suggested_timing)
        if options.enable_forgetting_curve:
            delay = self.apply_forgetting_curve(delay, factors)
        if options.enable_contextual_timing:
            delay = self.apply_contextual_timing(delay, factors)

        suggested = self.apply_constraints(now + timedelta(minutes=delay), options, now)

        return ResurfacingTiming(
            content_id=content.id,
            suggested_time=suggested,
            confidence=self.calculate_confidence(factors),
            reason=self.timing_reason(factors),
            urgency=self.determine_urgency(suggested, now, factors),
            factors=factors,
        )

    def calculate_timing_factors(
        self,
        content: ContentItem,
        relevance_score: float,
        now: datetime,
    ) -> TimingFactors:
        days_since_capture = days_between(content.timestamp, now)
        days_since_access = max(0.0, days_between(content.last_accessed, now))
        frequency = access_frequency(content.times_accessed, days_since_capture)

        return TimingFactors(
            last_accessed=content.last_accessed,
            days_since_access=days_since_access,
            access_frequency=frequency,
            content_age=days_since_capture,
            relevance_score=relevance_score,
            user_engagement=user_engagement(content),
            forgetting_curve=forgetting_curve(days_since_access, frequency),
        )

    # -- delay model -------------------------------------------------------

    @staticmethod
    def base_delay(hint: Optional[SuggestedTiming]) -> float:
        """Base delay in minutes for an urgency hint."""
        key = hint.value if isinstance(hint, SuggestedTiming) else hint
        return float(config.BASE_DELAY_MINUTES.get(key, config.DEFAULT_DELAY_MINUTES))

    @staticmethod
    def apply_forgetting_curve(delay: float, factors: TimingFactors) -> float:
        """Surface fading content sooner: up to 50% off the delay."""
        adjustment = (1 - factors.forgetting_curve) * 0.5
        return max(delay * (1 - adjustment), config.MIN_DELAY_MINUTES)

    @staticmethod
    def apply_contextual_timing(delay: float, factors: TimingFactors) -> float:
        adjustment = 1.0

        if factors.relevance_score > 0.7:
            adjustment *= 0.7
        elif factors.relevance_score > 0.5:
            adjustment *= 0.85

        if factors.user_engagement > 0.7:
            adjustment *= 0.8
        if factors.access_frequency > 0.5:
            adjustment *= 0.9

        return max(delay * adjustment, config.MIN_DELAY_MINUTES)

    # -- constraints -------------------------------------------------------

    def apply_constraints(self, when: datetime, options: TimingOptions, now: datetime) -> datetime:
        when = self._local(when)
        if options.respect_quiet_hours:
            when = self.avoid_quiet_hours(when, options, now)
        when = self.respect_frequency_limits(when, options, now)
        when = self.align_with_preferred_hours(when, options)

        # Rate limiting can land back inside the window
        if options.respect_quiet_hours and in_quiet_hours(
            when.hour, options.quiet_hours_start, options.quiet_hours_end
        ):
            when = self.avoid_quiet_hours(when, options, now)
        return when

    def avoid_quiet_hours(self, when: datetime, options: TimingOptions, now: datetime) -> datetime:
        """Move `when` to the end of the quiet window it falls in."""
        when = self._local(when)
        start, end = options.quiet_hours_start, options.quiet_hours_end
        if not in_quiet_hours(when.hour, start, end):
            return when

        candidate = when.replace(hour=end, minute=0, second=0, microsecond=0)
        if candidate <= when:
            candidate += timedelta(days=1)

        if candidate - when > timedelta(hours=config.QUIET_HOURS_MAX_PUSH_HOURS):
            fallback = when.replace(hour=(start - 1) % 24, minute=0, second=0, microsecond=0)
            if fallback > now and not in_quiet_hours(fallback.hour, start, end):
                return fallback

        return candidate

    def respect_frequency_limits(self, when: datetime, options: TimingOptions, now: datetime) -> datetime:
        hour_ago = now - timedelta(hours=1)
        self._recent = [(t, cid) for t, cid in self._recent if t > hour_ago]

        if len(self._recent) >= options.max_suggestions_per_hour:
            next_available = self._recent[0][0] + timedelta(hours=1)
            if when < next_available:
                when = self._local(next_available)

        # The gap applies on top of the hourly cap
        if self._recent:
            min_next = self._recent[-1][0] + timedelta(minutes=options.min_time_between_suggestions)
            if when < min_next:
                when = self._local(min_next)

        return when

    def align_with_preferred_hours(self, when: datetime, options: Optional[TimingOptions] = None) -> datetime:
        """Snap forward to the start of the next preferred hour."""
        hours = sorted(set(self._behavior.preferred_timings))
        if options is not None and options.respect_quiet_hours:
            hours = [
                h for h in hours
                if not in_quiet_hours(h, options.quiet_hours_start, options.quiet_hours_end)
            ]

        if when.hour in hours:
            return when

        later_today = [h for h in hours if h > when.hour]
        if later_today:
            return when.replace(hour=later_today[0], minute=0, second=0, microsecond=0)

        if not hours:
            fallback = config.FALLBACK_PREFERRED_HOUR
            if when.hour == fallback:
                return when
            if when.hour < fallback:
                return when.replace(hour=fallback, minute=0, second=0, microsecond=0)

        first = hours[0] if hours else config.FALLBACK_PREFERRED_HOUR
        tomorrow = when + timedelta(days=1)
        return tomorrow.replace(hour=first, minute=0, second=0, microsecond=0)

    # -- scoring -----------------------------------------------------------

    @staticmethod
    def calculate_confidence(factors: TimingFactors) -> float:
        confidence = 0.5
        confidence += factors.relevance_score * 0.3
        confidence += factors.user_engagement * 0.2
        if factors.access_frequency > 0.3:
            confidence += 0.1
        if factors.content_age > 30:
            confidence -= 0.1
        return max(0.0, min(1.0, confidence))

    @staticmethod
    def determine_urgency(suggested: datetime, now: datetime, factors: TimingFactors) -> Urgency:
        delay_minutes = (suggested - now).total_seconds() / 60

        if delay_minutes <= 5 and factors.relevance_score > 0.7:
            return Urgency.IMMEDIATE
        if delay_minutes <= 30:
            return Urgency.SOON
        if delay_minutes <= 120:
            return Urgency.LATER
        return Urgency.EVENTUAL

    @staticmethod
    def timing_reason(factors: TimingFactors) -> str:
        reasons = []
        if factors.relevance_score > 0.7:
            reasons.append("highly relevant to current context")
        if factors.forgetting_curve < 0.3:
            reasons.append("likely to be forgotten soon")
        if factors.access_frequency > 0.5:
            reasons.append("frequently accessed content")
        if factors.user_engagement > 0.7:
            reasons.append("high user engagement")
        return ", ".join(reasons) if reasons else "contextually relevant"

    # -- behaviour model ---------------------------------------------------

    def record_suggestion(self, content_id: str, now: Optional[datetime] = None) -> None:
        """Add a delivered suggestion to the rate-limit window."""
        self._recent.append((self._local(now or datetime.now(timezone.utc)), content_id))
        self._recent.sort(key=lambda entry: entry[0])

    def update_user_behavior(
        self,
        hour: int,
        engaged: bool,
        category: Optional[str] = None,
        dismissal_reason: Optional[str] = None,
    ) -> None:
        behavior = self._behavior

        current = behavior.engagement_by_time.get(hour, 0.0)
        rate = min(1.0, current + 0.1) if engaged else max(0.0, current - 0.05)
        behavior.engagement_by_time[hour] = rate

        if engaged and rate > config.PREFERRED_HOUR_PROMOTION and hour not in behavior.preferred_timings:
            behavior.preferred_timings.append(hour)
            behavior.preferred_timings.sort()
            logger.debug(f"Hour {hour} promoted to preferred (rate={rate:.2f})")

        if category:
            current_category = behavior.engagement_by_category.get(category, 0.5)
            behavior.engagement_by_category[category] = (
                min(1.0, current_category + 0.1) if engaged else max(0.0, current_category - 0.05)
            )

        if not engaged and dismissal_reason and dismissal_reason not in behavior.dismissal_patterns:
            behavior.dismissal_patterns.append(dismissal_reason)

        rates = list(behavior.engagement_by_time.values())
        responsive = sum(1 for r in rates if r > config.RESPONSIVE_HOUR_RATE)
        behavior.response_rate = responsive / len(rates) if rates else 0.3

    def get_user_behavior(self) -> UserBehaviorPattern:
        return copy.deepcopy(self._behavior)

    def set_user_behavior(self, **updates) -> None:
        known = {f.name for f in fields(UserBehaviorPattern)}
        for key, value in updates.items():
            if key not in known:
                logger.warning(f"Ignoring unknown behaviour field: {key}")
                continue
            setattr(self._behavior, key, copy.deepcopy(value))
