"""Feedback analytics over the interaction history."""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional

from . import config
from .types import InteractionAction, InteractionEvent, Trend, ensure_aware


@dataclass
class FeedbackAnalytics:
    total_events: int = 0
    action_distribution: dict[str, int] = field(default_factory=dict)
    dismissal_reasons: dict[str, int] = field(default_factory=dict)
    click_through_rate: float = 0.0
    engagement_rate: float = 0.0
    dismissal_rate: float = 0.0
    average_engagement_duration: float = 0.0  # seconds
    best_performing_hours: list[int] = field(default_factory=list)
    best_performing_days: list[int] = field(default_factory=list)  # 0 = Monday
    improvement_rate: float = 0.0  # percent, last 7 days vs overall
    trend: Trend = Trend.STABLE
    problem_areas: list[str] = field(default_factory=list)


def _best(performance: dict[int, list[int]], min_samples: int, limit: int) -> list[int]:
    """Keys with enough samples, best engagement rate first."""
    eligible = [
        (key, engaged / total)
        for key, (total, engaged) in performance.items()
        if total >= min_samples
    ]
    eligible.sort(key=lambda kv: (-kv[1], kv[0]))
    return [key for key, _ in eligible[:limit]]


def summarize_feedback(
    history: list[InteractionEvent],
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> FeedbackAnalytics:
    """Summarise how suggestions have been received.

    Args:
        history: Interaction events, any order
        now: Reference time for the 7-day window (defaults to utcnow)
        tz: Timezone for hour/day bucketing (default: each event's own tz)

    Returns:
        FeedbackAnalytics (all zeros for an empty history)
    """
    if not history:
        return FeedbackAnalytics()

    now = ensure_aware(now or datetime.now(timezone.utc))
    total = len(history)

    actions = Counter(e.action.value for e in history)
    reasons = Counter(e.dismissal_reason.value for e in history if e.dismissal_reason)
    engaged_events = [e for e in history if e.action.is_positive]
    durations = [e.engagement_duration for e in engaged_events if e.engagement_duration is not None]

    by_hour: dict[int, list[int]] = {}
    by_day: dict[int, list[int]] = {}
    for event in history:
        when = ensure_aware(event.timestamp)
        if tz is not None:
            when = when.astimezone(tz)
        for bucket, key in ((by_hour, when.hour), (by_day, when.weekday())):
            stats = bucket.setdefault(key, [0, 0])
            stats[0] += 1
            stats[1] += int(event.action.is_positive)

    engagement_rate = len(engaged_events) / total
    window_start = now - timedelta(days=config.TREND_WINDOW_DAYS)
    recent = [e for e in history if ensure_aware(e.timestamp) >= window_start]
    recent_rate = sum(1 for e in recent if e.action.is_positive) / len(recent) if recent else 0.0
    improvement = (recent_rate - engagement_rate) / engagement_rate * 100 if engagement_rate > 0 else 0.0

    if improvement > 5:
        trend = Trend.IMPROVING
    elif improvement < -5:
        trend = Trend.DECLINING
    else:
        trend = Trend.STABLE

    click_through = actions.get(InteractionAction.CLICKED.value, 0) / total
    dismissal_rate = actions.get(InteractionAction.DISMISSED.value, 0) / total

    problems = []
    if dismissal_rate > config.HIGH_DISMISSAL_RATE:
        problems.append("high_dismissal_rate")
    if click_through < config.LOW_CLICK_THROUGH_RATE and total >= config.LOW_CLICK_THROUGH_MIN_EVENTS:
        problems.append("low_engagement")

    return FeedbackAnalytics(
        total_events=total,
        action_distribution=dict(actions),
        dismissal_reasons=dict(reasons),
        click_through_rate=click_through,
        engagement_rate=engagement_rate,
        dismissal_rate=dismissal_rate,
        average_engagement_duration=sum(durations) / len(durations) if durations else 0.0,
        best_performing_hours=_best(by_hour, config.BEST_HOUR_MIN_SAMPLES, 5),
        best_performing_days=_best(by_day, config.BEST_DAY_MIN_SAMPLES, 3),
        improvement_rate=improvement,
        trend=trend,
        problem_areas=problems,
    )
