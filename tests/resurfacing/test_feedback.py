"""Tests for feedback analytics."""

import pytest
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from domains.resurfacing.feedback import FeedbackAnalytics, summarize_feedback
from domains.resurfacing.types import (
    DismissalReason,
    InteractionAction,
    InteractionEvent,
    Trend,
)

UTC = timezone.utc
NOW = datetime(2026, 3, 10, 22, 0, tzinfo=UTC)  # Tuesday


def _event(action, when, reason=None, duration=None):
    return InteractionEvent(
        content_id="x",
        suggestion_id="s",
        timestamp=when,
        action=action,
        dismissal_reason=reason,
        engagement_duration=duration,
    )


def _at(hour, minute=0, days_ago=0):
    return datetime(2026, 3, 10, hour, minute, tzinfo=UTC) - timedelta(days=days_ago)


class TestSummarizeFeedback:
    """Test aggregate feedback analytics."""

    def test_empty_history(self):
        assert summarize_feedback([]) == FeedbackAnalytics()

    def test_distribution_and_best_hours(self):
        history = (
            [_event(InteractionAction.CLICKED, _at(9, m), duration=30) for m in range(5)]
            + [_event(InteractionAction.DISMISSED, _at(9, 30), reason=DismissalReason.BAD_TIMING)]
            + [_event(InteractionAction.CLICKED, _at(15, 0), duration=90)]
            + [_event(InteractionAction.DISMISSED, _at(15, m), reason=DismissalReason.NOT_RELEVANT) for m in range(1, 5)]
            + [_event(InteractionAction.CLICKED, _at(20, m)) for m in range(2)]
        )

        analytics = summarize_feedback(history, now=NOW)

        assert analytics.total_events == 13
        assert analytics.action_distribution == {"clicked": 8, "dismissed": 5}
        assert analytics.dismissal_reasons == {"bad_timing": 1, "not_relevant": 4}
        assert analytics.click_through_rate == pytest.approx(8 / 13)
        assert analytics.dismissal_rate == pytest.approx(5 / 13)
        assert analytics.average_engagement_duration == pytest.approx((5 * 30 + 90) / 6)
        assert analytics.best_performing_hours == [9, 15]
        assert analytics.best_performing_days == [1]
        assert analytics.trend == Trend.STABLE
        assert analytics.problem_areas == []

    def test_problem_areas(self):
        history = (
            [_event(InteractionAction.DISMISSED, _at(10, m)) for m in range(7)]
            + [_event(InteractionAction.IGNORED, _at(11, m)) for m in range(3)]
        )

        analytics = summarize_feedback(history, now=NOW)

        assert analytics.problem_areas == ["high_dismissal_rate", "low_engagement"]

    def test_low_engagement_needs_enough_events(self):
        history = [_event(InteractionAction.IGNORED, _at(10, m)) for m in range(5)]
        assert summarize_feedback(history, now=NOW).problem_areas == []

    def test_improvement_over_last_week(self):
        history = (
            [_event(InteractionAction.IGNORED, _at(10, m, days_ago=30)) for m in range(4)]
            + [_event(InteractionAction.CLICKED, _at(10, m)) for m in range(4)]
        )

        analytics = summarize_feedback(history, now=NOW)

        assert analytics.engagement_rate == pytest.approx(0.5)
        assert analytics.improvement_rate == pytest.approx(100.0)
        assert analytics.trend == Trend.IMPROVING

    def test_declining(self):
        history = (
            [_event(InteractionAction.CLICKED, _at(10, m, days_ago=30)) for m in range(4)]
            + [_event(InteractionAction.IGNORED, _at(10, m)) for m in range(4)]
        )

        analytics = summarize_feedback(history, now=NOW)

        assert analytics.improvement_rate == pytest.approx(-100.0)
        assert analytics.trend == Trend.DECLINING

    def test_naive_timestamps_treated_as_utc(self):
        history = [
            _event(InteractionAction.CLICKED, _at(21)),
            _event(InteractionAction.CLICKED, datetime(2026, 3, 10, 21, 30)),
            _event(InteractionAction.DISMISSED, datetime(2026, 2, 1, 9, 0)),
        ]

        analytics = summarize_feedback(history, now=datetime(2026, 3, 10, 22, 0))

        assert analytics.total_events == 3
        assert analytics.improvement_rate == pytest.approx(50.0)

    def test_local_timezone_buckets(self):
        history = [_event(InteractionAction.CLICKED, _at(23, m)) for m in range(5)]

        analytics = summarize_feedback(history, now=NOW, tz=ZoneInfo("America/New_York"))

        assert analytics.best_performing_hours == [19]
