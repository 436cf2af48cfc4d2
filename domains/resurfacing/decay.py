"""Decay models for resurfacing.

Two shapes are used:
- Forgetting curve (Ebbinghaus): retention = e^(-t / S), S = 1 + 2 * accesses_per_day
- Linear recency: max(0, 1 - days / window)
"""

import math
from datetime import datetime, timezone


def days_between(earlier: datetime, now: datetime | None = None) -> float:
    """Days elapsed from `earlier` to `now` (fractional, may be negative)."""
    if now is None:
        now = datetime.now(timezone.utc)

    # Handle timezone-naive datetimes
    if earlier.tzinfo is None:
        earlier = earlier.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    return (now - earlier).total_seconds() / 86400


def memory_strength(access_frequency: float) -> float:
    """Memory strength grows with access frequency, never below 1."""
    return max(1.0, 1 + access_frequency * 2)


def forgetting_curve(days_since_access: float, access_frequency: float = 0.0) -> float:
    """Estimate retention of an item.

    Formula:
        retention = e^(-days_since_access / strength)
        strength = max(1, 1 + 2 * access_frequency)

    Args:
        days_since_access: Days since the item was last opened
        access_frequency: Accesses per day since capture

    Returns:
        Retention between 0 and 1 (1.0 = fully remembered)
    """
    days = max(0.0, days_since_access)
    retention = math.exp(-days / memory_strength(access_frequency))
    return max(0.0, min(1.0, retention))


def linear_recency(days_elapsed: float, window_days: float) -> float:
    """Linear decay to zero over `window_days`."""
    return max(0.0, 1 - days_elapsed / window_days)


def access_frequency(times_accessed: int, days_since_capture: float) -> float:
    """Accesses per day since capture (0 for items captured just now)."""
    if days_since_capture <= 0:
        return 0.0
    return times_accessed / days_since_capture
