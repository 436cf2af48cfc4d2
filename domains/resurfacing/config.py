"""Configuration constants for the resurfacing engine."""

from typing import Final

# Similarity analysis
MIN_SIMILARITY_THRESHOLD: Final[float] = 0.3
MAX_RELATIONSHIPS_PER_CONTENT: Final[int] = 10
CATEGORY_WEIGHT: Final[float] = 0.2
CONCEPT_WEIGHT: Final[float] = 0.4
TAG_WEIGHT: Final[float] = 0.2
SEMANTIC_WEIGHT: Final[float] = 0.2
CONCEPT_REASON_THRESHOLD: Final[float] = 0.3
TAG_REASON_THRESHOLD: Final[float] = 0.3
SEMANTIC_REASON_THRESHOLD: Final[float] = 0.4
MAX_SIGNIFICANT_WORDS: Final[int] = 100    # First N significant words per document
MIN_WORD_LENGTH: Final[int] = 4
CONFIDENCE_BOOST_PER_REASON: Final[float] = 0.1

STOP_WORDS: Final[frozenset[str]] = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "is", "are", "was", "were", "be", "been", "have",
    "has", "had", "do", "does", "did", "will", "would", "could", "should",
    "this", "that", "these", "those", "i", "you", "he", "she", "it", "we", "they",
})

# Relationship graph
RELATED_MIN_STRENGTH: Final[float] = 0.3   # get_related() floor
STRONGEST_DEFAULT_LIMIT: Final[int] = 20
MOST_CONNECTED_LIMIT: Final[int] = 10
RELATIONSHIP_TTL_DAYS: Final[int | None] = None  # None = relationships never expire

# Orchestration
PROCESSING_DELAY_SECONDS: Final[float] = 2.0       # Debounce quiet period
BATCH_PROCESSING_INTERVAL: Final[int] = 30         # Seconds between pending sweeps
DEBOUNCE_POLL_SECONDS: Final[int] = 1
BATCH_SIZE: Final[int] = 50
ORCHESTRATOR_MAX_RELATIONSHIPS: Final[int] = 20
REBUILD_MAX_ITEMS: Final[int] = 2_000              # Full rebuild is O(n^2)
REBUILD_PROGRESS_EVERY: Final[int] = 10
STORE_TIMEOUT_SECONDS: Final[float] = 10.0

# Ranking weights (sum to 1.0)
WEIGHT_RELEVANCE: Final[float] = 0.35
WEIGHT_RECENCY: Final[float] = 0.15
WEIGHT_POPULARITY: Final[float] = 0.15
WEIGHT_DIVERSITY: Final[float] = 0.10
WEIGHT_USER_PREFERENCE: Final[float] = 0.15
WEIGHT_CONTEXTUAL_FIT: Final[float] = 0.10

# Online weight adaptation
WEIGHT_LEARNING_RATE: Final[float] = 0.1
WEIGHT_CAPS: Final[dict[str, float]] = {
    "relevance": 0.5,
    "recency": 0.25,
    "popularity": 0.25,
    "diversity": 0.2,
    "user_preference": 0.3,
    "contextual_fit": 0.2,
}

# Ranking filters
MIN_RELEVANCE_SCORE: Final[float] = 0.3
MAX_CONTENT_AGE_DAYS: Final[int] = 90
RECENTLY_VIEWED_HOURS: Final[int] = 24
MIN_ENGAGEMENT_SCORE: Final[float] = 0.2
MAX_SUGGESTIONS_PER_CATEGORY: Final[int] = 2

# Ranking factor shapes
CAPTURE_RECENCY_WINDOW_DAYS: Final[int] = 30
ACCESS_RECENCY_WINDOW_DAYS: Final[int] = 7
POPULARITY_ACCESS_CAP: Final[int] = 20
SHORT_CONTENT_WORDS: Final[int] = 300
MEDIUM_CONTENT_WORDS: Final[int] = 1000
DOCUMENTATION_CATEGORIES: Final[frozenset[str]] = frozenset({"documentation", "article"})

# Resurfacing timing
BASE_DELAY_MINUTES: Final[dict[str, int]] = {
    "immediate": 2,
    "delayed": 15,
    "background": 120,
}
DEFAULT_DELAY_MINUTES: Final[int] = 60
MIN_DELAY_MINUTES: Final[int] = 1
QUIET_HOURS_START: Final[int] = 22
QUIET_HOURS_END: Final[int] = 8
QUIET_HOURS_MAX_PUSH_HOURS: Final[int] = 12
MAX_SUGGESTIONS_PER_HOUR: Final[int] = 3
MIN_MINUTES_BETWEEN_SUGGESTIONS: Final[int] = 15
DEFAULT_PREFERRED_HOURS: Final[tuple[int, ...]] = (9, 10, 11, 14, 15, 16)
FALLBACK_PREFERRED_HOUR: Final[int] = 9
PREFERRED_HOUR_PROMOTION: Final[float] = 0.3   # Engagement rate that promotes an hour
RESPONSIVE_HOUR_RATE: Final[float] = 0.5

# Preference learning
DEFAULT_LEARNING_RATE: Final[float] = 0.1
DEFAULT_DECAY_RATE: Final[float] = 0.01
NEUTRAL_PREFERENCE: Final[float] = 0.5
NEGATIVE_ADJUSTMENT_FACTOR: Final[float] = 0.3
BAD_TIMING_DISMISSALS_TO_DROP_HOUR: Final[int] = 3
RELEVANCE_THRESHOLD_STEP: Final[float] = 0.05
RELEVANCE_THRESHOLD_CAP: Final[float] = 0.8
SUGGESTION_GAP_STEP_MINUTES: Final[int] = 5
SUGGESTION_GAP_CAP_MINUTES: Final[int] = 120
MAX_SUGGESTIONS_PER_DAY: Final[int] = 10
MAX_HISTORY_SIZE: Final[int] = 1000
TREND_BAND: Final[float] = 0.05
TREND_WINDOW_DAYS: Final[int] = 7

# Feedback analytics
BEST_HOUR_MIN_SAMPLES: Final[int] = 5
BEST_DAY_MIN_SAMPLES: Final[int] = 3
HIGH_DISMISSAL_RATE: Final[float] = 0.6
LOW_CLICK_THROUGH_RATE: Final[float] = 0.1
LOW_CLICK_THROUGH_MIN_EVENTS: Final[int] = 10

# State store keys
STATE_KEY_PREFERENCES: Final[str] = "preferences"
STATE_KEY_BEHAVIOR: Final[str] = "user_behavior"
