"""Type definitions for the resurfacing engine."""

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from urllib.parse import urlparse
from uuid import uuid4

from dateutil.parser import parse as parse_datetime

from .config import (
    DEFAULT_DECAY_RATE,
    DEFAULT_LEARNING_RATE,
    DEFAULT_PREFERRED_HOURS,
    MAX_SUGGESTIONS_PER_DAY,
    MIN_MINUTES_BETWEEN_SUGGESTIONS,
    MIN_RELEVANCE_SCORE,
)


class RelationshipType(str, Enum):
    """Semantic type of a relationship between two content items."""
    SIMILAR = "similar"         # Same category, high similarity
    BUILDS_ON = "builds_on"     # Strong concept overlap
    CONTRADICTS = "contradicts"
    REFERENCES = "references"
    RELATED = "related"         # Default


class TriggerAction(str, Enum):
    """Content lifecycle event that queued a relationship update."""
    CREATE = "create"
    UPDATE = "update"


class InteractionAction(str, Enum):
    """What the user did with a suggestion."""
    VIEWED = "viewed"
    CLICKED = "clicked"
    DISMISSED = "dismissed"
    SAVED = "saved"
    SHARED = "shared"
    IGNORED = "ignored"

    @property
    def is_positive(self) -> bool:
        return self in POSITIVE_ACTIONS

    @property
    def is_negative(self) -> bool:
        return self in NEGATIVE_ACTIONS


POSITIVE_ACTIONS = frozenset({
    InteractionAction.VIEWED,
    InteractionAction.CLICKED,
    InteractionAction.SAVED,
    InteractionAction.SHARED,
})
NEGATIVE_ACTIONS = frozenset({InteractionAction.DISMISSED, InteractionAction.IGNORED})


class DismissalReason(str, Enum):
    """Why a suggestion was dismissed."""
    NOT_RELEVANT = "not_relevant"
    BAD_TIMING = "bad_timing"
    ALREADY_SEEN = "already_seen"
    TOO_FREQUENT = "too_frequent"
    OTHER = "other"


class SuggestedTiming(str, Enum):
    """Coarse urgency hint supplied by the upstream relevance producer."""
    IMMEDIATE = "immediate"
    DELAYED = "delayed"
    BACKGROUND = "background"


class Urgency(str, Enum):
    """Urgency of a scheduled resurfacing."""
    IMMEDIATE = "immediate"
    SOON = "soon"
    LATER = "later"
    EVENTUAL = "eventual"


class UserActivity(str, Enum):
    """Coarse activity class of the current browsing session."""
    BROWSING = "browsing"
    READING = "reading"
    RESEARCHING = "researching"
    WORKING = "working"


class ContentLength(str, Enum):
    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"
    ANY = "any"


class Trend(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Treat timezone-naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a stored timestamp (datetime or ISO string) into an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_aware(value)
    return ensure_aware(parse_datetime(str(value)))


def url_domain(url: Optional[str]) -> Optional[str]:
    """Hostname of a URL, or None if it has none."""
    if not url:
        return None
    try:
        host = urlparse(url).hostname
    except ValueError:
        return None
    return host or None


@dataclass
class ContentMetadata:
    """Page metadata captured alongside a content item."""
    word_count: int = 0
    reading_time: int = 0  # minutes
    page_type: str = "other"
    author: Optional[str] = None


@dataclass
class ContentItem:
    """A saved content item. Read-only to the engine."""
    id: str
    url: str
    timestamp: datetime       # capture time
    last_accessed: datetime
    title: str = ""
    content: str = ""
    concepts: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    category: Optional[str] = None
    times_accessed: int = 0
    user_rating: Optional[int] = None    # 1-5
    user_notes: Optional[str] = None
    importance: Optional[int] = None     # 1-10
    metadata: ContentMetadata = field(default_factory=ContentMetadata)

    @property
    def domain(self) -> Optional[str]:
        return url_domain(self.url)

    @classmethod
    def from_dict(cls, row: dict) -> "ContentItem":
        """Create ContentItem from a stored row."""
        timestamp = parse_timestamp(row.get("timestamp")) or utcnow()
        meta = row.get("metadata") or {}

        return cls(
            id=str(row["id"]),
            url=row.get("url", ""),
            timestamp=timestamp,
            last_accessed=parse_timestamp(row.get("last_accessed")) or timestamp,
            title=row.get("title") or "",
            content=row.get("content") or "",
            concepts=list(row.get("concepts") or []),
            tags=list(row.get("tags") or []),
            category=row.get("category"),
            times_accessed=row.get("times_accessed", 0),
            user_rating=row.get("user_rating"),
            user_notes=row.get("user_notes"),
            importance=row.get("importance"),
            metadata=ContentMetadata(
                word_count=meta.get("word_count", 0),
                reading_time=meta.get("reading_time", 0),
                page_type=meta.get("page_type", "other"),
                author=meta.get("author"),
            ),
        )


@dataclass
class Relationship:
    """A directed, scored edge between two content items."""
    id: str
    source_id: str
    target_id: str
    type: RelationshipType
    strength: float      # 0-1
    confidence: float    # 0-1
    created_at: datetime
    last_updated: datetime

    def reversed(self) -> "Relationship":
        """Reciprocal edge with identical type/strength/confidence and a new id."""
        return Relationship(
            id=new_relationship_id(self.target_id, self.source_id),
            source_id=self.target_id,
            target_id=self.source_id,
            type=self.type,
            strength=self.strength,
            confidence=self.confidence,
            created_at=self.created_at,
            last_updated=self.last_updated,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "source_id": self.source_id,
            "target_id": self.target_id,
            "type": self.type.value,
            "strength": self.strength,
            "confidence": self.confidence,
            "created_at": self.created_at.isoformat(),
            "last_updated": self.last_updated.isoformat(),
        }

    @classmethod
    def from_dict(cls, row: dict) -> "Relationship":
        """Create Relationship from a stored row."""
        created_at = parse_timestamp(row["created_at"])
        return cls(
            id=str(row["id"]),
            source_id=str(row["source_id"]),
            target_id=str(row["target_id"]),
            type=RelationshipType(row["type"]),
            strength=float(row["strength"]),
            confidence=float(row["confidence"]),
            created_at=created_at,
            last_updated=parse_timestamp(row.get("last_updated")) or created_at,
        )


def new_relationship_id(source_id: str, target_id: str) -> str:
    return f"{source_id}-{target_id}-{uuid4().hex[:12]}"


@dataclass
class RelationshipQuery:
    """Filter for querying the relationship graph."""
    source_id: Optional[str] = None
    target_id: Optional[str] = None
    type: Optional[RelationshipType] = None
    min_strength: Optional[float] = None
    min_confidence: Optional[float] = None
    limit: Optional[int] = None


@dataclass
class RelationshipStats:
    total_relationships: int = 0
    relationships_by_type: dict[str, int] = field(default_factory=dict)
    average_strength: float = 0.0
    average_confidence: float = 0.0
    most_connected_content: list[str] = field(default_factory=list)


@dataclass
class UpdateTrigger:
    """A pending relationship update for one content id."""
    content_id: str
    action: TriggerAction
    timestamp: datetime


@dataclass
class UserPreferences:
    """Learned user preferences. Owned by PreferenceLearner."""
    preferred_categories: dict[str, float] = field(default_factory=dict)
    preferred_authors: dict[str, float] = field(default_factory=dict)
    preferred_domains: dict[str, float] = field(default_factory=dict)
    preferred_content_length: ContentLength = ContentLength.ANY
    preferred_hours: list[int] = field(default_factory=lambda: list(DEFAULT_PREFERRED_HOURS))
    max_suggestions_per_day: int = MAX_SUGGESTIONS_PER_DAY
    min_time_between_suggestions: int = MIN_MINUTES_BETWEEN_SUGGESTIONS  # minutes
    min_relevance_threshold: float = MIN_RELEVANCE_SCORE
    min_confidence_threshold: float = 0.5
    learning_rate: float = DEFAULT_LEARNING_RATE
    decay_rate: float = DEFAULT_DECAY_RATE

    def to_dict(self) -> dict:
        data = asdict(self)
        data["preferred_content_length"] = self.preferred_content_length.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "UserPreferences":
        """Merge a stored dict over the defaults."""
        prefs = cls()
        for key, value in data.items():
            if not hasattr(prefs, key):
                continue
            if key == "preferred_content_length":
                value = ContentLength(value)
            elif key in ("preferred_categories", "preferred_authors", "preferred_domains"):
                value = {str(k): float(v) for k, v in value.items()}
            elif key == "preferred_hours":
                value = sorted({int(h) for h in value})
            elif isinstance(getattr(prefs, key), (int, float)):
                value = type(getattr(prefs, key))(value)
            setattr(prefs, key, value)
        return prefs


@dataclass(frozen=True)
class InteractionContext:
    """Snapshot of the context in which a suggestion was shown."""
    current_url: str = ""
    time_on_page: float = 0.0  # seconds
    relevance_score: float = 0.0
    suggested_timing: str = SuggestedTiming.DELAYED.value
    priority: str = "medium"


@dataclass(frozen=True)
class InteractionEvent:
    """Immutable record of a suggestion outcome."""
    content_id: str
    suggestion_id: str
    timestamp: datetime
    action: InteractionAction
    context: InteractionContext = field(default_factory=InteractionContext)
    dismissal_reason: Optional[DismissalReason] = None
    engagement_duration: Optional[float] = None  # seconds

    def normalized(self) -> "InteractionEvent":
        """Copy with a timezone-aware timestamp (naive means UTC)."""
        if self.timestamp.tzinfo is not None:
            return self
        return replace(self, timestamp=ensure_aware(self.timestamp))

    def to_dict(self) -> dict:
        return {
            "content_id": self.content_id,
            "suggestion_id": self.suggestion_id,
            "timestamp": self.timestamp.isoformat(),
            "action": self.action.value,
            "context": asdict(self.context),
            "dismissal_reason": self.dismissal_reason.value if self.dismissal_reason else None,
            "engagement_duration": self.engagement_duration,
        }

    @classmethod
    def from_dict(cls, row: dict) -> "InteractionEvent":
        reason = row.get("dismissal_reason")
        timestamp = parse_timestamp(row["timestamp"])
        if timestamp is None:
            raise ValueError("Interaction event without timestamp")
        return cls(
            content_id=str(row["content_id"]),
            suggestion_id=str(row.get("suggestion_id", "")),
            timestamp=timestamp,
            action=InteractionAction(row["action"]),
            context=InteractionContext(**(row.get("context") or {})),
            dismissal_reason=DismissalReason(reason) if reason else None,
            engagement_duration=row.get("engagement_duration"),
        )


@dataclass
class PerformanceCounter:
    suggestions: int = 0
    engagements: int = 0


@dataclass
class LearningMetrics:
    """Aggregate counters derived from interaction history."""
    total_suggestions: int = 0
    total_engagements: int = 0
    total_dismissals: int = 0
    engagement_rate: float = 0.0
    average_engagement_duration: float = 0.0
    dismissal_rate: float = 0.0
    category_performance: dict[str, PerformanceCounter] = field(default_factory=dict)
    timing_performance: dict[str, PerformanceCounter] = field(default_factory=dict)
    weekly_engagement_rate: float = 0.0
    improvement_trend: Trend = Trend.STABLE

    def to_dict(self) -> dict:
        data = asdict(self)
        data["improvement_trend"] = self.improvement_trend.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "LearningMetrics":
        metrics = cls()
        for key, value in data.items():
            if not hasattr(metrics, key):
                continue
            if key in ("category_performance", "timing_performance"):
                value = {str(k): PerformanceCounter(**v) for k, v in value.items()}
            elif key == "improvement_trend":
                value = Trend(value)
            setattr(metrics, key, value)
        return metrics


@dataclass
class UserBehaviorPattern:
    """Per-hour engagement model. Owned by ResurfacingScheduler."""
    preferred_timings: list[int] = field(default_factory=lambda: list(DEFAULT_PREFERRED_HOURS))
    average_session_length: float = 25.0  # minutes
    response_rate: float = 0.3
    dismissal_patterns: list[str] = field(default_factory=list)
    engagement_by_category: dict[str, float] = field(default_factory=dict)
    engagement_by_time: dict[int, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["engagement_by_time"] = {str(h): rate for h, rate in self.engagement_by_time.items()}
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "UserBehaviorPattern":
        behavior = cls()
        for key, value in data.items():
            if not hasattr(behavior, key):
                continue
            if key == "engagement_by_time":
                value = {int(h): float(rate) for h, rate in value.items()}
            elif key == "preferred_timings":
                value = sorted({int(h) for h in value})
            setattr(behavior, key, value)
        return behavior


@dataclass
class ContextualSuggestion:
    """A candidate suggestion produced upstream."""
    content_id: str
    content: ContentItem
    relevance_score: float
    match_reasons: list[str] = field(default_factory=list)
    suggested_timing: SuggestedTiming = SuggestedTiming.DELAYED


@dataclass
class SuggestionContext:
    """The user's current browsing context."""
    current_url: str = ""
    current_category: Optional[str] = None
    time_of_day: int = 12      # 0-23
    day_of_week: int = 0       # 0-6
    user_activity: UserActivity = UserActivity.BROWSING
    session_duration: float = 0.0  # minutes


@dataclass
class RankingFactors:
    relevance: float
    recency: float
    popularity: float
    diversity: float
    user_preference: float
    contextual_fit: float
    final_score: float


@dataclass
class FilteringStats:
    total_candidates: int = 0
    filtered_out: int = 0
    final_count: int = 0
    filter_reasons: dict[str, int] = field(default_factory=dict)


@dataclass
class RankingResult:
    ranked_suggestions: list[ContextualSuggestion]
    filtering_stats: FilteringStats
    ranking_factors: dict[str, RankingFactors]


@dataclass
class TimingFactors:
    last_accessed: datetime
    days_since_access: float
    access_frequency: float      # accesses per day since capture
    content_age: float           # days since capture
    relevance_score: float
    user_engagement: float
    forgetting_curve: float      # retention, 1.0 = fully remembered


@dataclass
class ResurfacingTiming:
    content_id: str
    suggested_time: datetime
    confidence: float
    reason: str
    urgency: Urgency
    factors: Optional[TimingFactors] = None
