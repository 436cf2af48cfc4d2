"""Resurfacing - relationship graph and proactive recall.

Keeps a typed, scored graph of how saved content items relate, and decides
which items to resurface, and when, from the user's context and feedback.

Storage: local SQLite (relationships + learned state)
Input: content lifecycle events and suggestion outcomes
"""

from .types import (
    ContentItem,
    ContentMetadata,
    ContextualSuggestion,
    DismissalReason,
    InteractionAction,
    InteractionContext,
    InteractionEvent,
    LearningMetrics,
    Relationship,
    RelationshipQuery,
    RelationshipStats,
    RelationshipType,
    ResurfacingTiming,
    SuggestedTiming,
    SuggestionContext,
    TimingFactors,
    Urgency,
    UserActivity,
    UserBehaviorPattern,
    UserPreferences,
)
from .errors import (
    ComputationError,
    ErrorKind,
    OperationResult,
    PersistenceError,
    ResurfacingError,
    ValidationError,
)
from .similarity import DetectionOptions, SimilarityAnalyzer
from .graph import RelationshipGraphStore
from .debounce import DebounceQueue
from .orchestrator import RelationshipOrchestrator
from .ranker import FilterCriteria, RankingFeedback, SuggestionRanker
from .timing import ResurfacingScheduler, TimingOptions
from .preferences import PreferenceLearner
from .feedback import FeedbackAnalytics, summarize_feedback
from .store import SqliteRelationshipStore
from .engine import PlannedSuggestion, ResurfacingEngine, create_engine

__all__ = [
    # Types
    "ContentItem",
    "ContentMetadata",
    "ContextualSuggestion",
    "DismissalReason",
    "InteractionAction",
    "InteractionContext",
    "InteractionEvent",
    "LearningMetrics",
    "Relationship",
    "RelationshipQuery",
    "RelationshipStats",
    "RelationshipType",
    "ResurfacingTiming",
    "SuggestedTiming",
    "SuggestionContext",
    "TimingFactors",
    "Urgency",
    "UserActivity",
    "UserBehaviorPattern",
    "UserPreferences",
    # Errors
    "ComputationError",
    "ErrorKind",
    "OperationResult",
    "PersistenceError",
    "ResurfacingError",
    "ValidationError",
    # Components
    "DetectionOptions",
    "SimilarityAnalyzer",
    "RelationshipGraphStore",
    "DebounceQueue",
    "RelationshipOrchestrator",
    "FilterCriteria",
    "RankingFeedback",
    "SuggestionRanker",
    "ResurfacingScheduler",
    "TimingOptions",
    "PreferenceLearner",
    "FeedbackAnalytics",
    "summarize_feedback",
    "SqliteRelationshipStore",
    "PlannedSuggestion",
    "ResurfacingEngine",
    "create_engine",
]
