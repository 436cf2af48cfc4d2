"""Public facade of the resurfacing engine.

Wires the orchestrator, ranker, scheduler and preference learner together
and converts every failure into an OperationResult. Relationship rebuild is
the one operation that re-raises a persistence failure.
"""

from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo

from config import RESURFACING_DB, TIMEZONE
from logger import logger
from . import config
from .errors import ErrorKind, OperationResult, PersistenceError
from .feedback import summarize_feedback
from .orchestrator import RelationshipOrchestrator
from .preferences import PreferenceLearner
from .ranker import SuggestionRanker
from .store import ContentRepository, RelationshipPersistence, SqliteRelationshipStore, StateStore, guarded
from .timing import ResurfacingScheduler, TimingOptions
from .types import (
    ContentItem,
    ContextualSuggestion,
    InteractionEvent,
    RankingFactors,
    RankingResult,
    RelationshipQuery,
    ResurfacingTiming,
    SuggestionContext,
    UserBehaviorPattern,
)


@dataclass
class PlannedSuggestion:
    suggestion: ContextualSuggestion
    timing: ResurfacingTiming
    factors: Optional[RankingFactors] = None


class ResurfacingEngine:
    """Relationship graph plus resurfacing recommendations behind one boundary."""

    def __init__(
        self,
        content_repo: ContentRepository,
        persistence: RelationshipPersistence,
        state_store: Optional[StateStore] = None,
        tz: Optional[tzinfo] = None,
        orchestrator: Optional[RelationshipOrchestrator] = None,
        ranker: Optional[SuggestionRanker] = None,
        scheduler: Optional[ResurfacingScheduler] = None,
        learner: Optional[PreferenceLearner] = None,
        store_timeout: float = config.STORE_TIMEOUT_SECONDS,
    ):
        self.content_repo = content_repo
        self.persistence = persistence
        self.state_store = state_store
        self.tz = tz
        self.store_timeout = store_timeout
        self.orchestrator = orchestrator or RelationshipOrchestrator(
            content_repo, persistence, store_timeout=store_timeout
        )
        self.ranker = ranker or SuggestionRanker()
        self.scheduler = scheduler or ResurfacingScheduler(tz=tz)
        self.learner = learner or PreferenceLearner(tz=tz)

    @property
    def graph(self):
        return self.orchestrator.graph

    def _now(self, now: Optional[datetime]) -> datetime:
        now = now or datetime.now(timezone.utc)
        return now.astimezone(self.tz) if self.tz is not None else now

    # -- lifecycle ---------------------------------------------------------

    async def initialize(self) -> OperationResult:
        """Load relationships and learned state. Never blocks startup."""
        loaded = await self.orchestrator.initialize()
        await self._load_state()
        return OperationResult.ok({"relationships": loaded})

    async def shutdown(self) -> OperationResult:
        await self.orchestrator.stop()
        return await self.backup_state()

    async def backup_state(self) -> OperationResult:
        """Persist learned preferences and behaviour."""
        try:
            await self._save_state()
        except PersistenceError as e:
            logger.error(f"Failed to save learned state: {e}")
            return OperationResult.fail(e)
        return OperationResult.ok()

    async def _load_state(self) -> None:
        if self.state_store is None:
            return

        try:
            preferences = await guarded(
                self.state_store.load_state(config.STATE_KEY_PREFERENCES), "state load", self.store_timeout
            )
            behavior = await guarded(
                self.state_store.load_state(config.STATE_KEY_BEHAVIOR), "state load", self.store_timeout
            )
        except PersistenceError as e:
            logger.warning(f"Stored state unavailable, using defaults: {e}")
            return

        if preferences:
            rejected = self.learner.import_data(preferences)
            if rejected:
                logger.warning(f"Stored state partially corrupt, reset: {rejected}")
        if behavior:
            self._restore_behavior(behavior)

    def _restore_behavior(self, data: dict) -> bool:
        try:
            pattern = UserBehaviorPattern.from_dict(data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Corrupt behaviour state, using defaults: {e}")
            self.scheduler.set_user_behavior(**vars(UserBehaviorPattern()))
            return False
        self.scheduler.set_user_behavior(**vars(pattern))
        return True

    async def _save_state(self) -> None:
        if self.state_store is None:
            return
        await guarded(
            self.state_store.save_state(config.STATE_KEY_PREFERENCES, self.learner.export_data()),
            "state save",
            self.store_timeout,
        )
        await guarded(
            self.state_store.save_state(config.STATE_KEY_BEHAVIOR, self.scheduler.get_user_behavior().to_dict()),
            "state save",
            self.store_timeout,
        )

    # -- content lifecycle -------------------------------------------------

    async def on_content_created(self, item: ContentItem) -> OperationResult:
        result = await self.orchestrator.on_content_created(item)
        return result or OperationResult.ok()

    async def on_content_updated(self, item: ContentItem) -> OperationResult:
        result = await self.orchestrator.on_content_updated(item)
        return result or OperationResult.ok()

    async def on_content_deleted(self, content_id: str) -> OperationResult:
        return await self.orchestrator.on_content_deleted(content_id)

    async def rebuild_relationships(self, max_items: Optional[int] = None) -> OperationResult:
        """Full rebuild. A persistence failure propagates to the caller."""
        stats = await self.orchestrator.rebuild_all_relationships(max_items)
        return OperationResult.ok(stats)

    # -- relationship queries ----------------------------------------------

    def get_related_content(self, content_id: str, limit: int = 10) -> OperationResult:
        try:
            return OperationResult.ok(self.graph.get_related(content_id, limit))
        except Exception as e:
            logger.error(f"Related content lookup failed for {content_id}: {e}")
            return OperationResult.fail(e, ErrorKind.COMPUTATION)

    def query_relationships(self, query: Optional[RelationshipQuery] = None) -> OperationResult:
        try:
            return OperationResult.ok(self.graph.query(query))
        except Exception as e:
            logger.error(f"Relationship query failed: {e}")
            return OperationResult.fail(e, ErrorKind.COMPUTATION)

    def get_relationship_stats(self) -> OperationResult:
        return OperationResult.ok(self.graph.stats())

    def get_service_stats(self) -> dict:
        return self.orchestrator.get_service_stats()

    # -- recommendations ---------------------------------------------------

    def rank_suggestions(
        self,
        candidates: list[ContextualSuggestion],
        context: SuggestionContext,
        now: Optional[datetime] = None,
    ) -> OperationResult:
        try:
            result = self.ranker.rank_suggestions(
                candidates or [],
                context,
                self.learner.get_preferences(),
                self.learner.get_learning_metrics(),
                now=self._now(now),
            )
        except Exception as e:
            logger.error(f"Ranking failed: {e}")
            return OperationResult.fail(e, ErrorKind.COMPUTATION)
        return OperationResult.ok(result)

    def _timing_options(self) -> TimingOptions:
        preferences = self.learner.get_preferences()
        return TimingOptions(min_time_between_suggestions=preferences.min_time_between_suggestions)

    def calculate_optimal_timing(
        self,
        content: ContentItem,
        suggestion: ContextualSuggestion,
        now: Optional[datetime] = None,
    ) -> OperationResult:
        try:
            timing = self.scheduler.calculate_optimal_timing(
                content, suggestion, self._timing_options(), now=self._now(now)
            )
        except Exception as e:
            logger.error(f"Timing calculation failed for {content.id}: {e}")
            return OperationResult.fail(e, ErrorKind.COMPUTATION)
        return OperationResult.ok(timing)

    def plan_resurfacing(
        self,
        candidates: list[ContextualSuggestion],
        context: SuggestionContext,
        now: Optional[datetime] = None,
    ) -> OperationResult:
        """Quality adjustment, then ranking, then timing for each ranked suggestion."""
        if not candidates:
            return OperationResult.ok([])

        now = self._now(now)
        try:
            adjusted = self.learner.adjust_suggestion_quality(candidates)
            ranking: RankingResult = self.ranker.rank_suggestions(
                adjusted,
                context,
                self.learner.get_preferences(),
                self.learner.get_learning_metrics(),
                now=now,
            )
            options = self._timing_options()
            planned = [
                PlannedSuggestion(
                    suggestion=s,
                    timing=self.scheduler.calculate_optimal_timing(s.content, s, options, now=now),
                    factors=ranking.ranking_factors.get(s.content_id),
                )
                for s in ranking.ranked_suggestions
            ]
        except Exception as e:
            logger.error(f"Resurfacing plan failed: {e}")
            return OperationResult.fail(e, ErrorKind.COMPUTATION)

        logger.info(f"Planned {len(planned)} of {len(candidates)} candidate suggestions")
        return OperationResult.ok(planned)

    def record_suggestion(self, content_id: str, now: Optional[datetime] = None) -> None:
        """Note a delivered suggestion for rate limiting."""
        self.scheduler.record_suggestion(content_id, self._now(now))

    # -- feedback ----------------------------------------------------------

    async def record_interaction(
        self,
        event: InteractionEvent,
        content: Optional[ContentItem] = None,
    ) -> OperationResult:
        """Feed an outcome to the learner and behaviour model, then persist state."""
        event = event.normalized()
        if content is None:
            try:
                content = await guarded(
                    self.content_repo.read(event.content_id), "content read", self.store_timeout
                )
            except PersistenceError as e:
                logger.warning(f"Content {event.content_id} unavailable for learning: {e}")

        try:
            self.learner.record_interaction(event, content)
            self.scheduler.update_user_behavior(
                self._now(event.timestamp).hour,
                event.action.is_positive,
                content.category if content is not None else None,
                event.dismissal_reason.value if event.dismissal_reason else None,
            )
        except Exception as e:
            logger.error(f"Failed to record interaction for {event.content_id}: {e}")
            return OperationResult.fail(e, ErrorKind.COMPUTATION)

        try:
            await self._save_state()
        except PersistenceError as e:
            logger.error(f"Interaction recorded but state not saved: {e}")
            return OperationResult.fail(e)
        return OperationResult.ok()

    def get_feedback_analytics(self, now: Optional[datetime] = None) -> OperationResult:
        return OperationResult.ok(
            summarize_feedback(self.learner.get_interaction_history(), now=now, tz=self.tz)
        )

    # -- backup ------------------------------------------------------------

    def export_data(self) -> OperationResult:
        data = self.learner.export_data()
        data["user_behavior"] = self.scheduler.get_user_behavior().to_dict()
        return OperationResult.ok(data)

    def import_data(self, data: dict) -> OperationResult:
        if not isinstance(data, dict):
            return OperationResult.fail("Import data must be a mapping", ErrorKind.VALIDATION)

        rejected = self.learner.import_data(data)
        if data.get("user_behavior") is not None and not self._restore_behavior(data["user_behavior"]):
            rejected.append("user_behavior")
        return OperationResult.ok({"rejected": rejected})


def create_engine(content_repo: ContentRepository, db_path: Optional[str] = None) -> ResurfacingEngine:
    """Build an engine backed by the local SQLite store."""
    store = SqliteRelationshipStore(db_path or RESURFACING_DB)
    return ResurfacingEngine(
        content_repo,
        persistence=store,
        state_store=store,
        tz=ZoneInfo(TIMEZONE),
    )
