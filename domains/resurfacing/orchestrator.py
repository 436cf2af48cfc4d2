"""Keeps the relationship graph consistent with content lifecycle events.

Per content id:
    idle -> (create/update) -> pending -> (quiet period elapsed) -> processing -> idle

- A trigger while pending reschedules the fire time (debounce) and never
  downgrades a pending create to an update.
- A trigger while processing is absorbed; at most one computation per id
  is in flight.
- Deleting an id cancels its scheduled work. A computation already in
  flight runs to completion but its result is discarded.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from logger import logger
from . import config
from .debounce import DebounceQueue
from .errors import (
    ComputationError,
    OperationResult,
    PersistenceError,
    ResurfacingError,
    ValidationError,
)
from .graph import RelationshipGraphStore
from .similarity import DetectionOptions, SimilarityAnalyzer
from .store import ContentRepository, RelationshipPersistence, guarded
from .types import ContentItem, Relationship, TriggerAction, UpdateTrigger


class RelationshipOrchestrator:
    """Debounces lifecycle triggers and recomputes relationships per content id."""

    def __init__(
        self,
        content_repo: ContentRepository,
        persistence: RelationshipPersistence,
        graph: Optional[RelationshipGraphStore] = None,
        analyzer: Optional[SimilarityAnalyzer] = None,
        processing_delay: float = config.PROCESSING_DELAY_SECONDS,
        batch_size: int = config.BATCH_SIZE,
        max_relationships: int = config.ORCHESTRATOR_MAX_RELATIONSHIPS,
        ttl_days: Optional[int] = config.RELATIONSHIP_TTL_DAYS,
        store_timeout: float = config.STORE_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.content_repo = content_repo
        self.persistence = persistence
        self.graph = graph if graph is not None else RelationshipGraphStore()
        self.analyzer = analyzer or SimilarityAnalyzer()
        self.processing_delay = processing_delay
        self.batch_size = batch_size
        self.max_relationships = max_relationships
        self.ttl_days = ttl_days
        self.store_timeout = store_timeout
        self.queue = DebounceQueue(clock)

        self._pending: dict[str, UpdateTrigger] = {}
        self._processing: set[str] = set()
        self._deleted: set[str] = set()  # deleted while processing

        self._running = False
        self._task: Optional[asyncio.Task] = None

        # Stats for monitoring
        self._total_processed = 0
        self._average_processing_time = 0.0  # ms
        self._last_processing_time: Optional[datetime] = None

    # -- lifecycle ---------------------------------------------------------

    async def initialize(self) -> int:
        """Load persisted relationships into the graph."""
        try:
            relationships = await guarded(
                self.persistence.list(), "relationship load", self.store_timeout
            )
        except PersistenceError as e:
            logger.error(f"Failed to load relationships, starting empty: {e}")
            self.graph.clear()
            return 0

        loaded = self.graph.load(relationships)
        logger.info(f"Loaded {loaded} relationships")
        return loaded

    async def run(self, poll_interval: float = config.DEBOUNCE_POLL_SECONDS) -> None:
        """Drive the debounce queue until stopped."""
        self._running = True
        while self._running:
            await self.fire_due()

            next_at = self.queue.next_fire_time()
            if next_at is None:
                delay = poll_interval
            else:
                delay = max(0.0, min(poll_interval, next_at - self.queue.clock()))
            await asyncio.sleep(delay)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
            logger.info("Relationship orchestrator started")
        return self._task

    async def stop(self) -> None:
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("Relationship orchestrator stopped")

    # -- inbound events ----------------------------------------------------

    async def on_content_created(self, item: ContentItem) -> Optional[OperationResult]:
        return await self._trigger(item.id, TriggerAction.CREATE)

    async def on_content_updated(self, item: ContentItem) -> Optional[OperationResult]:
        return await self._trigger(item.id, TriggerAction.UPDATE)

    async def on_content_deleted(self, content_id: str) -> OperationResult:
        """Cascade a deletion through the graph and persistence."""
        self._pending.pop(content_id, None)
        self.queue.cancel(content_id)
        if content_id in self._processing:
            self._deleted.add(content_id)

        removed = self.graph.remove_by_content(content_id)
        try:
            await guarded(
                self.persistence.delete_by_content_id(content_id),
                "relationship delete",
                self.store_timeout,
            )
        except PersistenceError as e:
            logger.error(f"Failed to delete persisted relationships for {content_id}: {e}")
            return OperationResult.fail(e)

        logger.info(f"Removed {removed} relationships for deleted content {content_id}")
        return OperationResult.ok(removed)

    async def _trigger(self, content_id: str, action: TriggerAction) -> Optional[OperationResult]:
        if content_id in self._processing:
            logger.debug(f"Trigger for {content_id} absorbed, already processing")
            return None

        existing = self._pending.get(content_id)
        if existing is not None and existing.action == TriggerAction.CREATE:
            action = TriggerAction.CREATE

        self._pending[content_id] = UpdateTrigger(
            content_id=content_id,
            action=action,
            timestamp=datetime.now(timezone.utc),
        )

        if self.processing_delay > 0:
            self.queue.schedule_in(content_id, self.processing_delay)
            return None
        return await self.process_content_relationships(content_id)

    # -- processing --------------------------------------------------------

    def pending_action(self, content_id: str) -> Optional[TriggerAction]:
        trigger = self._pending.get(content_id)
        return trigger.action if trigger else None

    def is_processing(self, content_id: str) -> bool:
        return content_id in self._processing

    async def process_content_relationships(
        self,
        content_id: str,
        options: Optional[DetectionOptions] = None,
    ) -> OperationResult:
        """Compute, store and persist relationships for one content id.

        Without a pending create trigger the id takes the replace path, so
        edges from an earlier version of the content are dropped first.
        """
        if content_id in self._processing:
            logger.debug(f"Skipping {content_id}, already processing")
            return OperationResult.ok(None)

        self._processing.add(content_id)
        trigger = self._pending.get(content_id)
        action = trigger.action if trigger else TriggerAction.UPDATE
        started = time.perf_counter()

        try:
            relationships = await self._compute_and_store(content_id, action, options)
        except ResurfacingError as e:
            logger.error(f"Relationship processing failed for {content_id}: {e}")
            return OperationResult.fail(e)
        except Exception as e:
            logger.error(f"Unexpected error processing {content_id}: {e}")
            return OperationResult.fail(ComputationError(str(e)))
        finally:
            self._processing.discard(content_id)
            self._pending.pop(content_id, None)
            self._deleted.discard(content_id)

        if relationships is None:
            return OperationResult.ok([])

        self._record_processing_time((time.perf_counter() - started) * 1000)
        logger.info(
            f"Processed {action.value} for {content_id}: {len(relationships)} relationships"
        )
        return OperationResult.ok(relationships)

    async def _compute_and_store(
        self,
        content_id: str,
        action: TriggerAction,
        options: Optional[DetectionOptions],
    ) -> Optional[list[Relationship]]:
        """Returns the new relationships, or None if the id was deleted meanwhile."""
        all_content = await guarded(self.content_repo.list(), "content list", self.store_timeout)
        target = next(
            (c for c in all_content if isinstance(c, ContentItem) and c.id == content_id),
            None,
        )
        if target is None:
            raise ValidationError(f"Content {content_id} not found")

        options = options or DetectionOptions(max_relationships_per_content=self.max_relationships)
        if action == TriggerAction.UPDATE:
            result = self.analyzer.update_relationships(target, all_content, options)
        else:
            candidates = [c for c in all_content if not isinstance(c, ContentItem) or c.id != content_id]
            result = self.analyzer.analyze_relationships(target, candidates, options)

        if not result.success:
            raise ValidationError(result.error or "analysis failed")

        if content_id in self._deleted:
            logger.info(f"Discarding relationships for {content_id}, deleted during processing")
            return None

        # Graph writes happen without suspending, so no trigger interleaves
        if action == TriggerAction.UPDATE:
            self.graph.remove_by_content(content_id)
        stored = [self.graph.store(r) for r in result.relationships]
        reciprocals = self.graph.create_reciprocal(stored)

        if action == TriggerAction.UPDATE:
            await guarded(
                self.persistence.delete_by_content_id(content_id),
                "relationship delete",
                self.store_timeout,
            )
        await guarded(
            self.persistence.bulk_upsert(stored + reciprocals),
            "relationship upsert",
            self.store_timeout,
        )

        if content_id in self._deleted:
            # Deleted while persisting: undo what was just written
            self.graph.remove_by_content(content_id)
            await guarded(
                self.persistence.delete_by_content_id(content_id),
                "relationship delete",
                self.store_timeout,
            )
            logger.info(f"Discarded relationships for {content_id}, deleted during processing")
            return None

        return stored

    def _record_processing_time(self, elapsed_ms: float) -> None:
        self._total_processed += 1
        self._last_processing_time = datetime.now(timezone.utc)
        self._average_processing_time = (
            self._average_processing_time * (self._total_processed - 1) + elapsed_ms
        ) / self._total_processed

    async def fire_due(self, now: Optional[float] = None) -> list[OperationResult]:
        """Process ids whose quiet period has elapsed."""
        due = [cid for cid in self.queue.pop_due(now) if cid in self._pending]
        if not due:
            return []
        return list(await asyncio.gather(
            *(self.process_content_relationships(cid) for cid in due)
        ))

    async def process_pending_updates(self) -> int:
        """Flush every pending trigger in sequential batches.

        Items within a batch run concurrently. Returns the number processed.
        """
        pending_ids = [cid for cid in self._pending if cid not in self._processing]
        if not pending_ids:
            return 0

        logger.info(f"Processing {len(pending_ids)} pending relationship updates")
        for content_id in pending_ids:
            self.queue.cancel(content_id)

        for i in range(0, len(pending_ids), self.batch_size):
            batch = pending_ids[i:i + self.batch_size]
            results = await asyncio.gather(
                *(self.process_content_relationships(cid) for cid in batch)
            )
            failed = sum(1 for r in results if not r.success)
            if failed:
                logger.warning(f"Batch {i // self.batch_size + 1}: {failed}/{len(batch)} failed")

        return len(pending_ids)

    async def rebuild_all_relationships(self, max_items: Optional[int] = None) -> dict:
        """Clear the graph and recompute every pair from scratch.

        Bounded to `max_items` content items; persisted edges of items past the
        cap are dropped along with the graph. Per-item errors are logged and
        skipped. A persistence failure is logged and re-raised.
        """
        max_items = max_items or config.REBUILD_MAX_ITEMS

        try:
            all_content = await guarded(self.content_repo.list(), "content list", self.store_timeout)
        except PersistenceError as e:
            logger.error(f"Rebuild aborted, content unavailable: {e}")
            raise

        items = [c for c in all_content if isinstance(c, ContentItem)]
        # Persisted edges go for every id the cleared graph drops, capped or not
        cleared = {c.id for c in items} | self.graph.content_ids()
        if len(items) > max_items:
            logger.warning(f"Rebuild limited to {max_items} of {len(items)} items")
            items = items[:max_items]

        logger.info(f"Rebuilding relationships for {len(items)} items")
        self.graph.clear()
        options = DetectionOptions(max_relationships_per_content=self.max_relationships)
        failed = 0

        for index, item in enumerate(items, 1):
            try:
                candidates = [c for c in items if c.id != item.id]
                result = self.analyzer.analyze_relationships(item, candidates, options)
                if not result.success:
                    raise ComputationError(result.error or "analysis failed")
                stored = [self.graph.store(r) for r in result.relationships]
                self.graph.create_reciprocal(stored)
            except Exception as e:
                failed += 1
                logger.error(f"Rebuild failed for {item.id}: {e}")

            if index % config.REBUILD_PROGRESS_EVERY == 0:
                logger.debug(f"Rebuild progress: {index}/{len(items)}")
            if index % self.batch_size == 0:
                await asyncio.sleep(0)

        try:
            for content_id in sorted(cleared):
                await guarded(
                    self.persistence.delete_by_content_id(content_id),
                    "relationship delete",
                    self.store_timeout,
                )
            await guarded(
                self.persistence.bulk_upsert(self.graph.all()),
                "relationship upsert",
                self.store_timeout,
            )
        except PersistenceError as e:
            logger.error(f"Rebuild persistence failed: {e}")
            raise

        logger.info(f"Rebuild complete: {len(self.graph)} relationships, {failed} failures")
        return {
            "processed": len(items) - failed,
            "failed": failed,
            "relationships": len(self.graph),
        }

    async def perform_maintenance(self, now: Optional[datetime] = None) -> int:
        """Sweep TTL-expired relationships from the graph and persistence."""
        expired = self.graph.expired(self.ttl_days, now)
        if not expired:
            return 0

        affected = {r.source_id for r in expired} | {r.target_id for r in expired}
        removed = self.graph.sweep_expired(self.ttl_days, now)

        survivors = {}
        for content_id in affected:
            for relationship_id in self.graph.relationship_ids_for(content_id):
                survivors[relationship_id] = self.graph.get(relationship_id)

        try:
            for content_id in affected:
                await guarded(
                    self.persistence.delete_by_content_id(content_id),
                    "relationship delete",
                    self.store_timeout,
                )
            await guarded(
                self.persistence.bulk_upsert(list(survivors.values())),
                "relationship upsert",
                self.store_timeout,
            )
        except PersistenceError as e:
            logger.error(f"Maintenance persistence failed: {e}")

        return removed

    def get_service_stats(self) -> dict:
        return {
            "total_processed": self._total_processed,
            "total_relationships": len(self.graph),
            "average_processing_time": self._average_processing_time,
            "last_processing_time": self._last_processing_time,
            "pending_updates": len(self._pending),
        }
