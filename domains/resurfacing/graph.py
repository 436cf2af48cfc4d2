"""In-memory relationship graph.

The relationship table and the per-content index are mutated only through
`_insert` and `_discard`, so the index always holds exactly the ids of the
relationships where a content id appears as source or target.
"""

from collections import Counter
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from logger import logger
from . import config
from .types import Relationship, RelationshipQuery, RelationshipStats


class RelationshipGraphStore:
    """Indexed store of directed relationships with reciprocal closure."""

    def __init__(self):
        self._relationships: dict[str, Relationship] = {}
        self._index: dict[str, set[str]] = {}

    def __len__(self) -> int:
        return len(self._relationships)

    # -- write path --------------------------------------------------------

    def _insert(self, relationship: Relationship) -> Relationship:
        # One edge per ordered (source, target) pair; an existing pair keeps its id
        existing = self._find_edge(relationship.source_id, relationship.target_id)
        if existing is not None and existing.id != relationship.id:
            self._discard(relationship.id)
            relationship = replace(relationship, id=existing.id)
        self._discard(relationship.id)

        self._relationships[relationship.id] = relationship
        self._index.setdefault(relationship.source_id, set()).add(relationship.id)
        self._index.setdefault(relationship.target_id, set()).add(relationship.id)
        return relationship

    def _discard(self, relationship_id: str) -> Optional[Relationship]:
        relationship = self._relationships.pop(relationship_id, None)
        if relationship is None:
            return None

        for content_id in (relationship.source_id, relationship.target_id):
            ids = self._index.get(content_id)
            if ids is None:
                continue
            ids.discard(relationship_id)
            if not ids:
                del self._index[content_id]
        return relationship

    # -- mutations ---------------------------------------------------------

    def store(self, relationship: Relationship) -> Relationship:
        """Upsert a relationship. Returns the stored edge, which keeps the id of
        any edge already present for the same ordered pair."""
        return self._insert(relationship)

    def load(self, relationships: Iterable[Relationship]) -> int:
        """Replace the graph contents. Returns the number loaded."""
        self.clear()
        for relationship in relationships:
            self._insert(relationship)
        return len(self._relationships)

    def create_reciprocal(self, relationships: Iterable[Relationship]) -> list[Relationship]:
        """Store a reverse edge for each relationship whose reverse pair is missing.

        Returns:
            The reciprocals that were created
        """
        created = []
        for relationship in relationships:
            if self._has_edge(relationship.target_id, relationship.source_id):
                continue
            created.append(self._insert(relationship.reversed()))
        return created

    def remove_by_content(self, content_id: str) -> int:
        """Delete every relationship touching `content_id`. Returns the count."""
        ids = list(self._index.get(content_id, ()))
        for relationship_id in ids:
            self._discard(relationship_id)
        self._index.pop(content_id, None)

        if ids:
            logger.debug(f"Removed {len(ids)} relationships for content {content_id}")
        return len(ids)

    def sweep_expired(self, ttl_days: Optional[int], now: Optional[datetime] = None) -> int:
        """Delete relationships created more than `ttl_days` ago. No-op if TTL unset."""
        if ttl_days is None:
            return 0

        expired = [r.id for r in self.expired(ttl_days, now)]
        for relationship_id in expired:
            self._discard(relationship_id)

        if expired:
            logger.info(f"Swept {len(expired)} expired relationships (ttl={ttl_days}d)")
        return len(expired)

    def clear(self) -> None:
        self._relationships.clear()
        self._index.clear()

    # -- reads -------------------------------------------------------------

    def _find_edge(self, source_id: str, target_id: str) -> Optional[Relationship]:
        for relationship_id in self._index.get(source_id, ()):
            relationship = self._relationships[relationship_id]
            if relationship.source_id == source_id and relationship.target_id == target_id:
                return relationship
        return None

    def _has_edge(self, source_id: str, target_id: str) -> bool:
        return self._find_edge(source_id, target_id) is not None

    def expired(self, ttl_days: Optional[int], now: Optional[datetime] = None) -> list[Relationship]:
        """Relationships older than the TTL, without removing them."""
        if ttl_days is None:
            return []
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(days=ttl_days)
        return [r for r in self._relationships.values() if r.created_at < cutoff]

    def get(self, relationship_id: str) -> Optional[Relationship]:
        return self._relationships.get(relationship_id)

    def all(self) -> list[Relationship]:
        return list(self._relationships.values())

    def relationship_ids_for(self, content_id: str) -> set[str]:
        return set(self._index.get(content_id, ()))

    def content_ids(self) -> set[str]:
        """Every content id that has at least one edge."""
        return set(self._index)

    def query(self, query: Optional[RelationshipQuery] = None) -> list[Relationship]:
        """Filter relationships, strongest first."""
        query = query or RelationshipQuery()

        if query.source_id is not None:
            pool = (self._relationships[i] for i in self._index.get(query.source_id, ()))
        elif query.target_id is not None:
            pool = (self._relationships[i] for i in self._index.get(query.target_id, ()))
        else:
            pool = iter(self._relationships.values())

        results = [
            r for r in pool
            if (query.source_id is None or r.source_id == query.source_id)
            and (query.target_id is None or r.target_id == query.target_id)
            and (query.type is None or r.type == query.type)
            and (query.min_strength is None or r.strength >= query.min_strength)
            and (query.min_confidence is None or r.confidence >= query.min_confidence)
        ]
        results.sort(key=lambda r: (-r.strength, r.id))

        if query.limit is not None:
            results = results[:query.limit]
        return results

    def get_related(self, content_id: str, limit: int = 10) -> list[Relationship]:
        """Outgoing relationships of `content_id` with usable strength."""
        return self.query(RelationshipQuery(
            source_id=content_id,
            min_strength=config.RELATED_MIN_STRENGTH,
            limit=limit,
        ))

    def strongest(self, limit: int = config.STRONGEST_DEFAULT_LIMIT) -> list[Relationship]:
        return self.query(RelationshipQuery(limit=limit))

    def stats(self) -> RelationshipStats:
        relationships = list(self._relationships.values())
        if not relationships:
            return RelationshipStats()

        by_type = Counter(r.type.value for r in relationships)
        out_degree = Counter(r.source_id for r in relationships)
        most_connected = sorted(out_degree.items(), key=lambda kv: (-kv[1], kv[0]))

        return RelationshipStats(
            total_relationships=len(relationships),
            relationships_by_type=dict(by_type),
            average_strength=sum(r.strength for r in relationships) / len(relationships),
            average_confidence=sum(r.confidence for r in relationships) / len(relationships),
            most_connected_content=[cid for cid, _ in most_connected[:config.MOST_CONNECTED_LIMIT]],
        )
