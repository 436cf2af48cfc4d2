"""Pairwise similarity analysis between content items.

Each candidate is scored on up to four weighted signals:
- category exact match (0.2)
- concept-set Jaccard (0.4)
- tag-set Jaccard (0.2)
- lexical Jaccard over significant words (0.2)

A signal is omitted when either side lacks the attribute, and the score is
normalised by the weights actually used, so sparse metadata reduces the
signal count instead of dragging the score down.
"""

import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, Optional

from logger import logger
from . import config
from .errors import ValidationError
from .types import ContentItem, Relationship, RelationshipType, new_relationship_id

_NON_WORD = re.compile(r"[^\w\s]")


class ReasonKind(str, Enum):
    CATEGORY = "category"
    CONCEPTS = "concepts"
    TAGS = "tags"
    LEXICAL = "lexical"


@dataclass
class DetectionOptions:
    min_similarity_threshold: float = config.MIN_SIMILARITY_THRESHOLD
    max_relationships_per_content: int = config.MAX_RELATIONSHIPS_PER_CONTENT
    enable_semantic_analysis: bool = True
    enable_concept_matching: bool = True
    enable_category_matching: bool = True


@dataclass
class SimilarityScore:
    """Score of one candidate against the target."""
    content_id: str
    score: float
    reasons: list[str] = field(default_factory=list)
    reason_kinds: set[ReasonKind] = field(default_factory=set)


@dataclass
class AnalysisResult:
    relationships: list[Relationship]
    processing_time: float  # milliseconds
    success: bool
    error: Optional[str] = None


def jaccard(left: Iterable[str], right: Iterable[str]) -> float:
    """Case-insensitive Jaccard similarity of two string collections."""
    set1 = {item.lower() for item in left}
    set2 = {item.lower() for item in right}
    union = set1 | set2
    if not union:
        return 0.0
    return len(set1 & set2) / len(union)


def significant_words(text: str) -> list[str]:
    """Lower-cased words longer than 3 chars, stop words removed, first 100 kept."""
    words = _NON_WORD.sub(" ", text.lower()).split()
    significant = [
        w for w in words
        if len(w) >= config.MIN_WORD_LENGTH and w not in config.STOP_WORDS
    ]
    return significant[:config.MAX_SIGNIFICANT_WORDS]


def _shared(left: list[str], right: list[str], limit: int = 3) -> list[str]:
    right_lower = {item.lower() for item in right}
    return [item for item in left if item.lower() in right_lower][:limit]


def infer_relationship_type(score: float, reason_kinds: set[ReasonKind]) -> RelationshipType:
    """Classify a scored pair. First match wins."""
    if score > 0.7 and ReasonKind.CONCEPTS in reason_kinds:
        return RelationshipType.BUILDS_ON
    if score > 0.6 and ReasonKind.CATEGORY in reason_kinds:
        return RelationshipType.SIMILAR
    return RelationshipType.RELATED


def calculate_confidence(score: float, reason_count: int) -> float:
    """Score boosted by 0.1 per corroborating reason beyond the first."""
    confidence = score
    if reason_count > 1:
        confidence = min(1.0, confidence + (reason_count - 1) * config.CONFIDENCE_BOOST_PER_REASON)
    return round(confidence, 2)


class SimilarityAnalyzer:
    """Scores content pairs and turns the best matches into relationships."""

    def score_pair(
        self,
        target: ContentItem,
        candidate: ContentItem,
        options: DetectionOptions,
    ) -> SimilarityScore:
        """Weighted similarity between two items, normalised by weights used."""
        reasons: list[str] = []
        kinds: set[ReasonKind] = set()
        total = 0.0
        weight_sum = 0.0

        if options.enable_category_matching and target.category and candidate.category:
            category_score = 1.0 if target.category == candidate.category else 0.0
            total += category_score * config.CATEGORY_WEIGHT
            weight_sum += config.CATEGORY_WEIGHT
            if category_score > 0:
                reasons.append(f"Same category: {target.category}")
                kinds.add(ReasonKind.CATEGORY)

        if options.enable_concept_matching and target.concepts and candidate.concepts:
            concept_score = jaccard(target.concepts, candidate.concepts)
            total += concept_score * config.CONCEPT_WEIGHT
            weight_sum += config.CONCEPT_WEIGHT
            if concept_score > config.CONCEPT_REASON_THRESHOLD:
                shared = ", ".join(_shared(target.concepts, candidate.concepts))
                reasons.append(f"Shared concepts: {shared}")
                kinds.add(ReasonKind.CONCEPTS)

        if target.tags and candidate.tags:
            tag_score = jaccard(target.tags, candidate.tags)
            total += tag_score * config.TAG_WEIGHT
            weight_sum += config.TAG_WEIGHT
            if tag_score > config.TAG_REASON_THRESHOLD:
                shared = ", ".join(_shared(target.tags, candidate.tags))
                reasons.append(f"Shared tags: {shared}")
                kinds.add(ReasonKind.TAGS)

        if options.enable_semantic_analysis:
            words1 = significant_words(target.content or "")
            words2 = significant_words(candidate.content or "")
            if words1 and words2:
                lexical_score = jaccard(words1, words2)
                total += lexical_score * config.SEMANTIC_WEIGHT
                weight_sum += config.SEMANTIC_WEIGHT
                if lexical_score > config.SEMANTIC_REASON_THRESHOLD:
                    reasons.append("Similar content themes")
                    kinds.add(ReasonKind.LEXICAL)

        score = total / weight_sum if weight_sum > 0 else 0.0
        return SimilarityScore(
            content_id=candidate.id,
            score=max(0.0, min(1.0, score)),
            reasons=reasons,
            reason_kinds=kinds,
        )

    def calculate_similarities(
        self,
        target: ContentItem,
        candidates: list[ContentItem],
        options: DetectionOptions,
    ) -> list[SimilarityScore]:
        """Scores above threshold, best first, truncated to the per-item cap."""
        _validate(target, candidates)

        scores = []
        for candidate in candidates:
            score = self.score_pair(target, candidate, options)
            if score.score >= options.min_similarity_threshold:
                scores.append(score)

        scores.sort(key=lambda s: (-s.score, s.content_id))
        return scores[:options.max_relationships_per_content]

    def analyze_relationships(
        self,
        target: ContentItem,
        candidates: list[ContentItem],
        options: Optional[DetectionOptions] = None,
        now: Optional[datetime] = None,
    ) -> AnalysisResult:
        """Build relationships from `target` to its best matching candidates.

        A malformed candidate fails the whole call: no partial results.
        """
        options = options or DetectionOptions()
        started = time.perf_counter()

        try:
            similarities = self.calculate_similarities(target, candidates, options)
        except ValidationError as e:
            logger.warning(f"Relationship analysis rejected: {e}")
            return AnalysisResult(
                relationships=[],
                processing_time=_elapsed_ms(started),
                success=False,
                error=str(e),
            )

        relationships = self._create_relationships(target.id, similarities, now)
        return AnalysisResult(
            relationships=relationships,
            processing_time=_elapsed_ms(started),
            success=True,
        )

    def update_relationships(
        self,
        target: ContentItem,
        all_content: list[ContentItem],
        options: Optional[DetectionOptions] = None,
        now: Optional[datetime] = None,
    ) -> AnalysisResult:
        """Recompute relationships for an edited item against everything else."""
        others = [c for c in all_content if not isinstance(c, ContentItem) or c.id != target.id]
        return self.analyze_relationships(target, others, options, now)

    def _create_relationships(
        self,
        source_id: str,
        similarities: list[SimilarityScore],
        now: Optional[datetime],
    ) -> list[Relationship]:
        now = now or datetime.now(timezone.utc)
        return [
            Relationship(
                id=new_relationship_id(source_id, s.content_id),
                source_id=source_id,
                target_id=s.content_id,
                type=infer_relationship_type(s.score, s.reason_kinds),
                strength=s.score,
                confidence=calculate_confidence(s.score, len(s.reasons)),
                created_at=now,
                last_updated=now,
            )
            for s in similarities
        ]


def _validate(target: ContentItem, candidates: list[ContentItem]) -> None:
    if not isinstance(target, ContentItem):
        raise ValidationError(f"Invalid target content: {target!r}")
    if candidates is None:
        raise ValidationError("Candidate pool is missing")
    for index, candidate in enumerate(candidates):
        if not isinstance(candidate, ContentItem):
            raise ValidationError(f"Invalid candidate at index {index}: {candidate!r}")


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000
