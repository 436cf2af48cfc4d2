"""Pytest configuration and fixtures."""

import asyncio
import os
import sys
import tempfile
from datetime import datetime, timedelta, timezone

import pytest

# Keep log files out of the working tree
os.environ.setdefault("RESURFACING_DATA_DIR", tempfile.mkdtemp(prefix="resurfacing-tests-"))

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from domains.resurfacing.types import (  # noqa: E402
    ContentItem,
    ContentMetadata,
    ContextualSuggestion,
    SuggestedTiming,
)

# Tuesday, 10:00 UTC
FIXED_NOW = datetime(2026, 3, 10, 10, 0, tzinfo=timezone.utc)


class InMemoryContentRepo:
    """Content repository backed by a dict."""

    def __init__(self, items=None):
        self.items = {item.id: item for item in items or []}
        self.extra = []  # raw entries appended to list(), e.g. None
        self.list_calls = 0

    def add(self, item):
        self.items[item.id] = item

    async def list(self):
        self.list_calls += 1
        return list(self.items.values()) + list(self.extra)

    async def read(self, content_id):
        return self.items.get(content_id)


class InMemoryPersistence:
    """Relationship persistence with failure and stall switches."""

    def __init__(self):
        self.rows = {}
        self.fail_upsert = False
        self.fail_list = False
        self.upsert_delay = 0.0
        self.upsert_calls = 0
        self.delete_calls = []

    async def bulk_upsert(self, relationships):
        self.upsert_calls += 1
        if self.upsert_delay:
            await asyncio.sleep(self.upsert_delay)
        if self.fail_upsert:
            raise RuntimeError("disk full")
        for relationship in relationships:
            self.rows[relationship.id] = relationship

    async def list(self):
        if self.fail_list:
            raise RuntimeError("store offline")
        return list(self.rows.values())

    async def delete_by_content_id(self, content_id):
        self.delete_calls.append(content_id)
        doomed = [
            rid for rid, r in self.rows.items()
            if content_id in (r.source_id, r.target_id)
        ]
        for rid in doomed:
            del self.rows[rid]
        return len(doomed)


class InMemoryStateStore:
    def __init__(self):
        self.state = {}

    async def load_state(self, key):
        return self.state.get(key)

    async def save_state(self, key, value):
        self.state[key] = value


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def make_item(now):
    """Factory for ContentItem with sensible defaults relative to `now`."""

    def _make(
        content_id,
        concepts=None,
        tags=None,
        category=None,
        content="",
        url=None,
        captured_days_ago=10.0,
        accessed_days_ago=3.0,
        times_accessed=0,
        **kwargs,
    ):
        metadata = kwargs.pop("metadata", None) or ContentMetadata(
            word_count=kwargs.pop("word_count", 500),
            reading_time=kwargs.pop("reading_time", 4),
            author=kwargs.pop("author", None),
        )
        return ContentItem(
            id=content_id,
            url=url or f"https://example.com/{content_id}",
            title=f"Item {content_id}",
            content=content,
            concepts=list(concepts or []),
            tags=list(tags or []),
            category=category,
            timestamp=now - timedelta(days=captured_days_ago),
            last_accessed=now - timedelta(days=accessed_days_ago),
            times_accessed=times_accessed,
            metadata=metadata,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_suggestion():
    def _make(item, relevance=0.6, timing=SuggestedTiming.DELAYED, reasons=None):
        return ContextualSuggestion(
            content_id=item.id,
            content=item,
            relevance_score=relevance,
            match_reasons=list(reasons or []),
            suggested_timing=timing,
        )

    return _make


@pytest.fixture
def content_repo():
    return InMemoryContentRepo()


@pytest.fixture
def persistence():
    return InMemoryPersistence()


@pytest.fixture
def state_store():
    return InMemoryStateStore()
