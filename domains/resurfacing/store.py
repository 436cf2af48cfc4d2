"""Persistence boundary for the resurfacing engine.

Collaborator protocols consumed by the engine, the timeout guard wrapped
around every backing-store call, and a local SQLite implementation that
keeps relationships and learned state across restarts.
"""

import asyncio
import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Awaitable, Optional, Protocol, TypeVar

from logger import logger
from . import config
from .errors import PersistenceError
from .types import ContentItem, Relationship

T = TypeVar("T")


class ContentRepository(Protocol):
    """Read-only access to saved content."""

    async def list(self) -> list[ContentItem]: ...

    async def read(self, content_id: str) -> Optional[ContentItem]: ...


class RelationshipPersistence(Protocol):
    """Durable relationship storage."""

    async def bulk_upsert(self, relationships: list[Relationship]) -> None: ...

    async def list(self) -> list[Relationship]: ...

    async def delete_by_content_id(self, content_id: str) -> int: ...


class StateStore(Protocol):
    """Opaque key-value storage for learned preferences and behaviour."""

    async def load_state(self, key: str) -> Optional[dict]: ...

    async def save_state(self, key: str, value: dict) -> None: ...


async def guarded(
    call: Awaitable[T],
    operation: str,
    timeout: float = config.STORE_TIMEOUT_SECONDS,
) -> T:
    """Await a backing-store call, mapping timeouts and failures to PersistenceError."""
    try:
        return await asyncio.wait_for(call, timeout=timeout)
    except PersistenceError:
        raise
    except asyncio.TimeoutError:
        raise PersistenceError(f"{operation} timed out after {timeout}s") from None
    except Exception as e:
        raise PersistenceError(f"{operation} failed: {e}") from e


class SqliteRelationshipStore:
    """SQLite-backed relationship and state storage (WAL mode).

    Usage:
        store = SqliteRelationshipStore(RESURFACING_DB)
        await store.bulk_upsert(relationships)
        rows = await store.list()
    """

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._connection: Optional[sqlite3.Connection] = None

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create database connection with WAL mode."""
        if self._connection is not None:
            return self._connection

        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._connection = sqlite3.connect(
            self.db_path,
            check_same_thread=False,  # Calls run via asyncio.to_thread
            timeout=10.0
        )
        self._connection.row_factory = sqlite3.Row
        self._connection.execute("PRAGMA journal_mode=WAL")
        self._connection.execute("PRAGMA busy_timeout=5000")

        self._init_schema(self._connection)

        logger.info(f"Resurfacing store initialized: {self.db_path}")
        return self._connection

    @staticmethod
    def _init_schema(conn: sqlite3.Connection) -> None:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS relationships (
                id TEXT PRIMARY KEY,
                source_id TEXT NOT NULL,
                target_id TEXT NOT NULL,
                type TEXT NOT NULL,
                strength REAL NOT NULL,
                confidence REAL NOT NULL,
                created_at TEXT NOT NULL,
                last_updated TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_rel_source ON relationships(source_id);
            CREATE INDEX IF NOT EXISTS idx_rel_target ON relationships(target_id);

            CREATE TABLE IF NOT EXISTS engine_state (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );
        """)
        conn.commit()

    @contextmanager
    def _transaction(self):
        """Context manager for database transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    # -- sync implementations ---------------------------------------------

    def _bulk_upsert_sync(self, relationships: list[Relationship]) -> None:
        rows = [
            (r.id, r.source_id, r.target_id, r.type.value, r.strength, r.confidence,
             r.created_at.isoformat(), r.last_updated.isoformat())
            for r in relationships
        ]
        with self._transaction() as conn:
            conn.executemany(
                """
                INSERT INTO relationships
                    (id, source_id, target_id, type, strength, confidence, created_at, last_updated)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    source_id = excluded.source_id,
                    target_id = excluded.target_id,
                    type = excluded.type,
                    strength = excluded.strength,
                    confidence = excluded.confidence,
                    last_updated = excluded.last_updated
                """,
                rows,
            )

    def _list_sync(self) -> list[Relationship]:
        conn = self._get_connection()
        rows = conn.execute("SELECT * FROM relationships").fetchall()

        relationships = []
        for row in rows:
            try:
                relationships.append(Relationship.from_dict(dict(row)))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Skipping corrupt relationship row {row['id']}: {e}")
        return relationships

    def _delete_by_content_id_sync(self, content_id: str) -> int:
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM relationships WHERE source_id = ? OR target_id = ?",
                (content_id, content_id),
            )
            return cursor.rowcount

    def _load_state_sync(self, key: str) -> Optional[dict]:
        conn = self._get_connection()
        row = conn.execute("SELECT value FROM engine_state WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        try:
            value = json.loads(row["value"])
        except json.JSONDecodeError as e:
            logger.warning(f"Corrupt state for '{key}', ignoring: {e}")
            return None
        return value if isinstance(value, dict) else None

    def _save_state_sync(self, key: str, value: dict[str, Any]) -> None:
        payload = json.dumps(value)
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO engine_state (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (key, payload),
            )

    # -- async interface ---------------------------------------------------

    async def bulk_upsert(self, relationships: list[Relationship]) -> None:
        if not relationships:
            return
        await asyncio.to_thread(self._bulk_upsert_sync, relationships)

    async def list(self) -> list[Relationship]:
        return await asyncio.to_thread(self._list_sync)

    async def delete_by_content_id(self, content_id: str) -> int:
        return await asyncio.to_thread(self._delete_by_content_id_sync, content_id)

    async def load_state(self, key: str) -> Optional[dict]:
        return await asyncio.to_thread(self._load_state_sync, key)

    async def save_state(self, key: str, value: dict) -> None:
        await asyncio.to_thread(self._save_state_sync, key, value)
