"""MemoryStore - aiosqlite persistence for user memories.

Embeddings are stored as JSON arrays; similarity is computed in
process by :mod:`lumen.memory.manager`.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import aiosqlite

from lumen.config import settings
from lumen.memory.models import Memory

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS memories (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    content TEXT NOT NULL,
    embedding TEXT NOT NULL,
    importance INTEGER NOT NULL DEFAULT 1,
    metadata TEXT NOT NULL DEFAULT '{}',
    last_accessed_at TEXT NOT NULL,
    created_at TEXT NOT NULL
)
"""

_CREATE_INDEX = "CREATE INDEX IF NOT EXISTS idx_memories_user ON memories (user_id)"

_COLUMNS = "id, user_id, content, embedding, importance, metadata, last_accessed_at, created_at"


def _to_row(memory: Memory) -> tuple:
    return (
        memory.id,
        memory.user_id,
        memory.content,
        json.dumps(memory.embedding),
        memory.importance,
        json.dumps(memory.metadata),
        memory.last_accessed_at.isoformat(),
        memory.created_at.isoformat(),
    )


def _from_row(row: tuple) -> Memory:
    return Memory(
        id=row[0],
        user_id=row[1],
        content=row[2],
        embedding=json.loads(row[3]),
        importance=row[4],
        metadata=json.loads(row[5] or "{}"),
        last_accessed_at=datetime.fromisoformat(row[6]),
        created_at=datetime.fromisoformat(row[7]),
    )


class MemoryStore:
    """Persists memories in SQLite.

    Singleton accessed via ``MemoryStore.get()``.  Pass an explicit
    *db_path* for test isolation.
    """

    _instance: MemoryStore | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path or settings.database_path
        self._initialised = False

    @classmethod
    def get(cls) -> MemoryStore:
        """Return the shared MemoryStore instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    # -- Internal helpers ----------------------------------------------------

    async def _connect(self) -> aiosqlite.Connection:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        db = await aiosqlite.connect(str(self._db_path))
        if not self._initialised:
            await db.execute(_CREATE_TABLE)
            await db.execute(_CREATE_INDEX)
            await db.commit()
            self._initialised = True
        return db

    # -- Read ----------------------------------------------------------------

    async def list_for_user(self, user_id: str) -> list[Memory]:
        """Every memory belonging to *user_id*."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM memories WHERE user_id = ?", (user_id,)
            )
            rows = await cursor.fetchall()
            return [_from_row(row) for row in rows]
        finally:
            await db.close()

    async def recent(self, user_id: str, limit: int) -> list[Memory]:
        """The *limit* most recently accessed memories of *user_id*."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM memories WHERE user_id = ? "
                "ORDER BY last_accessed_at DESC LIMIT ?",
                (user_id, limit),
            )
            rows = await cursor.fetchall()
            return [_from_row(row) for row in rows]
        finally:
            await db.close()

    # -- Write ---------------------------------------------------------------

    async def insert(self, memory: Memory) -> Memory:
        db = await self._connect()
        try:
            await db.execute(
                f"INSERT INTO memories ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                _to_row(memory),
            )
            await db.commit()
            logger.info("Stored memory %s for %s: %s", memory.id, memory.user_id, memory.content[:80])
            return memory
        finally:
            await db.close()

    async def overwrite(
        self,
        memory_id: str,
        *,
        content: str,
        embedding: list[float],
        importance: int,
    ) -> None:
        """Replace a memory's content during consolidation."""
        now = datetime.now(UTC).isoformat()
        db = await self._connect()
        try:
            await db.execute(
                "UPDATE memories SET content = ?, embedding = ?, importance = ?, "
                "last_accessed_at = ? WHERE id = ?",
                (content, json.dumps(embedding), importance, now, memory_id),
            )
            await db.commit()
            logger.info("Consolidated memory %s", memory_id)
        finally:
            await db.close()

    async def touch(self, memory_ids: list[str], timestamp: datetime | None = None) -> None:
        """Refresh ``last_accessed_at`` for the given memories."""
        if not memory_ids:
            return
        ts = (timestamp or datetime.now(UTC)).isoformat()
        placeholders = ", ".join("?" for _ in memory_ids)
        db = await self._connect()
        try:
            await db.execute(
                f"UPDATE memories SET last_accessed_at = ? WHERE id IN ({placeholders})",
                (ts, *memory_ids),
            )
            await db.commit()
        finally:
            await db.close()
