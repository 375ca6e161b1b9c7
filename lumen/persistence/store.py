"""ChatStore - aiosqlite persistence for chats, messages, spaces and documents."""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import aiosqlite

from lumen.config import settings

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS chats (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        title TEXT NOT NULL,
        sources TEXT NOT NULL DEFAULT '[]',
        files TEXT NOT NULL DEFAULT '[]',
        chat_mode TEXT NOT NULL DEFAULT 'chat',
        space_id TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS messages (
        id TEXT PRIMARY KEY,
        chat_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        query TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'answering',
        blocks TEXT NOT NULL DEFAULT '[]',
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS spaces (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        name TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS documents (
        id TEXT PRIMARY KEY,
        space_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        title TEXT NOT NULL,
        content TEXT NOT NULL,
        plain_text TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
)

TITLE_PREVIEW_CHARS = 50


def _now() -> str:
    return datetime.now(UTC).isoformat()


@dataclass
class ChatRecord:
    id: str
    user_id: str
    title: str
    sources: list[str] = field(default_factory=list)
    files: list[str] = field(default_factory=list)
    chat_mode: str = "chat"
    space_id: str | None = None
    created_at: str = ""

    @classmethod
    def from_row(cls, row: tuple) -> ChatRecord:
        return cls(
            id=row[0],
            user_id=row[1],
            title=row[2],
            sources=json.loads(row[3]),
            files=json.loads(row[4]),
            chat_mode=row[5],
            space_id=row[6],
            created_at=row[7],
        )


@dataclass
class MessageRecord:
    id: str
    chat_id: str
    user_id: str
    query: str
    status: str = "answering"
    blocks: list[dict[str, Any]] = field(default_factory=list)
    created_at: str = ""

    @classmethod
    def from_row(cls, row: tuple) -> MessageRecord:
        return cls(
            id=row[0],
            chat_id=row[1],
            user_id=row[2],
            query=row[3],
            status=row[4],
            blocks=json.loads(row[5]),
            created_at=row[6],
        )


@dataclass
class DocumentRecord:
    space_id: str
    user_id: str
    title: str
    content: dict[str, Any]
    plain_text: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: str = field(default_factory=_now)


class ChatStore:
    """Persists conversation state in SQLite.

    Singleton accessed via ``ChatStore.get()``.  Pass an explicit
    *db_path* for test isolation (e.g. ``tmp_path / "test.db"``).
    """

    _instance: ChatStore | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path or settings.database_path
        self._initialised = False

    @classmethod
    def get(cls) -> ChatStore:
        """Return the shared ChatStore instance."""
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
            for statement in _SCHEMA:
                await db.execute(statement)
            await db.commit()
            self._initialised = True
        return db

    # -- Chats ---------------------------------------------------------------

    async def ensure_chat(
        self,
        chat_id: str,
        user_id: str,
        *,
        query: str,
        sources: list[str] | None = None,
        files: list[str] | None = None,
        chat_mode: str = "chat",
        space_id: str | None = None,
    ) -> bool:
        """Create the chat if absent, titled with the query preview.

        Returns True if a row was inserted.
        """
        db = await self._connect()
        try:
            cursor = await db.execute(
                """
                INSERT OR IGNORE INTO chats
                    (id, user_id, title, sources, files, chat_mode, space_id, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    chat_id,
                    user_id,
                    query[:TITLE_PREVIEW_CHARS],
                    json.dumps(sources or []),
                    json.dumps(files or []),
                    chat_mode,
                    space_id,
                    _now(),
                ),
            )
            await db.commit()
            created = cursor.rowcount > 0
            if created:
                logger.info("Created chat %s for %s", chat_id, user_id)
            return created
        finally:
            await db.close()

    async def get_chat(self, chat_id: str) -> ChatRecord | None:
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT id, user_id, title, sources, files, chat_mode, space_id, created_at "
                "FROM chats WHERE id = ?",
                (chat_id,),
            )
            row = await cursor.fetchone()
            return ChatRecord.from_row(row) if row else None
        finally:
            await db.close()

    async def update_title(self, chat_id: str, title: str) -> None:
        db = await self._connect()
        try:
            await db.execute("UPDATE chats SET title = ? WHERE id = ?", (title, chat_id))
            await db.commit()
        finally:
            await db.close()

    # -- Messages ------------------------------------------------------------

    async def ensure_message(self, message_id: str, chat_id: str, user_id: str, query: str) -> bool:
        """Create the message row in ``answering`` state if absent."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                """
                INSERT OR IGNORE INTO messages
                    (id, chat_id, user_id, query, status, blocks, created_at)
                VALUES (?, ?, ?, ?, 'answering', '[]', ?)
                """,
                (message_id, chat_id, user_id, query, _now()),
            )
            await db.commit()
            return cursor.rowcount > 0
        finally:
            await db.close()

    async def finalize_message(
        self,
        message_id: str,
        *,
        status: str,
        blocks: list[dict[str, Any]],
    ) -> None:
        """Write the message's final status and blocks."""
        db = await self._connect()
        try:
            await db.execute(
                "UPDATE messages SET status = ?, blocks = ? WHERE id = ?",
                (status, json.dumps(blocks, default=str), message_id),
            )
            await db.commit()
            logger.info("Finalized message %s (%s, %d blocks)", message_id, status, len(blocks))
        finally:
            await db.close()

    async def get_message(self, message_id: str) -> MessageRecord | None:
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT id, chat_id, user_id, query, status, blocks, created_at "
                "FROM messages WHERE id = ?",
                (message_id,),
            )
            row = await cursor.fetchone()
            return MessageRecord.from_row(row) if row else None
        finally:
            await db.close()

    # -- Spaces & documents --------------------------------------------------

    async def create_space(self, space_id: str, user_id: str, name: str) -> None:
        db = await self._connect()
        try:
            await db.execute(
                "INSERT INTO spaces (id, user_id, name, created_at) VALUES (?, ?, ?, ?)",
                (space_id, user_id, name, _now()),
            )
            await db.commit()
        finally:
            await db.close()

    async def space_owned_by(self, space_id: str, user_id: str) -> bool:
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT 1 FROM spaces WHERE id = ? AND user_id = ?", (space_id, user_id)
            )
            return await cursor.fetchone() is not None
        finally:
            await db.close()

    async def insert_document(self, doc: DocumentRecord) -> DocumentRecord:
        db = await self._connect()
        try:
            await db.execute(
                """
                INSERT INTO documents
                    (id, space_id, user_id, title, content, plain_text, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    doc.id,
                    doc.space_id,
                    doc.user_id,
                    doc.title,
                    json.dumps(doc.content),
                    doc.plain_text,
                    doc.created_at,
                ),
            )
            await db.commit()
            logger.info("Created document %s in space %s", doc.id, doc.space_id)
            return doc
        finally:
            await db.close()

    async def get_document(self, doc_id: str) -> DocumentRecord | None:
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT id, space_id, user_id, title, content, plain_text, created_at "
                "FROM documents WHERE id = ?",
                (doc_id,),
            )
            row = await cursor.fetchone()
            if row is None:
                return None
            return DocumentRecord(
                id=row[0],
                space_id=row[1],
                user_id=row[2],
                title=row[3],
                content=json.loads(row[4]),
                plain_text=row[5],
                created_at=row[6],
            )
        finally:
            await db.close()
