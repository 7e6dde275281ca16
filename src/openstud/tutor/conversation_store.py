# src/openstud/tutor/conversation_store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
import time
import uuid
from dataclasses import dataclass
from pathlib import Path

from ..core.identity import Identity
from ..tasks.task_models import AccessDeniedError, NotFoundError

logger = logging.getLogger(__name__)

TITLE_MAX_CHARS = 50
DEFAULT_TITLE = "New conversation"

STORED_ROLES = ("user", "assistant")


@dataclass(slots=True)
class Conversation:
    id: str
    user_id: str
    title: str
    created_at: float
    updated_at: float


@dataclass(slots=True)
class StoredMessage:
    id: int
    conversation_id: str
    role: str
    content: str
    created_at: float


def conversation_title(first_message: str | None) -> str:
    """First 50 characters of the opening user message, with "..." when cut."""
    text = (first_message or "").strip()
    if not text:
        return DEFAULT_TITLE
    if len(text) > TITLE_MAX_CHARS:
        return text[:TITLE_MAX_CHARS] + "..."
    return text


class ConversationStore:
    """
    SQLite store for AI tutor conversations.

    System prompts are rebuilt on every request and never stored;
    only user/assistant turns are kept.
    """

    def __init__(self, db_path: str | Path = "conversations.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        logger.info("ConversationStore ready db=%s", self._db_path)

    def close(self) -> None:
        return

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS conversations (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    conversation_id TEXT NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
                    role TEXT NOT NULL,
                    content TEXT NOT NULL,
                    created_at REAL NOT NULL
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_conversations_user ON conversations(user_id, updated_at)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_messages_conversation ON messages(conversation_id, id)"
            )
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _row_to_conversation(row: sqlite3.Row) -> Conversation:
        return Conversation(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            title=str(row["title"]),
            created_at=float(row["created_at"]),
            updated_at=float(row["updated_at"]),
        )

    def create_conversation(self, identity: Identity, first_message: str | None = None) -> Conversation:
        now = time.time()
        conv = Conversation(
            id=uuid.uuid4().hex,
            user_id=identity.user_id,
            title=conversation_title(first_message),
            created_at=now,
            updated_at=now,
        )
        conn = self._get_conn()
        try:
            conn.execute(
                "INSERT INTO conversations(id, user_id, title, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
                (conv.id, conv.user_id, conv.title, conv.created_at, conv.updated_at),
            )
            conn.commit()
        finally:
            conn.close()
        logger.info("Conversation created id=%s user=%s", conv.id, identity.user_id)
        return conv

    def get_conversation(self, identity: Identity, conversation_id: str) -> Conversation:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM conversations WHERE id = ?", (conversation_id,)
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            raise NotFoundError("Conversation not found")
        conv = self._row_to_conversation(row)
        if conv.user_id != identity.user_id:
            raise AccessDeniedError("You don't have access to this conversation")
        return conv

    def list_conversations(self, identity: Identity, limit: int = 50) -> list[Conversation]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                """
                SELECT * FROM conversations
                WHERE user_id = ?
                ORDER BY updated_at DESC
                LIMIT ?
                """,
                (identity.user_id, int(limit)),
            ).fetchall()
            return [self._row_to_conversation(r) for r in rows]
        finally:
            conn.close()

    def delete_conversation(self, identity: Identity, conversation_id: str) -> None:
        self.get_conversation(identity, conversation_id)
        conn = self._get_conn()
        try:
            conn.execute("DELETE FROM conversations WHERE id = ?", (conversation_id,))
            conn.commit()
        finally:
            conn.close()
        logger.info("Conversation deleted id=%s", conversation_id)

    def add_message(self, conversation_id: str, role: str, content: str) -> int | None:
        """Append one turn. System messages are skipped (returns None)."""
        if role not in STORED_ROLES:
            if role != "system":
                raise ValueError(f"Unsupported message role: {role}")
            return None

        now = time.time()
        conn = self._get_conn()
        try:
            cur = conn.execute(
                "INSERT INTO messages(conversation_id, role, content, created_at) VALUES (?, ?, ?, ?)",
                (conversation_id, role, content, now),
            )
            conn.execute(
                "UPDATE conversations SET updated_at = ? WHERE id = ?",
                (now, conversation_id),
            )
            conn.commit()
            return int(cur.lastrowid) if cur.lastrowid is not None else None
        finally:
            conn.close()

    def list_messages(self, conversation_id: str, limit: int | None = None) -> list[StoredMessage]:
        """Messages in chronological order; with a limit, the most recent `limit` ones."""
        conn = self._get_conn()
        try:
            if limit is None:
                rows = conn.execute(
                    "SELECT * FROM messages WHERE conversation_id = ? ORDER BY id ASC",
                    (conversation_id,),
                ).fetchall()
            else:
                rows = conn.execute(
                    """
                    SELECT * FROM (
                        SELECT * FROM messages WHERE conversation_id = ? ORDER BY id DESC LIMIT ?
                    ) ORDER BY id ASC
                    """,
                    (conversation_id, max(0, int(limit))),
                ).fetchall()
            return [
                StoredMessage(
                    id=int(r["id"]),
                    conversation_id=str(r["conversation_id"]),
                    role=str(r["role"]),
                    content=str(r["content"]),
                    created_at=float(r["created_at"]),
                )
                for r in rows
            ]
        finally:
            conn.close()
