"""DataStore: per-user CRUD over libsql for tasks, sessions, notes and logs."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from src.db import connection
from src.store.models import (
    ConversationMessage,
    FocusSession,
    Goal,
    MoodEntry,
    Task,
    VoiceNote,
    utc_now,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

    from src.db import AsyncConnection

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS tasks (
        id          TEXT PRIMARY KEY,
        user_id     TEXT NOT NULL,
        title       TEXT NOT NULL,
        description TEXT,
        priority    TEXT NOT NULL DEFAULT 'medium',
        due_date    TEXT,
        completed   INTEGER NOT NULL DEFAULT 0,
        created_at  TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS focus_sessions (
        id               TEXT PRIMARY KEY,
        user_id          TEXT NOT NULL,
        session_type     TEXT NOT NULL,
        duration_minutes INTEGER NOT NULL,
        completed        INTEGER NOT NULL DEFAULT 0,
        started_at       TEXT NOT NULL,
        completed_at     TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS voice_notes (
        id         TEXT PRIMARY KEY,
        user_id    TEXT NOT NULL,
        content    TEXT NOT NULL,
        summary    TEXT,
        category   TEXT,
        source     TEXT NOT NULL,
        embedding  TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS ai_conversations (
        id           TEXT PRIMARY KEY,
        user_id      TEXT NOT NULL,
        message_type TEXT NOT NULL,
        content      TEXT NOT NULL,
        category     TEXT,
        created_at   TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS goals (
        id          TEXT PRIMARY KEY,
        user_id     TEXT NOT NULL,
        title       TEXT NOT NULL,
        description TEXT,
        category    TEXT,
        target_date TEXT,
        progress    INTEGER NOT NULL DEFAULT 0,
        completed   INTEGER NOT NULL DEFAULT 0,
        created_at  TEXT NOT NULL,
        updated_at  TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS mood_entries (
        id           TEXT PRIMARY KEY,
        user_id      TEXT NOT NULL,
        mood         INTEGER NOT NULL,
        energy_level INTEGER NOT NULL,
        notes        TEXT,
        created_at   TEXT NOT NULL
    )
    """,
)

_TASK_COLUMNS = "id, user_id, title, description, priority, due_date, completed, created_at"
_SESSION_COLUMNS = (
    "id, user_id, session_type, duration_minutes, completed, started_at, completed_at"
)
_NOTE_COLUMNS = "id, user_id, content, summary, category, source, embedding, created_at"
_MESSAGE_COLUMNS = "id, user_id, message_type, content, category, created_at"
_GOAL_COLUMNS = (
    "id, user_id, title, description, category, target_date, progress, completed, "
    "created_at, updated_at"
)
_MOOD_COLUMNS = "id, user_id, mood, energy_level, notes, created_at"


def _placeholders(columns: str) -> str:
    return ", ".join("?" for _ in columns.split(","))


class DataStore:
    """Persists user records in SQLite / Turso.

    Every query filters on ``user_id``; a record belonging to another user
    behaves exactly like a missing one.

    Singleton accessed via ``DataStore.get()``.  Pass an explicit *db_path*
    for test isolation (e.g. ``tmp_path / "test.db"``).
    """

    _instance: DataStore | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path
        self._initialised = False

    @classmethod
    def get(cls) -> DataStore:
        """Return the shared DataStore instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    # -- Internal helpers ------------------------------------------------------

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[AsyncConnection]:
        schema = () if self._initialised else _SCHEMA
        async with connection(schema=schema, local_path_override=self._db_path) as db:
            self._initialised = True
            yield db

    async def _insert(self, table: str, columns: str, row: tuple) -> None:
        async with self._connect() as db:
            await db.execute(
                f"INSERT INTO {table} ({columns}) VALUES ({_placeholders(columns)})",  # noqa: S608
                row,
            )
            await db.commit()

    async def _delete(self, table: str, user_id: str, record_id: str) -> bool:
        async with self._connect() as db:
            cursor = await db.execute(
                f"DELETE FROM {table} WHERE id = ? AND user_id = ?",  # noqa: S608
                (record_id, user_id),
            )
            await db.commit()
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Deleted %s row %s", table, record_id)
        return deleted

    # -- Tasks -----------------------------------------------------------------

    async def add_task(self, task: Task) -> Task:
        await self._insert("tasks", _TASK_COLUMNS, task.to_row())
        logger.info("Added task: %s (%s)", task.title, task.id)
        return task

    async def get_task(self, user_id: str, task_id: str) -> Task | None:
        async with self._connect() as db:
            rows = await db.fetchall(
                f"SELECT {_TASK_COLUMNS} FROM tasks WHERE id = ? AND user_id = ?",  # noqa: S608
                (task_id, user_id),
            )
        return Task.from_row(rows[0]) if rows else None

    async def list_tasks(self, user_id: str, *, include_completed: bool = True) -> list[Task]:
        """Return the user's tasks, newest first."""
        sql = f"SELECT {_TASK_COLUMNS} FROM tasks WHERE user_id = ?"  # noqa: S608
        if not include_completed:
            sql += " AND completed = 0"
        sql += " ORDER BY created_at DESC"
        async with self._connect() as db:
            rows = await db.fetchall(sql, (user_id,))
        return [Task.from_row(r) for r in rows]

    async def complete_task(self, user_id: str, task_id: str, completed: bool = True) -> bool:
        async with self._connect() as db:
            cursor = await db.execute(
                "UPDATE tasks SET completed = ? WHERE id = ? AND user_id = ?",
                (int(completed), task_id, user_id),
            )
            await db.commit()
            return cursor.rowcount > 0

    async def delete_task(self, user_id: str, task_id: str) -> bool:
        return await self._delete("tasks", user_id, task_id)

    # -- Focus sessions --------------------------------------------------------

    async def add_focus_session(self, session: FocusSession) -> FocusSession:
        await self._insert("focus_sessions", _SESSION_COLUMNS, session.to_row())
        logger.info(
            "Started %s session: %d min (%s)",
            session.type,
            session.duration_minutes,
            session.id,
        )
        return session

    async def complete_focus_session(
        self, user_id: str, session_id: str, completed_at: str | None = None
    ) -> bool:
        """Mark a session as naturally elapsed."""
        async with self._connect() as db:
            cursor = await db.execute(
                "UPDATE focus_sessions SET completed = 1, completed_at = ? "
                "WHERE id = ? AND user_id = ?",
                (completed_at or utc_now(), session_id, user_id),
            )
            await db.commit()
            return cursor.rowcount > 0

    async def list_focus_sessions(self, user_id: str, limit: int = 50) -> list[FocusSession]:
        async with self._connect() as db:
            rows = await db.fetchall(
                f"SELECT {_SESSION_COLUMNS} FROM focus_sessions WHERE user_id = ? "  # noqa: S608
                "ORDER BY started_at DESC LIMIT ?",
                (user_id, limit),
            )
        return [FocusSession.from_row(r) for r in rows]

    # -- Voice notes -----------------------------------------------------------

    async def add_voice_note(self, note: VoiceNote) -> VoiceNote:
        await self._insert("voice_notes", _NOTE_COLUMNS, note.to_row())
        logger.info("Saved voice note %s: %s", note.id, note.content[:80])
        return note

    async def list_voice_notes(self, user_id: str, limit: int | None = None) -> list[VoiceNote]:
        """Return the user's notes newest first, embeddings included."""
        sql = f"SELECT {_NOTE_COLUMNS} FROM voice_notes WHERE user_id = ? ORDER BY created_at DESC"  # noqa: S608
        params: tuple = (user_id,)
        if limit is not None:
            sql += " LIMIT ?"
            params = (user_id, limit)
        async with self._connect() as db:
            rows = await db.fetchall(sql, params)
        return [VoiceNote.from_row(r) for r in rows]

    async def delete_voice_note(self, user_id: str, note_id: str) -> bool:
        return await self._delete("voice_notes", user_id, note_id)

    # -- Conversation log ------------------------------------------------------

    async def add_message(self, message: ConversationMessage) -> ConversationMessage:
        await self._insert("ai_conversations", _MESSAGE_COLUMNS, message.to_row())
        return message

    async def list_messages(self, user_id: str, limit: int = 50) -> list[ConversationMessage]:
        """Return the most recent messages in chronological order."""
        async with self._connect() as db:
            rows = await db.fetchall(
                f"SELECT {_MESSAGE_COLUMNS} FROM ai_conversations WHERE user_id = ? "  # noqa: S608
                "ORDER BY created_at DESC, rowid DESC LIMIT ?",
                (user_id, limit),
            )
        return [ConversationMessage.from_row(r) for r in reversed(rows)]

    # -- Goals -----------------------------------------------------------------

    async def add_goal(self, goal: Goal) -> Goal:
        await self._insert("goals", _GOAL_COLUMNS, goal.to_row())
        logger.info("Added goal: %s (%s)", goal.title, goal.id)
        return goal

    async def list_goals(self, user_id: str) -> list[Goal]:
        async with self._connect() as db:
            rows = await db.fetchall(
                f"SELECT {_GOAL_COLUMNS} FROM goals WHERE user_id = ? ORDER BY created_at DESC",  # noqa: S608
                (user_id,),
            )
        return [Goal.from_row(r) for r in rows]

    async def update_goal_progress(self, user_id: str, goal_id: str, progress: int) -> bool:
        """Set progress (clamped to 0-100); 100 marks the goal completed."""
        progress = max(0, min(100, progress))
        async with self._connect() as db:
            cursor = await db.execute(
                "UPDATE goals SET progress = ?, completed = ?, updated_at = ? "
                "WHERE id = ? AND user_id = ?",
                (progress, int(progress >= 100), utc_now(), goal_id, user_id),
            )
            await db.commit()
            return cursor.rowcount > 0

    async def delete_goal(self, user_id: str, goal_id: str) -> bool:
        return await self._delete("goals", user_id, goal_id)

    # -- Mood ------------------------------------------------------------------

    async def add_mood_entry(self, entry: MoodEntry) -> MoodEntry:
        await self._insert("mood_entries", _MOOD_COLUMNS, entry.to_row())
        return entry

    async def list_mood_entries(self, user_id: str, limit: int = 30) -> list[MoodEntry]:
        async with self._connect() as db:
            rows = await db.fetchall(
                f"SELECT {_MOOD_COLUMNS} FROM mood_entries WHERE user_id = ? "  # noqa: S608
                "ORDER BY created_at DESC LIMIT ?",
                (user_id, limit),
            )
        return [MoodEntry.from_row(r) for r in rows]
