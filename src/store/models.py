"""Persisted record types.

Each record maps to one table. ``to_row()`` matches the column order of
the column list the table uses in ``src.store.store`` and ``from_row()``
is its inverse.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any

PRIORITIES = ("low", "medium", "high")
SESSION_TYPES = ("focus", "short-break", "long-break")
MESSAGE_ROLES = ("user", "assistant", "system")


def new_id() -> str:
    return uuid.uuid4().hex


def utc_now() -> str:
    return datetime.now(UTC).isoformat()


@dataclass
class Task:
    """A to-do item."""

    user_id: str
    title: str
    description: str | None = None
    priority: str = "medium"
    due_date: str | None = None
    completed: bool = False
    id: str = field(default_factory=new_id)
    created_at: str = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        if self.priority not in PRIORITIES:
            msg = f"Invalid priority '{self.priority}'"
            raise ValueError(msg)

    def to_row(self) -> tuple:
        return (
            self.id,
            self.user_id,
            self.title,
            self.description,
            self.priority,
            self.due_date,
            int(self.completed),
            self.created_at,
        )

    @classmethod
    def from_row(cls, row: tuple) -> Task:
        return cls(
            id=row[0],
            user_id=row[1],
            title=row[2],
            description=row[3],
            priority=row[4],
            due_date=row[5],
            completed=bool(row[6]),
            created_at=row[7],
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class FocusSession:
    """A Pomodoro-style focus or break period.

    The timer itself runs on the client; this record only tracks start
    and completion.
    """

    user_id: str
    duration_minutes: int
    type: str = "focus"
    completed: bool = False
    started_at: str = field(default_factory=utc_now)
    completed_at: str | None = None
    id: str = field(default_factory=new_id)

    def __post_init__(self) -> None:
        if self.type not in SESSION_TYPES:
            msg = f"Invalid session type '{self.type}'"
            raise ValueError(msg)
        if self.duration_minutes <= 0:
            msg = "duration_minutes must be positive"
            raise ValueError(msg)

    def to_row(self) -> tuple:
        return (
            self.id,
            self.user_id,
            self.type,
            self.duration_minutes,
            int(self.completed),
            self.started_at,
            self.completed_at,
        )

    @classmethod
    def from_row(cls, row: tuple) -> FocusSession:
        return cls(
            id=row[0],
            user_id=row[1],
            type=row[2],
            duration_minutes=int(row[3]),
            completed=bool(row[4]),
            started_at=row[5],
            completed_at=row[6],
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class VoiceNote:
    """A remembered utterance or note with its embedding.

    The embedding is computed once at creation and never recomputed.
    """

    user_id: str
    content: str
    embedding: list[float]
    summary: str | None = None
    category: str | None = None
    source: str = "voice_input"
    id: str = field(default_factory=new_id)
    created_at: str = field(default_factory=utc_now)

    def to_row(self) -> tuple:
        return (
            self.id,
            self.user_id,
            self.content,
            self.summary,
            self.category,
            self.source,
            json.dumps(self.embedding),
            self.created_at,
        )

    @classmethod
    def from_row(cls, row: tuple) -> VoiceNote:
        return cls(
            id=row[0],
            user_id=row[1],
            content=row[2],
            summary=row[3],
            category=row[4],
            source=row[5],
            embedding=json.loads(row[6]) if row[6] else [],
            created_at=row[7],
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize without the embedding vector."""
        data = asdict(self)
        data.pop("embedding")
        return data


@dataclass
class ConversationMessage:
    """One entry of the append-only interaction log."""

    user_id: str
    role: str
    content: str
    category: str | None = None
    id: str = field(default_factory=new_id)
    created_at: str = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        if self.role not in MESSAGE_ROLES:
            msg = f"Invalid role '{self.role}'"
            raise ValueError(msg)

    def to_row(self) -> tuple:
        return (self.id, self.user_id, self.role, self.content, self.category, self.created_at)

    @classmethod
    def from_row(cls, row: tuple) -> ConversationMessage:
        return cls(
            id=row[0],
            user_id=row[1],
            role=row[2],
            content=row[3],
            category=row[4],
            created_at=row[5],
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class Goal:
    user_id: str
    title: str
    description: str | None = None
    category: str | None = None
    target_date: str | None = None
    progress: int = 0
    completed: bool = False
    id: str = field(default_factory=new_id)
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    def to_row(self) -> tuple:
        return (
            self.id,
            self.user_id,
            self.title,
            self.description,
            self.category,
            self.target_date,
            self.progress,
            int(self.completed),
            self.created_at,
            self.updated_at,
        )

    @classmethod
    def from_row(cls, row: tuple) -> Goal:
        return cls(
            id=row[0],
            user_id=row[1],
            title=row[2],
            description=row[3],
            category=row[4],
            target_date=row[5],
            progress=int(row[6] or 0),
            completed=bool(row[7]),
            created_at=row[8],
            updated_at=row[9],
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class MoodEntry:
    """Mood and energy check-in, both on a 1-5 scale."""

    user_id: str
    mood: int
    energy_level: int
    notes: str | None = None
    id: str = field(default_factory=new_id)
    created_at: str = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        for name in ("mood", "energy_level"):
            value = getattr(self, name)
            if not 1 <= value <= 5:
                msg = f"{name} must be between 1 and 5"
                raise ValueError(msg)

    def to_row(self) -> tuple:
        return (self.id, self.user_id, self.mood, self.energy_level, self.notes, self.created_at)

    @classmethod
    def from_row(cls, row: tuple) -> MoodEntry:
        return cls(
            id=row[0],
            user_id=row[1],
            mood=int(row[2]),
            energy_level=int(row[3]),
            notes=row[4],
            created_at=row[5],
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
