"""Shared types for tool handlers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

if TYPE_CHECKING:
    from src.memory.retriever import MemoryRetriever
    from src.store.store import DataStore


@dataclass
class ToolResult:
    """What a handler hands back.

    On success ``data`` holds a ``type`` discriminator (``task_created``,
    ``note_saved``, ...) plus the persisted record under a single key.
    """

    data: dict[str, Any] | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class ToolContext:
    """The acting user and the services a handler may touch."""

    user_id: str
    store: DataStore
    retriever: MemoryRetriever


class ToolParams(BaseModel):
    """Argument model for a tool; its JSON schema is what the model sees."""
