"""Action dispatch: runs a chat model's tool call for an authenticated user."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from src.errors import Unauthenticated
from src.tools.base import ToolContext
from src.tools.registry import registry as default_registry

if TYPE_CHECKING:
    from src.memory.retriever import MemoryRetriever
    from src.store.store import DataStore
    from src.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


@dataclass
class ToolCall:
    """A single structured action requested by the chat model."""

    name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    id: str | None = None


@dataclass
class ActionResult:
    """Outcome of a dispatched tool call, carrying the persisted record."""

    tool: str
    type: str
    key: str
    record: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "tool": self.tool, self.key: self.record}

    def acknowledgement(self) -> str:
        """Short confirmation used when the model gave no reply text."""
        if self.type == "task_created":
            return f"Done. I added the task \"{self.record.get('title', '')}\"."
        if self.type == "focus_session_started":
            minutes = self.record.get("duration_minutes")
            return f"Starting a {minutes} minute {self.record.get('type', 'focus')} session."
        if self.type == "note_saved":
            return "Got it, I saved that note."
        return "I processed your request."


class ActionDispatcher:
    """Executes recognized tool calls against the data store."""

    def __init__(
        self,
        store: DataStore,
        retriever: MemoryRetriever,
        registry: ToolRegistry | None = None,
    ) -> None:
        self._store = store
        self._retriever = retriever
        self._registry = registry or default_registry

    async def dispatch(self, tool_call: ToolCall, user_id: str | None) -> ActionResult | None:
        """Run *tool_call* on behalf of *user_id*.

        Returns None for unknown tools (logged, no side effect). Raises
        ``Unauthenticated`` without a user, ``ToolValidationError`` for bad
        arguments and ``ActionFailed`` when persistence fails.
        """
        if not user_id:
            raise Unauthenticated("Tool dispatch requires an authenticated user")

        if self._registry.get(tool_call.name) is None:
            logger.warning("Ignoring unknown tool call: %s", tool_call.name)
            return None

        context = ToolContext(user_id=user_id, store=self._store, retriever=self._retriever)
        result = await self._registry.execute(tool_call.name, tool_call.arguments, context=context)

        data = dict(result.data or {})
        action_type = data.pop("type", tool_call.name)
        key, record = next(iter(data.items()), ("result", {}))
        return ActionResult(tool=tool_call.name, type=action_type, key=key, record=record)
