"""Task suggestions grounded in the user's own notes.

The chat model gets the task, the user's goals and the notes most similar
to the task title, and answers with subtasks, an estimate and tips. Any
answer that cannot be used is replaced by one fixed fallback.
"""

from __future__ import annotations

import json
import logging
import re
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from src.config import settings
from src.errors import EmbeddingUnavailable

if TYPE_CHECKING:
    from src.memory.retriever import MemoryRetriever, RAGMatch

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")

SUGGEST_PROMPT = """\
You are a productivity assistant with memory. Analyze the user's task and \
suggest how to get it done.

User's current goals: {goals}
Time of day: {time_of_day}
Current mood: {mood}
Completed tasks today: {completed}{notes}

Respond with ONLY a JSON object of this shape:
{{
  "improvedTitle": "clearer title (optional)",
  "improvedDescription": "clearer description (optional)",
  "subtasks": ["step 1", "step 2"],
  "estimatedDuration": <minutes as a number>,
  "priority": "low|medium|high",
  "tips": ["tip 1", "tip 2"]
}}"""


class TaskSuggestions(BaseModel):
    improved_title: str | None = Field(default=None, alias="improvedTitle")
    improved_description: str | None = Field(default=None, alias="improvedDescription")
    subtasks: list[str] = Field(default_factory=list)
    estimated_duration: int = Field(default=30, alias="estimatedDuration", ge=0)
    priority: Literal["low", "medium", "high"] = "medium"
    tips: list[str] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


def fallback_suggestions(title: str) -> TaskSuggestions:
    return TaskSuggestions(
        subtasks=[title],
        estimated_duration=30,
        priority="medium",
        tips=["Break down the task into smaller steps", "Set a specific time to work on this"],
    )


def _note_lines(matches: list[RAGMatch]) -> str:
    if not matches:
        return ""
    lines = [
        f"- {m.note.summary or m.note.content[:100]}... ({round(m.similarity * 100)}% relevant)"
        for m in matches
    ]
    return "\n\nRelevant past notes:\n" + "\n".join(lines)


async def suggest_for_task(
    user_id: str,
    title: str,
    retriever: MemoryRetriever,
    *,
    description: str | None = None,
    goals: list[str] | None = None,
    user_context: dict[str, Any] | None = None,
) -> TaskSuggestions:
    """Suggest subtasks, duration, priority and tips for a task.

    Memory search failing only drops the notes from the prompt. Raises
    ``InterpreterUnavailable`` if the chat provider cannot be reached.
    """
    from src.llm.client import complete_text

    if not settings.chat_enabled:
        logger.info("No chat provider configured, using fallback suggestions")
        return fallback_suggestions(title)

    try:
        context = await retriever.search(user_id, title)
        matches = context.matches
    except EmbeddingUnavailable:
        logger.warning("Memory search unavailable, suggesting without notes")
        matches = []

    user_context = user_context or {}
    system = SUGGEST_PROMPT.format(
        goals=", ".join(goals or []) or "None specified",
        time_of_day=user_context.get("timeOfDay", "Unknown"),
        mood=user_context.get("currentMood", "Unknown"),
        completed=user_context.get("completedTasks", 0),
        notes=_note_lines(matches),
    )
    prompt = f'Task: "{title}"'
    if description:
        prompt += f'\nDescription: "{description}"'
    prompt += "\n\nSuggest how to complete this task effectively."

    raw = await complete_text(
        [{"role": "user", "content": prompt}], system=system, max_tokens=500
    )
    try:
        data = json.loads(_CODE_FENCE.sub("", raw.strip()))
        if not isinstance(data, dict):
            msg = "not an object"
            raise ValueError(msg)
        return TaskSuggestions.model_validate(data)
    except (ValueError, ValidationError):
        logger.warning("Unparseable suggestions output, using fallback: %s", raw[:200])
        return fallback_suggestions(title)
