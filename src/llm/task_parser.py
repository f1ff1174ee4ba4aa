"""Natural-language task parsing.

The chat model turns free text into task fields. When its output cannot
be used, exactly one fallback applies: strip a leading "create/add/make
(a) (task) (to)" phrase and use the rest of the utterance as the title,
with medium priority.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from src.config import settings
from src.llm.prompt import current_time_text

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 100

_COMMAND_PREFIX = re.compile(r"^(create|add|make)\s+(a\s+)?(task\s+)?(to\s+)?", re.IGNORECASE)
_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")

PARSE_PROMPT = """\
You parse natural language into structured task data.

Extract:
- title: the main task title (required)
- description: additional details (optional)
- priority: low, medium, or high (default: medium)
- due_date: date in YYYY-MM-DD format if mentioned (optional)
- goal_id: id of a related existing goal (optional)
- subtasks: list of smaller steps if mentioned (optional)

{today}
Available user goals: {goals}

Respond with ONLY a valid JSON object. No additional text.

Example:
Input: "Create a task to finish the report by Friday"
Output: {{"title": "Finish the report", "due_date": "<next Friday>", "priority": "medium"}}"""


class ParsedTask(BaseModel):
    title: str
    description: str | None = None
    priority: str = "medium"
    due_date: str | None = None
    goal_id: str | None = None
    subtasks: list[str] = Field(default_factory=list)


def fallback_title(utterance: str) -> str:
    text = utterance.strip()
    title = _COMMAND_PREFIX.sub("", text).strip() or text
    title = title[:MAX_TITLE_LENGTH]
    return title[:1].upper() + title[1:]


def fallback_task_arguments(utterance: str) -> dict[str, Any]:
    """Arguments for ``create_task`` derived from the raw utterance."""
    return {"title": fallback_title(utterance), "priority": "medium"}


def _normalize(data: dict[str, Any], utterance: str) -> ParsedTask:
    if "dueDate" in data and "due_date" not in data:
        data["due_date"] = data.pop("dueDate")
    if "goalId" in data and "goal_id" not in data:
        data["goal_id"] = data.pop("goalId")
    task = ParsedTask.model_validate(data)
    if not task.title.strip():
        task.title = utterance.strip()[:MAX_TITLE_LENGTH]
    if task.priority not in ("low", "medium", "high"):
        task.priority = "medium"
    return task


async def parse_task(utterance: str, goals: list[dict[str, Any]] | None = None) -> ParsedTask:
    """Parse *utterance* into task fields.

    Raises ``InterpreterUnavailable`` if the chat provider cannot be
    reached; malformed model output uses the fallback rule instead.
    """
    from src.llm.client import complete_text

    if not settings.chat_enabled:
        logger.info("No chat provider configured, using fallback task parse")
        return ParsedTask(**fallback_task_arguments(utterance))

    goal_text = ", ".join(f"{g.get('id')}: {g.get('title')}" for g in goals or []) or "none"
    system = PARSE_PROMPT.format(today=current_time_text(), goals=goal_text)
    raw = await complete_text(
        [{"role": "user", "content": f'Parse this task request: "{utterance}"'}],
        system=system,
        temperature=0.1,
        max_tokens=500,
    )

    try:
        data = json.loads(_CODE_FENCE.sub("", raw.strip()))
        if not isinstance(data, dict):
            msg = "not an object"
            raise ValueError(msg)
        return _normalize(data, utterance)
    except (ValueError, ValidationError):
        logger.warning("Unparseable task output, using fallback: %s", raw[:200])
        return ParsedTask(**fallback_task_arguments(utterance))
