"""Productivity tools the assistant can call: tasks, focus sessions, notes."""

from __future__ import annotations

from datetime import date
from typing import Literal

from pydantic import AliasChoices, Field, field_validator

from src.store.models import FocusSession, Task
from src.tools.base import ToolContext, ToolParams, ToolResult
from src.tools.registry import registry

# Spoken session types → stored session types
SESSION_TYPE_MAP = {
    "work": "focus",
    "break": "short-break",
    "long_break": "long-break",
}

DEFAULT_DURATIONS = {
    "work": 25,
    "break": 5,
    "long_break": 15,
}

# -- create_task -------------------------------------------------------------


class CreateTaskParams(ToolParams):
    title: str = Field(min_length=1, description="Task title")
    description: str | None = Field(default=None, description="Task description")
    priority: Literal["low", "medium", "high"] = Field(
        default="medium", description="Task priority"
    )
    due_date: date | None = Field(
        default=None,
        validation_alias=AliasChoices("due_date", "dueDate"),
        description="Due date in YYYY-MM-DD format",
    )

    @field_validator("title")
    @classmethod
    def _strip_title(cls, value: str) -> str:
        value = value.strip()
        if not value:
            msg = "title must not be blank"
            raise ValueError(msg)
        return value

    @field_validator("due_date", mode="before")
    @classmethod
    def _date_part(cls, value: object) -> object:
        # Models sometimes send a full ISO timestamp.
        if isinstance(value, str):
            value = value.strip()
            if not value:
                return None
            return value.split("T", 1)[0]
        return value


@registry.tool(
    name="create_task",
    description=(
        "Create a new task or todo item. Use when the user asks to add, "
        "create or remember to do something."
    ),
    category="productivity",
    params_model=CreateTaskParams,
)
async def create_task(
    title: str,
    context: ToolContext,
    description: str | None = None,
    priority: str = "medium",
    due_date: date | None = None,
) -> ToolResult:
    task = Task(
        user_id=context.user_id,
        title=title,
        description=description,
        priority=priority,
        due_date=due_date.isoformat() if due_date else None,
    )
    saved = await context.store.add_task(task)
    return ToolResult(data={"type": "task_created", "task": saved.to_dict()})


# -- start_focus_session -----------------------------------------------------


class StartFocusSessionParams(ToolParams):
    duration: int | None = Field(
        default=None,
        gt=0,
        le=240,
        description="Session duration in minutes",
    )
    type: Literal["work", "break", "long_break"] = Field(
        default="work", description="Session type"
    )


@registry.tool(
    name="start_focus_session",
    description="Start a focus/pomodoro session or a break timer.",
    category="productivity",
    params_model=StartFocusSessionParams,
)
async def start_focus_session(
    context: ToolContext,
    duration: int | None = None,
    type: str = "work",  # noqa: A002
) -> ToolResult:
    session = FocusSession(
        user_id=context.user_id,
        duration_minutes=duration or DEFAULT_DURATIONS[type],
        type=SESSION_TYPE_MAP[type],
    )
    saved = await context.store.add_focus_session(session)
    return ToolResult(data={"type": "focus_session_started", "session": saved.to_dict()})


# -- save_note ---------------------------------------------------------------


class SaveNoteParams(ToolParams):
    content: str = Field(min_length=1, description="Note content")
    category: str | None = Field(default=None, description="Optional note category")


@registry.tool(
    name="save_note",
    description=(
        "Save a note or voice memo to long-term memory. Use when the user says "
        "'note that', 'remember this', or 'save this'."
    ),
    category="memory",
    params_model=SaveNoteParams,
)
async def save_note(
    content: str,
    context: ToolContext,
    category: str | None = None,
) -> ToolResult:
    note = await context.retriever.save_note(
        user_id=context.user_id,
        content=content,
        category=category,
        source="assistant",
    )
    return ToolResult(data={"type": "note_saved", "note": note.to_dict()})
