"""System prompt assembly with retrieved memory."""

from __future__ import annotations

import logging
import zoneinfo
from datetime import datetime
from typing import TYPE_CHECKING

from src.config import settings

if TYPE_CHECKING:
    from src.memory.retriever import RAGContext

logger = logging.getLogger(__name__)

PERSONA = """\
You are ZenVA, a calm and encouraging voice assistant for a productivity \
and wellness app. You help the user manage tasks, run focus sessions and \
remember notes.

You can take these actions by calling a function:
- create_task: add a task (title required; priority low/medium/high, \
default medium; due_date as YYYY-MM-DD when a date is mentioned)
- start_focus_session: start a focus timer (duration in minutes; type \
work, break or long_break, default work)
- save_note: save a note the user wants remembered

Call at most one function per reply. Keep spoken replies short: one or \
two sentences, no markdown."""


def format_memory(context: RAGContext | None) -> str:
    """Format retrieved notes as a short bulleted list with match percentages."""
    if context is None or not context.matches:
        return ""

    lines = ["Relevant notes from the user's memory:"]
    for match in context.matches:
        text = match.note.summary or match.note.content
        lines.append(f"- {text} ({match.similarity:.0%} match)")
    return "\n".join(lines)


def current_time_text(now: datetime | None = None) -> str:
    tz = zoneinfo.ZoneInfo(settings.timezone)
    now = now or datetime.now(tz)
    return f"Today is {now.strftime('%A, %B %d, %Y')} ({now.date().isoformat()}), {settings.timezone}."


def build_system_prompt(context: RAGContext | None = None, now: datetime | None = None) -> str:
    """Assemble the persona, the current date and any retrieved memory."""
    sections = [PERSONA, current_time_text(now)]
    memory_text = format_memory(context)
    if memory_text:
        sections.append(memory_text)
    return "\n\n".join(sections)
