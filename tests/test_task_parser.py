"""Tests for natural-language task parsing."""

from unittest.mock import AsyncMock, patch

import pytest

from src.llm.task_parser import fallback_task_arguments, fallback_title, parse_task


@pytest.fixture(autouse=True)
def _chat_enabled(monkeypatch) -> None:
    monkeypatch.setattr("src.config.settings.openai_api_key", "sk-test")


@pytest.mark.parametrize(
    ("utterance", "title"),
    [
        ("Create a task to finish the report", "Finish the report"),
        ("add buy milk", "Buy milk"),
        ("Make a task call the plumber", "Call the plumber"),
        ("water the plants", "Water the plants"),
        ("create", "Create"),
    ],
)
def test_fallback_title(utterance, title) -> None:
    assert fallback_title(utterance) == title


def test_fallback_title_truncated() -> None:
    assert len(fallback_title("add " + "x" * 300)) == 100


def test_fallback_arguments() -> None:
    assert fallback_task_arguments("add buy milk") == {"title": "Buy milk", "priority": "medium"}


async def test_parse_task_from_model_json() -> None:
    raw = '{"title": "Finish the report", "dueDate": "2025-03-07", "priority": "high"}'
    with patch("src.llm.client.complete_text", AsyncMock(return_value=raw)) as complete:
        task = await parse_task(
            "Create a task to finish the report by Friday",
            goals=[{"id": "g1", "title": "Get promoted"}],
        )

    assert task.title == "Finish the report"
    assert task.due_date == "2025-03-07"
    assert task.priority == "high"
    assert "g1: Get promoted" in complete.call_args.kwargs["system"]


async def test_parse_task_strips_code_fence() -> None:
    raw = '```json\n{"title": "Call mom", "subtasks": ["find number"]}\n```'
    with patch("src.llm.client.complete_text", AsyncMock(return_value=raw)):
        task = await parse_task("call mom")

    assert task.title == "Call mom"
    assert task.subtasks == ["find number"]


async def test_parse_task_invalid_priority_becomes_medium() -> None:
    raw = '{"title": "x", "priority": "urgent"}'
    with patch("src.llm.client.complete_text", AsyncMock(return_value=raw)):
        task = await parse_task("x")
    assert task.priority == "medium"


@pytest.mark.parametrize("raw", ["Sure! Here is your task.", "[]", '{"priority": "low"}'])
async def test_parse_task_malformed_uses_fallback(raw) -> None:
    with patch("src.llm.client.complete_text", AsyncMock(return_value=raw)):
        task = await parse_task("Create a task to finish the report")

    assert task.title == "Finish the report"
    assert task.priority == "medium"
    assert task.due_date is None


async def test_parse_task_without_provider(monkeypatch) -> None:
    monkeypatch.setattr("src.config.settings.openai_api_key", "")
    with patch("src.llm.client.complete_text", AsyncMock()) as complete:
        task = await parse_task("add buy milk")

    complete.assert_not_called()
    assert task.title == "Buy milk"
