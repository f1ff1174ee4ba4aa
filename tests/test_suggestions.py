"""Tests for task suggestions and text cleanup."""

from unittest.mock import AsyncMock, patch

import pytest

from src.errors import EmbeddingUnavailable, InterpreterUnavailable
from src.llm.cleanup import build_cleanup_prompt, clean_up_text
from src.llm.suggestions import fallback_suggestions, suggest_for_task


@pytest.fixture(autouse=True)
def _chat_enabled(monkeypatch) -> None:
    monkeypatch.setattr("src.config.settings.openai_api_key", "sk-test")


async def test_suggestions_without_chat_provider(retriever, embedder, monkeypatch) -> None:
    monkeypatch.setattr("src.config.settings.openai_api_key", "")

    with patch("src.llm.client.complete_text", AsyncMock()) as complete:
        suggestions = await suggest_for_task("alice", "Call mom", retriever)

    complete.assert_not_awaited()
    assert embedder.calls == []
    assert suggestions == fallback_suggestions("Call mom")


async def test_suggestions_survive_memory_outage(retriever) -> None:
    retriever.search = AsyncMock(side_effect=EmbeddingUnavailable("down"))
    raw = '```json\n{"subtasks": ["Dial"], "estimatedDuration": 5, "tips": []}\n```'

    with patch("src.llm.client.complete_text", AsyncMock(return_value=raw)) as complete:
        suggestions = await suggest_for_task("alice", "Call mom", retriever)

    assert suggestions.subtasks == ["Dial"]
    assert suggestions.estimated_duration == 5
    assert "Relevant past notes" not in complete.call_args.kwargs["system"]


async def test_suggestions_invalid_priority_uses_fallback(retriever) -> None:
    raw = '{"subtasks": ["Dial"], "priority": "urgent"}'
    with patch("src.llm.client.complete_text", AsyncMock(return_value=raw)):
        suggestions = await suggest_for_task("alice", "Call mom", retriever)

    assert suggestions == fallback_suggestions("Call mom")


def test_cleanup_prompt() -> None:
    prompt = build_cleanup_prompt("note", "casual", "Keep it under 50 words")
    assert "bullet points" in prompt
    assert "conversational tone" in prompt
    assert prompt.endswith("Additional instructions: Keep it under 50 words")

    with pytest.raises(ValueError, match="Unknown style"):
        build_cleanup_prompt("note", "shouty")


async def test_cleanup_empty_answer() -> None:
    with (
        patch("src.llm.client.complete_text", AsyncMock(return_value="  ")),
        pytest.raises(InterpreterUnavailable),
    ):
        await clean_up_text("hello", "summary")
