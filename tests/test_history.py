"""Tests for conversation history."""

from src.llm.history import ConversationHistory, Message


def test_exchange_and_format() -> None:
    history = ConversationHistory()
    history.add_exchange("hello", "hi there")

    assert history.to_api_messages() == [
        {"role": "user", "content": "hello"},
        {"role": "assistant", "content": "hi there"},
    ]


def test_window_drops_oldest() -> None:
    history = ConversationHistory(window_size=4)
    for i in range(10):
        history.add("user", f"msg {i}")

    assert len(history) == 4
    assert history.messages[0] == Message("user", "msg 6")


def test_empty_content_skipped() -> None:
    history = ConversationHistory()
    history.add("assistant", "")
    assert history.messages == []


def test_clear() -> None:
    history = ConversationHistory()
    history.add_exchange("a", "b")
    assert history.clear() == 2
    assert len(history) == 0


def test_default_window_from_settings(monkeypatch) -> None:
    monkeypatch.setattr("src.config.settings.conversation_window_size", 6)
    assert ConversationHistory().window_size == 6
