"""Recent turns of a voice session, replayed to the interpreter."""

from __future__ import annotations

from collections import deque
from typing import NamedTuple

from src.config import settings


class Message(NamedTuple):
    role: str
    content: str


class ConversationHistory:
    """Bounded window of messages; the oldest fall off first.

    Lives only as long as its VoiceSession. The persistent log is in the
    data store.
    """

    def __init__(self, window_size: int | None = None) -> None:
        size = window_size or settings.conversation_window_size
        self._messages: deque[Message] = deque(maxlen=size)

    @property
    def window_size(self) -> int:
        return self._messages.maxlen

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def add(self, role: str, content: str) -> None:
        if content:
            self._messages.append(Message(role, content))

    def add_exchange(self, user_text: str, reply: str) -> None:
        """Record one completed turn."""
        self.add("user", user_text)
        self.add("assistant", reply)

    def clear(self) -> int:
        """Forget everything. Returns how many messages were dropped."""
        count = len(self._messages)
        self._messages.clear()
        return count

    def to_api_messages(self) -> list[dict[str, str]]:
        return [{"role": m.role, "content": m.content} for m in self._messages]
