"""Shared test fixtures."""

import re
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.memory.retriever import MemoryRetriever
from src.store.store import DataStore
from src.tools import registry
from src.tools.dispatch import ActionDispatcher
from src.voice.pipeline import VoicePipeline

# Each concept is one embedding dimension.
_CONCEPTS = (
    ("hiking", "mountains", "mountain", "outdoor", "outdoors", "activities", "trail", "camping"),
    ("food", "pasta", "pizza", "eat", "cooking", "dinner", "favorite"),
    ("report", "work", "meeting", "deadline", "task", "finish"),
    ("focus", "session", "timer", "pomodoro", "minute"),
)


class FakeEmbedder:
    """Deterministic keyword-concept embedder."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        words = re.findall(r"[a-z]+", text.lower())
        vector = [float(sum(w in concept for w in words)) for concept in _CONCEPTS]
        vector.append(0.1)
        return vector


@pytest.fixture(autouse=False)
def _no_turso(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure tests use local file, not remote Turso."""
    monkeypatch.setattr("src.config.settings.turso_database_url", "")


@pytest.fixture
def store(tmp_path, _no_turso) -> DataStore:
    """DataStore backed by a temporary libsql file."""
    return DataStore(db_path=tmp_path / "test.db")


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def retriever(store: DataStore, embedder: FakeEmbedder) -> MemoryRetriever:
    return MemoryRetriever(store, embedder, top_k=3, threshold=0.3)


@pytest.fixture
def pipeline(store: DataStore, retriever: MemoryRetriever) -> VoicePipeline:
    """Real store, retriever and dispatcher; mocked providers."""
    synthesizer = MagicMock()
    synthesizer.synthesize = AsyncMock()
    return VoicePipeline(
        store=store,
        transcriber=AsyncMock(),
        retriever=retriever,
        interpreter=AsyncMock(),
        dispatcher=ActionDispatcher(store, retriever, registry),
        synthesizer=synthesizer,
    )
