"""Retrieval over a user's saved voice notes.

Embeds the query, scores it against every stored note of the requesting
user by cosine similarity, drops everything under the threshold and
returns the best ``top_k`` in descending order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import numpy as np

from src.config import settings
from src.errors import EmbeddingDimensionMismatch
from src.store.models import VoiceNote

if TYPE_CHECKING:
    from collections.abc import Sequence

    from src.memory.embeddings import Embedder
    from src.store.store import DataStore

logger = logging.getLogger(__name__)


@dataclass
class RAGMatch:
    note: VoiceNote
    similarity: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.note.id,
            "content": self.note.content,
            "summary": self.note.summary,
            "similarity": self.similarity,
            "created_at": self.note.created_at,
        }


@dataclass
class RAGContext:
    """Memory retrieved for a single query. Not persisted."""

    query: str
    matches: list[RAGMatch] = field(default_factory=list)
    threshold: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "context": [m.to_dict() for m in self.matches],
            "query": self.query,
            "total_matches": len(self.matches),
        }


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two equal-length vectors.

    Raises ``EmbeddingDimensionMismatch`` rather than truncating. A zero
    vector has similarity 0 with everything.
    """
    if len(a) != len(b):
        raise EmbeddingDimensionMismatch(expected=len(a), actual=len(b))
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return float(np.dot(va, vb) / denom)


def rank_notes(
    query_embedding: Sequence[float],
    notes: Sequence[VoiceNote],
    top_k: int,
    threshold: float,
) -> list[RAGMatch]:
    """Score, filter and order *notes* against *query_embedding*."""
    matches = []
    for note in notes:
        score = cosine_similarity(query_embedding, note.embedding)
        if score >= threshold:
            matches.append(RAGMatch(note=note, similarity=score))
    matches.sort(key=lambda m: m.similarity, reverse=True)
    return matches[: max(top_k, 0)]


class MemoryRetriever:
    """Embeds, stores and searches a user's voice notes."""

    def __init__(
        self,
        store: DataStore,
        embedder: Embedder,
        top_k: int | None = None,
        threshold: float | None = None,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self.top_k = settings.rag_top_k if top_k is None else top_k
        self.threshold = settings.rag_match_threshold if threshold is None else threshold

    async def embed(self, text: str) -> list[float]:
        return await self._embedder.embed(text)

    async def search(
        self,
        user_id: str,
        query: str,
        top_k: int | None = None,
        threshold: float | None = None,
    ) -> RAGContext:
        """Return the user's notes most similar to *query*.

        Only *user_id*'s notes are considered.
        """
        top_k = self.top_k if top_k is None else top_k
        threshold = self.threshold if threshold is None else threshold

        query_embedding = await self.embed(query)
        notes = await self._store.list_voice_notes(user_id)
        matches = rank_notes(query_embedding, notes, top_k, threshold)
        logger.info(
            "Memory search for user %s: %d/%d notes matched (threshold=%.2f)",
            user_id,
            len(matches),
            len(notes),
            threshold,
        )
        return RAGContext(query=query, matches=matches, threshold=threshold)

    async def save_note(
        self,
        user_id: str,
        content: str,
        summary: str | None = None,
        category: str | None = None,
        source: str = "voice_input",
    ) -> VoiceNote:
        """Embed *content* once and persist it as a VoiceNote."""
        embedding = await self.embed(content)
        note = VoiceNote(
            user_id=user_id,
            content=content,
            summary=summary,
            category=category,
            source=source,
            embedding=embedding,
        )
        return await self._store.add_voice_note(note)
