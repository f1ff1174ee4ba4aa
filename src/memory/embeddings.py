"""Text embedding providers.

Two backends, selected by ``EMBEDDING_PROVIDER``:
- ``huggingface`` (default): the hosted feature-extraction pipeline for
  ``sentence-transformers/all-MiniLM-L6-v2``.
- ``openai``: the OpenAI embeddings endpoint.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
import openai

from src.config import settings
from src.errors import EmbeddingUnavailable
from src.integrations.clients import get_openai_client

logger = logging.getLogger(__name__)


def _flatten(raw: Any) -> list[float]:
    """Hugging Face may wrap the vector in an extra list."""
    if isinstance(raw, list) and raw and isinstance(raw[0], list):
        raw = raw[0]
    if not isinstance(raw, list) or not raw:
        msg = "Embedding response is not a non-empty list"
        raise EmbeddingUnavailable(msg)
    try:
        return [float(x) for x in raw]
    except (TypeError, ValueError) as exc:
        msg = "Embedding response contains non-numeric values"
        raise EmbeddingUnavailable(msg) from exc


class Embedder:
    """Turns text into a fixed-length vector."""

    def __init__(self, provider: str | None = None) -> None:
        self.provider = provider or settings.embedding_provider

    async def embed(self, text: str) -> list[float]:
        """Embed *text*. Raises ``EmbeddingUnavailable`` on any provider failure."""
        if not text.strip():
            msg = "Text content is required"
            raise EmbeddingUnavailable(msg)

        if self.provider == "openai":
            vector = await self._embed_openai(text)
        else:
            vector = await self._embed_huggingface(text)
        logger.debug("Generated embedding with length %d for: %s", len(vector), text[:60])
        return vector

    async def _embed_huggingface(self, text: str) -> list[float]:
        headers = {"Content-Type": "application/json"}
        if settings.huggingface_api_key:
            headers["Authorization"] = f"Bearer {settings.huggingface_api_key}"
        payload = {"inputs": text, "options": {"wait_for_model": True}}

        try:
            async with httpx.AsyncClient(timeout=settings.embedding_timeout_seconds) as client:
                resp = await client.post(
                    settings.huggingface_embedding_url, headers=headers, json=payload
                )
        except httpx.HTTPError as exc:
            logger.exception("Embedding request failed")
            msg = f"Embedding request failed: {exc}"
            raise EmbeddingUnavailable(msg) from exc

        if resp.status_code != 200:
            logger.error("Hugging Face API error: %d %s", resp.status_code, resp.text[:200])
            msg = f"Embedding generation failed with status {resp.status_code}"
            raise EmbeddingUnavailable(msg)

        try:
            body = resp.json()
        except ValueError as exc:
            logger.error("Hugging Face returned non-JSON body: %s", resp.text[:200])
            msg = "Embedding response is not valid JSON"
            raise EmbeddingUnavailable(msg) from exc
        return _flatten(body)

    async def _embed_openai(self, text: str) -> list[float]:
        client = get_openai_client(settings.openai_platform_base_url)
        try:
            response = await client.embeddings.create(
                model=settings.openai_embedding_model,
                input=text,
                timeout=settings.embedding_timeout_seconds,
            )
        except openai.OpenAIError as exc:
            logger.exception("OpenAI embedding request failed")
            msg = f"Embedding request failed: {exc}"
            raise EmbeddingUnavailable(msg) from exc

        return _flatten(list(response.data[0].embedding))
