"""Lazily-initialised provider SDK clients.

OpenAI-compatible clients are cached per base URL so chat/STT (e.g. Groq)
and speech/embeddings (OpenAI) can point at different hosts.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from src.config import settings

if TYPE_CHECKING:
    from anthropic import AsyncAnthropic
    from openai import AsyncOpenAI

logger = logging.getLogger(__name__)

_openai_clients: dict[str, AsyncOpenAI] = {}
_anthropic_client: AsyncAnthropic | None = None


def _api_key_for(url: str) -> str:
    """Pick the key that belongs to *url*'s host.

    The chat key only reaches the platform host when chat itself points there.
    """
    if url != settings.openai_platform_base_url:
        return settings.openai_api_key
    if url == settings.openai_base_url:
        return settings.openai_platform_api_key or settings.openai_api_key
    return settings.openai_platform_api_key


def get_openai_client(base_url: str | None = None) -> AsyncOpenAI:
    """Return a shared AsyncOpenAI client for *base_url*."""
    from openai import AsyncOpenAI

    url = base_url or settings.openai_base_url
    if url not in _openai_clients:
        _openai_clients[url] = AsyncOpenAI(api_key=_api_key_for(url), base_url=url)
        logger.debug("Created OpenAI-compatible client for %s", url)
    return _openai_clients[url]


def get_anthropic_client() -> AsyncAnthropic:
    """Return the shared AsyncAnthropic client."""
    global _anthropic_client  # noqa: PLW0603
    if _anthropic_client is None:
        from anthropic import AsyncAnthropic

        _anthropic_client = AsyncAnthropic(api_key=settings.anthropic_api_key)
    return _anthropic_client
