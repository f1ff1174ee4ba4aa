"""Text-to-speech.

``TTS_PROVIDER=elevenlabs`` (default) calls the ElevenLabs REST API;
``openai`` uses the OpenAI-compatible speech endpoint. Both return mp3.
"""

from __future__ import annotations

import logging

import httpx
import openai

from src.config import settings
from src.errors import SynthesisUnavailable, TextTooLong
from src.integrations.clients import get_openai_client
from src.voice.audio import AudioBlob

logger = logging.getLogger(__name__)

OPENAI_DEFAULT_VOICE = "alloy"


class SpeechSynthesizer:
    """Turns reply text into playable audio."""

    def __init__(self, provider: str | None = None, max_characters: int | None = None) -> None:
        self.provider = provider or settings.tts_provider
        self.max_characters = max_characters or settings.tts_max_characters

    async def synthesize(self, text: str, voice_id: str | None = None) -> AudioBlob:
        """Synthesize *text*.

        Raises ``TextTooLong`` above the character limit (never truncates),
        ``SynthesisUnavailable`` on provider failure and ``ValueError`` for
        blank text.
        """
        if not text.strip():
            msg = "Text is required"
            raise ValueError(msg)
        if len(text) > self.max_characters:
            raise TextTooLong(len(text), self.max_characters)

        if self.provider == "openai":
            data = await self._synthesize_openai(text, voice_id)
        else:
            data = await self._synthesize_elevenlabs(text, voice_id)
        logger.info("Synthesized %d chars into %d bytes", len(text), len(data))
        return AudioBlob(data=data, mime_type="audio/mpeg")

    async def _synthesize_elevenlabs(self, text: str, voice_id: str | None) -> bytes:
        if not settings.elevenlabs_api_key:
            msg = "ElevenLabs API key is not configured"
            raise SynthesisUnavailable(msg)

        voice = voice_id or settings.default_voice_id
        url = f"{settings.elevenlabs_base_url.rstrip('/')}/text-to-speech/{voice}"
        headers = {
            "Accept": "audio/mpeg",
            "Content-Type": "application/json",
            "xi-api-key": settings.elevenlabs_api_key,
        }
        payload = {
            "text": text,
            "model_id": settings.elevenlabs_model,
            "voice_settings": {"stability": 0.5, "similarity_boost": 0.5},
        }

        try:
            async with httpx.AsyncClient(timeout=settings.tts_timeout_seconds) as client:
                resp = await client.post(url, headers=headers, json=payload)
        except httpx.HTTPError as exc:
            logger.exception("ElevenLabs request failed")
            msg = f"Speech synthesis failed: {exc}"
            raise SynthesisUnavailable(msg) from exc

        if resp.status_code != 200:
            logger.error("ElevenLabs API error: %d %s", resp.status_code, resp.text[:200])
            msg = f"Speech synthesis failed with status {resp.status_code}"
            raise SynthesisUnavailable(msg)
        return resp.content

    async def _synthesize_openai(self, text: str, voice_id: str | None) -> bytes:
        client = get_openai_client(settings.openai_platform_base_url)
        try:
            response = await client.audio.speech.create(
                model=settings.openai_tts_model,
                voice=voice_id or OPENAI_DEFAULT_VOICE,
                input=text,
                response_format="mp3",
                timeout=settings.tts_timeout_seconds,
            )
        except openai.OpenAIError as exc:
            logger.exception("OpenAI speech request failed")
            msg = f"Speech synthesis failed: {exc}"
            raise SynthesisUnavailable(msg) from exc
        return response.content
