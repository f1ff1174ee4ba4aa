"""Speech-to-text.

Two strategies, selected by ``TRANSCRIBER_STRATEGY``:
- ``single_shot`` (default): one Whisper request through the
  OpenAI-compatible API, returning text and segments together.
- ``upload_and_poll``: upload the audio to AssemblyAI, create a
  transcript job and poll it until it completes, errors, or the
  attempt limit is reached.

Empty or silent audio short-circuits to an empty transcript without a
provider call.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx
import openai

from src.config import settings
from src.errors import TranscriptionFailed, TranscriptionTimeout
from src.integrations.clients import get_openai_client
from src.voice.audio import AudioBlob, decode_wav, rms

logger = logging.getLogger(__name__)


@dataclass
class Segment:
    text: str
    start: float
    end: float
    confidence: float | None = None


@dataclass
class Transcript:
    """Text recognised from one utterance. Empty text means nothing was heard."""

    text: str = ""
    segments: list[Segment] = field(default_factory=list)
    duration_seconds: float | None = None
    language: str | None = None

    @property
    def empty(self) -> bool:
        return not self.text.strip()

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "segments": [
                {"text": s.text, "start": s.start, "end": s.end, "confidence": s.confidence}
                for s in self.segments
            ],
            "duration": self.duration_seconds,
            "language": self.language,
        }


def is_silent(blob: AudioBlob, threshold: float | None = None) -> bool:
    """True for empty audio or a WAV whose energy is below *threshold*.

    Non-WAV containers cannot be inspected locally and are never
    considered silent.
    """
    if blob.empty:
        return True
    samples = decode_wav(blob.data)
    if samples is None:
        return False
    threshold = settings.silence_rms_threshold if threshold is None else threshold
    return rms(samples) < threshold


class Transcriber:
    """Base class: silence handling around a provider-specific call."""

    async def transcribe(self, blob: AudioBlob, language: str = "en") -> Transcript:
        """Transcribe *blob*.

        Raises ``TranscriptionFailed`` (or ``TranscriptionTimeout``) when
        the provider cannot produce a result.
        """
        if is_silent(blob):
            logger.info("Audio is empty or silent, skipping transcription")
            return Transcript(language=language)

        transcript = await self._transcribe(blob, language)
        transcript.text = transcript.text.strip()
        logger.info("Transcribed %d chars: %s", len(transcript.text), transcript.text[:80])
        return transcript

    async def _transcribe(self, blob: AudioBlob, language: str) -> Transcript:
        raise NotImplementedError


class SingleShotTranscriber(Transcriber):
    """Whisper over the OpenAI-compatible audio endpoint."""

    def __init__(self, model: str | None = None) -> None:
        self.model = model or settings.whisper_model

    async def _transcribe(self, blob: AudioBlob, language: str) -> Transcript:
        try:
            response = await get_openai_client().audio.transcriptions.create(
                model=self.model,
                file=(blob.filename, blob.data, blob.mime_type),
                language=language,
                response_format="verbose_json",
                timeout=settings.chat_timeout_seconds,
            )
        except openai.OpenAIError as exc:
            logger.exception("Whisper transcription failed")
            msg = f"Transcription failed: {exc}"
            raise TranscriptionFailed(msg) from exc

        segments = [
            Segment(text=s.text.strip(), start=float(s.start), end=float(s.end))
            for s in (getattr(response, "segments", None) or [])
        ]
        return Transcript(
            text=response.text or "",
            segments=segments,
            duration_seconds=getattr(response, "duration", None),
            language=getattr(response, "language", None) or language,
        )


class UploadAndPollTranscriber(Transcriber):
    """AssemblyAI: upload, create a transcript job, poll until done."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        poll_interval: float | None = None,
        max_attempts: int | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.assemblyai_api_key
        self.base_url = (base_url or settings.assemblyai_base_url).rstrip("/")
        self.poll_interval = (
            settings.transcription_poll_interval_seconds if poll_interval is None else poll_interval
        )
        self.max_attempts = max_attempts or settings.transcription_max_attempts

    async def _transcribe(self, blob: AudioBlob, language: str) -> Transcript:
        if not self.api_key:
            msg = "AssemblyAI API key is not configured"
            raise TranscriptionFailed(msg)

        headers = {"authorization": self.api_key}
        try:
            async with httpx.AsyncClient(timeout=30) as client:
                upload = await client.post(
                    f"{self.base_url}/upload",
                    headers={**headers, "content-type": "application/octet-stream"},
                    content=blob.data,
                )
                _check(upload, "Upload")
                audio_url = upload.json()["upload_url"]

                created = await client.post(
                    f"{self.base_url}/transcript",
                    headers=headers,
                    json={"audio_url": audio_url, "language_code": language},
                )
                _check(created, "Transcript request")
                transcript_id = created.json()["id"]

                result = await self._poll(client, headers, transcript_id)
        except httpx.HTTPError as exc:
            logger.exception("AssemblyAI request failed")
            msg = f"Transcription request failed: {exc}"
            raise TranscriptionFailed(msg) from exc
        except (KeyError, ValueError) as exc:
            msg = f"Unexpected transcription response: {exc}"
            raise TranscriptionFailed(msg) from exc

        segments = [
            Segment(
                text=w["text"],
                start=w["start"] / 1000,
                end=w["end"] / 1000,
                confidence=w.get("confidence"),
            )
            for w in result.get("words") or []
        ]
        return Transcript(
            text=result.get("text") or "",
            segments=segments,
            duration_seconds=result.get("audio_duration"),
            language=result.get("language_code") or language,
        )

    async def _poll(
        self, client: httpx.AsyncClient, headers: dict[str, str], transcript_id: str
    ) -> dict[str, Any]:
        url = f"{self.base_url}/transcript/{transcript_id}"
        for attempt in range(1, self.max_attempts + 1):
            await asyncio.sleep(self.poll_interval)
            resp = await client.get(url, headers=headers)
            _check(resp, "Polling")
            result = resp.json()
            status = result.get("status")
            if status == "completed":
                logger.debug("Transcript %s completed after %d polls", transcript_id, attempt)
                return result
            if status == "error":
                msg = f"Transcription failed: {result.get('error', 'unknown error')}"
                raise TranscriptionFailed(msg)

        msg = f"Transcription timeout after {self.max_attempts} attempts"
        raise TranscriptionTimeout(msg)


def _check(resp: httpx.Response, what: str) -> None:
    if resp.status_code != 200:
        logger.error("%s failed: %d %s", what, resp.status_code, resp.text[:200])
        msg = f"{what} failed with status {resp.status_code}"
        raise TranscriptionFailed(msg)


def make_transcriber(strategy: str | None = None) -> Transcriber:
    """Build the configured transcriber."""
    strategy = strategy or settings.transcriber_strategy
    if strategy == "upload_and_poll":
        return UploadAndPollTranscriber()
    if strategy == "single_shot":
        return SingleShotTranscriber()
    msg = f"Unknown transcriber strategy: {strategy}"
    raise ValueError(msg)
