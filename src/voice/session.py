"""Voice sessions, one per user, each running turns through the pipeline.

A turn is strictly sequential::

    Idle -> Capturing -> Transcribing -> Retrieving -> Interpreting
         -> (Dispatching) -> Synthesizing -> Speaking -> Idle

Any failure moves the session to Error and then back to Idle. Only one
turn runs at a time per session; a second request while a turn is in
flight raises ``TurnInProgress``. Progress is published on
``VoiceSession.events`` for streaming consumers.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from src.config import settings
from src.errors import (
    ActionFailed,
    DeviceUnavailable,
    EmbeddingDimensionMismatch,
    EmbeddingUnavailable,
    InterpreterUnavailable,
    SynthesisUnavailable,
    TextTooLong,
    ToolValidationError,
    TranscriptionFailed,
    TurnInProgress,
    Unauthenticated,
)
from src.llm.history import ConversationHistory
from src.memory.retriever import RAGContext
from src.store.models import ConversationMessage

if TYPE_CHECKING:
    from collections.abc import Coroutine

    from src.tools.dispatch import ActionResult
    from src.voice.audio import AudioBlob
    from src.voice.capture import AudioCapture
    from src.voice.pipeline import VoicePipeline
    from src.voice.playback import AudioPlayer

logger = logging.getLogger(__name__)

NO_SPEECH_REPLY = "I didn't catch that. Could you say it again?"
ACTION_FAILED_NOTICE = "Note: I couldn't complete the requested action."
TOO_LONG_NOTICE = "The reply was too long to read aloud, so it's shown as text only."
CANCELLED_ERROR = "Turn cancelled"
MAX_QUEUED_EVENTS = 100


class TurnState(StrEnum):
    IDLE = "idle"
    CAPTURING = "capturing"
    TRANSCRIBING = "transcribing"
    RETRIEVING = "retrieving"
    INTERPRETING = "interpreting"
    DISPATCHING = "dispatching"
    SYNTHESIZING = "synthesizing"
    SPEAKING = "speaking"
    ERROR = "error"


@dataclass
class TurnEvent:
    """Something that happened during a turn (state change, transcript, ...)."""

    kind: str
    state: TurnState
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class TurnResult:
    transcript: str = ""
    reply: str = ""
    action: ActionResult | None = None
    audio: AudioBlob | None = None
    error: str | None = None
    notices: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "transcript": self.transcript,
            "response": self.reply,
            "action": self.action.to_dict() if self.action else None,
            "error": self.error,
            "notices": self.notices,
        }
        if self.audio is not None:
            data["audioData"] = self.audio.to_base64()
        return data


class VoiceSession:
    """Per-user turn state machine.

    *player* is optional: without one, synthesized audio is returned in
    the ``TurnResult`` instead of played. With ``speak=False`` no
    synthesis happens at all.
    """

    def __init__(
        self,
        user_id: str,
        pipeline: VoicePipeline,
        player: AudioPlayer | None = None,
        history: ConversationHistory | None = None,
        speak: bool = True,
    ) -> None:
        self.user_id = user_id
        self.pipeline = pipeline
        self.player = player
        self.history = history if history is not None else ConversationHistory()
        self.speak = speak
        self.state = TurnState.IDLE
        self.events: asyncio.Queue[TurnEvent] = asyncio.Queue(maxsize=MAX_QUEUED_EVENTS)
        self._turn: asyncio.Task | None = None

    @property
    def processing(self) -> bool:
        return self._turn is not None and not self._turn.done()

    # -- Entry points ------------------------------------------------------------

    async def listen(
        self, capture: AudioCapture, language: str = "en", max_seconds: float = 30.0
    ) -> TurnResult:
        """Record one utterance from the microphone and run a turn on it."""
        return await self._start(
            self._run(capture=capture, language=language, max_seconds=max_seconds)
        )

    async def process_audio(self, blob: AudioBlob, language: str = "en") -> TurnResult:
        return await self._start(self._run(blob=blob, language=language))

    async def process_text(self, text: str) -> TurnResult:
        """Run a turn on already-transcribed text (no note is auto-saved)."""
        return await self._start(self._run(text=text))

    def cancel(self) -> bool:
        """Abort the running turn. Returns False if nothing was running."""
        if not self.processing:
            return False
        logger.info("Cancelling turn for user %s in state %s", self.user_id, self.state)
        self._turn.cancel()
        return True

    # -- Turn --------------------------------------------------------------------

    async def _start(self, coro: Coroutine[Any, Any, TurnResult]) -> TurnResult:
        if not self.user_id:
            coro.close()
            raise Unauthenticated("A voice turn requires an authenticated user")
        if self.processing:
            coro.close()
            raise TurnInProgress(f"Turn already in progress ({self.state})")

        task = asyncio.create_task(coro)
        self._turn = task
        try:
            return await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if task.cancelled() and not (current and current.cancelling()):
                return TurnResult(error=CANCELLED_ERROR)
            raise
        finally:
            self._turn = None

    async def _run(
        self,
        *,
        text: str | None = None,
        blob: AudioBlob | None = None,
        capture: AudioCapture | None = None,
        language: str = "en",
        max_seconds: float = 30.0,
    ) -> TurnResult:
        result = TurnResult()
        try:
            if capture is not None:
                if self.player is not None:
                    await self.player.stop()
                self._set_state(TurnState.CAPTURING)
                try:
                    blob = await capture.record_utterance(max_seconds)
                except DeviceUnavailable as exc:
                    return self._fail(result, exc)

            if blob is not None:
                self._set_state(TurnState.TRANSCRIBING)
                try:
                    transcript = await self.pipeline.transcriber.transcribe(blob, language)
                except TranscriptionFailed as exc:
                    return self._fail(result, exc)
                text = transcript.text

            text = (text or "").strip()
            result.transcript = text
            self._emit("transcript", text=text)

            if not text:
                result.reply = NO_SPEECH_REPLY
                self._emit("reply", text=result.reply)
                await self._synthesize(result)
                return result

            self._set_state(TurnState.RETRIEVING)
            memory = await self._retrieve(text)

            self._set_state(TurnState.INTERPRETING)
            try:
                interpretation = await self.pipeline.interpreter.interpret(
                    text, memory, self.history.to_api_messages()
                )
            except InterpreterUnavailable as exc:
                result.reply = exc.user_message
                return self._fail(result, exc)

            result.reply = interpretation.reply_text.strip()
            if interpretation.tool_call is not None:
                self._set_state(TurnState.DISPATCHING)
                try:
                    result.action = await self.pipeline.dispatcher.dispatch(
                        interpretation.tool_call, self.user_id
                    )
                except (ActionFailed, ToolValidationError) as exc:
                    logger.warning("Action failed for user %s: %s", self.user_id, exc)
                    result.notices.append(ACTION_FAILED_NOTICE)
                    self._emit("error", error=str(exc))
                if result.action is not None:
                    self._emit("action", action=result.action.to_dict())

            if not result.reply:
                result.reply = (
                    result.action.acknowledgement()
                    if result.action
                    else "I processed your request."
                )
            self._emit("reply", text=result.reply)

            self.history.add_exchange(text, result.reply)
            await self._log_conversation(text, result.reply, interpretation.category)
            if blob is not None:
                await self._remember(text)

            await self._synthesize(result)
            return result
        except asyncio.CancelledError:
            logger.info("Turn for user %s aborted in state %s", self.user_id, self.state)
            self._set_state(TurnState.ERROR)
            raise
        finally:
            self._set_state(TurnState.IDLE)

    # -- Steps -------------------------------------------------------------------

    async def _retrieve(self, text: str) -> RAGContext:
        try:
            return await self.pipeline.retriever.search(self.user_id, text)
        except (EmbeddingUnavailable, EmbeddingDimensionMismatch) as exc:
            logger.warning("Memory retrieval unavailable, continuing without: %s", exc)
            return RAGContext(query=text)

    async def _synthesize(self, result: TurnResult) -> None:
        if not self.speak:
            return
        self._set_state(TurnState.SYNTHESIZING)
        try:
            audio = await self.pipeline.synthesizer.synthesize(result.reply)
        except TextTooLong as exc:
            logger.info("Skipping speech: %s", exc)
            result.notices.append(TOO_LONG_NOTICE)
            return
        except SynthesisUnavailable as exc:
            logger.warning("Speech synthesis unavailable: %s", exc)
            result.notices.append(exc.user_message)
            return

        result.audio = audio
        if self.player is not None:
            self._set_state(TurnState.SPEAKING)
            await self.player.play(audio)

    async def _log_conversation(self, user_text: str, reply: str, category: str | None) -> None:
        store = self.pipeline.store
        try:
            await store.add_message(
                ConversationMessage(user_id=self.user_id, role="user", content=user_text)
            )
            await store.add_message(
                ConversationMessage(
                    user_id=self.user_id, role="assistant", content=reply, category=category
                )
            )
        except Exception:
            logger.exception("Failed to log conversation for user %s", self.user_id)

    async def _remember(self, text: str) -> None:
        """Keep substantial utterances as notes for later retrieval."""
        if len(text) <= settings.note_min_length:
            return
        try:
            await self.pipeline.retriever.save_note(self.user_id, text, source="voice_input")
        except EmbeddingUnavailable as exc:
            logger.warning("Skipping note, embedding unavailable: %s", exc)
        except Exception:
            logger.exception("Failed to save voice note for user %s", self.user_id)

    # -- Events ------------------------------------------------------------------

    def _fail(self, result: TurnResult, exc: Exception) -> TurnResult:
        logger.warning("Turn for user %s failed in state %s: %s", self.user_id, self.state, exc)
        result.error = getattr(exc, "user_message", str(exc))
        self._set_state(TurnState.ERROR)
        self._emit("error", error=str(exc))
        return result

    def _set_state(self, state: TurnState) -> None:
        if state == self.state:
            return
        self.state = state
        self._emit("state")

    def _emit(self, kind: str, **data: Any) -> None:
        if self.events.full():
            self.events.get_nowait()
        self.events.put_nowait(TurnEvent(kind=kind, state=self.state, data=data))


class SessionManager:
    """Holds one VoiceSession per user."""

    def __init__(self, pipeline: VoicePipeline, speak: bool = True) -> None:
        self.pipeline = pipeline
        self.speak = speak
        self._sessions: dict[str, VoiceSession] = {}

    def get(self, user_id: str) -> VoiceSession:
        if user_id not in self._sessions:
            self._sessions[user_id] = VoiceSession(user_id, self.pipeline, speak=self.speak)
        return self._sessions[user_id]

    def clear(self, user_id: str) -> int:
        """Reset a user's conversation. Returns the number of messages dropped."""
        session = self._sessions.get(user_id)
        return session.history.clear() if session else 0
