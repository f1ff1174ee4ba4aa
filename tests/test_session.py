"""Tests for the per-user voice turn state machine."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import numpy as np
import pytest

from src.errors import (
    DeviceUnavailable,
    EmbeddingUnavailable,
    InterpreterUnavailable,
    SynthesisUnavailable,
    TextTooLong,
    TranscriptionFailed,
    TurnInProgress,
    Unauthenticated,
)
from src.llm.client import Interpretation
from src.memory.retriever import RAGContext
from src.tools.dispatch import ToolCall
from src.voice.audio import AudioBlob, encode_wav
from src.voice.session import (
    ACTION_FAILED_NOTICE,
    CANCELLED_ERROR,
    MAX_QUEUED_EVENTS,
    NO_SPEECH_REPLY,
    TOO_LONG_NOTICE,
    SessionManager,
    TurnResult,
    TurnState,
    VoiceSession,
)
from src.voice.transcriber import Transcript, UploadAndPollTranscriber

SPEECH = AudioBlob(data=b"RIFF-not-really", mime_type="audio/webm")
REPLY_AUDIO = AudioBlob(data=b"ID3-reply", mime_type="audio/mpeg")


@pytest.fixture
def session(pipeline) -> VoiceSession:
    pipeline.synthesizer.synthesize.return_value = REPLY_AUDIO
    pipeline.interpreter.interpret.return_value = Interpretation(reply_text="Okay.")
    return VoiceSession("alice", pipeline)


def _drain(session: VoiceSession) -> list:
    events = []
    while not session.events.empty():
        events.append(session.events.get_nowait())
    return events


def _interpret_as(pipeline, reply: str, name: str | None = None, **arguments) -> None:
    call = ToolCall(name=name, arguments=arguments) if name else None
    pipeline.interpreter.interpret.return_value = Interpretation(reply_text=reply, tool_call=call)


# -- End-to-end scenarios ----------------------------------------------------


async def test_create_task_from_text(session, pipeline, store) -> None:
    _interpret_as(
        pipeline,
        "I've added that to your list.",
        "create_task",
        title="Finish the report",
        priority="medium",
        due_date="2025-06-13",
    )

    result = await session.process_text("Create a task to finish the report by Friday")

    [task] = await store.list_tasks("alice")
    assert task.title == "Finish the report"
    assert task.due_date == "2025-06-13"
    assert result.action.type == "task_created"
    assert result.action.record["id"] == task.id
    assert result.reply == "I've added that to your list."
    assert result.audio is REPLY_AUDIO
    assert result.error is None


async def test_focus_session_from_audio(session, pipeline, store) -> None:
    pipeline.transcriber.transcribe.return_value = Transcript(text="Start a 30 minute focus session")
    _interpret_as(pipeline, "", "start_focus_session", duration=30, type="work")

    result = await session.process_audio(SPEECH)

    [focus] = await store.list_focus_sessions("alice")
    assert focus.duration_minutes == 30
    assert result.transcript == "Start a 30 minute focus session"
    # No reply text from the model: the action is acknowledged instead.
    assert result.reply == "Starting a 30 minute focus session."


async def test_silence_skips_interpretation(session, pipeline, store) -> None:
    pipeline.transcriber = UploadAndPollTranscriber(api_key="aai-test")
    silence = AudioBlob(data=encode_wav(np.zeros(8000, dtype=np.float32), 16000))

    result = await session.process_audio(silence)

    assert result.transcript == ""
    assert result.reply == NO_SPEECH_REPLY
    assert result.action is None
    pipeline.interpreter.interpret.assert_not_awaited()
    pipeline.synthesizer.synthesize.assert_awaited_once_with(NO_SPEECH_REPLY)
    assert await store.list_tasks("alice") == []
    assert session.state == TurnState.IDLE


# -- Failure handling --------------------------------------------------------


async def test_action_failure_keeps_reply(session, pipeline, store, monkeypatch) -> None:
    monkeypatch.setattr(store, "add_task", AsyncMock(side_effect=OSError("disk full")))
    _interpret_as(pipeline, "Adding it now.", "create_task", title="Buy milk")

    result = await session.process_text("Add a task to buy milk")

    assert result.reply == "Adding it now."
    assert result.action is None
    assert ACTION_FAILED_NOTICE in result.notices
    assert result.error is None


async def test_invalid_tool_arguments_become_notice(session, pipeline, store) -> None:
    _interpret_as(pipeline, "Sure.", "create_task")

    result = await session.process_text("Add a task")

    assert ACTION_FAILED_NOTICE in result.notices
    assert await store.list_tasks("alice") == []


async def test_interpreter_unavailable(session, pipeline, store) -> None:
    pipeline.interpreter.interpret.side_effect = InterpreterUnavailable("503 from provider")

    result = await session.process_text("Create a task to call mom")

    assert result.error == InterpreterUnavailable.user_message
    assert result.reply == InterpreterUnavailable.user_message
    assert await store.list_tasks("alice") == []
    pipeline.synthesizer.synthesize.assert_not_awaited()
    assert session.state == TurnState.IDLE
    assert TurnState.ERROR in [e.state for e in _drain(session)]


async def test_transcription_failure(session, pipeline) -> None:
    pipeline.transcriber.transcribe.side_effect = TranscriptionFailed("upload failed")

    result = await session.process_audio(SPEECH)

    assert result.error == TranscriptionFailed.user_message
    pipeline.interpreter.interpret.assert_not_awaited()


async def test_embedding_failure_continues_without_memory(
    session, pipeline, monkeypatch
) -> None:
    monkeypatch.setattr(
        pipeline.retriever, "search", AsyncMock(side_effect=EmbeddingUnavailable("hf down"))
    )

    result = await session.process_text("What should I do today?")

    assert result.reply == "Okay."
    memory = pipeline.interpreter.interpret.call_args.args[1]
    assert isinstance(memory, RAGContext)
    assert memory.matches == []


async def test_text_too_long_is_text_only(session, pipeline) -> None:
    pipeline.synthesizer.synthesize.side_effect = TextTooLong(1500, 1000)

    result = await session.process_text("Tell me everything")

    assert result.reply == "Okay."
    assert result.audio is None
    assert TOO_LONG_NOTICE in result.notices


async def test_synthesis_unavailable_is_notice(session, pipeline) -> None:
    pipeline.synthesizer.synthesize.side_effect = SynthesisUnavailable("quota")

    result = await session.process_text("Hello")

    assert result.audio is None
    assert result.notices == [SynthesisUnavailable.user_message]
    assert result.error is None


async def test_device_unavailable(pipeline) -> None:
    capture = MagicMock()
    capture.record_utterance = AsyncMock(side_effect=DeviceUnavailable("no mic"))
    session = VoiceSession("alice", pipeline)

    result = await session.listen(capture)

    assert result.error == DeviceUnavailable.user_message
    pipeline.transcriber.transcribe.assert_not_awaited()


async def test_requires_user(pipeline) -> None:
    with pytest.raises(Unauthenticated):
        await VoiceSession("", pipeline).process_text("hello")


# -- Concurrency -------------------------------------------------------------


async def test_one_turn_at_a_time_and_cancel(session, pipeline, store) -> None:
    started = asyncio.Event()

    async def slow_interpret(*args, **kwargs):
        started.set()
        await asyncio.sleep(60)

    pipeline.interpreter.interpret.side_effect = slow_interpret
    turn = asyncio.create_task(session.process_text("Create a task to finish the report"))
    await started.wait()

    assert session.processing
    with pytest.raises(TurnInProgress):
        await session.process_text("Start a focus session")

    assert session.cancel()
    result = await turn

    assert result.error == CANCELLED_ERROR
    assert await store.list_tasks("alice") == []
    assert session.state == TurnState.IDLE
    assert not session.processing
    assert not session.cancel()


# -- Side effects ------------------------------------------------------------


async def test_state_events_in_order(session) -> None:
    await session.process_text("Hello there")

    events = _drain(session)
    states = [e.state for e in events if e.kind == "state"]
    assert states == [
        TurnState.RETRIEVING,
        TurnState.INTERPRETING,
        TurnState.SYNTHESIZING,
        TurnState.IDLE,
    ]
    assert [e.data["text"] for e in events if e.kind == "transcript"] == ["Hello there"]
    assert [e.data["text"] for e in events if e.kind == "reply"] == ["Okay."]


async def test_event_queue_drops_oldest(session) -> None:
    for i in range(MAX_QUEUED_EVENTS + 10):
        session._emit("tick", n=i)

    events = _drain(session)
    assert len(events) == MAX_QUEUED_EVENTS
    assert events[0].data["n"] == 10


async def test_long_spoken_utterance_is_remembered(session, pipeline, store) -> None:
    pipeline.transcriber.transcribe.return_value = Transcript(
        text="I love hiking in the mountains every weekend"
    )

    await session.process_audio(SPEECH)

    [note] = await store.list_voice_notes("alice")
    assert note.content == "I love hiking in the mountains every weekend"
    assert note.source == "voice_input"
    assert note.embedding


async def test_short_or_typed_utterances_are_not_remembered(session, pipeline, store) -> None:
    pipeline.transcriber.transcribe.return_value = Transcript(text="Start a timer")
    await session.process_audio(SPEECH)
    await session.process_text("I love hiking in the mountains every weekend")

    assert await store.list_voice_notes("alice") == []


async def test_conversation_is_logged(session, pipeline, store) -> None:
    pipeline.interpreter.interpret.return_value = Interpretation(
        reply_text="Hi!", category="greeting"
    )

    await session.process_text("Hello")

    messages = await store.list_messages("alice")
    assert sorted((m.role, m.content) for m in messages) == [
        ("assistant", "Hi!"),
        ("user", "Hello"),
    ]
    assert {m.category for m in messages if m.role == "assistant"} == {"greeting"}


async def test_history_carries_to_next_turn(session, pipeline) -> None:
    await session.process_text("My name is Alice")
    await session.process_text("What is my name?")

    history = pipeline.interpreter.interpret.call_args.args[2]
    assert history == [
        {"role": "user", "content": "My name is Alice"},
        {"role": "assistant", "content": "Okay."},
    ]


async def test_listen_stops_player_and_speaks(pipeline) -> None:
    pipeline.synthesizer.synthesize.return_value = REPLY_AUDIO
    pipeline.interpreter.interpret.return_value = Interpretation(reply_text="Okay.")
    pipeline.transcriber.transcribe.return_value = Transcript(text="Hello")
    player = MagicMock()
    player.stop = AsyncMock()
    player.play = AsyncMock()
    capture = MagicMock()
    capture.record_utterance = AsyncMock(return_value=SPEECH)
    session = VoiceSession("alice", pipeline, player=player)

    await session.listen(capture, max_seconds=5)

    player.stop.assert_awaited_once()
    capture.record_utterance.assert_awaited_once_with(5)
    player.play.assert_awaited_once_with(REPLY_AUDIO)
    states = [e.state for e in _drain(session) if e.kind == "state"]
    assert states[0] == TurnState.CAPTURING
    assert TurnState.SPEAKING in states


async def test_speak_disabled(pipeline) -> None:
    pipeline.interpreter.interpret.return_value = Interpretation(reply_text="Okay.")
    session = VoiceSession("alice", pipeline, speak=False)

    result = await session.process_text("Hello")

    assert result.audio is None
    pipeline.synthesizer.synthesize.assert_not_awaited()


def test_turn_result_to_dict() -> None:
    data = TurnResult(transcript="hi", reply="hello", audio=AudioBlob(data=b"abc")).to_dict()
    assert data["response"] == "hello"
    assert data["audioData"] == "YWJj"
    assert data["action"] is None


# -- SessionManager ----------------------------------------------------------


async def test_session_manager(pipeline) -> None:
    manager = SessionManager(pipeline, speak=False)
    alice = manager.get("alice")

    assert manager.get("alice") is alice
    assert manager.get("bob") is not alice
    assert alice.speak is False

    alice.history.add("user", "hello")
    assert manager.clear("alice") == 1
    assert manager.clear("carol") == 0
