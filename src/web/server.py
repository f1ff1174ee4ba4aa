"""HTTP API for the voice pipeline.

Every route except ``/health`` requires ``Authorization: Bearer <token>``.
Uses aiohttp's AppRunner/TCPSite for non-blocking start/stop.
"""

from __future__ import annotations

import binascii
import json
import logging
from typing import Any, Literal

from aiohttp import web
from pydantic import BaseModel, Field, ValidationError

from src.config import settings
from src.errors import ZenVAError
from src.llm.cleanup import clean_up_text
from src.llm.suggestions import suggest_for_task
from src.llm.task_parser import parse_task
from src.store.models import Goal, MoodEntry
from src.voice.audio import AudioBlob
from src.voice.pipeline import VoicePipeline, build_pipeline
from src.voice.session import SessionManager
from src.web.auth import authenticate

logger = logging.getLogger(__name__)

PIPELINE = web.AppKey("pipeline", VoicePipeline)
SESSIONS = web.AppKey("sessions", SessionManager)

PUBLIC_PATHS = frozenset({"/health"})


# -- Request bodies ------------------------------------------------------------


class ProcessRequest(BaseModel):
    audio_data: str | None = Field(default=None, alias="audioData")
    mime_type: str = Field(default="audio/webm", alias="mimeType")
    text: str | None = None
    language: str = "en"


class TranscribeRequest(BaseModel):
    audio_data: str = Field(alias="audioData", min_length=1)
    mime_type: str = Field(default="audio/webm", alias="mimeType")
    language: str = "en"


class SpeakRequest(BaseModel):
    text: str = Field(min_length=1)
    voice: str | None = None


class RagQueryRequest(BaseModel):
    query: str = Field(min_length=1)
    top_k: int | None = Field(default=None, alias="topK", ge=1, le=50)
    threshold: float | None = Field(default=None, ge=-1.0, le=1.0)


class NoteRequest(BaseModel):
    content: str = Field(min_length=1)
    summary: str | None = None
    category: str | None = None


class ParseTaskRequest(BaseModel):
    input: str = Field(min_length=1)
    goals: list[dict[str, Any]] = Field(default_factory=list)


class TaskUpdateRequest(BaseModel):
    completed: bool


class SuggestionsRequest(BaseModel):
    task_title: str = Field(alias="taskTitle", min_length=1)
    task_description: str | None = Field(default=None, alias="taskDescription")
    user_goals: list[str] = Field(default_factory=list, alias="userGoals")
    user_context: dict[str, Any] = Field(default_factory=dict, alias="userContext")


class CleanupRequest(BaseModel):
    text: str = Field(min_length=1)
    output_type: Literal["article", "story", "note", "blog", "email", "summary"] = Field(
        alias="outputType"
    )
    style: Literal["formal", "casual", "academic", "creative"] = "casual"
    instructions: str | None = None


class GoalRequest(BaseModel):
    title: str = Field(min_length=1)
    description: str | None = None
    category: str | None = None
    target_date: str | None = Field(default=None, alias="targetDate")


class GoalProgressRequest(BaseModel):
    progress: int


class MoodRequest(BaseModel):
    mood: int = Field(ge=1, le=5)
    energy_level: int = Field(alias="energyLevel", ge=1, le=5)
    notes: str | None = None


def _bad_request(message: str) -> web.HTTPBadRequest:
    return web.HTTPBadRequest(
        text=json.dumps({"error": message}), content_type="application/json"
    )


async def _parse(request: web.Request, model: type[BaseModel]) -> Any:
    try:
        payload = await request.json()
    except ValueError as exc:
        raise _bad_request("invalid JSON") from exc
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        fields = ", ".join(".".join(str(p) for p in e["loc"]) for e in exc.errors())
        raise _bad_request(f"invalid request: {fields}") from exc


def _query_limit(request: web.Request, default: int | None = None) -> int | None:
    raw = request.query.get("limit")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise _bad_request("limit must be an integer") from exc


def _decode_audio(encoded: str, mime_type: str) -> AudioBlob:
    try:
        return AudioBlob.from_base64(encoded, mime_type=mime_type)
    except (binascii.Error, ValueError) as exc:
        raise _bad_request("audioData is not valid base64") from exc


# -- Middleware ----------------------------------------------------------------


@web.middleware
async def _auth_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Authenticate before any handler runs, and map pipeline errors to JSON."""
    try:
        if request.path not in PUBLIC_PATHS:
            request["user_id"] = authenticate(request)
        return await handler(request)
    except ZenVAError as exc:
        if exc.status >= 500:
            logger.warning("%s %s failed: %s", request.method, request.path, exc)
        body = {"error": exc.user_message}
        if exc.status == 400:
            body["detail"] = str(exc)
        return web.json_response(body, status=exc.status)


# -- Handlers ------------------------------------------------------------------


async def _health(request: web.Request) -> web.Response:
    """GET /health: basic liveness check."""
    return web.json_response({"status": "ok"})


async def _voice_process(request: web.Request) -> web.Response:
    """POST /voice/process: run one full turn on audio or text."""
    body: ProcessRequest = await _parse(request, ProcessRequest)
    session = request.app[SESSIONS].get(request["user_id"])

    if body.audio_data:
        blob = _decode_audio(body.audio_data, body.mime_type)
        result = await session.process_audio(blob, body.language)
    elif body.text and body.text.strip():
        result = await session.process_text(body.text)
    else:
        raise _bad_request("audioData or text is required")

    return web.json_response(result.to_dict())


async def _voice_transcribe(request: web.Request) -> web.Response:
    """POST /voice/transcribe: speech to text only."""
    body: TranscribeRequest = await _parse(request, TranscribeRequest)
    blob = _decode_audio(body.audio_data, body.mime_type)
    transcript = await request.app[PIPELINE].transcriber.transcribe(blob, body.language)
    data = transcript.to_dict()
    return web.json_response(
        {
            "transcription": data["text"],
            "segments": data["segments"],
            "duration": data["duration"],
        }
    )


async def _voice_speak(request: web.Request) -> web.Response:
    """POST /voice/speak: text to speech only."""
    body: SpeakRequest = await _parse(request, SpeakRequest)
    try:
        blob = await request.app[PIPELINE].synthesizer.synthesize(body.text, body.voice)
    except ValueError as exc:
        raise _bad_request(str(exc)) from exc
    return web.json_response({"audioData": blob.to_base64(), "mimeType": blob.mime_type})


async def _rag_query(request: web.Request) -> web.Response:
    """POST /rag/query: memory search over the caller's notes."""
    body: RagQueryRequest = await _parse(request, RagQueryRequest)
    context = await request.app[PIPELINE].retriever.search(
        request["user_id"], body.query, top_k=body.top_k, threshold=body.threshold
    )
    return web.json_response(context.to_dict())


async def _create_note(request: web.Request) -> web.Response:
    """POST /notes: embed and store a voice note."""
    body: NoteRequest = await _parse(request, NoteRequest)
    note = await request.app[PIPELINE].retriever.save_note(
        request["user_id"],
        body.content,
        summary=body.summary,
        category=body.category,
    )
    return web.json_response({"note": note.to_dict()}, status=201)


async def _list_notes(request: web.Request) -> web.Response:
    """GET /notes?limit=N: newest first."""
    limit = _query_limit(request)
    notes = await request.app[PIPELINE].store.list_voice_notes(request["user_id"], limit=limit)
    return web.json_response({"notes": [n.to_dict() for n in notes]})


async def _delete_note(request: web.Request) -> web.Response:
    """DELETE /notes/{id}."""
    note_id = request.match_info["note_id"]
    deleted = await request.app[PIPELINE].store.delete_voice_note(request["user_id"], note_id)
    if not deleted:
        return web.json_response({"error": "note not found"}, status=404)
    return web.json_response({"ok": True})


async def _parse_task(request: web.Request) -> web.Response:
    """POST /tasks/parse: natural language to task fields (no insert)."""
    body: ParseTaskRequest = await _parse(request, ParseTaskRequest)
    task = await parse_task(body.input, body.goals)
    return web.json_response({"success": True, "task": task.model_dump()})


async def _task_suggestions(request: web.Request) -> web.Response:
    """POST /tasks/suggestions: subtasks, estimate and tips for one task."""
    body: SuggestionsRequest = await _parse(request, SuggestionsRequest)
    suggestions = await suggest_for_task(
        request["user_id"],
        body.task_title,
        request.app[PIPELINE].retriever,
        description=body.task_description,
        goals=body.user_goals,
        user_context=body.user_context,
    )
    return web.json_response({"success": True, "suggestions": suggestions.to_dict()})


async def _list_tasks(request: web.Request) -> web.Response:
    """GET /tasks?open=1: newest first; ``open`` hides completed tasks."""
    include_completed = request.query.get("open") not in ("1", "true")
    tasks = await request.app[PIPELINE].store.list_tasks(
        request["user_id"], include_completed=include_completed
    )
    return web.json_response({"tasks": [t.to_dict() for t in tasks]})


async def _update_task(request: web.Request) -> web.Response:
    """PATCH /tasks/{id}: mark done or not done."""
    body: TaskUpdateRequest = await _parse(request, TaskUpdateRequest)
    store = request.app[PIPELINE].store
    user_id = request["user_id"]
    task_id = request.match_info["task_id"]
    if not await store.complete_task(user_id, task_id, body.completed):
        return web.json_response({"error": "task not found"}, status=404)
    task = await store.get_task(user_id, task_id)
    return web.json_response({"task": task.to_dict()})


async def _delete_task(request: web.Request) -> web.Response:
    """DELETE /tasks/{id}."""
    task_id = request.match_info["task_id"]
    if not await request.app[PIPELINE].store.delete_task(request["user_id"], task_id):
        return web.json_response({"error": "task not found"}, status=404)
    return web.json_response({"ok": True})


async def _list_focus_sessions(request: web.Request) -> web.Response:
    """GET /focus-sessions?limit=N: most recent first."""
    sessions = await request.app[PIPELINE].store.list_focus_sessions(
        request["user_id"], limit=_query_limit(request, default=50)
    )
    return web.json_response({"sessions": [s.to_dict() for s in sessions]})


async def _complete_focus_session(request: web.Request) -> web.Response:
    """POST /focus-sessions/{id}/complete: the timer ran out."""
    session_id = request.match_info["session_id"]
    store = request.app[PIPELINE].store
    if not await store.complete_focus_session(request["user_id"], session_id):
        return web.json_response({"error": "focus session not found"}, status=404)
    return web.json_response({"ok": True})


async def _list_goals(request: web.Request) -> web.Response:
    """GET /goals."""
    goals = await request.app[PIPELINE].store.list_goals(request["user_id"])
    return web.json_response({"goals": [g.to_dict() for g in goals]})


async def _create_goal(request: web.Request) -> web.Response:
    """POST /goals."""
    body: GoalRequest = await _parse(request, GoalRequest)
    goal = await request.app[PIPELINE].store.add_goal(
        Goal(
            user_id=request["user_id"],
            title=body.title,
            description=body.description,
            category=body.category,
            target_date=body.target_date,
        )
    )
    return web.json_response({"goal": goal.to_dict()}, status=201)


async def _update_goal(request: web.Request) -> web.Response:
    """PATCH /goals/{id}: set progress, clamped to 0-100."""
    body: GoalProgressRequest = await _parse(request, GoalProgressRequest)
    goal_id = request.match_info["goal_id"]
    store = request.app[PIPELINE].store
    if not await store.update_goal_progress(request["user_id"], goal_id, body.progress):
        return web.json_response({"error": "goal not found"}, status=404)
    return web.json_response({"ok": True})


async def _delete_goal(request: web.Request) -> web.Response:
    """DELETE /goals/{id}."""
    goal_id = request.match_info["goal_id"]
    if not await request.app[PIPELINE].store.delete_goal(request["user_id"], goal_id):
        return web.json_response({"error": "goal not found"}, status=404)
    return web.json_response({"ok": True})


async def _list_mood(request: web.Request) -> web.Response:
    """GET /mood?limit=N: most recent check-ins first."""
    entries = await request.app[PIPELINE].store.list_mood_entries(
        request["user_id"], limit=_query_limit(request, default=30)
    )
    return web.json_response({"entries": [e.to_dict() for e in entries]})


async def _create_mood(request: web.Request) -> web.Response:
    """POST /mood: record a mood and energy check-in."""
    body: MoodRequest = await _parse(request, MoodRequest)
    entry = await request.app[PIPELINE].store.add_mood_entry(
        MoodEntry(
            user_id=request["user_id"],
            mood=body.mood,
            energy_level=body.energy_level,
            notes=body.notes,
        )
    )
    return web.json_response({"entry": entry.to_dict()}, status=201)


async def _voice_cleanup(request: web.Request) -> web.Response:
    """POST /voice/cleanup: rewrite transcribed text as a note, email, etc."""
    body: CleanupRequest = await _parse(request, CleanupRequest)
    cleaned = await clean_up_text(body.text, body.output_type, body.style, body.instructions)
    return web.json_response({"success": True, **cleaned.to_dict()})


async def _list_history(request: web.Request) -> web.Response:
    """GET /voice/history?limit=N: stored exchanges, oldest first."""
    messages = await request.app[PIPELINE].store.list_messages(
        request["user_id"], limit=_query_limit(request, default=50)
    )
    return web.json_response({"messages": [m.to_dict() for m in messages]})


async def _clear_history(request: web.Request) -> web.Response:
    """DELETE /voice/history: forget the caller's conversation window."""
    cleared = request.app[SESSIONS].clear(request["user_id"])
    return web.json_response({"cleared": cleared})


def create_app(pipeline: VoicePipeline | None = None) -> web.Application:
    """Build the aiohttp Application with routes."""
    pipeline = pipeline or build_pipeline()
    app = web.Application(middlewares=[_auth_middleware])
    app[PIPELINE] = pipeline
    app[SESSIONS] = SessionManager(pipeline)

    app.router.add_get("/health", _health)
    app.router.add_post("/voice/process", _voice_process)
    app.router.add_post("/voice/transcribe", _voice_transcribe)
    app.router.add_post("/voice/speak", _voice_speak)
    app.router.add_post("/voice/cleanup", _voice_cleanup)
    app.router.add_get("/voice/history", _list_history)
    app.router.add_delete("/voice/history", _clear_history)
    app.router.add_post("/rag/query", _rag_query)
    app.router.add_post("/notes", _create_note)
    app.router.add_get("/notes", _list_notes)
    app.router.add_delete("/notes/{note_id}", _delete_note)
    app.router.add_post("/tasks/parse", _parse_task)
    app.router.add_post("/tasks/suggestions", _task_suggestions)
    app.router.add_get("/tasks", _list_tasks)
    app.router.add_patch("/tasks/{task_id}", _update_task)
    app.router.add_delete("/tasks/{task_id}", _delete_task)
    app.router.add_get("/focus-sessions", _list_focus_sessions)
    app.router.add_post("/focus-sessions/{session_id}/complete", _complete_focus_session)
    app.router.add_get("/goals", _list_goals)
    app.router.add_post("/goals", _create_goal)
    app.router.add_patch("/goals/{goal_id}", _update_goal)
    app.router.add_delete("/goals/{goal_id}", _delete_goal)
    app.router.add_get("/mood", _list_mood)
    app.router.add_post("/mood", _create_mood)
    return app


class VoiceServer:
    """Manages the aiohttp server lifecycle."""

    def __init__(
        self,
        pipeline: VoicePipeline | None = None,
        host: str | None = None,
        port: int | None = None,
    ) -> None:
        self.pipeline = pipeline
        self.host = host or settings.web_host
        self.port = port or settings.web_port
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        if not settings.get_api_tokens():
            logger.warning("API_TOKENS is empty, every authenticated route will return 401")

        app = create_app(self.pipeline)
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info("ZenVA API listening on %s:%d", self.host, self.port)

    async def stop(self) -> None:
        """Shut down the server gracefully."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("ZenVA API stopped")
