"""Chat-completion client and the tool-calling command interpreter."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import anthropic
import openai

from src.config import settings
from src.errors import InterpreterMalformedOutput, InterpreterUnavailable
from src.integrations.clients import get_anthropic_client, get_openai_client
from src.llm import offline
from src.llm.prompt import build_system_prompt
from src.llm.task_parser import fallback_task_arguments
from src.tools import registry as default_registry
from src.tools.dispatch import ToolCall

if TYPE_CHECKING:
    from src.memory.retriever import RAGContext
    from src.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

_PROVIDER_ERRORS = (openai.OpenAIError, anthropic.AnthropicError)


@dataclass
class Interpretation:
    """What the chat model made of one utterance."""

    reply_text: str
    tool_call: ToolCall | None = None
    category: str | None = None


async def complete_text(
    messages: list[dict[str, Any]],
    *,
    system: str | None = None,
    temperature: float | None = None,
    max_tokens: int | None = None,
) -> str:
    """Single-shot chat call with no tools.

    Use this for isolated LLM tasks (parsing, extraction, etc.) where the
    interpreter is not needed. Raises ``InterpreterUnavailable`` on any
    provider failure.
    """
    temperature = settings.chat_temperature if temperature is None else temperature
    max_tokens = max_tokens or settings.chat_max_tokens
    try:
        if settings.chat_provider == "anthropic":
            kwargs: dict[str, Any] = {
                "model": settings.anthropic_model,
                "max_tokens": max_tokens,
                "temperature": temperature,
                "messages": messages,
                "timeout": settings.chat_timeout_seconds,
            }
            if system is not None:
                kwargs["system"] = system
            response = await get_anthropic_client().messages.create(**kwargs)
            return "".join(b.text for b in response.content if b.type == "text")

        full = [{"role": "system", "content": system}, *messages] if system else messages
        response = await get_openai_client().chat.completions.create(
            model=settings.chat_model,
            messages=full,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=settings.chat_timeout_seconds,
        )
        return response.choices[0].message.content or ""
    except _PROVIDER_ERRORS as exc:
        logger.exception("Chat completion failed")
        msg = f"Chat provider error: {exc}"
        raise InterpreterUnavailable(msg) from exc


def parse_arguments(name: str, raw: str | dict[str, Any] | None) -> dict[str, Any]:
    """Decode tool-call arguments. Raises ``InterpreterMalformedOutput``."""
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return raw
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise InterpreterMalformedOutput(name, raw) from exc
    if not isinstance(parsed, dict):
        raise InterpreterMalformedOutput(name, raw)
    return parsed


class CommandInterpreter:
    """Sends an utterance plus memory to a tool-calling chat model.

    At most one tool call is honored per turn; extras are logged and
    discarded. Unknown tool names are dropped with a warning while the
    reply text is kept.
    """

    def __init__(self, registry: ToolRegistry | None = None) -> None:
        self._registry = registry or default_registry

    async def interpret(
        self,
        user_text: str,
        memory: RAGContext | None = None,
        history: list[dict[str, str]] | None = None,
    ) -> Interpretation:
        if not settings.chat_enabled:
            reply, category = offline.canned_reply(user_text)
            logger.info("No chat provider configured, using canned %s reply", category)
            return Interpretation(reply_text=reply, category=category)

        system = build_system_prompt(memory)
        messages = [*(history or []), {"role": "user", "content": user_text}]

        try:
            if settings.chat_provider == "anthropic":
                reply, calls = await self._call_anthropic(system, messages)
            else:
                reply, calls = await self._call_openai(system, messages)
        except _PROVIDER_ERRORS as exc:
            logger.exception("Interpreter call failed")
            msg = f"Chat provider error: {exc}"
            raise InterpreterUnavailable(msg) from exc
        except (IndexError, AttributeError) as exc:
            logger.exception("Unexpected chat response shape")
            msg = "Chat provider returned an unexpected response"
            raise InterpreterUnavailable(msg) from exc

        return Interpretation(reply_text=reply, tool_call=self._select_call(calls, user_text))

    def _select_call(
        self, calls: list[tuple[str | None, str, Any]], user_text: str
    ) -> ToolCall | None:
        if not calls:
            return None
        if len(calls) > 1:
            logger.warning(
                "Model returned %d tool calls; honoring '%s', discarding %s",
                len(calls),
                calls[0][1],
                [c[1] for c in calls[1:]],
            )

        call_id, name, raw_args = calls[0]
        if self._registry.get(name) is None:
            logger.warning("Ignoring unknown tool '%s'", name)
            return None

        try:
            arguments = parse_arguments(name, raw_args)
        except InterpreterMalformedOutput as exc:
            logger.warning("%s", exc)
            if name != "create_task":
                return None
            arguments = fallback_task_arguments(user_text)
            logger.info("Falling back to utterance as task title: %s", arguments["title"])
        return ToolCall(name=name, arguments=arguments, id=call_id)

    async def _call_openai(
        self, system: str, messages: list[dict[str, Any]]
    ) -> tuple[str, list[tuple[str | None, str, Any]]]:
        response = await get_openai_client().chat.completions.create(
            model=settings.chat_model,
            messages=[{"role": "system", "content": system}, *messages],
            tools=self._registry.get_openai_schemas(),
            tool_choice="auto",
            temperature=settings.chat_temperature,
            max_tokens=settings.chat_max_tokens,
            timeout=settings.chat_timeout_seconds,
        )
        message = response.choices[0].message
        calls = [
            (tc.id, tc.function.name, tc.function.arguments)
            for tc in (message.tool_calls or [])
        ]
        return message.content or "", calls

    async def _call_anthropic(
        self, system: str, messages: list[dict[str, Any]]
    ) -> tuple[str, list[tuple[str | None, str, Any]]]:
        response = await get_anthropic_client().messages.create(
            model=settings.anthropic_model,
            max_tokens=settings.chat_max_tokens,
            temperature=settings.chat_temperature,
            system=system,
            messages=messages,
            tools=self._registry.get_schemas(),
            timeout=settings.chat_timeout_seconds,
        )
        text = "".join(b.text for b in response.content if b.type == "text")
        calls = [(b.id, b.name, b.input) for b in response.content if b.type == "tool_use"]
        return text, calls
