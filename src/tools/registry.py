"""Catalog of the actions the interpreter may request."""

from __future__ import annotations

import inspect
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from src.errors import ActionFailed, ToolValidationError
from src.tools.base import ToolContext, ToolParams, ToolResult

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

_EMPTY_OBJECT = {"type": "object", "properties": {}}


@dataclass
class ToolDef:
    name: str
    description: str
    category: str
    handler: Callable[..., Awaitable[ToolResult]]
    params_model: type[ToolParams] | None = None
    wants_context: bool = False

    @property
    def parameters(self) -> dict[str, Any]:
        """JSON schema of the arguments."""
        if self.params_model is None:
            return dict(_EMPTY_OBJECT)
        return self.params_model.model_json_schema()


class ToolRegistry:
    """Maps tool names to async handlers and their argument models.

    Handlers are plain async functions registered with the decorator::

        @registry.tool(
            name="create_task",
            description="Create a task",
            category="productivity",
            params_model=CreateTaskParams,
        )
        async def create_task(title: str, context: ToolContext) -> ToolResult:
            ...

    A handler that declares a ``context`` parameter gets the per-call
    ToolContext injected.
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolDef] = {}

    def tool(
        self,
        *,
        name: str,
        description: str,
        category: str,
        params_model: type[ToolParams] | None = None,
    ) -> Callable:
        def decorator(fn: Callable[..., Awaitable[ToolResult]]) -> Callable:
            if not inspect.iscoroutinefunction(fn):
                msg = f"Tool handler '{name}' must be an async function"
                raise TypeError(msg)
            if name in self._tools:
                logger.warning("Tool '%s' registered twice, replacing", name)

            self._tools[name] = ToolDef(
                name=name,
                description=description,
                category=category,
                handler=fn,
                params_model=params_model,
                wants_context="context" in inspect.signature(fn).parameters,
            )
            return fn

        return decorator

    def get(self, name: str) -> ToolDef | None:
        return self._tools.get(name)

    @property
    def tool_names(self) -> list[str]:
        return list(self._tools)

    def get_schemas(self) -> list[dict[str, Any]]:
        """Tool definitions in Anthropic's format."""
        return [
            {"name": t.name, "description": t.description, "input_schema": t.parameters}
            for t in self._tools.values()
        ]

    def get_openai_schemas(self) -> list[dict[str, Any]]:
        """Tool definitions in OpenAI's function-calling format."""
        return [
            {
                "type": "function",
                "function": {
                    "name": t.name,
                    "description": t.description,
                    "parameters": t.parameters,
                },
            }
            for t in self._tools.values()
        ]

    def validate(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """Check *arguments* against the tool's model and return them normalized.

        Raises ``ToolValidationError``; ``KeyError`` for an unknown tool.
        """
        tool_def = self._tools.get(name)
        if tool_def is None:
            msg = f"Unknown tool: {name}"
            raise KeyError(msg)
        if tool_def.params_model is None:
            return dict(arguments)
        try:
            return tool_def.params_model.model_validate(arguments).model_dump()
        except ValidationError as exc:
            logger.warning("Tool '%s' rejected arguments %s", name, arguments)
            raise ToolValidationError(name, exc.errors()) from exc

    async def execute(
        self,
        name: str,
        arguments: dict[str, Any],
        context: ToolContext | None = None,
    ) -> ToolResult:
        """Validate, then run the handler.

        An unknown name yields an error ToolResult. Invalid arguments raise
        ``ToolValidationError`` without calling the handler. A handler that
        raises or returns an error result surfaces as ``ActionFailed``.
        """
        tool_def = self._tools.get(name)
        if tool_def is None:
            return ToolResult(error=f"Unknown tool: {name}")

        kwargs = self.validate(name, arguments)
        if context is not None and tool_def.wants_context:
            kwargs["context"] = context

        logger.info("Running tool '%s' with %s", name, arguments)
        started = time.monotonic()
        try:
            result = await tool_def.handler(**kwargs)
        except Exception as exc:
            logger.exception("Tool '%s' raised after %.2fs", name, time.monotonic() - started)
            raise ActionFailed(name, exc) from exc

        elapsed = time.monotonic() - started
        if not result.success:
            logger.warning("Tool '%s' failed after %.2fs: %s", name, elapsed, result.error)
            raise ActionFailed(name, result.error or "unknown error")
        logger.info("Tool '%s' done in %.2fs", name, elapsed)
        return result


# Shared registry; tool modules register into it on import.
registry = ToolRegistry()
