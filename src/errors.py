"""Error taxonomy for the voice pipeline.

Provider exceptions never leave a component raw: each component catches
its client library's errors and raises one of these, chaining the cause.
"""

from __future__ import annotations

from typing import Any


class ZenVAError(Exception):
    """Base class for all pipeline errors."""

    #: Message safe to show to the end user.
    user_message = "Sorry, something went wrong."
    #: HTTP status used by the web layer.
    status = 500


class DeviceUnavailable(ZenVAError):
    user_message = "Microphone is not available."
    status = 503


class TranscriptionFailed(ZenVAError):
    user_message = "Sorry, I couldn't understand the audio."
    status = 502


class TranscriptionTimeout(TranscriptionFailed):
    pass


class EmbeddingUnavailable(ZenVAError):
    user_message = "Memory search is unavailable right now."
    status = 502


class EmbeddingDimensionMismatch(ZenVAError):
    """Query and stored embeddings have different lengths."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Embedding dimension mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class InterpreterUnavailable(ZenVAError):
    user_message = "Sorry, I failed to process your request."
    status = 502


class InterpreterMalformedOutput(ZenVAError):
    """The chat model returned a tool call whose arguments are not valid JSON."""

    def __init__(self, tool: str, raw: str) -> None:
        super().__init__(f"Malformed arguments for tool '{tool}': {raw[:200]}")
        self.tool = tool
        self.raw = raw


class ToolValidationError(ZenVAError):
    """Tool arguments failed schema validation. Nothing was written."""

    status = 400

    def __init__(self, tool: str, errors: list[dict[str, Any]]) -> None:
        fields = ", ".join(".".join(str(p) for p in e.get("loc", ())) for e in errors)
        super().__init__(f"Invalid arguments for '{tool}': {fields or 'unknown'}")
        self.tool = tool
        self.errors = errors


class ActionFailed(ZenVAError):
    """A recognized tool could not complete its side effect."""

    user_message = "I couldn't complete the requested action."

    def __init__(self, tool: str, cause: BaseException | str) -> None:
        super().__init__(f"Action '{tool}' failed: {cause}")
        self.tool = tool
        self.cause = cause


class TextTooLong(ZenVAError):
    status = 400

    def __init__(self, length: int, limit: int) -> None:
        super().__init__(f"Text too long ({length} characters, max {limit})")
        self.length = length
        self.limit = limit


class SynthesisUnavailable(ZenVAError):
    user_message = "Speech playback is unavailable right now."
    status = 502


class Unauthenticated(ZenVAError):
    user_message = "Authentication required."
    status = 401


class TurnInProgress(ZenVAError):
    """A new turn was requested while another is still processing."""

    user_message = "Still working on your last request."
    status = 409
