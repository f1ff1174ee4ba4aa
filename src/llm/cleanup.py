"""Rewrite raw transcribed text as a note, email, article and so on."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from src.config import settings
from src.errors import InterpreterUnavailable

logger = logging.getLogger(__name__)

BASE_PROMPT = (
    "You are an expert writing assistant. Your task is to clean up, structure, "
    "and improve transcribed text."
)

OUTPUT_PROMPTS = {
    "article": "Transform this into a well-structured article with headings, "
    "an introduction, a body and a conclusion.",
    "story": "Turn this into an engaging narrative with good flow.",
    "note": "Organize this into clear, concise notes with bullet points.",
    "blog": "Convert this into a blog post with a catchy introduction and clear sections.",
    "email": "Format this as a professional email with greeting, body and closing.",
    "summary": "Create a concise summary of the key points.",
}

STYLE_PROMPTS = {
    "formal": "Use formal language and a professional tone.",
    "casual": "Use a conversational tone while staying clear and readable.",
    "academic": "Use an academic writing style and scholarly tone.",
    "creative": "Use creative language and vivid imagery.",
}


@dataclass
class CleanedText:
    text: str
    original: str
    output_type: str
    style: str

    @property
    def word_count(self) -> int:
        return len(self.text.split())

    def to_dict(self) -> dict[str, Any]:
        return {
            "cleanedText": self.text,
            "originalText": self.original,
            "outputType": self.output_type,
            "style": self.style,
            "wordCount": self.word_count,
        }


def build_cleanup_prompt(output_type: str, style: str, instructions: str | None = None) -> str:
    """Raises ``ValueError`` for an unknown output type or style."""
    if output_type not in OUTPUT_PROMPTS:
        msg = f"Unknown output type: {output_type}"
        raise ValueError(msg)
    if style not in STYLE_PROMPTS:
        msg = f"Unknown style: {style}"
        raise ValueError(msg)
    parts = [BASE_PROMPT, OUTPUT_PROMPTS[output_type], STYLE_PROMPTS[style]]
    if instructions:
        parts.append(f"Additional instructions: {instructions}")
    return " ".join(parts)


async def clean_up_text(
    text: str,
    output_type: str,
    style: str = "casual",
    instructions: str | None = None,
) -> CleanedText:
    """Rewrite *text* in the requested form.

    Unlike task parsing there is no local fallback: without a chat
    provider, or on an empty answer, this raises ``InterpreterUnavailable``.
    """
    from src.llm.client import complete_text

    system = build_cleanup_prompt(output_type, style, instructions)
    if not settings.chat_enabled:
        msg = "No chat provider configured"
        raise InterpreterUnavailable(msg)

    raw = await complete_text(
        [
            {
                "role": "user",
                "content": f"Please clean up and improve this transcribed text:\n\n{text}",
            }
        ],
        system=system,
        temperature=0.7,
        max_tokens=4000,
    )
    cleaned = raw.strip()
    if not cleaned:
        msg = "Chat provider returned no text"
        raise InterpreterUnavailable(msg)
    logger.info("Cleaned %d chars of text into a %s (%s)", len(text), output_type, style)
    return CleanedText(text=cleaned, original=text, output_type=output_type, style=style)
