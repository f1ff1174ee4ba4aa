"""Canned coaching replies used when no chat provider is configured.

This is the degraded mode of the assistant: replies are picked by keyword
category and never carry a tool call. With a provider configured this
module is not consulted.
"""

from __future__ import annotations

import random

CANNED_REPLIES: dict[str, list[str]] = {
    "planning": [
        "Let's break that goal down into smaller, manageable steps. "
        "What's the first action you can take today?",
        "I can help you create a timeline for this. When would you ideally like to finish?",
        "Great goal! Let's make it specific, measurable and time-bound.",
    ],
    "motivation": [
        "You're making excellent progress! Every small step counts toward your bigger vision.",
        "It's normal to feel overwhelmed sometimes. Let's focus on just the next single action.",
        "Your consistency is building momentum. Keep going, you're closer than you think!",
    ],
    "analysis": [
        "Try scheduling your most important tasks for the time of day you feel sharpest.",
        "Look back at what you finished this week. What helped you get those done?",
        "If you tend to drift mid-afternoon, a short break or a focus session could help.",
    ],
    "coaching": [
        "What obstacles do you anticipate, and how can we prepare for them?",
        "How are you feeling about your progress so far? Let's celebrate the wins!",
        "What would make the biggest difference in your productivity right now?",
    ],
}

_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    ("planning", ("goal", "plan", "schedule")),
    ("motivation", ("motivat", "stuck", "discourag")),
    ("analysis", ("pattern", "analyz", "improve")),
]


def classify(message: str) -> str:
    """Pick the reply category for *message*; ``coaching`` when nothing matches."""
    lower = message.lower()
    for category, keywords in _KEYWORDS:
        if any(k in lower for k in keywords):
            return category
    return "coaching"


def canned_reply(message: str, rng: random.Random | None = None) -> tuple[str, str]:
    """Return ``(reply, category)`` for *message*."""
    category = classify(message)
    chooser = rng or random
    return chooser.choice(CANNED_REPLIES[category]), category
