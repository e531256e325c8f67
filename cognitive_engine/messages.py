"""User-facing copy.

One table maps every error class to tone-specific wording so all call sites
stay consistent. Copy is shame-free: it never names allowances, error codes or
missed deadlines.
"""

from __future__ import annotations

from cognitive_engine.errors import (
    AIServiceError,
    QuotaExceededError,
    StorageError,
    SyncConflictError,
    ValidationError,
)
from cognitive_engine.schema import Tone

BANNED_WORDS = ("quota", "limit", "error", "failed", "overdue", "exceeded")

ERROR_COPY: dict[type, dict[Tone, str]] = {
    ValidationError: {
        Tone.GENTLE: "Let's adjust that one detail and try again.",
        Tone.STANDARD: "One detail needs a quick tweak before saving.",
        Tone.ENERGETIC: "Almost there! Tweak one detail and go.",
    },
    QuotaExceededError: {
        Tone.GENTLE: "Smart breakdowns are resting for now. They'll be back with the new month.",
        Tone.STANDARD: "You've used this month's smart breakdowns. They refresh next month.",
        Tone.ENERGETIC: "You made great use of smart breakdowns this month! Fresh ones arrive next month.",
    },
    AIServiceError: {
        Tone.GENTLE: "Here's a simple plan to get you started.",
        Tone.STANDARD: "Here's a ready-made plan while the assistant catches up.",
        Tone.ENERGETIC: "Here's a quick plan so you can jump right in!",
    },
    SyncConflictError: {
        Tone.GENTLE: "This task changed on another device. Both versions are saved for you to pick.",
        Tone.STANDARD: "This task was edited in two places. Take a look when you're ready.",
        Tone.ENERGETIC: "Two versions of this task showed up. Pick your favorite when you like!",
    },
    StorageError: {
        Tone.GENTLE: "Working offline for now. Everything will catch up later.",
        Tone.STANDARD: "You're offline. Changes will sync when you reconnect.",
        Tone.ENERGETIC: "Offline mode on! We'll sync as soon as you're back.",
    },
}

GENERIC_COPY: dict[Tone, str] = {
    Tone.GENTLE: "Something got tangled. Let's try that again in a moment.",
    Tone.STANDARD: "That didn't go through. Please try again shortly.",
    Tone.ENERGETIC: "Hiccup! Give it another go in a moment.",
}

QUEUED_COPY: dict[Tone, str] = {
    Tone.GENTLE: "Saved for later. A smart breakdown will arrive once you're back online.",
    Tone.STANDARD: "Queued. The smart breakdown will run once you're back online.",
    Tone.ENERGETIC: "Queued up! Your smart breakdown runs as soon as you're online.",
}

ENCOURAGEMENT: dict[Tone, str] = {
    Tone.GENTLE: "One small step is plenty. Be kind to yourself.",
    Tone.STANDARD: "Take it one step at a time. You've got this.",
    Tone.ENERGETIC: "Let's go! Knock out that first step and ride the momentum.",
}


def _coerce_tone(tone: Tone | str | None) -> Tone:
    if tone is None:
        return Tone.STANDARD
    return Tone(tone)


def user_message(error: BaseException, tone: Tone | str | None = None) -> str:
    """Translate an error into pre-templated copy for the given tone."""

    resolved = _coerce_tone(tone)
    for error_type in type(error).__mro__:
        if error_type in ERROR_COPY:
            return ERROR_COPY[error_type][resolved]
    return GENERIC_COPY[resolved]


def queued_message(tone: Tone | str | None = None) -> str:
    return QUEUED_COPY[_coerce_tone(tone)]


def encouragement(tone: Tone | str | None = None) -> str:
    return ENCOURAGEMENT[_coerce_tone(tone)]


def is_shame_free(text: str) -> bool:
    lowered = text.lower()
    return not any(word in lowered for word in BANNED_WORDS)
