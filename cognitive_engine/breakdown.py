"""Quota-gated AI task breakdown with a deterministic local fallback."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Optional

import numpy as np
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from cognitive_engine import messages
from cognitive_engine.adaptation import adapt
from cognitive_engine.config import EngineSettings, get_settings
from cognitive_engine.errors import AIServiceError, QuotaExceededError, StorageError
from cognitive_engine.quota import UNREACHABLE_ERRORS, QuotaManager
from cognitive_engine.schema import (
    AdaptationRecord,
    Breakdown,
    BreakdownResult,
    BreakdownStatus,
    CognitiveState,
    Step,
    Task,
    Tier,
    Tone,
)

if TYPE_CHECKING:
    from cognitive_engine.collaborators import Persistence, TextGenerator

LOGGER = logging.getLogger(__name__)

SOURCE_AI = "ai"
SOURCE_FALLBACK = "fallback"

_TONE_CUES = {
    Tone.GENTLE: "Use warm, low-pressure wording. Keep every step very small and concrete.",
    Tone.STANDARD: "Use clear, friendly wording with one concrete action per step.",
    Tone.ENERGETIC: "Use upbeat, motivating wording. Steps can be ambitious but stay concrete.",
}

# (title template, weight, is_rest)
_FALLBACK_TEMPLATES: dict[Tier, list[tuple[str, float, bool]]] = {
    Tier.LOW: [
        ("Gather what you need for {title}", 2.0, False),
        ("Pause, breathe and sip some water", 1.0, True),
        ("Do the first small piece of {title}", 3.0, False),
        ("Stretch for a moment", 1.0, True),
        ("Note where you stopped so picking it up is easy", 2.0, False),
    ],
    Tier.MEDIUM: [
        ("Get set up for {title}", 1.0, False),
        ("Work through the first half of {title}", 1.0, False),
        ("Work through the second half", 1.0, False),
        ("Review and wrap up", 1.0, False),
    ],
    Tier.HIGH: [
        ("Plan the approach for {title}", 1.0, False),
        ("Tackle the core of {title}", 3.0, False),
        ("Build out the remaining parts", 3.0, False),
        ("Review, polish and close it out", 2.0, False),
    ],
}


class _StepPayload(BaseModel):
    title: str = Field(..., min_length=1)
    minutes: int = Field(..., ge=1, le=1440)


class _BreakdownPayload(BaseModel):
    steps: list[_StepPayload]


def build_prompt(task: Task, adaptation: AdaptationRecord, settings: Optional[EngineSettings] = None) -> str:
    """Compose the state-adapted breakdown prompt."""

    settings = settings or get_settings()
    minutes = task.estimated_minutes or settings.default_estimated_minutes
    lines = [
        "Break the following task into small, doable steps.",
        f"Task: {task.title}",
    ]
    if task.description:
        lines.append(f"Details: {task.description}")
    lines += [
        f"Produce between {settings.min_steps} and {settings.max_steps} steps.",
        f"Keep each step at or below complexity {adaptation.complexity_ceiling} on a 1-5 scale.",
        _TONE_CUES[adaptation.tone],
        f"Give every step a time estimate in whole minutes; the estimates should add up to about {minutes} minutes.",
        'Reply with JSON only: {"steps": [{"title": "...", "minutes": 5}]}',
    ]
    return "\n".join(lines)


def _strip_fences(text: str) -> str:
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = stripped.split("\n", 1)[1] if "\n" in stripped else ""
        if stripped.rstrip().endswith("```"):
            stripped = stripped.rstrip()[:-3]
    return stripped.strip()


def parse_breakdown(text: str, settings: Optional[EngineSettings] = None) -> Breakdown:
    """Parse a completion into a Breakdown, raising AIServiceError on malformed output."""

    settings = settings or get_settings()
    try:
        raw = json.loads(_strip_fences(text))
    except json.JSONDecodeError as exc:
        raise AIServiceError("response is not JSON") from exc

    if isinstance(raw, list):
        raw = {"steps": raw}
    try:
        payload = _BreakdownPayload.model_validate(raw)
    except PydanticValidationError as exc:
        raise AIServiceError("response does not match the step schema") from exc

    if not settings.min_steps <= len(payload.steps) <= settings.max_steps:
        raise AIServiceError(f"expected {settings.min_steps}-{settings.max_steps} steps, got {len(payload.steps)}")

    steps = [Step(title=item.title.strip(), minutes=item.minutes) for item in payload.steps]
    return Breakdown(steps=steps, total_minutes=sum(step.minutes for step in steps), source=SOURCE_AI)


def scale_minutes(weights: list[float], total: int) -> list[int]:
    """Split `total` proportionally to `weights` so the parts sum exactly to `total`."""

    w = np.asarray(weights, dtype=float)
    raw = w / w.sum() * total
    parts = np.floor(raw).astype(int)
    shortfall = int(total - parts.sum())
    order = np.argsort(-(raw - parts), kind="stable")
    parts[order[:shortfall]] += 1
    return [int(part) for part in parts]


def _fit_template(template: list[tuple[str, float, bool]], total: int) -> list[tuple[str, float, bool]]:
    """Shrink a template so every entry can get at least one minute.

    The first work step is always kept, the rest by weight. Rests only ever
    sit between two work steps.
    """

    work = [entry for entry in template if not entry[2]]
    rests = [entry for entry in template if entry[2]]
    keep = min(len(work), (total + 1) // 2 if rests else total)

    by_weight = sorted(range(1, len(work)), key=lambda i: -work[i][1])
    chosen = sorted([0] + by_weight[: keep - 1])

    fitted: list[tuple[str, float, bool]] = []
    for position, index in enumerate(chosen):
        if position and rests:
            fitted.append(rests[(position - 1) % len(rests)])
        fitted.append(work[index])
    return fitted


def build_fallback(
    task: Task, adaptation: AdaptationRecord, settings: Optional[EngineSettings] = None
) -> Breakdown:
    """Deterministic tier-shaped breakdown that never touches the allowance."""

    settings = settings or get_settings()
    total = task.estimated_minutes or settings.default_estimated_minutes
    template = _fit_template(_FALLBACK_TEMPLATES[adaptation.tier], total)
    extra = scale_minutes([weight for _, weight, _ in template], total - len(template))

    steps = [
        Step(title=title.format(title=task.title), minutes=1 + mins, is_rest=is_rest)
        for (title, _, is_rest), mins in zip(template, extra)
    ]
    return Breakdown(
        steps=steps,
        total_minutes=sum(step.minutes for step in steps),
        source=SOURCE_FALLBACK,
        encouragement=messages.encouragement(adaptation.tone),
    )


class BreakdownOrchestrator:
    """Coordinates reservation, prompt, AI call and fallback for one user."""

    def __init__(
        self,
        quota: QuotaManager,
        generator: "TextGenerator",
        persistence: Optional["Persistence"] = None,
        settings: Optional[EngineSettings] = None,
    ) -> None:
        self._quota = quota
        self._generator = generator
        self._persistence = persistence
        self.settings = settings or quota.settings
        self._pending: list[tuple[Task, Optional[CognitiveState]]] = []

    @property
    def pending(self) -> list[tuple[Task, Optional[CognitiveState]]]:
        return list(self._pending)

    async def request_breakdown(self, task: Task, state: Optional[CognitiveState]) -> BreakdownResult:
        adaptation = adapt(state)
        decision = await self._quota.check_and_reserve()

        if not decision.allowed:
            if decision.tier is None:
                return self._handle_offline(task, state, adaptation)
            return BreakdownResult(
                status=BreakdownStatus.DENIED,
                remaining=decision.remaining,
                tier=decision.tier,
                message=messages.user_message(QuotaExceededError(decision.remaining, decision.tier), adaptation.tone),
            )

        prompt = build_prompt(task, adaptation, self.settings)
        LOGGER.debug("Breakdown prompt for task %s is %d characters", task.id, len(prompt))

        status = BreakdownStatus.COMPLETED
        message = None
        try:
            completion = await asyncio.wait_for(
                self._generator.generate_completion(
                    prompt,
                    self.settings.ai_max_tokens,
                    int(self.settings.ai_timeout_seconds * 1000),
                ),
                timeout=self.settings.ai_timeout_seconds,
            )
            breakdown = parse_breakdown(completion, self.settings)
        except asyncio.CancelledError:
            await asyncio.shield(self._release())
            raise
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("AI breakdown for task %s unavailable, using fallback: %r", task.id, exc)
            await self._release()
            breakdown = build_fallback(task, adaptation, self.settings)
            status = BreakdownStatus.FALLBACK
            message = messages.user_message(AIServiceError(str(exc)), adaptation.tone)

        await self._attach(task, breakdown)
        return BreakdownResult(
            status=status,
            breakdown=breakdown,
            remaining=decision.remaining,
            tier=decision.tier,
            message=message,
        )

    async def drain_pending(self) -> list[BreakdownResult]:
        """Retry queued requests through the real reservation; stop if still offline."""

        pending, self._pending = self._pending, []
        results = []
        for index, (task, state) in enumerate(pending):
            result = await self.request_breakdown(task, state)
            results.append(result)
            if result.status == BreakdownStatus.QUEUED:
                self._pending.extend(pending[index + 1 :])
                break
        LOGGER.info("Drained %d queued breakdowns, %d still waiting", len(results), len(self._pending))
        return results

    def _handle_offline(
        self, task: Task, state: Optional[CognitiveState], adaptation: AdaptationRecord
    ) -> BreakdownResult:
        if not self.settings.queue_offline_requests:
            return BreakdownResult(
                status=BreakdownStatus.DENIED,
                message=messages.user_message(StorageError(), adaptation.tone),
            )
        self._pending.append((task, state))
        LOGGER.info("Queued breakdown for task %s until connectivity returns", task.id)
        return BreakdownResult(
            status=BreakdownStatus.QUEUED,
            breakdown=build_fallback(task, adaptation, self.settings),
            message=messages.queued_message(adaptation.tone),
        )

    async def _release(self) -> None:
        try:
            await self._quota.release()
        except UNREACHABLE_ERRORS as exc:
            LOGGER.warning("Could not release reservation for user %s: %s", self._quota.user_id, exc)

    async def _attach(self, task: Task, breakdown: Breakdown) -> None:
        if self._persistence is None:
            return
        try:
            await self._persistence.save_task(self._quota.user_id, replace(task, breakdown=breakdown))
        except UNREACHABLE_ERRORS as exc:
            LOGGER.warning("Breakdown for task %s not saved: %s", task.id, exc)
