"""State-to-adaptation policy rules."""

from __future__ import annotations

from typing import Optional

from cognitive_engine.schema import AdaptationRecord, CognitiveState, Spacing, Tier, Tone, TouchTarget

DEFAULT_ADAPTATION = AdaptationRecord(
    tier=Tier.MEDIUM,
    complexity_ceiling=3,
    spacing=Spacing.NORMAL,
    tone=Tone.STANDARD,
    touch_target=TouchTarget.NORMAL,
)

_SPACING_BY_TIER = {Tier.LOW: Spacing.RELAXED, Tier.MEDIUM: Spacing.NORMAL, Tier.HIGH: Spacing.COMPACT}
_TONE_BY_TIER = {Tier.LOW: Tone.GENTLE, Tier.MEDIUM: Tone.STANDARD, Tier.HIGH: Tone.ENERGETIC}


def tier_for(energy: int, focus: int) -> Tier:
    """Bucket the energy/focus average into a tier."""

    avg = (energy + focus) / 2
    if avg <= 3:
        return Tier.LOW
    if avg <= 6:
        return Tier.MEDIUM
    return Tier.HIGH


def complexity_ceiling(energy: int) -> int:
    """Maximum task complexity for an energy level (step function of energy only)."""

    if energy <= 2:
        return 1
    if energy <= 4:
        return 2
    if energy <= 6:
        return 3
    if energy <= 8:
        return 4
    return 5


def touch_target(focus: int) -> TouchTarget:
    if focus <= 3:
        return TouchTarget.LARGE
    if focus >= 7:
        return TouchTarget.COMPACT
    return TouchTarget.NORMAL


def adapt(state: Optional[CognitiveState]) -> AdaptationRecord:
    """Compute the adaptation record for a check-in, or medium defaults without one.

    Spacing and tone follow the energy/focus average; the complexity ceiling
    follows energy alone and the touch target follows focus alone.
    """

    if state is None:
        return DEFAULT_ADAPTATION

    tier = tier_for(state.energy, state.focus)
    return AdaptationRecord(
        tier=tier,
        complexity_ceiling=complexity_ceiling(state.energy),
        spacing=_SPACING_BY_TIER[tier],
        tone=_TONE_BY_TIER[tier],
        touch_target=touch_target(state.focus),
    )
