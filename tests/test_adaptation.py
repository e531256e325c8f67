from datetime import datetime, timezone

import pytest

from cognitive_engine.adaptation import DEFAULT_ADAPTATION, adapt, complexity_ceiling, tier_for
from cognitive_engine.errors import ValidationError
from cognitive_engine.schema import CognitiveState, Spacing, Tier, Tone, TouchTarget

NOW = datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc)


def state(energy, focus, mood=5):
    return CognitiveState(energy=energy, focus=focus, mood=mood, captured_at=NOW)


def test_low_state_scenario():
    record = adapt(state(2, 3, 2))
    assert record.tier == Tier.LOW
    assert record.complexity_ceiling == 1
    assert record.spacing == Spacing.RELAXED
    assert record.tone == Tone.GENTLE
    assert record.touch_target == TouchTarget.LARGE


def test_high_state_scenario():
    record = adapt(state(8, 9, 7))
    assert record.tier == Tier.HIGH
    # energy 8 sits in the "<= 8 -> 4" step of the ceiling function
    assert record.complexity_ceiling == 4
    assert record.spacing == Spacing.COMPACT
    assert record.tone == Tone.ENERGETIC
    assert record.touch_target == TouchTarget.COMPACT


def test_missing_state_uses_medium_defaults():
    record = adapt(None)
    assert record == DEFAULT_ADAPTATION
    assert record.tier == Tier.MEDIUM
    assert record.complexity_ceiling == 3
    assert record.spacing == Spacing.NORMAL
    assert record.tone == Tone.STANDARD
    assert record.touch_target == TouchTarget.NORMAL


def test_complexity_ceiling_steps_and_monotonic():
    ceilings = [complexity_ceiling(energy) for energy in range(1, 11)]
    assert ceilings == [1, 1, 2, 2, 3, 3, 4, 4, 5, 5]
    assert all(a <= b for a, b in zip(ceilings, ceilings[1:]))


def test_tier_boundaries_use_average():
    assert tier_for(3, 3) == Tier.LOW
    assert tier_for(3, 4) == Tier.MEDIUM
    assert tier_for(6, 6) == Tier.MEDIUM
    assert tier_for(6, 7) == Tier.HIGH


def test_ceiling_and_touch_target_ignore_average():
    record = adapt(state(10, 1))
    assert record.tier == Tier.MEDIUM
    assert record.complexity_ceiling == 5
    assert record.touch_target == TouchTarget.LARGE


def test_adapt_is_deterministic():
    assert adapt(state(5, 7)) == adapt(state(5, 7))


@pytest.mark.parametrize("energy", [0, 11])
def test_out_of_range_levels_rejected(energy):
    with pytest.raises(ValidationError) as exc:
        state(energy, 5)
    assert exc.value.field == "energy"


def test_long_note_rejected():
    with pytest.raises(ValidationError) as exc:
        CognitiveState(energy=5, focus=5, mood=5, captured_at=NOW, note="x" * 501)
    assert exc.value.field == "note"


def test_naive_timestamp_becomes_utc():
    naive = CognitiveState(energy=5, focus=5, mood=5, captured_at=datetime(2025, 3, 3, 9))
    assert naive.captured_at.tzinfo is timezone.utc
    assert naive == state(5, 5)
