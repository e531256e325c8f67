import pytest

from cognitive_engine.errors import (
    AIServiceError,
    QuotaExceededError,
    StorageError,
    SyncConflictError,
    ValidationError,
)
from cognitive_engine.messages import (
    ENCOURAGEMENT,
    ERROR_COPY,
    GENERIC_COPY,
    QUEUED_COPY,
    encouragement,
    is_shame_free,
    user_message,
)
from cognitive_engine.schema import Tone


def test_all_copy_is_shame_free():
    tables = list(ERROR_COPY.values()) + [GENERIC_COPY, QUEUED_COPY, ENCOURAGEMENT]
    for table in tables:
        assert set(table) == set(Tone)
        for text in table.values():
            assert is_shame_free(text), text


@pytest.mark.parametrize(
    "error",
    [
        ValidationError("energy", "must be between 1 and 10"),
        QuotaExceededError(0, "free"),
        AIServiceError("timeout"),
        SyncConflictError("task", "t1"),
        StorageError("down"),
    ],
)
def test_each_error_maps_to_its_copy(error):
    assert user_message(error, Tone.GENTLE) == ERROR_COPY[type(error)][Tone.GENTLE]


def test_raw_error_text_never_leaks():
    message = user_message(AIServiceError("HTTP 503 upstream"), "energetic")
    assert "503" not in message


def test_unknown_error_gets_generic_copy():
    assert user_message(RuntimeError("boom")) == GENERIC_COPY[Tone.STANDARD]


def test_encouragement_follows_tone():
    assert encouragement(Tone.GENTLE) != encouragement(Tone.ENERGETIC)
