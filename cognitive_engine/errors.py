"""Error taxonomy shared by every component."""

from __future__ import annotations


class EngineError(Exception):
    """Base class for all engine errors."""


class ValidationError(EngineError, ValueError):
    """Input rejected at the boundary with a field-level reason."""

    def __init__(self, field: str, reason: str) -> None:
        super().__init__(f"{field}: {reason}")
        self.field = field
        self.reason = reason


class QuotaExceededError(EngineError):
    """The monthly allowance is used up for the current attempt."""

    def __init__(self, remaining: int = 0, tier: str | None = None) -> None:
        super().__init__(f"allowance exhausted (remaining={remaining}, tier={tier})")
        self.remaining = remaining
        self.tier = tier


class AIServiceError(EngineError):
    """Transient failure of the text-generation collaborator."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class SyncConflictError(EngineError):
    """Local and remote edits of the same entity diverged."""

    def __init__(self, entity_type: str, entity_id: str) -> None:
        super().__init__(f"conflicting edits for {entity_type} {entity_id}")
        self.entity_type = entity_type
        self.entity_id = entity_id


class StorageError(EngineError):
    """A storage collaborator (local cache or persistence) is unreachable."""
