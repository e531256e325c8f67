"""Core data schema for check-ins, tasks, quota and offline cache entries."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from cognitive_engine.errors import ValidationError

NOTE_MAX_LENGTH = 500
TITLE_MAX_LENGTH = 255
DESCRIPTION_MAX_LENGTH = 1000


class Tier(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Spacing(str, Enum):
    RELAXED = "relaxed"
    NORMAL = "normal"
    COMPACT = "compact"


class Tone(str, Enum):
    GENTLE = "gentle"
    STANDARD = "standard"
    ENERGETIC = "energetic"


class TouchTarget(str, Enum):
    LARGE = "large"
    NORMAL = "normal"
    COMPACT = "compact"


class QuotaTier(str, Enum):
    FREE = "free"
    PREMIUM = "premium"


class QuotaStatus(str, Enum):
    ACTIVE = "active"
    EXHAUSTED = "exhausted"
    RESETTING = "resetting"


class SyncState(str, Enum):
    PENDING = "pending"
    SYNCED = "synced"
    CONFLICT = "conflict"


class EntityType(str, Enum):
    COGNITIVE_STATE = "cognitive_state"
    TASK = "task"
    QUOTA = "quota"


class BreakdownStatus(str, Enum):
    COMPLETED = "completed"
    FALLBACK = "fallback"
    DENIED = "denied"
    QUEUED = "queued"


def _check_int_range(name: str, value: Any, low: int, high: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(name, "must be an integer")
    if not low <= value <= high:
        raise ValidationError(name, f"must be between {low} and {high}")


def _check_length(name: str, value: Any, max_length: int) -> None:
    if not isinstance(value, str):
        raise ValidationError(name, "must be a string")
    if len(value) > max_length:
        raise ValidationError(name, f"must be at most {max_length} characters")


@dataclass(frozen=True)
class CognitiveState:
    """Immutable self-reported energy/focus/mood snapshot."""

    energy: int
    focus: int
    mood: int
    captured_at: datetime
    note: str = ""

    def __post_init__(self) -> None:
        for name in ("energy", "focus", "mood"):
            _check_int_range(name, getattr(self, name), 1, 10)
        _check_length("note", self.note, NOTE_MAX_LENGTH)
        if not isinstance(self.captured_at, datetime):
            raise ValidationError("captured_at", "must be a datetime")
        if self.captured_at.tzinfo is None:
            object.__setattr__(self, "captured_at", self.captured_at.replace(tzinfo=timezone.utc))


@dataclass(frozen=True)
class AdaptationRecord:
    """Derived UI/behavior parameters. Never persisted."""

    tier: Tier
    complexity_ceiling: int
    spacing: Spacing
    tone: Tone
    touch_target: TouchTarget


@dataclass(frozen=True)
class Step:
    title: str
    minutes: int
    is_rest: bool = False


@dataclass(frozen=True)
class Breakdown:
    steps: list[Step]
    total_minutes: int
    source: str
    adapted: bool = True
    encouragement: Optional[str] = None


@dataclass
class Task:
    """User-owned task. `breakdown` is attached only by the orchestrator."""

    id: str
    title: str
    complexity: int
    estimated_minutes: int
    description: str = ""
    completed: bool = False
    breakdown: Optional[Breakdown] = None

    def __post_init__(self) -> None:
        if not str(self.id or "").strip():
            raise ValidationError("id", "must not be empty")
        _check_length("title", self.title, TITLE_MAX_LENGTH)
        if not self.title.strip():
            raise ValidationError("title", "must not be empty")
        _check_length("description", self.description, DESCRIPTION_MAX_LENGTH)
        _check_int_range("complexity", self.complexity, 1, 5)
        _check_int_range("estimated_minutes", self.estimated_minutes, 1, 1440)
        if not isinstance(self.completed, bool):
            raise ValidationError("completed", "must be a boolean")


@dataclass
class QuotaRecord:
    tier: QuotaTier
    used: int
    limit: int
    reset_at: datetime
    status: QuotaStatus = QuotaStatus.ACTIVE

    def __post_init__(self) -> None:
        for name in ("used", "limit"):
            if isinstance(getattr(self, name), bool) or not isinstance(getattr(self, name), int):
                raise ValidationError(name, "must be an integer")
        if self.used < 0:
            raise ValidationError("used", "must not be negative")
        if self.limit <= 0:
            raise ValidationError("limit", "must be positive")

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)


@dataclass(frozen=True)
class QuotaDecision:
    allowed: bool
    remaining: int
    tier: Optional[QuotaTier] = None


@dataclass(frozen=True)
class BreakdownResult:
    status: BreakdownStatus
    breakdown: Optional[Breakdown] = None
    remaining: Optional[int] = None
    tier: Optional[QuotaTier] = None
    message: Optional[str] = None

    @property
    def ai_backed(self) -> bool:
        return self.breakdown is not None and self.breakdown.source == "ai"


@dataclass
class CacheEntry:
    """Local offline write waiting for reconciliation.

    `base` holds the last known-synced version of the entity, if any.
    """

    entity_type: EntityType
    payload: dict
    local_timestamp: datetime
    sync_state: SyncState = SyncState.PENDING
    key: str = ""
    base: Optional[dict] = None


@dataclass(frozen=True)
class Conflict:
    entity_type: EntityType
    entity_id: str
    local: dict
    remote: dict
    detected_at: datetime
    message: str = ""


@dataclass
class ReconcileResult:
    applied: list[Any] = field(default_factory=list)
    conflicts: list[Conflict] = field(default_factory=list)
    discarded: list[CacheEntry] = field(default_factory=list)
