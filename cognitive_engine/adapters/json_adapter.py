"""JSON adapter for check-ins and tasks."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

from cognitive_engine.errors import ValidationError
from cognitive_engine.schema import Breakdown, CognitiveState, Step, Task

_STATE_FIELDS = ("energy", "focus", "mood", "captured_at")
_TASK_FIELDS = ("id", "title", "complexity", "estimated_minutes")


def _missing(item: dict, required: tuple[str, ...], index: int) -> None:
    missing = [name for name in required if item.get(name) in (None, "")]
    if missing:
        raise ValidationError(missing[0], f"item {index}: missing required fields {missing}")


def _timestamp(raw: Any, name: str, index: int) -> datetime:
    if isinstance(raw, datetime):
        value = raw
    else:
        try:
            value = datetime.fromisoformat(str(raw))
        except Exception as exc:  # noqa: BLE001
            raise ValidationError(name, f"item {index}: malformed timestamp") from exc
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _integer(raw: Any, name: str, index: int) -> int:
    if isinstance(raw, bool):
        raise ValidationError(name, f"item {index}: must be an integer")
    try:
        value = float(raw)
    except Exception as exc:  # noqa: BLE001
        raise ValidationError(name, f"item {index}: must be an integer") from exc
    if not value.is_integer():
        raise ValidationError(name, f"item {index}: must be an integer")
    return int(value)


def _boolean(raw: Any, index: int) -> bool:
    if isinstance(raw, bool):
        return raw
    text = str(raw).strip().lower()
    if text in ("", "0", "false", "no"):
        return False
    if text in ("1", "true", "yes"):
        return True
    raise ValidationError("completed", f"item {index}: must be a boolean")


def parse_state(item: dict, index: int = 1) -> CognitiveState:
    """Validate one check-in record."""

    _missing(item, _STATE_FIELDS, index)
    return CognitiveState(
        energy=_integer(item["energy"], "energy", index),
        focus=_integer(item["focus"], "focus", index),
        mood=_integer(item["mood"], "mood", index),
        captured_at=_timestamp(item["captured_at"], "captured_at", index),
        note=str(item.get("note") or ""),
    )


def _parse_breakdown(raw: Any, index: int) -> Breakdown | None:
    if not raw:
        return None
    try:
        steps = [
            Step(title=str(step["title"]), minutes=int(step["minutes"]), is_rest=bool(step.get("is_rest", False)))
            for step in raw["steps"]
        ]
        return Breakdown(
            steps=steps,
            total_minutes=int(raw.get("total_minutes", sum(step.minutes for step in steps))),
            source=str(raw.get("source", "ai")),
            adapted=bool(raw.get("adapted", True)),
            encouragement=raw.get("encouragement"),
        )
    except Exception as exc:  # noqa: BLE001
        raise ValidationError("breakdown", f"item {index}: malformed breakdown") from exc


def parse_task(item: dict, index: int = 1) -> Task:
    """Validate one task record."""

    _missing(item, _TASK_FIELDS, index)
    return Task(
        id=str(item["id"]).strip(),
        title=str(item["title"]).strip(),
        description=str(item.get("description") or ""),
        complexity=_integer(item["complexity"], "complexity", index),
        estimated_minutes=_integer(item["estimated_minutes"], "estimated_minutes", index),
        completed=_boolean(item.get("completed", False), index),
        breakdown=_parse_breakdown(item.get("breakdown"), index),
    )


def state_to_dict(state: CognitiveState) -> dict:
    return {
        "energy": state.energy,
        "focus": state.focus,
        "mood": state.mood,
        "note": state.note,
        "captured_at": state.captured_at.isoformat(),
    }


def task_to_dict(task: Task) -> dict:
    breakdown = None
    if task.breakdown is not None:
        breakdown = {
            "steps": [{"title": s.title, "minutes": s.minutes, "is_rest": s.is_rest} for s in task.breakdown.steps],
            "total_minutes": task.breakdown.total_minutes,
            "source": task.breakdown.source,
            "adapted": task.breakdown.adapted,
            "encouragement": task.breakdown.encouragement,
        }
    return {
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "complexity": task.complexity,
        "estimated_minutes": task.estimated_minutes,
        "completed": task.completed,
        "breakdown": breakdown,
    }


def _load_list(file_path: str) -> list:
    with open(file_path, encoding="utf-8") as handle:
        payload = json.load(handle)

    if not isinstance(payload, list):
        raise ValueError("JSON payload must be a list of objects")
    return payload


def parse_states(file_path: str) -> list[CognitiveState]:
    """Parse a JSON file of check-ins."""

    return [parse_state(item, i) for i, item in enumerate(_load_list(file_path), start=1)]


def parse_tasks(file_path: str) -> list[Task]:
    """Parse a JSON file of tasks."""

    return [parse_task(item, i) for i, item in enumerate(_load_list(file_path), start=1)]
