"""Complexity-ceiling task visibility filter."""

from __future__ import annotations

from typing import Optional

from cognitive_engine.adaptation import adapt
from cognitive_engine.schema import CognitiveState, Task

MIN_CEILING = 1
MAX_CEILING = 5


def clamp_ceiling(ceiling: int) -> int:
    return max(MIN_CEILING, min(MAX_CEILING, int(ceiling)))


def filter_tasks(tasks: list[Task], ceiling: int, include_completed: bool = False) -> list[Task]:
    """Return tasks at or below the ceiling, keeping their original order."""

    bound = clamp_ceiling(ceiling)
    return [task for task in tasks if task.complexity <= bound and (include_completed or not task.completed)]


def visible_tasks(
    tasks: list[Task], state: Optional[CognitiveState], include_completed: bool = False
) -> list[Task]:
    """Filter tasks against the ceiling derived from the current check-in."""

    return filter_tasks(tasks, adapt(state).complexity_ceiling, include_completed)
