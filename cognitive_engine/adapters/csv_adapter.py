"""CSV adapter for task lists."""

from __future__ import annotations

import csv

from cognitive_engine.adapters.json_adapter import parse_task
from cognitive_engine.errors import ValidationError
from cognitive_engine.schema import Task


def parse(file_path: str) -> list[Task]:
    """Parse a CSV task export (id,title,complexity,estimated_minutes[,description,completed])."""

    with open(file_path, newline="", encoding="utf-8") as handle:
        reader = csv.DictReader(handle)
        if not reader.fieldnames:
            return []

        tasks: list[Task] = []
        for row_number, row in enumerate(reader, start=2):
            try:
                tasks.append(parse_task(row, row_number))
            except ValidationError as exc:
                raise ValidationError(exc.field, f"row {row_number}: {exc.reason.split(': ', 1)[-1]}") from exc
        return tasks
