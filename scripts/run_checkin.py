"""Compute the adaptation record and visible tasks for a check-in file."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from cognitive_engine.adapters import csv_adapter, json_adapter
from cognitive_engine.adaptation import adapt
from cognitive_engine.task_filter import filter_tasks


def _load_tasks(path: Path):
    suffix = path.suffix.lower()
    if suffix == ".csv":
        return csv_adapter.parse(str(path))
    if suffix == ".json":
        return json_adapter.parse_tasks(str(path))
    raise ValueError("Unsupported input format, expected .csv or .json")


def main() -> None:
    parser = argparse.ArgumentParser(description="Run a cognitive-engine check-in")
    parser.add_argument("--state", required=True, help="Path to a JSON list of check-ins")
    parser.add_argument("--tasks", required=True, help="Path to CSV/JSON tasks file")
    parser.add_argument("--include-completed", action="store_true", help="Keep completed tasks visible")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    states = json_adapter.parse_states(args.state)
    current = max(states, key=lambda s: s.captured_at) if states else None
    adaptation = adapt(current)
    tasks = _load_tasks(Path(args.tasks))
    visible = filter_tasks(tasks, adaptation.complexity_ceiling, args.include_completed)

    report = {
        "adaptation": {key: getattr(value, "value", value) for key, value in asdict(adaptation).items()},
        "visible_tasks": [json_adapter.task_to_dict(task) for task in visible],
        "hidden_count": len(tasks) - len(visible),
    }
    print(json.dumps(report, indent=2))

    outputs_dir = Path("outputs")
    outputs_dir.mkdir(parents=True, exist_ok=True)
    out_path = outputs_dir / "checkin_report.json"
    out_path.write_text(json.dumps(report, indent=2), encoding="utf-8")
    print(f"Saved check-in report to {out_path}")


if __name__ == "__main__":
    main()
