"""Demo script for cognitive-engine."""

import asyncio
import logging
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from cognitive_engine.adapters.csv_adapter import parse
from cognitive_engine.adapters.json_adapter import parse_states
from cognitive_engine.breakdown import BreakdownOrchestrator
from cognitive_engine.checkins import CheckInLog
from cognitive_engine.collaborators import InMemoryCache, InMemoryPersistence, ScriptedGenerator
from cognitive_engine.quota import QuotaManager
from cognitive_engine.sync import OfflineSyncReconciler
from cognitive_engine.task_filter import visible_tasks

USER_ID = "demo-user"


async def run() -> None:
    persistence = InMemoryPersistence()
    persistence.create_user(USER_ID, reset_at=datetime.now(timezone.utc) + timedelta(days=20))
    cache = InMemoryCache()
    log = CheckInLog(persistence, USER_ID, cache)

    for state in parse_states("examples/sample_checkins.json"):
        await log.submit(state)
    current = await log.current()

    tasks = parse("examples/sample_tasks.csv")
    for task in tasks:
        await persistence.save_task(USER_ID, task)
    print("Visible:", [task.title for task in visible_tasks(tasks, current)])

    reply = '{"steps": [{"title": "Open the email", "minutes": 2}, {"title": "Write two lines", "minutes": 5}, {"title": "Send it", "minutes": 3}]}'
    orchestrator = BreakdownOrchestrator(
        QuotaManager(persistence, USER_ID), ScriptedGenerator([reply, TimeoutError()]), persistence
    )
    print("AI breakdown:", await orchestrator.request_breakdown(tasks[0], current))
    print("Fallback breakdown:", await orchestrator.request_breakdown(tasks[1], current))

    persistence.online = False
    print("Offline:", await orchestrator.request_breakdown(tasks[5], current))
    persistence.online = True
    print("Drained:", await orchestrator.drain_pending())

    print("Reconcile:", await OfflineSyncReconciler(persistence, USER_ID, cache).reconcile_pending())


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    asyncio.run(run())


if __name__ == "__main__":
    main()
