from datetime import datetime, timezone

import pytest

from cognitive_engine.adapters.json_adapter import state_to_dict, task_to_dict
from cognitive_engine.collaborators import InMemoryCache, InMemoryPersistence
from cognitive_engine.schema import CacheEntry, CognitiveState, EntityType, SyncState, Task
from cognitive_engine.sync import QUOTA_SNAPSHOT_KEY, OfflineRecorder, OfflineSyncReconciler

MORNING = datetime(2025, 3, 3, 8, 0, tzinfo=timezone.utc)
NOON = datetime(2025, 3, 3, 12, 0, tzinfo=timezone.utc)
EVENING = datetime(2025, 3, 3, 19, 0, tzinfo=timezone.utc)
CLOCK = lambda: EVENING  # noqa: E731


def make_env():
    persistence = InMemoryPersistence()
    persistence.create_user("u1", reset_at=datetime(2025, 4, 1, tzinfo=timezone.utc), used=4)
    cache = InMemoryCache()
    return persistence, cache, OfflineRecorder(cache, CLOCK), OfflineSyncReconciler(persistence, "u1", cache, CLOCK)


def checkin(at, energy=5):
    return CognitiveState(energy=energy, focus=5, mood=5, captured_at=at)


def entry(entity_type, payload, base=None, key=""):
    return CacheEntry(entity_type=entity_type, payload=payload, local_timestamp=EVENING, key=key, base=base)


@pytest.mark.asyncio
async def test_newer_local_checkin_wins():
    persistence, _, _, reconciler = make_env()
    await persistence.save_state("u1", checkin(MORNING))
    result = await reconciler.reconcile([entry(EntityType.COGNITIVE_STATE, state_to_dict(checkin(NOON, energy=2)))])
    assert result.applied == [checkin(NOON, energy=2)]
    assert (await persistence.get_current_state("u1")).energy == 2


@pytest.mark.asyncio
async def test_older_same_day_checkin_discarded():
    persistence, _, _, reconciler = make_env()
    await persistence.save_state("u1", checkin(NOON))
    stale = entry(EntityType.COGNITIVE_STATE, state_to_dict(checkin(MORNING, energy=9)))
    result = await reconciler.reconcile([stale])
    assert result.applied == []
    assert result.discarded == [stale]
    assert result.conflicts == []
    assert (await persistence.get_current_state("u1")).captured_at == NOON


@pytest.mark.asyncio
async def test_task_created_offline_is_applied():
    persistence, _, _, reconciler = make_env()
    task = Task("t1", "Call bank", complexity=2, estimated_minutes=10)
    result = await reconciler.reconcile([entry(EntityType.TASK, task_to_dict(task))])
    assert result.applied == [task]
    assert await persistence.get_tasks("u1") == [task]


@pytest.mark.asyncio
async def test_local_only_change_merges_fields():
    persistence, _, _, reconciler = make_env()
    base = Task("t1", "Call bank", complexity=2, estimated_minutes=10)
    await persistence.save_task("u1", base)
    local = Task("t1", "Call bank", complexity=2, estimated_minutes=10, completed=True)
    result = await reconciler.reconcile([entry(EntityType.TASK, task_to_dict(local), base=task_to_dict(base))])
    assert result.conflicts == []
    assert (await persistence.get_tasks("u1"))[0].completed is True


@pytest.mark.asyncio
async def test_both_sides_changed_remote_wins_with_conflict():
    persistence, _, _, reconciler = make_env()
    base = Task("t1", "Call bank", complexity=2, estimated_minutes=10)
    remote = Task("t1", "Call bank about card", complexity=2, estimated_minutes=10)
    await persistence.save_task("u1", remote)
    local = Task("t1", "Call bank", complexity=3, estimated_minutes=20)

    result = await reconciler.reconcile([entry(EntityType.TASK, task_to_dict(local), base=task_to_dict(base))])
    assert result.applied == []
    assert len(result.conflicts) == 1
    conflict = result.conflicts[0]
    assert conflict.entity_id == "t1"
    assert conflict.local["complexity"] == 3
    assert conflict.remote["title"] == "Call bank about card"
    assert conflict.message
    assert await persistence.get_tasks("u1") == [remote]


@pytest.mark.asyncio
async def test_cached_quota_never_written_back():
    persistence, cache, _, reconciler = make_env()
    fake = entry(EntityType.QUOTA, {"used": 0, "limit": 10, "remaining": 10})
    result = await reconciler.reconcile([fake])
    assert result.discarded == [fake]
    assert (await persistence.get_quota("u1")).used == 4
    assert cache.get(QUOTA_SNAPSHOT_KEY)["remaining"] == 6


@pytest.mark.asyncio
async def test_reconcile_pending_clears_settled_and_keeps_conflicts():
    persistence, cache, recorder, reconciler = make_env()
    base = Task("t1", "Call bank", complexity=2, estimated_minutes=10)
    await persistence.save_task("u1", Task("t1", "Call bank today", complexity=2, estimated_minutes=10))
    recorder.record(EntityType.TASK, "t1", task_to_dict(Task("t1", "Call bank", 2, 15)), base=task_to_dict(base))
    recorder.record(EntityType.TASK, "t2", task_to_dict(Task("t2", "Buy milk", 1, 5)))
    recorder.record(EntityType.COGNITIVE_STATE, NOON.isoformat(), state_to_dict(checkin(NOON)))

    result = await reconciler.reconcile_pending()
    assert len(result.applied) == 2
    assert len(result.conflicts) == 1
    assert cache.keys("pending:") == ["pending:task:t1"]
    assert cache.get("pending:task:t1")["sync_state"] == SyncState.CONFLICT.value
    assert recorder.pending_entries() == []


@pytest.mark.asyncio
async def test_recorder_keeps_first_base():
    _, _, recorder, _ = make_env()
    first = {"id": "t1", "title": "v0"}
    recorder.record(EntityType.TASK, "t1", {"id": "t1", "title": "v1"}, base=first)
    recorder.record(EntityType.TASK, "t1", {"id": "t1", "title": "v2"}, base={"id": "t1", "title": "v1"})
    (pending,) = recorder.pending_entries()
    assert pending.base == first
    assert pending.payload["title"] == "v2"


@pytest.mark.asyncio
async def test_unreachable_server_leaves_entries_pending():
    persistence, cache, recorder, reconciler = make_env()
    recorder.record(EntityType.TASK, "t2", task_to_dict(Task("t2", "Buy milk", 1, 5)))
    persistence.online = False
    result = await reconciler.reconcile_pending()
    assert result.applied == [] and result.discarded == []
    assert len(recorder.pending_entries()) == 1


@pytest.mark.asyncio
async def test_broken_cache_yields_empty_run():
    _, cache, _, reconciler = make_env()
    cache.available = False
    result = await reconciler.reconcile_pending()
    assert result.applied == [] and result.conflicts == []
