import asyncio
from datetime import datetime, timezone

import pytest

from cognitive_engine.collaborators import InMemoryPersistence
from cognitive_engine.config import EngineSettings
from cognitive_engine.errors import ValidationError
from cognitive_engine.quota import QuotaManager, add_billing_interval, default_limit
from cognitive_engine.schema import QuotaStatus, QuotaTier

RESET_AT = datetime(2025, 4, 1, tzinfo=timezone.utc)


def make_manager(used=0, limit=10, latency=0.0):
    persistence = InMemoryPersistence(latency=latency)
    persistence.create_user("u1", reset_at=RESET_AT, limit=limit, used=used)
    return persistence, QuotaManager(persistence, "u1", settings=EngineSettings())


@pytest.mark.asyncio
async def test_concurrent_reservations_never_overcount():
    persistence, manager = make_manager(latency=0.001)
    decisions = await asyncio.gather(*(manager.check_and_reserve() for _ in range(15)))
    assert sum(d.allowed for d in decisions) == 10
    assert sum(not d.allowed for d in decisions) == 5
    assert (await persistence.get_quota("u1")).used == 10


@pytest.mark.asyncio
async def test_reserve_reports_remaining_and_exhaustion():
    _, manager = make_manager(used=8)
    first = await manager.check_and_reserve()
    assert first.allowed and first.remaining == 1
    second = await manager.check_and_reserve()
    assert second.allowed and second.remaining == 0
    assert await manager.status() == QuotaStatus.EXHAUSTED
    third = await manager.check_and_reserve()
    assert not third.allowed
    assert third.tier == QuotaTier.FREE


@pytest.mark.asyncio
async def test_release_undoes_reservation():
    persistence, manager = make_manager(used=10)
    await manager.release()
    assert (await persistence.get_quota("u1")).used == 9
    assert await manager.status() == QuotaStatus.ACTIVE


@pytest.mark.asyncio
async def test_unreachable_storage_fails_closed():
    persistence, manager = make_manager()
    persistence.online = False
    decision = await manager.check_and_reserve()
    assert not decision.allowed
    assert decision.tier is None
    persistence.online = True
    assert (await persistence.get_quota("u1")).used == 0


@pytest.mark.asyncio
async def test_reset_not_due_is_noop():
    persistence, manager = make_manager(used=4)
    before = datetime(2025, 3, 31, 23, 59, tzinfo=timezone.utc)
    assert await manager.reset_if_due(before) is False
    assert await manager.reset_if_due(before) is False
    record = await persistence.get_quota("u1")
    assert record.used == 4
    assert record.reset_at == RESET_AT


@pytest.mark.asyncio
async def test_reset_rolls_from_previous_reset_at():
    persistence, manager = make_manager(used=10)
    late = datetime(2025, 4, 9, 12, 0, tzinfo=timezone.utc)
    assert await manager.reset_if_due(late) is True
    record = await persistence.get_quota("u1")
    assert record.used == 0
    assert record.reset_at == datetime(2025, 5, 1, tzinfo=timezone.utc)
    assert await manager.reset_if_due(late) is False


@pytest.mark.asyncio
async def test_upgrade_raises_limit_only():
    persistence, manager = make_manager(used=10)
    await manager.upgrade(100)
    record = await persistence.get_quota("u1")
    assert (record.limit, record.used, record.reset_at, record.tier) == (100, 10, RESET_AT, QuotaTier.PREMIUM)
    assert (await manager.check_and_reserve()).allowed


@pytest.mark.asyncio
async def test_upgrade_rejects_non_positive_limit():
    _, manager = make_manager()
    with pytest.raises(ValidationError):
        await manager.upgrade(0)


@pytest.mark.asyncio
async def test_batch_reset_only_touches_due_records():
    persistence = InMemoryPersistence()
    persistence.create_user("due", reset_at=RESET_AT, used=3)
    persistence.create_user("later", reset_at=datetime(2025, 4, 20, tzinfo=timezone.utc), used=3)
    assert await persistence.reset_expired_quotas(datetime(2025, 4, 2, tzinfo=timezone.utc)) == 1
    assert (await persistence.get_quota("due")).used == 0
    assert (await persistence.get_quota("later")).used == 3


def test_billing_interval_clamps_day():
    assert add_billing_interval(datetime(2025, 1, 31)) == datetime(2025, 2, 28)
    assert add_billing_interval(datetime(2024, 1, 31)) == datetime(2024, 2, 29)
    assert add_billing_interval(datetime(2025, 12, 15)) == datetime(2026, 1, 15)


def test_default_limits():
    settings = EngineSettings()
    assert default_limit(QuotaTier.FREE, settings) == 10
    assert default_limit(QuotaTier.PREMIUM, settings) >= 100


@pytest.mark.parametrize("used, limit, field", [(0, 0, "limit"), (-1, 10, "used"), (0, -5, "limit")])
def test_quota_record_rejects_invalid_counts(used, limit, field):
    with pytest.raises(ValidationError) as exc:
        InMemoryPersistence().create_user("u1", reset_at=RESET_AT, used=used, limit=limit)
    assert exc.value.field == field
