"""Collaborator interfaces and in-memory reference implementations.

The persistence, text-generation and local cache collaborators live outside
this package. The `Protocol` classes describe what the engine consumes; the
`InMemory*` classes implement the same contracts for tests, demos and the CLI.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections import defaultdict
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Optional, Protocol

from cognitive_engine.errors import AIServiceError, StorageError
from cognitive_engine.quota import add_billing_interval, status_of
from cognitive_engine.schema import CognitiveState, QuotaRecord, QuotaStatus, QuotaTier, Task

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reservation:
    """Outcome of a conditional increment on the server-side counter."""

    allowed: bool
    used: int
    limit: int
    tier: QuotaTier


class Persistence(Protocol):
    async def ping(self) -> bool: ...

    async def get_current_state(self, user_id: str) -> Optional[CognitiveState]: ...

    async def save_state(self, user_id: str, state: CognitiveState) -> None: ...

    async def get_tasks(self, user_id: str) -> list[Task]: ...

    async def save_task(self, user_id: str, task: Task) -> None: ...

    async def get_quota(self, user_id: str) -> QuotaRecord: ...

    async def atomic_reserve_quota(self, user_id: str) -> Reservation: ...

    async def release_quota(self, user_id: str) -> None: ...

    async def reset_quota_if_due(self, user_id: str, now: datetime) -> bool: ...

    async def set_quota_limit(self, user_id: str, limit: int, tier: QuotaTier) -> None: ...

    async def reset_expired_quotas(self, now: datetime) -> int: ...


class TextGenerator(Protocol):
    async def generate_completion(self, prompt: str, max_tokens: int, timeout_ms: int) -> str: ...


class LocalCache(Protocol):
    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...

    def remove(self, key: str) -> None: ...

    def keys(self, prefix: str = "") -> list[str]: ...


class InMemoryPersistence:
    """Server stand-in with per-user isolation and a lock-guarded counter.

    Set `online = False` to simulate an unreachable backend; every call then
    raises `StorageError`. `latency` adds an `await` inside each operation so
    concurrent callers interleave the way they would over the network.
    """

    def __init__(self, latency: float = 0.0) -> None:
        self.online = True
        self.latency = latency
        self._states: dict[str, list[CognitiveState]] = defaultdict(list)
        self._tasks: dict[str, dict[str, Task]] = defaultdict(dict)
        self._quotas: dict[str, QuotaRecord] = {}
        self._quota_lock = asyncio.Lock()

    def create_user(
        self, user_id: str, reset_at: datetime, tier: QuotaTier = QuotaTier.FREE, limit: int = 10, used: int = 0
    ) -> QuotaRecord:
        record = QuotaRecord(tier=tier, used=used, limit=limit, reset_at=reset_at)
        self._quotas[user_id] = record
        return replace(record)

    async def _io(self) -> None:
        if not self.online:
            raise StorageError("persistence unreachable")
        await asyncio.sleep(self.latency)

    def _quota(self, user_id: str) -> QuotaRecord:
        try:
            return self._quotas[user_id]
        except KeyError as exc:
            raise StorageError(f"no allowance record for user {user_id}") from exc

    async def ping(self) -> bool:
        return self.online

    async def get_current_state(self, user_id: str) -> Optional[CognitiveState]:
        await self._io()
        states = self._states[user_id]
        return max(states, key=lambda s: s.captured_at) if states else None

    async def save_state(self, user_id: str, state: CognitiveState) -> None:
        await self._io()
        self._states[user_id].append(state)

    async def get_tasks(self, user_id: str) -> list[Task]:
        await self._io()
        return [copy.deepcopy(task) for task in self._tasks[user_id].values()]

    async def save_task(self, user_id: str, task: Task) -> None:
        await self._io()
        self._tasks[user_id][task.id] = copy.deepcopy(task)

    async def get_quota(self, user_id: str) -> QuotaRecord:
        await self._io()
        return replace(self._quota(user_id))

    async def atomic_reserve_quota(self, user_id: str) -> Reservation:
        async with self._quota_lock:
            await self._io()
            record = self._quota(user_id)
            allowed = record.status != QuotaStatus.RESETTING and record.used < record.limit
            if allowed:
                record.used += 1
            record.status = status_of(record)
            return Reservation(allowed=allowed, used=record.used, limit=record.limit, tier=record.tier)

    async def release_quota(self, user_id: str) -> None:
        async with self._quota_lock:
            await self._io()
            record = self._quota(user_id)
            record.used = max(0, record.used - 1)
            record.status = status_of(record)

    async def reset_quota_if_due(self, user_id: str, now: datetime) -> bool:
        async with self._quota_lock:
            await self._io()
            return self._reset_record(self._quota(user_id), now)

    def _reset_record(self, record: QuotaRecord, now: datetime) -> bool:
        if now < record.reset_at:
            return False
        record.status = QuotaStatus.RESETTING
        record.used = 0
        record.reset_at = add_billing_interval(record.reset_at)
        record.status = QuotaStatus.ACTIVE
        return True

    async def set_quota_limit(self, user_id: str, limit: int, tier: QuotaTier) -> None:
        async with self._quota_lock:
            await self._io()
            record = self._quota(user_id)
            record.limit = limit
            record.tier = tier
            record.status = status_of(record)

    async def reset_expired_quotas(self, now: datetime) -> int:
        async with self._quota_lock:
            await self._io()
            count = sum(1 for record in self._quotas.values() if self._reset_record(record, now))
        LOGGER.info("Batch reset rolled over %d allowance records", count)
        return count


class InMemoryCache:
    """Dictionary-backed local key/value store. `available = False` simulates a broken cache."""

    def __init__(self) -> None:
        self.available = True
        self._data: dict[str, Any] = {}

    def _check(self) -> None:
        if not self.available:
            raise StorageError("local cache unavailable")

    def get(self, key: str) -> Any:
        self._check()
        return copy.deepcopy(self._data.get(key))

    def set(self, key: str, value: Any) -> None:
        self._check()
        self._data[key] = copy.deepcopy(value)

    def remove(self, key: str) -> None:
        self._check()
        self._data.pop(key, None)

    def keys(self, prefix: str = "") -> list[str]:
        self._check()
        return sorted(key for key in self._data if key.startswith(prefix))


class ScriptedGenerator:
    """Text generator that replays canned replies; exceptions in the script are raised."""

    def __init__(self, replies: list[Any], delay: float = 0.0) -> None:
        self._replies = list(replies)
        self.delay = delay
        self.prompts: list[str] = []

    async def generate_completion(self, prompt: str, max_tokens: int, timeout_ms: int) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if not self._replies:
            raise AIServiceError("no scripted reply left")
        reply = self._replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return str(reply)
