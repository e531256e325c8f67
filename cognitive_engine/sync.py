"""Offline write recording and reconciliation with server truth."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Callable, Optional

from cognitive_engine import messages
from cognitive_engine.adapters.json_adapter import parse_state, parse_task, task_to_dict
from cognitive_engine.errors import StorageError, SyncConflictError, ValidationError
from cognitive_engine.quota import UNREACHABLE_ERRORS, utc_now
from cognitive_engine.schema import CacheEntry, CognitiveState, Conflict, EntityType, ReconcileResult, SyncState

if TYPE_CHECKING:
    from cognitive_engine.collaborators import LocalCache, Persistence

LOGGER = logging.getLogger(__name__)

PENDING_PREFIX = "pending:"
QUOTA_SNAPSHOT_KEY = "quota:snapshot"


def entry_to_dict(entry: CacheEntry) -> dict:
    return {
        "entity_type": entry.entity_type.value,
        "payload": entry.payload,
        "local_timestamp": entry.local_timestamp.isoformat(),
        "sync_state": entry.sync_state.value,
        "key": entry.key,
        "base": entry.base,
    }


def entry_from_dict(raw: dict) -> CacheEntry:
    return CacheEntry(
        entity_type=EntityType(raw["entity_type"]),
        payload=raw["payload"],
        local_timestamp=datetime.fromisoformat(raw["local_timestamp"]),
        sync_state=SyncState(raw.get("sync_state", SyncState.PENDING.value)),
        key=raw.get("key", ""),
        base=raw.get("base"),
    )


class OfflineRecorder:
    """Writes local edits to the cache as pending entries."""

    def __init__(self, cache: "LocalCache", clock: Callable[[], datetime] = utc_now) -> None:
        self._cache = cache
        self._clock = clock

    def record(
        self, entity_type: EntityType, entity_id: str, payload: dict, base: Optional[dict] = None
    ) -> CacheEntry:
        """Store a pending write. Repeated edits keep the first known-synced base."""

        key = f"{PENDING_PREFIX}{entity_type.value}:{entity_id}"
        existing = self._cache.get(key)
        if existing is not None and existing.get("base") is not None:
            base = existing["base"]
        entry = CacheEntry(
            entity_type=entity_type,
            payload=payload,
            local_timestamp=self._clock(),
            key=key,
            base=base,
        )
        self._cache.set(key, entry_to_dict(entry))
        return entry

    def pending_entries(self) -> list[CacheEntry]:
        entries = [entry_from_dict(self._cache.get(key)) for key in self._cache.keys(PENDING_PREFIX)]
        return [entry for entry in entries if entry.sync_state == SyncState.PENDING]


def _changed_fields(version: dict, base: dict) -> set[str]:
    return {name for name, value in version.items() if base.get(name) != value}


class OfflineSyncReconciler:
    """Merges cached local writes into server state for one user.

    Check-ins are last-write-wins by `captured_at`. Tasks merge field by field
    against the last synced version; when both sides changed, the server copy
    stays and a Conflict keeps the local edit. Cached allowance values are
    display hints only and are never written back.
    """

    def __init__(
        self,
        persistence: "Persistence",
        user_id: str,
        cache: Optional["LocalCache"] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._persistence = persistence
        self.user_id = user_id
        self._cache = cache
        self._clock = clock

    async def reconcile(self, local_cache: list[CacheEntry]) -> ReconcileResult:
        result = ReconcileResult()
        try:
            reachable = await self._persistence.ping()
        except UNREACHABLE_ERRORS:
            reachable = False
        if not reachable:
            LOGGER.warning("Skipping reconcile for user %s, server unreachable", self.user_id)
            return result

        states = [e for e in local_cache if e.entity_type == EntityType.COGNITIVE_STATE]
        tasks = sorted(
            (e for e in local_cache if e.entity_type == EntityType.TASK), key=lambda e: e.local_timestamp
        )
        quotas = [e for e in local_cache if e.entity_type == EntityType.QUOTA]

        try:
            await self._reconcile_states(states, result)
            await self._reconcile_tasks(tasks, result)
        except UNREACHABLE_ERRORS as exc:
            LOGGER.warning("Reconcile for user %s interrupted, remaining entries stay pending: %s", self.user_id, exc)

        for entry in quotas:
            self._discard(entry, result)

        await self._refresh_quota_snapshot()
        self._update_cache(local_cache)
        LOGGER.info(
            "Reconciled user %s: %d applied, %d conflicts, %d discarded",
            self.user_id,
            len(result.applied),
            len(result.conflicts),
            len(result.discarded),
        )
        return result

    async def reconcile_pending(self) -> ReconcileResult:
        """Reconcile whatever the local cache holds; a broken cache yields an empty run."""

        if self._cache is None:
            return ReconcileResult()
        try:
            entries = OfflineRecorder(self._cache, self._clock).pending_entries()
        except StorageError as exc:
            LOGGER.warning("Local cache unavailable, nothing to reconcile: %s", exc)
            return ReconcileResult()
        return await self.reconcile(entries)

    async def _reconcile_states(self, entries: list[CacheEntry], result: ReconcileResult) -> None:
        parsed: list[tuple[CognitiveState, CacheEntry]] = []
        for entry in entries:
            try:
                parsed.append((parse_state(entry.payload), entry))
            except ValidationError as exc:
                LOGGER.warning("Dropping unreadable cached check-in %s: %s", entry.key, exc)
                self._discard(entry, result)

        current: Optional[CognitiveState] = await self._persistence.get_current_state(self.user_id)
        for state, entry in sorted(parsed, key=lambda pair: pair[0].captured_at):
            stale = (
                current is not None
                and state.captured_at <= current.captured_at
                and state.captured_at.date() == current.captured_at.date()
            )
            if stale:
                self._discard(entry, result)
                continue

            await self._persistence.save_state(self.user_id, state)
            if current is None or state.captured_at > current.captured_at:
                current = state
            entry.sync_state = SyncState.SYNCED
            result.applied.append(state)

    async def _reconcile_tasks(self, entries: list[CacheEntry], result: ReconcileResult) -> None:
        remote_tasks = {task.id: task for task in await self._persistence.get_tasks(self.user_id)}
        for entry in entries:
            try:
                local = parse_task(entry.payload)
            except ValidationError as exc:
                LOGGER.warning("Dropping unreadable cached task %s: %s", entry.key, exc)
                self._discard(entry, result)
                continue

            local_dict = task_to_dict(local)
            remote = remote_tasks.get(local.id)
            if remote is None:
                await self._persistence.save_task(self.user_id, local)
                remote_tasks[local.id] = local
                entry.sync_state = SyncState.SYNCED
                result.applied.append(local)
                continue

            remote_dict = task_to_dict(remote)
            if local_dict == remote_dict:
                self._discard(entry, result)
                continue

            local_changes = _changed_fields(local_dict, entry.base) if entry.base is not None else set(local_dict)
            remote_changes = _changed_fields(remote_dict, entry.base) if entry.base is not None else set(remote_dict)

            if not local_changes:
                self._discard(entry, result)
            elif not remote_changes:
                merged = parse_task({**remote_dict, **{name: local_dict[name] for name in local_changes}})
                await self._persistence.save_task(self.user_id, merged)
                remote_tasks[merged.id] = merged
                entry.sync_state = SyncState.SYNCED
                result.applied.append(merged)
            else:
                entry.sync_state = SyncState.CONFLICT
                result.conflicts.append(
                    Conflict(
                        entity_type=EntityType.TASK,
                        entity_id=local.id,
                        local=local_dict,
                        remote=remote_dict,
                        detected_at=self._clock(),
                        message=messages.user_message(SyncConflictError(EntityType.TASK.value, local.id)),
                    )
                )

    async def _refresh_quota_snapshot(self) -> None:
        if self._cache is None:
            return
        try:
            record = await self._persistence.get_quota(self.user_id)
            self._cache.set(
                QUOTA_SNAPSHOT_KEY,
                {
                    "tier": record.tier.value,
                    "used": record.used,
                    "limit": record.limit,
                    "remaining": record.remaining,
                    "reset_at": record.reset_at.isoformat(),
                },
            )
        except UNREACHABLE_ERRORS as exc:
            LOGGER.warning("Allowance snapshot not refreshed for user %s: %s", self.user_id, exc)

    @staticmethod
    def _discard(entry: CacheEntry, result: ReconcileResult) -> None:
        entry.sync_state = SyncState.SYNCED
        result.discarded.append(entry)

    def _update_cache(self, entries: list[CacheEntry]) -> None:
        """Drop settled entries and keep conflicted ones visible for review."""

        if self._cache is None:
            return
        try:
            for entry in entries:
                if not entry.key:
                    continue
                if entry.sync_state == SyncState.SYNCED:
                    self._cache.remove(entry.key)
                elif entry.sync_state == SyncState.CONFLICT:
                    self._cache.set(entry.key, entry_to_dict(entry))
        except StorageError as exc:
            LOGGER.warning("Local cache cleanup skipped: %s", exc)
