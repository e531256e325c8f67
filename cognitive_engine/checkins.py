"""Per-user check-in log with read-after-write for the local actor."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from cognitive_engine.adapters.json_adapter import parse_state, state_to_dict
from cognitive_engine.errors import StorageError, ValidationError
from cognitive_engine.quota import UNREACHABLE_ERRORS
from cognitive_engine.schema import CognitiveState, EntityType
from cognitive_engine.sync import OfflineRecorder

if TYPE_CHECKING:
    from cognitive_engine.collaborators import LocalCache, Persistence

LOGGER = logging.getLogger(__name__)


class CheckInLog:
    """Holds the current cognitive state for one user.

    Callers pass the value returned by `current()` into `adapt()`; there is no
    process-wide state.
    """

    def __init__(self, persistence: "Persistence", user_id: str, cache: Optional["LocalCache"] = None) -> None:
        self._persistence = persistence
        self.user_id = user_id
        self._cache = cache
        self._latest: Optional[CognitiveState] = None

    @property
    def _cache_key(self) -> str:
        return f"state:{self.user_id}"

    async def submit(self, state: CognitiveState) -> CognitiveState:
        """Save a new check-in, queueing it offline when the server is unreachable."""

        if self._latest is None or state.captured_at >= self._latest.captured_at:
            self._latest = state

        try:
            await self._persistence.save_state(self.user_id, state)
        except UNREACHABLE_ERRORS as exc:
            LOGGER.warning("Check-in for user %s saved locally only: %s", self.user_id, exc)
            self._record_offline(state)

        self._cache_write(state)
        return state

    async def current(self) -> Optional[CognitiveState]:
        """Newest known check-in across this session, the server and the local cache."""

        candidates = [self._latest]
        try:
            candidates.append(await self._persistence.get_current_state(self.user_id))
        except UNREACHABLE_ERRORS as exc:
            LOGGER.warning("Server check-in unavailable for user %s: %s", self.user_id, exc)
            candidates.append(self._cache_read())

        known = [state for state in candidates if state is not None]
        return max(known, key=lambda s: s.captured_at) if known else None

    def _record_offline(self, state: CognitiveState) -> None:
        if self._cache is None:
            return
        try:
            OfflineRecorder(self._cache).record(
                EntityType.COGNITIVE_STATE, state.captured_at.isoformat(), state_to_dict(state)
            )
        except StorageError as exc:
            LOGGER.warning("Offline check-in for user %s not cached: %s", self.user_id, exc)

    def _cache_write(self, state: CognitiveState) -> None:
        if self._cache is None:
            return
        try:
            cached = self._cache_read()
            if cached is None or state.captured_at >= cached.captured_at:
                self._cache.set(self._cache_key, state_to_dict(state))
        except StorageError as exc:
            LOGGER.warning("Local cache unavailable for user %s: %s", self.user_id, exc)

    def _cache_read(self) -> Optional[CognitiveState]:
        if self._cache is None:
            return None
        try:
            raw = self._cache.get(self._cache_key)
            return parse_state(raw) if raw else None
        except (StorageError, ValidationError) as exc:
            LOGGER.warning("Cached check-in for user %s unreadable: %s", self.user_id, exc)
            return None
