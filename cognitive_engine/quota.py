"""Monthly AI breakdown allowance with atomic reservation semantics."""

from __future__ import annotations

import calendar
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Optional

from cognitive_engine.config import EngineSettings, get_settings
from cognitive_engine.errors import StorageError, ValidationError
from cognitive_engine.schema import QuotaDecision, QuotaRecord, QuotaStatus, QuotaTier

if TYPE_CHECKING:
    from cognitive_engine.collaborators import Persistence

LOGGER = logging.getLogger(__name__)

# Failures that mean the persistence boundary could not perform the operation.
UNREACHABLE_ERRORS = (StorageError, ConnectionError, TimeoutError)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def add_billing_interval(moment: datetime) -> datetime:
    """Advance by one calendar month, clamping the day to the target month's length."""

    year = moment.year + moment.month // 12
    month = moment.month % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def status_of(record: QuotaRecord) -> QuotaStatus:
    if record.status == QuotaStatus.RESETTING:
        return QuotaStatus.RESETTING
    return QuotaStatus.EXHAUSTED if record.used >= record.limit else QuotaStatus.ACTIVE


def default_limit(tier: QuotaTier, settings: Optional[EngineSettings] = None) -> int:
    settings = settings or get_settings()
    if tier == QuotaTier.PREMIUM:
        return settings.premium_monthly_limit
    return settings.free_monthly_limit


class QuotaManager:
    """Per-user view of the server-side allowance counter.

    The client never computes `used + 1` itself: every mutation goes through
    a single conditional operation at the persistence boundary.
    """

    def __init__(
        self,
        persistence: "Persistence",
        user_id: str,
        settings: Optional[EngineSettings] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._persistence = persistence
        self.user_id = user_id
        self.settings = settings or get_settings()
        self._clock = clock

    async def check_and_reserve(self) -> QuotaDecision:
        """Count one request if the allowance permits; fail closed when storage is unreachable."""

        try:
            reservation = await self._persistence.atomic_reserve_quota(self.user_id)
        except UNREACHABLE_ERRORS as exc:
            LOGGER.warning("Reservation unavailable for user %s, denying: %s", self.user_id, exc)
            return QuotaDecision(allowed=False, remaining=0, tier=None)

        remaining = max(0, reservation.limit - reservation.used)
        if reservation.allowed:
            LOGGER.info("Reserved breakdown for user %s (%d remaining)", self.user_id, remaining)
        else:
            LOGGER.info("Breakdown denied for user %s, allowance used", self.user_id)
        return QuotaDecision(allowed=reservation.allowed, remaining=remaining, tier=reservation.tier)

    async def release(self) -> None:
        """Undo one reservation after a failed or cancelled AI call."""

        await self._persistence.release_quota(self.user_id)
        LOGGER.info("Released reservation for user %s", self.user_id)

    async def reset_if_due(self, now: Optional[datetime] = None) -> bool:
        """Roll the counter over when `now >= reset_at`. No-op otherwise."""

        moment = now or self._clock()
        reset = await self._persistence.reset_quota_if_due(self.user_id, moment)
        if reset:
            LOGGER.info("Monthly allowance reset for user %s", self.user_id)
        return reset

    async def upgrade(self, new_limit: Optional[int] = None, tier: QuotaTier = QuotaTier.PREMIUM) -> None:
        """Raise the limit immediately. `used` and `reset_at` are untouched."""

        limit = new_limit if new_limit is not None else default_limit(tier, self.settings)
        if limit <= 0:
            raise ValidationError("limit", "must be positive")
        await self._persistence.set_quota_limit(self.user_id, limit, tier)
        LOGGER.info("Allowance for user %s set to %d (%s)", self.user_id, limit, tier.value)

    async def snapshot(self) -> QuotaRecord:
        return await self._persistence.get_quota(self.user_id)

    async def status(self) -> QuotaStatus:
        return status_of(await self.snapshot())
