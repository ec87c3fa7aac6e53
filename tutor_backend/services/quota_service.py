"""
tutor_backend/services/quota_service.py
Daily Tutor Quota Enforcement

PURPOSE:
Cap successful tutor answers per identity per UTC calendar day.

LIMIT VALUES:
- None / "unlimited"  → no cap, remaining reported as None
- 0                   → tutor disabled (QuotaDisabledError)
- positive integer    → daily cap (QuotaExceededError once reached)

RESERVATION MODEL:
enforce() atomically checks the cap and reserves one slot (pending).
record() converts the reservation into a consumed answer.
release() hands the reservation back (refusal, failure, cancellation).
Counters are keyed per UTC day, and record()/release() settle against the
day the slot was reserved on, so a request straddling midnight never
charges the new day.
Concurrent requests for the same key therefore can never both observe
the last free slot, and no quota is consumed by a call that did not
produce an answer.
"""
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple, Union

from tutor_backend.errors import QuotaDisabledError, QuotaExceededError
from tutor_backend.realtime.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

UNLIMITED = "unlimited"

DailyLimit = Optional[Union[int, str]]

# Counters outlive their day by a margin so a late release still lands
QUOTA_TTL_SECONDS = 2 * 24 * 60 * 60


@dataclass(frozen=True)
class QuotaState:
    day: str
    count: int = 0
    pending: int = 0


def today_key(now: float) -> str:
    """UTC calendar day (YYYY-MM-DD) for an epoch timestamp."""
    return datetime.fromtimestamp(now, tz=timezone.utc).strftime("%Y-%m-%d")


def effective_count(now: float, stored: Optional[QuotaState]) -> int:
    """Consumed answers for today; any state from another day counts as zero."""
    if stored is None or stored.day != today_key(now):
        return 0
    return stored.count


def _state_for(day: str, stored: Optional[QuotaState]) -> QuotaState:
    if stored is None or stored.day != day:
        return QuotaState(day=day)
    return stored


def is_unlimited(limit: DailyLimit) -> bool:
    return limit is None or limit == UNLIMITED


def merge_tutor_limits(plan_limit: DailyLimit, learner_limit: Optional[int]) -> DailyLimit:
    """
    Combine the plan's daily limit with a per-learner override.

    - No override → plan limit unchanged
    - Override is clamped at zero
    - Plan absent or "unlimited" → override wins
    - Otherwise the stricter of the two
    """
    if learner_limit is None:
        return plan_limit
    normalized = max(0, int(learner_limit))
    if is_unlimited(plan_limit):
        return normalized
    return min(int(plan_limit), normalized)


class DailyQuotaTracker:
    """
    Date-scoped quota counters on top of the shared key-value store.

    Keys are anonymized usage keys; raw identities never reach this layer.
    """

    def __init__(self, store: KeyValueStore, clock: Callable[[], float] = time.time):
        self.store = store
        self._clock = clock

    def _make_key(self, usage_key: str, day: str) -> str:
        return f"quota:{usage_key}:{day}"

    def today(self) -> str:
        return today_key(self._clock())

    async def enforce(
        self,
        limit: DailyLimit,
        usage_key: str,
        plan_slug: Optional[str] = None,
        day: Optional[str] = None
    ) -> Optional[int]:
        """
        Check the daily cap and reserve one answer slot.

        Args:
            limit: Effective daily limit (see module docstring)
            usage_key: Anonymized usage key
            plan_slug: Plan label for the user-facing message
            day: Quota day to reserve on, defaults to today

        Returns:
            Remaining answers before this call, or None if unlimited

        Raises:
            QuotaDisabledError: limit is zero
            QuotaExceededError: cap already reached today
        """
        if is_unlimited(limit):
            return None

        limit = int(limit)
        if limit <= 0:
            logger.warning(f"[Quota] Tutor disabled by limit for {usage_key} (plan={plan_slug})")
            raise QuotaDisabledError()

        day = day or self.today()

        def _reserve(current: Optional[QuotaState]) -> Tuple[QuotaState, Optional[int]]:
            state = _state_for(day, current)
            used = state.count + state.pending
            if used >= limit:
                return state, None
            reserved = QuotaState(day=state.day, count=state.count, pending=state.pending + 1)
            return reserved, max(0, limit - used)

        remaining = await self.store.update(
            self._make_key(usage_key, day), _reserve, ttl=QUOTA_TTL_SECONDS
        )
        if remaining is None:
            logger.warning(f"[Quota] Daily limit reached for {usage_key} (plan={plan_slug}, limit={limit})")
            raise QuotaExceededError(plan_slug=plan_slug, limit=limit)
        return remaining

    async def record(self, limit: DailyLimit, usage_key: str, day: Optional[str] = None) -> Optional[int]:
        """
        Consume the reservation taken by enforce() after a successful answer.

        Pass the day given to enforce() so the answer counts against the
        day it was requested on.

        Returns:
            Remaining answers after this one, or None if unlimited
        """
        if is_unlimited(limit):
            return None
        limit = int(limit)
        if limit <= 0:
            return 0

        day = day or self.today()

        def _commit(current: Optional[QuotaState]) -> Tuple[QuotaState, int]:
            state = _state_for(day, current)
            committed = QuotaState(
                day=state.day,
                count=state.count + 1,
                pending=max(0, state.pending - 1)
            )
            return committed, max(0, limit - committed.count)

        return await self.store.update(self._make_key(usage_key, day), _commit, ttl=QUOTA_TTL_SECONDS)

    async def release(self, limit: DailyLimit, usage_key: str, day: Optional[str] = None) -> None:
        """Return an unused reservation. No-op for unlimited or disabled limits."""
        if is_unlimited(limit) or int(limit) <= 0:
            return

        day = day or self.today()

        def _release(current: Optional[QuotaState]) -> Tuple[Optional[QuotaState], None]:
            if current is None:
                return None, None
            state = _state_for(day, current)
            return QuotaState(day=state.day, count=state.count, pending=max(0, state.pending - 1)), None

        await self.store.update(self._make_key(usage_key, day), _release, ttl=QUOTA_TTL_SECONDS)

    async def used_today(self, usage_key: str) -> int:
        """Consumed answers for today (reservations excluded)."""
        now = self._clock()
        stored = await self.store.get(self._make_key(usage_key, today_key(now)))
        return effective_count(now, stored)
