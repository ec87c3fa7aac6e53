"""
Sliding Window Rate Limiting

Bounds tutor request rate per anonymized identity over a rolling window.

Guarantees:
- Per-key atomic prune + append + compare (store.update)
- Every check is recorded, including blocked ones, so hammering
  the endpoint keeps the caller blocked instead of probing for a gap
- Keys are fully partitioned; one caller never blocks another
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from tutor_backend.realtime.kv_store import KeyValueStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int


class SlidingWindowRateLimiter:
    """
    Timestamp-list sliding window.

    Per key the store holds the call timestamps inside the trailing window;
    stale timestamps are pruned lazily on each check.
    """

    def __init__(
        self,
        store: KeyValueStore,
        limit: int,
        window_seconds: float,
        namespace: str,
        clock: Callable[[], float] = time.time
    ):
        self.store = store
        self.limit = limit
        self.window_seconds = window_seconds
        self.namespace = namespace
        self._clock = clock

    def _make_key(self, identifier: str) -> str:
        return f"ratelimit:{self.namespace}:{identifier}"

    async def check(self, identifier: str) -> RateLimitResult:
        """
        Record a call for identifier and decide whether it may proceed.

        Args:
            identifier: Anonymized key (e.g. "user:<token>")
        Returns:
            RateLimitResult with allowed flag and remaining calls in window
        """
        now = self._clock()
        window_start = now - self.window_seconds
        limit = self.limit

        def _record(current: Optional[List[float]]):
            recent = [ts for ts in (current or []) if ts > window_start]
            recent.append(now)
            count = len(recent)
            return recent, RateLimitResult(
                allowed=count <= limit,
                remaining=max(0, limit - count)
            )

        result = await self.store.update(
            self._make_key(identifier), _record, ttl=self.window_seconds
        )
        if not result.allowed:
            logger.warning(f"[RateLimit] {self.namespace} window exhausted for {identifier}")
        return result
