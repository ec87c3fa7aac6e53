"""
Key-Value Store Interface + In-Memory Implementation

Shared state for rate-limit windows, quota counters, the learner
context cache and dedup slots.

Guarantees:
- Per-key atomic read-modify-write via update()
- Locking sharded by key; different keys never share a global lock
- Optional per-entry TTL, expired entries read as missing
- Expired entries are swept on writes at most once per purge_interval,
  so keys that are never read again do not accumulate

State is process-local. Multiple instances behind a load balancer each get
their own rate/quota/dedup pools unless a shared implementation is swapped in.
"""
import abc
import asyncio
import time
from typing import Any, Callable, Dict, Optional, Tuple

# fn(current_value) -> (new_value, result). new_value None deletes the key.
UpdateFn = Callable[[Optional[Any]], Tuple[Optional[Any], Any]]

DEFAULT_SHARDS = 64
DEFAULT_PURGE_INTERVAL_SECONDS = 60.0


class KeyValueStore(abc.ABC):
    """
    Abstract store with TTL and per-key compare-and-set semantics.

    Pipeline components only talk to this interface, so a distributed
    implementation can replace the in-process one without touching them.
    """

    @abc.abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the live value for key, or None."""
        raise NotImplementedError

    @abc.abstractmethod
    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store value, expiring after ttl seconds when given."""
        raise NotImplementedError

    @abc.abstractmethod
    async def update(self, key: str, fn: UpdateFn, ttl: Optional[float] = None) -> Any:
        """
        Atomically transform the value stored under key.

        Args:
            key: Entry key
            fn: Pure function of the current value (None when missing/expired)
                returning (new_value, result)
            ttl: Expiry applied to the new value
        Returns:
            The result element returned by fn
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def delete(self, key: str) -> None:
        """Remove key if present."""
        raise NotImplementedError


class InMemoryKeyValueStore(KeyValueStore):
    """
    Sharded in-process store.

    Each key hashes onto one of `shards` asyncio locks, so concurrent
    operations on the same key serialize while unrelated keys proceed
    independently.
    """

    def __init__(
        self,
        shards: int = DEFAULT_SHARDS,
        clock: Callable[[], float] = time.time,
        purge_interval: float = DEFAULT_PURGE_INTERVAL_SECONDS
    ):
        self._clock = clock
        self.purge_interval = purge_interval
        self._last_purge = clock()
        self._locks = [asyncio.Lock() for _ in range(max(1, shards))]
        # {key: (value, expires_at or None)}
        self._data: Dict[str, Tuple[Any, Optional[float]]] = {}

    def _lock_for(self, key: str) -> asyncio.Lock:
        return self._locks[hash(key) % len(self._locks)]

    def _read(self, key: str, now: float) -> Optional[Any]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= now:
            del self._data[key]
            return None
        return value

    def _write(self, key: str, value: Optional[Any], ttl: Optional[float], now: float) -> None:
        self._maybe_purge(now)
        if value is None:
            self._data.pop(key, None)
            return
        expires_at = now + ttl if ttl is not None else None
        self._data[key] = (value, expires_at)

    def _maybe_purge(self, now: float) -> None:
        # Synchronous; lock holders never await between read and write.
        if now - self._last_purge >= self.purge_interval:
            self.purge_expired()

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock_for(key):
            return self._read(key, self._clock())

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        async with self._lock_for(key):
            self._write(key, value, ttl, self._clock())

    async def update(self, key: str, fn: UpdateFn, ttl: Optional[float] = None) -> Any:
        async with self._lock_for(key):
            now = self._clock()
            new_value, result = fn(self._read(key, now))
            self._write(key, new_value, ttl, now)
            return result

    async def delete(self, key: str) -> None:
        async with self._lock_for(key):
            self._data.pop(key, None)

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns number of entries removed."""
        now = self._clock()
        self._last_purge = now
        expired = [
            key for key, (_, expires_at) in self._data.items()
            if expires_at is not None and expires_at <= now
        ]
        for key in expired:
            del self._data[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._data)
