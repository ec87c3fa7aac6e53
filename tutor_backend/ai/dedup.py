"""
Duplicate-Prompt Suppressor

Single-slot memory per usage key: only the immediately preceding prompt
is compared. A different prompt always overwrites the slot.
"""
import hashlib
import logging
import re
import time
from typing import Callable, Optional, Tuple

from tutor_backend.realtime.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def normalize_prompt(prompt: str) -> str:
    """Lowercase, collapse whitespace, trim."""
    return _WHITESPACE.sub(" ", prompt.lower()).strip()


def prompt_digest(prompt: str) -> str:
    return hashlib.sha256(normalize_prompt(prompt).encode("utf-8")).hexdigest()


class DuplicatePromptSuppressor:

    def __init__(
        self,
        store: KeyValueStore,
        window_seconds: float = 30,
        clock: Callable[[], float] = time.time
    ):
        self.store = store
        self.window_seconds = window_seconds
        self._clock = clock

    def _make_key(self, usage_key: str) -> str:
        return f"dedup:{usage_key}"

    async def check_and_record(self, usage_key: str, prompt: str) -> bool:
        """
        Returns False when prompt repeats the previous one inside the window.

        A rejected duplicate leaves the original timestamp in place, so the
        window is measured from the first accepted submission.
        """
        digest = prompt_digest(prompt)
        now = self._clock()
        window = self.window_seconds

        def _check(current: Optional[Tuple[str, float]]):
            if current is not None:
                last_digest, last_seen = current
                if last_digest == digest and now - last_seen < window:
                    return current, False
            return (digest, now), True

        allowed = await self.store.update(self._make_key(usage_key), _check, ttl=window)
        if not allowed:
            logger.info(f"[Dedup] Duplicate prompt suppressed for {usage_key}")
        return allowed
