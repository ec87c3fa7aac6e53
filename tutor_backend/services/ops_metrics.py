"""
tutor_backend/services/ops_metrics.py
Operational Event Log

Bounded, time-pruned in-memory log of tutor outcomes consumed by the ops
snapshot endpoint. Holds at most MAX_EVENTS events, none older than
RETAIN_SECONDS. Events carry anonymized identities only.
"""
import time
from collections import Counter, deque
from dataclasses import dataclass, asdict
from typing import Any, Callable, Deque, Dict, List, Optional

MAX_EVENTS = 1000
RETAIN_SECONDS = 24 * 60 * 60
DEFAULT_WINDOW_SECONDS = 60 * 60
TOP_REASONS = 5
RECENT_EVENTS = 30


class OpsEventType:
    TUTOR_SUCCESS = "tutor_success"
    TUTOR_ERROR = "tutor_error"
    TUTOR_SAFETY_BLOCK = "tutor_safety_block"
    TUTOR_PLAN_LIMIT = "tutor_plan_limit"
    TUTOR_LATENCY = "tutor_latency"

    ALL = (TUTOR_SUCCESS, TUTOR_ERROR, TUTOR_SAFETY_BLOCK, TUTOR_PLAN_LIMIT, TUTOR_LATENCY)


@dataclass
class OpsEvent:
    type: str
    timestamp: float
    reason: Optional[str] = None
    identity: Optional[str] = None
    mode: Optional[str] = None
    plan: Optional[str] = None
    status: Optional[int] = None
    duration_ms: Optional[int] = None
    model: Optional[str] = None
    preview: Optional[Dict[str, str]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


class OpsEventLog:

    def __init__(
        self,
        max_events: int = MAX_EVENTS,
        retain_seconds: float = RETAIN_SECONDS,
        clock: Callable[[], float] = time.time
    ):
        self.retain_seconds = retain_seconds
        self._clock = clock
        self._events: Deque[OpsEvent] = deque(maxlen=max_events)

    def _prune(self, now: float) -> None:
        cutoff = now - self.retain_seconds
        while self._events and self._events[0].timestamp < cutoff:
            self._events.popleft()

    def record(self, event_type: str, **fields: Any) -> OpsEvent:
        """Append an event stamped with the current time."""
        now = self._clock()
        self._prune(now)
        event = OpsEvent(type=event_type, timestamp=now, **fields)
        self._events.append(event)
        return event

    def events(self) -> List[OpsEvent]:
        self._prune(self._clock())
        return list(self._events)

    def snapshot(self, window_seconds: float = DEFAULT_WINDOW_SECONDS) -> Dict[str, Any]:
        """
        Aggregate the trailing window.

        Returns:
            totals per event type, top safety / plan-limit reasons,
            and the most recent events newest first
        """
        now = self._clock()
        self._prune(now)
        cutoff = now - window_seconds
        window_events = [event for event in self._events if event.timestamp >= cutoff]

        totals = {event_type: 0 for event_type in OpsEventType.ALL}
        safety_reasons: Counter = Counter()
        plan_limit_reasons: Counter = Counter()

        for event in window_events:
            totals[event.type] = totals.get(event.type, 0) + 1
            if event.type == OpsEventType.TUTOR_SAFETY_BLOCK and event.reason:
                safety_reasons[event.reason] += 1
            if event.type == OpsEventType.TUTOR_PLAN_LIMIT and event.reason:
                plan_limit_reasons[event.reason] += 1

        def top(counter: Counter) -> List[Dict[str, Any]]:
            return [
                {"label": label, "count": count}
                for label, count in counter.most_common(TOP_REASONS)
            ]

        recent = list(self._events)[-RECENT_EVENTS:]
        recent.reverse()

        return {
            "window_seconds": window_seconds,
            "totals": totals,
            "top_safety_reasons": top(safety_reasons),
            "top_plan_limit_reasons": top(plan_limit_reasons),
            "recent": [event.to_dict() for event in recent],
        }

    def __len__(self) -> int:
        return len(self._events)
