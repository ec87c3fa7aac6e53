"""
tutor_backend/services/usage_recorder.py
Tutor Usage Recorder

Emits one structured event per terminal tutor outcome into the ops log,
mirrored to the application log. Identities are anonymized tokens.
"""
import logging
import random
from typing import Optional

from tutor_backend.services.ops_metrics import OpsEventLog, OpsEventType

logger = logging.getLogger(__name__)

PREVIEW_CHARS = 160


class UsageRecorder:
    """
    Thin emitter over OpsEventLog.

    A sample of successful exchanges (preview_sample_rate) also carries a
    truncated prompt/response preview for quality review.
    """

    def __init__(
        self,
        ops_log: OpsEventLog,
        preview_sample_rate: float = 0.02,
        rng: Optional[random.Random] = None
    ):
        self.ops_log = ops_log
        self.preview_sample_rate = preview_sample_rate
        self._rng = rng or random.Random()

    def _should_sample(self) -> bool:
        return self._rng.random() < self.preview_sample_rate

    def record_success(
        self,
        identity: str,
        mode: str,
        plan: Optional[str],
        model: str,
        duration_ms: int,
        prompt: str,
        response: str
    ) -> None:
        preview = None
        if self._should_sample():
            preview = {"prompt": prompt[:PREVIEW_CHARS], "response": response[:PREVIEW_CHARS]}
            logger.info(f"[Ops] Sampled exchange for {identity}: {preview}")

        self.ops_log.record(
            OpsEventType.TUTOR_SUCCESS,
            identity=identity, mode=mode, plan=plan, model=model, preview=preview
        )
        self.ops_log.record(
            OpsEventType.TUTOR_LATENCY,
            identity=identity, mode=mode, plan=plan, model=model, duration_ms=duration_ms
        )
        logger.info(f"[Tutor] Success for {identity} via {model} in {duration_ms}ms (mode={mode}, plan={plan})")

    def record_safety_block(
        self,
        identity: str,
        mode: str,
        plan: Optional[str],
        reason: str,
        grade: Optional[int] = None
    ) -> None:
        self.ops_log.record(
            OpsEventType.TUTOR_SAFETY_BLOCK,
            identity=identity, mode=mode, plan=plan, reason=reason
        )
        logger.info(f"[Guard] Safety refusal for {identity}: {reason} (mode={mode}, grade={grade})")

    def record_plan_limit(
        self,
        identity: str,
        mode: str,
        plan: Optional[str],
        reason: str,
        status: int
    ) -> None:
        self.ops_log.record(
            OpsEventType.TUTOR_PLAN_LIMIT,
            identity=identity, mode=mode, plan=plan, reason=reason, status=status
        )
        logger.warning(f"[Tutor] Blocked {identity}: {reason} ({status}, plan={plan})")

    def record_error(
        self,
        identity: str,
        mode: str,
        plan: Optional[str],
        reason: str,
        status: int,
        duration_ms: Optional[int] = None
    ) -> None:
        self.ops_log.record(
            OpsEventType.TUTOR_ERROR,
            identity=identity, mode=mode, plan=plan, reason=reason,
            status=status, duration_ms=duration_ms
        )
        if status >= 500:
            logger.error(f"[Tutor] Failed for {identity}: {reason} ({status})")
        else:
            logger.warning(f"[Tutor] Rejected {identity}: {reason} ({status})")
