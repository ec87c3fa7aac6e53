"""
tutor_backend/services/tutor_service.py
Tutor Request Orchestration

PIPELINE (each stage may abort with a TutorError):
1. Anonymize caller identities, derive the usage key
2. Rate limits (IP, then learner)
3. Role / plan gating (learning mode)
4. Learner context (cached fan-out)
5. Merge plan + learner limits, guardian switch, reserve daily quota
6. Sanitize inputs
7. Safety classification → canned refusal (no model call, no quota)
8. Duplicate-prompt suppression
9. Compose messages, invoke primary → fallback model
10. Validate output, commit quota, emit usage events

GUARANTEES:
- Every terminal outcome emits exactly one outcome event
- Quota is consumed only by a delivered answer; reservations are
  released on refusal, error, or cancellation
- No lock is held while the model call is in flight
"""
import logging
import time
from typing import Optional

from tutor_backend.ai.anonymizer import anonymize
from tutor_backend.ai.context import LEARNING_MODE, StudentContext
from tutor_backend.ai.dedup import DuplicatePromptSuppressor
from tutor_backend.ai.guards import SafetyClassifier
from tutor_backend.ai.prompts import build_tutor_context, compose_messages
from tutor_backend.errors import (
    TutorError,
    ErrorCode,
    RateLimitedError,
    DuplicateRequestError,
    ForbiddenRoleError,
    PlanGatedError,
    GuardianBlockedError,
)
from tutor_backend.realtime.rate_limit import SlidingWindowRateLimiter
from tutor_backend.schemas.tutor import TutorRequest, CallerContext, TutorResponse
from tutor_backend.services.guardrails import OutputValidator
from tutor_backend.services.llm_client import LLMClient
from tutor_backend.services.quota_service import DailyQuotaTracker, merge_tutor_limits
from tutor_backend.services.student_context_service import StudentContextService
from tutor_backend.services.usage_recorder import UsageRecorder

logger = logging.getLogger(__name__)

ANONYMOUS_KEY = "anonymous"
GUARDRAIL_MODEL = "guardrail"

# Refusals reported as plan-limit events rather than errors
PLAN_LIMIT_CODES = {
    ErrorCode.RATE_LIMITED,
    ErrorCode.QUOTA_DISABLED,
    ErrorCode.QUOTA_EXCEEDED,
    ErrorCode.PLAN_GATED,
    ErrorCode.FORBIDDEN_ROLE,
    ErrorCode.FORBIDDEN_BY_GUARDIAN,
}


class TutorService:
    """
    Orchestrates one tutor request end to end.

    All collaborators are injected; see main.py for the production wiring.
    """

    def __init__(
        self,
        learner_limiter: SlidingWindowRateLimiter,
        ip_limiter: SlidingWindowRateLimiter,
        quota: DailyQuotaTracker,
        context_service: StudentContextService,
        dedup: DuplicatePromptSuppressor,
        llm: LLMClient,
        usage: UsageRecorder
    ):
        self.learner_limiter = learner_limiter
        self.ip_limiter = ip_limiter
        self.quota = quota
        self.context_service = context_service
        self.dedup = dedup
        self.llm = llm
        self.usage = usage

    async def _enforce_rate_limits(self, hashed_user: Optional[str], hashed_ip: Optional[str]) -> None:
        if hashed_ip:
            result = await self.ip_limiter.check(f"ip:{hashed_ip}")
            if not result.allowed:
                raise RateLimitedError()
        if hashed_user:
            result = await self.learner_limiter.check(f"user:{hashed_user}")
            if not result.allowed:
                raise RateLimitedError()

    async def handle(self, request: TutorRequest, caller: CallerContext) -> TutorResponse:
        """
        Answer one tutor prompt.

        Returns:
            TutorResponse (model "guardrail" for safety refusals)

        Raises:
            TutorError: Any gated / failed outcome, already recorded
        """
        started = time.monotonic()
        mode = request.mode
        learning = mode == LEARNING_MODE
        plan = caller.plan
        plan_slug = plan.slug if plan else None

        hashed_user = anonymize(caller.learner_id)
        hashed_ip = anonymize(caller.client_ip)
        usage_key = hashed_user or hashed_ip or ANONYMOUS_KEY

        tutor_limit = None
        quota_day = None
        reserved = False

        try:
            await self._enforce_rate_limits(hashed_user, hashed_ip)

            if learning and caller.role and caller.role != "student":
                raise ForbiddenRoleError()
            if learning and plan is not None and plan.ai_access is False:
                raise PlanGatedError()

            student_context: Optional[StudentContext] = None
            if learning and caller.learner_id:
                student_context = await self.context_service.get(caller.learner_id)

            remaining: Optional[int] = None
            if learning:
                tutor_limit = merge_tutor_limits(
                    plan.tutor_daily_limit if plan else None,
                    student_context.tutor_daily_limit if student_context else None,
                )
                if student_context is not None and not student_context.allow_tutor:
                    raise GuardianBlockedError()
                quota_day = self.quota.today()
                remaining = await self.quota.enforce(tutor_limit, usage_key, plan_slug, day=quota_day)
                reserved = remaining is not None

            tutor_context = build_tutor_context(
                request.prompt,
                mode=mode,
                system_prompt=request.system_prompt,
                knowledge=request.knowledge,
                student_context=student_context,
            )

            grade = student_context.grade if student_context else None
            reason = SafetyClassifier.classify(tutor_context.prompt, grade)
            if reason:
                self.usage.record_safety_block(usage_key, mode, plan_slug, reason, grade=grade)
                return TutorResponse(
                    message=SafetyClassifier.build_refusal(reason, grade),
                    model=GUARDRAIL_MODEL,
                    remaining=remaining,
                    limit=tutor_limit if learning else None,
                    plan=plan_slug if learning else None,
                )

            if not await self.dedup.check_and_record(usage_key, tutor_context.prompt):
                raise DuplicateRequestError()

            messages = compose_messages(tutor_context)
            result = await self.llm.invoke_with_fallback(messages)
            answer = OutputValidator.validate(result.text)

            if reserved:
                remaining = await self.quota.record(tutor_limit, usage_key, day=quota_day)
                reserved = False
            else:
                remaining = None

            self.usage.record_success(
                usage_key,
                mode,
                plan_slug,
                model=result.model,
                duration_ms=_elapsed_ms(started),
                prompt=tutor_context.prompt,
                response=answer,
            )
            return TutorResponse(
                message=answer,
                model=result.model,
                remaining=remaining,
                limit=tutor_limit if learning else None,
                plan=plan_slug if learning else None,
            )

        except TutorError as e:
            if e.code in PLAN_LIMIT_CODES:
                self.usage.record_plan_limit(usage_key, mode, plan_slug, e.code, e.status_code)
            else:
                self.usage.record_error(
                    usage_key, mode, plan_slug, e.code, e.status_code,
                    duration_ms=_elapsed_ms(started)
                )
            raise
        except Exception:
            self.usage.record_error(
                usage_key, mode, plan_slug, ErrorCode.INTERNAL_ERROR, 500,
                duration_ms=_elapsed_ms(started)
            )
            raise
        finally:
            if reserved:
                await self.quota.release(tutor_limit, usage_key, day=quota_day)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
