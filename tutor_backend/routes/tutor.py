"""
tutor_backend/routes/tutor.py
AI Tutor API

POST /api/ai/tutor  - answer a learner / marketing prompt
GET  /api/ai/ops    - ops snapshot of recent tutor outcomes (admin only)

Caller identity and plan come from headers set by the trusted gateway,
never from the request body.
"""
import logging
from typing import Optional, Union

from fastapi import APIRouter, Depends, Query, Request

from tutor_backend.errors import ForbiddenRoleError
from tutor_backend.schemas.tutor import TutorRequest, TutorResponse, CallerContext, PlanContext
from tutor_backend.services.ops_metrics import OpsEventLog
from tutor_backend.services.quota_service import UNLIMITED
from tutor_backend.services.tutor_service import TutorService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai", tags=["ai-tutor"])

LEARNER_ID_HEADER = "x-learner-id"
ROLE_HEADER = "x-learner-role"
PLAN_SLUG_HEADER = "x-plan-slug"
PLAN_LIMIT_HEADER = "x-plan-tutor-limit"
PLAN_AI_ACCESS_HEADER = "x-plan-ai-access"

OPS_ROLES = ("admin",)


def get_tutor_service(request: Request) -> TutorService:
    return request.app.state.tutor_service


def get_ops_log(request: Request) -> OpsEventLog:
    return request.app.state.ops_log


def require_ops_role(request: Request) -> None:
    """Ops events carry sampled prompt previews; only admins may read them."""
    role = (request.headers.get(ROLE_HEADER) or "").strip().lower()
    if role not in OPS_ROLES:
        logger.warning(f"[Ops] Snapshot refused for role={role or None}")
        raise ForbiddenRoleError("Ops data is only available to admin accounts.")


def parse_daily_limit(raw: Optional[str]) -> Optional[Union[int, str]]:
    """'unlimited' | integer string | anything else → None"""
    if raw is None:
        return None
    value = raw.strip().lower()
    if value == UNLIMITED:
        return UNLIMITED
    try:
        return int(value)
    except ValueError:
        return None


def parse_bool_header(raw: Optional[str]) -> Optional[bool]:
    if raw is None:
        return None
    value = raw.strip().lower()
    if value in ("true", "1", "yes"):
        return True
    if value in ("false", "0", "no"):
        return False
    return None


def resolve_client_ip(request: Request) -> Optional[str]:
    """First X-Forwarded-For hop, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    return request.client.host if request.client else None


def get_caller_context(request: Request) -> CallerContext:
    headers = request.headers
    plan = None
    if any(name in headers for name in (PLAN_SLUG_HEADER, PLAN_LIMIT_HEADER, PLAN_AI_ACCESS_HEADER)):
        plan = PlanContext(
            slug=headers.get(PLAN_SLUG_HEADER) or None,
            tutor_daily_limit=parse_daily_limit(headers.get(PLAN_LIMIT_HEADER)),
            ai_access=parse_bool_header(headers.get(PLAN_AI_ACCESS_HEADER)),
        )
    return CallerContext(
        learner_id=headers.get(LEARNER_ID_HEADER) or None,
        role=headers.get(ROLE_HEADER) or None,
        client_ip=resolve_client_ip(request),
        plan=plan,
    )


@router.post("/tutor", response_model=TutorResponse)
async def ask_tutor(
    payload: TutorRequest,
    caller: CallerContext = Depends(get_caller_context),
    service: TutorService = Depends(get_tutor_service)
):
    """
    Answer a tutor prompt.

    Safety refusals are normal 200 responses with model "guardrail";
    every other refusal or failure uses the standard error envelope.
    """
    return await service.handle(payload, caller)


@router.get("/ops", dependencies=[Depends(require_ops_role)])
async def ops_snapshot(
    window_minutes: int = Query(60, ge=1, le=24 * 60),
    ops_log: OpsEventLog = Depends(get_ops_log)
):
    """Totals, top refusal reasons and recent tutor events."""
    return {
        "success": True,
        "data": ops_log.snapshot(window_seconds=window_minutes * 60)
    }
