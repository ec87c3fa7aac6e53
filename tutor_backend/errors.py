"""
tutor_backend/errors.py
Centralized Error Handling for the Tutor Pipeline

CORE PRINCIPLES:
- Every terminal failure carries a machine-readable reason code
- Errors are user-safe (no stack traces, no raw model output)
- Safety refusals are NOT errors; they are normal 200 responses

ERROR RESPONSE STRUCTURE:
{
    "success": false,
    "error": "ErrorType",
    "message": "Human-readable description",
    "code": "reason_code",
    "details": {} (optional)
}

HTTP STATUS CODE DISCIPLINE:
- 400: Empty / malformed prompt
- 402: Plan gated or daily quota exhausted
- 403: Role, guardian or disabled-quota refusal
- 422: Model output failed validation
- 429: Rate limited or duplicate prompt
- 500: Learner context unavailable / configuration problems
- 502: Upstream model unavailable after fallback
- 504: Single upstream attempt timed out
"""

import logging
from typing import Optional, Dict, Any

from fastapi import status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ErrorCode:
    """Reason codes shared by errors, ops events and logs"""

    VALIDATION = "validation"

    RATE_LIMITED = "rate_limited"
    DUPLICATE_REQUEST = "duplicate_request"

    QUOTA_DISABLED = "quota_disabled"
    QUOTA_EXCEEDED = "quota_exceeded"
    PLAN_GATED = "plan_gated"

    FORBIDDEN_ROLE = "forbidden_role"
    FORBIDDEN_BY_GUARDIAN = "forbidden_by_guardian"

    CONTEXT_UNAVAILABLE = "context_unavailable"

    TIMEOUT = "timeout"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    HALLUCINATION_DETECTED = "hallucination_detected"

    CONFIGURATION_ERROR = "configuration_error"
    INTERNAL_ERROR = "internal_error"


GENERIC_RETRY_MESSAGE = (
    "I couldn't put together a reliable answer that time. "
    "Please try again with a little more detail about what you're working on."
)

UPSTREAM_UNAVAILABLE_MESSAGE = "The tutor is unavailable right now. Please try again shortly."

GUARDIAN_DISABLED_MESSAGE = (
    "Your grown-up turned off tutor chats for now. Ask them if you need it back on."
)


class TutorError(Exception):
    """Base tutor exception with consistent structure"""

    def __init__(
        self,
        status_code: int,
        error: str,
        message: str,
        code: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.status_code = status_code
        self.error = error
        self.message = message
        self.code = code
        self.details = details
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        result = {
            "success": False,
            "error": self.error,
            "message": self.message,
            "code": self.code
        }
        if self.details:
            result["details"] = self.details
        return result

    def to_response(self) -> JSONResponse:
        """Convert to FastAPI JSONResponse"""
        return JSONResponse(status_code=self.status_code, content=self.to_dict())


class ValidationError(TutorError):
    """400 - Prompt empty after sanitization or otherwise unusable"""
    def __init__(self, message: str = "Prompt is required.", details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            error="Bad Request",
            message=message,
            code=ErrorCode.VALIDATION,
            details=details
        )


class RateLimitedError(TutorError):
    """429 - Sliding window exhausted for this identity"""
    def __init__(self, message: str = "Too many AI requests. Please wait a moment and try again."):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            error="Rate Limited",
            message=message,
            code=ErrorCode.RATE_LIMITED,
            details={"remaining": 0}
        )


class DuplicateRequestError(TutorError):
    """429 - Same prompt re-submitted inside the dedup window"""
    def __init__(self, message: str = "You just asked that. Give the tutor a moment, or try rephrasing."):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            error="Duplicate Request",
            message=message,
            code=ErrorCode.DUPLICATE_REQUEST
        )


class QuotaDisabledError(TutorError):
    """403 - Daily limit of zero"""
    def __init__(self, message: str = GUARDIAN_DISABLED_MESSAGE):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            error="Forbidden",
            message=message,
            code=ErrorCode.QUOTA_DISABLED
        )


class QuotaExceededError(TutorError):
    """402 - Daily allowance used up"""
    def __init__(self, plan_slug: Optional[str] = None, limit: Optional[int] = None):
        plan_label = f" on your {format_plan_label(plan_slug)} plan" if plan_slug else ""
        super().__init__(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            error="Quota Exceeded",
            message=(
                f"You've reached today's AI tutor limit{plan_label}. "
                "Upgrade to get more help or try again tomorrow."
            ),
            code=ErrorCode.QUOTA_EXCEEDED,
            details={"limit": limit, "plan": plan_slug, "remaining": 0}
        )


class PlanGatedError(TutorError):
    """402 - Plan does not include AI access"""
    def __init__(self, message: str = "Upgrade required to access the AI assistant."):
        super().__init__(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            error="Payment Required",
            message=message,
            code=ErrorCode.PLAN_GATED
        )


class ForbiddenRoleError(TutorError):
    """403 - Learning assistant requested by a non-student account"""
    def __init__(self, message: str = "Learning assistant is only available for student accounts."):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            error="Forbidden",
            message=message,
            code=ErrorCode.FORBIDDEN_ROLE
        )


class GuardianBlockedError(TutorError):
    """403 - Parent/guardian switched the tutor off"""
    def __init__(self, message: str = GUARDIAN_DISABLED_MESSAGE):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            error="Forbidden",
            message=message,
            code=ErrorCode.FORBIDDEN_BY_GUARDIAN
        )


class ContextUnavailableError(TutorError):
    """500 - Primary learner profile could not be loaded"""
    def __init__(self, message: str = "Unable to load learner context."):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error="Internal Error",
            message=message,
            code=ErrorCode.CONTEXT_UNAVAILABLE
        )


class UpstreamTimeoutError(TutorError):
    """504 - A single upstream attempt exceeded its deadline"""
    def __init__(self, model: str, timeout_seconds: float):
        super().__init__(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            error="Gateway Timeout",
            message=f"Model {model} did not answer within {timeout_seconds:g}s",
            code=ErrorCode.TIMEOUT,
            details={"model": model}
        )


class UpstreamUnavailableError(TutorError):
    """502 - Upstream failed (per attempt, and terminally after fallback)"""
    def __init__(self, message: str = UPSTREAM_UNAVAILABLE_MESSAGE, details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            error="Bad Gateway",
            message=message,
            code=ErrorCode.UPSTREAM_UNAVAILABLE,
            details=details
        )


class HallucinationDetectedError(TutorError):
    """422 - Model output matched a placeholder / fabricated-standard pattern"""
    def __init__(self, reason: str):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error="Unprocessable Output",
            message=GENERIC_RETRY_MESSAGE,
            code=ErrorCode.HALLUCINATION_DETECTED,
            details={"reason": reason}
        )


class ConfigurationError(TutorError):
    """500 - Deployment is missing required configuration"""
    def __init__(self, message: str):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error="Configuration Error",
            message=message,
            code=ErrorCode.CONFIGURATION_ERROR
        )


def format_plan_label(plan_slug: str) -> str:
    """'family-plus' -> 'family plus'"""
    return plan_slug.replace("-", " ").replace("_", " ")


def get_error_summary() -> Dict[str, Any]:
    """Return summary of error handling system for documentation"""
    return {
        "service": "tutor-error-handler",
        "response_structure": {
            "success": "boolean (always false for errors)",
            "error": "string (error type)",
            "message": "string (human-readable)",
            "code": "string (machine-readable reason code)",
            "details": "object (optional)"
        },
        "status_codes": {
            "400": "Empty or malformed prompt",
            "402": "Plan gated or daily quota exhausted",
            "403": "Role, guardian or disabled quota",
            "422": "Model output failed validation",
            "429": "Rate limited or duplicate prompt",
            "500": "Learner context unavailable or misconfiguration",
            "502": "Upstream model unavailable",
            "504": "Upstream attempt timed out"
        },
        "error_codes": [
            getattr(ErrorCode, attr) for attr in dir(ErrorCode)
            if not attr.startswith('_')
        ]
    }
