"""
tutor_backend/schemas/tutor.py
Request/Response Schemas for the AI Tutor endpoint

Pydantic models for:
- Tutor request body
- Caller / plan context supplied by the gateway
- Tutor response
"""
from typing import Optional, Union, Literal
from pydantic import BaseModel, Field

DailyLimitValue = Union[int, Literal["unlimited"]]


# ========== INBOUND ==========

class TutorRequest(BaseModel):
    """Request schema for a tutor or marketing prompt"""
    prompt: str = Field(..., max_length=20000, description="Learner or visitor prompt")
    system_prompt: Optional[str] = Field(
        None, alias="systemPrompt", max_length=20000,
        description="Optional addendum appended to the base system prompt"
    )
    mode: Literal["learning", "marketing"] = Field(default="learning")
    knowledge: Optional[str] = Field(
        None, max_length=20000, description="Optional grounding text"
    )

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "prompt": "Can you give me a hint for 3/4 + 1/8?",
                "mode": "learning"
            }
        }


class PlanContext(BaseModel):
    """Subscription plan attributes resolved upstream"""
    slug: Optional[str] = None
    tutor_daily_limit: Optional[DailyLimitValue] = Field(None, alias="tutorDailyLimit")
    ai_access: Optional[bool] = Field(None, alias="aiAccess")

    class Config:
        populate_by_name = True


class CallerContext(BaseModel):
    """Who is asking; derived from trusted gateway headers, never the body"""
    learner_id: Optional[str] = Field(None, alias="learnerId")
    role: Optional[str] = None
    client_ip: Optional[str] = Field(None, alias="clientIp")
    plan: Optional[PlanContext] = None

    class Config:
        populate_by_name = True


# ========== OUTBOUND ==========

class TutorResponse(BaseModel):
    """Response schema for a tutor answer or safety refusal"""
    message: str
    model: str = Field(..., description="Upstream model id, or 'guardrail' for refusals")
    remaining: Optional[int] = Field(None, description="Answers left today (null if unlimited)")
    limit: Optional[DailyLimitValue] = None
    plan: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "message": "Try finding a common denominator first. What is 4 x 2?",
                "model": "mistralai/mistral-7b-instruct:free",
                "remaining": 2,
                "limit": 3,
                "plan": "free"
            }
        }
