"""
tutor_backend/ai/guards.py
Safety Classifier & Canned Refusals

PURPOSE:
Decide, before any upstream call, whether a prompt must be refused.

RULES (first match wins):
1. Unsafe topic keyword              → unsafe_keyword
2. Contact / location solicitation   → personal_contact
3. Social topics for grade < 13      → age_inappropriate
4. Prompt-injection phrasing         → prompt_attack

A refusal is a normal answer, not an error: the pipeline returns the
canned message and skips dedup, the model call and quota consumption.
"""

import logging
import re
from typing import Optional

logger = logging.getLogger(__name__)

GUARDIAN_GRADE_THRESHOLD = 13


class SafetyReason:
    UNSAFE_KEYWORD = "unsafe_keyword"
    PERSONAL_CONTACT = "personal_contact"
    AGE_INAPPROPRIATE = "age_inappropriate"
    PROMPT_ATTACK = "prompt_attack"


SAFETY_REFUSAL_MESSAGE = (
    "I can't help with that request. I'm here for school-safe learning help like math, "
    "reading, and science. Please ask a trusted adult if you need help with personal "
    "or safety issues."
)


class SafetyClassifier:
    """
    Deterministic rule-based prompt screening.

    Contact-info phrases ("address", "phone number") are deliberately left
    to CONTACT_PATTERN so they report personal_contact.
    """

    UNSAFE_KEYWORDS = [
        "violence",
        "harm",
        "weapon",
        "fight",
        "drugs",
        "self-harm",
        "suicide",
        "kill",
        "dating",
        "boyfriend",
        "girlfriend",
        "meet up",
    ]

    CONTACT_PATTERN = re.compile(
        r"\b(address|where.*live|meet you|come over|phone number|snapchat|instagram)\b",
        re.IGNORECASE
    )

    AGE_SENSITIVE_TERMS = ["social media", "dating", "meet up"]

    PROMPT_ATTACK_PHRASES = ["ignore previous", "jailbreak", "prompt injection"]

    REFUSAL_SUFFIXES = {
        SafetyReason.PERSONAL_CONTACT: (
            "I cannot share or collect personal contact info. "
            "Keep conversations focused on your lessons."
        ),
        SafetyReason.PROMPT_ATTACK: (
            "I stay within my safety rules and will keep answers on-topic for learning."
        ),
    }

    AGE_REFUSAL_SUFFIX = (
        "Because this account is for a child under 13, I avoid personal or social topics."
    )

    @classmethod
    def classify(cls, prompt: str, grade: Optional[int] = None) -> Optional[str]:
        """
        Return a refusal reason code, or None when the prompt is allowed.

        Args:
            prompt: Prompt text (sanitized)
            grade: Learner grade when known
        """
        normalized = prompt.lower()

        if any(keyword in normalized for keyword in cls.UNSAFE_KEYWORDS):
            return SafetyReason.UNSAFE_KEYWORD

        if cls.CONTACT_PATTERN.search(normalized):
            return SafetyReason.PERSONAL_CONTACT

        if grade is not None and grade < GUARDIAN_GRADE_THRESHOLD:
            if any(term in normalized for term in cls.AGE_SENSITIVE_TERMS):
                return SafetyReason.AGE_INAPPROPRIATE

        if any(phrase in normalized for phrase in cls.PROMPT_ATTACK_PHRASES):
            return SafetyReason.PROMPT_ATTACK

        return None

    @classmethod
    def build_refusal(cls, reason: str, grade: Optional[int] = None) -> str:
        """Canned refusal wording for a reason code."""
        if reason == SafetyReason.AGE_INAPPROPRIATE:
            if grade is not None and grade < GUARDIAN_GRADE_THRESHOLD:
                return f"{SAFETY_REFUSAL_MESSAGE} {cls.AGE_REFUSAL_SUFFIX}"
            return SAFETY_REFUSAL_MESSAGE

        suffix = cls.REFUSAL_SUFFIXES.get(reason)
        if suffix:
            return f"{SAFETY_REFUSAL_MESSAGE} {suffix}"
        return SAFETY_REFUSAL_MESSAGE
