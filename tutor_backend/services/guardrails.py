"""
tutor_backend/services/guardrails.py
Model Output Guardrails

PURPOSE:
Validate every model answer before it reaches a learner:
- Re-sanitize (PII redaction, whitespace, length ceiling)
- Reject placeholder text and fabricated curriculum standard codes

A rejected answer is never shown; the caller gets the generic retry
message carried by HallucinationDetectedError.
"""
import logging
import re
from typing import List, Optional, Pattern, Tuple

from tutor_backend.ai.sanitizer import sanitize_output
from tutor_backend.errors import HallucinationDetectedError

logger = logging.getLogger(__name__)


class OutputValidator:
    """
    Deterministic screen for hallucination / placeholder patterns.

    All checks run on lowercased text.
    """

    # ========== PROHIBITED PATTERNS ==========

    PLACEHOLDER_PHRASES = [
        "placeholder",
        "lorem ipsum",
    ]

    PLACEHOLDER_STANDARD_PATTERNS: List[Pattern] = [
        re.compile(r"\bstandard[ _-]?code\b"),
        re.compile(r"\[standard\]|\{standard\}|<standard>"),
    ]

    FAKE_STANDARD_PATTERNS: List[Pattern] = [
        re.compile(r"\b(?:ccss|ngss|teks)[.\-](?:[a-z0-9]+[.\-])*(?:x{1,3}|0{2,}|123)\b"),
        re.compile(r"\bstd[-_]?0{2,}\d*\b"),
    ]

    @classmethod
    def find_violation(cls, text: str) -> Optional[Tuple[str, str]]:
        """
        Returns:
            (reason, matched_text) for the first violation, else None
        """
        lowered = text.lower()

        for phrase in cls.PLACEHOLDER_PHRASES:
            if phrase in lowered:
                return "placeholder_text", phrase

        for pattern in cls.PLACEHOLDER_STANDARD_PATTERNS:
            match = pattern.search(lowered)
            if match:
                return "placeholder_standard", match.group()

        for pattern in cls.FAKE_STANDARD_PATTERNS:
            match = pattern.search(lowered)
            if match:
                return "fake_standard", match.group()

        return None

    @classmethod
    def validate(cls, text: str) -> str:
        """
        Sanitize and screen a model answer.

        Raises:
            HallucinationDetectedError: Output matched a prohibited pattern
        """
        cleaned = sanitize_output(text)
        violation = cls.find_violation(cleaned)
        if violation:
            reason, matched = violation
            logger.warning(f"[Guard] Output rejected: {reason} ({matched!r})")
            raise HallucinationDetectedError(reason=reason)
        return cleaned
