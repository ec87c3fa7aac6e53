"""
tutor_backend/ai/__init__.py
Prompt-side tutor components: anonymization, sanitization, safety screening,
duplicate suppression and message composition
"""

from tutor_backend.ai.anonymizer import anonymize
from tutor_backend.ai.context import StudentContext, TutorContext, format_student_context
from tutor_backend.ai.dedup import DuplicatePromptSuppressor, normalize_prompt
from tutor_backend.ai.guards import SafetyClassifier, SafetyReason
from tutor_backend.ai.prompts import build_tutor_context, compose_messages
from tutor_backend.ai.sanitizer import sanitize_text, sanitize_prompt, sanitize_output

__all__ = [
    "anonymize",
    "StudentContext",
    "TutorContext",
    "format_student_context",
    "DuplicatePromptSuppressor",
    "normalize_prompt",
    "SafetyClassifier",
    "SafetyReason",
    "build_tutor_context",
    "compose_messages",
    "sanitize_text",
    "sanitize_prompt",
    "sanitize_output",
]
