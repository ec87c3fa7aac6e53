"""
tutor_backend/ai/sanitizer.py
Prompt & Output Sanitizer

PURPOSE:
Strip PII-shaped substrings and normalize free text before it enters
(or leaves) the model exchange.

PIPELINE:
1. Redact emails, phone numbers, and digit runs of 9+ characters
2. Trim every line, drop blank lines
3. Truncate to the field's ceiling
"""

import re

REDACTION_MARKER = "[redacted]"

MAX_PROMPT_CHARS = 1200
MAX_SYSTEM_PROMPT_CHARS = 1400
MAX_KNOWLEDGE_CHARS = 3200
MAX_RESPONSE_CHARS = 1600

EMAIL_PATTERN = re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.IGNORECASE)
PHONE_PATTERN = re.compile(r"\b(?:\+?1[-.\s]?)?(?:\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4})\b")
LONG_NUMBER_PATTERN = re.compile(r"\b\d{9,}\b")


def redact_pii(text: str) -> str:
    text = EMAIL_PATTERN.sub(REDACTION_MARKER, text)
    text = PHONE_PATTERN.sub(REDACTION_MARKER, text)
    return LONG_NUMBER_PATTERN.sub(REDACTION_MARKER, text)


def sanitize_text(text: str, max_length: int) -> str:
    """
    Redact, normalize and truncate text.

    Pure and deterministic; safe to call on any caller-supplied string.
    """
    if not text:
        return ""
    scrubbed = redact_pii(text)
    lines = (line.strip() for line in re.split(r"\r?\n", scrubbed))
    normalized = "\n".join(line for line in lines if line)
    return normalized[:max_length]


def sanitize_prompt(text: str) -> str:
    return sanitize_text(text, MAX_PROMPT_CHARS)


def sanitize_output(text: str) -> str:
    return sanitize_text(text, MAX_RESPONSE_CHARS)
