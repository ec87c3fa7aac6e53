"""
Sanitizer & Anonymizer Test Suite

PII redaction, whitespace normalization, truncation, and one-way
identity tokens.
"""
import hashlib

from tutor_backend.ai.anonymizer import anonymize, TOKEN_LENGTH
from tutor_backend.ai.sanitizer import (
    sanitize_text,
    sanitize_output,
    sanitize_prompt,
    REDACTION_MARKER,
    MAX_PROMPT_CHARS,
    MAX_RESPONSE_CHARS,
)


# =============================================================================
# Anonymizer
# =============================================================================

class TestAnonymizer:

    def test_token_is_truncated_sha256(self):
        expected = hashlib.sha256(b"learner-1").hexdigest()[:TOKEN_LENGTH]
        assert anonymize("learner-1") == expected
        assert len(anonymize("learner-1")) == 12

    def test_stable_across_calls(self):
        assert anonymize("203.0.113.7") == anonymize("203.0.113.7")

    def test_distinct_inputs_give_distinct_tokens(self):
        assert anonymize("learner-1") != anonymize("learner-2")

    def test_empty_and_none_yield_none(self):
        assert anonymize(None) is None
        assert anonymize("") is None


# =============================================================================
# Sanitizer
# =============================================================================

class TestRedaction:

    def test_email_and_phone_redacted(self):
        result = sanitize_text("Reach me at a@b.com or 555-123-4567", 200)
        assert result == f"Reach me at {REDACTION_MARKER} or {REDACTION_MARKER}"
        assert "@" not in result
        assert "4567" not in result

    def test_phone_with_country_code_and_parens(self):
        result = sanitize_text("call +1 (555) 123-4567 now", 200)
        assert "123" not in result
        assert REDACTION_MARKER in result

    def test_long_digit_runs_redacted(self):
        assert sanitize_text("student id 1234567890123", 200) == f"student id {REDACTION_MARKER}"

    def test_short_numbers_untouched(self):
        assert sanitize_text("What is 12 + 30?", 200) == "What is 12 + 30?"


class TestNormalization:

    def test_lines_trimmed_and_blank_lines_dropped(self):
        raw = "  line one  \n\n   line two \r\n\r\n"
        assert sanitize_text(raw, 200) == "line one\nline two"

    def test_truncates_to_ceiling(self):
        assert sanitize_text("a" * 50, 10) == "a" * 10

    def test_empty_input(self):
        assert sanitize_text("", 100) == ""
        assert sanitize_text("   \n  ", 100) == ""

    def test_field_ceilings(self):
        assert len(sanitize_prompt("x" * 5000)) == MAX_PROMPT_CHARS
        assert len(sanitize_output("y" * 5000)) == MAX_RESPONSE_CHARS

    def test_deterministic(self):
        text = "Email t@x.org\n  and  more  "
        assert sanitize_text(text, 100) == sanitize_text(text, 100)
