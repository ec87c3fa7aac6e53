"""
tutor_backend/ai/anonymizer.py
Identity Anonymizer

One-way, stable tokens for learner ids and client IPs.
Raw identifiers never leave the request boundary: every map key,
log line and ops event downstream uses these tokens instead.
"""

import hashlib
from typing import Optional

TOKEN_LENGTH = 12


def anonymize(value: Optional[str]) -> Optional[str]:
    """
    Hash a caller identifier into a short opaque token.

    Same input gives the same token across process lifetimes.
    None or empty input yields None.
    """
    if not value:
        return None
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:TOKEN_LENGTH]
