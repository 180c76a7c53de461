"""
Redaction and validation helpers for patient contact data.

Phone numbers and message bodies never reach logs or audit records in
full.  E.164 validation for staff-entered numbers lives here too.
"""

from __future__ import annotations

import re

E164_US_PATTERN = re.compile(r"^\+1[0-9]{10}$")
E164_PATTERN = re.compile(r"^\+[1-9][0-9]{6,14}$")

BODY_PREVIEW_CHARS = 60


def redact_phone(phone: str) -> str:
    """
    Mask all but the leading digits of a phone number.

      +18013101121  → +180131***
      +447700900001 → +447700***
    """
    if not phone or len(phone) < 10:
        return phone

    if phone.startswith("+1") and len(phone) == 12:
        return phone[:7] + "***"

    visible = min(7, len(phone) - 3)
    return phone[:visible] + "***"


def redact_body(body: str) -> str:
    """Truncate a message body to a short preview."""
    if not body or len(body) <= BODY_PREVIEW_CHARS:
        return body
    return body[:BODY_PREVIEW_CHARS] + "…"


def redact_for_logs(phone: str, body: str) -> tuple[str, str]:
    return redact_phone(phone), redact_body(body)


def is_us_e164(phone: str) -> bool:
    """Staff test-sends are restricted to North American numbers."""
    return bool(E164_US_PATTERN.match(phone or ""))


def is_e164(phone: str) -> bool:
    return bool(E164_PATTERN.match(phone or ""))
