"""
Response Parser — free-text SMS reply → partial structured observation.

Deterministic regex extraction only:
  - pain score: first number within 20 characters after "pain", "hurt" or
    "sore", otherwise a number at the very start of the message
  - bleeding: yes / no / unknown from whole-word matches
  - concerns: the whole normalised text

Never raises; anything it cannot read is left unset.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger("radar.gateway.agents.response_parser")

PAIN_KEYWORD_PATTERN = re.compile(r"(?:pain|hurt|sore).{0,20}?(\d+)")
LEADING_NUMBER_PATTERN = re.compile(r"^(\d+)")
BLEEDING_YES_PATTERN = re.compile(r"\b(yes|bleeding|blood|bleed)\b")
BLEEDING_NO_PATTERN = re.compile(r"\b(no|none|not bleeding)\b")

PAIN_MIN = 0
PAIN_MAX = 10


@dataclass(frozen=True)
class ParsedResponse:
    """What could be read out of one message."""

    day_index: int
    pain_score: Optional[int] = None
    bleeding: Optional[bool] = None
    concerns: str = ""


def parse_response(body: str | None, day_index: int) -> ParsedResponse:
    """
    Parse a patient reply.

    ``day_index`` is passed through untouched, even when negative or past
    the monitoring window.
    """
    text = (body or "").lower().strip()

    return ParsedResponse(
        day_index=day_index,
        pain_score=_extract_pain(text),
        bleeding=_extract_bleeding(text),
        concerns=text,
    )


def _extract_pain(text: str) -> Optional[int]:
    match = PAIN_KEYWORD_PATTERN.search(text) or LEADING_NUMBER_PATTERN.search(text)
    if not match:
        return None

    score = int(match.group(1))
    if PAIN_MIN <= score <= PAIN_MAX:
        return score

    # Out-of-range numbers are discarded; the other pattern is not retried
    logger.debug("Discarding out-of-range pain value %d", score)
    return None


def _extract_bleeding(text: str) -> Optional[bool]:
    if BLEEDING_YES_PATTERN.search(text):
        return True
    if BLEEDING_NO_PATTERN.search(text):
        return False
    return None
