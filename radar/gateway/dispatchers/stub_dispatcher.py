"""
Stub SMS Dispatcher — keeps outbound messages in memory.

Used when Twilio credentials are not configured (local development) and by
the test suite.  ``fail_for`` makes sends to chosen numbers raise, which is
how tests exercise the dependency-failure paths.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from radar.gateway.channels import DeliveryError, SMSGateway
from radar.gateway.redact import redact_for_logs

logger = logging.getLogger("radar.gateway.dispatchers.stub")


@dataclass
class SentSMS:
    to: str
    body: str
    message_sid: str


class StubSMSDispatcher(SMSGateway):
    """Stores outbound SMS in memory instead of sending them."""

    channel_name = "sms"

    def __init__(self, fail_for: set[str] | None = None) -> None:
        self._sent: list[SentSMS] = []
        self._fail_for: set[str] = set(fail_for or ())

    async def send(self, to: str, body: str) -> str:
        if to in self._fail_for:
            raise DeliveryError("stub transport failure", to=to)

        sid = f"SM{uuid.uuid4().hex}"
        self._sent.append(SentSMS(to=to, body=self._truncate(body), message_sid=sid))
        phone, preview = redact_for_logs(to, body)
        logger.info("Stub SMS → %s: %s (SID: %s)", phone, preview, sid)
        return sid

    @property
    def sent(self) -> list[SentSMS]:
        return list(self._sent)

    def sent_to(self, to: str) -> list[SentSMS]:
        return [m for m in self._sent if m.to == to]

    def fail_for(self, to: str) -> None:
        self._fail_for.add(to)

    def clear(self) -> None:
        self._sent.clear()
        self._fail_for.clear()
