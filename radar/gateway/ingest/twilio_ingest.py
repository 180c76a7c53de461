"""
Twilio Ingest — converts Twilio webhook bodies into EventEnvelopes.

Twilio sends a form POST for each incoming message:
{
  "MessageSid": "SM...",
  "AccountSid": "AC...",
  "From": "+18015550123",
  "To": "+18015550000",         # our Twilio number
  "Body": "Pain 4, no bleeding"
}

and another for each delivery status change:
{
  "MessageSid": "SM...",
  "MessageStatus": "delivered",
  "ErrorCode": "30003",          # only on failure
  "To": "...",
  "From": "..."
}
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from radar.gateway.events import EventEnvelope
from radar.gateway.redact import redact_phone

logger = logging.getLogger("radar.gateway.ingest.twilio")


class TwilioSMSIngest:
    """Converts Twilio incoming SMS webhooks into EventEnvelopes."""

    channel_name = "sms"

    def __init__(self, store=None) -> None:
        self._store = store

    async def to_envelope(self, raw_input: dict[str, Any]) -> EventEnvelope:
        """
        Parse an incoming-message body.

        Resolution flow:
          1. Extract sender phone (strip whatsapp: prefix if present)
          2. Extract message text and Twilio message SID
          3. Look up the active patient enrolled on that phone
          4. Build EventEnvelope (patient_id empty when unresolved)
        """
        from_number = raw_input.get("From", "") or ""
        phone = from_number.replace("whatsapp:", "").strip()
        text = raw_input.get("Body", "") or ""

        patient_id = ""
        if self._store is not None and phone:
            patient = await asyncio.to_thread(self._store.find_active_patient_by_phone, phone)
            if patient is not None:
                patient_id = patient.id
            else:
                logger.info("No active patient for %s", redact_phone(phone))

        return EventEnvelope.inbound_sms(
            sender_phone=phone,
            body=text,
            external_message_id=raw_input.get("MessageSid", "") or "",
            patient_id=patient_id,
        )

    @staticmethod
    def to_status_envelope(raw_input: dict[str, Any]) -> EventEnvelope:
        """Parse a delivery status callback body."""
        return EventEnvelope.delivery_status(
            message_sid=raw_input.get("MessageSid", "") or "",
            status=raw_input.get("MessageStatus", "") or "",
            error_code=raw_input.get("ErrorCode") or None,
            to=raw_input.get("To", "") or "",
            from_=raw_input.get("From", "") or "",
        )
