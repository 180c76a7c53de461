"""
Event Envelope — normalised form of every external trigger.

Channel ingests (Twilio today) turn their raw webhook bodies into an
EventEnvelope; the pipeline only ever reads envelopes, never raw bodies.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """All event types recognised by the pipeline."""

    INBOUND_SMS = "INBOUND_SMS"
    DELIVERY_STATUS = "DELIVERY_STATUS"


def _new_uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class EventEnvelope(BaseModel):
    """Universal event wrapper."""

    event_id: str = Field(default_factory=_new_uuid)
    event_type: EventType
    sender_phone: str = ""
    # Empty until the ingest resolves the sender to an active patient
    patient_id: str = ""
    payload: dict[str, Any] = Field(default_factory=dict)
    source: str = ""
    timestamp: datetime = Field(default_factory=_now)

    model_config = {"use_enum_values": False}

    # ── Convenience factories ──

    @classmethod
    def inbound_sms(
        cls,
        sender_phone: str,
        body: str,
        *,
        external_message_id: str = "",
        patient_id: str = "",
        source: str = "sms",
    ) -> EventEnvelope:
        return cls(
            event_type=EventType.INBOUND_SMS,
            sender_phone=sender_phone,
            patient_id=patient_id,
            payload={
                "body": body,
                "external_message_id": external_message_id,
            },
            source=source,
        )

    @classmethod
    def delivery_status(
        cls,
        message_sid: str,
        status: str,
        *,
        error_code: str | None = None,
        to: str = "",
        from_: str = "",
    ) -> EventEnvelope:
        return cls(
            event_type=EventType.DELIVERY_STATUS,
            sender_phone=from_,
            payload={
                "message_sid": message_sid,
                "status": status,
                "error_code": error_code,
                "to": to,
            },
            source="sms_status",
        )

    @property
    def body(self) -> str:
        return self.payload.get("body", "")

    @property
    def external_message_id(self) -> str:
        return self.payload.get("external_message_id", "")

    def is_resolved(self) -> bool:
        """True once the sender has been mapped to an active patient."""
        return bool(self.patient_id)
