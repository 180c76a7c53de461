"""
Clinical Records — explicit, typed persistence units for the check-in loop.

Every record the pipeline and scheduler write is one of the models below.
Clinical records (Observation, RiskScore, Triage) are frozen: once stored
they are never mutated.  Patients change only through ``transition()``.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from enum import Enum, IntEnum
from typing import Any, ClassVar, Optional

from pydantic import BaseModel, Field


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Enums
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class PatientStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class RiskLevel(IntEnum):
    ROUTINE = 0
    LOW = 1
    REVIEW_TODAY = 2
    URGENT = 3


class StaffQueue(str, Enum):
    URGENT = "urgent"
    REVIEW_TODAY = "review_today"
    ROUTINE = "routine"


class MessageDirection(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class MessageType(str, Enum):
    DAILY_CHECKIN = "daily_checkin"
    CHECKIN_RESPONSE = "checkin_response"
    AUTO_REPLY = "auto_reply"
    COURTESY = "courtesy"
    STAFF_TEST = "staff_test"


class CheckinStatus(str, Enum):
    CLAIMED = "claimed"
    COMPLETED = "completed"
    FAILED = "failed"


class InvalidStatusTransition(Exception):
    """Raised when a patient lifecycle change is not allowed."""


def _new_id() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


def staff_queue_for(level: RiskLevel | int) -> StaffQueue:
    """Map a triage level to the staff queue that surfaces it."""
    if level >= RiskLevel.URGENT:
        return StaffQueue.URGENT
    if level >= RiskLevel.REVIEW_TODAY:
        return StaffQueue.REVIEW_TODAY
    return StaffQueue.ROUTINE


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Patient
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class Patient(BaseModel):
    id: str = Field(default_factory=_new_id)
    practice_id: str = ""
    first_name: str
    last_initial: str = ""
    phone_e164: str
    procedure_type: str = ""
    surgery_date: date
    timezone: str = "America/New_York"  # display only, see clock.py
    status: PatientStatus = PatientStatus.ACTIVE
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    # status → statuses it may move to
    ALLOWED_TRANSITIONS: ClassVar[dict[PatientStatus, set[PatientStatus]]] = {
        PatientStatus.ACTIVE: {PatientStatus.PAUSED, PatientStatus.COMPLETED},
        PatientStatus.PAUSED: {PatientStatus.ACTIVE, PatientStatus.COMPLETED},
        PatientStatus.COMPLETED: set(),
    }

    @property
    def is_active(self) -> bool:
        return self.status == PatientStatus.ACTIVE

    def transition(self, new_status: PatientStatus) -> Patient:
        """Return a copy of this patient in ``new_status``."""
        if new_status == self.status:
            return self
        if new_status not in self.ALLOWED_TRANSITIONS[self.status]:
            raise InvalidStatusTransition(
                f"Patient {self.id}: {self.status.value} → {new_status.value} not allowed"
            )
        return self.model_copy(update={"status": new_status, "updated_at": _now()})


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Clinical records (immutable)
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class Observation(BaseModel):
    """One structured interpretation of a single inbound message."""

    id: str = Field(default_factory=_new_id)
    patient_id: str
    day_index: int = Field(ge=0)
    pain_score: Optional[int] = Field(default=None, ge=0, le=10)
    bleeding: Optional[bool] = None  # None = unknown
    concerns: str = ""
    received_at: datetime = Field(default_factory=_now)
    message_id: str = ""

    model_config = {"frozen": True}


class RiskScore(BaseModel):
    observation_id: str = ""
    overall_score: int = Field(ge=0, le=100)
    pain_risk: int = Field(default=0, ge=0, le=100)
    bleeding_risk: int = Field(default=0, ge=0, le=100)
    infection_risk: int = Field(default=0, ge=0, le=100)
    complications_risk: int = Field(default=0, ge=0, le=100)
    trend_risk: int = Field(default=0, ge=0, le=100)
    flags: list[str] = Field(default_factory=list)
    confidence: float = Field(ge=0.0, le=1.0)

    model_config = {"frozen": True}


class Triage(BaseModel):
    observation_id: str = ""
    patient_id: str = ""
    risk_level: RiskLevel
    flags: list[str] = Field(default_factory=list)
    reasons: str = ""
    method: str = ""  # "score" or "rules": which evaluation set the level
    queue: StaffQueue = StaffQueue.ROUTINE
    computed_at: datetime = Field(default_factory=_now)

    model_config = {"frozen": True}


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Conversation, schedule and audit
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class Message(BaseModel):
    id: str = Field(default_factory=_new_id)
    patient_id: str
    direction: MessageDirection
    body: str = ""
    message_sid: str = ""
    message_type: MessageType
    timestamp: datetime = Field(default_factory=_now)
    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}


class CheckinScheduleEntry(BaseModel):
    id: str = Field(default_factory=_new_id)
    patient_id: str
    day_index: int
    calendar_day: date
    send_at_local: str = "09:00"
    channel: str = "sms"
    sent_at: datetime = Field(default_factory=_now)
    status: CheckinStatus = CheckinStatus.CLAIMED
    completed_at: Optional[datetime] = None
    message_sid: Optional[str] = None
    error: Optional[str] = None
    manual_trigger: bool = False

    @property
    def blocks_resend(self) -> bool:
        """A failed attempt leaves the slot open for a later tick."""
        return self.status != CheckinStatus.FAILED

    def mark_completed(self, message_sid: str) -> CheckinScheduleEntry:
        return self.model_copy(update={
            "status": CheckinStatus.COMPLETED,
            "completed_at": _now(),
            "message_sid": message_sid,
            "error": None,
        })

    def mark_failed(self, error: str) -> CheckinScheduleEntry:
        return self.model_copy(update={
            "status": CheckinStatus.FAILED,
            "error": error,
        })


class AuditEvent(BaseModel):
    id: str = Field(default_factory=_new_id)
    actor: str = "system"
    entity: str
    entity_id: str
    event: str
    timestamp: datetime = Field(default_factory=_now)
    meta: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}


class DeliveryEvent(BaseModel):
    id: str = Field(default_factory=_new_id)
    message_sid: str
    status: str = ""
    error_code: Optional[str] = None
    to: str = ""     # redacted
    from_: str = ""  # redacted
    timestamp: datetime = Field(default_factory=_now)

    model_config = {"frozen": True}
