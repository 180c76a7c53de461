"""
Record Store — persistence contract for the check-in loop.

Two implementations:
  - InMemoryRecordStore: development and tests
  - GCSRecordStore: one JSON blob per record in a GCS bucket

Clinical records, messages and audit events are append-only.  Scheduled
check-ins occupy one slot per (patient, calendar day); claiming a slot is a
compare-and-set write so two racing scheduler ticks cannot both send.

GCS layout:
  patients/{patient_id}.json
  observations/patient_{id}/{observation_id}.json
  risk_scores/{observation_id}.json
  triage/{observation_id}.json
  messages/patient_{id}/{message_id}.json
  checkin_schedule/patient_{id}/{YYYY-MM-DD}.json        (scheduled slot)
  checkin_schedule/patient_{id}/manual_{entry_id}.json   (admin sends)
  audit_events/{YYYY-MM-DD}/{event_id}.json
  delivery_events/{event_id}.json
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from google.api_core.exceptions import PreconditionFailed
from pydantic import ValidationError

from radar.gateway.records import (
    AuditEvent,
    CheckinScheduleEntry,
    DeliveryEvent,
    Message,
    Observation,
    Patient,
    PatientStatus,
    RiskScore,
    Triage,
)

logger = logging.getLogger("radar.gateway.store")


class RecordStoreError(Exception):
    """Persistence failure (unavailable backend, timeout, bad data)."""


class RecordNotFoundError(RecordStoreError):
    pass


class CheckinSlotTakenError(RecordStoreError):
    """Raised when a (patient, calendar day) slot is already claimed."""


class RecordStore(ABC):
    """Abstract persistence contract used by the pipeline and scheduler."""

    # ── Patients ──

    @abstractmethod
    def save_patient(self, patient: Patient) -> None: ...

    @abstractmethod
    def get_patient(self, patient_id: str) -> Patient:
        """Raises RecordNotFoundError."""

    @abstractmethod
    def list_patients(self, status: PatientStatus | None = None) -> list[Patient]: ...

    def find_active_patient_by_phone(self, phone: str) -> Patient | None:
        for patient in self.list_patients(PatientStatus.ACTIVE):
            if patient.phone_e164 == phone:
                return patient
        return None

    # ── Clinical records ──

    @abstractmethod
    def add_observation(self, observation: Observation) -> None: ...

    @abstractmethod
    def list_observations(
        self,
        patient_id: str,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> list[Observation]:
        """Chronological (oldest first)."""

    @abstractmethod
    def add_risk_score(self, score: RiskScore) -> None: ...

    @abstractmethod
    def get_risk_score(self, observation_id: str) -> RiskScore | None: ...

    @abstractmethod
    def add_triage(self, triage: Triage) -> None: ...

    @abstractmethod
    def get_triage(self, observation_id: str) -> Triage | None: ...

    # ── Conversation ──

    @abstractmethod
    def add_message(self, message: Message) -> None: ...

    @abstractmethod
    def list_messages(self, patient_id: str) -> list[Message]:
        """Chronological (oldest first)."""

    # ── Check-in schedule ──

    @abstractmethod
    def claim_checkin_slot(self, entry: CheckinScheduleEntry) -> CheckinScheduleEntry:
        """
        Store ``entry`` in its (patient, calendar day) slot.

        Succeeds when the slot is empty or holds a failed attempt; raises
        CheckinSlotTakenError otherwise.
        """

    @abstractmethod
    def add_manual_checkin(self, entry: CheckinScheduleEntry) -> None: ...

    @abstractmethod
    def update_checkin_entry(self, entry: CheckinScheduleEntry) -> None: ...

    @abstractmethod
    def list_checkin_entries(self, patient_id: str) -> list[CheckinScheduleEntry]: ...

    def find_checkin_entries(
        self,
        patient_id: str,
        *,
        day_index: int | None = None,
        sent_since: datetime | None = None,
    ) -> list[CheckinScheduleEntry]:
        entries = self.list_checkin_entries(patient_id)
        if day_index is not None:
            entries = [e for e in entries if e.day_index == day_index]
        if sent_since is not None:
            entries = [e for e in entries if e.sent_at >= sent_since]
        return entries

    # ── Audit ──

    @abstractmethod
    def add_audit_event(self, event: AuditEvent) -> None: ...

    @abstractmethod
    def list_audit_events(self, event: str | None = None) -> list[AuditEvent]: ...

    @abstractmethod
    def add_delivery_event(self, event: DeliveryEvent) -> None: ...

    @abstractmethod
    def list_delivery_events(self) -> list[DeliveryEvent]: ...


def _in_range(ts: datetime, since: datetime | None, until: datetime | None) -> bool:
    if since is not None and ts < since:
        return False
    if until is not None and ts >= until:
        return False
    return True


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  In-memory store
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class InMemoryRecordStore(RecordStore):
    """Process-local store.  Insertion order is chronological order."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._patients: dict[str, Patient] = {}
        self._observations: dict[str, list[Observation]] = {}
        self._risk_scores: dict[str, RiskScore] = {}
        self._triage: dict[str, Triage] = {}
        self._messages: dict[str, list[Message]] = {}
        # (patient_id, calendar day ISO) → entry
        self._slots: dict[tuple[str, str], CheckinScheduleEntry] = {}
        self._manual: dict[str, CheckinScheduleEntry] = {}
        self._audit: list[AuditEvent] = []
        self._deliveries: list[DeliveryEvent] = []

    def save_patient(self, patient: Patient) -> None:
        self._patients[patient.id] = patient

    def get_patient(self, patient_id: str) -> Patient:
        try:
            return self._patients[patient_id]
        except KeyError:
            raise RecordNotFoundError(f"No patient {patient_id}") from None

    def list_patients(self, status: PatientStatus | None = None) -> list[Patient]:
        return [
            p for p in self._patients.values()
            if status is None or p.status == status
        ]

    def add_observation(self, observation: Observation) -> None:
        self._observations.setdefault(observation.patient_id, []).append(observation)

    def list_observations(self, patient_id, since=None, until=None):
        return [
            o for o in self._observations.get(patient_id, [])
            if _in_range(o.received_at, since, until)
        ]

    def add_risk_score(self, score: RiskScore) -> None:
        self._risk_scores[score.observation_id] = score

    def get_risk_score(self, observation_id: str) -> RiskScore | None:
        return self._risk_scores.get(observation_id)

    def add_triage(self, triage: Triage) -> None:
        self._triage[triage.observation_id] = triage

    def get_triage(self, observation_id: str) -> Triage | None:
        return self._triage.get(observation_id)

    def add_message(self, message: Message) -> None:
        self._messages.setdefault(message.patient_id, []).append(message)

    def list_messages(self, patient_id: str) -> list[Message]:
        return list(self._messages.get(patient_id, []))

    def claim_checkin_slot(self, entry: CheckinScheduleEntry) -> CheckinScheduleEntry:
        key = (entry.patient_id, entry.calendar_day.isoformat())
        with self._lock:
            current = self._slots.get(key)
            if current is not None and current.blocks_resend:
                raise CheckinSlotTakenError(
                    f"Check-in slot {key} already {current.status.value}"
                )
            self._slots[key] = entry
        return entry

    def add_manual_checkin(self, entry: CheckinScheduleEntry) -> None:
        with self._lock:
            self._manual[entry.id] = entry

    def update_checkin_entry(self, entry: CheckinScheduleEntry) -> None:
        if entry.manual_trigger:
            with self._lock:
                self._manual[entry.id] = entry
            return
        key = (entry.patient_id, entry.calendar_day.isoformat())
        with self._lock:
            current = self._slots.get(key)
            if current is None or current.id != entry.id:
                raise CheckinSlotTakenError(f"Check-in slot {key} was re-claimed")
            self._slots[key] = entry

    def list_checkin_entries(self, patient_id: str) -> list[CheckinScheduleEntry]:
        with self._lock:
            entries = [e for (pid, _), e in self._slots.items() if pid == patient_id]
            entries += [e for e in self._manual.values() if e.patient_id == patient_id]
        return sorted(entries, key=lambda e: e.sent_at)

    def add_audit_event(self, event: AuditEvent) -> None:
        self._audit.append(event)

    def list_audit_events(self, event: str | None = None) -> list[AuditEvent]:
        return [e for e in self._audit if event is None or e.event == event]

    def add_delivery_event(self, event: DeliveryEvent) -> None:
        self._deliveries.append(event)

    def list_delivery_events(self) -> list[DeliveryEvent]:
        return list(self._deliveries)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  GCS store
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class GCSRecordStore(RecordStore):
    """
    Persists records as JSON blobs via GCSBucketManager.

    Appends use ``if_generation_match=0`` (create-only).  Slot claims load
    the current slot with its generation and write back conditioned on it,
    so a concurrent claim surfaces as CheckinSlotTakenError.
    """

    def __init__(self, gcs_bucket_manager, prefix: str = "") -> None:
        self._gcs = gcs_bucket_manager
        self._prefix = prefix.strip("/")

    def _path(self, *parts: str) -> str:
        path = "/".join(parts)
        return f"{self._prefix}/{path}" if self._prefix else path

    # ── low-level helpers ──

    def _read(self, path: str) -> tuple[Optional[dict], int]:
        try:
            return self._gcs.read_json(path)
        except Exception as exc:
            raise RecordStoreError(f"GCS read failed for {path}: {exc}") from exc

    def _list(self, prefix: str) -> list[dict]:
        try:
            return self._gcs.list_json(prefix)
        except Exception as exc:
            raise RecordStoreError(f"GCS list failed for {prefix}: {exc}") from exc

    def _write(self, path: str, content: str, if_generation_match: int | None = None) -> None:
        try:
            self._gcs.write_json(path, content, if_generation_match=if_generation_match)
        except PreconditionFailed:
            raise
        except Exception as exc:
            raise RecordStoreError(f"GCS write failed for {path}: {exc}") from exc

    def _append(self, path: str, content: str) -> None:
        try:
            self._write(path, content, if_generation_match=0)
        except PreconditionFailed as exc:
            raise RecordStoreError(f"Record {path} already exists") from exc

    @staticmethod
    def _load(model, data):
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            raise RecordStoreError(f"Corrupt {model.__name__} record: {exc}") from exc

    # ── Patients ──

    def save_patient(self, patient: Patient) -> None:
        self._write(self._path("patients", f"{patient.id}.json"), patient.model_dump_json())

    def get_patient(self, patient_id: str) -> Patient:
        data, _ = self._read(self._path("patients", f"{patient_id}.json"))
        if data is None:
            raise RecordNotFoundError(f"No patient {patient_id}")
        return self._load(Patient, data)

    def list_patients(self, status: PatientStatus | None = None) -> list[Patient]:
        patients = [self._load(Patient, d) for d in self._list(self._path("patients") + "/")]
        return [p for p in patients if status is None or p.status == status]

    # ── Clinical records ──

    def add_observation(self, observation: Observation) -> None:
        self._append(
            self._path("observations", f"patient_{observation.patient_id}", f"{observation.id}.json"),
            observation.model_dump_json(),
        )

    def list_observations(self, patient_id, since=None, until=None):
        items = [
            self._load(Observation, d)
            for d in self._list(self._path("observations", f"patient_{patient_id}") + "/")
        ]
        items.sort(key=lambda o: o.received_at)
        return [o for o in items if _in_range(o.received_at, since, until)]

    def add_risk_score(self, score: RiskScore) -> None:
        self._append(self._path("risk_scores", f"{score.observation_id}.json"), score.model_dump_json())

    def get_risk_score(self, observation_id: str) -> RiskScore | None:
        data, _ = self._read(self._path("risk_scores", f"{observation_id}.json"))
        return self._load(RiskScore, data) if data is not None else None

    def add_triage(self, triage: Triage) -> None:
        self._append(self._path("triage", f"{triage.observation_id}.json"), triage.model_dump_json())

    def get_triage(self, observation_id: str) -> Triage | None:
        data, _ = self._read(self._path("triage", f"{observation_id}.json"))
        return self._load(Triage, data) if data is not None else None

    # ── Conversation ──

    def add_message(self, message: Message) -> None:
        self._append(
            self._path("messages", f"patient_{message.patient_id}", f"{message.id}.json"),
            message.model_dump_json(),
        )

    def list_messages(self, patient_id: str) -> list[Message]:
        items = [
            self._load(Message, d)
            for d in self._list(self._path("messages", f"patient_{patient_id}") + "/")
        ]
        return sorted(items, key=lambda m: m.timestamp)

    # ── Check-in schedule ──

    def _slot_path(self, entry: CheckinScheduleEntry) -> str:
        if entry.manual_trigger:
            name = f"manual_{entry.id}.json"
        else:
            name = f"{entry.calendar_day.isoformat()}.json"
        return self._path("checkin_schedule", f"patient_{entry.patient_id}", name)

    def claim_checkin_slot(self, entry: CheckinScheduleEntry) -> CheckinScheduleEntry:
        path = self._slot_path(entry)
        data, generation = self._read(path)
        if data is not None:
            current = self._load(CheckinScheduleEntry, data)
            if current.blocks_resend:
                raise CheckinSlotTakenError(f"Check-in slot {path} already {current.status.value}")
        try:
            self._write(path, entry.model_dump_json(), if_generation_match=generation)
        except PreconditionFailed as exc:
            raise CheckinSlotTakenError(f"Check-in slot {path} claimed concurrently") from exc
        return entry

    def add_manual_checkin(self, entry: CheckinScheduleEntry) -> None:
        self._append(self._slot_path(entry), entry.model_dump_json())

    def update_checkin_entry(self, entry: CheckinScheduleEntry) -> None:
        path = self._slot_path(entry)
        data, generation = self._read(path)
        if data is None or data.get("id") != entry.id:
            raise CheckinSlotTakenError(f"Check-in slot {path} was re-claimed")
        try:
            self._write(path, entry.model_dump_json(), if_generation_match=generation)
        except PreconditionFailed as exc:
            raise CheckinSlotTakenError(f"Check-in slot {path} modified concurrently") from exc

    def list_checkin_entries(self, patient_id: str) -> list[CheckinScheduleEntry]:
        items = [
            self._load(CheckinScheduleEntry, d)
            for d in self._list(self._path("checkin_schedule", f"patient_{patient_id}") + "/")
        ]
        return sorted(items, key=lambda e: e.sent_at)

    # ── Audit ──

    def add_audit_event(self, event: AuditEvent) -> None:
        self._append(
            self._path("audit_events", event.timestamp.date().isoformat(), f"{event.id}.json"),
            event.model_dump_json(),
        )

    def list_audit_events(self, event: str | None = None) -> list[AuditEvent]:
        items = [self._load(AuditEvent, d) for d in self._list(self._path("audit_events") + "/")]
        items.sort(key=lambda e: e.timestamp)
        return [e for e in items if event is None or e.event == event]

    def add_delivery_event(self, event: DeliveryEvent) -> None:
        self._append(self._path("delivery_events", f"{event.id}.json"), event.model_dump_json())

    def list_delivery_events(self) -> list[DeliveryEvent]:
        items = [self._load(DeliveryEvent, d) for d in self._list(self._path("delivery_events") + "/")]
        return sorted(items, key=lambda e: e.timestamp)
