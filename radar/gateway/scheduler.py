"""
Daily Check-in Scheduler — sends each enrolled patient one prompt per day.

Each tick is triggered externally (Cloud Scheduler → POST /admin/run-checkins);
there is no in-process timer.  Per active patient, concurrently:

  1. day = today (reference timezone) − surgery date
  2. skip outside the monitoring window 0..duration_days
  3. skip when a non-failed entry for (patient, day) was sent today
  4. claim the (patient, calendar day) slot, send, record the outcome

Slot claims are compare-and-set writes, so two overlapping ticks send at
most once.  A failed send marks the slot failed and a later tick may retry.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from radar.gateway.agents.reply_generator import generate_checkin_prompt
from radar.gateway.channels import DeliveryError, SMSGateway
from radar.gateway.clock import Clock
from radar.gateway.records import (
    AuditEvent,
    CheckinScheduleEntry,
    Message,
    MessageDirection,
    MessageType,
    Patient,
    PatientStatus,
)
from radar.gateway.store import CheckinSlotTakenError, RecordStore, RecordStoreError

logger = logging.getLogger("radar.gateway.scheduler")

# Days 0..14 post-op are monitored
CHECKIN_DURATION_DAYS = 14
DEFAULT_SEND_AT_LOCAL = "09:00"


@dataclass
class CheckinRunReport:
    """Outcome of one scheduler tick."""

    sent: list[str] = field(default_factory=list)
    skipped: dict[str, str] = field(default_factory=dict)  # patient_id → reason
    failed: dict[str, str] = field(default_factory=dict)   # patient_id → error
    enabled: bool = True

    def to_dict(self) -> dict:
        return {
            "enabled": self.enabled,
            "sent": list(self.sent),
            "skipped": dict(self.skipped),
            "failed": dict(self.failed),
        }


class CheckinScheduler:
    """
    Usage:
        scheduler = CheckinScheduler(store=store, gateway=sms, clock=clock)
        report = await scheduler.run_once()

    Admin override:
        entry = await scheduler.send_checkin(patient_id)
    """

    def __init__(
        self,
        *,
        store: RecordStore,
        gateway: SMSGateway,
        clock: Clock,
        duration_days: int = CHECKIN_DURATION_DAYS,
        send_at_local: str = DEFAULT_SEND_AT_LOCAL,
        enabled: bool = True,
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._clock = clock
        self._duration_days = duration_days
        self._send_at_local = send_at_local
        self._enabled = enabled

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        if enabled != self._enabled:
            logger.info("Check-in scheduler %s", "enabled" if enabled else "disabled")
        self._enabled = enabled

    # ── Tick ──

    async def run_once(self) -> CheckinRunReport:
        """Run one scheduling pass over all active patients."""
        report = CheckinRunReport(enabled=self._enabled)
        if not self._enabled:
            logger.info("Check-in scheduler disabled - skipping tick")
            return report

        patients = await asyncio.to_thread(self._store.list_patients, PatientStatus.ACTIVE)
        logger.info("Check-in tick: %d active patients", len(patients))

        outcomes = await asyncio.gather(*(self._process_patient(p) for p in patients))
        for patient_id, outcome, detail in outcomes:
            if outcome == "sent":
                report.sent.append(patient_id)
            elif outcome == "failed":
                report.failed[patient_id] = detail
            else:
                report.skipped[patient_id] = detail

        logger.info(
            "Check-in tick done: %d sent, %d skipped, %d failed",
            len(report.sent), len(report.skipped), len(report.failed),
        )
        return report

    async def _process_patient(self, patient: Patient) -> tuple[str, str, str]:
        day = self._clock.day_index(patient.surgery_date)
        if not 0 <= day <= self._duration_days:
            return patient.id, "skipped", f"outside monitoring window (day {day})"

        try:
            entries = await asyncio.to_thread(
                self._store.find_checkin_entries,
                patient.id,
                day_index=day,
                sent_since=self._clock.start_of_today(),
            )
            if any(e.blocks_resend for e in entries):
                logger.info("Already sent check-in today for patient %s", patient.id)
                return patient.id, "skipped", "already sent today"

            entry = CheckinScheduleEntry(
                patient_id=patient.id,
                day_index=day,
                calendar_day=self._clock.today(),
                send_at_local=self._send_at_local,
                sent_at=self._clock.now(),
            )
            try:
                await asyncio.to_thread(self._store.claim_checkin_slot, entry)
            except CheckinSlotTakenError:
                logger.info("Check-in slot for patient %s claimed by another tick", patient.id)
                return patient.id, "skipped", "slot already claimed"

            await self._deliver(patient, entry, actor="system")
        except DeliveryError as exc:
            return patient.id, "failed", str(exc)
        except RecordStoreError as exc:
            logger.error("Check-in for patient %s failed in store: %s", patient.id, exc)
            return patient.id, "failed", str(exc)
        except Exception as exc:
            # Reported per patient; the rest of the tick carries on
            logger.exception("Unexpected check-in failure for patient %s", patient.id)
            return patient.id, "failed", f"{type(exc).__name__}: {exc}"

        return patient.id, "sent", ""

    # ── Admin force ──

    async def send_checkin(self, patient_id: str) -> CheckinScheduleEntry:
        """
        Send today's prompt now, ignoring the window and the daily limit.

        Raises RecordNotFoundError for unknown patients and DeliveryError
        when the send fails.
        """
        patient = await asyncio.to_thread(self._store.get_patient, patient_id)
        day = self._clock.day_index(patient.surgery_date)

        entry = CheckinScheduleEntry(
            patient_id=patient.id,
            day_index=day,
            calendar_day=self._clock.today(),
            send_at_local=self._send_at_local,
            sent_at=self._clock.now(),
            manual_trigger=True,
        )
        await asyncio.to_thread(self._store.add_manual_checkin, entry)
        return await self._deliver(patient, entry, actor="admin")

    # ── Delivery ──

    async def _deliver(
        self,
        patient: Patient,
        entry: CheckinScheduleEntry,
        *,
        actor: str,
    ) -> CheckinScheduleEntry:
        prompt = generate_checkin_prompt(patient.first_name, entry.day_index)
        try:
            sid = await self._gateway.send(patient.phone_e164, prompt)
        except DeliveryError as exc:
            logger.error(
                "Failed to send daily check-in to patient %s (day %d): %s",
                patient.id, entry.day_index, exc,
            )
            failed = entry.mark_failed(str(exc))
            await asyncio.to_thread(self._store.update_checkin_entry, failed)
            await asyncio.to_thread(self._store.add_audit_event, AuditEvent(
                actor=actor,
                entity="checkin",
                entity_id=entry.id,
                event="daily_checkin_failed",
                timestamp=self._clock.now(),
                meta={"patient_id": patient.id, "day_index": entry.day_index, "error": str(exc)},
            ))
            raise

        completed = entry.mark_completed(sid)
        await asyncio.to_thread(self._store.update_checkin_entry, completed)
        await asyncio.to_thread(self._store.add_message, Message(
            patient_id=patient.id,
            direction=MessageDirection.OUTBOUND,
            body=prompt,
            message_sid=sid,
            message_type=MessageType.DAILY_CHECKIN,
            timestamp=self._clock.now(),
            metadata={"day_index": entry.day_index, "checkin_entry_id": entry.id},
        ))
        await asyncio.to_thread(self._store.add_audit_event, AuditEvent(
            actor=actor,
            entity="checkin",
            entity_id=entry.id,
            event="daily_checkin_sent",
            timestamp=self._clock.now(),
            meta={
                "patient_id": patient.id,
                "day_index": entry.day_index,
                "message_sid": sid,
                "manual_trigger": entry.manual_trigger,
            },
        ))
        logger.info("Daily check-in sent to patient %s (day %d)", patient.id, entry.day_index)
        return completed
