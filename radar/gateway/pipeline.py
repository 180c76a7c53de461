"""
Inbound Pipeline — one patient reply in, one reply out.

Deterministic stage machine, no retries:

  resolve → parse → record → score → classify → reply → audit

  1. Resolve: unknown or inactive senders get the courtesy reply and
     nothing is recorded
  2. Parse the body into pain / bleeding / concerns
  3. Record the inbound message and the Observation
  4. Score risk against the patient's prior observations
  5. Classify into a triage tier and staff queue
  6. Send the tier-specific auto reply and log it
  7. Write the ``patient_response_processed`` audit event

A store or gateway failure stops the unit of work, is recorded as a
``patient_response_failed`` audit event where the store still accepts
writes, and surfaces as PipelineError naming the stage.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from radar.gateway.agents.reply_generator import COURTESY_REPLY, generate_auto_reply
from radar.gateway.agents.response_parser import parse_response
from radar.gateway.agents.risk_scorer import RiskScorer
from radar.gateway.agents.triage import TriageClassifier
from radar.gateway.channels import DeliveryError, SMSGateway
from radar.gateway.clock import Clock
from radar.gateway.events import EventEnvelope
from radar.gateway.records import (
    AuditEvent,
    DeliveryEvent,
    Message,
    MessageDirection,
    MessageType,
    Observation,
    RiskScore,
    Triage,
)
from radar.gateway.redact import redact_for_logs, redact_phone
from radar.gateway.store import RecordNotFoundError, RecordStore, RecordStoreError

logger = logging.getLogger("radar.gateway.pipeline")


class PipelineStage(str, Enum):
    RESOLVE = "resolve"
    PARSE = "parse"
    RECORD = "record"
    SCORE = "score"
    CLASSIFY = "classify"
    REPLY = "reply"
    AUDIT = "audit"


class PipelineError(Exception):
    """A dependency failed while processing one inbound message."""

    def __init__(self, stage: PipelineStage, message: str, *, patient_id: str = "") -> None:
        super().__init__(f"[{stage.value}] {message}")
        self.stage = stage
        self.patient_id = patient_id


@dataclass
class PipelineResult:
    """What one inbound message produced."""

    patient_id: str = ""
    courtesy: bool = False
    reply: str = ""
    reply_sid: str = ""
    observation: Optional[Observation] = None
    risk_score: Optional[RiskScore] = None
    triage: Optional[Triage] = None


class InboundPipeline:
    """
    Usage:
        pipeline = InboundPipeline(store=store, gateway=sms, clock=clock)
        result = await pipeline.handle_inbound(envelope)
    """

    def __init__(
        self,
        *,
        store: RecordStore,
        gateway: SMSGateway,
        clock: Clock,
        scorer: RiskScorer | None = None,
        classifier: TriageClassifier | None = None,
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._clock = clock
        self._scorer = scorer or RiskScorer()
        self._classifier = classifier or TriageClassifier()

    async def handle_inbound(self, envelope: EventEnvelope) -> PipelineResult:
        phone, preview = redact_for_logs(envelope.sender_phone, envelope.body)
        logger.info("Inbound SMS from %s: %s", phone, preview)

        # ── Resolve ──
        patient = None
        if envelope.is_resolved():
            try:
                patient = await asyncio.to_thread(self._store.get_patient, envelope.patient_id)
            except RecordNotFoundError:
                patient = None
            except RecordStoreError as exc:
                raise PipelineError(PipelineStage.RESOLVE, str(exc), patient_id=envelope.patient_id) from exc

        if patient is None or not patient.is_active:
            return await self._send_courtesy(envelope.sender_phone)

        stage = PipelineStage.PARSE
        try:
            # ── Parse ──
            raw_day = self._clock.day_index(patient.surgery_date)
            parsed = parse_response(envelope.body, raw_day)
            day_index = max(parsed.day_index, 0)

            # ── Record ──
            stage = PipelineStage.RECORD
            received_at = self._clock.now()
            inbound = Message(
                patient_id=patient.id,
                direction=MessageDirection.INBOUND,
                body=envelope.body,
                message_sid=envelope.external_message_id,
                message_type=MessageType.CHECKIN_RESPONSE,
                timestamp=received_at,
                metadata={
                    "pain_score": parsed.pain_score,
                    "bleeding": parsed.bleeding,
                    "day_index": day_index,
                },
            )
            await asyncio.to_thread(self._store.add_message, inbound)

            history = await asyncio.to_thread(self._store.list_observations, patient.id)
            observation = Observation(
                patient_id=patient.id,
                day_index=day_index,
                pain_score=parsed.pain_score,
                bleeding=parsed.bleeding,
                concerns=parsed.concerns,
                received_at=received_at,
                message_id=inbound.id,
            )
            await asyncio.to_thread(self._store.add_observation, observation)

            # ── Score ──
            stage = PipelineStage.SCORE
            risk = self._scorer.score(
                pain_score=observation.pain_score,
                bleeding=observation.bleeding,
                concerns=observation.concerns,
                day_index=observation.day_index,
                history=history,
                observation_id=observation.id,
            )
            await asyncio.to_thread(self._store.add_risk_score, risk)

            # ── Classify ──
            stage = PipelineStage.CLASSIFY
            triage = self._classifier.classify(observation, risk)
            await asyncio.to_thread(self._store.add_triage, triage)

            # ── Reply ──
            stage = PipelineStage.REPLY
            reply = generate_auto_reply(triage.risk_level, triage.flags, raw_day, patient.first_name)
            sid = await self._gateway.send(patient.phone_e164, reply)
            await asyncio.to_thread(self._store.add_message, Message(
                patient_id=patient.id,
                direction=MessageDirection.OUTBOUND,
                body=reply,
                message_sid=sid,
                message_type=MessageType.AUTO_REPLY,
                timestamp=self._clock.now(),
                metadata={
                    "triage_level": int(triage.risk_level),
                    "day_index": day_index,
                    "observation_id": observation.id,
                },
            ))

            # ── Audit ──
            stage = PipelineStage.AUDIT
            await asyncio.to_thread(self._store.add_audit_event, AuditEvent(
                entity="response",
                entity_id=observation.id,
                event="patient_response_processed",
                timestamp=self._clock.now(),
                meta={
                    "patient_id": patient.id,
                    "day_index": day_index,
                    "risk_level": int(triage.risk_level),
                    "overall_score": risk.overall_score,
                    "method": triage.method,
                    "flags": triage.flags,
                },
            ))
        except (RecordStoreError, DeliveryError) as exc:
            logger.error(
                "Inbound pipeline failed at %s for patient %s: %s",
                stage.value, patient.id, exc,
            )
            await self._record_failure(patient.id, stage, exc)
            raise PipelineError(stage, str(exc), patient_id=patient.id) from exc

        logger.info(
            "Processed response for patient %s (day %d): level=%d score=%d",
            patient.id, day_index, triage.risk_level, risk.overall_score,
        )
        return PipelineResult(
            patient_id=patient.id,
            reply=reply,
            reply_sid=sid,
            observation=observation,
            risk_score=risk,
            triage=triage,
        )

    async def _send_courtesy(self, phone: str) -> PipelineResult:
        logger.info("Sending courtesy reply to unrecognised sender %s", redact_phone(phone))
        try:
            sid = await self._gateway.send(phone, COURTESY_REPLY)
        except DeliveryError as exc:
            raise PipelineError(PipelineStage.RESOLVE, str(exc)) from exc
        return PipelineResult(courtesy=True, reply=COURTESY_REPLY, reply_sid=sid)

    async def _record_failure(self, patient_id: str, stage: PipelineStage, exc: Exception) -> None:
        try:
            await asyncio.to_thread(self._store.add_audit_event, AuditEvent(
                entity="response",
                entity_id=patient_id,
                event="patient_response_failed",
                timestamp=self._clock.now(),
                meta={"patient_id": patient_id, "stage": stage.value, "error": str(exc)},
            ))
        except RecordStoreError as audit_exc:
            logger.error("Could not record failure audit for %s: %s", patient_id, audit_exc)

    # ── Delivery status callbacks ──

    async def handle_delivery_status(self, envelope: EventEnvelope) -> DeliveryEvent:
        payload = envelope.payload
        event = DeliveryEvent(
            message_sid=payload.get("message_sid", ""),
            status=payload.get("status", ""),
            error_code=payload.get("error_code"),
            to=redact_phone(payload.get("to", "")),
            from_=redact_phone(envelope.sender_phone),
            timestamp=self._clock.now(),
        )
        await asyncio.to_thread(self._store.add_delivery_event, event)
        if event.error_code:
            logger.info("Delivery status: %s → %s (error %s)", event.message_sid, event.status, event.error_code)
        else:
            logger.info("Delivery status: %s → %s", event.message_sid, event.status)
        return event
