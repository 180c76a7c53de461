"""
Tests for the InboundPipeline — end-to-end handling of one patient reply.
"""

from unittest.mock import MagicMock

import pytest

from conftest import make_patient
from radar.gateway.agents.reply_generator import COURTESY_REPLY
from radar.gateway.events import EventEnvelope
from radar.gateway.pipeline import InboundPipeline, PipelineError, PipelineStage
from radar.gateway.records import (
    MessageDirection,
    MessageType,
    PatientStatus,
    RiskLevel,
    StaffQueue,
)
from radar.gateway.store import RecordStoreError


@pytest.fixture
def pipeline(store, sms, clock):
    return InboundPipeline(store=store, gateway=sms, clock=clock)


def inbound(patient, body, sid="SM-in-1"):
    return EventEnvelope.inbound_sms(
        patient.phone_e164, body, external_message_id=sid, patient_id=patient.id,
    )


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Unknown senders
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestUnknownSender:

    @pytest.mark.asyncio
    async def test_unknown_phone_gets_courtesy_only(self, pipeline, store, sms):
        envelope = EventEnvelope.inbound_sms("+18015559999", "pain 9 help")

        result = await pipeline.handle_inbound(envelope)

        assert result.courtesy is True
        assert [m.body for m in sms.sent_to("+18015559999")] == [COURTESY_REPLY]
        assert len(sms.sent) == 1
        assert store.list_audit_events() == []
        assert result.observation is None and result.triage is None

    @pytest.mark.asyncio
    async def test_paused_patient_gets_courtesy(self, pipeline, store, sms):
        patient = make_patient(status=PatientStatus.PAUSED)
        store.save_patient(patient)

        result = await pipeline.handle_inbound(inbound(patient, "pain 3"))

        assert result.courtesy is True
        assert store.list_observations(patient.id) == []
        assert store.list_messages(patient.id) == []

    @pytest.mark.asyncio
    async def test_courtesy_send_failure(self, pipeline, sms):
        sms.fail_for("+18015559999")
        with pytest.raises(PipelineError) as exc_info:
            await pipeline.handle_inbound(EventEnvelope.inbound_sms("+18015559999", "hi"))
        assert exc_info.value.stage == PipelineStage.RESOLVE


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Enrolled patients
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestEnrolledPatient:

    @pytest.mark.asyncio
    async def test_full_flow_records_every_stage(self, pipeline, store, sms, patient):
        body = "Pain level 8, some bleeding, worried about swelling"

        result = await pipeline.handle_inbound(inbound(patient, body))

        observation = result.observation
        assert observation.day_index == 3
        assert observation.pain_score == 8
        assert observation.bleeding is True
        assert observation.concerns == body.lower()

        assert store.list_observations(patient.id) == [observation]
        assert store.get_risk_score(observation.id) == result.risk_score
        assert store.get_triage(observation.id) == result.triage
        assert result.triage.risk_level >= RiskLevel.REVIEW_TODAY
        assert result.triage.queue == StaffQueue.REVIEW_TODAY

        inbound_msg, outbound_msg = store.list_messages(patient.id)
        assert inbound_msg.direction == MessageDirection.INBOUND
        assert inbound_msg.message_type == MessageType.CHECKIN_RESPONSE
        assert inbound_msg.message_sid == "SM-in-1"
        assert observation.message_id == inbound_msg.id
        assert outbound_msg.message_type == MessageType.AUTO_REPLY
        assert outbound_msg.metadata["observation_id"] == observation.id

        [sent] = sms.sent_to(patient.phone_e164)
        assert sent.body == result.reply
        assert "Day 3 update" in sent.body

        [audit] = store.list_audit_events("patient_response_processed")
        assert audit.entity_id == observation.id
        assert audit.meta["risk_level"] == int(result.triage.risk_level)
        assert patient.phone_e164 not in str(audit.meta)

    @pytest.mark.asyncio
    async def test_severe_pain_sends_alert(self, pipeline, sms, patient):
        result = await pipeline.handle_inbound(inbound(patient, "pain 9"))
        assert result.triage.risk_level == RiskLevel.URGENT
        assert "CONTACT YOUR DOCTOR IMMEDIATELY" in sms.sent[0].body

    @pytest.mark.asyncio
    async def test_history_excludes_current_message(self, pipeline, store, patient):
        await pipeline.handle_inbound(inbound(patient, "pain 2, no bleeding", "SM1"))
        await pipeline.handle_inbound(inbound(patient, "pain 6, no bleeding", "SM2"))
        # Two prior observations exist only for the third message
        third = await pipeline.handle_inbound(inbound(patient, "pain 8", "SM3"))
        second_score = store.get_risk_score(store.list_observations(patient.id)[1].id)

        assert second_score.trend_risk == 0
        assert third.risk_score.trend_risk == 40

    @pytest.mark.asyncio
    async def test_each_message_gets_own_records(self, pipeline, store, patient):
        await pipeline.handle_inbound(inbound(patient, "pain 4", "SM1"))
        await pipeline.handle_inbound(inbound(patient, "no bleeding", "SM2"))

        observations = store.list_observations(patient.id)
        assert len(observations) == 2
        assert all(store.get_triage(o.id) is not None for o in observations)

    @pytest.mark.asyncio
    async def test_future_surgery_clamps_day_index(self, pipeline, store):
        patient = make_patient(day_index=-1)
        store.save_patient(patient)

        result = await pipeline.handle_inbound(inbound(patient, "pain 2"))

        assert result.observation.day_index == 0


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Dependency failures
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestFailures:

    @pytest.mark.asyncio
    async def test_reply_failure_is_audited(self, pipeline, store, sms, patient):
        sms.fail_for(patient.phone_e164)

        with pytest.raises(PipelineError) as exc_info:
            await pipeline.handle_inbound(inbound(patient, "pain 4"))

        assert exc_info.value.stage == PipelineStage.REPLY
        assert exc_info.value.patient_id == patient.id
        [audit] = store.list_audit_events("patient_response_failed")
        assert audit.meta["stage"] == "reply"
        # Records written before the failure stay written
        assert len(store.list_observations(patient.id)) == 1

    @pytest.mark.asyncio
    async def test_store_failure_names_stage(self, store, sms, clock, patient):
        store.add_risk_score = MagicMock(side_effect=RecordStoreError("bucket unavailable"))
        pipeline = InboundPipeline(store=store, gateway=sms, clock=clock)

        with pytest.raises(PipelineError) as exc_info:
            await pipeline.handle_inbound(inbound(patient, "pain 4"))

        assert exc_info.value.stage == PipelineStage.SCORE
        assert sms.sent == []

    @pytest.mark.asyncio
    async def test_audit_failure_is_logged_not_masked(self, store, sms, clock, patient):
        store.add_audit_event = MagicMock(side_effect=RecordStoreError("down"))
        pipeline = InboundPipeline(store=store, gateway=sms, clock=clock)

        with pytest.raises(PipelineError) as exc_info:
            await pipeline.handle_inbound(inbound(patient, "pain 4"))

        assert exc_info.value.stage == PipelineStage.AUDIT


class TestDeliveryStatus:

    @pytest.mark.asyncio
    async def test_status_callback_is_stored_redacted(self, pipeline, store):
        envelope = EventEnvelope.delivery_status(
            "SM123", "undelivered", error_code="30003",
            to="+18015550101", from_="+18015550000",
        )

        event = await pipeline.handle_delivery_status(envelope)

        assert store.list_delivery_events() == [event]
        assert event.error_code == "30003"
        assert event.to == "+180155***"
        assert event.from_ == "+180155***"
