"""
Tests for the record stores — in-memory semantics and the GCS layout and
conditional-write behaviour over a mocked bucket manager.
"""

import json
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from google.api_core.exceptions import NotFound, PreconditionFailed

from conftest import FIXED_NOW, TODAY, make_observation, make_patient
from radar.gateway.records import (
    AuditEvent,
    CheckinScheduleEntry,
    CheckinStatus,
    InvalidStatusTransition,
    PatientStatus,
    RiskScore,
)
from radar.gateway.store import (
    CheckinSlotTakenError,
    GCSRecordStore,
    RecordNotFoundError,
    RecordStoreError,
)
from radar.infrastructure.gcs import GCSBucketManager


def slot_entry(patient_id="p1", **kwargs):
    defaults = dict(patient_id=patient_id, day_index=3, calendar_day=TODAY, sent_at=FIXED_NOW)
    defaults.update(kwargs)
    return CheckinScheduleEntry(**defaults)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  In-memory store
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestPatients:

    def test_missing_patient(self, store):
        with pytest.raises(RecordNotFoundError):
            store.get_patient("nope")

    def test_find_active_by_phone(self, store):
        active = make_patient(phone="+18015550111")
        paused = make_patient(phone="+18015550112", status=PatientStatus.PAUSED)
        store.save_patient(active)
        store.save_patient(paused)

        assert store.find_active_patient_by_phone("+18015550111") == active
        assert store.find_active_patient_by_phone("+18015550112") is None
        assert store.list_patients(PatientStatus.ACTIVE) == [active]

    def test_status_transitions(self):
        patient = make_patient()
        paused = patient.transition(PatientStatus.PAUSED)
        assert paused.status == PatientStatus.PAUSED
        assert patient.status == PatientStatus.ACTIVE

        done = paused.transition(PatientStatus.COMPLETED)
        with pytest.raises(InvalidStatusTransition):
            done.transition(PatientStatus.ACTIVE)


class TestObservations:

    def test_window_filter(self, store):
        early = make_observation(day_index=1).model_copy(update={"received_at": FIXED_NOW})
        late = make_observation(day_index=2).model_copy(
            update={"received_at": FIXED_NOW + timedelta(days=1)}
        )
        store.add_observation(early)
        store.add_observation(late)

        assert store.list_observations("p1") == [early, late]
        assert store.list_observations("p1", since=FIXED_NOW + timedelta(hours=1)) == [late]
        assert store.list_observations("p1", until=FIXED_NOW + timedelta(hours=1)) == [early]


class TestSlots:

    def test_second_claim_rejected(self, store):
        store.claim_checkin_slot(slot_entry())
        with pytest.raises(CheckinSlotTakenError):
            store.claim_checkin_slot(slot_entry())

    def test_failed_slot_can_be_reclaimed(self, store):
        first = store.claim_checkin_slot(slot_entry())
        store.update_checkin_entry(first.mark_failed("timeout"))

        second = store.claim_checkin_slot(slot_entry())

        [entry] = store.list_checkin_entries("p1")
        assert entry.id == second.id
        assert entry.status == CheckinStatus.CLAIMED

    def test_stale_update_rejected(self, store):
        first = store.claim_checkin_slot(slot_entry())
        store.update_checkin_entry(first.mark_failed("timeout"))
        store.claim_checkin_slot(slot_entry())

        with pytest.raises(CheckinSlotTakenError):
            store.update_checkin_entry(first.mark_completed("SM1"))

    def test_manual_entries_do_not_use_slots(self, store):
        manual = slot_entry(manual_trigger=True)
        store.add_manual_checkin(manual)
        store.claim_checkin_slot(slot_entry())

        assert len(store.list_checkin_entries("p1")) == 2

    def test_find_by_day_and_time(self, store):
        store.claim_checkin_slot(slot_entry(day_index=3))
        store.claim_checkin_slot(slot_entry(
            day_index=2,
            calendar_day=TODAY - timedelta(days=1),
            sent_at=FIXED_NOW - timedelta(days=1),
        ))

        assert len(store.find_checkin_entries("p1", day_index=3)) == 1
        assert len(store.find_checkin_entries("p1", sent_since=FIXED_NOW)) == 1


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  GCS store
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


@pytest.fixture
def gcs():
    manager = MagicMock()
    manager.read_json.return_value = (None, 0)
    manager.list_json.return_value = []
    return manager


@pytest.fixture
def gcs_store(gcs):
    return GCSRecordStore(gcs, prefix="radar")


class TestGCSLayout:

    def test_observation_is_create_only(self, gcs_store, gcs):
        observation = make_observation(patient_id="p9")
        gcs_store.add_observation(observation)

        path, content = gcs.write_json.call_args.args
        assert path == f"radar/observations/patient_p9/{observation.id}.json"
        assert json.loads(content)["id"] == observation.id
        assert gcs.write_json.call_args.kwargs["if_generation_match"] == 0

    def test_patient_round_trip(self, gcs_store, gcs):
        patient = make_patient()
        gcs.read_json.return_value = (json.loads(patient.model_dump_json()), 4)

        assert gcs_store.get_patient(patient.id) == patient
        gcs.read_json.assert_called_with(f"radar/patients/{patient.id}.json")

    def test_missing_patient(self, gcs_store):
        with pytest.raises(RecordNotFoundError):
            gcs_store.get_patient("nope")

    def test_audit_partitioned_by_day(self, gcs_store, gcs):
        event = AuditEvent(entity="response", entity_id="o1", event="x", timestamp=FIXED_NOW)
        gcs_store.add_audit_event(event)
        assert gcs.write_json.call_args.args[0] == f"radar/audit_events/2026-03-10/{event.id}.json"

    def test_list_sorts_by_time(self, gcs_store, gcs):
        later = make_observation().model_copy(update={"received_at": FIXED_NOW})
        earlier = make_observation().model_copy(update={"received_at": FIXED_NOW - timedelta(hours=2)})
        gcs.list_json.return_value = [json.loads(later.model_dump_json()), json.loads(earlier.model_dump_json())]

        assert [o.id for o in gcs_store.list_observations("p1")] == [earlier.id, later.id]
        gcs.list_json.assert_called_with("radar/observations/patient_p1/")

    def test_missing_risk_score(self, gcs_store):
        assert gcs_store.get_risk_score("o1") is None


class TestGCSErrors:

    def test_read_failure_wrapped(self, gcs_store, gcs):
        gcs.read_json.side_effect = ConnectionError("network down")
        with pytest.raises(RecordStoreError):
            gcs_store.get_triage("o1")

    def test_write_failure_wrapped(self, gcs_store, gcs):
        gcs.write_json.side_effect = TimeoutError("slow")
        with pytest.raises(RecordStoreError):
            gcs_store.add_risk_score(RiskScore(overall_score=10, confidence=0.5))

    def test_duplicate_append_rejected(self, gcs_store, gcs):
        gcs.write_json.side_effect = PreconditionFailed("exists")
        with pytest.raises(RecordStoreError) as exc_info:
            gcs_store.add_observation(make_observation())
        assert not isinstance(exc_info.value, CheckinSlotTakenError)

    def test_corrupt_record_wrapped(self, gcs_store, gcs):
        gcs.list_json.return_value = [{"patient_id": "p1"}]
        with pytest.raises(RecordStoreError, match="Corrupt CheckinScheduleEntry"):
            gcs_store.list_checkin_entries("p1")

    def test_corrupt_single_record_wrapped(self, gcs_store, gcs):
        gcs.read_json.return_value = ({"first_name": "Ana"}, 3)
        with pytest.raises(RecordStoreError):
            gcs_store.get_patient("p1")


class TestGCSSlots:

    def test_claim_conditioned_on_generation(self, gcs_store, gcs):
        entry = slot_entry()
        gcs_store.claim_checkin_slot(entry)

        path = gcs.write_json.call_args.args[0]
        assert path == "radar/checkin_schedule/patient_p1/2026-03-10.json"
        assert gcs.write_json.call_args.kwargs["if_generation_match"] == 0

    def test_concurrent_claim_loses(self, gcs_store, gcs):
        gcs.write_json.side_effect = PreconditionFailed("generation mismatch")
        with pytest.raises(CheckinSlotTakenError):
            gcs_store.claim_checkin_slot(slot_entry())

    def test_completed_slot_blocks(self, gcs_store, gcs):
        existing = slot_entry().mark_completed("SM1")
        gcs.read_json.return_value = (json.loads(existing.model_dump_json()), 7)

        with pytest.raises(CheckinSlotTakenError):
            gcs_store.claim_checkin_slot(slot_entry())
        gcs.write_json.assert_not_called()

    def test_failed_slot_overwritten_at_generation(self, gcs_store, gcs):
        existing = slot_entry().mark_failed("timeout")
        gcs.read_json.return_value = (json.loads(existing.model_dump_json()), 7)

        gcs_store.claim_checkin_slot(slot_entry())

        assert gcs.write_json.call_args.kwargs["if_generation_match"] == 7

    def test_manual_entry_path(self, gcs_store, gcs):
        entry = slot_entry(manual_trigger=True)
        gcs_store.add_manual_checkin(entry)
        assert gcs.write_json.call_args.args[0] == f"radar/checkin_schedule/patient_p1/manual_{entry.id}.json"

    def test_update_of_reclaimed_slot(self, gcs_store, gcs):
        ours = slot_entry()
        theirs = slot_entry()
        gcs.read_json.return_value = (json.loads(theirs.model_dump_json()), 3)

        with pytest.raises(CheckinSlotTakenError):
            gcs_store.update_checkin_entry(ours.mark_completed("SM1"))


class TestBucketManager:

    @pytest.fixture
    def manager(self):
        manager = GCSBucketManager("radar-test", project_id="proj", timeout=5)
        manager._client = MagicMock()
        manager._bucket = MagicMock()
        return manager

    def test_read_missing_blob(self, manager):
        manager._bucket.blob.return_value.download_as_text.side_effect = NotFound("gone")
        assert manager.read_json("patients/p1.json") == (None, 0)

    def test_read_returns_generation(self, manager):
        blob = manager._bucket.blob.return_value
        blob.download_as_text.return_value = '{"id": "p1"}'
        blob.generation = 12

        assert manager.read_json("patients/p1.json") == ({"id": "p1"}, 12)
        blob.download_as_text.assert_called_once_with(timeout=5)

    def test_list_skips_non_json(self, manager):
        good = MagicMock()
        good.name = "patients/p1.json"
        good.download_as_text.return_value = '{"id": "p1"}'
        other = MagicMock()
        other.name = "patients/readme.txt"
        manager._client.list_blobs.return_value = [good, other]

        assert manager.list_json("patients/") == [{"id": "p1"}]

    def test_write_passes_precondition(self, manager):
        manager.write_json("a.json", "{}", if_generation_match=0)
        manager._bucket.blob.return_value.upload_from_string.assert_called_once_with(
            "{}", content_type="application/json", timeout=5, if_generation_match=0,
        )

    def test_unconditional_write(self, manager):
        manager.write_json("a.json", "{}")
        kwargs = manager._bucket.blob.return_value.upload_from_string.call_args.kwargs
        assert "if_generation_match" not in kwargs
