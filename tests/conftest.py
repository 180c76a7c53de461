"""
Shared fixtures for the Post-Op Radar test suite.
Everything runs offline: in-memory store, stub SMS gateway, fixed clock.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from radar.gateway.clock import Clock
from radar.gateway.dispatchers.stub_dispatcher import StubSMSDispatcher
from radar.gateway.records import Observation, Patient
from radar.gateway.store import InMemoryRecordStore

# 2026-03-10 14:00 UTC = 10:00 in New York (EDT)
FIXED_NOW = datetime(2026, 3, 10, 14, 0, tzinfo=timezone.utc)
TODAY = date(2026, 3, 10)


class MutableNow:
    """Callable clock source tests can move forward."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def now_source():
    return MutableNow()


@pytest.fixture
def clock(now_source):
    return Clock("America/New_York", now_fn=now_source)


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def sms():
    return StubSMSDispatcher()


def make_patient(
    day_index: int = 3,
    phone: str = "+18015550101",
    first_name: str = "Maria",
    **kwargs,
) -> Patient:
    """Patient whose surgery was ``day_index`` days before TODAY."""
    return Patient(
        first_name=first_name,
        last_initial=kwargs.pop("last_initial", "G"),
        phone_e164=phone,
        procedure_type=kwargs.pop("procedure_type", "rhinoplasty"),
        surgery_date=TODAY - timedelta(days=day_index),
        practice_id=kwargs.pop("practice_id", "practice1"),
        **kwargs,
    )


def make_observation(
    patient_id: str = "p1",
    day_index: int = 1,
    pain_score=None,
    bleeding=None,
    concerns: str = "",
) -> Observation:
    return Observation(
        patient_id=patient_id,
        day_index=day_index,
        pain_score=pain_score,
        bleeding=bleeding,
        concerns=concerns,
    )


@pytest.fixture
def patient(store):
    p = make_patient()
    store.save_patient(p)
    return p
