"""
Shared pytest fixtures for patient registry tests.
"""
from datetime import date, datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from main import app
from models import PatientRecord
from registry import InMemoryPatientStore, store

# Fixed "today" so age/date-of-birth tests do not drift
TODAY = date(2026, 10, 18)


@pytest.fixture
def client():
    """FastAPI TestClient."""
    return TestClient(app)


@pytest.fixture(autouse=True)
def empty_store():
    """Every test starts and ends with an empty process-wide store."""
    store.clear()
    yield store
    store.clear()


class FakeClock:
    """Deterministic clock: advances by `step` on every call."""

    def __init__(self, start=None, step=timedelta(seconds=1)):
        self.now = start or datetime(2026, 1, 1, tzinfo=timezone.utc)
        self.step = step

    def __call__(self):
        current = self.now
        self.now = self.now + self.step
        return current


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fresh_store(clock):
    """Isolated in-memory store driven by the fake clock."""
    return InMemoryPatientStore(clock=clock)


def make_record(hn="HN000001", **overrides):
    """Helper: a valid record with sensible defaults."""
    fields = {
        "hn": hn,
        "fullName": "Somchai Jaidee",
        "gender": "male",
        "age": 35,
    }
    fields.update(overrides)
    return PatientRecord(**fields)
