# ============================================================================
# FILE: tests/conftest.py
# ============================================================================
"""
Pytest configuration and shared fixtures for testing.
"""

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from mediminder.services.kv_store import MemoryKeyValueStore
from mediminder.services.notifications import NotificationScheduler
from mediminder.services.platforms import InMemoryNotificationPlatform
from mediminder.services.reminders import ReminderOrchestrator
from mediminder.services.schedule_store import ScheduleStore


TODAY = date(2026, 1, 5)
# 05:30 in Asia/Kolkata, before the first default slot (07:30)
START = datetime(2026, 1, 5, 0, 0, tzinfo=timezone.utc)


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FailingKeyValueStore(MemoryKeyValueStore):
    """Reads work, every write fails."""

    async def set(self, key: str, value: str) -> None:
        raise OSError("disk full")


@pytest.fixture
def tz():
    return ZoneInfo("Asia/Kolkata")


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def kv():
    return MemoryKeyValueStore()


@pytest.fixture
def store(kv, clock):
    ids = iter(f"med-{i:04d}" for i in range(1, 1000))
    return ScheduleStore(kv, clock=clock, id_factory=lambda: next(ids))


@pytest.fixture
def platform():
    return InMemoryNotificationPlatform()


@pytest.fixture
def scheduler(platform, kv, clock, tz):
    return NotificationScheduler(platform, kv, clock=clock, tz=tz)


@pytest.fixture
def orchestrator(store, scheduler, tz):
    return ReminderOrchestrator(store, scheduler, tz=tz, today=lambda: TODAY)


@pytest.fixture
def prescription_lines():
    """Typical OCR output of a handwritten prescription"""
    return [
        "Dr. A. Sharma MBBS",
        "Patient: Ravi Kumar",
        "Date: 05/01/2026",
        "Amoxicillin 500mg 1-0-1 after food",
        "Paracetamol 650 mg twice daily",
        "Cetirizine 10",
        "Signature",
    ]


@pytest.fixture
def failing_kv():
    return FailingKeyValueStore()
