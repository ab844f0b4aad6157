# ============================================================================
# tests/unit/test_notifications.py
# ============================================================================
"""
Tests for the notification scheduler
"""

import json
from dataclasses import dataclass, field
from typing import Set

import pytest

from mediminder.schemas.models import Dose
from mediminder.services.notifications import MAP_KEY, REMINDER_TITLE, NotificationScheduler
from mediminder.services.platforms import InMemoryNotificationPlatform


def _dose(dose_id: str, when_iso: str) -> Dose:
    return Dose(dose_id=dose_id, med_id="med-1", when_iso=when_iso, slot="morning")


FUTURE = "2026-01-05T07:30:00+05:30"   # 02:00Z, clock is at 00:00Z
PAST = "2026-01-05T05:00:00+05:30"     # 23:30Z the day before


@dataclass
class FlakyPlatform(InMemoryNotificationPlatform):
    fail_cancel: Set[str] = field(default_factory=set)
    fail_schedule: bool = False
    fail_setup: bool = False
    cancel_attempts: list = field(default_factory=list)

    async def ensure_permissions(self) -> bool:
        if self.fail_setup:
            raise RuntimeError("permissions api unavailable")
        return await super().ensure_permissions()

    async def schedule(self, title, body, data, trigger_time):
        if self.fail_schedule:
            raise RuntimeError("platform refused")
        return await super().schedule(title, body, data, trigger_time)

    async def cancel(self, alert_id):
        self.cancel_attempts.append(alert_id)
        if alert_id in self.fail_cancel:
            raise RuntimeError("cancel failed")
        await super().cancel(alert_id)


class TestLifecycle:
    """Test init / teardown"""

    @pytest.mark.asyncio
    async def test_init_configures_channel_once(self, scheduler, platform):
        await scheduler.init()
        await scheduler.init()
        assert scheduler.initialized
        assert platform.channels == {"meds": "Medication Reminders"}

        await scheduler.teardown()
        assert not scheduler.initialized

    @pytest.mark.asyncio
    async def test_init_survives_platform_errors(self, kv, clock, tz):
        platform = FlakyPlatform(fail_setup=True)
        scheduler = NotificationScheduler(platform, kv, clock=clock, tz=tz)
        await scheduler.init()
        assert scheduler.initialized


class TestScheduleDose:
    """Test scheduling a single dose"""

    @pytest.mark.asyncio
    async def test_future_dose(self, scheduler, platform, kv):
        alert_id = await scheduler.schedule_dose_notification(_dose("d1", FUTURE), "Amoxicillin")

        assert alert_id in platform.alerts
        alert = platform.alerts[alert_id]
        assert alert.title == REMINDER_TITLE
        assert alert.body == "Amoxicillin at 07:30"
        assert alert.data == {"dose_id": "d1"}
        assert json.loads(kv.data[MAP_KEY]) == {"d1": [alert_id]}

    @pytest.mark.asyncio
    async def test_past_dose_skipped(self, scheduler, platform):
        assert await scheduler.schedule_dose_notification(_dose("d1", PAST), "Amoxicillin") is None
        assert platform.alerts == {}

    @pytest.mark.asyncio
    async def test_dose_exactly_now_skipped(self, scheduler, platform, clock):
        assert await scheduler.schedule_dose_notification(_dose("d1", clock().isoformat()), "X") is None
        assert platform.alerts == {}

    @pytest.mark.asyncio
    async def test_platform_failure_returns_none(self, kv, clock, tz):
        scheduler = NotificationScheduler(FlakyPlatform(fail_schedule=True), kv, clock=clock, tz=tz)
        assert await scheduler.schedule_dose_notification(_dose("d1", FUTURE), "X") is None
        assert await scheduler.linked_alerts("d1") == []

    @pytest.mark.asyncio
    async def test_index_write_failure_is_not_raised(self, failing_kv, clock, tz, platform):
        scheduler = NotificationScheduler(platform, failing_kv, clock=clock, tz=tz)
        alert_id = await scheduler.schedule_dose_notification(_dose("d1", FUTURE), "X")
        assert alert_id in platform.alerts


class TestScheduleMany:
    """Test batch scheduling"""

    @pytest.mark.asyncio
    async def test_results_in_input_order(self, scheduler, platform):
        ids = await scheduler.schedule_many(
            [_dose("a", FUTURE), _dose("b", PAST), _dose("c", "2026-01-05T21:30:00+05:30")],
            "Amoxicillin",
        )
        assert ids[0] is not None
        assert ids[1] is None
        assert ids[2] is not None
        assert len(platform.alerts) == 2


class TestCancel:
    """Test cancellation"""

    @pytest.mark.asyncio
    async def test_cancel_all_linked_ids_even_if_one_fails(self, kv, clock, tz):
        platform = FlakyPlatform()
        scheduler = NotificationScheduler(platform, kv, clock=clock, tz=tz)
        first = await scheduler.schedule_dose_notification(_dose("d1", FUTURE), "X")
        second = await scheduler.schedule_dose_notification(_dose("d1", FUTURE), "X")
        platform.fail_cancel = {first}

        await scheduler.cancel_notifications_for_dose("d1")

        assert platform.cancel_attempts == [first, second]
        assert second not in platform.alerts
        assert await scheduler.linked_alerts("d1") == []

    @pytest.mark.asyncio
    async def test_cancel_unknown_dose(self, scheduler, platform):
        await scheduler.cancel_notifications_for_dose("nope")
        assert platform.alerts == {}

    @pytest.mark.asyncio
    async def test_cancel_all(self, scheduler, platform):
        await scheduler.schedule_many([_dose("a", FUTURE), _dose("b", FUTURE)], "X")
        await scheduler.cancel_all_scheduled()
        assert await scheduler.list_scheduled() == []
        assert await scheduler.linked_alerts("a") == []


@pytest.mark.asyncio
async def test_schedule_test_in(scheduler, platform, clock):
    alert_id = await scheduler.schedule_test_in(10)
    assert (platform.alerts[alert_id].trigger_time - clock()).total_seconds() == 10
