import json
import logging
from datetime import datetime, timedelta, tzinfo
from typing import Callable, Dict, Iterable, List, Optional

from mediminder.schemas.models import Dose
from mediminder.services.kv_store import KeyValueStore
from mediminder.services.platforms import NotificationPlatform
from mediminder.utils.time_utils import format_clock, local_tz, parse_iso, utc_now

logger = logging.getLogger(__name__)

MAP_KEY = "doseNotifMap"  # dose_id -> [alert ids]
MEDS_CHANNEL = "meds"
REMINDER_TITLE = "Time to take your meds 💊"


class NotificationScheduler:
    """
    Schedules one platform alert per future dose and remembers which alert
    ids belong to which dose, so a dose's alerts can be cancelled later.

    Scheduling is best-effort: failures are logged and the dose is skipped.
    """

    def __init__(
        self,
        platform: NotificationPlatform,
        kv: KeyValueStore,
        clock: Callable[[], datetime] = utc_now,
        tz: Optional[tzinfo] = None,
    ):
        self.platform = platform
        self.kv = kv
        self.clock = clock
        self.tz = tz or local_tz()
        self.initialized = False

    # ---- lifecycle ----

    async def init(self) -> None:
        if self.initialized:
            return
        self.initialized = True

        try:
            if not await self.platform.ensure_permissions():
                logger.warning("notification permission not granted")
        except Exception as e:
            logger.warning("notification permissions error: %s", e)

        try:
            await self.platform.configure_channel(MEDS_CHANNEL, "Medication Reminders")
        except Exception as e:
            logger.warning("notification channel error: %s", e)

        logger.info("notifications initialized")

    async def teardown(self) -> None:
        self.initialized = False

    # ---- dose -> alert index ----

    async def _get_map(self) -> Dict[str, List[str]]:
        try:
            raw = await self.kv.get(MAP_KEY)
            data = json.loads(raw) if raw else {}
            return data if isinstance(data, dict) else {}
        except Exception as e:
            logger.warning("reading %s failed: %s", MAP_KEY, e)
            return {}

    async def _set_map(self, m: Dict[str, List[str]]) -> None:
        # index can be rebuilt by re-scheduling, so a failed write is not fatal
        try:
            await self.kv.set(MAP_KEY, json.dumps(m))
        except Exception as e:
            logger.warning("writing %s failed: %s", MAP_KEY, e)

    async def _link(self, dose_id: str, alert_id: str) -> None:
        m = await self._get_map()
        m.setdefault(dose_id, []).append(alert_id)
        await self._set_map(m)

    async def linked_alerts(self, dose_id: str) -> List[str]:
        return list((await self._get_map()).get(dose_id, []))

    # ---- API ----

    async def schedule_dose_notification(self, dose: Dose, med_name: str) -> Optional[str]:
        try:
            when = parse_iso(dose.when_iso)
        except ValueError as e:
            logger.warning("schedule failed for %s: bad time %r (%s)", dose.dose_id, dose.when_iso, e)
            return None

        if when <= self.clock():
            logger.info("skip past dose %s", dose.dose_id)
            return None

        try:
            alert_id = await self.platform.schedule(
                title=REMINDER_TITLE,
                body=f"{med_name} at {format_clock(when.astimezone(self.tz))}",
                data={"dose_id": dose.dose_id},
                trigger_time=when,
            )
        except Exception as e:
            logger.warning("schedule failed for %s: %s", dose.dose_id, e)
            return None

        await self._link(dose.dose_id, alert_id)
        logger.info("scheduled %s %s -> %s", dose.dose_id, when.isoformat(), alert_id)
        return alert_id

    async def schedule_many(self, doses: Iterable[Dose], med_name: str) -> List[Optional[str]]:
        return [await self.schedule_dose_notification(d, med_name) for d in doses]

    async def cancel_notifications_for_dose(self, dose_id: str) -> None:
        m = await self._get_map()
        for alert_id in m.get(dose_id, []):
            try:
                await self.platform.cancel(alert_id)
            except Exception as e:
                logger.warning("cancel %s for %s failed: %s", alert_id, dose_id, e)
        m.pop(dose_id, None)
        await self._set_map(m)
        logger.info("cancelled notifications for dose %s", dose_id)

    async def cancel_all_scheduled(self) -> None:
        await self.platform.cancel_all()
        await self._set_map({})
        logger.info("cancelled all scheduled notifications")

    async def schedule_test_in(self, seconds: int = 5) -> str:
        when = self.clock() + timedelta(seconds=seconds)
        alert_id = await self.platform.schedule(
            title="Test reminder 💊",
            body=f"Fires in {seconds}s",
            data={},
            trigger_time=when,
        )
        logger.info("test notification %s scheduled for %s", alert_id, when.isoformat())
        return alert_id

    async def list_scheduled(self):
        return await self.platform.list_scheduled()
