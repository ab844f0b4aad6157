import logging
from datetime import date, tzinfo
from typing import Callable, Iterable, List, Optional

from mediminder.core.config import DEFAULT_DAYS
from mediminder.schemas.models import CUSTOM_PATTERN, Dose, LoggedStatus, ReminderResult
from mediminder.services.notifications import NotificationScheduler
from mediminder.services.patterns import custom_dose_id, expand_pattern
from mediminder.services.schedule_store import ScheduleStore
from mediminder.utils.time_utils import at_clock, hhmm_to_minutes, local_tz, parse_iso, today_local

logger = logging.getLogger(__name__)


class ReminderOrchestrator:
    """
    Ties the store, the pattern expander and the notification scheduler
    together. Doses are always persisted before any alert is scheduled.
    """

    def __init__(
        self,
        store: ScheduleStore,
        scheduler: NotificationScheduler,
        tz: Optional[tzinfo] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self.store = store
        self.scheduler = scheduler
        self.tz = tz or local_tz()
        self.today = today or (lambda: today_local(self.tz))

    async def _persist_and_schedule(self, med, doses: List[Dose]) -> ReminderResult:
        merged = {d.dose_id: d for d in await self.store.append_doses(doses)}
        doses = [merged.get(d.dose_id, d) for d in doses]

        open_doses = [d for d in doses if d.status == "scheduled"]
        # a repeat add replaces the alerts of doses that already have one
        for d in open_doses:
            if await self.scheduler.linked_alerts(d.dose_id):
                await self.scheduler.cancel_notifications_for_dose(d.dose_id)

        # doses already logged as taken/missed get no new alert
        ids = await self.scheduler.schedule_many(open_doses, med.name)
        scheduled = sum(1 for i in ids if i)
        result = ReminderResult(
            medication=med,
            doses=doses,
            scheduled=scheduled,
            skipped=len(doses) - scheduled,
        )
        logger.info(
            "med %s (%s): %d doses, %d scheduled, %d skipped",
            med.med_id, med.name, len(doses), result.scheduled, result.skipped,
        )
        return result

    async def add_medication_with_pattern(self, name: str, pattern: str, days: int = DEFAULT_DAYS) -> ReminderResult:
        if not (name or "").strip():
            raise ValueError("Medication name is required.")
        if not (pattern or "").strip():
            raise ValueError("Dose pattern is required.")

        med = await self.store.upsert_medication(name, pattern.strip())
        doses = expand_pattern(med, days=days, today=self.today(), tz=self.tz)
        return await self._persist_and_schedule(med, doses)

    async def add_medication_with_explicit_times(
        self,
        name: str,
        dates: Iterable[date],
        times: Iterable[str],
    ) -> ReminderResult:
        if not (name or "").strip():
            raise ValueError("Medication name is required.")

        uniq_dates = sorted(set(dates))
        # keyed by clock value so "7:05" and "07:05" collapse to one time
        by_minutes = {}
        for t in times:
            if t and t.strip():
                by_minutes.setdefault(hhmm_to_minutes(t.strip()), t.strip())
        uniq_times = [by_minutes[m] for m in sorted(by_minutes)]
        if not uniq_dates or not uniq_times:
            raise ValueError("At least one date and one time are required.")

        med = await self.store.upsert_medication(name, CUSTOM_PATTERN)
        doses: List[Dose] = []
        for day in uniq_dates:
            for hhmm in uniq_times:
                when_iso = at_clock(day, hhmm, self.tz).isoformat()
                doses.append(Dose(
                    dose_id=custom_dose_id(med.med_id, when_iso),
                    med_id=med.med_id,
                    when_iso=when_iso,
                    slot="custom",
                ))
        return await self._persist_and_schedule(med, doses)

    async def mark_dose(self, dose_id: str, status: LoggedStatus) -> Optional[Dose]:
        dose = await self.store.update_dose_status(dose_id, status)
        if dose is not None:
            await self.scheduler.cancel_notifications_for_dose(dose_id)
        return dose

    async def reschedule_all(self) -> int:
        """Cancel every alert and schedule one for each future, still-open dose."""
        await self.scheduler.cancel_all_scheduled()

        names = {m.med_id: m.name for m in await self.store.get_meds()}
        now = self.scheduler.clock()
        count = 0
        for d in await self.store.get_doses():
            if d.status != "scheduled" or d.med_id not in names:
                continue
            try:
                if parse_iso(d.when_iso) <= now:
                    continue
            except ValueError:
                continue
            if await self.scheduler.schedule_dose_notification(d, names[d.med_id]):
                count += 1

        logger.info("rescheduled %d notifications", count)
        return count
