import json
import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from pydantic import ValidationError

from mediminder.core.errors import StorageWriteError
from mediminder.schemas.models import (
    CUSTOM_PATTERN,
    TERMINAL_STATUSES,
    AdherenceSummary,
    Dose,
    LoggedStatus,
    Medication,
)
from mediminder.services.kv_store import KeyValueStore
from mediminder.services.patterns import custom_dose_id
from mediminder.utils.time_utils import parse_iso, to_iso, utc_now

logger = logging.getLogger(__name__)

K_MEDS = "meds"
K_DOSES = "doses"

def _med_id() -> str:
    return "med-" + uuid.uuid4().hex[:10]

def name_key(name: str) -> str:
    return (name or "").strip().lower()

class ScheduleStore:
    """
    Persisted medications and doses.

    Every operation reads and rewrites a whole collection. Reads never raise:
    missing or corrupt data comes back as an empty list. Writes raise
    StorageWriteError so callers can surface the failure.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = _med_id,
    ):
        self.kv = kv
        self.clock = clock
        self.id_factory = id_factory

    async def _safe_get(self, key: str) -> List[Dict[str, Any]]:
        try:
            raw = await self.kv.get(key)
            if not raw:
                return []
            data = json.loads(raw)
        except Exception as e:
            logger.warning("get %s failed: %s", key, e)
            return []
        if not isinstance(data, list):
            logger.warning("get %s: expected a list, got %s", key, type(data).__name__)
            return []
        return data

    async def _safe_set(self, key: str, items: Iterable[Any]) -> None:
        try:
            payload = json.dumps([i.model_dump() for i in items])
            await self.kv.set(key, payload)
        except Exception as e:
            logger.error("set %s failed: %s", key, e)
            raise StorageWriteError(f"Could not save {key}: {e}") from e

    # ---- Meds ----

    async def get_meds(self) -> List[Medication]:
        try:
            return [Medication(**m) for m in await self._safe_get(K_MEDS)]
        except (TypeError, ValidationError) as e:
            logger.warning("meds collection unreadable, treating as empty: %s", e)
            return []

    async def set_meds(self, meds: List[Medication]) -> None:
        await self._safe_set(K_MEDS, meds)

    async def get_medication(self, med_id: str) -> Optional[Medication]:
        return next((m for m in await self.get_meds() if m.med_id == med_id), None)

    async def upsert_medication(self, name: str, pattern: str) -> Medication:
        """Create, or update the pattern of the med with the same trimmed, lowercased name."""
        key = name_key(name)
        if not key:
            raise ValueError("Medication name is required.")

        meds = await self.get_meds()
        existing = next((m for m in meds if name_key(m.name) == key), None)
        if existing:
            existing.pattern = pattern
            await self.set_meds(meds)
            logger.info("upsert existing med %s (%s) pattern=%s", existing.med_id, existing.name, pattern)
            return existing

        med = Medication(med_id=self.id_factory(), name=name.strip(), pattern=pattern)
        meds.append(med)
        await self.set_meds(meds)
        logger.info("created med %s (%s) pattern=%s", med.med_id, med.name, pattern)
        return med

    # ---- Doses ----

    async def get_doses(self) -> List[Dose]:
        try:
            return [Dose(**d) for d in await self._safe_get(K_DOSES)]
        except (TypeError, ValidationError) as e:
            logger.warning("doses collection unreadable, treating as empty: %s", e)
            return []

    async def set_doses(self, doses: List[Dose]) -> None:
        await self._safe_set(K_DOSES, doses)

    async def doses_for_medication(self, med_id: str) -> List[Dose]:
        return [d for d in await self.get_doses() if d.med_id == med_id]

    async def append_doses(self, new_doses: Iterable[Dose]) -> List[Dose]:
        """
        Merge by dose_id; incoming doses replace stored ones, except that a
        stored dose already marked taken/missed keeps its status and logged_at.
        Doses for unknown medications are dropped.
        """
        new_doses = list(new_doses)
        known = {m.med_id for m in await self.get_meds()}
        current = await self.get_doses()
        before = len(current)
        merged: Dict[str, Dose] = {d.dose_id: d for d in current}

        for d in new_doses:
            if d.med_id not in known:
                logger.warning("appendDoses: dropping %s, unknown med %s", d.dose_id, d.med_id)
                continue
            prev = merged.get(d.dose_id)
            if prev is not None and prev.status in TERMINAL_STATUSES and d.status not in TERMINAL_STATUSES:
                d = d.model_copy(update={"status": prev.status, "logged_at": prev.logged_at})
            merged[d.dose_id] = d

        out = list(merged.values())
        await self.set_doses(out)
        logger.info("appendDoses: before=%d added=%d after=%d", before, len(new_doses), len(out))
        return out

    async def update_dose_status(self, dose_id: str, status: LoggedStatus) -> Optional[Dose]:
        if status not in TERMINAL_STATUSES:
            raise ValueError(f"Unsupported dose status: {status}")

        doses = await self.get_doses()
        idx = next((i for i, d in enumerate(doses) if d.dose_id == dose_id), None)
        if idx is None:
            logger.warning("updateDoseStatus: dose not found: %s", dose_id)
            return None

        dose = doses[idx]
        if dose.status in TERMINAL_STATUSES:
            logger.info("updateDoseStatus: %s already %s, leaving as is", dose_id, dose.status)
            return dose

        dose.status = status
        dose.logged_at = to_iso(self.clock())
        await self.set_doses(doses)
        logger.info("updateDoseStatus: %s -> %s", dose_id, status)
        return dose

    async def adherence_summary(self, days: int = 7, now: Optional[datetime] = None) -> AdherenceSummary:
        """Counts over doses due in the last `days` days; future doses are ignored."""
        now = now or self.clock()
        cutoff = now - timedelta(days=days)

        due: List[Dose] = []
        for d in await self.get_doses():
            try:
                when = parse_iso(d.when_iso)
            except ValueError:
                continue
            if cutoff <= when <= now:
                due.append(d)

        taken = sum(1 for d in due if d.status == "taken")
        missed = sum(1 for d in due if d.status == "missed")
        scheduled = sum(1 for d in due if d.status == "scheduled")
        total = len(due)
        return AdherenceSummary(
            days=days,
            total=total,
            taken=taken,
            missed=missed,
            scheduled=scheduled,
            adherence_rate=round(taken / total, 3) if total else 0.0,
        )

    # ---- Utilities / Dev helpers ----

    async def reset_all(self) -> None:
        await self.kv.multi_remove([K_MEDS, K_DOSES])
        logger.info("resetAll: cleared keys")

    async def seed_sample(self, now: Optional[datetime] = None):
        now = (now or self.clock()).replace(second=0, microsecond=0)
        med = await self.upsert_medication("Paracetamol 500mg", CUSTOM_PATTERN)
        doses = []
        for mins in (2, 60):
            when_iso = to_iso(now + timedelta(minutes=mins))
            doses.append(Dose(
                dose_id=custom_dose_id(med.med_id, when_iso),
                med_id=med.med_id,
                when_iso=when_iso,
                slot="custom",
            ))
        await self.append_doses(doses)
        return med, doses
