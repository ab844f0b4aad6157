import logging
import re
from datetime import date, timedelta, tzinfo
from typing import Dict, List, Optional, Tuple

from mediminder.schemas.models import CUSTOM_PATTERN, Dose, FixedSlot, Medication
from mediminder.utils.time_utils import at_clock, local_tz, to_iso, today_local

logger = logging.getLogger(__name__)

DEFAULT_TIMES: Dict[FixedSlot, str] = {
    "morning": "07:30",
    "afternoon": "13:00",
    "evening": "18:30",
    "night": "21:30",
}

# 4 parts => M-A-E-N, anything shorter => M-A-N (no evening slot)
FOUR_SLOTS: Tuple[FixedSlot, ...] = ("morning", "afternoon", "evening", "night")
THREE_SLOTS: Tuple[FixedSlot, ...] = ("morning", "afternoon", "night")

STAGGER_MINUTES = 30

_LEADING_INT_RE = re.compile(r"\s*(\d+)")

def parse_pattern(pattern: str) -> List[int]:
    """ "1-0-1" -> [1, 0, 1]; unreadable segments count as 0. """
    parts = []
    for seg in str(pattern or "").strip().split("-"):
        m = _LEADING_INT_RE.match(seg)
        parts.append(int(m.group(1)) if m else 0)
    return parts

def slots_for(parts: List[int]) -> Tuple[FixedSlot, ...]:
    return FOUR_SLOTS if len(parts) >= 4 else THREE_SLOTS

def pattern_dose_id(med_id: str, day: date, slot: str, occurrence: int) -> str:
    return f"{med_id}-{day.isoformat()}-{slot}-{occurrence}"

def custom_dose_id(med_id: str, when_iso: str) -> str:
    return f"{med_id}-{when_iso}"

def expand_pattern(
    med: Medication,
    days: int = 7,
    today: Optional[date] = None,
    tz: Optional[tzinfo] = None,
) -> List[Dose]:
    """
    Expand a medication's slot pattern into dose instances for
    [today 00:00, today + days).

    Same-slot doses on one day are staggered by 30 minutes. Output order is
    day, then slot, then occurrence, and is identical for identical inputs.
    """
    if med.pattern.strip().lower() == CUSTOM_PATTERN or days <= 0:
        return []

    tz = tz or local_tz()
    start = today or today_local(tz)
    parts = parse_pattern(med.pattern)
    slots = slots_for(parts)

    doses: List[Dose] = []
    for d in range(days):
        day = start + timedelta(days=d)
        for idx, slot in enumerate(slots):
            count = parts[idx] if idx < len(parts) else 0
            for k in range(count):
                when = at_clock(day, DEFAULT_TIMES[slot], tz, plus_minutes=STAGGER_MINUTES * k)
                doses.append(Dose(
                    dose_id=pattern_dose_id(med.med_id, day, slot, k + 1),
                    med_id=med.med_id,
                    when_iso=to_iso(when),
                    slot=slot,
                    status="scheduled",
                ))

    logger.debug("expanded pattern %r for %s over %d days -> %d doses", med.pattern, med.med_id, days, len(doses))
    return doses
