# mediminder/utils/time_utils.py
from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from mediminder.core.config import TIMEZONE

def hhmm_to_minutes(hhmm: str) -> int:
    h, m = map(int, hhmm.strip().split(":"))
    if not (0 <= h <= 23 and 0 <= m <= 59):
        raise ValueError(f"Invalid clock time: {hhmm!r}")
    return h * 60 + m

def parse_clock(hhmm: str) -> time:
    mins = hhmm_to_minutes(hhmm)
    return time(mins // 60, mins % 60)

def local_tz(name: Optional[str] = None) -> tzinfo:
    try:
        return ZoneInfo(name or TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc

def today_local(tz: Optional[tzinfo] = None) -> date:
    return datetime.now(tz or local_tz()).date()

def at_clock(day: date, hhmm: str, tz: tzinfo, plus_minutes: int = 0) -> datetime:
    """Aware datetime for `day` at `hhmm` (local), shifted by `plus_minutes`."""
    base = datetime.combine(day, parse_clock(hhmm), tzinfo=tz)
    return base + timedelta(minutes=plus_minutes) if plus_minutes else base

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

def to_iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=local_tz())
    return dt.isoformat()

def parse_iso(value: str) -> datetime:
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=local_tz())
    return dt

def format_clock(dt: datetime) -> str:
    return dt.strftime("%H:%M")
