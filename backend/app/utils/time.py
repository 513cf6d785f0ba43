from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo

from ..config import get_settings


@lru_cache
def app_timezone() -> ZoneInfo:
    return ZoneInfo(get_settings().app_timezone)


def utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utc_naive_to_local(dt: datetime) -> datetime:
    return dt.replace(tzinfo=timezone.utc).astimezone(app_timezone())


def slot_start_utc(slot_date: date, start_time: time) -> datetime:
    """Slot dates and times are wall-clock values in the application timezone."""
    local = datetime.combine(slot_date, start_time, tzinfo=app_timezone())
    return local.astimezone(timezone.utc).replace(tzinfo=None)


def hours_until(slot_date: date, start_time: time, *, now: datetime | None = None) -> float:
    now_utc = now or utc_now_naive()
    return (slot_start_utc(slot_date, start_time) - now_utc) / timedelta(hours=1)


def parse_hhmm(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def format_hhmm(value: time) -> str:
    return value.strftime("%H:%M")
