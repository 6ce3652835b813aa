"""Date manipulation utilities"""

from calendar import monthrange
from datetime import date, datetime, time
from zoneinfo import ZoneInfo


def month_key(value: date) -> str:
    """Return the "YYYY-MM" key of the month containing value"""
    return f"{value.year:04d}-{value.month:02d}"


def parse_month(key: str) -> tuple[int, int]:
    """Split a "YYYY-MM" key into (year, month), validating the format"""
    try:
        year_text, month_text = key.split("-")
        year, month = int(year_text), int(month_text)
    except (AttributeError, ValueError) as e:
        raise ValueError(f"Invalid month key: {key!r}") from e
    if len(year_text) != 4 or not 1 <= month <= 12:
        raise ValueError(f"Invalid month key: {key!r}")
    return year, month


def shift_month(key: str, months: int) -> str:
    """Move a month key forward (or backward) by a number of months"""
    year, month = parse_month(key)
    index = year * 12 + (month - 1) + months
    return f"{index // 12:04d}-{index % 12 + 1:02d}"


def previous_month(key: str) -> str:
    return shift_month(key, -1)


def next_month(key: str) -> str:
    return shift_month(key, 1)


def days_in_month(year: int, month: int) -> int:
    return monthrange(year, month)[1]


def clamped_day(year: int, month: int, day_of_month: int) -> date:
    """Date for day_of_month in the given month, clamped to the month's last day (31 -> 28/29/30)"""
    return date(year, month, min(day_of_month, days_in_month(year, month)))


def due_datetime(key: str, day_of_month: int, execute_time: time) -> datetime:
    """Due timestamp of a monthly schedule inside the month identified by key"""
    year, month = parse_month(key)
    return datetime.combine(clamped_day(year, month, day_of_month), execute_time)


def local_now(timezone: str) -> datetime:
    """Current wall-clock time in timezone as a naive datetime"""
    return datetime.now(ZoneInfo(timezone)).replace(tzinfo=None)
