from datetime import date, datetime, time
from typing import Optional, Union
from zoneinfo import ZoneInfo

from app.core.config import settings

DateLike = Union[date, datetime, str]


def as_date(value: Optional[DateLike]) -> Optional[date]:
    """Collapse stored datetimes and ISO strings to a calendar date."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def to_storage(value: date) -> datetime:
    # Mongo has no date-only type
    return datetime(value.year, value.month, value.day)


def day_count(start: DateLike, end: DateLike) -> int:
    """Inclusive calendar-day length of ``[start, end]``.

    Works on calendar dates only, so the caller's timezone never shifts the
    result: ``day_count(d, d) == 1``.
    """
    return (as_date(end) - as_date(start)).days + 1


def format_display(value: Optional[DateLike]) -> str:
    d = as_date(value)
    return d.strftime("%d/%m/%Y") if d else ""


def parse_hhmm(value: str) -> time:
    return datetime.strptime(value.strip(), "%H:%M").time()


def combine(day: DateLike, hhmm: Optional[str]) -> Optional[datetime]:
    if not hhmm:
        return None
    return datetime.combine(as_date(day), parse_hhmm(hhmm))


def local_now() -> datetime:
    """Office wall-clock time as a naive datetime."""
    return datetime.now(ZoneInfo(settings.ATTENDANCE_TIMEZONE)).replace(tzinfo=None)
