"""
Time helpers shared by the API and the lifecycle services.
All persisted timestamps are UTC; SQLite hands them back naive, so every
comparison goes through ensure_utc first.
"""
from datetime import date, datetime, timedelta
from typing import Optional, Tuple, Union
import pytz
from ..config import settings


def utcnow() -> datetime:
    return datetime.now(tz=pytz.UTC)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=pytz.UTC)
    return dt.astimezone(pytz.UTC)


def parse_datetime(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Parse an ISO 8601 timestamp as sent by the dashboard.

    Accepts the trailing "Z" produced by JavaScript's toISOString().
    Raises ValueError on malformed input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    raw = str(value).strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(raw))


def parse_date(value: Union[str, date, datetime, None]) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = str(value).strip()
    # "2024-01-05T00:00:00.000Z" style values carry a date prefix
    return date.fromisoformat(raw[:10])


def isoformat(dt: Optional[Union[datetime, date]]) -> Optional[str]:
    if dt is None:
        return None
    if isinstance(dt, datetime):
        return ensure_utc(dt).isoformat().replace("+00:00", "Z")
    return dt.isoformat()


def utc_to_local(utc_datetime: datetime, timezone_str: Optional[str] = None) -> datetime:
    tz = pytz.timezone(timezone_str or settings.tz_default)
    return ensure_utc(utc_datetime).astimezone(tz)


def format_local(utc_datetime: datetime, timezone_str: Optional[str] = None) -> str:
    return utc_to_local(utc_datetime, timezone_str).strftime("%d/%m/%Y, %H:%M:%S")


def month_bounds(now: datetime, timezone_str: Optional[str] = None) -> Tuple[datetime, datetime]:
    """
    Return [start, end) of the calendar month containing `now`, in UTC,
    with month boundaries taken in the given local timezone.
    """
    tz = pytz.timezone(timezone_str or settings.tz_default)
    local = ensure_utc(now).astimezone(tz)
    start = tz.localize(datetime(local.year, local.month, 1))
    if local.month == 12:
        end = tz.localize(datetime(local.year + 1, 1, 1))
    else:
        end = tz.localize(datetime(local.year, local.month + 1, 1))
    return start.astimezone(pytz.UTC), end.astimezone(pytz.UTC)


def hours_from(now: datetime, hours: int) -> datetime:
    return ensure_utc(now) + timedelta(hours=hours)
