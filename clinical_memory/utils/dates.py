"""Date parsing and display helpers shared by the builder and renderer."""
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Optional

MIN_DATETIME = datetime.min.replace(tzinfo=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Best-effort conversion of a source date value to an aware UTC datetime.

    Accepts datetimes, dates, ISO-8601 strings (date-only or with time,
    optionally ``Z``-suffixed) and epoch milliseconds. Naive values are
    assumed to be UTC. Anything unparseable yields ``None``.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, bool):
        return None
    elif isinstance(value, (int, float)):
        try:
            dt = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except (ValueError, OverflowError):
            return None
    else:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    try:
        return dt.astimezone(timezone.utc)
    except OverflowError:
        return None


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def format_short_date(value: Any) -> str:
    """Render a date as ``M/D/YY`` (e.g. ``1/5/24``)."""
    dt = parse_datetime(value)
    if dt is None:
        return "Unknown"
    return f"{dt.month}/{dt.day}/{dt:%y}"


def format_time(value: Any) -> str:
    dt = parse_datetime(value)
    if dt is None:
        return ""
    return dt.strftime("%H:%M")


def iso_day(value: datetime) -> str:
    return value.date().isoformat()


def calculate_age(dob: Any, today: Optional[datetime] = None) -> Optional[int]:
    """Whole years between ``dob`` and ``today``."""
    birth = parse_datetime(dob)
    if birth is None:
        return None
    today = today or utcnow()
    age = today.year - birth.year
    if (today.month, today.day) < (birth.month, birth.day):
        age -= 1
    return age
