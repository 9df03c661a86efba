from __future__ import annotations

from datetime import date, datetime, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from batch_code_core.errors import InvalidInputError

GROUP_KEY_FORMAT = "%m%d%y"

# YY only identifies a year within a single century
FIRST_YEAR = 2000
LAST_YEAR = 2099


def resolve_timezone(name: str | tzinfo) -> tzinfo:
    if isinstance(name, tzinfo):
        return name
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidInputError(f"Unknown timezone: {name!r}") from e


def production_day(value: date | datetime | str, tz: str | tzinfo = "UTC") -> date:
    """Resolve a date-like value to the calendar day it falls on in ``tz``.

    Aware datetimes are converted into ``tz`` first; naive datetimes are read
    as wall-clock time in ``tz`` so they keep their own calendar day. Strings
    must be ISO-8601 (``2026-02-17`` or ``2026-02-17T09:30:00+00:00``).
    """
    zone = resolve_timezone(tz)

    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            raise InvalidInputError("Empty date string")
        try:
            value = date.fromisoformat(raw) if len(raw) == 10 else datetime.fromisoformat(raw)
        except ValueError as e:
            raise InvalidInputError(f"Not an ISO-8601 date: {raw!r}") from e

    # datetime is a subclass of date, so it must be checked first
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.date()
        try:
            return value.astimezone(zone).date()
        except (OverflowError, ValueError) as e:
            raise InvalidInputError(f"Date out of range: {value!r}") from e

    if isinstance(value, date):
        return value

    raise InvalidInputError(f"Cannot derive a batch date from {type(value).__name__}")


def group_key_for(value: date | datetime | str, tz: str | tzinfo = "UTC") -> str:
    """MMDDYY key for the production day, e.g. 2026-02-17 -> ``021726``."""
    day = production_day(value, tz)
    if not FIRST_YEAR <= day.year <= LAST_YEAR:
        raise InvalidInputError(f"Batch dates must fall in {FIRST_YEAR}-{LAST_YEAR}, got {day.isoformat()}")
    return day.strftime(GROUP_KEY_FORMAT)

