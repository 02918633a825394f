"""Clock / timezone resolution for services.

Weekday indexes follow the configured DAY_OF_WEEK_CONVENTION:
  "monday" -> 0=Monday .. 6=Sunday (Python's date.weekday())
  "sunday" -> 0=Sunday .. 6=Saturday
"""

import re
from datetime import date, datetime, time, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.core.config import settings
from app.core.errors import FormatError, ValidationError

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

WEEKDAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def get_zone(tz_name: str) -> ZoneInfo:
    """Return the ZoneInfo for an IANA name or raise ValidationError."""
    if not tz_name or not isinstance(tz_name, str):
        raise ValidationError("timezone is required", code="missing_required_field")
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        raise ValidationError(
            f"Unknown timezone: {tz_name}", code="invalid_field_format"
        )


def is_valid_timezone(tz_name: str) -> bool:
    try:
        get_zone(tz_name)
    except ValidationError:
        return False
    return True


def parse_date(value: str) -> date:
    """Parse a strict YYYY-MM-DD string.

    Lexically valid but impossible dates (2024-13-40, 2023-02-29) are rejected.
    """
    if not isinstance(value, str) or not _DATE_RE.match(value):
        raise FormatError(f"Invalid date '{value}', expected YYYY-MM-DD")
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise FormatError(f"Invalid date '{value}', not a calendar date")


def _iso_to_convention(iso_weekday: int, convention: str) -> int:
    # iso_weekday: Monday=0 .. Sunday=6
    if convention == "sunday":
        return (iso_weekday + 1) % 7
    return iso_weekday


def weekday_of(
    value: Union[date, datetime],
    tz_name: str,
    convention: Optional[str] = None,
) -> int:
    """Weekday index of a calendar date or instant in the service's timezone.

    A plain date is already a local calendar day. An aware datetime is
    converted into the service timezone first, so 23:30 UTC can land on the
    next local day; naive datetimes are taken as UTC.
    """
    convention = convention or settings.DAY_OF_WEEK_CONVENTION
    zone = get_zone(tz_name)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        local_day = value.astimezone(zone).date()
    else:
        local_day = value
    return _iso_to_convention(local_day.weekday(), convention)


def weekday_name(day_of_week: int, convention: Optional[str] = None) -> str:
    convention = convention or settings.DAY_OF_WEEK_CONVENTION
    if convention == "sunday":
        return WEEKDAY_NAMES[(day_of_week - 1) % 7]
    return WEEKDAY_NAMES[day_of_week]


def occurrence_window(occurrence_date: date, start: time, end: time, tz_name: str) -> tuple[datetime, datetime]:
    """Aware start/end datetimes of one occurrence in the service timezone."""
    zone = get_zone(tz_name)
    return (
        datetime.combine(occurrence_date, start, tzinfo=zone),
        datetime.combine(occurrence_date, end, tzinfo=zone),
    )
