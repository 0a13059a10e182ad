"""DateTime parsing utilities for ICS calendar processing - CalendarSwitch Lite.

This module implements the date-value grammar used for DTSTART, DTEND,
RECURRENCE-ID and RRULE UNTIL, plus explicit civil-time <-> instant conversion.
All returned instants are timezone-aware UTC datetimes.
"""

import logging
import re
from datetime import date, datetime, time, timezone, tzinfo
from typing import Optional

from dateutil.relativedelta import relativedelta
from icalendar.parser import unescape_backslash

logger = logging.getLogger(__name__)

UTC = timezone.utc

# strptime accepts single-digit %M/%S, so the format is chosen by the length of the time part
DATE_TIME_PATTERN = re.compile(r"^(\d{8})T(\d{6}|\d{4})(Z?)$")
TIME_FORMATS = {6: "%H%M%S", 4: "%H%M"}
DATE_FORMAT = "%Y%m%d"


def is_all_day_value(value: Optional[str]) -> bool:
    """All-day detection: exactly 8 characters and no time separator."""
    if not value:
        return False
    value = value.strip()
    return "T" not in value.upper() and len(value) == 8


def civil_to_instant(day: date, at: time, tz: tzinfo) -> datetime:
    """Convert a civil date + wall-clock time in ``tz`` to a UTC instant."""
    return datetime.combine(day, at).replace(tzinfo=tz).astimezone(UTC)


def local_midnight(day: date, tz: tzinfo) -> datetime:
    return civil_to_instant(day, time(0, 0), tz)


def _strptime_any(value: str, formats: tuple[str, ...]) -> Optional[datetime]:
    for fmt in formats:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return None


def parse_date_only(value: Optional[str]) -> Optional[date]:
    """Parse an 8-digit DATE value, or return None."""
    if not is_all_day_value(value):
        return None
    parsed = _strptime_any(value.strip(), (DATE_FORMAT,))
    return parsed.date() if parsed else None


def parse_ical_value(value: Optional[str], tz: tzinfo) -> Optional[datetime]:
    """Parse an iCalendar DATE or DATE-TIME value into a UTC instant.

    Grammar:
    - no ``T`` and exactly 8 characters -> all-day date at local midnight in ``tz``
    - ``YYYYMMDDTHHMM[SS]Z`` -> UTC instant
    - ``YYYYMMDDTHHMM[SS]`` -> civil time in ``tz``

    Args:
        value: Raw property value
        tz: Zone applied to floating and date-only values

    Returns:
        UTC datetime, or None if the value does not match the grammar
    """
    if not value:
        return None
    text = value.strip().upper()

    if is_all_day_value(text):
        day = parse_date_only(text)
        return local_midnight(day, tz) if day else None

    match = DATE_TIME_PATTERN.match(text)
    if match is None:
        return None
    day_part, time_part, utc_marker = match.groups()
    parsed = _strptime_any(day_part + time_part, (DATE_FORMAT + TIME_FORMATS[len(time_part)],))
    if parsed is None:
        return None
    if utc_marker:
        return parsed.replace(tzinfo=UTC)
    return parsed.replace(tzinfo=tz).astimezone(UTC)


def next_local_midnight(instant: datetime, tz: tzinfo) -> datetime:
    """Instant of local midnight one calendar day after ``instant``'s local date."""
    local_day = instant.astimezone(tz).date()
    return local_midnight(local_day + relativedelta(days=1), tz)


def end_of_local_day(day: date, tz: tzinfo) -> datetime:
    """Last second of ``day`` in ``tz`` as a UTC instant."""
    return civil_to_instant(day, time(23, 59, 59), tz)


def unescape_ics_text(value: Optional[str]) -> str:
    """Unescape an iCalendar TEXT value (``\\n``, ``\\N``, ``\\\\``, ``\\,``, ``\\;``)."""
    if not value:
        return ""
    return unescape_backslash(value)


def ensure_timezone_aware(dt: datetime) -> datetime:
    """Ensure datetime is timezone-aware (UTC if originally naive)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt
