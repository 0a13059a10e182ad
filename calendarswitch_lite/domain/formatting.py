"""Display formatting for switch state attributes.

All lines are rendered in the hub's zone with fixed English day/month names so
output does not depend on the process locale.
"""

from __future__ import annotations

import datetime
from typing import Optional

from calendarswitch_lite.calendar.lite_models import EventInstance

DAY_NAMES = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
MONTH_NAMES = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")
BULLET = "• "
RANGE_SEPARATOR = " – "


def format_date(dt: datetime.datetime) -> str:
    """``Mon Jan 5``"""
    return f"{DAY_NAMES[dt.weekday()]} {MONTH_NAMES[dt.month - 1]} {dt.day}"


def format_time(dt: datetime.datetime, seconds: bool = False) -> str:
    """``9:00 AM`` (12-hour clock, no leading zero)."""
    hour = dt.hour % 12 or 12
    suffix = "AM" if dt.hour < 12 else "PM"
    if seconds:
        return f"{hour}:{dt.minute:02d}:{dt.second:02d} {suffix}"
    return f"{hour}:{dt.minute:02d} {suffix}"


def format_timestamp(dt: datetime.datetime, tz: datetime.tzinfo) -> str:
    """``Mon Jan 5, 9:00:00 AM PST`` - used for the lastFetch attribute."""
    local = dt.astimezone(tz)
    return f"{format_date(local)}, {format_time(local, seconds=True)} {local.tzname()}"


def format_event_line(instance: EventInstance, tz: datetime.tzinfo) -> str:
    """Render one instance for activeSummary / nextSummary.

    The end side shows only a time when start and end fall on the same local date,
    otherwise a full date and time.
    """
    start = instance.effective_start.astimezone(tz)
    summary = instance.event.summary
    if instance.event.all_day:
        return f"{format_date(start)} (All-day) {summary}"

    end = instance.effective_end.astimezone(tz)
    end_text = format_time(end)
    if end.date() != start.date():
        end_text = f"{format_date(end)} {end_text}"
    return f"{format_date(start)} {format_time(start)}{RANGE_SEPARATOR}{end_text} {summary}"


def format_event_line_for_list(
    instance: EventInstance, tz: datetime.tzinfo, show_location: bool
) -> str:
    line = format_event_line(instance, tz)
    if show_location and instance.event.location:
        line += f" @ {instance.event.location}"
    return line


def upcoming_lines(
    eligible: list[EventInstance],
    now: datetime.datetime,
    tz: datetime.tzinfo,
    limit: int,
    show_location: bool = True,
) -> list[str]:
    """Lines for instances that have not ended yet, in eligible-set order, capped at ``limit``."""
    current = [instance for instance in eligible if instance.effective_end >= now]
    return [format_event_line_for_list(i, tz, show_location) for i in current[: max(0, limit)]]


def bullet_text(lines: list[str]) -> str:
    return "\n".join(BULLET + line for line in lines)


def optional_line(instance: Optional[EventInstance], tz: datetime.tzinfo) -> Optional[str]:
    return format_event_line(instance, tz) if instance is not None else None
