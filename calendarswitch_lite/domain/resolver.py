"""Active/next resolution for the busy switch.

Single source of truth for whether the switch is on at a given instant, which
instance governs the display and when the next re-evaluation is due.
"""

from __future__ import annotations

import datetime
from typing import Optional

from calendarswitch_lite.calendar.lite_models import (
    EventInstance,
    ResolutionResult,
    TransitionReason,
)

RESCHEDULE_TOLERANCE = datetime.timedelta(seconds=1)


def resolve(eligible: list[EventInstance], now: datetime.datetime) -> ResolutionResult:
    """Resolve the switch state at ``now``.

    Args:
        eligible: Eligible instances ordered by effective start
        now: Current instant (timezone-aware)

    Returns:
        ResolutionResult with the governing instance (active, ends soonest), the next
        instance (earliest effective start after now) and the next transition instant
    """
    active = [instance for instance in eligible if instance.is_active_at(now)]
    upcoming = [instance for instance in eligible if instance.effective_start > now]

    # min() keeps the first of equal keys, so ties resolve in list order
    governing = min(active, key=lambda i: i.effective_end) if active else None
    next_instance = min(upcoming, key=lambda i: i.effective_start) if upcoming else None

    if governing is not None:
        return ResolutionResult(
            is_active=True,
            governing=governing,
            next_instance=next_instance,
            next_transition=governing.effective_end,
            reason=TransitionReason.ACTIVE_END,
        )

    if next_instance is not None:
        return ResolutionResult(
            is_active=False,
            next_instance=next_instance,
            next_transition=next_instance.effective_start,
            reason=TransitionReason.NEXT_START,
        )

    return ResolutionResult(is_active=False, next_instance=None, reason=TransitionReason.NONE)


def needs_reschedule(
    previous: Optional[datetime.datetime],
    new: Optional[datetime.datetime],
    tolerance: datetime.timedelta = RESCHEDULE_TOLERANCE,
) -> bool:
    """True when the transition timer has to be re-armed or cancelled."""
    if previous is None and new is None:
        return False
    if previous is None or new is None:
        return True
    return abs(new - previous) > tolerance
