"""Custom exception hierarchy for calendarswitch_lite.

Internals raise these specific types; the evaluation pipeline catches them at its
boundary so that a bad feed or a single malformed event never crashes the caller.
"""

from __future__ import annotations

from typing import Optional


class CalendarSwitchError(Exception):
    """Base exception for all calendarswitch_lite errors."""


class LiteICSFetchError(CalendarSwitchError):
    """Feed retrieval failed (non-200 status, empty body, or transport error)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class InvalidFeedError(CalendarSwitchError):
    """Feed text lacks the calendar-begin or event-begin marker.

    Raised before any parsing happens; the caller keeps its previous state.
    """


class UnparsableEventError(CalendarSwitchError):
    """A single VEVENT could not be turned into an event.

    Raised when:
    - DTSTART is missing or does not match the supported date grammar
    - The computed end lies before the start

    Only the offending event is dropped; parsing continues with the rest of the feed.
    """

    def __init__(
        self,
        reason: str,
        uid: str = "",
        raw_start: Optional[str] = None,
        summary: str = "",
    ):
        super().__init__(reason)
        self.reason = reason
        self.uid = uid
        self.raw_start = raw_start
        self.summary = summary


class LiteRRuleParseError(CalendarSwitchError):
    """RRULE text is malformed or uses a frequency the expander does not support."""


class TimezoneResolutionMiss(CalendarSwitchError):
    """A timezone identifier could not be mapped to an IANA zone.

    Never fatal: resolution falls through to the next weaker source.
    """
