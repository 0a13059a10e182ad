"""Event building from raw VEVENT property blocks - CalendarSwitch Lite.

Converts one RawEventBlock plus the feed's timezone context into a normalized
LiteCalendarEvent with absolute UTC start/end instants.
"""

import logging
from datetime import timedelta
from typing import Optional

from calendarswitch_lite.calendar.lite_datetime_utils import (
    is_all_day_value,
    next_local_midnight,
    parse_ical_value,
    unescape_ics_text,
)
from calendarswitch_lite.calendar.lite_models import (
    EventDiagnostic,
    LiteCalendarEvent,
    RawEventBlock,
    Transparency,
)
from calendarswitch_lite.calendar.lite_timezone_resolver import ZoneResolver
from calendarswitch_lite.core.exceptions import UnparsableEventError

logger = logging.getLogger(__name__)

DEFAULT_TIMED_DURATION = timedelta(minutes=30)


class LiteEventBuilder:
    """Builds LiteCalendarEvent objects from RawEventBlocks."""

    def __init__(self, resolver: ZoneResolver):
        """Initialize event builder.

        Args:
            resolver: Zone resolver carrying the feed's calendar hints and hub default
        """
        self.resolver = resolver

    def build_events(
        self, blocks: list[RawEventBlock]
    ) -> tuple[list[LiteCalendarEvent], list[EventDiagnostic]]:
        """Build every block, dropping the ones that cannot be parsed.

        Returns:
            (events, diagnostics) where diagnostics explain each drop or degradation
        """
        events: list[LiteCalendarEvent] = []
        diagnostics: list[EventDiagnostic] = []
        for block in blocks:
            try:
                events.append(self.build_event(block, diagnostics))
            except UnparsableEventError as exc:
                diagnostic = EventDiagnostic(
                    reason=exc.reason,
                    uid=exc.uid,
                    raw_start=exc.raw_start,
                    summary=exc.summary,
                )
                diagnostics.append(diagnostic)
                logger.warning("Dropping event: %s", diagnostic)
        logger.debug("Built %d events (%d diagnostics)", len(events), len(diagnostics))
        return events, diagnostics

    def build_event(
        self,
        block: RawEventBlock,
        diagnostics: Optional[list[EventDiagnostic]] = None,
    ) -> LiteCalendarEvent:
        """Build one event.

        Args:
            block: Raw VEVENT properties
            diagnostics: Optional sink for non-fatal degradations (bad DTEND, bad RECURRENCE-ID)

        Raises:
            UnparsableEventError: If DTSTART is missing or unparsable, or end < start
        """
        uid = block.value("UID") or ""
        summary = unescape_ics_text(block.value("SUMMARY"))

        dtstart = block.get("DTSTART")
        if dtstart is None:
            raise UnparsableEventError("missing DTSTART", uid=uid, summary=summary)

        start_zone = self.resolver.resolve(dtstart.identifier_param("TZID"))
        start_tz = ZoneResolver.tz(start_zone)
        start = parse_ical_value(dtstart.value, start_tz)
        if start is None:
            raise UnparsableEventError(
                "unparsable DTSTART", uid=uid, raw_start=dtstart.value, summary=summary
            )
        all_day = is_all_day_value(dtstart.value)

        end = None
        dtend = block.get("DTEND")
        if dtend is not None:
            end_tzid = dtend.identifier_param("TZID")
            end_tz = ZoneResolver.tz(self.resolver.resolve(end_tzid)) if end_tzid else start_tz
            end = parse_ical_value(dtend.value, end_tz)
            if end is None and diagnostics is not None:
                diagnostics.append(
                    EventDiagnostic(
                        reason=f"unparsable DTEND {dtend.value!r}; default duration applied",
                        uid=uid,
                        raw_start=dtstart.value,
                        summary=summary,
                    )
                )
        if end is None:
            end = next_local_midnight(start, start_tz) if all_day else start + DEFAULT_TIMED_DURATION

        if end < start:
            raise UnparsableEventError(
                "end before start", uid=uid, raw_start=dtstart.value, summary=summary
            )

        recurrence_anchor = None
        recurrence_id = block.get("RECURRENCE-ID")
        if recurrence_id is not None:
            anchor_tzid = recurrence_id.identifier_param("TZID")
            anchor_tz = (
                ZoneResolver.tz(self.resolver.resolve(anchor_tzid)) if anchor_tzid else start_tz
            )
            recurrence_anchor = parse_ical_value(recurrence_id.value, anchor_tz)
            if recurrence_anchor is None and diagnostics is not None:
                diagnostics.append(
                    EventDiagnostic(
                        reason=f"unparsable RECURRENCE-ID {recurrence_id.value!r}; treated as plain event",
                        uid=uid,
                        raw_start=dtstart.value,
                        summary=summary,
                    )
                )

        rrule = (block.value("RRULE") or "").strip() or None

        return LiteCalendarEvent(
            uid=uid,
            summary=summary,
            location=unescape_ics_text(block.value("LOCATION")),
            status=(block.value("STATUS") or "").strip().upper(),
            transparency=(block.value("TRANSP") or Transparency.OPAQUE.value).strip().upper(),
            attendance_markers=self._attendance_markers(block),
            start=start,
            end=end,
            all_day=all_day,
            recurrence_rule=rrule,
            recurrence_anchor=recurrence_anchor,
            recurrence_zone_id=start_zone.zone_id,
        )

    @staticmethod
    def _attendance_markers(block: RawEventBlock) -> tuple[str, ...]:
        markers = []
        for attendee in block.attendees:
            partstat = attendee.identifier_param("PARTSTAT")
            if partstat:
                markers.append(partstat.upper())
        return tuple(markers)
