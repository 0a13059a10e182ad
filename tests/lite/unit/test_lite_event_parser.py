"""Unit tests for LiteEventBuilder (VEVENT block -> LiteCalendarEvent)."""

from datetime import datetime, timedelta, timezone

import pytest

from calendarswitch_lite.calendar.lite_event_parser import LiteEventBuilder
from calendarswitch_lite.calendar.lite_line_parser import LiteICSLineParser
from calendarswitch_lite.calendar.lite_timezone_resolver import ZoneResolver
from calendarswitch_lite.core.exceptions import UnparsableEventError

pytestmark = pytest.mark.unit

UTC = timezone.utc


def _blocks(make_feed, *events, header=None):
    return LiteICSLineParser().parse(make_feed(*events, header=header)).blocks


@pytest.fixture
def builder():
    return LiteEventBuilder(ZoneResolver("America/Los_Angeles"))


class TestBuildEvent:
    def test_utc_event(self, make_feed, builder):
        (block,) = _blocks(
            make_feed,
            [
                "UID:abc",
                "SUMMARY:Standup",
                "LOCATION:Room 1",
                "DTSTART:20260105T090000Z",
                "DTEND:20260105T093000Z",
            ],
        )
        event = builder.build_event(block)
        assert event.uid == "abc"
        assert event.start == datetime(2026, 1, 5, 9, 0, tzinfo=UTC)
        assert event.end == datetime(2026, 1, 5, 9, 30, tzinfo=UTC)
        assert event.duration == timedelta(minutes=30)
        assert not event.all_day
        assert event.transparency == "OPAQUE"
        assert not event.is_master

    def test_explicit_tzid(self, make_feed, builder):
        (block,) = _blocks(
            make_feed,
            [
                "UID:1",
                "DTSTART;TZID=America/New_York:20260105T090000",
                "DTEND;TZID=America/New_York:20260105T100000",
            ],
        )
        event = builder.build_event(block)
        assert event.start == datetime(2026, 1, 5, 14, 0, tzinfo=UTC)
        assert event.recurrence_zone_id == "America/New_York"

    def test_windows_tzid_resolves_to_us_eastern(self, make_feed, builder):
        (block,) = _blocks(
            make_feed, ["UID:1", 'DTSTART;TZID="Eastern Standard Time":20260105T090000']
        )
        assert builder.build_event(block).start == datetime(2026, 1, 5, 14, 0, tzinfo=UTC)

    def test_floating_time_uses_calendar_hint(self, make_feed):
        blocks = _blocks(make_feed, ["UID:1", "DTSTART:20260105T090000"])
        builder = LiteEventBuilder(ZoneResolver("America/Los_Angeles", x_wr_timezone="Europe/London"))
        event = builder.build_event(blocks[0])
        assert event.start == datetime(2026, 1, 5, 9, 0, tzinfo=UTC)
        assert event.recurrence_zone_id == "Europe/London"

    def test_floating_time_falls_back_to_hub_zone(self, make_feed, builder):
        (block,) = _blocks(make_feed, ["UID:1", "DTSTART:20260105T090000"])
        assert builder.build_event(block).start == datetime(2026, 1, 5, 17, 0, tzinfo=UTC)

    def test_missing_dtend_defaults_to_thirty_minutes(self, make_feed, builder):
        (block,) = _blocks(make_feed, ["UID:1", "DTSTART:20260105T090000Z"])
        event = builder.build_event(block)
        assert event.end - event.start == timedelta(minutes=30)

    def test_all_day_defaults_to_next_local_midnight(self, make_feed, builder):
        (block,) = _blocks(make_feed, ["UID:1", "DTSTART;VALUE=DATE:20260105"])
        event = builder.build_event(block)
        assert event.all_day
        assert event.start == datetime(2026, 1, 5, 8, 0, tzinfo=UTC)
        assert event.end == datetime(2026, 1, 6, 8, 0, tzinfo=UTC)

    def test_unparsable_dtend_uses_default_and_reports(self, make_feed, builder):
        (block,) = _blocks(make_feed, ["UID:1", "DTSTART:20260105T090000Z", "DTEND:soon"])
        diagnostics = []
        event = builder.build_event(block, diagnostics)
        assert event.end == datetime(2026, 1, 5, 9, 30, tzinfo=UTC)
        assert len(diagnostics) == 1
        assert "DTEND" in diagnostics[0].reason

    def test_text_fields_are_unescaped(self, make_feed, builder):
        (block,) = _blocks(
            make_feed,
            ["UID:1", "DTSTART:20260105T090000Z", r"SUMMARY:Plan\, review\; ship", r"LOCATION:HQ\nFloor 2"],
        )
        event = builder.build_event(block)
        assert event.summary == "Plan, review; ship"
        assert event.location == "HQ\nFloor 2"

    def test_status_transparency_and_markers(self, make_feed, builder):
        (block,) = _blocks(
            make_feed,
            [
                "UID:1",
                "DTSTART:20260105T090000Z",
                "STATUS:tentative",
                "TRANSP:TRANSPARENT",
                "ATTENDEE;PARTSTAT=ACCEPTED:mailto:a@example.com",
                "ATTENDEE:mailto:b@example.com",
                "ATTENDEE;PARTSTAT=declined:mailto:c@example.com",
            ],
        )
        event = builder.build_event(block)
        assert event.status == "TENTATIVE"
        assert event.transparency == "TRANSPARENT"
        assert event.attendance_markers == ("ACCEPTED", "DECLINED")

    def test_recurrence_id_marks_override(self, make_feed, builder):
        (block,) = _blocks(
            make_feed,
            [
                "UID:series",
                "DTSTART;TZID=America/New_York:20260106T110000",
                "RECURRENCE-ID;TZID=America/New_York:20260105T100000",
                "RRULE:FREQ=WEEKLY",
            ],
        )
        event = builder.build_event(block)
        assert event.recurrence_anchor == datetime(2026, 1, 5, 15, 0, tzinfo=UTC)
        assert event.is_override
        assert not event.is_master
        assert event.override_key == ("series", datetime(2026, 1, 5, 15, 0, tzinfo=UTC))

    def test_recurrence_id_defaults_to_dtstart_zone(self, make_feed, builder):
        (block,) = _blocks(
            make_feed,
            [
                "UID:series",
                "DTSTART;TZID=Europe/Paris:20260105T100000",
                "RECURRENCE-ID:20260105T090000",
            ],
        )
        assert builder.build_event(block).recurrence_anchor == datetime(2026, 1, 5, 8, 0, tzinfo=UTC)

    def test_rrule_makes_master(self, make_feed, builder):
        (block,) = _blocks(make_feed, ["UID:1", "DTSTART:20260105T090000Z", "RRULE:FREQ=WEEKLY"])
        event = builder.build_event(block)
        assert event.is_master
        assert event.recurrence_rule == "FREQ=WEEKLY"


class TestDroppedEvents:
    def test_missing_dtstart(self, make_feed, builder):
        (block,) = _blocks(make_feed, ["UID:1", "SUMMARY:No start"])
        with pytest.raises(UnparsableEventError) as exc_info:
            builder.build_event(block)
        assert exc_info.value.uid == "1"
        assert exc_info.value.summary == "No start"

    def test_unparsable_dtstart(self, make_feed, builder):
        (block,) = _blocks(make_feed, ["UID:1", "DTSTART:next tuesday"])
        with pytest.raises(UnparsableEventError) as exc_info:
            builder.build_event(block)
        assert exc_info.value.raw_start == "next tuesday"

    def test_end_before_start(self, make_feed, builder):
        (block,) = _blocks(
            make_feed, ["UID:1", "DTSTART:20260105T090000Z", "DTEND:20260105T080000Z"]
        )
        with pytest.raises(UnparsableEventError):
            builder.build_event(block)

    def test_build_events_keeps_good_events_and_reports_drops(self, make_feed, builder):
        blocks = _blocks(
            make_feed,
            ["UID:good", "DTSTART:20260105T090000Z"],
            ["UID:bad", "SUMMARY:Broken", "DTSTART:garbage"],
            ["UID:reversed", "DTSTART:20260105T090000Z", "DTEND:20260104T090000Z"],
        )
        events, diagnostics = builder.build_events(blocks)
        assert [e.uid for e in events] == ["good"]
        assert [d.uid for d in diagnostics] == ["bad", "reversed"]
        assert diagnostics[0].raw_start == "garbage"
        assert all(e.start <= e.end for e in events)
