"""Unit tests for calendarswitch_lite.switch_runner."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from calendarswitch_lite.calendar.lite_fetcher import FETCH_EXCEPTION, FETCH_FAILED
from calendarswitch_lite.calendar.lite_models import LiteICSResponse
from calendarswitch_lite.core.config_loader import SwitchConfig
from calendarswitch_lite.switch_runner import (
    DEFAULT_HISTORY_SIZE,
    STATUS_MISSING_URL,
    CalendarSwitchRunner,
    InMemoryPublisher,
    LoggingPublisher,
    poll_delay_seconds,
    transition_delay_seconds,
)

pytestmark = pytest.mark.unit

UTC = timezone.utc
NOW = datetime(2026, 1, 5, 9, 5, tzinfo=UTC)


class FakeFetcher:
    """Returns queued responses; repeats the last one when the queue runs out."""

    def __init__(self, *responses: LiteICSResponse) -> None:
        self.responses = list(responses)
        self.urls: list = []

    async def fetch_ics(self, url):
        self.urls.append(url)
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]


def ok(content: str) -> LiteICSResponse:
    return LiteICSResponse(success=True, content=content, status_code=200)


@pytest.fixture
def standup_feed(make_feed):
    return make_feed(
        ["UID:s", "SUMMARY:Standup", "DTSTART:20260105T090000Z", "DTEND:20260105T093000Z"],
        ["UID:r", "SUMMARY:Review", "DTSTART:20260105T140000Z", "DTEND:20260105T150000Z"],
    )


@pytest.fixture
def config():
    return SwitchConfig(ics_url="https://example.com/cal.ics", hub_timezone="UTC")


def make_runner(config, fetcher):
    publisher = InMemoryPublisher()
    return CalendarSwitchRunner(config, fetcher=fetcher, publisher=publisher, clock=lambda: NOW), publisher


class TestDelays:
    def test_transition_delay_rounds_and_floors(self):
        assert transition_delay_seconds(NOW + timedelta(seconds=90.4), NOW) == 90
        assert transition_delay_seconds(NOW + timedelta(seconds=1), NOW) == 2
        assert transition_delay_seconds(NOW - timedelta(minutes=1), NOW) == 2

    def test_poll_delay_floor(self):
        assert poll_delay_seconds(SwitchConfig(hub_timezone="UTC", poll_interval_seconds=10)) == 30
        assert poll_delay_seconds(SwitchConfig(hub_timezone="UTC", poll_interval_seconds=600)) == 600


class TestPoll:
    @pytest.mark.asyncio
    async def test_publishes_attributes(self, config, standup_feed):
        fetcher = FakeFetcher(ok(standup_feed))
        runner, publisher = make_runner(config, fetcher)

        evaluation = await runner.poll(now=NOW)

        assert evaluation is not None and evaluation.active
        assert fetcher.urls == ["https://example.com/cal.ics"]
        state = publisher.state
        assert state["switch"] == "on"
        assert state["active"] is True
        assert state["activeSummary"] == "Mon Jan 5 9:00 AM – 9:30 AM Standup"
        assert state["nextSummary"] == "Mon Jan 5 2:00 PM – 3:00 PM Review"
        assert state["nextEvents"] == (
            "• Mon Jan 5 9:00 AM – 9:30 AM Standup\n• Mon Jan 5 2:00 PM – 3:00 PM Review"
        )
        assert state["calendarTz"] == "UTC"
        assert state["lastFetch"] == "Mon Jan 5, 9:05:00 AM UTC"
        assert state["lastStatus"] == "OK"
        assert runner.scheduled_transition == datetime(2026, 1, 5, 9, 30, tzinfo=UTC)

    @pytest.mark.asyncio
    async def test_last_fetch_in_hub_timezone(self, standup_feed):
        cfg = SwitchConfig(ics_url="https://example.com/cal.ics", hub_timezone="America/Los_Angeles")
        runner, publisher = make_runner(cfg, FakeFetcher(ok(standup_feed)))
        await runner.poll(now=datetime(2026, 1, 5, 17, 0, 5, tzinfo=UTC))
        assert publisher.current("lastFetch") == "Mon Jan 5, 9:00:05 AM PST"

    @pytest.mark.asyncio
    async def test_switch_only_published_on_change(self, config, standup_feed):
        runner, publisher = make_runner(config, FakeFetcher(ok(standup_feed)))
        await runner.poll(now=NOW)
        await runner.poll(now=NOW + timedelta(minutes=1))
        await runner.poll(now=NOW + timedelta(minutes=30))
        assert publisher.published("switch") == ["on", "off"]
        assert publisher.published("active") == [True, True, False]

    @pytest.mark.asyncio
    async def test_min_gap_skips_regular_poll(self, config, standup_feed):
        fetcher = FakeFetcher(ok(standup_feed))
        runner, _ = make_runner(config, fetcher)
        assert await runner.poll(now=NOW) is not None
        assert await runner.poll(now=NOW + timedelta(seconds=3)) is None
        assert len(fetcher.urls) == 1

    @pytest.mark.asyncio
    async def test_forced_poll_ignores_min_gap(self, config, standup_feed):
        fetcher = FakeFetcher(ok(standup_feed))
        runner, _ = make_runner(config, fetcher)
        await runner.poll(now=NOW)
        assert await runner.poll(force=True, reason="transition", now=NOW + timedelta(seconds=1)) is not None
        assert len(fetcher.urls) == 2

    @pytest.mark.asyncio
    async def test_fetch_exception_leaves_last_fetch_untouched(self, config):
        fetcher = FakeFetcher(LiteICSResponse(success=False, error_message=FETCH_EXCEPTION))
        runner, publisher = make_runner(config, fetcher)
        assert await runner.poll(now=NOW) is None
        assert publisher.current("lastStatus") == FETCH_EXCEPTION
        assert publisher.current("lastFetch") is None
        assert publisher.current("switch") is None

    @pytest.mark.asyncio
    async def test_fetch_failed_records_last_fetch(self, config):
        fetcher = FakeFetcher(LiteICSResponse(success=False, status_code=500, error_message=FETCH_FAILED))
        runner, publisher = make_runner(config, fetcher)
        assert await runner.poll(now=NOW) is None
        assert publisher.current("lastStatus") == FETCH_FAILED
        assert publisher.current("lastFetch") == "Mon Jan 5, 9:05:00 AM UTC"

    @pytest.mark.asyncio
    async def test_missing_url_skips_fetch(self, standup_feed):
        fetcher = FakeFetcher(ok(standup_feed))
        runner, publisher = make_runner(SwitchConfig(hub_timezone="UTC"), fetcher)
        assert await runner.poll(now=NOW) is None
        assert fetcher.urls == []
        assert publisher.current("lastStatus") == STATUS_MISSING_URL
        assert publisher.current("lastFetch") is None
        assert publisher.current("switch") is None

    @pytest.mark.asyncio
    async def test_invalid_feed_keeps_previous_state(self, config, standup_feed):
        fetcher = FakeFetcher(ok(standup_feed), ok("<html>oops</html>"))
        runner, publisher = make_runner(config, fetcher)
        await runner.poll(now=NOW)
        await runner.poll(now=NOW + timedelta(minutes=40))
        assert publisher.current("lastStatus") == "Invalid feed"
        assert publisher.current("switch") == "on"
        assert publisher.current("activeSummary").endswith("Standup")
        assert runner.scheduled_transition == datetime(2026, 1, 5, 9, 30, tzinfo=UTC)


class TestApply:
    def test_transition_is_rescheduled_only_when_changed(self, config, standup_feed):
        runner, _ = make_runner(config, FakeFetcher(ok(standup_feed)))
        runner.apply(standup_feed, NOW)
        assert runner.scheduled_transition == datetime(2026, 1, 5, 9, 30, tzinfo=UTC)
        runner.apply(standup_feed, NOW + timedelta(minutes=30))
        assert runner.scheduled_transition == datetime(2026, 1, 5, 14, 0, tzinfo=UTC)

    def test_apply_is_deterministic(self, config, standup_feed):
        runner, _ = make_runner(config, FakeFetcher(ok(standup_feed)))
        first = runner.apply(standup_feed, NOW)
        second = runner.apply(standup_feed, NOW)
        assert first.model_dump_json() == second.model_dump_json()


class TestRunForever:
    @pytest.mark.asyncio
    async def test_stops_after_startup_poll_when_already_stopped(self, config, standup_feed):
        fetcher = FakeFetcher(ok(standup_feed))
        runner, publisher = make_runner(config, fetcher)
        stop = asyncio.Event()
        stop.set()
        await runner.run_forever(stop)
        assert len(fetcher.urls) == 1
        assert publisher.current("switch") == "on"


def test_logging_publisher_keeps_state():
    publisher = LoggingPublisher()
    publisher.publish("switch", "on")
    publisher.publish("switch", "on")
    assert publisher.current("switch") == "on"
    assert publisher.published("switch") == []


def test_publish_history_is_bounded():
    publisher = InMemoryPublisher()
    for minute in range(DEFAULT_HISTORY_SIZE * 3):
        publisher.publish("lastFetch", minute)
    assert len(publisher.history) == DEFAULT_HISTORY_SIZE
    assert publisher.published("lastFetch")[-1] == DEFAULT_HISTORY_SIZE * 3 - 1
    assert publisher.current("lastFetch") == DEFAULT_HISTORY_SIZE * 3 - 1


def test_publish_history_size_is_configurable():
    publisher = InMemoryPublisher(history_size=2)
    for value in ("off", "on", "off"):
        publisher.publish("switch", value)
    assert publisher.published("switch") == ["on", "off"]
