from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

import pytest

from calendarswitch_lite.calendar.lite_models import EventInstance, LiteCalendarEvent
from calendarswitch_lite.core.config_loader import SwitchConfig

UTC = timezone.utc


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: Any) -> Generator[None, Any, None]:
    """Keep CALENDARSWITCH_* variables from leaking into or between tests."""
    for name in (
        "CALENDARSWITCH_TEST_TIME",
        "CALENDARSWITCH_DEFAULT_TIMEZONE",
        "CALENDARSWITCH_ICS_URL",
        "CALENDARSWITCH_POLL_INTERVAL",
        "CALENDARSWITCH_LOG_LEVEL",
        "CALENDARSWITCH_INCLUDE_KEYWORDS",
        "CALENDARSWITCH_EXCLUDE_KEYWORDS",
        "CALENDARSWITCH_DEBUG",
    ):
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture
def test_timezone() -> str:
    """Deterministic hub timezone so tests do not depend on the host zone."""
    return "America/Los_Angeles"


@pytest.fixture
def utc_config() -> SwitchConfig:
    """Default preferences with the hub zone pinned to UTC."""
    return SwitchConfig(hub_timezone="UTC")


@pytest.fixture
def make_feed() -> Callable[..., str]:
    """Build ICS text from VEVENT bodies (each a list of content lines)."""

    def _make(*events: list[str], header: Optional[list[str]] = None) -> str:
        lines = ["BEGIN:VCALENDAR", "VERSION:2.0", "PRODID:-//Test//EN"]
        lines.extend(header or [])
        for body in events:
            lines.append("BEGIN:VEVENT")
            lines.extend(body)
            lines.append("END:VEVENT")
        lines.append("END:VCALENDAR")
        return "\r\n".join(lines) + "\r\n"

    return _make


@pytest.fixture
def make_event() -> Callable[..., LiteCalendarEvent]:
    """Build a LiteCalendarEvent starting at ``start`` (UTC) lasting ``minutes``."""

    def _make(
        start: datetime,
        minutes: int = 30,
        summary: str = "Meeting",
        **fields: Any,
    ) -> LiteCalendarEvent:
        fields.setdefault("uid", f"uid-{summary}")
        return LiteCalendarEvent(
            summary=summary,
            start=start,
            end=start + timedelta(minutes=minutes),
            **fields,
        )

    return _make


@pytest.fixture
def make_instance(make_event: Callable[..., LiteCalendarEvent]) -> Callable[..., EventInstance]:
    def _make(start: datetime, minutes: int = 30, summary: str = "Meeting", **fields: Any) -> EventInstance:
        return EventInstance.from_event(make_event(start, minutes, summary, **fields))

    return _make
