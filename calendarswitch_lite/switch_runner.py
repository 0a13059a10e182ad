"""Polling host for the calendar switch.

Fetches the feed on a fixed cadence plus at each computed transition instant, runs
``evaluate_feed`` and publishes the resulting attributes to a StatePublisher.
"""

from __future__ import annotations

import asyncio
import collections
import datetime
import logging
from typing import Any, Callable, Optional, Protocol

from calendarswitch_lite.calendar.lite_fetcher import FETCH_FAILED, LiteICSFetcher
from calendarswitch_lite.calendar.lite_models import SwitchEvaluation
from calendarswitch_lite.core.config_loader import MIN_POLL_INTERVAL_SECONDS, SwitchConfig
from calendarswitch_lite.core.timezone_utils import get_zone, now_utc
from calendarswitch_lite.domain.formatting import format_timestamp
from calendarswitch_lite.domain.pipeline_stages import STATUS_OK, evaluate_feed
from calendarswitch_lite.domain.resolver import needs_reschedule

logger = logging.getLogger(__name__)

MIN_POLL_GAP = datetime.timedelta(seconds=5)
MIN_TRANSITION_DELAY_SECONDS = 2
STATUS_FETCHING = "Fetching"
STATUS_MISSING_URL = "Missing ICS URL"
DEFAULT_HISTORY_SIZE = 200


def transition_delay_seconds(target: datetime.datetime, now: datetime.datetime) -> int:
    """Seconds until the transition timer fires (at least 2)."""
    return max(MIN_TRANSITION_DELAY_SECONDS, round((target - now).total_seconds()))


def poll_delay_seconds(config: SwitchConfig) -> int:
    return max(MIN_POLL_INTERVAL_SECONDS, config.poll_interval_seconds)


class StatePublisher(Protocol):
    """Sink for device/UI attributes."""

    def publish(self, name: str, value: Any) -> None: ...

    def current(self, name: str) -> Any: ...


class InMemoryPublisher:
    """Keeps the latest value per attribute plus the most recent publishes.

    ``history_size`` caps the publish log; 0 keeps no log at all.
    """

    def __init__(self, history_size: int = DEFAULT_HISTORY_SIZE) -> None:
        self.state: dict[str, Any] = {}
        self.history: collections.deque[tuple[str, Any]] = collections.deque(maxlen=history_size)

    def publish(self, name: str, value: Any) -> None:
        self.state[name] = value
        self.history.append((name, value))

    def current(self, name: str) -> Any:
        return self.state.get(name)

    def published(self, name: str) -> list[Any]:
        return [value for key, value in self.history if key == name]


class LoggingPublisher(InMemoryPublisher):
    """Logs attribute changes; keeps only the latest value per attribute."""

    def __init__(self, history_size: int = 0) -> None:
        super().__init__(history_size)

    def publish(self, name: str, value: Any) -> None:
        if self.state.get(name) != value:
            logger.info("%s -> %r", name, value)
        super().publish(name, value)


class CalendarSwitchRunner:
    """Drives fetch -> evaluate -> publish and owns both re-evaluation timers."""

    def __init__(
        self,
        config: SwitchConfig,
        fetcher: Optional[LiteICSFetcher] = None,
        publisher: Optional[StatePublisher] = None,
        clock: Callable[[], datetime.datetime] = now_utc,
    ) -> None:
        """Initialize runner.

        Args:
            config: Configuration snapshot (feed URL, poll cadence, trigger preferences)
            fetcher: Feed fetcher; one is created from ``config`` when omitted
            publisher: Attribute sink; defaults to a LoggingPublisher
            clock: Source of the current instant
        """
        self.config = config
        self.fetcher = fetcher or LiteICSFetcher(config)
        self.publisher: StatePublisher = publisher or LoggingPublisher()
        self.clock = clock
        self.last_poll_at: Optional[datetime.datetime] = None
        self.scheduled_transition: Optional[datetime.datetime] = None
        self.last_evaluation: Optional[SwitchEvaluation] = None

    async def poll(
        self,
        force: bool = False,
        reason: str = "regular",
        now: Optional[datetime.datetime] = None,
    ) -> Optional[SwitchEvaluation]:
        """Fetch and evaluate the feed once.

        Non-forced polls within 5 seconds of the previous poll are skipped.

        Returns:
            The evaluation, or None when the poll was skipped, no URL is configured
            or the fetch failed
        """
        now = now or self.clock()
        if not force and self.last_poll_at is not None and now - self.last_poll_at < MIN_POLL_GAP:
            logger.debug("Skipping %s poll: previous poll at %s", reason, self.last_poll_at)
            return None
        self.last_poll_at = now
        logger.debug("Polling (%s, force=%s)", reason, force)

        if not self.config.ics_url:
            logger.warning("No ICS URL configured; skipping fetch")
            self.publisher.publish("lastStatus", STATUS_MISSING_URL)
            return None

        self.publisher.publish("lastStatus", STATUS_FETCHING)
        response = await self.fetcher.fetch_ics(self.config.ics_url)
        if not response.success and response.error_message != FETCH_FAILED:
            self.publisher.publish("lastStatus", response.error_message)
            return None

        self.publisher.publish("lastFetch", format_timestamp(now, get_zone(self.config.hub_timezone)))
        if not response.success:
            self.publisher.publish("lastStatus", response.error_message)
            return None

        return self.apply(response.content or "", now)

    def apply(self, feed_text: str, now: datetime.datetime) -> SwitchEvaluation:
        """Evaluate feed text and publish the outcome.

        A non-OK evaluation only updates ``lastStatus``; every other attribute keeps
        its previous value.
        """
        evaluation = evaluate_feed(feed_text, self.config, now, self.config.hub_timezone)
        self.last_evaluation = evaluation
        if not evaluation.is_ok:
            self.publisher.publish("lastStatus", evaluation.status)
            return evaluation

        self.publisher.publish("calendarTz", evaluation.calendar_timezone)
        self.publisher.publish("active", evaluation.active)
        self.publisher.publish("activeSummary", evaluation.active_summary)
        self.publisher.publish("nextSummary", evaluation.next_summary)
        self.publisher.publish("nextEvents", evaluation.next_events_text)

        desired = "on" if evaluation.active else "off"
        if desired != self.publisher.current("switch"):
            self.publisher.publish("switch", desired)

        if needs_reschedule(self.scheduled_transition, evaluation.next_transition):
            logger.debug(
                "Transition timer %s -> %s", self.scheduled_transition, evaluation.next_transition
            )
            self.scheduled_transition = evaluation.next_transition

        self.publisher.publish("lastStatus", STATUS_OK)
        return evaluation

    async def run_forever(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Poll until ``stop_event`` is set.

        The regular timer re-arms after every poll; the transition timer fires at the
        last computed transition instant, whichever comes first.
        """
        stop = stop_event or asyncio.Event()
        await self.poll(force=True, reason="startup")
        next_poll = self.clock() + datetime.timedelta(seconds=poll_delay_seconds(self.config))

        while not stop.is_set():
            now = self.clock()
            wait = max(0.0, (next_poll - now).total_seconds())
            trigger = "regular"
            if self.scheduled_transition is not None:
                transition_wait = transition_delay_seconds(self.scheduled_transition, now)
                if transition_wait < wait:
                    wait, trigger = transition_wait, "transition"

            try:
                await asyncio.wait_for(stop.wait(), timeout=wait)
                break
            except asyncio.TimeoutError:
                pass

            if trigger == "transition":
                self.scheduled_transition = None
                await self.poll(force=True, reason=trigger)
            else:
                await self.poll(reason=trigger)
            next_poll = self.clock() + datetime.timedelta(seconds=poll_delay_seconds(self.config))

        logger.info("Calendar switch runner stopped")
