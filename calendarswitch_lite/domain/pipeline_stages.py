"""Concrete pipeline stages and the evaluate_feed entry point.

Each stage wraps one calendarswitch_lite component in the EventProcessor protocol:

- ParseStage: line parsing, zone resolution and event building
- ExpansionStage: RRULE expansion over the evaluation window
- EligibilityStage: offsets, window overlap, eligibility, sort and cap
- ResolveStage: active/next resolution
"""

from __future__ import annotations

import datetime
import logging
from typing import Optional

from calendarswitch_lite.calendar.lite_datetime_utils import UTC, ensure_timezone_aware
from calendarswitch_lite.calendar.lite_event_parser import LiteEventBuilder
from calendarswitch_lite.calendar.lite_line_parser import LiteICSLineParser, validate_feed
from calendarswitch_lite.calendar.lite_models import LiteCalendarEvent, SwitchEvaluation
from calendarswitch_lite.calendar.lite_rrule_expander import LiteRRuleExpander
from calendarswitch_lite.calendar.lite_timezone_resolver import ZoneResolver
from calendarswitch_lite.core.config_loader import SwitchConfig
from calendarswitch_lite.core.exceptions import InvalidFeedError
from calendarswitch_lite.domain import formatting
from calendarswitch_lite.domain.event_filter import EligibilityFilter
from calendarswitch_lite.domain.pipeline import (
    EventProcessingPipeline,
    ProcessingContext,
    ProcessingResult,
)
from calendarswitch_lite.domain.resolver import resolve

logger = logging.getLogger(__name__)

STATUS_OK = "OK"
STATUS_INVALID_FEED = "Invalid feed"
STATUS_PROCESSING_FAILED = "Processing failed"

# Minimum lookback before the window start; widened to the longest series duration
EXPANSION_LOOKBACK = datetime.timedelta(days=1)


def expansion_lookback(events: list[LiteCalendarEvent]) -> datetime.timedelta:
    """How far before the window start occurrences must be generated.

    An occurrence overlaps the window when it started less than its own duration
    before the window start, so the longest series duration bounds the lookback.
    """
    durations = [event.duration for event in events if event.is_master]
    return max([EXPANSION_LOOKBACK, *durations])


class ParseStage:
    """Parse feed text into normalized events."""

    def __init__(self, line_parser: Optional[LiteICSLineParser] = None) -> None:
        self._name = "Parse"
        self.line_parser = line_parser or LiteICSLineParser()

    @property
    def name(self) -> str:
        return self._name

    def process(self, context: ProcessingContext) -> ProcessingResult:
        result = ProcessingResult(stage_name=self.name)
        if context.raw_content is None:
            result.add_error("No feed content to parse")
            return result

        feed = self.line_parser.parse(context.raw_content)
        resolver = ZoneResolver(
            context.hub_timezone or context.config.hub_timezone,
            x_wr_timezone=feed.x_wr_timezone,
            vtimezone_tzid=feed.vtimezone_tzid,
        )
        context.hub_zone = resolver.hub_zone
        context.calendar_zone = resolver.calendar_zone

        events, diagnostics = LiteEventBuilder(resolver).build_events(feed.blocks)
        context.events = events
        context.diagnostics.extend(diagnostics)

        result.events_in = len(feed.blocks)
        result.events_out = len(events)
        result.events_filtered = result.events_in - result.events_out
        result.metadata["calendar_timezone"] = resolver.calendar_zone.zone_id
        result.metadata["calendar_timezone_source"] = resolver.calendar_zone.source
        return result


class ExpansionStage:
    """Expand recurring masters over the evaluation window."""

    def __init__(self, expander: Optional[LiteRRuleExpander] = None) -> None:
        self._name = "Expansion"
        self.expander = expander or LiteRRuleExpander()

    @property
    def name(self) -> str:
        return self._name

    def process(self, context: ProcessingContext) -> ProcessingResult:
        result = ProcessingResult(stage_name=self.name, events_in=len(context.events))
        if context.now is None:
            result.add_error("No evaluation instant set")
            return result

        context.window_start, context.window_end = EligibilityFilter(context.config).window(
            context.now
        )
        lookback = expansion_lookback(context.events)
        context.instances = self.expander.expand_events(
            context.events,
            context.window_start - lookback,
            context.window_end,
            context.diagnostics,
        )
        result.events_out = len(context.instances)
        result.metadata["window_start"] = context.window_start.isoformat()
        result.metadata["window_end"] = context.window_end.isoformat()
        result.metadata["expansion_lookback_seconds"] = int(lookback.total_seconds())
        return result


class EligibilityStage:
    """Apply offsets, the window and the trigger preferences."""

    def __init__(self) -> None:
        self._name = "Eligibility"

    @property
    def name(self) -> str:
        return self._name

    def process(self, context: ProcessingContext) -> ProcessingResult:
        result = ProcessingResult(stage_name=self.name, events_in=len(context.instances))
        context.eligible = EligibilityFilter(context.config).build_eligible_set(
            context.instances, context.now
        )
        result.events_out = len(context.eligible)
        result.events_filtered = result.events_in - result.events_out
        return result


class ResolveStage:
    """Compute the active/next resolution."""

    def __init__(self) -> None:
        self._name = "Resolve"

    @property
    def name(self) -> str:
        return self._name

    def process(self, context: ProcessingContext) -> ProcessingResult:
        result = ProcessingResult(stage_name=self.name, events_in=len(context.eligible))
        context.resolution = resolve(context.eligible, context.now)
        result.events_out = len(context.eligible)
        result.metadata["next_transition_reason"] = context.resolution.reason
        return result


def create_switch_pipeline() -> EventProcessingPipeline:
    """Build the standard Parse -> Expansion -> Eligibility -> Resolve pipeline."""
    return (
        EventProcessingPipeline()
        .add_stage(ParseStage())
        .add_stage(ExpansionStage())
        .add_stage(EligibilityStage())
        .add_stage(ResolveStage())
    )


def evaluate_feed(
    feed_text: Optional[str],
    config: SwitchConfig,
    now: datetime.datetime,
    hub_timezone: Optional[str] = None,
) -> SwitchEvaluation:
    """Evaluate a feed at ``now`` and produce everything the host publishes.

    Pure: the same text, configuration and instant always give an identical result.
    Never raises; failures come back as ``status`` plus ``errors``.

    Args:
        feed_text: Raw ICS text
        config: Configuration snapshot
        now: Current instant (naive values are taken as UTC)
        hub_timezone: Overrides ``config.hub_timezone`` when given

    Returns:
        SwitchEvaluation
    """
    try:
        validate_feed(feed_text)
    except InvalidFeedError as exc:
        logger.warning("Invalid feed: %s", exc)
        return SwitchEvaluation(status=STATUS_INVALID_FEED, errors=[str(exc)])

    now = ensure_timezone_aware(now).astimezone(UTC)
    context = ProcessingContext(
        config=config,
        hub_timezone=hub_timezone or config.hub_timezone,
        now=now,
        raw_content=feed_text,
    )
    result = create_switch_pipeline().process(context)
    calendar_timezone = context.calendar_zone.zone_id if context.calendar_zone else None

    if not result.success or context.resolution is None:
        return SwitchEvaluation(
            status=STATUS_PROCESSING_FAILED,
            calendar_timezone=calendar_timezone,
            diagnostics=context.diagnostics,
            errors=result.errors or ["Pipeline produced no resolution"],
        )

    display_tz = ZoneResolver.tz(context.hub_zone)
    resolution = context.resolution
    lines = formatting.upcoming_lines(
        context.eligible,
        now,
        display_tz,
        config.next_list_count,
        config.next_list_show_location,
    )
    return SwitchEvaluation(
        status=STATUS_OK,
        active=resolution.is_active,
        active_summary=formatting.optional_line(resolution.governing, display_tz),
        next_summary=formatting.optional_line(resolution.next_instance, display_tz),
        next_events=lines,
        next_events_text=formatting.bullet_text(lines),
        calendar_timezone=calendar_timezone,
        next_transition=resolution.next_transition,
        resolution=resolution,
        eligible=context.eligible,
        diagnostics=context.diagnostics,
    )
