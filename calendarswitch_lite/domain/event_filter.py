"""Eligibility filtering and window management for calendarswitch_lite."""

from __future__ import annotations

import datetime
import logging

from calendarswitch_lite.calendar.lite_models import EventInstance, EventStatus, Transparency
from calendarswitch_lite.core.config_loader import SwitchConfig

logger = logging.getLogger(__name__)

DECLINED = "DECLINED"


def parse_keywords(raw: str | None) -> list[str]:
    """Split a comma-separated keyword list into lower-cased, non-empty keywords."""
    if not raw:
        return []
    return [kw.strip().lower() for kw in raw.split(",") if kw.strip()]


def match_text(instance: EventInstance) -> str:
    """Text that keywords are matched against: summary + space + location."""
    return f"{instance.event.summary} {instance.event.location}".lower()


class EligibilityFilter:
    """Decides which instances may drive the switch."""

    def __init__(self, config: SwitchConfig):
        """Initialize eligibility filter.

        Args:
            config: Configuration snapshot with the trigger preferences
        """
        self.config = config
        self.include_keywords = parse_keywords(config.include_keywords)
        self.exclude_keywords = parse_keywords(config.exclude_keywords)

    def rejection_reason(self, instance: EventInstance) -> str | None:
        """Return why an instance is ineligible, or None when it is eligible."""
        event = instance.event
        if event.status == EventStatus.CANCELLED.value:
            return "cancelled"
        if event.all_day and not self.config.trigger_all_day:
            return "all-day"
        if self.config.trigger_busy_only and event.transparency == Transparency.TRANSPARENT.value:
            return "free"
        if self.config.exclude_tentative and event.status == EventStatus.TENTATIVE.value:
            return "tentative"
        if (
            self.config.exclude_declined_if_present
            and event.attendance_markers
            and DECLINED in event.attendance_markers
        ):
            return "declined"

        text = match_text(instance)
        if self.include_keywords and not any(kw in text for kw in self.include_keywords):
            return "no include keyword"
        if any(kw in text for kw in self.exclude_keywords):
            return "exclude keyword"
        return None

    def is_eligible(self, instance: EventInstance) -> bool:
        return self.rejection_reason(instance) is None

    def window(self, now: datetime.datetime) -> tuple[datetime.datetime, datetime.datetime]:
        """Evaluation window around ``now``: (now - past hours, now + horizon days)."""
        return (
            now - datetime.timedelta(hours=self.config.include_past_hours),
            now + datetime.timedelta(days=self.config.horizon_days),
        )

    def build_eligible_set(
        self,
        instances: list[EventInstance],
        now: datetime.datetime,
    ) -> list[EventInstance]:
        """Apply offsets, window overlap and eligibility, then sort and cap.

        Args:
            instances: Expanded instances
            now: Current instant (timezone-aware)

        Returns:
            Eligible instances ordered by effective start, at most ``max_events``
        """
        start_offset = datetime.timedelta(minutes=self.config.start_offset_minutes)
        end_offset = datetime.timedelta(minutes=self.config.end_offset_minutes)
        window_start, window_end = self.window(now)

        eligible = []
        for instance in instances:
            shifted = instance.with_offsets(start_offset, end_offset)
            if shifted.effective_end < window_start or shifted.effective_start > window_end:
                continue
            reason = self.rejection_reason(shifted)
            if reason is not None:
                logger.debug("Skipping %r: %s", shifted.event.summary, reason)
                continue
            eligible.append(shifted)

        limited = self.sort_and_limit(eligible, self.config.max_events)
        logger.debug(
            "Eligibility: %d of %d instances kept (cap %d)",
            len(limited),
            len(instances),
            self.config.max_events,
        )
        return limited

    @staticmethod
    def sort_and_limit(instances: list[EventInstance], limit: int) -> list[EventInstance]:
        """Sort by effective start (stable) and keep the first ``limit``."""
        ordered = sorted(instances, key=lambda i: (i.effective_start, i.effective_end))
        return ordered[:limit]
