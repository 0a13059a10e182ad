"""Timezone resolution chain for feed properties - CalendarSwitch Lite.

Resolution order, first success wins:
    1. explicit TZID parameter on the property being parsed
    2. calendar-level X-WR-TIMEZONE
    3. first TZID inside a VTIMEZONE block
    4. the hub's configured default zone

An identifier that zoneinfo does not know is looked up in the Windows alias table;
a miss falls through to the next weaker source instead of defaulting to UTC.
"""

from __future__ import annotations

import logging
from datetime import tzinfo
from typing import Optional

from calendarswitch_lite.calendar.lite_models import ResolvedZone, ZoneSource
from calendarswitch_lite.core.exceptions import TimezoneResolutionMiss
from calendarswitch_lite.core.timezone_utils import (
    get_default_timezone,
    get_zone,
    is_utc_spelling,
    normalize_timezone_name,
    strip_identifier,
)

logger = logging.getLogger(__name__)


def resolve_identifier(raw: Optional[str]) -> tuple[str, bool]:
    """Map one raw identifier to an IANA zone.

    Returns:
        (zone_id, via_alias)

    Raises:
        TimezoneResolutionMiss: If neither zoneinfo nor the alias table knows it
    """
    zone_id = normalize_timezone_name(raw)
    if zone_id is None:
        raise TimezoneResolutionMiss(f"unknown timezone identifier {raw!r}")
    candidate = strip_identifier(raw)
    return zone_id, zone_id != candidate and not is_utc_spelling(candidate)


class ZoneResolver:
    """Resolves zones for one feed, given its calendar-level hints and the hub default."""

    def __init__(
        self,
        hub_timezone: str,
        x_wr_timezone: Optional[str] = None,
        vtimezone_tzid: Optional[str] = None,
    ):
        self.x_wr_timezone = x_wr_timezone
        self.vtimezone_tzid = vtimezone_tzid
        try:
            hub_zone_id, _ = resolve_identifier(hub_timezone)
        except TimezoneResolutionMiss:
            hub_zone_id = get_default_timezone()
            logger.warning(
                "Hub timezone %r not recognized; using default %s", hub_timezone, hub_zone_id
            )
        self.hub_zone = ResolvedZone(zone_id=hub_zone_id, source=ZoneSource.HUB_DEFAULT)
        self.calendar_zone = self._resolve_calendar_zone()

    def _resolve_calendar_zone(self) -> ResolvedZone:
        for raw, source in (
            (self.x_wr_timezone, ZoneSource.CALENDAR_HINT),
            (self.vtimezone_tzid, ZoneSource.VTIMEZONE),
        ):
            if not raw:
                continue
            try:
                zone_id, via_alias = resolve_identifier(raw)
            except TimezoneResolutionMiss as exc:
                logger.debug("Calendar zone source %s skipped: %s", source.value, exc)
                continue
            return ResolvedZone(zone_id=zone_id, source=source, via_alias=via_alias)
        return self.hub_zone

    def resolve(self, explicit_tzid: Optional[str] = None) -> ResolvedZone:
        """Resolve the zone for one property.

        Args:
            explicit_tzid: The property's TZID parameter, if any

        Returns:
            ResolvedZone from the strongest source that yields a known zone
        """
        if explicit_tzid:
            try:
                zone_id, via_alias = resolve_identifier(explicit_tzid)
            except TimezoneResolutionMiss as exc:
                logger.debug("%s; falling back to %s", exc, self.calendar_zone.zone_id)
            else:
                return ResolvedZone(zone_id=zone_id, source=ZoneSource.EXPLICIT, via_alias=via_alias)
        return self.calendar_zone

    @staticmethod
    def tz(zone: ResolvedZone) -> tzinfo:
        return get_zone(zone.zone_id)
