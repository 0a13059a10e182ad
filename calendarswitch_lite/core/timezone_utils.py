"""Timezone alias tables and conversion utilities for calendarswitch_lite."""

from __future__ import annotations

import datetime
import logging
import os
import zoneinfo
from functools import lru_cache
from typing import ClassVar

logger = logging.getLogger(__name__)

# Default fallback timezone for all timezone operations
DEFAULT_SERVER_TIMEZONE = "America/Los_Angeles"  # Pacific timezone

TEST_TIME_ENV = "CALENDARSWITCH_TEST_TIME"
DEFAULT_TIMEZONE_ENV = "CALENDARSWITCH_DEFAULT_TIMEZONE"

TZONE_SCHEME = "tzone://"


class TimezoneDetector:
    """Static tables used to map non-IANA timezone identifiers."""

    # Windows timezone names to IANA identifier mapping
    # Common Windows timezones used in ICS files from Outlook/Exchange
    # https://docs.microsoft.com/en-us/windows-hardware/manufacture/desktop/default-time-zones
    WINDOWS_TZ_MAP: ClassVar[dict[str, str]] = {
        # US Timezones
        "Pacific Standard Time": "America/Los_Angeles",
        "Mountain Standard Time": "America/Denver",
        "Central Standard Time": "America/Chicago",
        "Eastern Standard Time": "America/New_York",
        "US Eastern Standard Time": "America/Indiana/Indianapolis",
        "Alaskan Standard Time": "America/Anchorage",
        "Hawaiian Standard Time": "Pacific/Honolulu",
        "Arizona Standard Time": "America/Phoenix",
        "US Mountain Standard Time": "America/Phoenix",  # Arizona (no DST)
        "Atlantic Standard Time": "America/Halifax",
        "Newfoundland Standard Time": "America/St_Johns",
        "Saskatchewan Standard Time": "America/Regina",
        "Canada Central Standard Time": "America/Regina",
        "Central America Standard Time": "America/Guatemala",
        "Central Standard Time (Mexico)": "America/Mexico_City",
        "Pacific Standard Time (Mexico)": "America/Tijuana",
        # Europe
        "GMT Standard Time": "Europe/London",
        "Greenwich Standard Time": "Atlantic/Reykjavik",
        "Central European Standard Time": "Europe/Warsaw",
        "W. Europe Standard Time": "Europe/Berlin",
        "E. Europe Standard Time": "Europe/Chisinau",
        "FLE Standard Time": "Europe/Kiev",  # Finland, Latvia, Estonia
        "GTB Standard Time": "Europe/Bucharest",  # Greece, Turkey, Bulgaria
        "Romance Standard Time": "Europe/Paris",
        "Central Europe Standard Time": "Europe/Budapest",
        "W. Central Africa Standard Time": "Africa/Lagos",
        "Russian Standard Time": "Europe/Moscow",
        "Turkey Standard Time": "Europe/Istanbul",
        # Asia
        "China Standard Time": "Asia/Shanghai",
        "Tokyo Standard Time": "Asia/Tokyo",
        "Korea Standard Time": "Asia/Seoul",
        "Singapore Standard Time": "Asia/Singapore",
        "Taipei Standard Time": "Asia/Taipei",
        "India Standard Time": "Asia/Kolkata",
        "Sri Lanka Standard Time": "Asia/Colombo",
        "Myanmar Standard Time": "Asia/Yangon",
        "SE Asia Standard Time": "Asia/Bangkok",
        "N. Central Asia Standard Time": "Asia/Novosibirsk",
        "West Asia Standard Time": "Asia/Tashkent",
        "Central Asia Standard Time": "Asia/Almaty",
        "Afghanistan Standard Time": "Asia/Kabul",
        "Pakistan Standard Time": "Asia/Karachi",
        "Iran Standard Time": "Asia/Tehran",
        "Arabian Standard Time": "Asia/Dubai",
        "Arabic Standard Time": "Asia/Baghdad",
        "Arab Standard Time": "Asia/Riyadh",
        "Israel Standard Time": "Asia/Jerusalem",
        "Jordan Standard Time": "Asia/Amman",
        "Syria Standard Time": "Asia/Damascus",
        "Nepal Standard Time": "Asia/Kathmandu",
        "Bangladesh Standard Time": "Asia/Dhaka",
        # Australia & Pacific
        "AUS Eastern Standard Time": "Australia/Sydney",
        "AUS Central Standard Time": "Australia/Darwin",
        "Cen. Australia Standard Time": "Australia/Adelaide",
        "E. Australia Standard Time": "Australia/Brisbane",
        "Tasmania Standard Time": "Australia/Hobart",
        "W. Australia Standard Time": "Australia/Perth",
        "New Zealand Standard Time": "Pacific/Auckland",
        "Fiji Standard Time": "Pacific/Fiji",
        # Americas (South America)
        "Pacific SA Standard Time": "America/Santiago",
        "SA Pacific Standard Time": "America/Bogota",
        "SA Western Standard Time": "America/La_Paz",
        "SA Eastern Standard Time": "America/Cayenne",
        "Argentina Standard Time": "America/Argentina/Buenos_Aires",
        "E. South America Standard Time": "America/Sao_Paulo",
        "Greenland Standard Time": "America/Nuuk",
        # Africa & Middle East
        "South Africa Standard Time": "Africa/Johannesburg",
        "Egypt Standard Time": "Africa/Cairo",
        "Libya Standard Time": "Africa/Tripoli",
        "Namibia Standard Time": "Africa/Windhoek",
        "Morocco Standard Time": "Africa/Casablanca",
        "E. Africa Standard Time": "Africa/Nairobi",
    }

    # Timezone aliases mapping (obsolete/deprecated IANA names to current names)
    TZ_ALIAS_MAP: ClassVar[dict[str, str]] = {
        "US/Pacific": "America/Los_Angeles",
        "US/Mountain": "America/Denver",
        "US/Central": "America/Chicago",
        "US/Eastern": "America/New_York",
        "US/Alaska": "America/Anchorage",
        "US/Hawaii": "Pacific/Honolulu",
        "US/Arizona": "America/Phoenix",
        "PST8PDT": "America/Los_Angeles",
        "MST7MDT": "America/Denver",
        "CST6CDT": "America/Chicago",
        "EST5EDT": "America/New_York",
        "Asia/Rangoon": "Asia/Yangon",
        "America/Godthab": "America/Nuuk",
        "Asia/Calcutta": "Asia/Kolkata",
    }

    # Spellings that legitimately mean UTC; these never go through the alias table
    UTC_SPELLINGS: ClassVar[frozenset[str]] = frozenset(
        {
            "UTC",
            "GMT",
            "Z",
            "ZULU",
            "UT",
            "UNIVERSAL",
            "ETC/UTC",
            "ETC/GMT",
            "ETC/UCT",
            "ETC/UNIVERSAL",
            "ETC/ZULU",
            "UCT",
            "COORDINATED UNIVERSAL TIME",
            "GMT+0",
            "GMT-0",
            "GMT0",
            "ETC/GMT+0",
            "ETC/GMT-0",
            "ETC/GMT0",
        }
    )


class TimeProvider:
    """Provides current time with test time override support."""

    def now_utc(self) -> datetime.datetime:
        """Return current UTC time with tzinfo.

        Can be overridden for testing via CALENDARSWITCH_TEST_TIME environment variable.
        Format: ISO 8601 datetime string (e.g., "2026-01-05T09:05:00Z")

        Returns:
            Current time in UTC with timezone info
        """
        test_time = os.environ.get(TEST_TIME_ENV)
        if test_time:
            try:
                from dateutil import parser as date_parser

                dt = date_parser.isoparse(test_time)
                if dt.tzinfo is not None:
                    return dt.astimezone(datetime.timezone.utc)
                # Assume naive datetime is already UTC
                return dt.replace(tzinfo=datetime.timezone.utc)
            except (ValueError, OverflowError) as e:
                logger.warning("Failed to parse %s=%r: %s", TEST_TIME_ENV, test_time, e)

        return datetime.datetime.now(datetime.timezone.utc)


# Singleton instances for global use
_detector = TimezoneDetector()
_time_provider = TimeProvider()


def now_utc() -> datetime.datetime:
    """Get current UTC time (convenience function)."""
    return _time_provider.now_utc()


@lru_cache(maxsize=64)
def get_zone(zone_id: str) -> zoneinfo.ZoneInfo:
    """Return a cached ZoneInfo for an IANA identifier.

    Raises:
        zoneinfo.ZoneInfoNotFoundError: If the identifier is unknown
        ValueError: If the identifier is malformed
    """
    return zoneinfo.ZoneInfo(zone_id)


def is_valid_zone(zone_id: str) -> bool:
    """Check whether zoneinfo knows the identifier."""
    if not zone_id:
        return False
    try:
        get_zone(zone_id)
    except (zoneinfo.ZoneInfoNotFoundError, ValueError, OSError):
        return False
    return True


def get_default_timezone(fallback: str = DEFAULT_SERVER_TIMEZONE) -> str:
    """Get default timezone from environment with validation.

    Checks the CALENDARSWITCH_DEFAULT_TIMEZONE environment variable first,
    then falls back to the provided fallback timezone.
    """
    timezone = os.environ.get(DEFAULT_TIMEZONE_ENV, fallback)
    normalized = normalize_timezone_name(timezone)
    if normalized is None:
        logger.warning("Invalid timezone %r, falling back to %r", timezone, fallback)
        return fallback
    return normalized


def strip_identifier(raw: str | None) -> str | None:
    """Normalize a raw TZID before lookup.

    Strips surrounding quotes and whitespace; for ``tzone://`` identifiers the last
    ``/``-delimited token is taken as the candidate name.

    Examples:
        >>> strip_identifier('"tzone://Microsoft/Eastern Standard Time"')
        'Eastern Standard Time'
    """
    if raw is None:
        return None
    candidate = raw.strip().strip('"').strip()
    if candidate.lower().startswith(TZONE_SCHEME):
        candidate = candidate.rstrip("/").rsplit("/", 1)[-1].strip()
    return candidate or None


def is_utc_spelling(name: str) -> bool:
    """True when the identifier is a recognized spelling of UTC/GMT."""
    return name.strip().upper() in TimezoneDetector.UTC_SPELLINGS


def windows_tz_to_iana(windows_tz: str) -> str | None:
    """Convert Windows timezone name to IANA timezone identifier.

    Args:
        windows_tz: Windows timezone name (e.g., "Mountain Standard Time")

    Returns:
        IANA timezone identifier (e.g., "America/Denver") or None if not found
    """
    if not windows_tz:
        return None
    exact = _detector.WINDOWS_TZ_MAP.get(windows_tz)
    if exact:
        return exact
    folded = windows_tz.casefold()
    for name, iana in _detector.WINDOWS_TZ_MAP.items():
        if name.casefold() == folded:
            return iana
    return None


def resolve_timezone_alias(tz_name: str) -> str:
    """Resolve obsolete IANA aliases (e.g. US/Pacific) to canonical identifiers."""
    return _detector.TZ_ALIAS_MAP.get(tz_name, tz_name)


def normalize_timezone_name(tz_str: str | None) -> str | None:
    """Normalize timezone string to canonical IANA timezone identifier.

    Resolution order:
    1. Recognized UTC/GMT spellings map to "UTC"
    2. Obsolete IANA aliases are rewritten
    3. Identifiers zoneinfo knows are returned as-is
    4. Windows display names are looked up in the alias table
    5. Anything else yields None (never a silent UTC fallback)

    Examples:
        >>> normalize_timezone_name("Eastern Standard Time")
        'America/New_York'
        >>> normalize_timezone_name("US/Pacific")
        'America/Los_Angeles'
        >>> normalize_timezone_name("Invalid/Timezone") is None
        True
    """
    candidate = strip_identifier(tz_str)
    if not candidate:
        return None

    if is_utc_spelling(candidate):
        return "UTC"

    resolved = resolve_timezone_alias(candidate)
    if is_valid_zone(resolved):
        return resolved

    windows_tz = windows_tz_to_iana(candidate)
    if windows_tz and is_valid_zone(windows_tz):
        return windows_tz

    logger.debug("Timezone identifier %r not recognized", tz_str)
    return None

