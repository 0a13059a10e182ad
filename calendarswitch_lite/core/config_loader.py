"""calendarswitch_lite.core.config_loader

Configuration snapshot for the calendar switch.

- Exposes a typed dataclass `SwitchConfig` with the eligibility and window preferences.
- `SwitchConfig.from_dict()` accepts snake_case keys as well as the camelCase option
  names used by hub drivers (``pollIntervalSeconds``, ``startOffsetMinutes``...).
- `load_config()` reads YAML via PyYAML; `build_config_from_env()` layers
  CALENDARSWITCH_* environment variables on top.
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Optional

from calendarswitch_lite.core.timezone_utils import get_default_timezone, normalize_timezone_name

logger = logging.getLogger(__name__)

MIN_POLL_INTERVAL_SECONDS = 30

# camelCase hub option name -> dataclass field
_CAMEL_KEYS: dict[str, str] = {
    "icsUrl": "ics_url",
    "pollIntervalSeconds": "poll_interval_seconds",
    "pollSeconds": "poll_interval_seconds",
    "includePastHours": "include_past_hours",
    "horizonDays": "horizon_days",
    "maxEvents": "max_events",
    "triggerBusyOnly": "trigger_busy_only",
    "excludeTentative": "exclude_tentative",
    "excludeDeclinedIfPresent": "exclude_declined_if_present",
    "triggerAllDay": "trigger_all_day",
    "includeKeywords": "include_keywords",
    "excludeKeywords": "exclude_keywords",
    "startOffsetMinutes": "start_offset_minutes",
    "startOffsetMin": "start_offset_minutes",
    "endOffsetMinutes": "end_offset_minutes",
    "endOffsetMin": "end_offset_minutes",
    "nextListCount": "next_list_count",
    "nextListShowLocation": "next_list_show_location",
    "hubTimezone": "hub_timezone",
    "logLevel": "log_level",
    "requestTimeout": "request_timeout",
}

_TRUE_STRINGS = ("1", "true", "yes", "on")
_FALSE_STRINGS = ("0", "false", "no", "off", "")


@dataclass(frozen=True)
class SwitchConfig:
    """Typed configuration snapshot for one evaluation.

    Fields:
        ics_url: feed URL used by the fetch collaborator
        poll_interval_seconds: regular poll cadence (floor 30)
        include_past_hours: window start = now - N hours
        horizon_days: window end = now + N days
        max_events: cap on the eligible set
        trigger_busy_only: ignore TRANSP:TRANSPARENT (free) events
        exclude_tentative: ignore STATUS:TENTATIVE events
        exclude_declined_if_present: ignore events carrying a DECLINED PARTSTAT
        trigger_all_day: let all-day events drive the switch
        include_keywords / exclude_keywords: comma-separated, case-insensitive
        start_offset_minutes / end_offset_minutes: shift the effective window
        next_list_count: size of the upcoming list
        next_list_show_location: suffix list lines with "@ location"
        hub_timezone: IANA zone for display and weakest resolution fallback
    """

    ics_url: Optional[str] = None
    poll_interval_seconds: int = 900
    include_past_hours: int = 6
    horizon_days: int = 3
    max_events: int = 80
    trigger_busy_only: bool = True
    exclude_tentative: bool = False
    exclude_declined_if_present: bool = False
    trigger_all_day: bool = False
    include_keywords: str = ""
    exclude_keywords: str = ""
    start_offset_minutes: int = 0
    end_offset_minutes: int = 0
    next_list_count: int = 10
    next_list_show_location: bool = True
    hub_timezone: str = ""
    log_level: str = "INFO"
    request_timeout: int = 25

    def __post_init__(self) -> None:
        zone = normalize_timezone_name(self.hub_timezone) if self.hub_timezone else None
        if zone is None:
            if self.hub_timezone:
                logger.warning("Unknown hub timezone %r; using default", self.hub_timezone)
            zone = get_default_timezone()
        object.__setattr__(self, "hub_timezone", zone)

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> SwitchConfig:
        """Create SwitchConfig from a plain mapping, applying defaults and validation.

        Values are coerced leniently; anything unusable falls back to the default with
        a warning, and out-of-range numbers are clamped.
        """
        if data is None:
            data = {}

        normalized: dict[str, Any] = {}
        for key, value in data.items():
            normalized[_CAMEL_KEYS.get(key, key)] = value

        defaults = cls(hub_timezone="UTC")

        def _coerce_int(key: str, default: int, minimum: Optional[int] = None) -> int:
            raw = normalized.get(key, default)
            if raw is None or raw == "":
                return default
            try:
                value = int(raw)
            except (TypeError, ValueError):
                logger.warning("Config %s=%r is not an int; using default %d", key, raw, default)
                return default
            if minimum is not None and value < minimum:
                logger.warning("Config %s=%d below minimum; coercing to %d", key, value, minimum)
                return minimum
            return value

        def _coerce_bool(key: str, default: bool) -> bool:
            raw = normalized.get(key, default)
            if isinstance(raw, bool):
                return raw
            if isinstance(raw, (int, float)):
                return bool(raw)
            if isinstance(raw, str):
                text = raw.strip().lower()
                if text in _TRUE_STRINGS:
                    return True
                if text in _FALSE_STRINGS:
                    return False
            logger.warning("Config %s=%r is not a bool; using default %s", key, raw, default)
            return default

        def _coerce_keywords(key: str) -> str:
            raw = normalized.get(key)
            if raw is None:
                return ""
            if isinstance(raw, (list, tuple)):
                return ",".join(str(item) for item in raw)
            return str(raw)

        hub_timezone = ""
        raw_tz = normalized.get("hub_timezone")
        if raw_tz:
            hub_timezone = normalize_timezone_name(str(raw_tz)) or ""
            if not hub_timezone:
                logger.warning("Config hub_timezone=%r is not a known zone; using default", raw_tz)

        ics_url = normalized.get("ics_url")
        ics_url = str(ics_url).strip() if ics_url else None

        log_level = normalized.get("log_level", defaults.log_level)
        log_level = str(log_level).upper() if log_level else defaults.log_level

        return cls(
            ics_url=ics_url or None,
            poll_interval_seconds=_coerce_int(
                "poll_interval_seconds", defaults.poll_interval_seconds, MIN_POLL_INTERVAL_SECONDS
            ),
            include_past_hours=_coerce_int("include_past_hours", defaults.include_past_hours, 0),
            horizon_days=_coerce_int("horizon_days", defaults.horizon_days, 0),
            max_events=_coerce_int("max_events", defaults.max_events, 0),
            trigger_busy_only=_coerce_bool("trigger_busy_only", defaults.trigger_busy_only),
            exclude_tentative=_coerce_bool("exclude_tentative", defaults.exclude_tentative),
            exclude_declined_if_present=_coerce_bool(
                "exclude_declined_if_present", defaults.exclude_declined_if_present
            ),
            trigger_all_day=_coerce_bool("trigger_all_day", defaults.trigger_all_day),
            include_keywords=_coerce_keywords("include_keywords"),
            exclude_keywords=_coerce_keywords("exclude_keywords"),
            start_offset_minutes=_coerce_int("start_offset_minutes", defaults.start_offset_minutes),
            end_offset_minutes=_coerce_int("end_offset_minutes", defaults.end_offset_minutes),
            next_list_count=_coerce_int("next_list_count", defaults.next_list_count, 0),
            next_list_show_location=_coerce_bool(
                "next_list_show_location", defaults.next_list_show_location
            ),
            hub_timezone=hub_timezone,
            log_level=log_level,
            request_timeout=_coerce_int("request_timeout", defaults.request_timeout, 1),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _load_yaml(path: Path) -> Any:
    """Load a mapping from a YAML (or JSON, which is valid YAML) file."""
    import yaml  # noqa: PLC0415

    loaded = yaml.safe_load(path.read_text(encoding="utf-8"))
    # safe_load returns None for empty files; normalize to empty dict
    return {} if loaded is None else loaded


def build_config_from_env(base: Optional[dict[str, Any]] = None) -> dict[str, Any]:
    """Overlay CALENDARSWITCH_* environment variables onto a config mapping.

    Recognizes:
    - CALENDARSWITCH_ICS_URL -> 'ics_url'
    - CALENDARSWITCH_POLL_INTERVAL -> 'poll_interval_seconds'
    - CALENDARSWITCH_DEFAULT_TIMEZONE -> 'hub_timezone'
    - CALENDARSWITCH_LOG_LEVEL -> 'log_level'
    - CALENDARSWITCH_INCLUDE_KEYWORDS / CALENDARSWITCH_EXCLUDE_KEYWORDS
    """
    cfg: dict[str, Any] = dict(base or {})
    env_map = {
        "CALENDARSWITCH_ICS_URL": "ics_url",
        "CALENDARSWITCH_POLL_INTERVAL": "poll_interval_seconds",
        "CALENDARSWITCH_DEFAULT_TIMEZONE": "hub_timezone",
        "CALENDARSWITCH_LOG_LEVEL": "log_level",
        "CALENDARSWITCH_INCLUDE_KEYWORDS": "include_keywords",
        "CALENDARSWITCH_EXCLUDE_KEYWORDS": "exclude_keywords",
    }
    for env_key, cfg_key in env_map.items():
        value = os.environ.get(env_key)
        if value:
            cfg[cfg_key] = value
    return cfg


def load_config(path: Optional[str] = None, use_env: bool = True) -> SwitchConfig:
    """Load configuration from a YAML file and return a SwitchConfig instance.

    Behavior:
    - If no path is given or the file is missing: defaults (plus environment overrides).
    - If file exists but top-level is not a mapping: raises ValueError.
    """
    raw: Any = {}
    if path:
        p = Path(path)
        if p.exists():
            raw = _load_yaml(p)
            if not isinstance(raw, dict):
                logger.warning("Config file %s parsed but top-level is not a mapping: %r", p, raw)
                raise ValueError("Config file must contain a mapping at top level")  # noqa: TRY004
            logger.info("Loaded configuration from %s", p)
        else:
            logger.info("Config file %s not found; using defaults", p)

    if use_env:
        raw = build_config_from_env(raw)

    cfg = SwitchConfig.from_dict(raw)
    logger.debug("Configuration values: %s", cfg)
    return cfg
