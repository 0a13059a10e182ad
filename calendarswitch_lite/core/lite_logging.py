"""
Central logging configuration for calendarswitch_lite.

Keeps engine diagnostics (dropped events, RRULE fallbacks, timezone misses) visible
while suppressing verbose DEBUG output from the HTTP stack.
"""

import logging
import os
from typing import Optional

DEBUG_ENV = "CALENDARSWITCH_DEBUG"
LOG_LEVEL_ENV = "CALENDARSWITCH_LOG_LEVEL"

LITE_MODULES = [
    "calendarswitch_lite",
    "calendarswitch_lite.calendar.lite_line_parser",
    "calendarswitch_lite.calendar.lite_event_parser",
    "calendarswitch_lite.calendar.lite_rrule_expander",
    "calendarswitch_lite.calendar.lite_timezone_resolver",
    "calendarswitch_lite.calendar.lite_fetcher",
    "calendarswitch_lite.domain.pipeline",
    "calendarswitch_lite.domain.pipeline_stages",
    "calendarswitch_lite.domain.event_filter",
    "calendarswitch_lite.switch_runner",
]

NOISY_LOGGERS: dict[str, int] = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "asyncio": logging.WARNING,
}


def env_debug_enabled() -> bool:
    """True when CALENDARSWITCH_DEBUG holds a truthy value."""
    return os.getenv(DEBUG_ENV, "").strip().lower() in ("1", "true", "yes", "on")


def configure_lite_logging(debug_mode: bool = False, force_debug: Optional[bool] = None) -> None:
    """
    Configure logging levels for calendarswitch_lite.

    Args:
        debug_mode: Whether to enable debug logging for calendarswitch_lite modules
        force_debug: Override debug mode setting (None to use env var detection)

    Environment Variables:
        CALENDARSWITCH_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        CALENDARSWITCH_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_log_level = os.getenv(LOG_LEVEL_ENV, "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug_enabled():
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    logger_config = dict(NOISY_LOGGERS)
    lite_level = logging.DEBUG if final_debug else logging.INFO
    for module in LITE_MODULES:
        logger_config[module] = lite_level

    for logger_name, level in logger_config.items():
        logging.getLogger(logger_name).setLevel(level)

    if final_debug:
        root_logger.info("Debug logging enabled for calendarswitch_lite modules")
    else:
        root_logger.debug("Production logging configuration applied")


def get_logging_status() -> dict[str, str]:
    """
    Get current logging configuration status.

    Returns:
        Dictionary mapping logger names to their current levels
    """
    status = {"root": logging.getLevelName(logging.getLogger().level)}
    for logger_name in ["calendarswitch_lite", *NOISY_LOGGERS]:
        status[logger_name] = logging.getLevelName(logging.getLogger(logger_name).level)
    return status
