"""calendarswitch_lite - turns an ICS calendar feed into a "busy now" switch.

The engine (``evaluate_feed``) is a pure function of feed text, configuration and the
current instant. ``CalendarSwitchRunner`` adds fetching, timers and publishing.
"""

__version__ = "0.1.0"

from typing import Optional


def _init_logging(level_name: Optional[str]) -> None:
    """Initialize root logging to stream to the console.

    Honors CALENDARSWITCH_DEBUG (truthy values: "1", "true", "yes", "on"), which
    forces DEBUG verbosity so parser/expander diagnostics surface without code changes.
    """
    import logging
    import sys

    from colorlog import ColoredFormatter

    from calendarswitch_lite.core.lite_logging import env_debug_enabled

    if env_debug_enabled():
        level_name = "DEBUG"

    root = logging.getLogger()
    # Only one handler, to avoid duplicate output when called twice.
    if not root.handlers:
        handler = logging.StreamHandler(stream=sys.stderr)
        # HH:MM:SS  LEVEL   logger.name: message  (only the level is colorized)
        fmt = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s"
        log_colors = {
            "DEBUG": "cyan",
            "INFO": "green",
            "WARNING": "yellow",
            "ERROR": "red",
            "CRITICAL": "bold_red",
        }
        handler.setFormatter(ColoredFormatter(fmt, datefmt="%H:%M:%S", log_colors=log_colors))
        root.addHandler(handler)

    level = logging.INFO
    if isinstance(level_name, str):
        level = getattr(logging, level_name.upper(), logging.INFO)
        if not isinstance(level, int):
            level = logging.INFO
    root.setLevel(level)
    logging.getLogger(__name__).debug("Logging initialized at level %s", logging.getLevelName(level))
