"""Command-line entry for calendarswitch_lite.

Evaluates a feed once (from a file or URL) and prints the result as JSON, or with
``--watch`` keeps polling the configured URL and logs every published attribute.
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import datetime
import json
import logging
import os
import sys
from pathlib import Path
from typing import NoReturn, Optional

from dateutil import parser as date_parser

from calendarswitch_lite import _init_logging
from calendarswitch_lite.calendar.lite_datetime_utils import ensure_timezone_aware
from calendarswitch_lite.calendar.lite_fetcher import LiteICSFetcher
from calendarswitch_lite.calendar.lite_models import LiteICSResponse
from calendarswitch_lite.core.config_loader import SwitchConfig, load_config
from calendarswitch_lite.core.lite_logging import LOG_LEVEL_ENV, configure_lite_logging
from calendarswitch_lite.core.timezone_utils import now_utc
from calendarswitch_lite.domain.pipeline_stages import evaluate_feed
from calendarswitch_lite.switch_runner import CalendarSwitchRunner

logger = logging.getLogger(__name__)


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the calendarswitch_lite CLI."""
    parser = argparse.ArgumentParser(
        prog="calendarswitch_lite",
        description="CalendarSwitch Lite - ICS feed to busy switch",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m calendarswitch_lite --ics-file work.ics
  python -m calendarswitch_lite --ics-file work.ics --now 2026-01-05T09:05:00Z
  python -m calendarswitch_lite --url https://example.com/cal.ics --watch
        """,
    )
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--ics-file", metavar="PATH", help="Evaluate a local .ics file")
    source.add_argument("--url", metavar="URL", help="Feed URL (overrides config ics_url)")
    parser.add_argument("--config", metavar="PATH", help="YAML configuration file")
    parser.add_argument(
        "--now", metavar="ISO8601", help="Evaluate at this instant instead of the current time"
    )
    parser.add_argument("--timezone", metavar="TZ", help="Hub timezone for display and fallback")
    parser.add_argument(
        "--watch", action="store_true", help="Keep polling the feed URL and publish changes"
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser


def _parse_now(value: Optional[str]) -> datetime.datetime:
    if not value:
        return now_utc()
    return ensure_timezone_aware(date_parser.isoparse(value))


async def _fetch_once(config: SwitchConfig) -> LiteICSResponse:
    async with LiteICSFetcher(config) as fetcher:
        return await fetcher.fetch_ics(config.ics_url)


async def _run_watch(runner: CalendarSwitchRunner) -> None:
    try:
        await runner.run_forever()
    finally:
        await runner.fetcher.close()


def _watch(config: SwitchConfig) -> int:
    runner = CalendarSwitchRunner(config)
    try:
        asyncio.run(_run_watch(runner))
    except KeyboardInterrupt:
        logger.info("Interrupted")
    return 0


def main(argv: Optional[list[str]] = None) -> NoReturn:
    """Run the calendarswitch_lite CLI."""
    parser = _create_parser()
    args = parser.parse_args(argv)

    _init_logging(os.environ.get(LOG_LEVEL_ENV))
    configure_lite_logging(debug_mode=args.debug)

    try:
        config = load_config(args.config)
    except ValueError as exc:
        parser.error(str(exc))
    overrides = {}
    if args.url:
        overrides["ics_url"] = args.url
    if args.timezone:
        overrides["hub_timezone"] = args.timezone
    if overrides:
        config = dataclasses.replace(config, **overrides)

    try:
        now = _parse_now(args.now)
    except ValueError:
        parser.error(f"--now: not an ISO-8601 timestamp: {args.now!r}")

    if args.watch:
        if not config.ics_url:
            parser.error("--watch needs a feed URL (--url or ics_url in config)")
        sys.exit(_watch(config))

    if args.ics_file:
        feed_text = Path(args.ics_file).read_text(encoding="utf-8")
    elif config.ics_url:
        response = asyncio.run(_fetch_once(config))
        if not response.success:
            print(json.dumps({"status": response.error_message, "status_code": response.status_code}))
            sys.exit(1)
        feed_text = response.content or ""
    else:
        parser.error("one of --ics-file or --url (or ics_url in config) is required")

    evaluation = evaluate_feed(feed_text, config, now)
    print(evaluation.model_dump_json(indent=2, exclude={"eligible"}))
    sys.exit(0 if evaluation.is_ok else 1)


if __name__ == "__main__":
    main()
