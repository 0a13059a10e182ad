"""Line unfolding and content-line parsing for ICS text - CalendarSwitch Lite.

Turns raw feed text into one RawEventBlock per VEVENT plus the calendar-level
timezone hints (X-WR-TIMEZONE and the first TZID inside a VTIMEZONE).
"""

import logging
from typing import Optional

from calendarswitch_lite.calendar.lite_models import (
    ParamValue,
    ParsedFeed,
    Property,
    RawEventBlock,
)
from calendarswitch_lite.core.exceptions import InvalidFeedError

logger = logging.getLogger(__name__)

CALENDAR_BEGIN = "BEGIN:VCALENDAR"
EVENT_BEGIN = "BEGIN:VEVENT"

# Properties that accumulate instead of overwriting
ACCUMULATING_PROPERTIES = frozenset({"ATTENDEE"})


def validate_feed(text: Optional[str]) -> None:
    """Check the minimal validity precondition on raw feed text.

    Raises:
        InvalidFeedError: If the calendar-begin or event-begin marker is missing
    """
    if not text:
        raise InvalidFeedError("Feed is empty")
    upper = text.upper()
    if CALENDAR_BEGIN not in upper:
        raise InvalidFeedError("Feed has no BEGIN:VCALENDAR marker")
    if EVENT_BEGIN not in upper:
        raise InvalidFeedError("Feed has no BEGIN:VEVENT marker")


def unfold_lines(text: str) -> list[str]:
    """Unfold RFC 5545 folded lines.

    A line starting with a single space or tab continues the previous logical line
    (that one leading character is dropped). Other lines start a new logical line,
    trimmed of surrounding whitespace. Empty logical lines are discarded.
    """
    out: list[str] = []
    current: Optional[str] = None
    for line in text.replace("\r\n", "\n").replace("\r", "\n").split("\n"):
        if line[:1] in (" ", "\t"):
            if current is not None:
                current += line[1:]
            continue
        if current:
            out.append(current)
        current = line.strip()
    if current:
        out.append(current)
    return out


def _split_unquoted(text: str, separator: str, maxsplit: int = -1) -> list[str]:
    """Split on a separator character, ignoring separators inside double quotes."""
    parts: list[str] = []
    buf: list[str] = []
    in_quotes = False
    for ch in text:
        if ch == '"':
            in_quotes = not in_quotes
        if ch == separator and not in_quotes and (maxsplit < 0 or len(parts) < maxsplit):
            parts.append("".join(buf))
            buf = []
            continue
        buf.append(ch)
    parts.append("".join(buf))
    return parts


def parse_content_line(line: str) -> Optional[Property]:
    """Parse one logical line into a Property.

    The line is split at the first ``:`` outside double quotes. The part before any
    ``;`` is the property name; each ``;key=value`` segment becomes a parameter and a
    bare segment without ``=`` becomes a boolean parameter.

    Returns:
        Property, or None when the line has no name/value separator
    """
    head_and_value = _split_unquoted(line, ":", maxsplit=1)
    if len(head_and_value) < 2:
        return None
    head, value = head_and_value
    segments = _split_unquoted(head, ";")
    name = segments[0].strip().upper()
    if not name:
        return None

    params: dict[str, ParamValue] = {}
    for segment in segments[1:]:
        segment = segment.strip()
        if not segment:
            continue
        if "=" in segment:
            key, param_value = segment.split("=", 1)
            params[key.strip().upper()] = param_value.strip()
        else:
            params[segment.upper()] = True

    return Property(name=name, value=value, parameters=params)


class LiteICSLineParser:
    """Builds RawEventBlocks and calendar hints from unfolded lines."""

    def parse(self, text: str) -> ParsedFeed:
        """Parse feed text into event blocks.

        Lines outside a VEVENT are only inspected for X-WR-TIMEZONE and the first
        VTIMEZONE TZID. Components nested inside a VEVENT (VALARM) are skipped.
        """
        feed = ParsedFeed()
        current: Optional[RawEventBlock] = None
        nested_depth = 0
        in_vtimezone = False

        for line in unfold_lines(text):
            prop = parse_content_line(line)
            if prop is None:
                continue
            marker = prop.value.strip().upper()

            if current is not None:
                if prop.name == "BEGIN":
                    nested_depth += 1
                elif prop.name == "END" and nested_depth:
                    nested_depth -= 1
                elif prop.name == "END" and marker == "VEVENT":
                    feed.blocks.append(current)
                    current = None
                elif nested_depth == 0:
                    self._store(current, prop)
                continue

            if prop.name == "BEGIN" and marker == "VEVENT":
                current = RawEventBlock()
                nested_depth = 0
            elif prop.name == "BEGIN" and marker == "VTIMEZONE":
                in_vtimezone = True
            elif prop.name == "END" and marker == "VTIMEZONE":
                in_vtimezone = False
            elif prop.name == "X-WR-TIMEZONE" and feed.x_wr_timezone is None:
                feed.x_wr_timezone = prop.value.strip() or None
            elif prop.name == "TZID" and in_vtimezone and feed.vtimezone_tzid is None:
                feed.vtimezone_tzid = prop.value.strip() or None

        if current is not None:
            logger.debug("Feed ended inside an unterminated VEVENT; block discarded")

        logger.debug(
            "Parsed %d VEVENT blocks (X-WR-TIMEZONE=%r, VTIMEZONE TZID=%r)",
            len(feed.blocks),
            feed.x_wr_timezone,
            feed.vtimezone_tzid,
        )
        return feed

    @staticmethod
    def _store(block: RawEventBlock, prop: Property) -> None:
        if prop.name in ACCUMULATING_PROPERTIES:
            block.attendees.append(prop)
        else:
            block.properties[prop.name] = prop
