"""RRULE expansion logic for CalendarSwitch Lite.

Expansion walks calendar days across the caller's evaluation window at the master's
wall-clock time in the recurrence zone and tests each day against the rule. The walk
is linear in window length, so malformed or unbounded rules always terminate.

Only WEEKLY and MONTHLY frequencies are expanded. Any other FREQ keeps the master as a
single instance at its literal start/end (flagged as an unsupported-recurrence fallback).
"""

# ruff: noqa: I001
import calendar
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo
import logging
import re
from typing import Optional

from calendarswitch_lite.calendar.lite_datetime_utils import (
    civil_to_instant,
    end_of_local_day,
    parse_date_only,
    parse_ical_value,
)
from calendarswitch_lite.calendar.lite_models import (
    EventDiagnostic,
    EventInstance,
    LiteCalendarEvent,
    OverrideKey,
)
from calendarswitch_lite.core.exceptions import LiteRRuleParseError
from calendarswitch_lite.core.timezone_utils import get_zone, is_valid_zone

logger = logging.getLogger(__name__)

WEEKDAY_CODES = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")  # index == date.weekday()
SUNDAY = 6
SUPPORTED_FREQUENCIES = frozenset({"WEEKLY", "MONTHLY"})
ONE_DAY = timedelta(days=1)

_WEEKDAY_TOKEN_RE = re.compile(r"^([+-]?\d{1,2})?(MO|TU|WE|TH|FR|SA|SU)$")


def weekday_code(day: date) -> str:
    return WEEKDAY_CODES[day.weekday()]


def last_day_of_month(day: date) -> int:
    return calendar.monthrange(day.year, day.month)[1]


@dataclass(frozen=True)
class WeekdayToken:
    """One BYDAY entry: a weekday with an optional signed ordinal (``2MO``, ``-1FR``)."""

    weekday: int
    ordinal: Optional[int] = None

    @classmethod
    def parse(cls, token: str) -> "WeekdayToken":
        """Parse a BYDAY token.

        Raises:
            LiteRRuleParseError: If the token is not ``[+-]N?XX``
        """
        match = _WEEKDAY_TOKEN_RE.match(token.strip().upper())
        if not match:
            raise LiteRRuleParseError(f"Invalid BYDAY token: {token!r}")
        ordinal = int(match.group(1)) if match.group(1) else None
        return cls(weekday=WEEKDAY_CODES.index(match.group(2)), ordinal=ordinal or None)

    def matches(self, day: date, use_ordinal: bool = True) -> bool:
        """Check a day against this token.

        With ``use_ordinal`` the day must also be the N-th (or N-th from last, for a
        negative ordinal) occurrence of its weekday within its month.
        """
        if day.weekday() != self.weekday:
            return False
        if not use_ordinal or self.ordinal is None:
            return True
        if self.ordinal > 0:
            return (day.day - 1) // 7 + 1 == self.ordinal
        return (last_day_of_month(day) - day.day) // 7 + 1 == -self.ordinal


@dataclass(frozen=True)
class ParsedRRule:
    """Recognized parts of an RRULE."""

    freq: str
    interval: int = 1
    until: Optional[datetime] = None
    count: Optional[int] = None
    byday: tuple[WeekdayToken, ...] = ()
    bymonthday: tuple[int, ...] = ()
    bysetpos: tuple[int, ...] = ()
    wkst: int = SUNDAY

    @property
    def weekdays(self) -> frozenset[int]:
        return frozenset(token.weekday for token in self.byday)


def split_rrule(rrule_string: str) -> dict[str, str]:
    """Split ``KEY=VALUE;KEY=VALUE`` into an upper-cased mapping (quotes stripped)."""
    parts: dict[str, str] = {}
    text = rrule_string.strip()
    if text.upper().startswith("RRULE:"):
        text = text[len("RRULE:") :]
    for part in text.split(";"):
        if "=" not in part:
            continue
        key, value = part.split("=", 1)
        key = key.strip().upper()
        if key:
            parts[key] = value.strip().strip('"').strip().upper()
    return parts


def _int_list(raw: Optional[str], key: str) -> tuple[int, ...]:
    if not raw:
        return ()
    values = []
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        try:
            value = int(item)
        except ValueError:
            logger.debug("Ignoring non-integer %s entry %r", key, item)
            continue
        if value != 0:
            values.append(value)
    return tuple(values)


def _parse_until(raw: str, tz: tzinfo) -> Optional[datetime]:
    day = parse_date_only(raw)
    if day is not None:
        return end_of_local_day(day, tz)
    return parse_ical_value(raw, tz)


def parse_rrule(rrule_string: Optional[str], tz: tzinfo) -> ParsedRRule:
    """Parse RRULE text into a ParsedRRule.

    Args:
        rrule_string: RRULE value (e.g. "FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,WE")
        tz: Recurrence zone, used for floating and date-only UNTIL values

    Raises:
        LiteRRuleParseError: If the rule is empty or has no FREQ
    """
    if not rrule_string or not rrule_string.strip():
        raise LiteRRuleParseError("Empty RRULE string")

    parts = split_rrule(rrule_string)
    freq = parts.get("FREQ")
    if not freq:
        raise LiteRRuleParseError(f"RRULE missing required FREQ parameter: {rrule_string!r}")

    interval = 1
    if parts.get("INTERVAL"):
        try:
            interval = max(1, int(parts["INTERVAL"]))
        except ValueError:
            logger.warning("Invalid RRULE INTERVAL %r; using 1", parts["INTERVAL"])

    count = None
    if parts.get("COUNT"):
        try:
            count = max(0, int(parts["COUNT"]))
        except ValueError:
            logger.warning("Invalid RRULE COUNT %r; ignoring", parts["COUNT"])

    until = None
    if parts.get("UNTIL"):
        until = _parse_until(parts["UNTIL"], tz)
        if until is None:
            logger.warning("Unparsable RRULE UNTIL %r; treating rule as unbounded", parts["UNTIL"])

    byday: list[WeekdayToken] = []
    for token in (parts.get("BYDAY") or "").split(","):
        if not token.strip():
            continue
        try:
            byday.append(WeekdayToken.parse(token))
        except LiteRRuleParseError as exc:
            logger.debug("%s", exc)

    wkst = SUNDAY
    if parts.get("WKST") in WEEKDAY_CODES:
        wkst = WEEKDAY_CODES.index(parts["WKST"])

    return ParsedRRule(
        freq=freq,
        interval=interval,
        until=until,
        count=count,
        byday=tuple(byday),
        bymonthday=_int_list(parts.get("BYMONTHDAY"), "BYMONTHDAY"),
        bysetpos=_int_list(parts.get("BYSETPOS"), "BYSETPOS"),
        wkst=wkst,
    )


def week_start(day: date, wkst: int) -> date:
    """First day of the week containing ``day`` for a given week-start weekday."""
    return day - timedelta(days=(day.weekday() - wkst) % 7)


def months_between(first: date, second: date) -> int:
    return (second.year - first.year) * 12 + (second.month - first.month)


def matches_weekly(rule: ParsedRRule, master_day: date, candidate: date) -> bool:
    """WEEKLY: weekday in BYDAY (default: master's weekday) and an INTERVAL multiple of weeks."""
    weekdays = rule.weekdays or frozenset({master_day.weekday()})
    if candidate.weekday() not in weekdays:
        return False
    weeks = (week_start(candidate, rule.wkst) - week_start(master_day, rule.wkst)).days // 7
    return weeks >= 0 and weeks % rule.interval == 0


def setpos_days(rule: ParsedRRule, month_day: date) -> set[date]:
    """Days of ``month_day``'s month selected by BYDAY (ordinals ignored) + BYSETPOS."""
    first = month_day.replace(day=1)
    candidates = [
        first.replace(day=d)
        for d in range(1, last_day_of_month(first) + 1)
        if any(token.matches(first.replace(day=d), use_ordinal=False) for token in rule.byday)
    ]
    selected = set()
    for pos in rule.bysetpos:
        index = pos - 1 if pos > 0 else pos
        if -len(candidates) <= index < len(candidates):
            selected.add(candidates[index])
    return selected


def matches_monthly(rule: ParsedRRule, master_day: date, candidate: date) -> bool:
    """MONTHLY: INTERVAL multiple of months, then BYMONTHDAY, BYDAY+BYSETPOS, BYDAY, or same day."""
    months = months_between(master_day, candidate)
    if months < 0 or months % rule.interval != 0:
        return False

    if rule.bymonthday:
        last = last_day_of_month(candidate)
        return any(
            candidate.day == (value if value > 0 else last + value + 1) for value in rule.bymonthday
        )

    if rule.byday and rule.bysetpos:
        return candidate in setpos_days(rule, candidate)

    if rule.byday:
        return any(token.matches(candidate) for token in rule.byday)

    return candidate.day == master_day.day


class LiteRRuleExpander:
    """Expands master events into concrete EventInstances over a bounded window."""

    def expand_events(
        self,
        events: list[LiteCalendarEvent],
        window_start: datetime,
        window_end: datetime,
        diagnostics: Optional[list[EventDiagnostic]] = None,
    ) -> list[EventInstance]:
        """Expand all masters and merge overrides.

        - Plain events pass through unchanged.
        - Masters are replaced by their expansions.
        - An override whose (uid, RECURRENCE-ID) matches a generated occurrence replaces
          it; a cancelled override removes it.
        - Overrides no master consumed pass through unless cancelled.

        Args:
            events: Built events (plain, masters and overrides)
            window_start: Earliest occurrence instant to emit
            window_end: Latest occurrence instant to emit
            diagnostics: Optional sink for fallback notices

        Returns:
            EventInstances (unordered)
        """
        overrides: dict[OverrideKey, LiteCalendarEvent] = {}
        for event in events:
            key = event.override_key
            if key is not None:
                overrides[key] = event

        consumed: set[OverrideKey] = set()
        out: list[EventInstance] = [
            EventInstance.from_event(event)
            for event in events
            if not event.is_master and not event.is_override
        ]

        masters = [event for event in events if event.is_master]
        for master in masters:
            out.extend(
                self.expand_master(master, window_start, window_end, overrides, consumed, diagnostics)
            )

        for key, override in overrides.items():
            if key not in consumed and not override.is_cancelled:
                out.append(EventInstance.from_event(override))

        logger.debug(
            "Expanded %d masters into %d instances (%d overrides, %d consumed)",
            len(masters),
            len(out),
            len(overrides),
            len(consumed),
        )
        return out

    def expand_master(
        self,
        master: LiteCalendarEvent,
        window_start: datetime,
        window_end: datetime,
        overrides: Optional[dict[OverrideKey, LiteCalendarEvent]] = None,
        consumed: Optional[set[OverrideKey]] = None,
        diagnostics: Optional[list[EventDiagnostic]] = None,
    ) -> list[EventInstance]:
        """Expand one master event.

        Returns:
            Generated instances and substituted overrides within the window, or the
            master itself as a single flagged instance when its rule is unsupported
        """
        overrides = overrides if overrides is not None else {}
        consumed = consumed if consumed is not None else set()
        zone_id = master.recurrence_zone_id if is_valid_zone(master.recurrence_zone_id) else "UTC"
        tz = get_zone(zone_id)

        try:
            rule = parse_rrule(master.recurrence_rule, tz)
            if rule.freq not in SUPPORTED_FREQUENCIES:
                raise LiteRRuleParseError(f"unsupported FREQ={rule.freq}")
        except LiteRRuleParseError as exc:
            logger.warning(
                "RRULE %r for %r not expanded (%s); keeping single instance",
                master.recurrence_rule,
                master.summary,
                exc,
            )
            if diagnostics is not None:
                diagnostics.append(
                    EventDiagnostic(
                        reason=f"RRULE not expanded ({exc}); kept as single instance",
                        uid=master.uid,
                        raw_start=master.start.isoformat(),
                        summary=master.summary,
                    )
                )
            return [EventInstance.from_event(master, unsupported_recurrence=True)]

        master_local = master.start.astimezone(tz)
        master_day = master_local.date()
        wall_clock = time(master_local.hour, master_local.minute, master_local.second)
        matcher = matches_weekly if rule.freq == "WEEKLY" else matches_monthly

        # COUNT is counted from the master start, so the walk must begin there
        if rule.count is not None:
            day = master_day
        else:
            day = max(window_start.astimezone(tz).date(), master_day)
        last_day = window_end.astimezone(tz).date()
        if rule.until is not None:
            last_day = min(last_day, rule.until.astimezone(tz).date())

        out: list[EventInstance] = []
        occurrences = 0
        while day <= last_day:
            if matcher(rule, master_day, day):
                candidate = civil_to_instant(day, wall_clock, tz)
                if candidate >= master.start and (rule.until is None or candidate <= rule.until):
                    if rule.count is not None:
                        if occurrences >= rule.count:
                            break
                        occurrences += 1
                    if window_start <= candidate <= window_end:
                        instance = self._occurrence(master, candidate, overrides, consumed)
                        if instance is not None:
                            out.append(instance)
            day += ONE_DAY

        logger.debug(
            "RRULE %r expanded to %d instances for %r", master.recurrence_rule, len(out), master.summary
        )
        return out

    @staticmethod
    def _occurrence(
        master: LiteCalendarEvent,
        candidate: datetime,
        overrides: dict[OverrideKey, LiteCalendarEvent],
        consumed: set[OverrideKey],
    ) -> Optional[EventInstance]:
        key = OverrideKey(master.uid, candidate)
        override = overrides.get(key)
        if override is not None:
            consumed.add(key)
            if override.is_cancelled:
                return None
            return EventInstance.from_event(override)

        generated = master.model_copy(
            update={
                "start": candidate,
                "end": candidate + master.duration,
                "recurrence_rule": None,
            }
        )
        return EventInstance.from_event(generated, generated=True)
