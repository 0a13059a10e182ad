"""Data models for ICS calendar processing - CalendarSwitch Lite version."""

from datetime import datetime, timedelta
from enum import Enum
from typing import NamedTuple, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer, model_validator

from calendarswitch_lite.core.timezone_utils import now_utc as _now_utc

ParamValue = Union[str, bool]


class Property(BaseModel):
    """One unfolded content line: ``NAME;PARAM=VALUE:value``."""

    name: str = Field(..., description="Upper-cased property name")
    value: str = Field(default="", description="Raw (still escaped) property value")
    parameters: dict[str, ParamValue] = Field(
        default_factory=dict, description="Parameters; bare segments map to True"
    )

    model_config = ConfigDict(frozen=True)

    def param(self, name: str) -> Optional[str]:
        """Return a string parameter value, or None when absent or boolean."""
        value = self.parameters.get(name.upper())
        return value if isinstance(value, str) else None

    def identifier_param(self, name: str) -> Optional[str]:
        """Return a parameter value with surrounding quotes stripped (used for TZIDs)."""
        value = self.param(name)
        if value is None:
            return None
        value = value.strip().strip('"').strip()
        return value or None


class RawEventBlock(BaseModel):
    """Properties of one BEGIN:VEVENT/END:VEVENT span.

    Last write wins per property name, except ATTENDEE lines which accumulate.
    """

    properties: dict[str, Property] = Field(default_factory=dict)
    attendees: list[Property] = Field(default_factory=list)

    def get(self, name: str) -> Optional[Property]:
        return self.properties.get(name.upper())

    def value(self, name: str) -> Optional[str]:
        prop = self.get(name)
        return prop.value if prop is not None else None


class ParsedFeed(BaseModel):
    """Line-parser output: event blocks plus calendar-level timezone hints."""

    blocks: list[RawEventBlock] = Field(default_factory=list)
    x_wr_timezone: Optional[str] = Field(default=None, description="X-WR-TIMEZONE value")
    vtimezone_tzid: Optional[str] = Field(
        default=None, description="First TZID inside a VTIMEZONE block"
    )


class ZoneSource(str, Enum):
    """Where a resolved zone came from, strongest first."""

    EXPLICIT = "explicit"
    CALENDAR_HINT = "calendar-hint"
    VTIMEZONE = "vtimezone"
    HUB_DEFAULT = "hub-default"


class ResolvedZone(BaseModel):
    """A concrete IANA zone plus the rule that produced it."""

    zone_id: str = Field(..., description="IANA zone identifier")
    source: ZoneSource = Field(..., description="Resolution source")
    via_alias: bool = Field(default=False, description="True if mapped through the alias table")

    model_config = ConfigDict(frozen=True, use_enum_values=True)


class EventStatus(str, Enum):
    """Common iCalendar STATUS values."""

    CONFIRMED = "CONFIRMED"
    TENTATIVE = "TENTATIVE"
    CANCELLED = "CANCELLED"


class Transparency(str, Enum):
    """iCalendar TRANSP values."""

    OPAQUE = "OPAQUE"
    TRANSPARENT = "TRANSPARENT"


class OverrideKey(NamedTuple):
    """Join key between a generated occurrence and its override/cancellation record."""

    uid: str
    original_start: datetime


class LiteCalendarEvent(BaseModel):
    """Normalized calendar event built from one VEVENT.

    Instants are timezone-aware UTC datetimes. Instances are immutable; generated
    occurrences are produced with ``model_copy``.
    """

    uid: str = Field(default="", description="Event UID")
    summary: str = Field(default="", description="Unescaped SUMMARY")
    location: str = Field(default="", description="Unescaped LOCATION")
    status: str = Field(default="", description="Upper-cased STATUS, empty if absent")
    transparency: str = Field(default=Transparency.OPAQUE.value, description="Upper-cased TRANSP")
    attendance_markers: tuple[str, ...] = Field(
        default=(), description="PARTSTAT value of each ATTENDEE that carries one"
    )

    start: datetime = Field(..., description="Start instant (UTC)")
    end: datetime = Field(..., description="End instant (UTC)")
    all_day: bool = Field(default=False, description="All-day event flag")

    recurrence_rule: Optional[str] = Field(default=None, description="Raw RRULE text")
    recurrence_anchor: Optional[datetime] = Field(
        default=None, description="RECURRENCE-ID instant; set only on override records"
    )
    recurrence_zone_id: str = Field(default="UTC", description="Zone used for recurrence walks")

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_order(self) -> "LiteCalendarEvent":
        if self.end < self.start:
            raise ValueError("event end lies before its start")
        return self

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def is_override(self) -> bool:
        """True for RECURRENCE-ID records (override or cancellation)."""
        return self.recurrence_anchor is not None

    @property
    def is_master(self) -> bool:
        """True for events that carry an RRULE and are not themselves an override."""
        return bool(self.recurrence_rule) and self.recurrence_anchor is None

    @property
    def is_cancelled(self) -> bool:
        return self.status == EventStatus.CANCELLED.value

    @property
    def override_key(self) -> Optional[OverrideKey]:
        if self.recurrence_anchor is None:
            return None
        return OverrideKey(self.uid, self.recurrence_anchor)

    @field_serializer("start", "end", "recurrence_anchor", when_used="unless-none")
    def serialize_datetime(self, dt: datetime) -> str:
        """Serialize datetime fields to ISO format."""
        return dt.isoformat()


class EventInstance(BaseModel):
    """A concrete occurrence considered for the busy signal."""

    event: LiteCalendarEvent
    effective_start: datetime = Field(..., description="Start after the configured offset")
    effective_end: datetime = Field(..., description="End after the configured offset")
    generated: bool = Field(default=False, description="True if produced by RRULE expansion")
    unsupported_recurrence: bool = Field(
        default=False, description="Master kept as a single instance (unsupported FREQ)"
    )

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_event(
        cls,
        event: LiteCalendarEvent,
        generated: bool = False,
        unsupported_recurrence: bool = False,
    ) -> "EventInstance":
        return cls(
            event=event,
            effective_start=event.start,
            effective_end=event.end,
            generated=generated,
            unsupported_recurrence=unsupported_recurrence,
        )

    def with_offsets(self, start_offset: timedelta, end_offset: timedelta) -> "EventInstance":
        """Return a copy whose effective window is shifted by the given offsets."""
        return self.model_copy(
            update={
                "effective_start": self.event.start + start_offset,
                "effective_end": self.event.end + end_offset,
            }
        )

    def is_active_at(self, now: datetime) -> bool:
        return self.effective_start <= now < self.effective_end

    @field_serializer("effective_start", "effective_end")
    def serialize_datetime(self, dt: datetime) -> str:
        return dt.isoformat()


class TransitionReason(str, Enum):
    """Why the next re-evaluation instant was chosen."""

    ACTIVE_END = "active-end"
    NEXT_START = "next-start"
    NONE = "none"


class ResolutionResult(BaseModel):
    """Active/next resolution for one instant. Recomputed on every invocation."""

    is_active: bool = False
    governing: Optional[EventInstance] = Field(
        default=None, description="Active instance that ends soonest"
    )
    next_instance: Optional[EventInstance] = Field(
        default=None, description="Earliest instance starting after now"
    )
    next_transition: Optional[datetime] = Field(
        default=None, description="Next instant requiring re-evaluation"
    )
    reason: TransitionReason = TransitionReason.NONE

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    @field_serializer("next_transition", when_used="unless-none")
    def serialize_datetime(self, dt: datetime) -> str:
        return dt.isoformat()


class EventDiagnostic(BaseModel):
    """Why a VEVENT was dropped or degraded while building the event list."""

    reason: str
    uid: str = ""
    raw_start: Optional[str] = None
    summary: str = ""

    def __str__(self) -> str:
        return (
            f"{self.reason} uid={self.uid!r} dtstart={self.raw_start!r} "
            f"summary={self.summary!r}"
        )


class SwitchEvaluation(BaseModel):
    """Everything one evaluation produces for the host to publish."""

    status: str = Field(default="OK", description="'OK', 'Invalid feed' or 'Processing failed'")
    active: bool = False
    active_summary: Optional[str] = None
    next_summary: Optional[str] = None
    next_events: list[str] = Field(default_factory=list, description="Formatted upcoming lines")
    next_events_text: str = Field(default="", description="Bullet-joined upcoming lines")
    calendar_timezone: Optional[str] = None
    next_transition: Optional[datetime] = None
    resolution: Optional[ResolutionResult] = None
    eligible: list[EventInstance] = Field(default_factory=list)
    diagnostics: list[EventDiagnostic] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    @property
    def is_ok(self) -> bool:
        return self.status == "OK"

    @field_serializer("next_transition", when_used="unless-none")
    def serialize_datetime(self, dt: datetime) -> str:
        return dt.isoformat()


class LiteICSResponse(BaseModel):
    """Response from ICS fetch operation."""

    success: bool
    content: Optional[str] = None
    status_code: Optional[int] = None
    headers: dict[str, str] = Field(default_factory=dict)
    error_message: Optional[str] = None
    fetch_time: datetime = Field(default_factory=_now_utc)

    @property
    def content_length(self) -> Optional[int]:
        """Get content length of the buffered body."""
        if self.content:
            return len(self.content.encode("utf-8"))
        return None
