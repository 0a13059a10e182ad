"""ICS parsing, event building and RRULE expansion for calendarswitch_lite."""
