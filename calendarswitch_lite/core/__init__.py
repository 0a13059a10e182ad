"""Core infrastructure for calendarswitch_lite: configuration, logging, timezones, errors."""
