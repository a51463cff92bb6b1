"""
Output Formatters

Human-readable renderings of the raw values the query layer returns.
All race times are integer milliseconds; race timestamps are epoch seconds.

Example:
    format_lap_time(83456)  -> "1:23.456"
    format_lap_time(23456)  -> "23.456"
    format_gap(-1234)       -> "-1.234s"
"""

from datetime import datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

NOT_AVAILABLE = "N/A"
UNKNOWN_DATE = "Unknown date"
DEFAULT_TIMEZONE = "America/Chicago"


def format_lap_time(milliseconds: Any) -> str:
    """
    Convert milliseconds to a lap-time string.

    Returns "M:SS.mmm" when there is at least one minute, "SS.mmm" otherwise,
    and "N/A" for missing, zero or negative input.
    """
    try:
        ms = round(float(milliseconds))
    except (TypeError, ValueError):
        return NOT_AVAILABLE
    if ms <= 0:
        return NOT_AVAILABLE

    minutes, remainder = divmod(ms, 60_000)
    seconds, millis = divmod(remainder, 1000)

    if minutes > 0:
        return f"{minutes}:{seconds:02d}.{millis:03d}"
    return f"{seconds}.{millis:03d}"


def format_gap(milliseconds: Any) -> str:
    """Format a signed time difference, e.g. "+2.456s" or "-1:03.000s"."""
    try:
        ms = round(float(milliseconds))
    except (TypeError, ValueError):
        return "0.000s"
    if ms == 0:
        return "0.000s"

    sign = "+" if ms > 0 else "-"
    return f"{sign}{format_lap_time(abs(ms))}s"


def format_race_date(epoch_seconds: Any, tz: str = DEFAULT_TIMEZONE) -> str:
    """Format an epoch timestamp as e.g. "Nov 6, 2023, 6:00 PM" in ``tz``."""
    if not epoch_seconds:
        return UNKNOWN_DATE
    try:
        zone = ZoneInfo(tz)
    except ZoneInfoNotFoundError:
        zone = timezone.utc
    try:
        moment = datetime.fromtimestamp(float(epoch_seconds), tz=zone)
    except (TypeError, ValueError, OverflowError, OSError):
        return UNKNOWN_DATE

    hour = moment.hour % 12 or 12
    meridiem = "AM" if moment.hour < 12 else "PM"
    return f"{moment:%b} {moment.day}, {moment.year}, {hour}:{moment:%M} {meridiem}"
