"""Output processors: value formatting and response cleanup."""

from agent.processors.formatters import format_gap, format_lap_time, format_race_date
from agent.processors.sanitize import sanitize_response

__all__ = [
    "format_gap",
    "format_lap_time",
    "format_race_date",
    "sanitize_response",
]
