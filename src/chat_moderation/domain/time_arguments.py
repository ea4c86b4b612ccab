"""Parsing of command duration arguments and rendering of remaining time."""

from __future__ import annotations

import re
from typing import Final

DEFAULT_DURATION_MS: Final[int] = 10 * 60 * 1000

_TIME_ARGUMENT_PATTERN = re.compile(r"^(\d+)([smhd])$", re.IGNORECASE)
_UNIT_TO_MS: Final[dict[str, int]] = {
    "s": 1000,
    "m": 60 * 1000,
    "h": 60 * 60 * 1000,
    "d": 24 * 60 * 60 * 1000,
}


def extract_time_argument(message_text: str) -> str:
    """Return the first token after the command that looks like ``10m``, else empty."""

    parts = [part for part in message_text.split(" ") if part.strip()]
    for part in parts[1:]:
        if _TIME_ARGUMENT_PATTERN.match(part):
            return part
    return ""


def parse_time_to_ms(time_argument: str, *, default_ms: int = DEFAULT_DURATION_MS) -> int:
    """Convert ``<number><s|m|h|d>`` into milliseconds, falling back to ``default_ms``."""

    match = _TIME_ARGUMENT_PATTERN.match(time_argument.strip())
    if match is None:
        return default_ms
    return int(match.group(1)) * _UNIT_TO_MS[match.group(2).lower()]


def format_duration(duration_ms: int) -> str:
    """Render a millisecond duration using its two most significant units."""

    seconds = max(duration_ms, 0) // 1000
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    if days > 0:
        remaining_hours = hours % 24
        if remaining_hours > 0:
            return f"{_plural(days, 'day')} and {_plural(remaining_hours, 'hour')}"
        return _plural(days, "day")
    if hours > 0:
        remaining_minutes = minutes % 60
        if remaining_minutes > 0:
            return f"{_plural(hours, 'hour')} and {_plural(remaining_minutes, 'minute')}"
        return _plural(hours, "hour")
    if minutes > 0:
        return _plural(minutes, "minute")
    return _plural(seconds, "second")


def _plural(value: int, unit: str) -> str:
    return f"{value} {unit}" if value == 1 else f"{value} {unit}s"
