"""Minute-of-day arithmetic shared by the scheduling services."""
import re

from tablebook.app.domain.errors import FormatError

MINUTES_PER_DAY = 1440

_CLOCK_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")


def to_minutes(clock_time: str) -> int:
    """Parse ``HH:MM`` or ``HH:MM:SS`` into minutes since midnight (0-1439)."""
    match = _CLOCK_RE.match(clock_time.strip()) if isinstance(clock_time, str) else None
    if match is None:
        raise FormatError(f"Invalid time {clock_time!r}, expected HH:MM")

    hours, minutes, seconds = int(match[1]), int(match[2]), int(match[3] or 0)
    if hours > 23 or minutes > 59 or seconds > 59:
        raise FormatError(f"Invalid time {clock_time!r}, expected HH:MM")
    return hours * 60 + minutes


def normalize_close(open_minute: int, close_minute: int) -> int:
    """Push a close at or before the opening past midnight."""
    if close_minute <= open_minute:
        return close_minute + MINUTES_PER_DAY
    return close_minute


def overlaps(start_a: int, duration_a: int, start_b: int, duration_b: int) -> bool:
    """Half-open overlap: [a, a+da) and [b, b+db) share at least one minute."""
    return start_a < start_b + duration_b and start_b < start_a + duration_a


def format_minutes(total_minutes: int) -> str:
    if total_minutes < 0:
        total_minutes += MINUTES_PER_DAY
    if total_minutes >= MINUTES_PER_DAY:
        total_minutes -= MINUTES_PER_DAY
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours:02d}:{minutes:02d}"
