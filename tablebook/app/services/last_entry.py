import logging

from tablebook.app.domain.models import LastEntry
from tablebook.app.services.intervals import format_minutes, normalize_close

logger = logging.getLogger(__name__)

INSUFFICIENT_WINDOW = "insufficient open window"


def calculate_last_entry(open_minute: int, close_minute: int, duration_minutes: int) -> LastEntry:
    """Latest start such that a reservation of ``duration_minutes`` ends by closing.

    The returned ``last_entry_minute`` stays on the opening day's axis, so it can
    exceed 1439 for windows that run past midnight; ``last_entry`` is the wrapped
    clock time.
    """
    crosses_midnight = close_minute <= open_minute
    close = normalize_close(open_minute, close_minute)
    available = close - open_minute

    if available < duration_minutes:
        logger.info(
            "Window %s-%s holds %s min, %s min requested",
            format_minutes(open_minute),
            format_minutes(close_minute),
            available,
            duration_minutes,
        )
        return LastEntry(
            valid=False,
            available_minutes=available,
            crosses_midnight=crosses_midnight,
            reason=INSUFFICIENT_WINDOW,
        )

    last_entry_minute = close - duration_minutes
    return LastEntry(
        valid=True,
        available_minutes=available,
        crosses_midnight=crosses_midnight,
        last_entry=format_minutes(last_entry_minute),
        last_entry_minute=last_entry_minute,
    )
