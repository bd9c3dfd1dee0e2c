import logging
from datetime import date, timedelta

from tablebook.app.core.config import settings
from tablebook.app.domain.models import ResolvedHours
from tablebook.app.domain.store import ReservationStore

logger = logging.getLogger(__name__)


async def resolve_hours(store: ReservationStore, service_date: date) -> ResolvedHours:
    """Effective opening window for a date.

    A date-specific exception wins outright over the weekly schedule. Nothing is
    cached here since operators edit hours while the service is running.
    """
    exception = await store.get_hours_exception(service_date)
    if exception is not None:
        if exception.closed or exception.open_minute is None or exception.close_minute is None:
            return ResolvedHours(closed=True, is_exception=True, reason=exception.reason)
        return ResolvedHours(
            closed=False,
            open_minute=exception.open_minute,
            close_minute=exception.close_minute,
            is_exception=True,
            reason=exception.reason,
        )

    weekly = await store.get_weekly_hours(service_date.weekday())
    if weekly is None or weekly.closed or weekly.open_minute is None or weekly.close_minute is None:
        return ResolvedHours(closed=True)

    return ResolvedHours(
        closed=False,
        open_minute=weekly.open_minute,
        close_minute=weekly.close_minute,
    )


async def find_next_open_date(
    store: ReservationStore,
    after: date,
    *,
    max_days: int | None = None,
) -> tuple[date, ResolvedHours] | None:
    """First open date strictly after ``after``, looking at most ``max_days`` ahead."""
    limit = settings.NEXT_OPEN_SEARCH_DAYS if max_days is None else max_days
    for offset in range(1, limit + 1):
        candidate = after + timedelta(days=offset)
        hours = await resolve_hours(store, candidate)
        if not hours.closed:
            return candidate, hours

    logger.info("No open date within %s days after %s", limit, after.isoformat())
    return None
