"""Ranked alternative slots for a request that could not be seated as asked."""
import logging
from collections.abc import Callable
from datetime import date, datetime

from tablebook.app.core.config import settings
from tablebook.app.domain.models import AlternativeSlot, Table
from tablebook.app.domain.store import ReservationStore
from tablebook.app.services.allocation import find_available_tables, list_candidate_tables
from tablebook.app.services.conflicts import check_conflicts, minute_of_day
from tablebook.app.services.intervals import MINUTES_PER_DAY, format_minutes, to_minutes

logger = logging.getLogger(__name__)


def _slot(
    minute: int,
    requested_start: int,
    tables: list[int],
    *,
    release: bool = False,
    exact: bool = False,
) -> AlternativeSlot:
    return AlternativeSlot(
        time=format_minutes(minute),
        start_minute=minute,
        free_table_count=len(tables),
        minutes_from_requested=abs(minute - requested_start),
        is_release_event=release,
        is_exact_match=exact,
        table_ids=tuple(tables),
    )


def _rank(slot: AlternativeSlot) -> tuple[int, int, int]:
    if slot.is_exact_match:
        tier = 0
    elif slot.is_release_event:
        tier = 1
    elif slot.minutes_from_requested <= settings.ALT_NEAR_WINDOW:
        tier = 2
    else:
        tier = 3
    return tier, slot.minutes_from_requested, slot.start_minute


async def _release_events(
    store: ReservationStore,
    service_date: date,
    requested_start: int,
    duration_minutes: int,
    candidates: list[Table],
    *,
    now: datetime | None,
    exclude_id: int | None,
    usable: Callable[[int], bool],
) -> list[AlternativeSlot]:
    reservations = await store.list_active_reservations(
        [table.id for table in candidates], service_date, exclude_id
    )

    freed: dict[int, set[int]] = {}
    for reservation in reservations:
        end = reservation.end_minute
        if end == requested_start or end >= MINUTES_PER_DAY:
            continue
        if abs(end - requested_start) > settings.ALT_RELEASE_WINDOW or not usable(end):
            continue
        freed.setdefault(end, set()).add(reservation.table_id)

    events = []
    for end in sorted(freed):
        free = []
        for table in candidates:
            if table.id not in freed[end]:
                continue
            check = await check_conflicts(
                store, table.id, service_date, end, duration_minutes, exclude_id, now=now
            )
            if check.valid:
                free.append(table.id)
        if free:
            events.append(_slot(end, requested_start, free, release=True))
    return events


async def find_alternatives(
    store: ReservationStore,
    service_date: date,
    requested_start: int,
    party_size: int,
    duration_minutes: int,
    *,
    now: datetime | None = None,
    bounds: tuple[int, int] | None = None,
    exclude_id: int | None = None,
) -> list[AlternativeSlot]:
    """Exact-time recheck, release events and a coarse grid scan, merged and ranked.

    ``bounds`` limits every suggestion to an inclusive start-minute range, usually
    the opening time and last entry of the day.
    """
    candidates = await list_candidate_tables(store, party_size)
    if not candidates:
        return []

    same_day_minute = minute_of_day(now) if now is not None and service_date == now.date() else None

    def usable(minute: int) -> bool:
        if bounds is not None and not bounds[0] <= minute <= bounds[1]:
            return False
        return same_day_minute is None or minute > same_day_minute

    slots: dict[int, AlternativeSlot] = {}

    # Every eligible table is re-probed at the requested time, not only the one that failed.
    exact = await find_available_tables(
        store,
        service_date,
        requested_start,
        party_size,
        duration_minutes,
        now=now,
        exclude_id=exclude_id,
        candidates=candidates,
    )
    if exact:
        slots[requested_start] = _slot(
            requested_start, requested_start, [table.id for table in exact], exact=True
        )

    for event in await _release_events(
        store,
        service_date,
        requested_start,
        duration_minutes,
        candidates,
        now=now,
        exclude_id=exclude_id,
        usable=usable,
    ):
        slots.setdefault(event.start_minute, event)

    earliest = max(requested_start - settings.ALT_SEARCH_RADIUS, to_minutes(settings.ALT_EARLIEST))
    latest = min(requested_start + settings.ALT_SEARCH_RADIUS, to_minutes(settings.ALT_LATEST))
    for minute in range(earliest, latest + 1, settings.ALT_GRID_STEP):
        if minute == requested_start or minute in slots or not usable(minute):
            continue
        if same_day_minute is not None and minute - same_day_minute < settings.ALT_SAME_DAY_LEAD:
            continue
        tables = await find_available_tables(
            store,
            service_date,
            minute,
            party_size,
            duration_minutes,
            now=now,
            exclude_id=exclude_id,
            candidates=candidates,
        )
        if tables:
            slots[minute] = _slot(minute, requested_start, [table.id for table in tables])

    ranked = sorted(slots.values(), key=_rank)[: settings.ALT_MAX_RESULTS]
    logger.info(
        "%s alternative(s) for %s %s, party of %s: %s",
        len(ranked),
        service_date,
        format_minutes(requested_start),
        party_size,
        ", ".join(slot.time for slot in ranked) or "none",
    )
    return ranked
