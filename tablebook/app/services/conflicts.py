import logging
from datetime import date, datetime

from tablebook.app.domain.errors import TransientStorageError
from tablebook.app.domain.models import Conflict, ConflictCheck, Reservation
from tablebook.app.domain.store import ReservationStore
from tablebook.app.services.intervals import format_minutes, overlaps

logger = logging.getLogger(__name__)


def _describe(reservation: Reservation, *, in_progress: bool = False) -> Conflict:
    return Conflict(
        reservation_id=reservation.id,
        start=format_minutes(reservation.start_minute),
        end=format_minutes(reservation.end_minute),
        code=reservation.code,
        source=reservation.source,
        in_progress=in_progress,
    )


def minute_of_day(moment: datetime) -> int:
    return moment.hour * 60 + moment.minute


async def check_conflicts(
    store: ReservationStore,
    table_id: int,
    service_date: date,
    start_minute: int,
    duration_minutes: int,
    exclude_id: int | None = None,
    *,
    now: datetime | None = None,
) -> ConflictCheck:
    """Test a candidate interval against every active reservation on one table.

    Reads go straight to storage. A failed read is reported as an invalid check
    carrying the error, never as a free table.
    """
    try:
        existing = await store.list_active_reservations([table_id], service_date, exclude_id)
    except TransientStorageError as exc:
        logger.warning("Conflict check for table %s on %s failed closed: %s", table_id, service_date, exc)
        return ConflictCheck(table_id=table_id, valid=False, error=str(exc))

    conflicts = [
        _describe(reservation)
        for reservation in existing
        if overlaps(start_minute, duration_minutes, reservation.start_minute, reservation.duration_minutes)
    ]

    # A seated party blocks the table until its computed end, whatever "now" has drifted to.
    if now is not None and service_date == now.date():
        current = minute_of_day(now)
        seen = {conflict.reservation_id for conflict in conflicts}
        for reservation in existing:
            if reservation.id in seen or reservation.status != "confirmed":
                continue
            if reservation.start_minute <= current <= reservation.end_minute and start_minute < reservation.end_minute:
                conflicts.append(_describe(reservation, in_progress=True))

    for conflict in conflicts:
        logger.info(
            "Table %s on %s: %s-%s conflicts with reservation %s (%s-%s)",
            table_id,
            service_date,
            format_minutes(start_minute),
            format_minutes(start_minute + duration_minutes),
            conflict.code or conflict.reservation_id,
            conflict.start,
            conflict.end,
        )

    return ConflictCheck(table_id=table_id, valid=not conflicts, conflicts=tuple(conflicts))
