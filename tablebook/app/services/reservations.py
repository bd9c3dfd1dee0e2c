"""Booking flows: window validation, table allocation and reservation writes.

A request moves through hours resolution, duration resolution and the window
check before any table is searched. Every rejection is raised as a
``BookingError`` subclass; writes happen inside a single store transaction with
the chosen table locked, so the conflict check and the insert/update cannot be
interleaved with a competing writer.
"""
import logging
import secrets
import string
from dataclasses import replace
from datetime import date, datetime

from tablebook.app.domain.errors import (
    BoundaryError,
    ClosedError,
    ConcurrencyLostRaceError,
    ConflictError,
    InsufficientWindowError,
    ReservationNotFoundError,
    TransientStorageError,
    ValidationError,
)
from tablebook.app.domain.models import (
    AllocationResult,
    BookingRequest,
    BookingWindow,
    NewReservation,
    NewWaitlistEntry,
    Reservation,
    ReservationChanges,
    Table,
    ValidationResult,
    WaitlistEntry,
)
from tablebook.app.domain.store import ReservationStore
from tablebook.app.services.allocation import list_candidate_tables, search_tables
from tablebook.app.services.alternatives import find_alternatives
from tablebook.app.services.conflicts import check_conflicts, minute_of_day
from tablebook.app.services.duration import resolve_duration
from tablebook.app.services.hours import find_next_open_date, resolve_hours
from tablebook.app.services.intervals import (
    MINUTES_PER_DAY,
    format_minutes,
    normalize_close,
    to_minutes,
)
from tablebook.app.services.last_entry import calculate_last_entry

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 8


def generate_code() -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def _require_party_size(party_size: int | None) -> int:
    if party_size is None or party_size < 1:
        raise ValidationError("Party size must be a positive number of guests")
    return party_size


async def validate_window(
    store: ReservationStore,
    service_date: date,
    start_minute: int,
    duration_minutes: int | None = None,
    *,
    now: datetime,
) -> BookingWindow:
    """Check a requested start against the day's opening window.

    Raises ClosedError, InsufficientWindowError or BoundaryError with the
    nearest usable suggestion, or ValidationError for requests in the past.

    The returned ``start_minute`` is on the service date's axis: a start in the
    after-midnight tail of a window that crosses midnight comes back as
    ``start + 1440`` and is stored that way.
    """
    if service_date < now.date():
        raise ValidationError(f"{service_date.isoformat()} is in the past")

    hours = await resolve_hours(store, service_date)
    if hours.closed:
        reason = f" ({hours.reason})" if hours.reason else ""
        upcoming = await find_next_open_date(store, service_date)
        if upcoming is None:
            raise ClosedError(f"Closed on {service_date.isoformat()}{reason}")
        next_date, next_hours = upcoming
        raise ClosedError(
            f"Closed on {service_date.isoformat()}{reason}",
            next_open_date=next_date,
            suggestion=f"{next_date.isoformat()} {format_minutes(next_hours.open_minute)}",
        )

    duration = await resolve_duration(store, duration_minutes)

    entry = calculate_last_entry(hours.open_minute, hours.close_minute, duration)
    if not entry.valid:
        raise InsufficientWindowError(
            f"A {duration} minute reservation does not fit the {entry.available_minutes} minute opening window",
            available_minutes=entry.available_minutes,
            duration_minutes=duration,
        )

    # After-midnight starts belong to the tail of a window that crosses midnight.
    effective = start_minute
    close = normalize_close(hours.open_minute, hours.close_minute)
    if entry.crosses_midnight and start_minute < hours.open_minute and start_minute + MINUTES_PER_DAY <= close:
        effective = start_minute + MINUTES_PER_DAY

    if effective < hours.open_minute:
        opening = format_minutes(hours.open_minute)
        raise BoundaryError(f"Opens at {opening}", suggestion=opening, last_entry=entry.last_entry)
    if effective > entry.last_entry_minute:
        raise BoundaryError(
            f"Last entry for a {duration} minute reservation is {entry.last_entry}",
            suggestion=entry.last_entry,
            last_entry=entry.last_entry,
        )

    if service_date == now.date() and effective < minute_of_day(now):
        raise ValidationError(f"{format_minutes(start_minute)} has already passed")

    return BookingWindow(
        hours=hours,
        duration_minutes=duration,
        last_entry=entry,
        start_minute=effective,
    )


async def validate_booking(
    store: ReservationStore,
    service_date: date,
    time: str,
    duration_minutes: int | None = None,
    *,
    now: datetime,
) -> ValidationResult:
    """Window validation reported as a result instead of an exception."""
    start_minute = to_minutes(time)
    try:
        window = await validate_window(store, service_date, start_minute, duration_minutes, now=now)
    except (ClosedError, InsufficientWindowError, BoundaryError) as exc:
        return ValidationResult(
            valid=False,
            last_entry=getattr(exc, "last_entry", None),
            reason=exc.reason,
            message=exc.message,
            suggestion=exc.suggestion,
            duration_minutes=getattr(exc, "duration_minutes", None),
        )
    return ValidationResult(
        valid=True,
        last_entry=window.last_entry.last_entry,
        duration_minutes=window.duration_minutes,
    )


def _search_bounds(window: BookingWindow) -> tuple[int, int]:
    return window.hours.open_minute, min(window.last_entry.last_entry_minute, MINUTES_PER_DAY - 1)


async def check_availability(
    store: ReservationStore,
    service_date: date,
    start_minute: int,
    party_size: int,
    duration_minutes: int | None = None,
    *,
    now: datetime,
    table_id: int | None = None,
    preferred_table_id: int | None = None,
    exclude_id: int | None = None,
) -> AllocationResult:
    """Run the booking state machine up to a table allocation.

    ``table_id`` pins the request to one table; ``preferred_table_id`` is tried
    first but any table in the party's capacity band may be allocated. When no
    table is free a ConflictError carries the conflicts and ranked alternatives.
    """
    _require_party_size(party_size)
    window = await validate_window(store, service_date, start_minute, duration_minutes, now=now)
    duration = window.duration_minutes
    start_minute = window.start_minute

    if table_id is not None:
        table = await store.get_table(table_id)
        if table is None or not table.active:
            raise ValidationError(f"Table {table_id} does not exist")
        if table.capacity < party_size:
            raise ValidationError(f"Table {table.number} seats {table.capacity}, party of {party_size} requested")
        candidates = [table]
    else:
        candidates = await list_candidate_tables(store, party_size)
        if preferred_table_id is not None:
            candidates.sort(key=lambda candidate: candidate.id != preferred_table_id)

    search = await search_tables(
        store,
        service_date,
        start_minute,
        party_size,
        duration,
        now=now,
        exclude_id=exclude_id,
        candidates=candidates,
    )
    if search.available:
        table = search.available[0]
        logger.info(
            "Allocated table %s for %s at %s (%s min, party of %s)",
            table.number,
            service_date,
            format_minutes(start_minute),
            duration,
            party_size,
        )
        return AllocationResult(allocated=table, window=window, candidates=search.available)

    conflicts = [conflict for check in search.checks for conflict in check.conflicts]
    alternatives = await find_alternatives(
        store,
        service_date,
        start_minute,
        party_size,
        duration,
        now=now,
        bounds=_search_bounds(window),
        exclude_id=exclude_id,
    )
    if not candidates:
        message = f"No table seats a party of {party_size}"
    else:
        message = f"No table for {party_size} on {service_date.isoformat()} at {format_minutes(start_minute)}"
    raise ConflictError(message, conflicts=conflicts, alternatives=alternatives)


async def _lock_and_recheck(
    store: ReservationStore,
    table: Table,
    service_date: date,
    start_minute: int,
    duration_minutes: int,
    *,
    now: datetime,
    exclude_id: int | None = None,
) -> None:
    await store.lock_table(table.id, service_date)
    check = await check_conflicts(
        store, table.id, service_date, start_minute, duration_minutes, exclude_id, now=now
    )
    if check.error is not None:
        raise TransientStorageError(check.error)
    if not check.valid:
        raise ConcurrencyLostRaceError(f"Table {table.number} was booked by a concurrent request")


async def commit_reservation(
    store: ReservationStore,
    request: BookingRequest,
    *,
    now: datetime,
) -> tuple[Reservation, Table]:
    """Validate, allocate and insert a reservation in one transaction."""
    start_minute = to_minutes(request.time)
    _require_party_size(request.party_size)

    async with store.transaction():
        allocation = await check_availability(
            store,
            request.service_date,
            start_minute,
            request.party_size,
            request.duration_minutes,
            now=now,
            table_id=request.table_id,
        )
        table = allocation.allocated
        duration = allocation.window.duration_minutes
        start_minute = allocation.window.start_minute
        await _lock_and_recheck(store, table, request.service_date, start_minute, duration, now=now)

        reservation = await store.insert_reservation(
            NewReservation(
                table_id=table.id,
                service_date=request.service_date,
                start_minute=start_minute,
                duration_minutes=duration,
                party_size=request.party_size,
                customer_name=request.customer_name,
                source=request.source,
                contact_phone=request.contact_phone,
                contact_email=request.contact_email,
                notes=request.notes,
                code=generate_code(),
            )
        )
        await store.record_event(
            "reservation_created",
            reservation.id,
            {
                "table_id": table.id,
                "service_date": request.service_date.isoformat(),
                "time": format_minutes(start_minute),
                "duration_minutes": duration,
                "party_size": request.party_size,
                "source": request.source,
            },
        )

    logger.info("Reservation %s confirmed on table %s", reservation.code, table.number)
    return reservation, table


async def _load_active(store: ReservationStore, reference: int | str) -> Reservation:
    """Fetch an active reservation by internal id or by its reservation code."""
    if isinstance(reference, str):
        current = await store.get_reservation_by_code(reference.strip().upper())
    else:
        current = await store.get_reservation(reference)
    if current is None or not current.is_active:
        raise ReservationNotFoundError(f"Reservation {reference} not found or no longer active")
    return current


async def find_reservations(
    store: ReservationStore,
    *,
    code: str | None = None,
    phone: str | None = None,
    today: date,
) -> list[Reservation]:
    """Active reservations by code, or a guest's upcoming ones by phone.

    A code takes precedence when both are given.
    """
    if code:
        reservation = await store.get_reservation_by_code(code.strip().upper())
        found = [reservation] if reservation is not None and reservation.is_active else []
    elif phone:
        found = await store.list_upcoming_reservations_by_phone(phone.strip(), today)
    else:
        raise ValidationError("A reservation code or a phone number is required")

    if not found:
        raise ReservationNotFoundError("No active reservations found")
    return found


async def modify_reservation(
    store: ReservationStore,
    reference: int | str,
    changes: ReservationChanges,
    *,
    now: datetime,
) -> Reservation:
    """Apply changes to an active reservation, re-validating any reschedule.

    ``reference`` is the internal id or the guest-facing reservation code. The
    reservation's own interval is excluded from every check, and the whole
    read-check-update sequence runs in one transaction.
    """
    async with store.transaction():
        current = await _load_active(store, reference)

        updates = {}
        if changes.reschedules:
            service_date = changes.service_date if changes.service_date is not None else current.service_date
            if changes.time is not None:
                start_minute = to_minutes(changes.time)
            else:
                start_minute = current.start_minute % MINUTES_PER_DAY
            party_size = _require_party_size(
                changes.party_size if changes.party_size is not None else current.party_size
            )
            if changes.duration_minutes is not None and changes.duration_minutes <= 0:
                raise ValidationError("Duration must be a positive number of minutes")
            duration = changes.duration_minutes or current.duration_minutes

            allocation = await check_availability(
                store,
                service_date,
                start_minute,
                party_size,
                duration,
                now=now,
                table_id=changes.table_id,
                preferred_table_id=current.table_id,
                exclude_id=current.id,
            )
            table = allocation.allocated
            duration = allocation.window.duration_minutes
            start_minute = allocation.window.start_minute
            await _lock_and_recheck(
                store, table, service_date, start_minute, duration, now=now, exclude_id=current.id
            )
            updates.update(
                table_id=table.id,
                service_date=service_date,
                start_minute=start_minute,
                duration_minutes=duration,
                party_size=party_size,
            )
        if changes.notes is not None:
            updates["notes"] = changes.notes

        if not updates:
            raise ValidationError("No changes supplied")

        updated = await store.update_reservation(current.id, updates)
        await store.record_event(
            "reservation_modified",
            current.id,
            {
                "before": _snapshot(current),
                "after": _snapshot(updated),
            },
        )

    logger.info("Reservation %s modified: %s", updated.code or updated.id, ", ".join(sorted(updates)))
    return updated


async def cancel_reservation(
    store: ReservationStore,
    reference: int | str,
    reason: str | None = None,
) -> Reservation:
    async with store.transaction():
        current = await _load_active(store, reference)

        cancelled = await store.update_reservation(
            current.id, {"status": "cancelled", "cancel_reason": reason}
        )
        await store.record_event(
            "reservation_cancelled",
            current.id,
            {"previous_status": current.status, "reason": reason},
        )

    logger.info("Reservation %s cancelled", cancelled.code or cancelled.id)
    return cancelled


async def join_waitlist(
    store: ReservationStore,
    entry: NewWaitlistEntry,
    *,
    now: datetime,
) -> tuple[WaitlistEntry, int]:
    """Queue a party for a date with no suitable table; returns the entry and its position.

    Flexible parties get priority 1, parties tied to their preferred time 2.
    """
    _require_party_size(entry.party_size)
    if entry.service_date < now.date():
        raise ValidationError(f"{entry.service_date.isoformat()} is in the past")
    if entry.preferred_time is not None:
        entry = replace(entry, preferred_time=format_minutes(to_minutes(entry.preferred_time)))
    if entry.priority is None:
        entry = replace(entry, priority=1 if entry.flexible else 2)

    async with store.transaction():
        created = await store.insert_waitlist_entry(entry)
        position = await store.waitlist_position(created)
        await store.record_event(
            "waitlist_joined",
            None,
            {
                "waitlist_id": created.id,
                "service_date": created.service_date.isoformat(),
                "party_size": created.party_size,
                "position": position,
            },
        )

    logger.info(
        "Waitlist entry %s for %s, party of %s, position %s",
        created.id,
        created.service_date,
        created.party_size,
        position,
    )
    return created, position


def _snapshot(reservation: Reservation) -> dict:
    return {
        "table_id": reservation.table_id,
        "service_date": reservation.service_date.isoformat(),
        "time": format_minutes(reservation.start_minute),
        "duration_minutes": reservation.duration_minutes,
        "party_size": reservation.party_size,
        "status": reservation.status,
    }
