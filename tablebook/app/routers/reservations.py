from __future__ import annotations

import datetime as dt
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from tablebook.app.core import redis_client as redis_module
from tablebook.app.core.clock import venue_now
from tablebook.app.core.config import settings
from tablebook.app.db.store import get_store
from tablebook.app.domain.errors import BookingError, ConcurrencyLostRaceError
from tablebook.app.domain.models import BookingRequest, NewWaitlistEntry, Reservation, ReservationChanges
from tablebook.app.domain.store import ReservationStore
from tablebook.app.routers.errors import to_http_exception
from tablebook.app.routers.schemas import (
    CancelReservationIn,
    CommitReservationIn,
    ModifyReservationIn,
    ReservationOut,
    WaitlistIn,
    WaitlistOut,
)
from tablebook.app.services.intervals import format_minutes
from tablebook.app.services.reservations import (
    cancel_reservation,
    commit_reservation as commit_reservation_service,
    find_reservations,
    join_waitlist,
    modify_reservation,
)

# A lost race is retried once with a fresh allocation.
COMMIT_ATTEMPTS = 2

logger = logging.getLogger(__name__)

router = APIRouter()


def _hold_key(payload: CommitReservationIn) -> str:
    contact = payload.contact_phone or payload.contact_email or payload.name
    return f"hold:{payload.date.isoformat()}:{payload.time}:{payload.party_size}:{contact}"


def _reservation_out(reservation: Reservation) -> ReservationOut:
    return ReservationOut(
        id=reservation.id,
        code=reservation.code,
        table_id=reservation.table_id,
        date=reservation.service_date,
        time=format_minutes(reservation.start_minute),
        duration_minutes=reservation.duration_minutes,
        party_size=reservation.party_size,
        status=reservation.status,
        name=reservation.customer_name,
        notes=reservation.notes,
    )


@router.post("/reservations/commit", response_model=ReservationOut, status_code=status.HTTP_201_CREATED)
async def commit_endpoint(
    payload: CommitReservationIn,
    store: ReservationStore = Depends(get_store),
    now: dt.datetime = Depends(venue_now),
) -> ReservationOut:
    if redis_module.redis_client is None:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail="Redis unavailable")

    hold_key = _hold_key(payload)
    hold_acquired = await redis_module.redis_client.set(
        hold_key,
        "1",
        nx=True,
        px=settings.HOLD_TTL_SECONDS * 1000,
    )
    if not hold_acquired:
        raise HTTPException(status.HTTP_409_CONFLICT, detail="Request already in progress")

    request = BookingRequest(
        service_date=payload.date,
        time=payload.time,
        party_size=payload.party_size,
        customer_name=payload.name,
        duration_minutes=payload.duration_minutes,
        table_id=payload.table_id,
        source=payload.source,
        contact_phone=payload.contact_phone,
        contact_email=payload.contact_email,
        notes=payload.notes,
    )

    try:
        for attempt in range(1, COMMIT_ATTEMPTS + 1):
            try:
                reservation, _ = await commit_reservation_service(store, request, now=now)
                break
            except ConcurrencyLostRaceError as exc:
                if attempt == COMMIT_ATTEMPTS:
                    raise
                logger.warning("Lost race booking %s %s, retrying: %s", payload.date, payload.time, exc)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    finally:
        await redis_module.redis_client.delete(hold_key)

    return _reservation_out(reservation)


@router.get("/reservations", response_model=list[ReservationOut])
async def lookup_endpoint(
    code: str | None = Query(default=None, min_length=4, max_length=10),
    phone: str | None = Query(default=None, min_length=3, max_length=32),
    store: ReservationStore = Depends(get_store),
    now: dt.datetime = Depends(venue_now),
) -> list[ReservationOut]:
    """Active reservation by code, or a guest's upcoming reservations by phone."""
    try:
        found = await find_reservations(store, code=code, phone=phone, today=now.date())
    except BookingError as exc:
        raise to_http_exception(exc) from exc

    return [_reservation_out(reservation) for reservation in found]


async def _modify(
    store: ReservationStore,
    reference: int | str,
    payload: ModifyReservationIn,
    now: dt.datetime,
) -> ReservationOut:
    changes = ReservationChanges(
        service_date=payload.date,
        time=payload.time,
        party_size=payload.party_size,
        duration_minutes=payload.duration_minutes,
        table_id=payload.table_id,
        notes=payload.notes,
    )
    try:
        reservation = await modify_reservation(store, reference, changes, now=now)
    except BookingError as exc:
        raise to_http_exception(exc) from exc

    return _reservation_out(reservation)


async def _cancel(store: ReservationStore, reference: int | str, payload: CancelReservationIn) -> ReservationOut:
    try:
        reservation = await cancel_reservation(store, reference, payload.reason)
    except BookingError as exc:
        raise to_http_exception(exc) from exc

    return _reservation_out(reservation)


@router.patch("/reservations/{reservation_id}", response_model=ReservationOut)
async def modify_endpoint(
    reservation_id: int,
    payload: ModifyReservationIn,
    store: ReservationStore = Depends(get_store),
    now: dt.datetime = Depends(venue_now),
) -> ReservationOut:
    return await _modify(store, reservation_id, payload, now)


@router.patch("/reservations/code/{code}", response_model=ReservationOut)
async def modify_by_code_endpoint(
    code: str,
    payload: ModifyReservationIn,
    store: ReservationStore = Depends(get_store),
    now: dt.datetime = Depends(venue_now),
) -> ReservationOut:
    return await _modify(store, code, payload, now)


@router.post("/reservations/{reservation_id}/cancel", response_model=ReservationOut)
async def cancel_endpoint(
    reservation_id: int,
    payload: CancelReservationIn,
    store: ReservationStore = Depends(get_store),
) -> ReservationOut:
    return await _cancel(store, reservation_id, payload)


@router.post("/reservations/code/{code}/cancel", response_model=ReservationOut)
async def cancel_by_code_endpoint(
    code: str,
    payload: CancelReservationIn,
    store: ReservationStore = Depends(get_store),
) -> ReservationOut:
    return await _cancel(store, code, payload)


@router.post("/waitlist", response_model=WaitlistOut, status_code=status.HTTP_201_CREATED)
async def waitlist_endpoint(
    payload: WaitlistIn,
    store: ReservationStore = Depends(get_store),
    now: dt.datetime = Depends(venue_now),
) -> WaitlistOut:
    entry = NewWaitlistEntry(
        service_date=payload.date,
        party_size=payload.party_size,
        customer_name=payload.name,
        contact_phone=payload.contact_phone,
        contact_email=payload.contact_email,
        preferred_time=payload.preferred_time,
        flexible=payload.flexible,
        notes=payload.notes,
    )
    try:
        created, position = await join_waitlist(store, entry, now=now)
    except BookingError as exc:
        raise to_http_exception(exc) from exc

    return WaitlistOut(
        id=created.id,
        date=created.service_date,
        party_size=created.party_size,
        preferred_time=created.preferred_time,
        flexible=created.flexible,
        priority=created.priority,
        status=created.status,
        position=position,
    )
