from __future__ import annotations

import datetime as dt

from fastapi import APIRouter, Depends

from tablebook.app.core.clock import venue_now
from tablebook.app.db.store import get_store
from tablebook.app.domain.errors import BookingError
from tablebook.app.domain.store import ReservationStore
from tablebook.app.routers.errors import to_http_exception
from tablebook.app.routers.schemas import (
    AllocationResultOut,
    AvailabilityCheckIn,
    HoursOut,
    TableOut,
    ValidateTimeIn,
    ValidationResultOut,
)
from tablebook.app.services.hours import resolve_hours
from tablebook.app.services.intervals import format_minutes, to_minutes
from tablebook.app.services.reservations import check_availability, validate_booking

router = APIRouter()


@router.get("/hours/{service_date}", response_model=HoursOut)
async def get_hours(
    service_date: dt.date,
    store: ReservationStore = Depends(get_store),
) -> HoursOut:
    try:
        hours = await resolve_hours(store, service_date)
    except BookingError as exc:
        raise to_http_exception(exc) from exc

    return HoursOut(
        date=service_date,
        closed=hours.closed,
        open=format_minutes(hours.open_minute) if hours.open_minute is not None else None,
        close=format_minutes(hours.close_minute) if hours.close_minute is not None else None,
        crosses_midnight=hours.crosses_midnight,
        is_exception=hours.is_exception,
        reason=hours.reason,
    )


@router.post("/availability/validate", response_model=ValidationResultOut)
async def validate_time(
    payload: ValidateTimeIn,
    store: ReservationStore = Depends(get_store),
    now: dt.datetime = Depends(venue_now),
) -> ValidationResultOut:
    try:
        result = await validate_booking(
            store, payload.date, payload.time, payload.duration_minutes, now=now
        )
    except BookingError as exc:
        raise to_http_exception(exc) from exc

    return ValidationResultOut(
        valid=result.valid,
        last_entry=result.last_entry,
        reason=result.reason,
        message=result.message,
        suggestion=result.suggestion,
        duration_minutes=result.duration_minutes,
    )


@router.post("/availability/check", response_model=AllocationResultOut)
async def check_availability_endpoint(
    payload: AvailabilityCheckIn,
    store: ReservationStore = Depends(get_store),
    now: dt.datetime = Depends(venue_now),
) -> AllocationResultOut:
    try:
        allocation = await check_availability(
            store,
            payload.date,
            to_minutes(payload.time),
            payload.party_size,
            payload.duration_minutes,
            now=now,
            table_id=payload.table_id,
        )
    except BookingError as exc:
        raise to_http_exception(exc) from exc

    table = allocation.allocated
    return AllocationResultOut(
        allocated=TableOut(id=table.id, number=table.number, capacity=table.capacity, zone=table.zone),
        duration_minutes=allocation.window.duration_minutes,
        last_entry=allocation.window.last_entry.last_entry,
        free_table_count=len(allocation.candidates),
    )
