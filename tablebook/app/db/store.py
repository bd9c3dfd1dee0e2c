import asyncio
import json
import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from datetime import date, time
from typing import Any

from asyncpg import exceptions as asyncpg_exc
from fastapi import Depends
from sqlalchemy import bindparam, text
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from tablebook.app.db.session import get_session
from tablebook.app.domain.errors import ConcurrencyLostRaceError, TransientStorageError
from tablebook.app.domain.models import (
    BusinessHours,
    HoursException,
    NewReservation,
    NewWaitlistEntry,
    Reservation,
    Table,
    WaitlistEntry,
)

logger = logging.getLogger(__name__)

# SQLSTATE codes that mean another writer got there first.
LOST_RACE_STATES = {
    "23P01",  # exclusion_violation
    "40001",  # serialization_failure
    "40P01",  # deadlock_detected
}

RESERVATION_COLUMNS = """
    id, code, table_id, service_date, start_minute, duration_minutes, party_size,
    status, source, customer_name, contact_phone, contact_email, notes
"""

UPDATABLE_COLUMNS = {
    "table_id",
    "service_date",
    "start_minute",
    "duration_minutes",
    "party_size",
    "status",
    "notes",
    "cancel_reason",
}


def _to_minute(value: time | None) -> int | None:
    if value is None:
        return None
    return value.hour * 60 + value.minute


def _reservation(row: Any) -> Reservation:
    return Reservation(
        id=row.id,
        code=row.code,
        table_id=row.table_id,
        service_date=row.service_date,
        start_minute=row.start_minute,
        duration_minutes=row.duration_minutes,
        party_size=row.party_size,
        status=row.status,
        source=row.source,
        customer_name=row.customer_name,
        contact_phone=row.contact_phone,
        contact_email=row.contact_email,
        notes=row.notes,
    )


def _table(row: Any) -> Table:
    return Table(id=row.id, number=str(row.number), capacity=row.capacity, zone=row.zone, active=row.active)


def _waitlist_entry(row: Any) -> WaitlistEntry:
    return WaitlistEntry(
        id=row.id,
        service_date=row.service_date,
        party_size=row.party_size,
        customer_name=row.customer_name,
        contact_phone=row.contact_phone,
        contact_email=row.contact_email,
        preferred_time=row.preferred_time.strftime("%H:%M") if row.preferred_time is not None else None,
        flexible=row.flexible,
        notes=row.notes,
        priority=row.priority,
        status=row.status,
    )


def _lost_race(exc: DBAPIError) -> bool:
    orig = getattr(exc, "orig", exc)
    if getattr(orig, "sqlstate", None) in LOST_RACE_STATES:
        return True
    cause = getattr(orig, "__cause__", None)
    return isinstance(
        cause,
        (
            asyncpg_exc.ExclusionViolationError,
            asyncpg_exc.SerializationError,
            asyncpg_exc.DeadlockDetectedError,
        ),
    )


class SqlReservationStore:
    """ReservationStore backed by Postgres through an AsyncSession.

    Every read hits the database directly; hours and the default duration are
    never cached.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _execute(self, statement, params: dict[str, Any] | None = None):
        try:
            return await self.session.execute(statement, params or {})
        except DBAPIError as exc:
            if _lost_race(exc):
                raise ConcurrencyLostRaceError("A competing reservation was committed first") from exc
            if exc.connection_invalidated or isinstance(exc, (OperationalError, InterfaceError)):
                logger.error("Database unavailable: %s", exc.orig)
                raise TransientStorageError("Database unavailable") from exc
            raise
        except (asyncio.TimeoutError, OSError) as exc:
            logger.error("Database call failed: %r", exc)
            raise TransientStorageError("Database call timed out") from exc

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["SqlReservationStore"]:
        async with self.session.begin():
            yield self

    async def list_tables_by_capacity(self, min_capacity: int, max_capacity: int) -> list[Table]:
        result = await self._execute(
            text(
                """
                SELECT id, number, capacity, zone, active
                FROM venue_table
                WHERE capacity BETWEEN :min_capacity AND :max_capacity
                  AND active = true
                ORDER BY capacity, number
                """
            ),
            {"min_capacity": min_capacity, "max_capacity": max_capacity},
        )
        return [_table(row) for row in result]

    async def get_table(self, table_id: int) -> Table | None:
        result = await self._execute(
            text("SELECT id, number, capacity, zone, active FROM venue_table WHERE id = :id"),
            {"id": table_id},
        )
        row = result.one_or_none()
        return _table(row) if row is not None else None

    async def list_active_reservations(
        self,
        table_ids: Sequence[int],
        service_date: date,
        exclude_id: int | None = None,
    ) -> list[Reservation]:
        if not table_ids:
            return []

        query = text(
            f"""
            SELECT {RESERVATION_COLUMNS}
            FROM reservation
            WHERE table_id IN :table_ids
              AND service_date = :service_date
              AND status IN ('pending', 'confirmed')
              AND (CAST(:exclude_id AS bigint) IS NULL OR id <> :exclude_id)
            ORDER BY start_minute, id
            """
        ).bindparams(bindparam("table_ids", expanding=True))

        result = await self._execute(
            query,
            {"table_ids": list(table_ids), "service_date": service_date, "exclude_id": exclude_id},
        )
        return [_reservation(row) for row in result]

    async def get_hours_exception(self, service_date: date) -> HoursException | None:
        result = await self._execute(
            text(
                """
                SELECT service_date, closed, open_time, close_time, reason
                FROM hours_exception
                WHERE service_date = :service_date
                """
            ),
            {"service_date": service_date},
        )
        row = result.one_or_none()
        if row is None:
            return None
        return HoursException(
            service_date=row.service_date,
            closed=row.closed,
            open_minute=_to_minute(row.open_time),
            close_minute=_to_minute(row.close_time),
            reason=row.reason,
        )

    async def get_weekly_hours(self, weekday: int) -> BusinessHours | None:
        result = await self._execute(
            text("SELECT weekday, closed, open_time, close_time FROM business_hours WHERE weekday = :weekday"),
            {"weekday": weekday},
        )
        row = result.one_or_none()
        if row is None:
            return None
        return BusinessHours(
            weekday=row.weekday,
            closed=row.closed,
            open_minute=_to_minute(row.open_time),
            close_minute=_to_minute(row.close_time),
        )

    async def get_default_duration(self) -> int | None:
        result = await self._execute(
            text("SELECT default_duration_minutes FROM duration_policy ORDER BY id LIMIT 1")
        )
        return result.scalar_one_or_none()

    async def get_reservation(self, reservation_id: int) -> Reservation | None:
        result = await self._execute(
            text(f"SELECT {RESERVATION_COLUMNS} FROM reservation WHERE id = :id"),
            {"id": reservation_id},
        )
        row = result.one_or_none()
        return _reservation(row) if row is not None else None

    async def get_reservation_by_code(self, code: str) -> Reservation | None:
        result = await self._execute(
            text(f"SELECT {RESERVATION_COLUMNS} FROM reservation WHERE code = :code"),
            {"code": code},
        )
        row = result.one_or_none()
        return _reservation(row) if row is not None else None

    async def list_upcoming_reservations_by_phone(self, phone: str, from_date: date) -> list[Reservation]:
        result = await self._execute(
            text(
                f"""
                SELECT {RESERVATION_COLUMNS}
                FROM reservation
                WHERE contact_phone = :phone
                  AND service_date >= :from_date
                  AND status IN ('pending', 'confirmed')
                ORDER BY service_date, start_minute, id
                """
            ),
            {"phone": phone, "from_date": from_date},
        )
        return [_reservation(row) for row in result]

    async def insert_reservation(self, new: NewReservation) -> Reservation:
        result = await self._execute(
            text(
                f"""
                INSERT INTO reservation (
                  code, table_id, service_date, start_minute, duration_minutes, party_size,
                  status, source, customer_name, contact_phone, contact_email, notes
                ) VALUES (
                  :code, :table_id, :service_date, :start_minute, :duration_minutes, :party_size,
                  :status, :source, :customer_name, :contact_phone, :contact_email, :notes
                )
                RETURNING {RESERVATION_COLUMNS}
                """
            ),
            {
                "code": new.code,
                "table_id": new.table_id,
                "service_date": new.service_date,
                "start_minute": new.start_minute,
                "duration_minutes": new.duration_minutes,
                "party_size": new.party_size,
                "status": new.status,
                "source": new.source,
                "customer_name": new.customer_name,
                "contact_phone": new.contact_phone,
                "contact_email": new.contact_email,
                "notes": new.notes,
            },
        )
        return _reservation(result.one())

    async def update_reservation(self, reservation_id: int, changes: dict[str, Any]) -> Reservation:
        unknown = set(changes) - UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update reservation columns: {', '.join(sorted(unknown))}")

        assignments = ", ".join(f"{column} = :{column}" for column in changes)
        result = await self._execute(
            text(
                f"""
                UPDATE reservation
                SET {assignments}, updated_at = NOW()
                WHERE id = :id
                RETURNING {RESERVATION_COLUMNS}
                """
            ),
            {**changes, "id": reservation_id},
        )
        return _reservation(result.one())

    async def lock_table(self, table_id: int, service_date: date) -> None:
        await self._execute(
            text("SELECT pg_advisory_xact_lock(:table_id, :day_key)"),
            {"table_id": table_id, "day_key": service_date.toordinal()},
        )

    async def record_event(self, kind: str, reservation_id: int | None, payload: dict[str, Any]) -> None:
        await self._execute(
            text(
                """
                INSERT INTO event_log (kind, reservation_id, payload)
                VALUES (:kind, :reservation_id, CAST(:payload AS jsonb))
                """
            ),
            {"kind": kind, "reservation_id": reservation_id, "payload": json.dumps(payload)},
        )

    async def insert_waitlist_entry(self, entry: NewWaitlistEntry) -> WaitlistEntry:
        result = await self._execute(
            text(
                """
                INSERT INTO waitlist_entry (
                  service_date, party_size, customer_name, contact_phone, contact_email,
                  preferred_time, flexible, notes, priority
                ) VALUES (
                  :service_date, :party_size, :customer_name, :contact_phone, :contact_email,
                  :preferred_time, :flexible, :notes, :priority
                )
                RETURNING id, service_date, party_size, customer_name, contact_phone, contact_email,
                          preferred_time, flexible, notes, priority, status
                """
            ),
            {
                "service_date": entry.service_date,
                "party_size": entry.party_size,
                "customer_name": entry.customer_name,
                "contact_phone": entry.contact_phone,
                "contact_email": entry.contact_email,
                "preferred_time": time.fromisoformat(entry.preferred_time) if entry.preferred_time else None,
                "flexible": entry.flexible,
                "notes": entry.notes,
                "priority": entry.priority,
            },
        )
        return _waitlist_entry(result.one())

    async def waitlist_position(self, entry: WaitlistEntry) -> int:
        result = await self._execute(
            text(
                """
                SELECT COUNT(*) + 1
                FROM waitlist_entry
                WHERE service_date = :service_date
                  AND status = 'waiting'
                  AND id < :id
                """
            ),
            {"service_date": entry.service_date, "id": entry.id},
        )
        return result.scalar_one()


async def get_store(session: AsyncSession = Depends(get_session)) -> SqlReservationStore:
    return SqlReservationStore(session)
