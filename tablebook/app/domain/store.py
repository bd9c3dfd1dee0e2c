from __future__ import annotations

from collections.abc import Sequence
from contextlib import AbstractAsyncContextManager
from datetime import date
from typing import Any, Protocol

from tablebook.app.domain.models import (
    BusinessHours,
    HoursException,
    NewReservation,
    NewWaitlistEntry,
    Reservation,
    Table,
    WaitlistEntry,
)


class ReservationStore(Protocol):
    """Storage collaborator consumed by the scheduling engine.

    Implementations raise TransientStorageError when the backend is unreachable
    or a call times out, and ConcurrencyLostRaceError when a write is rejected
    because a competing writer booked an overlapping interval first.
    """

    def transaction(self) -> AbstractAsyncContextManager[Any]: ...

    async def list_tables_by_capacity(self, min_capacity: int, max_capacity: int) -> list[Table]:
        """Active tables in the band, ordered by capacity then table number."""
        ...

    async def get_table(self, table_id: int) -> Table | None: ...

    async def list_active_reservations(
        self,
        table_ids: Sequence[int],
        service_date: date,
        exclude_id: int | None = None,
    ) -> list[Reservation]:
        """Pending/confirmed reservations on the given tables, ordered by start."""
        ...

    async def get_hours_exception(self, service_date: date) -> HoursException | None: ...

    async def get_weekly_hours(self, weekday: int) -> BusinessHours | None: ...

    async def get_default_duration(self) -> int | None: ...

    async def get_reservation(self, reservation_id: int) -> Reservation | None: ...

    async def get_reservation_by_code(self, code: str) -> Reservation | None: ...

    async def list_upcoming_reservations_by_phone(self, phone: str, from_date: date) -> list[Reservation]:
        """Active reservations for a contact phone on or after ``from_date``, soonest first."""
        ...

    async def insert_reservation(self, new: NewReservation) -> Reservation: ...

    async def update_reservation(self, reservation_id: int, changes: dict[str, Any]) -> Reservation: ...

    async def lock_table(self, table_id: int, service_date: date) -> None:
        """Serialise writers for (table, date) until the surrounding transaction ends."""
        ...

    async def record_event(self, kind: str, reservation_id: int | None, payload: dict[str, Any]) -> None: ...

    async def insert_waitlist_entry(self, entry: NewWaitlistEntry) -> WaitlistEntry: ...

    async def waitlist_position(self, entry: WaitlistEntry) -> int:
        """1-based place among entries still waiting for the same date."""
        ...
