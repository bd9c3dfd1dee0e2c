import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime

from tablebook.app.core.config import settings
from tablebook.app.domain.errors import TransientStorageError
from tablebook.app.domain.models import ConflictCheck, Table
from tablebook.app.domain.store import ReservationStore
from tablebook.app.services.conflicts import check_conflicts

logger = logging.getLogger(__name__)


@dataclass
class TableSearch:
    available: list[Table] = field(default_factory=list)
    checks: list[ConflictCheck] = field(default_factory=list)

    @property
    def failed_checks(self) -> list[ConflictCheck]:
        return [check for check in self.checks if check.error is not None]


def _table_order(table: Table) -> tuple:
    number = str(table.number)
    return (table.capacity, 0 if number.isdigit() else 1, int(number) if number.isdigit() else 0, number)


def capacity_band(party_size: int) -> tuple[int, int]:
    return party_size, party_size + settings.CAPACITY_OVERFIT


async def list_candidate_tables(store: ReservationStore, party_size: int) -> list[Table]:
    """Active tables that fit the party without wasting a much larger table.

    Smallest adequate table first, then lowest table number.
    """
    low, high = capacity_band(party_size)
    tables = await store.list_tables_by_capacity(low, high)
    return sorted(
        (table for table in tables if table.active and low <= table.capacity <= high),
        key=_table_order,
    )


async def search_tables(
    store: ReservationStore,
    service_date: date,
    start_minute: int,
    party_size: int,
    duration_minutes: int,
    *,
    now: datetime | None = None,
    exclude_id: int | None = None,
    candidates: Sequence[Table] | None = None,
) -> TableSearch:
    if candidates is None:
        candidates = await list_candidate_tables(store, party_size)

    search = TableSearch()
    for table in candidates:
        check = await check_conflicts(
            store, table.id, service_date, start_minute, duration_minutes, exclude_id, now=now
        )
        search.checks.append(check)
        if check.valid:
            search.available.append(table)

    if not search.available and search.failed_checks:
        raise TransientStorageError(
            f"Availability could not be verified for {len(search.failed_checks)} table(s)"
        )
    return search


async def find_available_tables(
    store: ReservationStore,
    service_date: date,
    start_minute: int,
    party_size: int,
    duration_minutes: int,
    *,
    now: datetime | None = None,
    exclude_id: int | None = None,
    candidates: Sequence[Table] | None = None,
) -> list[Table]:
    """Usable tables in allocation order; the first one is the allocation."""
    search = await search_tables(
        store,
        service_date,
        start_minute,
        party_size,
        duration_minutes,
        now=now,
        exclude_id=exclude_id,
        candidates=candidates,
    )
    return search.available
