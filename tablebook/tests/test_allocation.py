import pytest

from conftest import MONDAY, NOW, InMemoryStore, weekly
from tablebook.app.domain.errors import TransientStorageError
from tablebook.app.domain.models import Table
from tablebook.app.services.allocation import find_available_tables, list_candidate_tables, search_tables

pytestmark = pytest.mark.asyncio


@pytest.fixture
def dining_room() -> InMemoryStore:
    return InMemoryStore(
        tables=[
            Table(id=1, number="1", capacity=2),
            Table(id=2, number="2", capacity=4),
            Table(id=3, number="3", capacity=4),
            Table(id=4, number="10", capacity=6, zone="terrace"),
            Table(id=5, number="4", capacity=8),
            Table(id=6, number="5", capacity=4, active=False),
            Table(id=7, number="9", capacity=6),
        ],
        hours=weekly(),
    )


async def test_candidates_stay_within_capacity_band(dining_room):
    tables = await find_available_tables(dining_room, MONDAY, 900, 4, 120, now=NOW)

    assert [t.id for t in tables] == [2, 3, 7, 4]
    assert all(4 <= t.capacity <= 6 for t in tables)


async def test_smallest_adequate_table_first_then_table_number(dining_room):
    tables = await list_candidate_tables(dining_room, 5)

    # "9" sorts before "10" as a table number
    assert [t.number for t in tables] == ["9", "10"]


async def test_oversized_and_undersized_tables_are_never_offered(dining_room):
    assert [t.id for t in await find_available_tables(dining_room, MONDAY, 900, 2, 120, now=NOW)] == [1, 2, 3]
    assert [t.id for t in await find_available_tables(dining_room, MONDAY, 900, 7, 120, now=NOW)] == [5]
    assert await find_available_tables(dining_room, MONDAY, 900, 9, 120, now=NOW) == []


async def test_inactive_tables_are_skipped(dining_room):
    tables = await find_available_tables(dining_room, MONDAY, 900, 3, 120, now=NOW)

    assert 6 not in [t.id for t in tables]


async def test_busy_tables_are_dropped_in_order(dining_room):
    dining_room.add_reservation(2, MONDAY, "14:00", 120)

    tables = await find_available_tables(dining_room, MONDAY, 900, 4, 120, now=NOW)

    assert [t.id for t in tables] == [3, 7, 4]


async def test_search_keeps_every_check(dining_room):
    dining_room.add_reservation(2, MONDAY, "14:00", 120, code="BUSY0002")

    search = await search_tables(dining_room, MONDAY, 900, 4, 120, now=NOW)

    assert len(search.checks) == 4
    assert [c.code for check in search.checks for c in check.conflicts] == ["BUSY0002"]


async def test_storage_outage_is_not_reported_as_full(dining_room):
    dining_room.failing.add("list_active_reservations")

    with pytest.raises(TransientStorageError):
        await find_available_tables(dining_room, MONDAY, 900, 4, 120, now=NOW)
