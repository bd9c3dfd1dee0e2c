import pytest

from conftest import MONDAY, NOW, InMemoryStore, at, weekly
from tablebook.app.domain.models import Table
from tablebook.app.services.alternatives import find_alternatives

pytestmark = pytest.mark.asyncio

MONDAY_BOUNDS_60 = (780, 1320)


def times(slots):
    return [slot.time for slot in slots]


async def test_release_event_ranks_ahead_of_grid_slots(venue):
    slots = await find_alternatives(venue, MONDAY, 840, 4, 60, now=NOW, bounds=MONDAY_BOUNDS_60)

    assert times(slots) == ["15:00", "15:15", "15:30", "15:45", "16:00"]
    release = slots[0]
    assert release.is_release_event
    assert not release.is_exact_match
    assert release.free_table_count == 1
    assert release.minutes_from_requested == 60
    assert not any(slot.is_release_event for slot in slots[1:])


async def test_ties_on_distance_prefer_the_earlier_slot(venue):
    slots = await find_alternatives(venue, MONDAY, 840, 4, 60, now=NOW)

    # 12:00 and 16:00 are both two hours away; grid clipped to 08:00-23:00 only.
    assert times(slots) == ["15:00", "15:15", "15:30", "15:45", "12:00"]


async def test_release_events_beyond_two_hours_are_ignored(venue):
    slots = await find_alternatives(venue, MONDAY, 840, 4, 60, now=NOW, bounds=MONDAY_BOUNDS_60)

    assert "21:00" not in times(slots)


async def test_exact_time_recheck_covers_every_eligible_table(venue):
    venue.tables[2] = Table(id=2, number="2", capacity=4)

    slots = await find_alternatives(venue, MONDAY, 840, 4, 60, now=NOW, bounds=MONDAY_BOUNDS_60)

    exact = slots[0]
    assert exact.is_exact_match
    assert exact.time == "14:00"
    assert exact.minutes_from_requested == 0
    assert exact.table_ids == (2,)


async def test_tables_freed_together_are_counted_once():
    store = InMemoryStore(
        tables=[Table(id=1, number="1", capacity=4), Table(id=2, number="2", capacity=4)],
        hours=weekly(),
    )
    store.add_reservation(1, MONDAY, "18:00", 120)
    store.add_reservation(2, MONDAY, "17:00", 180)

    slots = await find_alternatives(store, MONDAY, 1140, 4, 120, now=NOW, bounds=(780, 1260))

    assert times(slots) == ["20:00", "20:15", "20:30", "20:45", "21:00"]
    assert slots[0].is_release_event
    assert slots[0].free_table_count == 2
    assert slots[0].table_ids == (1, 2)
    assert slots[1].free_table_count == 2


async def test_release_event_needs_the_table_free_for_the_whole_duration(venue):
    # Table frees at 15:00 but 15:00-19:30 would run into the 19:00 booking.
    slots = await find_alternatives(venue, MONDAY, 840, 4, 270, now=NOW)

    assert not any(slot.is_release_event for slot in slots)


async def test_same_day_slots_need_lead_time(table_a):
    store = InMemoryStore(tables=[table_a], hours=weekly())
    store.add_reservation(table_a.id, MONDAY, "15:00", 60)

    slots = await find_alternatives(
        store, MONDAY, 900, 4, 60, now=at(MONDAY, "13:20"), bounds=MONDAY_BOUNDS_60
    )

    assert times(slots) == ["16:00", "14:00", "16:15", "16:30", "16:45"]
    assert "13:45" not in times(slots)


async def test_results_are_deterministic(venue):
    first = await find_alternatives(venue, MONDAY, 840, 4, 60, now=NOW)
    second = await find_alternatives(venue, MONDAY, 840, 4, 60, now=NOW)

    assert first == second


async def test_no_candidate_tables_means_no_alternatives(venue):
    assert await find_alternatives(venue, MONDAY, 840, 12, 60, now=NOW) == []


async def test_results_are_capped_and_usable(venue):
    slots = await find_alternatives(venue, MONDAY, 1020, 4, 60, now=NOW)

    assert 0 < len(slots) <= 5
    assert all(slot.free_table_count >= 1 for slot in slots)
