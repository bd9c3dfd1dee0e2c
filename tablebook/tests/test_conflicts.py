import pytest

from conftest import MONDAY, NOW, at
from tablebook.app.services.conflicts import check_conflicts

pytestmark = pytest.mark.asyncio


async def test_back_to_back_is_not_a_conflict(venue, table_a):
    check = await check_conflicts(venue, table_a.id, MONDAY, 900, 120, now=NOW)

    assert check.valid
    assert check.conflicts == ()


async def test_overlap_reports_the_blocking_reservation(venue, table_a):
    check = await check_conflicts(venue, table_a.id, MONDAY, 840, 60, now=NOW)

    assert not check.valid
    [conflict] = check.conflicts
    assert conflict.reservation_id == 1
    assert conflict.code == "LUNCH001"
    assert (conflict.start, conflict.end) == ("13:00", "15:00")
    assert conflict.source == "phone"
    assert not conflict.in_progress


async def test_interval_spanning_two_reservations_reports_both(venue, table_a):
    check = await check_conflicts(venue, table_a.id, MONDAY, 840, 360, now=NOW)

    assert [c.code for c in check.conflicts] == ["LUNCH001", "DINNR001"]


async def test_excluded_reservation_is_ignored(venue, table_a):
    check = await check_conflicts(venue, table_a.id, MONDAY, 840, 60, exclude_id=1, now=NOW)

    assert check.valid


async def test_inactive_reservations_do_not_block(venue, table_a):
    venue.add_reservation(table_a.id, MONDAY, "16:00", 60, status="cancelled")
    venue.add_reservation(table_a.id, MONDAY, "17:00", 60, status="no-show")

    check = await check_conflicts(venue, table_a.id, MONDAY, 960, 120, now=NOW)

    assert check.valid


async def test_pending_reservation_blocks(venue, table_a):
    venue.add_reservation(table_a.id, MONDAY, "16:00", 60, status="pending")

    assert not (await check_conflicts(venue, table_a.id, MONDAY, 930, 60, now=NOW)).valid


async def test_reservation_in_progress_blocks_until_its_end(venue, table_a):
    now = at(MONDAY, "14:30")

    # 10:00-11:00 does not overlap 13:00-15:00, but the table is occupied right now.
    check = await check_conflicts(venue, table_a.id, MONDAY, 600, 60, now=now)

    assert not check.valid
    [conflict] = check.conflicts
    assert conflict.code == "LUNCH001"
    assert conflict.in_progress


async def test_in_progress_reservation_is_not_reported_twice(venue, table_a):
    check = await check_conflicts(venue, table_a.id, MONDAY, 840, 60, now=at(MONDAY, "14:30"))

    assert [c.code for c in check.conflicts] == ["LUNCH001"]


async def test_in_progress_check_only_applies_today(venue, table_a):
    check = await check_conflicts(venue, table_a.id, MONDAY, 600, 60, now=NOW)

    assert check.valid


async def test_storage_failure_fails_closed(venue, table_a):
    venue.failing.add("list_active_reservations")

    check = await check_conflicts(venue, table_a.id, MONDAY, 900, 60, now=NOW)

    assert not check.valid
    assert check.error == "list_active_reservations timed out"
