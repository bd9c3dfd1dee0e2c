import logging

import pytest

from tablebook.app.core.config import settings
from tablebook.app.services.duration import resolve_duration

pytestmark = pytest.mark.asyncio


async def test_explicit_duration_wins_without_reading_default(venue):
    assert await resolve_duration(venue, 90) == 90
    assert venue.calls["get_default_duration"] == 0


@pytest.mark.parametrize("explicit", [None, 0, -30])
async def test_missing_or_non_positive_value_uses_venue_default(venue, explicit):
    assert await resolve_duration(venue, explicit) == 120


async def test_default_is_never_memoised(venue):
    assert await resolve_duration(venue) == 120

    venue.default_duration = 150
    assert await resolve_duration(venue) == 150

    venue.default_duration = 90
    assert await resolve_duration(venue) == 90
    assert venue.calls["get_default_duration"] == 3


async def test_failed_read_falls_back_and_logs(venue, caplog):
    venue.failing.add("get_default_duration")

    with caplog.at_level(logging.WARNING, logger="tablebook.app.services.duration"):
        assert await resolve_duration(venue) == settings.DEFAULT_DURATION_FALLBACK == 120

    assert "Default duration unavailable" in caplog.text


async def test_unset_default_falls_back(venue):
    venue.default_duration = None

    assert await resolve_duration(venue) == 120
