"""Scheduling clock tests."""

from __future__ import annotations

from datetime import UTC, datetime
from zoneinfo import ZoneInfo

from careplan.core.clock import ScheduleClock, resolve_timezone


def test_fixed_clock_reports_instant_in_its_zone() -> None:
    clock = ScheduleClock.fixed(datetime(2025, 1, 1, tzinfo=UTC), "America/New_York")
    now = clock.now()
    assert now.tzinfo == ZoneInfo("America/New_York")
    assert (now.year, now.month, now.day, now.hour) == (2024, 12, 31, 19)


def test_naive_source_is_treated_as_utc() -> None:
    clock = ScheduleClock(tz=ZoneInfo("UTC"), source=lambda: datetime(2025, 1, 1, 8))
    assert clock.now() == datetime(2025, 1, 1, 8, tzinfo=UTC)


def test_blank_zone_resolves_to_utc() -> None:
    assert resolve_timezone(None) == ZoneInfo("UTC")
    assert resolve_timezone("") == ZoneInfo("UTC")
