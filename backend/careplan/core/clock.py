"""Scheduling clock: the time zone and "now" used by dose scheduling."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from careplan.core.config import get_settings

logger = logging.getLogger(__name__)


def _system_now() -> datetime:
    return datetime.now(UTC)


def resolve_timezone(name: str | None) -> ZoneInfo:
    """Return the zone for ``name``, falling back to UTC when unknown."""
    if not name:
        return ZoneInfo("UTC")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):  # pragma: no cover - depends on system tz database
        logger.warning("Unknown schedule time zone %r; using UTC", name)
        return ZoneInfo("UTC")


@dataclass(frozen=True)
class ScheduleClock:
    """Explicit time source for recurrence expansion and dose queries.

    ``now()`` always returns an aware datetime expressed in ``tz`` so that
    calendar days and weekdays are computed in the scheduling zone rather
    than the host's local zone.
    """

    tz: ZoneInfo = field(default_factory=lambda: ZoneInfo("UTC"))
    source: Callable[[], datetime] = _system_now

    def now(self) -> datetime:
        current = self.source()
        if current.tzinfo is None:
            current = current.replace(tzinfo=UTC)
        return current.astimezone(self.tz)

    @classmethod
    def fixed(cls, instant: datetime, tz: ZoneInfo | str | None = None) -> "ScheduleClock":
        """Build a clock frozen at ``instant`` (used by tests and replays)."""
        zone = tz if isinstance(tz, ZoneInfo) else resolve_timezone(tz)
        return cls(tz=zone, source=lambda: instant)


def get_schedule_clock() -> ScheduleClock:
    """Return a wall-clock ``ScheduleClock`` in the configured zone."""
    settings = get_settings()
    return ScheduleClock(tz=resolve_timezone(settings.schedule_timezone))
