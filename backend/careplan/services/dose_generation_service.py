"""Dose generation: expand a medication's recurrence into dose occurrences."""

from __future__ import annotations

import logging
from datetime import UTC, date, datetime, time, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from careplan.core.clock import ScheduleClock, get_schedule_clock
from careplan.core.config import Settings, get_settings
from careplan.db import care_table
from careplan.db.keys import dose_key, format_instant
from careplan.models.care_item import CareItem, DoseStatus, RecordType, Recurrence
from careplan.schemas.medication import DoseGenerationMessage

logger = logging.getLogger(__name__)

DEFAULT_HORIZON_DAYS = 7
DEFAULT_WEEKLY_TIME = time(8, 0)


def parse_time_of_day(value: str) -> time:
    """Parse an ``HH:MM`` string."""
    hours, _, minutes = value.partition(":")
    return time(int(hours), int(minutes))


def sunday_based_weekday(day: date) -> int:
    """Day of week with 0 = Sunday ... 6 = Saturday."""
    return (day.weekday() + 1) % 7


def _calendar_days(now: datetime, horizon_days: int) -> list[tuple[int, date]]:
    today = now.date()
    return [(offset, today + timedelta(days=offset)) for offset in range(horizon_days)]


def _at(day: date, moment: time, now: datetime) -> datetime:
    return datetime.combine(day, moment, tzinfo=now.tzinfo)


def _before(due: datetime, now: datetime) -> bool:
    # same-zone comparison ignores the offset inside a repeated DST hour
    return due.astimezone(UTC) < now.astimezone(UTC)


def expand_recurrence(
    message: DoseGenerationMessage,
    *,
    now: datetime,
    horizon_days: int = DEFAULT_HORIZON_DAYS,
    weekly_time: time = DEFAULT_WEEKLY_TIME,
) -> list[datetime]:
    """Return the due instants of ``message`` within the horizon.

    ``now`` must be timezone aware; calendar days and weekdays are taken in
    its zone. Day 0 is the calendar day of ``now`` and instants on day 0
    that are already in the past are skipped. Inactive messages and
    messages missing the field their recurrence needs expand to nothing.
    """
    if now.tzinfo is None:
        raise ValueError("now must be timezone aware")
    if not message.active:
        return []

    instants: list[datetime] = []
    if message.recurrence == Recurrence.DAILY and message.times_of_day:
        moments = [parse_time_of_day(value) for value in message.times_of_day]
        for offset, day in _calendar_days(now, horizon_days):
            for moment in moments:
                due = _at(day, moment, now)
                if offset == 0 and _before(due, now):
                    continue
                instants.append(due)
    elif message.recurrence == Recurrence.WEEKLY and message.days_of_week:
        wanted = set(message.days_of_week)
        for offset, day in _calendar_days(now, horizon_days):
            if sunday_based_weekday(day) not in wanted:
                continue
            due = _at(day, weekly_time, now)
            if offset == 0 and _before(due, now):
                continue
            instants.append(due)

    # the same wall time listed twice is still a single occurrence
    return list(dict.fromkeys(instants))


def build_dose_items(
    message: DoseGenerationMessage,
    due_instants: list[datetime],
    *,
    created_at: datetime,
) -> list[CareItem]:
    """Build UPCOMING dose records for ``due_instants``."""
    stamp = created_at.astimezone(UTC)
    items: list[CareItem] = []
    for due in due_instants:
        key = dose_key(message.care_recipient_id, message.medication_id, due)
        items.append(
            CareItem(
                pk=key.pk,
                sk=key.sk,
                record_type=RecordType.DOSE,
                care_recipient_id=message.care_recipient_id,
                medication_id=message.medication_id,
                due_at=format_instant(due),
                status=DoseStatus.UPCOMING,
                taken_at=None,
                created_at=stamp,
                updated_at=stamp,
            )
        )
    return items


async def generate_doses(
    session: AsyncSession,
    message: DoseGenerationMessage,
    *,
    clock: ScheduleClock | None = None,
    settings: Settings | None = None,
) -> int:
    """Expand ``message`` and persist the resulting doses.

    Returns the number of doses generated. Writes are chunked and not
    atomic across chunks. Unless ``DOSE_GENERATION_IDEMPOTENT`` is set,
    existing doses are not consulted and a regenerated key replaces the
    stored dose.
    """
    if not message.active:
        logger.info(
            "Skipping dose generation for inactive medication %s",
            message.medication_id,
        )
        return 0

    settings = settings or get_settings()
    clock = clock or get_schedule_clock()
    now = clock.now()

    instants = expand_recurrence(
        message,
        now=now,
        horizon_days=settings.dose_horizon_days,
        weekly_time=parse_time_of_day(settings.weekly_dose_time),
    )
    if not instants:
        return 0

    items = build_dose_items(message, instants, created_at=now)
    written = await care_table.batch_put_items(
        session,
        items,
        chunk_size=settings.dose_batch_size,
        if_absent=settings.dose_generation_idempotent,
    )
    if written != len(items):
        logger.info(
            "Skipped %s existing dose(s) for medication %s",
            len(items) - written,
            message.medication_id,
        )
    logger.info(
        "Generated %s doses for medication %s", written, message.medication_id
    )
    return written
