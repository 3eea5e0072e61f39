"""Dose lifecycle services: pending-dose queries and administration."""
from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from careplan.core.clock import ScheduleClock, get_schedule_clock
from careplan.db import care_table
from careplan.db.keys import (
    dose_key,
    dose_sort_prefix,
    format_instant,
    medication_key,
    partition_key,
)
from careplan.models.care_item import CareItem, DoseStatus
from careplan.schemas.dose import UpcomingDoseRead
from careplan.schemas.medication import MedicationSummary
from careplan.services import telemetry_buffer

logger = logging.getLogger(__name__)


async def list_upcoming_doses(
    session: AsyncSession,
    care_recipient_id: str,
    *,
    clock: ScheduleClock | None = None,
) -> list[UpcomingDoseRead]:
    """Return the recipient's pending doses joined with medication metadata.

    Doses whose medication cannot be found are left out of the result; how
    many were dropped is logged and recorded as a telemetry event.
    """
    clock = clock or get_schedule_clock()
    doses = await care_table.query_partition(
        session,
        partition_key(care_recipient_id),
        sk_prefix=dose_sort_prefix(),
        status=DoseStatus.UPCOMING,
        due_at_from=format_instant(clock.now()),
    )
    if not doses:
        return []

    medication_ids = list(dict.fromkeys(dose.medication_id for dose in doses))
    medications = await care_table.batch_get_items(
        session,
        [medication_key(care_recipient_id, med_id) for med_id in medication_ids],
    )
    by_id: dict[str, CareItem] = {med.medication_id: med for med in medications}

    upcoming: list[UpcomingDoseRead] = []
    dropped = 0
    for dose in doses:
        medication = by_id.get(dose.medication_id)
        if medication is None:
            dropped += 1
            continue
        upcoming.append(
            UpcomingDoseRead(
                dose_id=dose.sk,
                medication_id=dose.medication_id,
                care_recipient_id=dose.care_recipient_id,
                due_at=dose.due_at,
                status=dose.status,
                medication=MedicationSummary.model_validate(medication),
            )
        )

    if dropped:
        logger.warning(
            "Dropped %s upcoming dose(s) for care recipient %s with no medication record",
            dropped,
            care_recipient_id,
        )
        telemetry_buffer.record(
            telemetry_buffer.JOIN_DROPPED,
            count=dropped,
            care_recipient_id=care_recipient_id,
        )
    return upcoming


async def mark_dose_taken(
    session: AsyncSession,
    *,
    care_recipient_id: str,
    medication_id: str,
    due_at: datetime | str,
    clock: ScheduleClock | None = None,
) -> CareItem | None:
    """Move one dose from UPCOMING to TAKEN.

    Returns the updated dose, or ``None`` when the dose does not exist or
    is no longer UPCOMING. Of several concurrent calls for the same dose
    exactly one gets the dose back.
    """
    clock = clock or get_schedule_clock()
    now = clock.now().astimezone(UTC)
    key = dose_key(care_recipient_id, medication_id, due_at)
    updated = await care_table.conditional_update(
        session,
        key,
        {"status": DoseStatus.TAKEN, "taken_at": now, "updated_at": now},
        required_status=DoseStatus.UPCOMING,
    )
    if updated is None:
        logger.info("No upcoming dose matched %s/%s", key.pk, key.sk)
        return None
    logger.info("Dose %s/%s marked as taken", key.pk, key.sk)
    return updated
