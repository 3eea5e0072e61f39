"""Medication lifecycle services."""
from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import UTC

from fastapi import BackgroundTasks
from sqlalchemy.ext.asyncio import AsyncSession

from careplan.core.clock import ScheduleClock, get_schedule_clock
from careplan.core.config import Settings, get_settings
from careplan.db import care_table
from careplan.db.keys import medication_key
from careplan.integrations.dose_queue import DoseQueue, DoseQueueError
from careplan.models.care_item import CareItem, RecordType, Recurrence
from careplan.schemas.medication import (
    TIME_OF_DAY,
    DoseGenerationMessage,
    MedicationCreate,
)
from careplan.services import dose_generation_service, telemetry_buffer

logger = logging.getLogger(__name__)


class MedicationValidationError(ValueError):
    """Raised when a medication request is malformed or inconsistent."""


def _blank(value: str | None) -> bool:
    return value is None or not value.strip()


def validate_medication_request(payload: MedicationCreate) -> None:
    """Check required fields and the recurrence/schedule pairing."""
    if _blank(payload.care_recipient_id):
        raise MedicationValidationError("careRecipientId is required")
    if _blank(payload.name):
        raise MedicationValidationError("name is required")
    if _blank(payload.dosage):
        raise MedicationValidationError("dosage is required")
    if payload.recurrence is None:
        raise MedicationValidationError("recurrence is required")

    if payload.recurrence == Recurrence.DAILY:
        if not payload.times_of_day:
            raise MedicationValidationError(
                "timesOfDay is required when recurrence is DAILY"
            )
        for value in payload.times_of_day:
            if not TIME_OF_DAY.fullmatch(value):
                raise MedicationValidationError(
                    f"Invalid time format: {value}. Expected format: HH:MM"
                )
        if payload.days_of_week is not None:
            raise MedicationValidationError(
                "daysOfWeek must be null when recurrence is DAILY"
            )
    elif payload.recurrence == Recurrence.WEEKLY:
        if not payload.days_of_week:
            raise MedicationValidationError(
                "daysOfWeek is required when recurrence is WEEKLY"
            )
        for day in payload.days_of_week:
            if day < 0 or day > 6:
                raise MedicationValidationError(
                    f"Invalid day of week: {day}. Must be 0-6 (Sunday-Saturday)"
                )
        if payload.times_of_day is not None:
            raise MedicationValidationError(
                "timesOfDay must be null when recurrence is WEEKLY"
            )


async def send_generation_message(
    dose_queue: DoseQueue,
    message: DoseGenerationMessage,
    *,
    attempts: int = 3,
    retry_delay: float = 0.2,
) -> bool:
    """Send ``message`` with bounded retries; failures are logged, never raised."""
    for attempt in range(1, attempts + 1):
        try:
            await dose_queue.send(message)
            return True
        except DoseQueueError:
            logger.warning(
                "Queue send attempt %s/%s failed for medication %s",
                attempt,
                attempts,
                message.medication_id,
                exc_info=True,
            )
        if attempt < attempts and retry_delay > 0:
            await asyncio.sleep(retry_delay * attempt)

    logger.error(
        "Failed to send dose generation message for medication %s",
        message.medication_id,
    )
    telemetry_buffer.record(
        telemetry_buffer.QUEUE_SEND_FAILED, medication_id=message.medication_id
    )
    return False


async def _fall_back_to_queue(
    message: DoseGenerationMessage,
    *,
    dose_queue: DoseQueue | None,
    background_tasks: BackgroundTasks | None,
    settings: Settings,
) -> None:
    telemetry_buffer.record(
        telemetry_buffer.GENERATION_FALLBACK, medication_id=message.medication_id
    )
    if dose_queue is None:
        logger.error(
            "No dose queue configured; doses for medication %s were not generated",
            message.medication_id,
        )
        telemetry_buffer.record(
            telemetry_buffer.QUEUE_SEND_FAILED, medication_id=message.medication_id
        )
        return
    if background_tasks is not None:
        background_tasks.add_task(
            send_generation_message,
            dose_queue,
            message,
            attempts=settings.dose_queue_send_attempts,
        )
        return
    await send_generation_message(
        dose_queue, message, attempts=settings.dose_queue_send_attempts
    )


async def create_medication(
    session: AsyncSession,
    payload: MedicationCreate,
    *,
    care_recipient_id: str | None = None,
    dose_queue: DoseQueue | None = None,
    background_tasks: BackgroundTasks | None = None,
    clock: ScheduleClock | None = None,
    settings: Settings | None = None,
) -> CareItem:
    """Persist a medication and trigger dose generation for it.

    Generation runs inline when enabled; if it is disabled or fails, the
    generation message is handed to the dose queue instead. The medication
    is returned once persisted, whatever happens to its doses.
    """
    if care_recipient_id is not None:
        payload = payload.model_copy(update={"care_recipient_id": care_recipient_id})
    validate_medication_request(payload)

    settings = settings or get_settings()
    clock = clock or get_schedule_clock()
    now = clock.now().astimezone(UTC)
    medication_id = str(uuid.uuid4())
    key = medication_key(payload.care_recipient_id, medication_id)  # type: ignore[arg-type]

    medication = await care_table.put_item(
        session,
        CareItem(
            pk=key.pk,
            sk=key.sk,
            record_type=RecordType.MEDICATION,
            care_recipient_id=payload.care_recipient_id,
            medication_id=medication_id,
            name=payload.name,
            dosage=payload.dosage,
            notes=payload.notes,
            recurrence=payload.recurrence,
            times_of_day=payload.times_of_day,
            days_of_week=payload.days_of_week,
            active=True if payload.active is None else payload.active,
            created_at=now,
            updated_at=now,
        ),
    )
    # a failed generation rolls the session back; keep the saved record loaded
    session.expunge(medication)
    logger.info(
        "Created medication %s for care recipient %s",
        medication_id,
        medication.care_recipient_id,
    )

    if not medication.active:
        return medication

    message = DoseGenerationMessage.from_medication(medication)
    if settings.sync_dose_generation:
        try:
            await dose_generation_service.generate_doses(
                session, message, clock=clock, settings=settings
            )
            return medication
        except Exception:
            logger.exception(
                "Failed to generate doses synchronously for medication %s",
                medication_id,
            )

    await _fall_back_to_queue(
        message,
        dose_queue=dose_queue,
        background_tasks=background_tasks,
        settings=settings,
    )
    return medication


async def get_medication(
    session: AsyncSession,
    *,
    care_recipient_id: str,
    medication_id: str,
) -> CareItem | None:
    item = await care_table.get_item(
        session, medication_key(care_recipient_id, medication_id)
    )
    if item is None or item.record_type != RecordType.MEDICATION:
        return None
    return item


async def deactivate_medication(
    session: AsyncSession,
    *,
    care_recipient_id: str,
    medication_id: str,
    clock: ScheduleClock | None = None,
) -> CareItem | None:
    """Mark a medication inactive; existing doses are left as they are."""
    clock = clock or get_schedule_clock()
    now = clock.now().astimezone(UTC)
    updated = await care_table.update_item(
        session,
        medication_key(care_recipient_id, medication_id),
        {"active": False, "updated_at": now},
        record_type=RecordType.MEDICATION,
    )
    if updated is None:
        logger.info(
            "Medication %s not found for care recipient %s",
            medication_id,
            care_recipient_id,
        )
        return None
    logger.info("Medication %s marked as inactive", medication_id)
    return updated
