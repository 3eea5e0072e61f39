"""Medication API endpoints."""
from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from careplan.api import deps
from careplan.core.clock import ScheduleClock
from careplan.integrations.dose_queue import DoseQueue
from careplan.schemas.medication import (
    MedicationCreate,
    MedicationDeactivated,
    MedicationEnvelope,
    MedicationRead,
)
from careplan.services import medication_service

router = APIRouter(prefix="/care-recipients/{care_recipient_id}/medications")


@router.post(
    "",
    response_model=MedicationEnvelope,
    status_code=status.HTTP_201_CREATED,
    summary="Create medication",
)
async def create_medication(
    care_recipient_id: str,
    payload: MedicationCreate,
    background_tasks: BackgroundTasks,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    dose_queue: Annotated[DoseQueue | None, Depends(deps.get_dose_queue)],
    clock: Annotated[ScheduleClock, Depends(deps.get_clock)],
) -> MedicationEnvelope:
    if payload.care_recipient_id and payload.care_recipient_id != care_recipient_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Care recipient mismatch"
        )
    try:
        medication = await medication_service.create_medication(
            session,
            payload,
            care_recipient_id=care_recipient_id,
            dose_queue=dose_queue,
            background_tasks=background_tasks,
            clock=clock,
        )
    except medication_service.MedicationValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return MedicationEnvelope(medication=MedicationRead.model_validate(medication))


@router.get(
    "/{medication_id}",
    response_model=MedicationRead,
    summary="Get medication",
)
async def get_medication(
    care_recipient_id: str,
    medication_id: str,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
) -> MedicationRead:
    try:
        medication = await medication_service.get_medication(
            session,
            care_recipient_id=care_recipient_id,
            medication_id=medication_id,
        )
    except ValueError:
        medication = None
    if medication is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Medication not found")
    return MedicationRead.model_validate(medication)


@router.post(
    "/{medication_id}/deactivate",
    response_model=MedicationDeactivated,
    summary="Mark medication inactive",
)
async def deactivate_medication(
    care_recipient_id: str,
    medication_id: str,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    clock: Annotated[ScheduleClock, Depends(deps.get_clock)],
) -> MedicationDeactivated:
    try:
        medication = await medication_service.deactivate_medication(
            session,
            care_recipient_id=care_recipient_id,
            medication_id=medication_id,
            clock=clock,
        )
    except ValueError:
        medication = None
    if medication is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Medication not found")
    return MedicationDeactivated(medication=MedicationRead.model_validate(medication))
