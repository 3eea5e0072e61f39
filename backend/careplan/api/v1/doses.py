"""Dose occurrence API endpoints."""
from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from careplan.api import deps
from careplan.core.clock import ScheduleClock
from careplan.schemas.dose import (
    DoseRead,
    DoseTaken,
    MarkDoseTakenRequest,
    UpcomingDoseRead,
)
from careplan.services import dose_service

router = APIRouter(prefix="/care-recipients/{care_recipient_id}/doses")

_NOT_FOUND = (
    "Dose not found or already taken. Ensure the dose exists and status is UPCOMING."
)


@router.get(
    "/upcoming",
    response_model=list[UpcomingDoseRead],
    summary="List upcoming doses",
)
async def list_upcoming_doses(
    care_recipient_id: str,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    clock: Annotated[ScheduleClock, Depends(deps.get_clock)],
) -> list[UpcomingDoseRead]:
    return await dose_service.list_upcoming_doses(session, care_recipient_id, clock=clock)


@router.post(
    "/taken",
    response_model=DoseTaken,
    summary="Mark dose as taken",
)
async def mark_dose_taken(
    care_recipient_id: str,
    payload: MarkDoseTakenRequest,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    clock: Annotated[ScheduleClock, Depends(deps.get_clock)],
) -> DoseTaken:
    if payload.care_recipient_id and payload.care_recipient_id != care_recipient_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Care recipient mismatch"
        )
    try:
        dose = await dose_service.mark_dose_taken(
            session,
            care_recipient_id=care_recipient_id,
            medication_id=payload.medication_id,
            due_at=payload.due_at,
            clock=clock,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    if dose is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_NOT_FOUND)
    return DoseTaken(dose=DoseRead.model_validate(dose))
