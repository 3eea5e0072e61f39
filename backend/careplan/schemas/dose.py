"""Dose occurrence schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field, field_validator

from careplan.models.care_item import DoseStatus
from careplan.schemas.medication import CamelModel, MedicationSummary, coerce_utc


class DoseRead(CamelModel):
    """Serialized dose occurrence."""

    medication_id: str
    care_recipient_id: str
    due_at: str
    status: DoseStatus
    taken_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @field_validator("taken_at", "created_at", "updated_at")
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        return coerce_utc(value)


class DoseTaken(CamelModel):
    message: str = "Dose marked as taken"
    dose: DoseRead


class UpcomingDoseRead(CamelModel):
    """A pending dose joined with its medication's metadata."""

    dose_id: str
    medication_id: str
    care_recipient_id: str
    due_at: str
    status: DoseStatus
    medication: MedicationSummary


class MarkDoseTakenRequest(CamelModel):
    """Identifies the dose to mark as administered."""

    medication_id: str = Field(..., min_length=1)
    due_at: datetime
    care_recipient_id: str | None = None
