"""Medication schemas."""

from __future__ import annotations

import re
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from careplan.models.care_item import CareItem, Recurrence

TIME_OF_DAY = re.compile(r"([0-1][0-9]|2[0-3]):[0-5][0-9]")


class CamelModel(BaseModel):
    """Base model exposing camelCase field aliases on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def coerce_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class MedicationCreate(CamelModel):
    """Payload for creating a medication.

    Field presence and the recurrence pairing are checked by
    ``medication_service.validate_medication_request`` so that every
    inconsistency is reported the same way.
    """

    care_recipient_id: str | None = None
    name: str | None = None
    dosage: str | None = None
    notes: str | None = None
    recurrence: Recurrence | None = None
    times_of_day: list[str] | None = None
    days_of_week: list[int] | None = None
    active: bool | None = None


class MedicationRead(CamelModel):
    """Serialized medication."""

    medication_id: str
    care_recipient_id: str
    name: str
    dosage: str
    notes: str = ""
    recurrence: Recurrence
    times_of_day: list[str] | None = None
    days_of_week: list[int] | None = None
    active: bool
    created_at: datetime
    updated_at: datetime

    @field_validator("notes", mode="before")
    @classmethod
    def _empty_notes(cls, value: str | None) -> str:
        return value or ""

    @field_validator("created_at", "updated_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return coerce_utc(value)  # type: ignore[return-value]


class MedicationEnvelope(CamelModel):
    medication: MedicationRead


class MedicationDeactivated(CamelModel):
    message: str = "Medication marked as inactive"
    medication: MedicationRead


class MedicationSummary(CamelModel):
    """Medication metadata attached to an upcoming dose."""

    name: str
    dosage: str
    recurrence: Recurrence
    notes: str = ""

    @field_validator("notes", mode="before")
    @classmethod
    def _empty_notes(cls, value: str | None) -> str:
        return value or ""


class DoseGenerationMessage(CamelModel):
    """Recurrence message consumed by the dose generation engine."""

    medication_id: str
    care_recipient_id: str
    recurrence: Recurrence
    times_of_day: list[str] | None = None
    days_of_week: list[int] | None = None
    active: bool

    @field_validator("times_of_day")
    @classmethod
    def _check_times(cls, value: list[str] | None) -> list[str] | None:
        for entry in value or []:
            if not TIME_OF_DAY.fullmatch(entry):
                raise ValueError(f"Invalid time format: {entry!r}")
        return value

    @field_validator("days_of_week")
    @classmethod
    def _check_days(cls, value: list[int] | None) -> list[int] | None:
        for day in value or []:
            if day < 0 or day > 6:
                raise ValueError(f"Invalid day of week: {day}")
        return value

    @classmethod
    def from_medication(cls, medication: CareItem) -> "DoseGenerationMessage":
        return cls(
            medication_id=medication.medication_id,
            care_recipient_id=medication.care_recipient_id,
            recurrence=medication.recurrence,
            times_of_day=medication.times_of_day,
            days_of_week=medication.days_of_week,
            active=bool(medication.active),
        )

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)
