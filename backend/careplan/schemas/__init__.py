"""Schema exports."""

from careplan.schemas.dose import (
    DoseRead,
    DoseTaken,
    MarkDoseTakenRequest,
    UpcomingDoseRead,
)
from careplan.schemas.medication import (
    DoseGenerationMessage,
    MedicationCreate,
    MedicationDeactivated,
    MedicationEnvelope,
    MedicationRead,
    MedicationSummary,
)

__all__ = [
    "DoseGenerationMessage",
    "DoseRead",
    "DoseTaken",
    "MarkDoseTakenRequest",
    "MedicationCreate",
    "MedicationDeactivated",
    "MedicationEnvelope",
    "MedicationRead",
    "MedicationSummary",
    "UpcomingDoseRead",
]
