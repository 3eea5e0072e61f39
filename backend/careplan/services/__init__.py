"""Service layer exports."""
from careplan.services import (
    dose_generation_service,
    dose_service,
    medication_service,
    telemetry_buffer,
)

__all__ = [
    "dose_generation_service",
    "dose_service",
    "medication_service",
    "telemetry_buffer",
]
