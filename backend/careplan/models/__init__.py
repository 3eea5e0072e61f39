"""ORM models package export."""

from careplan.models.care_item import CareItem, DoseStatus, RecordType, Recurrence

__all__ = [
    "CareItem",
    "DoseStatus",
    "RecordType",
    "Recurrence",
]
