"""Single-table model holding medications and dose occurrences."""
from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Enum, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from careplan.db.base import Base
from careplan.models.mixins import TimestampMixin


class RecordType(str, enum.Enum):
    """Entity types stored in the care partition."""

    MEDICATION = "MEDICATION"
    DOSE = "DOSE"


class Recurrence(str, enum.Enum):
    """Supported medication schedule shapes."""

    DAILY = "DAILY"
    WEEKLY = "WEEKLY"


class DoseStatus(str, enum.Enum):
    """Lifecycle states for a dose occurrence.

    ``MISSED`` is written by an external sweep; this service only moves
    doses from ``UPCOMING`` to ``TAKEN``.
    """

    UPCOMING = "UPCOMING"
    TAKEN = "TAKEN"
    MISSED = "MISSED"


class CareItem(TimestampMixin, Base):
    """One record in the care-recipient partition.

    Medication rows populate the descriptive and schedule columns; dose rows
    populate ``due_at``, ``status`` and ``taken_at``. ``due_at`` holds the
    canonical instant string from :mod:`careplan.db.keys`, not a DateTime,
    so that comparisons match sort-key order on every backend.
    """

    __tablename__ = "care_items"
    __table_args__ = (
        Index("ix_care_items_pk_status_due_at", "pk", "status", "due_at"),
    )

    pk: Mapped[str] = mapped_column(String(255), primary_key=True)
    sk: Mapped[str] = mapped_column(String(255), primary_key=True)
    record_type: Mapped[RecordType] = mapped_column(Enum(RecordType), nullable=False)
    care_recipient_id: Mapped[str] = mapped_column(String(200), nullable=False)
    medication_id: Mapped[str] = mapped_column(String(64), nullable=False)

    name: Mapped[str | None] = mapped_column(String(255))
    dosage: Mapped[str | None] = mapped_column(String(120))
    notes: Mapped[str | None] = mapped_column(String(1024))
    recurrence: Mapped[Recurrence | None] = mapped_column(Enum(Recurrence))
    times_of_day: Mapped[list[str] | None] = mapped_column(JSON)
    days_of_week: Mapped[list[int] | None] = mapped_column(JSON)
    active: Mapped[bool | None] = mapped_column(Boolean)

    due_at: Mapped[str | None] = mapped_column(String(32))
    status: Mapped[DoseStatus | None] = mapped_column(Enum(DoseStatus))
    taken_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"CareItem(pk={self.pk!r}, sk={self.sk!r}, type={self.record_type.value})"
