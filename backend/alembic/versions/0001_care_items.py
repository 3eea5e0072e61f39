"""Create the single care_items table."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

record_type = sa.Enum("MEDICATION", "DOSE", name="recordtype")
recurrence = sa.Enum("DAILY", "WEEKLY", name="recurrence")
dose_status = sa.Enum("UPCOMING", "TAKEN", "MISSED", name="dosestatus")


def upgrade() -> None:
    op.create_table(
        "care_items",
        sa.Column("pk", sa.String(length=255), primary_key=True),
        sa.Column("sk", sa.String(length=255), primary_key=True),
        sa.Column("record_type", record_type, nullable=False),
        sa.Column("care_recipient_id", sa.String(length=200), nullable=False),
        sa.Column("medication_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("dosage", sa.String(length=120), nullable=True),
        sa.Column("notes", sa.String(length=1024), nullable=True),
        sa.Column("recurrence", recurrence, nullable=True),
        sa.Column("times_of_day", sa.JSON(), nullable=True),
        sa.Column("days_of_week", sa.JSON(), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=True),
        sa.Column("due_at", sa.String(length=32), nullable=True),
        sa.Column("status", dose_status, nullable=True),
        sa.Column("taken_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "ix_care_items_pk_status_due_at",
        "care_items",
        ["pk", "status", "due_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_care_items_pk_status_due_at", table_name="care_items")
    op.drop_table("care_items")
    bind = op.get_bind()
    for enum_type in (dose_status, recurrence, record_type):
        enum_type.drop(bind, checkfirst=True)
