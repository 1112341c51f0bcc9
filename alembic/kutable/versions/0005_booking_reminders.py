"""add booking reminders

Revision ID: 0005_booking_reminders
Revises: 0004_hot_path_indexes
Create Date: 2026-10-16
"""

from alembic import op
import sqlalchemy as sa


revision = "0005_booking_reminders"
down_revision = "0004_hot_path_indexes"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "booking_reminders",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("booking_id", sa.String(), nullable=False),
        sa.Column("reminder_type", sa.String(), nullable=False),
        sa.Column("appointment_date", sa.String(), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("booking_id", "reminder_type", "appointment_date"),
    )
    op.create_index("ix_booking_reminders_booking_id", "booking_reminders", ["booking_id"])
    op.create_index("ix_booking_reminders_sent_at", "booking_reminders", ["sent_at"])


def downgrade() -> None:
    op.drop_index("ix_booking_reminders_sent_at", table_name="booking_reminders")
    op.drop_index("ix_booking_reminders_booking_id", table_name="booking_reminders")
    op.drop_table("booking_reminders")
