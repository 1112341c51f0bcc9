"""add hot-path indexes for lookups and the retry sweep

Revision ID: 0004_hot_path_indexes
Revises: 0003_claim_tokens
Create Date: 2026-10-16
"""

from alembic import op
import sqlalchemy as sa


revision = "0004_hot_path_indexes"
down_revision = "0003_claim_tokens"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_index("ix_barber_profiles_slug_lower", "barber_profiles", [sa.text("lower(slug)")])
    op.create_index("ix_profiles_email_lower", "profiles", [sa.text("lower(email)")])
    op.create_index(
        "ix_notifications_status_updated_at",
        "notifications",
        ["status", "updated_at"],
    )
    op.create_index(
        "ix_claim_tokens_barber_id_expires_at",
        "claim_tokens",
        ["barber_id", "expires_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_claim_tokens_barber_id_expires_at", table_name="claim_tokens")
    op.drop_index("ix_notifications_status_updated_at", table_name="notifications")
    op.drop_index("ix_profiles_email_lower", table_name="profiles")
    op.drop_index("ix_barber_profiles_slug_lower", table_name="barber_profiles")
