"""add claim tokens

Revision ID: 0003_claim_tokens
Revises: 0002_notifications
Create Date: 2026-10-16
"""

from alembic import op
import sqlalchemy as sa


revision = "0003_claim_tokens"
down_revision = "0002_notifications"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "claim_tokens",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("barber_id", sa.String(), nullable=False),
        sa.Column("token", sa.String(length=64), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("consumed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["barber_id"], ["barber_profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_claim_tokens_barber_id", "claim_tokens", ["barber_id"])
    op.create_index("ix_claim_tokens_token", "claim_tokens", ["token"], unique=True)


def downgrade() -> None:
    op.drop_index("ix_claim_tokens_token", table_name="claim_tokens")
    op.drop_index("ix_claim_tokens_barber_id", table_name="claim_tokens")
    op.drop_table("claim_tokens")
