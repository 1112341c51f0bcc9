"""initial booking schema

Revision ID: 0001_booking_core
Revises:
Create Date: 2026-10-16
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_booking_core"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "barber_profiles",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=True),
        sa.Column("slug", sa.String(), nullable=False),
        sa.Column("business_name", sa.String(), nullable=False),
        sa.Column("owner_name", sa.String(), nullable=True),
        sa.Column("phone", sa.String(), nullable=True),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("address", sa.String(), nullable=True),
        sa.Column("city", sa.String(), nullable=True),
        sa.Column("state", sa.String(), nullable=True),
        sa.Column("zip_code", sa.String(), nullable=True),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.Column("is_claimed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("import_source", sa.String(), nullable=True),
        sa.Column("import_external_id", sa.String(), nullable=True),
        sa.Column("stripe_account_id", sa.String(), nullable=True),
        sa.Column("stripe_onboarding_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("sms_consent", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("email_consent", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
    )
    op.create_index("ix_barber_profiles_user_id", "barber_profiles", ["user_id"])
    op.create_index("ix_barber_profiles_stripe_account_id", "barber_profiles", ["stripe_account_id"])

    op.create_table(
        "client_profiles",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("first_name", sa.String(), nullable=True),
        sa.Column("last_name", sa.String(), nullable=True),
        sa.Column("phone", sa.String(), nullable=True),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("sms_consent", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("email_consent", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "profiles",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("user_type", sa.String(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "services",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("barber_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.ForeignKeyConstraint(["barber_id"], ["barber_profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_services_barber_id", "services", ["barber_id"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("barber_id", sa.String(), nullable=False),
        sa.Column("client_id", sa.String(), nullable=True),
        sa.Column("service_id", sa.String(), nullable=True),
        sa.Column("appointment_date", sa.String(), nullable=False),
        sa.Column("appointment_time", sa.String(), nullable=False),
        sa.Column("total_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("deposit_amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("platform_fee", sa.Numeric(10, 2), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("state_version", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("stripe_payment_intent_id", sa.String(), nullable=True),
        sa.Column("stripe_charge_id", sa.String(), nullable=True),
        sa.Column("stripe_checkout_session_id", sa.String(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["barber_id"], ["barber_profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_bookings_barber_id", "bookings", ["barber_id"])
    op.create_index("ix_bookings_client_id", "bookings", ["client_id"])
    op.create_index("ix_bookings_status", "bookings", ["status"])
    op.create_index("ix_bookings_stripe_payment_intent_id", "bookings", ["stripe_payment_intent_id"])
    op.create_index("ix_bookings_stripe_charge_id", "bookings", ["stripe_charge_id"])

    op.create_table(
        "booking_timeline",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("booking_id", sa.String(), nullable=False),
        sa.Column("from_state", sa.String(), nullable=True),
        sa.Column("to_state", sa.String(), nullable=False),
        sa.Column("reason", sa.String(), nullable=False),
        sa.Column("event_id", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["booking_id"], ["bookings.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_booking_timeline_booking_id", "booking_timeline", ["booking_id"])
    op.create_index("ix_booking_timeline_event_id", "booking_timeline", ["event_id"])

    op.create_table(
        "stripe_accounts",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("barber_id", sa.String(), nullable=False),
        sa.Column("stripe_account_id", sa.String(), nullable=False),
        sa.Column("account_status", sa.String(), nullable=False),
        sa.Column("charges_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("payouts_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("details_submitted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["barber_id"], ["barber_profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_stripe_accounts_barber_id", "stripe_accounts", ["barber_id"], unique=True)
    op.create_index("ix_stripe_accounts_stripe_account_id", "stripe_accounts", ["stripe_account_id"], unique=True)

    op.create_table(
        "processed_webhook_events",
        sa.Column("event_id", sa.String(), nullable=False),
        sa.Column("consumer", sa.String(), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("event_id", "consumer"),
    )

    op.create_table(
        "platform_transactions",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("booking_id", sa.String(), nullable=True),
        sa.Column("barber_id", sa.String(), nullable=True),
        sa.Column("transaction_type", sa.String(), nullable=False),
        sa.Column("gross_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("platform_fee", sa.Numeric(10, 2), nullable=False),
        sa.Column("net_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("stripe_transaction_id", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_platform_transactions_booking_id", "platform_transactions", ["booking_id"])
    op.create_index("ix_platform_transactions_barber_id", "platform_transactions", ["barber_id"])
    op.create_index(
        "ix_platform_transactions_stripe_transaction_id",
        "platform_transactions",
        ["stripe_transaction_id"],
        unique=True,
    )


def downgrade() -> None:
    op.drop_index("ix_platform_transactions_stripe_transaction_id", table_name="platform_transactions")
    op.drop_index("ix_platform_transactions_barber_id", table_name="platform_transactions")
    op.drop_index("ix_platform_transactions_booking_id", table_name="platform_transactions")
    op.drop_table("platform_transactions")
    op.drop_table("processed_webhook_events")
    op.drop_index("ix_stripe_accounts_stripe_account_id", table_name="stripe_accounts")
    op.drop_index("ix_stripe_accounts_barber_id", table_name="stripe_accounts")
    op.drop_table("stripe_accounts")
    op.drop_index("ix_booking_timeline_event_id", table_name="booking_timeline")
    op.drop_index("ix_booking_timeline_booking_id", table_name="booking_timeline")
    op.drop_table("booking_timeline")
    op.drop_index("ix_bookings_stripe_charge_id", table_name="bookings")
    op.drop_index("ix_bookings_stripe_payment_intent_id", table_name="bookings")
    op.drop_index("ix_bookings_status", table_name="bookings")
    op.drop_index("ix_bookings_client_id", table_name="bookings")
    op.drop_index("ix_bookings_barber_id", table_name="bookings")
    op.drop_table("bookings")
    op.drop_index("ix_services_barber_id", table_name="services")
    op.drop_table("services")
    op.drop_table("profiles")
    op.drop_table("client_profiles")
    op.drop_index("ix_barber_profiles_stripe_account_id", table_name="barber_profiles")
    op.drop_index("ix_barber_profiles_user_id", table_name="barber_profiles")
    op.drop_table("barber_profiles")
