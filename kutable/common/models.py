"""Marketplace tables read by several services.

Barber and client profiles, services, bookings and connected accounts are shared by the payment,
webhook, notification and claim services. Service-owned tables live next to
their service.
"""

from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from kutable.common.db import Base, utcnow


def _uuid() -> str:
    return str(uuid4())


class BarberProfile(Base):
    """Directory listing for one barber, claimable by its owner."""

    __tablename__ = "barber_profiles"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    user_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    slug: Mapped[str] = mapped_column(String, unique=True)
    business_name: Mapped[str] = mapped_column(String)
    owner_name: Mapped[str | None] = mapped_column(String, nullable=True)
    phone: Mapped[str | None] = mapped_column(String, nullable=True)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    address: Mapped[str | None] = mapped_column(String, nullable=True)
    city: Mapped[str | None] = mapped_column(String, nullable=True)
    state: Mapped[str | None] = mapped_column(String, nullable=True)
    zip_code: Mapped[str | None] = mapped_column(String, nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_claimed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    import_source: Mapped[str | None] = mapped_column(String, nullable=True)
    import_external_id: Mapped[str | None] = mapped_column(String, nullable=True)
    stripe_account_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    stripe_onboarding_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sms_consent: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    email_consent: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )


class ClientProfile(Base):
    """Booking client; `id` is the auth user id."""

    __tablename__ = "client_profiles"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    first_name: Mapped[str | None] = mapped_column(String, nullable=True)
    last_name: Mapped[str | None] = mapped_column(String, nullable=True)
    phone: Mapped[str | None] = mapped_column(String, nullable=True)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    sms_consent: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    email_consent: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class BarberService(Base):
    """A service a barber offers (cut, shave, ...)."""

    __tablename__ = "services"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    barber_id: Mapped[str] = mapped_column(ForeignKey("barber_profiles.id"), index=True)
    name: Mapped[str] = mapped_column(String)
    duration_minutes: Mapped[int] = mapped_column(Integer, default=30)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2))


class UserProfile(Base):
    """Mirror of auth users keyed by user id, searchable by lower-cased email."""

    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    user_type: Mapped[str | None] = mapped_column(String, nullable=True)


class Booking(Base):
    """Current state of one appointment and its payment references."""

    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    barber_id: Mapped[str] = mapped_column(ForeignKey("barber_profiles.id"), index=True)
    client_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    service_id: Mapped[str | None] = mapped_column(String, nullable=True)
    appointment_date: Mapped[str] = mapped_column(String)
    appointment_time: Mapped[str] = mapped_column(String)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    deposit_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    platform_fee: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    status: Mapped[str] = mapped_column(String, default="pending", index=True)
    state_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    stripe_payment_intent_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    stripe_charge_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    stripe_checkout_session_id: Mapped[str | None] = mapped_column(String, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )


class BookingTimeline(Base):
    """Immutable audit trail of every booking status transition."""

    __tablename__ = "booking_timeline"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    booking_id: Mapped[str] = mapped_column(ForeignKey("bookings.id"), index=True)
    from_state: Mapped[str | None] = mapped_column(String, nullable=True)
    to_state: Mapped[str] = mapped_column(String)
    reason: Mapped[str] = mapped_column(String)
    event_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())


class StripeAccount(Base):
    """Last known capability snapshot of a barber's Stripe Express account.

    One row per barber; `stripe_account_id` is the upsert key used by both the
    status poller and `account.updated` webhooks.
    """

    __tablename__ = "stripe_accounts"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    barber_id: Mapped[str] = mapped_column(ForeignKey("barber_profiles.id"), unique=True, index=True)
    stripe_account_id: Mapped[str] = mapped_column(String, unique=True, index=True)
    account_status: Mapped[str] = mapped_column(String, default="pending")
    charges_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    payouts_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    details_submitted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )


Index("ix_barber_profiles_slug_lower", func.lower(BarberProfile.slug))
Index("ix_profiles_email_lower", func.lower(UserProfile.email))
