"""Webhook-owned tables: the processed-event inbox and the platform ledger."""

from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import DateTime, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from kutable.common.db import Base, utcnow


class ProcessedWebhookEvent(Base):
    """Deduplication table for provider events, written with the state change."""

    __tablename__ = "processed_webhook_events"

    event_id: Mapped[str] = mapped_column(String, primary_key=True)
    consumer: Mapped[str] = mapped_column(String, primary_key=True)
    event_type: Mapped[str] = mapped_column(String)
    processed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())


class PlatformTransaction(Base):
    """Immutable ledger row per Stripe transfer to a barber."""

    __tablename__ = "platform_transactions"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    booking_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    barber_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    transaction_type: Mapped[str] = mapped_column(String, default="booking")
    gross_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    platform_fee: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    net_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    stripe_transaction_id: Mapped[str] = mapped_column(String, unique=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())
