"""Notification service tables."""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import DateTime, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from kutable.common.db import Base, JSONType, utcnow


class Notification(Base):
    """One outbound SMS or email and its delivery state.

    `attempts` counts provider calls; the retry sweep stops at the configured
    maximum. `payload` holds the rendered `subject` and `message`.
    """

    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    booking_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    channel: Mapped[str] = mapped_column(String)
    recipient: Mapped[str] = mapped_column(String)
    template: Mapped[str | None] = mapped_column(String, nullable=True)
    payload: Mapped[dict] = mapped_column(JSONType)
    status: Mapped[str] = mapped_column(String, default="sending", index=True)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    provider_message_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )


class BookingReminder(Base):
    """Marks a reminder as sent for one booking and appointment date."""

    __tablename__ = "booking_reminders"
    __table_args__ = (UniqueConstraint("booking_id", "reminder_type", "appointment_date"),)

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    booking_id: Mapped[str] = mapped_column(String, index=True)
    reminder_type: Mapped[str] = mapped_column(String, default="appointment_reminder")
    appointment_date: Mapped[str] = mapped_column(String)
    sent_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), index=True
    )
