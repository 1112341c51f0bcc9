"""Request payloads for direct sends and booking notification fan-out."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class SmsRequest(BaseModel):
    """Payload accepted by `POST /send-sms`."""

    to: str = Field(min_length=1)
    message: str = Field(min_length=1, max_length=1600)
    type: str | None = None
    booking_id: str | None = Field(default=None, alias="bookingId")

    model_config = ConfigDict(populate_by_name=True)


class EmailRequest(BaseModel):
    """Payload accepted by `POST /send-email`."""

    to: str = Field(min_length=3)
    subject: str = Field(min_length=1, max_length=300)
    message: str = Field(min_length=1)
    name: str | None = None
    type: str | None = None
    booking_id: str | None = Field(default=None, alias="bookingId")

    model_config = ConfigDict(populate_by_name=True)


class BookingNotificationRequest(BaseModel):
    """Payload accepted by `POST /process-booking-notifications`."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    booking_id: str = Field(min_length=1)
    event: Literal[
        "booking_created",
        "booking_confirmed",
        "booking_cancelled",
        "booking_rescheduled",
        "appointment_reminder",
    ]
    skip_sms: bool = Field(default=False, alias="skipSMS")
    skip_email: bool = False
    recipient_override: Literal["barber", "client", "both"] = "both"
