"""Booking notification copy for barbers and clients."""

from dataclasses import dataclass
from datetime import date

BOOKING_EVENTS = (
    "booking_created",
    "booking_confirmed",
    "booking_cancelled",
    "booking_rescheduled",
    "appointment_reminder",
)


@dataclass
class BookingContext:
    client_first_name: str
    client_last_name: str
    client_phone: str | None
    business_name: str
    owner_name: str | None
    location: str | None
    service_name: str
    appointment_date: str
    appointment_time: str
    total_amount: str

    @property
    def client_name(self) -> str:
        return f"{self.client_first_name} {self.client_last_name}".strip()

    @property
    def formatted_date(self) -> str:
        try:
            day = date.fromisoformat(self.appointment_date)
        except ValueError:
            return self.appointment_date
        return f"{day:%A, %B} {day.day}, {day.year}"


def sms_type(event: str) -> str:
    if event in ("booking_created", "booking_confirmed"):
        return "booking_confirmation"
    if event == "appointment_reminder":
        return "booking_reminder"
    return "booking_update"


_BARBER_SMS = {
    "booking_created": (
        "New Booking Request!\n\n{client_name} wants to book {service_name}.\n\n"
        "Date: {formatted_date}\nTime: {appointment_time}\nTotal: ${total_amount}\n\n"
        "Please confirm in your dashboard.\n\n- Kutable"
    ),
    "booking_confirmed": (
        "Booking Confirmed!\n\n{client_name}'s {service_name} appointment is paid and confirmed.\n\n"
        "Date: {formatted_date}\nTime: {appointment_time}\nTotal: ${total_amount}\n\n- Kutable"
    ),
    "booking_cancelled": (
        "Booking Cancelled\n\n{client_name}'s {service_name} appointment on {formatted_date} "
        "at {appointment_time} was cancelled.\n\nNo action needed.\n\n- Kutable"
    ),
    "appointment_reminder": (
        "Appointment Tomorrow\n\nReminder: {client_name} has {service_name} tomorrow at {appointment_time}.\n\n"
        "Contact: {client_contact}\n\n- Kutable"
    ),
}
_BARBER_SMS_DEFAULT = (
    "Booking Update\n\nThere's an update for {client_name}'s {service_name} appointment. "
    "Check your dashboard for details.\n\n- Kutable"
)

_CLIENT_SMS = {
    "booking_created": (
        "Booking Submitted!\n\nHi {client_first_name}! Your {service_name} request at {business_name} "
        "has been submitted.\n\nDate: {formatted_date}\nTime: {appointment_time}\nTotal: ${total_amount}\n\n"
        "We'll notify you once confirmed!\n\n- Kutable"
    ),
    "booking_confirmed": (
        "Booking Confirmed!\n\nHi {client_first_name}! Your {service_name} appointment at {business_name} "
        "is confirmed.\n\nDate: {formatted_date}\nTime: {appointment_time}\nTotal: ${total_amount}\n\n"
        "We'll remind you 24hrs before!\n\n- Kutable"
    ),
    "booking_cancelled": (
        "Booking Cancelled\n\nHi {client_first_name}! Your {service_name} appointment at {business_name} "
        "on {formatted_date} at {appointment_time} has been cancelled.\n\n- Kutable"
    ),
    "appointment_reminder": (
        "Appointment Reminder\n\nHi {client_first_name}! Don't forget your {service_name} appointment at "
        "{business_name} tomorrow at {appointment_time}.\n\nLocation: {client_location}\n\n- Kutable"
    ),
}
_CLIENT_SMS_DEFAULT = (
    "Booking Update\n\nHi {client_first_name}! There's an update regarding your {service_name} appointment "
    "at {business_name}. Check your dashboard for details.\n\n- Kutable"
)

_BARBER_SUBJECTS = {
    "booking_created": "New Booking Request from {client_name}",
    "booking_confirmed": "Booking Confirmed with {client_name}",
    "booking_cancelled": "Booking Cancelled - {client_name}",
    "appointment_reminder": "Tomorrow's Appointment - {client_name}",
}
_CLIENT_SUBJECTS = {
    "booking_created": "Booking Request Submitted - {business_name}",
    "booking_confirmed": "Your Appointment is Confirmed - {business_name}",
    "booking_cancelled": "Appointment Cancelled - {business_name}",
    "appointment_reminder": "Reminder: Your Appointment Tomorrow - {business_name}",
}

_EMAIL_BODY = (
    "Hi {greeting},\n\n{summary}\n\n"
    "Service: {service_name}\nDate: {formatted_date}\nTime: {appointment_time}\nTotal: ${total_amount}\n\n"
    "Thanks for using Kutable."
)


def _fields(ctx: BookingContext) -> dict:
    return {
        "client_name": ctx.client_name,
        "client_first_name": ctx.client_first_name,
        "client_contact": ctx.client_phone or "No phone provided",
        "client_location": ctx.location or "Contact barber for location",
        "business_name": ctx.business_name,
        "service_name": ctx.service_name,
        "formatted_date": ctx.formatted_date,
        "appointment_time": ctx.appointment_time,
        "total_amount": ctx.total_amount,
    }


def barber_sms(event: str, ctx: BookingContext) -> str:
    return _BARBER_SMS.get(event, _BARBER_SMS_DEFAULT).format(**_fields(ctx))


def client_sms(event: str, ctx: BookingContext) -> str:
    return _CLIENT_SMS.get(event, _CLIENT_SMS_DEFAULT).format(**_fields(ctx))


def barber_email(event: str, ctx: BookingContext) -> tuple[str, str]:
    fields = _fields(ctx)
    subject = _BARBER_SUBJECTS.get(event, "Booking Update - {client_name}").format(**fields)
    summary = barber_sms(event, ctx).split("\n\n")[1]
    return subject, _EMAIL_BODY.format(greeting=ctx.owner_name or ctx.business_name, summary=summary, **fields)


def client_email(event: str, ctx: BookingContext) -> tuple[str, str]:
    fields = _fields(ctx)
    subject = _CLIENT_SUBJECTS.get(event, "Appointment Update - {business_name}").format(**fields)
    summary = client_sms(event, ctx).split("\n\n")[1]
    return subject, _EMAIL_BODY.format(greeting=ctx.client_first_name, summary=summary, **fields)
