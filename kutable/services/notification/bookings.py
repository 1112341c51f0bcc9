"""Fan-out of booking lifecycle events to barber and client notifications."""

from kutable.common.errors import KutableError, NotFoundError
from kutable.common.logging import booking_id_ctx, logger
from kutable.common.models import BarberProfile, BarberService, Booking, ClientProfile
from kutable.services.notification import templates
from kutable.services.notification.templates import BookingContext


class BookingNotifier:
    """Renders booking templates and sends them through the dispatcher.

    Consent flags on each profile are honored, and a failure for one
    recipient or channel never stops the others.
    """

    def __init__(self, session_factory, dispatcher) -> None:
        self.session_factory = session_factory
        self.dispatcher = dispatcher

    def _load(self, booking_id: str):
        with self.session_factory() as db:
            booking = db.get(Booking, booking_id)
            if booking is None:
                raise NotFoundError("Booking not found")
            barber = db.get(BarberProfile, booking.barber_id)
            client = db.get(ClientProfile, booking.client_id) if booking.client_id else None
            service = db.get(BarberService, booking.service_id) if booking.service_id else None
        return booking, barber, client, service

    def notify(
        self,
        booking_id: str,
        event: str,
        skip_sms: bool = False,
        skip_email: bool = False,
        recipient_override: str = "both",
    ) -> dict:
        booking_id_ctx.set(booking_id)
        booking, barber, client, service = self._load(booking_id)
        location = None
        if barber is not None and barber.address:
            location = ", ".join(part for part in (barber.address, barber.city, barber.state) if part)
        ctx = BookingContext(
            client_first_name=(client.first_name if client else None) or "there",
            client_last_name=(client.last_name if client else None) or "",
            client_phone=client.phone if client else None,
            business_name=barber.business_name if barber else "your barber",
            owner_name=barber.owner_name if barber else None,
            location=location,
            service_name=service.name if service else "appointment",
            appointment_date=booking.appointment_date,
            appointment_time=booking.appointment_time,
            total_amount=f"{booking.total_amount:.2f}",
        )
        results = {"sms": {"barber": False, "client": False}, "email": {"barber": False, "client": False}}

        targets = []
        if recipient_override in ("both", "barber") and barber is not None:
            targets.append(("barber", barber, templates.barber_sms, templates.barber_email))
        if recipient_override in ("both", "client") and client is not None:
            targets.append(("client", client, templates.client_sms, templates.client_email))

        for role, profile, render_sms, render_email in targets:
            if not skip_sms and profile.sms_consent is not False and profile.phone:
                results["sms"][role] = self._send(
                    "sms", profile.phone, render_sms(event, ctx), None, templates.sms_type(event), booking_id, role
                )
            if not skip_email and profile.email_consent is not False and profile.email:
                subject, message = render_email(event, ctx)
                results["email"][role] = self._send(
                    "email", profile.email, message, subject, event, booking_id, role
                )

        logger.info("booking_notifications_processed booking_id=%s event=%s results=%s", booking_id, event, results)
        return {"success": True, "results": results, "event": event, "bookingId": booking_id}

    def _send(self, channel, recipient, message, subject, template, booking_id, role) -> bool:
        try:
            self.dispatcher.send(
                channel, recipient, message, subject=subject, template=template, booking_id=booking_id
            )
        except KutableError as exc:
            # Recorded on the notification row (or rejected before it); the retry sweep takes it from here.
            logger.warning("booking_notification_skipped role=%s channel=%s error=%s", role, channel, exc.message)
            return False
        return True
