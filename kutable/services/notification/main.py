"""HTTP surface for SMS/email dispatch, booking fan-out, reminders, retries and delivery callbacks."""

from urllib.parse import parse_qsl

from fastapi import Header, Request
from starlette.concurrency import run_in_threadpool

from kutable.common.auth import enforce_service_role
from kutable.common.config import settings
from kutable.common.db import SessionLocal
from kutable.common.http import create_app
from kutable.common.logging import configure_logging, log_startup_config
from kutable.common.tracing import setup_tracing
from kutable.services.notification.bookings import BookingNotifier
from kutable.services.notification.providers import ResendEmailProvider, TwilioSmsProvider
from kutable.services.notification.reminders import ReminderScheduler
from kutable.services.notification.schemas import BookingNotificationRequest, EmailRequest, SmsRequest
from kutable.services.notification.service import NotificationDispatcher

configure_logging()
setup_tracing(settings.service_name)
log_startup_config(
    settings.service_name,
    [
        "SERVICE_NAME",
        "POSTGRES_DSN",
        "TWILIO_ACCOUNT_SID",
        "TWILIO_MESSAGING_SERVICE_SID",
        "RESEND_API_KEY",
        "RESEND_FROM",
        "RESEND_WEBHOOK_SECRET",
        "NOTIFICATION_PUBLIC_URL",
        "NOTIFICATION_MAX_ATTEMPTS",
        "NOTIFICATION_RETRY_BATCH_SIZE",
    ],
)
service = NotificationDispatcher(SessionLocal, {"sms": TwilioSmsProvider(), "email": ResendEmailProvider()})
notifier = BookingNotifier(SessionLocal, service)
reminders = ReminderScheduler(SessionLocal, notifier)

app = create_app("Kutable Notifications")


@app.post("/send-sms")
def send_sms(req: SmsRequest, authorization: str | None = Header(default=None)):
    """Send one SMS through the Twilio Messaging Service."""

    enforce_service_role(authorization)
    return service.send("sms", req.to, req.message, template=req.type, booking_id=req.booking_id)


@app.post("/send-email")
def send_email(req: EmailRequest, authorization: str | None = Header(default=None)):
    """Send one email through Resend."""

    enforce_service_role(authorization)
    return service.send("email", req.to, req.message, subject=req.subject, template=req.type, booking_id=req.booking_id)


@app.post("/process-booking-notifications")
def process_booking_notifications(req: BookingNotificationRequest, authorization: str | None = Header(default=None)):
    """Notify barber and/or client about a booking lifecycle event."""

    enforce_service_role(authorization)
    return notifier.notify(
        req.booking_id,
        req.event,
        skip_sms=req.skip_sms,
        skip_email=req.skip_email,
        recipient_override=req.recipient_override,
    )


@app.post("/send-reminders")
def send_reminders(authorization: str | None = Header(default=None)):
    """Send reminders for tomorrow's confirmed appointments; called daily by a scheduler."""

    enforce_service_role(authorization)
    return reminders.run()


@app.post("/retry-notifications")
def retry_notifications(authorization: str | None = Header(default=None)):
    """Run one retry sweep; called by an external scheduler."""

    enforce_service_role(authorization)
    return service.retry_failed()


@app.post("/resend-webhook")
async def resend_webhook(
    request: Request,
    svix_id: str | None = Header(default=None),
    svix_timestamp: str | None = Header(default=None),
    svix_signature: str | None = Header(default=None),
):
    """Apply a Resend delivery event to its notification row."""

    body = await request.body()
    return await run_in_threadpool(service.handle_resend_event, body, svix_id, svix_timestamp, svix_signature)


def public_url(request: Request) -> str:
    """The URL Twilio signed: the configured public base when set, else the request URL."""

    if not settings.notification_public_url:
        return str(request.url)
    url = settings.notification_public_url.rstrip("/") + request.url.path
    return f"{url}?{request.url.query}" if request.url.query else url


@app.post("/twilio-status")
async def twilio_status(request: Request, x_twilio_signature: str | None = Header(default=None)):
    """Apply a Twilio message status callback to its notification row."""

    params = dict(parse_qsl((await request.body()).decode("utf-8"), keep_blank_values=True))
    return await run_in_threadpool(service.handle_twilio_status, public_url(request), params, x_twilio_signature)
