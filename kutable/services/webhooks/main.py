"""Stripe webhook endpoint.

Verification and state changes happen inside the request; confirmation
notifications run as background tasks after the acknowledgement is sent.
"""

from fastapi import BackgroundTasks, Header, Request
from starlette.concurrency import run_in_threadpool

from kutable.common.config import settings
from kutable.common.db import SessionLocal
from kutable.common.http import create_app
from kutable.common.logging import configure_logging, log_startup_config
from kutable.common.notify import BookingNotificationClient
from kutable.common.tracing import setup_tracing
from kutable.services.webhooks.service import StripeWebhookReconciler

configure_logging()
setup_tracing(settings.service_name)
log_startup_config(settings.service_name, ["SERVICE_NAME", "POSTGRES_DSN", "STRIPE_WEBHOOK_SECRET", "NOTIFICATION_URL"])
service = StripeWebhookReconciler(SessionLocal)
notifier = BookingNotificationClient()

app = create_app("Kutable Stripe Webhooks")


@app.post("/stripe-webhook")
async def stripe_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    stripe_signature: str | None = Header(default=None),
):
    """Verify, reconcile and acknowledge one Stripe event."""

    payload = await request.body()
    event = service.verify(payload, stripe_signature)
    for booking_id, notification_event in await run_in_threadpool(service.handle, event):
        background_tasks.add_task(notifier.dispatch, booking_id, notification_event)
    return {"received": True}
