"""HTTP surface for booking payment initiation and confirmation, Connect onboarding and refunds."""

from fastapi import Header

from kutable.common.auth import enforce_service_role
from kutable.common.config import settings
from kutable.common.db import SessionLocal
from kutable.common.http import create_app
from kutable.common.logging import configure_logging, log_startup_config
from kutable.common.notify import BookingNotificationClient
from kutable.common.tracing import setup_tracing
from kutable.services.payments.accounts import StripeAccountManager
from kutable.services.payments.schemas import (
    CheckoutSessionRequest,
    CheckStatusRequest,
    ConfirmPaymentRequest,
    CreateAccountRequest,
    DisconnectAccountRequest,
    PaymentIntentRequest,
    RefundRequest,
)
from kutable.services.payments.service import PaymentService
from kutable.services.payments.stripe_client import StripeGateway

configure_logging()
setup_tracing(settings.service_name)
log_startup_config(
    settings.service_name,
    ["SERVICE_NAME", "POSTGRES_DSN", "STRIPE_SECRET_KEY", "STRIPE_API_VERSION", "SITE_URL", "NOTIFICATION_URL"],
)
gateway = StripeGateway()
accounts = StripeAccountManager(SessionLocal, gateway)
service = PaymentService(SessionLocal, gateway, accounts, BookingNotificationClient())

app = create_app("Kutable Payments")


@app.post("/create-payment-intent")
def create_payment_intent(req: PaymentIntentRequest):
    """Create a PaymentIntent plus its pending booking."""

    return service.create_payment_intent(req)


@app.post("/create-checkout-session")
def create_checkout_session(req: CheckoutSessionRequest):
    """Create a pending booking plus a hosted Checkout Session."""

    return service.create_checkout_session(req)


@app.post("/confirm-payment")
def confirm_payment(req: ConfirmPaymentRequest):
    """Confirm a booking once Stripe reports its PaymentIntent as succeeded."""

    return service.confirm_payment(req.payment_intent_id, req.booking_id)


@app.post("/create-stripe-account")
def create_stripe_account(req: CreateAccountRequest):
    """Create or reuse the barber's Express account and return an onboarding URL."""

    return accounts.create_account(req)


@app.post("/check-stripe-status")
def check_stripe_status(req: CheckStatusRequest):
    """Poll and persist the connected account's capability status."""

    return accounts.check_status(req.account_id)


@app.post("/disconnect-stripe-account")
def disconnect_stripe_account(req: DisconnectAccountRequest, authorization: str | None = Header(default=None)):
    """Detach the barber's connected account (service-role callers only)."""

    enforce_service_role(authorization)
    return accounts.disconnect_account(req.barber_id)


@app.post("/process-refund")
def process_refund(req: RefundRequest, authorization: str | None = Header(default=None)):
    """Refund a booking payment and cancel the booking (service-role callers only)."""

    enforce_service_role(authorization)
    return service.process_refund(req.payment_intent_id, req.booking_id)
