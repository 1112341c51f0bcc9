"""Booking payment initiation.

Creates pending bookings together with their Stripe PaymentIntent or Checkout
Session, runs the compensating action when the second half of that pair
fails, and processes customer refunds. Bookings only become `confirmed`
through verified webhooks, never here.
"""

from contextlib import contextmanager
from decimal import ROUND_HALF_UP, Decimal
from time import perf_counter
from urllib.parse import urlparse
from uuid import uuid4

from sqlalchemy import delete

from kutable.common.bookings import PAYMENT_FAILED_REASON, can_confirm, transition_booking
from kutable.common.config import settings
from kutable.common.errors import (
    ConflictError,
    InternalError,
    KutableError,
    NotFoundError,
    UpstreamProviderError,
    ValidationError,
)
from kutable.common.logging import booking_id_ctx, logger
from kutable.common.metrics import (
    booking_confirmed_total,
    booking_failures_total,
    booking_latency_seconds,
    booking_requests_total,
    compensations_total,
)
from kutable.common.models import BarberProfile, Booking, BookingTimeline

CENT = Decimal("0.01")
PAYMENT_NOT_COMPLETED = "PAYMENT_NOT_COMPLETED"
# Intent states after which the client has to start a new payment attempt.
FAILED_INTENT_STATUSES = ("requires_payment_method", "canceled")


def platform_fee(total_amount: Decimal, rate: Decimal | None = None) -> Decimal:
    """Platform fee in dollars, rounded half-up to whole cents."""

    rate = Decimal(settings.platform_fee_rate) if rate is None else rate
    return (Decimal(total_amount) * rate).quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def _is_https_url(value: str | None) -> bool:
    if not value:
        return False
    parsed = urlparse(value)
    return parsed.scheme.lower() == "https" and bool(parsed.netloc)


class PaymentService:
    """Owns the pending-booking plus provider-object pair for each payment flow."""

    def __init__(self, session_factory, gateway, accounts, notifier, service_name: str = "payments") -> None:
        self.session_factory = session_factory
        self.gateway = gateway
        self.accounts = accounts
        self.notifier = notifier
        self.service_name = service_name

    @contextmanager
    def _observe(self, flow: str):
        booking_requests_total.labels(service=self.service_name, flow=flow).inc()
        start = perf_counter()
        try:
            yield
        except KutableError as exc:
            booking_failures_total.labels(
                service=self.service_name, flow=flow, error_code=exc.error_code or type(exc).__name__
            ).inc()
            raise
        finally:
            booking_latency_seconds.labels(service=self.service_name, flow=flow).observe(perf_counter() - start)

    def create_payment_intent(self, req) -> dict:
        """Create the destination-charge PaymentIntent, then exactly one pending booking.

        If the booking insert fails the intent is cancelled so no chargeable
        intent is left without a booking.
        """

        with self._observe("payment_intent"):
            account_id = self.accounts.ensure_can_accept_payments(req.barber_id)
            fee = platform_fee(req.total_amount)
            booking_id = str(uuid4())
            booking_id_ctx.set(booking_id)
            details = req.client_details

            intent = self.gateway.create_payment_intent(
                idempotency_key=f"booking:{booking_id}:pi",
                amount=to_cents(req.total_amount),
                currency="usd",
                automatic_payment_methods={"enabled": True},
                application_fee_amount=to_cents(fee),
                transfer_data={"destination": account_id},
                receipt_email=details.email,
                metadata={
                    "bookingId": booking_id,
                    "barberId": req.barber_id,
                    "clientId": req.client_id or "",
                    "serviceId": req.service_id,
                    "appointmentDate": req.appointment_date,
                    "appointmentTime": req.appointment_time,
                    "clientName": f"{details.first_name} {details.last_name}",
                    "applicationFee": str(to_cents(fee)),
                },
            )
            logger.info("payment_intent_created payment_intent_id=%s amount=%s", intent["id"], intent.get("amount"))

            try:
                with self.session_factory() as db:
                    db.add(
                        Booking(
                            id=booking_id,
                            barber_id=req.barber_id,
                            client_id=req.client_id,
                            service_id=req.service_id,
                            appointment_date=req.appointment_date,
                            appointment_time=req.appointment_time,
                            total_amount=req.total_amount,
                            deposit_amount=req.deposit_amount,
                            platform_fee=fee,
                            status="pending",
                            stripe_payment_intent_id=intent["id"],
                            notes=details.notes,
                        )
                    )
                    db.add(
                        BookingTimeline(
                            booking_id=booking_id, from_state=None, to_state="pending", reason="payment_intent_created"
                        )
                    )
                    db.commit()
            except Exception as exc:
                logger.exception("booking_insert_failed payment_intent_id=%s error=%s", intent["id"], exc)
                self._cancel_intent(intent["id"], booking_id)
                raise InternalError("Could not create your booking. Please try again.") from exc

            return {
                "success": True,
                "clientSecret": intent["client_secret"],
                "bookingId": booking_id,
                "paymentIntentId": intent["id"],
            }

    def _cancel_intent(self, payment_intent_id: str, booking_id: str) -> None:
        compensations_total.labels(service=self.service_name, action="cancel_payment_intent").inc()
        try:
            self.gateway.cancel_payment_intent(payment_intent_id, idempotency_key=f"booking:{booking_id}:pi-cancel")
            logger.info("payment_intent_cancelled payment_intent_id=%s", payment_intent_id)
        except UpstreamProviderError:
            # Unconfirmed intents expire on Stripe's side; nothing else to undo.
            logger.error("compensation_failed action=cancel_payment_intent payment_intent_id=%s", payment_intent_id)

    @staticmethod
    def validate_checkout_request(req) -> None:
        """Reject checkout requests Stripe would refuse or that cannot make a booking."""

        if not _is_https_url(req.success_url) or not _is_https_url(req.cancel_url):
            raise ValidationError("successUrl/cancelUrl must be absolute https URLs")
        if req.customer_email and req.customer_id:
            raise ValidationError("Send either customerEmail or customerId, not both")
        if req.price_id and (req.amount is not None or req.currency or req.name):
            raise ValidationError("Provide priceId OR amount+currency+name, not both")
        if not req.price_id and (req.amount is None or not req.currency or not req.name):
            raise ValidationError("Provide priceId OR amount+currency+name")
        if req.amount is not None and req.amount <= 0:
            raise ValidationError("amount must be integer cents > 0")
        meta = req.metadata
        if not all([meta.barber_id, meta.client_id, meta.service_id, meta.appointment_date, meta.appointment_time]):
            raise ValidationError("Missing booking details in metadata")

    def create_checkout_session(self, req) -> dict:
        """Insert the pending booking, then open a hosted Checkout Session for it.

        The booking is deleted again when Stripe refuses the session.
        """

        with self._observe("checkout"):
            self.validate_checkout_request(req)
            meta = req.metadata

            if req.price_id:
                price = self.gateway.retrieve_price(req.price_id)
                amount_cents = int(price.get("unit_amount") or 0)
                currency = price.get("currency") or "usd"
            else:
                amount_cents = req.amount
                currency = req.currency.lower()
            total_amount = (Decimal(amount_cents) / 100).quantize(CENT)
            fee = platform_fee(total_amount)

            with self.session_factory() as db:
                barber = db.get(BarberProfile, meta.barber_id)
                if barber is None:
                    raise NotFoundError("Barber profile not found")
                destination = req.connected_account_id or barber.stripe_account_id
                booking = Booking(
                    barber_id=meta.barber_id,
                    client_id=meta.client_id,
                    service_id=meta.service_id,
                    appointment_date=meta.appointment_date,
                    appointment_time=meta.appointment_time,
                    total_amount=total_amount,
                    deposit_amount=Decimal("0"),
                    platform_fee=fee,
                    status="pending",
                    notes=meta.notes,
                )
                db.add(booking)
                db.flush()
                db.add(
                    BookingTimeline(booking_id=booking.id, from_state=None, to_state="pending", reason="checkout_started")
                )
                db.commit()
                booking_id = booking.id
            booking_id_ctx.set(booking_id)

            metadata = {
                key: str(value)[:500]
                for key, value in meta.model_dump(by_alias=True, exclude_none=True).items()
            }
            metadata["bookingId"] = booking_id
            params: dict = {
                "mode": req.mode,
                "success_url": req.success_url,
                "cancel_url": req.cancel_url,
                "metadata": metadata,
            }
            if req.customer_email:
                params["customer_email"] = req.customer_email
            if req.customer_id:
                params["customer"] = req.customer_id
            if req.price_id:
                params["line_items"] = [{"price": req.price_id, "quantity": 1}]
            else:
                params["line_items"] = [
                    {
                        "quantity": 1,
                        "price_data": {
                            "currency": currency,
                            "unit_amount": amount_cents,
                            "product_data": {"name": req.name},
                        },
                    }
                ]
            if destination and req.mode == "payment":
                params["payment_intent_data"] = {
                    "application_fee_amount": to_cents(fee),
                    "transfer_data": {"destination": destination},
                    "metadata": {"bookingId": booking_id},
                }

            try:
                session = self.gateway.create_checkout_session(idempotency_key=f"booking:{booking_id}:checkout", **params)
            except UpstreamProviderError:
                self._delete_booking(booking_id)
                raise

            with self.session_factory() as db:
                booking = db.get(Booking, booking_id)
                booking.stripe_checkout_session_id = session["id"]
                db.commit()
            logger.info("checkout_session_created session_id=%s", session["id"])
            return {"success": True, "sessionId": session["id"], "url": session.get("url"), "bookingId": booking_id}

    def _delete_booking(self, booking_id: str) -> None:
        compensations_total.labels(service=self.service_name, action="delete_booking").inc()
        with self.session_factory() as db:
            db.execute(delete(BookingTimeline).where(BookingTimeline.booking_id == booking_id))
            db.execute(delete(Booking).where(Booking.id == booking_id))
            db.commit()
        logger.info("pending_booking_deleted booking_id=%s", booking_id)

    def confirm_payment(self, payment_intent_id: str, booking_id: str) -> dict:
        """Confirm a booking from the client after checkout, using Stripe as the source of truth.

        The intent is re-read from Stripe and the booking only becomes
        `confirmed` when its status is `succeeded`. Whichever of this call and
        the webhook applies the transition first sends the notification; the
        other one changes nothing.
        """

        booking_id_ctx.set(booking_id)
        with self._observe("confirm"):
            with self.session_factory() as db:
                booking = db.get(Booking, booking_id)
                if booking is None:
                    raise NotFoundError("Booking not found")
                if booking.stripe_payment_intent_id and booking.stripe_payment_intent_id != payment_intent_id:
                    raise ValidationError("Payment intent does not belong to this booking")

            intent = self.gateway.retrieve_payment_intent(payment_intent_id)
            payment_status = intent.get("status")
            charge = intent.get("latest_charge")
            charge_id = charge.get("id") if isinstance(charge, dict) else charge

            applied = False
            with self.session_factory() as db:
                booking = db.get(Booking, booking_id)
                if payment_status == "succeeded":
                    if can_confirm(db, booking):
                        values = {"stripe_payment_intent_id": payment_intent_id}
                        if charge_id:
                            values["stripe_charge_id"] = charge_id
                        applied = transition_booking(db, booking, "confirmed", reason="client_confirmed", **values)
                    elif booking.status == "cancelled":
                        raise ConflictError("This booking was cancelled and can no longer be confirmed")
                elif payment_status in FAILED_INTENT_STATUSES and booking.status == "pending":
                    transition_booking(db, booking, "cancelled", reason=f"{PAYMENT_FAILED_REASON}:{payment_status}")
                db.commit()
                status = booking.status

            logger.info(
                "payment_confirm_checked payment_intent_id=%s payment_status=%s booking_status=%s applied=%s",
                payment_intent_id,
                payment_status,
                status,
                applied,
            )
            if payment_status != "succeeded":
                raise ValidationError("Payment was not completed successfully", error_code=PAYMENT_NOT_COMPLETED)
            if applied:
                booking_confirmed_total.labels(service=self.service_name, source="client_confirmed").inc()
                self.notifier.dispatch(booking_id, "booking_confirmed")
            return {"success": True, "bookingId": booking_id, "status": status, "paymentStatus": payment_status}

    def process_refund(self, payment_intent_id: str, booking_id: str) -> dict:
        """Refund the intent's charge, cancel the booking and tell the client."""

        booking_id_ctx.set(booking_id)
        with self.session_factory() as db:
            booking = db.get(Booking, booking_id)
            if booking is None:
                raise NotFoundError("Booking not found")
            if booking.stripe_payment_intent_id and booking.stripe_payment_intent_id != payment_intent_id:
                raise ValidationError("Payment intent does not belong to this booking")

        intent = self.gateway.retrieve_payment_intent(payment_intent_id)
        charge = intent.get("latest_charge")
        if isinstance(charge, str):
            charge = {"id": charge, "refunded": False}
        if not charge:
            charges = (intent.get("charges") or {}).get("data") or []
            charge = charges[0] if charges else None
        if not charge or not charge.get("id"):
            raise NotFoundError("No charge found for this payment intent")
        if charge.get("refunded"):
            raise ValidationError("This payment has already been refunded")

        refund = self.gateway.create_refund(charge["id"], idempotency_key=f"booking:{booking_id}:refund")
        logger.info("refund_created refund_id=%s charge_id=%s amount=%s", refund["id"], charge["id"], refund.get("amount"))

        with self.session_factory() as db:
            booking = db.get(Booking, booking_id)
            try:
                transition_booking(db, booking, "cancelled", reason="refund_processed", stripe_charge_id=charge["id"])
            except ValueError as exc:
                logger.warning("refund_transition_skipped status=%s error=%s", booking.status, exc)
            db.commit()

        self.notifier.dispatch(booking_id, "booking_cancelled")
        return {
            "success": True,
            "refund": {
                "id": refund["id"],
                "amount": refund.get("amount"),
                "status": refund.get("status"),
                "created": refund.get("created"),
            },
        }
