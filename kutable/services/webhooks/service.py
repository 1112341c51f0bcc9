"""Stripe webhook reconciliation.

Verifies event signatures, applies booking transitions exactly once per event
id via the `processed_webhook_events` inbox, records transfers in the platform
ledger and mirrors connected-account status. Booking confirmations hand back
follow-up notifications for the caller to dispatch after the response.
"""

import json
from decimal import Decimal

import stripe
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from kutable.common.bookings import PAYMENT_FAILED_REASON, can_confirm, transition_booking
from kutable.common.config import settings
from kutable.common.errors import ValidationError
from kutable.common.logging import booking_id_ctx, event_id_ctx, logger
from kutable.common.metrics import booking_confirmed_total, duplicate_events_skipped_total, webhook_events_total
from kutable.common.models import BarberProfile, Booking, StripeAccount
from kutable.common.state_machine import can_transition
from kutable.common.stripe_accounts import account_status_for, set_onboarding_completed, upsert_account_snapshot
from kutable.services.webhooks.models import PlatformTransaction, ProcessedWebhookEvent

SIGNATURE_TOLERANCE_SECONDS = 300


def _charge_id(payment_intent: dict) -> str | None:
    latest = payment_intent.get("latest_charge")
    if isinstance(latest, dict):
        return latest.get("id")
    if latest:
        return latest
    charges = (payment_intent.get("charges") or {}).get("data") or []
    return charges[0].get("id") if charges else None


def _cents_to_dollars(cents) -> Decimal:
    return (Decimal(int(cents or 0)) / 100).quantize(Decimal("0.01"))


class StripeWebhookReconciler:
    """Turns verified Stripe events into booking, ledger and account updates."""

    def __init__(self, session_factory, webhook_secret: str | None = None, service_name: str = "webhooks") -> None:
        self.session_factory = session_factory
        self.webhook_secret = webhook_secret or settings.stripe_webhook_secret
        self.service_name = service_name
        self._handlers = {
            "checkout.session.completed": self._checkout_completed,
            "payment_intent.succeeded": self._payment_succeeded,
            "payment_intent.payment_failed": self._payment_failed,
            "charge.dispute.created": self._dispute_created,
            "transfer.created": self._transfer_created,
            "account.updated": self._account_updated,
        }

    def verify(self, payload: bytes, signature: str | None) -> dict:
        """Check the `stripe-signature` header and decode the event body."""

        if not signature:
            raise ValidationError("Missing Stripe signature")
        try:
            text = payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(text, signature, self.webhook_secret, SIGNATURE_TOLERANCE_SECONDS)
            event = json.loads(text)
        except stripe.SignatureVerificationError as exc:
            logger.warning("stripe_signature_invalid error=%s", exc)
            raise ValidationError("Invalid Stripe signature") from exc
        except ValueError as exc:
            raise ValidationError("Invalid webhook payload") from exc
        if not isinstance(event, dict) or not event.get("id") or not event.get("type"):
            raise ValidationError("Invalid webhook payload")
        return event

    def _inbox_seen(self, db, event_id: str) -> bool:
        return db.get(ProcessedWebhookEvent, (event_id, self.service_name)) is not None

    def _mark_inbox(self, db, event_id: str, event_type: str) -> None:
        db.add(ProcessedWebhookEvent(event_id=event_id, consumer=self.service_name, event_type=event_type))

    def _record_duplicate_skip(self, event_type: str) -> None:
        duplicate_events_skipped_total.labels(service=self.service_name, event_type=event_type).inc()
        webhook_events_total.labels(service=self.service_name, event_type=event_type, outcome="duplicate").inc()

    def handle(self, event: dict) -> list[tuple[str, str]]:
        """Apply one verified event at most once.

        Returns `(booking_id, notification_event)` pairs for transitions that
        actually happened in this call.
        """

        event_id = event["id"]
        event_type = event["type"]
        event_id_ctx.set(event_id)
        obj = (event.get("data") or {}).get("object") or {}
        handler = self._handlers.get(event_type)

        with self.session_factory() as db:
            if self._inbox_seen(db, event_id):
                logger.info("duplicate event skipped type=%s event_id=%s", event_type, event_id)
                self._record_duplicate_skip(event_type)
                return []
            self._mark_inbox(db, event_id, event_type)
            try:
                db.flush()
            except IntegrityError:
                # A concurrent delivery of the same event got there first.
                db.rollback()
                logger.info("duplicate event skipped type=%s event_id=%s", event_type, event_id)
                self._record_duplicate_skip(event_type)
                return []
            if handler is None:
                logger.info("stripe_event_ignored type=%s event_id=%s", event_type, event_id)
                follow_ups = []
                outcome = "ignored"
            else:
                follow_ups = handler(db, event_id, obj)
                outcome = "processed"
            db.commit()

        webhook_events_total.labels(service=self.service_name, event_type=event_type, outcome=outcome).inc()
        return follow_ups

    def _find_booking(self, db, booking_id: str | None = None, payment_intent_id: str | None = None, charge_id: str | None = None):
        if booking_id:
            booking = db.get(Booking, booking_id)
            if booking is not None:
                return booking
        if charge_id:
            booking = db.execute(select(Booking).where(Booking.stripe_charge_id == charge_id)).scalars().first()
            if booking is not None:
                return booking
        if payment_intent_id:
            return db.execute(
                select(Booking).where(Booking.stripe_payment_intent_id == payment_intent_id)
            ).scalars().first()
        return None

    def _confirm(self, db, booking: Booking, event_id: str, reason: str, **values) -> list[tuple[str, str]]:
        booking_id_ctx.set(booking.id)
        values = {key: value for key, value in values.items() if value}
        if not can_confirm(db, booking):
            # Never move a confirmed, refunded or completed booking backward; fill in missing references only.
            for key, value in values.items():
                if getattr(booking, key) is None:
                    setattr(booking, key, value)
            logger.info("booking_confirm_skipped booking_id=%s status=%s", booking.id, booking.status)
            return []
        transition_booking(db, booking, "confirmed", reason=reason, event_id=event_id, **values)
        booking_confirmed_total.labels(service=self.service_name, source=reason).inc()
        return [(booking.id, "booking_confirmed")]

    def _checkout_completed(self, db, event_id: str, session: dict) -> list[tuple[str, str]]:
        booking_id = (session.get("metadata") or {}).get("bookingId")
        booking = self._find_booking(db, booking_id=booking_id)
        if booking is None:
            logger.warning("checkout_booking_missing session_id=%s booking_id=%s", session.get("id"), booking_id)
            return []
        payment_intent = session.get("payment_intent")
        if isinstance(payment_intent, dict):
            payment_intent = payment_intent.get("id")
        return self._confirm(
            db,
            booking,
            event_id,
            reason="checkout_session_completed",
            stripe_payment_intent_id=payment_intent,
            stripe_checkout_session_id=session.get("id"),
        )

    def _payment_succeeded(self, db, event_id: str, intent: dict) -> list[tuple[str, str]]:
        booking = self._find_booking(
            db,
            booking_id=(intent.get("metadata") or {}).get("bookingId"),
            payment_intent_id=intent.get("id"),
        )
        if booking is None:
            logger.warning("payment_intent_booking_missing payment_intent_id=%s", intent.get("id"))
            return []
        return self._confirm(
            db,
            booking,
            event_id,
            reason="payment_intent_succeeded",
            stripe_payment_intent_id=intent.get("id"),
            stripe_charge_id=_charge_id(intent),
        )

    def _payment_failed(self, db, event_id: str, intent: dict) -> list[tuple[str, str]]:
        booking = self._find_booking(
            db,
            booking_id=(intent.get("metadata") or {}).get("bookingId"),
            payment_intent_id=intent.get("id"),
        )
        if booking is None:
            return []
        booking_id_ctx.set(booking.id)
        last_error = intent.get("last_payment_error") or {}
        if booking.status != "pending":
            logger.info("payment_failure_ignored booking_id=%s status=%s", booking.id, booking.status)
            return []
        transition_booking(
            db,
            booking,
            "cancelled",
            reason=f"{PAYMENT_FAILED_REASON}:{last_error.get('code') or 'unknown'}",
            event_id=event_id,
        )
        return []

    def _dispute_created(self, db, event_id: str, dispute: dict) -> list[tuple[str, str]]:
        payment_intent = dispute.get("payment_intent")
        if isinstance(payment_intent, dict):
            payment_intent = payment_intent.get("id")
        booking = self._find_booking(db, charge_id=dispute.get("charge"), payment_intent_id=payment_intent)
        if booking is None:
            logger.warning("dispute_booking_missing charge_id=%s", dispute.get("charge"))
            return []
        booking_id_ctx.set(booking.id)
        if not can_transition(booking.status, "refund_requested"):
            logger.info("dispute_transition_skipped booking_id=%s status=%s", booking.id, booking.status)
            return []
        transition_booking(db, booking, "refund_requested", reason="charge_dispute_created", event_id=event_id)
        return []

    def _transfer_created(self, db, event_id: str, transfer: dict) -> list[tuple[str, str]]:
        transfer_id = transfer.get("id")
        existing = db.execute(
            select(PlatformTransaction).where(PlatformTransaction.stripe_transaction_id == transfer_id)
        ).scalar_one_or_none()
        if existing is not None:
            return []
        metadata = transfer.get("metadata") or {}
        booking = self._find_booking(db, booking_id=metadata.get("bookingId"), charge_id=transfer.get("source_transaction"))
        if booking is None:
            logger.info("transfer_unattributed transfer_id=%s", transfer_id)
            return []

        net_amount = _cents_to_dollars(transfer.get("amount"))
        if metadata.get("applicationFee"):
            fee = _cents_to_dollars(metadata["applicationFee"])
        else:
            fee = Decimal(booking.platform_fee or 0)
        db.add(
            PlatformTransaction(
                booking_id=booking.id,
                barber_id=metadata.get("barberId") or booking.barber_id,
                transaction_type="booking",
                gross_amount=net_amount + fee,
                platform_fee=fee,
                net_amount=net_amount,
                stripe_transaction_id=transfer_id,
            )
        )
        logger.info("platform_transaction_recorded transfer_id=%s booking_id=%s", transfer_id, booking.id)
        return []

    def _account_updated(self, db, event_id: str, account: dict) -> list[tuple[str, str]]:
        account_id = account.get("id")
        barber_id = (account.get("metadata") or {}).get("barberId")
        if barber_id and db.get(BarberProfile, barber_id) is None:
            barber_id = None
        if not barber_id:
            barber_id = db.execute(
                select(StripeAccount.barber_id).where(StripeAccount.stripe_account_id == account_id)
            ).scalar_one_or_none()
        if not barber_id:
            barber_id = db.execute(
                select(BarberProfile.id).where(BarberProfile.stripe_account_id == account_id)
            ).scalar_one_or_none()

        details_submitted = bool(account.get("details_submitted"))
        charges_enabled = bool(account.get("charges_enabled"))
        payouts_enabled = bool(account.get("payouts_enabled"))
        row = upsert_account_snapshot(
            db,
            account_id,
            barber_id,
            account_status_for(details_submitted, charges_enabled, payouts_enabled),
            charges_enabled,
            payouts_enabled,
            details_submitted,
        )
        if row is None:
            logger.warning("account_update_unattributed account_id=%s", account_id)
            return []
        set_onboarding_completed(db, account_id, details_submitted and charges_enabled and payouts_enabled)
        return []
