"""Post a signed Stripe event to a local webhook service.

Signs the body the way Stripe does (`t=<ts>,v1=<hmac>`), so the receiving
service runs its real verification path. Sending the same `--event-id` twice
exercises duplicate suppression.
"""

import argparse
import hashlib
import hmac
import json
import os
import time
from uuid import uuid4

import httpx


def build_event(event_type: str, event_id: str, booking_id: str | None, payment_intent_id: str) -> dict:
    """Minimal event body for the booking-related event types."""

    metadata = {"bookingId": booking_id} if booking_id else {}
    if event_type == "checkout.session.completed":
        obj = {
            "id": f"cs_test_{uuid4().hex[:16]}",
            "object": "checkout.session",
            "payment_intent": payment_intent_id,
            "metadata": metadata,
        }
    else:
        obj = {
            "id": payment_intent_id,
            "object": "payment_intent",
            "latest_charge": f"ch_test_{uuid4().hex[:16]}",
            "last_payment_error": {"code": "card_declined"} if event_type == "payment_intent.payment_failed" else None,
            "metadata": metadata,
        }
    return {"id": event_id, "object": "event", "type": event_type, "created": int(time.time()), "data": {"object": obj}}


def sign(payload: str, secret: str, timestamp: int | None = None) -> str:
    ts = timestamp or int(time.time())
    digest = hmac.new(secret.encode("utf-8"), f"{ts}.{payload}".encode("utf-8"), hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


def main() -> None:
    """CLI entrypoint for local webhook checks."""

    parser = argparse.ArgumentParser(description="Send a signed Stripe test event.")
    parser.add_argument("--webhook-url", default="http://localhost:8002/stripe-webhook")
    parser.add_argument("--secret", default=os.getenv("STRIPE_WEBHOOK_SECRET", ""))
    parser.add_argument(
        "--type",
        default="payment_intent.succeeded",
        choices=["payment_intent.succeeded", "payment_intent.payment_failed", "checkout.session.completed"],
    )
    parser.add_argument("--event-id", default=None)
    parser.add_argument("--booking-id", default=None)
    parser.add_argument("--payment-intent-id", default=None)
    args = parser.parse_args()

    if not args.secret:
        raise SystemExit("Provide --secret or STRIPE_WEBHOOK_SECRET")

    event = build_event(
        args.type,
        args.event_id or f"evt_test_{uuid4().hex[:16]}",
        args.booking_id,
        args.payment_intent_id or f"pi_test_{uuid4().hex[:16]}",
    )
    payload = json.dumps(event)
    resp = httpx.post(
        args.webhook_url,
        content=payload,
        headers={"Content-Type": "application/json", "Stripe-Signature": sign(payload, args.secret)},
        timeout=10.0,
    )
    print(f"{resp.status_code} {resp.text}")


if __name__ == "__main__":
    main()
