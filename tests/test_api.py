"""HTTP-level tests: routing, auth, error rendering and rate limiting."""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from conftest import FakeAuthAdmin, FakeRedis, encode, sign_stripe_payload, sign_svix_payload, stripe_event
from kutable.common.models import Booking
from kutable.common.rate_limit import RateLimiter
from kutable.services.claims import main as claims_main
from kutable.services.claims.service import ClaimService
from kutable.services.notification import main as notification_main
from kutable.services.notification.bookings import BookingNotifier
from kutable.services.notification.reminders import ReminderScheduler
from kutable.services.notification.service import NotificationDispatcher
from kutable.services.payments import main as payments_main
from kutable.services.payments.accounts import StripeAccountManager
from kutable.services.payments.service import PaymentService
from kutable.services.webhooks import main as webhooks_main
from kutable.services.webhooks.service import StripeWebhookReconciler

AUTH = {"Authorization": "Bearer service-role-key"}


@pytest.fixture
def payments_client(monkeypatch, session_factory, gateway, notifier):
    accounts = StripeAccountManager(session_factory, gateway)
    monkeypatch.setattr(payments_main, "accounts", accounts)
    monkeypatch.setattr(payments_main, "service", PaymentService(session_factory, gateway, accounts, notifier))
    return TestClient(payments_main.app)


@pytest.fixture
def notification_client(monkeypatch, session_factory, providers):
    dispatcher = NotificationDispatcher(session_factory, providers)
    monkeypatch.setattr(notification_main, "service", dispatcher)
    notifier = BookingNotifier(session_factory, dispatcher)
    monkeypatch.setattr(notification_main, "notifier", notifier)
    monkeypatch.setattr(notification_main, "reminders", ReminderScheduler(session_factory, notifier))
    return TestClient(notification_main.app)


def test_health_and_metrics(payments_client):
    assert payments_client.get("/health").json() == {"ok": True}
    assert payments_client.get("/metrics").status_code == 200


def test_missing_fields_render_as_400(payments_client):
    resp = payments_client.post("/create-payment-intent", json={"barberId": "barber-1"})

    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["error"].startswith("Missing or invalid fields:")
    assert "totalAmount" in body["error"]


def test_capability_errors_carry_an_error_code(payments_client, session_factory, gateway, barber):
    gateway.account["capabilities"] = {"transfers": "inactive", "card_payments": "inactive"}

    resp = payments_client.post(
        "/create-payment-intent",
        json={
            "barberId": "barber-1",
            "serviceId": "svc-1",
            "appointmentDate": "2026-11-02",
            "appointmentTime": "10:00",
            "clientDetails": {"firstName": "Dana", "lastName": "Lee", "phone": "5125550199", "email": "dana@example.com"},
            "totalAmount": 100,
        },
    )

    assert resp.status_code == 400
    assert resp.json()["errorCode"] == "STRIPE_PAYMENTS_DISABLED"


def test_refund_requires_service_role(payments_client):
    resp = payments_client.post("/process-refund", json={"payment_intent_id": "pi_1", "booking_id": "b"})

    assert resp.status_code == 401
    assert resp.json() == {"success": False, "error": "Missing authorization"}


def test_confirm_payment_reports_unfinished_payments(payments_client, gateway, barber):
    created = payments_client.post(
        "/create-payment-intent",
        json={
            "barberId": "barber-1",
            "serviceId": "svc-1",
            "appointmentDate": "2026-11-02",
            "appointmentTime": "10:00",
            "clientDetails": {"firstName": "Dana", "lastName": "Lee", "phone": "5125550199", "email": "dana@example.com"},
            "totalAmount": 100,
        },
    ).json()
    gateway.intent_status = "processing"

    resp = payments_client.post(
        "/confirm-payment",
        json={"paymentIntentId": created["paymentIntentId"], "bookingId": created["bookingId"]},
    )

    assert resp.status_code == 400
    assert resp.json() == {
        "success": False,
        "error": "Payment was not completed successfully",
        "errorCode": "PAYMENT_NOT_COMPLETED",
    }


def test_disconnect_requires_service_role(payments_client, barber):
    assert payments_client.post("/disconnect-stripe-account", json={"barberId": "barber-1"}).status_code == 401

    resp = payments_client.post("/disconnect-stripe-account", json={"barberId": "barber-1"}, headers=AUTH)

    assert resp.status_code == 200
    assert resp.json()["disconnectedAccountId"] == "acct_123"


def test_trace_id_is_echoed(payments_client):
    resp = payments_client.get("/health", headers={"x-trace-id": "trace-123"})

    assert resp.headers["x-trace-id"] == "trace-123"


def test_stripe_webhook_acknowledges_and_notifies_after_response(monkeypatch, session_factory, notifier, barber):
    with session_factory() as db:
        db.add(
            Booking(
                id="booking-1",
                barber_id="barber-1",
                appointment_date="2026-11-02",
                appointment_time="10:00",
                total_amount=Decimal("100.00"),
                platform_fee=Decimal("1.00"),
                status="pending",
                stripe_payment_intent_id="pi_1",
            )
        )
        db.commit()
    monkeypatch.setattr(webhooks_main, "service", StripeWebhookReconciler(session_factory, webhook_secret="whsec_test_secret"))
    monkeypatch.setattr(webhooks_main, "notifier", notifier)
    client = TestClient(webhooks_main.app)
    payload = encode(stripe_event("payment_intent.succeeded", {"id": "pi_1", "metadata": {"bookingId": "booking-1"}}))

    for _ in range(2):
        resp = client.post(
            "/stripe-webhook",
            content=payload,
            headers={"stripe-signature": sign_stripe_payload(payload), "content-type": "application/json"},
        )
        assert resp.status_code == 200
        assert resp.json() == {"received": True}

    assert notifier.dispatched == [("booking-1", "booking_confirmed")]


def test_stripe_webhook_rejects_unsigned_requests(monkeypatch, session_factory):
    monkeypatch.setattr(webhooks_main, "service", StripeWebhookReconciler(session_factory, webhook_secret="whsec_test_secret"))
    client = TestClient(webhooks_main.app)

    resp = client.post("/stripe-webhook", content=b"{}")

    assert resp.status_code == 400
    assert resp.json()["error"] == "Missing Stripe signature"


def test_send_sms_requires_auth_and_reports_provider_id(notification_client):
    assert notification_client.post("/send-sms", json={"to": "5125550199", "message": "hi"}).status_code == 401

    resp = notification_client.post("/send-sms", json={"to": "5125550199", "message": "hi"}, headers=AUTH)

    assert resp.status_code == 200
    assert resp.json()["providerMessageId"] == "SM_1"


def test_send_email_provider_failure_is_502(notification_client, providers, provider_error):
    providers["email"].failures.append(provider_error("resend: 500"))

    resp = notification_client.post(
        "/send-email",
        json={"to": "dana@example.com", "subject": "Hi", "message": "Body"},
        headers=AUTH,
    )

    assert resp.status_code == 502
    assert resp.json()["success"] is False


def test_retry_endpoint_runs_a_sweep(notification_client):
    resp = notification_client.post("/retry-notifications", headers=AUTH)

    assert resp.json() == {"success": True, "retried": 0, "sent": 0, "failed": 0}


def test_reminder_endpoint_requires_service_role(notification_client):
    assert notification_client.post("/send-reminders").status_code == 401

    resp = notification_client.post("/send-reminders", headers=AUTH)

    assert resp.status_code == 200
    assert resp.json()["summary"]["remindersSent"] == 0


def test_resend_webhook_verifies_svix_headers(notification_client):
    body = b'{"type": "email.delivered", "data": {"email_id": "em_unknown"}}'

    signed = notification_client.post("/resend-webhook", content=body, headers=sign_svix_payload(body))
    unsigned = notification_client.post("/resend-webhook", content=body)

    assert signed.status_code == 200
    assert signed.json() == {"success": True, "updated": False}
    assert unsigned.status_code == 401


class RecordingValidator:
    def __init__(self):
        self.urls = []

    def validate(self, url, params, signature):
        self.urls.append(url)
        return True


def test_twilio_status_is_validated_against_the_public_url(monkeypatch, notification_client):
    validator = RecordingValidator()
    monkeypatch.setattr(notification_main.service, "twilio_validator", validator)
    monkeypatch.setattr(notification_main.settings, "notification_public_url", "https://notify.kutable.com/")

    resp = notification_client.post(
        "/twilio-status?attempt=1",
        content="MessageSid=SM_9&MessageStatus=delivered",
        headers={"content-type": "application/x-www-form-urlencoded", "x-twilio-signature": "sig"},
    )

    assert resp.status_code == 200
    assert validator.urls == ["https://notify.kutable.com/twilio-status?attempt=1"]


@pytest.fixture
def claims_client(monkeypatch, session_factory):
    monkeypatch.setattr(claims_main, "service", ClaimService(session_factory, FakeAuthAdmin()))
    monkeypatch.setattr(claims_main, "limiter", RateLimiter(FakeRedis(), service_name="claims"))
    monkeypatch.setattr(claims_main.settings, "claim_rate_limit_per_minute", 2)
    return TestClient(claims_main.app)


def test_claim_endpoints_are_rate_limited_per_ip(claims_client):
    headers = {"x-forwarded-for": "203.0.113.9"}

    codes = [claims_client.post("/claim-peek", json={"token": "nope"}, headers=headers).status_code for _ in range(3)]

    assert codes == [404, 404, 429]
    other = claims_client.post("/claim-peek", json={"token": "nope"}, headers={"x-forwarded-for": "198.51.100.4"})
    assert other.status_code == 404


def test_claim_peek_without_token(claims_client):
    resp = claims_client.post("/claim-peek", json={})

    assert resp.status_code == 400
    assert resp.json()["error"] == "Missing token"
