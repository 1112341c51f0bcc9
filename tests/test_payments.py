"""Payment initiation, checkout, Connect gating and refund tests."""

from decimal import Decimal

import pytest
from sqlalchemy import select

from kutable.common.errors import ConflictError, InternalError, NotFoundError, UpstreamProviderError, ValidationError
from kutable.common.models import BarberProfile, Booking, BookingTimeline, StripeAccount
from kutable.services.payments.accounts import (
    STRIPE_PAYMENTS_DISABLED,
    STRIPE_VERIFICATION_PENDING,
    StripeAccountManager,
)
from kutable.services.payments.schemas import (
    CheckoutSessionRequest,
    CreateAccountRequest,
    PaymentIntentRequest,
)
from kutable.services.payments.service import PAYMENT_NOT_COMPLETED, PaymentService, platform_fee, to_cents


def _intent_request(**overrides):
    body = {
        "barberId": "barber-1",
        "clientId": "client-1",
        "serviceId": "svc-1",
        "appointmentDate": "2026-11-02",
        "appointmentTime": "10:00",
        "clientDetails": {"firstName": "Dana", "lastName": "Lee", "phone": "5125550199", "email": "dana@example.com"},
        "totalAmount": "100.00",
    }
    body.update(overrides)
    return PaymentIntentRequest.model_validate(body)


def _checkout_request(**overrides):
    body = {
        "successUrl": "https://kutable.example.com/success",
        "cancelUrl": "https://kutable.example.com/cancel",
        "amount": 4500,
        "currency": "USD",
        "name": "Skin Fade",
        "customerEmail": "dana@example.com",
        "metadata": {
            "barberId": "barber-1",
            "clientId": "client-1",
            "serviceId": "svc-1",
            "appointmentDate": "2026-11-02",
            "appointmentTime": "10:00",
        },
    }
    body.update(overrides)
    return CheckoutSessionRequest.model_validate(body)


@pytest.fixture
def service(session_factory, gateway, notifier):
    return PaymentService(session_factory, gateway, StripeAccountManager(session_factory, gateway), notifier)


def test_platform_fee_is_one_percent_rounded_to_cents():
    assert platform_fee(Decimal("100.00")) == Decimal("1.00")
    assert platform_fee(Decimal("45.50")) == Decimal("0.46")
    assert to_cents(Decimal("1.00")) == 100


def test_create_payment_intent_inserts_one_pending_booking(service, session_factory, gateway, barber):
    """The intent carries the booking id and the fee goes to the platform."""

    result = service.create_payment_intent(_intent_request())

    with session_factory() as db:
        bookings = db.execute(select(Booking)).scalars().all()
    assert len(bookings) == 1
    booking = bookings[0]
    assert booking.id == result["bookingId"]
    assert booking.status == "pending"
    assert booking.platform_fee == Decimal("1.00")
    assert booking.stripe_payment_intent_id == result["paymentIntentId"]

    (params,) = gateway.calls_named("create_payment_intent")
    assert params["amount"] == 10000
    assert params["application_fee_amount"] == 100
    assert params["transfer_data"] == {"destination": "acct_123"}
    assert params["metadata"]["bookingId"] == booking.id
    assert params["idempotency_key"] == f"booking:{booking.id}:pi"


def test_failed_booking_insert_cancels_the_intent(session_factory, gateway, notifier, barber):
    """No chargeable intent may outlive a booking that was never written."""

    accounts = StripeAccountManager(session_factory, gateway)

    def broken_factory():
        raise RuntimeError("database unavailable")

    service = PaymentService(broken_factory, gateway, accounts, notifier)
    with pytest.raises(InternalError):
        service.create_payment_intent(_intent_request())

    (created,) = gateway.calls_named("create_payment_intent")
    (cancelled,) = gateway.calls_named("cancel_payment_intent")
    assert cancelled["payment_intent_id"] == "pi_1"
    assert cancelled["idempotency_key"].endswith(":pi-cancel")
    assert created["metadata"]["bookingId"] in cancelled["idempotency_key"]


def test_barber_without_account_cannot_take_payments(service, session_factory, gateway, barber):
    with session_factory() as db:
        db.get(BarberProfile, "barber-1").stripe_account_id = None
        db.commit()

    with pytest.raises(ValidationError) as exc:
        service.create_payment_intent(_intent_request())
    assert exc.value.error_code == STRIPE_PAYMENTS_DISABLED
    assert gateway.calls_named("create_payment_intent") == []


def test_pending_capabilities_report_verification_in_progress(service, gateway, barber):
    gateway.account["capabilities"] = {"transfers": "pending", "card_payments": "active"}

    with pytest.raises(ValidationError) as exc:
        service.create_payment_intent(_intent_request())
    assert exc.value.error_code == STRIPE_VERIFICATION_PENDING


def test_unknown_barber_is_not_found(service, barber):
    with pytest.raises(NotFoundError):
        service.create_payment_intent(_intent_request(barberId="nobody"))


def test_checkout_session_uses_destination_charge(service, session_factory, gateway, barber):
    result = service.create_checkout_session(_checkout_request())

    (params,) = gateway.calls_named("create_checkout_session")
    assert params["payment_intent_data"]["transfer_data"] == {"destination": "acct_123"}
    assert params["payment_intent_data"]["application_fee_amount"] == 45
    assert params["metadata"]["bookingId"] == result["bookingId"]
    assert params["line_items"][0]["price_data"]["currency"] == "usd"
    with session_factory() as db:
        booking = db.get(Booking, result["bookingId"])
    assert booking.status == "pending"
    assert booking.total_amount == Decimal("45.00")
    assert booking.stripe_checkout_session_id == "cs_1"


def test_checkout_session_with_price_id_reads_the_price(service, gateway, barber):
    service.create_checkout_session(_checkout_request(priceId="price_1", amount=None, currency=None, name=None))

    (params,) = gateway.calls_named("create_checkout_session")
    assert params["line_items"] == [{"price": "price_1", "quantity": 1}]


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"successUrl": "http://kutable.example.com/ok"}, "successUrl/cancelUrl must be absolute https URLs"),
        ({"customerId": "cus_1"}, "Send either customerEmail or customerId, not both"),
        ({"priceId": "price_1"}, "Provide priceId OR amount+currency+name, not both"),
        ({"amount": None}, "Provide priceId OR amount+currency+name"),
        ({"amount": 0}, "amount must be integer cents > 0"),
        ({"metadata": {"barberId": "barber-1"}}, "Missing booking details in metadata"),
    ],
)
def test_checkout_validation_messages(service, barber, overrides, message):
    with pytest.raises(ValidationError) as exc:
        service.create_checkout_session(_checkout_request(**overrides))
    assert exc.value.message == message


def test_refused_checkout_session_removes_the_booking(service, session_factory, gateway, barber):
    gateway.fail_on.add("create_checkout_session")

    with pytest.raises(UpstreamProviderError):
        service.create_checkout_session(_checkout_request())
    with session_factory() as db:
        assert db.execute(select(Booking)).scalars().all() == []


def test_refund_cancels_booking_and_notifies(service, session_factory, gateway, notifier, barber):
    result = service.create_payment_intent(_intent_request())

    refund = service.process_refund(result["paymentIntentId"], result["bookingId"])

    assert refund["refund"]["id"] == "re_1"
    (params,) = gateway.calls_named("create_refund")
    assert params == {"charge_id": "ch_1", "idempotency_key": f"booking:{result['bookingId']}:refund"}
    with session_factory() as db:
        booking = db.get(Booking, result["bookingId"])
    assert booking.status == "cancelled"
    assert booking.stripe_charge_id == "ch_1"
    assert notifier.dispatched == [(result["bookingId"], "booking_cancelled")]


def test_refund_for_someone_elses_intent_is_rejected(service, barber):
    result = service.create_payment_intent(_intent_request())

    with pytest.raises(ValidationError):
        service.process_refund("pi_other", result["bookingId"])


def test_confirm_payment_confirms_once_and_notifies(service, session_factory, gateway, notifier, barber):
    result = service.create_payment_intent(_intent_request())

    first = service.confirm_payment(result["paymentIntentId"], result["bookingId"])
    second = service.confirm_payment(result["paymentIntentId"], result["bookingId"])

    assert first == {
        "success": True,
        "bookingId": result["bookingId"],
        "status": "confirmed",
        "paymentStatus": "succeeded",
    }
    assert second["status"] == "confirmed"
    assert notifier.dispatched == [(result["bookingId"], "booking_confirmed")]
    with session_factory() as db:
        booking = db.get(Booking, result["bookingId"])
        reasons = db.execute(select(BookingTimeline.reason).order_by(BookingTimeline.created_at)).scalars().all()
    assert booking.stripe_charge_id == "ch_1"
    assert reasons == ["payment_intent_created", "client_confirmed"]


def test_confirm_payment_leaves_unfinished_payments_pending(service, session_factory, gateway, notifier, barber):
    result = service.create_payment_intent(_intent_request())
    gateway.intent_status = "processing"

    with pytest.raises(ValidationError) as exc:
        service.confirm_payment(result["paymentIntentId"], result["bookingId"])

    assert exc.value.error_code == PAYMENT_NOT_COMPLETED
    assert notifier.dispatched == []
    with session_factory() as db:
        assert db.get(Booking, result["bookingId"]).status == "pending"


def test_confirm_payment_cancels_failed_attempts(service, session_factory, gateway, barber):
    result = service.create_payment_intent(_intent_request())
    gateway.intent_status = "requires_payment_method"

    with pytest.raises(ValidationError):
        service.confirm_payment(result["paymentIntentId"], result["bookingId"])
    with session_factory() as db:
        assert db.get(Booking, result["bookingId"]).status == "cancelled"

    gateway.intent_status = "succeeded"
    assert service.confirm_payment(result["paymentIntentId"], result["bookingId"])["status"] == "confirmed"


def test_confirm_payment_never_revives_a_refunded_booking(service, session_factory, notifier, barber):
    result = service.create_payment_intent(_intent_request())
    service.confirm_payment(result["paymentIntentId"], result["bookingId"])
    service.process_refund(result["paymentIntentId"], result["bookingId"])

    with pytest.raises(ConflictError):
        service.confirm_payment(result["paymentIntentId"], result["bookingId"])
    with session_factory() as db:
        assert db.get(Booking, result["bookingId"]).status == "cancelled"
    assert notifier.dispatched == [
        (result["bookingId"], "booking_confirmed"),
        (result["bookingId"], "booking_cancelled"),
    ]


def test_confirm_payment_checks_ownership(service, barber):
    result = service.create_payment_intent(_intent_request())

    with pytest.raises(ValidationError):
        service.confirm_payment("pi_other", result["bookingId"])
    with pytest.raises(NotFoundError):
        service.confirm_payment(result["paymentIntentId"], "missing")


def test_create_account_reuses_existing_account(session_factory, gateway, barber):
    accounts = StripeAccountManager(session_factory, gateway)
    req = CreateAccountRequest.model_validate(
        {"barberId": "barber-1", "businessName": "Fade Factory", "ownerName": "Marcus Hill", "email": "marcus@example.com"}
    )

    result = accounts.create_account(req)

    assert result["accountId"] == "acct_123"
    assert gateway.calls_named("create_account") == []
    assert result["onboardingUrl"].endswith("acct_123")


def test_create_account_rejects_bad_email(session_factory, gateway, barber):
    accounts = StripeAccountManager(session_factory, gateway)
    req = CreateAccountRequest.model_validate(
        {"barberId": "barber-1", "businessName": "Fade Factory", "ownerName": "Marcus Hill", "email": "not-an-email"}
    )

    with pytest.raises(ValidationError) as exc:
        accounts.create_account(req)
    assert exc.value.message == "Invalid email format"


def test_create_account_for_new_barber_stores_account(session_factory, gateway, barber):
    with session_factory() as db:
        db.get(BarberProfile, "barber-1").stripe_account_id = None
        db.commit()
    accounts = StripeAccountManager(session_factory, gateway)
    req = CreateAccountRequest.model_validate(
        {"barberId": "barber-1", "businessName": "Fade Factory", "ownerName": "Marcus Hill", "email": "marcus@example.com"}
    )

    result = accounts.create_account(req)

    assert result["accountId"] == "acct_new"
    (params,) = gateway.calls_named("create_account")
    assert params["business_profile"]["mcc"] == "7230"
    with session_factory() as db:
        assert db.get(BarberProfile, "barber-1").stripe_account_id == "acct_new"
        row = db.execute(select(StripeAccount)).scalar_one()
    assert row.account_status == "pending"


def test_check_status_persists_submitted_accounts(session_factory, gateway, barber):
    accounts = StripeAccountManager(session_factory, gateway)

    status = accounts.check_status("acct_123")

    assert status["onboardingComplete"] is True
    assert status["requiresVerification"] is False
    with session_factory() as db:
        row = db.execute(select(StripeAccount)).scalar_one()
    assert row.account_status == "active"
    assert row.charges_enabled is True


def test_disconnect_detaches_account_and_snapshot(session_factory, gateway, barber):
    accounts = StripeAccountManager(session_factory, gateway)
    accounts.check_status("acct_123")

    result = accounts.disconnect_account("barber-1")

    assert result == {
        "success": True,
        "message": "Stripe account disconnected successfully",
        "disconnectedAccountId": "acct_123",
    }
    with session_factory() as db:
        profile = db.get(BarberProfile, "barber-1")
        assert profile.stripe_account_id is None
        assert profile.stripe_onboarding_completed is False
        assert db.execute(select(StripeAccount)).first() is None
    with pytest.raises(ValidationError) as exc:
        accounts.ensure_can_accept_payments("barber-1")
    assert exc.value.error_code == STRIPE_PAYMENTS_DISABLED


def test_disconnect_unknown_barber_is_not_found(session_factory, gateway):
    with pytest.raises(NotFoundError):
        StripeAccountManager(session_factory, gateway).disconnect_account("nobody")
