"""Shared fixtures: an in-memory database, fake providers and seed data."""

import os

# Settings are read at import time; configure before anything imports kutable.
for key, value in {
    "SERVICE_NAME": "test",
    "POSTGRES_DSN": "sqlite://",
    "SUPABASE_URL": "https://supabase.example.com",
    "SUPABASE_SERVICE_ROLE_KEY": "service-role-key",
    "STRIPE_SECRET_KEY": "sk_test_123",
    "STRIPE_WEBHOOK_SECRET": "whsec_test_secret",
    "TWILIO_ACCOUNT_SID": "AC00000000000000000000000000000000",
    "TWILIO_AUTH_TOKEN": "twilio-token",
    "TWILIO_MESSAGING_SERVICE_SID": "MG00000000000000000000000000000000",
    "RESEND_API_KEY": "re_test",
    "RESEND_FROM": "Kutable <bookings@example.com>",
    "RESEND_WEBHOOK_SECRET": "whsec_cmVzZW5kLXRlc3Qta2V5",
    "SITE_URL": "https://kutable.example.com",
    "TRACING_ENABLED": "false",
}.items():
    os.environ.setdefault(key, value)

import base64
import hashlib
import hmac
import json
import time
from decimal import Decimal
from itertools import count

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from kutable.common.db import Base
from kutable.common.errors import UpstreamProviderError
from kutable.common.models import BarberProfile, BarberService, ClientProfile
from kutable.services.claims.models import ClaimToken  # noqa: F401
from kutable.services.notification.models import Notification  # noqa: F401
from kutable.services.notification.providers import ProviderError
from kutable.services.webhooks.models import PlatformTransaction, ProcessedWebhookEvent  # noqa: F401


@pytest.fixture
def session_factory():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    yield factory
    engine.dispose()


@pytest.fixture
def barber(session_factory):
    with session_factory() as db:
        profile = BarberProfile(
            id="barber-1",
            slug="fade-factory",
            business_name="Fade Factory",
            owner_name="Marcus Hill",
            phone="+15125550100",
            email="marcus@example.com",
            address="12 Main St",
            city="Austin",
            state="TX",
            stripe_account_id="acct_123",
            stripe_onboarding_completed=True,
            is_claimed=True,
        )
        db.add(profile)
        db.add(BarberService(id="svc-1", barber_id="barber-1", name="Skin Fade", price=Decimal("100.00")))
        db.add(
            ClientProfile(
                id="client-1",
                first_name="Dana",
                last_name="Lee",
                phone="+15125550199",
                email="dana@example.com",
            )
        )
        db.commit()
        return profile


class FakeGateway:
    """Records Stripe calls and answers with canned objects."""

    def __init__(self):
        self.calls = []
        self.account = {
            "id": "acct_123",
            "details_submitted": True,
            "payouts_enabled": True,
            "capabilities": {"transfers": "active", "card_payments": "active"},
            "metadata": {"barberId": "barber-1"},
        }
        self.fail_on = set()
        self.intent_status = "succeeded"
        self._ids = count(1)

    def _record(self, name, **kwargs):
        self.calls.append((name, kwargs))
        if name in self.fail_on:
            raise UpstreamProviderError("Payment provider error. Please try again.")

    def calls_named(self, name):
        return [kwargs for call, kwargs in self.calls if call == name]

    def create_account(self, **params):
        self._record("create_account", **params)
        return {"id": "acct_new"}

    def retrieve_account(self, account_id):
        self._record("retrieve_account", account_id=account_id)
        return dict(self.account, id=account_id)

    def create_account_link(self, account_id, refresh_url, return_url):
        self._record("create_account_link", account_id=account_id, refresh_url=refresh_url, return_url=return_url)
        return {"url": f"https://connect.stripe.com/setup/{account_id}"}

    def create_payment_intent(self, idempotency_key, **params):
        self._record("create_payment_intent", idempotency_key=idempotency_key, **params)
        n = next(self._ids)
        return {"id": f"pi_{n}", "client_secret": f"pi_{n}_secret", "amount": params["amount"]}

    def cancel_payment_intent(self, payment_intent_id, idempotency_key=None):
        self._record("cancel_payment_intent", payment_intent_id=payment_intent_id, idempotency_key=idempotency_key)
        return {"id": payment_intent_id, "status": "canceled"}

    def retrieve_payment_intent(self, payment_intent_id):
        self._record("retrieve_payment_intent", payment_intent_id=payment_intent_id)
        return {
            "id": payment_intent_id,
            "status": self.intent_status,
            "latest_charge": {"id": "ch_1", "refunded": False},
        }

    def retrieve_price(self, price_id):
        self._record("retrieve_price", price_id=price_id)
        return {"id": price_id, "unit_amount": 4500, "currency": "usd"}

    def create_checkout_session(self, idempotency_key, **params):
        self._record("create_checkout_session", idempotency_key=idempotency_key, **params)
        return {"id": "cs_1", "url": "https://checkout.stripe.com/c/cs_1"}

    def create_refund(self, charge_id, idempotency_key):
        self._record("create_refund", charge_id=charge_id, idempotency_key=idempotency_key)
        return {"id": "re_1", "amount": 10000, "status": "succeeded", "created": 1700000000}


class FakeNotifier:
    def __init__(self):
        self.dispatched = []

    def dispatch(self, booking_id, event, **options):
        self.dispatched.append((booking_id, event))
        return True


class FakeProvider:
    """Provider stand-in; queue exceptions in `failures` to make sends fail."""

    def __init__(self, prefix):
        self.prefix = prefix
        self.sent = []
        self.failures = []

    def send(self, recipient, subject, message):
        if self.failures:
            raise self.failures.pop(0)
        self.sent.append((recipient, subject, message))
        return f"{self.prefix}_{len(self.sent)}"


class FakeRedis:
    """Just enough of redis-py's pipeline API for the rate limiter."""

    def __init__(self):
        self.counts = {}

    def pipeline(self):
        return _FakePipeline(self)


class _FakePipeline:
    def __init__(self, rdb):
        self.rdb = rdb
        self.ops = []

    def incr(self, key):
        self.ops.append(("incr", key))

    def expire(self, key, seconds, nx=False):
        self.ops.append(("expire", key))

    def execute(self):
        results = []
        for op, key in self.ops:
            if op == "incr":
                self.rdb.counts[key] = self.rdb.counts.get(key, 0) + 1
                results.append(self.rdb.counts[key])
            else:
                results.append(True)
        return results


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def providers():
    return {"sms": FakeProvider("SM"), "email": FakeProvider("em")}


@pytest.fixture
def provider_error():
    return ProviderError


def sign_stripe_payload(payload: str, secret: str = "whsec_test_secret", timestamp: int | None = None) -> str:
    ts = timestamp or int(time.time())
    digest = hmac.new(secret.encode(), f"{ts}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


RESEND_SECRET = "whsec_cmVzZW5kLXRlc3Qta2V5"


def sign_svix_payload(
    body: bytes, msg_id: str = "msg_1", timestamp: int | None = None, secret: str = RESEND_SECRET
) -> dict:
    """Headers Resend (via Svix) would send with `body`."""

    ts = str(timestamp or int(time.time()))
    key = base64.b64decode(secret.removeprefix("whsec_"))
    digest = hmac.new(key, b".".join([msg_id.encode(), ts.encode(), body]), hashlib.sha256).digest()
    return {"svix-id": msg_id, "svix-timestamp": ts, "svix-signature": "v1," + base64.b64encode(digest).decode()}


def stripe_event(event_type: str, obj: dict, event_id: str = "evt_1") -> dict:
    return {"id": event_id, "object": "event", "type": event_type, "data": {"object": obj}}


def encode(event: dict) -> str:
    return json.dumps(event)


class FakeAuthAdmin:
    """Supabase admin stand-in; pass an exception as `link` to make magic links fail."""

    def __init__(self, link="https://supabase.example.com/auth/v1/verify?token=abc"):
        self.link = link
        self.created = []
        self.links = []

    def create_user(self, email, user_metadata):
        self.created.append((email, user_metadata))
        return f"user-{len(self.created)}"

    def generate_magic_link(self, email, redirect_to):
        self.links.append((email, redirect_to))
        if isinstance(self.link, Exception):
            raise self.link
        return self.link
