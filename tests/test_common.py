"""Shared plumbing: notification hand-off, rate limiting, startup logging."""

import json
import logging

import httpx
import pytest
import redis

from conftest import FakeRedis
from kutable.common.auth import enforce_service_role
from kutable.common.errors import AuthorizationError, RateLimitedError
from kutable.common.logging import log_startup_config, mask_recipient
from kutable.common.notify import BookingNotificationClient
from kutable.common.rate_limit import RateLimiter


def test_notification_client_posts_booking_event():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"success": True})

    client = BookingNotificationClient(base_url="http://notify.internal", transport=httpx.MockTransport(handler))

    assert client.dispatch("booking-1", "booking_confirmed") is True
    assert seen["url"] == "http://notify.internal/process-booking-notifications"
    assert seen["auth"] == "Bearer service-role-key"
    assert seen["body"] == {"bookingId": "booking-1", "event": "booking_confirmed"}


def test_notification_client_never_raises():
    def handler(request):
        raise httpx.ConnectError("connection refused")

    client = BookingNotificationClient(base_url="http://notify.internal", transport=httpx.MockTransport(handler))

    assert client.dispatch("booking-1", "booking_confirmed") is False


def test_notification_client_reports_rejections():
    client = BookingNotificationClient(
        base_url="http://notify.internal", transport=httpx.MockTransport(lambda request: httpx.Response(500))
    )

    assert client.dispatch("booking-1", "booking_cancelled") is False


def test_rate_limiter_blocks_after_limit():
    limiter = RateLimiter(FakeRedis(), service_name="claims")

    limiter.consume("claim_start", "203.0.113.9", limit=1)
    with pytest.raises(RateLimitedError):
        limiter.consume("claim_start", "203.0.113.9", limit=1)
    limiter.consume("claim_start", "198.51.100.4", limit=1)


class BrokenRedis:
    def pipeline(self):
        raise redis.ConnectionError("redis down")


def test_rate_limiter_fails_open_without_redis():
    RateLimiter(BrokenRedis(), service_name="claims").consume("claim_start", "203.0.113.9", limit=0)


def test_service_role_check():
    enforce_service_role("Bearer service-role-key")
    with pytest.raises(AuthorizationError):
        enforce_service_role("Bearer wrong")
    with pytest.raises(AuthorizationError):
        enforce_service_role(None)


def test_startup_config_redacts_secrets(monkeypatch, caplog):
    monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_live_abc")
    monkeypatch.setenv("SITE_URL", "https://kutable.example.com")

    with caplog.at_level(logging.INFO, logger="kutable"):
        log_startup_config("payments", ["STRIPE_SECRET_KEY", "SITE_URL", "UNSET_THING"])

    assert "sk_live_abc" not in caplog.text
    assert "<redacted>" in caplog.text
    assert "https://kutable.example.com" in caplog.text
    assert "<unset>" in caplog.text


def test_mask_recipient():
    assert mask_recipient("+15125550199") == "***0199"
