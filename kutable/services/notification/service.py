"""Notification dispatch, retry sweep and delivery-status reconciliation."""

import base64
import binascii
import hashlib
import hmac
import json
import time

from sqlalchemy import update
from twilio.request_validator import RequestValidator

from kutable.common.backoff import claim_retry_batch, update_retry_backlog_metrics
from kutable.common.config import settings
from kutable.common.db import utcnow
from kutable.common.errors import AuthorizationError, UpstreamProviderError, ValidationError
from kutable.common.logging import logger, mask_recipient
from kutable.common.metrics import notifications_total, retries_total
from kutable.services.notification.models import Notification
from kutable.services.notification.providers import ProviderError
from kutable.services.notification.recipients import normalize_recipient

RESEND_STATUS = {
    "email.delivered": "delivered",
    "email.bounced": "bounced",
    "email.complained": "complained",
}
TWILIO_STATUS = {
    "delivered": "delivered",
    "undelivered": "bounced",
    "failed": "failed",
}


SVIX_TOLERANCE_SECONDS = 300


def svix_signing_key(secret: str) -> bytes:
    """HMAC key for a Svix secret: the base64 part after `whsec_`."""

    encoded = secret[len("whsec_"):] if secret.startswith("whsec_") else secret
    try:
        return base64.b64decode(encoded, validate=True)
    except binascii.Error:
        return secret.encode("utf-8")


def verify_svix_signature(
    secret: str,
    body: bytes,
    msg_id: str | None,
    timestamp: str | None,
    signature_header: str | None,
    now: float | None = None,
) -> bool:
    """Check a Svix-signed delivery (`svix-id`, `svix-timestamp`, `svix-signature`).

    The signed content is `{id}.{timestamp}.{body}`; the header may carry
    several space-separated `v1,<base64>` signatures during secret rotation.
    """

    if not (msg_id and timestamp and signature_header):
        return False
    try:
        sent_at = int(timestamp)
    except ValueError:
        return False
    if abs((now if now is not None else time.time()) - sent_at) > SVIX_TOLERANCE_SECONDS:
        return False
    signed = b".".join([msg_id.encode("utf-8"), timestamp.encode("utf-8"), body])
    expected = base64.b64encode(hmac.new(svix_signing_key(secret), signed, hashlib.sha256).digest()).decode()
    for candidate in signature_header.split():
        version, _, value = candidate.partition(",")
        if version == "v1" and hmac.compare_digest(expected, value):
            return True
    return False


class NotificationDispatcher:
    """Records every SMS/email in `notifications` and hands it to its provider."""

    def __init__(
        self,
        session_factory,
        providers: dict,
        service_name: str = "notification",
        max_attempts: int | None = None,
        batch_size: int | None = None,
        resend_webhook_secret: str | None = None,
        twilio_validator: RequestValidator | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.providers = providers
        self.service_name = service_name
        self.max_attempts = max_attempts or settings.notification_max_attempts
        self.batch_size = batch_size or settings.notification_retry_batch_size
        self.resend_webhook_secret = (
            settings.resend_webhook_secret if resend_webhook_secret is None else resend_webhook_secret
        )
        self.twilio_validator = twilio_validator or RequestValidator(settings.twilio_auth_token)

    def send(
        self,
        channel: str,
        recipient: str,
        message: str,
        subject: str | None = None,
        template: str | None = None,
        booking_id: str | None = None,
    ) -> dict:
        """Persist and deliver one message; raise `UpstreamProviderError` when the provider refuses it."""

        recipient = normalize_recipient(channel, recipient)
        payload = {"subject": subject, "message": message}
        with self.session_factory() as db:
            row = Notification(
                booking_id=booking_id,
                channel=channel,
                recipient=recipient,
                template=template,
                payload=payload,
                status="sending",
                attempts=1,
            )
            db.add(row)
            db.commit()
            notification_id = row.id

        provider_message_id = self._deliver(notification_id, channel, recipient, payload)
        if provider_message_id is None:
            raise UpstreamProviderError("We couldn't send your message right now. Please try again.")
        return {
            "success": True,
            "notificationId": notification_id,
            "providerMessageId": provider_message_id,
            "status": "queued",
        }

    def _deliver(self, notification_id: str, channel: str, recipient: str, payload: dict) -> str | None:
        """Call the provider for a row already in `sending`; returns the provider id or None on failure."""

        try:
            provider_message_id = self.providers[channel].send(recipient, payload.get("subject"), payload["message"])
        except ProviderError as exc:
            error = str(exc)
            logger.warning(
                "notification_failed notification_id=%s channel=%s recipient=%s error=%s",
                notification_id,
                channel,
                mask_recipient(recipient),
                error,
            )
        except Exception as exc:
            error = f"unexpected: {exc}"
            logger.exception("notification_failed notification_id=%s channel=%s", notification_id, channel)
        else:
            with self.session_factory() as db:
                db.execute(
                    update(Notification)
                    .where(Notification.id == notification_id)
                    .values(status="queued", provider_message_id=provider_message_id, last_error=None, updated_at=utcnow())
                )
                db.commit()
            notifications_total.labels(service=self.service_name, channel=channel, status="queued").inc()
            logger.info(
                "notification_queued notification_id=%s channel=%s recipient=%s provider_message_id=%s",
                notification_id,
                channel,
                mask_recipient(recipient),
                provider_message_id,
            )
            return provider_message_id

        with self.session_factory() as db:
            db.execute(
                update(Notification)
                .where(Notification.id == notification_id)
                .values(status="failed", last_error=error[:1000], updated_at=utcnow())
            )
            db.commit()
        notifications_total.labels(service=self.service_name, channel=channel, status="failed").inc()
        return None

    def retry_failed(self, now=None) -> dict:
        """Re-send one batch of failed or stale queued rows whose backoff has elapsed."""

        with self.session_factory() as db:
            rows = claim_retry_batch(db, Notification, limit=self.batch_size, max_attempts=self.max_attempts, now=now)
            db.commit()

        sent = failed = 0
        for row in rows:
            retries_total.labels(service=self.service_name, dependency=row.channel).inc()
            if self._deliver(row.id, row.channel, row.recipient, row.payload or {}):
                sent += 1
            else:
                failed += 1

        with self.session_factory() as db:
            update_retry_backlog_metrics(db, Notification, self.service_name, self.max_attempts)
        logger.info("notification_retry_sweep retried=%s sent=%s failed=%s", len(rows), sent, failed)
        return {"success": True, "retried": len(rows), "sent": sent, "failed": failed}

    def _apply_delivery_status(self, provider_message_id: str, status: str) -> bool:
        with self.session_factory() as db:
            result = db.execute(
                update(Notification)
                .where(Notification.provider_message_id == provider_message_id)
                .values(status=status, updated_at=utcnow())
            )
            db.commit()
        matched = result.rowcount > 0
        logger.info(
            "notification_status_updated provider_message_id=%s status=%s matched=%s",
            provider_message_id,
            status,
            matched,
        )
        return matched

    def handle_resend_event(
        self,
        body: bytes,
        svix_id: str | None,
        svix_timestamp: str | None,
        svix_signature: str | None,
    ) -> dict:
        """Verify a Resend delivery webhook (Svix signature headers) and apply it."""

        if not self.resend_webhook_secret:
            logger.error("resend_webhook_secret_missing")
            raise AuthorizationError("Webhook verification is not configured")
        if not verify_svix_signature(self.resend_webhook_secret, body, svix_id, svix_timestamp, svix_signature):
            logger.warning("resend_signature_invalid svix_id=%s", svix_id)
            raise AuthorizationError("Invalid signature")
        try:
            event = json.loads(body)
        except ValueError as exc:
            raise ValidationError("Invalid payload") from exc
        if not isinstance(event, dict):
            raise ValidationError("Invalid payload")
        data = event.get("data") or {}
        event_type = event.get("type")
        message_id = data.get("email_id") or data.get("id")
        if not event_type or not message_id:
            raise ValidationError("Invalid payload")
        status = RESEND_STATUS.get(event_type)
        if status is None:
            return {"success": True, "ignored": True}
        return {"success": True, "updated": self._apply_delivery_status(message_id, status)}

    def handle_twilio_status(self, url: str, params: dict, signature: str | None) -> dict:
        """Validate a Twilio status callback and map its `MessageStatus`."""

        if not self.twilio_validator.validate(url, params, signature or ""):
            raise AuthorizationError("Invalid signature")
        message_id = params.get("MessageSid") or params.get("SmsSid")
        raw_status = params.get("MessageStatus") or params.get("SmsStatus")
        if not message_id or not raw_status:
            raise ValidationError("Invalid payload")
        status = TWILIO_STATUS.get(raw_status)
        if status is None:
            return {"success": True, "ignored": True}
        return {"success": True, "updated": self._apply_delivery_status(message_id, status)}
