"""Best-effort hand-off of booking events to the notification service."""

import httpx

from kutable.common.config import settings
from kutable.common.logging import logger


class BookingNotificationClient:
    """Posts booking lifecycle events to `POST /process-booking-notifications`.

    Booking flows never fail because of notifications: transport errors and
    non-2xx answers are logged and reported as `False`.
    """

    def __init__(self, base_url: str | None = None, timeout: float = 5.0, transport: httpx.BaseTransport | None = None):
        self.base_url = (base_url or settings.notification_url).rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def dispatch(self, booking_id: str, event: str, **options) -> bool:
        body = {"bookingId": booking_id, "event": event, **options}
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                resp = client.post(
                    f"{self.base_url}/process-booking-notifications",
                    headers={"Authorization": f"Bearer {settings.supabase_service_role_key}"},
                    json=body,
                )
        except httpx.HTTPError as exc:
            logger.warning("booking_notification_failed booking_id=%s event=%s error=%s", booking_id, event, exc)
            return False
        if resp.status_code >= 400:
            logger.warning(
                "booking_notification_rejected booking_id=%s event=%s status=%s", booking_id, event, resp.status_code
            )
            return False
        logger.info("booking_notification_dispatched booking_id=%s event=%s", booking_id, event)
        return True
