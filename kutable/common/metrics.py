"""Prometheus metric definitions shared across services."""

from prometheus_client import Counter, Gauge, Histogram, generate_latest
from starlette.responses import Response


booking_requests_total = Counter(
    "booking_requests_total",
    "Total booking payment initiations",
    ["service", "flow"],
)
booking_failures_total = Counter(
    "booking_failures_total",
    "Booking payment initiations rejected or failed",
    ["service", "flow", "error_code"],
)
booking_confirmed_total = Counter("booking_confirmed_total", "Bookings moved to confirmed", ["service", "source"])
booking_latency_seconds = Histogram(
    "booking_latency_seconds",
    "Booking payment initiation latency seconds",
    ["service", "flow"],
)
compensations_total = Counter(
    "compensations_total",
    "Compensating actions run after a partial failure",
    ["service", "action"],
)
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "route", "method", "status_code"],
)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration seconds",
    ["service", "route", "method"],
)
webhook_events_total = Counter(
    "webhook_events_total",
    "Provider webhook events by type and outcome",
    ["service", "event_type", "outcome"],
)
duplicate_events_skipped_total = Counter(
    "duplicate_events_skipped_total",
    "Duplicate webhook events skipped",
    ["service", "event_type"],
)
notifications_total = Counter(
    "notifications_total",
    "Notification send attempts by channel and resulting status",
    ["service", "channel", "status"],
)
notification_retry_backlog = Gauge(
    "notification_retry_backlog",
    "Notifications still eligible for another delivery attempt",
    ["service"],
)
retries_total = Counter("retries_total", "Retry count", ["service", "dependency"])
rate_limited_total = Counter("rate_limited_total", "Requests rejected by rate limiting", ["service", "action"])


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
