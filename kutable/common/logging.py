"""Structured JSON logging with request/event context fields."""

import logging
import os
import sys
from contextvars import ContextVar

from pythonjsonlogger.json import JsonFormatter

from kutable.common.config import settings


trace_id_ctx: ContextVar[str] = ContextVar("trace_id", default="")
event_id_ctx: ContextVar[str] = ContextVar("event_id", default="")
booking_id_ctx: ContextVar[str] = ContextVar("booking_id", default="")


class ContextFilter(logging.Filter):
    """Inject service and correlation identifiers into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.service_name = settings.service_name
        record.trace_id = trace_id_ctx.get()
        record.event_id = event_id_ctx.get()
        record.booking_id = booking_id_ctx.get()
        return True


def configure_logging() -> None:
    """Configure root logger once per service process."""

    handler = logging.StreamHandler(sys.stdout)
    context_filter = ContextFilter()
    handler.addFilter(context_filter)
    formatter = JsonFormatter(
        "%(asctime)s %(levelname)s %(service_name)s %(trace_id)s %(event_id)s %(booking_id)s %(message)s"
    )
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(settings.log_level)
    root.addFilter(context_filter)


def mask_recipient(recipient: str) -> str:
    """Keep only the tail of a phone number or email for log lines."""

    if not recipient:
        return ""
    return f"***{recipient[-4:]}"


logger = logging.getLogger("kutable")


_REDACTED_MARKERS = ("KEY", "SECRET", "PASSWORD", "TOKEN", "DSN", "SID")


def log_startup_config(service_name: str, keys: list[str]) -> None:
    """Log the named env keys once at boot, redacting anything credential-like."""

    config: dict[str, str] = {"service": service_name}
    for key in keys:
        value = os.getenv(key)
        if value is None:
            config[key] = "<unset>"
        elif any(marker in key for marker in _REDACTED_MARKERS):
            config[key] = "<redacted>"
        else:
            config[key] = value
    logger.info("startup_config=%s", config)
