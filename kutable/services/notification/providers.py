"""SMS and email provider adapters.

Each adapter exposes `send(recipient, subject, message) -> provider_message_id`
and raises `ProviderError` carrying the provider's detail on rejection.
"""

import html

import resend
from resend.exceptions import ResendError
from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client

from kutable.common.config import settings


class ProviderError(Exception):
    """A provider refused or failed to accept a message."""


class TwilioSmsProvider:
    channel = "sms"

    def __init__(self, client: Client | None = None, messaging_service_sid: str | None = None) -> None:
        self.client = client or Client(settings.twilio_account_sid, settings.twilio_auth_token)
        self.messaging_service_sid = messaging_service_sid or settings.twilio_messaging_service_sid

    def send(self, recipient: str, subject: str | None, message: str) -> str:
        try:
            sent = self.client.messages.create(
                body=message,
                to=recipient,
                messaging_service_sid=self.messaging_service_sid,
            )
        except TwilioRestException as exc:
            raise ProviderError(f"twilio {exc.status} code={exc.code}: {exc.msg}") from exc
        return sent.sid


def render_email_html(message: str) -> str:
    body = "<br>".join(html.escape(line) for line in message.splitlines())
    return f'<div style="font-family: Arial, sans-serif; line-height: 1.5">{body}</div>'


class ResendEmailProvider:
    channel = "email"

    def __init__(self, api_key: str | None = None, sender: str | None = None) -> None:
        resend.api_key = api_key or settings.resend_api_key
        self.sender = sender or settings.resend_from

    def send(self, recipient: str, subject: str | None, message: str) -> str:
        try:
            response = resend.Emails.send(
                {
                    "from": self.sender,
                    "to": [recipient],
                    "subject": subject or "Kutable",
                    "html": render_email_html(message),
                    "text": message,
                }
            )
        except ResendError as exc:
            raise ProviderError(f"resend: {exc}") from exc
        message_id = response.get("id") if isinstance(response, dict) else getattr(response, "id", None)
        if not message_id:
            raise ProviderError("resend: response carried no message id")
        return message_id
