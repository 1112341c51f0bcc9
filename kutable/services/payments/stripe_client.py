"""Thin Stripe API wrapper used by the payments service.

Every call returns plain dicts and converts `stripe.StripeError` into
`UpstreamProviderError` with a user-safe message; the provider detail and
request id are logged here and nowhere else.
"""

import stripe

from kutable.common.config import settings
from kutable.common.errors import UpstreamProviderError
from kutable.common.logging import logger


def _plain(obj) -> dict:
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


class StripeGateway:
    """Platform-account Stripe operations (Connect accounts, intents, checkout, refunds)."""

    def __init__(self, api_key: str | None = None, api_version: str | None = None) -> None:
        stripe.api_key = api_key or settings.stripe_secret_key
        stripe.api_version = api_version or settings.stripe_api_version

    def _call(self, operation: str, fn, *args, **kwargs) -> dict:
        try:
            return _plain(fn(*args, **kwargs))
        except stripe.StripeError as exc:
            logger.error(
                "stripe_call_failed operation=%s request_id=%s code=%s error=%s",
                operation,
                getattr(exc, "request_id", None),
                getattr(exc, "code", None),
                exc,
            )
            message = getattr(exc, "user_message", None) or "Payment provider error. Please try again."
            raise UpstreamProviderError(message) from exc

    def create_account(self, **params) -> dict:
        return self._call("account.create", stripe.Account.create, **params)

    def retrieve_account(self, account_id: str) -> dict:
        return self._call("account.retrieve", stripe.Account.retrieve, account_id)

    def create_account_link(self, account_id: str, refresh_url: str, return_url: str) -> dict:
        return self._call(
            "account_link.create",
            stripe.AccountLink.create,
            account=account_id,
            refresh_url=refresh_url,
            return_url=return_url,
            type="account_onboarding",
            collect="eventually_due",
        )

    def create_payment_intent(self, idempotency_key: str, **params) -> dict:
        return self._call("payment_intent.create", stripe.PaymentIntent.create, idempotency_key=idempotency_key, **params)

    def cancel_payment_intent(self, payment_intent_id: str, idempotency_key: str | None = None) -> dict:
        kwargs = {"idempotency_key": idempotency_key} if idempotency_key else {}
        return self._call("payment_intent.cancel", stripe.PaymentIntent.cancel, payment_intent_id, **kwargs)

    def retrieve_payment_intent(self, payment_intent_id: str) -> dict:
        return self._call(
            "payment_intent.retrieve",
            stripe.PaymentIntent.retrieve,
            payment_intent_id,
            expand=["latest_charge"],
        )

    def retrieve_price(self, price_id: str) -> dict:
        return self._call("price.retrieve", stripe.Price.retrieve, price_id)

    def create_checkout_session(self, idempotency_key: str, **params) -> dict:
        return self._call(
            "checkout_session.create", stripe.checkout.Session.create, idempotency_key=idempotency_key, **params
        )

    def create_refund(self, charge_id: str, idempotency_key: str) -> dict:
        return self._call(
            "refund.create",
            stripe.Refund.create,
            charge=charge_id,
            reason="requested_by_customer",
            idempotency_key=idempotency_key,
        )
