"""Request payloads for the payments service (camelCase on the wire)."""

from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts the camelCase keys clients send, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ClientDetails(CamelModel):
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    phone: str = Field(min_length=1)
    email: str = Field(min_length=3)
    notes: str | None = None


class PaymentIntentRequest(CamelModel):
    """Payload accepted by `POST /create-payment-intent`."""

    barber_id: str = Field(min_length=1)
    client_id: str | None = None
    service_id: str = Field(min_length=1)
    appointment_date: str = Field(min_length=1)
    appointment_time: str = Field(min_length=1)
    client_details: ClientDetails
    total_amount: Decimal = Field(gt=0, decimal_places=2)
    deposit_amount: Decimal | None = Field(default=None, ge=0, decimal_places=2)


class CheckoutMetadata(CamelModel):
    barber_id: str | None = None
    client_id: str | None = None
    service_id: str | None = None
    appointment_date: str | None = None
    appointment_time: str | None = None
    notes: str | None = None


class CheckoutSessionRequest(CamelModel):
    """Payload accepted by `POST /create-checkout-session`.

    Cross-field rules (priceId versus inline amount, email versus customer id,
    https URLs) are checked by the service so they surface readable messages.
    """

    mode: Literal["payment", "subscription"] = "payment"
    success_url: str
    cancel_url: str
    price_id: str | None = None
    amount: int | None = None
    currency: str | None = None
    name: str | None = None
    customer_email: str | None = None
    customer_id: str | None = None
    metadata: CheckoutMetadata = Field(default_factory=CheckoutMetadata)
    connected_account_id: str | None = None


class CreateAccountRequest(CamelModel):
    barber_id: str = Field(min_length=1)
    business_name: str = Field(min_length=1)
    owner_name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    phone: str | None = None


class CheckStatusRequest(CamelModel):
    account_id: str = Field(min_length=1)


class DisconnectAccountRequest(CamelModel):
    barber_id: str = Field(min_length=1)


class ConfirmPaymentRequest(CamelModel):
    """Payload accepted by `POST /confirm-payment`."""

    payment_intent_id: str = Field(min_length=1)
    booking_id: str = Field(min_length=1)


class RefundRequest(BaseModel):
    payment_intent_id: str = Field(min_length=1)
    booking_id: str = Field(min_length=1)
