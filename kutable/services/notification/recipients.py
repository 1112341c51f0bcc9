"""Recipient normalization for SMS (E.164) and email."""

import phonenumbers
from email_validator import EmailNotValidError, validate_email

from kutable.common.errors import InvalidRecipient

DEFAULT_REGION = "US"


def normalize_phone(raw: str) -> str:
    """Return the E.164 form of `raw`; bare 10-digit numbers are taken as US."""

    try:
        number = phonenumbers.parse((raw or "").strip(), DEFAULT_REGION)
    except phonenumbers.NumberParseException as exc:
        raise InvalidRecipient("Invalid phone number") from exc
    if phonenumbers.is_possible_number_with_reason(number) != phonenumbers.ValidationResult.IS_POSSIBLE:
        raise InvalidRecipient("Invalid phone number")
    return phonenumbers.format_number(number, phonenumbers.PhoneNumberFormat.E164)


def normalize_email(raw: str) -> str:
    try:
        return validate_email((raw or "").strip(), check_deliverability=False).normalized
    except EmailNotValidError as exc:
        raise InvalidRecipient("Invalid email address") from exc


def normalize_recipient(channel: str, raw: str) -> str:
    if channel == "sms":
        return normalize_phone(raw)
    if channel == "email":
        return normalize_email(raw)
    raise InvalidRecipient(f"Unsupported channel: {channel}")
