"""Caller authentication for internal endpoints."""

import hmac

from kutable.common.config import settings
from kutable.common.errors import AuthorizationError


def enforce_service_role(authorization: str | None) -> None:
    """Reject requests that do not carry the service-role key as a bearer token."""

    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise AuthorizationError("Missing authorization")
    if not hmac.compare_digest(token.strip(), settings.supabase_service_role_key):
        raise AuthorizationError("Invalid authorization")
