"""Supabase Auth admin API client (service-role key)."""

import secrets

import httpx

from kutable.common.config import settings
from kutable.common.errors import UpstreamProviderError
from kutable.common.logging import logger


class SupabaseAuthAdmin:
    """Creates auth users and magic links for the claim flow."""

    def __init__(
        self,
        base_url: str | None = None,
        service_role_key: str | None = None,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.supabase_url).rstrip("/")
        key = service_role_key or settings.supabase_service_role_key
        self.headers = {"apikey": key, "Authorization": f"Bearer {key}"}
        self.timeout = timeout
        self.transport = transport

    def _post(self, path: str, body: dict) -> dict:
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                resp = client.post(f"{self.base_url}/auth/v1/admin{path}", headers=self.headers, json=body)
        except httpx.HTTPError as exc:
            logger.error("supabase_admin_unreachable path=%s error=%s", path, exc)
            raise UpstreamProviderError("Account service is unavailable. Please try again.") from exc
        if resp.status_code >= 400:
            logger.error("supabase_admin_rejected path=%s status=%s body=%s", path, resp.status_code, resp.text[:500])
            raise UpstreamProviderError("Account service rejected the request. Please try again.")
        return resp.json()

    def create_user(self, email: str, user_metadata: dict) -> str:
        """Create a confirmed user with a random password; they sign in by magic link."""

        data = self._post(
            "/users",
            {
                "email": email,
                "password": secrets.token_hex(24),
                "email_confirm": True,
                "user_metadata": user_metadata,
            },
        )
        user = data.get("user") or data
        return user["id"]

    def generate_magic_link(self, email: str, redirect_to: str) -> str | None:
        data = self._post("/generate_link", {"type": "magiclink", "email": email, "redirect_to": redirect_to})
        return data.get("action_link") or (data.get("properties") or {}).get("action_link")
