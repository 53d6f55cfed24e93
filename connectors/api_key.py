"""
ApiKeyConnector — providers that connect with a user-supplied API key
instead of an OAuth2 redirect (Folk CRM).

The key is checked against the provider's "who am I" endpoint and, once
accepted, stored like any other token: ``access_token`` holds the key and
``expires_at`` is ``None`` because API keys do not expire.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import httpx

from connectors.base import _dig
from connectors.errors import InvalidRequest, ProviderError
from connectors.models import TokenGrant

logger = logging.getLogger(__name__)

_STATUS_MESSAGES = {
    401: "Invalid API key. Please check your {name} API key and try again.",
    403: "Access forbidden. Please check your {name} API key permissions.",
    404: "{name} API endpoint not found. Please contact support.",
    429: "Too many requests. Please wait a moment and try again.",
    500: "{name} API is temporarily unavailable. Please try again later.",
    502: "{name} API is temporarily unavailable. Please try again later.",
    503: "{name} API is temporarily unavailable. Please try again later.",
}


@dataclass(frozen=True)
class ApiKeyDescriptor:
    """Static description of an API-key provider."""

    name: str
    display_name: str
    verify_path: str = "users/me"
    identity_path: Tuple[str, ...] = ("data", "email")
    name_path: Tuple[str, ...] = ("data", "fullName")
    user_info_path: Tuple[str, ...] = ("data",)
    scope: str = ""
    icon: str = "🔑"


class ApiKeyConnector:
    """Verifies API keys; has no authorization URL, refresh or revocation."""

    auth_type = "api_key"

    def __init__(
        self,
        descriptor: ApiKeyDescriptor,
        base_url: str,
        *,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.descriptor = descriptor
        self.base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    @property
    def provider_name(self) -> str:
        return self.descriptor.name

    @property
    def display_name(self) -> str:
        return self.descriptor.display_name

    @property
    def icon(self) -> str:
        return self.descriptor.icon

    def is_configured(self) -> bool:
        # keys come from the user, only the API root is deployment config
        return bool(self.base_url)

    def get_auth_url(self, state: str) -> str:
        raise InvalidRequest(f"{self.display_name} connects with an API key, not OAuth")

    async def handle_callback(self, code: str) -> TokenGrant:
        raise InvalidRequest(f"{self.display_name} connects with an API key, not OAuth")

    async def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        raise ProviderError(f"{self.display_name} API keys cannot be refreshed")

    async def revoke_token(self, token: str) -> bool:
        return False

    async def verify_key(self, api_key: str, email: Optional[str] = None) -> TokenGrant:
        """
        Check ``api_key`` against the provider and describe the connection.

        Raises
        ------
        InvalidRequest
            Blank key, key rejected by the provider, or ``email`` differs from
            the account the key belongs to.
        ProviderError
            The provider could not be reached or answered with garbage.
        """
        api_key = (api_key or "").strip()
        if not api_key:
            raise InvalidRequest("API key cannot be empty")

        d = self.descriptor
        url = f"{self.base_url}/{d.verify_path.lstrip('/')}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.get(
                    url,
                    headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
                )
        except httpx.HTTPError as exc:
            raise ProviderError(f"{self.display_name} API unreachable: {exc}") from exc

        if resp.status_code >= 400:
            logger.warning("%s key check returned %s", self.provider_name, resp.status_code)
            template = _STATUS_MESSAGES.get(
                resp.status_code,
                f"{{name}} API error ({resp.status_code}). Please verify your API key.",
            )
            raise InvalidRequest(template.format(name=self.display_name))

        try:
            body = resp.json()
        except ValueError as exc:
            raise ProviderError(f"{self.display_name} returned a non-JSON response") from exc

        identity = _dig(body, d.identity_path)
        if identity and email and identity.lower() != email.strip().lower():
            raise InvalidRequest(
                f"Email does not match your {self.display_name} account. Please verify and try again."
            )

        user_info: Dict[str, Any] = _dig(body, d.user_info_path) or {}
        return TokenGrant(
            access_token=api_key,
            expires_in=None,
            scope=d.scope,
            account_identity=(identity or email or "").strip().lower() or None,
            api_domain=self.base_url,
            provider_meta={"user_info": user_info if isinstance(user_info, dict) else {}},
        )
