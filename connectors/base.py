"""
OAuthConnector — one generic OAuth2 authorization-code client.

Providers differ only in endpoints, scopes and a handful of response
quirks, so they are described by a ``ProviderDescriptor`` record (see
``connectors.providers``) instead of one subclass each.  A connector is a
descriptor bound to that provider's ``ProviderCredentials``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlencode

import httpx

from config.settings import ProviderCredentials
from connectors.errors import MissingConfiguration, ProviderError
from connectors.models import TokenGrant

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderDescriptor:
    """Static description of an OAuth2 provider."""

    name: str
    display_name: str
    authorize_url: str
    token_url: str
    scopes: Tuple[str, ...] = ()
    optional_scopes: Tuple[str, ...] = ()
    scope_separator: str = " "
    # settings group holding the client id/secret when it is not ``name``
    credential_prefix: Optional[str] = None
    uses_offline_access: bool = False
    prompt_consent: bool = False
    # "body" sends client_id/secret as form fields, "basic" as HTTP Basic auth
    token_auth: str = "body"
    # used when the token response carries no ``expires_in``; None = never expires
    default_expires_in: Optional[int] = 3600
    # JSON key in the token response whose falsy value means failure (Slack "ok")
    ok_field: Optional[str] = None
    identity_url: Optional[str] = None
    identity_path: Tuple[str, ...] = ("email",)
    identity_required: bool = False
    identity_from_token: Tuple[str, ...] = ()
    api_domain_field: Optional[str] = None
    api_domain_identity_path: Tuple[str, ...] = ()
    api_domain_default: Optional[str] = None
    revoke_url: Optional[str] = None
    icon: str = "🔗"


def _dig(payload: Any, path: Tuple[str, ...]) -> Any:
    """Walk nested dicts; ``None`` as soon as a key is missing."""
    for key in path:
        if not isinstance(payload, dict):
            return None
        payload = payload.get(key)
    return payload


class OAuthConnector:
    """OAuth2 authorization-code client driven by a ``ProviderDescriptor``."""

    auth_type = "oauth"

    def __init__(
        self,
        descriptor: ProviderDescriptor,
        credentials: ProviderCredentials,
        *,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.descriptor = descriptor
        self.credentials = credentials
        self._timeout = timeout
        self._transport = transport

    # ── Identity ────────────────────────────────────────────────────────

    @property
    def provider_name(self) -> str:
        return self.descriptor.name

    @property
    def display_name(self) -> str:
        return self.descriptor.display_name

    @property
    def scopes(self) -> List[str]:
        return list(self.credentials.scopes or self.descriptor.scopes)

    @property
    def icon(self) -> str:
        return self.descriptor.icon

    def is_configured(self) -> bool:
        return bool(self.credentials.client_id and self.credentials.client_secret)

    def _require_client_id(self) -> str:
        if not self.credentials.client_id:
            raise MissingConfiguration(f"{self.display_name} client ID not configured")
        return self.credentials.client_id

    def _require_client_secret(self) -> str:
        if not self.credentials.client_secret:
            raise MissingConfiguration(f"{self.display_name} client secret not configured")
        return self.credentials.client_secret

    # ── OAuth flow ──────────────────────────────────────────────────────

    def get_auth_url(self, state: str) -> str:
        """
        Build the provider's OAuth2 authorization URL.

        Parameters
        ----------
        state : str
            ``"{account_id}:{nonce}"``, echoed back on the callback.

        Raises
        ------
        MissingConfiguration
            If no client ID is configured for this provider.
        """
        d = self.descriptor
        params: Dict[str, str] = {
            "client_id": self._require_client_id(),
            "redirect_uri": self.credentials.redirect_uri,
            "response_type": "code",
        }
        if self.scopes:
            params["scope"] = d.scope_separator.join(self.scopes)
        if d.optional_scopes:
            params["optional_scope"] = d.scope_separator.join(d.optional_scopes)
        if d.uses_offline_access:
            params["access_type"] = "offline"
        if d.prompt_consent:
            params["prompt"] = "consent"
        params["state"] = state
        return f"{d.authorize_url}?{urlencode(params)}"

    async def handle_callback(self, code: str) -> TokenGrant:
        """Exchange the authorization code for tokens and resolve the identity."""
        async with self._client() as client:
            payload = await self._post_token(
                client,
                {
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": self.credentials.redirect_uri,
                },
            )
            identity, user_info = await self._resolve_identity(client, payload)

        api_domain = self._api_domain(payload, user_info)
        meta: Dict[str, Any] = dict(user_info or {})
        if self.descriptor.ok_field:
            # Slack-style responses carry workspace info instead of a userinfo call
            for key in ("team", "authed_user", "bot_user_id", "app_id"):
                if key in payload:
                    meta[key] = _strip_secrets(payload[key])

        return TokenGrant(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            expires_in=self._expires_in(payload),
            scope=_normalise_scope(payload.get("scope"), self.scopes),
            account_identity=identity,
            api_domain=api_domain,
            provider_meta=meta,
        )

    async def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        """Use a refresh token to get a new access token."""
        async with self._client() as client:
            payload = await self._post_token(
                client,
                {"grant_type": "refresh_token", "refresh_token": refresh_token},
            )
        return TokenGrant(
            access_token=payload["access_token"],
            # some providers rotate refresh tokens, most do not
            refresh_token=payload.get("refresh_token"),
            expires_in=self._expires_in(payload),
            scope=_normalise_scope(payload.get("scope"), []),
            api_domain=self._api_domain(payload, None),
        )

    async def revoke_token(self, token: str) -> bool:
        """
        Revoke the token at the provider.
        Returns False if the provider has no revocation endpoint or refused.
        """
        if not self.descriptor.revoke_url:
            return False
        try:
            async with self._client() as client:
                resp = await client.post(self.descriptor.revoke_url, data={"token": token})
        except httpx.HTTPError as exc:
            logger.warning("%s token revocation failed: %s", self.provider_name, exc)
            return False
        return resp.status_code == 200

    # ── Helpers ─────────────────────────────────────────────────────────

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def _post_token(self, client: httpx.AsyncClient, data: Dict[str, str]) -> Dict[str, Any]:
        client_id = self._require_client_id()
        client_secret = self._require_client_secret()
        auth = None
        if self.descriptor.token_auth == "basic":
            auth = httpx.BasicAuth(client_id, client_secret)
        else:
            data = {**data, "client_id": client_id, "client_secret": client_secret}

        try:
            resp = await client.post(
                self.descriptor.token_url,
                data=data,
                auth=auth,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            raise ProviderError(f"{self.display_name} token endpoint unreachable: {exc}") from exc

        if resp.status_code >= 400:
            logger.warning(
                "%s token endpoint returned %s: %s",
                self.provider_name,
                resp.status_code,
                resp.text[:200],
            )
            raise ProviderError(f"{self.display_name} token request failed ({resp.status_code})")

        try:
            payload = resp.json()
        except ValueError as exc:
            raise ProviderError(f"{self.display_name} returned a non-JSON token response") from exc

        if not isinstance(payload, dict):
            raise ProviderError(f"{self.display_name} returned an unexpected token response")
        ok_field = self.descriptor.ok_field
        if ok_field and not payload.get(ok_field):
            raise ProviderError(f"{self.display_name} rejected the request: {payload.get('error', 'unknown')}")
        if not payload.get("access_token"):
            error = payload.get("error")
            raise ProviderError(f"{self.display_name} token response has no access_token ({error or 'empty'})")
        return payload

    async def _resolve_identity(
        self,
        client: httpx.AsyncClient,
        payload: Dict[str, Any],
    ) -> Tuple[Optional[str], Optional[Dict[str, Any]]]:
        d = self.descriptor
        if d.identity_from_token:
            return _dig(payload, d.identity_from_token), None
        if not d.identity_url:
            return None, None

        url = d.identity_url.format(instance_url=payload.get("instance_url", ""))
        try:
            resp = await client.get(url, headers={"Authorization": f"Bearer {payload['access_token']}"})
            resp.raise_for_status()
            user_info = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            if d.identity_required:
                raise ProviderError(f"{self.display_name} user info fetch failed: {exc}") from exc
            logger.warning("%s user info fetch failed: %s", self.provider_name, exc)
            return None, None
        return _dig(user_info, d.identity_path), user_info

    def _api_domain(self, payload: Dict[str, Any], user_info: Optional[Dict[str, Any]]) -> Optional[str]:
        d = self.descriptor
        if d.api_domain_field and payload.get(d.api_domain_field):
            return payload[d.api_domain_field]
        if d.api_domain_identity_path and user_info:
            found = _dig(user_info, d.api_domain_identity_path)
            if found:
                return found
        return d.api_domain_default

    def _expires_in(self, payload: Dict[str, Any]) -> Optional[int]:
        raw = payload.get("expires_in")
        if raw is None:
            return self.descriptor.default_expires_in
        try:
            return int(raw)
        except (TypeError, ValueError):
            return self.descriptor.default_expires_in


def _normalise_scope(raw: Any, fallback: List[str]) -> str:
    """Store scopes space-delimited whatever the provider's separator is."""
    if isinstance(raw, list):
        return " ".join(raw)
    if raw:
        return " ".join(s for s in str(raw).replace(",", " ").split() if s)
    return " ".join(fallback)


def _strip_secrets(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: v for k, v in value.items() if "token" not in k}
    return value
