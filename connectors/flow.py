"""
OAuthFlow — authorization initiation and callback completion for any provider.

The flow is the same for every provider:

  begin     membership check → nonce → signed cookie + authorization URL
  complete  state/cookie check → membership re-check → code exchange → store

API-key providers skip the redirect: ``connect_api_key`` verifies the key
with the provider and stores it directly.

HTTP concerns (cookies, redirects) stay in ``connectors.routes``; this class
only decides and raises ``ConnectorError`` subclasses.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional, Protocol, Tuple

from config.settings import Settings
from connectors import state as oauth_state
from connectors.errors import (
    AccessDenied,
    InvalidRequest,
    InvalidState,
    NotFound,
    ProviderError,
    Unauthenticated,
)
from connectors.models import AuthorizationRequest, ProviderToken
from connectors.registry import ConnectorRegistry
from connectors.token_manager import connection_status, utcnow
from connectors.token_store import SqlTokenStore

logger = logging.getLogger(__name__)


class MembershipChecker(Protocol):
    async def role_for(self, account_id: str, user_id: str) -> Optional[str]:
        ...


class OAuthFlow:
    def __init__(
        self,
        settings: Settings,
        registry: ConnectorRegistry,
        store: SqlTokenStore,
        memberships: MembershipChecker,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._settings = settings
        self._registry = registry
        self._store = store
        self._memberships = memberships
        self._clock = clock

    async def _require_member(self, account_id: str, user_id: str) -> str:
        role = await self._memberships.role_for(account_id, user_id)
        if role is None:
            raise AccessDenied("Access denied to this account")
        return role

    async def _authorize(self, account_id: Optional[str], user_id: Optional[str]) -> None:
        if not user_id:
            raise Unauthenticated("Sign in required")
        if not account_id:
            raise InvalidRequest("Account ID is required")
        await self._require_member(account_id, user_id)

    async def begin(
        self,
        provider: str,
        account_id: Optional[str],
        user_id: Optional[str],
    ) -> AuthorizationRequest:
        """
        Start an authorization flow for ``account_id``.

        Raises ``UnknownProvider``, ``Unauthenticated``, ``InvalidRequest``,
        ``AccessDenied`` or ``MissingConfiguration``; nothing is issued on
        failure.
        """
        connector = self._registry.get(provider)
        await self._authorize(account_id, user_id)

        nonce = oauth_state.new_nonce()
        # raises MissingConfiguration before anything is handed to the browser
        url = connector.get_auth_url(oauth_state.build_state(account_id, nonce))
        ttl = self._settings.oauth_state_ttl_seconds
        cookie_value = oauth_state.sign_nonce(
            self._settings.oauth_state_secret,
            provider,
            nonce,
            ttl,
            now=self._clock().timestamp(),
        )
        logger.info("Starting %s authorization for account %s (user %s)", provider, account_id, user_id)
        return AuthorizationRequest(
            provider=provider,
            account_id=account_id,
            url=url,
            nonce=nonce,
            cookie_name=oauth_state.state_cookie_name(provider),
            cookie_value=cookie_value,
            cookie_max_age=ttl,
        )

    def verify(self, provider: str, state: Optional[str], cookie_value: Optional[str]) -> oauth_state.VerifiedState:
        """State check only; logs failures as security events."""
        try:
            return oauth_state.verify_state(
                self._settings.oauth_state_secret,
                provider,
                state,
                cookie_value,
                now=self._clock().timestamp(),
            )
        except InvalidState as exc:
            logger.warning("Rejected %s OAuth callback: %s", provider, exc)
            raise

    async def complete(
        self,
        provider: str,
        *,
        state: Optional[str],
        cookie_value: Optional[str],
        code: Optional[str],
        user_id: Optional[str],
        provider_error: Optional[str] = None,
    ) -> ProviderToken:
        """
        Finish the flow on the provider's redirect back to us.

        The state is verified before anything else so that a forged callback
        never reaches the token endpoint, and membership is re-checked for
        the account id recovered from ``state``.
        """
        connector = self._registry.get(provider)
        verified = self.verify(provider, state, cookie_value)
        if not user_id:
            raise Unauthenticated("Sign in required")
        await self._require_member(verified.account_id, user_id)

        if provider_error:
            raise ProviderError(f"{connector.display_name} authorization failed: {provider_error}")
        if not code:
            raise InvalidRequest("Missing authorization code")

        grant = await connector.handle_callback(code)
        token = grant.to_token(verified.account_id, provider, self._clock(), user_id=user_id)
        await self._store.put(verified.account_id, provider, token)
        logger.info(
            "OAuth connected: account=%s provider=%s identity=%s",
            verified.account_id,
            provider,
            token.account_identity,
        )
        return token

    async def connect_api_key(
        self,
        provider: str,
        account_id: Optional[str],
        user_id: Optional[str],
        api_key: Optional[str],
        email: Optional[str] = None,
    ) -> Tuple[ProviderToken, bool]:
        """
        Verify a user-supplied API key and store it for the account.

        Returns the stored token and whether it replaced an earlier connection.
        """
        connector = self._registry.get(provider)
        if connector.auth_type != "api_key":
            raise InvalidRequest(f"{connector.display_name} connects with OAuth, not an API key")
        await self._authorize(account_id, user_id)
        if not api_key or not email:
            raise InvalidRequest("Missing required fields: apiKey and email are required")

        try:
            await self._store.get(account_id, provider)
            is_update = True
        except NotFound:
            is_update = False

        grant = await connector.verify_key(api_key, email)
        token = grant.to_token(account_id, provider, self._clock(), user_id=user_id)
        await self._store.put(account_id, provider, token)
        logger.info(
            "API key %s: account=%s provider=%s identity=%s",
            "updated" if is_update else "connected",
            account_id,
            provider,
            token.account_identity,
        )
        return token, is_update

    async def disconnect(self, provider: str, account_id: Optional[str], user_id: Optional[str]) -> None:
        """Revoke (best effort) and delete the pair's token."""
        connector = self._registry.get(provider)
        await self._authorize(account_id, user_id)

        try:
            token = await self._store.get(account_id, provider)
        except NotFound:
            raise NotFound(f"{connector.display_name} is not connected") from None

        revocable = token.refresh_token
        if not revocable and not token.is_expired(self._clock()):
            revocable = token.access_token
        if not revocable:
            logger.info("%s token already expired, skipping revocation", provider)
        elif not await connector.revoke_token(revocable):
            logger.info("%s token not revoked at provider (unsupported or refused)", provider)
        await self._store.delete(account_id, provider)
        logger.info("Disconnected %s for account %s", provider, account_id)

    async def status(self, provider: str, account_id: Optional[str], user_id: Optional[str]) -> dict:
        self._registry.get(provider)
        await self._authorize(account_id, user_id)
        return await connection_status(self._store, account_id, provider, now=self._clock())
