"""
Token manager — the single interface feature code uses to get a usable
access token for an ``(account_id, provider)`` pair.

An expired access token is never handed out: it is refreshed first, and if
that is impossible the caller gets ``ReauthorizationRequired`` so the UI can
prompt a fresh authorization instead of showing an opaque failure.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from connectors.errors import NotFound, ProviderError, ReauthorizationRequired
from connectors.models import ProviderToken
from connectors.registry import ConnectorRegistry
from connectors.token_store import SqlTokenStore

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenRefresher:
    """Refresh-before-use wrapper around the token store."""

    def __init__(
        self,
        store: SqlTokenStore,
        registry: ConnectorRegistry,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._registry = registry
        self._clock = clock

    async def ensure_fresh(self, account_id: str, provider: str) -> ProviderToken:
        """
        Return a token that is valid right now.

        1. Read the stored token (``NotFound`` if never connected).
        2. If ``now < expires_at`` return it unchanged.
        3. Otherwise exchange the refresh token, overwrite the stored
           record and return the new token.

        A failed refresh raises ``ReauthorizationRequired`` and leaves the
        stale record in place; it is not retried.
        """
        connector = self._registry.get(provider)
        token = await self._store.get(account_id, provider)
        now = self._clock()
        if not token.is_expired(now):
            return token

        if not token.refresh_token:
            logger.warning("%s token for account %s expired with no refresh token", provider, account_id)
            raise ReauthorizationRequired(
                f"{connector.display_name} access expired, reconnect required"
            )

        logger.info("Refreshing %s token for account %s (expired %s)", provider, account_id, token.expires_at)
        try:
            grant = await connector.refresh_access_token(token.refresh_token)
        except ProviderError as exc:
            logger.warning("Token refresh failed for %s/%s: %s", provider, account_id, exc)
            raise ReauthorizationRequired(
                f"{connector.display_name} refresh failed, reconnect required"
            ) from exc

        refreshed = token.with_grant(grant, self._clock())
        if refreshed.is_expired(self._clock()):
            raise ReauthorizationRequired(
                f"{connector.display_name} returned an already-expired token"
            )
        await self._store.put(account_id, provider, refreshed)
        logger.info("Refreshed %s token for account %s", provider, account_id)
        return refreshed

    async def get_access_token(self, account_id: str, provider: str) -> str:
        """Shortcut for callers that only need the bearer string."""
        return (await self.ensure_fresh(account_id, provider)).access_token


async def connection_status(
    store: SqlTokenStore,
    account_id: str,
    provider: str,
    *,
    now: Optional[datetime] = None,
) -> dict:
    """
    ``{"isConnected": bool, "expires_at": iso8601}`` for the status endpoint.

    ``expires_at`` is omitted when nothing is stored or the token never expires.
    """
    try:
        token = await store.get(account_id, provider)
    except NotFound:
        return {"isConnected": False}

    now = now or utcnow()
    body: dict = {"isConnected": not token.is_expired(now)}
    if token.expires_at is not None:
        body["expires_at"] = token.expires_at.isoformat()
    return body
