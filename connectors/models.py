"""
Plain data carriers passed between the connector, the flow and the store.

The ORM row lives in ``database.models.IntegrationToken``; these types are
what the rest of the code works with so that no session-bound object ever
leaves the store.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class ProviderToken:
    """Delegated credentials for one ``(account_id, provider)`` pair."""

    account_id: str
    provider: str
    access_token: str
    refresh_token: Optional[str] = None
    # ``None`` means the provider issued a non-expiring token (Slack bot tokens).
    expires_at: Optional[datetime] = None
    scope: str = ""
    account_identity: Optional[str] = None
    api_domain: Optional[str] = None
    user_id: Optional[str] = None
    provider_meta: Dict[str, Any] = field(default_factory=dict)

    def is_expired(self, now: datetime) -> bool:
        """Expired means ``now >= expires_at``; equality is not valid."""
        return self.expires_at is not None and now >= self.expires_at

    def with_grant(self, grant: "TokenGrant", now: datetime) -> "ProviderToken":
        """Return a copy updated from a refresh response."""
        return replace(
            self,
            access_token=grant.access_token,
            refresh_token=grant.refresh_token or self.refresh_token,
            expires_at=grant.expires_at(now),
            scope=grant.scope or self.scope,
            api_domain=grant.api_domain or self.api_domain,
        )


@dataclass(frozen=True)
class TokenGrant:
    """What a provider token endpoint handed back, normalised."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    scope: str = ""
    account_identity: Optional[str] = None
    api_domain: Optional[str] = None
    provider_meta: Dict[str, Any] = field(default_factory=dict)

    def expires_at(self, now: datetime) -> Optional[datetime]:
        if self.expires_in is None:
            return None
        return now + timedelta(seconds=int(self.expires_in))

    def to_token(
        self,
        account_id: str,
        provider: str,
        now: datetime,
        *,
        user_id: Optional[str] = None,
    ) -> ProviderToken:
        return ProviderToken(
            account_id=account_id,
            provider=provider,
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            expires_at=self.expires_at(now),
            scope=self.scope,
            account_identity=self.account_identity,
            api_domain=self.api_domain,
            user_id=user_id,
            provider_meta=dict(self.provider_meta),
        )


@dataclass(frozen=True)
class AuthorizationRequest:
    """Result of starting an authorization flow."""

    provider: str
    account_id: str
    url: str
    nonce: str
    cookie_name: str
    cookie_value: str
    cookie_max_age: int
