"""
Token store — durable ``(account_id, provider) → ProviderToken`` persistence.

Every query is filtered by ``account_id``; there is deliberately no method
that lists or reads tokens across accounts.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from connectors.encryption import TokenCipher
from connectors.errors import NotFound
from connectors.models import ProviderToken
from database.models import IntegrationToken

logger = logging.getLogger(__name__)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone=True columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SqlTokenStore:
    """SQLAlchemy-backed token store bound to one session."""

    def __init__(self, session: AsyncSession, cipher: TokenCipher) -> None:
        self._session = session
        self._cipher = cipher

    def _insert(self):
        if self._session.get_bind().dialect.name == "sqlite":
            return sqlite_insert(IntegrationToken)
        return pg_insert(IntegrationToken)

    async def _row(self, account_id: str, provider: str) -> Optional[IntegrationToken]:
        result = await self._session.execute(
            select(IntegrationToken)
            .where(
                IntegrationToken.account_id == account_id,
                IntegrationToken.provider == provider,
            )
            # rows written by put() bypass the identity map
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def put(self, account_id: str, provider: str, token: ProviderToken) -> None:
        """Upsert: any previous token for the pair is overwritten, no history kept."""
        now = datetime.now(timezone.utc)
        stmt = self._insert().values(
            token_id=str(uuid.uuid4()),
            account_id=account_id,
            provider=provider,
            user_id=token.user_id,
            access_token=self._cipher.encrypt(token.access_token),
            refresh_token=self._cipher.encrypt(token.refresh_token),
            expires_at=token.expires_at,
            scope=token.scope or "",
            account_identity=token.account_identity,
            api_domain=token.api_domain,
            provider_meta=dict(token.provider_meta or {}),
            connected_at=now,
            updated_at=now,
        )
        updated = [
            "access_token",
            "refresh_token",
            "expires_at",
            "scope",
            "account_identity",
            "api_domain",
            "provider_meta",
            "updated_at",
        ]
        if token.user_id:
            updated.append("user_id")
        stmt = stmt.on_conflict_do_update(
            index_elements=["account_id", "provider"],
            set_={name: stmt.excluded[name] for name in updated},
        )
        await self._session.execute(stmt)
        logger.info("Stored %s token for account %s", provider, account_id)

    async def get(self, account_id: str, provider: str) -> ProviderToken:
        """
        Return the stored token, expired or not.

        Raises
        ------
        NotFound
            If the account never connected this provider (or disconnected).
        """
        row = await self._row(account_id, provider)
        if row is None:
            raise NotFound(f"No {provider} connection for this account")
        return ProviderToken(
            account_id=row.account_id,
            provider=row.provider,
            access_token=self._cipher.decrypt(row.access_token),
            refresh_token=self._cipher.decrypt(row.refresh_token),
            expires_at=_as_utc(row.expires_at),
            scope=row.scope or "",
            account_identity=row.account_identity,
            api_domain=row.api_domain,
            user_id=row.user_id,
            provider_meta=dict(row.provider_meta or {}),
        )

    async def delete(self, account_id: str, provider: str) -> bool:
        """Delete the pair's token. Returns False if there was none."""
        result = await self._session.execute(
            delete(IntegrationToken).where(
                IntegrationToken.account_id == account_id,
                IntegrationToken.provider == provider,
            )
        )
        await self._session.flush()
        deleted = (result.rowcount or 0) > 0
        if deleted:
            logger.info("Deleted %s token for account %s", provider, account_id)
        return deleted
