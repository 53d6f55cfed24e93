"""
Database helper functions — read-only lookups against the tenant schema.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import Account, AccountMembership


async def get_membership_role(
    session: AsyncSession,
    account_id: str,
    user_id: str,
) -> Optional[str]:
    """Return the user's role on the account, or ``None`` if not a member."""
    result = await session.execute(
        select(AccountMembership.account_role).where(
            AccountMembership.account_id == account_id,
            AccountMembership.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def get_account_slug(session: AsyncSession, account_id: str) -> str:
    """Slug (or name) used in frontend paths; falls back to the id itself."""
    result = await session.execute(
        select(Account.slug, Account.name).where(Account.id == account_id)
    )
    row = result.one_or_none()
    if row is None:
        return account_id
    return row.slug or row.name or account_id


class SqlMembershipChecker:
    """Membership oracle backed by the ``accounts_memberships`` table."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def role_for(self, account_id: str, user_id: str) -> Optional[str]:
        return await get_membership_role(self._session, account_id, user_id)
