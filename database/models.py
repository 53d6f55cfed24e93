"""
SQLAlchemy ORM models.

Only the slice of the tenant schema the connector needs: users (for
sessions), accounts and memberships (read-only authorization oracle) and
the per-(account, provider) integration tokens.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase


def _uuid_str() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    user_id = Column(String(36), primary_key=True, default=_uuid_str)
    email = Column(String(255), unique=True, nullable=False)
    display_name = Column(String(128))
    password_hash = Column(String(255), nullable=False, default="")
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class Account(Base):
    __tablename__ = "accounts"

    id = Column(String(64), primary_key=True, default=_uuid_str)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class AccountMembership(Base):
    __tablename__ = "accounts_memberships"

    account_id = Column(String(64), ForeignKey("accounts.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.user_id", ondelete="CASCADE"), primary_key=True)
    account_role = Column(String(32), nullable=False, default="member")
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class IntegrationToken(Base):
    __tablename__ = "integration_tokens"
    __table_args__ = (
        UniqueConstraint("account_id", "provider", name="uq_integration_tokens_account_provider"),
    )

    token_id = Column(String(36), primary_key=True, default=_uuid_str)
    account_id = Column(String(64), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    provider = Column(String(32), nullable=False)
    user_id = Column(String(36), ForeignKey("users.user_id", ondelete="SET NULL"), nullable=True)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text)
    expires_at = Column(DateTime(timezone=True))
    scope = Column(Text, nullable=False, default="")
    account_identity = Column(String(320))
    api_domain = Column(String(512))
    provider_meta = Column(JSON().with_variant(JSONB, "postgresql"), default=dict)
    connected_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
