"""
Shared fixtures: in-memory SQLite database, test settings and a fixed clock.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from config.settings import Settings
from connectors.encryption import TokenCipher
from database.models import Account, AccountMembership, Base, User

NOW = datetime(2026, 3, 2, 12, 0, 0, tzinfo=timezone.utc)

ALICE = "11111111-1111-1111-1111-111111111111"
MALLORY = "22222222-2222-2222-2222-222222222222"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        jwt_secret="test-jwt-secret",
        oauth_state_secret="test-state-secret",
        token_encryption_key="",
        site_url="https://app.example.com",
        oauth_redirect_base="https://api.example.com",
        cookie_secure=False,
        google_client_id="google-id",
        google_client_secret="google-secret",
        hubspot_client_id="hubspot-id",
        hubspot_client_secret="hubspot-secret",
        salesforce_client_id="sf-id",
        salesforce_client_secret="sf-secret",
        zoho_client_id="",
        zoho_client_secret="",
        pipedrive_client_id="pd-id",
        pipedrive_client_secret="pd-secret",
        slack_client_id="slack-id",
        slack_client_secret="slack-secret",
    )


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def cipher() -> TokenCipher:
    return TokenCipher("")


async def _create_and_seed(engine) -> async_sessionmaker:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as db:
        db.add_all(
            [
                User(user_id=ALICE, email="alice@example.com", display_name="Alice"),
                User(user_id=MALLORY, email="mallory@example.com", display_name="Mallory"),
                Account(id="A1", name="Acme", slug="acme"),
                Account(id="A2", name="Globex", slug="globex"),
                Account(id="A3", name="Initech", slug="initech"),
                AccountMembership(account_id="A1", user_id=ALICE, account_role="owner"),
                AccountMembership(account_id="A2", user_id=ALICE, account_role="member"),
                AccountMembership(account_id="A3", user_id=ALICE, account_role="member"),
            ]
        )
        await db.commit()
    return factory


@pytest_asyncio.fixture
async def session():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    factory = await _create_and_seed(engine)
    async with factory() as db:
        yield db

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """Sessions on a file database, each with its own connection."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'connectors.db'}",
        connect_args={"timeout": 10},
    )
    yield await _create_and_seed(engine)
    await engine.dispose()
