"""
FastAPI dependencies for authentication.

A session token is accepted either as ``Authorization: Bearer <token>``
(API clients) or as the ``session`` cookie (browser navigations such as the
OAuth redirect and callback, which cannot carry headers).
"""

from __future__ import annotations

from typing import AsyncGenerator, Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from auth.jwt import verify_token
from config.settings import Settings, config
from connectors.errors import Unauthenticated
from database.session import get_db_session

SESSION_COOKIE = "session"


def get_settings() -> Settings:
    """Injection point for settings; tests override it."""
    return config


async def db_session(
    session: AsyncSession = Depends(get_db_session),
) -> AsyncGenerator[AsyncSession, None]:
    """Yield a DB session for route handlers."""
    yield session


def _extract_token(request: Request) -> Optional[str]:
    authorization = request.headers.get("Authorization", "")
    if authorization.startswith("Bearer "):
        return authorization[7:].strip() or None
    return request.cookies.get(SESSION_COOKIE) or None


async def get_optional_user_id(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> Optional[str]:
    """Authenticated ``user_id`` or ``None``; an invalid token counts as none."""
    token = _extract_token(request)
    if not token:
        return None
    try:
        return verify_token(token, settings)
    except Unauthenticated:
        return None


async def get_current_user_id(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> str:
    """
    Verify the session token, returning the authenticated ``user_id``.

    Raises ``Unauthenticated`` (401) when absent, forged or expired.
    """
    token = _extract_token(request)
    if not token:
        raise Unauthenticated("Missing session token")
    return verify_token(token, settings)
