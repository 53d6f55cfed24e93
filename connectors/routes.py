"""
Connector API routes — OAuth initiation/callback, status, disconnect.

  GET  /auth/{provider}?accountId=…          302 to the provider
  POST /auth/{provider}                      {"redirectUrl": …} for XHR callers
  GET  /auth/{provider}/callback             provider redirect target
  POST /auth/{provider}/verify               API-key providers (Folk): verify + store
  GET  /integrations/providers               catalogue
  GET  /integrations/{provider}/status       {"isConnected", "expires_at"?}
  POST /integrations/{provider}/disconnect   revoke + delete
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urlencode

from fastapi import APIRouter, Body, Depends, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from auth.dependencies import db_session, get_current_user_id, get_optional_user_id, get_settings
from config.settings import Settings
from connectors.encryption import TokenCipher
from connectors.errors import (
    AccessDenied,
    ConnectorError,
    InvalidState,
    MissingConfiguration,
    Unauthenticated,
    UnknownProvider,
)
from connectors.flow import OAuthFlow
from connectors.models import AuthorizationRequest
from connectors.registry import ConnectorRegistry
from connectors.state import parse_state, state_cookie_name
from connectors.token_store import SqlTokenStore
from database.helpers import SqlMembershipChecker, get_account_slug

logger = logging.getLogger(__name__)

router = APIRouter(tags=["connectors"])


# ── Dependencies ───────────────────────────────────────────────────────

_registries: Dict[int, ConnectorRegistry] = {}


def get_connector_registry(settings: Settings = Depends(get_settings)) -> ConnectorRegistry:
    # one registry per settings object; ids can be reused once a settings object is freed
    registry = _registries.get(id(settings))
    if registry is None or registry.settings is not settings:
        registry = _registries[id(settings)] = ConnectorRegistry(settings)
    return registry


@lru_cache(maxsize=4)
def _cipher_for(key: str) -> TokenCipher:
    return TokenCipher(key)


def get_token_cipher(settings: Settings = Depends(get_settings)) -> TokenCipher:
    return _cipher_for(settings.token_encryption_key)


def get_oauth_flow(
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(get_settings),
    registry: ConnectorRegistry = Depends(get_connector_registry),
    cipher: TokenCipher = Depends(get_token_cipher),
) -> OAuthFlow:
    return OAuthFlow(
        settings,
        registry,
        SqlTokenStore(session, cipher),
        SqlMembershipChecker(session),
    )


class AccountRequest(BaseModel):
    accountId: Optional[str] = None


class ApiKeyRequest(BaseModel):
    apiKey: Optional[str] = None
    email: Optional[str] = None
    accountId: Optional[str] = None


# ── Helpers ────────────────────────────────────────────────────────────


def _site_url(settings: Settings, path: str, params: Optional[Dict[str, str]] = None) -> str:
    url = f"{settings.site_url.rstrip('/')}{path}"
    if params:
        url += "?" + urlencode(params)
    return url


def _set_state_cookie(response: Any, auth_req: AuthorizationRequest, settings: Settings) -> None:
    response.set_cookie(
        auth_req.cookie_name,
        auth_req.cookie_value,
        max_age=auth_req.cookie_max_age,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
    )


def _integrations_path(slug: Optional[str]) -> str:
    if not slug:
        return "/home"
    return f"/home/{quote(slug, safe='')}/integrations"


# ── Routes ─────────────────────────────────────────────────────────────


@router.get("/auth/{provider}")
async def start_authorization(
    provider: str,
    accountId: Optional[str] = Query(None),
    user_id: Optional[str] = Depends(get_optional_user_id),
    flow: OAuthFlow = Depends(get_oauth_flow),
    settings: Settings = Depends(get_settings),
) -> RedirectResponse:
    """
    Browser entry point: redirect to the provider's consent page.

    An anonymous visitor is sent to the sign-in page; every other failure is
    returned as a JSON error and no redirect happens.
    """
    try:
        auth_req = await flow.begin(provider, accountId, user_id)
    except Unauthenticated:
        return RedirectResponse(_site_url(settings, settings.sign_in_path), status_code=302)

    response = RedirectResponse(auth_req.url, status_code=302)
    _set_state_cookie(response, auth_req, settings)
    return response


@router.post("/auth/{provider}")
async def create_authorization(
    provider: str,
    payload: Optional[AccountRequest] = Body(None),
    accountId: Optional[str] = Query(None),
    user_id: str = Depends(get_current_user_id),
    flow: OAuthFlow = Depends(get_oauth_flow),
    settings: Settings = Depends(get_settings),
) -> JSONResponse:
    """XHR variant: returns the authorization URL instead of redirecting."""
    account_id = (payload.accountId if payload else None) or accountId
    auth_req = await flow.begin(provider, account_id, user_id)
    response = JSONResponse({"success": True, "redirectUrl": auth_req.url})
    _set_state_cookie(response, auth_req, settings)
    return response


@router.get("/auth/{provider}/callback")
async def oauth_callback(
    provider: str,
    request: Request,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    user_id: Optional[str] = Depends(get_optional_user_id),
    flow: OAuthFlow = Depends(get_oauth_flow),
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(get_settings),
) -> RedirectResponse:
    """
    Provider redirect target.

    Verifies the state cookie, re-checks membership, exchanges the code and
    stores the token, then redirects to the account's integrations page with
    ``connected=`` or ``error=``.  The state cookie is cleared whatever happens.
    """
    cookie_name = state_cookie_name(provider)
    try:
        token = await flow.complete(
            provider,
            state=state,
            cookie_value=request.cookies.get(cookie_name),
            code=code,
            user_id=user_id,
            provider_error=error,
        )
        await session.commit()
        slug = await get_account_slug(session, token.account_id)
        target = _site_url(settings, _integrations_path(slug), {"connected": provider})
    except Unauthenticated:
        target = _site_url(settings, settings.sign_in_path)
    except (InvalidState, AccessDenied, UnknownProvider) as exc:
        # account id in state is not trusted here; do not look it up
        target = _site_url(settings, "/home", {"error": exc.code})
    except MissingConfiguration as exc:
        logger.error("OAuth callback for %s hit a configuration error: %s", provider, exc)
        account_id, _ = parse_state(state)
        slug = await get_account_slug(session, account_id)
        target = _site_url(settings, _integrations_path(slug), {"error": exc.code, "provider": provider})
    except ConnectorError as exc:
        logger.warning("OAuth callback failed for %s: %s", provider, exc)
        account_id, _ = parse_state(state)
        slug = await get_account_slug(session, account_id)
        target = _site_url(settings, _integrations_path(slug), {"error": exc.code, "provider": provider})
    except Exception:
        logger.exception("Unexpected error in %s OAuth callback", provider)
        await session.rollback()
        target = _site_url(settings, "/home", {"error": "connection_failed", "provider": provider})

    response = RedirectResponse(target, status_code=302)
    response.delete_cookie(cookie_name, httponly=True, secure=settings.cookie_secure, samesite="lax")
    return response


@router.post("/auth/{provider}/verify")
async def verify_api_key(
    provider: str,
    payload: Optional[ApiKeyRequest] = Body(None),
    user_id: str = Depends(get_current_user_id),
    flow: OAuthFlow = Depends(get_oauth_flow),
    registry: ConnectorRegistry = Depends(get_connector_registry),
) -> Dict[str, Any]:
    """Connect an API-key provider: check the key with the provider, then store it."""
    payload = payload or ApiKeyRequest()
    token, is_update = await flow.connect_api_key(
        provider, payload.accountId, user_id, payload.apiKey, payload.email
    )
    display_name = registry.get(provider).display_name
    user_info = token.provider_meta.get("user_info") or {}
    return {
        "success": True,
        "message": (
            f"Successfully updated {display_name} connection"
            if is_update
            else f"Successfully connected to {display_name}"
        ),
        "userInfo": {
            "id": user_info.get("id"),
            "email": token.account_identity,
            "name": user_info.get("fullName") or user_info.get("name"),
        },
        "isUpdate": is_update,
    }


@router.get("/integrations/providers")
async def list_providers(
    registry: ConnectorRegistry = Depends(get_connector_registry),
) -> List[Dict[str, object]]:
    """
    List all supported providers and whether each is configured.
    No auth required; used by the frontend to render the integrations grid.
    """
    return registry.list_providers()


@router.get("/integrations/{provider}/status")
async def integration_status(
    provider: str,
    accountId: Optional[str] = Query(None),
    user_id: str = Depends(get_current_user_id),
    flow: OAuthFlow = Depends(get_oauth_flow),
) -> Dict[str, Any]:
    return await flow.status(provider, accountId, user_id)


@router.post("/integrations/{provider}/disconnect")
async def disconnect_integration(
    provider: str,
    payload: Optional[AccountRequest] = Body(None),
    user_id: str = Depends(get_current_user_id),
    flow: OAuthFlow = Depends(get_oauth_flow),
    registry: ConnectorRegistry = Depends(get_connector_registry),
) -> Dict[str, Any]:
    """Disconnect and revoke a provider for the account."""
    await flow.disconnect(provider, payload.accountId if payload else None, user_id)
    return {
        "success": True,
        "message": f"Successfully disconnected {registry.get(provider).display_name}",
        "platform": provider,
    }
