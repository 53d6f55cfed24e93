"""
Tests for the generic OAuthConnector against each provider descriptor.
"""

import base64
import json
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from connectors.api_key import ApiKeyConnector
from connectors.base import OAuthConnector
from connectors.errors import InvalidRequest, MissingConfiguration, ProviderError, UnknownProvider
from connectors.providers import FOLK, GMAIL, PIPEDRIVE, SALESFORCE, SLACK
from connectors.registry import ConnectorRegistry


def _query(url: str) -> dict:
    return {k: v[0] for k, v in parse_qs(urlparse(url).query).items()}


def _form(request: httpx.Request) -> dict:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


class TestAuthUrl:
    def test_gmail_url(self, settings):
        url = ConnectorRegistry(settings).get("gmail").get_auth_url("A1:nonce")
        assert url.startswith("https://accounts.google.com/o/oauth2/v2/auth?")
        q = _query(url)
        assert q["client_id"] == "google-id"
        assert q["redirect_uri"] == "https://api.example.com/auth/gmail/callback"
        assert q["response_type"] == "code"
        assert q["state"] == "A1:nonce"
        assert q["access_type"] == "offline"
        assert q["prompt"] == "consent"
        assert "https://www.googleapis.com/auth/calendar.events" in q["scope"].split(" ")
        assert len(q["scope"].split(" ")) == 5

    def test_hubspot_optional_scopes(self, settings):
        q = _query(ConnectorRegistry(settings).get("hubspot").get_auth_url("A1:n"))
        assert q["scope"] == "oauth"
        assert "crm.objects.deals.write" in q["optional_scope"].split(" ")
        assert "access_type" not in q

    def test_slack_scopes_are_comma_separated(self, settings):
        q = _query(ConnectorRegistry(settings).get("slack").get_auth_url("A1:n"))
        assert q["scope"] == "chat:write,users:read,app_mentions:read"

    def test_pipedrive_has_no_scope(self, settings):
        q = _query(ConnectorRegistry(settings).get("pipedrive").get_auth_url("A1:n"))
        assert "scope" not in q
        assert q["client_id"] == "pd-id"

    def test_salesforce_prompts_for_consent(self, settings):
        q = _query(ConnectorRegistry(settings).get("salesforce").get_auth_url("A1:n"))
        assert q["prompt"] == "consent"
        assert q["scope"] == "openid api refresh_token id profile email"

    def test_missing_client_id(self, settings):
        with pytest.raises(MissingConfiguration):
            ConnectorRegistry(settings).get("zoho").get_auth_url("A3:n")

    def test_redirect_uri_override(self, settings):
        settings.hubspot_redirect_uri = "https://custom.example.com/cb"
        q = _query(ConnectorRegistry(settings).get("hubspot").get_auth_url("A1:n"))
        assert q["redirect_uri"] == "https://custom.example.com/cb"

    def test_scope_override_replaces_defaults(self, settings):
        settings.hubspot_scopes = "oauth, crm.objects.contacts.read"
        q = _query(ConnectorRegistry(settings).get("hubspot").get_auth_url("A1:n"))
        assert q["scope"] == "oauth crm.objects.contacts.read"

    def test_slack_scope_override_keeps_comma_separator(self, settings):
        settings.slack_scopes = "chat:write users:read"
        q = _query(ConnectorRegistry(settings).get("slack").get_auth_url("A1:n"))
        assert q["scope"] == "chat:write,users:read"


class TestRegistry:
    def test_unknown_provider(self, settings):
        with pytest.raises(UnknownProvider):
            ConnectorRegistry(settings).get("myspace")

    def test_list_providers(self, settings):
        providers = {p["provider"]: p for p in ConnectorRegistry(settings).list_providers()}
        assert set(providers) == {"gmail", "hubspot", "salesforce", "zoho", "pipedrive", "slack", "folk"}
        assert providers["zoho"]["configured"] is False
        assert providers["gmail"]["configured"] is True
        assert providers["gmail"]["auth_type"] == "oauth"
        assert providers["folk"]["auth_type"] == "api_key"
        assert providers["folk"]["configured"] is True

    def test_api_key_base_url(self, settings):
        assert ConnectorRegistry(settings).get("folk").base_url == "https://api.folk.app/v1"
        settings.folk_api_version = ""
        assert ConnectorRegistry(settings).get("folk").base_url == "https://api.folk.app"

    def test_list_configured(self, settings):
        assert "zoho" not in ConnectorRegistry(settings).list_configured()


class TestCodeExchange:
    @pytest.mark.asyncio
    async def test_gmail_exchange_fetches_identity(self, settings):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if request.url.host == "oauth2.googleapis.com":
                return httpx.Response(200, json={
                    "access_token": "ya29.access",
                    "refresh_token": "1//refresh",
                    "expires_in": 3599,
                    "scope": "https://www.googleapis.com/auth/gmail.readonly",
                    "token_type": "Bearer",
                })
            assert request.headers["Authorization"] == "Bearer ya29.access"
            return httpx.Response(200, json={"id": "42", "email": "rep@acme.com"})

        connector = OAuthConnector(
            GMAIL,
            settings.provider_credentials("gmail", credential_prefix="google"),
            transport=httpx.MockTransport(handler),
        )
        grant = await connector.handle_callback("auth-code")

        assert grant.access_token == "ya29.access"
        assert grant.refresh_token == "1//refresh"
        assert grant.expires_in == 3599
        assert grant.account_identity == "rep@acme.com"
        form = _form(seen[0])
        assert form["grant_type"] == "authorization_code"
        assert form["code"] == "auth-code"
        assert form["client_secret"] == "google-secret"

    @pytest.mark.asyncio
    async def test_gmail_identity_failure_is_fatal(self, settings):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "oauth2.googleapis.com":
                return httpx.Response(200, json={"access_token": "a", "expires_in": 10})
            return httpx.Response(401, json={"error": "nope"})

        connector = OAuthConnector(
            GMAIL,
            settings.provider_credentials("gmail", credential_prefix="google"),
            transport=httpx.MockTransport(handler),
        )
        with pytest.raises(ProviderError):
            await connector.handle_callback("code")

    @pytest.mark.asyncio
    async def test_pipedrive_uses_basic_auth_and_company_domain(self, settings):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if request.url.host == "oauth.pipedrive.com":
                return httpx.Response(200, json={
                    "access_token": "pd-access",
                    "refresh_token": "pd-refresh",
                    "expires_in": 3600,
                    "scope": "base,deals:full",
                })
            return httpx.Response(200, json={"data": {"email": "owner@acme.com", "company_domain": "acme"}})

        connector = OAuthConnector(
            PIPEDRIVE,
            settings.provider_credentials("pipedrive"),
            transport=httpx.MockTransport(handler),
        )
        grant = await connector.handle_callback("code")

        expected = base64.b64encode(b"pd-id:pd-secret").decode()
        assert seen[0].headers["Authorization"] == f"Basic {expected}"
        assert "client_secret" not in _form(seen[0])
        assert grant.account_identity == "owner@acme.com"
        assert grant.api_domain == "acme"
        assert grant.scope == "base deals:full"

    @pytest.mark.asyncio
    async def test_salesforce_defaults(self, settings):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/token"):
                return httpx.Response(200, json={
                    "access_token": "00D!sf",
                    "refresh_token": "sf-refresh",
                    "instance_url": "https://acme.my.salesforce.com",
                })
            assert request.url.host == "acme.my.salesforce.com"
            return httpx.Response(200, json={"email": "admin@acme.com"})

        connector = OAuthConnector(
            SALESFORCE,
            settings.provider_credentials("salesforce"),
            transport=httpx.MockTransport(handler),
        )
        grant = await connector.handle_callback("code")
        assert grant.expires_in == 24 * 60 * 60
        assert grant.api_domain == "https://acme.my.salesforce.com"
        assert grant.account_identity == "admin@acme.com"

    @pytest.mark.asyncio
    async def test_slack_not_ok_is_provider_error(self, settings):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, json={"ok": False, "error": "invalid_code"})
        )
        connector = OAuthConnector(SLACK, settings.provider_credentials("slack"), transport=transport)
        with pytest.raises(ProviderError, match="invalid_code"):
            await connector.handle_callback("code")

    @pytest.mark.asyncio
    async def test_slack_bot_token_never_expires(self, settings):
        body = {
            "ok": True,
            "access_token": "xoxb-bot",
            "scope": "chat:write,users:read",
            "bot_user_id": "U0BOT",
            "team": {"id": "T1", "name": "Acme HQ"},
            "authed_user": {"id": "U1", "access_token": "xoxp-user"},
        }
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json=body))
        connector = OAuthConnector(SLACK, settings.provider_credentials("slack"), transport=transport)
        grant = await connector.handle_callback("code")

        assert grant.expires_in is None
        assert grant.account_identity == "Acme HQ"
        assert grant.scope == "chat:write users:read"
        assert grant.provider_meta["authed_user"] == {"id": "U1"}
        assert "xoxp-user" not in json.dumps(grant.provider_meta)

    @pytest.mark.asyncio
    async def test_non_2xx_is_provider_error(self, settings):
        transport = httpx.MockTransport(lambda request: httpx.Response(400, json={"error": "invalid_grant"}))
        connector = ConnectorRegistry(settings, transport=transport).get("hubspot")
        with pytest.raises(ProviderError):
            await connector.refresh_access_token("stale")

    @pytest.mark.asyncio
    async def test_network_error_is_provider_error(self, settings):
        def handler(request):
            raise httpx.ConnectError("boom", request=request)

        connector = ConnectorRegistry(settings, transport=httpx.MockTransport(handler)).get("hubspot")
        with pytest.raises(ProviderError):
            await connector.refresh_access_token("rt")

    @pytest.mark.asyncio
    async def test_error_body_with_200_is_provider_error(self, settings):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"error": "invalid_code"}))
        connector = ConnectorRegistry(settings, transport=transport).get("hubspot")
        with pytest.raises(ProviderError, match="invalid_code"):
            await connector.handle_callback("code")


class TestRevoke:
    @pytest.mark.asyncio
    async def test_revoke_without_endpoint(self, settings):
        connector = ConnectorRegistry(settings).get("hubspot")
        assert await connector.revoke_token("t") is False

    @pytest.mark.asyncio
    async def test_google_revoke(self, settings):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200)

        connector = ConnectorRegistry(settings, transport=httpx.MockTransport(handler)).get("gmail")
        assert await connector.revoke_token("tok") is True
        assert seen[0].url.host == "oauth2.googleapis.com"
        assert _form(seen[0]) == {"token": "tok"}


def _folk(handler):
    return ApiKeyConnector(FOLK, "https://api.folk.app/v1", transport=httpx.MockTransport(handler))


class TestApiKeyConnector:
    @pytest.mark.asyncio
    async def test_valid_key(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"data": {"id": "usr_9", "email": "Rep@Acme.com", "fullName": "Rep"}})

        grant = await _folk(handler).verify_key("  key-123 ", "rep@acme.com")

        assert str(seen[0].url) == "https://api.folk.app/v1/users/me"
        assert seen[0].headers["Authorization"] == "Bearer key-123"
        assert grant.access_token == "key-123"
        assert grant.expires_in is None
        assert grant.refresh_token is None
        assert grant.account_identity == "rep@acme.com"
        assert grant.provider_meta["user_info"]["id"] == "usr_9"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status, message", [
        (401, "Invalid API key. Please check your Folk CRM API key and try again."),
        (429, "Too many requests. Please wait a moment and try again."),
        (418, "Folk CRM API error (418). Please verify your API key."),
    ])
    async def test_rejected_key_messages(self, status, message):
        connector = _folk(lambda request: httpx.Response(status, json={}))
        with pytest.raises(InvalidRequest) as excinfo:
            await connector.verify_key("key-123", "rep@acme.com")
        assert str(excinfo.value) == message

    @pytest.mark.asyncio
    async def test_email_mismatch(self):
        connector = _folk(lambda request: httpx.Response(200, json={"data": {"email": "boss@acme.com"}}))
        with pytest.raises(InvalidRequest, match="Email does not match"):
            await connector.verify_key("key-123", "rep@acme.com")

    @pytest.mark.asyncio
    async def test_blank_key_never_calls_provider(self):
        def handler(request):
            raise AssertionError("provider should not be called")

        with pytest.raises(InvalidRequest, match="cannot be empty"):
            await _folk(handler).verify_key("   ", "rep@acme.com")

    @pytest.mark.asyncio
    async def test_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        with pytest.raises(ProviderError):
            await _folk(handler).verify_key("key-123")

    def test_has_no_oauth_flow(self):
        connector = _folk(lambda request: httpx.Response(200))
        with pytest.raises(InvalidRequest):
            connector.get_auth_url("A1:n")
