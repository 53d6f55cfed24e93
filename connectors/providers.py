"""
Provider catalogue — endpoints, scopes and quirks of every supported
OAuth2 provider, plus the API-key providers.

Add a provider by appending a ``ProviderDescriptor`` to ``PROVIDERS`` (or an
``ApiKeyDescriptor`` to ``API_KEY_PROVIDERS``); client credentials and API
roots are picked up from settings by the registry.
"""

from __future__ import annotations

from typing import Dict

from connectors.api_key import ApiKeyDescriptor
from connectors.base import ProviderDescriptor

GMAIL = ProviderDescriptor(
    name="gmail",
    display_name="Gmail",
    authorize_url="https://accounts.google.com/o/oauth2/v2/auth",
    token_url="https://oauth2.googleapis.com/token",
    scopes=(
        "https://www.googleapis.com/auth/gmail.readonly",
        "https://www.googleapis.com/auth/gmail.send",
        "https://www.googleapis.com/auth/userinfo.email",
        "https://www.googleapis.com/auth/calendar.readonly",
        "https://www.googleapis.com/auth/calendar.events",
    ),
    credential_prefix="google",
    uses_offline_access=True,   # gets refresh_token
    prompt_consent=True,        # Google only re-issues a refresh_token on consent
    identity_url="https://www.googleapis.com/oauth2/v2/userinfo",
    identity_required=True,
    revoke_url="https://oauth2.googleapis.com/revoke",
    icon="📧",
)

HUBSPOT = ProviderDescriptor(
    name="hubspot",
    display_name="HubSpot",
    authorize_url="https://app.hubspot.com/oauth/authorize",
    token_url="https://api.hubapi.com/oauth/v1/token",
    scopes=("oauth",),
    optional_scopes=(
        "crm.objects.contacts.read",
        "crm.objects.contacts.write",
        "crm.objects.deals.read",
        "crm.objects.deals.write",
    ),
    identity_url="https://api.hubapi.com/crm/v3/owners/me",
    api_domain_default="https://api.hubapi.com",
    icon="🟠",
)

SALESFORCE = ProviderDescriptor(
    name="salesforce",
    display_name="Salesforce",
    authorize_url="https://login.salesforce.com/services/oauth2/authorize",
    token_url="https://login.salesforce.com/services/oauth2/token",
    scopes=("openid", "api", "refresh_token", "id", "profile", "email"),
    prompt_consent=True,
    # Salesforce token responses omit expires_in; sessions are treated as 24h
    default_expires_in=24 * 60 * 60,
    identity_url="{instance_url}/services/oauth2/userinfo",
    api_domain_field="instance_url",
    revoke_url="https://login.salesforce.com/services/oauth2/revoke",
    icon="☁️",
)

ZOHO = ProviderDescriptor(
    name="zoho",
    display_name="Zoho CRM",
    authorize_url="https://accounts.zoho.in/oauth/v2/auth",
    token_url="https://accounts.zoho.in/oauth/v2/token",
    scopes=("ZohoCRM.modules.ALL", "ZohoCRM.settings.READ"),
    uses_offline_access=True,
    prompt_consent=True,
    api_domain_field="api_domain",
    api_domain_default="https://www.zohoapis.in",
    icon="📇",
)

PIPEDRIVE = ProviderDescriptor(
    name="pipedrive",
    display_name="Pipedrive",
    authorize_url="https://oauth.pipedrive.com/oauth/authorize",
    token_url="https://oauth.pipedrive.com/oauth/token",
    token_auth="basic",
    identity_url="https://api.pipedrive.com/v1/users/me",
    identity_path=("data", "email"),
    api_domain_field="api_domain",
    api_domain_identity_path=("data", "company_domain"),
    icon="🟢",
)

SLACK = ProviderDescriptor(
    name="slack",
    display_name="Slack",
    authorize_url="https://slack.com/oauth/v2/authorize",
    token_url="https://slack.com/api/oauth.v2.access",
    scopes=("chat:write", "users:read", "app_mentions:read"),
    scope_separator=",",
    # bot tokens do not expire unless token rotation is switched on
    default_expires_in=None,
    ok_field="ok",
    identity_from_token=("team", "name"),
    icon="💬",
)

FOLK = ApiKeyDescriptor(
    name="folk",
    display_name="Folk CRM",
    verify_path="users/me",
    identity_path=("data", "email"),
    scope="read_write",
    icon="🤝",
)

PROVIDERS: Dict[str, ProviderDescriptor] = {
    d.name: d for d in (GMAIL, HUBSPOT, SALESFORCE, ZOHO, PIPEDRIVE, SLACK)
}

API_KEY_PROVIDERS: Dict[str, ApiKeyDescriptor] = {d.name: d for d in (FOLK,)}
