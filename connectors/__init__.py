"""
connectors — OAuth integration module for external providers.

Provides one generic connector framework that handles:
  • OAuth2 authorization-URL generation with a signed CSRF state cookie
  • Callback handling (state check → membership re-check → code exchange)
  • Per-(account, provider) token storage & refresh-before-use
  • Fernet encryption of tokens at rest
  • Status and disconnect / revocation

Providers (Gmail, HubSpot, Salesforce, Zoho, Pipedrive, Slack) are
``ProviderDescriptor`` records in ``connectors.providers``.
"""
