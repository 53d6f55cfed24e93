"""
ConnectorRegistry — binds provider descriptors to their configured credentials.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Union

import httpx

from config.settings import Settings
from connectors.api_key import ApiKeyConnector, ApiKeyDescriptor
from connectors.base import OAuthConnector, ProviderDescriptor
from connectors.errors import UnknownProvider
from connectors.providers import API_KEY_PROVIDERS, PROVIDERS

logger = logging.getLogger(__name__)

Connector = Union[OAuthConnector, ApiKeyConnector]


class ConnectorRegistry:
    """Registry of connectors, one per known provider."""

    def __init__(
        self,
        settings: Settings,
        *,
        descriptors: Optional[Iterable[ProviderDescriptor]] = None,
        api_key_descriptors: Optional[Iterable[ApiKeyDescriptor]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings
        self._connectors: Dict[str, Connector] = {}
        for descriptor in descriptors or PROVIDERS.values():
            credentials = settings.provider_credentials(
                descriptor.name,
                credential_prefix=descriptor.credential_prefix,
            )
            self._connectors[descriptor.name] = OAuthConnector(
                descriptor,
                credentials,
                timeout=settings.http_timeout_seconds,
                transport=transport,
            )
        for key_descriptor in api_key_descriptors or API_KEY_PROVIDERS.values():
            self._connectors[key_descriptor.name] = ApiKeyConnector(
                key_descriptor,
                settings.api_key_base_url(key_descriptor.name),
                timeout=settings.http_timeout_seconds,
                transport=transport,
            )

    def log_configuration(self) -> None:
        """Log which providers are usable; unconfigured ones fail at request time."""
        for conn in self._connectors.values():
            if conn.is_configured():
                logger.info(
                    "Connector registered: %s (%s)",
                    conn.display_name,
                    conn.provider_name,
                )
            else:
                logger.warning(
                    "Connector %s not configured (missing client_id/secret) — "
                    "authorization requests will fail",
                    conn.provider_name,
                )

    def get(self, provider: str) -> Connector:
        """Get a connector by provider name."""
        connector = self._connectors.get(provider)
        if connector is None:
            raise UnknownProvider(f"Unsupported provider '{provider}'")
        return connector

    def list_providers(self) -> List[Dict[str, object]]:
        """Return info about all known connectors."""
        return [
            {
                "provider": c.provider_name,
                "display_name": c.display_name,
                "icon": c.icon,
                "auth_type": c.auth_type,
                "configured": c.is_configured(),
            }
            for c in self._connectors.values()
        ]

    def list_configured(self) -> List[str]:
        """Return names of configured connectors."""
        return [name for name, c in self._connectors.items() if c.is_configured()]
