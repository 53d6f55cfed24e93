"""
Connector error taxonomy.

Every failure the OAuth connector can surface is a ``ConnectorError``
subclass carrying the HTTP status it maps to and a stable ``code`` the
frontend can switch on.  The API layer renders them as
``{"error": <message>, "code": <code>}``.
"""

from __future__ import annotations

from typing import Any, Dict


class ConnectorError(Exception):
    """Base class for all connector failures."""

    status_code: int = 500
    code: str = "connector_error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code}


class InvalidRequest(ConnectorError):
    status_code = 400
    code = "invalid_request"


class UnknownProvider(ConnectorError):
    status_code = 400
    code = "unknown_provider"


class InvalidState(ConnectorError):
    """The CSRF nonce was missing, expired, forged or did not match."""

    status_code = 400
    code = "invalid_state"


class Unauthenticated(ConnectorError):
    status_code = 401
    code = "unauthenticated"


class AccessDenied(ConnectorError):
    status_code = 403
    code = "access_denied"


class NotFound(ConnectorError):
    status_code = 404
    code = "not_found"


class ReauthorizationRequired(ConnectorError):
    """The stored refresh token is gone, revoked or rejected."""

    status_code = 409
    code = "reauthorization_required"

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["needsReconnect"] = True
        return body


class MissingConfiguration(ConnectorError):
    """Deploy-time defect: a provider's client credentials are not set."""

    status_code = 500
    code = "missing_configuration"


class ProviderError(ConnectorError):
    """The third-party API failed or returned something unusable."""

    status_code = 500
    code = "provider_error"
