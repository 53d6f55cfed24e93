"""
Session token creation and verification.

Tokens are base64-encoded JSON payloads signed with HMAC-SHA256.
Secret key is loaded from ``config.jwt_secret`` (env var: ``JWT_SECRET``).
"""

from __future__ import annotations

import binascii
import hashlib
import hmac
import json
import time
from base64 import b64decode, b64encode
from typing import Optional

from config.settings import Settings, config
from connectors.errors import Unauthenticated


def create_token(user_id: str, settings: Optional[Settings] = None) -> str:
    """Create a signed token containing ``user_id`` and expiry."""
    settings = settings or config
    payload = {
        "user_id": user_id,
        "exp": int(time.time()) + settings.jwt_expiry_seconds,
    }
    raw = json.dumps(payload).encode()
    sig = hmac.new(settings.jwt_secret.encode(), raw, hashlib.sha256).hexdigest()
    return b64encode(raw).decode() + "." + sig


def verify_token(token: str, settings: Optional[Settings] = None) -> str:
    """
    Verify token and return ``user_id``.

    Raises ``Unauthenticated`` on invalid or expired tokens.
    """
    settings = settings or config
    parts = token.split(".", 1)
    if len(parts) != 2:
        raise Unauthenticated("Invalid session token")
    try:
        raw = b64decode(parts[0], validate=True)
    except (binascii.Error, ValueError):
        raise Unauthenticated("Invalid session token") from None
    expected_sig = hmac.new(settings.jwt_secret.encode(), raw, hashlib.sha256).hexdigest()
    if not hmac.compare_digest(parts[1].encode(), expected_sig.encode()):
        raise Unauthenticated("Invalid session token")
    try:
        payload = json.loads(raw)
    except ValueError:
        raise Unauthenticated("Invalid session token") from None
    if payload.get("exp", 0) < time.time():
        raise Unauthenticated("Session expired")
    user_id = payload.get("user_id")
    if not user_id:
        raise Unauthenticated("Invalid session token")
    return user_id
