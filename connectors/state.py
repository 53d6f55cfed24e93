"""
OAuth state helpers (CSRF protection).

The ``state`` query parameter sent to the provider is ``"{account_id}:{nonce}"``.
The nonce is also handed to the browser in a per-provider cookie whose value is
``"{nonce}.{exp}.{sig}"``. The signature binds nonce, expiry and provider so
the cookie cannot be extended or replayed against another provider's callback.
The account id inside ``state`` is NOT trusted until membership is re-checked.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import time
from dataclasses import dataclass
from typing import Optional, Tuple

from connectors.errors import InvalidState

_NONCE_BYTES = 32  # 256 bits


@dataclass(frozen=True)
class VerifiedState:
    account_id: str
    nonce: str


def state_cookie_name(provider: str) -> str:
    return f"{provider}_oauth_state"


def new_nonce() -> str:
    return secrets.token_urlsafe(_NONCE_BYTES)


def build_state(account_id: str, nonce: str) -> str:
    return f"{account_id}:{nonce}"


def parse_state(state: Optional[str]) -> Tuple[str, str]:
    """Split ``state`` on the first ``:`` into ``(account_id, nonce)``."""
    if not state or ":" not in state:
        raise InvalidState("Malformed OAuth state")
    account_id, nonce = state.split(":", 1)
    if not account_id or not nonce:
        raise InvalidState("Malformed OAuth state")
    return account_id, nonce


def _sign(secret: str, provider: str, nonce: str, exp: int) -> str:
    raw = f"{provider}:{nonce}:{exp}".encode()
    return hmac.new(secret.encode(), raw, hashlib.sha256).hexdigest()


def sign_nonce(
    secret: str,
    provider: str,
    nonce: str,
    ttl_seconds: int,
    *,
    now: Optional[float] = None,
) -> str:
    """Create the cookie value carrying ``nonce`` for ``ttl_seconds``."""
    exp = int(now if now is not None else time.time()) + ttl_seconds
    return f"{nonce}.{exp}.{_sign(secret, provider, nonce, exp)}"


def unsign_nonce(
    secret: str,
    provider: str,
    cookie_value: Optional[str],
    *,
    now: Optional[float] = None,
) -> str:
    """Verify a state cookie and return its nonce. Raises ``InvalidState``."""
    if not cookie_value:
        raise InvalidState("OAuth state cookie missing or expired")
    parts = cookie_value.rsplit(".", 2)
    if len(parts) != 3:
        raise InvalidState("OAuth state cookie malformed")
    nonce, exp_raw, sig = parts
    try:
        exp = int(exp_raw)
    except ValueError:
        raise InvalidState("OAuth state cookie malformed") from None
    if not hmac.compare_digest(sig.encode(), _sign(secret, provider, nonce, exp).encode()):
        raise InvalidState("OAuth state cookie signature mismatch")
    if exp <= (now if now is not None else time.time()):
        raise InvalidState("OAuth state expired")
    return nonce


def verify_state(
    secret: str,
    provider: str,
    state: Optional[str],
    cookie_value: Optional[str],
    *,
    now: Optional[float] = None,
) -> VerifiedState:
    """
    Check the provider-echoed ``state`` against the browser's state cookie.

    Returns the (still untrusted) account id and the nonce.  The caller must
    discard the cookie whatever the outcome.
    """
    account_id, state_nonce = parse_state(state)
    cookie_nonce = unsign_nonce(secret, provider, cookie_value, now=now)
    if not hmac.compare_digest(cookie_nonce.encode(), state_nonce.encode()):
        raise InvalidState("OAuth state does not match")
    return VerifiedState(account_id=account_id, nonce=state_nonce)
