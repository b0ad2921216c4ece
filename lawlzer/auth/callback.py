"""
OAuth callback verification.

The callback runs in two hops on the same route:
1. The provider redirects back with `code` and `state`. The state is compared with the
   `auth_state` cookie; on success the browser is sent back to the provider's callback
   route with a signed, short-lived `ticket` binding the verified code to the provider.
2. The ticketed request performs the token exchange and creates the session.
"""
from __future__ import annotations

import hmac
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from itsdangerous import BadSignature, URLSafeTimedSerializer

from lawlzer.auth.config import AuthConfig
from lawlzer.errors import InvalidState

CALLBACK_TICKET_SALT = "lawlzer-oauth-callback-v1"
CALLBACK_TICKET_MAX_AGE_SECONDS = 60


def check_callback(
    *,
    code: Optional[str],
    state: Optional[str],
    error: Optional[str],
    saved_state: Optional[str],
) -> str:
    """
    Verify a provider callback against the saved state cookie and return the authorization code.

    Raises InvalidState carrying the provider's error, or `invalid_state`.
    """
    if error:
        raise InvalidState(error)
    if not code or not state or not saved_state:
        raise InvalidState()
    if not hmac.compare_digest(state.encode("utf-8"), saved_state.encode("utf-8")):
        raise InvalidState()
    return code


def auth_error_url(error: str) -> str:
    return f"/error/auth?{urlencode({'error': error})}"


def _serializer(cfg: AuthConfig) -> Optional[URLSafeTimedSerializer]:
    if not cfg.session_secret:
        return None
    return URLSafeTimedSerializer(secret_key=cfg.session_secret, salt=CALLBACK_TICKET_SALT)


def issue_callback_ticket(cfg: AuthConfig, *, provider: str, code: str) -> Optional[str]:
    s = _serializer(cfg)
    if s is None:
        return None
    payload: Dict[str, Any] = {"p": provider, "c": code}
    return s.dumps(payload)


def read_callback_ticket(cfg: AuthConfig, ticket: Optional[str], *, provider: str) -> Optional[str]:
    """Return the verified authorization code, or None for a bad, expired or foreign ticket."""
    if not ticket:
        return None
    s = _serializer(cfg)
    if s is None:
        return None
    try:
        data = s.loads(ticket, max_age=CALLBACK_TICKET_MAX_AGE_SECONDS)
    except BadSignature:
        return None
    if not isinstance(data, dict) or data.get("p") != provider:
        return None
    code = str(data.get("c") or "").strip()
    return code or None
