from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, List, Optional, Tuple

SESSION_COOKIE_NAME = "session_token"
AUTH_STATE_COOKIE_NAME = "auth_state"

AUTH_STATE_TTL_SECONDS = 10 * 60
DEFAULT_SESSION_TTL_SECONDS = 60 * 60 * 24 * 7


@dataclass(frozen=True)
class AuthConfig:
    app_env: str  # development|production|test

    # Session configuration
    public_base_url: Optional[str]  # Used for OAuth redirect_uri (default: request base URL)
    session_secret: Optional[str]  # Required to sign callback dispatch tickets
    session_ttl_seconds: int
    cookie_secure: bool

    # Cookie scoping
    cookie_domain: Optional[str]  # Explicit override (e.g. ".lawlzer.com")
    subdomains: Tuple[str, ...]  # Named subdomains that share the root session

    # Provider credentials: provider id -> (client_id, client_secret)
    provider_credentials: Dict[str, Tuple[str, str]]

    def enabled_providers(self) -> List[str]:
        return sorted(self.provider_credentials.keys())


def _parse_csv(value: str) -> List[str]:
    items = [x.strip().lower() for x in (value or "").split(",")]
    return [x for x in items if x]


def _env(name: str) -> Optional[str]:
    return (os.getenv(name, "") or "").strip() or None


def _load_provider_credentials() -> Dict[str, Tuple[str, str]]:
    out: Dict[str, Tuple[str, str]] = {}
    for provider in ("google", "discord", "github"):
        client_id = _env(f"AUTH_{provider.upper()}_ID")
        client_secret = _env(f"AUTH_{provider.upper()}_SECRET")
        if client_id and client_secret:
            out[provider] = (client_id, client_secret)
    return out


@lru_cache(maxsize=1)
def load_auth_config() -> AuthConfig:
    """
    Load authentication configuration from environment variables.

    A provider is enabled only when both its AUTH_<PROVIDER>_ID and AUTH_<PROVIDER>_SECRET are set.
    """
    app_env = (_env("APP_ENV") or "development").lower()

    cookie_secure_env = (os.getenv("AUTH_COOKIE_SECURE", "") or "").strip().lower()
    if cookie_secure_env in ("1", "true", "yes", "on"):
        cookie_secure = True
    elif cookie_secure_env in ("0", "false", "no", "off"):
        cookie_secure = False
    else:
        # Default: secure cookies in production only; local dev runs over plain HTTP.
        cookie_secure = app_env == "production"

    raw_ttl = _env("AUTH_SESSION_TTL_SECONDS") or str(DEFAULT_SESSION_TTL_SECONDS)
    try:
        ttl = int(float(raw_ttl))
    except (ValueError, OverflowError):
        ttl = DEFAULT_SESSION_TTL_SECONDS
    if ttl <= 60:
        ttl = 60

    subdomains = _parse_csv(os.getenv("APP_SUBDOMAINS", "valorant,cooking,colors"))

    public_base_url = _env("AUTH_PUBLIC_BASE_URL")
    if public_base_url:
        public_base_url = public_base_url.rstrip("/")

    return AuthConfig(
        app_env=app_env,
        public_base_url=public_base_url,
        session_secret=_env("AUTH_SESSION_SECRET"),
        session_ttl_seconds=ttl,
        cookie_secure=cookie_secure,
        cookie_domain=_env("COOKIE_DOMAIN"),
        subdomains=tuple(subdomains),
        provider_credentials=_load_provider_credentials(),
    )
