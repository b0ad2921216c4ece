"""
Cookie construction for the session boundary.

Every cookie the auth flows emit is built here as a `Cookie` value so that domain,
Secure and SameSite attributes stay consistent across handlers.
"""
from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlsplit

from lawlzer.auth.config import (
    AUTH_STATE_COOKIE_NAME,
    AUTH_STATE_TTL_SECONDS,
    SESSION_COOKIE_NAME,
    AuthConfig,
)
from lawlzer.auth.util import host_without_port

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class Cookie:
    name: str
    value: str
    max_age: Optional[int]
    domain: Optional[str]
    secure: bool
    httponly: bool = True
    samesite: str = "lax"
    path: str = "/"
    expires: Optional[datetime] = None

    def set_cookie_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for `Response.set_cookie`."""
        kwargs: Dict[str, Any] = {
            "key": self.name,
            "value": self.value,
            "max_age": self.max_age,
            "httponly": self.httponly,
            "secure": self.secure,
            "samesite": self.samesite,
            "path": self.path,
            "domain": self.domain,
        }
        if self.expires is not None:
            kwargs["expires"] = self.expires
        return kwargs


def apply_cookie(response: Any, cookie: Cookie) -> None:
    response.set_cookie(**cookie.set_cookie_kwargs())


def read_cookie(cookies: Mapping[str, str], name: str) -> Optional[str]:
    """Cookie value, or None when absent or blank."""
    return (cookies.get(name) or "").strip() or None


def _is_ip(hostname: str) -> bool:
    try:
        ipaddress.ip_address(hostname.strip("[]"))
    except ValueError:
        return False
    return True


def resolve_cookie_domain(cfg: AuthConfig, host: Optional[str]) -> Optional[str]:
    """
    Domain attribute for cookies issued while serving `host`.

    A cookie issued on `cooking.example.com` must be readable on `example.com` and on every
    other named subdomain, so the domain is widened to the registrable root. Hosts that cannot
    carry a Domain attribute (localhost, bare IPs, single-label names) get a host-only cookie.
    """
    if cfg.cookie_domain:
        return cfg.cookie_domain

    hostname = host_without_port(host)
    if not hostname or "." not in hostname or _is_ip(hostname):
        return None
    if hostname == "localhost" or hostname.endswith(".localhost"):
        return None

    if cfg.public_base_url:
        base = host_without_port(urlsplit(cfg.public_base_url).netloc)
        if base and "." in base and not _is_ip(base) and (hostname == base or hostname.endswith("." + base)):
            return "." + base

    labels = hostname.split(".")
    if len(labels) > 2 and (labels[0] in cfg.subdomains or labels[0] == "www"):
        labels = labels[1:]
    return "." + ".".join(labels)


def session_cookie(cfg: AuthConfig, token: str, *, host: Optional[str]) -> Cookie:
    return Cookie(
        name=SESSION_COOKIE_NAME,
        value=token,
        max_age=cfg.session_ttl_seconds,
        domain=resolve_cookie_domain(cfg, host),
        secure=cfg.cookie_secure,
    )


def cleared_session_cookie(cfg: AuthConfig, *, host: Optional[str]) -> Cookie:
    # Empty value + expiry in the past; browsers drop the cookie.
    return Cookie(
        name=SESSION_COOKIE_NAME,
        value="",
        max_age=0,
        expires=EPOCH,
        domain=resolve_cookie_domain(cfg, host),
        secure=cfg.cookie_secure,
    )


def auth_state_cookie(cfg: AuthConfig, state: str, *, host: Optional[str]) -> Cookie:
    return Cookie(
        name=AUTH_STATE_COOKIE_NAME,
        value=state,
        max_age=AUTH_STATE_TTL_SECONDS,
        domain=resolve_cookie_domain(cfg, host),
        secure=cfg.cookie_secure,
    )


def cleared_auth_state_cookie(cfg: AuthConfig, *, host: Optional[str]) -> Cookie:
    return Cookie(
        name=AUTH_STATE_COOKIE_NAME,
        value="",
        max_age=0,
        expires=EPOCH,
        domain=resolve_cookie_domain(cfg, host),
        secure=cfg.cookie_secure,
    )
