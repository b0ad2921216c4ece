from __future__ import annotations

import base64
import os
from typing import Optional
from urllib.parse import urlsplit


def b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def random_token(nbytes: int = 32) -> str:
    return b64url(os.urandom(nbytes))


def host_without_port(host: Optional[str]) -> str:
    h = (host or "").strip().lower()
    if h.startswith("["):
        # IPv6 literal: [::1]:8000
        return h.split("]", 1)[0] + "]"
    return h.split(":", 1)[0].rstrip(".")


def sanitize_redirect_target(target: Optional[str], *, request_host: str, cookie_domain: Optional[str]) -> str:
    """
    Prevent open-redirects: allow relative paths, or absolute http(s) URLs on this host
    or on a host covered by the session cookie domain.
    """
    t = (target or "").strip().replace("\r", "").replace("\n", "")
    if not t:
        return "/"
    if t.startswith("/"):
        # Disallow scheme-relative: `//evil.com`
        return "/" if t.startswith("//") else t

    parts = urlsplit(t)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return "/"
    target_host = host_without_port(parts.netloc)
    if target_host == host_without_port(request_host):
        return t
    if cookie_domain:
        base = cookie_domain.lstrip(".").lower()
        if target_host == base or target_host.endswith("." + base):
            return t
    return "/"
