from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlencode

import requests

from lawlzer.auth.config import AuthConfig
from lawlzer.auth.models import OAuthProfile
from lawlzer.errors import ValidationError

logger = logging.getLogger(__name__)

HTTP_TIMEOUT_SECONDS = 10
USER_AGENT = "LawlzerApp"


@dataclass(frozen=True)
class Provider:
    id: str
    name: str
    authorize_url: str
    token_url: str
    scope: str
    extra_params: Tuple[Tuple[str, str], ...] = ()


PROVIDERS: Dict[str, Provider] = {
    "google": Provider(
        id="google",
        name="Google",
        authorize_url="https://accounts.google.com/o/oauth2/v2/auth",
        token_url="https://oauth2.googleapis.com/token",
        scope="openid email profile",
        extra_params=(("access_type", "offline"), ("prompt", "consent")),
    ),
    "discord": Provider(
        id="discord",
        name="Discord",
        authorize_url="https://discord.com/api/oauth2/authorize",
        token_url="https://discord.com/api/oauth2/token",
        scope="identify email",
    ),
    "github": Provider(
        id="github",
        name="GitHub",
        authorize_url="https://github.com/login/oauth/authorize",
        token_url="https://github.com/login/oauth/access_token",
        scope="read:user user:email",
    ),
}


def get_provider(provider_id: Optional[str]) -> Optional[Provider]:
    return PROVIDERS.get((provider_id or "").strip().lower())


def callback_url(cfg: AuthConfig, request_base_url: str, provider: str) -> str:
    base = cfg.public_base_url or request_base_url.rstrip("/")
    return f"{base}/api/auth/callback/{provider}"


def _credentials(cfg: AuthConfig, provider: Provider) -> Tuple[str, str]:
    creds = cfg.provider_credentials.get(provider.id)
    if creds is None:
        raise ValidationError("Provider is not configured")
    return creds


def build_authorize_url(cfg: AuthConfig, provider: Provider, *, state: str, redirect_uri: str) -> str:
    client_id, _ = _credentials(cfg, provider)
    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": provider.scope,
        "state": state,
    }
    params.update(dict(provider.extra_params))
    return f"{provider.authorize_url}?{urlencode(params)}"


def exchange_code(cfg: AuthConfig, provider: Provider, *, code: str, redirect_uri: str) -> Dict[str, Any]:
    """
    Exchange an authorization code for provider tokens.
    Raises ValueError on any non-success response.
    """
    client_id, client_secret = _credentials(cfg, provider)
    payload = {
        "client_id": client_id,
        "client_secret": client_secret,
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": redirect_uri,
    }
    r = requests.post(
        provider.token_url,
        data=payload,
        headers={"Accept": "application/json"},
        timeout=HTTP_TIMEOUT_SECONDS,
    )
    if r.status_code >= 400:
        # Avoid leaking sensitive info; include minimal context.
        raise ValueError(f"{provider.name} token exchange failed (status={r.status_code})")
    data = r.json()
    if not isinstance(data, dict) or not data.get("access_token"):
        raise ValueError(f"Invalid {provider.name} token response")
    return data


def _get_json(url: str, *, access_token: str, token_type: str = "Bearer", expect: type = dict) -> Any:
    """GET a provider API resource. Raises ValueError on an error status or a body that is not `expect`."""
    r = requests.get(
        url,
        headers={"Authorization": f"{token_type} {access_token}", "User-Agent": USER_AGENT},
        timeout=HTTP_TIMEOUT_SECONDS,
    )
    if r.status_code >= 400:
        raise ValueError(f"GET {url} failed (status={r.status_code})")
    data = r.json()
    if not isinstance(data, expect):
        raise ValueError(f"GET {url} returned {type(data).__name__}, expected {expect.__name__}")
    return data


def _google_profile(tokens: Dict[str, Any]) -> OAuthProfile:
    data = _get_json("https://www.googleapis.com/oauth2/v2/userinfo", access_token=str(tokens["access_token"]))
    return OAuthProfile(
        provider="google",
        account_id=str(data["id"]),
        email=data.get("email"),
        email_verified=data.get("verified_email") is True,
        name=data.get("name"),
        image=data.get("picture"),
    )


def _discord_profile(tokens: Dict[str, Any]) -> OAuthProfile:
    data = _get_json(
        "https://discord.com/api/users/@me",
        access_token=str(tokens["access_token"]),
        token_type=str(tokens.get("token_type") or "Bearer"),
    )
    account_id = str(data["id"])
    avatar = data.get("avatar")
    return OAuthProfile(
        provider="discord",
        account_id=account_id,
        email=data.get("email"),
        email_verified=data.get("verified") is True,
        name=data.get("global_name") or data.get("username"),
        image=f"https://cdn.discordapp.com/avatars/{account_id}/{avatar}.png" if avatar else None,
    )


def _github_profile(tokens: Dict[str, Any]) -> OAuthProfile:
    access_token = str(tokens["access_token"])
    data = _get_json("https://api.github.com/user", access_token=access_token)

    # The profile email may be private; the primary verified address comes from /user/emails.
    primary_email: Optional[str] = None
    try:
        emails = _get_json("https://api.github.com/user/emails", access_token=access_token, expect=list)
        for e in emails:
            if isinstance(e, dict) and e.get("primary") and e.get("verified"):
                primary_email = str(e.get("email") or "") or None
                break
    except (ValueError, requests.RequestException) as e:
        logger.warning("Failed to fetch GitHub user emails: %s", str(e))

    return OAuthProfile(
        provider="github",
        account_id=str(data["id"]),
        email=primary_email,
        email_verified=primary_email is not None,
        name=data.get("name") or data.get("login"),
        image=data.get("avatar_url"),
    )


_PROFILE_FETCHERS = {
    "google": _google_profile,
    "discord": _discord_profile,
    "github": _github_profile,
}


def fetch_profile(provider: Provider, tokens: Dict[str, Any]) -> OAuthProfile:
    return _PROFILE_FETCHERS[provider.id](tokens)
