from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class Session:
    """Server-side session record. Owned by the session store; handlers only hold the token."""

    token: str
    user_id: str
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now


@dataclass(frozen=True)
class AuthUser:
    """Authenticated user as seen by request handlers."""

    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    image: Optional[str] = None


@dataclass(frozen=True)
class OAuthProfile:
    """Identity returned by an OAuth provider after the code exchange."""

    provider: str  # google|discord|github
    account_id: str
    email: Optional[str] = None
    email_verified: bool = False
    name: Optional[str] = None
    image: Optional[str] = None
