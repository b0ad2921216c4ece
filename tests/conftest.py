"""
Pytest config.

Local imports like `import lawlzer` rely on the repo root being on sys.path. When a global
`pytest` entrypoint is used that doesn't happen reliably during collection, so we pin it here.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()

TEST_SESSION_SECRET = "test-secret-key-for-testing-purposes-only"

_ENV_VARS = (
    "APP_ENV",
    "APP_SUBDOMAINS",
    "AUTH_COOKIE_SECURE",
    "AUTH_PUBLIC_BASE_URL",
    "AUTH_SESSION_SECRET",
    "AUTH_SESSION_TTL_SECONDS",
    "COOKIE_DOMAIN",
    "AUTH_GOOGLE_ID",
    "AUTH_GOOGLE_SECRET",
    "AUTH_DISCORD_ID",
    "AUTH_DISCORD_SECRET",
    "AUTH_GITHUB_ID",
    "AUTH_GITHUB_SECRET",
    "DB_AUTO_MIGRATE",
    "POSTGRES_DSN",
    "POSTGRES_HOST",
    "POSTGRES_DB",
    "POSTGRES_USER",
    "POSTGRES_PASSWORD",
    "POSTGRES_PORT",
)


@dataclass
class Stores:
    sessions: object
    users: object
    recipes: object
    days: object


@pytest.fixture(autouse=True)
def stores(monkeypatch: pytest.MonkeyPatch) -> Iterator[Stores]:
    """
    Every test gets a clean environment and fresh in-memory stores on the app.

    Nothing here touches Postgres; tests for the Postgres backends pass fake connections.
    """
    from lawlzer.api import server
    from lawlzer.auth.config import load_auth_config
    from lawlzer.auth.session import MemorySessionStore
    from lawlzer.auth.users import MemoryUserStore
    from lawlzer.cooking.days import MemoryDayStore
    from lawlzer.cooking.store import MemoryRecipeStore
    from lawlzer.db.config import load_db_config

    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("AUTH_SESSION_SECRET", TEST_SESSION_SECRET)
    load_auth_config.cache_clear()
    load_db_config.cache_clear()

    s = Stores(
        sessions=MemorySessionStore(3600),
        users=MemoryUserStore(),
        recipes=MemoryRecipeStore(),
        days=MemoryDayStore(),
    )
    monkeypatch.setattr(server.app.state, "session_store", s.sessions, raising=False)
    monkeypatch.setattr(server.app.state, "user_store", s.users, raising=False)
    monkeypatch.setattr(server.app.state, "recipe_store", s.recipes, raising=False)
    monkeypatch.setattr(server.app.state, "day_store", s.days, raising=False)
    yield s
    load_auth_config.cache_clear()
    load_db_config.cache_clear()


@pytest.fixture
def login_as(stores: Stores) -> Callable[..., str]:
    """Create (or reuse) a user for a Discord account and return a fresh session token."""
    from lawlzer.auth.models import OAuthProfile

    def _login(account_id: str = "1001", *, email: str = "ada@example.com", name: str = "Ada") -> str:
        user = stores.users.upsert_oauth_user(
            OAuthProfile(provider="discord", account_id=account_id, email=email, email_verified=True, name=name)
        )
        return stores.sessions.create(user.id)

    return _login
