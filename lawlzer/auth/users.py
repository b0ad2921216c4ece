from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import replace
from typing import Callable, Dict, Optional, Protocol, Tuple

import psycopg

from lawlzer.auth.models import AuthUser, OAuthProfile
from lawlzer.db import pg
from lawlzer.db.config import DbConfig, load_db_config
from lawlzer.errors import StorageError

logger = logging.getLogger(__name__)


def _verified_email(profile: OAuthProfile) -> Optional[str]:
    if profile.email and profile.email_verified:
        return profile.email.strip().lower() or None
    return None


class UserStore(Protocol):
    def get(self, user_id: str) -> Optional[AuthUser]: ...

    def upsert_oauth_user(self, profile: OAuthProfile) -> AuthUser: ...


class MemoryUserStore:
    def __init__(self) -> None:
        self._users: Dict[str, AuthUser] = {}
        self._accounts: Dict[Tuple[str, str], str] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str) -> Optional[AuthUser]:
        with self._lock:
            return self._users.get(user_id)

    def _find_by_email(self, email: str) -> Optional[AuthUser]:
        for u in self._users.values():
            if u.email == email:
                return u
        return None

    def upsert_oauth_user(self, profile: OAuthProfile) -> AuthUser:
        email = _verified_email(profile)
        key = (profile.provider, profile.account_id)
        with self._lock:
            user_id = self._accounts.get(key)
            if user_id is not None:
                user = self._users[user_id]
                user = replace(user, name=profile.name or user.name, image=profile.image or user.image)
                if email and email != user.email:
                    owner = self._find_by_email(email)
                    if owner is None or owner.id == user.id:
                        user = replace(user, email=email)
                    else:
                        logger.warning("Email already linked to user %s; not moving it to %s", owner.id, user.id)
                self._users[user_id] = user
                return user

            user = self._find_by_email(email) if email else None
            if user is None:
                user = AuthUser(id=uuid.uuid4().hex, email=email, name=profile.name, image=profile.image)
                self._users[user.id] = user
            else:
                logger.info("Linking %s account to existing user %s", profile.provider, user.id)
            self._accounts[key] = user.id
            return user


class PostgresUserStore:
    """Users in `users`, provider identities in `accounts`."""

    def __init__(self, dsn: str, *, connect: Callable[[str], psycopg.Connection] = pg.connect) -> None:
        self._dsn = dsn
        self._connect = connect

    @staticmethod
    def _fetch(conn, user_id: str) -> Optional[AuthUser]:
        row = conn.execute("SELECT id, email, name, image FROM users WHERE id = %s;", (user_id,)).fetchone()
        if not row:
            return None
        return AuthUser(id=str(row[0]), email=row[1], name=row[2], image=row[3])

    def get(self, user_id: str) -> Optional[AuthUser]:
        with pg.storage_errors("get user"):
            with self._connect(self._dsn) as conn:
                return self._fetch(conn, user_id)

    def upsert_oauth_user(self, profile: OAuthProfile) -> AuthUser:
        email = _verified_email(profile)
        with pg.storage_errors("upsert user"):
            with self._connect(self._dsn) as conn:
                with conn.transaction():
                    row = conn.execute(
                        "SELECT user_id FROM accounts WHERE provider = %s AND provider_account_id = %s;",
                        (profile.provider, profile.account_id),
                    ).fetchone()
                    if row:
                        user_id = str(row[0])
                        conn.execute(
                            """
                            UPDATE users
                            SET name = COALESCE(%s, name), image = COALESCE(%s, image), updated_at = now()
                            WHERE id = %s;
                            """,
                            (profile.name, profile.image, user_id),
                        )
                        if email:
                            # Only take the email if no other user owns it.
                            conn.execute(
                                """
                                UPDATE users SET email = %s
                                WHERE id = %s AND NOT EXISTS (SELECT 1 FROM users WHERE email = %s AND id <> %s);
                                """,
                                (email, user_id, email, user_id),
                            )
                    else:
                        user_id = None
                        created = False
                        if email:
                            existing = conn.execute("SELECT id FROM users WHERE email = %s;", (email,)).fetchone()
                            if existing:
                                user_id = str(existing[0])
                                logger.info("Linking %s account to existing user %s", profile.provider, user_id)
                        if user_id is None:
                            user_id = uuid.uuid4().hex
                            created = True
                            conn.execute(
                                "INSERT INTO users (id, email, name, image) VALUES (%s, %s, %s, %s);",
                                (user_id, email, profile.name, profile.image),
                            )
                        inserted = conn.execute(
                            """
                            INSERT INTO accounts (provider, provider_account_id, user_id)
                            VALUES (%s, %s, %s)
                            ON CONFLICT (provider, provider_account_id) DO NOTHING
                            RETURNING user_id;
                            """,
                            (profile.provider, profile.account_id, user_id),
                        ).fetchone()
                        if inserted is None:
                            # A concurrent first login linked this identity first; use its user.
                            winner = conn.execute(
                                "SELECT user_id FROM accounts WHERE provider = %s AND provider_account_id = %s;",
                                (profile.provider, profile.account_id),
                            ).fetchone()
                            if winner is None:
                                raise StorageError("upsert user failed: account vanished")
                            if created:
                                conn.execute("DELETE FROM users WHERE id = %s;", (user_id,))
                            logger.info("Lost first-login race for %s account; using user %s", profile.provider, winner[0])
                            user_id = str(winner[0])
                    user = self._fetch(conn, user_id)
        if user is None:
            raise StorageError("upsert user failed")
        return user


def build_user_store(db_cfg: Optional[DbConfig] = None) -> UserStore:
    dsn = (db_cfg or load_db_config()).dsn
    if dsn:
        return PostgresUserStore(dsn)
    return MemoryUserStore()
