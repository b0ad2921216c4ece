"""
Session store: issues, looks up and destroys session records keyed by an opaque token.

Expired records are treated as absent. `get` deletes an expired record lazily;
`purge_expired` removes them in bulk (see `main.py --purge-sessions`).
"""
from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional, Protocol

import psycopg
from psycopg.errors import UniqueViolation

from lawlzer.auth.config import AuthConfig
from lawlzer.auth.models import Session
from lawlzer.auth.util import random_token
from lawlzer.db import pg
from lawlzer.db.config import DbConfig, load_db_config
from lawlzer.errors import StorageError

logger = logging.getLogger(__name__)

_TOKEN_ATTEMPTS = 3


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionStore(Protocol):
    def create(self, user_id: str) -> str: ...

    def get(self, token: str) -> Optional[Session]: ...

    def destroy(self, token: str) -> None: ...

    def purge_expired(self) -> int: ...


class MemorySessionStore:
    """In-process session store for local development and tests."""

    def __init__(self, ttl_seconds: int, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def create(self, user_id: str) -> str:
        now = self._clock()
        with self._lock:
            token = random_token()
            while token in self._sessions:
                token = random_token()
            self._sessions[token] = Session(token=token, user_id=user_id, created_at=now, expires_at=now + self._ttl)
        return token

    def get(self, token: str) -> Optional[Session]:
        if not token:
            return None
        with self._lock:
            session = self._sessions.get(token)
            if session is None:
                return None
            if session.is_expired(self._clock()):
                del self._sessions[token]
                return None
            return session

    def destroy(self, token: str) -> None:
        with self._lock:
            self._sessions.pop(token, None)

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [t for t, s in self._sessions.items() if s.is_expired(now)]
            for t in expired:
                del self._sessions[t]
        return len(expired)


class PostgresSessionStore:
    """Sessions in the `sessions` table. One short connection per operation."""

    def __init__(
        self,
        dsn: str,
        ttl_seconds: int,
        *,
        clock: Callable[[], datetime] = utcnow,
        connect: Callable[[str], psycopg.Connection] = pg.connect,
    ) -> None:
        self._dsn = dsn
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock
        self._connect = connect

    def create(self, user_id: str) -> str:
        now = self._clock()
        with pg.storage_errors("create session"):
            for _ in range(_TOKEN_ATTEMPTS):
                token = random_token()
                try:
                    with self._connect(self._dsn) as conn:
                        conn.execute(
                            """
                            INSERT INTO sessions (token, user_id, created_at, expires_at)
                            VALUES (%s, %s, %s, %s);
                            """,
                            (token, user_id, now, now + self._ttl),
                        )
                except UniqueViolation:
                    logger.warning("Session token collision; regenerating")
                    continue
                return token
        raise StorageError("create session failed: no unique token")

    def get(self, token: str) -> Optional[Session]:
        if not token:
            return None
        with pg.storage_errors("get session"):
            with self._connect(self._dsn) as conn:
                row = conn.execute(
                    "SELECT token, user_id, created_at, expires_at FROM sessions WHERE token = %s;",
                    (token,),
                ).fetchone()
                if not row:
                    return None
                session = Session(token=row[0], user_id=str(row[1]), created_at=row[2], expires_at=row[3])
                if session.is_expired(self._clock()):
                    conn.execute("DELETE FROM sessions WHERE token = %s;", (token,))
                    return None
                return session

    def destroy(self, token: str) -> None:
        if not token:
            return
        with pg.storage_errors("destroy session"):
            with self._connect(self._dsn) as conn:
                conn.execute("DELETE FROM sessions WHERE token = %s;", (token,))

    def purge_expired(self) -> int:
        with pg.storage_errors("purge sessions"):
            with self._connect(self._dsn) as conn:
                cur = conn.execute("DELETE FROM sessions WHERE expires_at <= %s;", (self._clock(),))
                return int(cur.rowcount or 0)


def build_session_store(cfg: AuthConfig, db_cfg: Optional[DbConfig] = None) -> SessionStore:
    dsn = (db_cfg or load_db_config()).dsn
    if dsn:
        return PostgresSessionStore(dsn, cfg.session_ttl_seconds)
    logger.warning("Postgres not configured; sessions are kept in memory and lost on restart")
    return MemorySessionStore(cfg.session_ttl_seconds)
