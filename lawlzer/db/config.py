"""
Database settings for the stores.

Everything downstream only needs one resolved DSN: `POSTGRES_DSN` wins, otherwise the
connection string is assembled from the `POSTGRES_*` parts. No DSN means the stores
run in memory.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from psycopg.conninfo import make_conninfo


@dataclass(frozen=True)
class DbConfig:
    dsn: Optional[str]
    auto_migrate: bool = False

    @property
    def enabled(self) -> bool:
        return self.dsn is not None


def _env(name: str) -> Optional[str]:
    return (os.getenv(name) or "").strip() or None


def _dsn_from_parts() -> Optional[str]:
    host, db, user, password = _env("POSTGRES_HOST"), _env("POSTGRES_DB"), _env("POSTGRES_USER"), _env("POSTGRES_PASSWORD")
    if not (host and db and user and password):
        return None
    try:
        port = int(_env("POSTGRES_PORT") or "5432")
    except ValueError:
        port = 5432
    # make_conninfo quotes special characters (spaces, quotes) in passwords.
    return make_conninfo(host=host, port=port, dbname=db, user=user, password=password)


@lru_cache(maxsize=1)
def load_db_config() -> DbConfig:
    return DbConfig(
        dsn=_env("POSTGRES_DSN") or _dsn_from_parts(),
        auto_migrate=(_env("DB_AUTO_MIGRATE") or "").lower() in ("1", "true", "yes", "on"),
    )
