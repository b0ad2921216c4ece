"""
Schema migrations.

`lawlzer/db/migrations/NNNN_name.sql` files are applied in order, each in its own
transaction, while holding a Postgres advisory lock so concurrent server starts do not
race. Applied versions and their checksums are recorded in `schema_migrations`; editing
an applied file is refused.
"""
from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple

import psycopg

from lawlzer.db import pg
from lawlzer.db.config import DbConfig, load_db_config
from lawlzer.errors import StorageError

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

MIGRATION_LOCK_KEY = 4417230911  # bigint

_CREATE_TABLE_RE = re.compile(r"CREATE\s+TABLE\s+(?:IF\s+NOT\s+EXISTS\s+)?([A-Za-z_][A-Za-z0-9_]*)", re.IGNORECASE)

_SCHEMA_MIGRATIONS_DDL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
  version text PRIMARY KEY,
  checksum text NOT NULL,
  applied_at timestamptz NOT NULL DEFAULT now()
);
"""


@dataclass(frozen=True)
class Migration:
    version: str
    checksum: str
    sql: str
    tables: Tuple[str, ...]  # tables the migration creates, in file order

    @classmethod
    def from_file(cls, path: Path) -> "Migration":
        raw = path.read_bytes()
        sql = raw.decode("utf-8")
        return cls(
            version=path.stem,
            checksum=hashlib.sha256(raw).hexdigest(),
            sql=sql,
            tables=tuple(m.group(1).lower() for m in _CREATE_TABLE_RE.finditer(sql)),
        )


def load_migrations(directory: Path = MIGRATIONS_DIR) -> List[Migration]:
    if not directory.exists():
        return []
    return [Migration.from_file(p) for p in sorted(directory.glob("*.sql"))]


def apply_migrations(
    dsn: str,
    *,
    migrations: Optional[Iterable[Migration]] = None,
    connect: Callable[[str], psycopg.Connection] = pg.connect,
) -> List[Migration]:
    """Apply pending migrations and return the ones applied by this call."""
    pending = list(migrations) if migrations is not None else load_migrations()
    applied_now: List[Migration] = []

    with pg.storage_errors("apply migrations"):
        with connect(dsn) as conn:
            conn.execute("SELECT pg_advisory_lock(%s);", (MIGRATION_LOCK_KEY,))
            try:
                conn.execute(_SCHEMA_MIGRATIONS_DDL)
                recorded = dict(conn.execute("SELECT version, checksum FROM schema_migrations;").fetchall())
                for m in pending:
                    checksum = recorded.get(m.version)
                    if checksum == m.checksum:
                        continue
                    if checksum is not None:
                        raise StorageError(f"migration {m.version} was edited after it was applied")
                    with conn.transaction():
                        conn.execute(m.sql)
                        conn.execute(
                            "INSERT INTO schema_migrations (version, checksum) VALUES (%s, %s);",
                            (m.version, m.checksum),
                        )
                    logger.info("Applied migration %s (tables: %s)", m.version, ", ".join(m.tables) or "none")
                    applied_now.append(m)
            finally:
                conn.execute("SELECT pg_advisory_unlock(%s);", (MIGRATION_LOCK_KEY,))
    return applied_now


def maybe_auto_migrate(cfg: Optional[DbConfig] = None) -> Optional[List[Migration]]:
    """Apply migrations at startup when DB_AUTO_MIGRATE is on. Returns None when skipped."""
    cfg = cfg or load_db_config()
    if not (cfg.auto_migrate and cfg.dsn):
        return None
    return apply_migrations(cfg.dsn)
