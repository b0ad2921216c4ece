from __future__ import annotations

from typing import Any, List

import pytest
from psycopg.errors import OperationalError

from lawlzer.db.config import DbConfig, load_db_config
from lawlzer.db.migrate import MIGRATION_LOCK_KEY, Migration, apply_migrations, load_migrations, maybe_auto_migrate
from lawlzer.errors import StorageError


class _Conn:
    def __init__(self, applied=None) -> None:  # type: ignore[no-untyped-def]
        self.sql: List[str] = []
        self.params: List[Any] = []
        self._applied = list((applied or {}).items())

    def execute(self, sql: str, params=None):  # type: ignore[no-untyped-def]
        self.sql.append(" ".join(sql.split()))
        self.params.append(params)
        return self

    def fetchall(self):  # type: ignore[no-untyped-def]
        return self._applied

    def transaction(self):  # type: ignore[no-untyped-def]
        return self

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):  # type: ignore[no-untyped-def]
        return False


def _m(version: str, checksum: str = "c", tables=()) -> Migration:  # type: ignore[no-untyped-def]
    return Migration(version=version, checksum=checksum, sql=f"-- {version}", tables=tuple(tables))


def test_bundled_migrations_are_ordered() -> None:
    versions = [m.version for m in load_migrations()]
    assert versions == ["0001_auth", "0002_cooking", "0003_ingredients_days"]


def test_bundled_migrations_report_the_tables_they_create() -> None:
    tables = {m.version: m.tables for m in load_migrations()}
    assert set(tables["0001_auth"]) == {"users", "accounts", "sessions"}
    assert set(tables["0002_cooking"]) == {"recipes", "recipe_reactions"}
    assert tables["0003_ingredients_days"] == ("recipe_items", "days", "day_entries")


def test_days_are_unique_per_user_and_date() -> None:
    (m,) = [m for m in load_migrations() if m.version == "0003_ingredients_days"]
    assert "UNIQUE (user_id, date)" in " ".join(m.sql.split())


def test_apply_migrations_skips_applied_and_holds_lock() -> None:
    conn = _Conn(applied={"0001_auth": "c"})
    applied = apply_migrations(
        "dsn",
        migrations=[_m("0001_auth"), _m("0002_cooking", tables=["recipes"])],
        connect=lambda _d: conn,
    )

    assert [(m.version, m.tables) for m in applied] == [("0002_cooking", ("recipes",))]
    assert conn.sql[0] == "SELECT pg_advisory_lock(%s);"
    assert conn.params[0] == (MIGRATION_LOCK_KEY,)
    assert "-- 0002_cooking" in conn.sql
    assert "-- 0001_auth" not in conn.sql
    assert conn.params[conn.sql.index("-- 0002_cooking") + 1] == ("0002_cooking", "c")
    assert conn.sql[-1] == "SELECT pg_advisory_unlock(%s);"


def test_apply_migrations_with_nothing_pending_returns_empty() -> None:
    conn = _Conn(applied={"0001_auth": "c"})
    assert apply_migrations("dsn", migrations=[_m("0001_auth")], connect=lambda _d: conn) == []


def test_apply_migrations_detects_edited_migration() -> None:
    conn = _Conn(applied={"0001_auth": "old"})
    with pytest.raises(StorageError, match="0001_auth was edited"):
        apply_migrations("dsn", migrations=[_m("0001_auth", "new")], connect=lambda _d: conn)
    assert conn.sql[-1] == "SELECT pg_advisory_unlock(%s);"


def test_apply_migrations_driver_error_is_storage_error() -> None:
    def _connect(_dsn: str):  # type: ignore[no-untyped-def]
        raise OperationalError("connection refused")

    with pytest.raises(StorageError, match="apply migrations failed"):
        apply_migrations("dsn", migrations=[_m("0001_auth")], connect=_connect)


def test_auto_migrate_is_opt_in() -> None:
    assert maybe_auto_migrate(DbConfig(dsn="postgresql://x")) is None
    assert maybe_auto_migrate(DbConfig(dsn=None, auto_migrate=True)) is None


def test_db_config_builds_dsn_from_parts(monkeypatch) -> None:  # type: ignore[no-untyped-def]
    monkeypatch.setenv("POSTGRES_HOST", "db.internal")
    monkeypatch.setenv("POSTGRES_DB", "lawlzer")
    monkeypatch.setenv("POSTGRES_USER", "app")
    monkeypatch.setenv("POSTGRES_PASSWORD", "p ss'word")
    monkeypatch.setenv("DB_AUTO_MIGRATE", "true")
    load_db_config.cache_clear()

    cfg = load_db_config()

    assert cfg.enabled
    assert cfg.auto_migrate is True
    assert "host=db.internal" in cfg.dsn
    assert "port=5432" in cfg.dsn
    assert "dbname=lawlzer" in cfg.dsn
    assert "password='p ss\\'word'" in cfg.dsn


def test_db_config_prefers_explicit_dsn(monkeypatch) -> None:  # type: ignore[no-untyped-def]
    monkeypatch.setenv("POSTGRES_DSN", "postgresql://app@localhost/lawlzer")
    monkeypatch.setenv("POSTGRES_HOST", "ignored")
    load_db_config.cache_clear()

    cfg = load_db_config()

    assert cfg.dsn == "postgresql://app@localhost/lawlzer"
    assert cfg.auto_migrate is False


def test_db_config_without_settings_is_disabled() -> None:
    assert load_db_config() == DbConfig(dsn=None, auto_migrate=False)
