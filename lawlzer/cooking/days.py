"""
Day log store: one `Day` per (user, calendar date), each holding eaten-recipe entries.

Days are created on first write. Entries are owned through their day, so every entry
operation is scoped to the caller's user id.
"""
from __future__ import annotations

import threading
import uuid
from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Callable, Dict, List, Optional, Protocol, Sequence

import psycopg

from lawlzer.cooking.models import Day, DayEntry, EntryDraft
from lawlzer.db import pg
from lawlzer.db.config import DbConfig, load_db_config

RECENT_DAYS = 7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DayStore(Protocol):
    def get_day(self, user_id: str, day: date) -> Optional[Day]: ...

    def list_days(
        self, user_id: str, *, start: Optional[date] = None, end: Optional[date] = None, limit: Optional[int] = None
    ) -> List[Day]: ...

    def save_day(
        self, user_id: str, day: date, *, notes: Optional[str] = None, entries: Optional[Sequence[EntryDraft]] = None
    ) -> Day: ...

    def add_entry(self, user_id: str, day: date, entry: EntryDraft) -> DayEntry: ...

    def delete_entry(self, user_id: str, entry_id: str) -> bool: ...


class MemoryDayStore:
    def __init__(self, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._days: Dict[str, Day] = {}  # id -> Day without entries
        self._entries: Dict[str, DayEntry] = {}
        self._lock = threading.Lock()

    def _find(self, user_id: str, day: date) -> Optional[Day]:
        for d in self._days.values():
            if d.user_id == user_id and d.date == day:
                return d
        return None

    def _upsert(self, user_id: str, day: date, notes: Optional[str]) -> Day:
        d = self._find(user_id, day)
        if d is None:
            d = Day(id=uuid.uuid4().hex, user_id=user_id, date=day, notes=notes)
        elif notes is not None:
            d = replace(d, notes=notes)
        self._days[d.id] = d
        return d

    def _new_entry(self, day_id: str, entry: EntryDraft) -> DayEntry:
        e = DayEntry(
            id=uuid.uuid4().hex,
            day_id=day_id,
            recipe_id=entry.recipe_id,
            amount=entry.amount,
            meal_type=entry.meal_type,
            created_at=self._clock(),
        )
        self._entries[e.id] = e
        return e

    def _with_entries(self, d: Day) -> Day:
        entries = sorted((e for e in self._entries.values() if e.day_id == d.id), key=lambda e: e.created_at)
        return replace(d, entries=tuple(entries))

    def get_day(self, user_id: str, day: date) -> Optional[Day]:
        with self._lock:
            d = self._find(user_id, day)
            return self._with_entries(d) if d else None

    def list_days(
        self, user_id: str, *, start: Optional[date] = None, end: Optional[date] = None, limit: Optional[int] = None
    ) -> List[Day]:
        with self._lock:
            days = [
                self._with_entries(d)
                for d in self._days.values()
                if d.user_id == user_id and (start is None or d.date >= start) and (end is None or d.date <= end)
            ]
        days.sort(key=lambda d: d.date, reverse=True)
        return days[:limit] if limit is not None else days

    def save_day(
        self, user_id: str, day: date, *, notes: Optional[str] = None, entries: Optional[Sequence[EntryDraft]] = None
    ) -> Day:
        with self._lock:
            d = self._upsert(user_id, day, notes)
            if entries is not None:
                self._entries = {k: e for k, e in self._entries.items() if e.day_id != d.id}
                for entry in entries:
                    self._new_entry(d.id, entry)
            return self._with_entries(d)

    def add_entry(self, user_id: str, day: date, entry: EntryDraft) -> DayEntry:
        with self._lock:
            d = self._upsert(user_id, day, None)
            return self._new_entry(d.id, entry)

    def delete_entry(self, user_id: str, entry_id: str) -> bool:
        with self._lock:
            e = self._entries.get(entry_id)
            if e is None or self._days[e.day_id].user_id != user_id:
                return False
            del self._entries[entry_id]
            return True


_ENTRY_COLUMNS = "id, day_id, recipe_id, amount, meal_type, created_at"


def _row_to_entry(row) -> DayEntry:  # type: ignore[no-untyped-def]
    return DayEntry(
        id=str(row[0]),
        day_id=str(row[1]),
        recipe_id=str(row[2]),
        amount=float(row[3]),
        meal_type=row[4],
        created_at=row[5],
    )


def _row_to_day(row) -> Day:  # type: ignore[no-untyped-def]
    return Day(id=str(row[0]), user_id=str(row[1]), date=row[2], notes=row[3])


class PostgresDayStore:
    """Days in `days` (unique per user and date), entries in `day_entries`."""

    def __init__(self, dsn: str, *, connect: Callable[[str], psycopg.Connection] = pg.connect) -> None:
        self._dsn = dsn
        self._connect = connect

    @staticmethod
    def _with_entries(conn, days: Sequence[Day]) -> List[Day]:  # type: ignore[no-untyped-def]
        if not days:
            return []
        rows = conn.execute(
            f"SELECT {_ENTRY_COLUMNS} FROM day_entries WHERE day_id = ANY(%s) ORDER BY created_at, id;",
            ([d.id for d in days],),
        ).fetchall()
        by_day: Dict[str, List[DayEntry]] = {}
        for row in rows:
            e = _row_to_entry(row)
            by_day.setdefault(e.day_id, []).append(e)
        return [replace(d, entries=tuple(by_day.get(d.id, ()))) for d in days]

    @staticmethod
    def _upsert(conn, user_id: str, day: date, notes: Optional[str]) -> Day:  # type: ignore[no-untyped-def]
        row = conn.execute(
            """
            INSERT INTO days (id, user_id, date, notes) VALUES (%s, %s, %s, %s)
            ON CONFLICT (user_id, date) DO UPDATE SET notes = COALESCE(EXCLUDED.notes, days.notes)
            RETURNING id, user_id, date, notes;
            """,
            (uuid.uuid4().hex, user_id, day, notes),
        ).fetchone()
        return _row_to_day(row)

    @staticmethod
    def _insert_entry(conn, day_id: str, entry: EntryDraft) -> DayEntry:  # type: ignore[no-untyped-def]
        row = conn.execute(
            f"""
            INSERT INTO day_entries (id, day_id, recipe_id, amount, meal_type) VALUES (%s, %s, %s, %s, %s)
            RETURNING {_ENTRY_COLUMNS};
            """,
            (uuid.uuid4().hex, day_id, entry.recipe_id, entry.amount, entry.meal_type),
        ).fetchone()
        return _row_to_entry(row)

    def get_day(self, user_id: str, day: date) -> Optional[Day]:
        with pg.storage_errors("get day"):
            with self._connect(self._dsn) as conn:
                row = conn.execute(
                    "SELECT id, user_id, date, notes FROM days WHERE user_id = %s AND date = %s;", (user_id, day)
                ).fetchone()
                if not row:
                    return None
                return self._with_entries(conn, [_row_to_day(row)])[0]

    def list_days(
        self, user_id: str, *, start: Optional[date] = None, end: Optional[date] = None, limit: Optional[int] = None
    ) -> List[Day]:
        conditions = ["user_id = %s"]
        params: List[object] = [user_id]
        if start is not None:
            conditions.append("date >= %s")
            params.append(start)
        if end is not None:
            conditions.append("date <= %s")
            params.append(end)
        sql = f"SELECT id, user_id, date, notes FROM days WHERE {' AND '.join(conditions)} ORDER BY date DESC"
        if limit is not None:
            sql += " LIMIT %s"
            params.append(limit)
        with pg.storage_errors("list days"):
            with self._connect(self._dsn) as conn:
                rows = conn.execute(sql + ";", tuple(params)).fetchall()
                return self._with_entries(conn, [_row_to_day(r) for r in rows])

    def save_day(
        self, user_id: str, day: date, *, notes: Optional[str] = None, entries: Optional[Sequence[EntryDraft]] = None
    ) -> Day:
        with pg.storage_errors("save day"):
            with self._connect(self._dsn) as conn:
                with conn.transaction():
                    d = self._upsert(conn, user_id, day, notes)
                    if entries is not None:
                        conn.execute("DELETE FROM day_entries WHERE day_id = %s;", (d.id,))
                        for entry in entries:
                            self._insert_entry(conn, d.id, entry)
                    return self._with_entries(conn, [d])[0]

    def add_entry(self, user_id: str, day: date, entry: EntryDraft) -> DayEntry:
        with pg.storage_errors("add day entry"):
            with self._connect(self._dsn) as conn:
                with conn.transaction():
                    d = self._upsert(conn, user_id, day, None)
                    return self._insert_entry(conn, d.id, entry)

    def delete_entry(self, user_id: str, entry_id: str) -> bool:
        with pg.storage_errors("delete day entry"):
            with self._connect(self._dsn) as conn:
                cur = conn.execute(
                    """
                    DELETE FROM day_entries e USING days d
                    WHERE e.id = %s AND e.day_id = d.id AND d.user_id = %s;
                    """,
                    (entry_id, user_id),
                )
                return bool(cur.rowcount)


def build_day_store(db_cfg: Optional[DbConfig] = None) -> DayStore:
    dsn = (db_cfg or load_db_config()).dsn
    if dsn:
        return PostgresDayStore(dsn)
    return MemoryDayStore()
