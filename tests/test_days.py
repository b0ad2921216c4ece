from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, List, Optional

from fastapi.testclient import TestClient

import lawlzer.api.server as srv
from lawlzer.cooking.days import MemoryDayStore, PostgresDayStore
from lawlzer.cooking.models import EntryDraft

DAYS = "/api/cooking/days"
TS = datetime(2025, 3, 1, 12, tzinfo=timezone.utc)


def _client(token=None) -> TestClient:  # type: ignore[no-untyped-def]
    c = TestClient(srv.app)
    if token:
        c.cookies.set("session_token", token)
    return c


def _recipe(c: TestClient, **body) -> str:  # type: ignore[no-untyped-def]
    r = c.post("/api/cooking/recipes", json={"name": "Porridge", "items": [{"name": "Oats"}], **body})
    assert r.status_code == 201, r.text
    return r.json()["id"]


def test_day_routes_require_session() -> None:
    c = _client()
    assert c.get(DAYS).status_code == 401
    assert c.post(DAYS, json={"date": "2025-03-01"}).status_code == 401
    assert c.delete(f"{DAYS}/entries/e1").status_code == 401


def test_save_day_upserts_one_day_per_date(login_as) -> None:  # type: ignore[no-untyped-def]
    c = _client(login_as())
    recipe_id = _recipe(c)

    first = c.post(DAYS, json={"date": "2025-03-01", "notes": "Ran 5k"}).json()["day"]
    second = c.post(
        DAYS, json={"date": "2025-03-01", "entries": [{"recipeId": recipe_id, "amount": 1.5, "mealType": "breakfast"}]}
    ).json()["day"]

    assert second["id"] == first["id"]
    assert second["notes"] == "Ran 5k"
    assert [(e["recipeId"], e["amount"], e["mealType"]) for e in second["entries"]] == [(recipe_id, 1.5, "breakfast")]

    # Passing entries replaces the list.
    third = c.post(DAYS, json={"date": "2025-03-01", "entries": []}).json()["day"]
    assert third["entries"] == []

    assert c.get(DAYS, params={"date": "2025-03-01"}).json()["day"]["id"] == first["id"]
    assert c.get(DAYS, params={"date": "2025-03-02"}).json() == {"day": None}


def test_days_are_private_to_their_user(login_as) -> None:  # type: ignore[no-untyped-def]
    alice = _client(login_as("1", email="a@example.com"))
    bob = _client(login_as("2", email="b@example.com"))
    recipe_id = _recipe(alice, isPublic=True)

    entry = alice.post(
        f"{DAYS}/entries", json={"date": "2025-03-01", "entry": {"recipeId": recipe_id, "amount": 1}}
    ).json()

    assert bob.get(DAYS, params={"date": "2025-03-01"}).json() == {"day": None}
    r = bob.delete(f"{DAYS}/entries/{entry['id']}")
    assert r.status_code == 404
    assert r.json() == {"error": "Entry not found"}

    assert alice.delete(f"{DAYS}/entries/{entry['id']}").json() == {"success": True}
    assert alice.get(DAYS, params={"date": "2025-03-01"}).json()["day"]["entries"] == []


def test_add_entry_creates_the_day(login_as) -> None:  # type: ignore[no-untyped-def]
    c = _client(login_as())
    recipe_id = _recipe(c)

    r = c.post(f"{DAYS}/entries", json={"date": "2025-03-04", "entry": {"recipeId": recipe_id, "amount": 2, "mealType": "dinner"}})

    assert r.status_code == 201
    entry = r.json()
    assert entry["recipeId"] == recipe_id
    assert entry["amount"] == 2
    day = c.get(DAYS, params={"date": "2025-03-04"}).json()["day"]
    assert day["id"] == entry["dayId"]
    assert [e["id"] for e in day["entries"]] == [entry["id"]]


def test_entries_must_reference_a_visible_recipe(login_as) -> None:  # type: ignore[no-untyped-def]
    alice = _client(login_as("1", email="a@example.com"))
    bob = _client(login_as("2", email="b@example.com"))
    private_id = _recipe(alice)

    r = bob.post(f"{DAYS}/entries", json={"date": "2025-03-01", "entry": {"recipeId": private_id, "amount": 1}})
    assert r.status_code == 404
    assert r.json() == {"error": "Recipe not found"}

    r = bob.post(DAYS, json={"date": "2025-03-01", "entries": [{"recipeId": "missing", "amount": 1}]})
    assert r.status_code == 404
    assert bob.get(DAYS, params={"date": "2025-03-01"}).json() == {"day": None}


def test_negative_amount_is_400(login_as) -> None:  # type: ignore[no-untyped-def]
    c = _client(login_as())
    recipe_id = _recipe(c)

    r = c.post(f"{DAYS}/entries", json={"date": "2025-03-01", "entry": {"recipeId": recipe_id, "amount": -1}})
    assert r.status_code == 400
    assert "amount" in r.json()["error"]


def test_list_days_by_range_and_recent(login_as) -> None:  # type: ignore[no-untyped-def]
    c = _client(login_as())
    for d in range(1, 11):
        assert c.post(DAYS, json={"date": f"2025-03-{d:02d}"}).status_code == 200

    ranged = c.get(DAYS, params={"startDate": "2025-03-03", "endDate": "2025-03-05"}).json()["days"]
    assert [d["date"] for d in ranged] == ["2025-03-05", "2025-03-04", "2025-03-03"]

    recent = c.get(DAYS).json()["days"]
    assert len(recent) == 7
    assert recent[0]["date"] == "2025-03-10"

    r = c.get(DAYS, params={"startDate": "2025-03-05", "endDate": "2025-03-01"})
    assert r.status_code == 400
    assert r.json() == {"error": "startDate must not be after endDate"}


def test_memory_store_keeps_notes_when_omitted() -> None:
    store = MemoryDayStore(clock=lambda: TS)
    store.save_day("u1", date(2025, 3, 1), notes="Rest day")
    day = store.save_day("u1", date(2025, 3, 1), entries=[EntryDraft("r1", 1.0)])
    assert day.notes == "Rest day"
    assert [e.recipe_id for e in day.entries] == ["r1"]
    assert day.entries[0].created_at == TS


class _Cursor:
    def __init__(self, row: Any = None, rows: Optional[List[Any]] = None, rowcount: int = 0) -> None:
        self._row = row
        self._rows = rows or []
        self.rowcount = rowcount

    def fetchone(self):  # type: ignore[no-untyped-def]
        return self._row

    def fetchall(self):  # type: ignore[no-untyped-def]
        return self._rows


class _Conn:
    def __init__(self, results: Optional[List[Any]] = None) -> None:
        self.calls: List[Any] = []
        self._results = list(results or [])

    def execute(self, sql: str, params=None):  # type: ignore[no-untyped-def]
        self.calls.append((" ".join(sql.split()), params))
        return self._results.pop(0) if self._results else _Cursor()

    def transaction(self):  # type: ignore[no-untyped-def]
        return self

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):  # type: ignore[no-untyped-def]
        return False


DAY_ROW = ("d1", "u1", date(2025, 3, 1), None)
ENTRY_ROW = ("e1", "d1", "r1", 1.5, "lunch", TS)


def test_postgres_save_day_upserts_on_user_and_date() -> None:
    conn = _Conn([_Cursor(row=DAY_ROW), _Cursor(), _Cursor(row=ENTRY_ROW), _Cursor(rows=[ENTRY_ROW])])
    store = PostgresDayStore("dsn", connect=lambda _d: conn)

    day = store.save_day("u1", date(2025, 3, 1), entries=[EntryDraft("r1", 1.5, "lunch")])

    upsert, params = conn.calls[0]
    assert "ON CONFLICT (user_id, date) DO UPDATE SET notes = COALESCE(EXCLUDED.notes, days.notes)" in upsert
    assert params[1:] == ("u1", date(2025, 3, 1), None)
    assert conn.calls[1] == ("DELETE FROM day_entries WHERE day_id = %s;", ("d1",))
    assert conn.calls[2][0].startswith("INSERT INTO day_entries")
    assert conn.calls[2][1][1:] == ("d1", "r1", 1.5, "lunch")
    assert [e.id for e in day.entries] == ["e1"]


def test_postgres_save_day_without_entries_keeps_them() -> None:
    conn = _Conn([_Cursor(row=DAY_ROW), _Cursor(rows=[ENTRY_ROW])])

    day = PostgresDayStore("dsn", connect=lambda _d: conn).save_day("u1", date(2025, 3, 1), notes="x")

    assert not any(sql.startswith("DELETE") for sql, _ in conn.calls)
    assert [e.meal_type for e in day.entries] == ["lunch"]


def test_postgres_list_days_applies_range_and_limit() -> None:
    conn = _Conn([_Cursor(rows=[DAY_ROW]), _Cursor(rows=[])])
    store = PostgresDayStore("dsn", connect=lambda _d: conn)

    store.list_days("u1", start=date(2025, 3, 1), end=date(2025, 3, 7), limit=7)

    sql, params = conn.calls[0]
    assert sql == "SELECT id, user_id, date, notes FROM days WHERE user_id = %s AND date >= %s AND date <= %s ORDER BY date DESC LIMIT %s;"
    assert params == ("u1", date(2025, 3, 1), date(2025, 3, 7), 7)
    assert conn.calls[1][1] == (["d1"],)


def test_postgres_delete_entry_is_scoped_to_owner() -> None:
    conn = _Conn([_Cursor(rowcount=0)])

    assert PostgresDayStore("dsn", connect=lambda _d: conn).delete_entry("u2", "e1") is False
    sql, params = conn.calls[0]
    assert sql.startswith("DELETE FROM day_entries e USING days d")
    assert "d.user_id = %s" in sql
    assert params == ("e1", "u2")
