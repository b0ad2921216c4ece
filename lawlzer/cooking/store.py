from __future__ import annotations

import threading
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Set, Tuple

import psycopg

from lawlzer.cooking.models import Recipe, RecipeDraft, RecipeItem
from lawlzer.db import pg
from lawlzer.db.config import DbConfig, load_db_config

_RECIPE_COLUMNS = "id, user_id, name, description, notes, prep_time, cook_time, servings, is_public, created_at"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def like_pattern(search: str) -> str:
    """Substring pattern for `ILIKE ... ESCAPE '\\'` that matches `search` literally."""
    escaped = search.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class RecipeStore(Protocol):
    def create(self, user_id: str, draft: RecipeDraft) -> Recipe: ...

    def get(self, recipe_id: str) -> Optional[Recipe]: ...

    def list_visible(self, user_id: Optional[str], search: Optional[str] = None) -> List[Recipe]: ...

    def delete(self, recipe_id: str) -> None: ...

    def count_reactions(self, recipe_id: str, kind: str, user_id: Optional[str]) -> Tuple[int, bool]: ...

    def toggle_reaction(self, recipe_id: str, user_id: str, kind: str) -> bool: ...


class MemoryRecipeStore:
    def __init__(self, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._recipes: Dict[str, Recipe] = {}
        self._reactions: Set[Tuple[str, str, str]] = set()  # (recipe_id, user_id, kind)
        self._lock = threading.Lock()

    def create(self, user_id: str, draft: RecipeDraft) -> Recipe:
        recipe = Recipe(
            id=uuid.uuid4().hex,
            user_id=user_id,
            name=draft.name,
            description=draft.description,
            notes=draft.notes,
            prep_time=draft.prep_time,
            cook_time=draft.cook_time,
            servings=draft.servings,
            is_public=draft.is_public,
            created_at=self._clock(),
            items=tuple(draft.items),
        )
        with self._lock:
            self._recipes[recipe.id] = recipe
        return recipe

    def get(self, recipe_id: str) -> Optional[Recipe]:
        with self._lock:
            return self._recipes.get(recipe_id)

    def list_visible(self, user_id: Optional[str], search: Optional[str] = None) -> List[Recipe]:
        needle = (search or "").strip().lower()
        with self._lock:
            out = [
                r for r in self._recipes.values() if r.visible_to(user_id) and (not needle or needle in r.name.lower())
            ]
        return sorted(out, key=lambda r: r.created_at, reverse=True)

    def delete(self, recipe_id: str) -> None:
        with self._lock:
            self._recipes.pop(recipe_id, None)
            self._reactions = {x for x in self._reactions if x[0] != recipe_id}

    def count_reactions(self, recipe_id: str, kind: str, user_id: Optional[str]) -> Tuple[int, bool]:
        with self._lock:
            count = sum(1 for r, _, k in self._reactions if r == recipe_id and k == kind)
            mine = user_id is not None and (recipe_id, user_id, kind) in self._reactions
        return count, mine

    def toggle_reaction(self, recipe_id: str, user_id: str, kind: str) -> bool:
        key = (recipe_id, user_id, kind)
        with self._lock:
            if key in self._reactions:
                self._reactions.remove(key)
                return False
            self._reactions.add(key)
            return True


def _row_to_recipe(row) -> Recipe:  # type: ignore[no-untyped-def]
    return Recipe(
        id=str(row[0]),
        user_id=str(row[1]),
        name=row[2],
        description=row[3],
        notes=row[4],
        prep_time=row[5],
        cook_time=row[6],
        servings=int(row[7]),
        is_public=bool(row[8]),
        created_at=row[9],
    )


class PostgresRecipeStore:
    """Recipes in `recipes`, ingredient lines in `recipe_items`, reactions in `recipe_reactions`."""

    def __init__(self, dsn: str, *, connect: Callable[[str], psycopg.Connection] = pg.connect) -> None:
        self._dsn = dsn
        self._connect = connect

    @staticmethod
    def _with_items(conn, recipes: Sequence[Recipe]) -> List[Recipe]:  # type: ignore[no-untyped-def]
        if not recipes:
            return []
        rows = conn.execute(
            "SELECT recipe_id, name, amount, unit FROM recipe_items WHERE recipe_id = ANY(%s) ORDER BY recipe_id, position;",
            ([r.id for r in recipes],),
        ).fetchall()
        items: Dict[str, List[RecipeItem]] = {}
        for recipe_id, name, amount, unit in rows:
            items.setdefault(str(recipe_id), []).append(RecipeItem(name=name, amount=amount, unit=unit))
        return [replace(r, items=tuple(items.get(r.id, ()))) for r in recipes]

    def create(self, user_id: str, draft: RecipeDraft) -> Recipe:
        with pg.storage_errors("create recipe"):
            with self._connect(self._dsn) as conn:
                with conn.transaction():
                    row = conn.execute(
                        f"""
                        INSERT INTO recipes (id, user_id, name, description, notes, prep_time, cook_time, servings, is_public)
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                        RETURNING {_RECIPE_COLUMNS};
                        """,
                        (
                            uuid.uuid4().hex,
                            user_id,
                            draft.name,
                            draft.description,
                            draft.notes,
                            draft.prep_time,
                            draft.cook_time,
                            draft.servings,
                            draft.is_public,
                        ),
                    ).fetchone()
                    recipe = _row_to_recipe(row)
                    for position, item in enumerate(draft.items):
                        conn.execute(
                            """
                            INSERT INTO recipe_items (recipe_id, position, name, amount, unit)
                            VALUES (%s, %s, %s, %s, %s);
                            """,
                            (recipe.id, position, item.name, item.amount, item.unit),
                        )
        return replace(recipe, items=tuple(draft.items))

    def get(self, recipe_id: str) -> Optional[Recipe]:
        with pg.storage_errors("get recipe"):
            with self._connect(self._dsn) as conn:
                row = conn.execute(f"SELECT {_RECIPE_COLUMNS} FROM recipes WHERE id = %s;", (recipe_id,)).fetchone()
                if not row:
                    return None
                return self._with_items(conn, [_row_to_recipe(row)])[0]

    def list_visible(self, user_id: Optional[str], search: Optional[str] = None) -> List[Recipe]:
        conditions = ["(is_public OR user_id = %s)"]
        params: List[object] = [user_id]
        needle = (search or "").strip()
        if needle:
            conditions.append("name ILIKE %s ESCAPE '\\'")
            params.append(like_pattern(needle))
        with pg.storage_errors("list recipes"):
            with self._connect(self._dsn) as conn:
                rows = conn.execute(
                    f"SELECT {_RECIPE_COLUMNS} FROM recipes WHERE {' AND '.join(conditions)} ORDER BY created_at DESC;",
                    tuple(params),
                ).fetchall()
                return self._with_items(conn, [_row_to_recipe(r) for r in rows])

    def delete(self, recipe_id: str) -> None:
        with pg.storage_errors("delete recipe"):
            with self._connect(self._dsn) as conn:
                conn.execute("DELETE FROM recipes WHERE id = %s;", (recipe_id,))

    def count_reactions(self, recipe_id: str, kind: str, user_id: Optional[str]) -> Tuple[int, bool]:
        with pg.storage_errors("count reactions"):
            with self._connect(self._dsn) as conn:
                row = conn.execute(
                    """
                    SELECT count(*), coalesce(bool_or(user_id = %s), false)
                    FROM recipe_reactions
                    WHERE recipe_id = %s AND kind = %s;
                    """,
                    (user_id, recipe_id, kind),
                ).fetchone()
        if not row:
            return 0, False
        return int(row[0]), bool(row[1])

    def toggle_reaction(self, recipe_id: str, user_id: str, kind: str) -> bool:
        with pg.storage_errors("toggle reaction"):
            with self._connect(self._dsn) as conn:
                with conn.transaction():
                    cur = conn.execute(
                        "DELETE FROM recipe_reactions WHERE recipe_id = %s AND user_id = %s AND kind = %s;",
                        (recipe_id, user_id, kind),
                    )
                    if cur.rowcount:
                        return False
                    conn.execute(
                        """
                        INSERT INTO recipe_reactions (recipe_id, user_id, kind) VALUES (%s, %s, %s)
                        ON CONFLICT DO NOTHING;
                        """,
                        (recipe_id, user_id, kind),
                    )
                    return True


def build_recipe_store(db_cfg: Optional[DbConfig] = None) -> RecipeStore:
    dsn = (db_cfg or load_db_config()).dsn
    if dsn:
        return PostgresRecipeStore(dsn)
    return MemoryRecipeStore()
