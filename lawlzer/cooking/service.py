"""
Recipe and day-log operations shared by the HTTP routes.

Visibility rule: a recipe is visible to its owner and, when public, to everyone.
Anything the caller cannot see is reported as `NotFound`, never as forbidden.
"""
from __future__ import annotations

from dataclasses import replace
from datetime import date
from typing import Dict, List, Optional, Sequence

from lawlzer.cooking.days import RECENT_DAYS, DayStore
from lawlzer.cooking.models import DISLIKE, LIKE, Day, DayEntry, EntryDraft, Recipe, RecipeDraft, RecipeItem
from lawlzer.cooking.store import RecipeStore
from lawlzer.errors import NotFound, ValidationError

_ACTIONS = {
    (LIKE, True): "liked",
    (LIKE, False): "unliked",
    (DISLIKE, True): "disliked",
    (DISLIKE, False): "undisliked",
}

_SUMMARY_KEYS = {
    LIKE: ("likeCount", "isLikedByUser"),
    DISLIKE: ("dislikeCount", "isDislikedByUser"),
}


def _clean_item(item: RecipeItem) -> RecipeItem:
    name = (item.name or "").strip()
    if not name:
        raise ValidationError("Ingredient name is required")
    if item.amount is not None and item.amount < 0:
        raise ValidationError("Ingredient amount must not be negative")
    return replace(item, name=name)


def create_recipe(store: RecipeStore, user_id: str, draft: RecipeDraft) -> Recipe:
    name = (draft.name or "").strip()
    if not name:
        raise ValidationError("Recipe name is required")
    if draft.servings < 1:
        raise ValidationError("Servings must be at least 1")
    items = tuple(_clean_item(i) for i in draft.items)
    if not items:
        raise ValidationError("Recipe must have at least one ingredient")
    return store.create(user_id, replace(draft, name=name, items=items))


def list_recipes(store: RecipeStore, user_id: Optional[str], search: Optional[str] = None) -> List[Recipe]:
    return store.list_visible(user_id, search)


def get_visible_recipe(store: RecipeStore, recipe_id: str, user_id: Optional[str]) -> Recipe:
    recipe = store.get(recipe_id)
    if recipe is None or not recipe.visible_to(user_id):
        raise NotFound("Recipe not found")
    return recipe


def delete_owned_recipe(store: RecipeStore, recipe_id: str, user_id: str) -> None:
    recipe = store.get(recipe_id)
    if recipe is None or recipe.user_id != user_id:
        raise NotFound("Recipe not found")
    store.delete(recipe_id)


def reaction_summary(store: RecipeStore, recipe_id: str, kind: str, user_id: Optional[str]) -> Dict[str, object]:
    get_visible_recipe(store, recipe_id, user_id)
    count, mine = store.count_reactions(recipe_id, kind, user_id)
    count_key, mine_key = _SUMMARY_KEYS[kind]
    return {count_key: count, mine_key: mine}


def toggle_reaction(store: RecipeStore, recipe_id: str, kind: str, user_id: str) -> str:
    get_visible_recipe(store, recipe_id, user_id)
    added = store.toggle_reaction(recipe_id, user_id, kind)
    return _ACTIONS[(kind, added)]


def _check_entries(recipes: RecipeStore, user_id: str, entries: Sequence[EntryDraft]) -> None:
    for entry in entries:
        if entry.amount < 0:
            raise ValidationError("Amount must not be negative")
        get_visible_recipe(recipes, entry.recipe_id, user_id)


def get_day(days: DayStore, user_id: str, day: date) -> Optional[Day]:
    return days.get_day(user_id, day)


def list_days(days: DayStore, user_id: str, start: Optional[date] = None, end: Optional[date] = None) -> List[Day]:
    """Days in a range, newest first. With no range, the most recent week of logged days."""
    if start is not None and end is not None and start > end:
        raise ValidationError("startDate must not be after endDate")
    if start is None and end is None:
        return days.list_days(user_id, limit=RECENT_DAYS)
    return days.list_days(user_id, start=start, end=end)


def save_day(
    days: DayStore,
    recipes: RecipeStore,
    user_id: str,
    day: date,
    *,
    notes: Optional[str] = None,
    entries: Optional[Sequence[EntryDraft]] = None,
) -> Day:
    if entries is not None:
        _check_entries(recipes, user_id, entries)
    return days.save_day(user_id, day, notes=notes, entries=entries)


def add_day_entry(days: DayStore, recipes: RecipeStore, user_id: str, day: date, entry: EntryDraft) -> DayEntry:
    _check_entries(recipes, user_id, [entry])
    return days.add_entry(user_id, day, entry)


def delete_day_entry(days: DayStore, user_id: str, entry_id: str) -> None:
    if not days.delete_entry(user_id, entry_id):
        raise NotFound("Entry not found")
