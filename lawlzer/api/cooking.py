"""Cooking API: recipes, like/dislike reactions, and the per-day eating log."""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from pydantic import BaseModel, ConfigDict, Field

from lawlzer.auth.deps import current_user, get_day_store, get_recipe_store, require_user
from lawlzer.auth.models import AuthUser
from lawlzer.cooking import service
from lawlzer.cooking.days import DayStore
from lawlzer.cooking.models import DISLIKE, LIKE, EntryDraft, RecipeDraft, RecipeItem
from lawlzer.cooking.store import RecipeStore

router = APIRouter(prefix="/api/cooking")


class RecipeItemIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = ""
    amount: Optional[float] = None
    unit: Optional[str] = None


class RecipeCreate(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str = ""
    description: Optional[str] = None
    notes: Optional[str] = None
    prep_time: Optional[int] = Field(default=None, alias="prepTime", ge=0)
    cook_time: Optional[int] = Field(default=None, alias="cookTime", ge=0)
    servings: int = 1
    is_public: bool = Field(default=False, alias="isPublic")
    items: List[RecipeItemIn] = Field(default_factory=list)

    def to_draft(self) -> RecipeDraft:
        return RecipeDraft(
            name=self.name,
            items=tuple(RecipeItem(name=i.name, amount=i.amount, unit=i.unit) for i in self.items),
            description=self.description,
            notes=self.notes,
            prep_time=self.prep_time,
            cook_time=self.cook_time,
            servings=self.servings,
            is_public=self.is_public,
        )


class EntryIn(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    recipe_id: str = Field(alias="recipeId")
    amount: float = Field(ge=0)
    meal_type: Optional[str] = Field(default=None, alias="mealType")

    def to_draft(self) -> EntryDraft:
        return EntryDraft(recipe_id=self.recipe_id, amount=self.amount, meal_type=self.meal_type)


class DaySave(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    day: date = Field(alias="date")
    notes: Optional[str] = None
    entries: Optional[List[EntryIn]] = None


class DayEntryAdd(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    day: date = Field(alias="date")
    entry: EntryIn


def _user_id(user: Optional[AuthUser]) -> Optional[str]:
    return user.id if user is not None else None


@router.get("/recipes")
def list_recipes(
    search: Optional[str] = Query(None),
    user: Optional[AuthUser] = Depends(current_user),
    store: RecipeStore = Depends(get_recipe_store),
) -> Dict[str, Any]:
    recipes = service.list_recipes(store, _user_id(user), search)
    return {"recipes": [r.to_dict() for r in recipes]}


@router.post("/recipes", status_code=201)
def create_recipe(
    body: RecipeCreate,
    user: AuthUser = Depends(require_user),
    store: RecipeStore = Depends(get_recipe_store),
) -> Dict[str, Any]:
    recipe = service.create_recipe(store, user.id, body.to_draft())
    return recipe.to_dict()


@router.get("/recipes/{recipe_id}")
def get_recipe(
    recipe_id: str,
    user: Optional[AuthUser] = Depends(current_user),
    store: RecipeStore = Depends(get_recipe_store),
) -> Dict[str, Any]:
    return service.get_visible_recipe(store, recipe_id, _user_id(user)).to_dict()


@router.delete("/recipes/{recipe_id}", status_code=204)
def delete_recipe(
    recipe_id: str,
    user: AuthUser = Depends(require_user),
    store: RecipeStore = Depends(get_recipe_store),
) -> Response:
    service.delete_owned_recipe(store, recipe_id, user.id)
    return Response(status_code=204)


@router.get("/recipes/{recipe_id}/like")
def get_likes(
    recipe_id: str,
    user: Optional[AuthUser] = Depends(current_user),
    store: RecipeStore = Depends(get_recipe_store),
) -> Dict[str, Any]:
    return service.reaction_summary(store, recipe_id, LIKE, _user_id(user))


@router.post("/recipes/{recipe_id}/like")
def toggle_like(
    recipe_id: str,
    user: AuthUser = Depends(require_user),
    store: RecipeStore = Depends(get_recipe_store),
) -> Dict[str, Any]:
    return {"success": True, "action": service.toggle_reaction(store, recipe_id, LIKE, user.id)}


@router.get("/recipes/{recipe_id}/dislike")
def get_dislikes(
    recipe_id: str,
    user: Optional[AuthUser] = Depends(current_user),
    store: RecipeStore = Depends(get_recipe_store),
) -> Dict[str, Any]:
    return service.reaction_summary(store, recipe_id, DISLIKE, _user_id(user))


@router.post("/recipes/{recipe_id}/dislike")
def toggle_dislike(
    recipe_id: str,
    user: AuthUser = Depends(require_user),
    store: RecipeStore = Depends(get_recipe_store),
) -> Dict[str, Any]:
    return {"success": True, "action": service.toggle_reaction(store, recipe_id, DISLIKE, user.id)}


@router.get("/days")
def get_days(
    day: Optional[date] = Query(None, alias="date"),
    start: Optional[date] = Query(None, alias="startDate"),
    end: Optional[date] = Query(None, alias="endDate"),
    user: AuthUser = Depends(require_user),
    days: DayStore = Depends(get_day_store),
) -> Dict[str, Any]:
    if day is not None:
        found = service.get_day(days, user.id, day)
        return {"day": found.to_dict() if found else None}
    return {"days": [d.to_dict() for d in service.list_days(days, user.id, start, end)]}


@router.post("/days")
def save_day(
    body: DaySave,
    user: AuthUser = Depends(require_user),
    days: DayStore = Depends(get_day_store),
    recipes: RecipeStore = Depends(get_recipe_store),
) -> Dict[str, Any]:
    entries = [e.to_draft() for e in body.entries] if body.entries is not None else None
    saved = service.save_day(days, recipes, user.id, body.day, notes=body.notes, entries=entries)
    return {"day": saved.to_dict()}


@router.post("/days/entries", status_code=201)
def add_day_entry(
    body: DayEntryAdd,
    user: AuthUser = Depends(require_user),
    days: DayStore = Depends(get_day_store),
    recipes: RecipeStore = Depends(get_recipe_store),
) -> Dict[str, Any]:
    return service.add_day_entry(days, recipes, user.id, body.day, body.entry.to_draft()).to_dict()


@router.delete("/days/entries/{entry_id}")
def delete_day_entry(
    entry_id: str,
    user: AuthUser = Depends(require_user),
    days: DayStore = Depends(get_day_store),
) -> Dict[str, Any]:
    service.delete_day_entry(days, user.id, entry_id)
    return {"success": True}
