from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Optional, Tuple

LIKE = "like"
DISLIKE = "dislike"


@dataclass(frozen=True)
class RecipeItem:
    """One ingredient line. Free text; there is no food database behind it."""

    name: str
    amount: Optional[float] = None
    unit: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "amount": self.amount, "unit": self.unit}


@dataclass(frozen=True)
class RecipeDraft:
    name: str
    items: Tuple[RecipeItem, ...] = ()
    description: Optional[str] = None
    notes: Optional[str] = None
    prep_time: Optional[int] = None
    cook_time: Optional[int] = None
    servings: int = 1
    is_public: bool = False


@dataclass(frozen=True)
class Recipe:
    id: str
    user_id: str
    name: str
    description: Optional[str]
    notes: Optional[str]
    prep_time: Optional[int]
    cook_time: Optional[int]
    servings: int
    is_public: bool
    created_at: datetime
    items: Tuple[RecipeItem, ...] = ()

    def visible_to(self, user_id: Optional[str]) -> bool:
        return self.is_public or (user_id is not None and user_id == self.user_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "name": self.name,
            "description": self.description,
            "notes": self.notes,
            "prepTime": self.prep_time,
            "cookTime": self.cook_time,
            "servings": self.servings,
            "isPublic": self.is_public,
            "createdAt": self.created_at.isoformat(),
            "items": [i.to_dict() for i in self.items],
        }


@dataclass(frozen=True)
class EntryDraft:
    recipe_id: str
    amount: float  # servings eaten
    meal_type: Optional[str] = None  # breakfast|lunch|dinner|snack, free text


@dataclass(frozen=True)
class DayEntry:
    id: str
    day_id: str
    recipe_id: str
    amount: float
    meal_type: Optional[str]
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "dayId": self.day_id,
            "recipeId": self.recipe_id,
            "amount": self.amount,
            "mealType": self.meal_type,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class Day:
    """A user's food log for one calendar date. At most one per (user, date)."""

    id: str
    user_id: str
    date: date
    notes: Optional[str]
    entries: Tuple[DayEntry, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "date": self.date.isoformat(),
            "notes": self.notes,
            "entries": [e.to_dict() for e in self.entries],
        }
