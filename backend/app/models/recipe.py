from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, conint


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MealType(str, Enum):
    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"
    SNACK = "snack"
    DESSERT = "dessert"


class Ingredient(BaseModel):
    """One parsed ingredient line.

    ``original_string`` is only set when the line could not be split into
    quantity/unit/name and must be displayed verbatim.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    quantity: float
    unit: str
    name: str
    original_string: Optional[str] = Field(None, alias="originalString")


class Recipe(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=new_id)
    title: str
    meal_type: MealType = Field(..., alias="mealType")
    cook_time: str = Field(..., alias="cookTime")
    cook_time_minutes: conint(ge=0) = Field(0, alias="cookTimeMinutes")
    is_favorite: bool = Field(False, alias="isFavorite")
    author: Optional[str] = None
    source: Optional[str] = None
    image_url: str = Field(..., alias="imageUrl")
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")
    ingredients: List[Ingredient] = []
    instructions: Optional[List[str]] = None


class RecipeOverrides(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = None
    meal_type: Optional[MealType] = Field(None, alias="mealType")
