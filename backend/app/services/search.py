from typing import Iterable, List, Optional

from ..models.recipe import Recipe


def matches_query(recipe: Recipe, query: str) -> bool:
    """Case-insensitive substring match on title, ingredient names or meal type."""
    if not query:
        return True

    q = query.lower()
    if q in recipe.title.lower():
        return True
    if any(q in ingredient.name.lower() for ingredient in recipe.ingredients):
        return True
    meal_type = getattr(recipe.meal_type, "value", recipe.meal_type)
    return q in str(meal_type).lower()


def search_recipes(recipes: Iterable[Recipe], query: str, limit: Optional[int] = None) -> List[Recipe]:
    hits = [recipe for recipe in recipes if matches_query(recipe, query)]
    return hits if limit is None else hits[:limit]
