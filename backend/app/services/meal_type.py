from typing import Iterable, Optional, Sequence, Tuple

from ..models.recipe import MealType

# Checked in order. Breakfast comes before dessert so "pancake" never
# lands in dessert through "cake".
MEAL_TYPE_KEYWORDS: Tuple[Tuple[MealType, Tuple[str, ...]], ...] = (
    (MealType.BREAKFAST, ("pancake", "waffle", "breakfast", "toast", "egg", "cereal", "oatmeal")),
    (MealType.DESSERT, ("cake", "cookie", "brownie", "dessert", "chocolate", "sweet")),
    (MealType.DINNER, ("dinner", "steak", "roast", "baked", "casserole")),
)


def infer_meal_type(
    title: Optional[str] = None,
    ingredients: Optional[Iterable[str]] = None,
    keywords: Sequence[Tuple[MealType, Tuple[str, ...]]] = MEAL_TYPE_KEYWORDS,
) -> Optional[MealType]:
    """Guess a meal type from the title and ingredient text, or None."""
    text = " ".join([title or "", *(ingredients or [])]).lower()

    for meal_type, words in keywords:
        if any(word in text for word in words):
            return meal_type
    return None
