"""
Ingredient line parsing - "quantity unit name" with graceful fallback.

Each line is tried against an ordered list of shapes and the first one that
matches wins:

    WITH_UNIT   "2 cups flour", "1 ½ cups milk", "1½ tsp salt"
    NO_UNIT     "3 eggs", "½ onion"
    FALLBACK    "salt to taste" -> kept verbatim in original_string
"""

import logging
import re
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from ..core.errors import QuantityParseError
from ..models.recipe import Ingredient
from .quantity import parse_quantity

log = logging.getLogger(__name__)

DEFAULT_UNIT = "whole"

# Latin-1 ¼ ½ ¾ plus the Number Forms block ⅐ .. ⅟
UNICODE_FRACTION_CLASS = "¼-¾⅐-⅟"

# digits/decimals/slashes, a vulgar fraction (optionally glued to digits: "1½")
QTY = rf"[0-9/.]*[{UNICODE_FRACTION_CLASS}]|[0-9/.]+"
# one or two tokens so "1 ½" and "1 1/2" read as a single mixed number
QTY_GROUP = rf"(?:{QTY})(?:\s+(?:{QTY}))?"


class LineShape(str, Enum):
    WITH_UNIT = "with_unit"
    NO_UNIT = "no_unit"
    FALLBACK = "fallback"


class IngredientParser:
    # unit must be followed by at least one more word, so "3 eggs" is NO_UNIT.
    # The unit is an ASCII word: "½" and "jalapeño" are never units.
    with_unit_pattern = re.compile(rf"^({QTY_GROUP})\s+([A-Za-z0-9_]+)\s+(.+)$")
    no_unit_pattern = re.compile(rf"^({QTY_GROUP})\s+(.+)$")

    @classmethod
    def _attempts(cls) -> Tuple[Tuple[LineShape, "re.Pattern[str]"], ...]:
        return (
            (LineShape.WITH_UNIT, cls.with_unit_pattern),
            (LineShape.NO_UNIT, cls.no_unit_pattern),
        )

    @classmethod
    def _structured(cls, shape: LineShape, match: "re.Match[str]") -> Ingredient:
        quantity = parse_quantity(match.group(1))
        if shape is LineShape.WITH_UNIT:
            return Ingredient(quantity=quantity, unit=match.group(2), name=match.group(3))
        return Ingredient(quantity=quantity, unit=DEFAULT_UNIT, name=match.group(2))

    @classmethod
    def classify(cls, line: str) -> Tuple[LineShape, Optional["re.Match[str]"]]:
        """Return the first shape whose pattern matches ``line``."""
        for shape, pattern in cls._attempts():
            match = pattern.match(line)
            if match:
                return shape, match
        return LineShape.FALLBACK, None

    @classmethod
    def parse_line(cls, line: str) -> Ingredient:
        shape, match = cls.classify(line)
        if match is not None:
            try:
                return cls._structured(shape, match)
            except QuantityParseError as exc:
                # e.g. "1/0 cup flour" or "2 12 oz cans"
                log.debug(f"Keeping ingredient verbatim, bad quantity: {exc}")

        return Ingredient(quantity=1, unit=DEFAULT_UNIT, name=line, original_string=line)

    @classmethod
    def parse(cls, lines: Iterable[str]) -> List[Ingredient]:
        """Parse ingredient lines; output has one entry per input, in order."""
        return [cls.parse_line(line) for line in lines]


def parse_ingredients(lines: Iterable[str]) -> List[Ingredient]:
    return IngredientParser.parse(lines)
