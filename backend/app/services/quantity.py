"""
Numeric quantity parsing and display formatting.

Parsing leans on NFKD normalization to split vulgar fraction glyphs into
``numerator U+2044 denominator`` so no glyph table is needed on the way in.
Formatting goes the other way through a fixed table of the common glyphs.
"""

import math
import re
import unicodedata
from typing import Dict, Tuple

from ..core.errors import QuantityParseError

FRACTION_SLASH = "⁄"

# Value -> glyph for the fifteen vulgar fractions we render
FRACTION_GLYPHS: Tuple[Tuple[float, str], ...] = (
    (1 / 2, "½"),
    (1 / 3, "⅓"),
    (2 / 3, "⅔"),
    (1 / 4, "¼"),
    (3 / 4, "¾"),
    (1 / 5, "⅕"),
    (2 / 5, "⅖"),
    (3 / 5, "⅗"),
    (4 / 5, "⅘"),
    (1 / 6, "⅙"),
    (5 / 6, "⅚"),
    (1 / 8, "⅛"),
    (3 / 8, "⅜"),
    (5 / 8, "⅝"),
    (7 / 8, "⅞"),
)
_GLYPH_BY_VALUE: Dict[float, str] = dict(FRACTION_GLYPHS)
FRACTION_TOLERANCE = 0.001

_MIXED_DIGITS = re.compile(r"([0-9])([0-9]" + FRACTION_SLASH + ")")
_MIXED_NUMBER = re.compile(r"^([0-9]+)\s+([0-9]+)/([0-9]+)$")
_SIMPLE_FRACTION = re.compile(r"^([0-9]*\.?[0-9]+)\s*/\s*([0-9]*\.?[0-9]+)$")
_DECIMAL = re.compile(r"^(?:[0-9]+\.?[0-9]*|\.[0-9]+)$")


def _divide(numerator: str, denominator: str, token: str) -> float:
    bottom = float(denominator)
    if bottom == 0:
        raise QuantityParseError(f"Zero denominator in quantity {token!r}")
    return float(numerator) / bottom


def parse_quantity(token: str) -> float:
    """Parse one quantity token ("2", "1.5", "1/2", "½", "1½", "1 ½", "1 1/2").

    Raises QuantityParseError for anything that is not a number, including
    fractions with a zero denominator.
    """
    trimmed = token.strip()

    # '½' -> '1⁄2', '1½' -> '11⁄2'
    normalized = unicodedata.normalize("NFKD", trimmed)
    # '11⁄2' -> '1 1⁄2'
    normalized = _MIXED_DIGITS.sub(r"\1 \2", normalized)
    normalized = normalized.replace(FRACTION_SLASH, "/")

    if "/" in normalized:
        mixed = _MIXED_NUMBER.match(normalized)
        if mixed:
            whole, numerator, denominator = mixed.groups()
            return float(whole) + _divide(numerator, denominator, token)

        simple = _SIMPLE_FRACTION.match(normalized)
        if simple:
            return _divide(simple.group(1), simple.group(2), token)
        raise QuantityParseError(f"Malformed fraction {token!r}")

    if _DECIMAL.match(normalized):
        return float(normalized)
    raise QuantityParseError(f"Not a number: {token!r}")


def _match_fraction(fractional: float) -> str | None:
    glyph = _GLYPH_BY_VALUE.get(fractional)
    if glyph:
        return glyph

    # absorb float error, e.g. 1/3 stored as 0.3333333333333333
    for value, candidate in FRACTION_GLYPHS:
        if abs(fractional - value) < FRACTION_TOLERANCE:
            return candidate
    return None


def format_quantity(quantity: float) -> str:
    """Render a quantity for display: 0.5 -> "½", 1.5 -> "1½", 2 -> "2".

    Values whose fractional part is not one of the table's fractions fall
    back to the plain decimal representation.
    """
    if float(quantity).is_integer():
        return str(int(quantity))

    whole = math.floor(quantity)
    glyph = _match_fraction(quantity - whole)
    if glyph:
        return f"{whole}{glyph}" if whole > 0 else glyph

    return str(quantity)
