"""Physical and monetary unit conversion to the canonical units stored on a project.

Canonical units: tonnes for mass, millions of USD for project-level amounts.
"""

from __future__ import annotations

TROY_OUNCE_GRAMS = 31.1034768
POUND_KILOGRAMS = 0.45359237
SHORT_TON_TONNES = 0.90718474

TONNES_PER_TROY_OUNCE = TROY_OUNCE_GRAMS / 1_000_000
TONNES_PER_POUND = POUND_KILOGRAMS / 1_000

_SCALE_WORDS: dict[str, float] = {
    "thousand": 1e3,
    "k": 1e3,
    "million": 1e6,
    "mm": 1e6,
    "m": 1e6,
    "billion": 1e9,
    "bn": 1e9,
    "b": 1e9,
}

# Mass unit tokens (lower-cased, whitespace-collapsed) -> tonnes per unit
_MASS_UNITS: dict[str, float] = {
    "t": 1.0,
    "tonne": 1.0,
    "tonnes": 1.0,
    "metric tonnes": 1.0,
    "metric tons": 1.0,
    "mt": 1e6,
    "kt": 1e3,
    "ton": SHORT_TON_TONNES,
    "tons": SHORT_TON_TONNES,
    "short tons": SHORT_TON_TONNES,
    "lb": TONNES_PER_POUND,
    "lbs": TONNES_PER_POUND,
    "pound": TONNES_PER_POUND,
    "pounds": TONNES_PER_POUND,
    "mlb": 1e6 * TONNES_PER_POUND,
    "mlbs": 1e6 * TONNES_PER_POUND,
    "klb": 1e3 * TONNES_PER_POUND,
    "klbs": 1e3 * TONNES_PER_POUND,
    "oz": TONNES_PER_TROY_OUNCE,
    "ozs": TONNES_PER_TROY_OUNCE,
    "ounce": TONNES_PER_TROY_OUNCE,
    "ounces": TONNES_PER_TROY_OUNCE,
    "troy ounces": TONNES_PER_TROY_OUNCE,
    "moz": 1e6 * TONNES_PER_TROY_OUNCE,
    "koz": 1e3 * TONNES_PER_TROY_OUNCE,
}


class UnknownUnitError(ValueError):
    pass


def parse_number(raw: str) -> float:
    """Parse a number as printed in a filing ("1,070", "2.3", "80 000")."""
    cleaned = raw.replace(",", "").replace(" ", "").replace(" ", "").strip()
    return float(cleaned)


def scale_factor(word: str | None) -> float:
    """Multiplier for a magnitude word such as "million" or "bn"; 1.0 when absent."""
    if not word:
        return 1.0
    key = word.strip().lower()
    if key not in _SCALE_WORDS:
        raise UnknownUnitError(f"Unknown magnitude: {word!r}")
    return _SCALE_WORDS[key]


def usd_to_millions(value: float, scale: str | None) -> float:
    """Convert an amount with an optional magnitude word to millions of USD.

    A bare amount (no magnitude) is taken as already being in dollars.
    """
    return value * scale_factor(scale) / 1e6


def mass_to_tonnes(value: float, unit: str, scale: str | None = None) -> float:
    """Convert ``value`` expressed in ``unit`` (optionally scaled) to tonnes.

    ``unit`` may itself carry a magnitude prefix ("Mlbs", "koz", "Mt"); an
    additional ``scale`` word ("million tonnes") multiplies on top of it.
    """
    key = " ".join(unit.lower().split())
    if key not in _MASS_UNITS:
        raise UnknownUnitError(f"Unknown mass unit: {unit!r}")
    return value * scale_factor(scale) * _MASS_UNITS[key]


def ounces_to_tonnes(ounces: float) -> float:
    return ounces * TONNES_PER_TROY_OUNCE


def pounds_to_tonnes(pounds: float) -> float:
    return pounds * TONNES_PER_POUND


def canonical_grade_unit(unit: str) -> str:
    """Map a matched grade unit to one of ``%``, ``g/t``, ``oz/t``, ``ppm``."""
    key = " ".join(unit.lower().split())
    if key in {"%", "percent", "pct"} or key.endswith("%"):
        return "%"
    if key in {"g/t", "gpt", "g/tonne"} or key.startswith("gram"):
        return "g/t"
    if key in {"oz/t", "opt", "oz/ton", "oz/tonne"} or key.startswith("ounce"):
        return "oz/t"
    if key == "ppm":
        return "ppm"
    raise UnknownUnitError(f"Unknown grade unit: {unit!r}")
