"""
PharaohVault — Weight Unit Utility
Gram / troy-ounce conversion and the per-metal trade unit convention.
"""

from app.models.enums import Metal, WeightUnit

GRAMS_PER_TROY_OUNCE = 31.1035

# Gold is priced and traded by the gram, silver by the troy ounce.
TRADE_UNITS = {
    Metal.gold: WeightUnit.g,
    Metal.silver: WeightUnit.oz,
}


def convert_weight(weight: float, from_unit, to_unit) -> float:
    """Convert `weight` between grams and troy ounces.

    Unknown unit pairs return the weight unchanged rather than raising.
    """
    if from_unit == to_unit:
        return weight
    if from_unit == WeightUnit.g and to_unit == WeightUnit.oz:
        return weight / GRAMS_PER_TROY_OUNCE
    if from_unit == WeightUnit.oz and to_unit == WeightUnit.g:
        return weight * GRAMS_PER_TROY_OUNCE
    return weight


def trade_unit_for(metal) -> WeightUnit:
    return TRADE_UNITS[Metal(metal)]


def format_weight(weight: float, unit) -> str:
    """Format a weight for display, e.g. `1.25 oz`."""
    return f"{round(weight or 0.0, 4):g} {WeightUnit(unit).value}"
