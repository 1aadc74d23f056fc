"""
PharaohVault — Pricing & Accumulation Service
Projects the customer-facing cost of a subscription's target weight and
reports progress of the accumulated value against it.
"""
import math
from dataclasses import dataclass
from typing import Optional

from app.core.config import settings
from app.models.enums import Metal, WeightUnit
from app.utils.units import convert_weight, trade_unit_for


@dataclass
class AccumulationProjection:
    """Target cost and progress for one subscription."""
    target_value: float
    accumulated_value: float
    progress_percent: float
    trade_unit: WeightUnit
    normalized_target_weight: float
    months_to_target: int = 0


def premium_for(trade_unit) -> float:
    """Retail markup over spot for the given trade unit."""
    if WeightUnit(trade_unit) == WeightUnit.g:
        return settings.GOLD_PREMIUM
    return settings.SILVER_PREMIUM


def price_per_unit(spot_price: float, price_unit, to_unit) -> float:
    """Re-express a per-`price_unit` price as a per-`to_unit` price."""
    return spot_price * convert_weight(1.0, to_unit, price_unit)


def projected_target(
    metal,
    spot_price: float,
    target_weight: float,
    target_unit,
    price_unit: Optional[WeightUnit] = None,
) -> float:
    """Target cost in USD of `target_weight` at `spot_price` plus the retail premium.

    `spot_price` is quoted per `price_unit`; when `price_unit` is omitted the
    price is taken to be quoted per the metal's trade unit already. A missing
    or non-positive spot price means the price is unavailable and yields 0.
    """
    if not spot_price or spot_price <= 0:
        return 0.0

    trade_unit = trade_unit_for(metal)
    stored_unit = target_unit or trade_unit
    normalized_weight = convert_weight(target_weight or 0.0, stored_unit, trade_unit)

    price = spot_price
    if price_unit is not None:
        price = price_per_unit(spot_price, price_unit, trade_unit)

    return normalized_weight * price * premium_for(trade_unit)


def progress_percent(accumulated_value: float, target_value: float) -> float:
    """Accumulated value as a percentage of target, clamped to [0, 100]."""
    if not target_value or target_value <= 0:
        return 0.0
    percent = ((accumulated_value or 0.0) / target_value) * 100
    return max(0.0, min(100.0, percent))


def project_subscription(subscription, spot_price_per_oz: Optional[float]) -> AccumulationProjection:
    """Build the projection for a subscription from a per-troy-ounce spot price."""
    metal = Metal(subscription.metal)
    trade_unit = trade_unit_for(metal)
    target_value = projected_target(
        metal,
        spot_price_per_oz or 0.0,
        subscription.target_weight,
        subscription.target_unit,
        price_unit=WeightUnit.oz,
    )
    accumulated = subscription.accumulated_value or 0.0
    return AccumulationProjection(
        target_value=round(target_value, 2),
        accumulated_value=round(accumulated, 2),
        progress_percent=round(progress_percent(accumulated, target_value), 1),
        trade_unit=trade_unit,
        normalized_target_weight=convert_weight(
            subscription.target_weight or 0.0, subscription.target_unit or trade_unit, trade_unit
        ),
        months_to_target=estimate_months_to_target(
            target_value, accumulated, subscription.monthly_investment or 0.0
        ),
    )


def estimate_months_to_target(target_value: float, accumulated_value: float, monthly_investment: float) -> int:
    """Whole monthly contributions still needed to reach `target_value`."""
    remaining = (target_value or 0.0) - (accumulated_value or 0.0)
    if remaining <= 0 or not monthly_investment or monthly_investment <= 0:
        return 0
    return math.ceil(round(remaining / monthly_investment, 9))
