import pytest

from app.models.enums import Metal, SubscriptionStatus, WeightUnit
from app.models.subscription import Subscription
from app.services.pricing import (
    estimate_months_to_target,
    price_per_unit,
    progress_percent,
    project_subscription,
    projected_target,
)
from app.utils.units import GRAMS_PER_TROY_OUNCE


def test_gold_premium_scenario():
    # $70/g, 10 g, 1.26 premium
    assert projected_target(Metal.gold, 70.0, 10.0, WeightUnit.g) == pytest.approx(882.0)


def test_silver_premium_uses_ounce_markup():
    assert projected_target(Metal.silver, 25.0, 4.0, WeightUnit.oz) == pytest.approx(4 * 25 * 1.15)


def test_target_weight_is_normalized_to_trade_unit():
    # 1 oz of gold priced per gram
    value = projected_target(Metal.gold, 70.0, 1.0, WeightUnit.oz)
    assert value == pytest.approx(GRAMS_PER_TROY_OUNCE * 70.0 * 1.26)


def test_price_quoted_per_ounce_is_converted():
    per_oz = 70.0 * GRAMS_PER_TROY_OUNCE
    value = projected_target(Metal.gold, per_oz, 10.0, WeightUnit.g, price_unit=WeightUnit.oz)
    assert value == pytest.approx(882.0)


@pytest.mark.parametrize("spot", [0, -5.0, None])
def test_unavailable_price_yields_zero(spot):
    assert projected_target(Metal.gold, spot, 10.0, WeightUnit.g) == 0.0


def test_target_value_increases_with_weight():
    values = [projected_target(Metal.silver, 30.0, w, WeightUnit.oz) for w in (0.5, 1, 2, 10, 100)]
    assert values == sorted(values)
    assert len(set(values)) == len(values)


def test_price_per_unit():
    assert price_per_unit(GRAMS_PER_TROY_OUNCE, WeightUnit.oz, WeightUnit.g) == pytest.approx(1.0)


def test_progress_clamped_to_hundred():
    assert progress_percent(1000.0, 882.0) == 100.0


def test_progress_zero_target_is_zero():
    assert progress_percent(50.0, 0.0) == 0.0
    assert progress_percent(50.0, -1.0) == 0.0


def test_progress_partial():
    assert progress_percent(441.0, 882.0) == pytest.approx(50.0)


def test_project_subscription_from_ounce_price():
    subscription = Subscription(
        id=1,
        metal=Metal.gold,
        target_weight=10.0,
        target_unit=WeightUnit.g,
        accumulated_value=441.0,
        monthly_investment=100.0,
        status=SubscriptionStatus.active,
    )
    projection = project_subscription(subscription, 70.0 * GRAMS_PER_TROY_OUNCE)
    assert projection.target_value == 882.0
    assert projection.progress_percent == 50.0
    assert projection.trade_unit == WeightUnit.g
    assert projection.normalized_target_weight == 10.0
    assert projection.months_to_target == 5


def test_project_subscription_without_price():
    subscription = Subscription(metal=Metal.silver, target_weight=5.0, target_unit=WeightUnit.oz, accumulated_value=20.0)
    projection = project_subscription(subscription, None)
    assert projection.target_value == 0.0
    assert projection.progress_percent == 0.0


def test_months_to_target_rounds_up():
    assert estimate_months_to_target(882.0, 100.0, 100.0) == 8
    assert estimate_months_to_target(882.0, 82.0, 100.0) == 8


def test_months_to_target_when_reached_or_unpriced():
    assert estimate_months_to_target(882.0, 900.0, 100.0) == 0
    assert estimate_months_to_target(0.0, 0.0, 100.0) == 0
    assert estimate_months_to_target(882.0, 0.0, 0.0) == 0
