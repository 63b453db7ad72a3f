import sys
from decimal import Decimal
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from schemas.bundle_schemas import (
    BundleData,
    BundleItemData,
    BundleTierData,
    BundleType,
    DiscountType,
    SelectedItem,
    VolumeRuleData,
)
from services.pricing import (
    apply_discount,
    calculate_bundle_pricing,
    default_selection,
    find_applicable_volume_rule,
    format_price,
    format_savings,
)
from services.volume_rules import find_applicable_volume_rule as shared_find_applicable_volume_rule
from services.volume_rules import qualification_warning


def _items(*pairs):
    return [
        SelectedItem(product_id=f"p{i}", variant_id=f"v{i}", quantity=qty, price=price)
        for i, (price, qty) in enumerate(pairs, start=1)
    ]


def _fixed_bundle(price=None, **kwargs):
    return BundleData(
        title="Starter kit",
        type=BundleType.FIXED,
        price=price,
        items=[
            BundleItemData(product_id="p1", variant_id="v1", title="Shampoo", original_price=30),
            BundleItemData(product_id="p2", variant_id="v2", title="Conditioner", original_price=25),
        ],
        **kwargs,
    )


def _volume_rules():
    return [
        VolumeRuleData(min_quantity=1, max_quantity=2, discount_type="percentage", discount_value=0),
        VolumeRuleData(min_quantity=3, max_quantity=5, discount_type="percentage", discount_value=10),
        VolumeRuleData(min_quantity=6, max_quantity=None, discount_type="percentage", discount_value=20),
    ]


# ---------------------------------------------------------------------------
# apply_discount
# ---------------------------------------------------------------------------

def test_percentage_discount_formula_and_label():
    discounted, applied = apply_discount(Decimal("80"), DiscountType.PERCENTAGE, Decimal("15"))

    assert discounted == Decimal("80") * (1 - Decimal("15") / 100)
    assert applied.type is DiscountType.PERCENTAGE
    assert applied.label == "15% off"


@pytest.mark.parametrize("value, expected", [(0, Decimal("42.50")), (100, Decimal("0"))])
def test_percentage_discount_bounds(value, expected):
    discounted, _ = apply_discount(Decimal("42.50"), DiscountType.PERCENTAGE, Decimal(value))
    assert discounted == expected


def test_fixed_amount_discount_is_clamped_at_zero():
    discounted, applied = apply_discount(Decimal("10"), DiscountType.FIXED_AMOUNT, Decimal("25"))

    assert discounted == Decimal("0")
    assert applied.label == "€25.00 off"


def test_fixed_price_ignores_original_amount():
    discounted, applied = apply_discount(Decimal("99"), "fixed_price", Decimal("49.90"))

    assert discounted == Decimal("49.90")
    assert applied.label == "€49.90"


def test_fixed_price_per_item_needs_item_count():
    unchanged, applied = apply_discount(Decimal("60"), DiscountType.FIXED_PRICE_PER_ITEM, Decimal("8"))
    assert unchanged == Decimal("60")
    assert applied.label == "€8.00 per item"

    per_item, _ = apply_discount(
        Decimal("60"), DiscountType.FIXED_PRICE_PER_ITEM, Decimal("8"), item_count=3
    )
    assert per_item == Decimal("24")


@pytest.mark.parametrize("discount_type", [None, "", "bogus"])
def test_missing_or_unknown_discount_type_returns_original(discount_type):
    discounted, applied = apply_discount(Decimal("12"), discount_type, Decimal("5"))

    assert discounted == Decimal("12")
    assert applied is None


# ---------------------------------------------------------------------------
# find_applicable_volume_rule
# ---------------------------------------------------------------------------

def test_highest_qualifying_rule_wins_on_overlap():
    rules = [
        VolumeRuleData(min_quantity=3, max_quantity=5, discount_type="percentage", discount_value=10),
        VolumeRuleData(min_quantity=6, max_quantity=None, discount_type="percentage", discount_value=20),
    ]

    rule = find_applicable_volume_rule(rules, 6)

    assert rule.discount_value == Decimal("20")


def test_no_rule_for_quantity_in_gap():
    rules = [
        VolumeRuleData(min_quantity=1, max_quantity=2, discount_type="percentage", discount_value=5),
        VolumeRuleData(min_quantity=5, max_quantity=None, discount_type="percentage", discount_value=15),
    ]

    assert find_applicable_volume_rule(rules, 3) is None
    assert find_applicable_volume_rule(rules, 0) is None
    assert find_applicable_volume_rule([], 10) is None


# ---------------------------------------------------------------------------
# calculate_bundle_pricing
# ---------------------------------------------------------------------------

def test_fixed_bundle_price_scenario():
    bundle = _fixed_bundle(price=50)

    result = calculate_bundle_pricing(bundle, _items((30, 1), (25, 1)))

    assert result.original_price == Decimal("55")
    assert result.discounted_price == Decimal("50")
    assert result.savings_amount == Decimal("5")
    assert float(result.savings_percent) == pytest.approx(9.0909, abs=1e-3)
    assert result.applied_discount.label == "Bundle price: €50.00"
    assert result.is_valid
    assert result.validation_errors == []


def test_fixed_bundle_price_ignores_item_prices_and_scales_with_quantity():
    bundle = _fixed_bundle(price=50)

    result = calculate_bundle_pricing(bundle, _items((300, 1), (1, 1)), quantity=2)

    assert result.discounted_price == Decimal("100")
    assert result.original_price == Decimal("602")


def test_fixed_bundle_without_price_uses_configured_discount():
    bundle = _fixed_bundle(discount_type="percentage", discount_value=10)

    result = calculate_bundle_pricing(bundle, _items((30, 1), (25, 1)))

    assert result.discounted_price == Decimal("55") * (1 - Decimal("10") / 100)
    assert result.applied_discount.label == "10% off"


def test_fixed_bundle_without_price_or_discount_keeps_original():
    bundle = _fixed_bundle()

    result = calculate_bundle_pricing(bundle, _items((30, 1), (25, 1)))

    assert result.discounted_price == result.original_price == Decimal("55")
    assert result.applied_discount is None
    assert result.savings_percent == 0


def test_item_prices_are_allocated_proportionally():
    bundle = _fixed_bundle(price=50)

    result = calculate_bundle_pricing(bundle, _items((30, 1), (25, 1)))

    ratio = Decimal("50") / Decimal("55")
    assert result.item_prices[0].discounted_price == Decimal("30") * ratio
    assert result.item_prices[1].discounted_price == Decimal("25") * ratio
    assert result.item_prices[0].original_price == Decimal("30")


def test_mix_match_below_minimum_still_prices():
    bundle = BundleData(
        title="Pick 3-5",
        type=BundleType.MIX_MATCH,
        min_products=3,
        max_products=5,
        discount_type="percentage",
        discount_value=15,
        items=[BundleItemData(product_id="p1"), BundleItemData(product_id="p2")],
    )

    result = calculate_bundle_pricing(bundle, _items((10, 1), (20, 1)))

    assert not result.is_valid
    assert "Minimum 3 products required" in result.validation_errors
    assert result.original_price == Decimal("30")
    assert result.discounted_price == Decimal("30") * (1 - Decimal("15") / 100)


def test_mix_match_above_maximum_reports_error():
    bundle = BundleData(
        title="Pick up to 2",
        type=BundleType.MIX_MATCH,
        max_products=2,
        items=[BundleItemData(product_id="p1")],
    )

    result = calculate_bundle_pricing(bundle, _items((5, 2), (5, 1)))

    assert result.validation_errors == ["Maximum 2 products allowed"]


def test_mix_match_fixed_price_per_item():
    bundle = BundleData(
        title="Any 3 for 8 each",
        type=BundleType.MIX_MATCH,
        discount_type=DiscountType.FIXED_PRICE_PER_ITEM,
        discount_value=8,
        items=[BundleItemData(product_id="p1")],
    )

    result = calculate_bundle_pricing(bundle, _items((10, 2), (12, 1)), quantity=2)

    assert result.original_price == Decimal("64")
    assert result.discounted_price == Decimal("48")


def test_volume_scenario_applies_middle_rule():
    bundle = BundleData(title="Buy more", type=BundleType.VOLUME, volume_rules=_volume_rules())

    result = calculate_bundle_pricing(bundle, _items((12.5, 4)))

    assert result.original_price == Decimal("50.0")
    assert result.discounted_price == result.original_price * (1 - Decimal("10") / 100)
    assert result.applied_discount.label == "10% off"
    assert result.is_valid


def test_volume_rule_counts_bundle_quantity():
    bundle = BundleData(title="Buy more", type=BundleType.VOLUME, volume_rules=_volume_rules())

    result = calculate_bundle_pricing(bundle, _items((10, 3)), quantity=2)

    # 3 units x 2 bundles = 6 -> 20% rule
    assert result.discounted_price == Decimal("60") * (1 - Decimal("20") / 100)


def test_volume_rule_label_overrides_generated_label():
    rules = [
        VolumeRuleData(
            min_quantity=2, discount_type="fixed_amount", discount_value=5, label="Buy 2, save 5"
        )
    ]
    bundle = BundleData(title="Pair deal", type=BundleType.VOLUME, volume_rules=rules)

    result = calculate_bundle_pricing(bundle, _items((10, 2)))

    assert result.applied_discount.label == "Buy 2, save 5"
    assert result.discounted_price == Decimal("15")


def test_volume_without_matching_rule_has_no_discount():
    rules = [VolumeRuleData(min_quantity=5, discount_type="percentage", discount_value=10)]
    bundle = BundleData(title="Bulk", type=BundleType.VOLUME, volume_rules=rules)

    result = calculate_bundle_pricing(bundle, _items((10, 2)))

    assert result.discounted_price == Decimal("20")
    assert result.applied_discount is None
    assert result.is_valid


def _tiered_bundle():
    return BundleData(
        title="Build your box",
        type=BundleType.TIERED,
        tiers=[
            BundleTierData(id="t1", name="Small box", price=65, product_count=3),
            BundleTierData(id="t2", name="Large box", price=110, product_count=6),
        ],
    )


def test_tiered_scenario_uses_tier_price():
    result = calculate_bundle_pricing(_tiered_bundle(), _items((25, 1), (25, 1), (30, 1)), tier_id="t1")

    assert result.is_valid
    assert result.discounted_price == Decimal("65")
    assert result.original_price == Decimal("80")
    assert result.applied_discount.label == "Small box: €65.00"


def test_tiered_unknown_tier_falls_back_to_original_price():
    result = calculate_bundle_pricing(_tiered_bundle(), _items((25, 3)), tier_id="nope")

    assert not result.is_valid
    assert "Invalid tier selected" in result.validation_errors
    assert result.discounted_price == result.original_price == Decimal("75")
    assert result.applied_discount is None


def test_tiered_without_tier_requires_selection():
    result = calculate_bundle_pricing(_tiered_bundle(), _items((25, 3)))

    assert result.validation_errors == ["Please select a tier"]


def test_tiered_count_mismatch_still_returns_tier_price():
    result = calculate_bundle_pricing(_tiered_bundle(), _items((25, 2)), tier_id="t1")

    assert not result.is_valid
    assert result.validation_errors == ["Small box requires exactly 3 products"]
    assert result.discounted_price == Decimal("65")


def test_zero_original_price_reports_zero_percent():
    bundle = BundleData(
        title="Freebies",
        type=BundleType.MIX_MATCH,
        discount_type="percentage",
        discount_value=50,
        items=[BundleItemData(product_id="p1")],
    )

    result = calculate_bundle_pricing(bundle, _items((0, 2)))

    assert result.original_price == 0
    assert result.savings_percent == 0


def test_pricing_is_deterministic():
    bundle = _fixed_bundle(price=50)
    items = _items((30, 1), (25, 1))

    assert calculate_bundle_pricing(bundle, items) == calculate_bundle_pricing(bundle, items)


def test_pricing_result_to_dict_uses_camel_case_floats():
    data = calculate_bundle_pricing(_fixed_bundle(price=50), _items((30, 1), (25, 1))).to_dict()

    assert data["originalPrice"] == 55.0
    assert data["discountedPrice"] == 50.0
    assert data["appliedDiscount"] == {"type": "fixed_price", "value": 50.0, "label": "Bundle price: €50.00"}
    assert data["itemPrices"][0]["productId"] == "p1"
    assert data["isValid"] is True


def test_default_selection_uses_stored_prices():
    bundle = _fixed_bundle(price=50)
    bundle.items.append(BundleItemData(product_id="p3", quantity=2))

    selection = default_selection(bundle)

    assert [s.price for s in selection] == [Decimal("30"), Decimal("25"), Decimal("0")]
    assert selection[2].quantity == 2
    assert selection[2].variant_id == ""


# ---------------------------------------------------------------------------
# formatting
# ---------------------------------------------------------------------------

def test_format_price():
    assert format_price(Decimal("5")) == "€5.00"
    assert format_price(Decimal("12.346"), currency="USD") == "$12.35"


def test_format_savings():
    assert format_savings(Decimal("55"), Decimal("50")) == "Save €5.00"
    assert format_savings(Decimal("55"), Decimal("50"), show_percent=True) == "Save 9%"
    assert format_savings(Decimal("0"), Decimal("0"), show_percent=True) == "Save 0%"


def test_volume_rule_matching_is_shared_with_selection_rules():
    assert find_applicable_volume_rule is shared_find_applicable_volume_rule


def test_qualification_warning():
    rules = [
        VolumeRuleData(min_quantity=3, max_quantity=5, discount_type="percentage", discount_value=10),
        VolumeRuleData(min_quantity=10, discount_type="percentage", discount_value=20),
    ]

    assert qualification_warning(rules, 1) == "Add 2 more to qualify for a discount"
    assert qualification_warning(rules, 7) == "Current quantity (7) does not qualify for any discount"
    assert qualification_warning(rules, 4) is None
    assert qualification_warning([], 1) is None
