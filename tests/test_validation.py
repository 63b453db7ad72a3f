import sys
from datetime import datetime, timezone
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from schemas.bundle_schemas import (
    BundleCategoryData,
    BundleData,
    BundleItemData,
    BundleTierData,
    BundleType,
    InventoryRecord,
    SelectedItem,
    VolumeRuleData,
)
from services.validation import (
    ValidationContext,
    evaluate_bundle,
    validate_bundle_config,
    validate_checkout,
    validate_selection,
)


def _codes(result):
    return [e.code for e in result.errors]


def _sel(product_id, variant_id="", quantity=1, price=10):
    return SelectedItem(product_id=product_id, variant_id=variant_id, quantity=quantity, price=price)


# ---------------------------------------------------------------------------
# configuration rules
# ---------------------------------------------------------------------------

def test_missing_title_and_type_are_both_reported():
    result = validate_bundle_config(BundleData(title="   "))

    assert not result.is_valid
    assert [(e.field, e.code) for e in result.errors] == [("title", "REQUIRED"), ("type", "REQUIRED")]


def test_fixed_bundle_needs_items_and_price_or_discount():
    result = validate_bundle_config(BundleData(title="Kit", type=BundleType.FIXED))

    assert _codes(result) == ["MIN_ITEMS", "REQUIRED"]
    assert result.errors[1].field == "price"


def test_fixed_bundle_with_discount_only_is_valid():
    bundle = BundleData(
        title="Kit",
        type="FIXED",
        discount_type="percentage",
        discount_value=10,
        items=[BundleItemData(product_id="1")],
    )

    assert validate_bundle_config(bundle).is_valid


def test_mix_match_range_and_items():
    bundle = BundleData(title="Pick", type=BundleType.MIX_MATCH, min_products=5, max_products=3)

    result = validate_bundle_config(bundle)

    assert _codes(result) == ["MIN_ITEMS", "INVALID_RANGE"]
    assert result.errors[1].field == "minProducts"


def test_mix_match_category_items_count_as_items():
    bundle = BundleData(
        title="Pick",
        type=BundleType.MIX_MATCH,
        categories=[BundleCategoryData(name="Tops", items=[BundleItemData(product_id="1")])],
    )

    assert validate_bundle_config(bundle).is_valid


def test_volume_and_tiered_need_rules_and_tiers():
    assert _codes(validate_bundle_config(BundleData(title="V", type=BundleType.VOLUME))) == ["MIN_RULES"]
    assert _codes(validate_bundle_config(BundleData(title="T", type=BundleType.TIERED))) == ["MIN_TIERS"]


def test_start_date_must_precede_end_date():
    same = datetime(2026, 3, 1, tzinfo=timezone.utc)
    bundle = BundleData(
        title="Spring",
        type=BundleType.VOLUME,
        volume_rules=[VolumeRuleData(min_quantity=2, discount_type="percentage", discount_value=5)],
        start_date=same,
        end_date=same,
    )

    result = validate_bundle_config(bundle)

    assert _codes(result) == ["INVALID_DATE_RANGE"]
    assert result.errors[0].field == "endDate"


def test_config_context_ignores_selection():
    bundle = BundleData(title="T", type=BundleType.TIERED, tiers=[BundleTierData(id="t1", name="S", price=10, product_count=2)])

    result = evaluate_bundle(bundle, ValidationContext.CONFIG, selected_items=[_sel("1")], tier_id="missing")

    assert result.is_valid


def test_selection_context_includes_config_rules():
    result = validate_selection(BundleData(title="", type=BundleType.VOLUME), [])

    assert _codes(result) == ["REQUIRED", "MIN_RULES", "NO_SELECTION"]


# ---------------------------------------------------------------------------
# selection rules
# ---------------------------------------------------------------------------

def _fixed():
    return BundleData(
        title="Kit",
        type=BundleType.FIXED,
        price=40,
        items=[
            BundleItemData(product_id="gid://shopify/Product/1", variant_id="gid://shopify/ProductVariant/11", title="Soap", quantity=2),
            BundleItemData(product_id="2", variant_id="22", title="Towel"),
            BundleItemData(product_id="3", title="Gift card", is_required=False),
        ],
    )


def test_fixed_required_items_match_across_id_formats():
    result = validate_selection(_fixed(), [_sel("1", "11", quantity=2), _sel("gid://shopify/Product/2", "gid://shopify/ProductVariant/22")])

    assert result.is_valid


def test_fixed_missing_and_short_items():
    result = validate_selection(_fixed(), [_sel("1", "11", quantity=1)])

    assert _codes(result) == ["INSUFFICIENT_QUANTITY", "REQUIRED_ITEM_MISSING"]
    assert result.messages[0] == "Insufficient quantity for Soap: need 2, got 1"
    assert result.messages[1] == "Required item missing: Towel"


def _mix_match(**kwargs):
    return BundleData(
        title="Outfit",
        type=BundleType.MIX_MATCH,
        categories=[
            BundleCategoryData(
                name="Tops",
                min_select=1,
                max_select=2,
                items=[
                    BundleItemData(product_id="10", variant_id="101"),
                    BundleItemData(product_id="11"),
                ],
            ),
            BundleCategoryData(
                name="Shoes",
                min_select=1,
                items=[BundleItemData(product_id="20", variant_id="201")],
            ),
        ],
        **kwargs,
    )


def test_mix_match_category_membership_uses_normalized_ids():
    items = [
        _sel("10", "gid://shopify/ProductVariant/101"),
        _sel("gid://shopify/Product/11", "999"),
        _sel("20", "201"),
    ]

    assert validate_selection(_mix_match(), items).is_valid


def test_mix_match_category_bounds():
    items = [_sel("10", "101"), _sel("11", "111"), _sel("11", "112")]

    result = validate_selection(_mix_match(), items)

    assert _codes(result) == ["CATEGORY_MAX", "CATEGORY_MIN"]
    assert result.messages == ["Tops: maximum 2 items allowed", "Shoes: minimum 1 items required"]


def test_mix_match_product_bounds_are_inclusive():
    bundle = _mix_match(min_products=2, max_products=3)

    assert validate_selection(bundle, [_sel("10", "101"), _sel("20", "201")]).is_valid
    result = validate_selection(bundle, [_sel("10", "101"), _sel("20", "201", quantity=3)])
    assert _codes(result) == ["MAX_PRODUCTS"]


def test_mix_match_duplicates_when_not_allowed():
    bundle = _mix_match(allow_duplicates=False)
    items = [
        _sel("10", "101"),
        _sel("10", "gid://shopify/ProductVariant/101"),
        _sel("20", "201"),
    ]

    result = validate_selection(bundle, items)

    assert "NO_DUPLICATES" in _codes(result)
    assert validate_selection(bundle, [_sel("10", "101"), _sel("20", "201")]).is_valid


def _volume(**kwargs):
    return BundleData(
        title="Bulk",
        type=BundleType.VOLUME,
        volume_rules=[
            VolumeRuleData(min_quantity=3, max_quantity=5, discount_type="percentage", discount_value=10),
            VolumeRuleData(min_quantity=10, discount_type="percentage", discount_value=20),
        ],
        **kwargs,
    )


def test_volume_requires_selection():
    assert _codes(validate_selection(_volume(), [])) == ["NO_SELECTION"]


def test_volume_warnings_do_not_invalidate():
    below = validate_selection(_volume(), [_sel("1", "1", quantity=1)])
    assert below.is_valid
    assert below.warnings == ["Add 2 more to qualify for a discount"]

    gap = validate_selection(_volume(), [_sel("1", "1", quantity=7)])
    assert gap.warnings == ["Current quantity (7) does not qualify for any discount"]

    assert validate_selection(_volume(), [_sel("1", "1", quantity=4)]).warnings == []


def test_volume_same_product_constraint():
    bundle = _volume(apply_to_same_product=True)

    same = [_sel("gid://shopify/Product/1", "a", quantity=2), _sel("1", "b", quantity=2)]
    assert validate_selection(bundle, same).is_valid

    mixed = [_sel("1", "a", quantity=2), _sel("2", "b", quantity=2)]
    assert _codes(validate_selection(bundle, mixed)) == ["SAME_PRODUCT_REQUIRED"]


def _tiered():
    return BundleData(
        title="Box",
        type=BundleType.TIERED,
        tiers=[
            BundleTierData(id="t1", name="Small", price=30, product_count=2, allowed_products=["1", "gid://shopify/ProductVariant/22"]),
            BundleTierData(id="t2", name="Large", price=50, product_count=4),
        ],
    )


def test_tiered_tier_selection_errors():
    assert _codes(validate_selection(_tiered(), [_sel("1")])) == ["TIER_REQUIRED"]
    assert _codes(validate_selection(_tiered(), [_sel("1")], tier_id="t9")) == ["INVALID_TIER"]


def test_tiered_allowed_products_by_product_or_variant():
    ok = [_sel("gid://shopify/Product/1"), _sel("2", "22")]
    assert validate_selection(_tiered(), ok, tier_id="t1").is_valid

    blocked = [_sel("3", "33"), _sel("4", "44")]
    result = validate_selection(_tiered(), blocked, tier_id="t1")
    assert _codes(result) == ["PRODUCT_NOT_IN_TIER"]
    assert result.messages == ["Product not available in Small tier"]


def test_tiered_exact_count():
    result = validate_selection(_tiered(), [_sel("1", quantity=3)], tier_id="t2")

    assert _codes(result) == ["TIER_PRODUCT_COUNT"]
    assert result.messages == ["Large requires exactly 4 products"]


def test_quantity_and_price_checks_apply_to_every_type():
    result = validate_selection(_volume(), [_sel("1", "1", quantity=3, price=-1)], quantity=0)

    assert "MIN_QUANTITY" in _codes(result)
    assert "INVALID_PRICE" in _codes(result)


# ---------------------------------------------------------------------------
# inventory rules
# ---------------------------------------------------------------------------

def test_checkout_reports_stock_problems():
    inventory = {
        "1": InventoryRecord(variant_id="1", available_for_sale=False, title="Mug"),
        "2": InventoryRecord(variant_id="2", quantity_available=3, title="Tea"),
    }
    items = [
        _sel("10", "gid://shopify/ProductVariant/1", quantity=2),
        _sel("20", "2", quantity=2),
        _sel("30", "3", quantity=2),
    ]

    result = validate_checkout(_volume(), items, quantity=2, inventory=inventory)

    assert _codes(result) == ["NOT_AVAILABLE", "INSUFFICIENT_STOCK"]
    assert result.messages == ["Mug is not available", "Only 3 of Tea available"]


def test_checkout_with_enough_stock_is_valid():
    inventory = {"2": InventoryRecord(variant_id="2", quantity_available=4)}

    result = validate_checkout(_volume(), [_sel("20", "2", quantity=2)], quantity=2, inventory=inventory)

    assert result.is_valid


def test_selection_context_skips_inventory():
    inventory = {"2": InventoryRecord(variant_id="2", available_for_sale=False)}

    result = evaluate_bundle(
        _volume(), ValidationContext.SELECTION, [_sel("20", "2", quantity=3)], inventory=inventory
    )

    assert result.is_valid


def test_result_to_dict_shape():
    data = validate_selection(_tiered(), [_sel("1")]).to_dict()

    assert data == {
        "isValid": False,
        "errors": [{"field": "tierId", "message": "Please select a tier", "code": "TIER_REQUIRED"}],
        "warnings": [],
    }


# ---------------------------------------------------------------------------
# payload flags
# ---------------------------------------------------------------------------

def test_string_flags_in_payload_are_parsed():
    bundle = BundleData.from_dict(
        {
            "title": "Outfit",
            "type": "MIX_MATCH",
            "allowDuplicates": "false",
            "applyToSameProduct": "true",
            "items": [
                {"productId": "1", "isRequired": "false"},
                {"productId": "2", "isRequired": "No"},
                {"productId": "3"},
            ],
        }
    )

    assert bundle.allow_duplicates is False
    assert bundle.apply_to_same_product is True
    assert [i.is_required for i in bundle.items] == [False, False, True]
    assert BundleData.from_dict({"title": "Kit", "allowDuplicates": "maybe"}).allow_duplicates is True


def test_disabled_duplicates_from_string_flag_are_enforced():
    bundle = BundleData.from_dict(
        {
            "title": "Outfit",
            "type": "MIX_MATCH",
            "allowDuplicates": "false",
            "categories": [{"name": "Tops", "items": [{"productId": "10", "variantId": "101"}]}],
        }
    )

    result = validate_selection(bundle, [_sel("10", "101"), _sel("10", "101")])

    assert "NO_DUPLICATES" in _codes(result)
