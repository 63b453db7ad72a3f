"""
Bundle Pricing Engine
Discount application, volume-rule matching and bundle price calculation for
Fixed, Mix & Match, Volume and Tiered bundles.

Everything here is pure: the same bundle + selection always yields the same
result, nothing is read from storage and nothing raises for bad input.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from schemas.bundle_schemas import (
    AppliedDiscount,
    BundleData,
    BundleType,
    DiscountType,
    ItemPrice,
    PricingResult,
    SelectedItem,
    parse_discount_type,
    to_decimal,
)
from services.validation import validate_selection
from services.volume_rules import find_applicable_volume_rule
from settings import currency_symbol

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def format_number(value: Decimal) -> str:
    # 15 -> "15", 12.50 -> "12.5"
    return format(value.normalize(), "f")


def _format_amount(value: Decimal, currency: Optional[str] = None) -> str:
    return f"{currency_symbol(currency)}{value:.2f}"


def apply_discount(
    original_amount: Decimal,
    discount_type: Optional[DiscountType],
    discount_value: Optional[Decimal],
    item_count: Optional[int] = None,
) -> Tuple[Decimal, Optional[AppliedDiscount]]:
    """
    Apply one discount to an amount.

    Returns ``(discounted_amount, applied_discount)``. A missing or unknown
    discount type returns the original amount and no applied discount. Only
    FIXED_AMOUNT is clamped at zero.

    FIXED_PRICE_PER_ITEM needs to know how many units are being priced: with
    ``item_count`` it yields ``value * item_count``, without it the original
    amount is returned unchanged.
    """
    original = to_decimal(original_amount) or ZERO
    dtype = parse_discount_type(discount_type)
    value = to_decimal(discount_value)

    if dtype is None or value is None:
        return original, None

    if dtype is DiscountType.PERCENTAGE:
        discounted = original * (1 - value / HUNDRED)
        label = f"{format_number(value)}% off"
    elif dtype is DiscountType.FIXED_AMOUNT:
        discounted = max(ZERO, original - value)
        label = f"{_format_amount(value)} off"
    elif dtype is DiscountType.FIXED_PRICE:
        discounted = value
        label = _format_amount(value)
    elif dtype is DiscountType.FIXED_PRICE_PER_ITEM:
        discounted = value * item_count if item_count is not None else original
        label = f"{_format_amount(value)} per item"
    else:  # pragma: no cover - enum is exhaustive
        return original, None

    return discounted, AppliedDiscount(type=dtype, value=value, label=label)


def _total_units(selected_items: Sequence[SelectedItem]) -> int:
    return sum(item.quantity for item in selected_items)


def default_selection(bundle: BundleData) -> List[SelectedItem]:
    """The bundle's predefined items as a selection (Fixed bundles ship as configured)."""
    return [
        SelectedItem(
            product_id=item.product_id,
            variant_id=item.variant_id or "",
            quantity=item.quantity,
            price=item.original_price or ZERO,
        )
        for item in bundle.items
    ]


def calculate_bundle_pricing(
    bundle: BundleData,
    selected_items: Sequence[SelectedItem],
    tier_id: Optional[str] = None,
    quantity: int = 1,
) -> PricingResult:
    """
    Price a selection against a bundle.

    original price = sum(item price * item qty) * bundle quantity, then the
    bundle type decides the discounted price:

    - FIXED: bundle price * quantity, else the configured discount
    - MIX_MATCH: configured discount
    - VOLUME: discount of the rule matching the total unit count
    - TIERED: tier price * quantity (unknown/missing tier leaves the price as is)

    Per-item discounted prices are allocated proportionally to the overall
    discount ratio. Selection problems are reported through ``is_valid`` /
    ``validation_errors`` and never prevent the price computation.
    """
    item_prices: List[ItemPrice] = []
    original_price = ZERO
    for item in selected_items:
        original_price += item.price * item.quantity
        item_prices.append(
            ItemPrice(
                product_id=item.product_id,
                variant_id=item.variant_id,
                original_price=item.price,
                discounted_price=item.price,
                quantity=item.quantity,
            )
        )
    original_price *= quantity

    units = _total_units(selected_items) * quantity
    discounted_price = original_price
    applied: Optional[AppliedDiscount] = None

    if bundle.type is BundleType.FIXED:
        if bundle.price is not None:
            discounted_price = bundle.price * quantity
            applied = AppliedDiscount(
                type=DiscountType.FIXED_PRICE,
                value=bundle.price,
                label=f"Bundle price: {_format_amount(bundle.price)}",
            )
        elif bundle.has_discount:
            discounted_price, applied = apply_discount(
                original_price, bundle.discount_type, bundle.discount_value, item_count=units
            )

    elif bundle.type is BundleType.MIX_MATCH:
        if bundle.has_discount:
            discounted_price, applied = apply_discount(
                original_price, bundle.discount_type, bundle.discount_value, item_count=units
            )

    elif bundle.type is BundleType.VOLUME:
        rule = find_applicable_volume_rule(bundle.volume_rules, units)
        if rule is not None:
            discounted_price, applied = apply_discount(
                original_price, rule.discount_type, rule.discount_value, item_count=units
            )
            if applied is not None and rule.label:
                applied.label = rule.label

    elif bundle.type is BundleType.TIERED:
        tier = bundle.find_tier(tier_id)
        if tier is not None:
            discounted_price = tier.price * quantity
            applied = AppliedDiscount(
                type=DiscountType.FIXED_PRICE,
                value=tier.price,
                label=f"{tier.name}: {_format_amount(tier.price)}",
            )

    if applied is not None and original_price > 0:
        ratio = discounted_price / original_price
        for item_price in item_prices:
            item_price.discounted_price = item_price.original_price * ratio

    savings_amount = original_price - discounted_price
    savings_percent = savings_amount / original_price * HUNDRED if original_price > 0 else ZERO

    validation = validate_selection(bundle, selected_items, tier_id=tier_id, quantity=quantity)
    if not validation.is_valid:
        logger.debug(
            f"Pricing for bundle {bundle.id} computed with {len(validation.errors)} selection error(s)"
        )

    return PricingResult(
        original_price=original_price,
        discounted_price=discounted_price,
        savings_amount=savings_amount,
        savings_percent=savings_percent,
        item_prices=item_prices,
        applied_discount=applied,
        is_valid=validation.is_valid,
        validation_errors=validation.messages,
    )


def format_price(amount: Decimal, currency: Optional[str] = None) -> str:
    return _format_amount(to_decimal(amount) or ZERO, currency)


def format_savings(
    original_price: Decimal, discounted_price: Decimal, show_percent: bool = False
) -> str:
    """Savings text such as "Save €5.00" or "Save 9%"; a zero original price reports 0%."""
    original = to_decimal(original_price) or ZERO
    savings = original - (to_decimal(discounted_price) or ZERO)
    if show_percent:
        percent = savings / original * HUNDRED if original > 0 else ZERO
        return f"Save {percent:.0f}%"
    return f"Save {format_price(savings)}"
