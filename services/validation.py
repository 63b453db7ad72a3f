"""
Bundle Rule Evaluator
=====================

One set of rules, evaluated with different fidelity depending on where the
check happens:

- CONFIG:    bundle setup only (merchant saves a bundle)
- SELECTION: setup + the customer's selection (pricing preview / admin validation)
- CHECKOUT:  setup + selection + stock levels (storefront validate / add-to-cart)

Rules never short-circuit and never raise; every failed check appends one
field-tagged ``ValidationError`` to the result. Product/variant ids are always
compared through ``normalize_id``.
"""
from __future__ import annotations

import logging
from collections import OrderedDict
from enum import Enum
from typing import Callable, Dict, Mapping, Optional, Sequence

from schemas.bundle_schemas import (
    BundleCategoryData,
    BundleData,
    BundleType,
    InventoryRecord,
    SelectedItem,
    ValidationResult,
)
from services.identifiers import ids_match, normalize_id
from services.volume_rules import qualification_warning

logger = logging.getLogger(__name__)


class ValidationContext(str, Enum):
    CONFIG = "config"
    SELECTION = "selection"
    CHECKOUT = "checkout"

    @property
    def includes_selection(self) -> bool:
        return self in (ValidationContext.SELECTION, ValidationContext.CHECKOUT)

    @property
    def includes_inventory(self) -> bool:
        return self is ValidationContext.CHECKOUT


class SelectionState:
    """Selection-side inputs shared by all selection and inventory rules."""

    def __init__(
        self,
        selected_items: Sequence[SelectedItem] = (),
        tier_id: Optional[str] = None,
        quantity: int = 1,
        inventory: Optional[Mapping[str, InventoryRecord]] = None,
    ):
        self.items = list(selected_items)
        self.tier_id = tier_id
        self.quantity = quantity
        self.inventory = inventory or {}

    @property
    def total_products(self) -> int:
        return sum(item.quantity for item in self.items)


# -------------------------------------------------------------------
# Configuration rules
# -------------------------------------------------------------------

def _fixed_config(bundle: BundleData, result: ValidationResult) -> None:
    if not bundle.items:
        result.add("items", "Fixed bundles must have at least one item", "MIN_ITEMS")
    if bundle.price is None and bundle.discount_type is None:
        result.add("price", "Fixed bundles must have a price or discount", "REQUIRED")


def _mix_match_config(bundle: BundleData, result: ValidationResult) -> None:
    # category items count as available items
    if not bundle.items and not any(category.items for category in bundle.categories):
        result.add("items", "Mix & Match bundles must have available items", "MIN_ITEMS")
    if bundle.min_products is not None and bundle.max_products is not None:
        if bundle.min_products > bundle.max_products:
            result.add("minProducts", "Minimum products cannot exceed maximum", "INVALID_RANGE")


def _volume_config(bundle: BundleData, result: ValidationResult) -> None:
    if not bundle.volume_rules:
        result.add(
            "volumeRules", "Volume bundles must have at least one discount rule", "MIN_RULES"
        )


def _tiered_config(bundle: BundleData, result: ValidationResult) -> None:
    if not bundle.tiers:
        result.add("tiers", "Tiered bundles must have at least one tier", "MIN_TIERS")


_CONFIG_RULES: Dict[BundleType, Callable[[BundleData, ValidationResult], None]] = {
    BundleType.FIXED: _fixed_config,
    BundleType.MIX_MATCH: _mix_match_config,
    BundleType.VOLUME: _volume_config,
    BundleType.TIERED: _tiered_config,
}


def _check_config(bundle: BundleData, result: ValidationResult) -> None:
    if not bundle.title or not bundle.title.strip():
        result.add("title", "Title is required", "REQUIRED")
    if bundle.type is None:
        result.add("type", "Bundle type is required", "REQUIRED")
    else:
        _CONFIG_RULES[bundle.type](bundle, result)

    if bundle.start_date and bundle.end_date and bundle.start_date >= bundle.end_date:
        result.add("endDate", "End date must be after start date", "INVALID_DATE_RANGE")


# -------------------------------------------------------------------
# Selection rules
# -------------------------------------------------------------------

def _fixed_selection(bundle: BundleData, state: SelectionState, result: ValidationResult) -> None:
    for required in (item for item in bundle.items if item.is_required):
        selected = next(
            (
                s for s in state.items
                if ids_match(s.variant_id, required.variant_id)
                or ids_match(s.product_id, required.product_id)
            ),
            None,
        )
        name = required.title or required.product_id
        if selected is None:
            result.add("selectedItems", f"Required item missing: {name}", "REQUIRED_ITEM_MISSING")
        elif selected.quantity < required.quantity:
            result.add(
                "selectedItems",
                f"Insufficient quantity for {name}: need {required.quantity}, got {selected.quantity}",
                "INSUFFICIENT_QUANTITY",
            )


def _in_category(item: SelectedItem, category: BundleCategoryData) -> bool:
    for member in category.items:
        if member.variant_id:
            if ids_match(member.variant_id, item.variant_id):
                return True
        elif ids_match(member.product_id, item.product_id):
            return True
    return False


def _mix_match_selection(bundle: BundleData, state: SelectionState, result: ValidationResult) -> None:
    total = state.total_products
    if bundle.min_products and total < bundle.min_products:
        result.add("selectedItems", f"Minimum {bundle.min_products} products required", "MIN_PRODUCTS")
    if bundle.max_products and total > bundle.max_products:
        result.add("selectedItems", f"Maximum {bundle.max_products} products allowed", "MAX_PRODUCTS")

    for category in bundle.categories:
        category_total = sum(i.quantity for i in state.items if _in_category(i, category))
        if category.min_select and category_total < category.min_select:
            result.add(
                "categories",
                f"{category.name}: minimum {category.min_select} items required",
                "CATEGORY_MIN",
            )
        if category.max_select and category_total > category.max_select:
            result.add(
                "categories",
                f"{category.name}: maximum {category.max_select} items allowed",
                "CATEGORY_MAX",
            )

    if not bundle.allow_duplicates:
        counts: "OrderedDict[str, int]" = OrderedDict()
        for item in state.items:
            key = normalize_id(item.variant_id) or normalize_id(item.product_id)
            counts[key] = counts.get(key, 0) + item.quantity
        for key, count in counts.items():
            if count > 1:
                result.add("selectedItems", f"Duplicate selection not allowed: {key}", "NO_DUPLICATES")


def _volume_selection(bundle: BundleData, state: SelectionState, result: ValidationResult) -> None:
    if not state.items:
        result.add("selectedItems", "Please select items", "NO_SELECTION")
    else:
        warning = qualification_warning(bundle.volume_rules, state.total_products * state.quantity)
        if warning:
            result.warnings.append(warning)

    if bundle.apply_to_same_product:
        product_ids = {normalize_id(item.product_id) for item in state.items}
        if len(product_ids) > 1:
            result.add(
                "selectedItems",
                "Volume discount applies only to the same product",
                "SAME_PRODUCT_REQUIRED",
            )


def _tiered_selection(bundle: BundleData, state: SelectionState, result: ValidationResult) -> None:
    if not state.tier_id:
        result.add("tierId", "Please select a tier", "TIER_REQUIRED")
        return

    tier = bundle.find_tier(state.tier_id)
    if tier is None:
        result.add("tierId", "Invalid tier selected", "INVALID_TIER")
        return

    if state.total_products != tier.product_count:
        result.add(
            "selectedItems",
            f"{tier.name} requires exactly {tier.product_count} products",
            "TIER_PRODUCT_COUNT",
        )

    if tier.allowed_products:
        allowed = {normalize_id(value) for value in tier.allowed_products}
        for item in state.items:
            if normalize_id(item.product_id) not in allowed and normalize_id(item.variant_id) not in allowed:
                result.add(
                    "selectedItems",
                    f"Product not available in {tier.name} tier",
                    "PRODUCT_NOT_IN_TIER",
                )
                break


_SELECTION_RULES: Dict[BundleType, Callable[[BundleData, SelectionState, ValidationResult], None]] = {
    BundleType.FIXED: _fixed_selection,
    BundleType.MIX_MATCH: _mix_match_selection,
    BundleType.VOLUME: _volume_selection,
    BundleType.TIERED: _tiered_selection,
}


def _check_selection(bundle: BundleData, state: SelectionState, result: ValidationResult) -> None:
    if bundle.type is not None:
        _SELECTION_RULES[bundle.type](bundle, state, result)

    if state.quantity < 1:
        result.add("quantity", "Quantity must be at least 1", "MIN_QUANTITY")

    for item in state.items:
        if item.price < 0:
            result.add("selectedItems", f"Invalid price for item: {item.product_id}", "INVALID_PRICE")


# -------------------------------------------------------------------
# Inventory rules
# -------------------------------------------------------------------

def _check_inventory(state: SelectionState, result: ValidationResult) -> None:
    for item in state.items:
        key = normalize_id(item.variant_id)
        if not key:
            continue
        record = state.inventory.get(key)
        if record is None:
            continue

        title = record.title or item.product_id
        required_qty = item.quantity * state.quantity
        if not record.available_for_sale:
            result.add("selectedItems", f"{title} is not available", "NOT_AVAILABLE")
        elif record.quantity_available < required_qty:
            result.add(
                "selectedItems",
                f"Only {record.quantity_available} of {title} available",
                "INSUFFICIENT_STOCK",
            )


# -------------------------------------------------------------------
# Entry points
# -------------------------------------------------------------------

def evaluate_bundle(
    bundle: BundleData,
    context: ValidationContext,
    selected_items: Sequence[SelectedItem] = (),
    tier_id: Optional[str] = None,
    quantity: int = 1,
    inventory: Optional[Mapping[str, InventoryRecord]] = None,
) -> ValidationResult:
    """Evaluate every rule the context covers and collect all failures."""
    result = ValidationResult()
    _check_config(bundle, result)

    if context.includes_selection:
        state = SelectionState(selected_items, tier_id=tier_id, quantity=quantity, inventory=inventory)
        _check_selection(bundle, state, result)
        if context.includes_inventory:
            _check_inventory(state, result)

    if result.errors:
        logger.debug(
            f"Bundle {bundle.id} failed {context.value} validation: "
            f"{[e.code for e in result.errors]}"
        )
    return result


def validate_bundle_config(bundle: BundleData) -> ValidationResult:
    return evaluate_bundle(bundle, ValidationContext.CONFIG)


def validate_selection(
    bundle: BundleData,
    selected_items: Sequence[SelectedItem],
    tier_id: Optional[str] = None,
    quantity: int = 1,
) -> ValidationResult:
    return evaluate_bundle(
        bundle, ValidationContext.SELECTION, selected_items, tier_id=tier_id, quantity=quantity
    )


def validate_checkout(
    bundle: BundleData,
    selected_items: Sequence[SelectedItem],
    tier_id: Optional[str] = None,
    quantity: int = 1,
    inventory: Optional[Mapping[str, InventoryRecord]] = None,
) -> ValidationResult:
    return evaluate_bundle(
        bundle,
        ValidationContext.CHECKOUT,
        selected_items,
        tier_id=tier_id,
        quantity=quantity,
        inventory=inventory,
    )
