"""
Storefront Router
Public endpoints called by the theme extension: bundle display, checkout-time
validation and add-to-cart. Only active/scheduled bundles inside their
schedule window are served.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from starlette.responses import JSONResponse

from schemas.bundle_schemas import BundleData, BundleStatus, BundleType, SelectedItem, money
from services.cart import build_cart_items
from services.inventory import InventoryLookup, compute_bundle_availability, get_inventory_lookup
from services.pricing import format_number, calculate_bundle_pricing, default_selection
from services.schedule import is_bundle_schedule_active
from services.storage import BundleStorage, get_bundle_storage
from services.validation import validate_checkout
from settings import SHOP_HEADER, resolve_shop_id
from routers.pricing import SelectionRequest

logger = logging.getLogger(__name__)
router = APIRouter()

STOREFRONT_STATUSES = (BundleStatus.ACTIVE.value, BundleStatus.SCHEDULED.value)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


class StorefrontUnavailable(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


async def _load_storefront_bundle(storage: BundleStorage, bundle_id: str, shop: str) -> BundleData:
    bundle = await storage.get_bundle(bundle_id, shop, statuses=STOREFRONT_STATUSES)
    if bundle is None:
        raise StorefrontUnavailable("Bundle not found")
    if not is_bundle_schedule_active(bundle):
        raise StorefrontUnavailable("Bundle not currently available")
    return bundle


def _storefront_shop(request: Request, payload: Optional[SelectionRequest] = None) -> str:
    return resolve_shop_id(
        payload.shop if payload else None,
        request.query_params.get("shop"),
        request.headers.get(SHOP_HEADER),
    )


def _volume_rule_display(bundle: BundleData) -> List[Dict[str, Any]]:
    rules = []
    for rule in bundle.volume_rules:
        data = rule.to_dict()
        data["label"] = rule.label or f"Buy {rule.min_quantity}+ get {format_number(rule.discount_value)}% off"
        rules.append(data)
    return rules


def _display_pricing(bundle: BundleData) -> Dict[str, Any]:
    display_price = bundle.price
    compare_at = bundle.compare_at_price

    if bundle.type is BundleType.FIXED:
        pricing = calculate_bundle_pricing(bundle, default_selection(bundle))
        display_price = pricing.discounted_price
        if pricing.original_price > 0:
            compare_at = pricing.original_price
    elif bundle.type is BundleType.TIERED and bundle.tiers:
        lowest = min(bundle.tiers, key=lambda t: t.price)
        display_price = lowest.price
        compare_at = lowest.compare_at_price

    savings_amount = savings_percent = None
    if display_price is not None and compare_at and display_price < compare_at:
        savings_amount = compare_at - display_price
        savings_percent = savings_amount / compare_at * 100

    return {
        "displayPrice": money(display_price) if display_price is not None else 0.0,
        "compareAtPrice": money(compare_at),
        "savingsAmount": money(savings_amount),
        "savingsPercent": float(savings_percent) if savings_percent is not None else None,
    }


@router.options("/storefront/bundle/{path:path}")
async def storefront_preflight(path: str):
    return Response(status_code=204, headers=CORS_HEADERS)


async def _storefront_payload(bundle: BundleData, lookup: InventoryLookup) -> Dict[str, Any]:
    items = default_selection(bundle)
    inventory = await lookup.get_inventory([i.variant_id for i in items if i.variant_id])
    required = [
        item for item, config in zip(items, bundle.items) if config.is_required
    ]
    availability = compute_bundle_availability(required, inventory)
    # untracked items never block display
    is_available = availability.is_available or not availability.items

    payload: Dict[str, Any] = {
        "id": bundle.id,
        "title": bundle.title,
        "description": bundle.description,
        "type": bundle.type.value if bundle.type else None,
        "minProducts": bundle.min_products,
        "maxProducts": bundle.max_products,
        "isAvailable": is_available,
        "availableQuantity": availability.available_count,
        "items": [item.to_dict() for item in bundle.items],
        **_display_pricing(bundle),
    }
    if bundle.type is BundleType.MIX_MATCH and bundle.categories:
        payload["categories"] = [c.to_dict() for c in bundle.categories]
    if bundle.type is BundleType.TIERED:
        payload["tiers"] = [t.to_dict() for t in bundle.tiers]
    if bundle.type is BundleType.VOLUME:
        payload["volumeRules"] = _volume_rule_display(bundle)
    return payload


async def _track_view(storage: BundleStorage, bundle: BundleData) -> None:
    try:
        await storage.record_view(bundle.id)
    except Exception as e:
        logger.warning(f"Failed to track view for bundle {bundle.id}: {e}")


def _display_response(content: Dict[str, Any]) -> JSONResponse:
    headers = dict(CORS_HEADERS)
    headers["Cache-Control"] = "public, max-age=60"
    return JSONResponse(content=content, headers=headers)


@router.get("/storefront/bundle/by-product/{product_id}")
async def get_storefront_bundle_by_product(
    product_id: str,
    request: Request,
    storage: BundleStorage = Depends(get_bundle_storage),
    lookup: InventoryLookup = Depends(get_inventory_lookup),
):
    """The live bundle a product page should show, if the product is in one"""
    shop = _storefront_shop(request)
    bundles = await storage.find_bundles_by_product(shop, product_id, statuses=STOREFRONT_STATUSES)
    if not bundles:
        raise HTTPException(status_code=404, detail="No bundle found for this product")

    bundle = next((b for b in bundles if is_bundle_schedule_active(b)), None)
    if bundle is None:
        raise HTTPException(status_code=404, detail="No active bundle found for this product")

    payload = await _storefront_payload(bundle, lookup)
    await _track_view(storage, bundle)
    return _display_response({"bundle": payload})


@router.get("/storefront/bundle/{bundle_id}")
async def get_storefront_bundle(
    bundle_id: str,
    request: Request,
    storage: BundleStorage = Depends(get_bundle_storage),
    lookup: InventoryLookup = Depends(get_inventory_lookup),
):
    """Display payload for the theme extension"""
    shop = _storefront_shop(request)
    try:
        bundle = await _load_storefront_bundle(storage, bundle_id, shop)
    except StorefrontUnavailable as e:
        raise HTTPException(status_code=404, detail=e.message)

    payload = await _storefront_payload(bundle, lookup)
    await _track_view(storage, bundle)
    return _display_response(payload)


async def _checkout_validation(
    bundle: BundleData, items: List[SelectedItem], payload: SelectionRequest, lookup: InventoryLookup
):
    inventory = await lookup.get_inventory([i.variant_id for i in items if i.variant_id])
    return validate_checkout(
        bundle, items, tier_id=payload.tier_id, quantity=payload.quantity, inventory=inventory
    )


@router.post("/storefront/bundle/validate")
async def validate_storefront_selection(
    payload: SelectionRequest,
    request: Request,
    storage: BundleStorage = Depends(get_bundle_storage),
    lookup: InventoryLookup = Depends(get_inventory_lookup),
):
    """Checkout-time validation; pricing is only returned for a valid selection"""
    shop = _storefront_shop(request, payload)
    try:
        bundle = await _load_storefront_bundle(storage, payload.bundle_id, shop)
    except StorefrontUnavailable as e:
        return JSONResponse(
            content={"isValid": False, "errors": [e.message], "warnings": [], "pricing": None},
            headers=CORS_HEADERS,
        )

    items = payload.selection()
    validation = await _checkout_validation(bundle, items, payload, lookup)

    pricing = None
    if validation.is_valid:
        pricing = calculate_bundle_pricing(
            bundle, items, tier_id=payload.tier_id, quantity=payload.quantity
        ).to_dict()

    return JSONResponse(
        content={
            "isValid": validation.is_valid,
            "errors": validation.messages,
            "errorDetails": [e.to_dict() for e in validation.errors],
            "warnings": validation.warnings,
            "pricing": pricing,
        },
        headers=CORS_HEADERS,
    )


@router.post("/storefront/bundle/add-to-cart")
async def add_bundle_to_cart(
    payload: SelectionRequest,
    request: Request,
    storage: BundleStorage = Depends(get_bundle_storage),
    lookup: InventoryLookup = Depends(get_inventory_lookup),
):
    """Validate the selection and build the cart lines for /cart/add.js"""
    shop = _storefront_shop(request, payload)
    try:
        bundle = await _load_storefront_bundle(storage, payload.bundle_id, shop)
    except StorefrontUnavailable as e:
        return JSONResponse(
            content={"success": False, "cartItems": [], "error": e.message}, headers=CORS_HEADERS
        )

    # Fixed bundles always ship their predefined items
    if bundle.type is BundleType.FIXED:
        items = default_selection(bundle)
    else:
        items = payload.selection()

    validation = await _checkout_validation(bundle, items, payload, lookup)
    if not validation.is_valid:
        return JSONResponse(
            content={
                "success": False,
                "cartItems": [],
                "error": ", ".join(validation.messages),
                "errorDetails": [e.to_dict() for e in validation.errors],
            },
            headers=CORS_HEADERS,
        )

    cart_items = build_cart_items(bundle, items, tier_id=payload.tier_id, quantity=payload.quantity)

    try:
        await storage.record_add_to_cart(bundle.id)
    except Exception as e:
        logger.warning(f"Failed to track add-to-cart for bundle {bundle.id}: {e}")

    logger.info(f"Bundle {bundle.id} added to cart ({len(cart_items)} lines, shop={shop})")
    return JSONResponse(content={"success": True, "cartItems": cart_items}, headers=CORS_HEADERS)
