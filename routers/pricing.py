"""
Pricing Router
Admin pricing preview and selection validation for a stored bundle.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from schemas.bundle_schemas import BundleData, SelectedItem
from services.pricing import calculate_bundle_pricing, default_selection
from services.storage import BundleStorage, get_bundle_storage
from services.validation import validate_selection
from routers.bundles import get_shop_id

logger = logging.getLogger(__name__)
router = APIRouter()


class SelectedItemPayload(BaseModel):
    product_id: str = Field(..., alias="productId")
    variant_id: str = Field("", alias="variantId")
    quantity: int = 1
    price: Decimal = Decimal("0")

    model_config = ConfigDict(populate_by_name=True)

    def to_selected_item(self) -> SelectedItem:
        return SelectedItem(
            product_id=self.product_id,
            variant_id=self.variant_id,
            quantity=self.quantity,
            price=self.price,
        )


class SelectionRequest(BaseModel):
    """Body shared by the pricing and storefront selection endpoints."""

    bundle_id: str = Field(..., alias="bundleId", min_length=1)
    selected_items: Optional[List[SelectedItemPayload]] = Field(None, alias="selectedItems")
    tier_id: Optional[str] = Field(None, alias="tierId")
    quantity: int = 1
    shop: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)

    def selection(self) -> List[SelectedItem]:
        return [item.to_selected_item() for item in (self.selected_items or [])]


async def _load_bundle(storage: BundleStorage, bundle_id: str, shop: str) -> BundleData:
    bundle = await storage.get_bundle(bundle_id, shop)
    if bundle is None:
        raise HTTPException(status_code=404, detail="Bundle not found")
    return bundle


@router.post("/pricing/calculate")
async def calculate_pricing(
    payload: SelectionRequest,
    shop: str = Depends(get_shop_id),
    storage: BundleStorage = Depends(get_bundle_storage),
):
    """Price a selection; without items the bundle's own items are priced."""
    bundle = await _load_bundle(storage, payload.bundle_id, shop)
    items = payload.selection() or default_selection(bundle)
    result = calculate_bundle_pricing(bundle, items, tier_id=payload.tier_id, quantity=payload.quantity)
    return result.to_dict()


@router.post("/pricing/validate")
async def validate_pricing_selection(
    payload: SelectionRequest,
    shop: str = Depends(get_shop_id),
    storage: BundleStorage = Depends(get_bundle_storage),
):
    bundle = await _load_bundle(storage, payload.bundle_id, shop)
    result = validate_selection(
        bundle, payload.selection(), tier_id=payload.tier_id, quantity=payload.quantity
    )
    return result.to_dict()
