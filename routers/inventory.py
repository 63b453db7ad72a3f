"""
Inventory Router
Bundle availability checks and the stock-level push from the embedded app.
"""
from __future__ import annotations

import json
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field

from schemas.bundle_schemas import InventoryRecord, SelectedItem
from services.inventory import InventoryLookup, compute_bundle_availability, get_inventory_lookup
from services.pricing import default_selection
from services.storage import BundleStorage, get_bundle_storage
from routers.bundles import get_shop_id

logger = logging.getLogger(__name__)
router = APIRouter()


class VariantInventoryPayload(BaseModel):
    variant_id: str = Field(..., alias="variantId", min_length=1)
    product_id: Optional[str] = Field(None, alias="productId")
    title: Optional[str] = None
    available_for_sale: bool = Field(True, alias="availableForSale")
    quantity_available: int = Field(0, alias="quantityAvailable")

    model_config = ConfigDict(populate_by_name=True)


class InventorySyncRequest(BaseModel):
    variants: List[VariantInventoryPayload] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


def _parse_selected_items(raw: Optional[str]) -> List[SelectedItem]:
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid selectedItems format")
    if not isinstance(data, list):
        raise HTTPException(status_code=400, detail="Invalid selectedItems format")
    return [SelectedItem.from_dict(item) for item in data if isinstance(item, dict)]


@router.get("/inventory/check")
async def check_inventory(
    bundle_id: Optional[str] = Query(None, alias="bundleId"),
    quantity: int = Query(1, ge=1),
    selected_items: Optional[str] = Query(None, alias="selectedItems"),
    shop: str = Depends(get_shop_id),
    storage: BundleStorage = Depends(get_bundle_storage),
    lookup: InventoryLookup = Depends(get_inventory_lookup),
):
    """How many complete bundles current stock can fulfil, and which item limits it"""
    items = _parse_selected_items(selected_items)

    # snapshots are only written for bundles this shop owns
    if bundle_id:
        bundle = await storage.get_bundle(bundle_id, shop)
        if bundle is None:
            raise HTTPException(status_code=404, detail="Bundle not found")
        if not items:
            items = default_selection(bundle)

    if not items:
        raise HTTPException(status_code=400, detail="No items to check")

    inventory = await lookup.get_inventory([item.variant_id for item in items if item.variant_id])
    availability = compute_bundle_availability(items, inventory, quantity=quantity)

    if bundle_id:
        limiting = availability.limiting_item
        try:
            await storage.record_inventory_snapshot(
                bundle_id,
                is_available=availability.is_available,
                available_count=availability.available_count,
                limiting_product=limiting.product_id if limiting else None,
                limiting_variant=limiting.variant_id if limiting else None,
                limiting_stock=limiting.available_quantity if limiting else None,
            )
        except Exception as e:
            logger.warning(f"Failed to record inventory snapshot for bundle {bundle_id}: {e}")

    return availability.to_dict()


@router.post("/inventory/sync")
async def sync_inventory(
    payload: InventorySyncRequest,
    shop: str = Depends(get_shop_id),
    storage: BundleStorage = Depends(get_bundle_storage),
):
    """Store stock levels pushed by the embedded app"""
    records = [
        InventoryRecord(
            variant_id=v.variant_id,
            available_for_sale=v.available_for_sale,
            quantity_available=v.quantity_available,
            title=v.title or "",
            product_id=v.product_id or "",
        )
        for v in payload.variants
    ]
    if not records:
        return {"message": "No variants to sync", "synced": 0}

    try:
        synced = await storage.upsert_variant_inventory(shop, records)
    except Exception as e:
        logger.error(f"Inventory sync error for shop {shop}: {e}")
        raise HTTPException(status_code=500, detail="Failed to sync inventory")
    return {"message": f"Synced {synced} variants", "synced": synced}
