"""
Bundles Router
Merchant-facing bundle CRUD (shop scoped). Saves are gated by the
configuration rules; a failing bundle is rejected with 400 and the list of
field-tagged errors.
"""
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field
from starlette.responses import JSONResponse

from schemas.bundle_schemas import BundleData, BundleStatus
from services.schedule import ScheduleError, get_effective_status, plan_schedule
from services.storage import BundleStorage, get_bundle_storage
from services.validation import validate_bundle_config
from settings import SHOP_HEADER, resolve_shop_id

logger = logging.getLogger(__name__)
router = APIRouter()


def get_shop_id(request: Request) -> str:
    """Shop from the X-Shop-Domain header or ?shop=, else DEFAULT_SHOP_ID."""
    return resolve_shop_id(request.headers.get(SHOP_HEADER), request.query_params.get("shop"))


class BundleItemPayload(BaseModel):
    product_id: str = Field(..., alias="productId", min_length=1)
    variant_id: Optional[str] = Field(None, alias="variantId")
    title: str = Field("", alias="title", max_length=500)
    quantity: int = Field(1, ge=1)
    is_required: bool = Field(True, alias="isRequired")
    original_price: Optional[Decimal] = Field(None, alias="originalPrice")
    position: int = 0

    model_config = ConfigDict(populate_by_name=True)


class BundleCategoryPayload(BaseModel):
    name: str
    min_select: int = Field(0, alias="minSelect", ge=0)
    max_select: Optional[int] = Field(None, alias="maxSelect", ge=0)
    position: int = 0
    items: List[BundleItemPayload] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class BundleTierPayload(BaseModel):
    id: Optional[str] = None
    name: str
    price: Decimal
    compare_at_price: Optional[Decimal] = Field(None, alias="compareAtPrice")
    product_count: int = Field(..., alias="productCount", ge=1)
    allowed_products: Optional[List[str]] = Field(None, alias="allowedProducts")
    position: int = 0

    model_config = ConfigDict(populate_by_name=True)


class VolumeRulePayload(BaseModel):
    min_quantity: int = Field(..., alias="minQuantity", ge=0)
    max_quantity: Optional[int] = Field(None, alias="maxQuantity")
    discount_type: str = Field(..., alias="discountType")
    discount_value: Decimal = Field(..., alias="discountValue")
    label: Optional[str] = None
    position: int = 0

    model_config = ConfigDict(populate_by_name=True)


class BundlePayload(BaseModel):
    """Create/update body posted by the embedded admin app."""

    title: str = ""
    type: Optional[str] = None
    description: Optional[str] = None
    handle: Optional[str] = None
    status: str = BundleStatus.DRAFT.value
    price: Optional[Decimal] = None
    compare_at_price: Optional[Decimal] = Field(None, alias="compareAtPrice")
    discount_type: Optional[str] = Field(None, alias="discountType")
    discount_value: Optional[Decimal] = Field(None, alias="discountValue")
    min_products: Optional[int] = Field(None, alias="minProducts")
    max_products: Optional[int] = Field(None, alias="maxProducts")
    allow_duplicates: bool = Field(True, alias="allowDuplicates")
    apply_to_same_product: bool = Field(False, alias="applyToSameProduct")
    start_date: Optional[datetime] = Field(None, alias="startDate")
    end_date: Optional[datetime] = Field(None, alias="endDate")
    items: List[BundleItemPayload] = Field(default_factory=list)
    categories: List[BundleCategoryPayload] = Field(default_factory=list)
    tiers: List[BundleTierPayload] = Field(default_factory=list)
    volume_rules: List[VolumeRulePayload] = Field(default_factory=list, alias="volumeRules")

    model_config = ConfigDict(populate_by_name=True)

    def to_bundle_data(self) -> BundleData:
        return BundleData.from_dict(self.model_dump(by_alias=True))


class DuplicateRequest(BaseModel):
    title: Optional[str] = Field(None, max_length=500)


class ScheduleRequest(BaseModel):
    start_date: Optional[datetime] = Field(None, alias="startDate")
    end_date: Optional[datetime] = Field(None, alias="endDate")
    activate_now: bool = Field(False, alias="activateNow")

    model_config = ConfigDict(populate_by_name=True)


def serialize_bundle(bundle: BundleData) -> Dict[str, Any]:
    payload = bundle.to_dict()
    payload["effectiveStatus"] = get_effective_status(bundle)
    return payload


def _invalid_config_response(errors: List[Dict[str, Any]]) -> JSONResponse:
    return JSONResponse(status_code=400, content={"errors": errors})


@router.get("/bundles")
async def list_bundles(
    type: Optional[str] = None,
    status: Optional[str] = None,
    shop: str = Depends(get_shop_id),
    storage: BundleStorage = Depends(get_bundle_storage),
):
    """List the shop's bundles, newest first"""
    try:
        bundles = await storage.list_bundles(shop, bundle_type=type, status=status)
        return {"bundles": [serialize_bundle(b) for b in bundles], "count": len(bundles)}
    except Exception as e:
        logger.error(f"List bundles error for shop {shop}: {e}")
        raise HTTPException(status_code=500, detail="Failed to list bundles")


@router.get("/bundles/{bundle_id}")
async def get_bundle(
    bundle_id: str,
    shop: str = Depends(get_shop_id),
    storage: BundleStorage = Depends(get_bundle_storage),
):
    bundle = await storage.get_bundle(bundle_id, shop)
    if bundle is None:
        raise HTTPException(status_code=404, detail="Bundle not found")
    return serialize_bundle(bundle)


@router.post("/bundles", status_code=201)
async def create_bundle(
    payload: BundlePayload,
    shop: str = Depends(get_shop_id),
    storage: BundleStorage = Depends(get_bundle_storage),
):
    """Validate the configuration and persist a new bundle"""
    bundle = payload.to_bundle_data()
    validation = validate_bundle_config(bundle)
    if not validation.is_valid:
        logger.info(f"Rejected bundle config for shop {shop}: {[e.code for e in validation.errors]}")
        return _invalid_config_response([e.to_dict() for e in validation.errors])

    try:
        created = await storage.create_bundle(shop, bundle)
    except Exception as e:
        logger.error(f"Create bundle error for shop {shop}: {e}")
        raise HTTPException(status_code=500, detail="Failed to create bundle")
    return {"success": True, "bundle": serialize_bundle(created)}


@router.put("/bundles/{bundle_id}")
async def update_bundle(
    bundle_id: str,
    payload: BundlePayload,
    shop: str = Depends(get_shop_id),
    storage: BundleStorage = Depends(get_bundle_storage),
):
    bundle = payload.to_bundle_data()
    validation = validate_bundle_config(bundle)
    if not validation.is_valid:
        return _invalid_config_response([e.to_dict() for e in validation.errors])

    try:
        updated = await storage.update_bundle(bundle_id, shop, bundle)
    except Exception as e:
        logger.error(f"Update bundle {bundle_id} error: {e}")
        raise HTTPException(status_code=500, detail="Failed to update bundle")
    if updated is None:
        raise HTTPException(status_code=404, detail="Bundle not found")
    return {"success": True, "bundle": serialize_bundle(updated)}


@router.delete("/bundles/{bundle_id}")
async def delete_bundle(
    bundle_id: str,
    shop: str = Depends(get_shop_id),
    storage: BundleStorage = Depends(get_bundle_storage),
):
    deleted = await storage.delete_bundle(bundle_id, shop)
    if not deleted:
        raise HTTPException(status_code=404, detail="Bundle not found")
    return {"success": True}


@router.post("/bundles/{bundle_id}/duplicate", status_code=201)
async def duplicate_bundle(
    bundle_id: str,
    payload: Optional[DuplicateRequest] = None,
    shop: str = Depends(get_shop_id),
    storage: BundleStorage = Depends(get_bundle_storage),
):
    """Copy a bundle with all items, categories, tiers and rules as a draft"""
    title = payload.title if payload else None
    try:
        duplicated = await storage.duplicate_bundle(bundle_id, shop, title=title)
    except Exception as e:
        logger.error(f"Duplicate bundle {bundle_id} error: {e}")
        raise HTTPException(status_code=500, detail="Failed to duplicate bundle")
    if duplicated is None:
        raise HTTPException(status_code=404, detail="Bundle not found")
    return {"success": True, "bundle": serialize_bundle(duplicated)}


@router.post("/bundles/{bundle_id}/schedule")
async def schedule_bundle(
    bundle_id: str,
    payload: ScheduleRequest,
    shop: str = Depends(get_shop_id),
    storage: BundleStorage = Depends(get_bundle_storage),
):
    """Set the bundle's start/end window, or activate it immediately"""
    if await storage.get_bundle(bundle_id, shop) is None:
        raise HTTPException(status_code=404, detail="Bundle not found")

    try:
        start, end, status = plan_schedule(payload.start_date, payload.end_date, payload.activate_now)
    except ScheduleError as e:
        raise HTTPException(status_code=400, detail=str(e))

    updated = await storage.set_schedule(bundle_id, shop, start, end, status)
    if updated is None:
        raise HTTPException(status_code=404, detail="Bundle not found")

    if payload.activate_now:
        message = "Bundle activated"
    else:
        message = f"Bundle scheduled for {start.isoformat()}"
    return {"success": True, "bundle": serialize_bundle(updated), "message": message}
