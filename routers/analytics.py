"""
Analytics Router
Read side of the storefront counters: per-bundle reports, the dashboard
summary with a previous-period comparison, and CSV/JSON export.
"""
from __future__ import annotations

import json
import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response

from schemas.bundle_schemas import BundleStatus
from services.analytics import (
    DEFAULT_PERIOD,
    bundle_report,
    bundle_reports,
    dashboard_summary,
    export_filename,
    export_rows_csv,
    export_rows_json,
    period_range,
    previous_range,
)
from services.storage import BundleStorage, get_bundle_storage
from routers.bundles import get_shop_id

logger = logging.getLogger(__name__)
router = APIRouter()

EXPORT_FORMATS = ("csv", "json")


@router.get("/analytics/bundles")
async def get_bundle_analytics(
    bundle_id: Optional[str] = Query(None, alias="bundleId"),
    period: str = Query(DEFAULT_PERIOD),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    shop: str = Depends(get_shop_id),
    storage: BundleStorage = Depends(get_bundle_storage),
):
    """Metrics and daily rows for one bundle, or for every bundle of the shop"""
    date_from, date_to = period_range(period, start_date, end_date)

    if bundle_id:
        bundle = await storage.get_bundle(bundle_id, shop)
        if bundle is None:
            raise HTTPException(status_code=404, detail="Bundle not found")
        rows = await storage.get_analytics(shop, date_from, date_to, bundle_id=bundle_id)
        return bundle_report(bundle.id, bundle.title, rows, period)

    rows = await storage.get_analytics(shop, date_from, date_to)
    return {
        "period": period,
        "dateFrom": date_from.isoformat(),
        "dateTo": date_to.isoformat(),
        "bundles": bundle_reports(rows, period),
    }


@router.get("/analytics/dashboard")
async def get_dashboard(
    period: str = Query(DEFAULT_PERIOD),
    shop: str = Depends(get_shop_id),
    storage: BundleStorage = Depends(get_bundle_storage),
):
    """Shop totals, top bundles and the change against the previous period"""
    date_from, date_to = period_range(period)
    previous_from, previous_to = previous_range(date_from, date_to)

    try:
        current_rows = await storage.get_analytics(shop, date_from, date_to)
        previous_rows = await storage.get_analytics(shop, previous_from, previous_to)
        total_bundles = await storage.count_bundles(shop)
        active_bundles = await storage.count_bundles(shop, status=BundleStatus.ACTIVE.value)
    except Exception as e:
        logger.error(f"Dashboard analytics error for shop {shop}: {e}")
        raise HTTPException(status_code=500, detail="Failed to load dashboard")

    summary = dashboard_summary(current_rows, previous_rows, total_bundles, active_bundles)
    return {"period": period, **summary}


@router.get("/analytics/export")
async def export_analytics(
    export_format: str = Query("csv", alias="format"),
    period: str = Query(DEFAULT_PERIOD),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    shop: str = Depends(get_shop_id),
    storage: BundleStorage = Depends(get_bundle_storage),
):
    """Daily bundle analytics as a CSV or JSON download"""
    if export_format not in EXPORT_FORMATS:
        raise HTTPException(status_code=400, detail=f"Unsupported export format: {export_format}")

    date_from, date_to = period_range(period, start_date, end_date)
    rows = await storage.get_analytics(shop, date_from, date_to)
    logger.info(f"Exporting {len(rows)} analytics rows as {export_format} for shop {shop}")

    if export_format == "csv":
        content = export_rows_csv(rows)
        media_type = "text/csv"
    else:
        content = json.dumps(export_rows_json(rows), indent=2)
        media_type = "application/json"

    filename = export_filename(date_from, date_to, export_format)
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
