"""
Bundle Analytics
Aggregates the daily storefront counters (views, add-to-cart, purchases,
revenue) into per-bundle reports, the dashboard summary and export files.
"""
from __future__ import annotations

import csv
import io
from collections import OrderedDict
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from schemas.bundle_schemas import DailyStats, money

PERIOD_DAYS = {"7d": 7, "30d": 30, "90d": 90}
DEFAULT_PERIOD = "30d"
EPOCH = date(1970, 1, 1)
TOP_BUNDLES_LIMIT = 5

EXPORT_COLUMNS = [
    "Date",
    "Bundle ID",
    "Bundle Title",
    "Bundle Type",
    "Views",
    "Add to Cart",
    "Purchases",
    "Revenue",
    "Conversion Rate",
]


def _today(today: Optional[date]) -> date:
    return today or datetime.now(timezone.utc).date()


def period_days(period: Optional[str]) -> int:
    return PERIOD_DAYS.get(period or DEFAULT_PERIOD, PERIOD_DAYS[DEFAULT_PERIOD])


def period_range(
    period: Optional[str] = DEFAULT_PERIOD,
    start: Optional[date] = None,
    end: Optional[date] = None,
    today: Optional[date] = None,
) -> Tuple[date, date]:
    """Inclusive ``(from, to)`` day range; explicit dates win over the period name."""
    if start and end:
        return start, end
    current = _today(today)
    if period == "all":
        return EPOCH, current
    return current - timedelta(days=period_days(period)), current


def previous_range(date_from: date, date_to: date) -> Tuple[date, date]:
    """The equally long range ending the day before ``date_from``."""
    span = date_to - date_from
    previous_to = date_from - timedelta(days=1)
    return previous_to - span, previous_to


@dataclass
class BundleMetrics:
    total_views: int = 0
    total_add_to_carts: int = 0
    total_purchases: int = 0
    total_revenue: Decimal = Decimal("0")

    def add(self, stats: DailyStats) -> None:
        self.total_views += stats.views
        self.total_add_to_carts += stats.add_to_cart_count
        self.total_purchases += stats.purchase_count
        self.total_revenue += stats.revenue or Decimal("0")

    @property
    def conversion_rate(self) -> float:
        if not self.total_views:
            return 0.0
        return self.total_purchases * 100 / self.total_views

    @property
    def add_to_cart_rate(self) -> float:
        if not self.total_views:
            return 0.0
        return self.total_add_to_carts * 100 / self.total_views

    @property
    def average_order_value(self) -> Decimal:
        if not self.total_purchases:
            return Decimal("0")
        return self.total_revenue / self.total_purchases

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalViews": self.total_views,
            "totalAddToCarts": self.total_add_to_carts,
            "totalPurchases": self.total_purchases,
            "totalRevenue": money(self.total_revenue),
            "conversionRate": self.conversion_rate,
            "addToCartRate": self.add_to_cart_rate,
            "averageOrderValue": money(self.average_order_value),
        }


def summarize(rows: Iterable[DailyStats]) -> BundleMetrics:
    metrics = BundleMetrics()
    for stats in rows:
        metrics.add(stats)
    return metrics


def bundle_report(bundle_id: str, title: str, days: Sequence[DailyStats], period: str) -> Dict[str, Any]:
    return {
        "bundleId": bundle_id,
        "bundleTitle": title,
        "period": period,
        "metrics": summarize(days).to_dict(),
        "dailyData": [d.to_dict() for d in days],
    }


def bundle_reports(rows: Sequence[DailyStats], period: str) -> List[Dict[str, Any]]:
    """One report per bundle, in the order bundles first appear in ``rows``."""
    grouped: "OrderedDict[str, List[DailyStats]]" = OrderedDict()
    for stats in rows:
        grouped.setdefault(stats.bundle_id, []).append(stats)

    reports = []
    for bundle_id, days in grouped.items():
        report = bundle_report(bundle_id, days[0].bundle_title, days, period)
        report["bundleType"] = days[0].bundle_type
        reports.append(report)
    return reports


def _percent_change(current: Decimal, previous: Decimal) -> float:
    if previous > 0:
        return float((current - previous) / previous * 100)
    return 100.0 if current > 0 else 0.0


def top_bundles(rows: Sequence[DailyStats], limit: int = TOP_BUNDLES_LIMIT) -> List[Dict[str, Any]]:
    """Best bundles by revenue, then by add-to-cart count."""
    metrics_by_bundle: "OrderedDict[str, BundleMetrics]" = OrderedDict()
    latest: Dict[str, DailyStats] = {}
    for stats in rows:
        metrics_by_bundle.setdefault(stats.bundle_id, BundleMetrics()).add(stats)
        latest[stats.bundle_id] = stats

    ranked = sorted(
        metrics_by_bundle.items(),
        key=lambda pair: (pair[1].total_revenue, pair[1].total_add_to_carts),
        reverse=True,
    )
    return [
        {
            "id": bundle_id,
            "title": latest[bundle_id].bundle_title or "Unknown Bundle",
            "type": latest[bundle_id].bundle_type or None,
            "revenue": money(metrics.total_revenue),
            "orders": metrics.total_purchases,
            "addToCarts": metrics.total_add_to_carts,
            "conversionRate": metrics.conversion_rate,
        }
        for bundle_id, metrics in ranked[:limit]
    ]


def dashboard_summary(
    current_rows: Sequence[DailyStats],
    previous_rows: Sequence[DailyStats],
    total_bundles: int,
    active_bundles: int,
) -> Dict[str, Any]:
    current = summarize(current_rows)
    previous = summarize(previous_rows)

    return {
        "totalBundles": total_bundles,
        "activeBundles": active_bundles,
        "totalViews": current.total_views,
        "totalAddToCarts": current.total_add_to_carts,
        "totalRevenue": money(current.total_revenue),
        "totalOrders": current.total_purchases,
        "averageOrderValue": money(current.average_order_value),
        "topBundles": top_bundles(current_rows),
        "periodComparison": {
            "currentPeriod": {
                "revenue": money(current.total_revenue),
                "orders": current.total_purchases,
                "views": current.total_views,
            },
            "previousPeriod": {
                "revenue": money(previous.total_revenue),
                "orders": previous.total_purchases,
                "views": previous.total_views,
            },
            "revenueChange": _percent_change(current.total_revenue, previous.total_revenue),
            "ordersChange": _percent_change(
                Decimal(current.total_purchases), Decimal(previous.total_purchases)
            ),
        },
    }


def export_rows_csv(rows: Sequence[DailyStats]) -> str:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(EXPORT_COLUMNS)
    for stats in rows:
        writer.writerow([
            stats.day.isoformat(),
            stats.bundle_id,
            stats.bundle_title,
            stats.bundle_type,
            stats.views,
            stats.add_to_cart_count,
            stats.purchase_count,
            f"{stats.revenue or Decimal('0'):.2f}",
            f"{stats.conversion_rate:.2f}",
        ])
    csv_content = output.getvalue()
    output.close()
    return csv_content


def export_rows_json(rows: Sequence[DailyStats]) -> List[Dict[str, Any]]:
    return [
        {"bundleId": s.bundle_id, "bundleTitle": s.bundle_title, "bundleType": s.bundle_type, **s.to_dict()}
        for s in rows
    ]


def export_filename(date_from: date, date_to: date, extension: str) -> str:
    return f"bundle-analytics-{date_from.isoformat()}-{date_to.isoformat()}.{extension}"
