import sys
from datetime import date
from decimal import Decimal
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from schemas.bundle_schemas import DailyStats
from services.analytics import (
    EXPORT_COLUMNS,
    bundle_reports,
    dashboard_summary,
    export_filename,
    export_rows_csv,
    period_range,
    previous_range,
    summarize,
    top_bundles,
)

TODAY = date(2026, 6, 30)


def _day(bundle_id, day, views=0, carts=0, purchases=0, revenue="0", title=""):
    return DailyStats(
        bundle_id=bundle_id,
        day=day,
        bundle_title=title,
        bundle_type="VOLUME",
        views=views,
        add_to_cart_count=carts,
        purchase_count=purchases,
        revenue=Decimal(revenue),
    )


def test_period_range():
    assert period_range("7d", today=TODAY) == (date(2026, 6, 23), TODAY)
    assert period_range("90d", today=TODAY) == (date(2026, 4, 1), TODAY)
    assert period_range("all", today=TODAY) == (date(1970, 1, 1), TODAY)
    assert period_range("bogus", today=TODAY) == (date(2026, 5, 31), TODAY)
    assert period_range("7d", date(2026, 1, 1), date(2026, 1, 2), today=TODAY) == (date(2026, 1, 1), date(2026, 1, 2))


def test_previous_range_has_same_length():
    assert previous_range(date(2026, 6, 23), TODAY) == (date(2026, 6, 15), date(2026, 6, 22))


def test_metrics_rates_and_empty_totals():
    metrics = summarize([
        _day("b1", TODAY, views=40, carts=10, purchases=4, revenue="100"),
        _day("b1", TODAY, views=10, carts=0, purchases=1, revenue="25"),
    ])

    assert metrics.conversion_rate == 10.0
    assert metrics.add_to_cart_rate == 20.0
    assert metrics.average_order_value == Decimal("25")
    assert summarize([]).to_dict() == {
        "totalViews": 0,
        "totalAddToCarts": 0,
        "totalPurchases": 0,
        "totalRevenue": 0.0,
        "conversionRate": 0.0,
        "addToCartRate": 0.0,
        "averageOrderValue": 0.0,
    }


def test_bundle_reports_group_rows_per_bundle():
    rows = [
        _day("b1", date(2026, 6, 1), views=3, title="Bulk"),
        _day("b1", date(2026, 6, 2), views=4, title="Bulk"),
        _day("b2", date(2026, 6, 1), views=1, title="Gift"),
    ]

    reports = bundle_reports(rows, "30d")

    assert [(r["bundleId"], r["bundleTitle"], r["metrics"]["totalViews"]) for r in reports] == [
        ("b1", "Bulk", 7),
        ("b2", "Gift", 1),
    ]
    assert [d["date"] for d in reports[0]["dailyData"]] == ["2026-06-01", "2026-06-02"]
    assert reports[0]["bundleType"] == "VOLUME"


def test_top_bundles_rank_by_revenue_then_add_to_cart():
    rows = [_day(f"b{i}", TODAY, carts=i, revenue="10") for i in range(7)]
    rows.append(_day("rich", TODAY, revenue="99", title="Rich"))

    ranked = top_bundles(rows)

    assert [b["id"] for b in ranked] == ["rich", "b6", "b5", "b4", "b3"]
    assert ranked[1]["title"] == "Unknown Bundle"


def test_dashboard_change_from_empty_previous_period():
    summary = dashboard_summary([_day("b1", TODAY, purchases=2, revenue="50")], [], 4, 1)

    assert summary["totalBundles"] == 4
    assert summary["activeBundles"] == 1
    assert summary["averageOrderValue"] == 25.0
    assert summary["periodComparison"]["revenueChange"] == 100.0
    assert summary["periodComparison"]["ordersChange"] == 100.0
    assert dashboard_summary([], [], 0, 0)["periodComparison"]["revenueChange"] == 0.0


def test_export_csv_and_filename():
    content = export_rows_csv([_day("b1", TODAY, views=3, purchases=1, revenue="12.5", title="Bulk, large")])

    lines = content.splitlines()
    assert lines[0] == ",".join(EXPORT_COLUMNS)
    assert lines[1] == '2026-06-30,b1,"Bulk, large",VOLUME,3,0,1,12.50,33.33'
    assert export_filename(date(2026, 6, 1), TODAY, "csv") == "bundle-analytics-2026-06-01-2026-06-30.csv"
