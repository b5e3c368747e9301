"""
Dashboard snapshot cache and the summary / chart / recent-orders computations
"""
import asyncio
from datetime import datetime, timezone

import pytest

from app.services.dashboard import (
    CONVERSION_RATE,
    WEEKDAYS,
    change_percentage,
    dashboard_summary,
    inventory_summary,
    period_start,
    recent_orders,
    sales_analytics,
    store_summary,
)
from app.services.dashboard_cache import DashboardSnapshot, DashboardSnapshotCache

# Sunday 2025-06-15 12:00 in the reporting timezone
NOW = datetime(2025, 6, 15, 6, 30, tzinfo=timezone.utc)

ORDERS = [
    {"id": "1", "name": "#1001", "date": "2025-06-14", "created_at": "2025-06-14T04:30:00Z", "total": "100.00",
     "status": "paid", "customer": {"id": "c1", "name": "Asha"},
     "line_items": [{"product_id": "p1", "quantity": 2}]},
    {"id": "2", "date": "2025-06-10", "created_at": "2025-06-10T04:30:00Z", "total": "300.00",
     "status": "pending", "customer": {"id": "c2"},
     "line_items": [{"product_id": "p2", "quantity": 1}, {"title": "Gift wrap"}]},
    {"id": "3", "date": "2025-06-05", "created_at": "2025-06-05T04:30:00Z", "total": "200.00",
     "customer": {"id": "c1"}},
    {"id": "4", "date": "2025-05-01", "created_at": "2025-05-01T04:30:00Z", "total": "50.00"},
]

PRODUCTS = [
    {"id": "p1", "title": "Cushion", "variants": [{"inventory": 3}, {"inventory": 40}]},
    {"id": "p2", "title": "Pillow", "variants": [{"inventory": 0}, {"inventory_quantity": -1}]},
    {"id": "p3", "title": "Gift card", "variants": []},
]


def snapshot(orders=ORDERS, products=PRODUCTS, customers=()):
    return DashboardSnapshot(
        orders=tuple(orders),
        products=tuple(products),
        customers=tuple(customers),
        loaded_at=1.0,
        refreshed_at="2025-06-15T06:00:00.000Z",
    )


class Clock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now


def counting_loader(data=None):
    calls = []

    async def load():
        calls.append(1)
        await asyncio.sleep(0)
        return data or {"orders": list(ORDERS), "products": list(PRODUCTS), "customers": [{"id": "c1"}]}

    return load, calls


def test_period_start():
    assert period_start(NOW, "day") == datetime(2025, 6, 14, 6, 30, tzinfo=timezone.utc)
    assert period_start(NOW, "week").day == 8
    assert period_start(NOW, "month").month == 5
    assert period_start(NOW, "year").year == 2024
    assert period_start(NOW, "fortnight") == period_start(NOW, "week")
    assert period_start(datetime(2025, 3, 31), "month") == datetime(2025, 2, 28)


def test_change_percentage():
    assert change_percentage(400, 200) == 100
    assert change_percentage(1, 3) == -66.67
    assert change_percentage(10, 0) == 0


def test_summary_compares_with_previous_period():
    summary = dashboard_summary(snapshot(), "week", now=NOW)

    sales = summary["salesSummary"]
    assert sales["totalSales"] == 400
    assert sales["percentageChange"] == 100
    assert sales["averageOrderValue"] == 200
    assert sales["conversionRate"] == CONVERSION_RATE
    assert summary["ordersSummary"]["totalOrders"] == 2
    assert summary["ordersSummary"]["percentageChange"] == 100
    assert summary["customersSummary"]["totalCustomers"] == 2
    assert summary["timeframe"] == "week"
    assert summary["lastUpdated"] == "2025-06-15T06:00:00.000Z"


def test_summary_of_empty_snapshot():
    summary = dashboard_summary(snapshot(orders=(), products=()), "day", now=NOW)
    assert summary["salesSummary"]["totalSales"] == 0
    assert summary["salesSummary"]["averageOrderValue"] == 0
    assert summary["salesSummary"]["percentageChange"] == 0
    assert summary["inventorySummary"]["topSellingProducts"] == []


def test_inventory_summary():
    inventory = inventory_summary(PRODUCTS, ORDERS[:2], low_stock_threshold=5)
    assert inventory["totalProducts"] == 3
    assert inventory["lowStock"] == 1
    assert inventory["outOfStock"] == 1
    assert inventory["topSellingProducts"] == [
        {"id": "p1", "name": "Cushion", "sales": 2},
        {"id": "p2", "name": "Pillow", "sales": 1},
        {"id": "Gift wrap", "name": "Product Gift wrap", "sales": 1},
    ]


def test_weekly_sales_chart():
    chart = sales_analytics(snapshot(), "week", now=NOW)
    assert chart["labels"] == WEEKDAYS
    revenue = chart["datasets"][0]["data"]
    orders = chart["datasets"][1]["data"]
    assert revenue[WEEKDAYS.index("Sat")] == 100
    assert revenue[WEEKDAYS.index("Tue")] == 300
    assert sum(orders) == 2
    assert chart["totalRevenue"] == 400
    assert chart["averageRevenue"] == round(400 / 7)


def test_daily_chart_buckets_by_hour():
    orders = [
        {"id": "a", "created_at": "2025-06-15T04:30:00Z", "total": "80.00"},
        {"id": "b", "created_at": "2025-06-14T10:00:00Z", "total": "20.00"},
        # before the 24h window
        {"id": "c", "created_at": "2025-06-14T04:30:00Z", "total": "5.00"},
    ]
    chart = sales_analytics(snapshot(orders=orders), "day", now=NOW)
    assert len(chart["labels"]) == 24
    # 04:30Z is 10:00 in the reporting timezone
    assert chart["labels"][10] == "10:00"
    assert chart["datasets"][0]["data"][10] == 80
    assert chart["datasets"][0]["data"][15] == 20
    assert chart["totalOrders"] == 2


def test_yearly_chart_buckets_by_month():
    chart = sales_analytics(snapshot(), "year", now=NOW)
    assert chart["labels"][0] == "Jan"
    assert chart["datasets"][1]["data"][5] == 3
    assert chart["datasets"][1]["data"][4] == 1


def test_recent_orders_paging():
    first = recent_orders(snapshot(), page=1, page_size=3)
    assert [o["id"] for o in first["orders"]] == ["#1001", "2", "3"]
    assert first["orders"][0]["customer"] == "Asha"
    assert first["orders"][0]["status"] == "Paid"
    assert first["orders"][0]["items"] == 1
    assert first["orders"][1]["customer"] == "Guest"
    assert first["orders"][1]["paymentMethod"] == "Credit Card"
    assert first["totalPages"] == 2

    second = recent_orders(snapshot(), page=2, page_size=3)
    assert [o["id"] for o in second["orders"]] == ["4"]
    assert second["orders"][0]["status"] == "Unknown"


def test_store_summary():
    summary = store_summary(snapshot(customers=[{"id": "c1"}]), {"completedAt": "2025-06-15T00:00:00Z"})
    assert summary == {
        "totalOrders": 4,
        "totalRevenue": 650.0,
        "totalProducts": 3,
        "totalCustomers": 1,
        "lastSyncTime": "2025-06-15T00:00:00Z",
    }
    assert store_summary(snapshot(), None)["lastSyncTime"] is None


async def test_snapshot_loaded_on_first_get_and_reused():
    loader, calls = counting_loader()
    clock = Clock()
    cache = DashboardSnapshotCache(loader=loader, refresh_interval=60, clock=clock)

    assert cache.is_stale()
    snap = await cache.get()
    assert snap.loaded
    assert snap.counts == {"orders": 4, "products": 3, "customers": 1}
    await cache.get()
    assert len(calls) == 1

    clock.now += 61
    await cache.get()
    assert len(calls) == 2


async def test_concurrent_readers_share_one_load():
    loader, calls = counting_loader()
    cache = DashboardSnapshotCache(loader=loader, refresh_interval=60, clock=Clock())
    await asyncio.gather(*(cache.get() for _ in range(5)))
    assert len(calls) == 1


async def test_failed_refresh_keeps_previous_snapshot():
    loader, _ = counting_loader()
    cache = DashboardSnapshotCache(loader=loader, refresh_interval=60, clock=Clock())
    before = await cache.get()

    async def broken():
        raise ConnectionError("dynamodb unavailable")

    cache._loader = broken
    with pytest.raises(ConnectionError):
        await cache.refresh()
    assert cache.snapshot is before


async def test_webhook_updates_patch_the_snapshot():
    loader, _ = counting_loader()
    cache = DashboardSnapshotCache(loader=loader, refresh_interval=60, clock=Clock())
    await cache.get()
    before = cache.snapshot

    await cache.apply_upsert("orders", {"id": "2", "total": "999.00"})
    await cache.apply_upsert("orders", {"id": "5", "total": "1.00"})
    await cache.apply_delete("products", "p3")

    snap = cache.snapshot
    assert snap is not before
    assert len(before.orders) == 4
    assert {o["id"]: o["total"] for o in snap.orders}["2"] == "999.00"
    assert snap.counts["orders"] == 5
    assert snap.counts["products"] == 2


async def test_updates_before_first_load_are_ignored():
    loader, calls = counting_loader()
    cache = DashboardSnapshotCache(loader=loader, refresh_interval=60, clock=Clock())
    await cache.apply_upsert("orders", {"id": "x"})
    assert not cache.snapshot.loaded
    assert calls == []

    with pytest.raises(ValueError):
        await cache.apply_delete("invoices", "1")


async def test_periodic_refresher_start_stop():
    loader, calls = counting_loader()
    cache = DashboardSnapshotCache(loader=loader, refresh_interval=0.01, clock=Clock())
    cache.start()
    await asyncio.sleep(0.05)
    await cache.stop()
    assert len(calls) >= 1
    assert cache._task is None
