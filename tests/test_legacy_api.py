"""
/api dashboard routes and /products over stubbed DynamoDB helpers
"""
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from app.core.errors import ValidationError
from app.dependencies import get_snapshot_cache
from app.main import app
from app.models.tables import decode_page_token, encode_page_token
from app.routers import legacy, products
from app.services.dashboard_cache import DashboardSnapshot, DashboardSnapshotCache

NOW_ORDERS = [
    {
        "id": str(i),
        "name": f"#{1000 + i}",
        "date": datetime.now(timezone.utc).date().isoformat(),
        "created_at": datetime.now(timezone.utc).isoformat(),
        "total": "10.00",
        "status": "paid",
    }
    for i in range(12)
]


@pytest.fixture
def snapshot_cache():
    cache = DashboardSnapshotCache(refresh_interval=3600)
    cache._snapshot = DashboardSnapshot(
        orders=tuple(NOW_ORDERS),
        products=({"id": "p1", "title": "Cushion", "variants": [{"inventory": 2}]},),
        customers=({"id": "c1"},),
        loaded_at=cache._clock(),
        refreshed_at="2025-06-15T06:00:00.000Z",
    )
    return cache


@pytest.fixture
def client(snapshot_cache):
    app.dependency_overrides[get_snapshot_cache] = lambda: snapshot_cache
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_page_token_round_trip():
    token = encode_page_token({"id": "42"})
    assert decode_page_token(token) == {"id": "42"}
    assert encode_page_token(None) is None
    with pytest.raises(ValidationError):
        decode_page_token("%%%")


def test_orders_page_passes_filters(client, monkeypatch):
    seen = {}

    async def fake_scan_page(table_name, limit=20, next_token=None, date_from=None, date_to=None):
        seen.update(table=table_name, limit=limit, token=next_token, date_from=date_from, date_to=date_to)
        return {"items": [{"id": "1"}], "count": 1, "nextToken": "abc"}

    monkeypatch.setattr(legacy, "scan_page", fake_scan_page)
    response = client.get("/api/orders", params={"limit": 5, "startKey": "tok", "dateFrom": "2025-06-01"})

    assert response.status_code == 200
    assert response.json() == {"orders": [{"id": "1"}], "count": 1, "nextToken": "abc"}
    assert seen["limit"] == 5
    assert seen["token"] == "tok"
    assert seen["date_from"] == "2025-06-01"
    assert seen["date_to"] is None


def test_customers_page(client, monkeypatch):
    async def fake_scan_page(table_name, limit=20, next_token=None, **filters):
        return {"items": [], "count": 0, "nextToken": None}

    monkeypatch.setattr(legacy, "scan_page", fake_scan_page)
    assert client.get("/api/customers").json() == {"customers": [], "count": 0, "nextToken": None}


def test_invalid_page_token_is_400(client):
    response = client.get("/api/products", params={"nextToken": "%%%"})
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid nextToken"}


def test_dashboard_summary_route(client):
    body = client.get("/api/dashboard/summary", params={"timeframe": "day"}).json()
    assert body["salesSummary"]["totalSales"] == 120
    assert body["ordersSummary"]["totalOrders"] == 12
    assert body["inventorySummary"]["lowStock"] == 1
    assert body["lastUpdated"] == "2025-06-15T06:00:00.000Z"


def test_sales_analytics_route(client):
    body = client.get("/api/analytics/sales").json()
    assert len(body["labels"]) == 7
    assert body["totalOrders"] == 12


def test_recent_orders_route(client):
    body = client.get("/api/orders/recent", params={"page": 2, "pageSize": 5}).json()
    assert body["page"] == 2
    assert body["total"] == 12
    assert body["totalPages"] == 3
    assert len(body["orders"]) == 5


def test_sync_status_never_run(client, monkeypatch):
    async def no_metadata(sync_id="latest"):
        return None

    monkeypatch.setattr(legacy, "get_sync_metadata", no_metadata)
    assert client.get("/api/sync/status").json() == {"syncStatus": {"status": "never_run"}}


def test_store_summary_route(client, monkeypatch):
    async def latest(sync_id="latest"):
        return {"syncId": "latest", "status": "completed", "completedAt": "2025-06-15T05:00:00Z"}

    monkeypatch.setattr(legacy, "get_sync_metadata", latest)
    summary = client.get("/api/store/summary").json()["summary"]
    assert summary["totalOrders"] == 12
    assert summary["totalRevenue"] == 120
    assert summary["totalCustomers"] == 1
    assert summary["lastSyncTime"] == "2025-06-15T05:00:00Z"


def test_products_routes(client, monkeypatch):
    async def fake_scan_all(table_name):
        return [{"id": "p1"}, {"id": "p2"}]

    async def fake_get_item(table_name, key, key_name="id"):
        return {"id": key} if key == "p1" else None

    monkeypatch.setattr(products, "scan_all", fake_scan_all)
    monkeypatch.setattr(products, "get_item", fake_get_item)

    body = client.get("/products/get-all-products").json()
    assert body == {"success": True, "count": 2, "data": [{"id": "p1"}, {"id": "p2"}]}

    assert client.get("/products/get-product-by-id/p1").json()["data"] == {"id": "p1"}
    missing = client.get("/products/get-product-by-id/p9")
    assert missing.status_code == 404
    assert missing.json() == {"success": False, "message": "Product not found"}


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}
