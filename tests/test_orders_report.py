"""
Orders report endpoints with a fake warehouse and cache
"""
import pytest
from fastapi.testclient import TestClient

from app.dependencies import get_orders_report
from app.main import app
from app.services.orders_report import OrdersReportService, build_overview, price_sku_quantities
from app.services.sku_catalog import SkuCatalog

from tests.fakes import FakeBigQuery, FakeCache

CATALOG = SkuCatalog([
    {
        "MasterSKU": "CUSHION-01",
        "variants": [
            {"cogs": 100, "sdCost": 10, "variantSkus": [{"storeName": "Shopify", "variant_sku": "CUSH-GRY"}]},
        ],
    },
])

OVERVIEW_TOTALS = {
    "total_orders": 10,
    "cancelled_orders": 1,
    "total_customers": 8,
    "gross_sales": 1100,
    "total_discounts": 100,
    "total_sales": 1000,
    "total_tax": 50,
    "total_shipping": 20,
    "refunded_orders": 2,
    "refunded_amount": 0,
}


@pytest.fixture
def bq():
    return FakeBigQuery({
        "orders_overview": [OVERVIEW_TOTALS],
        "sku_quantities": [{"sku": "CUSH-GRY", "quantity": 4}, {"sku": "MYSTERY", "quantity": 1}],
        "orders_time_range": [{"period": "2025-06-01", "order_count": 3, "revenue": 300.0, "refund_count": 0}],
        "orders_top_selling": lambda params: [{"product_name": "Cushion", "limit": params["limit"]}],
        "refund_metrics": [{"total_refunds": 0, "total_refunded_amount": None}],
    })


@pytest.fixture
def service(bq, settings):
    return OrdersReportService(bq=bq, cache=FakeCache(), catalog=CATALOG, settings=settings)


@pytest.fixture
def client(service):
    app.dependency_overrides[get_orders_report] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_overview_cogs_from_catalog(client):
    response = client.get("/orders/overview", params={
        "startDate": "2025-06-01", "endDate": "2025-06-15", "store": "myfrido",
    })
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["store"] == "myfrido"
    assert body["cached"] is False

    overview = body["data"]["overview"]
    assert overview["cogs"] == 400
    assert overview["cogsPercentage"] == 40
    assert overview["sdCost"] == 40
    assert overview["netOrders"] == 9
    assert overview["aov"] == 100
    assert overview["returnRate"] == 20
    assert overview["marketingSpend"] == 0
    assert overview["roas"] == 0
    assert overview["unmappedSkus"] == ["MYSTERY"]
    assert body["data"]["dateRange"] == {"since": "2025-06-01", "until": "2025-06-15"}


def test_overview_second_call_is_cached(client, bq):
    params = {"startDate": "2025-06-01", "endDate": "2025-06-15", "store": "myfrido"}
    client.get("/orders/overview", params=params)
    queries = len(bq.calls)
    body = client.get("/orders/overview", params=params).json()
    assert body["cached"] is True
    assert len(bq.calls) == queries


def test_missing_dates_is_400(client, bq):
    response = client.get("/orders/overview", params={"startDate": "2025-06-01"})
    assert response.status_code == 400
    assert response.json()["message"] == "Start date and end date are required"
    assert bq.calls == []


def test_bad_date_is_400(client):
    response = client.get("/orders/overview", params={"startDate": "June", "endDate": "2025-06-15"})
    assert response.status_code == 400


def test_time_range_and_top_selling(client, bq):
    body = client.get("/orders/time-range", params={
        "startDate": "2025-06-01", "endDate": "2025-06-02", "timeframe": "month",
    }).json()
    assert body["data"][0]["revenue"] == 300.0
    assert bq.calls[-1][1]["date_format"] == "%Y-%m"

    body = client.get("/orders/top-selling", params={"startDate": "2025-06-01", "endDate": "2025-06-02"}).json()
    assert body["data"][0]["limit"] == 5


def test_refund_metrics_without_refunds(client):
    body = client.get("/orders/refund-metrics", params={"startDate": "2025-06-01", "endDate": "2025-06-02"}).json()
    assert body["data"] == {
        "total_refunds": 0,
        "total_refunded_amount": 0.0,
        "orders_with_refunds": 0,
        "average_refund_amount": 0,
    }


def test_build_overview_with_nothing_sold():
    costs = price_sku_quantities([], CATALOG)
    overview = build_overview({}, costs, 0.0)
    assert overview["totalOrders"] == 0
    assert overview["aov"] == 0
    assert overview["cogsPercentage"] == 0
    assert overview["cm2Percentage"] == 0
