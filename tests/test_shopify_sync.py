"""
Shopify GraphQL sync tests
"""
import json

import httpx
import pytest

from app.core.config import Settings
from app.core.errors import UpstreamError
from app.core.retry import RetryPolicy
from app.importer.batch_writer import BatchWriter
from app.models.sync_metadata import LATEST_SYNC_ID
from app.services import shopify_service
from app.services.shopify_service import (
    ShopifyService,
    node_to_customer,
    node_to_order,
    node_to_product,
    parse_gid,
)
from app.services.shopify_sync import ShopifySync, overall_status

from tests.fakes import FakeTable, MetadataRecorder, no_sleep

ORDER_NODE = {
    "id": "gid://shopify/Order/5001",
    "name": "#1001",
    "createdAt": "2025-06-14T04:30:00Z",
    "displayFinancialStatus": "PAID",
    "displayFulfillmentStatus": "FULFILLED",
    "tags": ["vip"],
    "discountCodes": ["SAVE10"],
    "customer": {"id": "gid://shopify/Customer/77", "displayName": "Asha Rao", "email": "asha@example.com"},
    "totalPriceSet": {"shopMoney": {"amount": "598.9", "currencyCode": "INR"}},
    "subtotalPriceSet": {"shopMoney": {"amount": "500"}},
    "shippingAddress": {"city": "Pune", "zip": "411001"},
    "lineItems": {"edges": [{"node": {
        "id": "gid://shopify/LineItem/9",
        "name": "Seat Cushion",
        "quantity": 2,
        "sku": "CUSH-GRY",
        "product": {"id": "gid://shopify/Product/632910392"},
        "originalUnitPriceSet": {"shopMoney": {"amount": "299.45"}},
    }}]},
}


def shop_settings(**overrides) -> Settings:
    values = {"SHOPIFY_STORE_NAME": "demo", "SHOPIFY_ACCESS_TOKEN": "shpat_test", **overrides}
    return Settings(_env_file=None, **values)


@pytest.fixture(autouse=True)
def reset_token_cache(monkeypatch):
    monkeypatch.setattr(shopify_service, "_TOKEN_CACHE", None)


def test_parse_gid():
    assert parse_gid("gid://shopify/Order/126216516") == "126216516"
    assert parse_gid("plain") == "plain"
    assert parse_gid(None) is None


def test_node_to_order():
    order = node_to_order(ORDER_NODE)
    assert order.id == "5001"
    assert order.status == "paid"
    assert order.fulfillment_status == "fulfilled"
    assert order.total == "598.90"
    assert order.tax == "0.00"
    assert order.date == "2025-06-14"
    assert order.customer.id == "77"
    assert order.customer.name == "Asha Rao"
    assert order.shipping_address.city == "Pune"
    assert order.discount_codes == [{"code": "SAVE10"}]
    item = order.line_items[0]
    assert (item.id, item.product_id, item.price, item.quantity) == ("9", "632910392", "299.45", 2)


def test_node_to_product_and_customer():
    product = node_to_product({
        "id": "gid://shopify/Product/1",
        "status": "ACTIVE",
        "variants": {"edges": [{"node": {"id": "gid://shopify/ProductVariant/2", "price": "10", "inventoryQuantity": 4}}]},
        "images": {"edges": [{"node": {"id": "gid://shopify/ProductImage/3", "url": "https://cdn/x.png"}}]},
    })
    assert product.status == "active"
    assert product.variants[0].inventory == 4
    assert product.variants[0].price == "10.00"
    assert product.images == [{"id": "3", "src": "https://cdn/x.png", "alt": ""}]

    customer = node_to_customer({
        "id": "gid://shopify/Customer/7",
        "numberOfOrders": "3",
        "amountSpent": {"amount": "120.5", "currencyCode": "USD"},
        "emailMarketingConsent": {"marketingState": "SUBSCRIBED"},
        "addresses": [{"address1": "1 Main St"}, {"address1": "2 Side St"}],
        "defaultAddress": {"address1": "2 Side St"},
    })
    assert customer.id == "7"
    assert customer.orders_count == 3
    assert customer.total_spent == "120.50"
    assert customer.currency == "USD"
    assert customer.accepts_marketing is True
    assert [a.default for a in customer.addresses] == [False, True]


def test_credentials_required():
    with pytest.raises(ValueError):
        ShopifyService(settings=Settings(_env_file=None, SHOPIFY_STORE_NAME="demo"))


async def test_fetch_orders_pages_through_cursor():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        requests.append((request.headers["X-Shopify-Access-Token"], body["variables"]))
        if "after" not in body["variables"]:
            page = {"edges": [{"node": ORDER_NODE}], "pageInfo": {"hasNextPage": True, "endCursor": "c1"}}
        else:
            node = {**ORDER_NODE, "id": "gid://shopify/Order/5002"}
            page = {"edges": [{"node": node}], "pageInfo": {"hasNextPage": False, "endCursor": None}}
        return httpx.Response(200, json={"data": {"orders": page}})

    service = ShopifyService(settings=shop_settings(), transport=httpx.MockTransport(handler))
    orders = await service.fetch_orders(created_at_min="2025-06-01")

    assert [o.id for o in orders] == ["5001", "5002"]
    assert requests[0][0] == "shpat_test"
    assert requests[0][1]["query"] == "status:any created_at:>=2025-06-01"
    assert requests[1][1]["after"] == "c1"


async def test_limit_stops_paging():
    def handler(request):
        page = {"edges": [{"node": ORDER_NODE}, {"node": ORDER_NODE}], "pageInfo": {"hasNextPage": True, "endCursor": "c"}}
        return httpx.Response(200, json={"data": {"orders": page}})

    service = ShopifyService(settings=shop_settings(), transport=httpx.MockTransport(handler))
    assert len(await service.fetch_orders(limit=1)) == 1


async def test_client_credentials_token_is_fetched_once():
    token_calls = []

    def handler(request):
        if request.url.path.endswith("/oauth/access_token"):
            token_calls.append(request.content)
            return httpx.Response(200, json={"access_token": "shpca_fresh", "expires_in": 86399})
        assert request.headers["X-Shopify-Access-Token"] == "shpca_fresh"
        return httpx.Response(200, json={"data": {"products": {"edges": [], "pageInfo": {"hasNextPage": False}}}})

    settings = shop_settings(SHOPIFY_ACCESS_TOKEN=None, SHOPIFY_CLIENT_ID="id", SHOPIFY_CLIENT_SECRET="secret")
    service = ShopifyService(settings=settings, transport=httpx.MockTransport(handler))
    await service.fetch_products()
    await service.fetch_products()
    assert len(token_calls) == 1
    assert b"grant_type=client_credentials" in token_calls[0]


async def test_throttled_query_is_retried():
    attempts = []

    def handler(request):
        attempts.append(1)
        if len(attempts) == 1:
            return httpx.Response(200, json={"errors": [{"message": "Throttled", "extensions": {"code": "THROTTLED"}}]})
        return httpx.Response(200, json={"data": {"customers": {"edges": [], "pageInfo": {"hasNextPage": False}}}})

    service = ShopifyService(
        settings=shop_settings(),
        transport=httpx.MockTransport(handler),
        retry_policy=RetryPolicy(max_attempts=2, base_delay=0.0),
    )
    assert await service.fetch_customers() == []
    assert len(attempts) == 2


async def test_graphql_errors_raise():
    def handler(request):
        return httpx.Response(200, json={"errors": [{"message": "Field 'x' doesn't exist"}]})

    service = ShopifyService(settings=shop_settings(), transport=httpx.MockTransport(handler))
    with pytest.raises(UpstreamError):
        await service.fetch_products()


def test_overall_status():
    assert overall_status({"a": {"success": True}, "b": {"success": True}}) == "success"
    assert overall_status({"a": {"success": True}, "b": {"success": False}}) == "partial_success"
    assert overall_status({"a": {"success": False}}) == "failed"
    assert overall_status({}) == "failed"


class FakeShopify:
    def __init__(self, records, failing=()):
        self.records = records
        self.failing = set(failing)

    async def fetch(self, resource, limit=None):
        if resource in self.failing:
            raise UpstreamError(f"{resource} unavailable")
        return self.records.get(resource, [])


async def test_sync_run_continues_after_a_failed_resource():
    tables = {}

    def writer_for(resource):
        tables[resource] = FakeTable(resource)
        return BatchWriter(tables[resource], sleep=no_sleep)

    fake = FakeShopify(
        {"products": [{"id": "1"}, {"id": "2"}], "orders": [node_to_order(ORDER_NODE)]},
        failing={"customers"},
    )
    metadata = MetadataRecorder()
    sync = ShopifySync(fake, writer_for, metadata_writer=metadata.write, last_sync_writer=metadata.write_last_sync)
    result = await sync.run()

    assert result["status"] == "partial_success"
    assert result["totalItemsSynced"] == 3
    assert result["results"]["customers"] == {
        "success": False, "fetched": 0, "count": 0, "failed": 0, "error": "customers unavailable",
    }
    assert set(tables["orders"].items) == {"5001"}
    assert metadata.last_sync == ["products", "orders"]
    assert metadata.statuses(result["syncId"]) == ["started", "partial_success"]
    latest = metadata.rows[-1]
    assert latest["syncId"] == LATEST_SYNC_ID
    assert latest["lastSyncId"] == result["syncId"]
