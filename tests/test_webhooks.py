"""
Shopify webhooks: HMAC verification, payload mapping, table + snapshot updates
"""
import json

import pytest
from fastapi.testclient import TestClient

from app.core.config import Settings
from app.dependencies import get_webhook_processor
from app.main import app
from app.services import webhooks
from app.services.dashboard_cache import DashboardSnapshot, DashboardSnapshotCache
from app.services.webhooks import (
    HMAC_HEADER,
    SHOP_HEADER,
    TOPIC_HEADER,
    WebhookProcessor,
    compute_signature,
    is_delete_topic,
    map_customer,
    map_order,
    map_product,
    verify_webhook,
)

SECRET = "shpss_test"

ORDER_PAYLOAD = {
    "id": 820982911946154500,
    "name": "#9999",
    "email": "jon@example.com",
    "created_at": "2025-06-14T10:00:00+05:30",
    "financial_status": "paid",
    "currency": "INR",
    "total_price": "598.94",
    "customer": {"id": 115310627314723950, "first_name": "Jon", "last_name": "Snow"},
    "line_items": [
        {"id": 866550311766439000, "product_id": 632910392, "title": "IPod Nano", "quantity": 1,
         "price": "199.00", "sku": "IPOD2008PINK"},
    ],
    "shipping_address": {"city": "Pune"},
    "tags": "wholesale, vip",
}


def headers(body: bytes, topic: str = "orders/create", secret: str = SECRET) -> dict:
    return {
        HMAC_HEADER: compute_signature(body, secret),
        TOPIC_HEADER: topic,
        SHOP_HEADER: "example.myshopify.com",
        "Content-Type": "application/json",
    }


class Recorder:
    def __init__(self):
        self.puts = []
        self.deletes = []

    async def put_item(self, table, record):
        self.puts.append((table, record))

    async def delete_item(self, table, key):
        self.deletes.append((table, key))


@pytest.fixture
def tables(monkeypatch):
    recorder = Recorder()
    monkeypatch.setattr(webhooks, "put_item", recorder.put_item)
    monkeypatch.setattr(webhooks, "delete_item", recorder.delete_item)
    return recorder


@pytest.fixture
def snapshot_cache():
    cache = DashboardSnapshotCache(refresh_interval=3600)
    cache._snapshot = DashboardSnapshot(
        orders=({"id": "1"},),
        products=({"id": "632910392"},),
        loaded_at=cache._clock(),
    )
    return cache


@pytest.fixture
def processor(snapshot_cache):
    return WebhookProcessor(snapshot_cache, settings=Settings(_env_file=None, SHOPIFY_WEBHOOK_SECRET=SECRET))


@pytest.fixture
def client(processor):
    app.dependency_overrides[get_webhook_processor] = lambda: processor
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_verify_webhook():
    body = b'{"id": 1}'
    assert verify_webhook(body, headers(body), SECRET)
    assert not verify_webhook(body, headers(body, secret="other"), SECRET)
    assert not verify_webhook(body + b" ", headers(body), SECRET)
    assert not verify_webhook(body, headers(body), None)

    missing_topic = headers(body)
    del missing_topic[TOPIC_HEADER]
    assert not verify_webhook(body, missing_topic, SECRET)


def test_secret_falls_back_to_client_secret(snapshot_cache):
    settings = Settings(_env_file=None, SHOPIFY_CLIENT_SECRET="client-secret")
    assert WebhookProcessor(snapshot_cache, settings=settings).secret == "client-secret"


def test_delete_topics():
    assert is_delete_topic("products/delete")
    assert is_delete_topic("customers/deleted")
    assert not is_delete_topic("orders/updated")


def test_map_order():
    order = map_order(ORDER_PAYLOAD)
    assert order.id == "820982911946154500"
    assert order.customer.name == "Jon Snow"
    assert order.customer.id == "115310627314723950"
    assert order.total == "598.94"
    assert order.date == "2025-06-14"
    assert order.updated_at == order.created_at
    assert order.line_items[0].product_id == "632910392"
    assert order.tags == ["wholesale", "vip"]
    assert order.import_source == "webhook"


def test_map_product_and_customer():
    product = map_product({
        "id": 632910392,
        "title": "IPod Nano",
        "variants": [{"id": 808950810, "price": "199.00", "sku": "IPOD2008PINK", "inventory_quantity": 10}],
        "images": [{"id": 1, "position": 1, "src": "https://cdn.example.com/a.png"}],
    })
    assert product.variants[0].inventory == 10
    assert product.variants[0].id == "808950810"
    assert product.images[0]["alt"] == ""

    customer = map_customer({"id": 207119551, "first_name": "Bob", "addresses": [{"city": "Ottawa"}, None]})
    assert customer.id == "207119551"
    assert customer.total_spent == "0.00"
    assert len(customer.addresses) == 1


def test_order_webhook_upserts(client, tables, processor):
    body = json.dumps(ORDER_PAYLOAD).encode()
    response = client.post("/api/webhooks/orders", content=body, headers=headers(body))

    assert response.status_code == 200
    assert response.text == "Webhook processed successfully"
    table, record = tables.puts[0]
    assert table == processor.settings.ORDERS_TABLE
    assert record["id"] == "820982911946154500"
    ids = [o["id"] for o in processor.snapshot_cache.snapshot.orders]
    assert ids == ["1", "820982911946154500"]


def test_product_delete_webhook(client, tables, processor):
    body = json.dumps({"id": 632910392}).encode()
    response = client.post("/api/webhooks/products", content=body, headers=headers(body, "products/delete"))

    assert response.status_code == 200
    assert tables.deletes == [(processor.settings.PRODUCTS_TABLE, "632910392")]
    assert tables.puts == []
    assert processor.snapshot_cache.snapshot.products == ()


def test_bad_signature_is_401(client, tables):
    body = json.dumps(ORDER_PAYLOAD).encode()
    response = client.post("/api/webhooks/orders", content=body, headers=headers(body, secret="wrong"))
    assert response.status_code == 401
    assert response.text == "Invalid webhook signature"
    assert tables.puts == []


def test_unknown_resource_is_404(client):
    body = b"{}"
    assert client.post("/api/webhooks/refunds", content=body, headers=headers(body)).status_code == 404


def test_payload_without_id_is_400(client, tables):
    body = json.dumps({"title": "no id"}).encode()
    response = client.post("/api/webhooks/products", content=body, headers=headers(body, "products/update"))
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid webhook payload"}


def test_signed_body_that_is_not_utf8_is_400(client, tables):
    body = b'{"id": "\xff\xfe"}'
    response = client.post("/api/webhooks/orders", content=body, headers=headers(body))
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid webhook payload"}
    assert tables.puts == []


def test_numeric_amounts_are_stored_with_two_decimals():
    order = map_order({
        "id": 1,
        "created_at": "2025-06-14T10:00:00Z",
        "total_price": 12.5,
        "subtotal_price": 10,
        "total_tax": None,
        "line_items": [{"id": 9, "price": 4.5, "quantity": 0}, {"id": 10, "price": "3"}],
    })
    assert (order.total, order.subtotal, order.tax) == ("12.50", "10.00", "0.00")
    assert [(i.price, i.quantity) for i in order.line_items] == [("4.50", 0), ("3.00", 1)]
    assert map_customer({"id": 2, "total_spent": 7}).total_spent == "7.00"
