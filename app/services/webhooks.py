"""
Shopify webhook handling: signature check, REST payload -> store record, upsert or delete.
"""
import base64
import hashlib
import hmac
from typing import Any, Callable, Optional

from loguru import logger

from app.core.config import Settings, get_settings
from app.models.tables import delete_item, put_item
from app.schemas.records import (
    Address,
    CustomerRecord,
    CustomerRef,
    LineItem,
    OrderRecord,
    ProductRecord,
    Variant,
)
from app.services.dashboard_cache import DashboardSnapshotCache
from app.sync_utils import format_money, now_iso, split_list

WEBHOOK_SOURCE = "webhook"

HMAC_HEADER = "X-Shopify-Hmac-Sha256"
TOPIC_HEADER = "X-Shopify-Topic"
SHOP_HEADER = "X-Shopify-Shop-Domain"


def compute_signature(body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_webhook(body: bytes, headers: Any, secret: Optional[str]) -> bool:
    """True when the HMAC, topic and shop headers are present and the HMAC matches the raw body."""
    signature = headers.get(HMAC_HEADER)
    if not secret or not signature or not headers.get(TOPIC_HEADER) or not headers.get(SHOP_HEADER):
        return False
    return hmac.compare_digest(signature, compute_signature(body, secret))


def is_delete_topic(topic: str) -> bool:
    return topic.rsplit("/", 1)[-1] in ("delete", "deleted")


def _str_id(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


def _address(data: Optional[dict[str, Any]]) -> Optional[Address]:
    if not data:
        return None
    return Address(
        name=data.get("name"),
        company=data.get("company"),
        address1=data.get("address1"),
        address2=data.get("address2"),
        city=data.get("city"),
        province=data.get("province"),
        country=data.get("country"),
        zip=data.get("zip"),
        phone=data.get("phone"),
        default=data.get("default"),
    )


def map_order(payload: dict[str, Any]) -> OrderRecord:
    settings = get_settings()
    customer = payload.get("customer")
    created_at = payload.get("created_at") or now_iso()
    return OrderRecord(
        id=str(payload["id"]),
        name=payload.get("name"),
        email=payload.get("email"),
        customer=CustomerRef(
            id=_str_id(customer.get("id")),
            name=f"{customer.get('first_name') or ''} {customer.get('last_name') or ''}".strip() or None,
            email=customer.get("email"),
        ) if customer else None,
        status=payload.get("financial_status") or "unknown",
        fulfillment_status=payload.get("fulfillment_status") or "unfulfilled",
        currency=payload.get("currency") or settings.DEFAULT_CURRENCY,
        total=format_money(payload.get("total_price")),
        subtotal=format_money(payload.get("subtotal_price")),
        tax=format_money(payload.get("total_tax")),
        created_at=created_at,
        updated_at=payload.get("updated_at") or created_at,
        date=created_at[:10],
        line_items=[
            LineItem(
                id=str(item.get("id")),
                product_id=_str_id(item.get("product_id")),
                variant_id=_str_id(item.get("variant_id")),
                title=item.get("title") or "Unknown Product",
                quantity=item["quantity"] if item.get("quantity") is not None else 1,
                price=format_money(item.get("price")),
                sku=item.get("sku") or None,
                requires_shipping=bool(item.get("requires_shipping")),
            )
            for item in payload.get("line_items") or []
        ],
        shipping_address=_address(payload.get("shipping_address")),
        billing_address=_address(payload.get("billing_address")),
        tags=split_list(payload.get("tags") or ""),
        discount_codes=payload.get("discount_codes") or [],
        note=payload.get("note"),
        cancelled_at=payload.get("cancelled_at"),
        processed_at=payload.get("processed_at"),
        synced_at=now_iso(),
        import_source=WEBHOOK_SOURCE,
    )


def map_product(payload: dict[str, Any]) -> ProductRecord:
    return ProductRecord(
        id=str(payload["id"]),
        title=payload.get("title") or "Unnamed Product",
        handle=payload.get("handle"),
        description=payload.get("body_html") or "",
        type=payload.get("product_type") or "",
        vendor=payload.get("vendor"),
        status=payload.get("status") or "active",
        tags=split_list(payload.get("tags") or ""),
        variants=[Variant.model_validate(v) for v in payload.get("variants") or []],
        options=payload.get("options") or [],
        images=[
            {"id": _str_id(i.get("id")), "position": i.get("position"), "src": i.get("src"), "alt": i.get("alt") or ""}
            for i in payload.get("images") or []
        ],
        created_at=payload.get("created_at"),
        updated_at=payload.get("updated_at"),
        synced_at=now_iso(),
        import_source=WEBHOOK_SOURCE,
    )


def map_customer(payload: dict[str, Any]) -> CustomerRecord:
    settings = get_settings()
    return CustomerRecord(
        id=str(payload["id"]),
        email=payload.get("email"),
        first_name=payload.get("first_name") or "",
        last_name=payload.get("last_name") or "",
        phone=payload.get("phone") or "",
        orders_count=payload.get("orders_count") or 0,
        total_spent=format_money(payload.get("total_spent")),
        currency=payload.get("currency") or settings.DEFAULT_CURRENCY,
        addresses=[a for a in (_address(x) for x in payload.get("addresses") or []) if a],
        tags=split_list(payload.get("tags") or ""),
        note=payload.get("note"),
        tax_exempt=bool(payload.get("tax_exempt")),
        accepts_marketing=bool(payload.get("accepts_marketing")),
        state=payload.get("state") or "enabled",
        created_at=payload.get("created_at"),
        updated_at=payload.get("updated_at"),
        synced_at=now_iso(),
        import_source=WEBHOOK_SOURCE,
    )


MAPPERS: dict[str, Callable[[dict[str, Any]], Any]] = {
    "orders": map_order,
    "products": map_product,
    "customers": map_customer,
}


class WebhookProcessor:
    """Applies one verified webhook to its table and to the dashboard snapshot."""

    def __init__(self, snapshot_cache: DashboardSnapshotCache, settings: Optional[Settings] = None):
        self.snapshot_cache = snapshot_cache
        self.settings = settings or get_settings()

    @property
    def secret(self) -> Optional[str]:
        return self.settings.SHOPIFY_WEBHOOK_SECRET or self.settings.SHOPIFY_CLIENT_SECRET

    def verify(self, body: bytes, headers: Any) -> bool:
        return verify_webhook(body, headers, self.secret)

    async def process(self, resource: str, topic: str, payload: dict[str, Any]) -> str:
        """Returns 'deleted' or 'upserted'."""
        if resource not in MAPPERS:
            raise ValueError(f"unknown resource: {resource}")
        table = self.settings.table_name(resource)
        record_id = str(payload["id"])
        logger.info(f"webhook {topic} for {resource} {record_id}")

        if is_delete_topic(topic):
            await delete_item(table, record_id)
            await self.snapshot_cache.apply_delete(resource, record_id)
            return "deleted"

        record = MAPPERS[resource](payload).model_dump(mode="json", exclude_none=True)
        await put_item(table, record)
        await self.snapshot_cache.apply_upsert(resource, record)
        return "upserted"
