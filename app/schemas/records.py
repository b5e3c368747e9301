"""
Persisted record shapes for the Orders / Products / Customers / SyncMetadata tables

Monetary amounts are strings with two decimals. Timestamps are ISO-8601 strings.
"""
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, field_validator, model_validator


class Address(BaseModel):
    name: Optional[str] = None
    company: Optional[str] = None
    address1: Optional[str] = None
    address2: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    country: Optional[str] = None
    zip: Optional[str] = None
    phone: Optional[str] = None
    default: Optional[bool] = None

    model_config = ConfigDict(from_attributes=True)


class CustomerRef(BaseModel):
    """Customer embedded in an order"""
    id: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None


class LineItem(BaseModel):
    id: str
    product_id: Optional[str] = None
    variant_id: Optional[str] = None
    title: str = "Unknown Product"
    quantity: int = 1
    price: str = "0.00"
    sku: Optional[str] = None
    requires_shipping: bool = False


class OrderRecord(BaseModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    customer: Optional[CustomerRef] = None
    status: str = "unknown"
    fulfillment_status: str = "unfulfilled"
    currency: str = "INR"
    total: str = "0.00"
    subtotal: str = "0.00"
    tax: str = "0.00"
    created_at: str
    updated_at: str
    date: str
    line_items: list[LineItem] = []
    shipping_address: Optional[Address] = None
    billing_address: Optional[Address] = None
    tags: list[str] = []
    discount_codes: list[dict[str, Any]] = []
    note: Optional[str] = None
    cancelled_at: Optional[str] = None
    processed_at: Optional[str] = None
    synced_at: Optional[str] = None
    import_source: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("id")
    @classmethod
    def _id_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("order id must not be empty")
        return v


class Variant(BaseModel):
    id: Optional[str] = None
    title: Optional[str] = None
    price: Optional[str] = None
    sku: Optional[str] = None
    inventory: Optional[int] = None

    model_config = ConfigDict(extra="allow")

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if data.get("inventory") is None and data.get("inventory_quantity") is not None:
            data["inventory"] = data.pop("inventory_quantity")
        if data.get("id") is not None:
            data["id"] = str(data["id"])
        price = data.get("price")
        if isinstance(price, (int, float)):
            data["price"] = f"{float(price):.2f}"
        return data


class ProductRecord(BaseModel):
    id: str
    title: str = "Unnamed Product"
    handle: Optional[str] = None
    description: Optional[str] = None
    type: Optional[str] = None
    vendor: Optional[str] = None
    status: str = "active"
    tags: list[str] = []
    variants: list[Variant] = []
    options: list[Any] = []
    images: list[Any] = []
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    synced_at: Optional[str] = None
    import_source: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class CustomerRecord(BaseModel):
    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    orders_count: int = 0
    total_spent: str = "0.00"
    currency: str = "INR"
    addresses: list[Address] = []
    tags: list[str] = []
    note: Optional[str] = None
    tax_exempt: bool = False
    accepts_marketing: bool = False
    state: str = "enabled"
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    synced_at: Optional[str] = None
    import_source: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class SyncMetadata(BaseModel):
    """
    One SyncMetadata row. syncId is 'latest', '<resource>_last_sync' or a per-run import id.
    Counters vary by status, so extra fields are kept.
    """
    syncId: str
    status: Optional[str] = None
    resource: Optional[str] = None
    timestamp: Optional[str] = None
    last_sync: Optional[str] = None

    model_config = ConfigDict(extra="allow")
