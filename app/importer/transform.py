"""
CSV row -> store record transformers for Shopify order / customer / product exports.

Each transformer is pure: it returns a record, or None (logged) when the row has no
usable id or cannot be parsed. One CSV row is one record; line-item rows of the same
order are not merged.
"""
import json
import random
import time
from typing import Any, Callable, Optional

from loguru import logger
from pydantic import ValidationError

from app.core.config import get_settings
from app.schemas.records import (
    Address,
    CustomerRecord,
    CustomerRef,
    LineItem,
    OrderRecord,
    ProductRecord,
)
from app.sync_utils import format_money, now_iso, safe_int, split_list

Row = dict[str, Any]

CSV_IMPORT_SOURCE = "csv_export"


def _get(row: Row, *keys: str) -> str:
    """First non-empty value among the given columns, stripped."""
    for key in keys:
        value = row.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return ""


def clean_id(value: Any) -> str:
    """Strip whitespace and the leading quote spreadsheets add to numeric ids."""
    s = str(value or "").strip()
    if s.startswith("'"):
        s = s[1:].strip()
    return s


def _opt(row: Row, *keys: str) -> Optional[str]:
    return _get(row, *keys) or None


def _address(row: Row, prefix: str) -> Optional[Address]:
    """'Shipping' / 'Billing' address columns; None when every field is empty."""
    address = Address(
        name=_opt(row, f"{prefix} Name"),
        company=_opt(row, f"{prefix} Company"),
        address1=_opt(row, f"{prefix} Street", f"{prefix} Address1"),
        address2=_opt(row, f"{prefix} Address2"),
        city=_opt(row, f"{prefix} City"),
        province=_opt(row, f"{prefix} Province", f"{prefix} Region"),
        country=_opt(row, f"{prefix} Country"),
        zip=_opt(row, f"{prefix} Zip", f"{prefix} Postal Code"),
        phone=_opt(row, f"{prefix} Phone"),
    )
    if not any(address.model_dump(exclude_none=True).values()):
        return None
    return address


def _line_item(row: Row) -> LineItem:
    item_id = _get(row, "Lineitem id") or f"item-{int(time.time() * 1000)}-{random.randint(0, 999999)}"
    return LineItem(
        id=clean_id(item_id),
        product_id=_opt(row, "Lineitem product id", "Lineitem product_id"),
        variant_id=_opt(row, "Lineitem variant id", "Lineitem variant_id"),
        title=_get(row, "Lineitem name") or "Unknown Product",
        quantity=safe_int(_get(row, "Lineitem quantity"), 1) or 1,
        price=format_money(_get(row, "Lineitem price") or "0.00"),
        sku=_opt(row, "Lineitem sku"),
        requires_shipping=_get(row, "Lineitem requires shipping").lower() == "true",
    )


def transform_order_row(row: Row) -> Optional[OrderRecord]:
    try:
        order_id = clean_id(_get(row, "Order ID", "Name", "Id"))
        if not order_id:
            logger.warning(f"order row without id skipped: {list(row.keys())[:5]}")
            return None

        settings = get_settings()
        created_at = _get(row, "Created at", "Created At") or now_iso()
        updated_at = _get(row, "Updated at", "Updated At") or created_at
        customer_name = _get(row, "Shipping Name", "Billing Name")
        discount_codes = [{"code": code} for code in split_list(_get(row, "Discount Codes", "Discount Code"))]

        return OrderRecord(
            id=order_id,
            name=_get(row, "Name") or f"Order #{order_id}",
            email=_opt(row, "Email"),
            customer=CustomerRef(
                id=clean_id(_get(row, "Customer ID", "Customer Id")) or None,
                name=customer_name or None,
                email=_opt(row, "Email"),
            ),
            status=_get(row, "Financial Status", "Status") or "unknown",
            fulfillment_status=_get(row, "Fulfillment Status") or "unfulfilled",
            currency=_get(row, "Currency") or settings.DEFAULT_CURRENCY,
            total=format_money(_get(row, "Total", "Paid Amount")),
            subtotal=format_money(_get(row, "Subtotal")),
            tax=format_money(_get(row, "Taxes", "Tax")),
            created_at=created_at,
            updated_at=updated_at,
            date=created_at.split("T")[0].split(" ")[0],
            line_items=[_line_item(row)] if _get(row, "Lineitem name") else [],
            shipping_address=_address(row, "Shipping"),
            billing_address=_address(row, "Billing"),
            tags=split_list(_get(row, "Tags")),
            discount_codes=discount_codes,
            note=_opt(row, "Notes", "Note"),
            cancelled_at=_opt(row, "Cancelled at"),
            processed_at=_opt(row, "Processed at"),
            synced_at=now_iso(),
            import_source=CSV_IMPORT_SOURCE,
        )
    except (ValidationError, ValueError, TypeError) as e:
        logger.error(f"order row could not be transformed: {e}")
        return None


def transform_customer_row(row: Row) -> Optional[CustomerRecord]:
    try:
        customer_id = clean_id(_get(row, "Customer ID", "Customer Id", "Id"))
        if not customer_id:
            logger.warning("customer row without id skipped")
            return None

        settings = get_settings()
        addresses = []
        default_address = Address(
            company=_opt(row, "Default Address Company"),
            address1=_opt(row, "Default Address Address1"),
            address2=_opt(row, "Default Address Address2"),
            city=_opt(row, "Default Address City"),
            province=_opt(row, "Default Address Province Code"),
            country=_opt(row, "Default Address Country Code"),
            zip=_opt(row, "Default Address Zip"),
            phone=clean_id(_get(row, "Default Address Phone")) or None,
        )
        if any(default_address.model_dump(exclude_none=True).values()):
            default_address.default = True
            addresses.append(default_address)

        return CustomerRecord(
            id=customer_id,
            email=_opt(row, "Email"),
            first_name=_opt(row, "First Name"),
            last_name=_opt(row, "Last Name"),
            phone=clean_id(_get(row, "Phone")) or None,
            orders_count=safe_int(_get(row, "Total Orders")),
            total_spent=format_money(_get(row, "Total Spent")),
            currency=settings.DEFAULT_CURRENCY,
            addresses=addresses,
            tags=split_list(_get(row, "Tags")),
            note=_opt(row, "Note"),
            tax_exempt=_get(row, "Tax Exempt").lower() == "yes",
            accepts_marketing=_get(row, "Accepts Email Marketing").lower() == "yes",
            state="enabled",
            created_at=_opt(row, "Created at", "Created At"),
            updated_at=_opt(row, "Updated at", "Updated At"),
            synced_at=now_iso(),
            import_source=CSV_IMPORT_SOURCE,
        )
    except (ValidationError, ValueError, TypeError) as e:
        logger.error(f"customer row could not be transformed: {e}")
        return None


def _json_list(value: Any) -> list:
    """JSON array column ('[...]'); anything else becomes an empty list."""
    if isinstance(value, list):
        return value
    s = str(value or "").strip()
    if not s.startswith("["):
        return []
    try:
        parsed = json.loads(s)
    except json.JSONDecodeError:
        logger.warning(f"malformed JSON list column: {s[:40]}")
        return []
    return parsed if isinstance(parsed, list) else []


def transform_product_row(row: Row) -> Optional[ProductRecord]:
    try:
        product_id = clean_id(_get(row, "id", "Id", "ID"))
        if not product_id:
            logger.warning("product row without id skipped")
            return None
        return ProductRecord(
            id=product_id,
            title=_get(row, "title", "Title") or "Unnamed Product",
            handle=_opt(row, "handle", "Handle"),
            description=_opt(row, "body_html", "Body (HTML)", "description"),
            type=_opt(row, "product_type", "Type"),
            vendor=_opt(row, "vendor", "Vendor"),
            status=_get(row, "status", "Status") or "active",
            tags=split_list(_get(row, "tags", "Tags")),
            variants=_json_list(row.get("variants")),
            options=_json_list(row.get("options")),
            images=_json_list(row.get("images")),
            created_at=_opt(row, "created_at"),
            updated_at=_opt(row, "updated_at"),
            synced_at=now_iso(),
            import_source=CSV_IMPORT_SOURCE,
        )
    except (ValidationError, ValueError, TypeError) as e:
        logger.error(f"product row could not be transformed: {e}")
        return None


TRANSFORMERS: dict[str, Callable[[Row], Any]] = {
    "orders": transform_order_row,
    "customers": transform_customer_row,
    "products": transform_product_row,
}


def get_transformer(resource: str) -> Callable[[Row], Any]:
    if resource not in TRANSFORMERS:
        raise ValueError(f"no transformer for resource '{resource}' (use one of {sorted(TRANSFORMERS)})")
    return TRANSFORMERS[resource]
