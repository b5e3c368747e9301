"""
CSV export of store records (orders / products / customers) and of generic report rows.
"""
import csv
import io
import json
from pathlib import Path
from typing import Any, Iterable

from pydantic import BaseModel

PRODUCT_HEADERS = [
    "id", "title", "handle", "body_html", "vendor", "product_type", "created_at",
    "updated_at", "status", "tags", "variants", "options", "images",
]

ORDER_HEADERS = [
    "id", "name", "email", "financial_status", "fulfillment_status", "created_at",
    "updated_at", "processed_at", "currency", "total_price", "subtotal_price", "total_tax",
    "customer_id", "customer_name", "customer_email", "shipping_address", "billing_address",
    "line_items", "discount_codes", "note", "tags", "cancelled_at",
]

CUSTOMER_HEADERS = [
    "id", "email", "first_name", "last_name", "orders_count", "total_spent", "currency",
    "state", "tax_exempt", "phone", "created_at", "updated_at", "addresses", "tags", "note",
    "accepts_marketing",
]


def _as_dict(record: Any) -> dict:
    if isinstance(record, BaseModel):
        return record.model_dump(mode="json")
    return dict(record)


def _json(value: Any, empty: Any) -> str:
    return json.dumps(value if value is not None else empty, ensure_ascii=False)


def _bool(value: Any) -> str:
    return "true" if value else "false"


def product_row(record: Any) -> dict[str, Any]:
    p = _as_dict(record)
    return {
        "id": p.get("id"),
        "title": p.get("title"),
        "handle": p.get("handle"),
        "body_html": p.get("description"),
        "vendor": p.get("vendor"),
        "product_type": p.get("type"),
        "created_at": p.get("created_at"),
        "updated_at": p.get("updated_at"),
        "status": p.get("status"),
        "tags": ", ".join(p.get("tags") or []),
        "variants": _json(p.get("variants"), []),
        "options": _json(p.get("options"), []),
        "images": _json(p.get("images"), []),
    }


def order_row(record: Any) -> dict[str, Any]:
    o = _as_dict(record)
    customer = o.get("customer") or {}
    return {
        "id": o.get("id"),
        "name": o.get("name"),
        "email": o.get("email"),
        "financial_status": o.get("status"),
        "fulfillment_status": o.get("fulfillment_status"),
        "created_at": o.get("created_at"),
        "updated_at": o.get("updated_at"),
        "processed_at": o.get("processed_at"),
        "currency": o.get("currency"),
        "total_price": o.get("total"),
        "subtotal_price": o.get("subtotal"),
        "total_tax": o.get("tax"),
        "customer_id": customer.get("id") or "",
        "customer_name": customer.get("name") or "",
        "customer_email": customer.get("email") or "",
        "shipping_address": _json(o.get("shipping_address"), {}),
        "billing_address": _json(o.get("billing_address"), {}),
        "line_items": _json(o.get("line_items"), []),
        "discount_codes": _json(o.get("discount_codes"), []),
        "note": o.get("note"),
        "tags": ", ".join(o.get("tags") or []),
        "cancelled_at": o.get("cancelled_at"),
    }


def customer_row(record: Any) -> dict[str, Any]:
    c = _as_dict(record)
    return {
        "id": c.get("id"),
        "email": c.get("email"),
        "first_name": c.get("first_name"),
        "last_name": c.get("last_name"),
        "orders_count": c.get("orders_count"),
        "total_spent": c.get("total_spent"),
        "currency": c.get("currency"),
        "state": c.get("state"),
        "tax_exempt": _bool(c.get("tax_exempt")),
        "phone": c.get("phone"),
        "created_at": c.get("created_at"),
        "updated_at": c.get("updated_at"),
        "addresses": _json(c.get("addresses"), []),
        "tags": ", ".join(c.get("tags") or []),
        "note": c.get("note"),
        "accepts_marketing": _bool(c.get("accepts_marketing")),
    }


EXPORTS = {
    "orders": (ORDER_HEADERS, order_row),
    "products": (PRODUCT_HEADERS, product_row),
    "customers": (CUSTOMER_HEADERS, customer_row),
}


def export_records_to_csv(resource: str, records: Iterable[Any], output_path: str | Path) -> int:
    """
    Write store records as CSV with the resource's fixed header.
    Returns the number of data rows written.
    """
    if resource not in EXPORTS:
        raise ValueError(f"unknown resource: {resource}")
    headers, to_row = EXPORTS[resource]
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    count = 0
    with open(output_path, "w", newline="", encoding="utf-8-sig") as f:
        writer = csv.DictWriter(f, fieldnames=headers, extrasaction="ignore")
        writer.writeheader()
        for record in records:
            row = to_row(record)
            writer.writerow({k: "" if v is None else v for k, v in row.items()})
            count += 1
    return count


def _cell(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    if value is None or value == "" or value is False:
        return ""
    return str(value)


def rows_to_csv(rows: list[dict[str, Any]]) -> str:
    """
    Generic rows -> CSV text. Header is the union of keys in first-seen order,
    nested values are JSON encoded and every cell is quoted.
    """
    if not rows:
        return ""
    headers: list[str] = []
    for row in rows:
        for key in row:
            if key not in headers:
                headers.append(key)
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    buffer.write(",".join(headers) + "\n")
    for row in rows:
        writer.writerow([_cell(row.get(h)) for h in headers])
    return buffer.getvalue()


def export_rows_to_csv(rows: list[dict[str, Any]], output_path: str | Path) -> int:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(rows_to_csv(rows), encoding="utf-8")
    return len(rows)
