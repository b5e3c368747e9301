"""
CSV row transformers
"""
import pytest

from app.importer.transform import (
    CSV_IMPORT_SOURCE,
    clean_id,
    get_transformer,
    transform_customer_row,
    transform_order_row,
    transform_product_row,
)


def test_clean_id_strips_spreadsheet_quote():
    assert clean_id("  '1001 ") == "1001"
    assert clean_id(None) == ""


def test_order_row_maps_core_fields():
    row = {
        "Order ID": "'5001",
        "Name": "#1001",
        "Email": "a@example.com",
        "Financial Status": "paid",
        "Total": "199.5",
        "Subtotal": "180",
        "Taxes": "",
        "Created at": "2024-03-05T10:00:00Z",
        "Shipping Name": "Asha Rao",
        "Shipping City": "Pune",
        "Lineitem name": "Seat Cushion",
        "Lineitem quantity": "2",
        "Lineitem price": "99.75",
        "Lineitem sku": "CUSH-GRY",
        "Tags": "vip, repeat",
        "Discount Codes": "SAVE10",
    }
    order = transform_order_row(row)

    assert order.id == "5001"
    assert order.name == "#1001"
    assert order.total == "199.50"
    assert order.tax == "0.00"
    assert order.updated_at == order.created_at
    assert order.date == "2024-03-05"
    assert order.customer.name == "Asha Rao"
    assert order.shipping_address.city == "Pune"
    assert order.billing_address is None
    assert order.tags == ["vip", "repeat"]
    assert order.discount_codes == [{"code": "SAVE10"}]
    assert order.import_source == CSV_IMPORT_SOURCE
    assert len(order.line_items) == 1
    item = order.line_items[0]
    assert item.quantity == 2
    assert item.price == "99.75"
    assert item.sku == "CUSH-GRY"


def test_order_row_defaults():
    order = transform_order_row({"Order ID": "7", "Created at": "2024-01-01 09:30:00 +0530"})
    assert order.name == "Order #7"
    assert order.status == "unknown"
    assert order.fulfillment_status == "unfulfilled"
    assert order.line_items == []
    assert order.date == "2024-01-01"


def test_order_row_without_id_is_rejected():
    assert transform_order_row({"Email": "x@example.com", "Total": "10"}) is None


def test_customer_row_default_address():
    customer = transform_customer_row({
        "Customer ID": "c-1",
        "First Name": "Ravi",
        "Total Spent": "1200",
        "Total Orders": "3",
        "Default Address City": "Delhi",
        "Accepts Email Marketing": "yes",
    })
    assert customer.id == "c-1"
    assert customer.total_spent == "1200.00"
    assert customer.orders_count == 3
    assert customer.accepts_marketing is True
    assert customer.addresses[0].city == "Delhi"
    assert customer.addresses[0].default is True


def test_customer_row_without_id_is_rejected():
    assert transform_customer_row({"Email": "nobody@example.com"}) is None


def test_product_row_parses_json_columns():
    product = transform_product_row({
        "id": "p-9",
        "title": "Pillow",
        "variants": '[{"id": "v1", "sku": "PIL-STD", "inventory_quantity": 4}]',
        "images": "not json",
    })
    assert product.id == "p-9"
    assert product.status == "active"
    assert product.variants[0].sku == "PIL-STD"
    assert product.images == []


def test_unknown_resource():
    with pytest.raises(ValueError):
        get_transformer("invoices")
