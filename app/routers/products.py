"""
Stored Shopify products (DynamoDB)
"""
from fastapi import APIRouter

from app.core.config import get_settings
from app.core.errors import NotFoundError
from app.models import get_item, scan_all
from app.schemas.base import envelope

router = APIRouter(prefix="/products", tags=["products"])


@router.get("/get-all-products")
async def get_all_products():
    products = await scan_all(get_settings().PRODUCTS_TABLE)
    return envelope(products, count=len(products))


@router.get("/get-product-by-id/{product_id}")
async def get_product_by_id(product_id: str):
    product = await get_item(get_settings().PRODUCTS_TABLE, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    return envelope(product)
