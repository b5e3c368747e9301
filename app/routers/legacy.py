"""
Dashboard API over the DynamoDB tables (/api): paged lists, dashboard cards, sales chart,
sync status and Shopify webhooks.

Errors on these routes render as {"error": message}.
"""
import json
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import PlainTextResponse
from loguru import logger

from app.core.config import get_settings
from app.core.errors import ValidationError
from app.dependencies import get_snapshot_cache, get_webhook_processor
from app.models import get_sync_metadata, scan_page
from app.services import dashboard
from app.services.dashboard_cache import DashboardSnapshotCache
from app.services.webhooks import MAPPERS, TOPIC_HEADER, WebhookProcessor

router = APIRouter(prefix="/api", tags=["dashboard"])


async def _page(resource: str, limit: int, next_token: Optional[str], **filters) -> dict:
    page = await scan_page(get_settings().table_name(resource), limit=limit, next_token=next_token, **filters)
    return {resource: page["items"], "count": page["count"], "nextToken": page["nextToken"]}


@router.get("/orders")
async def list_orders(
    limit: int = Query(20, ge=1, le=1000),
    nextToken: Optional[str] = None,
    startKey: Optional[str] = None,
    dateFrom: Optional[str] = None,
    dateTo: Optional[str] = None,
):
    return await _page("orders", limit, nextToken or startKey, date_from=dateFrom, date_to=dateTo)


@router.get("/products")
async def list_products(
    limit: int = Query(20, ge=1, le=1000),
    nextToken: Optional[str] = None,
    startKey: Optional[str] = None,
):
    return await _page("products", limit, nextToken or startKey)


@router.get("/customers")
async def list_customers(
    limit: int = Query(20, ge=1, le=1000),
    nextToken: Optional[str] = None,
    startKey: Optional[str] = None,
):
    return await _page("customers", limit, nextToken or startKey)


@router.get("/dashboard/summary")
async def dashboard_summary(
    timeframe: str = "week",
    cache: DashboardSnapshotCache = Depends(get_snapshot_cache),
):
    snapshot = await cache.get()
    return dashboard.dashboard_summary(
        snapshot, timeframe, low_stock_threshold=get_settings().LOW_STOCK_THRESHOLD
    )


@router.get("/analytics/sales")
async def sales_analytics(
    timeframe: str = "week",
    cache: DashboardSnapshotCache = Depends(get_snapshot_cache),
):
    return dashboard.sales_analytics(await cache.get(), timeframe)


@router.get("/orders/recent")
async def recent_orders(
    page: int = Query(1, ge=1),
    pageSize: int = Query(10, ge=1, le=100),
    cache: DashboardSnapshotCache = Depends(get_snapshot_cache),
):
    return dashboard.recent_orders(await cache.get(), page, pageSize)


@router.get("/sync/status")
async def sync_status():
    latest = await get_sync_metadata()
    return {"syncStatus": latest or {"status": "never_run"}}


@router.get("/store/summary")
async def store_summary(cache: DashboardSnapshotCache = Depends(get_snapshot_cache)):
    snapshot = await cache.get()
    latest = await get_sync_metadata()
    return {"summary": dashboard.store_summary(snapshot, latest)}


@router.post("/webhooks/{resource}")
async def shopify_webhook(
    resource: str,
    request: Request,
    processor: WebhookProcessor = Depends(get_webhook_processor),
):
    if resource not in MAPPERS:
        return PlainTextResponse("Not found", status_code=404)
    body = await request.body()
    if not processor.verify(body, request.headers):
        logger.warning(f"Invalid webhook signature for {resource}")
        return PlainTextResponse("Invalid webhook signature", status_code=401)
    try:
        payload = json.loads(body)
    except ValueError as e:
        raise ValidationError("Invalid webhook payload") from e
    if not isinstance(payload, dict) or payload.get("id") is None:
        raise ValidationError("Invalid webhook payload")
    await processor.process(resource, request.headers[TOPIC_HEADER], payload)
    return PlainTextResponse("Webhook processed successfully")
