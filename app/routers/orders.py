"""
Shopify order reports from the warehouse
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.dependencies import get_orders_report
from app.schemas.base import envelope
from app.services.orders_report import OrdersReportService

router = APIRouter(prefix="/orders", tags=["orders"])


@router.get("/overview")
async def orders_overview(
    startDate: Optional[str] = None,
    endDate: Optional[str] = None,
    store: Optional[str] = None,
    service: OrdersReportService = Depends(get_orders_report),
):
    data, cached = await service.overview(startDate, endDate, store)
    return envelope(data, store=store, cached=cached)


@router.get("/time-range")
async def orders_time_range(
    startDate: Optional[str] = None,
    endDate: Optional[str] = None,
    timeframe: str = "day",
    store: Optional[str] = None,
    service: OrdersReportService = Depends(get_orders_report),
):
    data, cached = await service.time_range(startDate, endDate, timeframe, store)
    return envelope(data, store=store, cached=cached)


@router.get("/top-selling")
async def orders_top_selling(
    startDate: Optional[str] = None,
    endDate: Optional[str] = None,
    limit: int = Query(5, ge=1, le=100),
    store: Optional[str] = None,
    service: OrdersReportService = Depends(get_orders_report),
):
    data, cached = await service.top_selling(startDate, endDate, limit, store)
    return envelope(data, store=store, cached=cached)


@router.get("/refund-metrics")
async def orders_refund_metrics(
    startDate: Optional[str] = None,
    endDate: Optional[str] = None,
    store: Optional[str] = None,
    service: OrdersReportService = Depends(get_orders_report),
):
    data, cached = await service.refund_metrics(startDate, endDate, store)
    return envelope(data, store=store, cached=cached)
