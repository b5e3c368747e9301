"""
Amazon Seller Central reports from the warehouse
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.dependencies import get_amazon_report
from app.schemas.base import envelope
from app.services.amazon_report import AmazonReportService

router = APIRouter(prefix="/amazon", tags=["amazon"])


@router.get("/overview")
async def amazon_overview(
    startDate: Optional[str] = None,
    endDate: Optional[str] = None,
    store: Optional[str] = None,
    service: AmazonReportService = Depends(get_amazon_report),
):
    data, cached = await service.overview(startDate, endDate, store)
    return envelope(data, store=store, cached=cached)


@router.get("/time-range")
async def amazon_time_range(
    startDate: Optional[str] = None,
    endDate: Optional[str] = None,
    timeframe: str = "day",
    store: Optional[str] = None,
    service: AmazonReportService = Depends(get_amazon_report),
):
    data, cached = await service.time_range(startDate, endDate, timeframe, store)
    return envelope(data, store=store, cached=cached)


@router.get("/top-selling")
async def amazon_top_selling(
    startDate: Optional[str] = None,
    endDate: Optional[str] = None,
    limit: int = Query(10, ge=1, le=100),
    store: Optional[str] = None,
    service: AmazonReportService = Depends(get_amazon_report),
):
    data, cached = await service.top_selling(startDate, endDate, store, limit)
    return envelope(data, store=store, cached=cached)


@router.get("/returns-data")
async def amazon_returns_data(
    startDate: Optional[str] = None,
    endDate: Optional[str] = None,
    store: Optional[str] = None,
    service: AmazonReportService = Depends(get_amazon_report),
):
    data, cached = await service.returns_data(startDate, endDate, store)
    return envelope(data, store=store, cached=cached)


@router.get("/returns-overview")
async def amazon_returns_overview(
    startDate: Optional[str] = None,
    endDate: Optional[str] = None,
    store: Optional[str] = None,
    service: AmazonReportService = Depends(get_amazon_report),
):
    data, cached = await service.returns_overview(startDate, endDate, store)
    return envelope(data, store=store, cached=cached)


@router.get("/product-metrics/{sku}")
async def amazon_product_metrics(
    sku: str,
    startDate: Optional[str] = None,
    endDate: Optional[str] = None,
    store: Optional[str] = None,
    service: AmazonReportService = Depends(get_amazon_report),
):
    data, cached = await service.product_metrics(sku, startDate, endDate, store)
    return envelope(data, store=store, cached=cached)
