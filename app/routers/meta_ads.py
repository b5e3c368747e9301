"""
Meta Ads insights
"""
import time
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel

from app.core.config import get_settings
from app.core.errors import UpstreamError
from app.dependencies import get_meta_ads
from app.export_csv import export_rows_to_csv
from app.schemas.base import envelope, failure
from app.services.meta_ads import MetaAdsAnalytics
from app.sync_utils import DATE_RANGE_PRESETS, requested_date_range

router = APIRouter(prefix="/meta-ads", tags=["meta-ads"])

NO_DATA_MESSAGE = "No data found for the specified date range"


class ExportRequest(BaseModel):
    dateRange: Optional[str] = None
    since: Optional[str] = None
    until: Optional[str] = None
    campaignIds: Optional[list[str] | str] = None
    filename: Optional[str] = None


def export_path(filename: Optional[str], prefix: str) -> Path:
    """Files always land in EXPORT_DIR; directory parts of the requested name are dropped."""
    name = Path(filename).name if filename else f"{prefix}_{int(time.time() * 1000)}.csv"
    return Path(get_settings().EXPORT_DIR) / name


def as_list(value: Optional[list[str] | str]) -> Optional[list[str]]:
    if not value:
        return None
    return value if isinstance(value, list) else [value]


@router.get("/summary")
async def meta_summary(
    dateRange: Optional[str] = None,
    since: Optional[str] = None,
    until: Optional[str] = None,
    analytics: MetaAdsAnalytics = Depends(get_meta_ads),
):
    try:
        summary = await analytics.get_account_summary(requested_date_range(dateRange, since, until))
    except UpstreamError as e:
        logger.error(f"Error fetching Meta Ads summary: {e.message}")
        return failure("Failed to fetch Meta Ads summary", e.message)
    if not summary:
        return JSONResponse(status_code=404, content={"message": NO_DATA_MESSAGE})
    return envelope(summary)


@router.get("/campaigns")
async def meta_campaigns(
    dateRange: Optional[str] = None,
    since: Optional[str] = None,
    until: Optional[str] = None,
    campaignIds: Optional[list[str]] = Query(None),
    analytics: MetaAdsAnalytics = Depends(get_meta_ads),
):
    try:
        campaigns = await analytics.get_campaign_insights(
            requested_date_range(dateRange, since, until), as_list(campaignIds)
        )
    except UpstreamError as e:
        logger.error(f"Error fetching Meta Ads campaigns: {e.message}")
        return failure("Failed to fetch Meta Ads campaigns", e.message)
    return envelope(campaigns, count=len(campaigns))


@router.post("/export-csv")
async def meta_export_csv(body: ExportRequest, analytics: MetaAdsAnalytics = Depends(get_meta_ads)):
    try:
        campaigns = await analytics.get_campaign_insights(
            requested_date_range(body.dateRange, body.since, body.until), as_list(body.campaignIds)
        )
        path = export_path(body.filename, "meta_ads_campaigns")
        export_rows_to_csv(campaigns, path)
    except (UpstreamError, OSError) as e:
        logger.error(f"Error exporting Meta Ads data: {e}")
        return failure("Failed to export Meta Ads data", e)
    logger.info(f"Meta Ads campaigns exported to {path}")
    return envelope(None, message=f"Data exported to {path.name}", filename=path.name, count=len(campaigns))


@router.get("/date-ranges")
async def meta_date_ranges():
    return envelope(DATE_RANGE_PRESETS)
