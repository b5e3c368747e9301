"""
Google Ads reports

A developer token with test access only cannot read production accounts; those calls
answer 200 with an empty payload and tokenStatus TEST_TOKEN instead of failing.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from loguru import logger

from app.core.errors import UpstreamError
from app.dependencies import get_google_ads
from app.export_csv import export_rows_to_csv
from app.routers.meta_ads import NO_DATA_MESSAGE, ExportRequest, as_list, export_path
from app.schemas.base import envelope, failure
from app.services.google_ads import DeveloperTokenNotApprovedError, GoogleAdsAnalytics
from app.sync_utils import DATE_RANGE_PRESETS, requested_date_range

router = APIRouter(prefix="/google-ads", tags=["google-ads"])

TEST_TOKEN_STATUS = "TEST_TOKEN"
TEST_TOKEN_MESSAGE = "Test developer token detected. Apply for Standard access in Google Ads to view {what}."


def zero_summary(date_range: dict[str, str]) -> dict:
    return {
        "impressions": 0,
        "clicks": 0,
        "cost": 0,
        "conversions": 0,
        "conversion_value": 0,
        "ctr": 0,
        "cpc": 0,
        "cpm": 0,
        "cost_per_conversion": 0,
        "roas": 0,
        "conversion_rate": 0,
        "date_range": date_range,
    }


def token_fallback(data, what: str, count: Optional[int] = None) -> dict:
    return envelope(
        data,
        count=count,
        message=TEST_TOKEN_MESSAGE.format(what=what),
        tokenStatus=TEST_TOKEN_STATUS,
    )


@router.get("/summary")
async def google_summary(
    dateRange: Optional[str] = None,
    since: Optional[str] = None,
    until: Optional[str] = None,
    analytics: GoogleAdsAnalytics = Depends(get_google_ads),
):
    requested = requested_date_range(dateRange, since, until)
    try:
        summary = await analytics.get_account_summary(requested)
    except DeveloperTokenNotApprovedError:
        logger.warning("Google Ads developer token not approved, returning empty summary")
        return token_fallback(zero_summary(analytics.get_date_range(requested)), "real data")
    except UpstreamError as e:
        logger.error(f"Error fetching Google Ads summary: {e.message}")
        return failure("Failed to fetch Google Ads summary", e.message)
    if not summary:
        return JSONResponse(status_code=404, content={"message": NO_DATA_MESSAGE})
    return envelope(summary)


@router.get("/campaigns")
async def google_campaigns(
    dateRange: Optional[str] = None,
    since: Optional[str] = None,
    until: Optional[str] = None,
    campaignIds: Optional[list[str]] = Query(None),
    analytics: GoogleAdsAnalytics = Depends(get_google_ads),
):
    try:
        campaigns = await analytics.get_campaign_insights(
            requested_date_range(dateRange, since, until), as_list(campaignIds)
        )
    except DeveloperTokenNotApprovedError:
        return token_fallback([], "campaign data", count=0)
    except UpstreamError as e:
        logger.error(f"Error fetching Google Ads campaigns: {e.message}")
        return failure("Failed to fetch Google Ads campaigns", e.message)
    return envelope(campaigns, count=len(campaigns))


@router.get("/keywords")
async def google_keywords(
    dateRange: Optional[str] = None,
    since: Optional[str] = None,
    until: Optional[str] = None,
    limit: int = Query(50, ge=1, le=1000),
    analytics: GoogleAdsAnalytics = Depends(get_google_ads),
):
    try:
        keywords = await analytics.get_keywords(requested_date_range(dateRange, since, until), limit)
    except DeveloperTokenNotApprovedError:
        return token_fallback([], "keyword data", count=0)
    except UpstreamError as e:
        logger.error(f"Error fetching Google Ads keywords: {e.message}")
        return failure("Failed to fetch Google Ads keywords", e.message)
    return envelope(keywords, count=len(keywords))


@router.post("/export-csv")
async def google_export_csv(body: ExportRequest, analytics: GoogleAdsAnalytics = Depends(get_google_ads)):
    try:
        campaigns = await analytics.get_campaign_insights(
            requested_date_range(body.dateRange, body.since, body.until), as_list(body.campaignIds)
        )
        path = export_path(body.filename, "google_ads_campaigns")
        export_rows_to_csv(campaigns, path)
    except (UpstreamError, OSError) as e:
        logger.error(f"Error exporting Google Ads data: {e}")
        return failure("Failed to export Google Ads data", e)
    logger.info(f"Google Ads campaigns exported to {path}")
    return envelope(None, message=f"Data exported to {path.name}", filename=path.name, count=len(campaigns))


@router.get("/date-ranges")
async def google_date_ranges():
    return envelope(DATE_RANGE_PRESETS)
