"""
Meta (Facebook) Ads insights via the Graph API
Docs: https://developers.facebook.com/docs/marketing-api/insights
"""
import json
from datetime import datetime
from typing import Any, Optional

import httpx
from loguru import logger

from app.core.config import Settings, get_settings
from app.core.errors import UpstreamError
from app.core.retry import RetryPolicy, is_retryable_http_status, retry_async
from app.sync_utils import date_range_preset, safe_float, safe_int

GRAPH_URL = "https://graph.facebook.com"

SUMMARY_FIELDS = [
    "impressions", "clicks", "spend", "reach", "cpm", "cpc", "ctr",
    "purchase_roas", "actions", "conversion_values",
]
CAMPAIGN_FIELDS = [
    "campaign_id", "campaign_name", "impressions", "clicks", "spend",
    "reach", "frequency", "cpm", "cpc", "ctr", "actions",
    "cost_per_action_type", "purchase_roas", "conversion_values",
]
PURCHASE_ACTIONS = ("omni_purchase", "purchase")


def is_retryable_error(error: BaseException) -> bool:
    if isinstance(error, httpx.HTTPStatusError):
        return is_retryable_http_status(error.response.status_code)
    return isinstance(error, httpx.TransportError)


def parse_insight(data: dict[str, Any]) -> dict[str, Any]:
    """
    Flatten one insights row.
    Purchase value comes from conversion_values when present, otherwise ROAS x spend.
    """
    parsed: dict[str, Any] = {
        "campaign_id": data.get("campaign_id"),
        "campaign_name": data.get("campaign_name"),
        "impressions": safe_int(data.get("impressions")),
        "clicks": safe_int(data.get("clicks")),
        "spend": safe_float(data.get("spend")),
        "reach": safe_int(data.get("reach")),
        "cpm": safe_float(data.get("cpm")),
        "cpc": safe_float(data.get("cpc")),
        "ctr": safe_float(data.get("ctr")),
        "frequency": safe_float(data.get("frequency")),
    }

    purchase_value = 0.0
    for roas in data.get("purchase_roas") or []:
        value = safe_float(roas.get("value"))
        parsed[f"{roas.get('action_type')}_roas"] = value
        if roas.get("action_type") in PURCHASE_ACTIONS:
            purchase_value = value * parsed["spend"]

    for action in data.get("actions") or []:
        parsed[f"{action.get('action_type')}_count"] = safe_int(action.get("value"))

    for conversion in data.get("conversion_values") or []:
        value = safe_float(conversion.get("value"))
        parsed[f"{conversion.get('action_type')}_value"] = value
        if conversion.get("action_type") in PURCHASE_ACTIONS:
            purchase_value = value

    purchases = parsed.get("purchase_count") or parsed.get("omni_purchase_count") or 0
    purchase_value = purchase_value or parsed.get("purchase_value") or parsed.get("omni_purchase_value") or 0

    parsed["total_purchases"] = purchases
    parsed["total_purchase_value"] = purchase_value
    parsed["overall_roas"] = purchase_value / parsed["spend"] if parsed["spend"] > 0 else 0
    parsed["cost_per_purchase"] = parsed["spend"] / purchases if purchases > 0 else 0
    return parsed


class MetaAdsAnalytics:
    """Account and campaign insights for one ad account."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.settings = settings or get_settings()
        self.access_token = self.settings.META_ACCESS_TOKEN
        self.ad_account_id = self.settings.META_AD_ACCOUNT_ID
        self._transport = transport
        self.retry_policy = retry_policy or RetryPolicy(max_attempts=3, base_delay=1.0, max_delay=10.0)

    @property
    def configured(self) -> bool:
        return bool(self.access_token and self.ad_account_id)

    @property
    def insights_url(self) -> str:
        return f"{GRAPH_URL}/{self.settings.META_API_VERSION}/{self.ad_account_id}/insights"

    @staticmethod
    def get_date_range(date_range: Any = "last_30_days", now: Optional[datetime] = None) -> dict[str, str]:
        return date_range_preset(date_range, now)

    async def _get(self, client: httpx.AsyncClient, url: str, params: Optional[dict] = None) -> dict:
        async def call() -> dict:
            response = await client.get(url, params=params)
            response.raise_for_status()
            return response.json()

        return await retry_async(call, self.retry_policy, is_retryable_error, label="Meta insights")

    async def fetch_insights(self, fields: list[str], params: dict[str, Any]) -> list[dict[str, Any]]:
        """GET /insights and follow paging.next until exhausted."""
        if not self.configured:
            raise UpstreamError("Meta Ads is not configured (META_ACCESS_TOKEN / META_AD_ACCOUNT_ID)")

        query = {
            "access_token": self.access_token,
            "fields": ",".join(fields),
            **{k: json.dumps(v) if isinstance(v, (dict, list)) else v for k, v in params.items()},
        }
        rows: list[dict[str, Any]] = []
        async with httpx.AsyncClient(timeout=30.0, transport=self._transport) as client:
            try:
                body = await self._get(client, self.insights_url, query)
                rows.extend(body.get("data") or [])
                next_url = (body.get("paging") or {}).get("next")
                while next_url:
                    body = await self._get(client, next_url)
                    rows.extend(body.get("data") or [])
                    next_url = (body.get("paging") or {}).get("next")
            except httpx.HTTPStatusError as e:
                logger.error(f"Meta insights request failed: {e.response.status_code} - {e.response.text}")
                raise UpstreamError(f"Meta Ads request failed: {e.response.status_code}") from e
            except httpx.HTTPError as e:
                logger.exception(f"Meta insights request error: {e}")
                raise UpstreamError(f"Meta Ads request failed: {e}") from e
        logger.info(f"Meta insights: {len(rows)} rows")
        return rows

    async def get_account_summary(self, date_range: Any = "last_30_days") -> Optional[dict[str, Any]]:
        time_range = self.get_date_range(date_range)
        rows = await self.fetch_insights(SUMMARY_FIELDS, {"time_range": time_range, "level": "account"})
        if not rows:
            return None
        return {**parse_insight(rows[0]), "date_range": time_range}

    async def get_campaign_insights(
        self, date_range: Any = "last_30_days", campaign_ids: Optional[list[str]] = None
    ) -> list[dict[str, Any]]:
        time_range = self.get_date_range(date_range)
        logger.info(f"Fetching Meta campaign data from {time_range['since']} to {time_range['until']} (IST)")
        params: dict[str, Any] = {"time_range": time_range, "level": "campaign"}
        if campaign_ids:
            params["filtering"] = [{"field": "campaign.id", "operator": "IN", "value": list(campaign_ids)}]
        rows = await self.fetch_insights(CAMPAIGN_FIELDS, params)
        return [parse_insight(row) for row in rows]
