"""
Google Ads reporting via the REST interface (GAQL googleAds:search)
Docs: https://developers.google.com/google-ads/api/rest/overview
OAuth: refresh token -> access token, cached until shortly before expiry.
"""
import time
from datetime import date, datetime
from typing import Any, Optional

import httpx
from loguru import logger

from app.core.config import Settings, get_settings
from app.core.errors import UpstreamError, ValidationError
from app.core.retry import RetryPolicy, retry_async
from app.services.meta_ads import is_retryable_error
from app.sync_utils import date_range_preset, safe_float, safe_int

OAUTH_TOKEN_URL = "https://oauth2.googleapis.com/token"
ADS_API_URL = "https://googleads.googleapis.com"

# (token, expires_at); refreshed 5 minutes early
_TOKEN_CACHE: Optional[tuple[str, float]] = None
_TOKEN_BUFFER_SECONDS = 300

MICROS = 1_000_000

METRIC_FIELDS = """
    metrics.impressions,
    metrics.clicks,
    metrics.cost_micros,
    metrics.ctr,
    metrics.average_cpc,
    metrics.average_cpm,
    metrics.conversions,
    metrics.conversions_value,
    metrics.cost_per_conversion,
    metrics.value_per_conversion"""


class DeveloperTokenNotApprovedError(UpstreamError):
    """The developer token only has test access; production accounts cannot be queried."""


def parse_report_row(row: dict[str, Any]) -> dict[str, Any]:
    """One search result -> flat metrics; *_micros become currency units, ctr becomes percent."""
    m = row.get("metrics") or {}
    campaign = row.get("campaign") or {}
    segments = row.get("segments") or {}
    cost_micros = safe_int(m.get("costMicros"))
    cpc_micros = safe_int(m.get("averageCpc"))
    cpm_micros = safe_int(m.get("averageCpm"))
    cpa_micros = safe_int(m.get("costPerConversion"))
    return {
        "date": segments.get("date"),
        "campaign_id": campaign.get("id"),
        "campaign_name": campaign.get("name"),
        "impressions": safe_int(m.get("impressions")),
        "clicks": safe_int(m.get("clicks")),
        "cost_micros": cost_micros,
        "cost": cost_micros / MICROS,
        "ctr": safe_float(m.get("ctr")) * 100,
        "cpc_micros": cpc_micros,
        "cpc": cpc_micros / MICROS,
        "cpm_micros": cpm_micros,
        "cpm": cpm_micros / MICROS,
        "conversions": safe_float(m.get("conversions")),
        "conversion_value": safe_float(m.get("conversionsValue")),
        "cost_per_conversion_micros": cpa_micros,
        "cost_per_conversion": cpa_micros / MICROS,
        "value_per_conversion": safe_float(m.get("valuePerConversion")),
    }


def calculate_additional_metrics(data: dict[str, Any]) -> dict[str, Any]:
    cost = data.get("cost") or 0
    clicks = data.get("clicks") or 0
    return {
        **data,
        "roas": (data.get("conversion_value") or 0) / cost if cost > 0 else 0,
        "conversion_rate": (data.get("conversions") or 0) / clicks * 100 if clicks > 0 else 0,
    }


def sum_rows(rows: list[dict[str, Any]]) -> dict[str, Any]:
    """Add up parsed rows and recompute the ratio metrics."""
    total = {
        key: sum(r.get(key) or 0 for r in rows)
        for key in ("impressions", "clicks", "cost", "conversions", "conversion_value")
    }
    total["ctr"] = total["clicks"] / total["impressions"] * 100 if total["impressions"] else 0
    total["cpc"] = total["cost"] / total["clicks"] if total["clicks"] else 0
    total["cpm"] = total["cost"] / total["impressions"] * 1000 if total["impressions"] else 0
    total["cost_per_conversion"] = total["cost"] / total["conversions"] if total["conversions"] else 0
    return calculate_additional_metrics(total)


def _is_developer_token_error(body: Any) -> bool:
    return "DEVELOPER_TOKEN_NOT_APPROVED" in str(body)


class GoogleAdsAnalytics:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.settings = settings or get_settings()
        self.customer_id = (self.settings.GOOGLE_ADS_CUSTOMER_ID or "").replace("-", "")
        self._transport = transport
        self.retry_policy = retry_policy or RetryPolicy(max_attempts=3, base_delay=1.0, max_delay=10.0)

    @property
    def configured(self) -> bool:
        s = self.settings
        return bool(
            s.GOOGLE_ADS_CLIENT_ID and s.GOOGLE_ADS_CLIENT_SECRET and s.GOOGLE_ADS_REFRESH_TOKEN
            and s.GOOGLE_ADS_DEVELOPER_TOKEN and self.customer_id
        )

    @property
    def search_url(self) -> str:
        return f"{ADS_API_URL}/{self.settings.GOOGLE_ADS_API_VERSION}/customers/{self.customer_id}/googleAds:search"

    @staticmethod
    def get_date_range(date_range: Any = "last_30_days", now: Optional[datetime] = None) -> dict[str, str]:
        """Same presets as Meta; custom dates must be YYYY-MM-DD since they are inlined into GAQL."""
        resolved = date_range_preset(date_range, now)
        try:
            date.fromisoformat(resolved["since"])
            date.fromisoformat(resolved["until"])
        except ValueError as e:
            raise ValidationError("Invalid date format") from e
        return resolved

    async def _get_access_token(self, client: httpx.AsyncClient) -> str:
        global _TOKEN_CACHE
        now = time.time()
        if _TOKEN_CACHE and _TOKEN_CACHE[1] > now:
            return _TOKEN_CACHE[0]
        logger.info("Refreshing Google Ads access token")
        response = await client.post(
            OAUTH_TOKEN_URL,
            data={
                "grant_type": "refresh_token",
                "client_id": self.settings.GOOGLE_ADS_CLIENT_ID,
                "client_secret": self.settings.GOOGLE_ADS_CLIENT_SECRET,
                "refresh_token": self.settings.GOOGLE_ADS_REFRESH_TOKEN,
            },
        )
        response.raise_for_status()
        body = response.json()
        token = body.get("access_token")
        if not token:
            raise UpstreamError(f"no access_token in OAuth response: {body}")
        expires_in = int(body.get("expires_in", 3599))
        _TOKEN_CACHE = (token, now + expires_in - _TOKEN_BUFFER_SECONDS)
        return token

    async def search(self, query: str) -> list[dict[str, Any]]:
        """Run a GAQL query and return every result row across pages."""
        if not self.configured:
            raise UpstreamError("Google Ads is not configured (GOOGLE_ADS_* settings)")

        rows: list[dict[str, Any]] = []
        async with httpx.AsyncClient(timeout=30.0, transport=self._transport) as client:
            try:
                token = await self._get_access_token(client)
                headers = {
                    "Authorization": f"Bearer {token}",
                    "developer-token": self.settings.GOOGLE_ADS_DEVELOPER_TOKEN,
                }
                if self.settings.GOOGLE_ADS_LOGIN_CUSTOMER_ID:
                    headers["login-customer-id"] = self.settings.GOOGLE_ADS_LOGIN_CUSTOMER_ID.replace("-", "")

                payload: dict[str, Any] = {"query": query}
                while True:
                    async def call() -> httpx.Response:
                        response = await client.post(self.search_url, headers=headers, json=payload)
                        if response.status_code >= 400 and _is_developer_token_error(response.text):
                            raise DeveloperTokenNotApprovedError("DEVELOPER_TOKEN_NOT_APPROVED")
                        response.raise_for_status()
                        return response

                    response = await retry_async(call, self.retry_policy, is_retryable_error, label="Google Ads search")
                    body = response.json()
                    rows.extend(body.get("results") or [])
                    next_token = body.get("nextPageToken")
                    if not next_token:
                        break
                    payload = {"query": query, "pageToken": next_token}
            except httpx.HTTPStatusError as e:
                logger.error(f"Google Ads request failed: {e.response.status_code} - {e.response.text}")
                raise UpstreamError(f"Google Ads request failed: {e.response.status_code}") from e
            except httpx.HTTPError as e:
                logger.exception(f"Google Ads request error: {e}")
                raise UpstreamError(f"Google Ads request failed: {e}") from e
        logger.info(f"Google Ads search: {len(rows)} rows")
        return rows

    async def get_account_summary(self, date_range: Any = "last_30_days") -> Optional[dict[str, Any]]:
        time_range = self.get_date_range(date_range)
        query = f"""
            SELECT
                customer.id,
                customer.descriptive_name,
                customer.currency_code,
                customer.time_zone,{METRIC_FIELDS}
            FROM customer
            WHERE segments.date BETWEEN '{time_range["since"]}' AND '{time_range["until"]}'
        """
        rows = await self.search(query)
        if not rows:
            return None
        customer = rows[0].get("customer") or {}
        summary = sum_rows([parse_report_row(r) for r in rows])
        return {
            "customer_id": customer.get("id", "N/A"),
            "account_name": customer.get("descriptiveName", "N/A"),
            "currency": customer.get("currencyCode", self.settings.DEFAULT_CURRENCY),
            "timezone": customer.get("timeZone", "UTC"),
            **summary,
            "date_range": time_range,
        }

    async def get_campaign_insights(
        self, date_range: Any = "last_30_days", campaign_ids: Optional[list[str]] = None
    ) -> list[dict[str, Any]]:
        time_range = self.get_date_range(date_range)
        logger.info(f"Fetching Google Ads campaign data from {time_range['since']} to {time_range['until']} (IST)")
        where = [
            f"segments.date BETWEEN '{time_range['since']}' AND '{time_range['until']}'",
            "campaign.status != 'REMOVED'",
        ]
        ids = [str(c) for c in campaign_ids or [] if str(c).isdigit()]
        if ids:
            where.append(f"campaign.id IN ({', '.join(ids)})")
        query = f"""
            SELECT
                campaign.id,
                campaign.name,
                campaign.status,{METRIC_FIELDS}
            FROM campaign
            WHERE {' AND '.join(where)}
        """
        results = []
        for row in await self.search(query):
            parsed = calculate_additional_metrics(parse_report_row(row))
            parsed["campaign_status"] = (row.get("campaign") or {}).get("status", "UNKNOWN")
            results.append(parsed)
        return results

    async def get_keywords(self, date_range: Any = "last_30_days", limit: int = 50) -> list[dict[str, Any]]:
        time_range = self.get_date_range(date_range)
        query = f"""
            SELECT
                ad_group_criterion.keyword.text,
                ad_group_criterion.keyword.match_type,
                ad_group.name,
                campaign.name,{METRIC_FIELDS}
            FROM keyword_view
            WHERE segments.date BETWEEN '{time_range["since"]}' AND '{time_range["until"]}'
            ORDER BY metrics.impressions DESC
            LIMIT {int(limit)}
        """
        results = []
        for row in await self.search(query):
            keyword = (row.get("adGroupCriterion") or {}).get("keyword") or {}
            parsed = calculate_additional_metrics(parse_report_row(row))
            results.append({
                "keyword_text": keyword.get("text"),
                "match_type": keyword.get("matchType"),
                "ad_group_name": (row.get("adGroup") or {}).get("name"),
                **parsed,
            })
        return results
