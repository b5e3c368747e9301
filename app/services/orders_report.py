"""
Shopify order reports over the BigQuery export tables (orders / line_items / refunds).

Dates are reporting-day (UTC+5:30) dates; order timestamps are shifted by the same offset
before the DATE() comparison.
"""
from datetime import date
from typing import Any, Optional

from loguru import logger

from app.core.config import Settings, get_settings
from app.services import metrics
from app.services.bigquery_client import BigQueryClient, get_bigquery_client
from app.services.cache import TTL_LONG, TTL_SHORT, CacheClient, cache_aside, get_cache
from app.services.sku_catalog import SkuCatalog, get_sku_catalog
from app.sync_utils import report_date_range, safe_float, safe_int

TIMEFRAME_FORMATS = {
    "day": "%Y-%m-%d",
    "week": "%Y-%W",
    "month": "%Y-%m",
    "year": "%Y",
}

OVERVIEW_SQL = """
-- orders_overview
WITH period_orders AS (
  SELECT *
  FROM {orders}
  WHERE DATE(TIMESTAMP_ADD(CREATED_AT, INTERVAL @offset_minutes MINUTE)) BETWEEN @start_date AND @end_date
),
period_refunds AS (
  SELECT
    COUNT(DISTINCT ORDER_ID) AS refunded_orders,
    SUM(CAST(COALESCE(TRANSACTION_AMOUNT, 0) AS FLOAT64)) AS refunded_amount
  FROM {refunds}
  WHERE DATE(TIMESTAMP_ADD(REFUND_CREATED_AT, INTERVAL @offset_minutes MINUTE)) BETWEEN @start_date AND @end_date
)
SELECT
  COUNT(DISTINCT o.NAME) AS total_orders,
  COUNT(DISTINCT CASE WHEN o.CANCELLED_AT IS NOT NULL THEN o.NAME END) AS cancelled_orders,
  COUNT(DISTINCT o.CUSTOMER_ID) AS total_customers,
  SUM(CAST(COALESCE(o.SUBTOTAL_PRICE, 0) AS FLOAT64) + CAST(COALESCE(o.TOTAL_DISCOUNTS, 0) AS FLOAT64)) AS gross_sales,
  SUM(CAST(COALESCE(o.TOTAL_DISCOUNTS, 0) AS FLOAT64)) AS total_discounts,
  SUM(CAST(COALESCE(o.TOTAL_PRICE, 0) AS FLOAT64)) AS total_sales,
  SUM(CAST(COALESCE(o.TOTAL_TAX, 0) AS FLOAT64)) AS total_tax,
  SUM(CAST(COALESCE(o.TOTAL_SHIPPING_PRICE, 0) AS FLOAT64)) AS total_shipping,
  ANY_VALUE(r.refunded_orders) AS refunded_orders,
  ANY_VALUE(r.refunded_amount) AS refunded_amount
FROM period_orders o
CROSS JOIN period_refunds r
"""

SKU_QUANTITIES_SQL = """
-- sku_quantities
SELECT
  li.SKU AS sku,
  SUM(CAST(COALESCE(li.CURRENT_QUANTITY, 0) AS FLOAT64)) AS quantity
FROM {line_items} li
JOIN {orders} o ON li.ORDER_ID = o.ORDER_ID
WHERE DATE(TIMESTAMP_ADD(o.CREATED_AT, INTERVAL @offset_minutes MINUTE)) BETWEEN @start_date AND @end_date
  AND o.CANCELLED_AT IS NULL
  AND li.SKU IS NOT NULL
GROUP BY sku
"""

AD_SPEND_SQL = """
-- ad_spend
SELECT SUM(CAST(COALESCE(spend, 0) AS FLOAT64)) AS spend
FROM `{table}`
WHERE date BETWEEN @start_date AND @end_date
"""

TIME_RANGE_SQL = """
-- orders_time_range
SELECT
  FORMAT_DATE(@date_format, DATE(TIMESTAMP_ADD(o.CREATED_AT, INTERVAL @offset_minutes MINUTE))) AS period,
  COUNT(DISTINCT o.NAME) AS order_count,
  SUM(CAST(COALESCE(o.TOTAL_PRICE, 0) AS FLOAT64)) AS revenue,
  COUNT(DISTINCT CASE WHEN r.ORDER_ID IS NOT NULL THEN o.NAME END) AS refund_count
FROM {orders} o
LEFT JOIN {refunds} r ON o.NAME = r.ORDER_NAME
WHERE DATE(TIMESTAMP_ADD(o.CREATED_AT, INTERVAL @offset_minutes MINUTE)) BETWEEN @start_date AND @end_date
GROUP BY period
ORDER BY period
"""

TOP_SELLING_SQL = """
-- orders_top_selling
SELECT
  li.TITLE AS product_name,
  SUM(li.CURRENT_QUANTITY) AS total_quantity_sold,
  SUM(CAST(COALESCE(li.PRICE, 0) AS FLOAT64) * li.CURRENT_QUANTITY) AS total_revenue,
  COUNT(DISTINCT li.SKU) AS number_of_variants
FROM {line_items} li
JOIN {orders} o ON li.ORDER_ID = o.ORDER_ID
WHERE li.TITLE IS NOT NULL
  AND li.CURRENT_QUANTITY > 0
  AND DATE(TIMESTAMP_ADD(o.CREATED_AT, INTERVAL @offset_minutes MINUTE)) BETWEEN @start_date AND @end_date
GROUP BY product_name
ORDER BY total_quantity_sold DESC
LIMIT @limit
"""

REFUND_METRICS_SQL = """
-- refund_metrics
SELECT
  COUNT(DISTINCT r.REFUND_ID) AS total_refunds,
  SUM(CAST(COALESCE(r.TRANSACTION_AMOUNT, 0) AS FLOAT64)) AS total_refunded_amount,
  COUNT(DISTINCT r.ORDER_ID) AS orders_with_refunds,
  AVG(CAST(COALESCE(r.TRANSACTION_AMOUNT, 0) AS FLOAT64)) AS average_refund_amount
FROM {refunds} r
WHERE DATE(TIMESTAMP_ADD(r.REFUND_CREATED_AT, INTERVAL @offset_minutes MINUTE)) BETWEEN @start_date AND @end_date
"""


def price_sku_quantities(rows: list[dict[str, Any]], catalog: SkuCatalog) -> dict[str, Any]:
    """Sum per-unit catalog COGS and S&D over sold quantities; unknown SKUs are reported, not priced."""
    cogs = 0.0
    sd_cost = 0.0
    unmapped: list[str] = []
    for row in rows:
        quantity = safe_float(row.get("quantity"))
        cost = catalog.unit_cost(row.get("sku"))
        if cost is None:
            if row.get("sku"):
                unmapped.append(row["sku"])
            continue
        cogs += cost.cogs * quantity
        sd_cost += cost.sd_cost * quantity
    return {"cogs": cogs, "sdCost": sd_cost, "unmappedSkus": sorted(unmapped)}


def build_overview(totals: dict[str, Any], costs: dict[str, Any], marketing_spend: float) -> dict[str, Any]:
    total_orders = safe_int(totals.get("total_orders"))
    cancelled_orders = safe_int(totals.get("cancelled_orders"))
    refunded_orders = safe_int(totals.get("refunded_orders"))
    gross_sales = safe_float(totals.get("gross_sales"))
    total_sales = safe_float(totals.get("total_sales"))
    refunded_amount = safe_float(totals.get("refunded_amount"))
    net_sales = total_sales - refunded_amount
    cogs = costs["cogs"]
    sd_cost = costs["sdCost"]
    cm2 = metrics.cm2(net_sales, cogs, marketing_spend)
    cm3 = metrics.cm3(net_sales, cogs, sd_cost, marketing_spend)

    return {
        "totalOrders": total_orders,
        "netOrders": total_orders - cancelled_orders,
        "cancelledOrders": cancelled_orders,
        "totalCustomers": safe_int(totals.get("total_customers")),
        "grossSales": metrics.round2(gross_sales),
        "discounts": metrics.round2(totals.get("total_discounts")),
        "totalSales": metrics.round2(total_sales),
        "totalTax": metrics.round2(totals.get("total_tax")),
        "totalShipping": metrics.round2(totals.get("total_shipping")),
        "refundedOrders": refunded_orders,
        "totalReturns": metrics.round2(refunded_amount),
        "netSales": metrics.round2(net_sales),
        "aov": metrics.round2(metrics.safe_div(total_sales, total_orders)),
        "cogs": metrics.round2(cogs),
        "cogsPercentage": metrics.round2(metrics.pct(cogs, total_sales)),
        "sdCost": metrics.round2(sd_cost),
        "sdCostPercentage": metrics.round2(metrics.pct(sd_cost, total_sales)),
        "marketingSpend": metrics.round2(marketing_spend),
        "roas": metrics.round2(metrics.roas(total_sales, marketing_spend)),
        "mer": metrics.round2(metrics.mer(marketing_spend, total_sales)),
        "cm2": metrics.round2(cm2),
        "cm2Percentage": metrics.round2(metrics.pct(cm2, net_sales)),
        "cm3": metrics.round2(cm3),
        "cm3Percentage": metrics.round2(metrics.pct(cm3, net_sales)),
        "returnRate": metrics.round2(metrics.pct(refunded_orders, total_orders)),
        "unmappedSkus": costs["unmappedSkus"],
    }


class OrdersReportService:
    def __init__(
        self,
        bq: Optional[BigQueryClient] = None,
        cache: Optional[CacheClient] = None,
        catalog: Optional[SkuCatalog] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.bq = bq or get_bigquery_client()
        self.cache = cache or get_cache()
        self.catalog = catalog or get_sku_catalog()

    def _tables(self) -> dict[str, str]:
        return {name: self.bq.table(name) for name in ("orders", "line_items", "refunds")}

    def _range(self, start_date: Optional[str], end_date: Optional[str]) -> tuple[str, str]:
        return report_date_range(start_date, end_date, self.settings.REPORTING_UTC_OFFSET_MINUTES)

    def _params(self, since: str, until: str, **extra: Any) -> dict[str, Any]:
        return {
            "start_date": date.fromisoformat(since),
            "end_date": date.fromisoformat(until),
            "offset_minutes": self.settings.REPORTING_UTC_OFFSET_MINUTES,
            **extra,
        }

    async def _marketing_spend(self, since: str, until: str) -> float:
        if not self.settings.ADS_SPEND_TABLE:
            return 0.0
        row = await self.bq.query_one(
            AD_SPEND_SQL.format(table=self.settings.ADS_SPEND_TABLE),
            {"start_date": date.fromisoformat(since), "end_date": date.fromisoformat(until)},
        )
        return safe_float(row.get("spend"))

    async def overview(self, start_date: Optional[str], end_date: Optional[str], store: Optional[str]) -> tuple[Any, bool]:
        since, until = self._range(start_date, end_date)
        logger.info(f"Orders overview - dates {start_date} to {end_date}, IST {since} to {until}")

        async def load() -> dict[str, Any]:
            tables = self._tables()
            params = self._params(since, until)
            totals = await self.bq.query_one(OVERVIEW_SQL.format(**tables), params)
            sku_rows = await self.bq.query(SKU_QUANTITIES_SQL.format(**tables), params)
            costs = price_sku_quantities(sku_rows, self.catalog)
            if costs["unmappedSkus"]:
                logger.warning(f"{len(costs['unmappedSkus'])} SKUs have no catalog cost")
            spend = await self._marketing_spend(since, until)
            return {
                "overview": build_overview(totals, costs, spend),
                "dateRange": {"since": since, "until": until},
            }

        return await cache_aside(self.cache, f"orders-overview-{since}-{until}-{store}", TTL_LONG, load)

    async def time_range(
        self, start_date: Optional[str], end_date: Optional[str], timeframe: str, store: Optional[str]
    ) -> tuple[Any, bool]:
        since, until = self._range(start_date, end_date)
        date_format = TIMEFRAME_FORMATS.get(timeframe, TIMEFRAME_FORMATS["day"])

        async def load() -> list[dict[str, Any]]:
            return await self.bq.query(
                TIME_RANGE_SQL.format(**self._tables()),
                self._params(since, until, date_format=date_format),
            )

        key = f"orders-time-range-{since}-{until}-{timeframe}-{store}"
        return await cache_aside(self.cache, key, TTL_SHORT, load)

    async def top_selling(
        self, start_date: Optional[str], end_date: Optional[str], limit: int, store: Optional[str]
    ) -> tuple[Any, bool]:
        since, until = self._range(start_date, end_date)

        async def load() -> list[dict[str, Any]]:
            return await self.bq.query(
                TOP_SELLING_SQL.format(**self._tables()),
                self._params(since, until, limit=limit),
            )

        key = f"orders-top-selling-{since}-{until}-{limit}-{store}"
        return await cache_aside(self.cache, key, TTL_LONG, load)

    async def refund_metrics(
        self, start_date: Optional[str], end_date: Optional[str], store: Optional[str]
    ) -> tuple[Any, bool]:
        since, until = self._range(start_date, end_date)

        async def load() -> dict[str, Any]:
            row = await self.bq.query_one(REFUND_METRICS_SQL.format(**self._tables()), self._params(since, until))
            total = safe_int(row.get("total_refunds"))
            return {
                "total_refunds": total,
                "total_refunded_amount": metrics.round2(row.get("total_refunded_amount")),
                "orders_with_refunds": safe_int(row.get("orders_with_refunds")),
                "average_refund_amount": metrics.round2(row.get("average_refund_amount")) if total else 0,
            }

        return await cache_aside(self.cache, f"orders-refund-metrics-{since}-{until}-{store}", TTL_LONG, load)
