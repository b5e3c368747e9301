"""
Amazon Seller Central reports (BigQuery).

Order rows are re-exported on every status change, so each query first keeps the latest
row per (amazon_order_id, sku, asin) by last_updated_date. Purchase dates are shifted to
the reporting day (UTC+5:30) before filtering.
"""
from datetime import date
from typing import Any, Optional

from loguru import logger

from app.core.config import Settings, get_settings
from app.core.errors import NotFoundError, ValidationError
from app.services import metrics
from app.services.bigquery_client import BigQueryClient, get_bigquery_client
from app.services.cache import TTL_LONG, TTL_SHORT, CacheClient, cache_aside, get_cache
from app.services.meta_ads import MetaAdsAnalytics
from app.services.orders_report import TIMEFRAME_FORMATS
from app.services.sku_catalog import SkuCatalog, get_sku_catalog
from app.sync_utils import report_date_range, safe_float, safe_int

LATEST_ROWS = """
  SELECT
    *,
    ROW_NUMBER() OVER (
      PARTITION BY amazon_order_id, sku, asin
      ORDER BY last_updated_date DESC
    ) AS rn
  FROM {orders}
"""

IST_PURCHASE_DATE = "DATE(DATETIME_ADD(purchase_date, INTERVAL @offset_minutes MINUTE))"

OVERVIEW_SQL = """
-- amazon_overview
WITH latest_line_items AS ({latest}
  WHERE {ist_date} BETWEEN @start_date AND @end_date
)
SELECT
  COUNT(*) AS total_orders,
  COUNT(*) AS total_line_items,
  SUM(CASE WHEN quantity IS NOT NULL THEN CAST(quantity AS FLOAT64) ELSE 0 END) AS total_items_sold,
  COUNT(CASE WHEN LOWER(item_status) LIKE '%cancel%' THEN 1 END) AS cancelled_items,
  COUNT(CASE WHEN LOWER(item_status) LIKE '%return%' THEN 1 END) AS returned_items,
  SUM(CAST(COALESCE(item_price, 0) AS FLOAT64)) AS gross_sales,
  SUM(CAST(COALESCE(item_price, 0) AS FLOAT64) - CAST(COALESCE(item_promotion_discount, 0) AS FLOAT64)) AS total_sales,
  SUM(CAST(COALESCE(item_tax, 0) AS FLOAT64)) AS total_tax,
  SUM(CAST(COALESCE(shipping_price, 0) AS FLOAT64)) AS total_shipping,
  SUM(CAST(COALESCE(shipping_tax, 0) AS FLOAT64)) AS total_shipping_tax,
  SUM(CAST(COALESCE(item_promotion_discount, 0) AS FLOAT64) + CAST(COALESCE(ship_promotion_discount, 0) AS FLOAT64)) AS total_promotions,
  AVG(CAST(COALESCE(item_price, 0) AS FLOAT64)) AS avg_item_price
FROM latest_line_items
WHERE rn = 1
"""

TIME_RANGE_SQL = """
-- amazon_time_range
WITH latest_line_items AS ({latest}
  WHERE {ist_date} BETWEEN @start_date AND @end_date
)
SELECT
  FORMAT_DATE(@date_format, {ist_date}) AS period,
  COUNT(DISTINCT amazon_order_id) AS order_count,
  SUM(CAST(COALESCE(item_price, 0) AS FLOAT64) - CAST(COALESCE(item_promotion_discount, 0) AS FLOAT64)) AS daily_revenue,
  AVG(CAST(COALESCE(item_price, 0) AS FLOAT64) - CAST(COALESCE(item_promotion_discount, 0) AS FLOAT64)) AS avg_order_value,
  SUM(CASE WHEN quantity IS NOT NULL THEN CAST(quantity AS FLOAT64) ELSE 0 END) AS items_sold
FROM latest_line_items
WHERE rn = 1
GROUP BY period
ORDER BY period
"""

TOP_SELLING_SQL = """
-- amazon_top_selling
WITH latest_line_items AS ({latest}
  WHERE {ist_date} BETWEEN @start_date AND @end_date
)
SELECT
  COALESCE(product_name, 'Unknown Product') AS product_name,
  SUM(CASE WHEN quantity IS NOT NULL THEN CAST(quantity AS FLOAT64) ELSE 0 END) AS total_quantity,
  SUM(CAST(COALESCE(item_price, 0) AS FLOAT64) - CAST(COALESCE(item_promotion_discount, 0) AS FLOAT64)) AS total_revenue,
  COUNT(DISTINCT sku) AS number_of_variants,
  COUNT(DISTINCT asin) AS number_of_asins,
  AVG(CAST(COALESCE(item_price, 0) AS FLOAT64)) AS average_price,
  COUNT(DISTINCT amazon_order_id) AS orders_count
FROM latest_line_items
WHERE rn = 1
  AND LOWER(item_status) NOT LIKE '%cancel%'
GROUP BY product_name
ORDER BY total_quantity DESC
LIMIT @limit
"""

# seller-fulfilled returns excluding replacements, plus FBA returns, latest batch per key
COMBINED_RETURNS = """
seller_fulfilled_returns AS (
  SELECT
    Order_ID AS order_id,
    Return_request_date AS return_date,
    Item_Name AS product_name,
    Return_quantity AS quantity,
    Return_Reason AS reason,
    Return_request_status AS status,
    In_policy,
    Resolution,
    ASIN AS asin,
    Merchant_SKU AS sku,
    Is_prime,
    Label_cost,
    Category,
    'Seller Fulfilled' AS fulfillment_type,
    ROW_NUMBER() OVER (PARTITION BY Order_ID, ASIN, Merchant_SKU ORDER BY _daton_batch_runtime DESC) AS rn
  FROM {returns}
  WHERE DATE(Return_request_date) BETWEEN @start_date AND @end_date
),
fba_returns AS (
  SELECT
    order_id,
    DATETIME(return_date) AS return_date,
    product_name,
    quantity,
    reason,
    status,
    CAST(NULL AS STRING) AS In_policy,
    detailed_disposition AS Resolution,
    asin,
    sku,
    CAST(NULL AS BOOLEAN) AS Is_prime,
    CAST(NULL AS NUMERIC) AS Label_cost,
    CAST(NULL AS STRING) AS Category,
    'FBA' AS fulfillment_type,
    ROW_NUMBER() OVER (PARTITION BY order_id, asin, sku ORDER BY _daton_batch_runtime DESC) AS rn
  FROM {fba_returns}
  WHERE DATE(return_date) BETWEEN @start_date AND @end_date
),
combined_returns AS (
  SELECT * EXCEPT (rn) FROM seller_fulfilled_returns
  WHERE rn = 1 AND (Resolution != 'Replacement' OR Resolution IS NULL)
  UNION ALL
  SELECT * EXCEPT (rn) FROM fba_returns
  WHERE rn = 1
),
order_prices AS ({latest})
"""

RETURNS_DATA_SQL = """
-- amazon_returns_data
WITH {combined}
SELECT
  c.* EXCEPT (Is_prime, Label_cost, Category),
  COALESCE(o.item_price, 0) AS item_price,
  COALESCE(c.quantity, 0) * COALESCE(o.item_price, 0) AS return_amount
FROM combined_returns c
LEFT JOIN order_prices o
  ON c.order_id = o.amazon_order_id AND c.sku = o.sku AND c.asin = o.asin AND o.rn = 1
ORDER BY c.return_date DESC
LIMIT 1000
"""

RETURNS_OVERVIEW_SQL = """
-- amazon_returns_overview
WITH {combined},
period_orders AS ({latest}
  WHERE {ist_date} BETWEEN @start_date AND @end_date
),
unique_orders AS (
  SELECT
    COUNT(DISTINCT amazon_order_id) AS total_orders_placed,
    COUNT(*) AS total_line_items_ordered,
    SUM(CASE WHEN quantity IS NOT NULL THEN CAST(quantity AS FLOAT64) ELSE 0 END) AS total_items_ordered
  FROM period_orders
  WHERE rn = 1
),
returns_data AS (
  SELECT
    c.*,
    CAST(COALESCE(c.quantity, 0) AS FLOAT64)
      * CAST(COALESCE(o.item_price / NULLIF(o.quantity, 0), 0) AS FLOAT64) AS return_amount
  FROM combined_returns c
  LEFT JOIN order_prices o
    ON c.order_id = o.amazon_order_id AND c.sku = o.sku AND c.asin = o.asin AND o.rn = 1
),
return_metrics AS (
  SELECT
    COUNT(DISTINCT order_id) AS total_return_orders,
    COUNT(*) AS total_return_items,
    SUM(CAST(COALESCE(quantity, 0) AS FLOAT64)) AS total_return_quantity,
    SUM(CAST(COALESCE(return_amount, 0) AS FLOAT64)) AS total_return_amount,
    COUNT(CASE WHEN status IN ('Closed', 'Completed') THEN 1 END) AS closed_returns,
    COUNT(CASE WHEN status IN ('Approved', 'Processing') THEN 1 END) AS approved_returns,
    COUNT(CASE WHEN In_policy = 'Yes' THEN 1 END) AS in_policy_returns,
    COUNT(CASE WHEN In_policy = 'No' THEN 1 END) AS out_of_policy_returns,
    COUNT(CASE WHEN Is_prime = TRUE THEN 1 END) AS prime_returns,
    AVG(CAST(COALESCE(Label_cost, 0) AS FLOAT64)) AS avg_label_cost,
    COUNT(DISTINCT reason) AS unique_return_reasons,
    COUNT(DISTINCT Category) AS unique_categories,
    STRING_AGG(DISTINCT reason LIMIT 5) AS top_return_reasons,
    COUNT(CASE WHEN Resolution LIKE '%Refund%' THEN 1 END) AS refund_resolutions,
    COUNT(CASE WHEN Resolution = 'Refund & Return' THEN 1 END) AS refund_return_resolutions,
    COUNT(CASE WHEN Resolution NOT IN ('Refund', 'Refund & Return', 'Replacement') THEN 1 END) AS other_resolutions,
    COUNT(CASE WHEN fulfillment_type = 'Seller Fulfilled' THEN 1 END) AS seller_fulfilled_returns,
    COUNT(CASE WHEN fulfillment_type = 'FBA' THEN 1 END) AS fba_returns,
    AVG(CAST(COALESCE(return_amount, 0) AS FLOAT64)) AS avg_return_amount_per_item
  FROM returns_data
)
SELECT u.*, r.*
FROM unique_orders u
CROSS JOIN return_metrics r
"""

PRODUCT_METRICS_SQL = """
-- amazon_product_metrics
WITH latest_line_items AS ({latest}
  WHERE LOWER(sku) IN UNNEST(@skus)
    AND {ist_date} BETWEEN @start_date AND @end_date
),
product_data AS (
  SELECT
    ANY_VALUE(sku) AS sku,
    ANY_VALUE(product_name) AS product_name,
    ANY_VALUE(asin) AS asin,
    ANY_VALUE(currency) AS currency,
    COUNT(DISTINCT amazon_order_id) AS total_orders,
    COUNT(*) AS total_line_items,
    SUM(CASE WHEN quantity IS NOT NULL THEN CAST(quantity AS FLOAT64) ELSE 0 END) AS total_items_sold,
    COUNT(CASE WHEN LOWER(item_status) LIKE '%cancel%' THEN 1 END) AS cancelled_items,
    COUNT(CASE WHEN LOWER(item_status) LIKE '%return%' THEN 1 END) AS returned_items,
    SUM(CAST(COALESCE(item_price, 0) AS FLOAT64)) AS gross_sales,
    SUM(CAST(COALESCE(item_price, 0) AS FLOAT64) - CAST(COALESCE(item_promotion_discount, 0) AS FLOAT64)) AS total_sales,
    SUM(CAST(COALESCE(item_tax, 0) AS FLOAT64)) AS total_tax,
    SUM(CAST(COALESCE(shipping_price, 0) AS FLOAT64)) AS total_shipping,
    SUM(CAST(COALESCE(item_promotion_discount, 0) AS FLOAT64) + CAST(COALESCE(ship_promotion_discount, 0) AS FLOAT64)) AS total_promotions,
    AVG(CAST(COALESCE(item_price, 0) AS FLOAT64)) AS avg_item_price,
    ARRAY_AGG(
      STRUCT(
        {ist_date} AS date,
        CAST(COALESCE(item_price, 0) AS FLOAT64) - CAST(COALESCE(item_promotion_discount, 0) AS FLOAT64) AS daily_sales,
        CAST(quantity AS FLOAT64) AS daily_quantity
      )
      ORDER BY {ist_date}
    ) AS daily_data
  FROM latest_line_items
  WHERE rn = 1
),
returns_data AS (
  SELECT
    COUNT(*) AS total_return_items,
    SUM(CAST(COALESCE(Return_quantity, 0) AS FLOAT64)) AS total_return_quantity
  FROM {returns}
  WHERE LOWER(Merchant_SKU) IN UNNEST(@skus)
    AND DATE(Return_request_date) BETWEEN @start_date AND @end_date
)
SELECT p.*, r.total_return_items, r.total_return_quantity
FROM product_data p
CROSS JOIN returns_data r
"""


def zero_marketing(keyword: Optional[str] = None) -> dict[str, Any]:
    return {
        "adSpend": 0,
        "impressions": 0,
        "clicks": 0,
        "purchases": 0,
        "purchaseValue": 0,
        "roas": 0,
        "ctr": 0,
        "cpc": 0,
        "targetingKeyword": keyword or "N/A",
    }


def marketing_from_campaigns(campaigns: list[dict[str, Any]], keyword: str) -> dict[str, Any]:
    """Sum Meta campaign insights whose name contains keyword (case-insensitive)."""
    needle = keyword.lower()
    matched = [c for c in campaigns if needle in (c.get("campaign_name") or "").lower()]
    spend = sum(safe_float(c.get("spend")) for c in matched)
    impressions = sum(safe_int(c.get("impressions")) for c in matched)
    clicks = sum(safe_int(c.get("clicks")) for c in matched)
    purchases = sum(safe_int(c.get("total_purchases")) for c in matched)
    purchase_value = sum(safe_float(c.get("total_purchase_value")) for c in matched)
    return {
        "adSpend": metrics.round2(spend),
        "impressions": impressions,
        "clicks": clicks,
        "purchases": purchases,
        "purchaseValue": metrics.round2(purchase_value),
        "roas": metrics.round2(metrics.roas(purchase_value, spend)),
        "ctr": metrics.round2(metrics.pct(clicks, impressions)),
        "cpc": metrics.round2(metrics.safe_div(spend, clicks)),
        "targetingKeyword": keyword,
        "campaignsMatched": len(matched),
    }


def no_data_product_metrics(product: dict[str, Any], master_sku: str, marketing: dict[str, Any]) -> dict[str, Any]:
    overview_keys = [
        "totalOrders", "totalSales", "grossSales", "netSales", "aov", "grossSalePercentage",
        "netSalePercentage", "netOrders", "totalQuantitySold", "netQuantitySold",
        "totalReturnsQuantity", "totalReturns", "totalReturnPercentage", "totalTax", "taxRate",
        "cogs", "cogsPercentage", "sdCost", "sdCostPercentage", "grossRoas", "netRoas", "nRoas",
        "nMer", "cac", "nCac", "cm2", "cm2Percentage", "cm3", "cm3Percentage", "paidCac",
        "organicCac", "contributionMargin", "contributionMarginPercentage", "profitMargin",
    ]
    return {
        "product": {
            "name": product.get("itemName") or "Product Not Found",
            "sku": master_sku,
            "price": 0,
            "image": None,
            "asin": "N/A",
        },
        "overview": {key: 0 for key in overview_keys},
        "charts": {"salesOverTime": [], "quantityOverTime": [], "topVariants": [], "customerInsights": []},
        "marketing": marketing,
        "variants": [],
        "customers": {
            "totalCustomers": 0,
            "repeatCustomers": 0,
            "repeatRate": 0,
            "avgOrdersPerCustomer": 0,
            "acquisitionCost": 0,
        },
    }


class AmazonReportService:
    def __init__(
        self,
        bq: Optional[BigQueryClient] = None,
        cache: Optional[CacheClient] = None,
        catalog: Optional[SkuCatalog] = None,
        meta: Optional[MetaAdsAnalytics] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.bq = bq or get_bigquery_client()
        self.cache = cache or get_cache()
        self.catalog = catalog or get_sku_catalog()
        self._meta = meta

    @property
    def meta(self) -> MetaAdsAnalytics:
        if self._meta is None:
            self._meta = MetaAdsAnalytics(settings=self.settings)
        return self._meta

    def _table(self, name: str) -> str:
        return self.bq.table(name, dataset=self.settings.amazon_dataset)

    def _sql(self, template: str, **extra: Any) -> str:
        latest = LATEST_ROWS.format(orders=self._table(self.settings.AMAZON_BIGQUERY_TABLE))
        combined = COMBINED_RETURNS.format(
            returns=self._table(self.settings.AMAZON_RETURNS_TABLE),
            fba_returns=self._table(self.settings.AMAZON_FBA_RETURNS_TABLE),
            latest=latest,
        )
        return template.format(
            latest=latest,
            combined=combined,
            ist_date=IST_PURCHASE_DATE,
            returns=self._table(self.settings.AMAZON_RETURNS_TABLE),
            **extra,
        )

    def _range(self, start_date: Optional[str], end_date: Optional[str]) -> tuple[str, str]:
        return report_date_range(start_date, end_date, self.settings.REPORTING_UTC_OFFSET_MINUTES)

    def _params(self, since: str, until: str, **extra: Any) -> dict[str, Any]:
        return {
            "start_date": date.fromisoformat(since),
            "end_date": date.fromisoformat(until),
            "offset_minutes": self.settings.REPORTING_UTC_OFFSET_MINUTES,
            **extra,
        }

    async def overview(self, start_date: Optional[str], end_date: Optional[str], store: Optional[str]) -> tuple[Any, bool]:
        since, until = self._range(start_date, end_date)
        logger.info(f"Amazon overview - dates {start_date} to {end_date}, IST {since} to {until}")

        async def load() -> dict[str, Any]:
            result = await self.bq.query_one(self._sql(OVERVIEW_SQL), self._params(since, until))
            return self.build_overview(result)

        return await cache_aside(self.cache, f"amazon-orders-overview-{since}-{until}-{store}", TTL_LONG, load)

    def build_overview(self, result: dict[str, Any]) -> dict[str, Any]:
        s = self.settings
        total_orders = safe_int(result.get("total_orders"))
        cancelled_items = safe_int(result.get("cancelled_items"))
        returned_items = safe_int(result.get("returned_items"))
        total_items_sold = safe_int(result.get("total_items_sold"))
        total_sales = safe_float(result.get("total_sales"))
        gross_sales = safe_float(result.get("gross_sales"))
        amazon_fees = total_sales * s.AMAZON_FEE_RATE
        net_sales = total_sales - amazon_fees
        return {
            **result,
            "average_order_value": metrics.round2(metrics.safe_div(total_sales, total_orders - cancelled_items)),
            "amazon_fees": amazon_fees,
            "net_sales": net_sales,
            "return_rate": metrics.pct(returned_items, total_items_sold),
            "cancellation_rate": metrics.pct(cancelled_items, total_items_sold),
            "gross_sales_percentage": metrics.pct(gross_sales, total_sales),
            "net_sales_percentage": metrics.pct(net_sales, total_sales),
            "total_returns": returned_items * metrics.safe_div(total_sales, total_items_sold),
            "tax_rate": metrics.safe_div(result.get("total_tax"), total_sales),
            "cogs": total_sales * s.AMAZON_COGS_RATE,
            "sd_cost": safe_float(result.get("total_shipping")) or total_sales * s.AMAZON_SD_RATE,
            "cogs_percentage": s.AMAZON_COGS_RATE * 100,
            "sd_cost_percentage": s.AMAZON_SD_RATE * 100,
        }

    async def time_range(
        self, start_date: Optional[str], end_date: Optional[str], timeframe: str, store: Optional[str]
    ) -> tuple[Any, bool]:
        since, until = self._range(start_date, end_date)
        date_format = TIMEFRAME_FORMATS.get(timeframe, TIMEFRAME_FORMATS["day"])

        async def load() -> list[dict[str, Any]]:
            return await self.bq.query(self._sql(TIME_RANGE_SQL), self._params(since, until, date_format=date_format))

        key = f"amazon-orders-time-range-{since}-{until}-{timeframe}-{store}"
        return await cache_aside(self.cache, key, TTL_SHORT, load)

    async def top_selling(
        self, start_date: Optional[str], end_date: Optional[str], store: Optional[str], limit: int = 10
    ) -> tuple[Any, bool]:
        since, until = self._range(start_date, end_date)

        async def load() -> list[dict[str, Any]]:
            return await self.bq.query(self._sql(TOP_SELLING_SQL), self._params(since, until, limit=limit))

        return await cache_aside(self.cache, f"amazon-top-selling-{since}-{until}-{limit}-{store}", TTL_LONG, load)

    async def returns_data(self, start_date: Optional[str], end_date: Optional[str], store: Optional[str]) -> tuple[Any, bool]:
        since, until = self._range(start_date, end_date)

        async def load() -> list[dict[str, Any]]:
            return await self.bq.query(self._sql(RETURNS_DATA_SQL), self._params(since, until))

        return await cache_aside(self.cache, f"amazon-returns-data-{since}-{until}-{store}", TTL_SHORT, load)

    async def returns_overview(
        self, start_date: Optional[str], end_date: Optional[str], store: Optional[str]
    ) -> tuple[Any, bool]:
        since, until = self._range(start_date, end_date)

        async def load() -> dict[str, Any]:
            result = await self.bq.query_one(self._sql(RETURNS_OVERVIEW_SQL), self._params(since, until))
            return self.build_returns_overview(result)

        return await cache_aside(self.cache, f"amazon-returns-overview-{since}-{until}-{store}", TTL_LONG, load)

    @staticmethod
    def build_returns_overview(result: dict[str, Any]) -> dict[str, Any]:
        orders_placed = safe_int(result.get("total_orders_placed"))
        return_orders = safe_int(result.get("total_return_orders"))
        return_items = safe_int(result.get("total_return_items"))
        items_ordered = safe_float(result.get("total_items_ordered"))
        return_amount = safe_float(result.get("total_return_amount"))
        in_policy = safe_int(result.get("in_policy_returns"))
        out_of_policy = safe_int(result.get("out_of_policy_returns"))
        return {
            **result,
            "return_rate_percentage": metrics.round2(metrics.pct(return_orders, orders_placed)),
            "item_return_rate_percentage": metrics.round2(metrics.pct(return_items, items_ordered)),
            "avg_return_amount_per_return": metrics.round2(metrics.safe_div(return_amount, return_items)),
            "in_policy_percentage": metrics.round2(metrics.pct(in_policy, in_policy + out_of_policy)),
            "prime_return_percentage": metrics.round2(metrics.pct(result.get("prime_returns"), return_items)),
        }

    async def product_metrics(
        self, master_sku: str, start_date: Optional[str], end_date: Optional[str], store: Optional[str]
    ) -> tuple[Any, bool]:
        if not master_sku:
            raise ValidationError("SKU is required")
        since, until = self._range(start_date, end_date)

        product = self.catalog.find_product(master_sku)
        if product is None:
            raise NotFoundError(f"Product with SKU {master_sku} not found")
        variant_skus = self.catalog.amazon_variant_skus(product)
        if not variant_skus:
            raise ValidationError(f"No valid variant SKUs found for product {master_sku}")
        logger.info(f"Amazon product metrics - {master_sku}: {len(variant_skus)} variant SKUs, IST {since} to {until}")

        key = f"amazon-product-metrics-{master_sku}-{since}-{until}-{store}"
        cached = await self.cache.get_json(key)
        if cached is not None:
            return cached, True

        marketing = await self._marketing(product, since, until)
        result = await self.bq.query_one(
            self._sql(PRODUCT_METRICS_SQL),
            self._params(since, until, skus=[s.lower() for s in variant_skus]),
        )
        if not result.get("sku"):
            data = no_data_product_metrics(product, master_sku, marketing)
            await self.cache.set_json(key, data, TTL_SHORT)
            return data, False

        data = self.build_product_metrics(product, master_sku, result, marketing)
        await self.cache.set_json(key, data, TTL_LONG)
        return data, False

    async def _marketing(self, product: dict[str, Any], since: str, until: str) -> dict[str, Any]:
        keyword = product.get("marketingKeyword")
        if not keyword:
            return zero_marketing()
        if not self.meta.configured:
            logger.warning("Meta Ads is not configured, marketing block left empty")
            return zero_marketing(keyword)
        campaigns = await self.meta.get_campaign_insights({"since": since, "until": until})
        return marketing_from_campaigns(campaigns, keyword)

    def build_product_metrics(
        self,
        product: dict[str, Any],
        master_sku: str,
        result: dict[str, Any],
        marketing: dict[str, Any],
    ) -> dict[str, Any]:
        s = self.settings
        total_orders = safe_int(result.get("total_orders"))
        total_sales = safe_float(result.get("total_sales"))
        gross_sales = safe_float(result.get("gross_sales"))
        cancelled_items = safe_int(result.get("cancelled_items"))
        returned_items = safe_int(result.get("returned_items"))
        items_sold = safe_int(result.get("total_items_sold"))
        total_tax = safe_float(result.get("total_tax"))
        total_shipping = safe_float(result.get("total_shipping"))
        return_quantity = safe_float(result.get("total_return_quantity"))
        ad_spend = safe_float(marketing.get("adSpend"))

        net_sales = total_sales - total_sales * s.AMAZON_FEE_RATE
        aov = metrics.safe_div(total_sales, total_orders)
        unit_cost = self.catalog.product_unit_cost(product)
        if unit_cost is not None:
            cogs = unit_cost.cogs * items_sold
            sd_cost = unit_cost.sd_cost * items_sold
        else:
            cogs = total_sales * s.AMAZON_COGS_RATE
            sd_cost = total_shipping or total_sales * s.AMAZON_SD_RATE
        cm2 = metrics.cm2(net_sales, cogs, ad_spend)
        cm3 = metrics.cm3(net_sales, cogs, sd_cost, ad_spend)

        daily = result.get("daily_data") or []
        return {
            "product": {
                "name": result.get("product_name") or product.get("itemName") or "Unknown Product",
                "sku": master_sku,
                "price": safe_float(result.get("avg_item_price")),
                "image": None,
                "asin": result.get("asin") or "N/A",
                "currency": result.get("currency") or s.DEFAULT_CURRENCY,
            },
            "overview": {
                "totalOrders": total_orders,
                "totalSales": total_sales,
                "grossSales": gross_sales,
                "netSales": net_sales,
                "aov": aov,
                "grossSalePercentage": 100 if gross_sales > 0 else 0,
                "netSalePercentage": metrics.pct(net_sales, gross_sales),
                "netOrders": total_orders - cancelled_items,
                "totalQuantitySold": items_sold,
                "netQuantitySold": items_sold - returned_items,
                "totalReturnsQuantity": return_quantity,
                "totalReturns": return_quantity * aov,
                "totalReturnPercentage": metrics.pct(return_quantity, items_sold),
                "totalTax": total_tax,
                "taxRate": metrics.pct(total_tax, total_sales),
                "cogs": cogs,
                "cogsPercentage": metrics.pct(cogs, total_sales),
                "sdCost": sd_cost,
                "sdCostPercentage": metrics.pct(sd_cost, total_sales),
                "grossRoas": metrics.roas(total_sales, ad_spend),
                "netRoas": metrics.roas(net_sales, ad_spend),
                "nRoas": metrics.roas(net_sales, ad_spend),
                "nMer": metrics.mer(ad_spend, net_sales),
                "cac": metrics.safe_div(ad_spend, total_orders),
                "nCac": metrics.safe_div(ad_spend, total_orders - cancelled_items),
                "cm2": cm2,
                "cm2Percentage": metrics.pct(cm2, net_sales),
                "cm3": cm3,
                "cm3Percentage": metrics.pct(cm3, net_sales),
                "paidCac": metrics.safe_div(ad_spend, marketing.get("purchases")),
                "organicCac": 0,
                "contributionMargin": cm3,
                "contributionMarginPercentage": metrics.pct(cm3, net_sales),
                "profitMargin": metrics.pct(net_sales - cogs, net_sales),
            },
            "charts": {
                "salesOverTime": [
                    {"date": d.get("date"), "sales": d.get("daily_sales") or 0, "quantity": d.get("daily_quantity") or 0}
                    for d in daily
                ],
                "quantityOverTime": [{"date": d.get("date"), "quantity": d.get("daily_quantity") or 0} for d in daily],
                "topVariants": [],
                "customerInsights": [],
            },
            "marketing": marketing,
            "variants": [
                {
                    "name": result.get("product_name") or "Main Variant",
                    "sku": result.get("sku"),
                    "unitsSold": items_sold,
                    "revenue": total_sales,
                    "avgPrice": aov,
                    "performance": "Good" if items_sold > 0 else "Low",
                }
            ],
            "customers": {
                "totalCustomers": total_orders,
                "repeatCustomers": 0,
                "repeatRate": 0,
                "avgOrdersPerCustomer": 1 if total_orders else 0,
                "acquisitionCost": metrics.safe_div(ad_spend, total_orders),
            },
        }
