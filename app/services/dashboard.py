"""
Dashboard computations over a DashboardSnapshot: summary cards, sales chart, recent orders, store totals.

All functions are pure and take `now` so periods can be pinned in tests.
Every request filters the whole snapshot in process, O(table size).
"""
import math
from calendar import monthrange
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from app.services.dashboard_cache import DashboardSnapshot
from app.sync_utils import IST, parse_timestamp, safe_float, safe_int

TIMEFRAMES = ("day", "week", "month", "year")
WEEKDAYS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

# funnel figures the store does not record; fixed placeholders shown on the cards
CONVERSION_RATE = 3.6
REVENUE_PER_VISITOR = 3.2
ABANDONMENT_RATE = 23.4
RETURNING_CUSTOMERS = 45.2
CHURN_RATE = 5.3


def _shift_months(dt: datetime, months: int) -> datetime:
    month_index = dt.month - 1 - months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    return dt.replace(year=year, month=month, day=min(dt.day, monthrange(year, month)[1]))


def period_start(end: datetime, timeframe: str) -> datetime:
    """Start of the period ending at `end`; unknown timeframes count as a week."""
    if timeframe == "day":
        return end - timedelta(days=1)
    if timeframe == "month":
        return _shift_months(end, 1)
    if timeframe == "year":
        return _shift_months(end, 12)
    return end - timedelta(days=7)


def change_percentage(current: float, previous: float) -> float:
    """Period over period change; 0 when there is no previous value."""
    if not previous:
        return 0
    return round((current - previous) / previous * 100, 2)


def _orders_between(orders, since: str, until: str) -> list[dict[str, Any]]:
    return [o for o in orders if o.get("date") and since <= o["date"] <= until]


def _period_totals(orders: list[dict[str, Any]]) -> dict[str, Any]:
    sales = sum(safe_float(o.get("total")) for o in orders)
    customers = {(o.get("customer") or {}).get("id") for o in orders}
    customers.discard(None)
    return {"sales": sales, "orders": len(orders), "customers": len(customers)}


def _variant_inventory(variant: dict[str, Any]) -> int:
    value = variant.get("inventory")
    if value is None:
        value = variant.get("inventory_quantity")
    return safe_int(value)


def inventory_summary(products, orders, low_stock_threshold: int, top: int = 3) -> dict[str, Any]:
    low_stock = 0
    out_of_stock = 0
    for product in products:
        variants = product.get("variants") or []
        if not variants:
            continue
        levels = [_variant_inventory(v) for v in variants]
        if any(0 < level <= low_stock_threshold for level in levels):
            low_stock += 1
        if all(level <= 0 for level in levels):
            out_of_stock += 1

    titles = {str(p.get("id")): p.get("title") for p in products}
    sold: dict[str, int] = defaultdict(int)
    for order in orders:
        for item in order.get("line_items") or []:
            key = item.get("product_id") or item.get("title")
            if key:
                sold[str(key)] += safe_int(item.get("quantity"), 1)

    top_selling = sorted(sold.items(), key=lambda kv: kv[1], reverse=True)[:top]
    return {
        "totalProducts": len(products),
        "lowStock": low_stock,
        "outOfStock": out_of_stock,
        "topSellingProducts": [
            {"id": pid, "name": titles.get(pid) or f"Product {pid}", "sales": qty}
            for pid, qty in top_selling
        ],
    }


def dashboard_summary(
    snapshot: DashboardSnapshot,
    timeframe: str = "week",
    now: Optional[datetime] = None,
    low_stock_threshold: int = 5,
) -> dict[str, Any]:
    """Current vs previous period cards. Periods are compared on the order `date` attribute."""
    end = (now or datetime.now(timezone.utc)).astimezone(IST)
    start = period_start(end, timeframe)
    prev_end = start - timedelta(days=1)
    prev_start = period_start(prev_end, timeframe)

    current_orders = _orders_between(snapshot.orders, start.date().isoformat(), end.date().isoformat())
    previous_orders = _orders_between(snapshot.orders, prev_start.date().isoformat(), prev_end.date().isoformat())
    current = _period_totals(current_orders)
    previous = _period_totals(previous_orders)

    aov = current["sales"] / current["orders"] if current["orders"] else 0
    return {
        "salesSummary": {
            "totalSales": round(current["sales"], 2),
            "percentageChange": change_percentage(current["sales"], previous["sales"]),
            "averageOrderValue": round(aov, 2),
            "conversionRate": CONVERSION_RATE,
            "revenuePerVisitor": REVENUE_PER_VISITOR,
        },
        "ordersSummary": {
            "totalOrders": current["orders"],
            "percentageChange": change_percentage(current["orders"], previous["orders"]),
            "abandonedCarts": round(current["orders"] * 0.3),
            "abandonmentRate": ABANDONMENT_RATE,
            "returningCustomers": RETURNING_CUSTOMERS,
        },
        "customersSummary": {
            "totalCustomers": current["customers"],
            "percentageChange": change_percentage(current["customers"], previous["customers"]),
            "newCustomers": round(current["customers"] * 0.25),
            "activeCustomers": round(current["customers"] * 0.65),
            "churnRate": CHURN_RATE,
        },
        "inventorySummary": inventory_summary(snapshot.products, current_orders, low_stock_threshold),
        "timeframe": timeframe,
        "lastUpdated": snapshot.refreshed_at,
    }


def _buckets(timeframe: str, start: datetime) -> tuple[list[str], Any]:
    """Labels and a datetime -> bucket index function for one chart."""
    if timeframe == "day":
        return [f"{h}:00" for h in range(24)], lambda dt: dt.hour
    if timeframe == "month":
        return [str(d) for d in range(1, 31)], lambda dt: (dt.date() - start.date()).days
    if timeframe == "year":
        return list(MONTHS), lambda dt: dt.month - 1
    return list(WEEKDAYS), lambda dt: dt.weekday()


def sales_analytics(
    snapshot: DashboardSnapshot, timeframe: str = "week", now: Optional[datetime] = None
) -> dict[str, Any]:
    """Revenue and order count per bucket for the period ending now, in the reporting timezone."""
    end = (now or datetime.now(timezone.utc)).astimezone(IST)
    start = period_start(end, timeframe)
    labels, index_of = _buckets(timeframe, start)
    revenue = [0.0] * len(labels)
    counts = [0] * len(labels)

    for order in snapshot.orders:
        created = parse_timestamp(order.get("created_at"))
        if created is None:
            continue
        created = created.astimezone(IST)
        if not start <= created <= end:
            continue
        index = index_of(created)
        if 0 <= index < len(labels):
            revenue[index] += safe_float(order.get("total"))
            counts[index] += 1

    total_revenue = sum(revenue)
    total_orders = sum(counts)
    return {
        "labels": labels,
        "datasets": [
            {"id": "revenue", "label": "Revenue", "data": [round(v, 2) for v in revenue], "color": "#0073B6"},
            {"id": "orders", "label": "Orders", "data": counts, "color": "#4CAF50"},
        ],
        "totalRevenue": round(total_revenue, 2),
        "totalOrders": total_orders,
        "averageRevenue": round(total_revenue / len(labels)),
        "averageOrders": round(total_orders / len(labels)),
    }


def _created_sort_key(order: dict[str, Any]) -> float:
    created = parse_timestamp(order.get("created_at"))
    return created.timestamp() if created else float("-inf")


def recent_orders(snapshot: DashboardSnapshot, page: int = 1, page_size: int = 10) -> dict[str, Any]:
    page = max(page, 1)
    page_size = max(page_size, 1)
    ordered = sorted(snapshot.orders, key=_created_sort_key, reverse=True)
    window = ordered[(page - 1) * page_size: page * page_size]
    return {
        "orders": [
            {
                "id": o.get("name") or o.get("id"),
                "customer": (o.get("customer") or {}).get("name") or "Guest",
                "date": o.get("created_at"),
                "total": safe_float(o.get("total")),
                "status": str(o.get("status") or "unknown").capitalize(),
                "items": len(o.get("line_items") or []),
                "paymentMethod": o.get("payment_method") or "Credit Card",
            }
            for o in window
        ],
        "total": len(ordered),
        "page": page,
        "pageSize": page_size,
        "totalPages": math.ceil(len(ordered) / page_size),
    }


def store_summary(snapshot: DashboardSnapshot, latest_sync: Optional[dict[str, Any]]) -> dict[str, Any]:
    return {
        "totalOrders": len(snapshot.orders),
        "totalRevenue": round(sum(safe_float(o.get("total")) for o in snapshot.orders), 2),
        "totalProducts": len(snapshot.products),
        "totalCustomers": len(snapshot.customers),
        "lastSyncTime": (latest_sync or {}).get("completedAt"),
    }
