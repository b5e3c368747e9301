"""
Derived business metrics. Every ratio with a zero denominator is 0.
"""
from typing import Any

from app.sync_utils import safe_float


def safe_div(numerator: Any, denominator: Any) -> float:
    d = safe_float(denominator)
    if d == 0:
        return 0.0
    return safe_float(numerator) / d


def pct(part: Any, whole: Any) -> float:
    """part / whole * 100"""
    return safe_div(part, whole) * 100


def roas(revenue: Any, spend: Any) -> float:
    """Return on ad spend: revenue / spend."""
    return safe_div(revenue, spend)


def mer(spend: Any, revenue: Any) -> float:
    """Marketing efficiency ratio: spend / revenue, as a percentage."""
    return pct(spend, revenue)


def pct_change(current: Any, previous: Any) -> float:
    """Relative change in percent; 100 when growing from zero, 0 when both are zero."""
    cur = safe_float(current)
    prev = safe_float(previous)
    if prev == 0:
        return 100.0 if cur > 0 else 0.0
    return (cur - prev) / prev * 100


def cm2(net_sales: Any, cogs: Any, marketing_spend: Any) -> float:
    """Contribution margin after COGS and marketing."""
    return safe_float(net_sales) - safe_float(cogs) - safe_float(marketing_spend)


def cm3(net_sales: Any, cogs: Any, sd_cost: Any, marketing_spend: Any) -> float:
    """Contribution margin after COGS, S&D and marketing."""
    return cm2(net_sales, cogs, marketing_spend) - safe_float(sd_cost)


def round2(value: Any) -> float:
    return round(safe_float(value), 2)
