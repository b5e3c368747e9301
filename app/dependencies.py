"""
FastAPI dependency getters; tests swap them through app.dependency_overrides.
"""
from app.services.amazon_report import AmazonReportService
from app.services.dashboard_cache import DashboardSnapshotCache, get_dashboard_cache
from app.services.google_ads import GoogleAdsAnalytics
from app.services.meta_ads import MetaAdsAnalytics
from app.services.orders_report import OrdersReportService
from app.services.webhooks import WebhookProcessor


def get_orders_report() -> OrdersReportService:
    return OrdersReportService()


def get_amazon_report() -> AmazonReportService:
    return AmazonReportService()


def get_meta_ads() -> MetaAdsAnalytics:
    return MetaAdsAnalytics()


def get_google_ads() -> GoogleAdsAnalytics:
    return GoogleAdsAnalytics()


def get_snapshot_cache() -> DashboardSnapshotCache:
    return get_dashboard_cache()


def get_webhook_processor() -> WebhookProcessor:
    return WebhookProcessor(get_dashboard_cache())
