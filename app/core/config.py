"""
Configuration
"""
from functools import lru_cache
from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

# project root
PROJECT_ROOT = Path(__file__).parent.parent.parent


class Settings(BaseSettings):
    """Application settings"""

    # environment
    ENV: str = "dev"

    # app
    APP_NAME: str = "Commerce Analytics"
    DEBUG: bool = True
    API_PREFIX: str = "/api/v1"
    CORS_ORIGIN: str = "*"
    LOG_LEVEL: str = "INFO"

    # BigQuery
    GOOGLE_CLOUD_PROJECT_ID: Optional[str] = None
    BIGQUERY_DATASET: Optional[str] = None
    # Shopify export tables live under {BIGQUERY_DATASET}.{BIGQUERY_TABLE}.<name>
    BIGQUERY_TABLE: Optional[str] = None
    BIGQUERY_LOCATION: str = "US"
    GOOGLE_APPLICATION_CREDENTIALS: Optional[str] = None
    AMAZON_BIGQUERY_DATASET: Optional[str] = None
    AMAZON_BIGQUERY_TABLE: str = "Frido_AmazonSeller_FlatFileAllOrdersReportbyLastUpdate"
    AMAZON_RETURNS_TABLE: str = "Frido_AmazonSeller_FlatFileReturnsReportbyReturnDate"
    AMAZON_FBA_RETURNS_TABLE: str = "Frido_AmazonSeller_FBAReturnsReport"
    # optional daily spend table: columns date, platform, spend
    ADS_SPEND_TABLE: Optional[str] = None

    # Valkey / Redis
    VALKEY_HOST: str = "localhost"
    VALKEY_PORT: int = 6379
    VALKEY_PASSWORD: Optional[str] = None
    VALKEY_CONNECT_TIMEOUT: float = 10.0

    # Meta Ads
    META_ACCESS_TOKEN: Optional[str] = None
    META_AD_ACCOUNT_ID: Optional[str] = None
    META_API_VERSION: str = "v19.0"

    # Google Ads
    GOOGLE_ADS_CLIENT_ID: Optional[str] = None
    GOOGLE_ADS_CLIENT_SECRET: Optional[str] = None
    GOOGLE_ADS_REFRESH_TOKEN: Optional[str] = None
    GOOGLE_ADS_DEVELOPER_TOKEN: Optional[str] = None
    GOOGLE_ADS_CUSTOMER_ID: Optional[str] = None
    GOOGLE_ADS_LOGIN_CUSTOMER_ID: Optional[str] = None
    GOOGLE_ADS_API_VERSION: str = "v16"

    # Shopify
    SHOPIFY_STORE_NAME: Optional[str] = None
    SHOPIFY_API_VERSION: str = "2024-10"
    # option 1: client credentials, token fetched and cached at runtime
    SHOPIFY_CLIENT_ID: Optional[str] = None
    SHOPIFY_CLIENT_SECRET: Optional[str] = None
    # option 2: static access token
    SHOPIFY_ACCESS_TOKEN: Optional[str] = None
    SHOPIFY_WEBHOOK_SECRET: Optional[str] = None

    # AWS / DynamoDB
    AWS_REGION: str = "ap-south-1"
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    DYNAMODB_ENDPOINT_URL: Optional[str] = None
    ORDERS_TABLE: str = "ShopifyOrders-dev"
    PRODUCTS_TABLE: str = "ShopifyProducts-dev"
    CUSTOMERS_TABLE: str = "ShopifyCustomers-dev"
    SYNC_METADATA_TABLE: str = "SyncMetadata-dev"

    # business rules
    LOW_STOCK_THRESHOLD: int = 5
    DEFAULT_CURRENCY: str = "INR"
    REPORTING_UTC_OFFSET_MINUTES: int = 330
    SKU_CATALOG_PATH: str = str(PROJECT_ROOT / "data" / "sku.json")
    EXPORT_DIR: str = str(PROJECT_ROOT / "exports")
    AMAZON_FEE_RATE: float = 0.15
    AMAZON_COGS_RATE: float = 0.40
    AMAZON_SD_RATE: float = 0.08
    DASHBOARD_REFRESH_SECONDS: int = 1800

    # CSV import
    IMPORT_BATCH_SIZE: int = 25
    IMPORT_MAX_RETRIES: int = 5
    IMPORT_PROGRESS_EVERY_FILES: int = 5

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    @property
    def shopify_graphql_url(self) -> str:
        """Shopify Admin GraphQL API URL"""
        return f"https://{self.SHOPIFY_STORE_NAME}.myshopify.com/admin/api/{self.SHOPIFY_API_VERSION}/graphql.json"

    @property
    def shopify_oauth_token_url(self) -> str:
        """OAuth access_token endpoint (client credentials)"""
        return f"https://{self.SHOPIFY_STORE_NAME}.myshopify.com/admin/oauth/access_token"

    @property
    def valkey_url(self) -> str:
        auth = f":{self.VALKEY_PASSWORD}@" if self.VALKEY_PASSWORD else ""
        return f"redis://{auth}{self.VALKEY_HOST}:{self.VALKEY_PORT}/0"

    @property
    def shopify_dataset(self) -> str:
        """Dataset prefix of the Shopify export tables"""
        return f"{self.BIGQUERY_DATASET}.{self.BIGQUERY_TABLE}"

    @property
    def amazon_dataset(self) -> str:
        return self.AMAZON_BIGQUERY_DATASET or f"{self.GOOGLE_CLOUD_PROJECT_ID}.{self.BIGQUERY_DATASET}"

    def use_client_credentials(self) -> bool:
        """Whether to fetch the Shopify token with client_id + client_secret"""
        return bool(self.SHOPIFY_CLIENT_ID and self.SHOPIFY_CLIENT_SECRET)

    def table_name(self, resource: str) -> str:
        """DynamoDB table for orders / products / customers / sync_metadata"""
        tables = {
            "orders": self.ORDERS_TABLE,
            "products": self.PRODUCTS_TABLE,
            "customers": self.CUSTOMERS_TABLE,
            "sync_metadata": self.SYNC_METADATA_TABLE,
        }
        if resource not in tables:
            raise ValueError(f"unknown resource: {resource}")
        return tables[resource]


@lru_cache
def get_settings() -> Settings:
    """Settings singleton"""
    return Settings()
