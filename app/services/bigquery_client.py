"""
BigQuery wrapper: typed named parameters, row normalisation, worker-thread execution.
"""
import asyncio
import re
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from google.cloud import bigquery
from loguru import logger

from app.core.config import Settings, get_settings
from app.core.errors import UpstreamError

_ISO_TIMESTAMP = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}")


def build_query_parameter(name: str, value: Any):
    """Python value -> BigQuery query parameter."""
    if isinstance(value, (list, tuple)):
        return bigquery.ArrayQueryParameter(name, "STRING", [str(v) for v in value])
    if isinstance(value, bool):
        return bigquery.ScalarQueryParameter(name, "BOOL", value)
    if isinstance(value, datetime):
        return bigquery.ScalarQueryParameter(name, "TIMESTAMP", value)
    if isinstance(value, date):
        return bigquery.ScalarQueryParameter(name, "DATE", value)
    if isinstance(value, int):
        return bigquery.ScalarQueryParameter(name, "INT64", value)
    if isinstance(value, (float, Decimal)):
        return bigquery.ScalarQueryParameter(name, "FLOAT64", float(value))
    if isinstance(value, str) and _ISO_TIMESTAMP.match(value):
        return bigquery.ScalarQueryParameter(name, "TIMESTAMP", value)
    return bigquery.ScalarQueryParameter(name, "STRING", None if value is None else str(value))


def normalize_value(value: Any) -> Any:
    """Decimal -> float, date/datetime -> ISO string, structs and arrays recursively."""
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: normalize_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [normalize_value(v) for v in value]
    return value


class BigQueryClient:
    """Runs parameterised SQL against the configured project."""

    def __init__(self, client: Any = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            credentials = self.settings.GOOGLE_APPLICATION_CREDENTIALS
            if credentials:
                self._client = bigquery.Client.from_service_account_json(
                    credentials, project=self.settings.GOOGLE_CLOUD_PROJECT_ID
                )
            else:
                self._client = bigquery.Client(project=self.settings.GOOGLE_CLOUD_PROJECT_ID)
        return self._client

    def table(self, name: str, dataset: Optional[str] = None) -> str:
        """Backticked `dataset.table` path; dataset defaults to the Shopify export dataset."""
        return f"`{dataset or self.settings.shopify_dataset}.{name}`"

    def _run(self, sql: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        job_config = bigquery.QueryJobConfig(
            query_parameters=[build_query_parameter(k, v) for k, v in params.items()]
        )
        job = self.client.query(sql, job_config=job_config, location=self.settings.BIGQUERY_LOCATION)
        logger.debug(f"BigQuery job {job.job_id} started")
        return [normalize_value(dict(row.items())) for row in job.result()]

    async def query(self, sql: str, params: Optional[dict[str, Any]] = None) -> list[dict[str, Any]]:
        params = params or {}
        logger.debug(f"BigQuery query params={params}")
        try:
            rows = await asyncio.to_thread(self._run, sql, params)
        except Exception as e:
            logger.exception(f"BigQuery query failed: {e}")
            raise UpstreamError(f"warehouse query failed: {e}") from e
        logger.info(f"BigQuery query returned {len(rows)} rows")
        return rows

    async def query_one(self, sql: str, params: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        rows = await self.query(sql, params)
        return rows[0] if rows else {}


_default_client: Optional[BigQueryClient] = None


def get_bigquery_client() -> BigQueryClient:
    global _default_client
    if _default_client is None:
        _default_client = BigQueryClient()
    return _default_client
