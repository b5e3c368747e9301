"""
BigQuery parameter typing and row normalisation
"""
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from app.core.errors import UpstreamError
from app.services.bigquery_client import BigQueryClient, build_query_parameter, normalize_value


@pytest.mark.parametrize("value, expected_type", [
    (date(2025, 6, 1), "DATE"),
    (datetime(2025, 6, 1, tzinfo=timezone.utc), "TIMESTAMP"),
    ("2025-06-01T00:00:00Z", "TIMESTAMP"),
    (330, "INT64"),
    (1.5, "FLOAT64"),
    (True, "BOOL"),
    ("%Y-%m", "STRING"),
])
def test_scalar_parameter_types(value, expected_type):
    assert build_query_parameter("p", value).type_ == expected_type


def test_list_becomes_string_array():
    param = build_query_parameter("skus", ["a", 1])
    assert param.array_type == "STRING"
    assert param.values == ["a", "1"]


def test_normalize_value():
    row = {
        "amount": Decimal("12.50"),
        "day": date(2025, 6, 1),
        "daily": [{"date": date(2025, 6, 2), "sales": Decimal("3")}],
    }
    assert normalize_value(row) == {
        "amount": 12.5,
        "day": "2025-06-01",
        "daily": [{"date": "2025-06-02", "sales": 3.0}],
    }


def test_table_path(settings):
    settings.BIGQUERY_DATASET = "proj.shop"
    settings.BIGQUERY_TABLE = "export"
    client = BigQueryClient(client=object(), settings=settings)
    assert client.table("orders") == "`proj.shop.export.orders`"
    assert client.table("orders", dataset="proj.amazon") == "`proj.amazon.orders`"


class FakeJob:
    job_id = "job-1"

    def __init__(self, rows):
        self.rows = rows

    def result(self):
        return self.rows


class Row(dict):
    pass


class FakeClient:
    def __init__(self, rows=None, error=None):
        self.rows = rows or []
        self.error = error
        self.calls = []

    def query(self, sql, job_config=None, location=None):
        self.calls.append((sql, job_config, location))
        if self.error:
            raise self.error
        return FakeJob(self.rows)


async def test_query_runs_with_parameters(settings):
    fake = FakeClient(rows=[Row(total=Decimal("5"))])
    client = BigQueryClient(client=fake, settings=settings)
    rows = await client.query("SELECT 1", {"start_date": date(2025, 6, 1)})

    assert rows == [{"total": 5.0}]
    _, job_config, location = fake.calls[0]
    assert job_config.query_parameters[0].name == "start_date"
    assert location == settings.BIGQUERY_LOCATION


async def test_query_one_without_rows(settings):
    client = BigQueryClient(client=FakeClient(), settings=settings)
    assert await client.query_one("SELECT 1") == {}


async def test_query_failure_is_upstream_error(settings):
    client = BigQueryClient(client=FakeClient(error=RuntimeError("quota")), settings=settings)
    with pytest.raises(UpstreamError):
        await client.query("SELECT 1")
