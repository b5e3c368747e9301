"""
DynamoDB table operations (Orders / Products / Customers / SyncMetadata).

The tables have a single partition key and no secondary indexes, so every filtered
read is a full scan plus in-process filtering: cost grows with table size.
boto3 is blocking; the async helpers run it in a worker thread.
"""
import asyncio
import base64
import json
from decimal import Decimal
from typing import Any, Optional

from boto3.dynamodb.conditions import Attr
from loguru import logger
from pydantic import BaseModel

from app.core.errors import ValidationError
from app.models.connection import get_dynamodb

# DynamoDB BatchWriteItem ceiling
MAX_BATCH_SIZE = 25


def to_dynamo_item(record: Any) -> dict[str, Any]:
    """Record (pydantic or dict) -> item with floats as Decimal and no None values."""
    if isinstance(record, BaseModel):
        data = record.model_dump(mode="json", exclude_none=True)
    else:
        data = {k: v for k, v in dict(record).items() if v is not None}
    return json.loads(json.dumps(data, default=str), parse_float=Decimal)


def from_dynamo_item(item: Any) -> Any:
    """Decimal -> int/float, recursively, for JSON responses and arithmetic."""
    if isinstance(item, list):
        return [from_dynamo_item(v) for v in item]
    if isinstance(item, dict):
        return {k: from_dynamo_item(v) for k, v in item.items()}
    if isinstance(item, Decimal):
        return int(item) if item == item.to_integral_value() else float(item)
    return item


def encode_page_token(key: Optional[dict]) -> Optional[str]:
    if not key:
        return None
    return base64.b64encode(json.dumps(from_dynamo_item(key)).encode("utf-8")).decode("ascii")


def decode_page_token(token: Optional[str]) -> Optional[dict]:
    if not token:
        return None
    try:
        return json.loads(base64.b64decode(token.encode("ascii")).decode("utf-8"))
    except (ValueError, UnicodeDecodeError) as e:
        raise ValidationError("Invalid nextToken") from e


class DynamoTable:
    """Blocking wrapper over one table; the batch writer drives it from a worker thread."""

    def __init__(self, name: str, resource: Any = None, key_name: str = "id"):
        self.name = name
        self.key_name = key_name
        self._resource = resource or get_dynamodb()
        self._table = self._resource.Table(name)

    def batch_write(self, items: list[dict]) -> list[dict]:
        """BatchWriteItem of put requests; returns the items DynamoDB left unprocessed."""
        response = self._resource.batch_write_item(
            RequestItems={self.name: [{"PutRequest": {"Item": item}} for item in items]}
        )
        unprocessed = (response.get("UnprocessedItems") or {}).get(self.name) or []
        return [request["PutRequest"]["Item"] for request in unprocessed if "PutRequest" in request]

    def put(self, item: dict) -> None:
        self._table.put_item(Item=item)

    def delete(self, key: str) -> None:
        self._table.delete_item(Key={self.key_name: key})

    def get(self, key: str) -> Optional[dict]:
        return self._table.get_item(Key={self.key_name: key}).get("Item")

    def scan(
        self,
        limit: Optional[int] = None,
        start_key: Optional[dict] = None,
        filter_expression: Any = None,
        projection: Optional[str] = None,
    ) -> tuple[list[dict], Optional[dict]]:
        kwargs: dict[str, Any] = {}
        if limit:
            kwargs["Limit"] = limit
        if start_key:
            kwargs["ExclusiveStartKey"] = start_key
        if filter_expression is not None:
            kwargs["FilterExpression"] = filter_expression
        if projection:
            kwargs["ProjectionExpression"] = projection
        response = self._table.scan(**kwargs)
        return response.get("Items", []), response.get("LastEvaluatedKey")

    def scan_all(self, filter_expression: Any = None) -> list[dict]:
        items: list[dict] = []
        start_key = None
        while True:
            page, start_key = self.scan(start_key=start_key, filter_expression=filter_expression)
            items.extend(page)
            if not start_key:
                return items

    def count(self) -> int:
        total = 0
        kwargs: dict[str, Any] = {"Select": "COUNT"}
        while True:
            response = self._table.scan(**kwargs)
            total += response.get("Count", 0)
            if not response.get("LastEvaluatedKey"):
                return total
            kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]

    def clear(self) -> int:
        """Delete every item; returns how many were removed."""
        deleted = 0
        start_key = None
        with self._table.batch_writer() as batch:
            while True:
                page, start_key = self.scan(start_key=start_key, projection=self.key_name)
                for item in page:
                    batch.delete_item(Key={self.key_name: item[self.key_name]})
                    deleted += 1
                if not start_key:
                    break
        logger.info(f"{self.name}: deleted {deleted} items")
        return deleted


def date_filter(date_from: Optional[str], date_to: Optional[str], attribute: str = "date") -> Any:
    """FilterExpression on the YYYY-MM-DD `date` attribute."""
    condition = None
    if date_from:
        condition = Attr(attribute).gte(date_from)
    if date_to:
        upper = Attr(attribute).lte(date_to)
        condition = upper if condition is None else condition & upper
    return condition


async def put_item(table_name: str, record: Any) -> None:
    await asyncio.to_thread(DynamoTable(table_name).put, to_dynamo_item(record))


async def delete_item(table_name: str, key: str) -> None:
    await asyncio.to_thread(DynamoTable(table_name).delete, key)


async def get_item(table_name: str, key: str, key_name: str = "id") -> Optional[dict]:
    item = await asyncio.to_thread(DynamoTable(table_name, key_name=key_name).get, key)
    return from_dynamo_item(item) if item else None


async def scan_all(table_name: str) -> list[dict]:
    items = await asyncio.to_thread(DynamoTable(table_name).scan_all)
    return from_dynamo_item(items)


async def scan_page(
    table_name: str,
    limit: int = 20,
    next_token: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
) -> dict[str, Any]:
    """One scan page: {items, count, nextToken}. nextToken is base64 JSON of LastEvaluatedKey."""
    start_key = decode_page_token(next_token)
    table = DynamoTable(table_name)
    items, last_key = await asyncio.to_thread(table.scan, limit, start_key, date_filter(date_from, date_to))
    return {
        "items": from_dynamo_item(items),
        "count": len(items),
        "nextToken": encode_page_token(last_key),
    }


async def count_items(table_name: str) -> int:
    return await asyncio.to_thread(DynamoTable(table_name).count)


async def clear_table(table_name: str, key_name: str = "id") -> int:
    return await asyncio.to_thread(DynamoTable(table_name, key_name=key_name).clear)
