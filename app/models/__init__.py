"""
DynamoDB access lives in the models package.
"""
from app.models.connection import get_dynamodb
from app.models.tables import (
    DynamoTable,
    clear_table,
    count_items,
    delete_item,
    get_item,
    put_item,
    scan_all,
    scan_page,
)
from app.models.sync_metadata import (
    get_sync_metadata,
    update_last_sync_timestamp,
    update_sync_metadata,
)

__all__ = [
    "get_dynamodb",
    "DynamoTable",
    "clear_table",
    "count_items",
    "delete_item",
    "get_item",
    "put_item",
    "scan_all",
    "scan_page",
    "get_sync_metadata",
    "update_last_sync_timestamp",
    "update_sync_metadata",
]
