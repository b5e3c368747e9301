"""
SyncMetadata table: 'latest', '<resource>_last_sync' and per-run import records.
Rows are overwritten, not appended.
"""
import asyncio
from typing import Any, Optional

from loguru import logger

from app.core.config import get_settings
from app.models.tables import DynamoTable, from_dynamo_item, to_dynamo_item
from app.schemas.records import SyncMetadata
from app.sync_utils import now_iso

LATEST_SYNC_ID = "latest"
SYNC_KEY = "syncId"


def _table() -> DynamoTable:
    return DynamoTable(get_settings().SYNC_METADATA_TABLE, key_name=SYNC_KEY)


async def update_sync_metadata(data: dict[str, Any]) -> SyncMetadata:
    """Write one metadata row; syncId defaults to 'latest' and timestamp to now."""
    record = SyncMetadata(**{SYNC_KEY: LATEST_SYNC_ID, "timestamp": now_iso(), **data})
    await asyncio.to_thread(_table().put, to_dynamo_item(record))
    logger.debug(f"sync metadata {record.syncId}: {record.status}")
    return record


async def update_last_sync_timestamp(resource: str, timestamp: Optional[str] = None) -> SyncMetadata:
    ts = timestamp or now_iso()
    return await update_sync_metadata({
        SYNC_KEY: f"{resource}_last_sync",
        "resource": resource,
        "last_sync": ts,
        "timestamp": ts,
    })


async def get_sync_metadata(sync_id: str = LATEST_SYNC_ID) -> Optional[dict]:
    item = await asyncio.to_thread(_table().get, sync_id)
    return from_dynamo_item(item) if item else None


async def check_connection() -> None:
    """Scan one row to prove credentials and table name are valid; raises otherwise."""
    await asyncio.to_thread(_table().scan, 1)
