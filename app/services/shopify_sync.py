"""
Pull products, customers and orders from Shopify and persist them with the batch writer.

One resource failing does not stop the others; the run ends as success, partial_success or failed.
"""
import time
from typing import Any, Callable, Iterable, Optional

from loguru import logger

from app.importer.batch_writer import BatchWriter
from app.importer.dedup import dedupe_records
from app.importer.runner import LastSyncWriter, MetadataWriter
from app.models import sync_metadata
from app.services.shopify_service import ShopifyService
from app.sync_utils import now_iso

SYNC_ORDER = ("products", "customers", "orders")


def overall_status(results: dict[str, dict[str, Any]]) -> str:
    outcomes = [r["success"] for r in results.values()]
    if outcomes and all(outcomes):
        return "success"
    if any(outcomes):
        return "partial_success"
    return "failed"


class ShopifySync:
    def __init__(
        self,
        service: ShopifyService,
        writer_factory: Callable[[str], BatchWriter],
        metadata_writer: Optional[MetadataWriter] = None,
        last_sync_writer: Optional[LastSyncWriter] = None,
    ):
        self.service = service
        self.writer_factory = writer_factory
        self.metadata_writer = metadata_writer or sync_metadata.update_sync_metadata
        self.last_sync_writer = last_sync_writer or sync_metadata.update_last_sync_timestamp

    async def sync_resource(self, resource: str, limit: Optional[int] = None) -> dict[str, Any]:
        records = await self.service.fetch(resource, limit=limit)
        unique = dedupe_records(records)
        result = await self.writer_factory(resource).write_records(unique)
        if result.succeeded:
            await self.last_sync_writer(resource)
        return {
            "success": result.failed == 0,
            "fetched": len(records),
            "count": result.succeeded,
            "failed": result.failed,
            "error": None if result.failed == 0 else f"{result.failed} records could not be written",
        }

    async def run(self, resources: Iterable[str] = SYNC_ORDER, limit: Optional[int] = None) -> dict[str, Any]:
        sync_id = f"sync_{int(time.time() * 1000)}"
        started = time.monotonic()
        logger.info(f"Shopify sync {sync_id} started")
        await self.metadata_writer({"syncId": sync_id, "status": "started", "startedAt": now_iso()})

        results: dict[str, dict[str, Any]] = {}
        for resource in resources:
            logger.info(f"--- syncing {resource} ---")
            try:
                results[resource] = await self.sync_resource(resource, limit)
            except Exception as e:
                logger.exception(f"{resource} sync failed")
                results[resource] = {"success": False, "fetched": 0, "count": 0, "failed": 0, "error": str(e)}

        status = overall_status(results)
        summary = {
            "status": status,
            "completedAt": now_iso(),
            "results": results,
            "totalItemsSynced": sum(r["count"] for r in results.values()),
            "duration_seconds": round(time.monotonic() - started, 2),
        }
        await self.metadata_writer({"syncId": sync_id, **summary})
        await self.metadata_writer({"syncId": sync_metadata.LATEST_SYNC_ID, "lastSyncId": sync_id, **summary})
        logger.info(f"Shopify sync {sync_id} finished: {status}, {summary['totalItemsSynced']} items")
        return {"syncId": sync_id, **summary}
