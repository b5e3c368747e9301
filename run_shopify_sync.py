"""
Pull products, customers and orders from the Shopify Admin API into DynamoDB.

Run: python run_shopify_sync.py [--resources=products,customers,orders] [--limit=N]
Requires: Shopify credentials, AWS credentials and table names in .env
"""
import argparse
import asyncio
import sys
from pathlib import Path

from dotenv import load_dotenv
from loguru import logger

load_dotenv(Path(__file__).resolve().parent / ".env")
sys.path.insert(0, str(Path(__file__).resolve().parent))


async def main(args) -> int:
    from app.core.config import get_settings
    from app.core.log import configure_logging
    from app.importer.batch_writer import BatchWriter
    from app.models import DynamoTable
    from app.services.shopify_service import ShopifyService
    from app.services.shopify_sync import SYNC_ORDER, ShopifySync
    from app.sync_utils import split_list

    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)

    resources = split_list(args.resources) or list(SYNC_ORDER)
    unknown = [r for r in resources if r not in SYNC_ORDER]
    if unknown:
        logger.error(f"unknown resources: {unknown}")
        return 1

    try:
        service = ShopifyService()
    except ValueError as e:
        logger.error(str(e))
        return 1

    def writer_for(resource: str) -> BatchWriter:
        return BatchWriter(
            DynamoTable(settings.table_name(resource)),
            batch_size=settings.IMPORT_BATCH_SIZE,
            max_retries=settings.IMPORT_MAX_RETRIES,
        )

    try:
        result = await ShopifySync(service, writer_for).run(resources, limit=args.limit)
    except Exception:
        logger.exception("Shopify sync failed")
        return 1

    for resource, outcome in result["results"].items():
        logger.info(f"{resource}: {outcome['count']} synced, {outcome['failed']} failed, error={outcome['error']}")
    return 0 if result["status"] == "success" else 1


def parse_args():
    p = argparse.ArgumentParser(description="Sync Shopify data into DynamoDB")
    p.add_argument("--resources", default="", help="comma separated, default products,customers,orders")
    p.add_argument("--limit", type=int, default=None, help="max records per resource")
    return p.parse_args()


if __name__ == "__main__":
    sys.exit(asyncio.run(main(parse_args())))
