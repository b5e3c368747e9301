"""
Delete every item from one or all DynamoDB tables.

Run: python run_clear_tables.py --table=orders|products|customers|sync_metadata|all --yes
"""
import argparse
import asyncio
import sys
from pathlib import Path

from dotenv import load_dotenv
from loguru import logger

load_dotenv(Path(__file__).resolve().parent / ".env")
sys.path.insert(0, str(Path(__file__).resolve().parent))

RESOURCES = ["orders", "products", "customers", "sync_metadata"]


async def main(args) -> int:
    from app.core.config import get_settings
    from app.core.log import configure_logging
    from app.models import clear_table
    from app.models.sync_metadata import SYNC_KEY

    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)

    if not args.yes:
        logger.error("refusing to delete without --yes")
        return 1

    resources = RESOURCES if args.table == "all" else [args.table]
    for resource in resources:
        table_name = settings.table_name(resource)
        key_name = SYNC_KEY if resource == "sync_metadata" else "id"
        logger.info(f"clearing {table_name}")
        try:
            deleted = await clear_table(table_name, key_name=key_name)
        except Exception:
            logger.exception(f"could not clear {table_name}")
            return 1
        logger.info(f"{table_name}: {deleted} items deleted")
    return 0


def parse_args():
    p = argparse.ArgumentParser(description="Delete all items from DynamoDB tables")
    p.add_argument("--table", choices=RESOURCES + ["all"], required=True)
    p.add_argument("--yes", action="store_true", help="confirm deletion")
    return p.parse_args()


if __name__ == "__main__":
    sys.exit(asyncio.run(main(parse_args())))
