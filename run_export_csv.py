"""
Export Shopify products, customers and orders to CSV files.

Run: python run_export_csv.py --output-dir=./data [--skip-orders] [--skip-products] [--skip-customers]
Requires: Shopify credentials in .env
"""
import argparse
import asyncio
import sys
import time
from pathlib import Path

from dotenv import load_dotenv
from loguru import logger

load_dotenv(Path(__file__).resolve().parent / ".env")
sys.path.insert(0, str(Path(__file__).resolve().parent))


async def main(args) -> int:
    from app.core.config import get_settings
    from app.core.errors import UpstreamError
    from app.core.log import configure_logging
    from app.export_csv import export_records_to_csv
    from app.services.shopify_service import ShopifyService

    configure_logging(get_settings().LOG_LEVEL)
    try:
        service = ShopifyService()
    except ValueError as e:
        logger.error(str(e))
        return 1

    plan = [
        ("products", args.skip_products, args.products_file),
        ("customers", args.skip_customers, args.customers_file),
        ("orders", args.skip_orders, args.orders_file),
    ]
    started = time.monotonic()
    output_dir = Path(args.output_dir)
    for resource, skip, file_name in plan:
        if skip:
            logger.info(f"{resource}: skipped")
            continue
        path = output_dir / file_name
        logger.info(f"===== exporting {resource} to {path} =====")
        try:
            records = await service.fetch(resource)
            count = export_records_to_csv(resource, records, path)
        except (UpstreamError, OSError) as e:
            logger.error(f"{resource} export failed: {e}")
            return 1
        logger.info(f"{resource}: {count} rows written")

    logger.info(f"Export finished in {time.monotonic() - started:.1f}s")
    return 0


def parse_args():
    p = argparse.ArgumentParser(description="Export Shopify data to CSV")
    p.add_argument("--output-dir", default="./data")
    p.add_argument("--orders-file", default="orders.csv")
    p.add_argument("--products-file", default="products.csv")
    p.add_argument("--customers-file", default="customers.csv")
    p.add_argument("--skip-orders", action="store_true")
    p.add_argument("--skip-products", action="store_true")
    p.add_argument("--skip-customers", action="store_true")
    return p.parse_args()


if __name__ == "__main__":
    sys.exit(asyncio.run(main(parse_args())))
