"""
Import Shopify CSV exports (orders / customers / products) into DynamoDB.

Run: python run_import_csv.py --resource=orders --data-dir=./data --pattern=order*.csv --batch-size=25 --retries=5
Requires: AWS credentials and table names in .env
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
    from app.core.errors import ImportFailedError
    from app.core.log import configure_logging
    from app.importer.batch_writer import BatchWriter
    from app.importer.runner import ImportRunner
    from app.models import DynamoTable
    from app.models.sync_metadata import check_connection

    settings = get_settings()
    configure_logging(settings.LOG_LEVEL, args.log_file)

    table_name = settings.table_name(args.resource)
    logger.info(f"Importing {args.resource} from {args.data_dir} into {table_name}")
    try:
        await check_connection()
    except Exception:
        logger.exception("DynamoDB connection check failed")
        return 1

    writer = BatchWriter(
        DynamoTable(table_name),
        batch_size=args.batch_size or settings.IMPORT_BATCH_SIZE,
        max_retries=args.retries if args.retries is not None else settings.IMPORT_MAX_RETRIES,
    )
    runner = ImportRunner(args.resource, writer, progress_every=settings.IMPORT_PROGRESS_EVERY_FILES)
    try:
        stats = await runner.import_directory(args.data_dir, args.pattern)
    except ImportFailedError as e:
        logger.error(e.message)
        return 1
    except Exception:
        logger.exception("Import failed")
        return 1

    logger.info("=" * 60)
    logger.info(f"Import id:       {stats.import_id}")
    logger.info(f"Files:           {stats.files_completed}/{stats.files_total}")
    logger.info(f"Rows processed:  {stats.processed}")
    logger.info(f"Succeeded:       {stats.succeeded}")
    logger.info(f"Failed:          {stats.failed}")
    logger.info(f"Duration:        {stats.duration_seconds}s")
    logger.info("=" * 60)
    return 0


def parse_args():
    p = argparse.ArgumentParser(description="Import Shopify CSV exports into DynamoDB")
    p.add_argument("--resource", choices=["orders", "customers", "products"], default="orders")
    p.add_argument("--data-dir", default="./data", help="directory holding the CSV files")
    p.add_argument("--pattern", default=None, help="glob pattern, default order*.csv / customer*.csv / product*.csv")
    p.add_argument("--batch-size", type=int, default=None, help="items per batch write, at most 25")
    p.add_argument("--retries", type=int, default=None, help="retries per batch")
    p.add_argument("--log-file", default=None)
    return p.parse_args()


if __name__ == "__main__":
    sys.exit(asyncio.run(main(parse_args())))
