"""
Multi-file CSV import: transform -> dedup -> batch write, with SyncMetadata bookkeeping.

Files are processed one after another. Progress snapshots are advisory; a crashed run
is not resumed and has to be started again (records are overwritten by id, so re-runs
are safe).
"""
import csv
import time
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterator, Optional

from loguru import logger

from app.core.errors import ImportFailedError
from app.importer.batch_writer import BatchWriter, chunked
from app.importer.dedup import LatestRecords
from app.importer.transform import get_transformer
from app.models import sync_metadata
from app.schemas.imports import FileImportStats, ImportRunStats, WriteResult
from app.sync_utils import now_iso

MetadataWriter = Callable[[dict[str, Any]], Awaitable[Any]]
LastSyncWriter = Callable[[str], Awaitable[Any]]

DEFAULT_PATTERNS = {
    "orders": "order*.csv",
    "customers": "customer*.csv",
    "products": "product*.csv",
}


def iter_csv_rows(path: Path) -> Iterator[dict[str, str]]:
    with open(path, "r", newline="", encoding="utf-8-sig") as f:
        yield from csv.DictReader(f)


def find_import_files(data_dir: str | Path, pattern: str) -> list[Path]:
    data_dir = Path(data_dir)
    if not data_dir.is_dir():
        raise ImportFailedError(f"data directory not found: {data_dir}")
    files = sorted(p for p in data_dir.glob(pattern) if p.is_file())
    if not files:
        raise ImportFailedError(f"no files matching '{pattern}' in {data_dir}")
    return files


class ImportRunner:
    """Imports CSV exports of one resource (orders / customers / products) into its table."""

    def __init__(
        self,
        resource: str,
        writer: BatchWriter,
        metadata_writer: Optional[MetadataWriter] = None,
        last_sync_writer: Optional[LastSyncWriter] = None,
        progress_every: int = 5,
        flush_size: int = 100,
    ):
        self.resource = resource
        self.transform = get_transformer(resource)
        self.writer = writer
        self.metadata_writer = metadata_writer or sync_metadata.update_sync_metadata
        self.last_sync_writer = last_sync_writer or sync_metadata.update_last_sync_timestamp
        self.progress_every = max(1, progress_every)
        self.flush_size = max(1, flush_size)

    async def import_file(self, path: Path) -> FileImportStats:
        """
        Rows are streamed through the transformer; only the newest record per id is held
        until the file ends, then handed to the writer flush_size records at a time.
        Rows the transformer rejects count as failed, so
        processed == succeeded + failed + duplicates collapsed by dedup.
        """
        started = time.monotonic()
        stats = FileImportStats(file_name=path.name)
        latest = LatestRecords()
        for row in iter_csv_rows(path):
            stats.processed += 1
            record = self.transform(row)
            if record is None:
                stats.failed += 1
                continue
            stats.valid += 1
            latest.add(record)

        stats.unique = len(latest)
        if stats.valid != stats.unique:
            logger.info(f"{path.name}: {stats.valid - stats.unique} duplicate ids collapsed")

        result = WriteResult()
        for chunk in chunked(latest.records(), self.flush_size):
            result.add(await self.writer.write_records(chunk))
            logger.debug(f"{path.name}: {result.total}/{stats.unique} records written")
        stats.succeeded = result.succeeded
        stats.failed += result.failed
        stats.duration_seconds = round(time.monotonic() - started, 3)
        logger.info(
            f"{path.name}: processed={stats.processed} valid={stats.valid} unique={stats.unique} "
            f"succeeded={stats.succeeded} failed={stats.failed} ({stats.duration_seconds}s)"
        )
        return stats

    async def _record(self, import_id: str, status: str, **fields: Any) -> None:
        data = {"status": status, "resource": self.resource, "importId": import_id, **fields}
        await self.metadata_writer({"syncId": import_id, **data})
        await self.metadata_writer({"syncId": sync_metadata.LATEST_SYNC_ID, **data})

    async def _record_failure(self, import_id: str, error: Exception) -> None:
        """Best effort: the metadata table may be the thing that failed."""
        data = {"status": "failed", "resource": self.resource, "importId": import_id, "error": str(error)}
        for sync_id in (f"import_error_{int(time.time() * 1000)}", sync_metadata.LATEST_SYNC_ID):
            try:
                await self.metadata_writer({"syncId": sync_id, **data})
            except Exception as write_error:
                logger.error(f"import {import_id}: could not write failed status to {sync_id}: {write_error}")

    async def import_files(self, files: list[Path]) -> ImportRunStats:
        import_id = f"csv_import_{self.resource}_{int(time.time() * 1000)}"
        run = ImportRunStats(import_id=import_id, resource=self.resource, files_total=len(files))
        started = time.monotonic()
        logger.info(f"import {import_id}: {len(files)} file(s)")

        try:
            await self._record(import_id, "started", startTime=now_iso(), filesTotal=len(files))
            for index, path in enumerate(files, 1):
                logger.info(f"[{index}/{len(files)}] {path.name}")
                try:
                    stats = await self.import_file(path)
                except (OSError, csv.Error, UnicodeDecodeError) as e:
                    logger.exception(f"{path.name}: could not be imported: {e}")
                    stats = FileImportStats(file_name=path.name, error=str(e))
                run.add_file(stats)

                if index % self.progress_every == 0 or index == len(files):
                    await self._record(
                        import_id,
                        "in_progress",
                        filesCompleted=run.files_completed,
                        filesTotal=run.files_total,
                        processed=run.processed,
                        succeeded=run.succeeded,
                        failed=run.failed,
                    )

            run.duration_seconds = round(time.monotonic() - started, 3)
            await self.last_sync_writer(self.resource)
            await self._record(
                import_id,
                "completed",
                completedAt=now_iso(),
                filesCompleted=run.files_completed,
                filesTotal=run.files_total,
                processed=run.processed,
                succeeded=run.succeeded,
                failed=run.failed,
                durationSeconds=run.duration_seconds,
            )
        except Exception as e:
            logger.exception(f"import {import_id} failed: {e}")
            await self._record_failure(import_id, e)
            raise

        logger.info(
            f"import {import_id} done: files={run.files_completed}/{run.files_total} "
            f"processed={run.processed} succeeded={run.succeeded} failed={run.failed} "
            f"in {run.duration_seconds}s"
        )
        return run

    async def import_directory(self, data_dir: str | Path, pattern: Optional[str] = None) -> ImportRunStats:
        files = find_import_files(data_dir, pattern or DEFAULT_PATTERNS[self.resource])
        return await self.import_files(files)
