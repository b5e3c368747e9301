"""
Batched DynamoDB writer with bounded retries.

Records are written in batches of at most 25, one batch at a time. Per batch:
- a batch gets at most max_retries submits in total, the first one included
- unprocessed items reported by DynamoDB are resubmitted,
  whatever is still unprocessed after that counts as failed
- throughput errors back off and resubmit the same batch
- "contains duplicates" validation errors dedupe the batch and resubmit without using
  a retry; when dedup removes nothing the batch is written one item at a time
- any other error backs off and resubmits; after the last attempt the pending items fail

Every record fed in ends up counted exactly once as succeeded or failed. Duplicates
dropped by in-batch dedup count as succeeded since their id is written by the winner.
"""
import asyncio
import time
from typing import Any, Awaitable, Callable, Iterable, Optional, Protocol

from botocore.exceptions import ClientError
from loguru import logger

from app.core.retry import RetryPolicy
from app.importer.dedup import dedupe_records
from app.models.tables import MAX_BATCH_SIZE, to_dynamo_item
from app.schemas.imports import WriteResult

THROUGHPUT_ERROR_CODES = {
    "ProvisionedThroughputExceededException",
    "ThrottlingException",
    "RequestLimitExceeded",
}

ERROR_THROUGHPUT = "throughput"
ERROR_DUPLICATES = "duplicates"
ERROR_OTHER = "other"


class BatchTable(Protocol):
    name: str

    def batch_write(self, items: list[dict]) -> list[dict]: ...

    def put(self, item: dict) -> None: ...


def error_code(error: BaseException) -> str:
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Code", "")
    return getattr(error, "code", "") or type(error).__name__


def classify_error(error: BaseException) -> str:
    code = error_code(error)
    if code in THROUGHPUT_ERROR_CODES:
        return ERROR_THROUGHPUT
    if code == "ValidationException" and "duplicates" in str(error).lower():
        return ERROR_DUPLICATES
    return ERROR_OTHER


def chunked(items: list[Any], size: int) -> Iterable[list[Any]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


class BatchWriter:
    """Writes records into one table, strictly sequentially."""

    def __init__(
        self,
        table: BatchTable,
        batch_size: int = MAX_BATCH_SIZE,
        max_retries: int = 5,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        throughput_policy: Optional[RetryPolicy] = None,
        error_policy: Optional[RetryPolicy] = None,
        unprocessed_policy: Optional[RetryPolicy] = None,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.table = table
        self.batch_size = min(batch_size, MAX_BATCH_SIZE)
        self.max_retries = max_retries
        self._sleep = sleep or asyncio.sleep
        # 2s, 4s, 8s ... for throttling
        self.throughput_policy = throughput_policy or RetryPolicy(max_retries, base_delay=2.0, max_delay=30.0)
        # 2s, 4s ... capped at 30s for anything else
        self.error_policy = error_policy or RetryPolicy(max_retries, base_delay=1.0, max_delay=30.0)
        # 200ms, 400ms ... capped at 10s between unprocessed-item resubmits
        self.unprocessed_policy = unprocessed_policy or RetryPolicy(max_retries, base_delay=0.1, max_delay=10.0)

    async def write_records(self, records: Iterable[Any]) -> WriteResult:
        items = [to_dynamo_item(r) for r in records]
        total = WriteResult()
        if not items:
            return total
        batches = (len(items) + self.batch_size - 1) // self.batch_size
        started = time.monotonic()
        for index, batch in enumerate(chunked(items, self.batch_size), 1):
            result = await self.write_batch(batch)
            total.add(result)
            logger.info(
                f"{self.table.name}: batch {index}/{batches} "
                f"ok={result.succeeded} failed={result.failed} "
                f"(total ok={total.succeeded} failed={total.failed})"
            )
        logger.info(
            f"{self.table.name}: wrote {total.succeeded}/{len(items)} items, "
            f"{total.failed} failed in {time.monotonic() - started:.1f}s"
        )
        return total

    async def write_batch(self, items: list[dict]) -> WriteResult:
        result = WriteResult()
        pending = list(items)
        # the first submit is attempt 1; dedup resubmits do not count
        attempt = 1
        while pending:
            try:
                unprocessed = await asyncio.to_thread(self.table.batch_write, pending)
            except Exception as e:
                kind = classify_error(e)
                if kind == ERROR_DUPLICATES:
                    deduped = dedupe_records(pending)
                    if len(deduped) < len(pending):
                        logger.warning(
                            f"{self.table.name}: batch had duplicate keys, {len(pending)} -> {len(deduped)} items"
                        )
                        result.succeeded += len(pending) - len(deduped)
                        pending = deduped
                        continue
                    logger.warning(f"{self.table.name}: dedup made no progress, writing items one at a time")
                    result.add(await self.write_individually(pending))
                    return result

                if attempt >= self.max_retries:
                    logger.error(
                        f"{self.table.name}: giving up on {len(pending)} items after {attempt} attempts: {e}"
                    )
                    result.failed += len(pending)
                    return result
                if kind == ERROR_THROUGHPUT:
                    delay = self.throughput_policy.delay_for(attempt - 1)
                else:
                    delay = self.error_policy.delay_for(attempt)
                attempt += 1
                logger.warning(
                    f"{self.table.name}: {error_code(e)} on batch of {len(pending)}, "
                    f"attempt {attempt}/{self.max_retries} in {delay:.1f}s"
                )
                await self._sleep(delay)
                continue

            result.succeeded += len(pending) - len(unprocessed)
            if not unprocessed:
                return result
            if attempt >= self.max_retries:
                logger.error(
                    f"{self.table.name}: {len(unprocessed)} items still unprocessed after {attempt} attempts"
                )
                result.failed += len(unprocessed)
                return result
            delay = self.unprocessed_policy.delay_for(attempt)
            attempt += 1
            logger.warning(
                f"{self.table.name}: {len(unprocessed)} unprocessed items, "
                f"attempt {attempt}/{self.max_retries} in {delay:.1f}s"
            )
            await self._sleep(delay)
            pending = unprocessed
        return result

    async def write_individually(self, items: list[dict]) -> WriteResult:
        result = WriteResult()
        for item in items:
            try:
                await asyncio.to_thread(self.table.put, item)
                result.succeeded += 1
            except Exception as e:
                logger.error(f"{self.table.name}: put failed for {item.get('id')}: {e}")
                result.failed += 1
        return result
