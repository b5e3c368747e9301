"""
In-process snapshot of the Orders / Products / Customers tables for the dashboard endpoints.

A snapshot is immutable. Refreshes and webhook updates build a new snapshot under one
asyncio.Lock and swap the reference, so readers always see a whole snapshot.
"""
import asyncio
import time
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Optional

from loguru import logger

from app.core.config import get_settings
from app.models.tables import scan_all
from app.sync_utils import now_iso

RESOURCES = ("orders", "products", "customers")

Loader = Callable[[], Awaitable[dict[str, list[dict[str, Any]]]]]


@dataclass(frozen=True)
class DashboardSnapshot:
    orders: tuple[dict[str, Any], ...] = ()
    products: tuple[dict[str, Any], ...] = ()
    customers: tuple[dict[str, Any], ...] = ()
    # monotonic clock reading of the last full load; 0 means never loaded
    loaded_at: float = 0.0
    refreshed_at: Optional[str] = None
    counts: dict[str, int] = field(default_factory=dict)

    @property
    def loaded(self) -> bool:
        return self.loaded_at > 0


async def load_from_dynamodb() -> dict[str, list[dict[str, Any]]]:
    """Full scans of the three tables, one after another."""
    settings = get_settings()
    data = {}
    for resource in RESOURCES:
        data[resource] = await scan_all(settings.table_name(resource))
    return data


class DashboardSnapshotCache:
    def __init__(
        self,
        loader: Optional[Loader] = None,
        refresh_interval: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._loader = loader or load_from_dynamodb
        self.refresh_interval = (
            refresh_interval if refresh_interval is not None else get_settings().DASHBOARD_REFRESH_SECONDS
        )
        self._clock = clock
        self._snapshot = DashboardSnapshot()
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None

    @property
    def snapshot(self) -> DashboardSnapshot:
        return self._snapshot

    def is_stale(self) -> bool:
        snap = self._snapshot
        return not snap.loaded or self._clock() - snap.loaded_at >= self.refresh_interval

    async def get(self) -> DashboardSnapshot:
        """Current snapshot, reloading first when it is missing or older than the interval."""
        if self.is_stale():
            await self.refresh(force=False)
        return self._snapshot

    async def refresh(self, force: bool = True) -> DashboardSnapshot:
        async with self._lock:
            # another caller may have refreshed while we waited
            if not force and not self.is_stale():
                return self._snapshot
            started = time.monotonic()
            data = await self._loader()
            snap = DashboardSnapshot(
                orders=tuple(data.get("orders") or ()),
                products=tuple(data.get("products") or ()),
                customers=tuple(data.get("customers") or ()),
                loaded_at=self._clock(),
                refreshed_at=now_iso(),
            )
            self._snapshot = replace(snap, counts={r: len(getattr(snap, r)) for r in RESOURCES})
            logger.info(
                f"dashboard snapshot refreshed: {self._snapshot.counts} "
                f"in {time.monotonic() - started:.2f}s"
            )
            return self._snapshot

    async def apply_upsert(self, resource: str, record: dict[str, Any], key: str = "id") -> None:
        """Replace or append one record. Ignored until the first full load."""
        if resource not in RESOURCES:
            raise ValueError(f"unknown resource: {resource}")
        async with self._lock:
            snap = self._snapshot
            if not snap.loaded:
                return
            current = getattr(snap, resource)
            updated = tuple(r for r in current if r.get(key) != record.get(key)) + (record,)
            self._snapshot = replace(
                snap, **{resource: updated}, counts={**snap.counts, resource: len(updated)}
            )

    async def apply_delete(self, resource: str, record_id: str, key: str = "id") -> None:
        if resource not in RESOURCES:
            raise ValueError(f"unknown resource: {resource}")
        async with self._lock:
            snap = self._snapshot
            if not snap.loaded:
                return
            updated = tuple(r for r in getattr(snap, resource) if r.get(key) != record_id)
            self._snapshot = replace(
                snap, **{resource: updated}, counts={**snap.counts, resource: len(updated)}
            )

    async def _run_periodic(self) -> None:
        while True:
            await asyncio.sleep(self.refresh_interval)
            try:
                await self.refresh(force=True)
            except Exception:
                logger.exception("dashboard snapshot refresh failed, keeping the previous snapshot")

    def start(self) -> None:
        """Start the periodic refresh task on the running loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run_periodic())
            logger.info(f"dashboard snapshot refresher started, every {self.refresh_interval}s")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("dashboard snapshot refresher stopped")


_default_cache: Optional[DashboardSnapshotCache] = None


def get_dashboard_cache() -> DashboardSnapshotCache:
    global _default_cache
    if _default_cache is None:
        _default_cache = DashboardSnapshotCache()
    return _default_cache
