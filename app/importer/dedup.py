"""
Keep one record per id, the most recently updated one.
"""
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from app.sync_utils import parse_timestamp

# records without any timestamp sort before everything else
_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def _field(record: Any, name: str) -> Any:
    if isinstance(record, dict):
        return record.get(name)
    return getattr(record, name, None)


def record_timestamp(record: Any) -> Optional[datetime]:
    """updated_at, falling back to created_at."""
    return parse_timestamp(_field(record, "updated_at")) or parse_timestamp(_field(record, "created_at"))


class LatestRecords:
    """
    Incremental dedup: feed records one at a time, read back one per `key`.
    A record replaces the kept one only when its timestamp is strictly later,
    so on equal timestamps the first seen record stays. Output keeps the order
    in which each id first appeared.
    """

    def __init__(self, key: str = "id"):
        self.key = key
        self._kept: dict[Any, Any] = {}
        self._kept_ts: dict[Any, datetime] = {}

    def add(self, record: Any) -> bool:
        """True when the record is now the kept version of its id."""
        record_id = _field(record, self.key)
        ts = record_timestamp(record) or _OLDEST
        if record_id in self._kept and ts <= self._kept_ts[record_id]:
            return False
        self._kept[record_id] = record
        self._kept_ts[record_id] = ts
        return True

    def __len__(self) -> int:
        return len(self._kept)

    def records(self) -> list[Any]:
        return list(self._kept.values())


def dedupe_records(records: Iterable[Any], key: str = "id") -> list[Any]:
    """Reduce to one record per `key`, see LatestRecords."""
    latest = LatestRecords(key)
    for record in records:
        latest.add(record)
    return latest.records()
