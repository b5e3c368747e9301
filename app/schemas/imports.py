"""
Import run statistics
"""
from typing import Optional
from pydantic import BaseModel


class WriteResult(BaseModel):
    """Outcome of feeding records to the batch writer"""
    succeeded: int = 0
    failed: int = 0

    def add(self, other: "WriteResult") -> "WriteResult":
        self.succeeded += other.succeeded
        self.failed += other.failed
        return self

    @property
    def total(self) -> int:
        return self.succeeded + self.failed


class FileImportStats(BaseModel):
    """
    processed: rows read from the file
    valid: rows the transformer accepted
    unique: records left after dedup
    failed: rejected rows + records the writer gave up on
    """
    file_name: str
    processed: int = 0
    valid: int = 0
    unique: int = 0
    succeeded: int = 0
    failed: int = 0
    duration_seconds: float = 0.0
    error: Optional[str] = None


class ImportRunStats(BaseModel):
    import_id: str
    resource: str
    files_total: int = 0
    files_completed: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    duration_seconds: float = 0.0
    files: list[FileImportStats] = []

    def add_file(self, stats: FileImportStats) -> None:
        self.files.append(stats)
        self.files_completed += 1
        self.processed += stats.processed
        self.succeeded += stats.succeeded
        self.failed += stats.failed
